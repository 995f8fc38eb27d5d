# tests/common/test_logging_setup.py
# -*- coding: utf-8 -*-
"""
Tests for logging setup and secret masking in devstack_common.core_utils.
"""

import logging
import sys
from unittest.mock import MagicMock

import pytest

from devstack_common.core_utils import (
    DETAILED_LOG_FORMAT,
    SIMPLE_LOG_FORMAT_NO_PREFIX,
    SymbolFormatter,
    mask_secret,
    setup_logging,
)


@pytest.fixture
def mock_root_logger(mocker):
    """Fixture to mock the root logger."""
    mock_logger = MagicMock()
    mocker.patch("logging.getLogger", return_value=mock_logger)
    mock_logger.handlers = []
    return mock_logger


def added_handlers(mock_logger, *handler_classes):
    """Handlers from the patched classes that were attached to ``mock_logger``."""
    created = [cls.return_value for cls in handler_classes]
    return [
        call.args[0]
        for call in mock_logger.addHandler.call_args_list
        if any(call.args[0] is handler for handler in created)
    ]


def test_setup_logging_with_file_and_console(mocker, mock_root_logger, tmp_path):
    """Both the run log file and the console get a handler."""
    mock_file_handler = mocker.patch("logging.FileHandler")
    mock_stream_handler = mocker.patch("logging.StreamHandler")
    mock_formatter = mocker.patch("devstack_common.core_utils.SymbolFormatter")

    log_file = tmp_path / "run" / "configuration.log"
    setup_logging(log_file=str(log_file), log_to_console=True)

    mock_file_handler.assert_called_once_with(log_file, mode="a", encoding="utf-8")
    mock_stream_handler.assert_called_once_with(sys.stdout)
    assert log_file.parent.is_dir()

    # One formatter for the file, one for the console.
    assert mock_formatter.call_count == 2
    assert mock_formatter.call_args_list[0].kwargs["fmt"] == DETAILED_LOG_FORMAT
    mock_root_logger.addHandler.assert_any_call(mock_file_handler.return_value)
    mock_root_logger.addHandler.assert_any_call(mock_stream_handler.return_value)
    assert len(added_handlers(mock_root_logger, mock_file_handler, mock_stream_handler)) == 2


def test_setup_logging_without_handlers(mocker, mock_root_logger):
    """Console logging is forced on when there is nowhere else to log."""
    mock_stream_handler = mocker.patch("logging.StreamHandler")
    mocker.patch("devstack_common.core_utils.SymbolFormatter")

    setup_logging(log_to_console=False, log_file=None)

    mock_stream_handler.assert_called_once_with(sys.stdout)
    assert added_handlers(mock_root_logger, mock_stream_handler) == [mock_stream_handler.return_value]


def test_setup_logging_with_custom_format(mocker, mock_root_logger):
    mock_formatter = mocker.patch("devstack_common.core_utils.SymbolFormatter")

    custom_format = "{log_prefix}%(asctime)s - %(levelname)s - %(message)s"
    setup_logging(log_format_str=custom_format, log_prefix="[devstack]")

    expected_format = custom_format.format(log_prefix="[devstack] ")
    assert mock_formatter.call_args.kwargs["fmt"] == expected_format


def test_setup_logging_default_format(mocker, mock_root_logger):
    mock_formatter = mocker.patch("devstack_common.core_utils.SymbolFormatter")

    setup_logging(log_prefix="   ")

    assert mock_formatter.call_args.kwargs["fmt"] == SIMPLE_LOG_FORMAT_NO_PREFIX


def test_setup_logging_replaces_existing_handlers(mocker, mock_root_logger):
    mocker.patch("logging.StreamHandler")
    old_handler = MagicMock()
    mock_root_logger.handlers = [old_handler]

    setup_logging(log_level=logging.DEBUG)

    mock_root_logger.removeHandler.assert_called_once_with(old_handler)
    mock_root_logger.setLevel.assert_any_call(logging.DEBUG)


def test_setup_logging_unwritable_log_file(mocker, mock_root_logger, capsys, tmp_path):
    mock_file_handler = mocker.patch("logging.FileHandler", side_effect=OSError("read-only"))
    mock_stream_handler = mocker.patch("logging.StreamHandler")

    setup_logging(log_file=str(tmp_path / "run.log"), log_to_console=False)

    assert "Could not create file handler" in capsys.readouterr().err
    assert added_handlers(mock_root_logger, mock_file_handler, mock_stream_handler) == [
        mock_stream_handler.return_value
    ]


class TestSymbolFormatter:
    """Tests for SymbolFormatter."""

    @pytest.mark.parametrize(
        "level, symbol",
        [(logging.INFO, "i"), (logging.ERROR, "x"), (logging.CRITICAL, "!!")],
    )
    def test_symbol_per_level(self, level, symbol):
        formatter = SymbolFormatter(
            fmt="%(symbol)s %(message)s",
            symbols={"info": "i", "error": "x", "critical": "!!"},
        )
        record = logging.LogRecord("devstack", level, __file__, 1, "hello", None, None)

        assert formatter.format(record) == f"{symbol} hello"

    def test_unknown_level_has_no_symbol(self):
        formatter = SymbolFormatter(fmt="[%(symbol)s] %(message)s")
        record = logging.LogRecord("devstack", 25, __file__, 1, "hello", None, None)

        assert formatter.format(record) == "[] hello"


class TestMaskSecret:
    def test_shows_last_characters(self):
        assert mask_secret("glpat-abcdef1234") == "************1234"

    def test_short_values_fully_masked(self):
        assert mask_secret("abc") == "***"

    def test_unset(self):
        assert mask_secret(None) == "<unset>"
        assert mask_secret("") == "<unset>"

    def test_simulated_values_are_not_secret(self):
        assert mask_secret("<simulated:token>") == "<simulated:token>"
