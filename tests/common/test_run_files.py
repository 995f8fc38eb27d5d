# tests/common/test_run_files.py
# -*- coding: utf-8 -*-
"""
Tests for the run directory and the credentials file.
"""

import datetime
import stat
import threading
from unittest.mock import MagicMock

import pytest

from devstack_common.api_client import SimulatedValue
from devstack_common.file_utils import CredentialsFile, create_run_directory

NOW = datetime.datetime(2024, 5, 1, 13, 45, 9)


class TestCreateRunDirectory:
    def test_timestamped_name(self, tmp_path):
        run_dir = create_run_directory(tmp_path / "out", now=NOW, current_logger=MagicMock())

        assert run_dir == tmp_path / "out" / "config-backup-20240501_134509"
        assert run_dir.is_dir()

    def test_never_reuses_a_directory(self, tmp_path):
        first = create_run_directory(tmp_path, now=NOW, current_logger=MagicMock())
        second = create_run_directory(tmp_path, now=NOW, current_logger=MagicMock())
        third = create_run_directory(tmp_path, now=NOW, current_logger=MagicMock())

        assert first.name == "config-backup-20240501_134509"
        assert second.name == "config-backup-20240501_134509-1"
        assert third.name == "config-backup-20240501_134509-2"


class TestCredentialsFile:
    """Tests for CredentialsFile."""

    def test_create_writes_header_with_owner_only_mode(self, tmp_path):
        path = tmp_path / "tokens.conf"

        CredentialsFile(path, logger=MagicMock()).create()

        assert path.read_text(encoding="utf-8").startswith("# DevOps stack credentials")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_create_refuses_existing_file(self, tmp_path):
        path = tmp_path / "tokens.conf"
        path.write_text("OLD=1\n", encoding="utf-8")

        with pytest.raises(FileExistsError):
            CredentialsFile(path, logger=MagicMock()).create()

        assert path.read_text(encoding="utf-8") == "OLD=1\n"

    def test_dry_run_header(self, tmp_path):
        path = tmp_path / "tokens.conf"

        CredentialsFile(path, dry_run=True, logger=MagicMock()).create()

        assert "# DRY RUN" in path.read_text(encoding="utf-8")

    def test_append_lines(self, tmp_path):
        path = tmp_path / "tokens.conf"
        credentials = CredentialsFile(path, logger=MagicMock()).create()

        credentials.append("sonar_token", "squ_123")
        credentials.append("vault_token", SimulatedValue("token"))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert "SONAR_TOKEN=squ_123" in lines
        assert "VAULT_TOKEN=<simulated:token>  # simulated" in lines
        assert credentials.keys == ["SONAR_TOKEN", "VAULT_TOKEN"]

    def test_rejects_newlines(self, tmp_path):
        credentials = CredentialsFile(tmp_path / "tokens.conf", logger=MagicMock()).create()

        with pytest.raises(ValueError):
            credentials.append("token", "a\nINJECTED=1")

    def test_concurrent_appends_keep_whole_lines(self, tmp_path):
        path = tmp_path / "tokens.conf"
        credentials = CredentialsFile(path, logger=MagicMock()).create()

        threads = [
            threading.Thread(target=credentials.append, args=(f"key_{i}", "x" * 200))
            for i in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        body = [line for line in path.read_text(encoding="utf-8").splitlines() if not line.startswith("#")]
        assert len(body) == 20
        assert all(line.endswith("=" + "x" * 200) for line in body)
