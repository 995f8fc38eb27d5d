# tests/common/test_health_probe.py
# -*- coding: utf-8 -*-
"""
Tests for readiness polling.
"""

import threading
from unittest.mock import MagicMock

import pytest
import requests
from pydantic import ValidationError

from devstack_common.errors import BootstrapCancelled, HealthCheckTimeoutError
from devstack_common.health_probe import HealthProbe, ServiceTarget


def make_target(**overrides):
    values = {
        "name": "gitlab",
        "health_url": "http://gitlab/-/health",
        "ready_timeout": 5,
        "poll_interval": 1,
    }
    values.update(overrides)
    return ServiceTarget(**values)


def healthy_from(clock, start, make_response):
    """requests.get side effect: unhealthy before ``start``, 200 afterwards."""

    def fake_get(url, timeout, verify):
        if clock() >= start:
            return make_response(200)
        return make_response(503)

    return fake_get


class TestWaitUntilHealthy:
    """Tests for HealthProbe.wait_until_healthy."""

    def test_healthy_at_three_seconds(self, mocker, fake_clock, make_response):
        """A target healthy from t=3 is observed between 3 and 4 seconds."""
        mocker.patch(
            "devstack_common.health_probe.requests.get",
            side_effect=healthy_from(fake_clock, 3, make_response),
        )
        probe = HealthProbe(clock=fake_clock, sleep=fake_clock.sleep, logger=MagicMock())

        elapsed = probe.wait_until_healthy(make_target())

        assert 3 <= elapsed < 4
        assert fake_clock.sleeps == [1, 1, 1]

    def test_first_probe_is_immediate(self, mocker, fake_clock, make_response):
        mock_get = mocker.patch(
            "devstack_common.health_probe.requests.get",
            return_value=make_response(200),
        )
        probe = HealthProbe(clock=fake_clock, sleep=fake_clock.sleep, logger=MagicMock())

        assert probe.wait_until_healthy(make_target()) == 0
        assert fake_clock.sleeps == []
        mock_get.assert_called_once()

    def test_timeout_names_the_target(self, mocker, fake_clock, make_response):
        mocker.patch(
            "devstack_common.health_probe.requests.get",
            return_value=make_response(502),
        )
        probe = HealthProbe(clock=fake_clock, sleep=fake_clock.sleep, logger=MagicMock())

        with pytest.raises(HealthCheckTimeoutError) as excinfo:
            probe.wait_until_healthy(make_target(name="nexus", ready_timeout=3))

        assert isinstance(excinfo.value, TimeoutError)
        assert excinfo.value.target_name == "nexus"
        assert "nexus" in str(excinfo.value)
        assert fake_clock.now == 3

    def test_last_sleep_is_capped_by_budget(self, mocker, fake_clock, make_response):
        mocker.patch(
            "devstack_common.health_probe.requests.get",
            return_value=make_response(500),
        )
        probe = HealthProbe(clock=fake_clock, sleep=fake_clock.sleep, logger=MagicMock())

        with pytest.raises(HealthCheckTimeoutError):
            probe.wait_until_healthy(make_target(ready_timeout=5, poll_interval=2))

        assert fake_clock.sleeps == [2, 2, 1]

    def test_transport_errors_mean_not_yet_healthy(self, mocker, fake_clock, make_response):
        mocker.patch(
            "devstack_common.health_probe.requests.get",
            side_effect=[
                requests.exceptions.ConnectionError("refused"),
                requests.exceptions.ReadTimeout("slow"),
                make_response(204),
            ],
        )
        probe = HealthProbe(clock=fake_clock, sleep=fake_clock.sleep, logger=MagicMock())

        assert probe.wait_until_healthy(make_target()) == 2

    def test_redirects_are_not_healthy(self, mocker, make_response):
        mocker.patch(
            "devstack_common.health_probe.requests.get",
            return_value=make_response(302),
        )
        probe = HealthProbe(logger=MagicMock())

        assert probe.check_once(make_target()) is False

    def test_cancellation_stops_polling(self, mocker, fake_clock, make_response):
        event = threading.Event()

        def fake_sleep(seconds):
            fake_clock.sleep(seconds)
            event.set()

        mock_get = mocker.patch(
            "devstack_common.health_probe.requests.get",
            return_value=make_response(503),
        )
        probe = HealthProbe(
            clock=fake_clock, sleep=fake_sleep, cancel_event=event, logger=MagicMock()
        )

        with pytest.raises(BootstrapCancelled):
            probe.wait_until_healthy(make_target())

        assert mock_get.call_count == 1

    def test_metrics_are_recorded(self, mocker, fake_clock, make_response):
        mocker.patch(
            "devstack_common.health_probe.requests.get",
            side_effect=[make_response(503), make_response(200)],
        )
        metrics = MagicMock()
        probe = HealthProbe(
            clock=fake_clock, sleep=fake_clock.sleep, metrics=metrics, logger=MagicMock()
        )

        probe.wait_until_healthy(make_target())

        assert metrics.record_health_probe.call_count == 2
        metrics.record_health_wait.assert_called_once_with("gitlab", 1)


def test_target_rejects_non_positive_budgets():
    with pytest.raises(ValidationError):
        make_target(ready_timeout=0)
    with pytest.raises(ValidationError):
        make_target(poll_interval=-1)
