# tests/conftest.py
import threading
from unittest.mock import MagicMock

import pytest

from devstack_common.api_client import ApiClient
from devstack_setup.config_models import (
    AppSettings,
    GitLabSettings,
    GrafanaSettings,
    JenkinsSettings,
    NexusSettings,
    PrometheusSettings,
    SonarQubeSettings,
    VaultSettings,
)


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def app_settings(tmp_path):
    """Settings with every credential provided and short health budgets."""
    service_kwargs = {"ready_timeout": 2, "poll_interval": 1}
    return AppSettings(
        output_dir=tmp_path,
        gitlab=GitLabSettings(token="glpat-test-token", **service_kwargs),
        sonarqube=SonarQubeSettings(token="squ_existing", **service_kwargs),
        nexus=NexusSettings(admin_password="nexus-secret", **service_kwargs),
        jenkins=JenkinsSettings(admin_password="jenkins-initial", **service_kwargs),
        grafana=GrafanaSettings(**service_kwargs),
        prometheus=PrometheusSettings(**service_kwargs),
        vault=VaultSettings(token="hvs.root", **service_kwargs),
    )


@pytest.fixture
def dry_client():
    return ApiClient(dry_run=True, logger=MagicMock())


@pytest.fixture
def cancel_event():
    return threading.Event()


def _make_response(status=200, json_body=None, text="", headers=None):
    """A MagicMock shaped like a requests.Response."""
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    if json_body is not None:
        response.content = b"{}"
        response.json.return_value = json_body
    elif text:
        response.content = text.encode("utf-8")
        response.json.side_effect = ValueError("not json")
        response.text = text
    else:
        response.content = b""
    return response


@pytest.fixture
def make_response():
    return _make_response
