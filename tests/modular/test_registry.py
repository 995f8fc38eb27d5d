# tests/modular/test_registry.py
# -*- coding: utf-8 -*-
"""
Tests for ConfiguratorRegistry and BaseConfigurator.
"""

from unittest.mock import MagicMock

import pytest

from devstack_common.api_client import SimulatedValue
from devstack_common.step_models import StepStatus
from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.orchestrator import import_configurators
from devstack_modular.registry import ConfiguratorRegistry

import_configurators()


@pytest.fixture
def temporary_configurator():
    """Register a throwaway configurator and remove it afterwards."""

    @ConfiguratorRegistry.register(
        name="artifactory", metadata={"description": "Test service", "order": 15}
    )
    class ArtifactoryConfigurator(BaseConfigurator):
        def build_chain(self):
            return []

    yield ArtifactoryConfigurator
    ConfiguratorRegistry.unregister("artifactory")


class TestConfiguratorRegistry:
    def test_builtin_services_in_order(self):
        assert ConfiguratorRegistry.service_names() == [
            "gitlab", "sonarqube", "nexus", "jenkins", "grafana", "prometheus", "vault",
        ]

    def test_register_sets_name_and_metadata(self, temporary_configurator):
        assert temporary_configurator.service_name == "artifactory"
        assert temporary_configurator.metadata["order"] == 15
        assert ConfiguratorRegistry.get_configurator("artifactory") is temporary_configurator
        assert ConfiguratorRegistry.service_names().index("artifactory") == 1

    def test_duplicate_name_rejected(self):
        with pytest.raises(ValueError, match="already registered"):
            @ConfiguratorRegistry.register(name="gitlab")
            class AnotherGitLab(BaseConfigurator):
                def build_chain(self):
                    return []

    def test_unknown_name(self):
        with pytest.raises(KeyError):
            ConfiguratorRegistry.get_configurator("bamboo")

    def test_get_all_returns_a_copy(self):
        configurators = ConfiguratorRegistry.get_all_configurators()
        configurators.pop("gitlab")

        assert "gitlab" in ConfiguratorRegistry.get_all_configurators()


class TestBaseConfigurator:
    def test_target_from_settings(self, app_settings, dry_client):
        configurator = ConfiguratorRegistry.get_configurator("vault")(app_settings, dry_client)

        target = configurator.target()

        assert target.name == "vault"
        assert target.health_url == "http://localhost:8200/v1/sys/health"
        assert target.ready_timeout == 2
        assert configurator.url("/v1/sys/mounts") == "http://localhost:8200/v1/sys/mounts"
        assert configurator.get_description().startswith("Vault")

    def test_generate_secret(self, app_settings, dry_client):
        configurator = ConfiguratorRegistry.get_configurator("nexus")(app_settings, dry_client)
        assert isinstance(configurator.generate_secret("password"), SimulatedValue)

        configurator.client = MagicMock(dry_run=False)
        secret = configurator.generate_secret("password")
        assert not isinstance(secret, SimulatedValue)
        assert len(secret) >= 16

    def test_missing_credential(self):
        result = BaseConfigurator.missing_credential("GITLAB_TOKEN")

        assert result.status == StepStatus.FAILED
        assert result.error == "missing credential: GITLAB_TOKEN is not set"
