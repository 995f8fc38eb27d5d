"""
Modular bootstrap framework.

This package provides the configurator registry, the per-service
configurators and the orchestrator that runs their step chains.
"""

from devstack_modular.base_configurator import BaseConfigurator
from devstack_modular.orchestrator import BootstrapOrchestrator, OverallReport
from devstack_modular.registry import ConfiguratorRegistry

__all__ = [
    "BaseConfigurator",
    "ConfiguratorRegistry",
    "BootstrapOrchestrator",
    "OverallReport",
]
