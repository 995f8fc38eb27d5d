"""
Registry for service configurators.

Configurator modules register themselves with the decorator below when they
are imported; the orchestrator and the CLI then discover every configurable
service through the registry.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

if TYPE_CHECKING:
    from devstack_modular.base_configurator import BaseConfigurator


class ConfiguratorRegistry:
    """
    Registry for service configurators.

    Services are kept in registration order, which is also the default order
    in which they are probed and configured.
    """

    _registry: Dict[str, Type["BaseConfigurator"]] = {}

    @classmethod
    def register(cls, name: str, metadata: Optional[Dict[str, Any]] = None):
        """
        Decorator for registering configurator classes.

        Args:
            name: The service name, e.g. ``gitlab``.
            metadata: Optional metadata, such as a description and an order.

        Returns:
            A decorator function that registers the configurator class.
        """

        def decorator(
            configurator_class: Type["BaseConfigurator"],
        ) -> Type["BaseConfigurator"]:
            if name in cls._registry:
                raise ValueError(
                    f"Configurator with name '{name}' already registered"
                )

            configurator_class.service_name = name
            if metadata:
                configurator_class.metadata = metadata

            cls._registry[name] = configurator_class
            return configurator_class

        return decorator

    @classmethod
    def unregister(cls, name: str) -> None:
        """Remove a configurator. Mostly useful in tests."""
        cls._registry.pop(name, None)

    @classmethod
    def get_configurator(cls, name: str) -> Type["BaseConfigurator"]:
        """
        Get a configurator class by service name.

        Raises:
            KeyError: If no configurator with the given name is registered.
        """
        if name not in cls._registry:
            raise KeyError(f"No configurator registered with name '{name}'")

        return cls._registry[name]

    @classmethod
    def get_all_configurators(cls) -> Dict[str, Type["BaseConfigurator"]]:
        """
        Get all registered configurators.

        Returns:
            A dictionary mapping service names to configurator classes.
        """
        return cls._registry.copy()

    @classmethod
    def service_names(cls) -> List[str]:
        """Registered service names, ordered by their ``order`` metadata."""
        return sorted(
            cls._registry,
            key=lambda name: cls._registry[name].metadata.get("order", 100),
        )
