"""
Base configurator class for all service configurators.

A configurator turns the settings of one service into a health target and
an ordered chain of configuration steps. It performs no work itself: the
chain is executed by a StepRunner.
"""

import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from devstack_common.api_client import ApiClient, ApiResponse, SimulatedValue
from devstack_common.health_probe import ServiceTarget
from devstack_common.step_models import StepDefinition, StepResult
from devstack_setup.config_models import AppSettings, ServiceSettings


class BaseConfigurator(ABC):
    """
    Base class for all service configurators.

    Subclasses are registered with ``ConfiguratorRegistry.register`` and
    implement :meth:`build_chain`.
    """

    # Set by the registry decorator.
    service_name: str = ""
    metadata: Dict[str, Any] = {
        "description": "",
        "order": 100,
    }

    def __init__(
        self,
        app_settings: AppSettings,
        client: ApiClient,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the configurator.

        Args:
            app_settings: The application settings.
            client: HTTP client shared by every step of the chain.
            logger: Optional logger instance. If not provided, a new logger will be created.
        """
        self.app_settings = app_settings
        self.client = client
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def settings(self) -> ServiceSettings:
        """The settings block of this configurator's service."""
        return self.app_settings.service_settings(self.service_name)

    @property
    def symbols(self) -> Dict[str, str]:
        return self.app_settings.symbols

    def url(self, path: str) -> str:
        """Absolute URL of an API path on this service."""
        return self.settings.url.rstrip("/") + path

    def target(self) -> ServiceTarget:
        """The health target probed before the chain runs."""
        return ServiceTarget(
            name=self.service_name,
            health_url=self.settings.health_url,
            ready_timeout=self.settings.ready_timeout,
            poll_interval=self.settings.poll_interval,
            verify_tls=self.settings.verify_tls,
        )

    def request(self, method: str, url: str, **kwargs: Any) -> ApiResponse:
        """Send a request with this service's TLS verification setting."""
        kwargs.setdefault("verify", self.settings.verify_tls)
        return self.client.request(method, url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> ApiResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> ApiResponse:
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs: Any) -> ApiResponse:
        return self.request("PUT", url, **kwargs)

    @staticmethod
    def step(
        step_id: str,
        action: Callable[..., StepResult],
        required: bool = False,
        description: str = "",
        persist: Tuple[str, ...] = (),
    ) -> StepDefinition:
        """Shorthand for declaring a StepDefinition."""
        return StepDefinition(
            id=step_id,
            action=action,
            required=required,
            description=description,
            persist=persist,
        )

    @staticmethod
    def missing_credential(setting: str) -> StepResult:
        return StepResult.failed(f"missing credential: {setting} is not set")

    def generate_secret(self, field: str, nbytes: int = 16) -> str:
        """A fresh random secret, or a tagged placeholder in dry-run mode."""
        if self.client.dry_run:
            return SimulatedValue(field)
        return secrets.token_urlsafe(nbytes)

    @abstractmethod
    def build_chain(self) -> List[StepDefinition]:
        """
        Declare the configuration steps of this service.

        Returns:
            The steps, in the order they must run.
        """

    def get_description(self) -> str:
        return str(self.metadata.get("description", ""))
