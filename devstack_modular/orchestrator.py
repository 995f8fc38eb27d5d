"""
Core orchestrator for the stack bootstrap.

This module provides the BootstrapOrchestrator class, which waits for every
declared service to become healthy, runs one step chain per healthy service
and aggregates the chain reports into an OverallReport.
"""

import importlib
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from pydantic import BaseModel, Field

from devstack_common.api_client import ApiClient
from devstack_common.errors import BootstrapCancelled, HealthCheckTimeoutError
from devstack_common.file_utils import CredentialsFile
from devstack_common.health_probe import HealthProbe, ServiceTarget
from devstack_common.metrics import BootstrapMetrics
from devstack_common.orchestrator import ChainReport, ChainStatus, StepRunner
from devstack_common.step_models import ExecutionContext, StepDefinition
from devstack_modular.registry import ConfiguratorRegistry
from devstack_modular.summary import write_summary
from devstack_setup.config_models import AppSettings

module_logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONTRACT_VIOLATION = 2
EXIT_CANCELLED = 130


class HealthStatus(str, Enum):
    HEALTHY = "Healthy"
    UNHEALTHY = "Unhealthy"
    NOT_CHECKED = "NotChecked"


class ServiceOutcome(BaseModel):
    """Everything that happened to one service during a run."""

    service: str
    endpoint: str = ""
    health: HealthStatus = HealthStatus.NOT_CHECKED
    health_error: Optional[str] = None
    waited: Optional[float] = None
    chain: Optional[ChainReport] = None
    skip_reason: Optional[str] = None


class OverallReport(BaseModel):
    """Aggregated result of a bootstrap run."""

    services: List[ServiceOutcome] = Field(default_factory=list)
    strict_health: bool = True
    dry_run: bool = False
    health_aborted: bool = False
    cancelled: bool = False
    run_directory: Optional[Path] = None
    credentials_path: Optional[Path] = None
    summary_path: Optional[Path] = None

    def outcome(self, service: str) -> ServiceOutcome:
        for outcome in self.services:
            if outcome.service == service:
                return outcome
        raise KeyError(f"Service '{service}' is not part of this run")

    @property
    def chain_reports(self) -> List[ChainReport]:
        return [o.chain for o in self.services if o.chain is not None]

    @property
    def succeeded(self) -> bool:
        """
        True when every checked service was healthy and no required step
        failed. A service skipped as unhealthy in lenient mode still fails
        the run once the healthy services have been configured.
        """
        if self.health_aborted or self.cancelled:
            return False
        if any(o.health == HealthStatus.UNHEALTHY for o in self.services):
            return False
        return all(
            report.status != ChainStatus.HALTED_ON_REQUIRED_FAILURE
            for report in self.chain_reports
        )

    @property
    def exit_code(self) -> int:
        if self.cancelled:
            return EXIT_CANCELLED
        return EXIT_OK if self.succeeded else EXIT_FAILURE


class BootstrapOrchestrator:
    """
    Drives the health, configuration and summary phases of a run.

    Chains of different services never share state: every chain gets its
    own StepRunner and ExecutionContext, so a failure stays with its service.
    """

    def __init__(
        self,
        probe: HealthProbe,
        strict_health: bool = True,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        credentials: Optional[CredentialsFile] = None,
        metrics: Optional[BootstrapMetrics] = None,
        summary_path: Optional[Path] = None,
        dry_run: bool = False,
        symbols: Optional[Dict[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the bootstrap orchestrator.

        Args:
            probe: Health probe shared by all targets.
            strict_health: Abort the whole run if any target is unhealthy.
                Otherwise unhealthy services are skipped.
            max_workers: Number of services handled concurrently.
            cancel_event: Stops new probes and new steps once set.
            credentials: Credentials file that persisted outputs go to.
            metrics: Optional metrics collector.
            summary_path: Where to write the summary document, if anywhere.
            dry_run: Recorded in the report and the summary.
            symbols: Log symbols.
            logger: Optional logger instance.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.probe = probe
        self.strict_health = strict_health
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()
        if getattr(probe, "cancel_event", None) is None:
            probe.cancel_event = self.cancel_event
        self.credentials = credentials
        self.metrics = metrics
        self.summary_path = summary_path
        self.dry_run = dry_run
        self.symbols = symbols or {}
        self.logger = logger or module_logger

    @classmethod
    def from_settings(
        cls,
        app_settings: AppSettings,
        cancel_event: Optional[threading.Event] = None,
        credentials: Optional[CredentialsFile] = None,
        metrics: Optional[BootstrapMetrics] = None,
        summary_path: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "BootstrapOrchestrator":
        """Build an orchestrator configured from the application settings."""
        cancel_event = cancel_event or threading.Event()
        probe = HealthProbe(
            request_timeout=min(app_settings.request_timeout, 10.0),
            cancel_event=cancel_event,
            metrics=metrics,
            logger=logger,
        )
        return cls(
            probe,
            strict_health=app_settings.strict_health,
            max_workers=app_settings.max_workers,
            cancel_event=cancel_event,
            credentials=credentials,
            metrics=metrics,
            summary_path=summary_path,
            dry_run=app_settings.dry_run,
            symbols=app_settings.symbols,
            logger=logger,
        )

    def _map(self, func: Callable[[T], R], items: Sequence[T]) -> List[R]:
        """
        Apply ``func`` to every item, in a bounded pool when configured.

        Results are returned in the order of ``items`` once all calls have
        completed; the first exception raised by any call is re-raised.
        """
        if self.max_workers == 1 or len(items) <= 1:
            return [func(item) for item in items]

        workers = min(self.max_workers, len(items))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="devstack"
        ) as executor:
            futures = [executor.submit(func, item) for item in items]
            return [future.result() for future in futures]

    def _check_health(self, target: ServiceTarget) -> ServiceOutcome:
        outcome = ServiceOutcome(service=target.name, endpoint=target.health_url)
        if self.cancel_event.is_set():
            outcome.skip_reason = "cancelled"
            return outcome
        try:
            outcome.waited = self.probe.wait_until_healthy(target)
            outcome.health = HealthStatus.HEALTHY
        except HealthCheckTimeoutError as e:
            outcome.health = HealthStatus.UNHEALTHY
            outcome.health_error = str(e)
            self.logger.warning(
                f"{self.symbols.get('warning', '⚠️')} {e}"
            )
        except BootstrapCancelled:
            outcome.skip_reason = "cancelled"
        return outcome

    def _run_chain(self, name: str, chain: List[StepDefinition]) -> ChainReport:
        runner = StepRunner(
            name,
            credentials=self.credentials,
            metrics=self.metrics,
            cancel_event=self.cancel_event,
            symbols=self.symbols or None,
            logger=logging.getLogger(f"devstack.{name}"),
        )
        return runner.run(chain, ExecutionContext(name))

    def run(
        self,
        services: Sequence[ServiceTarget],
        chains: Mapping[str, List[StepDefinition]],
        skipped: Optional[Mapping[str, str]] = None,
    ) -> OverallReport:
        """
        Run the health, configuration and summary phases.

        Args:
            services: Targets in declaration order.
            chains: Step chain for each service name.
            skipped: Services left out of the run, with the reason. They
                only appear in the report.

        Returns:
            The aggregated report. A cancelled run returns a partial report.

        Raises:
            ContractViolation: If any chain is malformed.
        """
        report = OverallReport(
            strict_health=self.strict_health,
            dry_run=self.dry_run,
            summary_path=self.summary_path,
        )
        if self.credentials is not None:
            report.credentials_path = self.credentials.path
            report.run_directory = self.credentials.path.parent

        # Health phase
        self.logger.info(
            f"Checking health of {len(services)} service(s)..."
        )
        outcomes = self._map(self._check_health, list(services))
        report.services.extend(outcomes)
        for name, reason in (skipped or {}).items():
            report.services.append(ServiceOutcome(service=name, skip_reason=reason))

        if self.cancel_event.is_set():
            report.cancelled = True

        unhealthy = [o for o in outcomes if o.health == HealthStatus.UNHEALTHY]
        if report.cancelled:
            for outcome in outcomes:
                if outcome.skip_reason is None:
                    outcome.skip_reason = "cancelled"
        elif unhealthy and self.strict_health:
            names = ", ".join(o.service for o in unhealthy)
            self.logger.error(
                f"{self.symbols.get('critical', '🔥')} Unhealthy service(s): {names}. "
                "Aborting before any configuration (strict mode)."
            )
            report.health_aborted = True
            for outcome in outcomes:
                if outcome.health == HealthStatus.HEALTHY:
                    outcome.skip_reason = "run aborted by failed health checks"
        else:
            for outcome in unhealthy:
                outcome.skip_reason = "service unhealthy"
                self.logger.warning(
                    f"{self.symbols.get('warning', '⚠️')} Skipping {outcome.service}: not healthy."
                )

            # Configuration phase
            runnable = []
            for outcome in outcomes:
                if outcome.health != HealthStatus.HEALTHY:
                    continue
                if outcome.service not in chains:
                    outcome.skip_reason = "no configuration steps declared"
                    continue
                runnable.append(outcome)

            reports = self._map(
                lambda o: self._run_chain(o.service, chains[o.service]),
                runnable,
            )
            for outcome, chain_report in zip(runnable, reports):
                outcome.chain = chain_report
                if chain_report.status == ChainStatus.CANCELLED:
                    report.cancelled = True

        # Summary phase
        self.log_report(report)
        if self.summary_path is not None:
            write_summary(report, self.summary_path)
            self.logger.info(f"Summary written to {self.summary_path}")
        return report

    def log_report(self, report: OverallReport) -> None:
        """Log a one-line outcome per service."""
        self.logger.info("Configuration summary:")
        for outcome in report.services:
            if outcome.chain is not None:
                chain = outcome.chain
                failed = ", ".join(e.step_id for e in chain.failed_steps)
                detail = f" (failed: {failed})" if failed else ""
                self.logger.info(
                    f"  {outcome.service}: {chain.status.value}{detail}"
                )
            else:
                self.logger.info(
                    f"  {outcome.service}: not configured ({outcome.skip_reason or outcome.health.value})"
                )
        skipped_unhealthy = [
            o.service for o in report.services if o.health == HealthStatus.UNHEALTHY
        ]
        if skipped_unhealthy and not report.health_aborted:
            self.logger.warning(
                f"{self.symbols.get('warning', '⚠️')} Not configured because unhealthy: "
                f"{', '.join(skipped_unhealthy)}. The run is reported as failed."
            )
        if report.credentials_path is not None:
            self.logger.info(f"Credentials saved to: {report.credentials_path}")


def import_configurators(logger: Optional[logging.Logger] = None) -> None:
    """
    Import all configurator modules so their decorators register them.
    """
    logger_to_use = logger or module_logger
    configurators_dir = os.path.join(os.path.dirname(__file__), "configurators")

    for filename in sorted(os.listdir(configurators_dir)):
        if filename.endswith(".py") and not filename.startswith("__"):
            module_name = filename[:-3]
            importlib.import_module(f"devstack_modular.configurators.{module_name}")
            logger_to_use.debug(f"Imported configurator module: {module_name}")


class ServicePlan(BaseModel):
    """Targets and chains selected for a run."""

    targets: List[ServiceTarget] = Field(default_factory=list)
    chains: Dict[str, List[StepDefinition]] = Field(default_factory=dict)
    skipped: Dict[str, str] = Field(default_factory=dict)


def build_plan(
    app_settings: AppSettings,
    client: ApiClient,
    logger: Optional[logging.Logger] = None,
) -> ServicePlan:
    """
    Instantiate every registered configurator that is neither skipped nor
    disabled and collect its target and chain.
    """
    logger_to_use = logger or module_logger
    import_configurators(logger_to_use)

    plan = ServicePlan()
    skip = set(app_settings.skip)
    unknown = skip - set(ConfiguratorRegistry.get_all_configurators())
    if unknown:
        logger_to_use.warning(f"Ignoring unknown service(s) to skip: {', '.join(sorted(unknown))}")

    for name in ConfiguratorRegistry.service_names():
        if name in skip:
            logger_to_use.info(f"Skipping {name} (requested)")
            plan.skipped[name] = "skipped on request"
            continue
        if not app_settings.service_settings(name).enabled:
            logger_to_use.info(f"Skipping {name} (disabled in configuration)")
            plan.skipped[name] = "disabled in configuration"
            continue

        configurator_class = ConfiguratorRegistry.get_configurator(name)
        configurator = configurator_class(
            app_settings, client, logger=logging.getLogger(f"devstack.{name}")
        )
        plan.targets.append(configurator.target())
        plan.chains[name] = configurator.build_chain()
    return plan
