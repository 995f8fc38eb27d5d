"""
Prometheus metrics collection for the stack bootstrap.

Each run owns its collectors in a private registry so repeated runs in one
process (tests, the CLI) never clash over metric names.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

logger = logging.getLogger(__name__)


class BootstrapMetrics:
    """Centralized metrics collection for a bootstrap run."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics collectors.

        Args:
            registry: Optional custom registry. A fresh one is created if None.
        """
        self.registry = registry or CollectorRegistry()

        self.steps_total = Counter(
            "devstack_steps_total",
            "Configuration steps executed, by outcome",
            ["service", "status"],
            registry=self.registry,
        )

        self.step_duration = Histogram(
            "devstack_step_duration_seconds",
            "Time spent executing a configuration step",
            ["service", "step"],
            registry=self.registry,
        )

        self.health_probes_total = Counter(
            "devstack_health_probes_total",
            "Health probe attempts, by result",
            ["service", "result"],
            registry=self.registry,
        )

        self.health_wait_duration = Histogram(
            "devstack_health_wait_seconds",
            "Time spent waiting for a service to become healthy",
            ["service"],
            registry=self.registry,
        )

        self.chains_by_status = Gauge(
            "devstack_chain_status",
            "Final status of each service chain (1 for the reached status)",
            ["service", "status"],
            registry=self.registry,
        )

        self.run_info = Info(
            "devstack_run",
            "Information about the bootstrap run",
            registry=self.registry,
        )

    def record_step(self, service: str, step: str, status: str, duration: float):
        """Record one executed step."""
        self.steps_total.labels(service=service, status=status).inc()
        self.step_duration.labels(service=service, step=step).observe(duration)

    def record_health_probe(self, service: str, healthy: bool):
        """Record a single health probe attempt."""
        self.health_probes_total.labels(
            service=service, result="healthy" if healthy else "unhealthy"
        ).inc()

    def record_health_wait(self, service: str, duration: float):
        self.health_wait_duration.labels(service=service).observe(duration)

    def record_chain_status(self, service: str, status: str):
        self.chains_by_status.labels(service=service, status=status).set(1)

    def set_run_info(self, dry_run: bool, run_directory: str):
        self.run_info.info({
            "dry_run": str(dry_run).lower(),
            "run_directory": run_directory,
        })

    def render(self) -> bytes:
        """Render all collectors in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def write_to_file(self, path: Union[str, Path]) -> Path:
        """Write the rendered metrics to ``path``."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.render())
        logger.info(f"Metrics written to {target}")
        return target
