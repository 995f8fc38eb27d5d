# devstack_common/health_probe.py
# -*- coding: utf-8 -*-
"""
Readiness polling for the services that are about to be configured.
"""

import logging
import threading
import time
from typing import Callable, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field

from .errors import BootstrapCancelled, HealthCheckTimeoutError
from .metrics import BootstrapMetrics

module_logger = logging.getLogger(__name__)

PROBE_REQUEST_TIMEOUT_DEFAULT = 5.0


class ServiceTarget(BaseModel):
    """A service endpoint to wait for before its chain runs."""
    model_config = ConfigDict(frozen=True)

    name: str
    health_url: str
    ready_timeout: float = Field(gt=0)
    poll_interval: float = Field(gt=0)
    verify_tls: bool = True


class HealthProbe:
    """
    Polls a target's health URL until it answers with a 2xx status.

    Transport errors and non-2xx answers both mean "not healthy yet". The
    probe keeps no state between calls, so one instance may serve several
    threads at once.
    """

    def __init__(
        self,
        request_timeout: float = PROBE_REQUEST_TIMEOUT_DEFAULT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
        cancel_event: Optional[threading.Event] = None,
        metrics: Optional[BootstrapMetrics] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.request_timeout = request_timeout
        self.cancel_event = cancel_event
        self.metrics = metrics
        self.logger = logger or module_logger
        self._clock = clock
        if sleep is not None:
            self._sleep = sleep
        elif cancel_event is not None:
            # Event.wait returns early once cancellation is requested.
            self._sleep = cancel_event.wait
        else:
            self._sleep = time.sleep

    def check_once(self, target: ServiceTarget) -> bool:
        """Issue a single probe and report whether the target is healthy."""
        try:
            response = requests.get(
                target.health_url,
                timeout=min(self.request_timeout, target.ready_timeout),
                verify=target.verify_tls,
            )
        except requests.exceptions.RequestException as e:
            self.logger.debug(f"{target.name} probe failed: {e}")
            return False

        healthy = 200 <= response.status_code < 300
        if not healthy:
            self.logger.debug(
                f"{target.name} answered HTTP {response.status_code} on {target.health_url}"
            )
        return healthy

    def wait_until_healthy(self, target: ServiceTarget) -> float:
        """
        Block until ``target`` is healthy.

        The first probe is sent immediately, then one every
        ``poll_interval`` seconds while the ``ready_timeout`` budget lasts.

        Returns:
            Seconds waited until the successful probe.

        Raises:
            HealthCheckTimeoutError: If the budget ran out.
            BootstrapCancelled: If the cancellation event was set.
        """
        self.logger.info(f"Waiting for {target.name} to be ready...")
        start = self._clock()
        attempt = 0

        while True:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise BootstrapCancelled(
                    f"Health check of '{target.name}' cancelled"
                )

            attempt += 1
            healthy = self.check_once(target)
            elapsed = self._clock() - start
            if self.metrics:
                self.metrics.record_health_probe(target.name, healthy)

            if healthy:
                self.logger.info(f"{target.name} is ready ({elapsed:.1f}s)")
                if self.metrics:
                    self.metrics.record_health_wait(target.name, elapsed)
                return elapsed

            remaining = target.ready_timeout - elapsed
            if remaining <= 0:
                raise HealthCheckTimeoutError(
                    target.name, target.health_url, elapsed
                )

            delay = min(target.poll_interval, remaining)
            self.logger.debug(
                f"{target.name}: attempt {attempt} failed, waiting {delay:.1f}s..."
            )
            self._sleep(delay)
