# devstack_common/errors.py
# -*- coding: utf-8 -*-
"""
Exception hierarchy for the stack bootstrap.

Runtime failures (unhealthy services, API errors) are recovered by the
caller. Contract violations indicate a badly composed chain and are never
recovered: they must surface with the chain name and step id attached.
"""

from typing import Any, Optional


class BootstrapError(Exception):
    """Base class for all bootstrap failures."""


class ConfigurationError(BootstrapError):
    """The configuration file could not be read or validated."""


class BootstrapCancelled(BootstrapError):
    """Raised when the external cancellation signal was set."""


class HealthCheckTimeoutError(BootstrapError, TimeoutError):
    """A service did not become healthy within its ready timeout."""

    def __init__(self, target_name: str, health_url: str, waited: float):
        self.target_name = target_name
        self.health_url = health_url
        self.waited = waited
        super().__init__(
            f"Service '{target_name}' not healthy at {health_url} "
            f"after {waited:.1f}s"
        )


class ApiError(BootstrapError):
    """
    A non-success HTTP response or a transport failure.

    ``status`` is None when no response was received at all, in which case
    ``cause`` holds the underlying transport exception.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        cause: Optional[BaseException] = None,
    ):
        self.status = status
        self.body = body
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{base} (HTTP {self.status})"
        if self.cause is not None:
            return f"{base} ({self.cause})"
        return base


class ContractViolation(BootstrapError):
    """A chain was composed incorrectly. Always fatal."""

    def __init__(
        self,
        message: str,
        chain_name: Optional[str] = None,
        step_id: Optional[str] = None,
    ):
        self.message = message
        self.chain_name = chain_name
        self.step_id = step_id
        super().__init__(message)

    def with_location(
        self, chain_name: Optional[str], step_id: Optional[str]
    ) -> "ContractViolation":
        """Fill in chain/step details that were unknown where it was raised."""
        if self.chain_name is None:
            self.chain_name = chain_name
        if self.step_id is None:
            self.step_id = step_id
        return self

    def __str__(self) -> str:
        location = []
        if self.chain_name:
            location.append(f"chain '{self.chain_name}'")
        if self.step_id:
            location.append(f"step '{self.step_id}'")
        if location:
            return f"{self.message} [{', '.join(location)}]"
        return self.message


class MissingContextKeyError(ContractViolation):
    """A step read a context key that no earlier step produced."""

    def __init__(self, key: str, chain_name: Optional[str] = None):
        self.key = key
        super().__init__(
            f"Context key '{key}' was read before any step produced it",
            chain_name=chain_name,
        )


class DuplicateOutputKeyError(ContractViolation):
    """Two steps claimed the same context key."""

    def __init__(
        self,
        key: str,
        chain_name: Optional[str] = None,
        step_id: Optional[str] = None,
    ):
        self.key = key
        super().__init__(
            f"Context key '{key}' is already set and cannot be overwritten",
            chain_name=chain_name,
            step_id=step_id,
        )


class DuplicateStepError(ContractViolation):
    """A chain declared the same step id twice."""


class InvalidStepResultError(ContractViolation):
    """A step action returned something other than a StepResult."""
