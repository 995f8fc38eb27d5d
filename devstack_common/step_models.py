# devstack_common/step_models.py
# -*- coding: utf-8 -*-
"""
Data types shared by configuration steps and the step runner.
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import DuplicateOutputKeyError, MissingContextKeyError


class StepStatus(str, Enum):
    """Terminal state of a single step."""

    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"


class StepResult(BaseModel):
    """What a step action returns to the runner."""
    model_config = ConfigDict(frozen=True)

    status: StepStatus
    outputs: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def success(cls, **outputs: Any) -> "StepResult":
        return cls(status=StepStatus.SUCCESS, outputs=outputs)

    @classmethod
    def failed(cls, error: str) -> "StepResult":
        return cls(status=StepStatus.FAILED, error=error)

    @classmethod
    def skipped(cls, reason: Optional[str] = None) -> "StepResult":
        return cls(status=StepStatus.SKIPPED, error=reason)


class StepDefinition(BaseModel):
    """
    A named unit of configuration work.

    ``required`` steps halt their chain on failure; optional ones are logged
    and the chain moves on. Output keys listed in ``persist`` are appended to
    the run's credentials file when the step succeeds.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    action: Callable[..., Any]
    required: bool = False
    description: str = ""
    persist: Tuple[str, ...] = ()


class ExecutionContext:
    """
    Per-chain store of step outputs.

    Keys are write-once. Reading a key that no earlier step produced raises
    :class:`MissingContextKeyError` instead of returning a default, because
    it means the chain was declared in the wrong order.
    """

    def __init__(
        self, chain_name: str, initial: Optional[Mapping[str, Any]] = None
    ):
        self.chain_name = chain_name
        self._values: Dict[str, Any] = {}
        if initial:
            self.merge(initial)

    def __getitem__(self, key: str) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise MissingContextKeyError(key, self.chain_name) from None

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ExecutionContext({self.chain_name!r}, keys={sorted(self._values)})"

    def require(self, *keys: str) -> Tuple[Any, ...]:
        """Read several keys at once; fails on the first absent one."""
        return tuple(self[key] for key in keys)

    def keys(self):
        return self._values.keys()

    def as_dict(self) -> Dict[str, Any]:
        """A copy of the current values."""
        return dict(self._values)

    def merge(
        self, outputs: Mapping[str, Any], step_id: Optional[str] = None
    ) -> None:
        """
        Add a step's outputs. Only the owning StepRunner calls this.

        Either every key is added or none is.

        Raises:
            DuplicateOutputKeyError: If any key is already present.
        """
        for key in outputs:
            if key in self._values:
                raise DuplicateOutputKeyError(
                    key, chain_name=self.chain_name, step_id=step_id
                )
        self._values.update(outputs)
