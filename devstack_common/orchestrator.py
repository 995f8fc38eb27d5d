# devstack_common/orchestrator.py
# -*- coding: utf-8 -*-
"""
Executes a chain of configuration steps for one service.
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from devstack_setup.config_models import SYMBOLS_DEFAULT

from .api_client import is_simulated
from .errors import ContractViolation, DuplicateStepError, InvalidStepResultError
from .file_utils import CredentialsFile
from .metrics import BootstrapMetrics
from .step_models import ExecutionContext, StepDefinition, StepResult, StepStatus


class ChainStatus(str, Enum):
    """Overall outcome of a chain."""

    ALL_SUCCEEDED = "AllSucceeded"
    COMPLETED_WITH_OPTIONAL_FAILURES = "CompletedWithOptionalFailures"
    HALTED_ON_REQUIRED_FAILURE = "HaltedOnRequiredFailure"
    CANCELLED = "Cancelled"


class ChainReportEntry(BaseModel):
    """Outcome of one attempted step."""

    step_id: str
    status: StepStatus
    error: Optional[str] = None
    required: bool = False
    simulated: bool = False
    duration: float = 0.0


class ChainReport(BaseModel):
    """
    Ordered record of a chain run.

    ``entries`` holds exactly the steps that were attempted. Steps that never
    ran because a required step failed (or the run was cancelled) are listed
    in ``skipped_steps``.
    """

    chain_name: str
    entries: List[ChainReportEntry] = Field(default_factory=list)
    skipped_steps: List[str] = Field(default_factory=list)
    status: ChainStatus = ChainStatus.ALL_SUCCEEDED
    outputs: List[str] = Field(default_factory=list)

    @property
    def failed_steps(self) -> List[ChainReportEntry]:
        return [e for e in self.entries if e.status == StepStatus.FAILED]

    def statuses(self) -> List[StepStatus]:
        return [e.status for e in self.entries]


class StepRunner:
    """
    Runs the steps of a chain strictly in declaration order.

    Any error raised by a step action becomes a ``Failed`` result, except
    :class:`ContractViolation`, which always propagates to the caller.
    """

    def __init__(
        self,
        chain_name: str,
        credentials: Optional[CredentialsFile] = None,
        metrics: Optional[BootstrapMetrics] = None,
        cancel_event: Optional[threading.Event] = None,
        symbols: Optional[Dict[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initializes the StepRunner.

        Args:
            chain_name: Name of the chain, usually the service name.
            credentials: File that ``persist`` outputs are appended to.
            metrics: Optional metrics collector.
            cancel_event: Set externally to stop before the next step.
            symbols: Log symbols.
            logger: An optional logger instance.
        """
        self.chain_name = chain_name
        self.credentials = credentials
        self.metrics = metrics
        self.cancel_event = cancel_event
        self.symbols = symbols or SYMBOLS_DEFAULT
        self.logger = logger or logging.getLogger(__name__)

    def _validate(self, chain: Sequence[StepDefinition]) -> None:
        seen = set()
        for step in chain:
            if step.id in seen:
                raise DuplicateStepError(
                    f"Step id '{step.id}' is declared more than once",
                    chain_name=self.chain_name,
                    step_id=step.id,
                )
            seen.add(step.id)

    def _invoke(self, step: StepDefinition, context: ExecutionContext) -> StepResult:
        try:
            result: Any = step.action(context)
        except ContractViolation as e:
            raise e.with_location(self.chain_name, step.id)
        except Exception as e:
            self.logger.debug(
                f"Step '{step.id}' raised {type(e).__name__}", exc_info=True
            )
            return StepResult.failed(str(e) or type(e).__name__)

        if not isinstance(result, StepResult):
            raise InvalidStepResultError(
                f"Step action returned {type(result).__name__}, expected StepResult",
                chain_name=self.chain_name,
                step_id=step.id,
            )
        return result

    def run(
        self, chain: Sequence[StepDefinition], context: ExecutionContext
    ) -> ChainReport:
        """
        Execute ``chain`` against ``context``.

        Returns:
            The report of every attempted step and the chain status.

        Raises:
            ContractViolation: If the chain is malformed or a step reads an
                absent key or overwrites an existing one.
        """
        self._validate(chain)
        report = ChainReport(chain_name=self.chain_name)
        optional_failures = False
        self.logger.info(f"Running {len(chain)} step(s) for {self.chain_name}")

        for i, step in enumerate(chain):
            if self.cancel_event is not None and self.cancel_event.is_set():
                self.logger.warning(
                    f"Cancellation requested, not running remaining steps of {self.chain_name}"
                )
                report.status = ChainStatus.CANCELLED
                report.skipped_steps = [s.id for s in chain[i:]]
                break

            self.logger.info(
                f"--- Stage {i + 1}: Running step '{step.id}' ---"
            )
            start_time = time.monotonic()
            result = self._invoke(step, context)
            if result.status == StepStatus.SUCCESS:
                result = self._persist(step, result)
            duration = time.monotonic() - start_time

            simulated = any(is_simulated(v) for v in result.outputs.values())
            report.entries.append(
                ChainReportEntry(
                    step_id=step.id,
                    status=result.status,
                    error=result.error,
                    required=step.required,
                    simulated=simulated,
                    duration=round(duration, 3),
                )
            )
            if self.metrics:
                self.metrics.record_step(
                    self.chain_name, step.id, result.status.value, duration
                )

            if result.status == StepStatus.SUCCESS:
                context.merge(result.outputs, step_id=step.id)
                report.outputs.extend(result.outputs)
                self.logger.info(
                    f"{self.symbols.get('success', '✅')} Step '{step.id}' completed successfully."
                )
                continue

            if result.status == StepStatus.SKIPPED:
                self.logger.info(
                    f"{self.symbols.get('skip', '⏭️')} Step '{step.id}' skipped: {result.error or 'nothing to do'}"
                )
                continue

            if step.required:
                self.logger.error(
                    f"{self.symbols.get('critical', '🔥')} Required step '{step.id}' failed: {result.error}. "
                    f"Halting {self.chain_name} configuration."
                )
                report.status = ChainStatus.HALTED_ON_REQUIRED_FAILURE
                report.skipped_steps = [s.id for s in chain[i + 1:]]
                break

            optional_failures = True
            self.logger.warning(
                f"{self.symbols.get('warning', '⚠️')} Step '{step.id}' failed: {result.error}. "
                "Step is optional, continuing."
            )
        else:
            report.status = (
                ChainStatus.COMPLETED_WITH_OPTIONAL_FAILURES
                if optional_failures
                else ChainStatus.ALL_SUCCEEDED
            )

        if self.metrics:
            self.metrics.record_chain_status(self.chain_name, report.status.value)
        self.logger.info(
            f"{self.symbols.get('sparkles', '✨')} {self.chain_name} finished: {report.status.value}"
        )
        return report

    def _persist(self, step: StepDefinition, result: StepResult) -> StepResult:
        """
        Append the step's declared outputs to the credentials file.

        A write the file rejects (a value spanning lines, an I/O error)
        turns the step into a failure so the required/optional policy
        applies to it like any other step error.
        """
        if not step.persist:
            return result
        for key in step.persist:
            if key not in result.outputs:
                raise ContractViolation(
                    f"Step declares persisted output '{key}' but did not produce it",
                    chain_name=self.chain_name,
                    step_id=step.id,
                )
        if self.credentials is None:
            return result
        for key in step.persist:
            try:
                self.credentials.append(key, result.outputs[key])
            except (ValueError, OSError) as e:
                self.logger.error(f"Could not persist '{key}' from step '{step.id}': {e}")
                return StepResult.failed(f"could not persist '{key}': {e}")
        return result
