# tests/common/test_step_models.py
# -*- coding: utf-8 -*-
"""
Tests for step definitions, results and the execution context.
"""

import pytest
from pydantic import ValidationError

from devstack_common.errors import (
    ContractViolation,
    DuplicateOutputKeyError,
    MissingContextKeyError,
)
from devstack_common.step_models import (
    ExecutionContext,
    StepDefinition,
    StepResult,
    StepStatus,
)


class TestExecutionContext:
    """Tests for ExecutionContext."""

    def test_missing_key_is_a_contract_violation(self):
        context = ExecutionContext("gitlab")

        with pytest.raises(MissingContextKeyError) as excinfo:
            context["project_id"]

        assert isinstance(excinfo.value, ContractViolation)
        assert excinfo.value.key == "project_id"
        assert "project_id" in str(excinfo.value)
        assert "chain 'gitlab'" in str(excinfo.value)

    def test_missing_key_is_not_a_key_error(self):
        """Step code catching KeyError must not hide a contract violation."""
        context = ExecutionContext("gitlab")

        with pytest.raises(MissingContextKeyError):
            try:
                context["token"]
            except KeyError:
                pytest.fail("MissingContextKeyError was caught as KeyError")

    def test_merge_is_write_once(self):
        context = ExecutionContext("vault", initial={"token": "a"})

        with pytest.raises(DuplicateOutputKeyError) as excinfo:
            context.merge({"token": "b"}, step_id="resolve_root_token")

        assert excinfo.value.step_id == "resolve_root_token"
        assert context["token"] == "a"

    def test_merge_is_all_or_nothing(self):
        context = ExecutionContext("nexus", initial={"password": "x"})

        with pytest.raises(DuplicateOutputKeyError):
            context.merge({"user": "dev", "password": "y"})

        assert "user" not in context
        assert len(context) == 1

    def test_require_reads_several_keys(self):
        context = ExecutionContext("jenkins", initial={"crumb": "c", "field": "f"})

        assert context.require("field", "crumb") == ("f", "c")
        assert sorted(context) == ["crumb", "field"]
        assert context.as_dict() == {"crumb": "c", "field": "f"}


class TestStepResult:
    def test_helpers(self):
        assert StepResult.success(token="t").outputs == {"token": "t"}
        assert StepResult.success().status == StepStatus.SUCCESS

        failed = StepResult.failed("boom")
        assert failed.status == StepStatus.FAILED
        assert failed.error == "boom"
        assert failed.outputs == {}

        assert StepResult.skipped("nothing to do").status == StepStatus.SKIPPED

    def test_status_values(self):
        assert [s.value for s in StepStatus] == ["Success", "Failed", "Skipped"]


class TestStepDefinition:
    def test_frozen(self):
        step = StepDefinition(id="create_token", action=lambda ctx: StepResult.success())

        with pytest.raises(ValidationError):
            step.required = True

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            StepDefinition(id="", action=lambda ctx: StepResult.success())

    def test_defaults(self):
        step = StepDefinition(id="verify", action=lambda ctx: StepResult.success())

        assert step.required is False
        assert step.persist == ()
