"""Tests for the structured exception hierarchy."""

import pytest

from switchyard.core.exceptions import (
    CatalogUnavailableError,
    CircuitOpenError,
    CircularDependencyError,
    ErrorCode,
    NoSuitableModelsError,
    StepExecutionError,
    SwitchyardError,
    UnschedulableStepError,
    WorkflowNotFoundError,
)


class TestErrorCodes:
    @pytest.mark.parametrize(
        "error,code",
        [
            (CatalogUnavailableError("down"), ErrorCode.CATALOG_UNAVAILABLE),
            (NoSuitableModelsError("none"), ErrorCode.NO_SUITABLE_MODELS),
            (StepExecutionError("s1", "boom"), ErrorCode.STEP_EXECUTION_FAILED),
            (UnschedulableStepError("s1", "no model"), ErrorCode.STEP_UNSCHEDULABLE),
            (CircularDependencyError("X"), ErrorCode.CIRCULAR_DEPENDENCY),
            (WorkflowNotFoundError("wf"), ErrorCode.WORKFLOW_NOT_FOUND),
            (CircuitOpenError("workflow.wf", "circuit_open_wait_30s"), ErrorCode.CIRCUIT_OPEN),
        ],
    )
    def test_each_error_carries_its_code(self, error, code):
        assert isinstance(error, SwitchyardError)
        assert error.error_code == code

    def test_to_dict(self):
        error = CircuitOpenError("workflow.wf", "circuit_open_wait_30s")
        assert error.to_dict() == {
            "error_type": "CircuitOpenError",
            "error_code": 4003,
            "message": "Circuit breaker is open for workflow.wf (circuit_open_wait_30s)",
            "details": {"operation": "workflow.wf", "reason": "circuit_open_wait_30s"},
        }

    def test_user_message(self):
        assert WorkflowNotFoundError("wf").user_message() == "Error 1002: Workflow not found"

    def test_step_errors_keep_step_id(self):
        assert StepExecutionError("draft", "failed").step_id == "draft"
        assert CircularDependencyError("X").step_id == "X"
        assert str(CircularDependencyError("X")) == "Circular dependency detected involving X"
