"""
Custom Exceptions for Switchyard
================================

Structured error handling lets callers react to a failure by type rather than
by parsing strings.

Error Codes:
- 1xxx: Client errors (bad workflow definitions, unknown ids)
- 3xxx: Resource errors (catalog down, no model fits, model missing)
- 4xxx: Execution errors (step failures, unschedulable steps, open circuits)
- 5xxx: System errors (internal, unexpected)
"""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Structured error codes for user-friendly messages"""

    # 1xxx: Client Errors
    VALIDATION_ERROR = 1001
    WORKFLOW_NOT_FOUND = 1002
    CIRCULAR_DEPENDENCY = 1003

    # 3xxx: Resource Errors
    CATALOG_UNAVAILABLE = 3001
    NO_SUITABLE_MODELS = 3002
    MODEL_NOT_AVAILABLE = 3003

    # 4xxx: Execution Errors
    STEP_EXECUTION_FAILED = 4001
    STEP_UNSCHEDULABLE = 4002
    CIRCUIT_OPEN = 4003

    # 5xxx: System Errors
    INTERNAL_ERROR = 5001
    CONFIGURATION_ERROR = 5003


class SwitchyardError(Exception):
    """Base exception for all Switchyard errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            'error_type': self.__class__.__name__,
            'error_code': int(self.error_code),
            'message': self.message,
            'details': self.details
        }

    def user_message(self) -> str:
        """Get user-friendly error message based on error code"""
        code_messages = {
            ErrorCode.VALIDATION_ERROR: "Invalid workflow definition",
            ErrorCode.WORKFLOW_NOT_FOUND: "Workflow not found",
            ErrorCode.CIRCULAR_DEPENDENCY: "Workflow steps depend on each other in a cycle",
            ErrorCode.CATALOG_UNAVAILABLE: "Model catalog unavailable",
            ErrorCode.NO_SUITABLE_MODELS: "No model satisfies the requested constraints",
            ErrorCode.MODEL_NOT_AVAILABLE: "AI model not available",
            ErrorCode.STEP_EXECUTION_FAILED: "Workflow step failed",
            ErrorCode.STEP_UNSCHEDULABLE: "No model can run this workflow step",
            ErrorCode.CIRCUIT_OPEN: "Operation temporarily disabled after repeated failures",
            ErrorCode.INTERNAL_ERROR: "Internal error",
            ErrorCode.CONFIGURATION_ERROR: "Configuration error",
        }
        return f"Error {self.error_code}: {code_messages.get(self.error_code, self.message)}"


class CatalogUnavailableError(SwitchyardError):
    """Raised when the candidate catalog cannot be read (routing stage 1)"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CATALOG_UNAVAILABLE, details)


class NoSuitableModelsError(SwitchyardError):
    """Raised when filtering leaves no candidate to select from"""

    def __init__(self, message: str, filters_applied: list[str] | None = None,
                 details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.NO_SUITABLE_MODELS, details)
        self.filters_applied = filters_applied or []


class ModelNotAvailableError(SwitchyardError):
    """Raised when a selected model has no execution handle"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.MODEL_NOT_AVAILABLE, details)


class StepExecutionError(SwitchyardError):
    """Raised when a workflow step fails"""

    def __init__(self, step_id: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.STEP_EXECUTION_FAILED, details)
        self.step_id = step_id


class UnschedulableStepError(SwitchyardError):
    """Raised when no model in the load-balancing pool is eligible for a step"""

    def __init__(self, step_id: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.STEP_UNSCHEDULABLE, details)
        self.step_id = step_id


class CircularDependencyError(SwitchyardError):
    """Raised when pipeline steps form a dependency cycle"""

    def __init__(self, step_id: str, details: dict[str, Any] | None = None):
        super().__init__(
            f"Circular dependency detected involving {step_id}",
            ErrorCode.CIRCULAR_DEPENDENCY,
            details,
        )
        self.step_id = step_id


class WorkflowValidationError(SwitchyardError):
    """Raised when a workflow definition is malformed"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class WorkflowNotFoundError(SwitchyardError):
    """Raised when executing a workflow id that was never registered"""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow {workflow_id} not found", ErrorCode.WORKFLOW_NOT_FOUND)
        self.workflow_id = workflow_id


class CircuitOpenError(SwitchyardError):
    """Raised when the circuit breaker refuses an operation"""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Circuit breaker is open for {operation} ({reason})",
            ErrorCode.CIRCUIT_OPEN,
            {'operation': operation, 'reason': reason},
        )
        self.operation = operation
