"""Core switchyard module: errors and structured logging."""

from switchyard.core.exceptions import (
    CatalogUnavailableError,
    CircuitOpenError,
    CircularDependencyError,
    ErrorCode,
    ModelNotAvailableError,
    NoSuitableModelsError,
    StepExecutionError,
    SwitchyardError,
    UnschedulableStepError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from switchyard.core.structured_logger import TraceContext, configure_logging, get_logger

__all__ = [
    "CatalogUnavailableError",
    "CircuitOpenError",
    "CircularDependencyError",
    "configure_logging",
    "ErrorCode",
    "get_logger",
    "ModelNotAvailableError",
    "NoSuitableModelsError",
    "StepExecutionError",
    "SwitchyardError",
    "TraceContext",
    "UnschedulableStepError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
]
