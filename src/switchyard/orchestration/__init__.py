"""
Switchyard Orchestration

Multi-step, multi-model workflows executed under one of six strategies,
wrapped in retry, circuit-breaker and fallback handling.
"""

from switchyard.orchestration.builtin_workflows import builtin_workflows
from switchyard.orchestration.circuit_breaker import CircuitBreaker, CircuitState
from switchyard.orchestration.models import (
    ExecutionResult,
    ExecutionStrategy,
    ModelPerformanceMetrics,
    ModelSelectionCriteria,
    SharedWorkflowContext,
    StepKind,
    ValidationRule,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
)
from switchyard.orchestration.orchestrator import MultiModelOrchestrator, topological_order
from switchyard.orchestration.recovery import RecoveryResult, RecoveryStrategy, execute_with_recovery
from switchyard.orchestration.tools import FunctionToolExecutor, ToolExecutor

__all__ = [
    "builtin_workflows",
    "CircuitBreaker",
    "CircuitState",
    "execute_with_recovery",
    "ExecutionResult",
    "ExecutionStrategy",
    "FunctionToolExecutor",
    "ModelPerformanceMetrics",
    "ModelSelectionCriteria",
    "MultiModelOrchestrator",
    "RecoveryResult",
    "RecoveryStrategy",
    "SharedWorkflowContext",
    "StepKind",
    "ToolExecutor",
    "topological_order",
    "ValidationRule",
    "Workflow",
    "WorkflowStatus",
    "WorkflowStep",
]
