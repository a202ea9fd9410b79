"""
Workflow Types
==============

Workflows, their steps, the per-execution shared context and the result
record kept in the orchestrator's run log.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..core.types import ToolDeclaration


class ExecutionStrategy(str, Enum):
    """How a workflow picks and reconciles models for its steps"""

    SINGLE_MODEL = "single_model"        # one model handles every step
    SPECIALIZED = "specialized"          # fresh routing per step
    CONSENSUS = "consensus"              # several models vote per step
    PIPELINE = "pipeline"                # dependency-ordered steps
    REVIEW_VALIDATE = "review_validate"  # generate, then review with another model
    LOAD_BALANCE = "load_balance"        # round-robin over the model pool

    def __str__(self) -> str:
        return self.value


class StepKind(str, Enum):
    TOOL_EXECUTION = "tool_execution"
    MODEL_GENERATION = "model_generation"
    VALIDATION = "validation"
    AGGREGATION = "aggregation"

    def __str__(self) -> str:
        return self.value


class WorkflowStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass
class ModelSelectionCriteria:
    preferred_models: list[str] = field(default_factory=list)
    excluded_models: list[str] = field(default_factory=list)
    required_capabilities: list[str] = field(default_factory=list)
    task_type: str | None = None  # coding, reasoning, creative, ...
    min_performance_score: float | None = None  # 0-10 step score


@dataclass
class ValidationRule:
    type: str  # format | content | schema | consensus
    criteria: Any = None
    threshold: float | None = None


@dataclass
class WorkflowStep:
    id: str
    name: str
    kind: StepKind
    selection_criteria: ModelSelectionCriteria | None = None
    dependencies: list[str] = field(default_factory=list)
    tools: list[ToolDeclaration] = field(default_factory=list)
    prompt: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
    validation_rules: list[ValidationRule] = field(default_factory=list)


@dataclass
class Workflow:
    """A registered multi-model workflow; treated as read-only once registered"""

    id: str
    name: str
    strategy: ExecutionStrategy
    steps: list[WorkflowStep]
    description: str = ""
    stop_on_failure: bool = True  # False records step errors and keeps going
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_step(self, step_id: str) -> WorkflowStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass
class SharedWorkflowContext:
    """Scratch state threaded through one execution"""

    workflow_id: str
    current_step: str = ""
    previous_results: dict[str, Any] = field(default_factory=dict)
    summary: str = ""
    shared_memory: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelPerformanceMetrics:
    """Per-model tally for one execution"""

    model_name: str
    tasks_executed: int = 0
    successes: int = 0
    total_latency_ms: float = 0.0
    errors: list[str] = field(default_factory=list)

    def record(self, latency_ms: float, error: str | None = None) -> None:
        self.tasks_executed += 1
        self.total_latency_ms += latency_ms
        if error is None:
            self.successes += 1
        else:
            self.errors.append(error)

    @property
    def average_latency(self) -> float:
        return self.total_latency_ms / self.tasks_executed if self.tasks_executed else 0.0

    @property
    def success_rate(self) -> float:
        return self.successes / self.tasks_executed if self.tasks_executed else 0.0


@dataclass
class ExecutionResult:
    workflow_id: str
    success: bool
    results: dict[str, Any]
    model_performance: dict[str, ModelPerformanceMetrics]
    execution_time_ms: float
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    strategy_used: ExecutionStrategy | None = None
    attempts: int = 1

    @property
    def status(self) -> WorkflowStatus:
        return WorkflowStatus.COMPLETED if self.success else WorkflowStatus.FAILED
