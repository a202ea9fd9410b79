"""
Multi-Model Orchestrator - runs registered workflows across several models

Each execution owns a _WorkflowRun (context, results, per-model tallies);
the workflow registry, the active set and the execution history belong to
the orchestrator instance. Executions are wrapped in retry + circuit breaker
+ named fallbacks and always come back as an ExecutionResult.
"""

import asyncio
import copy
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from ..config.settings import OrchestrationSettings
from ..core.exceptions import (
    CircularDependencyError,
    ModelNotAvailableError,
    StepExecutionError,
    SwitchyardError,
    UnschedulableStepError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from ..core.structured_logger import StructuredLogger, TraceContext
from ..core.types import ToolCall, ToolDeclaration, ToolResult
from ..observability.metrics import MetricsCollector
from ..routing.catalog import CandidateCatalog, CandidateModel, TaskCategory
from ..routing.intelligent_router import IntelligentRouter, RoutingConfig
from ..routing.model_backends import ModelHandle, ModelProvider
from .builtin_workflows import builtin_workflows
from .circuit_breaker import CircuitBreaker
from .models import (
    ExecutionResult,
    ExecutionStrategy,
    ModelPerformanceMetrics,
    ModelSelectionCriteria,
    SharedWorkflowContext,
    StepKind,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
)
from .recovery import NON_RETRYABLE_ERRORS, RecoveryStrategy, execute_with_recovery
from .tools import ToolExecutor

logger = logging.getLogger(__name__)

_CAPABILITY_FLAGS = ("tool_calling", "streaming", "image_input")
_NEUTRAL_REVIEW = {"score": 5, "feedback": "Unable to parse review response", "approved": True}
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def topological_order(steps: list[WorkflowStep]) -> list[str]:
    """
    Dependency-first order of step ids (depth-first, declaration order).

    Raises:
        CircularDependencyError: naming the step at which a cycle closes
    """
    graph = {step.id: list(step.dependencies) for step in steps}
    visited: set[str] = set()
    visiting: set[str] = set()
    order: list[str] = []

    def visit(node: str) -> None:
        if node in visiting:
            raise CircularDependencyError(node)
        if node in visited:
            return
        visiting.add(node)
        for dependency in graph.get(node, []):
            visit(dependency)
        visiting.discard(node)
        visited.add(node)
        order.append(node)

    for node in graph:
        visit(node)
    return order


def _snippet(result: Any, length: int) -> str:
    text = result if isinstance(result, str) else json.dumps(result, default=str)
    return text[:length]


def _result_key(result: Any) -> str:
    """Structural-equality key for consensus voting"""
    return json.dumps(result, sort_keys=True, default=str)


@dataclass
class _PooledModel:
    candidate: CandidateModel | None
    handle: ModelHandle

    @property
    def name(self) -> str:
        return self.handle.name


@dataclass
class _WorkflowRun:
    workflow: Workflow
    context: SharedWorkflowContext
    execution_context: dict[str, Any]
    results: dict[str, Any] = field(default_factory=dict)
    performance: dict[str, ModelPerformanceMetrics] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.PENDING
    round_robin_index: int = 0
    started: float = field(default_factory=time.perf_counter)


class MultiModelOrchestrator:
    """Executes multi-step workflows under one of six coordination strategies"""

    def __init__(
        self,
        catalog: CandidateCatalog,
        router: IntelligentRouter,
        provider: ModelProvider,
        tool_executor: ToolExecutor | None = None,
        settings: OrchestrationSettings | None = None,
        metrics: MetricsCollector | None = None,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self.catalog = catalog
        self.router = router
        self.provider = provider
        self.tool_executor = tool_executor
        self.settings = settings or OrchestrationSettings()
        self.metrics = metrics
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=self.settings.circuit_breaker_threshold,
            recovery_timeout=self.settings.circuit_breaker_timeout,
        )
        self.recovery_strategy = RecoveryStrategy.from_settings(self.settings)

        self._registry: dict[str, Workflow] = {}
        self._active: dict[str, Workflow] = {}
        self._history: dict[str, ExecutionResult] = {}
        self._slog = StructuredLogger("MultiModelOrchestrator", logger)

        if self.settings.register_builtin_workflows:
            for workflow in builtin_workflows():
                self.register(workflow)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, workflow: Workflow) -> None:
        """
        Validate and register *workflow*, replacing any with the same id.

        The orchestrator keeps its own copy; later changes to the caller's
        object do not affect registered runs.

        Raises:
            WorkflowValidationError: malformed definition
        """
        stored = copy.deepcopy(workflow)
        self._validate(stored)
        self._registry[stored.id] = stored
        logger.info(
            "Registered workflow %s (%s, %d steps)", stored.id, stored.strategy, len(stored.steps)
        )

    @staticmethod
    def _validate(workflow: Workflow) -> None:
        if not workflow.id:
            raise WorkflowValidationError("Workflow id must not be empty")
        try:
            workflow.strategy = ExecutionStrategy(workflow.strategy)
        except ValueError:
            raise WorkflowValidationError(
                f"Unsupported workflow strategy: {workflow.strategy}"
            ) from None
        if not workflow.steps:
            raise WorkflowValidationError(f"Workflow {workflow.id} has no steps")

        seen: set[str] = set()
        for step in workflow.steps:
            if step.id in seen:
                raise WorkflowValidationError(f"Duplicate step id {step.id} in workflow {workflow.id}")
            seen.add(step.id)
            try:
                step.kind = StepKind(step.kind)
            except ValueError:
                raise WorkflowValidationError(
                    f"Unsupported step type: {step.kind}", details={"step_id": step.id}
                ) from None

        for step in workflow.steps:
            for dependency in step.dependencies:
                if dependency not in seen:
                    raise WorkflowValidationError(
                        f"Step {step.id} depends on unknown step {dependency}",
                        details={"workflow_id": workflow.id, "step_id": step.id},
                    )

    def get_registered_workflows(self) -> list[Workflow]:
        return list(self._registry.values())

    def get_execution_history(self) -> dict[str, ExecutionResult]:
        """Last result per workflow id"""
        return dict(self._history)

    def get_active_workflows(self) -> list[Workflow]:
        return list(self._active.values())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        workflow_id: str,
        initial_context: dict[str, Any] | None = None,
        execution_context: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """
        Execute a registered workflow.

        Step failures never escape: the returned ExecutionResult carries the
        error once retries and fallbacks are exhausted.

        Raises:
            WorkflowNotFoundError: *workflow_id* was never registered
        """
        workflow = self._registry.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        execution_context = execution_context or {}
        runs: list[_WorkflowRun] = []
        start = time.perf_counter()

        async def attempt(target: Workflow) -> ExecutionResult:
            run = self._new_run(target, initial_context, execution_context)
            runs.append(run)
            await self._run(run)
            return self._build_result(run, success=True)

        fallbacks: dict[str, Callable[[], Awaitable[ExecutionResult]]] = {
            "single_model_fallback": lambda: attempt(
                replace(workflow, strategy=ExecutionStrategy.SINGLE_MODEL)
            ),
            "simplified_workflow": lambda: attempt(
                replace(workflow, strategy=ExecutionStrategy.SINGLE_MODEL, stop_on_failure=False)
            ),
        }

        with TraceContext() as trace_id:
            self._active[trace_id] = workflow
            self._slog.info("Workflow started", workflow_id=workflow.id, strategy=str(workflow.strategy))
            try:
                recovery = await execute_with_recovery(
                    lambda: attempt(workflow),
                    f"workflow.{workflow.id}",
                    self.recovery_strategy,
                    circuit_breaker=self.circuit_breaker,
                    fallbacks=fallbacks,
                )
            finally:
                self._active.pop(trace_id, None)

            if recovery.success and recovery.data is not None:
                result = recovery.data
                if recovery.fallback_used:
                    result.warnings.append(
                        f"Completed via {recovery.fallback_used} after "
                        f"{recovery.attempts} failed attempt(s)"
                    )
            else:
                error = str(recovery.error) if recovery.error else "Workflow execution failed"
                if runs:
                    result = self._build_result(runs[-1], success=False, error=error)
                else:
                    result = ExecutionResult(
                        workflow_id=workflow.id,
                        success=False,
                        results={},
                        model_performance={},
                        execution_time_ms=0.0,
                        error=error,
                        strategy_used=workflow.strategy,
                    )

            result.attempts = len(runs)
            result.execution_time_ms = (time.perf_counter() - start) * 1000
            self._history[workflow.id] = result

            if self.metrics:
                self.metrics.record_workflow(
                    str(workflow.strategy), result.success, result.execution_time_ms / 1000
                )
            if result.success:
                self._slog.info(
                    "Workflow completed",
                    workflow_id=workflow.id,
                    strategy=str(result.strategy_used),
                    attempts=result.attempts,
                    execution_time_ms=round(result.execution_time_ms, 2),
                )
            else:
                self._slog.error(
                    "Workflow failed",
                    workflow_id=workflow.id,
                    attempts=result.attempts,
                    error=result.error,
                )
        return result

    def _new_run(
        self,
        workflow: Workflow,
        initial_context: dict[str, Any] | None,
        execution_context: dict[str, Any],
    ) -> _WorkflowRun:
        initial = dict(initial_context or {})
        initial.pop("workflow_id", None)
        initial.pop("current_step", None)
        context = SharedWorkflowContext(
            workflow_id=workflow.id,
            previous_results=dict(initial.pop("previous_results", None) or {}),
            summary=initial.pop("summary", None) or "",
            shared_memory=dict(initial.pop("shared_memory", None) or {}),
            metadata=dict(initial.pop("metadata", None) or {}),
        )
        context.metadata.update(initial)
        return _WorkflowRun(workflow=workflow, context=context, execution_context=execution_context)

    def _build_result(
        self, run: _WorkflowRun, success: bool, error: str | None = None
    ) -> ExecutionResult:
        return ExecutionResult(
            workflow_id=run.workflow.id,
            success=success,
            results=dict(run.results),
            model_performance=dict(run.performance),
            execution_time_ms=(time.perf_counter() - run.started) * 1000,
            error=error,
            warnings=list(run.warnings),
            strategy_used=run.workflow.strategy,
        )

    async def _run(self, run: _WorkflowRun) -> None:
        run.status = WorkflowStatus.RUNNING
        try:
            match run.workflow.strategy:
                case ExecutionStrategy.SINGLE_MODEL:
                    await self._execute_single_model(run)
                case ExecutionStrategy.SPECIALIZED:
                    await self._execute_specialized(run)
                case ExecutionStrategy.CONSENSUS:
                    await self._execute_consensus(run)
                case ExecutionStrategy.PIPELINE:
                    await self._execute_pipeline(run)
                case ExecutionStrategy.REVIEW_VALIDATE:
                    await self._execute_review_validate(run)
                case ExecutionStrategy.LOAD_BALANCE:
                    await self._execute_load_balance(run)
                case _:
                    raise WorkflowValidationError(
                        f"Unsupported workflow strategy: {run.workflow.strategy}"
                    )
        except Exception:
            run.status = WorkflowStatus.FAILED
            raise
        run.status = WorkflowStatus.COMPLETED

    async def _guarded(
        self, run: _WorkflowRun, step: WorkflowStep, work: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Run one step's work under the workflow's failure policy.

        With stop_on_failure the error propagates (wrapped in
        StepExecutionError unless already typed); otherwise an error marker
        becomes the step's result and a warning is recorded.
        """
        try:
            return await work()
        except NON_RETRYABLE_ERRORS:
            raise
        except Exception as e:
            if run.workflow.stop_on_failure:
                if isinstance(e, SwitchyardError):
                    raise
                raise StepExecutionError(step.id, f"Step {step.id} failed: {e}") from e
            logger.warning("Step %s failed, continuing: %s", step.id, e)
            run.warnings.append(f"Step {step.id} failed: {e}")
            return {"error": str(e), "step_id": step.id, "failed": True}

    @staticmethod
    def _store_result(run: _WorkflowRun, step: WorkflowStep, result: Any) -> None:
        run.results[step.id] = result
        run.context.previous_results[step.id] = result

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _execute_single_model(self, run: _WorkflowRun) -> None:
        decision = await self.router.route_to_optimal_model(RoutingConfig(task=TaskCategory.GENERAL))
        model = await self._handle_for(decision.selected_model.name)

        for step in run.workflow.steps:
            run.context.current_step = step.id
            result = await self._guarded(
                run, step, lambda: self._execute_step(run, step, model, run.context)
            )
            self._store_result(run, step, result)

    async def _execute_specialized(self, run: _WorkflowRun) -> None:
        for step in run.workflow.steps:
            run.context.current_step = step.id

            async def work() -> Any:
                model = await self._model_for_step(step)
                return await self._execute_step(run, step, model, run.context)

            result = await self._guarded(run, step, work)
            self._store_result(run, step, result)
            self._update_shared_context(run.context, step, result)

    async def _execute_consensus(self, run: _WorkflowRun) -> None:
        for step in run.workflow.steps:
            run.context.current_step = step.id

            async def work() -> Any:
                if step.kind == StepKind.AGGREGATION:
                    return await self._execute_step(run, step, None, run.context)

                models = await self._top_models_for_step(step, self.settings.consensus_models)
                if not models:
                    raise UnschedulableStepError(step.id, f"No eligible models for step {step.id}")

                outcomes = await asyncio.gather(
                    *(self._execute_step(run, step, model, run.context) for model in models),
                    return_exceptions=True,
                )
                contributions = []
                for model, outcome in zip(models, outcomes):
                    if isinstance(outcome, BaseException):
                        logger.warning("Model %s failed on step %s: %s", model.name, step.id, outcome)
                        continue
                    contributions.append((model.name, outcome))
                if not contributions:
                    raise StepExecutionError(
                        step.id, f"All {len(models)} consensus model(s) failed on step {step.id}"
                    )
                return self._build_consensus(contributions)

            result = await self._guarded(run, step, work)
            self._store_result(run, step, result)

    async def _execute_pipeline(self, run: _WorkflowRun) -> None:
        order = topological_order(run.workflow.steps)

        for step_id in order:
            step = run.workflow.get_step(step_id)
            if step is None:
                continue
            run.context.current_step = step.id
            await self._wait_for_dependencies(step, run.results)

            async def work() -> Any:
                model = await self._model_for_step(step)
                context = self._enrich_step_context(step, run.context)
                return await self._execute_step(run, step, model, context)

            result = await self._guarded(run, step, work)
            self._store_result(run, step, result)

    async def _execute_review_validate(self, run: _WorkflowRun) -> None:
        for step in run.workflow.steps:
            run.context.current_step = step.id

            async def work() -> Any:
                if step.kind == StepKind.AGGREGATION:
                    return await self._execute_step(run, step, None, run.context)

                generator = await self._select_model_for_step(step)
                initial = await self._execute_step(run, step, generator, run.context)
                reviewer = await self._select_reviewer(generator.name, step)
                review = await self._review_step_result(run, step, initial, reviewer)
                return {
                    "result": initial,
                    "review": review,
                    "quality": review["score"],
                    "validated": review["approved"],
                }

            result = await self._guarded(run, step, work)
            self._store_result(run, step, result)

    async def _execute_load_balance(self, run: _WorkflowRun) -> None:
        pool = await self._model_pool()

        for step in run.workflow.steps:
            run.context.current_step = step.id

            async def work() -> Any:
                model = None
                if step.kind != StepKind.AGGREGATION:
                    model = self._next_round_robin(run, pool, step)
                return await self._execute_step(run, step, model, run.context)

            result = await self._guarded(run, step, work)
            self._store_result(run, step, result)

    def _next_round_robin(
        self, run: _WorkflowRun, pool: list[_PooledModel], step: WorkflowStep
    ) -> ModelHandle:
        for _ in range(len(pool)):
            pooled = pool[run.round_robin_index % len(pool)]
            run.round_robin_index += 1
            if self._is_eligible(pooled, step):
                return pooled.handle
        raise UnschedulableStepError(step.id, f"No suitable model found for step {step.id}")

    async def _wait_for_dependencies(self, step: WorkflowStep, results: dict[str, Any]) -> None:
        for dependency in step.dependencies:
            while dependency not in results:
                await asyncio.sleep(self.settings.dependency_poll_interval)

    @staticmethod
    def _build_consensus(contributions: list[tuple[str, Any]]) -> Any:
        """Most frequent result by structural equality; ties go to the first seen."""
        if len(contributions) == 1:
            return contributions[0][1]

        tally: dict[str, list[Any]] = {}
        for _, result in contributions:
            entry = tally.setdefault(_result_key(result), [0, result])
            entry[0] += 1

        best_count, best_result = 0, contributions[0][1]
        for count, result in tally.values():
            if count > best_count:
                best_count, best_result = count, result
        return best_result

    # ------------------------------------------------------------------
    # Step kinds
    # ------------------------------------------------------------------

    async def _execute_step(
        self,
        run: _WorkflowRun,
        step: WorkflowStep,
        model: ModelHandle | None,
        context: SharedWorkflowContext,
    ) -> Any:
        logger.debug("Executing step %s (%s) on %s", step.id, step.kind, model.name if model else "local")
        if step.kind != StepKind.AGGREGATION and model is None:
            raise ModelNotAvailableError(f"No model selected for step {step.id}")

        match step.kind:
            case StepKind.TOOL_EXECUTION:
                return await self._execute_tool_step(run, step, model, context)
            case StepKind.MODEL_GENERATION:
                return await self._execute_generation_step(run, step, model, context)
            case StepKind.VALIDATION:
                return await self._execute_validation_step(run, step, model, context)
            case StepKind.AGGREGATION:
                return self._execute_aggregation_step(step, context)
            case _:
                raise WorkflowValidationError(f"Unsupported step type: {step.kind}")

    async def _execute_tool_step(
        self,
        run: _WorkflowRun,
        step: WorkflowStep,
        model: ModelHandle,
        context: SharedWorkflowContext,
    ) -> dict[str, Any]:
        if not step.tools:
            raise StepExecutionError(step.id, f"Tool execution step {step.id} has no tools defined")
        if self.tool_executor is None:
            raise StepExecutionError(step.id, f"No tool executor configured for step {step.id}")

        calls: list[ToolCall] = []
        for tool in step.tools:
            generation = await self._timed(
                run,
                model,
                model.generate_with_tools(self._tool_prompt(tool, context), [tool], step.options),
            )
            calls.extend(generation.tool_calls)

        outcomes = await asyncio.gather(
            *(self._run_tool_call(call, run.execution_context) for call in calls)
        )
        results: dict[str, Any] = {}
        for call, outcome in zip(calls, outcomes):
            key = call.name if call.name not in results else f"{call.name}_{call.id}"
            results[key] = {"content": outcome.content, "is_error": outcome.is_error}
        return results

    async def _run_tool_call(self, call: ToolCall, execution_context: dict[str, Any]) -> ToolResult:
        try:
            return await self.tool_executor.execute(call, execution_context)
        except Exception as e:
            logger.warning("Tool call %s (%s) failed: %s", call.id, call.name, e)
            return ToolResult(call.id, str(e), is_error=True)

    async def _execute_generation_step(
        self,
        run: _WorkflowRun,
        step: WorkflowStep,
        model: ModelHandle,
        context: SharedWorkflowContext,
    ) -> str:
        if not step.prompt:
            raise StepExecutionError(step.id, f"Generation step {step.id} has no prompt defined")
        prompt = self._enhance_prompt_with_context(step.prompt, context)
        return await self._timed(run, model, model.generate_text(prompt, step.options))

    async def _execute_validation_step(
        self,
        run: _WorkflowRun,
        step: WorkflowStep,
        model: ModelHandle,
        context: SharedWorkflowContext,
    ) -> dict[str, Any]:
        if not step.validation_rules:
            return {"valid": True, "feedback": ""}

        prompt = self._validation_prompt(step, context.previous_results)
        response = await self._timed(
            run, model, model.generate_text(prompt, {"temperature": 0.3, "max_tokens": 200})
        )
        return self._parse_validation_response(response)

    def _execute_aggregation_step(
        self, step: WorkflowStep, context: SharedWorkflowContext
    ) -> dict[str, Any]:
        gathered = [
            context.previous_results[dependency]
            for dependency in step.dependencies
            if dependency in context.previous_results
        ]
        return {
            "aggregated_results": gathered,
            "summary": self._generate_summary(gathered),
            "metadata": {
                "total_steps": len(gathered),
                "timestamp": datetime.now(tz=UTC).isoformat(),
            },
        }

    async def _timed(self, run: _WorkflowRun, model: ModelHandle, call: Awaitable[Any]) -> Any:
        start = time.perf_counter()
        try:
            result = await call
        except Exception as e:
            self._record_call(run, model.name, start, str(e))
            raise
        self._record_call(run, model.name, start)
        return result

    def _record_call(
        self, run: _WorkflowRun, model_name: str, start: float, error: str | None = None
    ) -> None:
        latency_ms = (time.perf_counter() - start) * 1000
        tally = run.performance.setdefault(model_name, ModelPerformanceMetrics(model_name))
        tally.record(latency_ms, error)
        if self.metrics:
            self.metrics.record_model_call(model_name, error is None, latency_ms / 1000)

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    async def _model_for_step(self, step: WorkflowStep) -> ModelHandle | None:
        if step.kind == StepKind.AGGREGATION:
            return None
        return await self._select_model_for_step(step)

    async def _select_model_for_step(self, step: WorkflowStep) -> ModelHandle:
        """Preferred models first, then the router's ranking for the step's task"""
        criteria = step.selection_criteria or ModelSelectionCriteria()

        if criteria.preferred_models:
            snapshot = {c.name: c for c in await self.catalog.list_candidates()}
            for name in criteria.preferred_models:
                handle = await self.provider.get_model(name)
                if handle and self._is_eligible(_PooledModel(snapshot.get(name), handle), step):
                    return handle

        decision = await self.router.route_to_optimal_model(
            RoutingConfig(task=self._task_for(criteria))
        )
        for candidate in [decision.selected_model, *decision.alternatives]:
            handle = await self.provider.get_model(candidate.name)
            if handle and self._is_eligible(_PooledModel(candidate, handle), step):
                return handle

        raise ModelNotAvailableError(
            f"Selected model {decision.selected_model.name} not available",
            details={"step_id": step.id, "model": decision.selected_model.name},
        )

    async def _select_reviewer(self, generator_name: str, step: WorkflowStep) -> ModelHandle:
        pool = await self._model_pool()
        for pooled in pool:
            if pooled.name != generator_name and self._is_eligible(pooled, step):
                return pooled.handle
        if pool:
            return pool[0].handle
        raise ModelNotAvailableError("No reviewer model available", details={"step_id": step.id})

    async def _top_models_for_step(self, step: WorkflowStep, count: int) -> list[ModelHandle]:
        eligible = [m for m in await self._model_pool() if self._is_eligible(m, step)]
        ranked = sorted(eligible, key=lambda m: self._score_model_for_step(m, step), reverse=True)
        return [m.handle for m in ranked[:count]]

    async def _model_pool(self) -> list[_PooledModel]:
        """Available catalog candidates that have an execution handle, in catalog order"""
        pool = []
        for candidate in await self.catalog.list_candidates():
            if not candidate.available:
                continue
            handle = await self.provider.get_model(candidate.name)
            if handle is not None:
                pool.append(_PooledModel(candidate, handle))
        return pool

    async def _handle_for(self, name: str) -> ModelHandle:
        handle = await self.provider.get_model(name)
        if handle is None:
            raise ModelNotAvailableError(f"Model {name} not available", details={"model": name})
        return handle

    def _is_eligible(self, pooled: _PooledModel, step: WorkflowStep) -> bool:
        criteria = step.selection_criteria
        if criteria is None:
            return True
        if pooled.name in criteria.excluded_models:
            return False
        if criteria.required_capabilities:
            capabilities = pooled.handle.get_capabilities()
            for capability in criteria.required_capabilities:
                # unknown capability names are not enforced
                if capability in _CAPABILITY_FLAGS and not capabilities.supports(capability):
                    return False
        if criteria.min_performance_score is not None:
            return self._score_model_for_step(pooled, step) >= criteria.min_performance_score
        return True

    @staticmethod
    def _score_model_for_step(pooled: _PooledModel, step: WorkflowStep) -> float:
        """0-10 step fit: base 5, plus task suitability and tool-calling bonuses"""
        score = 5.0
        criteria = step.selection_criteria
        if criteria and criteria.task_type and pooled.candidate:
            score += pooled.candidate.suitability(criteria.task_type) * 0.3
        if step.kind == StepKind.TOOL_EXECUTION and pooled.handle.get_capabilities().tool_calling:
            score += 2
        return min(score, 10.0)

    @staticmethod
    def _task_for(criteria: ModelSelectionCriteria) -> TaskCategory:
        try:
            return TaskCategory(criteria.task_type) if criteria.task_type else TaskCategory.GENERAL
        except ValueError:
            return TaskCategory.GENERAL

    # ------------------------------------------------------------------
    # Prompts and context
    # ------------------------------------------------------------------

    async def _review_step_result(
        self, run: _WorkflowRun, step: WorkflowStep, result: Any, reviewer: ModelHandle
    ) -> dict[str, Any]:
        prompt = (
            f'Please review the following result from step "{step.name}":\n\n'
            f"Result: {json.dumps(result, indent=2, default=str)}\n\n"
            "Provide a review with:\n"
            "1. A quality score from 1-10\n"
            "2. Specific feedback on accuracy and completeness\n"
            "3. Whether you approve this result (yes/no)\n\n"
            "Format your response as JSON with fields: score, feedback, approved"
        )
        response = await self._timed(
            run, reviewer, reviewer.generate_text(prompt, {"temperature": 0.3, "max_tokens": 300})
        )
        return self._parse_review(response)

    @staticmethod
    def _parse_review(response: str) -> dict[str, Any]:
        data: Any = None
        try:
            data = json.loads(response)
        except json.JSONDecodeError:
            match = _JSON_OBJECT_RE.search(response)
            if match:
                try:
                    data = json.loads(match.group(0))
                except json.JSONDecodeError:
                    data = None
        if not isinstance(data, dict):
            return dict(_NEUTRAL_REVIEW)

        approved = data.get("approved", True)
        if isinstance(approved, str):
            approved = approved.strip().lower() in ("yes", "true", "approved")
        return {
            "score": data.get("score", _NEUTRAL_REVIEW["score"]),
            "feedback": data.get("feedback", ""),
            "approved": bool(approved),
        }

    @staticmethod
    def _tool_prompt(tool: ToolDeclaration, context: SharedWorkflowContext) -> str:
        summary = context.summary or "No prior context available."
        return (
            f"You are part of a multi-model workflow: {context.workflow_id}\n\n"
            f"Context from previous steps: {summary}\n\n"
            f"Please use the {tool.name} tool to complete the current step. "
            f"The tool is described as: {tool.description}\n\n"
            "Use the tool appropriately based on the context and requirements."
        )

    @staticmethod
    def _enhance_prompt_with_context(prompt: str, context: SharedWorkflowContext) -> str:
        if context.summary:
            return f"{prompt}\n\nContext from previous workflow steps: {context.summary}"
        return prompt

    @staticmethod
    def _validation_prompt(step: WorkflowStep, results: dict[str, Any]) -> str:
        # without declared dependencies every prior result is judged
        ids = step.dependencies or list(results)
        relevant = "\n".join(
            f"{step_id}: {json.dumps(results.get(step_id), default=str)}" for step_id in ids
        )
        rules = "\n".join(
            f"- {rule.type}: {rule.criteria}"
            + (f" (threshold {rule.threshold})" if rule.threshold is not None else "")
            for rule in step.validation_rules
        )
        return (
            f'Please validate the following results from workflow step "{step.name}":\n\n'
            f"{relevant}\n\n"
            f"Validation rules:\n{rules}\n\n"
            "Evaluate for:\n"
            "1. Accuracy and correctness\n"
            "2. Completeness\n"
            "3. Relevance to the task\n\n"
            "Respond with: VALID or INVALID, followed by brief feedback."
        )

    @staticmethod
    def _parse_validation_response(response: str) -> dict[str, Any]:
        lines = response.strip().splitlines() or [""]
        first_line = lines[0].upper()
        return {
            "valid": "VALID" in first_line and "INVALID" not in first_line,
            "feedback": "\n".join(lines[1:]).strip(),
        }

    @staticmethod
    def _generate_summary(results: list[Any]) -> str:
        if not results:
            return "No results to summarize."
        outcomes = "; ".join(
            f"Step {i}: {_snippet(result, 50)}..." for i, result in enumerate(results, start=1)
        )
        return f"Aggregated {len(results)} results from workflow steps. Key outcomes: {outcomes}"

    def _enrich_step_context(
        self, step: WorkflowStep, context: SharedWorkflowContext
    ) -> SharedWorkflowContext:
        if not step.dependencies:
            return context
        lines = [
            f"{dependency}: {_snippet(context.previous_results[dependency], 100)}..."
            for dependency in step.dependencies
            if dependency in context.previous_results
        ]
        return replace(context, summary="\n".join(lines))

    @staticmethod
    def _update_shared_context(context: SharedWorkflowContext, step: WorkflowStep, result: Any) -> None:
        context.shared_memory[f"{step.id}_result"] = result
        context.summary += f"\n{step.name}: {_snippet(result, 100)}..."
