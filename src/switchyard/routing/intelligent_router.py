"""
Intelligent Router - four-stage model selection with full transparency

consolidate -> filter -> select -> route. Every stage records what it did and
how long it took so a decision can always be explained after the fact.
"""

import logging
import platform
import time
from dataclasses import dataclass, field
from typing import Any

import psutil

from ..config.settings import RoutingSettings
from ..core.exceptions import CatalogUnavailableError, NoSuitableModelsError
from ..observability.metrics import MetricsCollector
from .catalog import CandidateCatalog, CandidateModel, Origin, TaskCategory, parse_ram_requirement

logger = logging.getLogger(__name__)

# Factor weights for weighted_multi_factor scoring
WEIGHTS: dict[str, float] = {
    "trust": 0.40,
    "task_suitability": 0.30,
    "performance": 0.15,
    "availability": 0.10,
    "efficiency": 0.05,
}

DEFAULT_TASK_SCORE = 0.7
PREFERRED_ORIGIN_BOOST = 1.2

# (minimum billions of parameters, performance score), checked in order
_PERFORMANCE_STEPS: list[tuple[float, float]] = [
    (70, 1.0),
    (30, 0.9),
    (13, 0.8),
    (7, 0.7),
    (3, 0.6),
    (1, 0.5),
]

# (maximum RAM ratio, efficiency score), checked in order
_EFFICIENCY_BUCKETS: list[tuple[float, float]] = [
    (0.3, 1.0),
    (0.5, 0.8),
    (0.7, 0.6),
    (0.9, 0.4),
]


@dataclass
class HardwareConstraints:
    """Physical limits a selected model must fit within"""
    available_ram: float | None = None  # GB
    max_download_size: int | None = None  # bytes
    preferred_size: str | None = None  # small | medium | large, informational


@dataclass
class RoutingConfig:
    """Routing request; every field is optional and absence means unconstrained"""
    task: TaskCategory | None = None
    hardware_constraints: HardwareConstraints | None = None
    preferred_origins: list[Origin] = field(default_factory=list)
    minimum_trust_score: float | None = None
    allow_fallback: bool = False  # relax task/trust/origin filters when nothing survives
    max_candidates: int | None = None


@dataclass
class ScoredCandidate:
    model: CandidateModel
    score: float
    breakdown: dict[str, float]


@dataclass
class ConsolidationTrace:
    total_models: int
    origin_counts: dict[str, int]
    duration_ms: float


@dataclass
class FilteringTrace:
    availability_filtered: int
    task_filtered: int
    hardware_filtered: int
    trust_filtered: int
    origin_filtered: int
    remaining: int
    duration_ms: float
    filters_applied: list[str] = field(default_factory=list)
    relaxed: bool = False

    @property
    def total_filtered(self) -> int:
        return (
            self.availability_filtered
            + self.task_filtered
            + self.hardware_filtered
            + self.trust_filtered
            + self.origin_filtered
        )


@dataclass
class SelectionTrace:
    scoring_method: str
    top_candidates: list[ScoredCandidate]
    duration_ms: float


@dataclass
class RouteTrace:
    target_origin: Origin
    routing_method: str
    duration_ms: float


@dataclass
class RoutingTrace:
    """Per-stage record of one routing pass"""
    consolidation: ConsolidationTrace
    filtering: FilteringTrace
    selection: SelectionTrace
    routing: RouteTrace


@dataclass
class RoutingDecision:
    """Result of a routing pass"""
    selected_model: CandidateModel
    alternatives: list[CandidateModel]
    reasoning: str
    trace: RoutingTrace
    total_duration_ms: float

    @property
    def selected_score(self) -> float:
        top = self.trace.selection.top_candidates
        return top[0].score if top else 0.0


@dataclass
class SystemResources:
    available_ram: float  # GB
    total_ram: float  # GB
    cpu_cores: int
    disk_space: float  # GB free
    platform: str


@dataclass
class _FilterResult:
    candidates: list[CandidateModel]
    availability_filtered: int = 0
    task_filtered: int = 0
    hardware_filtered: int = 0
    trust_filtered: int = 0
    origin_filtered: int = 0
    filters_applied: list[str] = field(default_factory=list)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class IntelligentRouter:
    """
    Routes requests to the best candidate via the four-stage pipeline

    The router holds no per-request state; each call takes a fresh catalog
    snapshot.
    """

    def __init__(
        self,
        catalog: CandidateCatalog,
        settings: RoutingSettings | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.catalog = catalog
        self.settings = settings or RoutingSettings()
        self.metrics = metrics

    async def route_to_optimal_model(
        self, config: RoutingConfig | None = None, force_refresh: bool = False
    ) -> RoutingDecision:
        """
        Run consolidate -> filter -> select -> route.

        Raises:
            CatalogUnavailableError: the catalog could not be read
            NoSuitableModelsError: nothing survived filtering
        """
        config = config or RoutingConfig()
        start = time.perf_counter()

        # Stage 1: consolidate
        stage_start = time.perf_counter()
        try:
            candidates = await self.catalog.list_candidates(force_refresh)
        except Exception as e:
            raise CatalogUnavailableError(f"Candidate catalog unavailable: {e}") from e
        consolidation = ConsolidationTrace(
            total_models=len(candidates),
            origin_counts=self._count_by_origin(candidates),
            duration_ms=_elapsed_ms(stage_start),
        )

        # Stage 2: filter
        stage_start = time.perf_counter()
        filtered = self.apply_filters(candidates, config)
        relaxed = False
        if not filtered.candidates and config.allow_fallback:
            filtered = self.apply_filters(candidates, config, relaxed=True)
            relaxed = bool(filtered.candidates)
            if relaxed:
                logger.info(
                    "Strict filtering left no candidates; relaxed search kept %d",
                    len(filtered.candidates),
                )
        filtering = FilteringTrace(
            availability_filtered=filtered.availability_filtered,
            task_filtered=filtered.task_filtered,
            hardware_filtered=filtered.hardware_filtered,
            trust_filtered=filtered.trust_filtered,
            origin_filtered=filtered.origin_filtered,
            remaining=len(filtered.candidates),
            duration_ms=_elapsed_ms(stage_start),
            filters_applied=filtered.filters_applied,
            relaxed=relaxed,
        )

        # Stage 3: select
        stage_start = time.perf_counter()
        scoring_method, ranked = self.select(filtered.candidates, config, filtered.filters_applied)
        selection = SelectionTrace(
            scoring_method=scoring_method,
            top_candidates=ranked,
            duration_ms=_elapsed_ms(stage_start),
        )
        selected = ranked[0].model

        # Stage 4: route
        stage_start = time.perf_counter()
        routing = RouteTrace(
            target_origin=selected.origin,
            routing_method="direct_backend_routing",
            duration_ms=_elapsed_ms(stage_start),
        )

        decision = RoutingDecision(
            selected_model=selected,
            alternatives=[c.model for c in ranked[1:]],
            reasoning=self._generate_reasoning(selected, config, filtering),
            trace=RoutingTrace(consolidation, filtering, selection, routing),
            total_duration_ms=_elapsed_ms(start),
        )

        if self.metrics:
            self.metrics.record_routing_duration(decision.total_duration_ms / 1000)
        logger.info(
            "Routed to %s (%s) via %s from %d/%d candidates in %.1fms",
            selected.name,
            selected.origin,
            scoring_method,
            filtering.remaining,
            consolidation.total_models,
            decision.total_duration_ms,
        )
        return decision

    def apply_filters(
        self, candidates: list[CandidateModel], config: RoutingConfig, relaxed: bool = False
    ) -> _FilterResult:
        """
        Stage 2. Each sub-filter only ever removes candidates.

        In relaxed mode the task, trust and origin filters are skipped;
        availability and hardware limits still apply.
        """
        result = _FilterResult(candidates=list(candidates))

        available = [m for m in result.candidates if m.available]
        result.availability_filtered = len(result.candidates) - len(available)
        result.candidates = available
        result.filters_applied.append("availability")

        if not relaxed and config.task and config.task != TaskCategory.GENERAL:
            threshold = self.settings.minimum_task_suitability
            suitable = [m for m in result.candidates if m.suitability(config.task) >= threshold]
            result.task_filtered = len(result.candidates) - len(suitable)
            result.candidates = suitable
            result.filters_applied.append(f"task:{config.task}")

        if config.hardware_constraints:
            fitting = [
                m for m in result.candidates if self._fits_hardware(m, config.hardware_constraints)
            ]
            result.hardware_filtered = len(result.candidates) - len(fitting)
            result.candidates = fitting
            result.filters_applied.append("hardware")

        if not relaxed and config.minimum_trust_score is not None:
            trusted = [m for m in result.candidates if m.trust_score >= config.minimum_trust_score]
            result.trust_filtered = len(result.candidates) - len(trusted)
            result.candidates = trusted
            result.filters_applied.append(f"trust>={config.minimum_trust_score}")

        if not relaxed and config.preferred_origins:
            preferred = [m for m in result.candidates if m.origin in config.preferred_origins]
            if preferred:
                result.origin_filtered = len(result.candidates) - len(preferred)
                result.candidates = preferred
            result.filters_applied.append("preferred_origins")

        return result

    def select(
        self,
        candidates: list[CandidateModel],
        config: RoutingConfig,
        filters_applied: list[str] | None = None,
    ) -> tuple[str, list[ScoredCandidate]]:
        """Stage 3. Returns (scoring_method, ranked candidates)."""
        if not candidates:
            filters = filters_applied or []
            raise NoSuitableModelsError(
                "No suitable models found after filtering"
                + (f" (filters applied: {', '.join(filters)})" if filters else ""),
                filters_applied=filters,
            )

        if len(candidates) == 1:
            total, breakdown = self.score_candidate(candidates[0], config)
            return "single_candidate", [ScoredCandidate(candidates[0], total, breakdown)]

        scored = []
        for model in candidates:
            total, breakdown = self.score_candidate(model, config)
            scored.append(ScoredCandidate(model, total, breakdown))

        # sort is stable: equal scores keep catalog order
        scored.sort(key=lambda c: c.score, reverse=True)
        max_candidates = config.max_candidates or self.settings.max_candidates
        return "weighted_multi_factor", scored[:max_candidates]

    def score_candidate(
        self, model: CandidateModel, config: RoutingConfig
    ) -> tuple[float, dict[str, float]]:
        """Weighted five-factor score; breakdown holds the weighted contributions."""
        trust = model.trust_score / 10

        task_score = DEFAULT_TASK_SCORE
        if config.task and model.suitability(config.task):
            task_score = model.suitability(config.task) / 10

        availability = 1.0 if model.available else 0.0
        if model.origin in config.preferred_origins:
            availability *= PREFERRED_ORIGIN_BOOST
        availability = min(availability, 1.0)

        breakdown = {
            "trust": trust * WEIGHTS["trust"],
            "task_suitability": task_score * WEIGHTS["task_suitability"],
            "performance": self._performance_score(model) * WEIGHTS["performance"],
            "availability": availability * WEIGHTS["availability"],
            "efficiency": self._efficiency_score(model, config.hardware_constraints)
            * WEIGHTS["efficiency"],
        }
        return sum(breakdown.values()), breakdown

    async def detect_system_resources(self) -> SystemResources:
        """Snapshot of the host's memory, CPU and disk"""
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage("/")
        gib = 1024 ** 3
        return SystemResources(
            available_ram=memory.available // gib,
            total_ram=memory.total // gib,
            cpu_cores=psutil.cpu_count() or 1,
            disk_space=disk.free // gib,
            platform=platform.system().lower(),
        )

    async def get_routing_recommendation(
        self, task: TaskCategory | None = None
    ) -> dict[str, Any]:
        """
        Recommend a RoutingConfig for this machine.

        Returns a dict with ``recommended`` (RoutingConfig), ``reasoning`` (str)
        and ``system_info`` (SystemResources).
        """
        system_info = await self.detect_system_resources()
        recommended = RoutingConfig(
            task=task,
            hardware_constraints=HardwareConstraints(
                available_ram=float(int(system_info.available_ram * 0.7)),  # leave 30% headroom
                preferred_size=self._preferred_size_for_ram(system_info.available_ram),
            ),
            preferred_origins=self._preferred_origins_for_system(system_info),
            minimum_trust_score=7.0,
            allow_fallback=True,
            max_candidates=5,
        )
        return {
            "recommended": recommended,
            "reasoning": self._generate_system_reasoning(system_info, recommended),
            "system_info": system_info,
        }

    @staticmethod
    def _count_by_origin(models: list[CandidateModel]) -> dict[str, int]:
        counts: dict[str, int] = {}
        for model in models:
            counts[str(model.origin)] = counts.get(str(model.origin), 0) + 1
        return counts

    @staticmethod
    def _fits_hardware(model: CandidateModel, constraints: HardwareConstraints) -> bool:
        if (
            constraints.available_ram is not None
            and model.ram_requirement
            and model.ram_gb > constraints.available_ram
        ):
            return False
        if (
            constraints.max_download_size is not None
            and (model.download_size or 0) > constraints.max_download_size
        ):
            return False
        return True

    @staticmethod
    def _performance_score(model: CandidateModel) -> float:
        params = model.parameter_count
        if params is None:
            return 0.5
        for minimum, score in _PERFORMANCE_STEPS:
            if params >= minimum:
                return score
        return 0.3

    @staticmethod
    def _efficiency_score(model: CandidateModel, constraints: HardwareConstraints | None) -> float:
        if not constraints or not constraints.available_ram or not model.ram_requirement:
            return 0.5
        ratio = parse_ram_requirement(model.ram_requirement) / constraints.available_ram
        for maximum, score in _EFFICIENCY_BUCKETS:
            if ratio <= maximum:
                return score
        return 0.2

    @staticmethod
    def _preferred_size_for_ram(available_ram: float) -> str:
        if available_ram >= 16:
            return "large"
        if available_ram >= 8:
            return "medium"
        return "small"

    @staticmethod
    def _preferred_origins_for_system(system_info: SystemResources) -> list[Origin]:
        origins = []
        if system_info.available_ram >= 4:
            origins.append(Origin.OLLAMA)
        origins.append(Origin.HUGGINGFACE)
        if system_info.available_ram < 8:
            origins.append(Origin.CLOUD)
        return origins

    def _generate_reasoning(
        self, model: CandidateModel, config: RoutingConfig, filtering: FilteringTrace
    ) -> str:
        """Human-readable reasoning for a selection"""
        parts = []

        if config.task:
            parts.append(f"Optimized for {config.task} tasks (score: {model.suitability(config.task):g}/10)")

        parts.append(f"Trust score {model.trust_score:g}/10")

        if config.hardware_constraints and config.hardware_constraints.available_ram:
            parts.append(f"Fits within {config.hardware_constraints.available_ram:g}GB RAM constraint")

        if filtering.remaining > 1:
            parts.append(f"Selected from {filtering.remaining} suitable candidates")

        if filtering.relaxed:
            parts.append("Constraints relaxed because no candidate met them")

        parts.append(f"Available on {model.origin} backend")

        return ", ".join(parts)

    @staticmethod
    def _generate_system_reasoning(system_info: SystemResources, config: RoutingConfig) -> str:
        parts = [f"System has {system_info.available_ram:g}GB available RAM"]
        if config.hardware_constraints and config.hardware_constraints.preferred_size:
            parts.append(
                f"Recommending {config.hardware_constraints.preferred_size} models for optimal performance"
            )
        if config.preferred_origins:
            parts.append(f"Prioritizing {', '.join(str(o) for o in config.preferred_origins)} backends")
        return ". ".join(parts)


def describe_decision(decision: RoutingDecision) -> str:
    """Plain-text transparency report for a routing decision"""
    trace = decision.trace
    lines = [
        "Routing decision",
        f"  1. Consolidation: {trace.consolidation.total_models} models "
        f"({', '.join(f'{k}={v}' for k, v in trace.consolidation.origin_counts.items()) or 'none'})"
        f" in {trace.consolidation.duration_ms:.1f}ms",
        f"  2. Filtering: {trace.filtering.remaining} passed, {trace.filtering.total_filtered} removed"
        f" in {trace.filtering.duration_ms:.1f}ms",
        f"  3. Selection: {trace.selection.scoring_method} over "
        f"{len(trace.selection.top_candidates)} candidate(s) in {trace.selection.duration_ms:.1f}ms",
        f"  4. Routing: {trace.routing.target_origin} via {trace.routing.routing_method}",
        f"  Total: {decision.total_duration_ms:.1f}ms",
    ]
    if trace.selection.top_candidates:
        top = trace.selection.top_candidates[0]
        lines.append(f"Selection factors for {top.model.name}:")
        for factor, score in top.breakdown.items():
            lines.append(f"  {factor:<18}: {score * 100:5.1f}%")
    if decision.alternatives:
        lines.append("Alternatives:")
        for i, alt in enumerate(decision.alternatives[:3], start=2):
            lines.append(f"  {i}. {alt.name} ({alt.origin}) - Trust: {alt.trust_score:g}/10")
    return "\n".join(lines)
