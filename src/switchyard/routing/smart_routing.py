"""
Smart Routing Service - cached, failure-tolerant routing defaults

Wraps IntelligentRouter with a time-boxed cache of the last decision and a
degrade-to-safe-default path, so callers of get_smart_default() get a
decision object back even when the catalog or the pipeline is broken.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from ..config.settings import RoutingSettings
from ..observability.metrics import MetricsCollector
from .catalog import CandidateModel, Origin, TaskCategory
from .intelligent_router import (
    HardwareConstraints,
    IntelligentRouter,
    RoutingConfig,
    RoutingDecision,
)

logger = logging.getLogger(__name__)

FALLBACK_CONFIDENCE = 0.3
SYSTEM_DEFAULT_CONFIDENCE = 0.1
NO_DECISION_CONFIDENCE = 0.5
SINGLE_CANDIDATE_CONFIDENCE = 0.6

# Placeholder returned when not even the catalog can be read
SYSTEM_DEFAULT_MODEL = CandidateModel(
    name="system-default",
    origin=Origin.HUGGINGFACE,
    trust_score=5.0,
    parameters="1B",
    ram_requirement="2GB",
    task_suitability={"coding": 5, "reasoning": 5, "general": 5, "creative": 5},
    available=False,
    description="Placeholder selection; download a model or check configuration",
)


class SelectionReason(str, Enum):
    """How a DefaultModelSelection was produced"""
    CACHED = "cached"
    INTELLIGENT_ROUTING = "intelligent_routing"
    FALLBACK = "fallback"
    SYSTEM_DEFAULT = "system_default"

    def __str__(self) -> str:
        return self.value


@dataclass
class SmartRoutingContext:
    """Hints for get_smart_default"""
    task: TaskCategory | None = None
    preferred_origins: list[Origin] = field(default_factory=list)
    urgency: str | None = None  # low | medium | high

    def cache_key(self) -> tuple:
        return (
            str(self.task) if self.task else None,
            tuple(str(o) for o in self.preferred_origins),
            self.urgency,
        )


@dataclass
class RoutingHints:
    """Hints for should_use_intelligent_routing"""
    user_explicit_choice: bool = False
    system_load: str | None = None  # low | medium | high
    complexity: str | None = None  # simple | moderate | complex


@dataclass
class DefaultModelSelection:
    selected_model: CandidateModel
    reason: SelectionReason
    alternatives: list[CandidateModel]
    reasoning: str
    confidence: float
    decision: RoutingDecision | None = None


@dataclass
class CachedRoutingState:
    """The last successful decision and when it was made"""
    decision: RoutingDecision
    confidence: float
    context_key: tuple
    created_at: float = field(default_factory=time.time)

    def is_valid(self, ttl_seconds: float, now: float | None = None) -> bool:
        return ((now if now is not None else time.time()) - self.created_at) < ttl_seconds


@dataclass
class SmartRoutingRecommendation:
    primary: CandidateModel
    alternatives: list[CandidateModel]
    reasoning: str
    system_analysis: dict
    confidence: float
    fallback_strategy: str


def _parameter_sort_key(model: CandidateModel) -> float:
    params = model.parameter_count
    return params if params else 999.0


class SmartRoutingService:
    """
    Intelligent defaults with full transparency

    One instance per orchestrating service; the cached decision is the only
    state shared across requests.
    """

    def __init__(
        self,
        router: IntelligentRouter,
        settings: RoutingSettings | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.router = router
        self.settings = settings or router.settings
        self.metrics = metrics
        self._cache: CachedRoutingState | None = None

    @property
    def cached_state(self) -> CachedRoutingState | None:
        return self._cache

    def invalidate(self) -> None:
        """Drop the cached decision"""
        self._cache = None

    async def get_smart_default(
        self, context: SmartRoutingContext | None = None
    ) -> DefaultModelSelection:
        """
        Return a model selection; never raises.

        Served from cache when the last decision for the same context is still
        fresh, otherwise computed by the router. Routing failures degrade to a
        low-confidence fallback selection.
        """
        context = context or SmartRoutingContext()
        key = context.cache_key()

        cached = self._cache
        if cached and cached.context_key == key and cached.is_valid(self.settings.cache_ttl_seconds):
            self._record(SelectionReason.CACHED)
            return DefaultModelSelection(
                selected_model=cached.decision.selected_model,
                reason=SelectionReason.CACHED,
                alternatives=cached.decision.alternatives,
                reasoning=f"Using cached intelligent routing decision: {cached.decision.reasoning}",
                confidence=cached.confidence,
                decision=cached.decision,
            )

        try:
            config = RoutingConfig(
                task=context.task,
                preferred_origins=list(context.preferred_origins),
                allow_fallback=True,
                max_candidates=self.settings.smart_default_max_candidates,
            )
            if context.urgency == "high":
                resources = await self.router.detect_system_resources()
                config.hardware_constraints = HardwareConstraints(
                    available_ram=min(
                        resources.available_ram * 0.5, self.settings.high_urgency_ram_cap_gb
                    )
                )

            decision = await self.router.route_to_optimal_model(config)
            confidence = self.calculate_confidence(decision)
            self._cache = CachedRoutingState(decision=decision, confidence=confidence, context_key=key)
            self._record(SelectionReason.INTELLIGENT_ROUTING)
            return DefaultModelSelection(
                selected_model=decision.selected_model,
                reason=SelectionReason.INTELLIGENT_ROUTING,
                alternatives=decision.alternatives,
                reasoning=decision.reasoning,
                confidence=confidence,
                decision=decision,
            )
        except Exception as e:
            logger.warning("Intelligent routing failed, using fallback default: %s", e)
            return await self._get_fallback_default(str(e))

    def get_routing_confidence(self, decision: RoutingDecision | None = None) -> float:
        """Confidence of *decision*, or of the cached one; 0.5 when there is none"""
        if decision is not None:
            return self.calculate_confidence(decision)
        if self._cache is None:
            return NO_DECISION_CONFIDENCE
        return self._cache.confidence

    async def should_use_intelligent_routing(self, hints: RoutingHints | None = None) -> bool:
        """Advisory: is a full routing pass worth it for this request?"""
        hints = hints or RoutingHints()
        if hints.user_explicit_choice:
            return True
        if hints.system_load == "high" and hints.complexity == "simple":
            return False
        return True

    async def get_routing_recommendation(
        self, task: TaskCategory | None = None
    ) -> SmartRoutingRecommendation:
        """Route with a machine-tailored config and explain the result"""
        recommendation = await self.router.get_routing_recommendation(task)
        recommended: RoutingConfig = recommendation["recommended"]
        system_info = recommendation["system_info"]

        decision = await self.router.route_to_optimal_model(recommended)
        confidence = self.calculate_confidence(decision)

        parts = [
            f"System Analysis: {recommendation['reasoning']}",
            f"Intelligent Routing: {decision.reasoning}",
            f"Confidence: {confidence * 100:.0f}%",
            f"Performance: {decision.total_duration_ms:.0f}ms routing time",
        ]
        if decision.alternatives:
            parts.append(f"{len(decision.alternatives)} alternative(s) available")

        constraints = recommended.hardware_constraints
        return SmartRoutingRecommendation(
            primary=decision.selected_model,
            alternatives=decision.alternatives,
            reasoning=" | ".join(parts),
            system_analysis={
                "available_ram": system_info.available_ram,
                "recommended_ram": (
                    constraints.available_ram
                    if constraints and constraints.available_ram is not None
                    else system_info.available_ram
                ),
                "recommended_task": task,
            },
            confidence=confidence,
            fallback_strategy=self._build_fallback_strategy(decision),
        )

    @staticmethod
    def calculate_confidence(decision: RoutingDecision) -> float:
        """
        Confidence grows with the score gap between the selected model and
        the runner-up; clipped to [0, 1].
        """
        top = decision.trace.selection.top_candidates
        if len(top) < 2:
            return SINGLE_CANDIDATE_CONFIDENCE
        gap = max(0.0, top[0].score - top[1].score)
        return max(0.0, min(1.0, 0.5 + gap * 2.5))

    async def _get_fallback_default(self, error_message: str) -> DefaultModelSelection:
        """Smallest available model, or the system-default placeholder"""
        try:
            candidates = await self.router.catalog.list_candidates()
            available = sorted((m for m in candidates if m.available), key=_parameter_sort_key)
            if available:
                self._record(SelectionReason.FALLBACK)
                return DefaultModelSelection(
                    selected_model=available[0],
                    reason=SelectionReason.FALLBACK,
                    alternatives=available[1:4],
                    reasoning=(
                        f"Fallback selection due to routing error: {error_message}. "
                        "Selected smallest available model."
                    ),
                    confidence=FALLBACK_CONFIDENCE,
                )
        except Exception as e:
            logger.error("Fallback catalog lookup failed: %s", e)

        self._record(SelectionReason.SYSTEM_DEFAULT)
        return DefaultModelSelection(
            selected_model=SYSTEM_DEFAULT_MODEL,
            reason=SelectionReason.SYSTEM_DEFAULT,
            alternatives=[],
            reasoning=(
                f"System default fallback: {error_message}. "
                "Please download models or check configuration."
            ),
            confidence=SYSTEM_DEFAULT_CONFIDENCE,
        )

    @staticmethod
    def _build_fallback_strategy(decision: RoutingDecision) -> str:
        strategies = []
        if decision.alternatives:
            alt = decision.alternatives[0]
            strategies.append(f"Switch to {alt.name} ({alt.origin})")
        if decision.selected_model.origin == Origin.OLLAMA:
            strategies.append("Fall back to HuggingFace models if Ollama fails")
        elif decision.selected_model.origin == Origin.HUGGINGFACE:
            strategies.append("Fall back to Ollama models if available")
        strategies.append("Use cloud models if local resources insufficient")
        return " -> ".join(strategies)

    def _record(self, reason: SelectionReason) -> None:
        if self.metrics:
            self.metrics.record_routing_decision(str(reason))
