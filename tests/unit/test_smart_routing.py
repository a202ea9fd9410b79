"""
Tests for switchyard.routing.smart_routing

Covers the smart-default cache, the never-raise fallback chain, the
confidence curve and the machine-tailored recommendation.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from switchyard.config.settings import RoutingSettings
from switchyard.core.exceptions import NoSuitableModelsError
from switchyard.observability.metrics import MetricsCollector
from switchyard.routing.catalog import CandidateRegistry, Origin, TaskCategory
from switchyard.routing.intelligent_router import (
    ConsolidationTrace,
    FilteringTrace,
    IntelligentRouter,
    RouteTrace,
    RoutingDecision,
    RoutingTrace,
    ScoredCandidate,
    SelectionTrace,
    SystemResources,
)
from switchyard.routing.smart_routing import (
    SYSTEM_DEFAULT_MODEL,
    CachedRoutingState,
    RoutingHints,
    SelectionReason,
    SmartRoutingContext,
    SmartRoutingService,
)


def _decision_with_scores(candidate_factory, *scores: float) -> RoutingDecision:
    ranked = [
        ScoredCandidate(candidate_factory(f"m{i}"), score, {}) for i, score in enumerate(scores)
    ]
    return RoutingDecision(
        selected_model=ranked[0].model,
        alternatives=[c.model for c in ranked[1:]],
        reasoning="test",
        trace=RoutingTrace(
            ConsolidationTrace(len(ranked), {"ollama": len(ranked)}, 0.0),
            FilteringTrace(0, 0, 0, 0, 0, len(ranked), 0.0),
            SelectionTrace("weighted_multi_factor", ranked, 0.0),
            RouteTrace(Origin.OLLAMA, "direct_backend_routing", 0.0),
        ),
        total_duration_ms=1.0,
    )


@pytest.fixture
def service(router):
    return SmartRoutingService(router)


class TestSmartDefault:
    @pytest.mark.asyncio
    async def test_first_call_routes_and_caches(self, service):
        selection = await service.get_smart_default()
        assert selection.reason == SelectionReason.INTELLIGENT_ROUTING
        assert selection.decision is not None
        assert service.cached_state is not None
        assert service.cached_state.decision is selection.decision

    @pytest.mark.asyncio
    async def test_second_call_is_served_from_cache(self, service, router):
        first = await service.get_smart_default()
        with patch.object(router, "route_to_optimal_model", AsyncMock()) as route:
            second = await service.get_smart_default()
        route.assert_not_called()
        assert second.reason == SelectionReason.CACHED
        assert second.selected_model == first.selected_model
        assert second.confidence == first.confidence
        assert second.reasoning.startswith("Using cached intelligent routing decision")

    @pytest.mark.asyncio
    async def test_different_context_bypasses_cache(self, service):
        await service.get_smart_default()
        selection = await service.get_smart_default(SmartRoutingContext(task=TaskCategory.CODING))
        assert selection.reason == SelectionReason.INTELLIGENT_ROUTING

    @pytest.mark.asyncio
    async def test_expired_cache_recomputes(self, router):
        service = SmartRoutingService(router, RoutingSettings(cache_ttl_seconds=0))
        await service.get_smart_default()
        selection = await service.get_smart_default()
        assert selection.reason == SelectionReason.INTELLIGENT_ROUTING

    @pytest.mark.asyncio
    async def test_invalidate_drops_cache(self, service):
        await service.get_smart_default()
        service.invalidate()
        assert service.cached_state is None
        assert service.get_routing_confidence() == 0.5

    @pytest.mark.asyncio
    async def test_high_urgency_caps_ram(self, service, router):
        resources = SystemResources(available_ram=6, total_ram=16, cpu_cores=4, disk_space=50, platform="linux")
        with patch.object(router, "detect_system_resources", AsyncMock(return_value=resources)):
            selection = await service.get_smart_default(SmartRoutingContext(urgency="high"))
        # min(6 * 0.5, 4) = 3GB leaves only gamma
        assert selection.selected_model.name == "gamma"
        assert selection.decision.trace.filtering.hardware_filtered == 2

    @pytest.mark.asyncio
    async def test_high_urgency_keeps_models_without_local_ram(self, candidate_factory):
        catalog = CandidateRegistry(
            [
                candidate_factory("local", ram="8GB"),
                candidate_factory("remote", origin=Origin.CLOUD, ram=None),
            ]
        )
        router = IntelligentRouter(catalog)
        resources = SystemResources(available_ram=6, total_ram=16, cpu_cores=4, disk_space=50, platform="linux")
        with patch.object(router, "detect_system_resources", AsyncMock(return_value=resources)):
            selection = await SmartRoutingService(router).get_smart_default(SmartRoutingContext(urgency="high"))
        assert selection.selected_model.name == "remote"
        assert selection.reason != SelectionReason.FALLBACK


class TestFallbacks:
    @pytest.mark.asyncio
    async def test_routing_failure_selects_smallest_available(self, service, router):
        failing = AsyncMock(side_effect=NoSuitableModelsError("No suitable models found after filtering"))
        with patch.object(router, "route_to_optimal_model", failing):
            selection = await service.get_smart_default()
        assert selection.reason == SelectionReason.FALLBACK
        assert selection.selected_model.name == "gamma"
        assert [m.name for m in selection.alternatives] == ["beta", "alpha"]
        assert selection.confidence == pytest.approx(0.3)
        assert "No suitable models found" in selection.reasoning

    @pytest.mark.asyncio
    async def test_unknown_parameter_counts_sort_last(self, candidate_factory):
        catalog = CandidateRegistry(
            [candidate_factory("mystery", parameters=None), candidate_factory("tiny", parameters="1B")]
        )
        router = IntelligentRouter(catalog)
        service = SmartRoutingService(router)
        with patch.object(router, "route_to_optimal_model", AsyncMock(side_effect=RuntimeError("boom"))):
            selection = await service.get_smart_default()
        assert selection.selected_model.name == "tiny"

    @pytest.mark.asyncio
    async def test_broken_catalog_yields_system_default(self):
        catalog = AsyncMock()
        catalog.list_candidates.side_effect = ConnectionError("catalog offline")
        service = SmartRoutingService(IntelligentRouter(catalog))

        selection = await service.get_smart_default()

        assert selection.reason == SelectionReason.SYSTEM_DEFAULT
        assert selection.selected_model is SYSTEM_DEFAULT_MODEL
        assert selection.selected_model.available is False
        assert selection.confidence <= 0.5
        assert "catalog offline" in selection.reasoning
        assert service.cached_state is None

    @pytest.mark.asyncio
    async def test_no_available_models_yields_system_default(self, candidate_factory):
        catalog = CandidateRegistry([candidate_factory("offline", available=False)])
        service = SmartRoutingService(IntelligentRouter(catalog))
        selection = await service.get_smart_default()
        assert selection.reason == SelectionReason.SYSTEM_DEFAULT
        assert selection.confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_fallback_is_logged(self, caplog):
        catalog = AsyncMock()
        catalog.list_candidates.side_effect = ConnectionError("catalog offline")
        service = SmartRoutingService(IntelligentRouter(catalog))
        with caplog.at_level("WARNING", logger="switchyard.routing.smart_routing"):
            await service.get_smart_default()
        assert "Intelligent routing failed" in caplog.text


class TestConfidence:
    def test_single_candidate(self, candidate_factory):
        decision = _decision_with_scores(candidate_factory, 0.8)
        assert SmartRoutingService.calculate_confidence(decision) == pytest.approx(0.6)

    @pytest.mark.parametrize(
        "scores,expected",
        [((0.8, 0.8), 0.5), ((0.8, 0.7), 0.75), ((0.9, 0.6), 1.0), ((0.95, 0.1), 1.0)],
    )
    def test_gap_curve(self, candidate_factory, scores, expected):
        decision = _decision_with_scores(candidate_factory, *scores)
        assert SmartRoutingService.calculate_confidence(decision) == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_get_routing_confidence_uses_cache(self, service):
        assert service.get_routing_confidence() == 0.5
        selection = await service.get_smart_default()
        assert service.get_routing_confidence() == selection.confidence

    def test_get_routing_confidence_for_explicit_decision(self, service, candidate_factory):
        decision = _decision_with_scores(candidate_factory, 0.8, 0.7)
        assert service.get_routing_confidence(decision) == pytest.approx(0.75)

    def test_cached_state_validity(self, candidate_factory):
        state = CachedRoutingState(
            decision=_decision_with_scores(candidate_factory, 0.8),
            confidence=0.6,
            context_key=(None, (), None),
            created_at=100.0,
        )
        assert state.is_valid(300, now=399.0)
        assert not state.is_valid(300, now=400.0)


class TestShouldUseIntelligentRouting:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "hints,expected",
        [
            (RoutingHints(user_explicit_choice=True, system_load="high", complexity="simple"), True),
            (RoutingHints(system_load="high", complexity="simple"), False),
            (RoutingHints(system_load="high", complexity="complex"), True),
            (RoutingHints(), True),
        ],
    )
    async def test_predicate(self, service, hints, expected):
        assert await service.should_use_intelligent_routing(hints) is expected


class TestRecommendation:
    @pytest.mark.asyncio
    async def test_recommendation_on_large_machine(self, service):
        gib = 1024 ** 3
        fake = SimpleNamespace(
            virtual_memory=lambda: SimpleNamespace(available=16 * gib, total=32 * gib),
            disk_usage=lambda path: SimpleNamespace(free=200 * gib),
            cpu_count=lambda: 12,
        )
        with patch("switchyard.routing.intelligent_router.psutil", fake):
            recommendation = await service.get_routing_recommendation(TaskCategory.CODING)

        assert recommendation.primary.name == "alpha"
        assert recommendation.system_analysis["available_ram"] == 16
        assert recommendation.system_analysis["recommended_ram"] == 11.0
        assert recommendation.system_analysis["recommended_task"] == TaskCategory.CODING
        assert "System Analysis:" in recommendation.reasoning
        assert "Confidence:" in recommendation.reasoning
        assert recommendation.fallback_strategy.startswith("Switch to ")
        assert "Fall back to HuggingFace models" in recommendation.fallback_strategy


class TestMetrics:
    @pytest.mark.asyncio
    async def test_selection_reasons_are_counted(self, router):
        metrics = MetricsCollector()
        service = SmartRoutingService(router, metrics=metrics)
        await service.get_smart_default()
        await service.get_smart_default()

        def count(reason):
            return metrics.registry.get_sample_value(
                "switchyard_routing_decisions_total", {"reason": reason}
            )

        assert count("intelligent_routing") == 1
        assert count("cached") == 1
