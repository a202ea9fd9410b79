"""
Pytest configuration for Switchyard tests: validates the environment,
registers markers, and provides in-memory catalogs and fake model handles.
"""

import sys
from collections.abc import Callable
from typing import Any

import pytest

from switchyard.config.settings import OrchestrationSettings, RoutingSettings
from switchyard.core.types import GenerationResult, ModelCapabilities, ToolCall
from switchyard.routing.catalog import CandidateModel, CandidateRegistry, Origin
from switchyard.routing.intelligent_router import IntelligentRouter
from switchyard.routing.model_backends import ModelHandle, ModelProvider

# =============================================================================
# FAKES
# =============================================================================


class FakeModelHandle(ModelHandle):
    """
    Scripted model handle.

    ``reply`` is either a fixed string or a callable taking the prompt;
    ``tool_calls`` are returned from generate_with_tools. Every prompt is
    recorded in ``prompts``.
    """

    def __init__(
        self,
        name: str,
        reply: str | Callable[[str], str] = "ok",
        tool_calls: list[ToolCall] | None = None,
        capabilities: ModelCapabilities | None = None,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.reply = reply
        self.tool_calls = tool_calls or []
        self.capabilities = capabilities or ModelCapabilities(tool_calling=True)
        self.error = error
        self.prompts: list[str] = []

    def _respond(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply(prompt) if callable(self.reply) else self.reply

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        return self._respond(prompt)

    async def generate_with_tools(self, prompt, tools, options=None) -> GenerationResult:
        return GenerationResult(text=self._respond(prompt), tool_calls=list(self.tool_calls))

    def get_capabilities(self) -> ModelCapabilities:
        return self.capabilities


class FakeModelProvider(ModelProvider):
    def __init__(self, handles: list[FakeModelHandle] | None = None) -> None:
        self.handles = {h.name: h for h in handles or []}
        self.requested: list[str] = []

    async def get_model(self, name: str) -> ModelHandle | None:
        self.requested.append(name)
        return self.handles.get(name)


def make_candidate(
    name: str,
    origin: Origin = Origin.OLLAMA,
    trust: float = 8.0,
    parameters: str | None = "7B",
    ram: str | None = "4GB",
    suitability: dict[str, float] | None = None,
    available: bool = True,
    **kwargs: Any,
) -> CandidateModel:
    return CandidateModel(
        name=name,
        origin=origin,
        trust_score=trust,
        parameters=parameters,
        ram_requirement=ram,
        task_suitability=suitability
        or {"coding": 7, "reasoning": 7, "general": 7, "creative": 7},
        available=available,
        **kwargs,
    )


# =============================================================================
# SHARED FIXTURES
# =============================================================================


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def handle_factory():
    return FakeModelHandle


@pytest.fixture
def provider_factory():
    return FakeModelProvider


@pytest.fixture
def registry():
    """Three available candidates plus one that still needs fetching."""
    return CandidateRegistry(
        [
            make_candidate("alpha", trust=9, parameters="13B"),
            make_candidate("beta", trust=8, parameters="7B"),
            make_candidate("gamma", origin=Origin.HUGGINGFACE, trust=7, parameters="3B", ram="2GB"),
            make_candidate("delta", trust=10, parameters="70B", available=False),
        ]
    )


@pytest.fixture
def router(registry):
    return IntelligentRouter(registry, RoutingSettings())


@pytest.fixture
def fast_orchestration_settings():
    """No backoff, no fallbacks, no built-ins: failures surface on the first attempt."""
    return OrchestrationSettings(
        max_retries=1,
        retry_base_delay=0,
        fallback_options=[],
        dependency_poll_interval=0.001,
        register_builtin_workflows=False,
    )


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Validate test environment and configure pytest with custom markers."""
    missing = []
    for mod in ("aiohttp", "pydantic", "pydantic_settings", "prometheus_client", "psutil", "yaml"):
        try:
            __import__(mod)
        except ImportError:
            missing.append(mod)

    if missing:
        print(
            "\n"
            "=" * 70 + "\n"
            " TEST ENVIRONMENT ERROR\n"
            "=" * 70 + "\n"
            f"\n"
            f" Missing dependencies: {', '.join(missing)}\n"
            f"\n"
            f" Switchyard must be installed before running tests:\n"
            f"\n"
            f"   pip install -e '.[test]'\n"
            f"\n"
            "=" * 70,
            file=sys.stderr,
        )
        raise SystemExit(1)

    config.addinivalue_line("markers", "unit: Fast unit tests with no external dependencies")
    config.addinivalue_line("markers", "requires_llm: Tests requiring a running model backend")
