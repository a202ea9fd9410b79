"""Bootstrap: wire settings, catalog, router, smart defaults and orchestrator together."""

from dataclasses import dataclass

from switchyard.config.settings import Settings, load_settings
from switchyard.core.structured_logger import configure_logging, get_logger
from switchyard.observability.metrics import MetricsCollector
from switchyard.orchestration.orchestrator import MultiModelOrchestrator
from switchyard.orchestration.tools import ToolExecutor
from switchyard.routing.catalog import CandidateCatalog, CandidateRegistry
from switchyard.routing.intelligent_router import IntelligentRouter
from switchyard.routing.model_backends import ModelProvider, OllamaModelProvider
from switchyard.routing.smart_routing import SmartRoutingService

logger = get_logger("Bootstrap")


@dataclass
class SwitchyardContext:
    """DI container holding the initialized Switchyard components."""

    settings: Settings
    catalog: CandidateCatalog
    metrics: MetricsCollector
    router: IntelligentRouter
    smart_routing: SmartRoutingService
    provider: ModelProvider
    orchestrator: MultiModelOrchestrator

    async def close(self) -> None:
        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()
        logger.info("Switchyard shut down")


def create_switchyard(
    settings: Settings | None = None,
    config_path: str | None = None,
    catalog: CandidateCatalog | None = None,
    provider: ModelProvider | None = None,
    tool_executor: ToolExecutor | None = None,
    setup_logging: bool = False,
) -> SwitchyardContext:
    """
    Build every component from one Settings object.

    The catalog defaults to ``settings.catalog_path`` (or an empty registry)
    and the provider to Ollama at ``settings.backends.ollama_url``.
    """
    settings = settings or load_settings(config_path)
    if setup_logging:
        configure_logging(settings.logging.level, settings.logging.format)

    if catalog is None:
        catalog = (
            CandidateRegistry.from_file(settings.catalog_path)
            if settings.catalog_path
            else CandidateRegistry()
        )
    if provider is None:
        provider = OllamaModelProvider(
            base_url=settings.backends.ollama_url,
            timeout_seconds=settings.backends.timeout_seconds,
        )

    metrics = MetricsCollector(service_name=settings.project_name.lower())
    router = IntelligentRouter(catalog, settings.routing, metrics=metrics)
    context = SwitchyardContext(
        settings=settings,
        catalog=catalog,
        metrics=metrics,
        router=router,
        smart_routing=SmartRoutingService(router, settings.routing, metrics=metrics),
        provider=provider,
        orchestrator=MultiModelOrchestrator(
            catalog,
            router,
            provider,
            tool_executor=tool_executor,
            settings=settings.orchestration,
            metrics=metrics,
        ),
    )
    logger.info(
        "Switchyard ready",
        version=settings.version,
        workflows=len(context.orchestrator.get_registered_workflows()),
    )
    return context
