"""
Switchyard Routing

1. Catalog (catalog.py) - candidate snapshots, in-memory registry.
2. Intelligent router (intelligent_router.py) - four-stage
   consolidate/filter/select/route pipeline with per-stage traces.
3. Smart routing (smart_routing.py) - cached defaults that degrade to a
   fallback model instead of failing.
4. Model backends (model_backends.py) - execution handles for the selected model.
"""

from switchyard.routing.catalog import (
    CandidateCatalog,
    CandidateModel,
    CandidateRegistry,
    Origin,
    TaskCategory,
)
from switchyard.routing.intelligent_router import (
    HardwareConstraints,
    IntelligentRouter,
    RoutingConfig,
    RoutingDecision,
    describe_decision,
)
from switchyard.routing.model_backends import (
    ModelHandle,
    ModelProvider,
    OllamaModelHandle,
    OllamaModelProvider,
)
from switchyard.routing.smart_routing import (
    DefaultModelSelection,
    RoutingHints,
    SelectionReason,
    SmartRoutingContext,
    SmartRoutingService,
)

__all__ = [
    "CandidateCatalog",
    "CandidateModel",
    "CandidateRegistry",
    "DefaultModelSelection",
    "describe_decision",
    "HardwareConstraints",
    "IntelligentRouter",
    "ModelHandle",
    "ModelProvider",
    "OllamaModelHandle",
    "OllamaModelProvider",
    "Origin",
    "RoutingConfig",
    "RoutingDecision",
    "RoutingHints",
    "SelectionReason",
    "SmartRoutingContext",
    "SmartRoutingService",
    "TaskCategory",
]
