from switchyard.config.settings import (
    BackendsConfig,
    LoggingConfig,
    OrchestrationSettings,
    RoutingSettings,
    Settings,
    load_settings,
)

__all__ = [
    "BackendsConfig",
    "LoggingConfig",
    "OrchestrationSettings",
    "RoutingSettings",
    "Settings",
    "load_settings",
]
