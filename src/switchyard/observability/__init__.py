from switchyard.observability.metrics import MetricsCollector

__all__ = ["MetricsCollector"]
