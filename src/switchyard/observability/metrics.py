"""Prometheus-compatible metrics for routing decisions and workflow executions."""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
)

logger = logging.getLogger(__name__)


class MetricsCollector:
    """
    Prometheus metrics collector for Switchyard.

    Each collector owns its own CollectorRegistry unless one is passed in, so
    several routers or orchestrators can coexist in one process.
    """

    def __init__(self, service_name: str = "switchyard", registry: CollectorRegistry | None = None) -> None:
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self._init_standard_metrics()
        logger.info("MetricsCollector initialized")

    def _init_standard_metrics(self) -> None:
        service_info = Info("switchyard_service", "Service information", registry=self.registry)
        try:
            from importlib.metadata import version as _pkg_version

            _version = _pkg_version("switchyard")
        except Exception:
            _version = "0.0.0-dev"
        service_info.info({"service": self.service_name, "version": _version})

        self.routing_decisions_total = Counter(
            "switchyard_routing_decisions_total",
            "Routing decisions served, by how they were produced",
            ["reason"],
            registry=self.registry,
        )
        self.routing_duration_seconds = Histogram(
            "switchyard_routing_duration_seconds",
            "Duration of a full four-stage routing pass",
            registry=self.registry,
        )
        self.workflow_executions_total = Counter(
            "switchyard_workflow_executions_total",
            "Workflow executions, by strategy and outcome",
            ["strategy", "status"],
            registry=self.registry,
        )
        self.workflow_duration_seconds = Histogram(
            "switchyard_workflow_duration_seconds",
            "Workflow execution duration",
            ["strategy"],
            registry=self.registry,
        )
        self.model_calls_total = Counter(
            "switchyard_model_calls_total",
            "Model invocations made by workflow steps",
            ["model", "status"],
            registry=self.registry,
        )
        self.model_call_duration_seconds = Histogram(
            "switchyard_model_call_duration_seconds",
            "Model invocation latency",
            ["model"],
            registry=self.registry,
        )

    def record_routing_decision(self, reason: str) -> None:
        self.routing_decisions_total.labels(reason=reason).inc()

    def record_routing_duration(self, duration: float) -> None:
        self.routing_duration_seconds.observe(duration)

    def record_workflow(self, strategy: str, success: bool, duration: float) -> None:
        status = "completed" if success else "failed"
        self.workflow_executions_total.labels(strategy=strategy, status=status).inc()
        self.workflow_duration_seconds.labels(strategy=strategy).observe(duration)

    def record_model_call(self, model: str, success: bool, duration: float) -> None:
        self.model_calls_total.labels(model=model, status="success" if success else "error").inc()
        self.model_call_duration_seconds.labels(model=model).observe(duration)

    def get_metrics(self) -> bytes:
        """Render the registry in Prometheus text exposition format"""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST
