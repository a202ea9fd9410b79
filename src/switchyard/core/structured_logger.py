"""
Structured Logging with Trace IDs
=================================

JSON-structured logging with per-execution tracing. Every workflow execution
runs inside a TraceContext so its routing and step logs can be followed
end to end.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable to store trace_id for the current execution
_trace_id_var: ContextVar[str | None] = ContextVar('trace_id', default=None)

_SECRET_PATTERNS = re.compile(
    r"(sk-[A-Za-z0-9]+|hf_[A-Za-z0-9]+|ghp_[A-Za-z0-9]+|Bearer\s+[A-Za-z0-9._~+/=-]+)",
    re.IGNORECASE,
)


def _redact_secrets(text: str) -> str:
    return _SECRET_PATTERNS.sub("[REDACTED]", text)


class StructuredLogger:
    """
    Structured logger that outputs JSON logs with trace IDs

    Example output:
    {
        "timestamp": "2026-03-02T10:30:45.123Z",
        "level": "INFO",
        "trace_id": "abc123",
        "component": "MultiModelOrchestrator",
        "message": "Workflow completed",
        "workflow_id": "research_synthesis",
        "execution_time_ms": 1234.56
    }
    """

    def __init__(self, component: str, logger: logging.Logger | None = None) -> None:
        """
        Initialize structured logger

        Args:
            component: Component name (e.g., 'IntelligentRouter', 'MultiModelOrchestrator')
            logger: Optional existing logger (creates new if not provided)
        """
        self.component = component
        self.logger = logger or logging.getLogger(component)

    def _log(self, level: str, message: str, **kwargs) -> None:
        trace_id = _trace_id_var.get()

        log_entry = {
            'timestamp': datetime.now(tz=UTC).isoformat(),
            'level': level,
            'component': self.component,
            'message': _redact_secrets(message),
        }

        if trace_id:
            log_entry['trace_id'] = trace_id

        for k, v in kwargs.items():
            log_entry[k] = _redact_secrets(str(v)) if isinstance(v, str) else v

        json_log = _redact_secrets(json.dumps(log_entry, default=str))

        log_method = getattr(self.logger, level.lower())
        log_method(json_log)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message"""
        self._log('DEBUG', message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message"""
        self._log('INFO', message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message"""
        self._log('WARNING', message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message"""
        self._log('ERROR', message, **kwargs)


class TraceContext:
    """
    Context manager for setting trace_id for one execution

    Usage:
        with TraceContext() as trace_id:
            # All logs within this context will include this trace_id
            logger.info("Executing workflow")
    """

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or self._generate_trace_id()
        self.token = None

    def __enter__(self) -> str:
        self.token = _trace_id_var.set(self.trace_id)
        return self.trace_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _trace_id_var.reset(self.token)

    @staticmethod
    def _generate_trace_id() -> str:
        return str(uuid.uuid4())[:8]  # Short UUID


def get_trace_id() -> str | None:
    """Return the trace id active in the current context, if any."""
    return _trace_id_var.get()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def get_logger(component: str) -> StructuredLogger:
    """
    Get a structured logger for a component

    Args:
        component: Component name

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(component)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """
    Install a stderr handler on the root logger.

    With ``fmt="json"`` messages are emitted as-is (StructuredLogger already
    renders JSON); ``fmt="text"`` prefixes them with time, level and logger name.
    """
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())
