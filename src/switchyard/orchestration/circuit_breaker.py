"""Circuit breaker for workflow operations that keep failing."""

import logging
import time
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitRecord:
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    opened_at: float = 0.0
    probes: int = 0


class CircuitBreaker:
    """
    Per-operation circuit breaker.

    Operations are arbitrary string keys (``workflow.code_analysis_review``).
    After ``failure_threshold`` consecutive failures an operation is refused
    until ``recovery_timeout`` seconds pass; then ``half_open_max_calls``
    probe attempts decide whether it closes again.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        half_open_max_calls: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._records: dict[str, CircuitRecord] = {}

    def _record(self, operation: str) -> CircuitRecord:
        return self._records.setdefault(operation, CircuitRecord())

    def should_allow_request(self, operation: str) -> tuple[bool, str]:
        """Return (allowed, reason) for *operation*."""
        record = self._record(operation)

        if record.state == CircuitState.OPEN:
            elapsed = time.monotonic() - record.opened_at
            if elapsed < self.recovery_timeout:
                return False, f"circuit_open_wait_{int(self.recovery_timeout - elapsed)}s"
            record.state = CircuitState.HALF_OPEN
            record.probes = 0
            logger.info("Circuit for %s: OPEN -> HALF_OPEN", operation)

        if record.state == CircuitState.HALF_OPEN:
            if record.probes >= self.half_open_max_calls:
                return False, "circuit_half_open_limit_reached"
            record.probes += 1
            return True, "circuit_half_open_probe"

        return True, "circuit_closed"

    def record_success(self, operation: str) -> None:
        record = self._record(operation)
        if record.state == CircuitState.HALF_OPEN:
            logger.info("Circuit for %s: HALF_OPEN -> CLOSED", operation)
        record.state = CircuitState.CLOSED
        record.failures = 0
        record.probes = 0

    def release_probe(self, operation: str) -> None:
        """Return a half-open probe slot without counting an outcome."""
        record = self._record(operation)
        if record.state == CircuitState.HALF_OPEN and record.probes > 0:
            record.probes -= 1

    def record_failure(self, operation: str) -> None:
        record = self._record(operation)
        record.failures += 1
        if record.state == CircuitState.HALF_OPEN:
            self._open(operation, record)
        elif record.state == CircuitState.CLOSED and record.failures >= self.failure_threshold:
            self._open(operation, record)

    def _open(self, operation: str, record: CircuitRecord) -> None:
        logger.warning(
            "Circuit for %s: %s -> OPEN after %d failure(s)",
            operation,
            record.state.name,
            record.failures,
        )
        record.state = CircuitState.OPEN
        record.opened_at = time.monotonic()

    def get_state(self, operation: str) -> CircuitState:
        return self._record(operation).state

    def failure_count(self, operation: str) -> int:
        return self._record(operation).failures

    def reset(self, operation: str | None = None) -> None:
        """Close one operation's circuit, or all of them"""
        if operation is None:
            self._records.clear()
        else:
            self._records.pop(operation, None)
