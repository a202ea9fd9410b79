"""
Retry / circuit-breaker / fallback wrapper for workflow executions.

An operation is attempted up to ``max_retries`` times with exponential
backoff while its circuit allows it; after that each named fallback is tried
in order. Errors that indicate a broken definition are returned at once.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ..config.settings import OrchestrationSettings
from ..core.exceptions import (
    CircuitOpenError,
    CircularDependencyError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from .circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Definition errors: retrying or falling back cannot fix these
NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    CircularDependencyError,
    WorkflowValidationError,
    WorkflowNotFoundError,
)


@dataclass
class RecoveryStrategy:
    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.0
    fallback_options: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: OrchestrationSettings) -> "RecoveryStrategy":
        return cls(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            backoff_multiplier=settings.backoff_multiplier,
            fallback_options=list(settings.fallback_options),
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after *attempt* (1-based)"""
        delay = min(self.base_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)
        if self.jitter_factor:
            delay += delay * self.jitter_factor * random.random()
        return delay


@dataclass
class RecoveryResult(Generic[T]):
    success: bool
    action: str  # direct | retry | fallback | abort | exhausted
    attempts: int
    total_time_ms: float
    data: T | None = None
    error: Exception | None = None
    fallback_used: str | None = None


async def execute_with_recovery(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    strategy: RecoveryStrategy,
    circuit_breaker: CircuitBreaker | None = None,
    fallbacks: dict[str, Callable[[], Awaitable[T]]] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RecoveryResult[T]:
    """
    Run *operation* with retries, then named fallbacks.

    Never raises for operation failures; inspect ``RecoveryResult.success``.
    Fallbacks run outside the circuit breaker.
    """
    start = time.perf_counter()
    fallbacks = fallbacks or {}
    last_error: Exception | None = None
    attempts = 0

    def elapsed() -> float:
        return (time.perf_counter() - start) * 1000

    while attempts < strategy.max_retries:
        if circuit_breaker:
            allowed, reason = circuit_breaker.should_allow_request(operation_name)
            if not allowed:
                last_error = CircuitOpenError(operation_name, reason)
                logger.warning("Skipping %s: %s", operation_name, last_error)
                break

        attempts += 1
        try:
            data = await operation()
        except NON_RETRYABLE_ERRORS as e:
            if circuit_breaker:
                circuit_breaker.release_probe(operation_name)
            logger.error("%s failed with non-retryable error: %s", operation_name, e)
            return RecoveryResult(False, "abort", attempts, elapsed(), error=e)
        except Exception as e:
            last_error = e
            if circuit_breaker:
                circuit_breaker.record_failure(operation_name)
            logger.warning(
                "%s attempt %d/%d failed: %s", operation_name, attempts, strategy.max_retries, e
            )
            if attempts < strategy.max_retries:
                await sleep(strategy.delay_for(attempts))
            continue

        if circuit_breaker:
            circuit_breaker.record_success(operation_name)
        action = "retry" if attempts > 1 else "direct"
        return RecoveryResult(True, action, attempts, elapsed(), data=data)

    for name in strategy.fallback_options:
        fallback = fallbacks.get(name)
        if fallback is None:
            continue
        logger.info("Trying fallback %s for %s", name, operation_name)
        try:
            data = await fallback()
        except Exception as e:
            last_error = e
            logger.warning("Fallback %s for %s failed: %s", name, operation_name, e)
            continue
        return RecoveryResult(True, "fallback", attempts, elapsed(), data=data, fallback_used=name)

    return RecoveryResult(False, "exhausted", attempts, elapsed(), error=last_error)
