"""
Resilience Infrastructure.

Retry and circuit-breaker construction for the queue consumers. Each queue
gets its own breaker, so a failing relay for password resets does not stop
verification emails. Events are logged with a `resilience_event` field:

    jq 'select(.resilience_event != null)' logs/system.jsonl

Consumer stack, outside-in:
    job_retrying (tenacity) → queue_breaker (aiobreaker) → timeout → job processor

Usage:
    breaker = queue_breaker("email-verification", config.circuit_breaker)

    async for attempt in job_retrying(config.retry, retry_on=(RetryableJobError,)):
        with attempt:
            await breaker.call_async(run_once)
"""

from datetime import timedelta
from typing import Any

import aiobreaker
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from modules.notifier.core.config_schema import ConsumerCircuitBreakerSchema, ConsumerRetrySchema
from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)

BREAKER_EVENTS = {
    "open": "circuit_breaker_opened",
    "half-open": "circuit_breaker_half_open",
    "closed": "circuit_breaker_closed",
}


class QueueBreakerListener(aiobreaker.CircuitBreakerListener):
    """Logs state changes and failures of one queue's breaker."""

    def __init__(self, queue: str) -> None:
        self.queue = queue

    def state_change(self, cb: aiobreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        state = str(new_state).lower()
        log = logger.error if state == "open" else logger.info
        log(
            f"Circuit breaker for queue {self.queue}: {old_state} → {new_state}",
            extra={
                "resilience_event": BREAKER_EVENTS.get(state, f"circuit_breaker_{state}"),
                "queue": self.queue,
                "failure_count": cb.fail_counter,
            },
        )

    def failure(self, cb: aiobreaker.CircuitBreaker, exception: Exception) -> None:
        logger.warning(
            f"Circuit breaker for queue {self.queue}: failure recorded",
            extra={
                "resilience_event": "circuit_breaker_failure",
                "queue": self.queue,
                "failure_count": cb.fail_counter,
                "error": str(exception),
            },
        )


def log_retry(retry_state: Any) -> None:
    """Tenacity before_sleep callback. retry_state.fn is None inside AsyncRetrying blocks."""
    error = None
    if retry_state.outcome and retry_state.outcome.failed:
        error = str(retry_state.outcome.exception())

    elapsed_ms = None
    if retry_state.outcome_timestamp and retry_state.start_time:
        elapsed_ms = round((retry_state.outcome_timestamp - retry_state.start_time) * 1000)

    logger.warning(
        f"Retrying job (attempt {retry_state.attempt_number})",
        extra={
            "resilience_event": "retry_attempt",
            "attempt": retry_state.attempt_number,
            "elapsed_ms": elapsed_ms,
            "next_sleep_seconds": getattr(retry_state.next_action, "sleep", None),
            "error": error,
        },
    )


def job_retrying(
    config: ConsumerRetrySchema,
    retry_on: tuple[type[BaseException], ...],
) -> AsyncRetrying:
    """Bounded exponential-backoff retry for one job; the last exception is re-raised."""
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(multiplier=config.backoff_multiplier, max=config.backoff_max),
        retry=retry_if_exception_type(retry_on),
        before_sleep=log_retry,
        reraise=True,
    )


def queue_breaker(queue: str, config: ConsumerCircuitBreakerSchema) -> aiobreaker.CircuitBreaker:
    """Breaker that opens after `fail_max` consecutive failures and half-opens after `timeout_duration`s."""
    return aiobreaker.CircuitBreaker(
        fail_max=config.fail_max,
        timeout_duration=timedelta(seconds=config.timeout_duration),
        listeners=[QueueBreakerListener(queue)],
    )
