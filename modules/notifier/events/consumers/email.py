"""
Email Queue Consumers.

Binds each job processor to its Redis stream and turns JobResults into queue
behaviour, with the resilience stack: retry → circuit breaker → timeout.

    Success          *Sent acknowledgement
    RetryableError   retried with exponential backoff; when retries run out
                     the job is dead-lettered like a terminal failure
    timeout          the in-flight record is marked FAILED (JOB_TIMEOUT),
                     then retried like a RetryableError
    TerminalError    dead-lettered to dlq:<queue> with a *Failed acknowledgement

Run with: python cli.py --service consumer
"""

import asyncio
from typing import TYPE_CHECKING, Any

from aiobreaker import CircuitBreaker, CircuitBreakerError
from faststream.redis import RedisBroker, StreamSub

from modules.notifier.core.config_schema import ConsumerConfigSchema
from modules.notifier.core.exceptions import InvalidPayloadError, QueueUnavailableError
from modules.notifier.core.logging import bind_job_context, get_logger
from modules.notifier.core.resilience import job_retrying, queue_breaker
from modules.notifier.events.contracts import validate
from modules.notifier.events.publishers import NotificationEventPublisher
from modules.notifier.processors.email import EmailJobProcessor
from modules.notifier.processors.result import JobResult, RetryableError, Success, TerminalError

if TYPE_CHECKING:
    from modules.notifier.runtime import NotifierRuntime

logger = get_logger(__name__)


class RetryableJobError(Exception):
    """Carries a RetryableError through tenacity and the circuit breaker."""

    def __init__(self, result: RetryableError) -> None:
        self.result = result
        super().__init__(result.reason)


class QueueJobRunner:
    """Runs one queue's jobs through the resilience stack and reports the outcome."""

    def __init__(
        self,
        processor: EmailJobProcessor,
        config: ConsumerConfigSchema,
        publisher: NotificationEventPublisher,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.processor = processor
        self.config = config
        self.publisher = publisher
        self.breaker = breaker or queue_breaker(processor.queue, config.circuit_breaker)

    @property
    def queue(self) -> str:
        return self.processor.queue

    async def _attempt(self, data: Any) -> JobResult:
        try:
            async with asyncio.timeout(self.config.processing_timeout):
                result = await self.processor.process(data)
        except TimeoutError as e:
            timeout = TimeoutError(f"Processing exceeded {self.config.processing_timeout}s")
            await self.processor.abandon(data, timeout, "JOB_TIMEOUT")
            raise timeout from e
        if isinstance(result, RetryableError):
            raise RetryableJobError(result)
        return result

    async def execute(self, data: Any) -> tuple[JobResult, int]:
        """Process with retries. Returns the final result and the number of attempts made."""
        attempts = 0
        try:
            async for attempt in job_retrying(
                self.config.retry,
                retry_on=(RetryableJobError, TimeoutError, CircuitBreakerError),
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self.breaker.call_async(self._attempt, data)
        except RetryableJobError as e:
            result = e.result
        except TimeoutError as e:
            result = RetryableError(reason=str(e), code="JOB_TIMEOUT", error=e)
        except CircuitBreakerError as e:
            result = RetryableError(reason=str(e) or "Circuit breaker open", code="CIRCUIT_OPEN", error=e)
        return result, attempts

    async def run(self, data: Any) -> JobResult:
        """Handle one queue message end to end."""
        result, attempts = await self.execute(data)

        try:
            if isinstance(result, Success):
                if not result.duplicate:
                    await self._acknowledge_sent(data, result)
            else:
                await self._dead_letter(data, result, attempts)
        except QueueUnavailableError as e:
            logger.error(
                "Could not publish job outcome",
                extra={"queue": self.queue, "error": e.message, "outcome": type(result).__name__},
            )
        return result

    async def _acknowledge_sent(self, data: Any, result: Success) -> None:
        request = validate(self.processor.profile.event_type, data)
        await self.publisher.email_sent(request, result.message_id)

    async def _dead_letter(self, data: Any, result: RetryableError | TerminalError, attempts: int) -> None:
        exhausted = isinstance(result, RetryableError)
        logger.error(
            "Job failed permanently" if not exhausted else "Job failed after retries",
            extra={"queue": self.queue, "code": result.code, "error": result.reason, "attempts": attempts},
        )
        await self.publisher.publish_dlq(self.queue, data, result.code, result.reason)

        # A message that broke the contract cannot be acknowledged to anyone
        try:
            request = validate(self.processor.profile.event_type, data)
        except InvalidPayloadError:
            return
        await self.publisher.email_failed(request, result.code, result.reason, attempts)


def _make_handler(runner: QueueJobRunner):
    async def handle(data: Any) -> None:
        bind_job_context(queue=runner.queue)
        logger.info("Job consumed")
        await runner.run(data)

    handle.__name__ = f"handle_{runner.queue.replace('-', '_')}"
    return handle


def register_email_consumers(broker: RedisBroker, runtime: "NotifierRuntime") -> list[QueueJobRunner]:
    """Subscribe one runner per registered processor to its stream."""
    consumers = runtime.app_config.events.consumers
    runners = []
    for processor in runtime.processors:
        config = consumers.get(processor.queue)
        if config is None:
            raise ValueError(f"events.yaml has no consumer for queue {processor.queue!r}")

        runner = QueueJobRunner(processor, config, runtime.publisher)
        broker.subscriber(
            stream=StreamSub(config.stream, group=config.group, consumer=config.consumer),
        )(_make_handler(runner))
        runners.append(runner)
        logger.info(
            "Consumer registered",
            extra={"queue": processor.queue, "stream": config.stream, "group": config.group},
        )
    return runners
