"""
Queue Connectivity Monitor.

Answers "is the queue backend usable right now?" without doing I/O on the
caller's path. The monitor owns an injected redis.asyncio client; there is no
module-level connection.

State changes:
    start()             bounded connect (linear backoff); unavailable on final failure
    mark_unavailable()  immediate, after a publish or probe failure
    mark_available()    after a fresh successful ping (reconnect signal)

Every transition is logged once; repeated failures in the same state are
not logged again.

Usage:
    monitor = QueueHealthMonitor(client, host="localhost", port=6379)
    await monitor.start()
    if monitor.is_available():
        ...
"""

import asyncio
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)

CONNECTIVITY_ERRORS = (RedisError, OSError, TimeoutError)


class QueueHealthMonitor:
    """Tracks availability of the Redis queue backend."""

    def __init__(
        self,
        client: Redis,
        host: str,
        port: int,
        max_attempts: int = 3,
        retry_step_ms: int = 100,
        retry_max_delay_ms: int = 2000,
        connect_timeout: float = 2.0,
        probe_interval: float = 10.0,
    ) -> None:
        self.client = client
        self.host = host
        self.port = port
        self.max_attempts = max(1, max_attempts)
        self.retry_step = retry_step_ms / 1000
        self.retry_max_delay = retry_max_delay_ms / 1000
        self.connect_timeout = connect_timeout
        self.probe_interval = probe_interval

        self._available = False
        self._attempts = 0
        self._last_error: str | None = None
        self._probe_task: asyncio.Task | None = None

    async def _ping(self) -> None:
        async with asyncio.timeout(self.connect_timeout):
            await self.client.ping()

    async def start(self) -> bool:
        """
        Connect with bounded retries and start the background probe.

        Backoff is linear (step, 2*step, ...) capped at retry_max_delay.
        Returns the resulting availability; never raises on connection failure.
        """
        self._attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_incrementing(
                    start=self.retry_step,
                    increment=self.retry_step,
                    max=self.retry_max_delay,
                ),
                retry=retry_if_exception_type(CONNECTIVITY_ERRORS),
            ):
                with attempt:
                    self._attempts = attempt.retry_state.attempt_number
                    await self._ping()
        except RetryError as e:
            error = e.last_attempt.exception()
            self._set_unavailable(str(error) if error else "connection failed")
        else:
            self._set_available()

        if self.probe_interval > 0 and self._probe_task is None:
            self._probe_task = asyncio.create_task(self._probe_loop(), name="queue-health-probe")

        return self._available

    def _set_available(self) -> None:
        if self._available:
            return
        self._available = True
        self._last_error = None
        logger.info(
            "Queue backend available",
            extra={"host": self.host, "port": self.port, "attempts": self._attempts},
        )

    def _set_unavailable(self, reason: str) -> None:
        was_available = self._available
        first_failure = self._last_error is None
        self._available = False
        self._last_error = reason
        if was_available or first_failure:
            logger.warning(
                "Queue backend unavailable, falling back to synchronous delivery",
                extra={
                    "host": self.host,
                    "port": self.port,
                    "attempts": self._attempts,
                    "error": reason,
                },
            )

    def is_available(self) -> bool:
        """Last known state. No I/O."""
        return self._available

    def get_status(self) -> dict[str, Any]:
        return {
            "connected": self._available,
            "host": self.host,
            "port": self.port,
            "attempts": self._attempts,
        }

    def mark_unavailable(self, reason: str) -> None:
        """Flip to unavailable after a connection error seen elsewhere."""
        self._set_unavailable(reason)

    def mark_available(self) -> None:
        """Flip to available after a fresh successful connection."""
        self._set_available()

    async def probe(self) -> bool:
        """Ping once and update state accordingly."""
        try:
            await self._ping()
        except CONNECTIVITY_ERRORS as e:
            self._set_unavailable(str(e) or type(e).__name__)
        else:
            self._set_available()
        return self._available

    async def _probe_loop(self) -> None:
        while True:
            await asyncio.sleep(self.probe_interval)
            await self.probe()

    async def stop(self) -> None:
        """Stop probing and close the client."""
        if self._probe_task is not None:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None
        await self.client.aclose()
        logger.debug("Queue monitor stopped")
