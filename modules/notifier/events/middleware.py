"""
Job Context Middleware.

Installed on the RedisBroker, so it wraps every email queue subscriber.
Binds the envelope identifiers to structlog before the handler runs and
logs how long the job took. The queue name is bound by the job runner,
which knows which subscriber it serves.

The job id of an email notification is its envelope's eventId, so a log
search for one id finds both the consumer lines and the lifecycle lines.
"""

import time
from typing import Any

from faststream import BaseMiddleware

from modules.notifier.core.logging import bind_job_context, clear_job_context, get_logger

logger = get_logger(__name__)


def envelope_identifiers(data: Any) -> dict[str, str]:
    """eventId and eventType of a decoded body; 'unknown' for anything missing."""
    if not isinstance(data, dict):
        return {"event_id": "unknown", "event_type": "unknown", "job_id": "unknown"}
    event_id = str(data.get("eventId") or "unknown")
    return {
        "event_id": event_id,
        "event_type": str(data.get("eventType") or "unknown"),
        "job_id": event_id,
    }


class JobContextMiddleware(BaseMiddleware):
    """One instance per consumed message."""

    _started: float | None = None

    async def on_consume(self, msg):
        # Malformed bodies are rejected by the contract layer; only the ids are read here
        bind_job_context(**envelope_identifiers(await msg.decode()))
        self._started = time.perf_counter()
        return await super().on_consume(msg)

    async def after_consume(self, err):
        duration_ms = None
        if self._started is not None:
            duration_ms = round((time.perf_counter() - self._started) * 1000, 1)

        if err is not None:
            logger.error(
                "Job handler raised",
                extra={"duration_ms": duration_ms, "error_type": type(err).__name__, "error": str(err)},
            )
        else:
            logger.info("Job handled", extra={"duration_ms": duration_ms})

        clear_job_context()
        return await super().after_consume(err)
