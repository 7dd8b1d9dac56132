"""
Health Check Endpoints.

Provides liveness, readiness, and detailed health checks.

Endpoints:
- /health: Liveness plus queue mode (async while Redis is reachable, sync otherwise)
- /health/ready: Readiness check (database reachable; queue degradation is reported, not fatal)
- /health/detailed: Component-by-component status (for debugging)

The Redis status comes from the runtime's QueueHealthMonitor; these endpoints
never open their own Redis connection.
"""

import asyncio
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from modules.notifier.core.concurrency import pool_status
from modules.notifier.core.config import get_app_config
from modules.notifier.core.database import ping
from modules.notifier.core.logging import get_logger
from modules.notifier.core.utils import isoformat_utc

router = APIRouter()
logger = get_logger(__name__)


def _runtime(request: Request):
    return getattr(request.app.state, "runtime", None)


async def check_database(request: Request) -> dict[str, Any]:
    """
    Check database connectivity.

    Returns:
        Dict with status, latency, and optional error message
    """
    runtime = _runtime(request)
    if runtime is None:
        return {"status": "not_configured"}

    try:
        latency_ms = await ping(runtime.session_factory)
        return {
            "status": "healthy",
            "latency_ms": latency_ms,
        }
    except Exception as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        return {
            "status": "unhealthy",
            "error": str(e),
        }


def redis_status(request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    if runtime is None:
        return {"status": "down", "connected": False}
    status = runtime.monitor.get_status()
    return {"status": "up" if status["connected"] else "down", **status}


def queue_status(request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    if runtime is None or not runtime.monitor.is_available():
        return {"status": "degraded", "mode": "sync"}
    return {"status": "up", "mode": "async"}


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """
    Liveness check with queue mode.

    Always 200 while the process runs; no I/O is done on this path.
    """
    return {
        "status": "ok",
        "timestamp": isoformat_utc(),
        "services": {
            "api": {"status": "up"},
            "redis": redis_status(request),
            "queue": queue_status(request),
        },
    }


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict[str, Any]:
    """
    Readiness check.

    Returns 503 when the database is unhealthy. A degraded queue does not fail
    readiness: dispatch falls back to synchronous delivery.
    """
    timeout = get_app_config().observability.health_checks.ready_timeout_seconds

    db_result: dict[str, Any] = {"status": "error", "error": "check did not run"}
    try:
        async with asyncio.timeout(timeout):
            db_result = await check_database(request)
    except TimeoutError:
        db_result = {"status": "unhealthy", "error": f"timed out after {timeout}s"}

    checks = {
        "database": db_result,
        "queue": queue_status(request),
    }

    if db_result.get("status") == "unhealthy":
        logger.warning("Readiness check failed", extra={"checks": checks})
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "checks": checks,
                "timestamp": isoformat_utc(),
            },
        )

    return {
        "status": "healthy",
        "checks": checks,
        "timestamp": isoformat_utc(),
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request) -> dict[str, Any]:
    """
    Detailed health check.

    Returns dependency checks, transport, queues and pool metrics.
    """
    app_settings = get_app_config().application
    runtime = _runtime(request)

    checks = {
        "database": await check_database(request),
        "redis": redis_status(request),
        "queue": queue_status(request),
    }

    pipeline: dict[str, Any] = {}
    if runtime is not None:
        pipeline = {
            "transport": runtime.transport.name,
            "queues": runtime.processors.queues,
        }

    overall_status = "unhealthy" if checks["database"].get("status") == "unhealthy" else "healthy"
    if overall_status == "healthy" and checks["queue"]["status"] == "degraded":
        overall_status = "degraded"

    return {
        "status": overall_status,
        "application": {
            "name": app_settings.name,
            "env": app_settings.environment,
            "debug": app_settings.debug,
            "version": app_settings.version,
        },
        "checks": checks,
        "pipeline": pipeline,
        "pools": pool_status(),
        "timestamp": isoformat_utc(),
    }
