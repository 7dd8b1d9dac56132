#!/usr/bin/env python3
"""
Notifier CLI.

Primary entry point for all application operations.
Use --service to select what to run, --action to control the HTTP server lifecycle.

Usage:
    python cli.py --help
    python cli.py --service server --verbose
    python cli.py --service server --action stop
    python cli.py --service consumer --verbose
    python cli.py --service health --debug
    python cli.py --service stats
    python cli.py --service run-task --task purge
    python cli.py --service config
    python cli.py --service test --test-type unit
"""

import asyncio
import os
import signal
import subprocess
import sys
from pathlib import Path

import click
import structlog

PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from modules.notifier.core.logging import get_logger, setup_logging

PORT_BOUND_SERVICES = {"server"}


def validate_project_root() -> Path:
    """Validate that we're running from the project root."""
    if not (PROJECT_ROOT / ".project_root").exists():
        click.echo(
            click.style("Error: .project_root not found. Run from project root.", fg="red"),
            err=True,
        )
        sys.exit(1)
    return PROJECT_ROOT


def _find_process_on_port(port: int) -> list[int]:
    """Find PIDs listening on a port."""
    result = subprocess.run(
        ["lsof", "-ti", f":{port}"],
        capture_output=True, text=True,
    )
    pids = result.stdout.strip().split("\n")
    return [int(p) for p in pids if p.strip()]


def _service_stop(logger, service: str, port: int) -> None:
    """Stop a running service by finding its process on the port."""
    pids = _find_process_on_port(port)
    if not pids:
        click.echo(f"No {service} running on port {port}.")
        return

    for pid in pids:
        os.kill(pid, signal.SIGINT)
        logger.info("Sent SIGINT", extra={"service": service, "pid": pid, "port": port})

    click.echo(f"{service.title()} on port {port} stopped (PID: {', '.join(str(p) for p in pids)}).")


def _service_status(logger, service: str, port: int) -> None:
    """Check if a service is running on a port."""
    pids = _find_process_on_port(port)
    if pids:
        click.echo(f"{service.title()} is running on port {port} (PID: {', '.join(str(p) for p in pids)}).")
    else:
        click.echo(f"{service.title()} is not running on port {port}.")


def _get_service_port(port: int | None) -> int:
    """Get the port from argument or config."""
    if port is not None:
        return port
    from modules.notifier.core.config import get_app_config
    return get_app_config().application.server.port


def _run_subprocess(logger, cmd: list[str], name: str) -> None:
    try:
        subprocess.run(cmd, check=True)
    except KeyboardInterrupt:
        logger.info(f"{name} stopped")
    except subprocess.CalledProcessError as e:
        logger.error(f"{name} failed to start", extra={"exit_code": e.returncode})
        sys.exit(e.returncode)


@click.command()
@click.option(
    "--service", "-s",
    type=click.Choice([
        "server", "consumer", "worker", "scheduler",
        "db-init", "stats", "run-task", "health", "config", "test", "info",
    ]),
    default="info",
    help="Service or command to run.",
)
@click.option(
    "--action", "-a",
    type=click.Choice(["start", "stop", "restart", "status"]),
    default="start",
    help="Lifecycle action for the HTTP server.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output (INFO level logging).",
)
@click.option(
    "--debug", "-d",
    is_flag=True,
    help="Enable debug output (DEBUG level logging).",
)
@click.option(
    "--host",
    default=None,
    help="Server host.",
)
@click.option(
    "--port",
    default=None,
    type=int,
    help="Server port.",
)
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload (server only).",
)
@click.option(
    "--test-type",
    type=click.Choice(["all", "unit", "integration"]),
    default="all",
    help="Test type to run.",
)
@click.option(
    "--coverage",
    is_flag=True,
    help="Run tests with coverage.",
)
@click.option(
    "--task",
    type=click.Choice(["replay", "scheduled", "purge"]),
    default=None,
    help="Maintenance task to run once (run-task only).",
)
@click.option(
    "--workers",
    default=1,
    type=int,
    help="Number of worker processes.",
)
def main(
    service: str,
    action: str,
    verbose: bool,
    debug: bool,
    host: str | None,
    port: int | None,
    reload: bool,
    test_type: str,
    coverage: bool,
    task: str | None,
    workers: int,
) -> None:
    """
    Notifier CLI.

    Use --service to select what to run. For the HTTP server, use --action
    to control lifecycle (start/stop/restart/status).

    \b
    Examples:
        python cli.py --service server --verbose
        python cli.py --service server --action stop
        python cli.py --service server --action restart --port 8099
        python cli.py --service consumer --verbose
        python cli.py --service worker --verbose
        python cli.py --service scheduler --verbose
        python cli.py --service db-init
        python cli.py --service stats
        python cli.py --service run-task --task replay --verbose
        python cli.py --service health --debug
        python cli.py --service config
        python cli.py --service test --test-type unit --coverage
        python cli.py --service info
    """
    validate_project_root()

    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = "WARNING"

    setup_logging(level=log_level, format_type="console")

    structlog.contextvars.bind_contextvars(source="cli")

    logger = get_logger(__name__)

    logger.debug("CLI invoked", extra={"service": service, "action": action, "log_level": log_level})

    if service in PORT_BOUND_SERVICES and action != "start":
        service_port = _get_service_port(port)

        if action == "stop":
            _service_stop(logger, service, service_port)
            return
        elif action == "status":
            _service_status(logger, service, service_port)
            return
        elif action == "restart":
            _service_stop(logger, service, service_port)
            import time
            time.sleep(2)

    if service == "server":
        run_server(logger, host, port, reload)
    elif service == "consumer":
        run_consumer(logger)
    elif service == "worker":
        run_worker(logger, workers)
    elif service == "scheduler":
        run_scheduler(logger)
    elif service == "db-init":
        init_database(logger)
    elif service == "stats":
        show_stats(logger)
    elif service == "run-task":
        run_task_once(logger, task)
    elif service == "health":
        check_health(logger)
    elif service == "config":
        show_config(logger)
    elif service == "test":
        run_tests(logger, test_type, coverage)
    elif service == "info":
        show_info(logger)


def run_server(logger, host: str | None, port: int | None, reload: bool) -> None:
    """Start the FastAPI server."""
    from modules.notifier.core.config import get_app_config

    try:
        server_config = get_app_config().application.server
    except (FileNotFoundError, ValueError) as e:
        logger.error("Failed to load configuration.", extra={"error": str(e)})
        click.echo(
            click.style("Error: Could not load config/settings/application.yaml.", fg="red"),
            err=True,
        )
        sys.exit(1)

    server_host = host or server_config.host
    server_port = port or server_config.port

    logger.info(
        "Starting server",
        extra={"host": server_host, "port": server_port, "reload": reload},
    )

    cmd = [
        sys.executable, "-m", "uvicorn",
        "modules.notifier.main:app",
        "--host", server_host,
        "--port", str(server_port),
    ]

    if reload:
        cmd.append("--reload")

    click.echo(f"Starting server at http://{server_host}:{server_port}")
    click.echo("Press Ctrl+C to stop\n")

    _run_subprocess(logger, cmd, "Server")


def run_consumer(logger) -> None:
    """Start the FastStream consumers for the email queues."""
    from modules.notifier.core.config import get_app_config

    consumers = get_app_config().events.consumers
    logger.info("Starting queue consumers", extra={"queues": list(consumers)})

    cmd = [
        sys.executable, "-m", "faststream",
        "run", "--factory",
        "modules.notifier.events.broker:create_event_app",
    ]

    click.echo("Starting consumers:")
    for queue, config in consumers.items():
        click.echo(f"  - {queue} (group {config.group}, consumer {config.consumer})")
    click.echo("Press Ctrl+C to stop\n")

    _run_subprocess(logger, cmd, "Consumer")


def _check_redis_configured(logger) -> None:
    try:
        from modules.notifier.core.config import get_redis_url
        redis_url = get_redis_url()
        logger.debug("Redis configured", extra={"redis_url": redis_url.split("@")[-1]})
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error("Failed to load Redis configuration.", extra={"error": str(e)})
        click.echo(
            click.style(f"Error: Redis not configured: {e}", fg="red"),
            err=True,
        )
        sys.exit(1)


def run_worker(logger, workers: int) -> None:
    """Start the Taskiq maintenance worker."""
    logger.info("Starting maintenance worker", extra={"workers": workers})
    _check_redis_configured(logger)

    cmd = [
        sys.executable, "-m", "taskiq",
        "worker",
        "modules.notifier.tasks:broker",
        "--workers", str(workers),
    ]

    click.echo(f"Starting Taskiq worker with {workers} worker(s)")
    click.echo("Press Ctrl+C to stop\n")

    _run_subprocess(logger, cmd, "Worker")


def run_scheduler(logger) -> None:
    """Start the Taskiq scheduler for the maintenance schedule."""
    logger.info("Starting task scheduler")
    _check_redis_configured(logger)

    from modules.notifier.core.config import get_app_config
    from modules.notifier.tasks.scheduled import SCHEDULED_TASKS

    if not get_app_config().features.notifications_maintenance_enabled:
        click.echo(
            click.style(
                "Error: notifications_maintenance_enabled is false in features.yaml.",
                fg="red",
            ),
            err=True,
        )
        sys.exit(1)

    click.echo("Scheduled tasks:")
    for task_name, config in SCHEDULED_TASKS.items():
        schedule = config["schedule"][0].get("cron", "N/A")
        click.echo(f"  - {task_name}: {schedule}")
    click.echo()

    cmd = [
        sys.executable, "-m", "taskiq",
        "scheduler",
        "modules.notifier.tasks.scheduler:scheduler",
    ]

    click.echo("Starting Taskiq scheduler")
    click.echo("WARNING: Run only ONE scheduler instance to avoid duplicate task execution")
    click.echo("Press Ctrl+C to stop\n")

    _run_subprocess(logger, cmd, "Scheduler")


async def _create_tables() -> list[str]:
    from modules.notifier.core.database import create_schema, dispose_engine

    try:
        return await create_schema()
    finally:
        await dispose_engine()


def init_database(logger) -> None:
    """Create any missing tables."""
    from sqlalchemy.exc import SQLAlchemyError

    try:
        tables = asyncio.run(_create_tables())
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database initialisation failed", extra={"error": str(e)})
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    logger.info("Database initialised", extra={"tables": tables})
    click.echo("Tables ensured:")
    for table in tables:
        click.echo(f"  - {table}")


async def _lifecycle_stats() -> dict:
    from modules.notifier.core.config import get_app_config
    from modules.notifier.core.database import dispose_engine, get_session_factory
    from modules.notifier.services.notifications import NotificationService

    lifecycle = get_app_config().notifications.lifecycle
    try:
        async with get_session_factory()() as session:
            service = NotificationService(session, max_attempts=lifecycle.max_attempts)
            return await service.get_stats()
    finally:
        await dispose_engine()


def show_stats(logger) -> None:
    """Print notification counts from the lifecycle store."""
    from sqlalchemy.exc import SQLAlchemyError

    try:
        stats = asyncio.run(_lifecycle_stats())
    except (SQLAlchemyError, OSError) as e:
        logger.error("Could not read notification stats", extra={"error": str(e)})
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(f"Notifications: {stats['total']}")
    for group in ("by_status", "by_type", "by_channel"):
        click.echo(f"\n{group.replace('_', ' ').title()}:")
        for key, count in sorted(stats[group].items()):
            click.echo(f"  {key:<22}{count:>8}")


MAINTENANCE_TASKS = {
    "replay": "replay_retryable_notifications",
    "scheduled": "dispatch_scheduled_notifications",
    "purge": "purge_expired_notifications",
}


async def _run_maintenance(task_name: str) -> dict:
    from modules.notifier.core.database import dispose_engine
    from modules.notifier.runtime import build_runtime
    from modules.notifier.tasks import scheduled

    runtime = build_runtime()
    await runtime.start()
    try:
        return await getattr(scheduled, task_name)(runtime=runtime)
    finally:
        await runtime.stop()
        await dispose_engine()


def run_task_once(logger, task: str | None) -> None:
    """Run one maintenance task inline, outside the schedule."""
    if task is None:
        click.echo(click.style("Error: --task is required with --service run-task.", fg="red"), err=True)
        sys.exit(2)

    task_name = MAINTENANCE_TASKS[task]
    logger.info("Running maintenance task", extra={"task": task_name})
    result = asyncio.run(_run_maintenance(task_name))

    click.echo(f"{task_name}: {result['status']}")
    for key, value in result.items():
        if key != "status":
            click.echo(f"  {key}: {value}")


async def _probe_queue(app_config, settings) -> dict:
    from modules.notifier.runtime import create_monitor, create_redis_client

    monitor = create_monitor(app_config, create_redis_client(app_config, settings))
    monitor.probe_interval = 0
    try:
        await monitor.start()
        return monitor.get_status()
    finally:
        await monitor.stop()


def check_health(logger) -> None:
    """Check configuration, templates, transport and queue connectivity."""
    click.echo("Checking application health...\n")

    checks = []

    # Check 1: Configuration loading
    try:
        from modules.notifier.core.config import get_app_config, get_settings
        app_config = get_app_config()
        settings = get_settings()
        checks.append(("YAML configuration", True, f"App: {app_config.application.name}"))
        logger.debug("Configuration loaded", extra={"app_name": app_config.application.name})
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        checks.append(("YAML configuration", False, str(e)))
        logger.error("Configuration failed", extra={"error": str(e)})
        app_config = None

    if app_config is not None:
        # Check 2: Templates load and compile
        from modules.notifier.core.exceptions import TemplateError
        from modules.notifier.runtime import create_renderer

        renderer = create_renderer(app_config)
        for queue, processor in app_config.notifications.processors.items():
            names = [processor.html_template] + ([processor.text_template] if processor.text_template else [])
            try:
                for name in names:
                    renderer.render_template(name, {})
                checks.append((f"Templates ({queue})", True, ", ".join(names)))
            except TemplateError as e:
                checks.append((f"Templates ({queue})", False, e.message))

        # Check 3: Transport selection
        from modules.notifier.transports.factory import create_transport
        try:
            transport = create_transport(app_config, settings)
            checks.append(("Email transport", True, transport.name))
            asyncio.run(transport.aclose())
        except ValueError as e:
            checks.append(("Email transport", False, str(e)))

        # Check 4: Queue backend
        status = asyncio.run(_probe_queue(app_config, settings))
        detail = f"{status['host']}:{status['port']} after {status['attempts']} attempt(s)"
        checks.append(("Queue backend (async mode)", status["connected"], detail))

        # Check 5: FastAPI app
        from modules.notifier.main import create_app
        app = create_app()
        checks.append(("FastAPI application", True, f"Title: {app.title}"))

    click.echo("Health Check Results:")
    click.echo("-" * 50)

    all_passed = True
    for name, passed, detail in checks:
        status_str = click.style("✓ PASS", fg="green") if passed else click.style("✗ FAIL", fg="red")
        detail_str = f" ({detail})" if detail else ""
        click.echo(f"  {status_str}  {name}{detail_str}")
        if not passed:
            all_passed = False

    click.echo("-" * 50)

    if all_passed:
        click.echo(click.style("\nAll checks passed!", fg="green"))
    else:
        click.echo(click.style("\nSome checks failed. See details above.", fg="yellow"))
        click.echo("Note: without Redis the service runs in synchronous fallback mode.")


def _echo_section(title: str, values: dict, indent: int = 2) -> None:
    for key, value in values.items():
        if isinstance(value, dict):
            click.echo(f"{' ' * indent}{key}:")
            _echo_section(title, value, indent + 2)
        else:
            click.echo(f"{' ' * indent}{key}: {value}")


def show_config(logger) -> None:
    """Display loaded configuration (secrets are never printed)."""
    click.echo("Application Configuration:\n")

    try:
        from modules.notifier.core.config import get_app_config

        app_config = get_app_config()
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error("Failed to load configuration", extra={"error": str(e)})
        click.echo(click.style(f"Error loading configuration: {e}", fg="red"))
        sys.exit(1)

    sections = {
        "Application": app_config.application,
        "Database": app_config.database,
        "Logging": app_config.logging,
        "Feature Flags": app_config.features,
        "Events": app_config.events,
        "Notifications": app_config.notifications,
    }
    for title, section in sections.items():
        click.echo(f"{title} Settings (from YAML):")
        click.echo("-" * 40)
        _echo_section(title, section.model_dump())
        click.echo()

    logger.info("Configuration displayed successfully")


def run_tests(logger, test_type: str, coverage: bool) -> None:
    """Run the test suite."""
    logger.info("Running tests", extra={"type": test_type, "coverage": coverage})

    cmd = [sys.executable, "-m", "pytest"]

    if test_type == "unit":
        cmd.append("tests/unit")
    elif test_type == "integration":
        cmd.append("tests/integration")
    else:
        cmd.append("tests/")

    cmd.append("-v")

    if coverage:
        cmd.extend(["--cov=modules/notifier", "--cov-report=term-missing"])

    click.echo(f"Running: {' '.join(cmd)}\n")

    try:
        result = subprocess.run(cmd)
        sys.exit(result.returncode)
    except FileNotFoundError:
        logger.error("pytest not found. Install with: pip install -e '.[test]'")
        sys.exit(1)


def show_info(logger) -> None:
    """Display application information."""
    click.echo("Notifier")
    click.echo("=" * 40)

    try:
        from modules.notifier.core.config import get_app_config
        app_config = get_app_config()
        click.echo(f"Name: {app_config.application.name}")
        click.echo(f"Version: {app_config.application.version}")
        click.echo(f"Description: {app_config.application.description}")
        click.echo(f"Transport: {app_config.notifications.transport}")
        click.echo(f"Queues: {', '.join(app_config.notifications.processors)}")
    except (FileNotFoundError, ValueError, RuntimeError) as e:
        logger.error(
            "Failed to load application configuration",
            extra={"error": str(e)},
        )
        click.echo(
            click.style(
                "Error: Could not load application.yaml configuration.",
                fg="red",
            ),
            err=True,
        )
        sys.exit(1)

    click.echo()
    click.echo("Services (--service):")
    click.echo("  server         FastAPI server (dispatch, lifecycle, health)")
    click.echo("  consumer       FastStream consumers for the email queues")
    click.echo("  worker         Taskiq maintenance worker")
    click.echo("  scheduler      Taskiq maintenance scheduler (cron-based)")
    click.echo("  db-init        Create missing database tables")
    click.echo("  stats          Notification counts by status, type and channel")
    click.echo("  run-task       Run one maintenance task now (--task)")
    click.echo("  health         Check configuration, templates and queue")
    click.echo("  config         Display configuration")
    click.echo("  test           Run test suite")
    click.echo("  info           Show this information")
    click.echo()
    click.echo("Lifecycle actions (--action, server only):")
    click.echo("  start          Start the service (default)")
    click.echo("  stop           Stop a running service")
    click.echo("  restart        Stop then start")
    click.echo("  status         Check if running")
    click.echo()
    click.echo("Options:")
    click.echo("  --verbose, -v  Enable INFO level logging")
    click.echo("  --debug, -d    Enable DEBUG level logging")

    logger.debug("Info displayed")


if __name__ == "__main__":
    main()
