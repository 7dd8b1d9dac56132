"""
Centralized Logging Configuration.

All modules log through this setup. Configuration is loaded from
config/settings/logging.yaml; LOG_LEVEL in the environment overrides the
level through AppConfig.

Structured fields in every JSON log record:
    timestamp   - ISO 8601 UTC timestamp
    level       - debug, info, warning, error, critical
    logger      - Module path (e.g., modules.notifier.processors.email)
    event       - Log message
    func_name   - Function that emitted the log
    lineno      - Line number in source file
    source      - api, events, tasks or cli
    request_id  - Request correlation ID (HTTP requests)
    queue       - Queue name (queue consumers)
    event_id    - Envelope id (queue consumers)

Recipient addresses are masked before rendering (`jane.doe@acme.fr` is
written as `j***@acme.fr`), in top-level fields and inside `extra`.

Usage:
    from modules.notifier.core.logging import get_logger, setup_logging

    setup_logging()
    setup_logging(level="DEBUG", format_type="console")

    logger = get_logger(__name__)
    logger.info("Email sent via SMTP", extra={"recipient": to, "message_id": message_id})

    # Everything logged while a queue message is handled carries these
    bind_job_context(queue="email-verification", event_id="...")

Log File:
    logs/system.jsonl, rotated by size
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from modules.notifier.core.config import find_project_root, load_yaml_config

MASKED_FIELDS = frozenset({"recipient", "email", "to"})

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "faststream.access", "taskiq.receiver.receiver")

_JOB_CONTEXT_KEYS = ("queue", "event_id", "event_type", "job_id")

_logging_config: dict[str, Any] | None = None


def _load_logging_config() -> dict[str, Any]:
    """
    Load config/settings/logging.yaml once.

    Raises:
        FileNotFoundError: If logging.yaml does not exist
    """
    global _logging_config
    if _logging_config is None:
        _logging_config = load_yaml_config("logging.yaml")
    return _logging_config


def _resolve_log_path(configured_path: str) -> Path:
    return find_project_root() / configured_path


def mask_address(value: Any) -> Any:
    """Keep the first character of the local part and the whole domain."""
    if not isinstance(value, str) or "@" not in value:
        return value
    local, _, domain = value.partition("@")
    return f"{local[:1]}***@{domain}"


def mask_recipients(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """structlog processor masking addresses in MASKED_FIELDS."""
    for key in MASKED_FIELDS & event_dict.keys():
        event_dict[key] = mask_address(event_dict[key])

    extra = event_dict.get("extra")
    if isinstance(extra, dict) and MASKED_FIELDS & extra.keys():
        event_dict["extra"] = {
            key: mask_address(value) if key in MASKED_FIELDS else value
            for key, value in extra.items()
        }
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        mask_recipients,
    ]


def _file_handler(file_config: dict[str, Any], formatter: logging.Formatter) -> RotatingFileHandler:
    log_path = _resolve_log_path(file_config["path"])
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=file_config["max_bytes"],
        backupCount=file_config["backup_count"],
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str | None = None,
    format_type: str | None = None,
    enable_console: bool | None = None,
    enable_file_logging: bool | None = None,
) -> None:
    """
    Configure structlog and the root logger.

    Arguments override the matching logging.yaml values.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_type: 'json' or 'console' (console output only; the file is always JSON)
        enable_console: Write to stdout
        enable_file_logging: Write to the rotating JSONL file
    """
    config = _load_logging_config()
    handlers_config = config["handlers"]

    effective_level = level if level is not None else config["level"]
    effective_format = format_type if format_type is not None else config["format"]
    console_enabled = enable_console if enable_console is not None else handlers_config["console"]["enabled"]
    file_enabled = enable_file_logging if enable_file_logging is not None else handlers_config["file"]["enabled"]

    shared = _shared_processors()
    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    json_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=shared,
    )
    if effective_format == "console":
        console_formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=True),
            foreign_pre_chain=shared,
        )
    else:
        console_formatter = json_formatter

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, effective_level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if console_enabled:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    if file_enabled:
        root_logger.addHandler(_file_handler(handlers_config["file"], json_formatter))

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Return a structlog logger, typically get_logger(__name__)."""
    return structlog.get_logger(name)


def bind_job_context(**context: Any) -> None:
    """Bind queue job identifiers so every log line of the job carries them."""
    structlog.contextvars.bind_contextvars(source="events", **context)


def clear_job_context() -> None:
    """Remove the identifiers bound by bind_job_context."""
    structlog.contextvars.unbind_contextvars("source", *_JOB_CONTEXT_KEYS)
