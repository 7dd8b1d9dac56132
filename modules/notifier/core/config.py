"""
Configuration Management.

Loads secrets from config/.env and settings from config/settings/*.yaml.
No hardcoded values in code; all configuration comes from these sources.

Secrets (.env or process environment):
    DB_PASSWORD, REDIS_PASSWORD, SMTP_PASSWORD, EMAIL_API_TOKEN

Environment overrides (applied on top of the YAML values):
    REDIS_HOST, REDIS_PORT, REDIS_MAX_RETRIES,
    EMAIL_SENDER_ADDRESS, EMAIL_SENDER_NAME,
    EMAIL_LOCALE, EMAIL_TIMEZONE, LOG_LEVEL

Settings (YAML):
    application.yaml    - App identity, server, cors, pagination
    database.yaml       - Database, Redis and queue monitor settings
    logging.yaml        - Logging configuration
    features.yaml       - Feature flags
    observability.yaml  - Health check configuration
    concurrency.yaml    - Thread pool, per-transport delivery limits, shutdown
    events.yaml         - Queue streams, consumers, DLQ, acknowledgements
    notifications.yaml  - Transport choice, sender, templates, lifecycle

Configuration is read once per process; there is no hot reload.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from modules.notifier.core.config_schema import (
    ApplicationSchema,
    ConcurrencySchema,
    DatabaseSchema,
    EventsSchema,
    FeaturesSchema,
    LoggingSchema,
    NotificationsSchema,
    ObservabilitySchema,
)


def find_project_root() -> Path:
    """Find project root by looking for .project_root marker file."""
    current = Path.cwd()
    while current != current.parent:
        if (current / ".project_root").exists():
            return current
        current = current.parent
    raise RuntimeError("Project root not found. Ensure .project_root file exists.")


def validate_project_root() -> Path:
    """
    Validate that the project root can be found.

    Raises SystemExit with a clear message if .project_root is not found.
    Use this in entry scripts before any configuration loading.
    """
    try:
        return find_project_root()
    except RuntimeError as e:
        raise SystemExit(f"Error: {e}") from e


def load_yaml_config(filename: str) -> dict[str, Any]:
    """Load a YAML configuration file from config/settings/."""
    project_root = find_project_root()
    config_path = project_root / "config" / "settings" / filename

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


class Settings(BaseSettings):
    """Secrets and environment overrides loaded from config/.env and the environment."""

    db_password: str = ""
    redis_password: str = ""
    smtp_password: str = ""
    email_api_token: str = ""

    redis_host: str | None = None
    redis_port: int | None = None
    redis_max_retries: int | None = None
    email_sender_address: str | None = None
    email_sender_name: str | None = None
    email_locale: str | None = None
    email_timezone: str | None = None
    log_level: str | None = None

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


def _load_validated(schema_cls: type, filename: str) -> Any:
    """Load YAML and validate against schema. Returns typed model instance."""
    raw = load_yaml_config(filename)
    try:
        return schema_cls(**raw)
    except ValidationError as e:
        raise ValueError(
            f"Invalid configuration in {filename}:\n{e}"
        ) from e


class AppConfig:
    """
    Application configuration loaded from YAML files.

    Each YAML file is validated against its Pydantic schema at load time.
    Missing keys, wrong types, or unknown fields raise a clear error
    immediately instead of causing cryptic KeyErrors later.

    Environment overrides from Settings are applied once, after validation.
    Properties return typed Pydantic model instances with attribute access.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._application = _load_validated(ApplicationSchema, "application.yaml")
        self._database = _load_validated(DatabaseSchema, "database.yaml")
        self._logging = _load_validated(LoggingSchema, "logging.yaml")
        self._features = _load_validated(FeaturesSchema, "features.yaml")
        self._observability = _load_validated(ObservabilitySchema, "observability.yaml")
        self._concurrency = _load_validated(ConcurrencySchema, "concurrency.yaml")
        self._events = _load_validated(EventsSchema, "events.yaml")
        self._notifications = _load_validated(NotificationsSchema, "notifications.yaml")

        if settings is not None:
            self._apply_overrides(settings)

    def _apply_overrides(self, settings: Settings) -> None:
        """Overlay environment-provided values onto the YAML configuration."""
        redis = self._database.redis
        redis_update: dict[str, Any] = {}
        if settings.redis_host:
            redis_update["host"] = settings.redis_host
        if settings.redis_port is not None:
            redis_update["port"] = settings.redis_port
        if settings.redis_max_retries is not None:
            redis_update["monitor"] = redis.monitor.model_copy(
                update={"max_connect_attempts": max(1, settings.redis_max_retries)},
            )
        if redis_update:
            self._database = self._database.model_copy(
                update={"redis": redis.model_copy(update=redis_update)},
            )

        notifications = self._notifications
        sender_update = {
            key: value
            for key, value in (
                ("address", settings.email_sender_address),
                ("name", settings.email_sender_name),
            )
            if value
        }
        templates_update = {
            key: value
            for key, value in (
                ("locale", settings.email_locale),
                ("timezone", settings.email_timezone),
            )
            if value
        }
        if sender_update or templates_update:
            self._notifications = notifications.model_copy(
                update={
                    "sender": notifications.sender.model_copy(update=sender_update),
                    "templates": notifications.templates.model_copy(update=templates_update),
                },
            )

        if settings.log_level:
            self._logging = self._logging.model_copy(update={"level": settings.log_level})

    @property
    def application(self) -> ApplicationSchema:
        """Application settings."""
        return self._application

    @property
    def database(self) -> DatabaseSchema:
        """Database and Redis settings."""
        return self._database

    @property
    def logging(self) -> LoggingSchema:
        """Logging settings."""
        return self._logging

    @property
    def features(self) -> FeaturesSchema:
        """Feature flags."""
        return self._features

    @property
    def observability(self) -> ObservabilitySchema:
        """Health check settings."""
        return self._observability

    @property
    def concurrency(self) -> ConcurrencySchema:
        """Concurrency settings (thread pool, delivery limits, shutdown)."""
        return self._concurrency

    @property
    def events(self) -> EventsSchema:
        """Queue streams, consumers and dead-letter settings."""
        return self._events

    @property
    def notifications(self) -> NotificationsSchema:
        """Transport, template and lifecycle settings."""
        return self._notifications


@lru_cache
def get_settings() -> Settings:
    """Get cached secrets instance. Resolves .env path from project root."""
    env_path = find_project_root() / "config" / ".env"
    return Settings(_env_file=str(env_path))


@lru_cache
def get_app_config() -> AppConfig:
    """Get cached application configuration."""
    return AppConfig(settings=get_settings())


def get_database_url() -> str:
    """asyncpg URL of the notification store, from database.yaml and DB_PASSWORD."""
    db = get_app_config().database
    password = get_settings().db_password
    return f"postgresql+asyncpg://{db.user}:{password}@{db.host}:{db.port}/{db.name}"


def get_redis_url() -> str:
    """
    Construct Redis URL from YAML config and secrets.

    Returns:
        Redis connection URL string.
    """
    redis = get_app_config().database.redis
    password = get_settings().redis_password
    return f"redis://:{password}@{redis.host}:{redis.port}/{redis.db}"
