"""
Configuration Schemas.

Pydantic models defining the expected structure of each YAML config file.
Used by AppConfig to validate configuration at load time. If a YAML file
has missing keys, wrong types, or unknown fields, a clear ValidationError
is raised at startup instead of a cryptic KeyError deep in application code.

Each top-level class corresponds to one file in config/settings/:
    ApplicationSchema    → application.yaml
    DatabaseSchema       → database.yaml
    LoggingSchema        → logging.yaml
    FeaturesSchema       → features.yaml
    ObservabilitySchema  → observability.yaml
    ConcurrencySchema    → concurrency.yaml
    EventsSchema         → events.yaml
    NotificationsSchema  → notifications.yaml
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class _StrictBase(BaseModel):
    """Base with extra='forbid' so unknown YAML keys are caught immediately."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# application.yaml
# =============================================================================


class ServerSchema(_StrictBase):
    host: str
    port: int


class CorsSchema(_StrictBase):
    origins: list[str]


class PaginationSchema(_StrictBase):
    default_limit: int
    max_limit: int


class ApplicationSchema(_StrictBase):
    name: str
    version: str
    description: str
    environment: str
    debug: bool
    api_prefix: str
    docs_enabled: bool
    producer_name: str
    server: ServerSchema
    cors: CorsSchema
    pagination: PaginationSchema


# =============================================================================
# database.yaml
# =============================================================================


class BrokerSchema(_StrictBase):
    queue_name: str
    result_expiry_seconds: int


class QueueMonitorSchema(_StrictBase):
    max_connect_attempts: int = Field(ge=1)
    retry_step_ms: int = Field(ge=0)
    retry_max_delay_ms: int = Field(ge=0)
    connect_timeout_seconds: float = Field(gt=0)
    probe_interval_seconds: float = Field(ge=0)


class RedisSchema(_StrictBase):
    host: str
    port: int
    db: int
    broker: BrokerSchema
    monitor: QueueMonitorSchema


class DatabaseSchema(_StrictBase):
    host: str
    port: int
    name: str
    user: str
    pool_size: int
    max_overflow: int
    pool_timeout: int
    pool_recycle: int
    echo: bool
    echo_pool: bool
    redis: RedisSchema


# =============================================================================
# logging.yaml
# =============================================================================


class ConsoleHandlerSchema(_StrictBase):
    enabled: bool


class FileHandlerSchema(_StrictBase):
    enabled: bool
    path: str
    max_bytes: int
    backup_count: int


class HandlersSchema(_StrictBase):
    console: ConsoleHandlerSchema
    file: FileHandlerSchema


class LoggingSchema(_StrictBase):
    level: str
    format: str
    handlers: HandlersSchema


# =============================================================================
# features.yaml
# =============================================================================


class FeaturesSchema(_StrictBase):
    api_detailed_errors: bool
    api_request_logging: bool
    events_publish_enabled: bool
    notifications_sync_fallback_enabled: bool
    notifications_preferences_enforced: bool
    notifications_maintenance_enabled: bool


# =============================================================================
# observability.yaml
# =============================================================================


class HealthChecksSchema(_StrictBase):
    ready_timeout_seconds: int


class ObservabilitySchema(_StrictBase):
    health_checks: HealthChecksSchema


# =============================================================================
# concurrency.yaml
# =============================================================================


class ThreadPoolSchema(_StrictBase):
    max_workers: int


class DeliveryLimitsSchema(_StrictBase):
    """Concurrent sends per transport; `default` covers unlisted transports."""

    smtp: int = Field(ge=1)
    http_api: int = Field(ge=1)
    default: int = Field(ge=1)


class ShutdownSchema(_StrictBase):
    drain_seconds: int


class ConcurrencySchema(_StrictBase):
    thread_pool: ThreadPoolSchema
    delivery_limits: DeliveryLimitsSchema
    shutdown: ShutdownSchema


# =============================================================================
# events.yaml
# =============================================================================


class EventBrokerSchema(_StrictBase):
    type: str


class EventStreamsSchema(_StrictBase):
    default_maxlen: int


class ConsumerCircuitBreakerSchema(_StrictBase):
    fail_max: int
    timeout_duration: int


class ConsumerRetrySchema(_StrictBase):
    max_attempts: int = Field(ge=1)
    backoff_multiplier: float
    backoff_max: float


class ConsumerConfigSchema(_StrictBase):
    stream: str
    group: str
    consumer: str
    criticality: str
    circuit_breaker: ConsumerCircuitBreakerSchema
    retry: ConsumerRetrySchema
    processing_timeout: int


class EventDlqSchema(_StrictBase):
    enabled: bool
    stream_prefix: str


class AcknowledgementsSchema(_StrictBase):
    stream: str


class EventsSchema(_StrictBase):
    broker: EventBrokerSchema
    streams: EventStreamsSchema
    consumers: dict[str, ConsumerConfigSchema]
    dlq: EventDlqSchema
    acknowledgements: AcknowledgementsSchema


# =============================================================================
# notifications.yaml
# =============================================================================


class SenderSchema(_StrictBase):
    address: str
    name: str


class SmtpRelaySchema(_StrictBase):
    host: str
    port: int
    username: str
    use_tls: bool
    timeout_seconds: float


class HttpApiSchema(_StrictBase):
    base_url: str
    timeout_seconds: float


class TemplatesSchema(_StrictBase):
    directory: str
    locale: str
    timezone: str
    datetime_pattern: str


class ProcessorSchema(_StrictBase):
    html_template: str
    text_template: str | None = None
    subject: str


class LifecycleSchema(_StrictBase):
    max_attempts: int = Field(ge=1)
    retry_backoff_seconds: float = Field(ge=0)
    query_page_size: int = Field(ge=1)
    retention_days: int = Field(ge=1)


class NotificationsSchema(_StrictBase):
    transport: Literal["smtp", "http_api"]
    sender: SenderSchema
    smtp: SmtpRelaySchema
    http_api: HttpApiSchema
    templates: TemplatesSchema
    processors: dict[str, ProcessorSchema]
    lifecycle: LifecycleSchema
