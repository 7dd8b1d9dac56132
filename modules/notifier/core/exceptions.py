"""
Custom Exceptions.

Application-specific exception classes for consistent error handling.

Error families and how they propagate:
    ValidationError / InvalidPayloadError  - malformed input, terminal
    TemplateError                          - bad template deployment, terminal
    TransportError                         - send failed, retryable
    QueueUnavailableError                  - queue backend down, handled by sync fallback
    ConflictError / InvalidTransitionError - lifecycle state conflicts
"""

from typing import Any


class ApplicationError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, code: str = "SYS_INTERNAL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class NotFoundError(ApplicationError):
    """Raised when a resource cannot be found."""

    def __init__(self, message: str = "Resource not found", code: str = "RES_NOT_FOUND") -> None:
        super().__init__(message, code=code)


class ValidationError(ApplicationError):
    """Raised when validation fails."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: dict | None = None,
        code: str = "VAL_VALIDATION_ERROR",
    ) -> None:
        self.details = details or {}
        super().__init__(message, code=code)


class InvalidPayloadError(ValidationError):
    """Raised when an event envelope or its payload breaks the message contract."""

    def __init__(self, event_type: str, errors: list[dict[str, Any]]) -> None:
        self.event_type = event_type
        self.errors = errors
        super().__init__(
            f"Invalid {event_type} message",
            details={"event_type": event_type, "errors": errors},
            code="EVT_INVALID_PAYLOAD",
        )


class ConflictError(ApplicationError):
    """Raised when there is a state conflict."""

    def __init__(self, message: str = "Resource conflict", code: str = "RES_CONFLICT") -> None:
        super().__init__(message, code=code)


class InvalidTransitionError(ConflictError):
    """Raised when a notification cannot move from its current status to the requested one."""

    def __init__(self, notification_id: str, current: str, requested: str) -> None:
        self.notification_id = notification_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Notification {notification_id} cannot move from {current} to {requested}",
            code="NOTIF_INVALID_TRANSITION",
        )


class AttemptsExhaustedError(ConflictError):
    """Raised when a notification has used its whole attempt budget."""

    def __init__(self, notification_id: str, attempts: int, max_attempts: int) -> None:
        self.notification_id = notification_id
        self.attempts = attempts
        self.max_attempts = max_attempts
        super().__init__(
            f"Notification {notification_id} reached {attempts}/{max_attempts} attempts",
            code="NOTIF_ATTEMPTS_EXHAUSTED",
        )


class ExternalServiceError(ApplicationError):
    """Raised when an external service call fails."""

    def __init__(
        self,
        message: str = "External service error",
        code: str = "SYS_EXTERNAL_SERVICE_ERROR",
    ) -> None:
        super().__init__(message, code=code)


class TransportError(ExternalServiceError):
    """
    Raised when an email transport fails to hand a message over.

    status_code is None for failures below HTTP (DNS, refused connection,
    timeout, SMTP protocol errors).
    """

    def __init__(
        self,
        transport: str,
        message: str,
        status_code: int | None = None,
        status_text: str | None = None,
    ) -> None:
        self.transport = transport
        self.status_code = status_code
        self.status_text = status_text
        super().__init__(message, code="EMAIL_SEND_FAILED")


class QueueUnavailableError(ExternalServiceError):
    """Raised when the queue backend cannot accept a job."""

    def __init__(self, message: str = "Queue backend unavailable") -> None:
        super().__init__(message, code="QUEUE_UNAVAILABLE")


class TemplateError(ApplicationError):
    """Base class for template load and compilation failures."""

    def __init__(self, template_name: str, message: str, code: str) -> None:
        self.template_name = template_name
        super().__init__(message, code=code)


class TemplateLoadError(TemplateError):
    """Raised when a template cannot be read from its store."""

    def __init__(self, template_name: str, reason: str) -> None:
        self.reason = reason
        super().__init__(
            template_name,
            f"Template {template_name} could not be loaded: {reason}",
            code="TEMPLATE_LOAD_FAILED",
        )


class TemplateCompilationError(TemplateError):
    """Raised when a template cannot produce any output."""

    def __init__(self, template_name: str, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(
            template_name,
            f"Template {template_name} failed to compile: {'; '.join(errors)}",
            code="TEMPLATE_COMPILATION_FAILED",
        )


class DatabaseError(ApplicationError):
    """Raised when a database operation fails."""

    def __init__(self, message: str = "Database error") -> None:
        super().__init__(message, code="SYS_DATABASE_ERROR")
