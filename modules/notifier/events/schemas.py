"""
Event Schemas.

Closed message contracts exchanged with producer services. Every message is
an envelope whose eventType selects exactly one payload shape, so a payload
is never handled as an untyped mapping past this module.

Wire format uses camelCase keys:

    {
        "eventId": "...",
        "eventType": "EmailVerificationRequested",
        "eventVersion": 1,
        "occurredAt": "2024-01-01T00:00:00Z",
        "producer": "oauth2-server",
        "payload": {"userId": "...", "email": "...", ...}
    }

Validation is strict: no type coercion, no unknown keys, ISO-8601 timestamps,
email addresses checked by email-validator. Adding a payload field requires a
new eventVersion.

Usage:
    from modules.notifier.events.schemas import EmailVerificationRequested

    envelope = EmailVerificationRequested(
        event_id=str(uuid4()),
        event_type="EmailVerificationRequested",
        event_version=1,
        occurred_at="2024-01-01T00:00:00Z",
        producer="oauth2-server",
        payload=EmailVerificationRequestedPayload(...),
    )
"""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StrictInt,
    StrictStr,
    model_validator,
)
from pydantic.alias_generators import to_camel


class EventType(StrEnum):
    """Every event type the service consumes or publishes."""

    EMAIL_VERIFICATION_REQUESTED = "EmailVerificationRequested"
    EMAIL_VERIFICATION_SENT = "EmailVerificationSent"
    EMAIL_VERIFICATION_FAILED = "EmailVerificationFailed"
    PASSWORD_RESET_REQUESTED = "PasswordResetRequested"
    PASSWORD_RESET_SENT = "PasswordResetSent"
    PASSWORD_RESET_FAILED = "PasswordResetFailed"


SUPPORTED_VERSIONS: dict[str, frozenset[int]] = {
    EventType.EMAIL_VERIFICATION_REQUESTED: frozenset({1}),
    EventType.EMAIL_VERIFICATION_SENT: frozenset({1}),
    EventType.EMAIL_VERIFICATION_FAILED: frozenset({1}),
    EventType.PASSWORD_RESET_REQUESTED: frozenset({1}),
    EventType.PASSWORD_RESET_SENT: frozenset({1}),
    EventType.PASSWORD_RESET_FAILED: frozenset({1}),
}


def _check_not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


def _check_iso8601(value: str) -> str:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError("must be an ISO-8601 timestamp") from exc
    return value


OpaqueString = Annotated[StrictStr, AfterValidator(_check_not_blank)]
Timestamp = Annotated[StrictStr, AfterValidator(_check_iso8601)]
Locale = Literal["fr", "en", "ar"]


class ContractModel(BaseModel):
    """Closed, immutable model with camelCase wire names.

    Scalar fields use Strict* types so wrong primitive types are rejected
    instead of coerced.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Payloads
# =============================================================================


class EmailVerificationRequestedPayload(ContractModel):
    user_id: OpaqueString
    email: EmailStr
    username: OpaqueString
    token: OpaqueString
    verification_link: OpaqueString
    expires_at: Timestamp
    locale: Locale | None = None


class PasswordResetRequestedPayload(ContractModel):
    user_id: OpaqueString
    email: EmailStr
    username: OpaqueString
    token: OpaqueString
    reset_link: OpaqueString
    expires_at: Timestamp
    locale: Locale | None = None


class EmailSentPayload(ContractModel):
    """Acknowledgement payload for a delivered email."""

    job_id: OpaqueString | None = None
    user_id: OpaqueString
    email: EmailStr
    message_id: OpaqueString
    sent_at: Timestamp


class EmailFailedPayload(ContractModel):
    """Acknowledgement payload for an email that could not be delivered."""

    job_id: OpaqueString | None = None
    user_id: OpaqueString
    email: EmailStr
    error_code: StrictStr | None = None
    error_reason: OpaqueString
    attempts_made: StrictInt = Field(ge=0)
    failed_at: Timestamp


RequestPayload = EmailVerificationRequestedPayload | PasswordResetRequestedPayload


# =============================================================================
# Envelopes
# =============================================================================


class EventEnvelope(ContractModel):
    """Fields shared by every envelope. Concrete envelopes pin event_type and payload."""

    event_id: OpaqueString
    event_type: str
    event_version: StrictInt
    occurred_at: Timestamp
    producer: OpaqueString

    @model_validator(mode="after")
    def _check_version(self) -> "EventEnvelope":
        supported = SUPPORTED_VERSIONS.get(self.event_type, frozenset())
        if self.event_version not in supported:
            raise ValueError(
                f"eventVersion {self.event_version} is not supported for {self.event_type} "
                f"(supported: {sorted(supported)})"
            )
        return self


class EmailVerificationRequested(EventEnvelope):
    event_type: Literal["EmailVerificationRequested"]
    payload: EmailVerificationRequestedPayload


class PasswordResetRequested(EventEnvelope):
    event_type: Literal["PasswordResetRequested"]
    payload: PasswordResetRequestedPayload


class EmailVerificationSent(EventEnvelope):
    event_type: Literal["EmailVerificationSent"]
    payload: EmailSentPayload


class EmailVerificationFailed(EventEnvelope):
    event_type: Literal["EmailVerificationFailed"]
    payload: EmailFailedPayload


class PasswordResetSent(EventEnvelope):
    event_type: Literal["PasswordResetSent"]
    payload: EmailSentPayload


class PasswordResetFailed(EventEnvelope):
    event_type: Literal["PasswordResetFailed"]
    payload: EmailFailedPayload


Envelope = Annotated[
    Union[
        EmailVerificationRequested,
        PasswordResetRequested,
        EmailVerificationSent,
        EmailVerificationFailed,
        PasswordResetSent,
        PasswordResetFailed,
    ],
    Field(discriminator="event_type"),
]
"""Tagged union of every envelope, discriminated on eventType."""

RequestEnvelope = EmailVerificationRequested | PasswordResetRequested

ENVELOPE_MODELS: dict[str, type[EventEnvelope]] = {
    EventType.EMAIL_VERIFICATION_REQUESTED: EmailVerificationRequested,
    EventType.EMAIL_VERIFICATION_SENT: EmailVerificationSent,
    EventType.EMAIL_VERIFICATION_FAILED: EmailVerificationFailed,
    EventType.PASSWORD_RESET_REQUESTED: PasswordResetRequested,
    EventType.PASSWORD_RESET_SENT: PasswordResetSent,
    EventType.PASSWORD_RESET_FAILED: PasswordResetFailed,
}
