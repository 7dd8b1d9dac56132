"""
Message Contract Layer.

Pure validation and serialization of event envelopes. `validate` is the only
way raw queue data becomes a typed envelope; `serialize` is its exact
inverse, so `validate(e.event_type, serialize(e)) == e`.

Usage:
    from modules.notifier.events.contracts import validate, serialize

    envelope = validate("EmailVerificationRequested", raw)
    raw = serialize(envelope)
"""

from typing import Any
from uuid import uuid4

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from modules.notifier.core.exceptions import InvalidPayloadError
from modules.notifier.core.utils import isoformat_utc
from modules.notifier.events.schemas import (
    ENVELOPE_MODELS,
    SUPPORTED_VERSIONS,
    Envelope,
    EventEnvelope,
    EventType,
)

QUEUE_FOR_EVENT: dict[str, str] = {
    EventType.EMAIL_VERIFICATION_REQUESTED: "email-verification",
    EventType.PASSWORD_RESET_REQUESTED: "password-reset",
}
"""Queue (stream) name each request event is published on."""

ACKNOWLEDGEMENTS: dict[str, tuple[EventType, EventType]] = {
    EventType.EMAIL_VERIFICATION_REQUESTED: (
        EventType.EMAIL_VERIFICATION_SENT,
        EventType.EMAIL_VERIFICATION_FAILED,
    ),
    EventType.PASSWORD_RESET_REQUESTED: (
        EventType.PASSWORD_RESET_SENT,
        EventType.PASSWORD_RESET_FAILED,
    ),
}
"""Request event type -> (sent event type, failed event type)."""

_envelope_adapter: TypeAdapter[Any] = TypeAdapter(Envelope)

__all__ = [
    "ACKNOWLEDGEMENTS",
    "QUEUE_FOR_EVENT",
    "SUPPORTED_VERSIONS",
    "new_envelope",
    "serialize",
    "validate",
]


def _error_list(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": ".".join(str(part) for part in err["loc"]),
            "msg": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors(include_url=False, include_input=False)
    ]


def validate(event_type: str, raw: Any) -> EventEnvelope:
    """
    Validate raw queue data as an envelope of the expected event type.

    Raises:
        InvalidPayloadError: on any contract violation; nothing is coerced.
    """
    if event_type not in ENVELOPE_MODELS:
        raise InvalidPayloadError(
            event_type,
            [{"loc": "eventType", "msg": f"Unknown event type {event_type!r}", "type": "unknown_event_type"}],
        )
    if not isinstance(raw, dict):
        raise InvalidPayloadError(
            event_type,
            [{"loc": "", "msg": "Message must be a JSON object", "type": "dict_type"}],
        )

    received_type = raw.get("eventType")
    if received_type != event_type:
        raise InvalidPayloadError(
            event_type,
            [{
                "loc": "eventType",
                "msg": f"Expected {event_type!r}, received {received_type!r}",
                "type": "event_type_mismatch",
            }],
        )

    try:
        return _envelope_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        raise InvalidPayloadError(event_type, _error_list(exc)) from exc


def serialize(envelope: EventEnvelope) -> dict[str, Any]:
    """Render an envelope to its wire form (camelCase keys, absent optionals omitted)."""
    return envelope.model_dump(mode="json", by_alias=True, exclude_none=True)


def new_envelope(
    event_type: EventType | str,
    payload: Any,
    producer: str,
    event_version: int = 1,
) -> EventEnvelope:
    """Build an outbound envelope with a fresh eventId and the current time."""
    model = ENVELOPE_MODELS[EventType(event_type)]
    return model(
        event_id=str(uuid4()),
        event_type=str(event_type),
        event_version=event_version,
        occurred_at=isoformat_utc(),
        producer=producer,
        payload=payload,
    )
