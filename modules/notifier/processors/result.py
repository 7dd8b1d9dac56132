"""
Job Results.

A processor never raises to signal retry. It returns one of:

    Success          message handed to the transport
    RetryableError   transient failure; the queue adapter retries
    TerminalError    permanent failure; the queue adapter dead-letters
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Success:
    message_id: str
    user_id: str
    email: str
    duplicate: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "messageId": self.message_id,
            "userId": self.user_id,
            "email": self.email,
        }


@dataclass(frozen=True)
class RetryableError:
    reason: str
    code: str
    error: BaseException | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class TerminalError:
    reason: str
    code: str
    error: BaseException | None = field(default=None, compare=False, repr=False)


JobResult = Success | RetryableError | TerminalError
