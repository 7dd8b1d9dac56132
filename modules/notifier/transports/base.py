"""
Email Transport Contract.

Every transport implements `send` and either returns a DeliveryReceipt or
raises TransportError. Transports never retry; retry policy belongs to the
caller (queue adapter or lifecycle replay).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class DeliveryReceipt:
    """Proof that a transport accepted a message. `message_id` is None when the provider gave none."""

    message_id: str | None
    transport: str


class EmailTransport(ABC):
    """Abstract email sender."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in logs and errors."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        *,
        to_name: str | None = None,
    ) -> DeliveryReceipt:
        """
        Deliver one message to one recipient.

        Raises:
            TransportError: on any delivery failure, network failures included.
        """

    async def aclose(self) -> None:
        """Release held connections. Default: nothing to release."""
        return None
