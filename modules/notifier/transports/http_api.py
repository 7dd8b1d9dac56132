"""
HTTP Email API Transport.

Sends through a third-party email API (`POST /smtp/emails`) with a bearer
token. The HTML body travels base64-encoded. One request per send.

Request body:
    {"email": {"html": <base64>, "text": ..., "subject": ...,
               "from": {"email": ..., "name": ...},
               "to": [{"email": ..., "name": ...}],
               "auto_plain_text": bool}}

Response body:
    {"result": true, "id": "..."}
"""

import base64
from typing import Any

import httpx

from modules.notifier.core.exceptions import TransportError
from modules.notifier.core.logging import get_logger
from modules.notifier.transports.base import DeliveryReceipt, EmailTransport

logger = get_logger(__name__)

SEND_PATH = "/smtp/emails"


class HttpApiTransport(EmailTransport):
    """EmailTransport over the provider's HTTP API."""

    def __init__(
        self,
        base_url: str,
        token: str,
        sender_address: str,
        sender_name: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.sender_address = sender_address
        self.sender_name = sender_name
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    @property
    def name(self) -> str:
        return "http_api"

    def _build_body(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None,
        to_name: str | None,
    ) -> dict[str, Any]:
        recipient: dict[str, str] = {"email": to}
        if to_name:
            recipient["name"] = to_name

        email: dict[str, Any] = {
            "html": base64.b64encode(html_body.encode("utf-8")).decode("ascii"),
            "subject": subject,
            "from": {"email": self.sender_address, "name": self.sender_name},
            "to": [recipient],
            "auto_plain_text": text_body is None,
        }
        if text_body is not None:
            email["text"] = text_body
        return {"email": email}

    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        *,
        to_name: str | None = None,
    ) -> DeliveryReceipt:
        body = self._build_body(to, subject, html_body, text_body, to_name)

        try:
            response = await self._client.post(SEND_PATH, json=body, headers=self._headers)
        except httpx.HTTPError as e:
            logger.error(
                "Email API request failed",
                extra={"recipient": to, "error_type": type(e).__name__, "error": str(e)},
            )
            raise TransportError(self.name, f"Email API request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "Email API rejected message",
                extra={
                    "recipient": to,
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )
            raise TransportError(
                self.name,
                f"Email API returned {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                self.name,
                "Email API returned a non-JSON body",
                status_code=response.status_code,
                status_text=response.reason_phrase,
            ) from e

        if not isinstance(data, dict) or data.get("result") is not True:
            raise TransportError(
                self.name,
                f"Email API did not accept the message: {data!r}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
            )

        message_id = str(data["id"]) if data.get("id") else None
        logger.info("Email sent via API", extra={"recipient": to, "message_id": message_id})
        return DeliveryReceipt(message_id=message_id, transport=self.name)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
