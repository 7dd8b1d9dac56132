"""
SMTP Transport.

Sends through a mail relay with smtplib. The SMTP session is blocking, so it
runs in the shared I/O thread pool; the event loop is never blocked.

Port 465 uses implicit TLS (SMTP_SSL); any other port uses plain SMTP with
an optional STARTTLS upgrade.
"""

import asyncio
import smtplib
import ssl
from collections.abc import Callable
from concurrent.futures import Executor
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from modules.notifier.core.exceptions import TransportError
from modules.notifier.core.logging import get_logger
from modules.notifier.transports.base import DeliveryReceipt, EmailTransport

logger = get_logger(__name__)


class SmtpTransport(EmailTransport):
    """EmailTransport over an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        sender_address: str,
        sender_name: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
        executor: Executor | None = None,
        smtp_factory: Callable | None = None,
        smtp_ssl_factory: Callable | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self._executor = executor
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    @property
    def name(self) -> str:
        return "smtp"

    def _build_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None,
        to_name: str | None,
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.sender_name, self.sender_address))
        message["To"] = formataddr((to_name, to)) if to_name else to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=self.sender_address.rpartition("@")[2] or None)
        message.set_content(text_body or "")
        message.add_alternative(html_body, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        smtp = None
        try:
            if self.port == 465:
                logger.debug(
                    "Connecting to SMTP relay with implicit TLS",
                    extra={"host": self.host, "port": self.port},
                )
                smtp = self.smtp_ssl_factory(
                    self.host,
                    self.port,
                    timeout=self.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                logger.debug(
                    "Connecting to SMTP relay",
                    extra={"host": self.host, "port": self.port},
                )
                smtp = self.smtp_factory(self.host, self.port, timeout=self.timeout)
                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if self.username and self.password:
                smtp.login(self.username, self.password)

            smtp.send_message(message)

        except smtplib.SMTPResponseException as e:
            raise TransportError(
                self.name,
                str(e),
                status_code=e.smtp_code,
                status_text=e.smtp_error.decode("utf-8", "replace")
                if isinstance(e.smtp_error, bytes)
                else str(e.smtp_error),
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(self.name, str(e)) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning("Error closing SMTP connection", extra={"error": str(e)})

    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        *,
        to_name: str | None = None,
    ) -> DeliveryReceipt:
        message = self._build_message(to, subject, html_body, text_body, to_name)
        executor = self._executor
        if executor is None:
            from modules.notifier.core.concurrency import get_io_pool
            executor = get_io_pool()

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(executor, self._deliver, message)
        except TransportError as e:
            logger.error(
                "SMTP delivery failed",
                extra={"recipient": to, "status_code": e.status_code, "error": e.message},
            )
            raise

        message_id = message["Message-ID"]
        logger.info("Email sent via SMTP", extra={"recipient": to, "message_id": message_id})
        return DeliveryReceipt(message_id=message_id, transport=self.name)
