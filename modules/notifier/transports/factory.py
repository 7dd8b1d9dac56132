"""
Transport selection.

Exactly one transport is active per deployment, chosen by
`notifications.transport` in notifications.yaml.
"""

from modules.notifier.core.config import AppConfig, Settings
from modules.notifier.core.logging import get_logger
from modules.notifier.transports.base import EmailTransport
from modules.notifier.transports.http_api import HttpApiTransport
from modules.notifier.transports.smtp import SmtpTransport

logger = get_logger(__name__)


def create_transport(app_config: AppConfig, settings: Settings) -> EmailTransport:
    """Build the configured transport."""
    config = app_config.notifications
    sender = config.sender

    if config.transport == "smtp":
        transport: EmailTransport = SmtpTransport(
            host=config.smtp.host,
            port=config.smtp.port,
            sender_address=sender.address,
            sender_name=sender.name,
            username=config.smtp.username,
            password=settings.smtp_password,
            use_tls=config.smtp.use_tls,
            timeout=config.smtp.timeout_seconds,
        )
    elif config.transport == "http_api":
        if not settings.email_api_token:
            logger.warning("EMAIL_API_TOKEN is not set; the email API will reject requests")
        transport = HttpApiTransport(
            base_url=config.http_api.base_url,
            token=settings.email_api_token,
            sender_address=sender.address,
            sender_name=sender.name,
            timeout=config.http_api.timeout_seconds,
        )
    else:
        raise ValueError(f"Unknown transport: {config.transport}")

    logger.info("Email transport selected", extra={"transport": transport.name})
    return transport
