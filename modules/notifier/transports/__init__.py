"""
Email transports: SMTP relay and HTTP email API behind one contract.
"""

from modules.notifier.transports.base import DeliveryReceipt, EmailTransport
from modules.notifier.transports.factory import create_transport
from modules.notifier.transports.http_api import HttpApiTransport
from modules.notifier.transports.smtp import SmtpTransport

__all__ = [
    "DeliveryReceipt",
    "EmailTransport",
    "HttpApiTransport",
    "SmtpTransport",
    "create_transport",
]
