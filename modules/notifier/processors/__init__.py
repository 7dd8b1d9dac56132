"""Job processors: one per email queue."""

from modules.notifier.processors.email import EmailJobProcessor, EmailJobProfile
from modules.notifier.processors.recorder import AttemptTicket, NotificationRecorder
from modules.notifier.processors.registry import ProcessorRegistry, build_processors
from modules.notifier.processors.result import JobResult, RetryableError, Success, TerminalError

__all__ = [
    "AttemptTicket",
    "EmailJobProcessor",
    "EmailJobProfile",
    "JobResult",
    "NotificationRecorder",
    "ProcessorRegistry",
    "RetryableError",
    "Success",
    "TerminalError",
    "build_processors",
]
