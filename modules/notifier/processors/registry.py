"""
Processor Registry.

One EmailJobProcessor per queue, built from notifications.yaml. Registering
a second processor for a queue is a configuration error and fails at startup.
"""

from collections.abc import Iterator

from modules.notifier.core.config import AppConfig
from modules.notifier.events.contracts import QUEUE_FOR_EVENT
from modules.notifier.events.schemas import EventType
from modules.notifier.processors.email import EmailJobProcessor, EmailJobProfile
from modules.notifier.processors.recorder import NotificationRecorder
from modules.notifier.templates.renderer import TemplateRenderer
from modules.notifier.transports.base import EmailTransport

EVENT_FOR_QUEUE: dict[str, str] = {queue: event for event, queue in QUEUE_FOR_EVENT.items()}

LINK_FIELDS: dict[str, str] = {
    EventType.EMAIL_VERIFICATION_REQUESTED: "verification_link",
    EventType.PASSWORD_RESET_REQUESTED: "reset_link",
}


class ProcessorRegistry:
    """Queue name -> processor."""

    def __init__(self) -> None:
        self._processors: dict[str, EmailJobProcessor] = {}

    def register(self, processor: EmailJobProcessor) -> None:
        if processor.queue in self._processors:
            raise ValueError(f"A processor is already registered for queue {processor.queue!r}")
        self._processors[processor.queue] = processor

    def get(self, queue: str) -> EmailJobProcessor:
        try:
            return self._processors[queue]
        except KeyError:
            raise KeyError(f"No processor registered for queue {queue!r}") from None

    def for_event(self, event_type: str) -> EmailJobProcessor:
        queue = QUEUE_FOR_EVENT.get(event_type)
        if queue is None:
            raise KeyError(f"Event type {event_type!r} is not dispatchable")
        return self.get(queue)

    @property
    def queues(self) -> list[str]:
        return list(self._processors)

    def __contains__(self, queue: object) -> bool:
        return queue in self._processors

    def __iter__(self) -> Iterator[EmailJobProcessor]:
        return iter(self._processors.values())

    def __len__(self) -> int:
        return len(self._processors)


def build_profiles(app_config: AppConfig) -> list[EmailJobProfile]:
    profiles = []
    for queue, processor_config in app_config.notifications.processors.items():
        event_type = EVENT_FOR_QUEUE.get(queue)
        if event_type is None:
            raise ValueError(f"notifications.yaml names an unknown queue: {queue!r}")
        profiles.append(
            EmailJobProfile(
                event_type=event_type,
                queue=queue,
                html_template=processor_config.html_template,
                text_template=processor_config.text_template,
                subject=processor_config.subject,
                link_field=LINK_FIELDS[event_type],
            )
        )
    return profiles


def build_processors(
    app_config: AppConfig,
    renderer: TemplateRenderer,
    transport: EmailTransport,
    recorder: NotificationRecorder | None = None,
) -> ProcessorRegistry:
    """Create one processor per configured queue, sharing renderer and transport."""
    registry = ProcessorRegistry()
    for profile in build_profiles(app_config):
        registry.register(EmailJobProcessor(profile, renderer, transport, recorder))
    return registry
