"""
Date Formatting.

Locale- and timezone-aware rendering of ISO-8601 timestamps for email
templates, using Babel. Formatting never fails a render: any problem with
the input, the locale or the timezone returns the raw string.
"""

from datetime import datetime, timezone

from babel.core import Locale, UnknownLocaleError
from babel.dates import format_datetime, get_timezone

from modules.notifier.core.logging import get_logger

logger = get_logger(__name__)


def _parse_locale(value: str) -> Locale:
    return Locale.parse(value.replace("-", "_"))


class DateFormatter:
    """Formats timestamps with a default locale and timezone."""

    def __init__(
        self,
        locale: str = "fr_FR",
        tz_name: str = "Africa/Tunis",
        pattern: str = "EEEE d MMMM y HH:mm",
    ) -> None:
        self.locale = locale
        self.tz_name = tz_name
        self.pattern = pattern

    def format(self, raw: str, locale: str | None = None) -> str:
        """
        Format an ISO-8601 timestamp.

        Naive timestamps are taken as UTC. `locale` overrides the default
        for a single call (e.g. the recipient's payload locale).
        """
        try:
            moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            if moment.tzinfo is None:
                moment = moment.replace(tzinfo=timezone.utc)
            return format_datetime(
                moment,
                self.pattern,
                tzinfo=get_timezone(self.tz_name),
                locale=_parse_locale(locale or self.locale),
            )
        except (ValueError, TypeError, LookupError, UnknownLocaleError) as exc:
            logger.warning(
                "Date formatting failed, using raw value",
                extra={"value": raw, "locale": locale or self.locale, "error": str(exc)},
            )
            return raw
