"""Timezone resolution and epoch-millisecond conversions."""

import logging
from datetime import datetime
from typing import Optional

import pytz
from pytz import BaseTzInfo

logger = logging.getLogger(__name__)


def resolve_pytz(tz_string: Optional[str]) -> BaseTzInfo:
    """Resolve an IANA timezone name to a pytz timezone object.

    Falls back to UTC with a warning if the name is missing or unknown.

    Args:
        tz_string: IANA timezone (e.g. 'Asia/Tokyo', 'Europe/Berlin').

    Returns:
        pytz timezone object (always valid).
    """
    if not tz_string:
        logger.warning("No timezone provided; falling back to UTC.")
        return pytz.utc

    try:
        return pytz.timezone(tz_string)
    except pytz.UnknownTimeZoneError:
        logger.warning(
            f"Unknown timezone '{tz_string}'; falling back to UTC.",
            extra={"timezone": tz_string},
        )
        return pytz.utc


def to_local(timestamp_ms: int, tz: BaseTzInfo) -> datetime:
    """Aware local datetime for an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=tz)


def local_to_ms(naive: datetime, tz: BaseTzInfo, is_dst: bool = False) -> int:
    """Epoch milliseconds for a naive local wall-clock time.

    ``is_dst`` picks the instant for ambiguous or skipped wall-clock times
    around a DST switch.
    """
    aware = tz.normalize(tz.localize(naive, is_dst=is_dst))
    return int(round(aware.timestamp() * 1000))


def format_local(timestamp_ms: int, tz: BaseTzInfo) -> str:
    """``YYYY-MM-DD HH:MM:SS`` in local time."""
    return to_local(timestamp_ms, tz).strftime("%Y-%m-%d %H:%M:%S")
