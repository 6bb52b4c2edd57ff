"""
Date and Time utilities

Parsing of XMLTV timestamps (``YYYYMMDDHHMMSS +HHMM``) into epoch seconds.
EPG sources are untrusted, so parsing never raises: a malformed value maps to
epoch 0 and callers treat 0 as "unknown".
"""
from datetime import datetime, timedelta, timezone
import logging
import re


logger = logging.getLogger(__name__)

_XMLTV_TIME_RE = re.compile(r"^\s*(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})\s*(?:([+-])(\d{2})(\d{2}))?\s*$")


class DateFormatError(ValueError):
    """Raised when an XMLTV timestamp is invalid"""
    pass


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Parse an XMLTV timestamp into a timezone-aware UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600' (offset optional, UTC assumed)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the value is malformed or out of range
    """
    match = _XMLTV_TIME_RE.match(time_str or "")
    if not match:
        raise DateFormatError(f"Invalid XMLTV timestamp: '{time_str}'")

    year, month, day, hour, minute, second, sign, tz_hours, tz_mins = match.groups()

    try:
        offset = timedelta(0)
        if sign:
            offset = timedelta(hours=int(tz_hours), minutes=int(tz_mins))
            if sign == "-":
                offset = -offset
        dt = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            tzinfo=timezone(offset),
        )
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError) as e:
        raise DateFormatError(f"Out of range XMLTV timestamp: '{time_str}'") from e


def timestamp_to_epoch_seconds(time_str: str) -> int:
    """Convert an XMLTV timestamp to epoch seconds, or 0 when it cannot be parsed."""
    try:
        return int(parse_xmltv_time(time_str).timestamp())
    except DateFormatError:
        logger.debug("Unparseable XMLTV timestamp %r", time_str)
        return 0
