"""Deadline parsing and timestamp formatting utilities."""

import math
import re
from datetime import UTC, datetime

from dateutil import parser as dateutil_parser


# Decimal number with optional fraction and exponent, e.g. "1730421319000.0"
_NUMERIC_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string with millisecond precision.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def current_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return format_timestamp(datetime.now(UTC))


def _from_epoch_millis(millis: float) -> datetime:
    if not math.isfinite(millis):
        msg = f"Deadline is not a finite number: {millis}"
        raise ValueError(msg)
    try:
        return datetime.fromtimestamp(millis / 1000, tz=UTC)
    except (OverflowError, OSError) as e:
        msg = f"Deadline out of range: {millis}"
        raise ValueError(msg) from e


def parse_deadline(value: object) -> datetime:
    """Parse a deadline into an aware UTC datetime.

    Numbers and numeric-looking strings are Unix epoch milliseconds (clients
    commonly send "1730421319000.0"); any other string is parsed as a free-form
    date. Naive results are taken to be UTC.

    Args:
        value: Deadline as received from the client

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the value cannot be interpreted as a point in time
    """
    if isinstance(value, bool):
        msg = "Deadline must be a date or a number of milliseconds, not a boolean"
        raise ValueError(msg)

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    if isinstance(value, int | float):
        return _from_epoch_millis(float(value))

    if not isinstance(value, str) or not value.strip():
        msg = f"Invalid deadline: {value!r}"
        raise ValueError(msg)

    text = value.strip()
    if _NUMERIC_PATTERN.match(text):
        return _from_epoch_millis(float(text))

    try:
        parsed = dateutil_parser.parse(text)
    except (ValueError, OverflowError) as e:
        msg = f"Invalid deadline: {value!r}"
        raise ValueError(msg) from e

    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
