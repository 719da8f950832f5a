"""UTC timestamp parsing and formatting for the record graph."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MILLISECOND = timedelta(milliseconds=1)


class TimestampError(ValueError):
    """Raised when a timestamp is not ISO-8601 UTC with a literal Z suffix."""


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 `...Z` timestamp into an aware UTC datetime."""
    if not isinstance(value, str) or not value.endswith("Z"):
        raise TimestampError(f"Timestamp must be ISO-8601 UTC ending in 'Z': {value!r}")
    if " " in value:
        raise TimestampError(f"Timestamp must not use a space separator: {value!r}")
    try:
        parsed = datetime.fromisoformat(value[:-1] + "+00:00")
    except ValueError as error:
        raise TimestampError(f"Timestamp is not valid ISO-8601: {value!r}") from error
    return parsed.astimezone(UTC)


def format_timestamp(moment: datetime) -> str:
    """Format an aware datetime as millisecond-precision UTC with a Z suffix."""
    if moment.tzinfo is None:
        raise TimestampError("Cannot format a naive datetime as UTC.")
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> str:
    """Return the current time in canonical record form."""
    return format_timestamp(datetime.now(tz=UTC))


def epoch_millis(value: str) -> int | None:
    """Return epoch milliseconds, or None when the timestamp is malformed."""
    try:
        parsed = parse_timestamp(value)
    except TimestampError:
        return None
    return (parsed - _EPOCH) // _ONE_MILLISECOND
