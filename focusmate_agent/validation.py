"""Local input validation run before anything touches the remote surface."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from focusmate_agent.config import DEFAULT_LIST_WINDOW_DAYS, SESSION_DURATIONS, SLOT_GRID_MINUTES
from focusmate_agent.errors import (
    InvalidDateRangeError,
    InvalidDurationError,
    InvalidTimeError,
)
from focusmate_agent.models import BookingRequest, DateRange, utcnow


def parse_instant(value: str | datetime) -> datetime | None:
    """Parse an ISO 8601 instant and normalise it to UTC.

    Returns ``None`` for unparsable values and for naive timestamps, which
    are ambiguous without an offset.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            return None
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        return None
    return parsed.astimezone(UTC)


def _grid_hint(start: datetime) -> str:
    hour = start.strftime("%H")
    options = ", ".join(f"{hour}:{m:02d}" for m in range(0, 60, SLOT_GRID_MINUTES))
    return (
        f"Focusmate sessions start every {SLOT_GRID_MINUTES} minutes. "
        f"Please choose a time like {options} (UTC)."
    )


def validate_booking(
    start_time: str | datetime,
    duration: int | str,
    now: datetime | None = None,
) -> BookingRequest:
    """Return a ``BookingRequest`` or raise the matching validation error."""
    now = now or utcnow()
    start = parse_instant(start_time)
    if start is None:
        raise InvalidTimeError(
            f"Could not parse start time {start_time!r}. "
            "Use an ISO 8601 timestamp with an offset, e.g. 2026-03-02T14:30:00Z."
        )
    if start <= now:
        raise InvalidTimeError("Cannot book sessions in the past.")
    if start.minute % SLOT_GRID_MINUTES or start.second or start.microsecond:
        raise InvalidTimeError(f"Invalid time. {_grid_hint(start)}")

    try:
        minutes = int(duration)
    except (TypeError, ValueError):
        raise InvalidDurationError() from None
    if minutes not in SESSION_DURATIONS:
        raise InvalidDurationError()

    return BookingRequest(start_time=start, duration=minutes)


def resolve_date_range(
    start_date: str | datetime,
    end_date: str | datetime | None = None,
) -> DateRange:
    """Build the listing window; ``end_date`` defaults to a week after start."""
    start = parse_instant(start_date)
    if start is None:
        raise InvalidDateRangeError(f"Could not parse start date {start_date!r}.")
    if end_date is None or end_date == "":
        end = start + timedelta(days=DEFAULT_LIST_WINDOW_DAYS)
    else:
        end = parse_instant(end_date)
        if end is None:
            raise InvalidDateRangeError(f"Could not parse end date {end_date!r}.")
    if end < start:
        raise InvalidDateRangeError("End date must not be before start date.")
    return DateRange(start=start, end=end)
