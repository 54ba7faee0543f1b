"""
Hour-aligned time axis used by the chart grid.

All functions here are pure. Arithmetic between instants is done in UTC so
that two datetimes sharing a tzinfo object are not compared by wall clock.
"""

from datetime import UTC, date, datetime, time, timedelta, tzinfo

ONE_HOUR = timedelta(hours=1)


def as_utc(instant: datetime) -> datetime:
    """Convert an aware instant to UTC."""
    if instant.tzinfo is None:
        raise ValueError(f"Expected a timezone-aware datetime, got {instant!r}")
    return instant.astimezone(UTC)


def normalize_hour(instant: datetime) -> datetime:
    """
    Floor an instant to its hour, keeping the instant's timezone.

    Floors on UTC hour boundaries, so one instant normalizes the same whatever
    tzinfo it carries. These match local hour boundaries only in zones with a
    whole-hour UTC offset, which ChartConfig requires of the clinic timezone.
    """
    floored = as_utc(instant).replace(minute=0, second=0, microsecond=0)
    return floored.astimezone(instant.tzinfo)


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed number of minutes from start to end."""
    return (as_utc(end) - as_utc(start)).total_seconds() / 60


def hours_of_day(day: date, tz: tzinfo = UTC) -> tuple[datetime, ...]:
    """
    Every hour of ``day`` in ``tz``, from local midnight up to the next one.

    Steps absolute hours, so a DST change yields 23 or 25 distinct instants
    rather than a skipped or doubled wall-clock label.
    """
    first = as_utc(datetime.combine(day, time(), tzinfo=tz))
    end = as_utc(datetime.combine(day + timedelta(days=1), time(), tzinfo=tz))
    steps = int((end - first) / ONE_HOUR)
    return tuple((first + step * ONE_HOUR).astimezone(tz) for step in range(steps))


def hours_between(start: datetime, end: datetime) -> tuple[datetime, ...]:
    """
    Every hour from ``start`` through ``end`` (both hour-floored), inclusive.

    Steps one absolute hour at a time and reports each instant in the
    timezone of ``start``. Empty when ``end`` is before ``start``.
    """
    first = as_utc(normalize_hour(start))
    last = as_utc(normalize_hour(end))
    if last < first:
        return ()

    tz = start.tzinfo
    steps = int((last - first) / ONE_HOUR)
    return tuple((first + step * ONE_HOUR).astimezone(tz) for step in range(steps + 1))
