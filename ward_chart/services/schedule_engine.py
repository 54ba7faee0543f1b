"""
Schedule evaluation for chart rows.

A schedule is evaluated statelessly for any candidate hour, so the grid can
ask "is this row expected now?" once per (row, hour) pair without touching
the store.

Recurring schedules stop on ``end_at`` or on the ``occurrences`` cap,
whichever is reached first; both conditions are checked, ``end_at`` first.
"""

import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic import ValidationError as ModelValidationError

from ward_chart.domain.errors import ValidationError
from ward_chart.domain.models import Schedule, ScheduleRequest, TemplateSchedule
from ward_chart.domain.timegrid import as_utc, minutes_between, normalize_hour

logger = structlog.get_logger(__name__)


def triggers(schedule: Schedule, hour: datetime) -> bool:
    """Whether ``schedule`` fires at ``hour`` (an already normalized instant)."""
    start = normalize_hour(schedule.start_at)

    if schedule.is_one_time:
        return as_utc(hour) == as_utc(start)

    if as_utc(hour) < as_utc(start):
        return False

    elapsed = minutes_between(start, hour)
    if elapsed % schedule.interval_minutes != 0:
        return False

    if schedule.end_at is not None and as_utc(hour) > as_utc(schedule.end_at):
        return False

    if schedule.occurrences is not None:
        occurrence_index = int(elapsed // schedule.interval_minutes) + 1
        if occurrence_index > schedule.occurrences:
            return False

    return True


def next_trigger_at(schedule: Schedule, after: datetime) -> datetime | None:
    """
    Earliest hour at or after ``after`` at which the schedule fires.

    Returns None when the schedule has no remaining trigger.
    """
    start = normalize_hour(schedule.start_at)

    if schedule.is_one_time:
        return start if as_utc(start) >= as_utc(after) else None

    if schedule.occurrences == 0:
        return None

    interval = schedule.interval_minutes
    elapsed = (as_utc(after) - as_utc(start)).total_seconds() / 60
    index = 0 if elapsed <= 0 else math.ceil(elapsed / interval)
    # Boundaries that fall off the hour never land on a grid cell.
    while (index * interval) % 60:
        index += 1
    candidate = as_utc(start) + timedelta(minutes=index * interval)

    if schedule.end_at is not None and candidate > as_utc(schedule.end_at):
        return None
    if schedule.occurrences is not None and index + 1 > schedule.occurrences:
        return None
    return candidate.astimezone(schedule.start_at.tzinfo)


class ScheduleEngine:
    """
    Answers "is this row expected at this hour" over a set of schedules.

    Schedules are grouped per row once; a row may carry several overlapping
    schedules and is scheduled when any of them fires.
    """

    def __init__(self, schedules: Iterable[Schedule]) -> None:
        self._by_row: dict[str, list[Schedule]] = defaultdict(list)
        for schedule in schedules:
            self._by_row[schedule.row_id].append(schedule)

    def schedules_for(self, row_id: str) -> list[Schedule]:
        return list(self._by_row.get(row_id, ()))

    def is_row_scheduled_at(self, row_id: str, hour: datetime) -> bool:
        return any(triggers(schedule, hour) for schedule in self._by_row.get(row_id, ()))

    def next_scheduled_at(self, after: datetime) -> datetime | None:
        """Earliest upcoming trigger across every row."""
        upcoming = [
            nxt
            for schedules in self._by_row.values()
            for schedule in schedules
            if (nxt := next_trigger_at(schedule, after)) is not None
        ]
        return min(upcoming, key=as_utc, default=None)


def build_schedule_request(**fields: Any) -> ScheduleRequest:
    """Validate schedule creation parameters, raising the chart ValidationError."""
    try:
        return ScheduleRequest(**fields)
    except ModelValidationError as e:
        logger.warning("schedule_request_rejected", errors=e.errors(include_url=False))
        raise ValidationError(f"Invalid schedule: {e.errors(include_url=False)[0]['msg']}") from e


def expand_template_schedule(
    template_schedule: TemplateSchedule, admission_at: datetime
) -> ScheduleRequest:
    """Anchor a template's relative schedule definition to an admission time."""
    start_at = normalize_hour(admission_at) + timedelta(
        minutes=template_schedule.start_offset_minutes
    )
    return build_schedule_request(
        row_id=template_schedule.row_id,
        start_at=start_at,
        interval_minutes=template_schedule.interval_minutes,
        end_at=start_at + timedelta(days=template_schedule.duration_days),
        default_value=template_schedule.default_value,
    )
