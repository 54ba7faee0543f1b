"""
Hour-indexed grid of chart entries.

The grid is rebuilt from a full chart fetch after every mutation. Mutations
are planned here without any I/O: every check (row exists, hour is after
admission, value parses for the row's kind) runs before the caller touches
the store, so a rejected mutation never leaves a partial write.
"""

import math
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel

from ward_chart.domain.errors import NotFoundError, OutOfRangeError, ValidationError
from ward_chart.domain.models import (
    ChartEntry,
    ChartRow,
    CheckValue,
    EntryValue,
    MedicationValue,
    NumericValue,
    OptionValue,
    RowKind,
    TextValue,
)
from ward_chart.domain.timegrid import as_utc, normalize_hour

logger = structlog.get_logger(__name__)

CHECK_MARK = "✓"
_TRUE_WORDS = {"true", "1", CHECK_MARK}
_FALSE_WORDS = {"false", "0"}


class MutationAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


class EntryMutation(BaseModel):
    """A validated change to apply to one (row, hour) cell."""

    action: MutationAction
    row_id: str
    at_time: datetime
    value: EntryValue | None = None
    flagged: bool = False
    entry_id: str | None = None


def is_disabled(hour: datetime, admission_at: datetime) -> bool:
    """Cells before the admission hour cannot be edited."""
    return as_utc(normalize_hour(hour)) < as_utc(normalize_hour(admission_at))


def _parse_number(raw: Any, row: ChartRow) -> float:
    if isinstance(raw, bool):
        raise ValidationError(f"Row {row.label!r} expects a number, got a boolean")
    if isinstance(raw, int | float):
        number = float(raw)
    elif isinstance(raw, str):
        try:
            number = float(raw.strip())
        except ValueError as e:
            raise ValidationError(f"Row {row.label!r} expects a number, got {raw!r}") from e
    else:
        raise ValidationError(f"Row {row.label!r} expects a number, got {type(raw).__name__}")

    if not math.isfinite(number):
        raise ValidationError(f"Row {row.label!r} expects a finite number, got {raw!r}")
    return number


def _parse_check(raw: Any, row: ChartRow) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValidationError(f"Row {row.label!r} expects a check value, got {raw!r}")


def parse_value(
    row: ChartRow,
    raw: Any,
    *,
    unit: str | None = None,
    default_unit: str = "ml",
) -> EntryValue | None:
    """
    Validate a raw cell input against the row's kind.

    Returns None for empty input, which callers treat as "clear the cell":
    None or an empty string, and for every kind but TEXT a blank string.

    Raises:
        ValidationError: the input does not parse for the row's kind.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, str) and not raw.strip() and row.kind != RowKind.TEXT:
        return None

    if row.kind == RowKind.NUMERIC:
        return NumericValue(value=_parse_number(raw, row))

    if row.kind == RowKind.MEDICATION:
        return MedicationValue(
            amount=_parse_number(raw, row), unit=unit or row.unit or default_unit
        )

    if row.kind == RowKind.CHECK:
        return CheckValue(checked=_parse_check(raw, row))

    if not isinstance(raw, str):
        raise ValidationError(f"Row {row.label!r} expects text, got {type(raw).__name__}")

    if row.kind == RowKind.OPTION:
        if raw not in row.options:
            raise ValidationError(
                f"{raw!r} is not an option of row {row.label!r} (options: {list(row.options)})"
            )
        return OptionValue(option_id=raw)

    return TextValue(text=raw)


def _format_number(number: float) -> str:
    return str(int(number)) if number.is_integer() else repr(number)


def display_value(kind: RowKind, entry: ChartEntry | None) -> str:
    """Text shown in a cell; the medication unit is appended by the caller."""
    if entry is None or entry.value.kind != kind:
        return ""

    value = entry.value
    if isinstance(value, NumericValue):
        return _format_number(value.value)
    if isinstance(value, OptionValue):
        return value.option_id
    if isinstance(value, CheckValue):
        return CHECK_MARK if value.checked else ""
    if isinstance(value, TextValue):
        return value.text
    return _format_number(value.amount)


class ChartGrid:
    """
    Rows and entries of one chart, indexed by (row id, normalized hour).

    Built once per data refresh; lookups are O(1) thereafter.
    """

    def __init__(self, rows: Iterable[ChartRow], entries: Iterable[ChartEntry]) -> None:
        self._rows: dict[str, ChartRow] = {row.id: row for row in rows}
        self._entries: dict[tuple[str, datetime], ChartEntry] = {}
        self.logger = logger.bind(component="chart_grid")

        for entry in entries:
            key = (entry.row_id, as_utc(normalize_hour(entry.at_time)))
            if key in self._entries:
                self.logger.warning(
                    "duplicate_entry_key", row_id=entry.row_id, at_time=entry.at_time.isoformat()
                )
            self._entries[key] = entry

    def __len__(self) -> int:
        return len(self._entries)

    def row(self, row_id: str) -> ChartRow:
        try:
            return self._rows[row_id]
        except KeyError:
            raise NotFoundError(f"Chart row {row_id!r} not found") from None

    def ordered_rows(self) -> list[ChartRow]:
        """Rows in display order: sort order, then creation order, then id."""
        return sorted(
            self._rows.values(), key=lambda r: (r.sort_order, as_utc(r.created_at), r.id)
        )

    def entry_at(self, row_id: str, hour: datetime) -> ChartEntry | None:
        return self._entries.get((row_id, as_utc(normalize_hour(hour))))

    def entries_for_row(self, row_id: str) -> list[ChartEntry]:
        return sorted(
            (entry for (rid, _), entry in self._entries.items() if rid == row_id),
            key=lambda e: as_utc(e.at_time),
        )

    def entries(self) -> list[ChartEntry]:
        return list(self._entries.values())

    def _target(self, row_id: str, hour: datetime, admission_at: datetime) -> ChartRow:
        row = self.row(row_id)
        if is_disabled(hour, admission_at):
            raise OutOfRangeError(
                f"Hour {hour.isoformat()} is before admission at {admission_at.isoformat()}"
            )
        return row

    def plan_upsert(
        self,
        row_id: str,
        hour: datetime,
        raw: Any,
        admission_at: datetime,
        *,
        unit: str | None = None,
        default_unit: str = "ml",
    ) -> EntryMutation:
        """
        Plan saving ``raw`` into the (row, hour) cell.

        An empty value on an existing cell deletes it. Re-saving an existing
        cell updates its value only, leaving the flag untouched.
        A medication re-saved without a unit keeps the unit it was recorded in.
        """
        row = self._target(row_id, hour, admission_at)
        hour = normalize_hour(hour)
        existing = self.entry_at(row_id, hour)
        if unit is None and existing is not None and isinstance(existing.value, MedicationValue):
            unit = existing.value.unit
        value = parse_value(row, raw, unit=unit, default_unit=default_unit)

        if value is None:
            if existing is None:
                return EntryMutation(action=MutationAction.NOOP, row_id=row_id, at_time=hour)
            return EntryMutation(
                action=MutationAction.DELETE, row_id=row_id, at_time=hour, entry_id=existing.id
            )

        if existing is not None:
            return EntryMutation(
                action=MutationAction.UPDATE,
                row_id=row_id,
                at_time=hour,
                value=value,
                flagged=existing.flagged,
                entry_id=existing.id,
            )
        return EntryMutation(action=MutationAction.CREATE, row_id=row_id, at_time=hour, value=value)

    def plan_delete(self, row_id: str, hour: datetime, admission_at: datetime) -> EntryMutation:
        self._target(row_id, hour, admission_at)
        hour = normalize_hour(hour)
        existing = self.entry_at(row_id, hour)
        if existing is None:
            return EntryMutation(action=MutationAction.NOOP, row_id=row_id, at_time=hour)
        return EntryMutation(
            action=MutationAction.DELETE, row_id=row_id, at_time=hour, entry_id=existing.id
        )

    def plan_toggle_flag(
        self, row_id: str, hour: datetime, admission_at: datetime
    ) -> EntryMutation:
        """Flip the flag of an existing entry; an empty cell cannot be flagged."""
        self._target(row_id, hour, admission_at)
        hour = normalize_hour(hour)
        existing = self.entry_at(row_id, hour)
        if existing is None:
            raise NotFoundError(f"No entry for row {row_id!r} at {hour.isoformat()}")
        return EntryMutation(
            action=MutationAction.UPDATE,
            row_id=row_id,
            at_time=hour,
            value=existing.value,
            flagged=not existing.flagged,
            entry_id=existing.id,
        )
