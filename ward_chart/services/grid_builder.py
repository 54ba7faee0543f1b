"""
Grid views handed to the rendering and report layers.

For each row and each hour of the requested window the builder combines
the recorded entry, the schedule expectation, the disabled state and, for
medication rows, the dosage annotation.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, tzinfo

from ward_chart.domain.models import (
    ChartEntry,
    ChartGridView,
    ChartRow,
    GridCell,
    GridRow,
    Hospitalization,
    Medication,
    NumericValue,
    RowKind,
    Schedule,
    SeriesPoint,
)
from ward_chart.domain.timegrid import hours_between, hours_of_day
from ward_chart.services.chart_grid import ChartGrid, display_value, is_disabled
from ward_chart.services.dosage import annotate_dose
from ward_chart.services.schedule_engine import ScheduleEngine


def build_grid(
    hospitalization: Hospitalization,
    rows: Iterable[ChartRow],
    entries: Iterable[ChartEntry],
    schedules: Iterable[Schedule],
    hours: Sequence[datetime],
    medications: Iterable[Medication] = (),
) -> ChartGridView:
    """Rows x ``hours`` view with entry, schedule, disabled and dose overlays."""
    grid = ChartGrid(rows, entries)
    engine = ScheduleEngine(schedules)
    catalog = {medication.id: medication for medication in medications}

    grid_rows = []
    for row in grid.ordered_rows():
        medication = catalog.get(row.medication_id) if row.medication_id else None
        cells = []
        for hour in hours:
            entry = grid.entry_at(row.id, hour)
            cells.append(
                GridCell(
                    row_id=row.id,
                    hour=hour,
                    entry=entry,
                    is_scheduled=engine.is_row_scheduled_at(row.id, hour),
                    is_disabled=is_disabled(hour, hospitalization.admission_at),
                    display_value=display_value(row.kind, entry),
                    dose=(
                        annotate_dose(entry, row, medication, hospitalization.weight_kg)
                        if row.kind == RowKind.MEDICATION
                        else None
                    ),
                )
            )
        grid_rows.append(GridRow(row=row, cells=cells))

    return ChartGridView(hours=list(hours), rows=grid_rows)


def build_day_grid(
    hospitalization: Hospitalization,
    rows: Iterable[ChartRow],
    entries: Iterable[ChartEntry],
    schedules: Iterable[Schedule],
    day: date,
    tz: tzinfo,
    medications: Iterable[Medication] = (),
) -> ChartGridView:
    """Grid of the 24 hours of ``day`` in the clinic timezone."""
    return build_grid(
        hospitalization, rows, entries, schedules, hours_of_day(day, tz), medications
    )


def build_stay_grid(
    hospitalization: Hospitalization,
    rows: Iterable[ChartRow],
    entries: Iterable[ChartEntry],
    schedules: Iterable[Schedule],
    now: datetime,
    medications: Iterable[Medication] = (),
) -> ChartGridView:
    """Grid of every hour from admission until ``now`` (or archival for archived stays)."""
    end = (
        hospitalization.archived_at
        if hospitalization.is_archived and hospitalization.archived_at is not None
        else now
    )
    hours = hours_between(hospitalization.admission_at, end)
    return build_grid(hospitalization, rows, entries, schedules, hours, medications)


def row_series(
    row: ChartRow, entries: Iterable[ChartEntry], admission_at: datetime, now: datetime
) -> list[SeriesPoint]:
    """Hour-by-hour trend of a numeric row since admission; empty hours carry no value."""
    grid = ChartGrid([row], (entry for entry in entries if entry.row_id == row.id))
    points = []
    for hour in hours_between(admission_at, now):
        entry = grid.entry_at(row.id, hour)
        value = entry.value.value if entry and isinstance(entry.value, NumericValue) else None
        points.append(
            SeriesPoint(hour=hour, value=value, flagged=bool(entry and entry.flagged))
        )
    return points
