"""
End-of-stay aggregation.

Pure reductions over already-fetched collections; a stay is bounded to a few
thousand cells so no streaming is needed.
"""

import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from ward_chart.domain.models import (
    ChartEntry,
    ChartRow,
    Hospitalization,
    Material,
    MaterialTotal,
    MaterialUsage,
    Medication,
    MedicationTotal,
    MedicationValue,
    StayDuration,
    StaySummary,
)
from ward_chart.domain.timegrid import as_utc


def medication_totals(
    rows: Iterable[ChartRow],
    entries: Iterable[ChartEntry],
    medications: Iterable[Medication] = (),
) -> list[MedicationTotal]:
    """
    Sum recorded medication amounts per medication.

    Amounts are paired with the unit recorded on each entry, so one
    medication recorded in two units yields two totals.
    """
    medication_rows = {
        row.id: (row.medication_id, row.label) for row in rows if row.medication_id is not None
    }
    catalog = {medication.id: medication for medication in medications}

    totals: dict[tuple[str, str], float] = defaultdict(float)
    names: dict[str, str] = {}
    for entry in entries:
        medication = medication_rows.get(entry.row_id)
        if medication is None or not isinstance(entry.value, MedicationValue):
            continue
        medication_id, label = medication
        totals[(medication_id, entry.value.unit)] += entry.value.amount
        names.setdefault(
            medication_id, catalog[medication_id].name if medication_id in catalog else label
        )

    return sorted(
        (
            MedicationTotal(
                medication_id=medication_id,
                name=names[medication_id],
                total_amount=amount,
                unit=unit,
            )
            for (medication_id, unit), amount in totals.items()
        ),
        key=lambda t: (t.name.lower(), t.unit),
    )


def material_totals(
    usages: Iterable[MaterialUsage], materials: Iterable[Material] = ()
) -> list[MaterialTotal]:
    """Sum material quantities per material."""
    catalog = {material.id: material for material in materials}
    totals: dict[str, float] = defaultdict(float)
    for usage in usages:
        totals[usage.material_id] += usage.quantity

    result = []
    for material_id, quantity in totals.items():
        material = catalog.get(material_id)
        result.append(
            MaterialTotal(
                material_id=material_id,
                material_name=material.name if material else material_id,
                unit=material.unit if material else "",
                total_quantity=quantity,
            )
        )
    return sorted(result, key=lambda t: t.material_name.lower())


def stay_duration(admission_at: datetime, end: datetime) -> StayDuration:
    """Whole days and remaining hours between admission and ``end`` (floored, never negative)."""
    elapsed = as_utc(end) - as_utc(admission_at)
    total_hours = max(0, math.floor(elapsed.total_seconds() / 3600))
    return StayDuration(days=total_hours // 24, hours=total_hours % 24)


def format_duration(duration: StayDuration) -> str:
    if duration.days == 0:
        return f"{duration.hours}h"
    if duration.hours == 0:
        return f"{duration.days}j"
    return f"{duration.days}j {duration.hours}h"


def summarize(
    hospitalization: Hospitalization,
    rows: Iterable[ChartRow],
    entries: Iterable[ChartEntry],
    usages: Iterable[MaterialUsage],
    now: datetime,
    medications: Iterable[Medication] = (),
    materials: Iterable[Material] = (),
) -> StaySummary:
    """Medication and material totals plus stay duration for one hospitalization."""
    end = (
        hospitalization.archived_at
        if hospitalization.is_archived and hospitalization.archived_at is not None
        else now
    )
    return StaySummary(
        hospitalization_id=hospitalization.id,
        medication_totals=medication_totals(rows, entries, medications),
        material_totals=material_totals(usages, materials),
        duration=stay_duration(hospitalization.admission_at, end),
    )
