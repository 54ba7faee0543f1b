"""Shared fixtures for the chart engine tests."""

from datetime import UTC, datetime
from typing import Any

import pytest

from adapters.memory import InMemoryChartStore
from ward_chart.config import AppConfig, StoreConfig
from ward_chart.domain.models import ChartEntry, ChartRow, Hospitalization, Medication, RowKind

ADMISSION = datetime(2024, 1, 1, 7, 30, tzinfo=UTC)


def make_row(
    row_id: str,
    kind: RowKind = RowKind.NUMERIC,
    *,
    sort_order: int = 0,
    medication_id: str | None = None,
    unit: str | None = None,
    options: tuple[str, ...] = (),
) -> ChartRow:
    return ChartRow(
        id=row_id,
        hospitalization_id="hosp-1",
        kind=kind,
        label=row_id.title(),
        unit=unit,
        sort_order=sort_order,
        medication_id=medication_id,
        options=options,
        created_at=ADMISSION,
    )


def make_entry(
    entry_id: str, row_id: str, at_time: datetime, value: Any, **kw: Any
) -> ChartEntry:
    return ChartEntry(id=entry_id, row_id=row_id, at_time=at_time, value=value, **kw)


@pytest.fixture
def hospitalization() -> Hospitalization:
    return Hospitalization(id="hosp-1", admission_at=ADMISSION, weight_kg=520.0)


@pytest.fixture
def medication() -> Medication:
    return Medication(
        id="med-1",
        name="Flunixine",
        reference_unit="mg",
        dose_min_per_kg=0.5,
        dose_max_per_kg=1.1,
        dose_unit="mg",
        concentration=50.0,
        concentration_unit="mg/ml",
    )


@pytest.fixture
def rows() -> list[ChartRow]:
    return [
        make_row("temperature", RowKind.NUMERIC, sort_order=0, unit="°C"),
        make_row("pain", RowKind.OPTION, sort_order=1, options=("-", "+", "++", "+++")),
        make_row("fed", RowKind.CHECK, sort_order=2),
        make_row("observation", RowKind.TEXT, sort_order=3),
        make_row("flunixin", RowKind.MEDICATION, sort_order=4, medication_id="med-1", unit="mg"),
    ]


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(store=StoreConfig(request_timeout_seconds=0.5))


@pytest.fixture
def store(
    hospitalization: Hospitalization, medication: Medication, rows: list[ChartRow]
) -> InMemoryChartStore:
    memory_store = InMemoryChartStore(hospitalizations=[hospitalization], medications=[medication])
    for row in rows:
        memory_store.add_row(row)
    return memory_store
