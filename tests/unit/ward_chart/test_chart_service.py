"""
Tests for chart orchestration against the in-memory store.

Covers:
- Upsert, clear, delete and flag toggling round trips
- Rejections happening before any store call
- Row and schedule lifecycle, including cascading deletes
- Store timeouts surfacing as ChartTimeoutError
- Grid, next-due and summary views
"""

from datetime import UTC, date, datetime, timedelta

import pytest
from conftest import ADMISSION

from adapters.memory import InMemoryChartStore
from ward_chart.config import AppConfig
from ward_chart.domain.errors import (
    ChartTimeoutError,
    NotFoundError,
    OutOfRangeError,
    ValidationError,
)
from ward_chart.domain.models import (
    CheckValue,
    Material,
    MaterialUsage,
    MedicationValue,
    NumericValue,
    OptionValue,
    RowKind,
)
from ward_chart.services.chart_service import ChartService

EIGHT = datetime(2024, 1, 1, 8, tzinfo=UTC)


@pytest.fixture
def service(store: InMemoryChartStore, app_config: AppConfig) -> ChartService:
    return ChartService(store, "hosp-1", author_id="user-1", config=app_config)


class TestUpsertEntry:
    async def test_creates_entry(self, service, store) -> None:
        entry = await service.upsert_entry("temperature", EIGHT + timedelta(minutes=17), "38.4")

        assert entry.value == NumericValue(value=38.4)
        assert entry.at_time == EIGHT
        assert entry.author_id == "user-1"
        assert len(store.entries) == 1

    async def test_is_idempotent(self, service, store) -> None:
        first = await service.upsert_entry("pain", EIGHT, "+")
        second = await service.upsert_entry("pain", EIGHT, "+")

        assert first.id == second.id
        assert second.value == OptionValue(option_id="+")
        assert len(store.entries) == 1

    async def test_update_keeps_flag(self, service) -> None:
        await service.upsert_entry("temperature", EIGHT, 40.5)
        await service.toggle_flag("temperature", EIGHT)

        entry = await service.upsert_entry("temperature", EIGHT, 39.0)

        assert entry.flagged
        assert entry.value == NumericValue(value=39.0)

    async def test_empty_value_clears_cell_and_flag(self, service, store) -> None:
        await service.upsert_entry("temperature", EIGHT, 40.5)
        await service.toggle_flag("temperature", EIGHT)

        assert await service.upsert_entry("temperature", EIGHT, "") is None
        assert store.entries == {}

        entry = await service.upsert_entry("temperature", EIGHT, 37.9)
        assert not entry.flagged

    async def test_false_check_is_a_value(self, service) -> None:
        entry = await service.upsert_entry("fed", EIGHT, False)
        assert entry.value == CheckValue(checked=False)

    async def test_medication_unit_defaults(self, service) -> None:
        entry = await service.upsert_entry("flunixin", EIGHT, "550")
        assert entry.value.unit == "mg"

        entry = await service.upsert_entry("flunixin", EIGHT, 11, unit="ml")
        assert entry.value.unit == "ml"

    async def test_resave_without_unit_keeps_recorded_unit(self, service) -> None:
        await service.upsert_entry("flunixin", EIGHT, 11, unit="ml")

        entry = await service.upsert_entry("flunixin", EIGHT, 12)

        assert entry.value == MedicationValue(amount=12.0, unit="ml")

    @pytest.mark.parametrize(
        ("row_id", "hour", "raw", "error"),
        [
            ("weight", EIGHT, 500, NotFoundError),
            ("temperature", ADMISSION - timedelta(hours=2), 38, OutOfRangeError),
            ("temperature", EIGHT, "warm", ValidationError),
            ("pain", EIGHT, "++++", ValidationError),
        ],
    )
    async def test_rejection_makes_no_store_call(
        self, service, store, row_id, hour, raw, error
    ) -> None:
        await service.refresh()
        calls = store.call_count

        with pytest.raises(error):
            await service.upsert_entry(row_id, hour, raw)

        assert store.call_count == calls
        assert store.entries == {}


class TestDeleteAndFlag:
    async def test_delete_round_trip(self, service, store) -> None:
        await service.upsert_entry("observation", EIGHT, "calm")
        await service.delete_entry("observation", EIGHT)

        assert store.entries == {}
        assert service.grid.entry_at("observation", EIGHT) is None

    async def test_delete_empty_cell_is_noop(self, service, store) -> None:
        await service.refresh()
        calls = store.call_count

        await service.delete_entry("observation", EIGHT)

        assert store.call_count == calls

    async def test_toggle_twice_restores(self, service) -> None:
        await service.upsert_entry("temperature", EIGHT, 38.0)

        flagged = await service.toggle_flag("temperature", EIGHT)
        unflagged = await service.toggle_flag("temperature", EIGHT)

        assert flagged.flagged and not unflagged.flagged
        assert unflagged.value == NumericValue(value=38.0)

    async def test_toggle_empty_cell(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.toggle_flag("temperature", EIGHT)


class TestRowsAndSchedules:
    async def test_create_row_goes_last(self, service) -> None:
        row = await service.create_row(RowKind.NUMERIC, "Heart rate", unit="bpm")

        assert row.sort_order == 5
        assert service.grid.ordered_rows()[-1].id == row.id

    async def test_medication_row_requires_medication(self, service, store) -> None:
        with pytest.raises(ValidationError, match="Invalid row"):
            await service.create_row(RowKind.MEDICATION, "Antibiotic")
        assert len(store.rows) == 5

    async def test_delete_row_cascades(self, service, store) -> None:
        await service.upsert_entry("temperature", EIGHT, 38.0)
        await service.create_schedule("temperature", EIGHT, interval_minutes=60)

        await service.delete_row("temperature")

        assert "temperature" not in store.rows
        assert store.entries == {}
        assert store.schedules == {}
        with pytest.raises(NotFoundError):
            service.grid.row("temperature")

    async def test_delete_unknown_row(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.delete_row("weight")

    async def test_schedule_round_trip(self, service, store) -> None:
        schedule = await service.create_schedule(
            "temperature", EIGHT, interval_minutes=120, occurrences=3
        )

        assert schedule.created_by == "user-1"
        assert service.engine.is_row_scheduled_at("temperature", EIGHT + timedelta(hours=4))
        assert not service.engine.is_row_scheduled_at("temperature", EIGHT + timedelta(hours=6))

        await service.delete_schedule(schedule.id)
        assert store.schedules == {}
        assert not service.engine.is_row_scheduled_at("temperature", EIGHT)

    async def test_invalid_schedule_makes_no_store_call(self, service, store) -> None:
        with pytest.raises(ValidationError):
            await service.create_schedule("temperature", EIGHT, interval_minutes=-30)
        assert store.call_count == 0

    async def test_schedule_on_unknown_row(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.create_schedule("weight", EIGHT)

    async def test_delete_unknown_schedule(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.delete_schedule("schedule-404")

    async def test_default_value_must_fit_row_kind(self, service, store) -> None:
        await service.refresh()
        calls = store.call_count

        with pytest.raises(ValidationError, match="does not fit"):
            await service.create_schedule(
                "temperature", EIGHT, interval_minutes=60, default_value=CheckValue(checked=True)
            )

        assert store.call_count == calls
        assert store.schedules == {}

    async def test_default_value_of_row_kind_is_kept(self, service) -> None:
        schedule = await service.create_schedule(
            "fed", EIGHT, interval_minutes=60, default_value=CheckValue(checked=True)
        )
        assert schedule.default_value == CheckValue(checked=True)

    async def test_scheduled_hour_before_admission_is_not_editable(self, service) -> None:
        four = datetime(2024, 1, 1, 4, tzinfo=UTC)
        await service.create_schedule("temperature", four, interval_minutes=60)

        assert service.engine.is_row_scheduled_at("temperature", four + timedelta(hours=2))

        with pytest.raises(OutOfRangeError):
            await service.upsert_entry("temperature", four + timedelta(hours=2), 38.0)


class TestTimeouts:
    async def test_slow_store_raises_chart_timeout(
        self, hospitalization, rows, app_config
    ) -> None:
        slow = InMemoryChartStore(hospitalizations=[hospitalization], latency_seconds=1.0)
        for row in rows:
            slow.add_row(row)
        service = ChartService(slow, "hosp-1", config=app_config)

        with pytest.raises(ChartTimeoutError) as exc_info:
            await service.refresh()

        assert exc_info.value.retryable
        assert isinstance(exc_info.value, TimeoutError)

    async def test_unknown_hospitalization(self, store, app_config) -> None:
        with pytest.raises(NotFoundError):
            await ChartService(store, "hosp-404", config=app_config).refresh()


class TestViews:
    async def test_day_grid(self, service) -> None:
        await service.upsert_entry("flunixin", EIGHT + timedelta(hours=1), 550)
        await service.create_schedule("temperature", EIGHT, interval_minutes=240)

        view = await service.day_grid(date(2024, 1, 1))

        assert len(view.hours) == 24
        assert len(view.rows) == 5
        flunixin_cells = view.rows[4].cells
        assert any(cell.dose is not None for cell in flunixin_cells)

    async def test_next_scheduled_at(self, service) -> None:
        await service.create_schedule("temperature", EIGHT, interval_minutes=240)

        assert await service.next_scheduled_at(EIGHT + timedelta(minutes=1)) == EIGHT + timedelta(
            hours=4
        )

    async def test_stay_grid(self, service) -> None:
        view = await service.stay_grid(now=ADMISSION + timedelta(hours=5))
        assert view.hours[0] == datetime(2024, 1, 1, 7, tzinfo=UTC)
        assert len(view.hours) == 6

    async def test_summary(self, service, store) -> None:
        store.materials["mat-1"] = Material(id="mat-1", name="Catheter", unit="pcs")
        store.add_usage(
            MaterialUsage(
                id="usage-1",
                hospitalization_id="hosp-1",
                material_id="mat-1",
                quantity=2,
                at_time=EIGHT,
            )
        )
        await service.upsert_entry("flunixin", EIGHT, 550)
        await service.upsert_entry("flunixin", EIGHT + timedelta(hours=12), 520)

        summary = await service.summary(now=ADMISSION + timedelta(hours=26))

        assert [(t.name, t.total_amount, t.unit) for t in summary.medication_totals] == [
            ("Flunixine", 1070.0, "mg")
        ]
        assert summary.material_totals[0].total_quantity == 2.0
        assert (summary.duration.days, summary.duration.hours) == (1, 2)
