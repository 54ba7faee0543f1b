"""
Chart orchestration against the external store.

Key patterns:
- Every store call is an independent round trip bounded by a timeout
- Validation happens before any store call (no partial writes)
- The whole chart is re-fetched after each mutation; no local patching
- No automatic retries: a ChartTimeoutError is handed back to the caller
"""

import asyncio
from collections.abc import Awaitable
from datetime import UTC, date, datetime
from typing import Any, TypeVar, cast

import structlog
from pydantic import ValidationError as ModelValidationError

from ward_chart.config import AppConfig, get_config
from ward_chart.domain.errors import (
    ChartTimeoutError,
    NotFoundError,
    OutOfRangeError,
    ValidationError,
)
from ward_chart.domain.models import (
    ChartData,
    ChartEntry,
    ChartGridView,
    ChartRow,
    EntryDraft,
    EntryPatch,
    EntryValue,
    Hospitalization,
    Medication,
    RowDraft,
    RowKind,
    Schedule,
    StaySummary,
)
from ward_chart.services.chart_grid import ChartGrid, EntryMutation, MutationAction
from ward_chart.services.grid_builder import build_day_grid, build_stay_grid
from ward_chart.services.schedule_engine import ScheduleEngine, build_schedule_request
from ward_chart.services.store import ChartStore
from ward_chart.services.summary import summarize

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ChartService:
    """
    Chart of one hospitalization, kept in sync with the store.

    Not safe for concurrent mutations from several tasks; the store is the
    only arbiter between concurrent writers.
    """

    def __init__(
        self,
        store: ChartStore,
        hospitalization_id: str,
        *,
        author_id: str | None = None,
        config: AppConfig | None = None,
    ) -> None:
        self.store = store
        self.hospitalization_id = hospitalization_id
        self.author_id = author_id
        self.config = config or get_config()
        self.logger = logger.bind(component="chart_service", hospitalization_id=hospitalization_id)

        self.hospitalization: Hospitalization | None = None
        self.chart = ChartData()
        self.grid = ChartGrid([], [])
        self.engine = ScheduleEngine([])
        self._medications: list[Medication] | None = None

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Run one store call under the configured time bound."""
        timeout = self.config.store.request_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except ChartTimeoutError:
            raise
        except TimeoutError as e:
            self.logger.warning("store_call_timeout", operation=operation, timeout_seconds=timeout)
            raise ChartTimeoutError(f"Store call {operation!r} timed out after {timeout}s") from e

    async def refresh(self) -> ChartGrid:
        """Re-fetch hospitalization and full chart, then rebuild the grid and schedule index."""
        hospitalization, chart = await asyncio.gather(
            self._call(
                "fetch_hospitalization",
                self.store.fetch_hospitalization(self.hospitalization_id),
            ),
            self._call("fetch_chart", self.store.fetch_chart(self.hospitalization_id)),
        )
        self.hospitalization = hospitalization
        self.chart = chart
        self.grid = ChartGrid(chart.rows, chart.entries)
        self.engine = ScheduleEngine(chart.schedules)

        self.logger.debug(
            "chart_refreshed",
            rows=len(chart.rows),
            entries=len(chart.entries),
            schedules=len(chart.schedules),
        )
        return self.grid

    async def _ensure_loaded(self) -> Hospitalization:
        if self.hospitalization is None:
            await self.refresh()
        return cast(Hospitalization, self.hospitalization)

    async def medications(self) -> list[Medication]:
        """Medication catalog, fetched once per service."""
        if self._medications is None:
            self._medications = await self._call(
                "fetch_medications", self.store.fetch_medications()
            )
        return self._medications

    # Entry mutations

    async def _apply(self, mutation: EntryMutation) -> None:
        if mutation.action == MutationAction.CREATE:
            draft = EntryDraft(
                row_id=mutation.row_id,
                at_time=mutation.at_time,
                value=mutation.value,  # type: ignore[arg-type]
            )
            await self._call(
                "create_entry",
                self.store.create_entry(self.hospitalization_id, draft, self.author_id),
            )
        elif mutation.action == MutationAction.UPDATE:
            patch = EntryPatch(value=mutation.value, flagged=mutation.flagged)
            await self._call(
                "update_entry",
                self.store.update_entry(
                    self.hospitalization_id,
                    mutation.entry_id,  # type: ignore[arg-type]
                    patch,
                    self.author_id,
                ),
            )
        elif mutation.action == MutationAction.DELETE:
            await self._call(
                "delete_entry",
                self.store.delete_entry(
                    self.hospitalization_id,
                    mutation.entry_id,  # type: ignore[arg-type]
                ),
            )

        if mutation.action != MutationAction.NOOP:
            self.logger.info(
                "entry_mutated",
                action=mutation.action.value,
                row_id=mutation.row_id,
                at_time=mutation.at_time.isoformat(),
            )
            await self.refresh()

    async def upsert_entry(
        self, row_id: str, hour: datetime, raw: Any, *, unit: str | None = None
    ) -> ChartEntry | None:
        """
        Save a cell value; an empty value clears the cell.

        Returns the entry as re-read from the store, or None when the cell
        ended up empty.

        Raises:
            NotFoundError: the row does not exist.
            OutOfRangeError: the hour is before admission.
            ValidationError: the value does not parse for the row's kind.
            ChartTimeoutError: a store call exceeded its bound.
        """
        hospitalization = await self._ensure_loaded()
        try:
            mutation = self.grid.plan_upsert(
                row_id,
                hour,
                raw,
                hospitalization.admission_at,
                unit=unit,
                default_unit=self.config.chart.default_medication_unit,
            )
        except (NotFoundError, OutOfRangeError, ValidationError) as e:
            self.logger.info("entry_rejected", row_id=row_id, hour=hour.isoformat(), reason=str(e))
            raise
        await self._apply(mutation)
        return self.grid.entry_at(row_id, hour)

    async def delete_entry(self, row_id: str, hour: datetime) -> None:
        """Remove a cell's entry; no-op when the cell is already empty."""
        hospitalization = await self._ensure_loaded()
        await self._apply(self.grid.plan_delete(row_id, hour, hospitalization.admission_at))

    async def toggle_flag(self, row_id: str, hour: datetime) -> ChartEntry | None:
        """Flip the flag of an existing entry, keeping its value."""
        hospitalization = await self._ensure_loaded()
        await self._apply(self.grid.plan_toggle_flag(row_id, hour, hospitalization.admission_at))
        return self.grid.entry_at(row_id, hour)

    # Rows and schedules

    async def create_row(
        self,
        kind: RowKind,
        label: str,
        *,
        unit: str | None = None,
        sort_order: int | None = None,
        medication_id: str | None = None,
        options: tuple[str, ...] = (),
    ) -> ChartRow:
        """Add a row; it goes last unless a sort order is given."""
        await self._ensure_loaded()
        try:
            draft = RowDraft(
                kind=kind,
                label=label,
                unit=unit,
                sort_order=len(self.chart.rows) if sort_order is None else sort_order,
                medication_id=medication_id,
                options=options,
            )
        except ModelValidationError as e:
            raise ValidationError(f"Invalid row: {e.errors(include_url=False)[0]['msg']}") from e

        row = await self._call("create_row", self.store.create_row(self.hospitalization_id, draft))
        self.logger.info("row_created", row_id=row.id, kind=row.kind.value)
        await self.refresh()
        return row

    async def delete_row(self, row_id: str) -> None:
        """Delete a row together with its entries and schedules."""
        await self._ensure_loaded()
        self.grid.row(row_id)
        await self._call("delete_row", self.store.delete_row(self.hospitalization_id, row_id))
        self.logger.info("row_deleted", row_id=row_id)
        await self.refresh()

    async def create_schedule(
        self,
        row_id: str,
        start_at: datetime,
        *,
        interval_minutes: int = 0,
        end_at: datetime | None = None,
        occurrences: int | None = None,
        default_value: EntryValue | None = None,
    ) -> Schedule:
        """Attach a one-time (interval 0) or recurring schedule to a row."""
        request = build_schedule_request(
            row_id=row_id,
            start_at=start_at,
            interval_minutes=interval_minutes,
            end_at=end_at,
            occurrences=occurrences,
            default_value=default_value,
        )
        await self._ensure_loaded()
        row = self.grid.row(row_id)
        if default_value is not None and default_value.kind != row.kind:
            self.logger.info(
                "schedule_rejected",
                row_id=row_id,
                row_kind=row.kind.value,
                default_kind=default_value.kind.value,
            )
            raise ValidationError(
                f"Default value of kind {default_value.kind.value} does not fit "
                f"{row.kind.value} row {row.label!r}"
            )

        schedule = await self._call(
            "create_schedule",
            self.store.create_schedule(self.hospitalization_id, request, self.author_id),
        )
        self.logger.info(
            "schedule_created",
            schedule_id=schedule.id,
            row_id=row_id,
            interval_minutes=schedule.interval_minutes,
        )
        await self.refresh()
        return schedule

    async def delete_schedule(self, schedule_id: str) -> None:
        await self._ensure_loaded()
        if not any(schedule.id == schedule_id for schedule in self.chart.schedules):
            raise NotFoundError(f"Schedule {schedule_id!r} not found")
        await self._call(
            "delete_schedule", self.store.delete_schedule(self.hospitalization_id, schedule_id)
        )
        self.logger.info("schedule_deleted", schedule_id=schedule_id)
        await self.refresh()

    # Views

    async def day_grid(self, day: date) -> ChartGridView:
        """Grid of one clinic-local day."""
        hospitalization = await self._ensure_loaded()
        return build_day_grid(
            hospitalization,
            self.chart.rows,
            self.chart.entries,
            self.chart.schedules,
            day,
            self.config.chart.tzinfo,
            await self.medications(),
        )

    async def stay_grid(self, now: datetime | None = None) -> ChartGridView:
        """Grid of the whole stay, for full-stay reports."""
        hospitalization = await self._ensure_loaded()
        return build_stay_grid(
            hospitalization,
            self.chart.rows,
            self.chart.entries,
            self.chart.schedules,
            now or datetime.now(UTC),
            await self.medications(),
        )

    async def next_scheduled_at(self, now: datetime | None = None) -> datetime | None:
        await self._ensure_loaded()
        return self.engine.next_scheduled_at(now or datetime.now(UTC))

    async def summary(self, now: datetime | None = None) -> StaySummary:
        """End-of-stay medication and material totals with the stay duration."""
        hospitalization = await self._ensure_loaded()
        usages, materials, medications = await asyncio.gather(
            self._call(
                "fetch_material_usage", self.store.fetch_material_usage(self.hospitalization_id)
            ),
            self._call("fetch_materials", self.store.fetch_materials()),
            self.medications(),
        )
        result = summarize(
            hospitalization,
            self.chart.rows,
            self.chart.entries,
            usages,
            now or datetime.now(UTC),
            medications=medications,
            materials=materials,
        )
        self.logger.info(
            "summary_generated",
            medications=len(result.medication_totals),
            materials=len(result.material_totals),
            duration_days=result.duration.days,
            duration_hours=result.duration.hours,
        )
        return result
