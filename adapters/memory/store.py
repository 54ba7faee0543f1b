"""
In-memory implementation of the ChartStore protocol.

Used by the test suite and the terminal demo. It behaves like the real
store where the engine relies on it:
- (row, hour) uniqueness: creating an entry on an occupied key updates it
- deleting a row cascades to its entries and schedules
- unknown ids raise NotFoundError
"""

import asyncio
import itertools
from collections.abc import Iterable
from datetime import UTC, datetime

import structlog

from ward_chart.domain.errors import NotFoundError
from ward_chart.domain.models import (
    ChartData,
    ChartEntry,
    ChartRow,
    EntryDraft,
    EntryPatch,
    Hospitalization,
    Material,
    MaterialUsage,
    Medication,
    RowDraft,
    Schedule,
    ScheduleRequest,
)
from ward_chart.domain.timegrid import as_utc, normalize_hour

logger = structlog.get_logger(__name__)


class InMemoryChartStore:
    """
    Dict-backed chart store.

    ``latency_seconds`` delays every call, which lets tests exercise the
    service's timeout handling.
    """

    def __init__(
        self,
        hospitalizations: Iterable[Hospitalization] = (),
        medications: Iterable[Medication] = (),
        materials: Iterable[Material] = (),
        latency_seconds: float = 0.0,
    ) -> None:
        self.hospitalizations = {h.id: h for h in hospitalizations}
        self.medications = {m.id: m for m in medications}
        self.materials = {m.id: m for m in materials}
        self.rows: dict[str, ChartRow] = {}
        self.entries: dict[str, ChartEntry] = {}
        self.schedules: dict[str, Schedule] = {}
        self.usages: dict[str, MaterialUsage] = {}
        self.latency_seconds = latency_seconds
        self.call_count = 0
        self._ids = itertools.count(1)
        self.logger = logger.bind(component="in_memory_store")

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    async def _roundtrip(self) -> None:
        self.call_count += 1
        await asyncio.sleep(self.latency_seconds)

    def _hospitalization(self, hospitalization_id: str) -> Hospitalization:
        try:
            return self.hospitalizations[hospitalization_id]
        except KeyError:
            raise NotFoundError(f"Hospitalization {hospitalization_id!r} not found") from None

    def _rows_of(self, hospitalization_id: str) -> set[str]:
        return {r.id for r in self.rows.values() if r.hospitalization_id == hospitalization_id}

    def _row(self, hospitalization_id: str, row_id: str) -> ChartRow:
        row = self.rows.get(row_id)
        if row is None or row.hospitalization_id != hospitalization_id:
            raise NotFoundError(f"Chart row {row_id!r} not found")
        return row

    def _entry(self, hospitalization_id: str, entry_id: str) -> ChartEntry:
        entry = self.entries.get(entry_id)
        if entry is None or entry.row_id not in self._rows_of(hospitalization_id):
            raise NotFoundError(f"Chart entry {entry_id!r} not found")
        return entry

    # Seeding helpers (synchronous, no latency)

    def add_row(self, row: ChartRow) -> ChartRow:
        self.rows[row.id] = row
        return row

    def add_entry(self, entry: ChartEntry) -> ChartEntry:
        self.entries[entry.id] = entry
        return entry

    def add_schedule(self, schedule: Schedule) -> Schedule:
        self.schedules[schedule.id] = schedule
        return schedule

    def add_usage(self, usage: MaterialUsage) -> MaterialUsage:
        self.usages[usage.id] = usage
        return usage

    # ChartStore protocol

    async def fetch_hospitalization(self, hospitalization_id: str) -> Hospitalization:
        await self._roundtrip()
        return self._hospitalization(hospitalization_id)

    async def fetch_chart(self, hospitalization_id: str) -> ChartData:
        await self._roundtrip()
        self._hospitalization(hospitalization_id)
        row_ids = self._rows_of(hospitalization_id)
        return ChartData(
            rows=[r for r in self.rows.values() if r.id in row_ids],
            entries=[e for e in self.entries.values() if e.row_id in row_ids],
            schedules=[s for s in self.schedules.values() if s.row_id in row_ids],
        )

    async def create_entry(
        self, hospitalization_id: str, draft: EntryDraft, author_id: str | None
    ) -> ChartEntry:
        await self._roundtrip()
        self._row(hospitalization_id, draft.row_id)
        at_time = as_utc(normalize_hour(draft.at_time))

        existing = next(
            (
                e
                for e in self.entries.values()
                if e.row_id == draft.row_id and as_utc(e.at_time) == at_time
            ),
            None,
        )
        if existing is not None:
            self.logger.info("entry_create_coalesced", entry_id=existing.id)
            patch = EntryPatch(value=draft.value)
            return self._patch(existing, patch, author_id)

        now = datetime.now(UTC)
        entry = ChartEntry(
            id=self._next_id("entry"),
            row_id=draft.row_id,
            at_time=draft.at_time,
            value=draft.value,
            flagged=draft.flagged,
            author_id=author_id,
            created_at=now,
            updated_at=now,
        )
        self.entries[entry.id] = entry
        return entry

    def _patch(self, entry: ChartEntry, patch: EntryPatch, author_id: str | None) -> ChartEntry:
        update = patch.model_dump(exclude_none=True)
        update["value"] = patch.value if patch.value is not None else entry.value
        update["author_id"] = author_id or entry.author_id
        update["updated_at"] = datetime.now(UTC)
        updated = entry.model_copy(update=update)
        self.entries[entry.id] = updated
        return updated

    async def update_entry(
        self, hospitalization_id: str, entry_id: str, patch: EntryPatch, author_id: str | None
    ) -> ChartEntry:
        await self._roundtrip()
        return self._patch(self._entry(hospitalization_id, entry_id), patch, author_id)

    async def delete_entry(self, hospitalization_id: str, entry_id: str) -> None:
        await self._roundtrip()
        self._entry(hospitalization_id, entry_id)
        del self.entries[entry_id]

    async def create_row(self, hospitalization_id: str, draft: RowDraft) -> ChartRow:
        await self._roundtrip()
        self._hospitalization(hospitalization_id)
        row = ChartRow(
            id=self._next_id("row"),
            hospitalization_id=hospitalization_id,
            **draft.model_dump(),
        )
        self.rows[row.id] = row
        return row

    async def delete_row(self, hospitalization_id: str, row_id: str) -> None:
        await self._roundtrip()
        self._row(hospitalization_id, row_id)
        del self.rows[row_id]
        self.entries = {k: e for k, e in self.entries.items() if e.row_id != row_id}
        self.schedules = {k: s for k, s in self.schedules.items() if s.row_id != row_id}

    async def create_schedule(
        self, hospitalization_id: str, request: ScheduleRequest, author_id: str | None
    ) -> Schedule:
        await self._roundtrip()
        self._row(hospitalization_id, request.row_id)
        schedule = Schedule(
            id=self._next_id("schedule"),
            created_by=author_id,
            **request.model_dump(),
        )
        self.schedules[schedule.id] = schedule
        return schedule

    async def delete_schedule(self, hospitalization_id: str, schedule_id: str) -> None:
        await self._roundtrip()
        schedule = self.schedules.get(schedule_id)
        if schedule is None or schedule.row_id not in self._rows_of(hospitalization_id):
            raise NotFoundError(f"Schedule {schedule_id!r} not found")
        del self.schedules[schedule_id]

    async def fetch_medications(self) -> list[Medication]:
        await self._roundtrip()
        return list(self.medications.values())

    async def fetch_materials(self) -> list[Material]:
        await self._roundtrip()
        return list(self.materials.values())

    async def fetch_material_usage(self, hospitalization_id: str) -> list[MaterialUsage]:
        await self._roundtrip()
        self._hospitalization(hospitalization_id)
        return [u for u in self.usages.values() if u.hospitalization_id == hospitalization_id]
