"""
Protocol for the external persistent chart store.

The store is the sole arbiter of the (row, hour) uniqueness of entries: it
must reject or coalesce concurrent creates for the same key. The engine
never patches its in-memory grid; it re-reads the chart after a mutation.
"""

from typing import Protocol

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


class ChartStore(Protocol):
    """
    Request/response access to persisted charts.

    Why Protocol over ABC: structural typing, easy test doubles.
    Implementations raise NotFoundError for unknown ids.
    """

    async def fetch_hospitalization(self, hospitalization_id: str) -> Hospitalization: ...

    async def fetch_chart(self, hospitalization_id: str) -> ChartData: ...

    async def create_entry(
        self, hospitalization_id: str, draft: EntryDraft, author_id: str | None
    ) -> ChartEntry: ...

    async def update_entry(
        self, hospitalization_id: str, entry_id: str, patch: EntryPatch, author_id: str | None
    ) -> ChartEntry: ...

    async def delete_entry(self, hospitalization_id: str, entry_id: str) -> None: ...

    async def create_row(self, hospitalization_id: str, draft: RowDraft) -> ChartRow: ...

    async def delete_row(self, hospitalization_id: str, row_id: str) -> None: ...

    async def create_schedule(
        self, hospitalization_id: str, request: ScheduleRequest, author_id: str | None
    ) -> Schedule: ...

    async def delete_schedule(self, hospitalization_id: str, schedule_id: str) -> None: ...

    async def fetch_medications(self) -> list[Medication]: ...

    async def fetch_materials(self) -> list[Material]: ...

    async def fetch_material_usage(self, hospitalization_id: str) -> list[MaterialUsage]: ...
