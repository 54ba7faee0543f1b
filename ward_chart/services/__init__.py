"""
Core services for the chart engine.

This package contains schedule evaluation, grid indexing and planning,
dosage computation, stay aggregation and the store-backed chart service.
"""

from .chart_grid import ChartGrid, EntryMutation, MutationAction, display_value, parse_value
from .chart_service import ChartService
from .dosage import annotate_dose, convert_mass_to_volume, recommended_range, volume_range
from .grid_builder import build_day_grid, build_stay_grid, row_series
from .schedule_engine import ScheduleEngine, next_trigger_at, triggers
from .store import ChartStore
from .summary import material_totals, medication_totals, stay_duration, summarize

__all__ = [
    "ChartGrid",
    "ChartService",
    "ChartStore",
    "EntryMutation",
    "MutationAction",
    "ScheduleEngine",
    "annotate_dose",
    "build_day_grid",
    "build_stay_grid",
    "convert_mass_to_volume",
    "display_value",
    "material_totals",
    "medication_totals",
    "next_trigger_at",
    "parse_value",
    "recommended_range",
    "row_series",
    "stay_duration",
    "summarize",
    "triggers",
    "volume_range",
]
