"""
Terminal walkthrough of the chart engine against the in-memory store.

This script:
1. Seeds a hospitalization with a medication and a material catalog
2. Creates rows and schedules through the chart service
3. Records, flags and clears a few cells
4. Renders the day grid and the end-of-stay summary

Run with: uv run python demo_chart.py
"""

import asyncio
from datetime import UTC, datetime, timedelta

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from adapters.memory import InMemoryChartStore
from ward_chart.config import configure_logging, get_config
from ward_chart.domain.errors import ChartError
from ward_chart.domain.models import (
    ChartGridView,
    DoseStatus,
    Hospitalization,
    Material,
    MaterialUsage,
    Medication,
    RowKind,
)
from ward_chart.services.chart_service import ChartService
from ward_chart.services.dosage import recommended_range, volume_range
from ward_chart.services.summary import format_duration

console = Console()

_DOSE_STYLES = {
    DoseStatus.BELOW: "yellow",
    DoseStatus.ABOVE: "bold red",
    DoseStatus.WITHIN: "green",
}


def render_grid(view: ChartGridView, title: str) -> Table:
    """Rows x hours table: scheduled cells are marked, flagged cells in red."""
    table = Table(title=title, show_lines=False)
    table.add_column("Parameter", style="cyan", no_wrap=True)
    for hour in view.hours:
        table.add_column(hour.strftime("%H"), justify="center")

    for grid_row in view.rows:
        unit = f" ({grid_row.row.unit})" if grid_row.row.unit else ""
        cells = []
        for cell in grid_row.cells:
            if cell.is_disabled:
                cells.append("[dim]·[/dim]")
                continue
            text = cell.display_value or ("○" if cell.is_scheduled else "")
            if cell.entry is not None and cell.entry.flagged:
                text = f"[bold red]{text}[/bold red]"
            elif cell.dose is not None and cell.dose.status in _DOSE_STYLES:
                text = f"[{_DOSE_STYLES[cell.dose.status]}]{text}[/]"
            cells.append(text)
        table.add_row(f"{grid_row.row.label}{unit}", *cells)
    return table


async def run_demo() -> None:
    config = get_config()
    configure_logging(config.logging)
    tz = config.chart.tzinfo

    console.print(Panel("Hospitalization chart - walkthrough", style="bold blue"))

    today = datetime.now(tz).replace(hour=0, minute=0, second=0, microsecond=0)
    admission_at = today + timedelta(hours=7, minutes=40)
    flunixin = Medication(
        id="med-flunixin",
        name="Flunixine",
        reference_unit="mg",
        dose_min_per_kg=1.0,
        dose_max_per_kg=1.1,
        dose_unit="mg",
        concentration=50.0,
        concentration_unit="mg/ml",
    )
    hospitalization = Hospitalization(id="hosp-1", admission_at=admission_at, weight_kg=520.0)
    store = InMemoryChartStore(
        hospitalizations=[hospitalization],
        medications=[flunixin],
        materials=[Material(id="mat-catheter", name="Catheter", unit="pcs")],
    )
    store.add_usage(
        MaterialUsage(
            id="usage-1",
            hospitalization_id="hosp-1",
            material_id="mat-catheter",
            quantity=2,
            at_time=admission_at,
        )
    )

    service = ChartService(store, "hosp-1", author_id="user-nurse", config=config)

    temperature = await service.create_row(RowKind.NUMERIC, "Temperature", unit="°C")
    pain = await service.create_row(RowKind.OPTION, "Pain", options=("-", "+", "++", "+++"))
    drug = await service.create_row(
        RowKind.MEDICATION, flunixin.name, unit="mg", medication_id=flunixin.id
    )

    await service.create_schedule(temperature.id, admission_at, interval_minutes=120)
    await service.create_schedule(drug.id, today + timedelta(hours=9), interval_minutes=720)

    await service.upsert_entry(temperature.id, today + timedelta(hours=8), "37.8")
    await service.upsert_entry(temperature.id, today + timedelta(hours=10, minutes=5), 39.4)
    await service.toggle_flag(temperature.id, today + timedelta(hours=10))
    await service.upsert_entry(pain.id, today + timedelta(hours=8), "++")
    await service.upsert_entry(drug.id, today + timedelta(hours=9), 550)

    try:
        await service.upsert_entry(temperature.id, today + timedelta(hours=6), 37.5)
    except ChartError as e:
        console.print(f"Rejected as expected: {e}", style="yellow")

    view = await service.day_grid(today.date())
    console.print(render_grid(view, f"Chart of {today:%d/%m/%Y}"))

    dose_table = Table(title=f"{flunixin.name} for {hospitalization.weight_kg:g} kg")
    dose_table.add_column("Unit", style="cyan")
    dose_table.add_column("Recommended", style="white")
    for dose in (
        recommended_range(flunixin, hospitalization.weight_kg),
        volume_range(flunixin, hospitalization.weight_kg),
    ):
        if dose is not None:
            dose_table.add_row(dose.unit, f"{dose.min} - {dose.max}")
    console.print(dose_table)

    summary = await service.summary(now=datetime.now(UTC))
    summary_table = Table(title=f"Summary - stay of {format_duration(summary.duration)}")
    summary_table.add_column("Item", style="cyan")
    summary_table.add_column("Total", style="white")
    for med in summary.medication_totals:
        summary_table.add_row(med.name, f"{med.total_amount:g} {med.unit}")
    for mat in summary.material_totals:
        summary_table.add_row(mat.material_name, f"{mat.total_quantity:g} {mat.unit}")
    console.print(summary_table)

    next_due = await service.next_scheduled_at()
    if next_due is not None:
        console.print(f"Next scheduled observation: {next_due.astimezone(tz):%d/%m %H:%M}")


if __name__ == "__main__":
    try:
        asyncio.run(run_demo())
    except KeyboardInterrupt:
        console.print("\nDemo stopped by user", style="yellow")
