"""
Domain models for hospitalization charts.

These models represent the core clinical charting concepts and are
framework-agnostic. They use Pydantic for validation; every instant is a
timezone-aware datetime.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator, model_validator

from ward_chart.domain.timegrid import normalize_hour


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RowKind(str, Enum):
    """Kinds of clinical parameters a chart row can track."""

    NUMERIC = "NUMERIC"
    OPTION = "OPTION"
    CHECK = "CHECK"
    TEXT = "TEXT"
    MEDICATION = "MEDICATION"


class HospitalizationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


# Entry values: one variant per row kind, discriminated by ``kind``


class NumericValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[RowKind.NUMERIC] = RowKind.NUMERIC
    value: float = Field(allow_inf_nan=False)


class OptionValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[RowKind.OPTION] = RowKind.OPTION
    option_id: str = Field(min_length=1)


class CheckValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[RowKind.CHECK] = RowKind.CHECK
    checked: bool


class TextValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[RowKind.TEXT] = RowKind.TEXT
    text: str


class MedicationValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[RowKind.MEDICATION] = RowKind.MEDICATION
    amount: float = Field(allow_inf_nan=False)
    unit: str = Field(min_length=1)


EntryValue = Annotated[
    NumericValue | OptionValue | CheckValue | TextValue | MedicationValue,
    Field(discriminator="kind"),
]


class ChartRow(BaseModel):
    """One tracked parameter for one hospitalization."""

    model_config = ConfigDict(frozen=True)

    id: str
    hospitalization_id: str
    kind: RowKind
    label: str
    unit: str | None = None
    sort_order: int = 0
    medication_id: str | None = None
    options: tuple[str, ...] = Field(
        default=(), description="Declared choices for OPTION rows"
    )
    created_at: AwareDatetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def medication_only_on_medication_rows(self) -> "ChartRow":
        if self.kind == RowKind.MEDICATION and self.medication_id is None:
            raise ValueError("MEDICATION rows must reference a medication")
        if self.kind != RowKind.MEDICATION and self.medication_id is not None:
            raise ValueError(f"{self.kind.value} rows cannot reference a medication")
        return self


class ChartEntry(BaseModel):
    """One recorded observation for one row at one hour."""

    model_config = ConfigDict(frozen=True)

    id: str
    row_id: str
    at_time: AwareDatetime
    value: EntryValue
    flagged: bool = False
    author_id: str | None = None
    created_at: AwareDatetime = Field(default_factory=_utcnow)
    updated_at: AwareDatetime = Field(default_factory=_utcnow)

    @field_validator("at_time")
    def normalize_at_time(cls, v: datetime) -> datetime:
        return normalize_hour(v)


class EntryDraft(BaseModel):
    """A new entry to be created by the store."""

    row_id: str
    at_time: AwareDatetime
    value: EntryValue
    flagged: bool = False


class EntryPatch(BaseModel):
    """Fields of an existing entry to be overwritten; None leaves a field untouched."""

    value: EntryValue | None = None
    flagged: bool | None = None


class RowDraft(BaseModel):
    """A new chart row to be created by the store."""

    kind: RowKind
    label: str = Field(min_length=1)
    unit: str | None = None
    sort_order: int = 0
    medication_id: str | None = None
    options: tuple[str, ...] = ()

    @model_validator(mode="after")
    def medication_only_on_medication_rows(self) -> "RowDraft":
        if (self.kind == RowKind.MEDICATION) != (self.medication_id is not None):
            raise ValueError("medication_id is required on, and only on, MEDICATION rows")
        return self


class Schedule(BaseModel):
    """A recurrence, or a single expectation, attached to one row."""

    model_config = ConfigDict(frozen=True)

    id: str
    row_id: str
    start_at: AwareDatetime
    interval_minutes: int = Field(ge=0, description="0 encodes a one-time schedule")
    end_at: AwareDatetime | None = None
    occurrences: int | None = Field(default=None, ge=0)
    default_value: EntryValue | None = None
    created_by: str | None = None
    created_at: AwareDatetime = Field(default_factory=_utcnow)

    @property
    def is_one_time(self) -> bool:
        return self.interval_minutes == 0


class ScheduleRequest(BaseModel):
    """Payload for creating a schedule; stricter than what the store may hold."""

    row_id: str
    start_at: AwareDatetime
    interval_minutes: int = 0
    end_at: AwareDatetime | None = None
    occurrences: int | None = None
    default_value: EntryValue | None = None

    @field_validator("interval_minutes")
    def interval_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("interval_minutes must be >= 0")
        return v

    @field_validator("occurrences")
    def occurrences_positive(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("occurrences must be a positive integer")
        return v

    @model_validator(mode="after")
    def bounds_only_on_recurring(self) -> "ScheduleRequest":
        if self.interval_minutes == 0 and (self.end_at is not None or self.occurrences is not None):
            raise ValueError("end_at and occurrences only apply to recurring schedules")
        if self.end_at is not None and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        return self


class TemplateSchedule(BaseModel):
    """Schedule definition carried by a chart template, relative to admission."""

    row_id: str
    interval_minutes: int = Field(gt=0)
    start_offset_minutes: int = Field(default=0, ge=0)
    duration_days: int = Field(gt=0)
    default_value: EntryValue | None = None


class Medication(BaseModel):
    """Catalog medication, consumed read-only."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    reference_unit: str = "mg"
    dose_min_per_kg: float | None = Field(default=None, ge=0.0)
    dose_max_per_kg: float | None = Field(default=None, ge=0.0)
    dose_unit: str | None = None
    concentration: float | None = Field(default=None, description="Mass per volume")
    concentration_unit: str | None = None


class Hospitalization(BaseModel):
    """Hospitalization context: read-only inputs to the engine."""

    model_config = ConfigDict(frozen=True)

    id: str
    admission_at: AwareDatetime
    weight_kg: float = Field(gt=0.0)
    status: HospitalizationStatus = HospitalizationStatus.ACTIVE
    archived_at: AwareDatetime | None = None

    @property
    def is_archived(self) -> bool:
        return self.status == HospitalizationStatus.ARCHIVED


class Material(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    unit: str


class MaterialUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    hospitalization_id: str
    material_id: str
    quantity: float = Field(ge=0.0)
    at_time: AwareDatetime
    author_id: str | None = None


class ChartData(BaseModel):
    """Full chart of a hospitalization as returned by the store."""

    rows: list[ChartRow] = Field(default_factory=list)
    entries: list[ChartEntry] = Field(default_factory=list)
    schedules: list[Schedule] = Field(default_factory=list)


# Report models


class DoseStatus(str, Enum):
    BELOW = "below"
    WITHIN = "within"
    ABOVE = "above"
    NO_REFERENCE = "no_reference"
    UNIT_MISMATCH = "unit_mismatch"


class DoseRange(BaseModel):
    """Absolute recommended dose for a patient; either bound may be missing."""

    model_config = ConfigDict(frozen=True)

    min: float | None
    max: float | None
    unit: str


class DoseAnnotation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: DoseStatus
    recommended: DoseRange | None = None


class GridCell(BaseModel):
    model_config = ConfigDict(frozen=True)

    row_id: str
    hour: AwareDatetime
    entry: ChartEntry | None = None
    is_scheduled: bool = False
    is_disabled: bool = False
    display_value: str = ""
    dose: DoseAnnotation | None = None


class GridRow(BaseModel):
    row: ChartRow
    cells: list[GridCell]


class ChartGridView(BaseModel):
    """Rows x hours view handed to the rendering layer."""

    hours: list[AwareDatetime]
    rows: list[GridRow]


class SeriesPoint(BaseModel):
    """One hour of a numeric row's trend."""

    model_config = ConfigDict(frozen=True)

    hour: AwareDatetime
    value: float | None
    flagged: bool = False


class MedicationTotal(BaseModel):
    model_config = ConfigDict(frozen=True)

    medication_id: str
    name: str
    total_amount: float
    unit: str


class MaterialTotal(BaseModel):
    model_config = ConfigDict(frozen=True)

    material_id: str
    material_name: str
    unit: str
    total_quantity: float


class StayDuration(BaseModel):
    model_config = ConfigDict(frozen=True)

    days: int = Field(ge=0)
    hours: int = Field(ge=0, lt=24)


class StaySummary(BaseModel):
    """End-of-stay report."""

    hospitalization_id: str
    medication_totals: list[MedicationTotal]
    material_totals: list[MaterialTotal]
    duration: StayDuration
    generated_at: datetime = Field(default_factory=_utcnow)
