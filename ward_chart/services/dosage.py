"""
Weight-based dosage calculations.

Recommended ranges are rounded to one decimal and converted volumes to
three decimals, half-up. Callers must not round these results again.
"""

from decimal import ROUND_HALF_UP, Decimal

from ward_chart.domain.errors import ValidationError
from ward_chart.domain.models import (
    ChartEntry,
    ChartRow,
    DoseAnnotation,
    DoseRange,
    DoseStatus,
    Medication,
    MedicationValue,
)

RANGE_DECIMALS = 1
VOLUME_DECIMALS = 3
DEFAULT_VOLUME_UNIT = "ml"


def _round(value: float, decimals: int) -> float:
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _volume_unit(medication: Medication) -> str:
    # "mg/ml" -> "ml"
    if medication.concentration_unit and "/" in medication.concentration_unit:
        return medication.concentration_unit.rsplit("/", 1)[1].strip() or DEFAULT_VOLUME_UNIT
    return DEFAULT_VOLUME_UNIT


def recommended_range(medication: Medication, weight_kg: float) -> DoseRange | None:
    """Absolute recommended dose for a patient, or None when the catalog has no reference."""
    if medication.dose_min_per_kg is None and medication.dose_max_per_kg is None:
        return None

    def _scale(per_kg: float | None) -> float | None:
        return None if per_kg is None else _round(per_kg * weight_kg, RANGE_DECIMALS)

    return DoseRange(
        min=_scale(medication.dose_min_per_kg),
        max=_scale(medication.dose_max_per_kg),
        unit=medication.dose_unit or medication.reference_unit,
    )


def convert_mass_to_volume(
    mass_per_kg_value: float, weight_kg: float, concentration: float | None
) -> float:
    """
    Volume to administer for a per-kg mass dose: (dose x weight) / concentration.

    Raises:
        ValidationError: concentration is missing or not positive.
    """
    if concentration is None or concentration <= 0:
        raise ValidationError(f"Cannot convert to volume with concentration {concentration!r}")
    return _round(mass_per_kg_value * weight_kg / concentration, VOLUME_DECIMALS)


def volume_range(medication: Medication, weight_kg: float) -> DoseRange | None:
    """The recommended range expressed as a volume, when a concentration is known."""
    concentration = medication.concentration
    if concentration is None or concentration <= 0:
        return None
    if medication.dose_min_per_kg is None and medication.dose_max_per_kg is None:
        return None

    def _convert(per_kg: float | None) -> float | None:
        return None if per_kg is None else convert_mass_to_volume(per_kg, weight_kg, concentration)

    return DoseRange(
        min=_convert(medication.dose_min_per_kg),
        max=_convert(medication.dose_max_per_kg),
        unit=_volume_unit(medication),
    )


def annotate_dose(
    entry: ChartEntry | None,
    row: ChartRow,
    medication: Medication | None,
    weight_kg: float,
) -> DoseAnnotation | None:
    """
    Compare a recorded medication amount with the patient's recommended range.

    The amount is compared with the mass range when units agree, otherwise
    with the volume range. Returns None for cells without a medication amount.
    """
    if entry is None or not isinstance(entry.value, MedicationValue):
        return None
    if medication is None or medication.id != row.medication_id:
        return DoseAnnotation(status=DoseStatus.NO_REFERENCE)

    mass = recommended_range(medication, weight_kg)
    if mass is None:
        return DoseAnnotation(status=DoseStatus.NO_REFERENCE)

    recorded = entry.value
    candidates = [mass, volume_range(medication, weight_kg)]
    reference = next((r for r in candidates if r is not None and r.unit == recorded.unit), None)
    if reference is None:
        return DoseAnnotation(status=DoseStatus.UNIT_MISMATCH, recommended=mass)

    if reference.min is not None and recorded.amount < reference.min:
        status = DoseStatus.BELOW
    elif reference.max is not None and recorded.amount > reference.max:
        status = DoseStatus.ABOVE
    else:
        status = DoseStatus.WITHIN
    return DoseAnnotation(status=status, recommended=reference)
