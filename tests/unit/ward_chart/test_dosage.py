"""Tests for weight-based dosage calculations."""

from datetime import UTC, datetime

import pytest
from conftest import make_entry, make_row

from ward_chart.domain.errors import ValidationError
from ward_chart.domain.models import (
    DoseRange,
    DoseStatus,
    Medication,
    MedicationValue,
    NumericValue,
    RowKind,
)
from ward_chart.services.dosage import (
    annotate_dose,
    convert_mass_to_volume,
    recommended_range,
    volume_range,
)

NINE = datetime(2024, 1, 1, 9, tzinfo=UTC)


@pytest.fixture
def flunixin_row():
    return make_row("flunixin", RowKind.MEDICATION, medication_id="med-1", unit="mg")


def dose(amount: float, unit: str = "mg"):
    return make_entry("e1", "flunixin", NINE, MedicationValue(amount=amount, unit=unit))


class TestRecommendedRange:
    def test_scales_by_weight(self, medication: Medication) -> None:
        assert recommended_range(medication, 520) == DoseRange(min=260.0, max=572.0, unit="mg")

    def test_rounds_half_up_to_one_decimal(self) -> None:
        medication = Medication(id="m", name="M", dose_min_per_kg=0.25, dose_max_per_kg=0.45)
        result = recommended_range(medication, 1.0)

        assert (result.min, result.max) == (0.3, 0.5)

    def test_single_bound(self) -> None:
        medication = Medication(id="m", name="M", dose_max_per_kg=2.0, dose_unit="UI")
        assert recommended_range(medication, 10) == DoseRange(min=None, max=20.0, unit="UI")

    def test_no_reference(self) -> None:
        assert recommended_range(Medication(id="m", name="M"), 10) is None


class TestVolume:
    def test_mass_to_volume(self) -> None:
        assert convert_mass_to_volume(1.0, 500, 50) == 10.0

    def test_three_decimals(self) -> None:
        assert convert_mass_to_volume(1.1, 7, 3) == 2.567

    @pytest.mark.parametrize("concentration", [None, 0, -5.0])
    def test_requires_positive_concentration(self, concentration) -> None:
        with pytest.raises(ValidationError, match="concentration"):
            convert_mass_to_volume(1.0, 500, concentration)

    def test_volume_range_uses_concentration_unit(self, medication: Medication) -> None:
        assert volume_range(medication, 520) == DoseRange(min=5.2, max=11.44, unit="ml")

    def test_volume_range_without_concentration(self) -> None:
        medication = Medication(id="m", name="M", dose_min_per_kg=1.0)
        assert volume_range(medication, 10) is None


class TestAnnotateDose:
    @pytest.mark.parametrize(
        ("amount", "status"),
        [
            (100, DoseStatus.BELOW),
            (260, DoseStatus.WITHIN),
            (572, DoseStatus.WITHIN),
            (600, DoseStatus.ABOVE),
        ],
    )
    def test_mass_amount(self, medication, flunixin_row, amount, status) -> None:
        annotation = annotate_dose(dose(amount), flunixin_row, medication, 520)

        assert annotation.status == status
        assert annotation.recommended.unit == "mg"

    def test_volume_amount(self, medication, flunixin_row) -> None:
        annotation = annotate_dose(dose(8, "ml"), flunixin_row, medication, 520)

        assert annotation.status == DoseStatus.WITHIN
        assert annotation.recommended == DoseRange(min=5.2, max=11.44, unit="ml")

    def test_unit_mismatch(self, medication, flunixin_row) -> None:
        annotation = annotate_dose(dose(2, "g"), flunixin_row, medication, 520)
        assert annotation.status == DoseStatus.UNIT_MISMATCH

    def test_no_reference(self, flunixin_row) -> None:
        annotation = annotate_dose(dose(5), flunixin_row, None, 520)
        assert annotation.status == DoseStatus.NO_REFERENCE

    def test_non_medication_cells(self, medication, flunixin_row) -> None:
        numeric = make_entry("e1", "flunixin", NINE, NumericValue(value=5))

        assert annotate_dose(None, flunixin_row, medication, 520) is None
        assert annotate_dose(numeric, flunixin_row, medication, 520) is None
