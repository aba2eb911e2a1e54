"""Tests for entry, outcome and reporting period models."""

from datetime import date

import pytest
from pydantic import ValidationError

from src.models.common import CalculationMethod, ValidationStatus, VerificationStatus
from src.models.entry import CalculationOutputs, Entry, EntryDraft, ExternalReference, Precursor
from src.models.outcome import Outcome, RejectionCode
from src.models.report import ReportingPeriod


class TestEntryDraft:
    """EntryDraft normalises input."""

    def test_reporting_year_defaults_from_import_date(self) -> None:
        draft = EntryDraft(cn_code="72081000", import_date=date(2026, 2, 10))
        assert draft.reporting_period_year == 2026

    def test_explicit_reporting_year_kept(self) -> None:
        draft = EntryDraft(import_date=date(2026, 2, 10), reporting_period_year=2027)
        assert draft.reporting_period_year == 2027

    def test_cn_code_is_stripped(self) -> None:
        assert EntryDraft(cn_code=" 72081000 ").cn_code == "72081000"

    def test_negative_quantity_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EntryDraft(quantity=-1)

    def test_default_method(self) -> None:
        assert EntryDraft().calculation_method == CalculationMethod.DEFAULT_VALUES


class TestEntry:
    """Entry lifecycle defaults and derived values."""

    def test_new_entry_defaults(self) -> None:
        entry = Entry(cn_code="72081000")
        assert entry.revision == 1
        assert entry.validation_status == ValidationStatus.PENDING
        assert entry.verification_status == VerificationStatus.NOT_VERIFIED
        assert entry.calculation_frozen is False
        assert entry.is_calculated is False
        assert entry.total_embedded_emissions is None

    def test_calculated_entry(self) -> None:
        entry = Entry(
            cn_code="72081000",
            calculation=CalculationOutputs(total_embedded_emissions=137.0, certificates_required=17.1),
        )
        assert entry.is_calculated is True
        assert entry.total_embedded_emissions == 137.0
        assert entry.certificates_required == 17.1

    def test_calculation_snapshot_carries_prior_state(self) -> None:
        entry = Entry(
            cn_code="72081000",
            quantity=100,
            calculation=CalculationOutputs(total_embedded_emissions=137.0),
        )
        state = entry.calculation_snapshot()
        assert state["cn_code"] == "72081000"
        assert state["quantity"] == 100
        assert state["calculation_method"] == "default_values"
        assert state["outputs"]["total_embedded_emissions"] == 137.0

    def test_precursor_emissions_data(self) -> None:
        assert Precursor(emissions_embedded=2.5).has_emissions_data is True
        assert Precursor().has_emissions_data is False

    def test_external_reference_requires_values(self) -> None:
        with pytest.raises(ValidationError):
            ExternalReference(kind="", reference_id="x")


class TestOutcome:
    """Outcome carries either a value or a rejection."""

    def test_success(self) -> None:
        outcome = Outcome.success(42)
        assert outcome.ok
        assert outcome.unwrap() == 42

    def test_rejected_carries_details(self) -> None:
        outcome = Outcome.rejected(
            RejectionCode.INVALID_TRANSITION, "nope",
            from_state="a", to_state="b", extra=1,
        )
        assert not outcome.ok
        payload = outcome.rejection.to_dict()
        assert payload["code"] == "invalid_transition"
        assert payload["from_state"] == "a"
        assert payload["to_state"] == "b"
        assert payload["details"] == {"extra": 1}

    def test_unwrap_rejection_raises(self) -> None:
        with pytest.raises(ValueError, match="nope"):
            Outcome.rejected(RejectionCode.PRECONDITION_FAILED, "nope").unwrap()


class TestReportingPeriod:
    """Quarter parsing and boundaries."""

    def test_parse(self) -> None:
        period = ReportingPeriod.parse("Q1-2026")
        assert (period.year, period.quarter) == (2026, 1)
        assert period.label == "Q1-2026"

    def test_bounds(self) -> None:
        period = ReportingPeriod(year=2026, quarter=1)
        assert period.start == date(2026, 1, 1)
        assert period.end == date(2026, 3, 31)
        assert period.contains(date(2026, 3, 31))
        assert not period.contains(date(2026, 4, 1))

    def test_submission_deadline(self) -> None:
        assert ReportingPeriod(year=2026, quarter=1).submission_deadline == date(2026, 4, 30)
        assert ReportingPeriod(year=2026, quarter=4).submission_deadline == date(2027, 1, 31)

    @pytest.mark.parametrize("value", ["2026-Q1", "Q5-2026", "Q1-26", ""])
    def test_parse_rejects_bad_labels(self, value: str) -> None:
        with pytest.raises(ValueError):
            ReportingPeriod.parse(value)
