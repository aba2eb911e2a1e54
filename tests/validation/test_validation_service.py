"""Tests for ValidationService persistence, batch runs and readiness."""

import pytest
from uuid_extensions import uuid7

from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.lifecycle.entry_manager import EntryLifecycleManager
from src.models.common import CalculationMethod, EntityType, ValidationStatus
from src.models.entry import EntryDraft
from src.models.errors import NotFound
from src.validation.service import ValidationService


def _make_draft(**overrides) -> EntryDraft:
    defaults = {
        "cn_code": "72081000",
        "country_of_origin": "China",
        "quantity": 100.0,
        "reporting_period_year": 2026,
    }
    return EntryDraft(**{**defaults, **overrides})


@pytest.fixture
def service(ctx: LifecycleContext) -> ValidationService:
    return ValidationService(ctx)


@pytest.fixture
def manager(ctx: LifecycleContext) -> EntryLifecycleManager:
    return EntryLifecycleManager(ctx)


class TestValidateEntry:
    """validate_entry() persists the full result."""

    @pytest.mark.anyio
    async def test_persists_result(self, service, manager, ctx, events) -> None:
        entry = await manager.create(_make_draft(carbon_price_due_paid=5.0), "analyst")
        updated, outcome = (await service.validate_entry(entry.entry_id, "analyst")).value

        assert outcome.status == ValidationStatus.BLOCKED
        stored = await manager.get(entry.entry_id)
        assert stored.validation_status == ValidationStatus.BLOCKED
        assert [i.rule for i in stored.validation_errors] == ["CARBON_PRICE_CERT"]
        assert stored.compliance_score == 75.0
        assert stored.last_validated_at is not None
        assert stored.revision == entry.revision + 1

        trail = await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id)
        assert trail[-1].action == "validated"
        assert trail[-1].details["rules_applied"] == outcome.rules_applied
        assert trail[-1].details["blocking_issues"][0]["rule"] == "CARBON_PRICE_CERT"
        assert len(events.of_type(EventType.ENTRY_VALIDATED)) == 1

    @pytest.mark.anyio
    async def test_catalog_benchmark_used_for_calculated_entry(self, service, manager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await manager.calculate(entry.entry_id, "analyst")
        _, outcome = (await service.validate_entry(entry.entry_id, "analyst")).value
        assert "MATERIALITY_ASSESSMENT" in outcome.rules_applied
        assert outcome.materiality.benchmark == pytest.approx(137.0)
        assert outcome.status == ValidationStatus.PASS

    @pytest.mark.anyio
    async def test_explicit_benchmark(self, service, manager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await manager.calculate(entry.entry_id, "analyst")
        _, outcome = (await service.validate_entry(entry.entry_id, "analyst", benchmark=1.0)).value
        assert outcome.materiality.exceeds_threshold
        assert outcome.status == ValidationStatus.WARNING

    @pytest.mark.anyio
    async def test_missing_entry(self, service) -> None:
        with pytest.raises(NotFound):
            await service.validate_entry(uuid7(), "analyst")


class TestBatchValidate:
    """batch_validate() counts by status and skips missing entries."""

    @pytest.mark.anyio
    async def test_batch(self, service, manager) -> None:
        passing = await manager.create(_make_draft(), "analyst")
        blocked = await manager.create(
            _make_draft(calculation_method=CalculationMethod.ACTUAL_VALUES), "analyst",
        )
        missing = uuid7()
        summary = await service.batch_validate(
            [passing.entry_id, blocked.entry_id, missing], "analyst",
        )
        assert (summary.total, summary.passed, summary.warnings, summary.blocked) == (2, 1, 0, 1)
        assert summary.not_found == [missing]


class TestReportReadiness:
    """Ready only when every entry is validated and none blocked."""

    @pytest.mark.anyio
    async def test_unvalidated_not_ready(self, service, manager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        readiness = await service.report_readiness([entry.entry_id])
        assert readiness.unvalidated == 1
        assert readiness.ready is False

    @pytest.mark.anyio
    async def test_blocked_not_ready(self, service, manager) -> None:
        good = await manager.create(_make_draft(), "analyst")
        bad = await manager.create(_make_draft(quantity=0.0), "analyst")
        await service.batch_validate([good.entry_id, bad.entry_id], "analyst")
        readiness = await service.report_readiness([good.entry_id, bad.entry_id])
        assert readiness.blocked_entry_ids == [bad.entry_id]
        assert readiness.ready is False

    @pytest.mark.anyio
    async def test_ready(self, service, manager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await service.validate_entry(entry.entry_id, "analyst")
        readiness = await service.report_readiness([entry.entry_id])
        assert readiness.ready is True

    @pytest.mark.anyio
    async def test_empty_not_ready(self, service) -> None:
        assert (await service.report_readiness([])).ready is False
