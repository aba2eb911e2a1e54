"""Tests for EntryLifecycleManager: CRUD, CN routing and calculation."""

from datetime import date

import pytest
from uuid_extensions import uuid7

from src.engine.calculation import CalculationRequest, CalculationResponse
from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext, build_context
from src.lifecycle.entry_manager import EntryLifecycleManager
from src.models.common import EntityType, ReportStatus, SnapshotReason, ValidationStatus
from src.models.entry import EntryDraft
from src.models.errors import ConcurrencyConflict, NotFound, UpstreamFailure
from src.models.outcome import RejectionCode
from src.models.report import Report


def _make_draft(**overrides) -> EntryDraft:
    defaults = {
        "import_reference": "IMP-001",
        "cn_code": "72081000",
        "country_of_origin": "China",
        "quantity": 100.0,
        "import_date": date(2026, 2, 10),
        "reporting_period_year": 2026,
    }
    return EntryDraft(**{**defaults, **overrides})


@pytest.fixture
def manager(ctx: LifecycleContext) -> EntryLifecycleManager:
    return EntryLifecycleManager(ctx)


class _Unavailable:
    async def __call__(self, request: CalculationRequest) -> CalculationResponse:
        raise UpstreamFailure("calculation service unreachable", retryable=True)


class TestCreate:
    """create() persists, audits and publishes."""

    @pytest.mark.anyio
    async def test_create(self, manager: EntryLifecycleManager, ctx, events) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        assert entry.goods_category == "hot_rolled_coil"
        assert entry.validation_status == ValidationStatus.PENDING
        assert entry.created_by == "analyst"

        stored = await manager.get(entry.entry_id)
        assert stored.import_reference == "IMP-001"

        trail = await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id)
        assert [a.action for a in trail] == ["created"]
        assert len(events.of_type(EventType.ENTRY_CREATED)) == 1

    @pytest.mark.anyio
    async def test_list_entries(self, manager: EntryLifecycleManager) -> None:
        await manager.create(_make_draft(), "analyst")
        await manager.create(_make_draft(import_reference="IMP-002"), "analyst")
        assert len(await manager.list_entries()) == 2

    @pytest.mark.anyio
    async def test_get_missing(self, manager: EntryLifecycleManager) -> None:
        with pytest.raises(NotFound):
            await manager.get(uuid7())


class TestUpdate:
    """update() writes content fields and routes CN changes to change control."""

    @pytest.mark.anyio
    async def test_update_fields(self, manager: EntryLifecycleManager, ctx) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.update(entry.entry_id, {"quantity": 80.0}, "analyst")
        assert outcome.ok
        assert outcome.value.quantity == 80.0
        assert outcome.value.revision == entry.revision + 1
        assert outcome.value.data_modified_at > entry.data_modified_at

        trail = await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id)
        assert trail[-1].action == "updated"
        assert trail[-1].details["previous"] == {"quantity": 100.0}

    @pytest.mark.anyio
    async def test_unchanged_values_write_nothing(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.update(entry.entry_id, {"quantity": 100.0}, "analyst")
        assert outcome.value.revision == entry.revision

    @pytest.mark.anyio
    async def test_lifecycle_fields_not_allowed(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.update(
            entry.entry_id, {"validation_status": "pass", "calculation_frozen": True}, "analyst",
        )
        assert outcome.rejection.code == RejectionCode.FIELD_NOT_ALLOWED
        assert outcome.rejection.details["fields"] == ["calculation_frozen", "validation_status"]

    @pytest.mark.anyio
    async def test_invalid_value_rejected(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.update(entry.entry_id, {"quantity": -5}, "analyst")
        assert outcome.rejection.code == RejectionCode.VALIDATION_REJECTED

    @pytest.mark.anyio
    async def test_stale_revision(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await manager.update(entry.entry_id, {"quantity": 90.0}, "analyst")
        with pytest.raises(ConcurrencyConflict):
            await manager.update(
                entry.entry_id, {"quantity": 80.0}, "analyst", expected_revision=entry.revision,
            )

    @pytest.mark.anyio
    async def test_cn_change_opens_change_request(self, manager: EntryLifecycleManager, ctx) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.update(entry.entry_id, {"cn_code": "76061100"}, "analyst")
        updated = outcome.value
        assert updated.cn_code == "76061100"
        assert updated.calculation_frozen is True
        assert updated.reporting_blocked is True
        assert updated.open_change_request_id is not None

        request = await ctx.ledger.change_requests.require(updated.open_change_request_id)
        assert (request.old_cn_code, request.new_cn_code) == ("72081000", "76061100")

    @pytest.mark.anyio
    async def test_malformed_cn_code(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.update(entry.entry_id, {"cn_code": "7606"}, "analyst")
        assert outcome.rejection.code == RejectionCode.VALIDATION_REJECTED
        assert outcome.rejection.details["rule"] == "CN_CODE_FORMAT"
        assert (await manager.get(entry.entry_id)).cn_code == "72081000"

    @pytest.mark.anyio
    async def test_second_cn_change_while_pending(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await manager.update(entry.entry_id, {"cn_code": "76061100"}, "analyst")
        outcome = await manager.update(entry.entry_id, {"cn_code": "72091500"}, "analyst")
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED


class TestDelete:
    """delete() is refused for entries in a submitted report."""

    @pytest.mark.anyio
    async def test_delete(self, manager: EntryLifecycleManager, ctx) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.delete(entry.entry_id, "analyst")
        assert outcome.ok
        with pytest.raises(NotFound):
            await manager.get(entry.entry_id)
        trail = await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id)
        assert trail[-1].action == "deleted"

    @pytest.mark.anyio
    async def test_delete_in_submitted_report(self, manager: EntryLifecycleManager, ctx) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await ctx.ledger.reports.create(Report(
            reporting_year=2026,
            reporting_quarter=1,
            reporting_period="Q1-2026",
            period_start=date(2026, 1, 1),
            period_end=date(2026, 3, 31),
            submission_deadline=date(2026, 4, 30),
            linked_entry_ids=[entry.entry_id],
            status=ReportStatus.SUBMITTED,
        ))
        outcome = await manager.delete(entry.entry_id, "analyst")
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED
        assert (await manager.get(entry.entry_id)).entry_id == entry.entry_id


class TestLinkReference:
    """External references are recorded once."""

    @pytest.mark.anyio
    async def test_link_is_idempotent(self, manager: EntryLifecycleManager, events) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        first = await manager.link_reference(entry.entry_id, "supplier", "SUP-1", "analyst")
        second = await manager.link_reference(entry.entry_id, "supplier", "SUP-1", "analyst")
        assert len(second.value.external_references) == 1
        assert second.value.revision == first.value.revision

        linked = events.of_type(EventType.ENTRY_REFERENCE_LINKED)
        assert len(linked) == 1
        assert linked[0].entity_id == entry.entry_id
        assert linked[0].payload == {"kind": "supplier", "reference_id": "SUP-1"}

    @pytest.mark.anyio
    async def test_blank_reference_rejected(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.link_reference(entry.entry_id, "", "SUP-1", "analyst")
        assert outcome.rejection.code == RejectionCode.VALIDATION_REJECTED


class TestCalculate:
    """calculate() persists numeric outputs and keeps history."""

    @pytest.mark.anyio
    async def test_first_calculation(self, manager: EntryLifecycleManager, ctx, events) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        outcome = await manager.calculate(entry.entry_id, "analyst")
        calculated = outcome.value
        assert calculated.total_embedded_emissions == pytest.approx(137.0)
        assert calculated.certificates_required == pytest.approx(17.125)
        assert calculated.regulatory_version_id is None
        assert calculated.calculated_at is not None
        assert await manager.calculation_history(entry.entry_id) == []
        assert len(events.of_type(EventType.ENTRY_CALCULATED)) == 1

        trail = await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id)
        assert trail[-1].action == "calculated"
        assert trail[-1].details["snapshot_id"] is None

    @pytest.mark.anyio
    async def test_recalculation_snapshots_previous(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await manager.calculate(entry.entry_id, "analyst")
        await manager.update(entry.entry_id, {"quantity": 200.0}, "analyst")
        outcome = await manager.calculate(entry.entry_id, "analyst")
        assert outcome.value.total_embedded_emissions == pytest.approx(274.0)

        history = await manager.calculation_history(entry.entry_id)
        assert len(history) == 1
        assert history[0].sequence == 1
        assert history[0].reason == SnapshotReason.MANUAL_RECALCULATION
        assert history[0].calculation["outputs"]["total_embedded_emissions"] == pytest.approx(137.0)

    @pytest.mark.anyio
    async def test_calculation_resets_validation(self, manager: EntryLifecycleManager, ctx) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await ctx.ledger.entries.update(entry.model_copy(update={
            "validation_status": ValidationStatus.PASS,
        }))
        outcome = await manager.calculate(entry.entry_id, "analyst")
        assert outcome.value.validation_status == ValidationStatus.PENDING

    @pytest.mark.anyio
    async def test_frozen_entry_refused(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(), "analyst")
        await manager.update(entry.entry_id, {"cn_code": "76061100"}, "analyst")
        outcome = await manager.calculate(entry.entry_id, "analyst")
        assert outcome.rejection.code == RejectionCode.CALCULATION_FROZEN
        assert (await manager.get(entry.entry_id)).calculation is None

    @pytest.mark.anyio
    async def test_refused_input(self, manager: EntryLifecycleManager) -> None:
        entry = await manager.create(_make_draft(cn_code="99999999"), "analyst")
        outcome = await manager.calculate(entry.entry_id, "analyst")
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED
        assert "No benchmark" in outcome.rejection.message

    @pytest.mark.anyio
    async def test_upstream_failure_leaves_entry_unchanged(
        self, db_session, settings, clock,
    ) -> None:
        ctx = build_context(db_session, settings, calculation_function=_Unavailable(), clock=clock)
        manager = EntryLifecycleManager(ctx)
        entry = await manager.create(_make_draft(), "analyst")
        with pytest.raises(UpstreamFailure):
            await manager.calculate(entry.entry_id, "analyst")
        stored = await manager.get(entry.entry_id)
        assert stored.calculation is None
        assert stored.revision == entry.revision
