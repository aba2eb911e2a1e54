"""Tests for the verification state machine."""

import itertools
from datetime import date

import pytest
from uuid_extensions import uuid7

from src.lifecycle.context import LifecycleContext
from src.lifecycle.entry_manager import EntryLifecycleManager
from src.lifecycle.verification import (
    VALID_VERIFICATION_TRANSITIONS,
    VerificationStateMachine,
    check_transition,
)
from src.models.audit import Verifier
from src.models.common import (
    CalculationMethod,
    EntityType,
    VerificationStatus,
    VerifierStatus,
)
from src.models.entry import Entry, EntryDraft
from src.models.errors import NotFound
from src.models.outcome import RejectionCode

ALLOWED_PAIRS = {
    (VerificationStatus.NOT_VERIFIED, VerificationStatus.VERIFIER_ASSIGNED),
    (VerificationStatus.VERIFIER_ASSIGNED, VerificationStatus.VERIFIER_SATISFACTORY),
    (VerificationStatus.VERIFIER_ASSIGNED, VerificationStatus.VERIFIER_UNSATISFACTORY),
    (VerificationStatus.VERIFIER_UNSATISFACTORY, VerificationStatus.CORRECTION_REQUIRED),
    (VerificationStatus.CORRECTION_REQUIRED, VerificationStatus.VERIFIER_ASSIGNED),
}


@pytest.fixture
def machine(ctx: LifecycleContext) -> VerificationStateMachine:
    return VerificationStateMachine(ctx)


@pytest.fixture
def manager(ctx: LifecycleContext) -> EntryLifecycleManager:
    return EntryLifecycleManager(ctx)


async def _make_verifier(ctx: LifecycleContext, **overrides) -> Verifier:
    defaults = {
        "name": "Nordic Verification AS",
        "accreditation_number": "ACC-2026-001",
        "accreditation_expires": date(2027, 12, 31),
    }
    return await ctx.ledger.verifiers.create(Verifier(**{**defaults, **overrides}))


async def _actual_entry(manager: EntryLifecycleManager) -> Entry:
    entry = await manager.create(EntryDraft(
        import_reference="IMP-ACT-1",
        cn_code="72081000",
        country_of_origin="China",
        quantity=100.0,
        import_date=date(2026, 2, 10),
        calculation_method=CalculationMethod.ACTUAL_VALUES,
        direct_emissions_specific=1.2,
        supplier_reference="SUP-7",
    ), "analyst")
    return (await manager.calculate(entry.entry_id, "analyst")).value


class TestTransitionTable:
    """The table is closed: only the listed pairs are allowed."""

    def test_every_pair(self) -> None:
        for current, target in itertools.product(VerificationStatus, repeat=2):
            assert check_transition(current, target).allowed == ((current, target) in ALLOWED_PAIRS)

    def test_satisfactory_is_terminal(self) -> None:
        assert VALID_VERIFICATION_TRANSITIONS[VerificationStatus.VERIFIER_SATISFACTORY] == frozenset()


class TestAssign:
    """assign_verifier() requires an accredited verifier."""

    @pytest.mark.anyio
    async def test_assign(self, machine, manager, ctx) -> None:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx)
        assigned = (await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")).value
        assert assigned.verification_status == VerificationStatus.VERIFIER_ASSIGNED
        assert assigned.verifier_id == verifier.verifier_id
        assert assigned.verification_cycle == 1

        trail = await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id)
        assert trail[-1].action == "verifier_assigned"
        assert trail[-1].details["previous_state"] == "not_verified"
        assert trail[-1].details["new_state"] == "verifier_assigned"
        assert trail[-1].details["accreditation_number"] == "ACC-2026-001"

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"status": VerifierStatus.SUSPENDED},
            {"accreditation_number": ""},
            {"accreditation_expires": date(2025, 12, 31)},
        ],
    )
    async def test_unaccredited_verifier(self, machine, manager, ctx, overrides) -> None:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx, **overrides)
        outcome = await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED
        stored = await manager.get(entry.entry_id)
        assert stored.verification_status == VerificationStatus.NOT_VERIFIED

    @pytest.mark.anyio
    async def test_unknown_verifier(self, machine, manager) -> None:
        entry = await _actual_entry(manager)
        with pytest.raises(NotFound):
            await machine.assign_verifier(entry.entry_id, uuid7(), "analyst")

    @pytest.mark.anyio
    async def test_assign_twice_is_invalid(self, machine, manager, ctx) -> None:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx)
        await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        outcome = await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        assert outcome.rejection.code == RejectionCode.INVALID_TRANSITION


class TestOpinions:
    """Opinions come from the assigned verifier with the required evidence."""

    @pytest.mark.anyio
    async def test_satisfactory(self, machine, manager, ctx) -> None:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx)
        await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        outcome = await machine.submit_satisfactory_opinion(
            entry.entry_id, verifier.verifier_id, ["EV-1", " "], "VR-2026-01", "verifier",
        )
        verified = outcome.value
        assert verified.verification_status == VerificationStatus.VERIFIER_SATISFACTORY
        assert verified.verification_evidence_refs == ["EV-1"]
        assert verified.verification_report_id == "VR-2026-01"
        assert verified.verification_completed_at is not None

    @pytest.mark.anyio
    async def test_satisfactory_needs_evidence_and_report(self, machine, manager, ctx) -> None:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx)
        await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        no_evidence = await machine.submit_satisfactory_opinion(
            entry.entry_id, verifier.verifier_id, [], "VR-1", "verifier",
        )
        no_report = await machine.submit_satisfactory_opinion(
            entry.entry_id, verifier.verifier_id, ["EV-1"], "", "verifier",
        )
        assert no_evidence.rejection.details["field"] == "evidence_refs"
        assert no_report.rejection.details["field"] == "report_id"

    @pytest.mark.anyio
    async def test_other_verifier_cannot_act(self, machine, manager, ctx) -> None:
        entry = await _actual_entry(manager)
        assigned = await _make_verifier(ctx)
        other = await _make_verifier(ctx, name="Other Body", accreditation_number="ACC-9")
        await machine.assign_verifier(entry.entry_id, assigned.verifier_id, "analyst")
        outcome = await machine.submit_satisfactory_opinion(
            entry.entry_id, other.verifier_id, ["EV-1"], "VR-1", "verifier",
        )
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED

    @pytest.mark.anyio
    async def test_unsatisfactory_needs_findings(self, machine, manager, ctx) -> None:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx)
        await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        outcome = await machine.submit_unsatisfactory_opinion(
            entry.entry_id, verifier.verifier_id, [], "verifier",
        )
        assert outcome.rejection.details["field"] == "findings"

    @pytest.mark.anyio
    async def test_invalid_transition_has_no_side_effects(self, machine, manager, ctx) -> None:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx)
        trail_before = await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id)

        outcome = await machine.submit_satisfactory_opinion(
            entry.entry_id, verifier.verifier_id, ["EV-1"], "VR-1", "verifier",
        )
        assert outcome.rejection.code == RejectionCode.INVALID_TRANSITION
        assert outcome.rejection.from_state == VerificationStatus.NOT_VERIFIED
        assert outcome.rejection.to_state == VerificationStatus.VERIFIER_SATISFACTORY

        stored = await manager.get(entry.entry_id)
        assert stored.revision == entry.revision
        assert await ctx.audit.get_trail(EntityType.ENTRY, entry.entry_id) == trail_before


class TestCorrectionCycle:
    """unsatisfactory → correction_required → reassigned after data changes."""

    async def _to_correction(self, machine, manager, ctx) -> tuple[Entry, Verifier]:
        entry = await _actual_entry(manager)
        verifier = await _make_verifier(ctx)
        await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        await machine.submit_unsatisfactory_opinion(
            entry.entry_id, verifier.verifier_id, ["Meter data missing"], "verifier",
        )
        outcome = await machine.request_correction(
            entry.entry_id, verifier.verifier_id, ["Provide meter data"], "verifier",
        )
        assert outcome.value.verification_status == VerificationStatus.CORRECTION_REQUIRED
        return entry, verifier

    @pytest.mark.anyio
    async def test_reassign_requires_modified_data(self, machine, manager, ctx) -> None:
        entry, verifier = await self._to_correction(machine, manager, ctx)
        outcome = await machine.reassign_after_correction(
            entry.entry_id, verifier.verifier_id, "analyst",
        )
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED

    @pytest.mark.anyio
    async def test_reassign_after_update(self, machine, manager, ctx) -> None:
        entry, verifier = await self._to_correction(machine, manager, ctx)
        await manager.update(entry.entry_id, {"direct_emissions_specific": 1.25}, "analyst")
        outcome = await machine.reassign_after_correction(
            entry.entry_id, verifier.verifier_id, "analyst",
        )
        reassigned = outcome.value
        assert reassigned.verification_status == VerificationStatus.VERIFIER_ASSIGNED
        assert reassigned.verification_cycle == 2

        history = await machine.history(entry.entry_id)
        assert history.assignment_cycles == 2
        assert [a.action for a in history.actions] == [
            "verifier_reassigned",
            "correction_requested",
            "verification_unsatisfactory",
            "verifier_assigned",
        ]

    @pytest.mark.anyio
    async def test_assign_from_correction_routes_to_reassign(self, machine, manager, ctx) -> None:
        entry, verifier = await self._to_correction(machine, manager, ctx)
        await manager.update(entry.entry_id, {"supplier_reference": "SUP-8"}, "analyst")
        outcome = await machine.assign_verifier(entry.entry_id, verifier.verifier_id, "analyst")
        assert outcome.value.verification_status == VerificationStatus.VERIFIER_ASSIGNED


class TestReadiness:
    """readiness() lists what verification still needs."""

    @pytest.mark.anyio
    async def test_actual_entry_ready(self, machine, manager) -> None:
        entry = await _actual_entry(manager)
        readiness = await machine.readiness(entry.entry_id)
        assert readiness.verification_required is True
        assert readiness.ready_for_verification is True
        assert readiness.missing == []

    @pytest.mark.anyio
    async def test_default_entry_needs_no_verification(self, machine, manager) -> None:
        entry = await manager.create(EntryDraft(
            cn_code="72081000", country_of_origin="China", quantity=100.0,
        ), "analyst")
        readiness = await machine.readiness(entry.entry_id)
        assert readiness.verification_required is False
        assert readiness.missing == ["calculation"]
