"""Verification state machine for accredited third-party verification.

    not_verified ──→ verifier_assigned ──→ verifier_satisfactory (terminal)
                           ↑        └────→ verifier_unsatisfactory
                           │                        │
                   correction_required ←────────────┘

The transition table is fixed and exhaustive. Every transition is a
compare-and-swap on the current status plus the entry revision, and is
audited with the previous and new state and the verifier's
accreditation number.
"""

from dataclasses import dataclass
from uuid import UUID

from src.db.tables import EntryRow
from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.models.audit import AuditLogEntry, Verifier
from src.models.common import (
    METHODS_REQUIRING_VERIFICATION,
    CBAMBase,
    EntityType,
    ValidationStatus,
    VerificationStatus,
)
from src.models.entry import Entry
from src.models.outcome import Outcome, RejectionCode

VALID_VERIFICATION_TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.NOT_VERIFIED: frozenset({VerificationStatus.VERIFIER_ASSIGNED}),
    VerificationStatus.VERIFIER_ASSIGNED: frozenset({
        VerificationStatus.VERIFIER_SATISFACTORY,
        VerificationStatus.VERIFIER_UNSATISFACTORY,
    }),
    VerificationStatus.VERIFIER_SATISFACTORY: frozenset(),
    VerificationStatus.VERIFIER_UNSATISFACTORY: frozenset({VerificationStatus.CORRECTION_REQUIRED}),
    VerificationStatus.CORRECTION_REQUIRED: frozenset({VerificationStatus.VERIFIER_ASSIGNED}),
}

VERIFICATION_ACTIONS = frozenset({
    "verifier_assigned",
    "verification_satisfactory",
    "verification_unsatisfactory",
    "correction_requested",
    "verifier_reassigned",
})


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    reason: str


def check_transition(current: VerificationStatus, target: VerificationStatus) -> TransitionCheck:
    """Pure lookup against the transition table."""
    if target in VALID_VERIFICATION_TRANSITIONS.get(current, frozenset()):
        return TransitionCheck(True, f"'{current}' → '{target}' is allowed.")
    return TransitionCheck(False, f"Transition from '{current}' to '{target}' is not allowed.")


class VerificationHistory(CBAMBase):
    entry_id: UUID
    assignment_cycles: int
    actions: list[AuditLogEntry]


class VerificationReadiness(CBAMBase):
    entry_id: UUID
    verification_required: bool
    verification_status: VerificationStatus
    ready_for_verification: bool
    missing: list[str]


class VerificationStateMachine:
    """Assign verifiers and record their opinions."""

    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._entries = ctx.ledger.entries
        self._verifiers = ctx.ledger.verifiers

    # ----- helpers -----

    def _refuse(self, current: VerificationStatus, target: VerificationStatus) -> Outcome[Entry]:
        check = check_transition(current, target)
        return Outcome.rejected(
            RejectionCode.INVALID_TRANSITION, check.reason,
            from_state=current, to_state=target,
        )

    async def _accredited(self, verifier_id: UUID) -> tuple[Verifier, Outcome[Entry] | None]:
        verifier = await self._verifiers.require(verifier_id)
        problem = verifier.accreditation_problem(self._ctx.clock().date())
        if problem is None:
            return verifier, None
        return verifier, Outcome.rejected(
            RejectionCode.PRECONDITION_FAILED, problem,
            verifier_id=str(verifier_id),
            regulation="C(2025) 8151 Chapter 5",
        )

    @staticmethod
    def _not_assigned(entry: Entry, verifier_id: UUID) -> Outcome[Entry] | None:
        if entry.verifier_id == verifier_id:
            return None
        return Outcome.rejected(
            RejectionCode.PRECONDITION_FAILED,
            "Only the assigned verifier can act on this entry.",
            assigned_verifier_id=str(entry.verifier_id) if entry.verifier_id else None,
            verifier_id=str(verifier_id),
        )

    async def _transition(
        self,
        entry: Entry,
        target: VerificationStatus,
        changes: dict,
        *,
        actor: str,
        action: str,
        verifier: Verifier,
        details: dict | None = None,
    ) -> Entry:
        updated = await self._entries.update(
            entry.model_copy(update={
                **changes,
                "verification_status": target,
                "updated_at": self._ctx.clock(),
            }),
            EntryRow.verification_status == entry.verification_status,
            conflict_detail=f"verification status is no longer '{entry.verification_status}'",
        )
        await self._ctx.audit.log(
            EntityType.ENTRY, entry.entry_id, action, actor,
            {
                "previous_state": entry.verification_status,
                "new_state": target,
                "verifier_id": verifier.verifier_id,
                "accreditation_number": verifier.accreditation_number,
                **(details or {}),
            },
        )
        return updated

    # ----- transitions -----

    async def assign_verifier(
        self, entry_id: UUID, verifier_id: UUID, actor: str,
    ) -> Outcome[Entry]:
        """Assign from not_verified, or from correction_required once data has changed."""
        entry = await self._entries.require(entry_id)
        target = VerificationStatus.VERIFIER_ASSIGNED
        if not check_transition(entry.verification_status, target).allowed:
            return self._refuse(entry.verification_status, target)
        if entry.verification_status == VerificationStatus.CORRECTION_REQUIRED:
            return await self.reassign_after_correction(entry_id, verifier_id, actor)

        verifier, refused = await self._accredited(verifier_id)
        if refused is not None:
            return refused

        now = self._ctx.clock()
        updated = await self._transition(
            entry, target,
            {
                "verifier_id": verifier_id,
                "verification_assigned_at": now,
                "verification_cycle": entry.verification_cycle + 1,
            },
            actor=actor, action="verifier_assigned", verifier=verifier,
        )
        await self._ctx.publish(
            EventType.VERIFICATION_REQUESTED, entry_id, actor, verifier_id=str(verifier_id),
        )
        return Outcome.success(updated)

    async def submit_satisfactory_opinion(
        self,
        entry_id: UUID,
        verifier_id: UUID,
        evidence_refs: list[str],
        report_id: str,
        actor: str,
        notes: str = "",
    ) -> Outcome[Entry]:
        entry = await self._entries.require(entry_id)
        target = VerificationStatus.VERIFIER_SATISFACTORY
        if not check_transition(entry.verification_status, target).allowed:
            return self._refuse(entry.verification_status, target)
        refused = self._not_assigned(entry, verifier_id)
        if refused is not None:
            return refused
        verifier, refused = await self._accredited(verifier_id)
        if refused is not None:
            return refused

        evidence = [ref for ref in evidence_refs if ref and ref.strip()]
        if not evidence:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "A satisfactory opinion requires at least one evidence reference.",
                field="evidence_refs",
            )
        if not (report_id or "").strip():
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "A satisfactory opinion requires a verification report identifier.",
                field="report_id",
            )

        updated = await self._transition(
            entry, target,
            {
                "verification_evidence_refs": evidence,
                "verification_report_id": report_id.strip(),
                "verification_notes": notes,
                "verification_completed_at": self._ctx.clock(),
                "validation_status": ValidationStatus.PENDING,
            },
            actor=actor, action="verification_satisfactory", verifier=verifier,
            details={"report_id": report_id.strip(), "evidence_count": len(evidence)},
        )
        await self._ctx.publish(
            EventType.VERIFICATION_COMPLETED, entry_id, actor, outcome=target.value,
        )
        return Outcome.success(updated)

    async def submit_unsatisfactory_opinion(
        self,
        entry_id: UUID,
        verifier_id: UUID,
        findings: list[str],
        actor: str,
        evidence_refs: list[str] | None = None,
        report_id: str | None = None,
        notes: str = "",
    ) -> Outcome[Entry]:
        entry = await self._entries.require(entry_id)
        target = VerificationStatus.VERIFIER_UNSATISFACTORY
        if not check_transition(entry.verification_status, target).allowed:
            return self._refuse(entry.verification_status, target)
        refused = self._not_assigned(entry, verifier_id)
        if refused is not None:
            return refused
        verifier, refused = await self._accredited(verifier_id)
        if refused is not None:
            return refused

        listed = [f for f in findings if f and f.strip()]
        if not listed:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "An unsatisfactory opinion requires findings.",
                field="findings",
            )

        updated = await self._transition(
            entry, target,
            {
                "verification_findings": listed,
                "verification_evidence_refs": [r for r in evidence_refs or [] if r],
                "verification_report_id": report_id,
                "verification_notes": notes,
                "verification_completed_at": self._ctx.clock(),
                "validation_status": ValidationStatus.PENDING,
            },
            actor=actor, action="verification_unsatisfactory", verifier=verifier,
            details={"findings": listed},
        )
        await self._ctx.publish(
            EventType.VERIFICATION_COMPLETED, entry_id, actor, outcome=target.value,
        )
        return Outcome.success(updated)

    async def request_correction(
        self, entry_id: UUID, verifier_id: UUID, actions: list[str], actor: str,
    ) -> Outcome[Entry]:
        entry = await self._entries.require(entry_id)
        target = VerificationStatus.CORRECTION_REQUIRED
        if not check_transition(entry.verification_status, target).allowed:
            return self._refuse(entry.verification_status, target)
        refused = self._not_assigned(entry, verifier_id)
        if refused is not None:
            return refused
        verifier = await self._verifiers.require(verifier_id)

        listed = [a for a in actions if a and a.strip()]
        updated = await self._transition(
            entry, target,
            {"correction_actions": listed, "correction_requested_at": self._ctx.clock()},
            actor=actor, action="correction_requested", verifier=verifier,
            details={"actions": listed},
        )
        await self._ctx.publish(
            EventType.CORRECTION_REQUESTED, entry_id, actor, actions=listed,
        )
        return Outcome.success(updated)

    async def reassign_after_correction(
        self, entry_id: UUID, verifier_id: UUID, actor: str,
    ) -> Outcome[Entry]:
        """Valid only once the entry data changed after the correction request."""
        entry = await self._entries.require(entry_id)
        target = VerificationStatus.VERIFIER_ASSIGNED
        if entry.verification_status != VerificationStatus.CORRECTION_REQUIRED:
            return self._refuse(entry.verification_status, target)

        requested_at = entry.correction_requested_at
        if requested_at is None or not entry.data_modified_at > requested_at:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "Entry data has not been modified since the correction was requested.",
                correction_requested_at=requested_at.isoformat() if requested_at else None,
                data_modified_at=entry.data_modified_at.isoformat(),
            )
        verifier, refused = await self._accredited(verifier_id)
        if refused is not None:
            return refused

        updated = await self._transition(
            entry, target,
            {
                "verifier_id": verifier_id,
                "verification_assigned_at": self._ctx.clock(),
                "verification_cycle": entry.verification_cycle + 1,
                "verification_completed_at": None,
            },
            actor=actor, action="verifier_reassigned", verifier=verifier,
            details={"cycle": entry.verification_cycle + 1},
        )
        await self._ctx.publish(
            EventType.VERIFICATION_REQUESTED, entry_id, actor,
            verifier_id=str(verifier_id), cycle=updated.verification_cycle,
        )
        return Outcome.success(updated)

    # ----- reads -----

    async def history(self, entry_id: UUID) -> VerificationHistory:
        """Verification actions from the audit trail, newest first."""
        entry = await self._entries.require(entry_id)
        trail = await self._ctx.audit.get_trail(EntityType.ENTRY, entry_id)
        actions = [a for a in trail if a.action in VERIFICATION_ACTIONS]
        actions.reverse()
        return VerificationHistory(
            entry_id=entry_id,
            assignment_cycles=entry.verification_cycle,
            actions=actions,
        )

    async def readiness(self, entry_id: UUID) -> VerificationReadiness:
        entry = await self._entries.require(entry_id)
        required = entry.calculation_method in METHODS_REQUIRING_VERIFICATION
        missing: list[str] = []
        if entry.calculation is None:
            missing.append("calculation")
        if required and not entry.direct_emissions_specific:
            missing.append("direct_emissions_specific")
        if required and not entry.supplier_reference:
            missing.append("supplier_reference")
        return VerificationReadiness(
            entry_id=entry_id,
            verification_required=required,
            verification_status=entry.verification_status,
            ready_for_verification=required and not missing,
            missing=missing,
        )
