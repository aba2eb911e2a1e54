"""Approval-gated recalculation of entries under a target regulatory version.

    pending_approval → approved → executed
            └────────→ rejected

Execution isolates each entry in its own savepoint: one entry failing
(missing, frozen, upstream error, lost race) is recorded and the batch
continues.
"""

import logging
from uuid import UUID

from src.governance.authorization import (
    APPROVE_RECALCULATION,
    REJECT_RECALCULATION,
    require_admin,
)
from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.lifecycle.regulatory_registry import parameters_for
from src.lifecycle.snapshots import calculation_year, snapshot_calculation
from src.models.common import (
    EntityType,
    RecalculationStatus,
    RegulatoryVersionStatus,
    SnapshotReason,
    ValidationStatus,
)
from src.models.errors import (
    CalculationRejected,
    ConcurrencyConflict,
    NotFound,
    UpstreamFailure,
)
from src.models.outcome import Outcome, RejectionCode
from src.models.regulatory import RegulatoryVersion
from src.models.workflow import (
    VALID_RECALCULATION_TRANSITIONS,
    RecalculationEntryResult,
    RecalculationPreviewItem,
    RecalculationRequest,
)

logger = logging.getLogger(__name__)


class RecalculationController:
    """Request, approve, reject and execute batch recalculations."""

    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._requests = ctx.ledger.recalculations
        self._entries = ctx.ledger.entries

    async def get(self, request_id: UUID) -> RecalculationRequest:
        return await self._requests.require(request_id)

    async def list_requests(self) -> list[RecalculationRequest]:
        return await self._requests.list_all()

    def _check_transition(
        self, request: RecalculationRequest, target: RecalculationStatus,
    ) -> Outcome[RecalculationRequest] | None:
        if target in VALID_RECALCULATION_TRANSITIONS[request.status]:
            return None
        return Outcome.rejected(
            RejectionCode.INVALID_TRANSITION,
            f"Cannot move recalculation request from '{request.status}' to '{target}'.",
            from_state=request.status,
            to_state=target,
        )

    async def _target_version(
        self, version_id: UUID,
    ) -> tuple[RegulatoryVersion | None, Outcome[RecalculationRequest] | None]:
        version = await self._ctx.ledger.versions.get(version_id)
        if version is None:
            return None, Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                f"Target regulatory version {version_id} does not exist.",
                target_version_id=str(version_id),
            )
        if version.status == RegulatoryVersionStatus.SUPERSEDED:
            return None, Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                f"Target regulatory version '{version.label}' is superseded.",
                target_version_id=str(version_id),
            )
        return version, None

    async def request_recalculation(
        self,
        entry_ids: list[UUID],
        target_version_id: UUID,
        reason: str,
        actor: str,
    ) -> Outcome[RecalculationRequest]:
        unique_ids = list(dict.fromkeys(entry_ids))
        if not unique_ids:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED, "At least one entry id is required.",
            )
        if not (reason or "").strip():
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED, "A recalculation reason is required.",
            )
        _, refused = await self._target_version(target_version_id)
        if refused is not None:
            return refused

        request = RecalculationRequest(
            entry_ids=unique_ids,
            target_version_id=target_version_id,
            reason=reason.strip(),
            requested_by=actor,
            requested_at=self._ctx.clock(),
            total_count=len(unique_ids),
        )
        await self._requests.create(request)
        await self._ctx.audit.log(
            EntityType.RECALCULATION_REQUEST, request.request_id, "requested", actor,
            {
                "entry_count": len(unique_ids),
                "target_version_id": target_version_id,
                "reason": request.reason,
            },
        )
        await self._ctx.publish(
            EventType.RECALCULATION_REQUESTED, request.request_id, actor,
            entry_count=len(unique_ids),
        )
        return Outcome.success(request)

    async def approve(self, request_id: UUID, actor: str) -> Outcome[RecalculationRequest]:
        require_admin(self._ctx.authorizer, actor, APPROVE_RECALCULATION)
        request = await self._requests.require(request_id)
        refused = self._check_transition(request, RecalculationStatus.APPROVED)
        if refused is not None:
            return refused

        approved = await self._requests.update_from(
            request.model_copy(update={
                "status": RecalculationStatus.APPROVED,
                "approved_by": actor,
                "approved_at": self._ctx.clock(),
            }),
            RecalculationStatus.PENDING_APPROVAL,
        )
        await self._ctx.audit.log(
            EntityType.RECALCULATION_REQUEST, request_id, "approved", actor, {},
        )
        await self._ctx.publish(EventType.RECALCULATION_APPROVED, request_id, actor)
        return Outcome.success(approved)

    async def reject(
        self, request_id: UUID, reason: str, actor: str,
    ) -> Outcome[RecalculationRequest]:
        require_admin(self._ctx.authorizer, actor, REJECT_RECALCULATION)
        request = await self._requests.require(request_id)
        if not (reason or "").strip():
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED, "Rejection reason is required.",
            )
        refused = self._check_transition(request, RecalculationStatus.REJECTED)
        if refused is not None:
            return refused

        rejected = await self._requests.update_from(
            request.model_copy(update={
                "status": RecalculationStatus.REJECTED,
                "rejected_by": actor,
                "rejected_at": self._ctx.clock(),
                "rejection_reason": reason.strip(),
            }),
            RecalculationStatus.PENDING_APPROVAL,
        )
        await self._ctx.audit.log(
            EntityType.RECALCULATION_REQUEST, request_id, "rejected", actor,
            {"reason": rejected.rejection_reason},
        )
        await self._ctx.publish(EventType.RECALCULATION_REJECTED, request_id, actor)
        return Outcome.success(rejected)

    async def _recalculate_entry(
        self,
        entry_id: UUID,
        version: RegulatoryVersion,
        request_id: UUID,
        actor: str,
    ) -> RecalculationEntryResult:
        try:
            entry = await self._entries.require(entry_id)
            if entry.calculation_frozen:
                return RecalculationEntryResult(
                    entry_id=entry_id, success=False,
                    error="Calculation is frozen by an open classification change.",
                )
            params = parameters_for(version, calculation_year(entry))
            result = await self._ctx.gateway.calculate(entry, params)
            now = self._ctx.clock()
            async with self._ctx.ledger.savepoint():
                snapshot = await snapshot_calculation(
                    self._ctx, entry, SnapshotReason.REGULATORY_RECALCULATION, actor,
                    request_id=request_id,
                )
                await self._entries.update_calculation(entry.model_copy(update={
                    "calculation": result.outputs,
                    "calculated_at": now,
                    "regulatory_version_id": version.version_id,
                    "goods_category": result.goods_category or entry.goods_category,
                    "validation_status": ValidationStatus.PENDING,
                    "data_modified_at": now,
                    "updated_at": now,
                }))
        except (NotFound, ConcurrencyConflict, UpstreamFailure, CalculationRejected) as exc:
            logger.warning("Recalculation of entry %s failed: %s", entry_id, exc)
            return RecalculationEntryResult(entry_id=entry_id, success=False, error=str(exc))

        await self._ctx.audit.log(
            EntityType.ENTRY, entry_id, "recalculated", actor,
            {
                "request_id": request_id,
                "regulatory_version": version.label,
                "snapshot_id": snapshot.snapshot_id if snapshot else None,
                "certificates_required": result.outputs.certificates_required,
            },
        )
        return RecalculationEntryResult(
            entry_id=entry_id,
            success=True,
            snapshot_id=snapshot.snapshot_id if snapshot else None,
            old_certificates=entry.certificates_required,
            new_certificates=result.outputs.certificates_required,
        )

    async def execute(self, request_id: UUID, actor: str) -> Outcome[RecalculationRequest]:
        """Recalculate every entry of an approved request under its target version."""
        request = await self._requests.require(request_id)
        refused = self._check_transition(request, RecalculationStatus.EXECUTED)
        if refused is not None:
            return refused
        version = await self._ctx.ledger.versions.require(request.target_version_id)

        results = [
            await self._recalculate_entry(entry_id, version, request_id, actor)
            for entry_id in request.entry_ids
        ]
        succeeded = sum(1 for r in results if r.success)

        executed = await self._requests.update_from(
            request.model_copy(update={
                "status": RecalculationStatus.EXECUTED,
                "executed_by": actor,
                "executed_at": self._ctx.clock(),
                "results": results,
                "success_count": succeeded,
                "failed_count": len(results) - succeeded,
                "total_count": len(results),
            }),
            RecalculationStatus.APPROVED,
        )
        await self._ctx.audit.log(
            EntityType.RECALCULATION_REQUEST, request_id, "executed", actor,
            {
                "success_count": executed.success_count,
                "failed_count": executed.failed_count,
                "total_count": executed.total_count,
            },
        )
        await self._ctx.publish(
            EventType.RECALCULATION_EXECUTED, request_id, actor,
            success_count=executed.success_count,
            failed_count=executed.failed_count,
        )
        return Outcome.success(executed)

    async def impact_preview(
        self, entry_ids: list[UUID], target_version_id: UUID,
    ) -> Outcome[list[RecalculationPreviewItem]]:
        """Simulate a recalculation batch without writing anything."""
        version, refused = await self._target_version(target_version_id)
        if refused is not None:
            return Outcome(rejection=refused.rejection)

        items: list[RecalculationPreviewItem] = []
        for entry_id in dict.fromkeys(entry_ids):
            entry = await self._entries.get(entry_id)
            if entry is None:
                items.append(RecalculationPreviewItem(entry_id=entry_id, error="Entry not found."))
                continue
            try:
                result = await self._ctx.gateway.calculate(
                    entry, parameters_for(version, calculation_year(entry)),
                )
            except (UpstreamFailure, CalculationRejected) as exc:
                items.append(RecalculationPreviewItem(entry_id=entry_id, error=str(exc)))
                continue
            current = entry.certificates_required
            projected = result.outputs.certificates_required
            items.append(RecalculationPreviewItem(
                entry_id=entry_id,
                current_certificates=current,
                projected_certificates=projected,
                certificates_delta=projected - (current or 0.0),
            ))
        return Outcome.success(items)
