"""Entry lifecycle manager — create, update, delete and calculate entries.

A changed CN code is never written directly: it is routed to the
change-control workflow, which freezes the entry until the change is
approved or rejected.
"""

import logging
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from src.engine.benchmarks import find_category
from src.governance.events import EventType
from src.lifecycle.change_control import ChangeControlWorkflow, invalid_cn_code
from src.lifecycle.context import LifecycleContext
from src.lifecycle.regulatory_registry import RegulatoryVersionRegistry, parameters_for
from src.lifecycle.snapshots import calculation_year, snapshot_calculation
from src.models.common import (
    EntityType,
    SnapshotReason,
    ValidationStatus,
    VerificationStatus,
)
from src.models.entry import UPDATABLE_FIELDS, Entry, EntryDraft, ExternalReference
from src.models.errors import CalculationRejected, ConcurrencyConflict
from src.models.outcome import Outcome, RejectionCode
from src.models.workflow import CalculationSnapshot
from src.validation.rules import is_valid_cn_code

logger = logging.getLogger(__name__)


class EntryLifecycleManager:
    """Entry CRUD plus the calculation step."""

    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._entries = ctx.ledger.entries
        self._registry = RegulatoryVersionRegistry(ctx)
        self._change_control = ChangeControlWorkflow(ctx)

    # ----- reads -----

    async def get(self, entry_id: UUID) -> Entry:
        return await self._entries.require(entry_id)

    async def list_entries(self) -> list[Entry]:
        return await self._entries.list_all()

    async def calculation_history(self, entry_id: UUID) -> list[CalculationSnapshot]:
        """Superseded calculations, oldest first."""
        await self._entries.require(entry_id)
        return await self._ctx.ledger.snapshots.list_for_entry(entry_id)

    # ----- writes -----

    async def create(self, draft: EntryDraft, actor: str) -> Entry:
        now = self._ctx.clock()
        entry = Entry(
            **draft.model_dump(),
            goods_category=find_category(draft.cn_code),
            validation_status=ValidationStatus.PENDING,
            verification_status=VerificationStatus.NOT_VERIFIED,
            created_by=actor,
            created_at=now,
            updated_at=now,
            data_modified_at=now,
        )
        await self._entries.create(entry)
        await self._ctx.audit.log(
            EntityType.ENTRY, entry.entry_id, "created", actor,
            {
                "cn_code": entry.cn_code,
                "quantity": entry.quantity,
                "calculation_method": entry.calculation_method,
            },
        )
        await self._ctx.publish(
            EventType.ENTRY_CREATED, entry.entry_id, actor, cn_code=entry.cn_code,
        )
        return entry

    async def update(
        self,
        entry_id: UUID,
        changes: dict[str, Any],
        actor: str,
        expected_revision: int | None = None,
    ) -> Outcome[Entry]:
        """Apply field changes. A changed ``cn_code`` opens a change request."""
        disallowed = sorted(set(changes) - UPDATABLE_FIELDS)
        if disallowed:
            return Outcome.rejected(
                RejectionCode.FIELD_NOT_ALLOWED,
                f"Fields cannot be updated directly: {', '.join(disallowed)}.",
                fields=disallowed,
            )

        entry = await self._entries.require(entry_id)
        if expected_revision is not None and expected_revision != entry.revision:
            raise ConcurrencyConflict(EntityType.ENTRY, entry_id, expected_revision)

        try:
            merged = EntryDraft.model_validate({
                **entry.model_dump(include=UPDATABLE_FIELDS),
                **changes,
            })
        except ValidationError as exc:
            return Outcome.rejected(
                RejectionCode.VALIDATION_REJECTED,
                "Updated values are invalid.",
                errors=exc.errors(include_url=False, include_context=False),
            )

        new_cn_code = merged.cn_code if "cn_code" in changes else entry.cn_code
        cn_code_changed = new_cn_code != entry.cn_code
        if cn_code_changed and not is_valid_cn_code(new_cn_code):
            return invalid_cn_code(new_cn_code)
        if cn_code_changed and entry.open_change_request_id is not None:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "A classification change is already pending for this entry.",
                open_change_request_id=str(entry.open_change_request_id),
            )

        content = {
            name: getattr(merged, name)
            for name in changes
            if name != "cn_code" and getattr(merged, name) != getattr(entry, name)
        }
        if content:
            now = self._ctx.clock()
            previous = {name: getattr(entry, name) for name in content}
            entry = await self._entries.update(entry.model_copy(update={
                **content,
                "validation_status": ValidationStatus.PENDING,
                "data_modified_at": now,
                "updated_at": now,
            }))
            await self._ctx.audit.log(
                EntityType.ENTRY, entry_id, "updated", actor,
                {"fields": sorted(content), "previous": previous, "new": content},
            )
            await self._ctx.publish(
                EventType.ENTRY_UPDATED, entry_id, actor, fields=sorted(content),
            )

        if cn_code_changed:
            detected = await self._change_control.detect(entry_id, new_cn_code, actor)
            if not detected.ok:
                return Outcome(rejection=detected.rejection)
            entry = await self._entries.require(entry_id)

        return Outcome.success(entry)

    async def delete(self, entry_id: UUID, actor: str) -> Outcome[None]:
        entry = await self._entries.require(entry_id)
        if await self._ctx.ledger.reports.is_entry_in_submitted_report(entry_id):
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "Entry is linked to a submitted report and cannot be deleted.",
            )
        await self._entries.delete(entry)
        await self._ctx.audit.log(
            EntityType.ENTRY, entry_id, "deleted", actor,
            {"cn_code": entry.cn_code, "import_reference": entry.import_reference},
        )
        await self._ctx.publish(EventType.ENTRY_DELETED, entry_id, actor)
        return Outcome.success(None)

    async def link_reference(
        self, entry_id: UUID, kind: str, reference_id: str, actor: str,
    ) -> Outcome[Entry]:
        """Record a foreign-key reference. Linking the same reference twice is a no-op."""
        entry = await self._entries.require(entry_id)
        try:
            reference = ExternalReference(kind=kind, reference_id=reference_id)
        except ValidationError as exc:
            return Outcome.rejected(
                RejectionCode.VALIDATION_REJECTED,
                "Reference kind and id are required.",
                errors=exc.errors(include_url=False, include_context=False),
            )
        if reference in entry.external_references:
            return Outcome.success(entry)

        entry = await self._entries.update(entry.model_copy(update={
            "external_references": [*entry.external_references, reference],
            "updated_at": self._ctx.clock(),
        }))
        await self._ctx.audit.log(
            EntityType.ENTRY, entry_id, "reference_linked", actor,
            {"kind": kind, "reference_id": reference_id},
        )
        await self._ctx.publish(
            EventType.ENTRY_REFERENCE_LINKED, entry_id, actor,
            kind=kind, reference_id=reference_id,
        )
        return Outcome.success(entry)

    async def calculate(
        self, entry_id: UUID, actor: str, include_precursors: bool = True,
    ) -> Outcome[Entry]:
        """Run the calculation under the active version and persist its numeric outputs.

        Frozen entries are refused. Upstream failures propagate before
        any write, leaving the entry unchanged.
        """
        entry = await self._entries.require(entry_id)
        if entry.calculation_frozen:
            return Outcome.rejected(
                RejectionCode.CALCULATION_FROZEN,
                "Calculation is frozen while a classification change is pending.",
                open_change_request_id=str(entry.open_change_request_id),
            )

        version = await self._registry.get_current_version()
        params = parameters_for(version, calculation_year(entry))
        try:
            result = await self._ctx.gateway.calculate(
                entry, params, include_precursors=include_precursors,
            )
        except CalculationRejected as exc:
            return Outcome.rejected(RejectionCode.PRECONDITION_FAILED, str(exc))

        now = self._ctx.clock()
        async with self._ctx.ledger.savepoint():
            snapshot = await snapshot_calculation(
                self._ctx, entry, SnapshotReason.MANUAL_RECALCULATION, actor,
            )
            entry = await self._entries.update_calculation(entry.model_copy(update={
                "calculation": result.outputs,
                "calculated_at": now,
                "regulatory_version_id": params.version_id,
                "goods_category": result.goods_category or entry.goods_category,
                "validation_status": ValidationStatus.PENDING,
                "data_modified_at": now,
                "updated_at": now,
            }))

        await self._ctx.audit.log(
            EntityType.ENTRY, entry_id, "calculated", actor,
            {
                "regulatory_version": params.version_label,
                "total_embedded_emissions": result.outputs.total_embedded_emissions,
                "certificates_required": result.outputs.certificates_required,
                "snapshot_id": snapshot.snapshot_id if snapshot else None,
            },
        )
        await self._ctx.publish(
            EventType.ENTRY_CALCULATED, entry_id, actor,
            certificates_required=result.outputs.certificates_required,
        )
        return Outcome.success(entry)
