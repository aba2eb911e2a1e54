"""Classification change-control workflow.

    pending_impact_analysis → impact_analyzed → approved_and_executed
              │                     │
              └────────→ rejected ←─┘

Detecting a change applies the new CN code and freezes the entry: no
calculation write and no report aggregation until the request is
approved (new calculation written, entry unfrozen) or rejected (old
code restored, entry unfrozen).
"""

import logging
from uuid import UUID

from src.engine.benchmarks import find_category, lookup_benchmark
from src.governance.authorization import APPROVE_CHANGE_REQUEST, require_admin
from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.lifecycle.regulatory_registry import RegulatoryVersionRegistry, parameters_for
from src.lifecycle.snapshots import calculation_year, snapshot_calculation
from src.models.common import (
    ChangeRequestStatus,
    EntityType,
    SnapshotReason,
    ValidationStatus,
)
from src.models.entry import CalculationOutputs, Entry
from src.models.errors import CalculationRejected
from src.models.outcome import Outcome, RejectionCode
from src.models.regulatory import RegulatoryParameters
from src.models.workflow import (
    VALID_CHANGE_REQUEST_TRANSITIONS,
    ChangeRequest,
    ImpactAnalysis,
)
from src.validation.rules import REGULATIONS, is_valid_cn_code

logger = logging.getLogger(__name__)


def invalid_cn_code(cn_code: str) -> Outcome:
    return Outcome.rejected(
        RejectionCode.VALIDATION_REJECTED,
        "CN code must be exactly 8 digits",
        rule="CN_CODE_FORMAT",
        regulation=REGULATIONS["CN_CODE_FORMAT"],
        current_value=cn_code,
        required_value="8 digits",
    )


def _pct(old: float, new: float) -> float:
    if old == 0:
        return 0.0 if new == 0 else 100.0
    return round((new - old) / old * 100, 2)


class ChangeControlWorkflow:
    """Detect, analyse, approve and reject CN code changes."""

    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._entries = ctx.ledger.entries
        self._requests = ctx.ledger.change_requests
        self._registry = RegulatoryVersionRegistry(ctx)

    async def get(self, request_id: UUID) -> ChangeRequest:
        return await self._requests.require(request_id)

    async def list_for_entry(self, entry_id: UUID) -> list[ChangeRequest]:
        return await self._requests.list_for_entry(entry_id)

    def _check_transition(
        self, request: ChangeRequest, target: ChangeRequestStatus,
    ) -> Outcome[ChangeRequest] | None:
        if target in VALID_CHANGE_REQUEST_TRANSITIONS[request.status]:
            return None
        return Outcome.rejected(
            RejectionCode.INVALID_TRANSITION,
            f"Cannot move change request from '{request.status}' to '{target}'.",
            from_state=request.status,
            to_state=target,
        )

    # ----- detect -----

    async def detect(
        self, entry_id: UUID, new_cn_code: str, actor: str,
    ) -> Outcome[ChangeRequest | None]:
        """Open a change request if ``new_cn_code`` differs from the entry's code.

        Returns a successful Outcome with no value when nothing changed.
        """
        entry = await self._entries.require(entry_id)
        new_cn_code = (new_cn_code or "").strip()
        if new_cn_code == entry.cn_code:
            return Outcome.success(None)

        if not is_valid_cn_code(new_cn_code):
            return invalid_cn_code(new_cn_code)
        if entry.open_change_request_id is not None:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "A classification change is already pending for this entry.",
                open_change_request_id=str(entry.open_change_request_id),
            )

        now = self._ctx.clock()
        request = ChangeRequest(
            entry_id=entry_id,
            old_cn_code=entry.cn_code,
            new_cn_code=new_cn_code,
            requested_by=actor,
            requested_at=now,
            updated_at=now,
        )
        async with self._ctx.ledger.savepoint():
            await self._requests.create(request)
            await self._entries.update(
                entry.model_copy(update={
                    "cn_code": new_cn_code,
                    "goods_category": find_category(new_cn_code),
                    "calculation_frozen": True,
                    "reporting_blocked": True,
                    "open_change_request_id": request.request_id,
                    "validation_status": ValidationStatus.PENDING,
                    "data_modified_at": now,
                    "updated_at": now,
                }),
                conflict_detail="entry changed while opening change request",
            )

        await self._ctx.audit.log(
            EntityType.ENTRY, entry_id, "cn_code_change_detected", actor,
            {
                "request_id": request.request_id,
                "old_cn_code": request.old_cn_code,
                "new_cn_code": new_cn_code,
            },
        )
        await self._ctx.audit.log(
            EntityType.CHANGE_REQUEST, request.request_id, "created", actor,
            {"entry_id": entry_id, "old_cn_code": request.old_cn_code, "new_cn_code": new_cn_code},
        )
        await self._ctx.publish(
            EventType.CLASSIFICATION_CHANGE_DETECTED, entry_id, actor,
            request_id=str(request.request_id),
            old_cn_code=request.old_cn_code,
            new_cn_code=new_cn_code,
        )
        return Outcome.success(request)

    # ----- analyse -----

    async def _simulate(
        self, entry: Entry, cn_code: str, params: RegulatoryParameters,
    ) -> CalculationOutputs | None:
        try:
            result = await self._ctx.gateway.calculate(
                entry.model_copy(update={"cn_code": cn_code}), params,
            )
        except CalculationRejected as exc:
            logger.info("Simulation under CN %s refused: %s", cn_code, exc)
            return None
        return result.outputs

    async def analyze_impact(self, request_id: UUID, actor: str) -> Outcome[ChangeRequest]:
        """Simulate the new classification without touching the entry."""
        request = await self._requests.require(request_id)
        refused = self._check_transition(request, ChangeRequestStatus.IMPACT_ANALYZED)
        if refused is not None:
            return refused

        entry = await self._entries.require(request.entry_id)
        version = await self._registry.get_current_version()
        params = parameters_for(version, calculation_year(entry))

        old = entry.calculation
        if old is None:
            old = await self._simulate(entry, request.old_cn_code, params)
        new = await self._simulate(entry, request.new_cn_code, params)
        if new is None:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                f"Entry cannot be calculated under CN code {request.new_cn_code}.",
                new_cn_code=request.new_cn_code,
            )

        old_total = old.total_embedded_emissions if old else 0.0
        old_certs = old.certificates_required if old else 0.0
        price = self._ctx.settings.ETS_REFERENCE_PRICE_EUR

        lookup_args = {
            "country": entry.country_of_origin,
            "product_name": entry.product_name,
            "production_route": entry.production_route,
        }
        old_benchmark = lookup_benchmark(request.old_cn_code, **lookup_args)
        new_benchmark = lookup_benchmark(request.new_cn_code, **lookup_args)
        old_bench_value = old_benchmark.value_per_tonne if old_benchmark else None
        new_bench_value = new_benchmark.value_per_tonne if new_benchmark else None
        markup_factor = 1 + params.markup_percent / 100
        old_default = old_bench_value * markup_factor if old_bench_value is not None else None
        new_default = new_bench_value * markup_factor if new_bench_value is not None else None

        analysis = ImpactAnalysis(
            old_total_emissions=old_total,
            new_total_emissions=new.total_embedded_emissions,
            emissions_delta=new.total_embedded_emissions - old_total,
            emissions_delta_percent=_pct(old_total, new.total_embedded_emissions),
            old_certificates=old_certs,
            new_certificates=new.certificates_required,
            certificates_delta=new.certificates_required - old_certs,
            old_cost_eur=round(old_certs * price, 2),
            new_cost_eur=round(new.certificates_required * price, 2),
            cost_delta_eur=round((new.certificates_required - old_certs) * price, 2),
            reference_price_eur=price,
            old_benchmark=old_bench_value,
            new_benchmark=new_bench_value,
            benchmark_changed=old_bench_value != new_bench_value,
            old_default_value=old_default,
            new_default_value=new_default,
            default_value_changed=old_default != new_default,
            old_goods_category=old_benchmark.goods_category if old_benchmark else None,
            new_goods_category=new_benchmark.goods_category if new_benchmark else None,
            analysed_by=actor,
            analysed_at=self._ctx.clock(),
        )
        updated = await self._requests.update_from(
            request.model_copy(update={
                "status": ChangeRequestStatus.IMPACT_ANALYZED,
                "impact_analysis": analysis,
                "updated_at": analysis.analysed_at,
            }),
            ChangeRequestStatus.PENDING_IMPACT_ANALYSIS,
        )
        await self._ctx.audit.log(
            EntityType.CHANGE_REQUEST, request_id, "impact_analyzed", actor,
            {
                "emissions_delta": analysis.emissions_delta,
                "certificates_delta": analysis.certificates_delta,
                "cost_delta_eur": analysis.cost_delta_eur,
            },
        )
        await self._ctx.publish(
            EventType.CLASSIFICATION_CHANGE_ANALYZED, request_id, actor,
            entry_id=str(request.entry_id),
            certificates_delta=analysis.certificates_delta,
        )
        return Outcome.success(updated)

    # ----- decide -----

    async def approve(
        self, request_id: UUID, justification: str, actor: str,
    ) -> Outcome[ChangeRequest]:
        """Admin-only. Recalculate under the new code, snapshot, unfreeze."""
        require_admin(self._ctx.authorizer, actor, APPROVE_CHANGE_REQUEST)

        request = await self._requests.require(request_id)
        if not (justification or "").strip():
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED, "Approval justification is required.",
            )
        refused = self._check_transition(request, ChangeRequestStatus.APPROVED_AND_EXECUTED)
        if refused is not None:
            return refused

        entry = await self._entries.require(request.entry_id)
        version = await self._registry.get_current_version()
        params = parameters_for(version, calculation_year(entry))
        try:
            result = await self._ctx.gateway.calculate(
                entry.model_copy(update={"cn_code": request.new_cn_code}), params,
            )
        except CalculationRejected as exc:
            return Outcome.rejected(RejectionCode.PRECONDITION_FAILED, str(exc))

        now = self._ctx.clock()
        async with self._ctx.ledger.savepoint():
            snapshot = await snapshot_calculation(
                self._ctx, entry, SnapshotReason.CN_CODE_CHANGE, actor,
                request_id=request_id,
                overrides={"cn_code": request.old_cn_code},
            )
            await self._entries.update_under_change_request(
                entry.model_copy(update={
                    "cn_code": request.new_cn_code,
                    "goods_category": result.goods_category or find_category(request.new_cn_code),
                    "calculation": result.outputs,
                    "calculated_at": now,
                    "regulatory_version_id": params.version_id,
                    "calculation_frozen": False,
                    "reporting_blocked": False,
                    "open_change_request_id": None,
                    "validation_status": ValidationStatus.PENDING,
                    "data_modified_at": now,
                    "updated_at": now,
                }),
                request_id,
            )
            approved = await self._requests.update_from(
                request.model_copy(update={
                    "status": ChangeRequestStatus.APPROVED_AND_EXECUTED,
                    "approved_by": actor,
                    "approved_at": now,
                    "approval_justification": justification.strip(),
                    "snapshot_id": snapshot.snapshot_id if snapshot else None,
                    "updated_at": now,
                }),
                ChangeRequestStatus.IMPACT_ANALYZED,
            )

        await self._ctx.audit.log(
            EntityType.CHANGE_REQUEST, request_id, "approved", actor,
            {"justification": approved.approval_justification, "snapshot_id": approved.snapshot_id},
        )
        await self._ctx.audit.log(
            EntityType.ENTRY, request.entry_id, "cn_code_change_applied", actor,
            {
                "request_id": request_id,
                "old_cn_code": request.old_cn_code,
                "new_cn_code": request.new_cn_code,
                "certificates_required": result.outputs.certificates_required,
            },
        )
        await self._ctx.publish(
            EventType.CLASSIFICATION_CHANGE_APPROVED, request_id, actor,
            entry_id=str(request.entry_id),
            new_cn_code=request.new_cn_code,
        )
        return Outcome.success(approved)

    async def reject(self, request_id: UUID, reason: str, actor: str) -> Outcome[ChangeRequest]:
        """Restore the original code and unfreeze."""
        request = await self._requests.require(request_id)
        if not (reason or "").strip():
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED, "Rejection reason is required.",
            )
        refused = self._check_transition(request, ChangeRequestStatus.REJECTED)
        if refused is not None:
            return refused

        entry = await self._entries.require(request.entry_id)
        now = self._ctx.clock()
        async with self._ctx.ledger.savepoint():
            await self._entries.update_under_change_request(
                entry.model_copy(update={
                    "cn_code": request.old_cn_code,
                    "goods_category": find_category(request.old_cn_code),
                    "calculation_frozen": False,
                    "reporting_blocked": False,
                    "open_change_request_id": None,
                    "validation_status": ValidationStatus.PENDING,
                    "data_modified_at": now,
                    "updated_at": now,
                }),
                request_id,
            )
            rejected = await self._requests.update_from(
                request.model_copy(update={
                    "status": ChangeRequestStatus.REJECTED,
                    "rejected_by": actor,
                    "rejected_at": now,
                    "rejection_reason": reason.strip(),
                    "updated_at": now,
                }),
                request.status,
            )

        await self._ctx.audit.log(
            EntityType.CHANGE_REQUEST, request_id, "rejected", actor,
            {"reason": rejected.rejection_reason},
        )
        await self._ctx.audit.log(
            EntityType.ENTRY, request.entry_id, "cn_code_change_reverted", actor,
            {"request_id": request_id, "restored_cn_code": request.old_cn_code},
        )
        await self._ctx.publish(
            EventType.CLASSIFICATION_CHANGE_REJECTED, request_id, actor,
            entry_id=str(request.entry_id),
        )
        return Outcome.success(rejected)
