"""Validation service — runs the rule evaluator and writes results back."""

import logging
from uuid import UUID

from pydantic import Field

from src.engine.benchmarks import lookup_benchmark
from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.models.common import CBAMBase, EntityType, ValidationStatus
from src.models.entry import Entry
from src.models.errors import NotFound
from src.models.outcome import Outcome
from src.validation.rules import ValidationOutcome, evaluate

logger = logging.getLogger(__name__)


class BatchValidationSummary(CBAMBase):
    total: int = 0
    passed: int = 0
    warnings: int = 0
    blocked: int = 0
    not_found: list[UUID] = Field(default_factory=list)


class ValidationReadiness(CBAMBase):
    total: int
    blocked: int
    unvalidated: int
    ready: bool
    blocked_entry_ids: list[UUID]


class ValidationService:
    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._entries = ctx.ledger.entries

    def _benchmark_for(self, entry: Entry) -> float | None:
        lookup = lookup_benchmark(
            entry.cn_code,
            country=entry.country_of_origin,
            product_name=entry.product_name,
            production_route=(
                entry.calculation.production_route if entry.calculation else entry.production_route
            ),
        )
        return lookup.value_per_tonne if lookup else None

    def evaluate(self, entry: Entry, benchmark: float | None = None) -> ValidationOutcome:
        return evaluate(
            entry,
            benchmark if benchmark is not None else self._benchmark_for(entry),
            materiality_threshold_percent=self._ctx.settings.MATERIALITY_THRESHOLD_PERCENT,
        )

    async def validate_entry(
        self, entry_id: UUID, actor: str, benchmark: float | None = None,
    ) -> Outcome[tuple[Entry, ValidationOutcome]]:
        """Evaluate and persist status, both issue lists, score and timestamp.

        ``benchmark`` is the default value per tonne; the catalog value for
        the entry's CN code is used when omitted.
        """
        entry = await self._entries.require(entry_id)
        outcome = self.evaluate(entry, benchmark)

        updated = await self._entries.update(entry.model_copy(update={
            "validation_status": outcome.status,
            "validation_errors": outcome.blocking_issues,
            "validation_warnings": outcome.warnings,
            "compliance_score": outcome.compliance_score,
            "last_validated_at": self._ctx.clock(),
            "updated_at": self._ctx.clock(),
        }))
        await self._ctx.audit.log(
            EntityType.ENTRY, entry_id, "validated", actor,
            {
                "status": outcome.status,
                "compliance_score": outcome.compliance_score,
                "rules_applied": outcome.rules_applied,
                "blocking_issues": [i.model_dump(mode="json") for i in outcome.blocking_issues],
                "warnings": [i.model_dump(mode="json") for i in outcome.warnings],
            },
        )
        await self._ctx.publish(
            EventType.ENTRY_VALIDATED, entry_id, actor,
            status=outcome.status.value,
            compliance_score=outcome.compliance_score,
        )
        return Outcome.success((updated, outcome))

    async def batch_validate(self, entry_ids: list[UUID], actor: str) -> BatchValidationSummary:
        summary = BatchValidationSummary()
        for entry_id in entry_ids:
            try:
                result = await self.validate_entry(entry_id, actor)
            except NotFound:
                logger.info("Batch validation skipped missing entry %s", entry_id)
                summary.not_found.append(entry_id)
                continue
            summary.total += 1
            status = result.unwrap()[1].status
            if status == ValidationStatus.BLOCKED:
                summary.blocked += 1
            elif status == ValidationStatus.WARNING:
                summary.warnings += 1
            else:
                summary.passed += 1
        return summary

    async def report_readiness(self, entry_ids: list[UUID]) -> ValidationReadiness:
        """Whether the given entries are validated and free of blocking issues."""
        entries = await self._entries.list_by_ids(entry_ids)
        blocked = [e.entry_id for e in entries if e.validation_status == ValidationStatus.BLOCKED]
        unvalidated = sum(1 for e in entries if e.validation_status == ValidationStatus.PENDING)
        return ValidationReadiness(
            total=len(entries),
            blocked=len(blocked),
            unvalidated=unvalidated,
            ready=bool(entries) and not blocked and unvalidated == 0,
            blocked_entry_ids=blocked,
        )
