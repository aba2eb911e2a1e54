"""Calculation history helpers shared by calculate, change control and recalculation."""

from typing import Any
from uuid import UUID

from src.lifecycle.context import LifecycleContext
from src.models.common import SnapshotReason
from src.models.entry import Entry
from src.models.workflow import CalculationSnapshot
from src.validation.rules import MIN_REPORTING_YEAR


def calculation_year(entry: Entry) -> int:
    """Reporting year used to resolve regulatory parameters."""
    if entry.reporting_period_year:
        return entry.reporting_period_year
    if entry.import_date is not None:
        return entry.import_date.year
    return MIN_REPORTING_YEAR


async def snapshot_calculation(
    ctx: LifecycleContext,
    entry: Entry,
    reason: SnapshotReason,
    actor: str,
    *,
    request_id: UUID | None = None,
    overrides: dict[str, Any] | None = None,
) -> CalculationSnapshot | None:
    """Append the entry's current calculation to its history.

    Returns None when the entry has never been calculated. ``overrides``
    replaces fields of the recorded state, e.g. the pre-change CN code.
    """
    if entry.calculation is None:
        return None
    state = entry.calculation_snapshot()
    if overrides:
        state.update(overrides)
    snapshot = CalculationSnapshot(
        entry_id=entry.entry_id,
        sequence=await ctx.ledger.snapshots.next_sequence(entry.entry_id),
        reason=reason,
        calculation=state,
        regulatory_version_id=entry.regulatory_version_id,
        superseded_by_request_id=request_id,
        created_by=actor,
        created_at=ctx.clock(),
    )
    return await ctx.ledger.snapshots.append(snapshot)
