"""Report aggregator — strict eligibility filtering and quarterly totals.

Every entry in the ledger is classified when a report is generated. An
entry is eligible only if every predicate holds, the import date falling
inside the quarter among them; otherwise it is recorded as excluded with
every failing reason. The narrower quarter scope (import date inside the
quarter, or no import date but the quarter's reporting year) only feeds
the readiness counts.
"""

import logging
import math
from collections import defaultdict
from uuid import UUID

from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.models.common import (
    METHODS_REQUIRING_VERIFICATION,
    EntityType,
    ReportStatus,
    ValidationStatus,
    VerificationStatus,
)
from src.models.entry import Entry
from src.models.outcome import Outcome, RejectionCode
from src.models.report import (
    BreakdownItem,
    DataQuality,
    Declarant,
    ExcludedEntry,
    Report,
    ReportingPeriod,
    ReportReadiness,
    ReportTotals,
)

logger = logging.getLogger(__name__)


def in_scope(entry: Entry, period: ReportingPeriod) -> bool:
    if entry.import_date is not None:
        return period.contains(entry.import_date)
    return entry.reporting_period_year == period.year


def exclusion_reasons(entry: Entry, period: ReportingPeriod) -> list[str]:
    """Every eligibility predicate ``entry`` fails. Empty means eligible."""
    reasons: list[str] = []
    if entry.import_date is None:
        reasons.append("Import date is missing")
    elif not period.contains(entry.import_date):
        reasons.append(f"Import date {entry.import_date.isoformat()} is outside {period.label}")
    if entry.validation_status == ValidationStatus.BLOCKED:
        reasons.append("Validation status is blocked")
    if (
        entry.calculation_method in METHODS_REQUIRING_VERIFICATION
        and entry.verification_status != VerificationStatus.VERIFIER_SATISFACTORY
    ):
        reasons.append(
            f"{entry.calculation_method} requires a satisfactory verification opinion "
            f"(status '{entry.verification_status}')"
        )
    if not entry.cn_code:
        reasons.append("CN code is missing")
    if not entry.country_of_origin:
        reasons.append("Country of origin is missing")
    if not entry.quantity or entry.quantity <= 0:
        reasons.append("Quantity must be greater than 0")
    if not entry.is_calculated:
        reasons.append("Emissions have not been calculated")
    if entry.reporting_blocked or entry.calculation_frozen:
        reasons.append("Reporting is blocked by an open classification change")
    return reasons


def _add(bucket: BreakdownItem, entry: Entry) -> None:
    bucket.count += 1
    bucket.quantity += entry.quantity
    bucket.emissions += entry.total_embedded_emissions or 0.0
    bucket.certificates += entry.certificates_required or 0.0


def aggregate(entries: list[Entry]) -> tuple[
    ReportTotals, dict[str, BreakdownItem], dict[str, BreakdownItem], dict[str, BreakdownItem]
]:
    """Totals and breakdowns over eligible entries."""
    totals = ReportTotals()
    by_category: dict[str, BreakdownItem] = defaultdict(BreakdownItem)
    by_country: dict[str, BreakdownItem] = defaultdict(BreakdownItem)
    by_method: dict[str, BreakdownItem] = defaultdict(BreakdownItem)
    for entry in entries:
        calc = entry.calculation
        totals.total_imports += 1
        totals.total_quantity += entry.quantity
        totals.total_direct_emissions += calc.direct_emissions_specific * entry.quantity
        totals.total_indirect_emissions += calc.indirect_emissions_specific * entry.quantity
        totals.total_embedded_emissions += calc.total_embedded_emissions
        totals.total_chargeable_emissions += calc.chargeable_emissions
        totals.certificates_sum += calc.certificates_required
        _add(by_category[entry.goods_category or "unclassified"], entry)
        _add(by_country[entry.country_of_origin], entry)
        _add(by_method[str(entry.calculation_method)], entry)
    return totals, dict(by_category), dict(by_country), dict(by_method)


def certificates_to_surrender(certificates_sum: float) -> int:
    """Whole certificates, rounded up after removing float noise."""
    return math.ceil(round(certificates_sum, 6))


class ReportAggregator:
    """Generate, inspect and submit quarterly reports."""

    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._reports = ctx.ledger.reports

    async def get(self, report_id: UUID) -> Report:
        return await self._reports.require(report_id)

    async def list_reports(self) -> list[Report]:
        return await self._reports.list_all()

    async def _classify(
        self, period: ReportingPeriod,
    ) -> tuple[list[Entry], list[ExcludedEntry], list[Entry]]:
        entries = await self._ctx.ledger.entries.list_all()
        eligible: list[Entry] = []
        excluded: list[ExcludedEntry] = []
        for entry in entries:
            reasons = exclusion_reasons(entry, period)
            if reasons:
                excluded.append(ExcludedEntry(
                    entry_id=entry.entry_id,
                    import_reference=entry.import_reference,
                    reasons=reasons,
                ))
            else:
                eligible.append(entry)
        scoped = [e for e in entries if in_scope(e, period)]
        return eligible, excluded, scoped

    async def generate_report(
        self, period: ReportingPeriod, declarant: Declarant, actor: str,
    ) -> Outcome[Report]:
        eligible, excluded, _ = await self._classify(period)
        totals, by_category, by_country, by_method = aggregate(eligible)

        verified = sum(
            1 for e in eligible if e.verification_status == VerificationStatus.VERIFIER_SATISFACTORY
        )
        scores = [e.compliance_score for e in eligible if e.compliance_score is not None]
        quality = DataQuality(
            eligible_entries=len(eligible),
            excluded_entries=len(excluded),
            verified_entries=verified,
            verification_coverage_percent=round(verified / len(eligible) * 100, 1) if eligible else 0.0,
            average_compliance_score=round(sum(scores) / len(scores), 1) if scores else None,
        )

        report = Report(
            reporting_year=period.year,
            reporting_quarter=period.quarter,
            reporting_period=period.label,
            period_start=period.start,
            period_end=period.end,
            submission_deadline=period.submission_deadline,
            declarant=declarant,
            totals=totals,
            certificates_required=certificates_to_surrender(totals.certificates_sum),
            breakdown_by_category=by_category,
            breakdown_by_country=by_country,
            breakdown_by_method=by_method,
            data_quality=quality,
            linked_entry_ids=[e.entry_id for e in eligible],
            excluded_entries=excluded,
            status=ReportStatus.DRAFT,
            generated_by=actor,
            generated_at=self._ctx.clock(),
        )
        await self._reports.create(report)
        await self._ctx.audit.log(
            EntityType.REPORT, report.report_id, "generated", actor,
            {
                "reporting_period": period.label,
                "eligible_entries": len(eligible),
                "excluded_entries": len(excluded),
                "certificates_required": report.certificates_required,
            },
        )
        await self._ctx.publish(
            EventType.REPORT_GENERATED, report.report_id, actor,
            reporting_period=period.label,
            certificates_required=report.certificates_required,
        )
        return Outcome.success(report)

    async def submit_report(self, report_id: UUID, actor: str) -> Outcome[Report]:
        """draft → submitted. Terminal."""
        report = await self._reports.require(report_id)
        if report.status != ReportStatus.DRAFT:
            return Outcome.rejected(
                RejectionCode.INVALID_TRANSITION,
                f"Report is already '{report.status}'.",
                from_state=report.status,
                to_state=ReportStatus.SUBMITTED,
            )
        if not report.linked_entry_ids:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "A report needs at least one eligible entry to be submitted.",
                excluded_entries=len(report.excluded_entries),
            )

        submitted = await self._reports.update_draft(report.model_copy(update={
            "status": ReportStatus.SUBMITTED,
            "submitted_by": actor,
            "submitted_at": self._ctx.clock(),
        }))
        await self._ctx.audit.log(
            EntityType.REPORT, report_id, "submitted", actor,
            {
                "reporting_period": submitted.reporting_period,
                "certificates_required": submitted.certificates_required,
            },
        )
        await self._ctx.publish(
            EventType.REPORT_SUBMITTED, report_id, actor,
            certificates_required=submitted.certificates_required,
        )
        return Outcome.success(submitted)

    async def readiness(self, year: int, quarter: int) -> ReportReadiness:
        period = ReportingPeriod(year=year, quarter=quarter)
        eligible, _, scoped = await self._classify(period)
        blocked = sum(1 for e in scoped if e.validation_status == ValidationStatus.BLOCKED)
        unvalidated = sum(1 for e in scoped if e.validation_status == ValidationStatus.PENDING)
        unverified = sum(
            1 for e in scoped
            if e.calculation_method in METHODS_REQUIRING_VERIFICATION
            and e.verification_status != VerificationStatus.VERIFIER_SATISFACTORY
        )
        frozen = sum(1 for e in scoped if e.calculation_frozen or e.reporting_blocked)
        return ReportReadiness(
            reporting_period=period.label,
            total_entries=len(scoped),
            validated_entries=len(scoped) - unvalidated,
            blocked_entries=blocked,
            unvalidated_entries=unvalidated,
            unverified_actual_entries=unverified,
            frozen_entries=frozen,
            ready=bool(eligible) and blocked == 0 and unvalidated == 0 and frozen == 0,
        )
