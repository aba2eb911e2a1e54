"""Report export — structured document for external regulatory submission.

The wire format (XML schema, registry API) belongs to the adapter that
consumes ReportDocument.
"""

from uuid import UUID

from src.lifecycle.context import LifecycleContext
from src.models.entry import Entry
from src.models.report import ReportDocument


def _goods_line(entry: Entry) -> dict:
    calc = entry.calculation
    return {
        "entry_id": str(entry.entry_id),
        "import_reference": entry.import_reference,
        "cn_code": entry.cn_code,
        "goods_category": entry.goods_category,
        "country_of_origin": entry.country_of_origin,
        "quantity_tonnes": entry.quantity,
        "calculation_method": str(entry.calculation_method),
        "direct_emissions_specific": calc.direct_emissions_specific if calc else None,
        "indirect_emissions_specific": calc.indirect_emissions_specific if calc else None,
        "total_embedded_emissions": calc.total_embedded_emissions if calc else None,
        "certificates_required": calc.certificates_required if calc else None,
        "default_value_used": calc.default_value_used if calc else None,
        "verification_status": str(entry.verification_status),
        "verification_report_id": entry.verification_report_id,
    }


async def export_document(ctx: LifecycleContext, report_id: UUID) -> ReportDocument:
    report = await ctx.ledger.reports.require(report_id)
    entries = await ctx.ledger.entries.list_by_ids(report.linked_entry_ids)
    by_id = {e.entry_id: e for e in entries}
    goods = [_goods_line(by_id[eid]) for eid in report.linked_entry_ids if eid in by_id]
    return ReportDocument(
        report_id=report.report_id,
        reporting_period=report.reporting_period,
        period_start=report.period_start,
        period_end=report.period_end,
        submission_deadline=report.submission_deadline,
        status=report.status,
        declarant=report.declarant,
        goods=goods,
        totals=report.totals,
        certificates_required=report.certificates_required,
        generated_at=report.generated_at,
        submitted_at=report.submitted_at,
    )
