"""Tests for the structured report export document."""

from datetime import date

import pytest
from uuid_extensions import uuid7

from src.lifecycle.context import LifecycleContext
from src.lifecycle.entry_manager import EntryLifecycleManager
from src.models.common import ReportStatus
from src.models.entry import EntryDraft
from src.models.errors import NotFound
from src.models.report import Declarant, ReportingPeriod
from src.reporting.aggregator import ReportAggregator
from src.reporting.export import export_document


@pytest.mark.anyio
async def test_export_lists_linked_goods(ctx: LifecycleContext) -> None:
    manager = EntryLifecycleManager(ctx)
    entry = await manager.create(EntryDraft(
        import_reference="IMP-001",
        cn_code="72081000",
        country_of_origin="China",
        quantity=100.0,
        import_date=date(2026, 2, 10),
    ), "analyst")
    await manager.calculate(entry.entry_id, "analyst")
    await manager.create(EntryDraft(
        import_reference="IMP-002",
        cn_code="72081000",
        country_of_origin="China",
        quantity=50.0,
        import_date=date(2026, 3, 1),
    ), "analyst")

    aggregator = ReportAggregator(ctx)
    report = (await aggregator.generate_report(
        ReportingPeriod(year=2026, quarter=1),
        Declarant(eori_number="DE123456789012345", member_state="DE"),
        "analyst",
    )).value
    await aggregator.submit_report(report.report_id, "analyst")

    document = await export_document(ctx, report.report_id)
    assert document.document_type == "CBAM_QUARTERLY_REPORT"
    assert document.status == ReportStatus.SUBMITTED
    assert document.submitted_at is not None
    assert document.declarant.eori_number == "DE123456789012345"
    assert document.certificates_required == 18
    assert len(document.goods) == 1

    line = document.goods[0]
    assert line["import_reference"] == "IMP-001"
    assert line["quantity_tonnes"] == 100.0
    assert line["total_embedded_emissions"] == pytest.approx(137.0)
    assert line["default_value_used"] is True
    assert line["verification_status"] == "not_verified"


@pytest.mark.anyio
async def test_export_missing_report(ctx: LifecycleContext) -> None:
    with pytest.raises(NotFound):
        await export_document(ctx, uuid7())
