"""Tests for certificate purchase, FIFO surrender and expiry."""

from datetime import date

import pytest
from uuid_extensions import uuid7

from src.certificates.ledger import CertificateLedger
from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.models.common import CertificateStatus, EntityType, ReportStatus
from src.models.errors import ConcurrencyConflict, NotFound
from src.models.outcome import RejectionCode
from src.models.report import Report


@pytest.fixture
def ledger(ctx: LifecycleContext) -> CertificateLedger:
    return CertificateLedger(ctx)


async def _make_report(
    ctx: LifecycleContext,
    certificates_required: int,
    status: ReportStatus = ReportStatus.SUBMITTED,
) -> Report:
    return await ctx.ledger.reports.create(Report(
        reporting_year=2026,
        reporting_quarter=1,
        reporting_period="Q1-2026",
        period_start=date(2026, 1, 1),
        period_end=date(2026, 3, 31),
        submission_deadline=date(2026, 4, 30),
        certificates_required=certificates_required,
        linked_entry_ids=[uuid7()],
        status=status,
    ))


class TestPurchase:
    """purchase() needs confirmation and sane numbers."""

    @pytest.mark.anyio
    async def test_purchase(self, ledger, ctx, events) -> None:
        certificate = (await ledger.purchase(100, 80.5, True, "treasury")).value
        assert certificate.status == CertificateStatus.ACTIVE
        assert certificate.purchase_date == date(2026, 3, 15)
        assert certificate.expiry_date == date(2028, 3, 14)
        assert (await ledger.get(certificate.certificate_id)).quantity == 100

        trail = await ctx.audit.get_trail(EntityType.CERTIFICATE, certificate.certificate_id)
        assert trail[0].action == "purchased"
        assert trail[0].details["total_cost"] == 8050.0
        assert len(events.of_type(EventType.CERTIFICATES_PURCHASED)) == 1

    @pytest.mark.anyio
    async def test_requires_confirmation(self, ledger) -> None:
        outcome = await ledger.purchase(100, 80.0, False, "treasury")
        assert outcome.rejection.code == RejectionCode.CONFIRMATION_REQUIRED
        assert await ledger.list_certificates() == []

    @pytest.mark.anyio
    @pytest.mark.parametrize(("quantity", "price"), [(0, 80.0), (-5, 80.0), (10, -1.0)])
    async def test_invalid_values(self, ledger, quantity, price) -> None:
        outcome = await ledger.purchase(quantity, price, True, "treasury")
        assert outcome.rejection.code == RejectionCode.VALIDATION_REJECTED

    @pytest.mark.anyio
    async def test_free_certificates_allowed(self, ledger) -> None:
        assert (await ledger.purchase(5, 0.0, True, "treasury")).ok


class TestSurrender:
    """FIFO surrender splits the last lot and conserves quantity."""

    @pytest.mark.anyio
    async def test_fifo_with_split(self, ledger, ctx, clock) -> None:
        first = (await ledger.purchase(100, 80.0, True, "treasury")).value
        clock.advance(days=1)
        second = (await ledger.purchase(80, 82.0, True, "treasury")).value
        report = await _make_report(ctx, 150)

        result = (await ledger.surrender(report.report_id, True, "treasury")).value
        assert result.required == 150
        assert result.surrendered == 150
        assert [a.quantity for a in result.allocations] == [100, 50]
        assert result.allocations[0].certificate_id == first.certificate_id
        assert result.allocations[1].split_from_certificate_id == second.certificate_id

        assert (await ledger.get(first.certificate_id)).status == CertificateStatus.SURRENDERED
        remainder = await ledger.get(second.certificate_id)
        assert remainder.status == CertificateStatus.ACTIVE
        assert remainder.quantity == 30
        portion = await ledger.get(result.allocations[1].certificate_id)
        assert portion.status == CertificateStatus.SURRENDERED
        assert portion.quantity == 50
        assert portion.expiry_date == second.expiry_date

        surrendered = await ctx.ledger.certificates.list_for_report(report.report_id)
        assert sorted(c.quantity for c in surrendered) == [50, 100]
        assert all(c.surrendered_for_report_id == report.report_id for c in surrendered)

        holdings = await ledger.holdings()
        assert (holdings.active, holdings.surrendered, holdings.expired) == (30, 150, 0)
        assert holdings.total == 180

        trail = await ctx.audit.get_trail(EntityType.REPORT, report.report_id)
        assert trail[-1].action == "certificates_surrendered"
        assert trail[-1].details["surrendered"] == 150

    @pytest.mark.anyio
    async def test_conflict_midway_rolls_back_every_lot(
        self, ledger, ctx, clock, events, monkeypatch,
    ) -> None:
        first = (await ledger.purchase(100, 80.0, True, "treasury")).value
        clock.advance(days=1)
        second = (await ledger.purchase(80, 82.0, True, "treasury")).value
        report = await _make_report(ctx, 150)

        repository = ctx.ledger.certificates
        list_usable = repository.list_usable

        async def stale_fifo(as_of: date) -> list:
            usable = await list_usable(as_of)
            # Another caller expires the second lot after the FIFO read.
            await repository.update(second.model_copy(update={"status": CertificateStatus.EXPIRED}))
            return usable

        monkeypatch.setattr(repository, "list_usable", stale_fifo)

        with pytest.raises(ConcurrencyConflict):
            await ledger.surrender(report.report_id, True, "treasury")

        untouched = await ledger.get(first.certificate_id)
        assert untouched.status == CertificateStatus.ACTIVE
        assert untouched.quantity == 100
        assert untouched.surrendered_for_report_id is None
        assert await repository.list_for_report(report.report_id) == []
        assert len(await ledger.list_certificates()) == 2

        holdings = await ledger.holdings()
        assert (holdings.active, holdings.surrendered, holdings.expired) == (100, 0, 80)
        assert events.of_type(EventType.CERTIFICATES_SURRENDERED) == []

    @pytest.mark.anyio
    async def test_exact_match_does_not_split(self, ledger, ctx) -> None:
        certificate = (await ledger.purchase(40, 80.0, True, "treasury")).value
        report = await _make_report(ctx, 40)
        result = (await ledger.surrender(report.report_id, True, "treasury")).value
        assert result.allocations[0].split_from_certificate_id is None
        assert len(await ledger.list_certificates()) == 1
        assert (await ledger.get(certificate.certificate_id)).status == CertificateStatus.SURRENDERED

    @pytest.mark.anyio
    async def test_requires_confirmation(self, ledger, ctx) -> None:
        await ledger.purchase(100, 80.0, True, "treasury")
        report = await _make_report(ctx, 10)
        outcome = await ledger.surrender(report.report_id, False, "treasury")
        assert outcome.rejection.code == RejectionCode.CONFIRMATION_REQUIRED
        assert (await ledger.holdings()).active == 100

    @pytest.mark.anyio
    async def test_draft_report_refused(self, ledger, ctx) -> None:
        await ledger.purchase(100, 80.0, True, "treasury")
        report = await _make_report(ctx, 10, status=ReportStatus.DRAFT)
        outcome = await ledger.surrender(report.report_id, True, "treasury")
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED

    @pytest.mark.anyio
    async def test_insufficient(self, ledger, ctx) -> None:
        await ledger.purchase(10, 80.0, True, "treasury")
        report = await _make_report(ctx, 150)
        outcome = await ledger.surrender(report.report_id, True, "treasury")
        assert outcome.rejection.code == RejectionCode.INSUFFICIENT_CERTIFICATES
        assert outcome.rejection.details == {"required": 150, "available": 10, "shortfall": 140}
        assert (await ledger.holdings()).active == 10

    @pytest.mark.anyio
    async def test_already_covered(self, ledger, ctx) -> None:
        await ledger.purchase(100, 80.0, True, "treasury")
        report = await _make_report(ctx, 60)
        await ledger.surrender(report.report_id, True, "treasury")
        outcome = await ledger.surrender(report.report_id, True, "treasury")
        assert outcome.rejection.code == RejectionCode.PRECONDITION_FAILED
        assert (await ledger.holdings()).active == 40

    @pytest.mark.anyio
    async def test_expired_lots_are_not_usable(self, ledger, ctx, clock) -> None:
        await ledger.purchase(100, 80.0, True, "treasury")
        clock.advance(days=731)
        report = await _make_report(ctx, 10)
        outcome = await ledger.surrender(report.report_id, True, "treasury")
        assert outcome.rejection.details["available"] == 0

    @pytest.mark.anyio
    async def test_missing_report(self, ledger) -> None:
        with pytest.raises(NotFound):
            await ledger.surrender(uuid7(), True, "treasury")


class TestExpiry:
    """expire_certificates() changes status only."""

    @pytest.mark.anyio
    async def test_expire(self, ledger, ctx) -> None:
        old = (await ledger.purchase(100, 80.0, True, "treasury")).value
        expired = await ledger.expire_certificates(date(2028, 6, 1), "scheduler")
        assert [c.certificate_id for c in expired] == [old.certificate_id]
        assert expired[0].quantity == 100

        holdings = await ledger.holdings()
        assert (holdings.active, holdings.expired) == (0, 100)
        trail = await ctx.audit.get_trail(EntityType.CERTIFICATE, old.certificate_id)
        assert trail[-1].action == "expired"

    @pytest.mark.anyio
    async def test_unexpired_kept(self, ledger) -> None:
        await ledger.purchase(100, 80.0, True, "treasury")
        assert await ledger.expire_certificates(date(2028, 3, 14), "scheduler") == []
        assert (await ledger.holdings()).active == 100

    @pytest.mark.anyio
    async def test_defaults_to_clock_date(self, ledger) -> None:
        await ledger.purchase(100, 80.0, True, "treasury")
        assert await ledger.expire_certificates(None, "scheduler") == []


class TestObligation:
    """obligation() reports the outstanding position."""

    @pytest.mark.anyio
    async def test_obligation(self, ledger, ctx) -> None:
        await ledger.purchase(30, 80.0, True, "treasury")
        report = await _make_report(ctx, 50)
        obligation = await ledger.obligation(report.report_id)
        assert obligation.required == 50
        assert obligation.surrendered == 0
        assert obligation.outstanding == 50
        assert obligation.available == 30
        assert obligation.estimated_cost_eur == 4250.0

    @pytest.mark.anyio
    async def test_after_surrender(self, ledger, ctx) -> None:
        await ledger.purchase(60, 80.0, True, "treasury")
        report = await _make_report(ctx, 50)
        await ledger.surrender(report.report_id, True, "treasury")
        obligation = await ledger.obligation(report.report_id)
        assert (obligation.surrendered, obligation.outstanding, obligation.available) == (50, 0, 10)
        assert obligation.estimated_cost_eur == 0.0
