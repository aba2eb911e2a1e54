"""Certificate ledger — purchase, FIFO surrender with splitting, expiry.

Quantities are conserved: a surrender either flips a whole certificate to
``surrendered`` or splits it into an active remainder plus a surrendered
portion; expiry changes status only.
"""

import logging
from datetime import date, timedelta
from uuid import UUID

from src.governance.events import EventType
from src.lifecycle.context import LifecycleContext
from src.models.certificate import (
    Certificate,
    Holdings,
    Obligation,
    SurrenderAllocation,
    SurrenderResult,
)
from src.models.common import CertificateStatus, EntityType, ReportStatus
from src.models.outcome import Outcome, RejectionCode

logger = logging.getLogger(__name__)


class CertificateLedger:
    def __init__(self, ctx: LifecycleContext) -> None:
        self._ctx = ctx
        self._certificates = ctx.ledger.certificates

    async def get(self, certificate_id: UUID) -> Certificate:
        return await self._certificates.require(certificate_id)

    async def list_certificates(self) -> list[Certificate]:
        return await self._certificates.list_all()

    async def purchase(
        self,
        quantity: int,
        price_per_unit: float,
        explicit_confirmation: bool,
        actor: str,
    ) -> Outcome[Certificate]:
        if not explicit_confirmation:
            return Outcome.rejected(
                RejectionCode.CONFIRMATION_REQUIRED,
                "Certificate purchase requires explicit confirmation.",
                quantity=quantity,
            )
        if quantity <= 0:
            return Outcome.rejected(
                RejectionCode.VALIDATION_REJECTED,
                "Quantity must be greater than 0.",
                field="quantity", current_value=quantity, required_value="> 0",
            )
        if price_per_unit < 0:
            return Outcome.rejected(
                RejectionCode.VALIDATION_REJECTED,
                "Price per unit cannot be negative.",
                field="price_per_unit", current_value=price_per_unit, required_value=">= 0",
            )

        now = self._ctx.clock()
        certificate = Certificate(
            quantity=quantity,
            price_per_unit=price_per_unit,
            purchase_date=now.date(),
            expiry_date=now.date() + timedelta(days=self._ctx.settings.CERTIFICATE_VALIDITY_DAYS),
            purchased_by=actor,
            created_at=now,
        )
        await self._certificates.create(certificate)
        await self._ctx.audit.log(
            EntityType.CERTIFICATE, certificate.certificate_id, "purchased", actor,
            {
                "quantity": quantity,
                "price_per_unit": price_per_unit,
                "total_cost": round(quantity * price_per_unit, 2),
                "expiry_date": certificate.expiry_date,
            },
        )
        await self._ctx.publish(
            EventType.CERTIFICATES_PURCHASED, certificate.certificate_id, actor,
            quantity=quantity, price_per_unit=price_per_unit,
        )
        return Outcome.success(certificate)

    async def surrender(
        self, report_id: UUID, explicit_confirmation: bool, actor: str,
    ) -> Outcome[SurrenderResult]:
        """Surrender the report's outstanding certificates, oldest purchase first."""
        if not explicit_confirmation:
            return Outcome.rejected(
                RejectionCode.CONFIRMATION_REQUIRED,
                "Certificate surrender requires explicit confirmation.",
                report_id=str(report_id),
            )
        report = await self._ctx.ledger.reports.require(report_id)
        if report.status != ReportStatus.SUBMITTED:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                f"Certificates can only be surrendered for a submitted report (status '{report.status}').",
                current_value=report.status, required_value=ReportStatus.SUBMITTED,
            )

        already = await self._certificates.surrendered_for_report(report_id)
        required = report.certificates_required - already
        if required <= 0:
            return Outcome.rejected(
                RejectionCode.PRECONDITION_FAILED,
                "The report's certificate obligation is already covered.",
                required=report.certificates_required, surrendered=already,
            )

        now = self._ctx.clock()
        usable = await self._certificates.list_usable(now.date())
        available = sum(c.quantity for c in usable)
        if available < required:
            return Outcome.rejected(
                RejectionCode.INSUFFICIENT_CERTIFICATES,
                f"Insufficient certificates: {required} required, {available} available.",
                required=required, available=available, shortfall=required - available,
            )

        allocations: list[SurrenderAllocation] = []
        remaining = required
        async with self._ctx.ledger.savepoint():
            for certificate in usable:
                if remaining == 0:
                    break
                take = min(certificate.quantity, remaining)
                if take == certificate.quantity:
                    await self._certificates.update_active(certificate.model_copy(update={
                        "status": CertificateStatus.SURRENDERED,
                        "surrendered_for_report_id": report_id,
                        "surrendered_at": now,
                    }))
                    allocations.append(SurrenderAllocation(
                        certificate_id=certificate.certificate_id, quantity=take,
                    ))
                else:
                    await self._certificates.update_active(certificate.model_copy(update={
                        "quantity": certificate.quantity - take,
                    }))
                    portion = Certificate(
                        quantity=take,
                        price_per_unit=certificate.price_per_unit,
                        status=CertificateStatus.SURRENDERED,
                        purchase_date=certificate.purchase_date,
                        expiry_date=certificate.expiry_date,
                        surrendered_for_report_id=report_id,
                        surrendered_at=now,
                        split_from_certificate_id=certificate.certificate_id,
                        purchased_by=certificate.purchased_by,
                        created_at=now,
                    )
                    await self._certificates.create(portion)
                    allocations.append(SurrenderAllocation(
                        certificate_id=portion.certificate_id,
                        quantity=take,
                        split_from_certificate_id=certificate.certificate_id,
                    ))
                remaining -= take

        result = SurrenderResult(
            report_id=report_id, required=required, surrendered=required, allocations=allocations,
        )
        await self._ctx.audit.log(
            EntityType.REPORT, report_id, "certificates_surrendered", actor,
            {
                "surrendered": required,
                "allocations": [a.model_dump(mode="json") for a in allocations],
            },
        )
        await self._ctx.publish(
            EventType.CERTIFICATES_SURRENDERED, report_id, actor,
            surrendered=required, certificate_count=len(allocations),
        )
        return Outcome.success(result)

    async def expire_certificates(self, as_of: date | None, actor: str) -> list[Certificate]:
        """Move past-expiry active certificates to ``expired``; quantities unchanged."""
        as_of = as_of or self._ctx.clock().date()
        expired = [
            await self._certificates.update_active(c.model_copy(update={"status": CertificateStatus.EXPIRED}))
            for c in await self._certificates.list_expired_active(as_of)
        ]
        for certificate in expired:
            await self._ctx.audit.log(
                EntityType.CERTIFICATE, certificate.certificate_id, "expired", actor,
                {"quantity": certificate.quantity, "expiry_date": certificate.expiry_date},
            )
        if expired:
            logger.info("Expired %d certificate lots as of %s", len(expired), as_of)
            await self._ctx.publish(
                EventType.CERTIFICATES_EXPIRED, expired[0].certificate_id, actor,
                certificate_ids=[str(c.certificate_id) for c in expired],
                quantity=sum(c.quantity for c in expired),
            )
        return expired

    async def holdings(self) -> Holdings:
        totals = await self._certificates.quantities_by_status()
        return Holdings(
            active=totals.get(CertificateStatus.ACTIVE, 0),
            surrendered=totals.get(CertificateStatus.SURRENDERED, 0),
            expired=totals.get(CertificateStatus.EXPIRED, 0),
        )

    async def obligation(self, report_id: UUID) -> Obligation:
        report = await self._ctx.ledger.reports.require(report_id)
        surrendered = await self._certificates.surrendered_for_report(report_id)
        outstanding = max(0, report.certificates_required - surrendered)
        usable = await self._certificates.list_usable(self._ctx.clock().date())
        return Obligation(
            report_id=report_id,
            required=report.certificates_required,
            surrendered=surrendered,
            outstanding=outstanding,
            available=sum(c.quantity for c in usable),
            estimated_cost_eur=round(outstanding * self._ctx.settings.ETS_REFERENCE_PRICE_EUR, 2),
        )
