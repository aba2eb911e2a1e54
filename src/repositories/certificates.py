"""Certificate repository."""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from src.db.tables import CertificateRow
from src.models.certificate import Certificate
from src.models.common import CertificateStatus, EntityType
from src.repositories.base import VersionedRepository


class CertificateRepository(VersionedRepository[Certificate]):
    row_type = CertificateRow
    model_type = Certificate
    entity_type = EntityType.CERTIFICATE

    async def list_usable(self, as_of: date) -> list[Certificate]:
        """Active, unexpired certificates in FIFO order (oldest purchase first)."""
        stmt = (
            self._select()
            .where(
                CertificateRow.status == CertificateStatus.ACTIVE,
                CertificateRow.expiry_date >= as_of,
            )
            .order_by(CertificateRow.purchase_date, CertificateRow.certificate_id)
        )
        result = await self._session.execute(stmt)
        return [self._to_model(row) for row in result.scalars().all()]

    async def list_expired_active(self, as_of: date) -> list[Certificate]:
        return await self._list_where(
            CertificateRow.status == CertificateStatus.ACTIVE,
            CertificateRow.expiry_date < as_of,
        )

    async def list_for_report(self, report_id: UUID) -> list[Certificate]:
        return await self._list_where(CertificateRow.surrendered_for_report_id == report_id)

    async def surrendered_for_report(self, report_id: UUID) -> int:
        result = await self._session.execute(
            select(func.coalesce(func.sum(CertificateRow.quantity), 0)).where(
                CertificateRow.surrendered_for_report_id == report_id,
                CertificateRow.status == CertificateStatus.SURRENDERED,
            )
        )
        return int(result.scalar_one())

    async def quantities_by_status(self) -> dict[str, int]:
        result = await self._session.execute(
            select(CertificateRow.status, func.sum(CertificateRow.quantity))
            .group_by(CertificateRow.status)
        )
        return {status: int(total or 0) for status, total in result.all()}

    async def update_active(self, certificate: Certificate) -> Certificate:
        """Conditional on the stored certificate still being active."""
        return await self.update(
            certificate,
            CertificateRow.status == CertificateStatus.ACTIVE,
            conflict_detail="certificate is no longer active",
        )
