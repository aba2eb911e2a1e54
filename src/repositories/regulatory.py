"""Regulatory version repository."""

from src.db.tables import RegulatoryVersionRow
from src.models.common import EntityType, RegulatoryVersionStatus
from src.models.regulatory import RegulatoryVersion
from src.repositories.base import VersionedRepository


class RegulatoryVersionRepository(VersionedRepository[RegulatoryVersion]):
    row_type = RegulatoryVersionRow
    model_type = RegulatoryVersion
    entity_type = EntityType.REGULATORY_VERSION

    async def get_active(self) -> RegulatoryVersion | None:
        active = await self._list_where(
            RegulatoryVersionRow.status == RegulatoryVersionStatus.ACTIVE,
        )
        return active[0] if active else None

    async def list_all(self) -> list[RegulatoryVersion]:
        return await self._list_where(order_by=RegulatoryVersionRow.created_at)

    async def update_from(
        self, version: RegulatoryVersion, from_status: str,
    ) -> RegulatoryVersion:
        return await self.update(
            version,
            RegulatoryVersionRow.status == from_status,
            conflict_detail=f"status is no longer '{from_status}'",
        )
