"""Change request and recalculation request repositories."""

from uuid import UUID

from src.db.tables import ChangeRequestRow, RecalculationRequestRow
from src.models.common import EntityType
from src.models.workflow import ChangeRequest, RecalculationRequest
from src.repositories.base import VersionedRepository


class ChangeRequestRepository(VersionedRepository[ChangeRequest]):
    row_type = ChangeRequestRow
    model_type = ChangeRequest
    entity_type = EntityType.CHANGE_REQUEST

    async def list_for_entry(self, entry_id: UUID) -> list[ChangeRequest]:
        return await self._list_where(
            ChangeRequestRow.entry_id == entry_id,
            order_by=ChangeRequestRow.requested_at,
        )

    async def update_from(self, request: ChangeRequest, from_status: str) -> ChangeRequest:
        """Compare-and-swap on both revision and current status."""
        return await self.update(
            request,
            ChangeRequestRow.status == from_status,
            conflict_detail=f"status is no longer '{from_status}'",
        )


class RecalculationRequestRepository(VersionedRepository[RecalculationRequest]):
    row_type = RecalculationRequestRow
    model_type = RecalculationRequest
    entity_type = EntityType.RECALCULATION_REQUEST

    async def list_by_status(self, status: str) -> list[RecalculationRequest]:
        return await self._list_where(RecalculationRequestRow.status == status)

    async def update_from(
        self, request: RecalculationRequest, from_status: str,
    ) -> RecalculationRequest:
        return await self.update(
            request,
            RecalculationRequestRow.status == from_status,
            conflict_detail=f"status is no longer '{from_status}'",
        )
