"""Entry and calculation snapshot repositories."""

from uuid import UUID

from sqlalchemy import func, select

from src.db.tables import CalculationSnapshotRow, EntryRow
from src.models.common import EntityType
from src.models.entry import Entry
from src.models.workflow import CalculationSnapshot
from src.repositories.base import TypedRepository, VersionedRepository


class EntryRepository(VersionedRepository[Entry]):
    row_type = EntryRow
    model_type = Entry
    entity_type = EntityType.ENTRY

    async def list_by_ids(self, entry_ids: list[UUID]) -> list[Entry]:
        if not entry_ids:
            return []
        return await self._list_where(EntryRow.entry_id.in_(entry_ids))

    async def list_by_reporting_year(self, year: int) -> list[Entry]:
        return await self._list_where(EntryRow.reporting_period_year == year)

    async def update_calculation(self, entry: Entry) -> Entry:
        """Persist a calculation. Refused while the entry is frozen."""
        return await self.update(
            entry,
            EntryRow.calculation_frozen.is_(False),
            conflict_detail="entry changed or calculation is frozen",
        )

    async def update_under_change_request(self, entry: Entry, request_id: UUID) -> Entry:
        """Write that only applies while ``request_id`` holds the freeze."""
        return await self.update(
            entry,
            EntryRow.calculation_frozen.is_(True),
            EntryRow.open_change_request_id == request_id,
            conflict_detail=f"entry is no longer frozen by change request {request_id}",
        )

    async def delete(self, entry: Entry) -> None:
        row = await self._session.get(EntryRow, entry.entry_id)
        if row is not None:
            await self._session.delete(row)
            await self._session.flush()


class CalculationSnapshotRepository(TypedRepository[CalculationSnapshot]):
    """Append-only: insert and read, no update or delete."""

    row_type = CalculationSnapshotRow
    model_type = CalculationSnapshot
    entity_type = "CBAMCalculationSnapshot"

    async def next_sequence(self, entry_id: UUID) -> int:
        result = await self._session.execute(
            select(func.max(CalculationSnapshotRow.sequence)).where(
                CalculationSnapshotRow.entry_id == entry_id,
            )
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def append(self, snapshot: CalculationSnapshot) -> CalculationSnapshot:
        return await self.create(snapshot)

    async def list_for_entry(self, entry_id: UUID) -> list[CalculationSnapshot]:
        return await self._list_where(
            CalculationSnapshotRow.entry_id == entry_id,
            order_by=CalculationSnapshotRow.sequence,
        )
