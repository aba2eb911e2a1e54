"""Audit log and verifier repositories."""

from uuid import UUID

from src.db.tables import AuditLogRow, VerifierRow
from src.models.audit import AuditLogEntry, Verifier
from src.repositories.base import TypedRepository


class AuditLogRepository(TypedRepository[AuditLogEntry]):
    """Append-only: insert and read, no update or delete."""

    row_type = AuditLogRow
    model_type = AuditLogEntry
    entity_type = "CBAMAuditLog"

    async def append(self, record: AuditLogEntry) -> AuditLogEntry:
        return await self.create(record)

    async def list_for_entity(self, entity_type: str, entity_id: UUID) -> list[AuditLogEntry]:
        """Chronological trail for one entity."""
        stmt = (
            self._select()
            .where(AuditLogRow.entity_type == entity_type, AuditLogRow.entity_id == entity_id)
            .order_by(AuditLogRow.timestamp, AuditLogRow.audit_id)
        )
        result = await self._session.execute(stmt)
        return [self._to_model(row) for row in result.scalars().all()]


class VerifierRepository(TypedRepository[Verifier]):
    row_type = VerifierRow
    model_type = Verifier
    entity_type = "CBAMVerifier"
