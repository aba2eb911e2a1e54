"""Audit trail recorder — append-only log of every state-changing action.

Two failure modes, chosen by the AUDIT_MODE setting:

- best_effort: the insert runs in a savepoint. A failure is logged on the
  operational logger, the savepoint is rolled back, ``log`` returns False
  and the business operation carries on.
- transactional: a failure raises AuditWriteFailure and the unit of work
  is rolled back by the session dependency.
"""

import logging
from typing import Any
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy.exc import SQLAlchemyError

from src.config.settings import AuditMode
from src.models.audit import AuditLogEntry
from src.models.common import Clock, utc_now
from src.models.errors import AuditWriteFailure
from src.repositories.ledger import Ledger

logger = logging.getLogger(__name__)


class AuditTrailRecorder:
    """Writes and reads AuditLogEntry records through the ledger."""

    def __init__(
        self,
        ledger: Ledger,
        *,
        mode: AuditMode = AuditMode.BEST_EFFORT,
        clock: Clock = utc_now,
    ) -> None:
        self._ledger = ledger
        self._mode = mode
        self._clock = clock

    @property
    def mode(self) -> AuditMode:
        return self._mode

    async def log(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor: str,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """Append one audit record. Returns False only in best-effort mode on failure."""
        if self._mode == AuditMode.TRANSACTIONAL:
            try:
                await self._ledger.audit_log.append(
                    self._record(entity_type, entity_id, action, actor, details)
                )
            except (SQLAlchemyError, ValueError) as exc:
                raise AuditWriteFailure(
                    f"Audit write failed for {entity_type} {entity_id} ({action}): {exc}"
                ) from exc
            return True

        try:
            async with self._ledger.savepoint():
                await self._ledger.audit_log.append(
                    self._record(entity_type, entity_id, action, actor, details)
                )
        except (SQLAlchemyError, ValueError):
            logger.exception(
                "Audit write failed for %s %s (%s) by %s",
                entity_type, entity_id, action, actor,
            )
            return False
        return True

    async def get_trail(self, entity_type: str, entity_id: UUID) -> list[AuditLogEntry]:
        """Chronological audit trail for one entity."""
        return await self._ledger.audit_log.list_for_entity(entity_type, entity_id)

    def _record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor: str,
        details: dict[str, Any] | None,
    ) -> AuditLogEntry:
        return AuditLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor=actor,
            timestamp=self._clock(),
            details=to_jsonable_python(details or {}),
        )
