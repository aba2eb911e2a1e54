"""Base repository for versioned CBAM records.

Repositories call add()/flush()/execute() only — never commit().
The session dependency handles commit/rollback (Unit-of-Work).

Every write to a versioned record is a conditional UPDATE keyed on the
primary key and the revision the caller last read. Zero affected rows
raises NotFound (row gone) or ConcurrencyConflict (row changed).
"""

from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import ColumnElement, Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import JSON

from src.db.session import Base
from src.models.common import CBAMBase, ensure_utc
from src.models.errors import ConcurrencyConflict, NotFound

M = TypeVar("M", bound=CBAMBase)


class TypedRepository(Generic[M]):
    """Typed repository mapping one table to one Pydantic model."""

    row_type: type[Base]
    model_type: type[M]
    entity_type: str

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ----- mapping -----

    @property
    def _pk(self):
        return self.row_type.__mapper__.primary_key[0]

    def _column_keys(self) -> set[str]:
        return {c.key for c in self.row_type.__table__.columns}

    def _to_model(self, row: Base) -> M:
        data: dict[str, Any] = {}
        for key in self._column_keys():
            value = getattr(row, key)
            data[key] = ensure_utc(value) if isinstance(value, datetime) else value
        return self.model_type.model_validate(data)

    def _to_values(self, model: M) -> dict[str, Any]:
        columns = self.row_type.__table__.columns
        values = model.model_dump(include={c.key for c in columns})
        json_keys = {c.key for c in columns if isinstance(c.type, JSON)}
        if json_keys:
            values.update(model.model_dump(mode="json", include=json_keys))
        return values

    def _select(self) -> Select:
        return select(self.row_type).execution_options(populate_existing=True)

    # ----- reads -----

    async def get(self, entity_id: UUID) -> M | None:
        row = await self._session.get(self.row_type, entity_id, populate_existing=True)
        return self._to_model(row) if row is not None else None

    async def require(self, entity_id: UUID) -> M:
        """Keyed read that raises NotFound instead of returning None."""
        model = await self.get(entity_id)
        if model is None:
            raise NotFound(self.entity_type, entity_id)
        return model

    async def list_all(self) -> list[M]:
        result = await self._session.execute(self._select().order_by(self._pk))
        return [self._to_model(row) for row in result.scalars().all()]

    async def _list_where(self, *conditions: ColumnElement[bool], order_by=None) -> list[M]:
        stmt = self._select().where(*conditions).order_by(
            order_by if order_by is not None else self._pk
        )
        result = await self._session.execute(stmt)
        return [self._to_model(row) for row in result.scalars().all()]

    async def create(self, model: M) -> M:
        self._session.add(self.row_type(**self._to_values(model)))
        await self._session.flush()
        return model


class VersionedRepository(TypedRepository[M]):
    """Repository for records carrying a ``revision`` concurrency token."""

    async def update(
        self,
        model: M,
        *conditions: ColumnElement[bool],
        expected_revision: int | None = None,
        conflict_detail: str = "",
    ) -> M:
        """Write every column of ``model`` if the stored revision still matches.

        ``conditions`` are extra predicates (status, freeze flags) that
        must also hold for the write to apply.
        """
        expected = model.revision if expected_revision is None else expected_revision
        entity_id = getattr(model, self._pk.key)
        values = self._to_values(model)
        values.pop(self._pk.key)
        values["revision"] = expected + 1

        stmt = (
            update(self.row_type)
            .where(self._pk == entity_id, self.row_type.revision == expected, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            if await self._session.get(self.row_type, entity_id, populate_existing=True) is None:
                raise NotFound(self.entity_type, entity_id)
            raise ConcurrencyConflict(
                self.entity_type, entity_id, expected, detail=conflict_detail,
            )
        return await self.require(entity_id)
