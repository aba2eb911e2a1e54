"""Tests for AuditTrailRecorder in both audit modes."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError
from uuid_extensions import uuid7

from src.config.settings import AuditMode
from src.governance.audit_trail import AuditTrailRecorder
from src.models.common import EntityType
from src.models.errors import AuditWriteFailure
from src.repositories.ledger import Ledger

_T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _ticking_clock():
    ticks = iter(range(1000))
    return lambda: _T0 + timedelta(seconds=next(ticks))


@pytest.fixture
def ledger(db_session):
    return Ledger(db_session)


def _failing_append(*_args, **_kwargs):
    raise SQLAlchemyError("audit table unavailable")


class TestAuditTrailRecorder:
    """Appends records and reads them back chronologically."""

    @pytest.mark.anyio
    async def test_log_and_trail(self, ledger: Ledger) -> None:
        recorder = AuditTrailRecorder(ledger, clock=_ticking_clock())
        entity_id = uuid7()
        assert await recorder.log(EntityType.ENTRY, entity_id, "created", "analyst", {"q": 1})
        assert await recorder.log(EntityType.ENTRY, entity_id, "updated", "analyst")
        await recorder.log(EntityType.ENTRY, uuid7(), "created", "analyst")

        trail = await recorder.get_trail(EntityType.ENTRY, entity_id)
        assert [a.action for a in trail] == ["created", "updated"]
        assert trail[0].details == {"q": 1}
        assert trail[0].timestamp < trail[1].timestamp

    @pytest.mark.anyio
    async def test_details_are_json_safe(self, ledger: Ledger) -> None:
        recorder = AuditTrailRecorder(ledger)
        entity_id = uuid7()
        other = uuid7()
        await recorder.log(EntityType.ENTRY, entity_id, "linked", "analyst", {"other": other})
        trail = await recorder.get_trail(EntityType.ENTRY, entity_id)
        assert trail[0].details == {"other": str(other)}


class TestAuditFailureModes:
    """best_effort continues, transactional aborts."""

    @pytest.mark.anyio
    async def test_best_effort_returns_false(self, ledger: Ledger, monkeypatch) -> None:
        recorder = AuditTrailRecorder(ledger, mode=AuditMode.BEST_EFFORT)
        monkeypatch.setattr(ledger.audit_log, "append", _failing_append)
        assert await recorder.log(EntityType.ENTRY, uuid7(), "created", "analyst") is False

    @pytest.mark.anyio
    async def test_transactional_raises(self, ledger: Ledger, monkeypatch) -> None:
        recorder = AuditTrailRecorder(ledger, mode=AuditMode.TRANSACTIONAL)
        monkeypatch.setattr(ledger.audit_log, "append", _failing_append)
        with pytest.raises(AuditWriteFailure):
            await recorder.log(EntityType.ENTRY, uuid7(), "created", "analyst")
