"""Tests for EntryRepository and CalculationSnapshotRepository."""

import pytest
from sqlalchemy import delete
from uuid_extensions import uuid7

from src.db.tables import EntryRow
from src.models.common import SnapshotReason
from src.models.entry import CalculationOutputs, Entry, ValidationIssue
from src.models.errors import ConcurrencyConflict, NotFound
from src.models.workflow import CalculationSnapshot
from src.repositories.entries import CalculationSnapshotRepository, EntryRepository


@pytest.fixture
def repo(db_session):
    return EntryRepository(db_session)


@pytest.fixture
def snapshots(db_session):
    return CalculationSnapshotRepository(db_session)


def _make_entry(**overrides) -> Entry:
    defaults = {
        "cn_code": "72081000",
        "country_of_origin": "China",
        "quantity": 100.0,
        "reporting_period_year": 2026,
    }
    return Entry(**{**defaults, **overrides})


class TestEntryRepository:
    """Keyed reads and revision-guarded writes."""

    @pytest.mark.anyio
    async def test_create_and_get(self, repo: EntryRepository) -> None:
        entry = await repo.create(_make_entry())
        fetched = await repo.get(entry.entry_id)
        assert fetched is not None
        assert fetched.cn_code == "72081000"
        assert fetched.revision == 1
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.anyio
    async def test_get_nonexistent_returns_none(self, repo: EntryRepository) -> None:
        assert await repo.get(uuid7()) is None

    @pytest.mark.anyio
    async def test_require_nonexistent_raises(self, repo: EntryRepository) -> None:
        with pytest.raises(NotFound):
            await repo.require(uuid7())

    @pytest.mark.anyio
    async def test_update_increments_revision(self, repo: EntryRepository) -> None:
        entry = await repo.create(_make_entry())
        updated = await repo.update(entry.model_copy(update={"quantity": 50.0}))
        assert updated.revision == 2
        assert updated.quantity == 50.0

    @pytest.mark.anyio
    async def test_stale_revision_conflicts(self, repo: EntryRepository) -> None:
        entry = await repo.create(_make_entry())
        await repo.update(entry.model_copy(update={"quantity": 50.0}))
        with pytest.raises(ConcurrencyConflict) as exc_info:
            await repo.update(entry.model_copy(update={"quantity": 60.0}))
        assert exc_info.value.retryable is True
        assert (await repo.require(entry.entry_id)).quantity == 50.0

    @pytest.mark.anyio
    async def test_update_missing_raises_not_found(self, repo: EntryRepository) -> None:
        with pytest.raises(NotFound):
            await repo.update(_make_entry())

    @pytest.mark.anyio
    async def test_update_after_concurrent_delete_raises_not_found(
        self, repo: EntryRepository, db_session,
    ) -> None:
        entry = await repo.create(_make_entry())
        # Bulk delete leaves the loaded row in the identity map.
        await db_session.execute(
            delete(EntryRow)
            .where(EntryRow.entry_id == entry.entry_id)
            .execution_options(synchronize_session=False)
        )
        with pytest.raises(NotFound):
            await repo.update(entry.model_copy(update={"quantity": 60.0}))

    @pytest.mark.anyio
    async def test_extra_condition_must_hold(self, repo: EntryRepository) -> None:
        entry = await repo.create(_make_entry())
        with pytest.raises(ConcurrencyConflict):
            await repo.update(entry, EntryRow.cn_code == "76061100")

    @pytest.mark.anyio
    async def test_calculation_write_refused_while_frozen(self, repo: EntryRepository) -> None:
        entry = await repo.create(_make_entry(calculation_frozen=True))
        with pytest.raises(ConcurrencyConflict):
            await repo.update_calculation(entry.model_copy(update={
                "calculation": CalculationOutputs(total_embedded_emissions=1.0),
            }))

    @pytest.mark.anyio
    async def test_nested_values_round_trip(self, repo: EntryRepository) -> None:
        issue = ValidationIssue(
            rule="MATERIALITY", field="total_embedded_emissions", severity="WARNING",
            message="Variance", regulation="C(2025) 8150 Art. 5",
        )
        entry = await repo.create(_make_entry(
            calculation=CalculationOutputs(total_embedded_emissions=137.0),
            validation_warnings=[issue],
        ))
        fetched = await repo.require(entry.entry_id)
        assert fetched.calculation.total_embedded_emissions == 137.0
        assert fetched.validation_warnings == [issue]

    @pytest.mark.anyio
    async def test_list_by_ids(self, repo: EntryRepository) -> None:
        first = await repo.create(_make_entry())
        await repo.create(_make_entry())
        listed = await repo.list_by_ids([first.entry_id])
        assert [e.entry_id for e in listed] == [first.entry_id]
        assert await repo.list_by_ids([]) == []

    @pytest.mark.anyio
    async def test_delete(self, repo: EntryRepository) -> None:
        entry = await repo.create(_make_entry())
        await repo.delete(entry)
        assert await repo.get(entry.entry_id) is None


class TestCalculationSnapshotRepository:
    """Snapshots are appended with a per-entry sequence."""

    @pytest.mark.anyio
    async def test_sequence_starts_at_one(self, snapshots: CalculationSnapshotRepository) -> None:
        assert await snapshots.next_sequence(uuid7()) == 1

    @pytest.mark.anyio
    async def test_append_and_list_in_order(self, snapshots: CalculationSnapshotRepository) -> None:
        entry_id = uuid7()
        for _ in range(3):
            await snapshots.append(CalculationSnapshot(
                entry_id=entry_id,
                sequence=await snapshots.next_sequence(entry_id),
                reason=SnapshotReason.MANUAL_RECALCULATION,
                calculation={"cn_code": "72081000"},
                created_by="analyst",
            ))
        listed = await snapshots.list_for_entry(entry_id)
        assert [s.sequence for s in listed] == [1, 2, 3]
        assert await snapshots.list_for_entry(uuid7()) == []
