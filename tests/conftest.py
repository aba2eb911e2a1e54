"""Shared pytest fixtures for the CBAM lifecycle test suite.

Provides:
- db_engine: in-memory SQLite async engine with all tables
- db_session: SAVEPOINT-isolated async session (rolled back at teardown)
- clock: deterministic clock, one second per reading
- ctx: LifecycleContext over db_session with the benchmark calculator
- client: AsyncClient whose requests share ctx
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import Settings
from src.db.session import Base, build_engine
import src.db.tables  # noqa: F401 - register ORM models on Base.metadata
from src.engine.calculation import BenchmarkCalculator
from src.governance.events import RecordingEventBus
from src.lifecycle.context import LifecycleContext, build_context


class SteppingClock:
    """Each reading is one second after the previous one."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine with all tables."""
    eng = build_engine("sqlite+aiosqlite:///:memory:")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Provide a SAVEPOINT-isolated session.

    The outer transaction is never committed — it rolls back at teardown.
    The session joins it through a SAVEPOINT, so service-level savepoints
    nest inside and nothing leaks between tests.
    """
    async with db_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(
            bind=conn,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings() -> Settings:
    return Settings(ADMIN_ACTORS=["admin"], CALCULATION_SERVICE_URL="")


@pytest.fixture
def events() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def ctx(db_session, settings, events, clock) -> LifecycleContext:
    return build_context(
        db_session,
        settings,
        events=events,
        calculation_function=BenchmarkCalculator(),
        clock=clock,
    )


@pytest.fixture
async def client(ctx):
    """AsyncClient with the lifecycle context overridden to use the test session."""
    from src.api.dependencies import get_lifecycle_context
    from src.api.main import app

    async def _override_context():
        return ctx

    app.dependency_overrides[get_lifecycle_context] = _override_context

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Actor": "analyst"},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
