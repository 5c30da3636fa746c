import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LEDGER_AUDIT_ENABLED", "false")

from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.database import Base, create_session_factory
from app.models import Client, Court, CourtGroup


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def facility(session_factory):
    """Two court groups, four courts (one ungrouped) and two clients."""
    async with session_factory() as session:
        indoor = CourtGroup(name="Indoor")
        outdoor = CourtGroup(name="Outdoor")
        session.add_all([indoor, outdoor])
        await session.flush()

        court_a = Court(name="Court A", group_id=indoor.id)
        court_b = Court(name="Court B", group_id=indoor.id)
        court_c = Court(name="Court C", group_id=outdoor.id)
        wall = Court(name="Practice Wall", group_id=None)
        alice = Client(name="Alice", client_code="C-001", phone="555-0101")
        bob = Client(name="Bob", client_code="C-002")
        session.add_all([court_a, court_b, court_c, wall, alice, bob])
        await session.commit()

        return SimpleNamespace(
            indoor=indoor.id,
            outdoor=outdoor.id,
            court_a=court_a.id,
            court_b=court_b.id,
            court_c=court_c.id,
            wall=wall.id,
            alice=alice.id,
            bob=bob.id,
        )

