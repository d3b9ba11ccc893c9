"""Shared fixtures."""
from typing import Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pinger import models  # noqa: F401
from pinger.database import Base, create_engine_for
from pinger.schemas import Endpoint
from pinger.services import Storage


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", busy_timeout=0.2)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def storage(session_factory) -> Storage:
    return Storage(session_factory)


@pytest.fixture
def make_endpoint() -> Callable[..., Endpoint]:
    def make(**overrides) -> Endpoint:
        values = {
            "id": 1,
            "domain": "http://ok.test/",
            "code_ok": 200,
            "timeout": 1.0,
            "interval": 5.0,
        }
        values.update(overrides)
        return Endpoint(**values)

    return make
