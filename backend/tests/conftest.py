"""
Shared fixtures: a file-backed SQLite database per test, so concurrent
sessions behave like separate connections against one store.
"""

import pytest
from kdp_ads.database import Database


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'kdp_ads_test.db'}").connect()
    await db.init_db()
    yield db
    await db.close()
