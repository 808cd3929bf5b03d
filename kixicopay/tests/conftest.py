import os
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Configure test environment before the package reads it
_TMP_DIR = tempfile.mkdtemp(prefix='kixicopay-tests-')
os.environ.setdefault('DATABASE_URL', f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}")
os.environ.setdefault('CHANGEFEED_BACKEND', 'local')
os.environ.setdefault('JWT_SECRET', 'test-secret')

# Ensure the package root is on sys.path when pytest changes CWD to this tests dir
HERE = Path(__file__).resolve()
PKG_ROOT = HERE.parents[2]
if str(PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(PKG_ROOT))

from kixicopay import core, models  # noqa: E402
from kixicopay.auth import create_access_token  # noqa: E402
from kixicopay.changefeed import LocalChangeFeed  # noqa: E402


@pytest_asyncio.fixture
async def db():
    """Fresh schema for each test."""
    await models.drop_all()
    await models.create_all()
    yield
    await models.drop_all()


@pytest.fixture
def feed(monkeypatch):
    f = LocalChangeFeed()
    monkeypatch.setattr(core, 'CHANGE_FEED', f)
    return f


@pytest_asyncio.fixture
async def client(db, feed):
    from kixicopay.main import app
    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        yield ac


@pytest.fixture
def auth_headers():
    def make(user_id: str):
        return {'Authorization': f"Bearer {create_access_token({'sub': user_id})}"}
    return make
