import sys
import os
import pathlib
import tempfile
import uuid
import warnings
import pytest
import pytest_asyncio

# Point the app at a throwaway database and a deterministic secret before any
# focus_sync module is imported; config reads the environment at import time.
_TEST_DB = os.path.join(tempfile.gettempdir(), f'focus_sync_test_{os.getpid()}.db')
os.environ.setdefault('DATABASE_URL', f'sqlite+aiosqlite:///{_TEST_DB}')
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-unit-tests')

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except Exception:
    # If SQLAlchemy not available at import, ignore
    pass

# Reduce SQLAlchemy logger verbosity during tests
import logging as _logging
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool', 'sqlmodel'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from httpx import AsyncClient, ASGITransport

from focus_sync.main import app
from focus_sync.db import init_db, async_session
from focus_sync.models import User
from focus_sync.auth import pwd_context


def unique_name(prefix: str = 'u') -> str:
    return f'{prefix}-{uuid.uuid4().hex[:8]}'


async def make_user(password: str = 'p') -> User:
    async with async_session() as sess:
        u = User(username=unique_name('user'), password_hash=pwd_context.hash(password))
        sess.add(u)
        await sess.commit()
        await sess.refresh(u)
        return u


@pytest_asyncio.fixture
async def ensure_db():
    await init_db()


@pytest_asyncio.fixture
async def owner(ensure_db) -> int:
    """A fresh user id per test, so pin and count checks never see rows
    written by other tests."""
    u = await make_user()
    return u.id


@pytest_asyncio.fixture
async def other_owner(ensure_db) -> int:
    u = await make_user()
    return u.id


@pytest_asyncio.fixture
async def client(ensure_db):
    """Authenticated client for a fresh user; ``client.user_id`` is the owner."""
    user = await make_user('testpass')
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.post("/auth/token", json={"username": user.username, "password": "testpass"})
        assert resp.status_code == 200
        token = resp.json()["access_token"]
        ac.headers.update({"Authorization": f"Bearer {token}"})
        ac.user_id = user.id
        yield ac


def pytest_sessionfinish(session, exitstatus):
    """Dispose the async engine and remove the throwaway database."""
    try:
        import asyncio
        from focus_sync import db as app_db

        asyncio.run(app_db.engine.dispose())
    except Exception:
        # best-effort: if disposal fails, don't crash pytest teardown
        pass
    try:
        os.remove(_TEST_DB)
    except OSError:
        pass
