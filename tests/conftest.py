"""
Church Song Navigator - Pytest Configuration & Shared Fixtures

Provides reusable fixtures for:
- A fresh SQLite database per test (tmp_path)
- Running the async repository functions from synchronous tests
- A plain sqlite3 connection for inspecting rows directly
- A fake object store that records uploads instead of calling R2
- TestClient instances, anonymous and logged in as admin
- Sample song snapshots for saving collections
"""

import asyncio
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, List

import pytest

# Must be set before songnav.config is imported anywhere.
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["APP_ENV"] = "test"
for _var in ("R2_BUCKET", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "PUBLIC_BASE_URL"):
    os.environ.pop(_var, None)

from fastapi.testclient import TestClient  # noqa: E402

import songnav.database as database  # noqa: E402
from songnav.config import ADMIN_COOKIE_NAME, ADMIN_TOKEN  # noqa: E402
from songnav.models import SongInput  # noqa: E402

# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def db_path(tmp_path: Path, monkeypatch) -> Path:
    """Point the repository at a fresh, initialised database file."""
    path = tmp_path / "songnav-test.db"
    monkeypatch.setattr(database, "DB_PATH", path)
    database.init_db()
    return path


@contextmanager
def _open_db() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(str(database.DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def open_db():
    """Synchronous connection factory for inspecting whatever DB_PATH points at."""
    return _open_db


@pytest.fixture
def run() -> Iterator[Callable[[Awaitable[Any]], Any]]:
    """
    Drive coroutines to completion from a synchronous test.

    Every call in one test shares a single event loop. aiosqlite answers from
    its worker thread via ``call_soon_threadsafe``, so the loop is given a
    moment to take those last callbacks before it is closed.
    """
    loop = asyncio.new_event_loop()
    try:
        yield loop.run_until_complete
    finally:
        loop.run_until_complete(asyncio.sleep(0.05))
        loop.close()


# ---------------------------------------------------------------------------
# Object store fixtures
# ---------------------------------------------------------------------------


class FakeObjectStore:
    """Records puts; URLs are built the same way as the real store."""

    def __init__(self, public_base_url: str = "https://cdn.test"):
        self.public_base_url = public_base_url
        self.puts: List[Dict[str, Any]] = []

    def put(self, key: str, data: bytes, content_type: str | None = None) -> Dict[str, Any]:
        self.puts.append({"key": key, "data": data, "content_type": content_type})
        return {"key": key}

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


@pytest.fixture
def fake_store(monkeypatch) -> FakeObjectStore:
    """Route uploads to an in-memory store."""
    store = FakeObjectStore()
    monkeypatch.setattr("songnav.services.uploads.get_object_store", lambda: store)
    return store


@pytest.fixture
def no_store(monkeypatch) -> None:
    """Simulate missing object storage configuration."""
    monkeypatch.setattr("songnav.services.uploads.get_object_store", lambda: None)


# ---------------------------------------------------------------------------
# HTTP client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> TestClient:
    """Anonymous client (lifespan not run; the schema guard middleware covers it)."""
    from songnav.main import create_app

    return TestClient(create_app())


@pytest.fixture
def admin_client(client: TestClient) -> TestClient:
    """Client carrying the admin token cookie."""
    client.cookies.set(ADMIN_COOKIE_NAME, ADMIN_TOKEN)
    return client


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_songs() -> List[SongInput]:
    """Three songs: one with audio and two sheets, one hidden, one bare."""
    return [
        SongInput(
            title="奇异恩典",
            audio_url="https://cdn.test/audio/amazing-grace.mp3",
            visible=True,
            sheet_urls=["https://cdn.test/sheets/ag-1.png", "https://cdn.test/sheets/ag-2.png"],
        ),
        SongInput(
            title="主祷文",
            audio_url="",
            visible=False,
            sheet_urls=["https://cdn.test/sheets/lords-prayer.png"],
        ),
        SongInput(title="你真伟大", audio_url="", visible=True, sheet_urls=[]),
    ]
