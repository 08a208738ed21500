"""
Church Song Navigator - SQLite Database

Embedded SQLite store for the church configuration and the weekly song
collections.  Uses aiosqlite for async operations within FastAPI and plain
sqlite3 for the start-up initialisation.

Collections own songs, songs own sheet-music images; both relationships are
``ON DELETE CASCADE`` so deleting a collection removes everything under it.
Foreign keys are switched on for every connection because SQLite leaves
them off by default.
"""

import sqlite3
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite
from loguru import logger

from songnav.config import (
    DB_PATH,
    DEFAULT_ADMIN_PASSWORD,
    DEFAULT_CHURCH_NAME,
    MAX_PER_PAGE,
)
from songnav.models import SongInput

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS church_config (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    church_name TEXT NOT NULL,
    admin_password TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS song_collections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    collection_name TEXT NOT NULL,
    collection_week_label TEXT NOT NULL UNIQUE,
    publish_date TEXT DEFAULT CURRENT_DATE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS songs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    collection_id INTEGER NOT NULL,
    title TEXT NOT NULL,
    audio_url TEXT,
    visible BOOLEAN DEFAULT TRUE,
    sort_order INTEGER DEFAULT 0,
    FOREIGN KEY (collection_id) REFERENCES song_collections(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS sheet_music (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER NOT NULL,
    image_url TEXT NOT NULL,
    sort_order INTEGER DEFAULT 0,
    FOREIGN KEY (song_id) REFERENCES songs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_collections_created ON song_collections(created_at);
CREATE INDEX IF NOT EXISTS idx_songs_collection ON songs(collection_id, sort_order);
CREATE INDEX IF NOT EXISTS idx_sheets_song ON sheet_music(song_id, sort_order);
"""

SEED_CONFIG_SQL = "INSERT INTO church_config (church_name, admin_password) VALUES (?, ?)"

# Returned by get_config() when no row exists or the read fails.
DEFAULT_CONFIG: Dict[str, Any] = {
    "church_name": DEFAULT_CHURCH_NAME,
    "admin_password": DEFAULT_ADMIN_PASSWORD,
}

# Ids per DELETE statement in delete_collections(); SQLite caps bound parameters.
DELETE_BATCH_SIZE = 500


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class CollectionNotFoundError(LookupError):
    """Raised when a save targets a collection id that does not exist."""


class DuplicateWeekLabelError(ValueError):
    """Raised when renaming a collection onto another collection's week label."""


# ---------------------------------------------------------------------------
# Migration helpers
# ---------------------------------------------------------------------------
_MIGRATIONS = [
    # Migration 1: collections created before the week label existed were
    #              keyed by name only.
    {
        "check": "SELECT COUNT(*) FROM pragma_table_info('song_collections') WHERE name='collection_week_label'",
        "apply": [
            "ALTER TABLE song_collections ADD COLUMN collection_week_label TEXT",
            "UPDATE song_collections SET collection_week_label = collection_name WHERE collection_week_label IS NULL",
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_collections_week_label ON song_collections(collection_week_label)",
        ],
        "description": "Add collection_week_label column",
    },
]


def _run_migrations(conn: sqlite3.Connection) -> None:
    """Run any pending schema migrations."""
    for migration in _MIGRATIONS:
        cursor = conn.execute(str(migration["check"]))
        (count,) = cursor.fetchone()
        if count == 0:
            logger.info("🔄 Running migration: {}", migration["description"])
            for stmt in migration["apply"]:
                conn.execute(stmt)
            conn.commit()
            logger.success("✅ Migration applied: {}", migration["description"])


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------
def init_db() -> None:
    """Initialize the SQLite database, create tables, run migrations and seed config."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    try:
        with sqlite3.connect(str(DB_PATH)) as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
            _run_migrations(conn)
            (count,) = conn.execute("SELECT COUNT(*) FROM church_config").fetchone()
            if count == 0:
                conn.execute(SEED_CONFIG_SQL, (DEFAULT_CHURCH_NAME, DEFAULT_ADMIN_PASSWORD))
                conn.commit()
                logger.info("⛪ Seeded default church config ({})", DEFAULT_CHURCH_NAME)
        logger.success(f"✅ Database initialized at {DB_PATH}")
    except Exception as e:
        logger.critical(f"❌ Failed to initialize database: {e}")
        raise


async def ensure_schema() -> None:
    """Idempotent create-if-absent + default-config seeding, run before every request."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    async with get_async_connection() as db:
        await db.executescript(SCHEMA_SQL)
        cursor = await db.execute("SELECT COUNT(*) AS cnt FROM church_config")
        row = await cursor.fetchone()
        if row["cnt"] == 0:
            await db.execute(SEED_CONFIG_SQL, (DEFAULT_CHURCH_NAME, DEFAULT_ADMIN_PASSWORD))
            logger.info("⛪ Seeded default church config ({})", DEFAULT_CHURCH_NAME)
        await db.commit()


# ---------------------------------------------------------------------------
# Async context manager (for use in FastAPI routes)
# ---------------------------------------------------------------------------
@asynccontextmanager
async def get_async_connection():
    """Async context manager for an aiosqlite connection with row factory."""
    db = await aiosqlite.connect(str(DB_PATH))
    db.row_factory = aiosqlite.Row
    try:
        await db.execute("PRAGMA foreign_keys = ON")
        yield db
    finally:
        await db.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def row_to_dict(row) -> Dict[str, Any]:
    """Convert a database row to a plain dictionary."""
    if row is None:
        return {}
    return dict(row)


def _now() -> str:
    # Microseconds keep back-to-back saves in a stable created_at order.
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")


def _today() -> str:
    return date.today().isoformat()


# ---------------------------------------------------------------------------
# Church config
# ---------------------------------------------------------------------------
async def get_config() -> Dict[str, Any]:
    """
    Return the most recently created config row.

    Falls back to the built-in defaults when the table is empty or the
    read fails; never raises.
    """
    try:
        async with get_async_connection() as db:
            cursor = await db.execute(
                "SELECT * FROM church_config ORDER BY id DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        if row:
            return row_to_dict(row)
    except Exception as e:
        logger.warning("⚠️ Could not read church config, using defaults: {}", e)
    return dict(DEFAULT_CONFIG)


async def _update_latest_config(column: str, value: str) -> bool:
    async with get_async_connection() as db:
        cursor = await db.execute(
            f"""
            UPDATE church_config
            SET {column} = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = (SELECT id FROM church_config ORDER BY id DESC LIMIT 1)
            """,
            (value,),
        )
        await db.commit()
        return cursor.rowcount > 0


async def set_church_name(name: str) -> bool:
    """Rename the church on the current config row. Returns True if a row changed."""
    updated = await _update_latest_config("church_name", name)
    if updated:
        logger.info("⛪ Church name set to '{}'", name)
    else:
        logger.warning("⚠️ No church config row to rename")
    return updated


async def set_password(new_password: str) -> bool:
    """Replace the admin password on the current config row."""
    updated = await _update_latest_config("admin_password", new_password)
    if updated:
        logger.info("🔑 Admin password changed")
    else:
        logger.warning("⚠️ No church config row to update password on")
    return updated


# ---------------------------------------------------------------------------
# Collections (read side)
# ---------------------------------------------------------------------------
async def _load_songs(db: aiosqlite.Connection, collection_id: int) -> List[Dict[str, Any]]:
    """Fetch a collection's songs in sort order, each with its sheets in sort order."""
    cursor = await db.execute(
        "SELECT * FROM songs WHERE collection_id = ? ORDER BY sort_order, id",
        (collection_id,),
    )
    songs = [row_to_dict(r) for r in await cursor.fetchall()]

    for song in songs:
        song["visible"] = bool(song.get("visible"))
        cursor = await db.execute(
            "SELECT * FROM sheet_music WHERE song_id = ? ORDER BY sort_order, id",
            (song["id"],),
        )
        song["sheets"] = [row_to_dict(r) for r in await cursor.fetchall()]

    return songs


async def list_collections(
    limit: Optional[int] = None,
    with_songs: bool = True,
) -> List[Dict[str, Any]]:
    """Return collections newest first, optionally capped, with nested songs/sheets."""
    sql = "SELECT * FROM song_collections ORDER BY created_at DESC, id DESC"
    params: tuple = ()
    if limit:
        sql += " LIMIT ?"
        params = (limit,)

    async with get_async_connection() as db:
        cursor = await db.execute(sql, params)
        collections = [row_to_dict(r) for r in await cursor.fetchall()]
        if with_songs:
            for collection in collections:
                collection["songs"] = await _load_songs(db, collection["id"])
        return collections


async def get_collection(collection_id: int) -> Optional[Dict[str, Any]]:
    """Fetch one collection with its songs and sheets, or None if absent."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            "SELECT * FROM song_collections WHERE id = ?", (collection_id,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        collection = row_to_dict(row)
        collection["songs"] = await _load_songs(db, collection_id)
        return collection


async def count_collections() -> int:
    """Return the total number of collections."""
    async with get_async_connection() as db:
        cursor = await db.execute("SELECT COUNT(*) AS cnt FROM song_collections")
        row = await cursor.fetchone()
        return row["cnt"] if row else 0


async def list_collections_page(page: int = 1, per_page: int = 10) -> Dict[str, Any]:
    """
    One page of the collection history (newest first) plus the true total.

    ``page`` and ``per_page`` are clamped to at least 1; ``per_page`` is
    also capped at ``MAX_PER_PAGE``.  Rows carry a ``song_count`` instead of
    the nested songs.
    """
    page = max(1, int(page))
    per_page = min(max(1, int(per_page)), MAX_PER_PAGE)
    offset = (page - 1) * per_page

    async with get_async_connection() as db:
        cursor = await db.execute("SELECT COUNT(*) AS cnt FROM song_collections")
        total = (await cursor.fetchone())["cnt"]

        cursor = await db.execute(
            """
            SELECT c.id, c.collection_name, c.collection_week_label,
                   c.publish_date, c.created_at,
                   (SELECT COUNT(*) FROM songs s WHERE s.collection_id = c.id) AS song_count
            FROM song_collections c
            ORDER BY c.created_at DESC, c.id DESC
            LIMIT ? OFFSET ?
            """,
            (per_page, offset),
        )
        rows = [row_to_dict(r) for r in await cursor.fetchall()]

    return {
        "collections": rows,
        "total": total,
        "page": page,
        "per_page": per_page,
    }


# ---------------------------------------------------------------------------
# Collections (write side)
# ---------------------------------------------------------------------------
async def save_collection(
    week_label: str,
    songs: Iterable[SongInput],
    collection_id: Optional[int] = None,
    church_name: Optional[str] = None,
) -> int:
    """
    Create or replace a weekly collection from a full snapshot.

    * ``church_name`` given (non-blank): the current config row is renamed
      as part of the same transaction.
    * ``collection_id`` given: that row's label, name, publish date and
      created time are overwritten.
    * otherwise the row with the same week label is reused (its publish date
      and created time refreshed so it sorts as most recent) or a new row is
      inserted.

    Every existing song under the resolved id is then deleted (sheets go by
    cascade) and the submitted songs are inserted in order, each with its
    sheet URLs in order.  Songs with a blank title and blank sheet URLs are
    skipped.  The whole sequence runs in one transaction: on any failure
    neither the config nor the collection changes.

    Returns the resolved collection id.
    """
    week_label = (week_label or "").strip()
    if not week_label:
        raise ValueError("week_label must not be empty")
    church_name = (church_name or "").strip()

    now = _now()
    today = _today()

    async with get_async_connection() as db:
        try:
            if church_name:
                await db.execute(
                    """
                    UPDATE church_config
                    SET church_name = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE id = (SELECT id FROM church_config ORDER BY id DESC LIMIT 1)
                    """,
                    (church_name,),
                )

            if collection_id is not None:
                cursor = await db.execute(
                    "SELECT id FROM song_collections WHERE id = ?", (collection_id,)
                )
                if await cursor.fetchone() is None:
                    raise CollectionNotFoundError(collection_id)

                cursor = await db.execute(
                    "SELECT id FROM song_collections WHERE collection_week_label = ? AND id != ?",
                    (week_label, collection_id),
                )
                if await cursor.fetchone() is not None:
                    raise DuplicateWeekLabelError(week_label)

                await db.execute(
                    """
                    UPDATE song_collections
                    SET collection_name = ?, collection_week_label = ?,
                        publish_date = ?, created_at = ?
                    WHERE id = ?
                    """,
                    (week_label, week_label, today, now, collection_id),
                )
                resolved_id = collection_id
            else:
                cursor = await db.execute(
                    "SELECT id FROM song_collections WHERE collection_week_label = ?",
                    (week_label,),
                )
                existing = await cursor.fetchone()
                if existing:
                    resolved_id = existing["id"]
                    await db.execute(
                        """
                        UPDATE song_collections
                        SET collection_name = ?, publish_date = ?, created_at = ?
                        WHERE id = ?
                        """,
                        (week_label, today, now, resolved_id),
                    )
                else:
                    cursor = await db.execute(
                        """
                        INSERT INTO song_collections
                            (collection_name, collection_week_label, publish_date, created_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (week_label, week_label, today, now),
                    )
                    resolved_id = cursor.lastrowid

            await db.execute("DELETE FROM songs WHERE collection_id = ?", (resolved_id,))

            inserted = 0
            for position, song in enumerate(songs):
                title = (song.title or "").strip()
                if not title:
                    continue
                cursor = await db.execute(
                    """
                    INSERT INTO songs (collection_id, title, audio_url, visible, sort_order)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        resolved_id,
                        title,
                        (song.audio_url or "").strip(),
                        1 if song.visible else 0,
                        position,
                    ),
                )
                song_id = cursor.lastrowid
                inserted += 1

                for sheet_position, url in enumerate(song.sheet_urls):
                    url = (url or "").strip()
                    if not url:
                        continue
                    await db.execute(
                        "INSERT INTO sheet_music (song_id, image_url, sort_order) VALUES (?, ?, ?)",
                        (song_id, url, sheet_position),
                    )

            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.success(
        "✅ Collection saved (id={}): {} with {} song(s)", resolved_id, week_label, inserted
    )
    return resolved_id


async def delete_collection(collection_id: int) -> bool:
    """Delete a collection (songs and sheets cascade). Returns True if a row was deleted."""
    async with get_async_connection() as db:
        cursor = await db.execute(
            "DELETE FROM song_collections WHERE id = ?", (collection_id,)
        )
        await db.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"🗑️ Collection id={collection_id} deleted")
        else:
            logger.warning(f"⚠️ Collection id={collection_id} not found for deletion")
        return deleted


async def delete_collections(collection_ids: List[int]) -> int:
    """Delete several collections at once. Returns the number of rows removed."""
    if not collection_ids:
        return 0

    ids = list(collection_ids)
    deleted = 0
    async with get_async_connection() as db:
        try:
            # Stay under SQLite's bound-parameter limit.
            for start in range(0, len(ids), DELETE_BATCH_SIZE):
                chunk = ids[start : start + DELETE_BATCH_SIZE]
                placeholders = ", ".join("?" for _ in chunk)
                cursor = await db.execute(
                    f"DELETE FROM song_collections WHERE id IN ({placeholders})",
                    chunk,
                )
                deleted += cursor.rowcount
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    if deleted:
        logger.info("🗑️ Deleted {} of {} requested collection(s)", deleted, len(ids))
    else:
        logger.warning("⚠️ None of the {} requested collections exist", len(ids))
    return deleted
