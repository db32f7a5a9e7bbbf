"""
SQLite storage for listings, their image side table, and ingestion run summaries.
All store writes during ingestion go through the reconciler; the content audit
uses the generic text-column scan/update helpers.
"""

import json
import logging
import re
import sqlite3
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS listings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL CHECK (length(trim(title)) > 0),
    slug TEXT NOT NULL,
    property_type TEXT NOT NULL DEFAULT 'apartment',
    neighborhood TEXT NOT NULL DEFAULT 'center',
    price_amount INTEGER NOT NULL CHECK (price_amount >= 0),
    size_sqm INTEGER NOT NULL DEFAULT 0,
    room_count INTEGER NOT NULL DEFAULT 0,
    images TEXT NOT NULL DEFAULT '[]',
    description_short TEXT,
    description_long TEXT,
    source_url TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_listings_slug
ON listings (slug);

CREATE TABLE IF NOT EXISTS listing_images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    listing_id INTEGER NOT NULL REFERENCES listings (id),
    url TEXT NOT NULL,
    position INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_listing_images_url
ON listing_images (listing_id, url);

CREATE TABLE IF NOT EXISTS ingestion_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    success INTEGER NOT NULL,
    summary TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


DEFAULT_DB_PATH: str | Path = "data/listings.db"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ---------- errors ----------


class StoreError(RuntimeError):
    """Base class for store failures."""


class SlugConflictError(StoreError):
    """Insert rejected by the unique slug index."""


class ListingInsertError(StoreError):
    """One row could not be inserted; other rows are unaffected."""


class StoreUnavailableError(StoreError):
    """The database cannot be opened, read or written at all."""


class SideWriteResult(str, Enum):
    """Outcome of a best-effort write to an optional side table."""

    APPLIED = "applied"
    SKIPPED_MISSING_DEPENDENCY = "skipped-missing-dependency"
    FAILED = "failed"


# ---------- connection / schema ----------


def _get_conn(db_path: str | Path):
    path = Path(db_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(str(path))
    except (OSError, sqlite3.Error) as e:
        raise StoreUnavailableError(f"Cannot open database {path}: {e}") from e


def get_connection(db_path: str | Path = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a connection for multiple operations. Caller must close/commit."""
    return _get_conn(db_path)


def _migrate_listings_add_source_url(conn: sqlite3.Connection) -> None:
    """Add source_url column if missing (migration for DBs created before it existed)."""
    cur = conn.execute("SELECT name FROM pragma_table_info('listings') WHERE name='source_url'")
    if cur.fetchone() is None:
        conn.execute("ALTER TABLE listings ADD COLUMN source_url TEXT")
        conn.commit()


def init_db(db_path: str | Path = DEFAULT_DB_PATH) -> None:
    """Create DB file and all tables (listings, listing_images, ingestion_runs) if they don't exist."""
    conn = _get_conn(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
        _migrate_listings_add_source_url(conn)
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Cannot initialize schema: {e}") from e
    finally:
        conn.close()


def get_table_names(conn: sqlite3.Connection) -> list[str]:
    """Return list of table names in the database."""
    cur = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    )
    return [row[0] for row in cur.fetchall()]


def get_table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    """Return column names for a table. Caller provides connection."""
    cur = conn.execute(f"PRAGMA table_info([{table}])")
    return [row[1] for row in cur.fetchall()]


def _check_column(conn: sqlite3.Connection, table: str, column: str) -> None:
    """Raise ValueError unless table.column is a real column (identifiers go into SQL text)."""
    if not _IDENTIFIER_RE.match(table) or not _IDENTIFIER_RE.match(column):
        raise ValueError(f"Invalid identifier: {table}.{column}")
    try:
        columns = get_table_columns(conn, table)
    except sqlite3.Error as e:
        raise StoreUnavailableError(str(e)) from e
    if column not in columns:
        raise ValueError(f"Unknown column: {table}.{column}")


# ---------- listings ----------


def get_existing_keys(conn: sqlite3.Connection) -> tuple[set[str], set[str]]:
    """Return (titles, slugs) of all stored listings, for deduplication."""
    try:
        cur = conn.execute("SELECT title, slug FROM listings")
        rows = cur.fetchall()
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Cannot read existing listings: {e}") from e
    return {r[0] for r in rows}, {r[1] for r in rows}


def insert_listing(conn: sqlite3.Connection, row: dict) -> int:
    """
    Insert one listing and commit. Returns the new row id.
    Raises SlugConflictError on a duplicate slug, ListingInsertError for other
    row-level failures, StoreUnavailableError when the database is unusable.
    """
    try:
        cur = conn.execute(
            """
            INSERT INTO listings
            (title, slug, property_type, neighborhood, price_amount, size_sqm, room_count,
             images, description_short, description_long, source_url)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                row.get("title"),
                row.get("slug"),
                row.get("property_type"),
                row.get("neighborhood"),
                row.get("price_amount"),
                row.get("size_sqm"),
                row.get("room_count"),
                json.dumps(row.get("images") or [], ensure_ascii=False),
                row.get("description_short"),
                row.get("description_long"),
                row.get("source_url"),
            ),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        if "listings.slug" in str(e):
            raise SlugConflictError(f"Slug already exists: {row.get('slug')}") from e
        raise ListingInsertError(str(e)) from e
    except (sqlite3.InterfaceError, sqlite3.ProgrammingError) as e:
        conn.rollback()
        raise ListingInsertError(str(e)) from e
    except sqlite3.Error as e:
        raise StoreUnavailableError(str(e)) from e
    return cur.lastrowid


def insert_listing_images(conn: sqlite3.Connection, listing_id: int, urls: list[str]) -> SideWriteResult:
    """Best-effort: mirror a listing's images into listing_images. Never raises."""
    try:
        if "listing_images" not in get_table_names(conn):
            return SideWriteResult.SKIPPED_MISSING_DEPENDENCY
        conn.executemany(
            "INSERT OR IGNORE INTO listing_images (listing_id, url, position) VALUES (?, ?, ?)",
            [(listing_id, url, i) for i, url in enumerate(urls)],
        )
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        logger.warning("listing_images write failed for listing %s: %s", listing_id, e)
        return SideWriteResult.FAILED
    return SideWriteResult.APPLIED


def get_listings(conn: sqlite3.Connection, limit: int | None = None) -> list[dict]:
    """Return listings, latest first."""
    sql = """
    SELECT id, title, slug, property_type, neighborhood, price_amount, size_sqm, room_count,
           images, description_short, description_long, source_url
    FROM listings
    ORDER BY created_at DESC, id DESC
    """
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    cur = conn.execute(sql)
    keys = [d[0] for d in cur.description]
    out = []
    for r in cur.fetchall():
        item = dict(zip(keys, r))
        item["images"] = json.loads(item["images"] or "[]")
        out.append(item)
    return out


def get_listing_slugs(
    conn: sqlite3.Connection,
    limit: int | None = None,
    after_id: int = 0,
) -> list[tuple[int, str, str]]:
    """Return (id, title, slug) for listings with id > after_id, oldest first."""
    sql = "SELECT id, title, slug FROM listings WHERE id > ? ORDER BY id"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    try:
        return [tuple(r) for r in conn.execute(sql, (after_id,)).fetchall()]
    except sqlite3.Error as e:
        raise StoreUnavailableError(str(e)) from e


def update_listing_slug(conn: sqlite3.Connection, listing_id: int, slug: str) -> None:
    """Set a listing's slug and commit. Raises SlugConflictError if taken."""
    try:
        conn.execute("UPDATE listings SET slug = ? WHERE id = ?", (slug, listing_id))
        conn.commit()
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise SlugConflictError(f"Slug already exists: {slug}") from e
    except sqlite3.Error as e:
        raise StoreUnavailableError(str(e)) from e


# ---------- generic text columns (content audit) ----------


def fetch_text_column(
    conn: sqlite3.Connection,
    table: str,
    column: str,
    limit: int | None = None,
    after_rowid: int = 0,
) -> list[tuple[int, str | None]]:
    """Return (rowid, value) for one text column with rowid > after_rowid, in rowid order."""
    _check_column(conn, table, column)
    sql = f"SELECT rowid, [{column}] FROM [{table}] WHERE rowid > ? ORDER BY rowid"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    try:
        return [(r[0], r[1]) for r in conn.execute(sql, (after_rowid,)).fetchall()]
    except sqlite3.Error as e:
        raise StoreUnavailableError(str(e)) from e


def update_text_column(conn: sqlite3.Connection, table: str, column: str, row_id: int, value: str) -> None:
    """Write one text cell and commit."""
    _check_column(conn, table, column)
    try:
        conn.execute(f"UPDATE [{table}] SET [{column}] = ? WHERE rowid = ?", (value, row_id))
        conn.commit()
    except sqlite3.Error as e:
        raise StoreUnavailableError(str(e)) from e


# ---------- ingestion_runs ----------


def insert_run_summary(conn: sqlite3.Connection, summary: dict, success: bool) -> int:
    """Persist one run summary (JSON). Returns the row id."""
    try:
        cur = conn.execute(
            "INSERT INTO ingestion_runs (success, summary) VALUES (?, ?)",
            (1 if success else 0, json.dumps(summary, ensure_ascii=False, default=str)),
        )
        conn.commit()
    except sqlite3.Error as e:
        raise StoreUnavailableError(str(e)) from e
    return cur.lastrowid


def get_run_summaries(conn: sqlite3.Connection, limit: int | None = None) -> list[dict]:
    """Return stored run summaries, latest first."""
    sql = "SELECT id, success, summary, created_at FROM ingestion_runs ORDER BY id DESC"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    return [
        {"id": r[0], "success": bool(r[1]), "summary": json.loads(r[2]), "created_at": r[3]}
        for r in conn.execute(sql).fetchall()
    ]
