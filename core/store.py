"""
Store — SQLite-backed persistence for the engagement core.

Not the rules. The rules are in service.py.
This is the thing that makes publications, comments and support persist.

Every service operation is one unit of work: one connection, one transaction,
committed whole or rolled back whole. Writers take the database lock up front
(BEGIN IMMEDIATE), so two writers touching the same support set serialize.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from .errors import StorageFailure
from .settings import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)


# ─── Schema ───────────────────────────────────────────────────────────────────
# Foreign keys are enforced but never cascade. Removing a comment that still
# has replies fails here, so cascades must be walked explicitly, leaves first.

_SCHEMA = """
CREATE TABLE IF NOT EXISTS identities (
    email           TEXT PRIMARY KEY,
    display_name    TEXT,
    registered_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS publications (
    id          TEXT PRIMARY KEY,
    kind        TEXT NOT NULL,
    title       TEXT NOT NULL DEFAULT '',
    content     TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_publication_created_at ON publications (created_at);
CREATE INDEX IF NOT EXISTS idx_publication_kind ON publications (kind);

CREATE TABLE IF NOT EXISTS publication_authors (
    publication_id  TEXT NOT NULL REFERENCES publications (id),
    author_name     TEXT NOT NULL,
    PRIMARY KEY (publication_id, author_name)
);

CREATE TABLE IF NOT EXISTS publication_links (
    publication_id  TEXT NOT NULL REFERENCES publications (id),
    link            TEXT NOT NULL,
    PRIMARY KEY (publication_id, link)
);

CREATE TABLE IF NOT EXISTS publication_supports (
    publication_id  TEXT NOT NULL REFERENCES publications (id),
    email           TEXT NOT NULL,
    PRIMARY KEY (publication_id, email)
);
CREATE INDEX IF NOT EXISTS idx_publication_support_email ON publication_supports (email);

CREATE TABLE IF NOT EXISTS comments (
    id              TEXT PRIMARY KEY,
    publication_id  TEXT NOT NULL REFERENCES publications (id),
    parent_id       TEXT REFERENCES comments (id),
    user_name       TEXT NOT NULL,
    email           TEXT NOT NULL,
    content         TEXT NOT NULL,
    created_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_comment_publication ON comments (publication_id);
CREATE INDEX IF NOT EXISTS idx_comment_parent ON comments (parent_id);
CREATE INDEX IF NOT EXISTS idx_comment_created_at ON comments (created_at);
CREATE INDEX IF NOT EXISTS idx_comment_email ON comments (email);

CREATE TABLE IF NOT EXISTS comment_supports (
    comment_id  TEXT NOT NULL REFERENCES comments (id),
    email       TEXT NOT NULL,
    PRIMARY KEY (comment_id, email)
);
CREATE INDEX IF NOT EXISTS idx_comment_support_email ON comment_supports (email);
"""


async def init_db(path: Path = DEFAULT_DB_PATH) -> None:
    async with aiosqlite.connect(path) as db:
        await db.executescript(_SCHEMA)
        await db.commit()
    logger.info("Initialized engagement schema at %s", path)


def now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(value: datetime) -> str:
    """Fixed-width UTC text, so stored timestamps sort the same as they compare."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _casefold(value):
    # SQLite's lower() only folds ASCII.
    return value.casefold() if isinstance(value, str) else value


# ─── Unit of work ─────────────────────────────────────────────────────────────

@asynccontextmanager
async def transaction(
    path: Path = DEFAULT_DB_PATH,
    write: bool = True,
    timeout: float = 5.0,
) -> AsyncIterator[aiosqlite.Connection]:
    """
    Open one connection and run the caller's work as a single transaction.

    Any exception rolls everything back and propagates. Database errors come
    out as StorageFailure with the driver error chained.
    """
    try:
        async with aiosqlite.connect(path, timeout=timeout, isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            await db.create_function("casefold", 1, _casefold, deterministic=True)
            await db.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            await db.commit()
    except aiosqlite.Error as e:
        logger.error("Unit of work against %s failed: %s", path, e)
        raise StorageFailure(f"Storage operation failed: {e}") from e
