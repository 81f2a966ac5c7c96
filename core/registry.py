"""
Identity Registry — the allow-list of emails that may support or comment.

A pure gate. Nothing above it calls back into it except to ask "is this
email registered?". Emails are matched exactly as stored.
"""

import logging
from typing import Optional

import aiosqlite

from .primitives import IdentityRecord
from .store import format_ts, now, parse_ts
from .validation import require_text

logger = logging.getLogger(__name__)


def _row_to_identity(row) -> IdentityRecord:
    return IdentityRecord(
        email=row["email"],
        display_name=row["display_name"],
        registered_at=parse_ts(row["registered_at"]),
    )


async def is_registered(db: aiosqlite.Connection, email: str) -> bool:
    require_text(email, "Email cannot be empty")
    async with db.execute("SELECT 1 FROM identities WHERE email = ?", (email,)) as cur:
        row = await cur.fetchone()
    return row is not None


async def lookup(db: aiosqlite.Connection, email: str) -> Optional[IdentityRecord]:
    require_text(email, "Email cannot be empty")
    async with db.execute("SELECT * FROM identities WHERE email = ?", (email,)) as cur:
        row = await cur.fetchone()
    if not row:
        return None
    return _row_to_identity(row)


async def register(
    db: aiosqlite.Connection,
    email: str,
    display_name: Optional[str] = None,
) -> IdentityRecord:
    """
    Put an email on the allow-list.

    Registering twice returns the first record untouched, display_name included.
    """
    existing = await lookup(db, email)
    if existing:
        logger.info("Email already registered: %s", email)
        return existing

    record = IdentityRecord(email=email, display_name=display_name, registered_at=now())
    await db.execute(
        "INSERT INTO identities (email, display_name, registered_at) VALUES (?, ?, ?)",
        (record.email, record.display_name, format_ts(record.registered_at)),
    )
    logger.info("Registered new email: %s", email)
    return record


async def rename(db: aiosqlite.Connection, email: str, display_name: Optional[str]) -> Optional[IdentityRecord]:
    """Change display_name. Returns None if the email is not registered."""
    require_text(email, "Email cannot be empty")
    cur = await db.execute(
        "UPDATE identities SET display_name = ? WHERE email = ?",
        (display_name, email),
    )
    if cur.rowcount == 0:
        return None
    return await lookup(db, email)


async def remove(db: aiosqlite.Connection, email: str) -> bool:
    """Take an email off the allow-list. Returns False if it was never on it."""
    require_text(email, "Email cannot be empty")
    cur = await db.execute("DELETE FROM identities WHERE email = ?", (email,))
    if cur.rowcount == 0:
        logger.warning("Attempted to remove non-existent email: %s", email)
        return False
    logger.info("Removed email: %s", email)
    return True


async def remove_all(db: aiosqlite.Connection) -> int:
    cur = await db.execute("DELETE FROM identities")
    logger.info("Removed all %d email registrations", cur.rowcount)
    return cur.rowcount


async def list_emails(db: aiosqlite.Connection) -> list[str]:
    async with db.execute("SELECT email FROM identities ORDER BY registered_at, rowid") as cur:
        rows = await cur.fetchall()
    return [r["email"] for r in rows]


async def count(db: aiosqlite.Connection) -> int:
    async with db.execute("SELECT COUNT(*) AS n FROM identities") as cur:
        row = await cur.fetchone()
    return row["n"]
