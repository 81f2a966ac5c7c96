"""
Support sets — one implementation for every supportable item.

A support set is a table of (item_id, email) pairs with that pair as its
primary key. Membership is boolean. The count is the cardinality, computed
on read and never stored.

Publications and comments each get an instance. Neither copies the logic.
"""

from uuid import UUID

import aiosqlite


class SupportSet:

    def __init__(self, table: str, item_column: str):
        self.table = table
        self.item_column = item_column

    async def add(self, db: aiosqlite.Connection, item_id: UUID, email: str) -> bool:
        """Insert the pair. Returns False if it was already there."""
        cur = await db.execute(
            f"INSERT OR IGNORE INTO {self.table} ({self.item_column}, email) VALUES (?, ?)",
            (str(item_id), email),
        )
        return cur.rowcount > 0

    async def remove(self, db: aiosqlite.Connection, item_id: UUID, email: str) -> bool:
        """Delete the pair. Returns False if it was not there."""
        cur = await db.execute(
            f"DELETE FROM {self.table} WHERE {self.item_column} = ? AND email = ?",
            (str(item_id), email),
        )
        return cur.rowcount > 0

    async def clear(self, db: aiosqlite.Connection, item_id: UUID) -> int:
        cur = await db.execute(
            f"DELETE FROM {self.table} WHERE {self.item_column} = ?",
            (str(item_id),),
        )
        return cur.rowcount

    async def emails(self, db: aiosqlite.Connection, item_id: UUID) -> set[str]:
        async with db.execute(
            f"SELECT email FROM {self.table} WHERE {self.item_column} = ?",
            (str(item_id),),
        ) as cur:
            rows = await cur.fetchall()
        return {r["email"] for r in rows}

    async def count(self, db: aiosqlite.Connection, item_id: UUID) -> int:
        async with db.execute(
            f"SELECT COUNT(*) AS n FROM {self.table} WHERE {self.item_column} = ?",
            (str(item_id),),
        ) as cur:
            row = await cur.fetchone()
        return row["n"]

    async def contains(self, db: aiosqlite.Connection, item_id: UUID, email: str) -> bool:
        async with db.execute(
            f"SELECT 1 FROM {self.table} WHERE {self.item_column} = ? AND email = ?",
            (str(item_id), email),
        ) as cur:
            row = await cur.fetchone()
        return row is not None

    async def items_supported_by(self, db: aiosqlite.Connection, email: str) -> list[UUID]:
        async with db.execute(
            f"SELECT {self.item_column} AS item_id FROM {self.table} WHERE email = ? ORDER BY rowid",
            (email,),
        ) as cur:
            rows = await cur.fetchall()
        return [UUID(r["item_id"]) for r in rows]
