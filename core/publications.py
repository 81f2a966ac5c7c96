"""
Publication Store — analogies and research, one table, one id space.

Authors, links and supporters are sets held in side tables. A publication
row is only ever removed after everything pointing at it is gone; the
service owns that ordering.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import aiosqlite

from .primitives import Page, PageSpec, Publication, PublicationData, PublicationKind
from .store import format_ts, parse_ts
from .support import SupportSet

supports = SupportSet("publication_supports", "publication_id")


# ─── Row mapping ──────────────────────────────────────────────────────────────

async def _column_set(db: aiosqlite.Connection, table: str, column: str, publication_id: str) -> set[str]:
    async with db.execute(
        f"SELECT {column} FROM {table} WHERE publication_id = ?", (publication_id,)
    ) as cur:
        rows = await cur.fetchall()
    return {r[column] for r in rows}


async def _hydrate(db: aiosqlite.Connection, row) -> Publication:
    pid = row["id"]
    return Publication(
        id=UUID(pid),
        kind=PublicationKind(row["kind"]),
        title=row["title"],
        content=row["content"],
        authors=await _column_set(db, "publication_authors", "author_name", pid),
        links=await _column_set(db, "publication_links", "link", pid),
        support_emails=await supports.emails(db, UUID(pid)),
        created_at=parse_ts(row["created_at"]),
    )


async def _fetch(db: aiosqlite.Connection, sql: str, params: tuple = ()) -> list[Publication]:
    async with db.execute(sql, params) as cur:
        rows = await cur.fetchall()
    return [await _hydrate(db, r) for r in rows]


def _kind_clause(kind: Optional[PublicationKind]) -> tuple[str, tuple]:
    if kind is None:
        return "1 = 1", ()
    return "p.kind = ?", (PublicationKind(kind).value,)


# ─── Writes ───────────────────────────────────────────────────────────────────

async def _write_sets(db: aiosqlite.Connection, publication: Publication) -> None:
    pid = str(publication.id)
    await db.execute("DELETE FROM publication_authors WHERE publication_id = ?", (pid,))
    await db.execute("DELETE FROM publication_links WHERE publication_id = ?", (pid,))
    await db.executemany(
        "INSERT INTO publication_authors (publication_id, author_name) VALUES (?, ?)",
        [(pid, a) for a in sorted(publication.authors)],
    )
    await db.executemany(
        "INSERT INTO publication_links (publication_id, link) VALUES (?, ?)",
        [(pid, link) for link in sorted(publication.links)],
    )


async def insert(db: aiosqlite.Connection, publication: Publication) -> Publication:
    await db.execute(
        "INSERT INTO publications (id, kind, title, content, created_at) VALUES (?, ?, ?, ?, ?)",
        (
            str(publication.id), publication.kind.value, publication.title,
            publication.content, format_ts(publication.created_at),
        ),
    )
    await _write_sets(db, publication)
    return publication


async def replace_content(db: aiosqlite.Connection, publication_id: UUID, data: PublicationData) -> None:
    """Overwrite title, content, authors and links. created_at and supporters stay."""
    await db.execute(
        "UPDATE publications SET title = ?, content = ? WHERE id = ?",
        (data.title or "", data.content, str(publication_id)),
    )
    await _write_sets(db, Publication(
        id=publication_id,
        authors=set(data.authors or ()),
        links=set(data.links or ()),
    ))


async def delete(db: aiosqlite.Connection, publication_id: UUID) -> None:
    """Remove the row and its sets. Comments must already be gone."""
    pid = str(publication_id)
    await supports.clear(db, publication_id)
    await db.execute("DELETE FROM publication_authors WHERE publication_id = ?", (pid,))
    await db.execute("DELETE FROM publication_links WHERE publication_id = ?", (pid,))
    await db.execute("DELETE FROM publications WHERE id = ?", (pid,))


# ─── Reads ────────────────────────────────────────────────────────────────────

async def get(db: aiosqlite.Connection, publication_id: UUID) -> Optional[Publication]:
    async with db.execute("SELECT * FROM publications WHERE id = ?", (str(publication_id),)) as cur:
        row = await cur.fetchone()
    if not row:
        return None
    return await _hydrate(db, row)


async def exists(db: aiosqlite.Connection, publication_id: UUID) -> bool:
    async with db.execute("SELECT 1 FROM publications WHERE id = ?", (str(publication_id),)) as cur:
        row = await cur.fetchone()
    return row is not None


async def page(db: aiosqlite.Connection, kind: Optional[PublicationKind], spec: PageSpec) -> Page:
    where, params = _kind_clause(kind)
    direction = "DESC" if spec.newest_first else "ASC"
    async with db.execute(f"SELECT COUNT(*) AS n FROM publications p WHERE {where}", params) as cur:
        total = (await cur.fetchone())["n"]
    items = await _fetch(
        db,
        f"""SELECT p.* FROM publications p WHERE {where}
            ORDER BY p.created_at {direction}, p.rowid {direction}
            LIMIT ? OFFSET ?""",
        params + (spec.size, spec.offset),
    )
    return Page(items=items, page=spec.page, size=spec.size, total=total)


async def search_by_title(db: aiosqlite.Connection, kind: Optional[PublicationKind], text: str) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"""SELECT p.* FROM publications p
            WHERE {where} AND instr(casefold(p.title), casefold(?)) > 0
            ORDER BY p.created_at DESC, p.rowid DESC""",
        params + (text,),
    )


async def search_by_abstract(db: aiosqlite.Connection, kind: Optional[PublicationKind], text: str) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"""SELECT p.* FROM publications p
            WHERE {where} AND instr(casefold(p.content), casefold(?)) > 0
            ORDER BY p.created_at DESC, p.rowid DESC""",
        params + (text,),
    )


async def search_by_author(db: aiosqlite.Connection, kind: Optional[PublicationKind], name: str) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"""SELECT p.* FROM publications p
            WHERE {where} AND EXISTS (
                SELECT 1 FROM publication_authors a
                WHERE a.publication_id = p.id AND instr(casefold(a.author_name), casefold(?)) > 0
            )
            ORDER BY p.created_at DESC, p.rowid DESC""",
        params + (name,),
    )


async def search_everywhere(db: aiosqlite.Connection, kind: Optional[PublicationKind], term: str) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"""SELECT p.* FROM publications p
            WHERE {where} AND (
                instr(casefold(p.title), casefold(?)) > 0
                OR instr(casefold(p.content), casefold(?)) > 0
                OR EXISTS (
                    SELECT 1 FROM publication_authors a
                    WHERE a.publication_id = p.id AND instr(casefold(a.author_name), casefold(?)) > 0
                )
            )
            ORDER BY p.created_at DESC, p.rowid DESC""",
        params + (term, term, term),
    )


async def find_by_link_domain(db: aiosqlite.Connection, kind: Optional[PublicationKind], fragment: str) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"""SELECT p.* FROM publications p
            WHERE {where} AND EXISTS (
                SELECT 1 FROM publication_links l
                WHERE l.publication_id = p.id AND instr(casefold(l.link), casefold(?)) > 0
            )
            ORDER BY p.created_at DESC, p.rowid DESC""",
        params + (fragment,),
    )


async def latest(db: aiosqlite.Connection, kind: Optional[PublicationKind], limit: int) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"SELECT p.* FROM publications p WHERE {where} ORDER BY p.created_at DESC, p.rowid DESC LIMIT ?",
        params + (limit,),
    )


async def most_supported(db: aiosqlite.Connection, kind: Optional[PublicationKind], limit: int) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"""SELECT p.* FROM publications p WHERE {where}
            ORDER BY (
                SELECT COUNT(*) FROM publication_supports s WHERE s.publication_id = p.id
            ) DESC, p.created_at DESC, p.rowid DESC
            LIMIT ?""",
        params + (limit,),
    )


async def created_between(
    db: aiosqlite.Connection,
    kind: Optional[PublicationKind],
    start: datetime,
    end: datetime,
) -> list[Publication]:
    where, params = _kind_clause(kind)
    return await _fetch(
        db,
        f"""SELECT p.* FROM publications p
            WHERE {where} AND p.created_at >= ? AND p.created_at <= ?
            ORDER BY p.created_at ASC, p.rowid ASC""",
        params + (format_ts(start), format_ts(end)),
    )
