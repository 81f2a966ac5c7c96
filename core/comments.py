"""
Comment Tree Store — each publication's comments, kept as an arena.

Comments are rows keyed by id with a nullable parent_id. There are no object
links between them. Tree shape comes from a children index
(parent_id -> [child ids]) built on demand from one publication's rows.

Every parent_id points at a comment that already existed under the same
publication, and re-parenting never targets a descendant, so the index is
always a forest. Walks over it terminate and visit each node once.
"""

import logging
from typing import Iterable, Optional
from uuid import UUID

import aiosqlite

from .primitives import Comment, CommentNode, Page, PageSpec
from .store import format_ts, parse_ts
from .support import SupportSet

logger = logging.getLogger(__name__)

supports = SupportSet("comment_supports", "comment_id")

ChildrenIndex = dict[Optional[UUID], list[UUID]]

_CREATION_ORDER = "ORDER BY c.created_at ASC, c.rowid ASC"


# ─── Row mapping ──────────────────────────────────────────────────────────────

async def _hydrate(db: aiosqlite.Connection, row) -> Comment:
    return Comment(
        id=UUID(row["id"]),
        publication_id=UUID(row["publication_id"]),
        parent_id=UUID(row["parent_id"]) if row["parent_id"] else None,
        user_name=row["user_name"],
        email=row["email"],
        content=row["content"],
        support_emails=await supports.emails(db, UUID(row["id"])),
        created_at=parse_ts(row["created_at"]),
    )


async def _fetch(db: aiosqlite.Connection, sql: str, params: tuple = ()) -> list[Comment]:
    async with db.execute(sql, params) as cur:
        rows = await cur.fetchall()
    return [await _hydrate(db, r) for r in rows]


# ─── Writes ───────────────────────────────────────────────────────────────────

async def insert(db: aiosqlite.Connection, comment: Comment) -> Comment:
    await db.execute(
        """INSERT INTO comments
           (id, publication_id, parent_id, user_name, email, content, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            str(comment.id), str(comment.publication_id),
            str(comment.parent_id) if comment.parent_id else None,
            comment.user_name, comment.email, comment.content,
            format_ts(comment.created_at),
        ),
    )
    return comment


async def update_fields(
    db: aiosqlite.Connection,
    comment_id: UUID,
    user_name: str,
    content: str,
    email: str,
    parent_id: Optional[UUID],
) -> None:
    """Overwrite the editable fields. publication_id and created_at are not among them."""
    await db.execute(
        "UPDATE comments SET user_name = ?, content = ?, email = ?, parent_id = ? WHERE id = ?",
        (user_name, content, email, str(parent_id) if parent_id else None, str(comment_id)),
    )


async def _delete_one(db: aiosqlite.Connection, comment_id: UUID) -> None:
    await supports.clear(db, comment_id)
    await db.execute("DELETE FROM comments WHERE id = ?", (str(comment_id),))


async def delete_subtree(db: aiosqlite.Connection, comment_id: UUID, publication_id: UUID) -> list[UUID]:
    """
    Delete a comment and every reply beneath it, leaves first.

    Returns the deleted ids in the order they were removed.
    """
    index = await children_index(db, publication_id)
    order = post_order(index, comment_id)
    for cid in order:
        await _delete_one(db, cid)
    logger.info("Deleted %d comment(s) in subtree of %s", len(order), comment_id)
    return order


async def delete_forest(db: aiosqlite.Connection, publication_id: UUID) -> list[UUID]:
    """Delete every comment under a publication, each tree leaves first."""
    index = await children_index(db, publication_id)
    order = []
    for root in index.get(None, []):
        order.extend(post_order(index, root))
    for cid in order:
        await _delete_one(db, cid)
    logger.info("Deleted %d comment(s) under publication %s", len(order), publication_id)
    return order


# ─── Tree shape ───────────────────────────────────────────────────────────────

async def children_index(db: aiosqlite.Connection, publication_id: UUID) -> ChildrenIndex:
    """Map each parent id (None for roots) to its children, in creation order."""
    index: ChildrenIndex = {}
    async with db.execute(
        f"SELECT c.id, c.parent_id FROM comments c WHERE c.publication_id = ? {_CREATION_ORDER}",
        (str(publication_id),),
    ) as cur:
        rows = await cur.fetchall()
    for r in rows:
        parent = UUID(r["parent_id"]) if r["parent_id"] else None
        index.setdefault(parent, []).append(UUID(r["id"]))
    return index


def post_order(index: ChildrenIndex, root: UUID) -> list[UUID]:
    """Ids of root's subtree, every node after all of its descendants."""
    order: list[UUID] = []
    stack: list[tuple[UUID, bool]] = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            order.append(node)
            continue
        stack.append((node, True))
        for child in reversed(index.get(node, ())):
            stack.append((child, False))
    return order


def descendants(index: ChildrenIndex, root: UUID) -> set[UUID]:
    """Every id strictly below root."""
    found: set[UUID] = set()
    stack = list(index.get(root, ()))
    while stack:
        node = stack.pop()
        found.add(node)
        stack.extend(index.get(node, ()))
    return found


def build_thread(comments: Iterable[Comment]) -> list[CommentNode]:
    """
    Nest comments under their parents. Input order is kept among siblings,
    so pass comments in creation order to get a chronological thread.
    """
    nodes = {}
    ordered = []
    for c in comments:
        nodes[c.id] = CommentNode(comment=c)
        ordered.append(c)
    roots = []
    for c in ordered:
        node = nodes[c.id]
        if c.parent_id is not None and c.parent_id in nodes:
            nodes[c.parent_id].replies.append(node)
        else:
            roots.append(node)
    return roots


# ─── Reads ────────────────────────────────────────────────────────────────────

async def get(db: aiosqlite.Connection, comment_id: UUID) -> Optional[Comment]:
    async with db.execute("SELECT * FROM comments WHERE id = ?", (str(comment_id),)) as cur:
        row = await cur.fetchone()
    if not row:
        return None
    return await _hydrate(db, row)


async def get_in_publication(db: aiosqlite.Connection, comment_id: UUID, publication_id: UUID) -> Optional[Comment]:
    async with db.execute(
        "SELECT * FROM comments WHERE id = ? AND publication_id = ?",
        (str(comment_id), str(publication_id)),
    ) as cur:
        row = await cur.fetchone()
    if not row:
        return None
    return await _hydrate(db, row)


async def _page(db: aiosqlite.Connection, where: str, params: tuple, spec: PageSpec) -> Page:
    direction = "DESC" if spec.newest_first else "ASC"
    async with db.execute(f"SELECT COUNT(*) AS n FROM comments c WHERE {where}", params) as cur:
        total = (await cur.fetchone())["n"]
    items = await _fetch(
        db,
        f"""SELECT c.* FROM comments c WHERE {where}
            ORDER BY c.created_at {direction}, c.rowid {direction}
            LIMIT ? OFFSET ?""",
        params + (spec.size, spec.offset),
    )
    return Page(items=items, page=spec.page, size=spec.size, total=total)


async def page_all(db: aiosqlite.Connection, spec: PageSpec) -> Page:
    return await _page(db, "1 = 1", (), spec)


async def page_by_publication(db: aiosqlite.Connection, publication_id: UUID, spec: PageSpec) -> Page:
    return await _page(db, "c.publication_id = ?", (str(publication_id),), spec)


async def by_publication(db: aiosqlite.Connection, publication_id: UUID) -> list[Comment]:
    return await _fetch(
        db,
        f"SELECT c.* FROM comments c WHERE c.publication_id = ? {_CREATION_ORDER}",
        (str(publication_id),),
    )


async def roots(db: aiosqlite.Connection, publication_id: UUID) -> list[Comment]:
    return await _fetch(
        db,
        f"SELECT c.* FROM comments c WHERE c.publication_id = ? AND c.parent_id IS NULL {_CREATION_ORDER}",
        (str(publication_id),),
    )


async def replies(db: aiosqlite.Connection, parent_id: UUID) -> list[Comment]:
    return await _fetch(
        db,
        f"SELECT c.* FROM comments c WHERE c.parent_id = ? {_CREATION_ORDER}",
        (str(parent_id),),
    )


async def latest_by_publication(db: aiosqlite.Connection, publication_id: UUID, limit: int) -> list[Comment]:
    return await _fetch(
        db,
        """SELECT c.* FROM comments c WHERE c.publication_id = ?
           ORDER BY c.created_at DESC, c.rowid DESC LIMIT ?""",
        (str(publication_id), limit),
    )


async def count_by_publication(db: aiosqlite.Connection, publication_id: UUID) -> int:
    async with db.execute(
        "SELECT COUNT(*) AS n FROM comments WHERE publication_id = ?", (str(publication_id),)
    ) as cur:
        row = await cur.fetchone()
    return row["n"]


async def search_by_user_name(db: aiosqlite.Connection, name: str, publication_id: UUID) -> list[Comment]:
    return await _fetch(
        db,
        f"""SELECT c.* FROM comments c
            WHERE c.publication_id = ? AND instr(casefold(c.user_name), casefold(?)) > 0
            {_CREATION_ORDER}""",
        (str(publication_id), name),
    )


async def search_content(db: aiosqlite.Connection, term: str, publication_id: UUID) -> list[Comment]:
    return await _fetch(
        db,
        f"""SELECT c.* FROM comments c
            WHERE c.publication_id = ? AND instr(casefold(c.content), casefold(?)) > 0
            {_CREATION_ORDER}""",
        (str(publication_id), term),
    )


async def search_by_email(db: aiosqlite.Connection, email: str, publication_id: UUID) -> list[Comment]:
    # Emails match exactly, like everywhere else in the core.
    return await _fetch(
        db,
        f"SELECT c.* FROM comments c WHERE c.publication_id = ? AND c.email = ? {_CREATION_ORDER}",
        (str(publication_id), email),
    )
