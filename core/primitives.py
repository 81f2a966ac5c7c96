"""
Engagement primitives — the shapes the core passes around.

Identities gate participation. Publications carry content. Comments hang off
exactly one publication and form a forest through parent_id. Publications and
comments both carry a support set: who endorsed them, never how many.

These are plain records. Rules live in the service, rows live in the store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─── Identity ─────────────────────────────────────────────────────────────────


@dataclass
class IdentityRecord:
    """
    An email on the allow-list.

    The email is the key, compared exactly as stored. Only display_name
    may change after registration.
    """
    email: str = ""
    display_name: Optional[str] = None
    registered_at: datetime = field(default_factory=_utcnow)


@dataclass
class RegistrationStatus:
    email: str
    registered: bool


# ─── Publications ─────────────────────────────────────────────────────────────


class PublicationKind(str, Enum):
    ANALOGY = "analogy"
    RESEARCH = "research"


@dataclass
class PublicationData:
    """
    What a caller supplies to create or update a publication.

    For research, content is the abstract and title may be empty.
    """
    title: str = ""
    content: str = ""
    authors: set[str] = field(default_factory=set)
    links: set[str] = field(default_factory=set)


@dataclass
class Publication:
    id: UUID = field(default_factory=uuid4)
    kind: PublicationKind = PublicationKind.ANALOGY
    title: str = ""
    content: str = ""
    authors: set[str] = field(default_factory=set)
    links: set[str] = field(default_factory=set)
    support_emails: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def support_count(self) -> int:
        return len(self.support_emails)


# ─── Comments ─────────────────────────────────────────────────────────────────


@dataclass
class CommentData:
    """
    What a caller supplies to create or update a comment.

    parent_id is optional. On update, None keeps the current parent.
    """
    user_name: str = ""
    content: str = ""
    email: str = ""
    parent_id: Optional[UUID] = None


@dataclass
class Comment:
    """
    One node in a publication's comment forest.

    publication_id never changes after creation. parent_id, when set, points
    at a comment under the same publication that existed before this one
    was attached to it.
    """
    id: UUID = field(default_factory=uuid4)
    publication_id: Optional[UUID] = None
    parent_id: Optional[UUID] = None
    user_name: str = ""
    email: str = ""
    content: str = ""
    support_emails: set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def support_count(self) -> int:
        return len(self.support_emails)


@dataclass
class CommentNode:
    """A comment with its replies materialised, for rendering a thread."""
    comment: Comment
    replies: list["CommentNode"] = field(default_factory=list)


# ─── Paging ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PageSpec:
    page: int = 0
    size: int = 20
    newest_first: bool = True

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass
class Page:
    items: list = field(default_factory=list)
    page: int = 0
    size: int = 20
    total: int = 0

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size
