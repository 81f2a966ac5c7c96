"""
Engagement Service — the one boundary the transport talks to.

Every public method is a single unit of work: it opens a transaction, checks
everything that must hold across the registry, publications and comments, and
only then asks the stores to write. Any raised error leaves storage as it was.

Three gates run here, not in the stores:
  1. Who may participate? (the registry)
  2. Does the thing being attached to exist, under the right publication? (referential checks)
  3. What goes first when something is deleted? (comments before their publication, replies before their parent)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import aiosqlite

from . import comments, publications, registry, store
from .errors import NotFound, Unauthorized, ValidationError
from .primitives import (
    Comment, CommentData, CommentNode, IdentityRecord, Page, PageSpec,
    Publication, PublicationData, PublicationKind, RegistrationStatus,
)
from .settings import Settings
from .support import SupportSet
from .validation import (
    require_email, require_emails, require_text, validate_limit,
    validate_page, validate_publication,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Supportable:
    """What the support operations need to know about an item kind."""
    label: str
    load: Callable[[aiosqlite.Connection, UUID], Awaitable[Optional[Any]]]
    supports: SupportSet


_PUBLICATION = _Supportable("Publication", publications.get, publications.supports)
_COMMENT = _Supportable("Comment", comments.get, comments.supports)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EngagementService:

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    async def init(self) -> None:
        await store.init_db(self.settings.db_path)

    def _unit(self, write: bool = True):
        return store.transaction(
            self.settings.db_path,
            write=write,
            timeout=self.settings.busy_timeout,
        )

    # ─── Identity Registry ────────────────────────────────────────────────────

    async def is_registered(self, email: str) -> bool:
        async with self._unit(write=False) as db:
            return await registry.is_registered(db, email)

    async def register(self, email: str, display_name: Optional[str] = None) -> IdentityRecord:
        require_text(email, "Email cannot be empty")
        async with self._unit() as db:
            return await registry.register(db, email, display_name)

    async def register_many(self, emails: list[str]) -> list[IdentityRecord]:
        emails = require_emails(emails)
        for email in emails:
            require_text(email, "Email cannot be empty")
        async with self._unit() as db:
            return [await registry.register(db, e) for e in emails]

    async def lookup(self, email: str) -> Optional[IdentityRecord]:
        async with self._unit(write=False) as db:
            return await registry.lookup(db, email)

    async def rename_identity(self, email: str, display_name: Optional[str]) -> IdentityRecord:
        async with self._unit() as db:
            record = await registry.rename(db, email, display_name)
        if record is None:
            raise NotFound(f"Email not registered: {email}")
        return record

    async def remove_identity(self, email: str) -> None:
        """Unregister. Supports already given stay where they are."""
        async with self._unit() as db:
            await registry.remove(db, email)

    async def remove_many(self, emails: list[str]) -> None:
        emails = require_emails(emails)
        async with self._unit() as db:
            for email in emails:
                await registry.remove(db, email)
        logger.info("Removed %d email(s)", len(emails))

    async def remove_all_identities(self) -> int:
        async with self._unit() as db:
            return await registry.remove_all(db)

    async def registered_emails(self) -> list[str]:
        async with self._unit(write=False) as db:
            return await registry.list_emails(db)

    async def count_registered(self) -> int:
        async with self._unit(write=False) as db:
            return await registry.count(db)

    async def check_registration(self, emails: list[str]) -> list[RegistrationStatus]:
        emails = require_emails(emails)
        async with self._unit(write=False) as db:
            return [
                RegistrationStatus(email=e, registered=await registry.is_registered(db, e))
                for e in emails
            ]

    # ─── Publications ─────────────────────────────────────────────────────────

    async def _require_publication(self, db: aiosqlite.Connection, publication_id: UUID) -> Publication:
        publication = await publications.get(db, publication_id)
        if publication is None:
            raise NotFound(f"Publication not found with id: {publication_id}")
        return publication

    async def _require_publication_exists(self, db: aiosqlite.Connection, publication_id: UUID) -> None:
        if not await publications.exists(db, publication_id):
            raise NotFound(f"Publication not found with id: {publication_id}")

    async def create_publication(self, kind: PublicationKind, data: PublicationData) -> Publication:
        kind = PublicationKind(kind)
        validate_publication(kind, data, self.settings.max_authors, self.settings.max_links)
        publication = Publication(
            kind=kind,
            title=data.title or "",
            content=data.content,
            authors=set(data.authors),
            links=set(data.links or ()),
            created_at=store.now(),
        )
        async with self._unit() as db:
            await publications.insert(db, publication)
        logger.info("Created %s with ID: %s", kind.value, publication.id)
        return publication

    async def update_publication(self, publication_id: UUID, data: PublicationData) -> Publication:
        async with self._unit() as db:
            current = await self._require_publication(db, publication_id)
            validate_publication(current.kind, data, self.settings.max_authors, self.settings.max_links)
            await publications.replace_content(db, publication_id, data)
            updated = await publications.get(db, publication_id)
        logger.info("Updated %s with ID: %s", updated.kind.value, publication_id)
        return updated

    async def get_publication(self, publication_id: UUID) -> Publication:
        async with self._unit(write=False) as db:
            return await self._require_publication(db, publication_id)

    async def list_publications(
        self,
        kind: Optional[PublicationKind] = None,
        spec: PageSpec = PageSpec(),
    ) -> Page:
        validate_page(spec)
        async with self._unit(write=False) as db:
            return await publications.page(db, kind, spec)

    async def search_by_title(self, kind: Optional[PublicationKind], text: str) -> list[Publication]:
        require_text(text, "Search text cannot be empty")
        async with self._unit(write=False) as db:
            return await publications.search_by_title(db, kind, text)

    async def search_by_abstract(self, kind: Optional[PublicationKind], text: str) -> list[Publication]:
        require_text(text, "Search text cannot be empty")
        async with self._unit(write=False) as db:
            return await publications.search_by_abstract(db, kind, text)

    async def search_by_author(self, kind: Optional[PublicationKind], name: str) -> list[Publication]:
        require_text(name, "Author name cannot be empty")
        async with self._unit(write=False) as db:
            return await publications.search_by_author(db, kind, name)

    async def search_everywhere(self, kind: Optional[PublicationKind], term: str) -> list[Publication]:
        require_text(term, "Search term cannot be empty")
        async with self._unit(write=False) as db:
            return await publications.search_everywhere(db, kind, term)

    async def find_by_link_domain(self, kind: Optional[PublicationKind], fragment: str) -> list[Publication]:
        require_text(fragment, "Link fragment cannot be empty")
        async with self._unit(write=False) as db:
            return await publications.find_by_link_domain(db, kind, fragment)

    async def latest_publications(self, kind: Optional[PublicationKind], limit: int = 10) -> list[Publication]:
        validate_limit(limit)
        async with self._unit(write=False) as db:
            return await publications.latest(db, kind, limit)

    async def most_supported_publications(self, kind: Optional[PublicationKind], limit: int = 10) -> list[Publication]:
        validate_limit(limit)
        async with self._unit(write=False) as db:
            return await publications.most_supported(db, kind, limit)

    async def publications_created_between(
        self,
        kind: Optional[PublicationKind],
        start: datetime,
        end: datetime,
    ) -> list[Publication]:
        start, end = _as_utc(start), _as_utc(end)
        if start > end:
            raise ValidationError("Range start must not be after range end")
        async with self._unit(write=False) as db:
            return await publications.created_between(db, kind, start, end)

    async def delete_publication(self, publication_id: UUID) -> None:
        """
        Delete a publication and its whole comment forest.

        Comments go first. Reversing the order would leave replies pointing at
        a publication that no longer exists.
        """
        async with self._unit() as db:
            await self._require_publication_exists(db, publication_id)
            removed = await comments.delete_forest(db, publication_id)
            await publications.delete(db, publication_id)
        logger.info("Deleted publication %s with %d comment(s)", publication_id, len(removed))

    async def add_publication_support(self, publication_id: UUID, email: str) -> Publication:
        return await self._add_support(_PUBLICATION, publication_id, email)

    async def remove_publication_support(self, publication_id: UUID, email: str) -> Publication:
        return await self._remove_support(_PUBLICATION, publication_id, email)

    async def publication_support_count(self, publication_id: UUID) -> int:
        return await self._support_count(_PUBLICATION, publication_id)

    async def publication_support_emails(self, publication_id: UUID) -> set[str]:
        return await self._support_emails(_PUBLICATION, publication_id)

    async def has_supported_publication(self, publication_id: UUID, email: str) -> bool:
        return await self._has_supported(_PUBLICATION, publication_id, email)

    async def supported_publication_ids(self, email: str) -> list[UUID]:
        require_email(email)
        async with self._unit(write=False) as db:
            return await publications.supports.items_supported_by(db, email)

    # ─── Comments ─────────────────────────────────────────────────────────────

    async def _require_comment(self, db: aiosqlite.Connection, comment_id: UUID) -> Comment:
        comment = await comments.get(db, comment_id)
        if comment is None:
            raise NotFound(f"Comment not found with id: {comment_id}")
        return comment

    async def _require_parent(self, db: aiosqlite.Connection, parent_id: UUID, publication_id: UUID) -> Comment:
        parent = await comments.get_in_publication(db, parent_id, publication_id)
        if parent is None:
            raise NotFound(
                f"Parent comment (ID: {parent_id}) not found for publication (ID: {publication_id})"
            )
        return parent

    def _validate_comment(self, data: CommentData) -> None:
        require_text(data.user_name, "Comment user name is required")
        require_text(data.content, "Comment content is required")
        require_email(data.email)

    async def _require_commenter(self, db: aiosqlite.Connection, email: str) -> None:
        if self.settings.gate_comments and not await registry.is_registered(db, email):
            logger.warning("Attempt to comment with unregistered email: %s", email)
            raise Unauthorized(f"Email is not registered for commenting: {email}")

    async def create_comment(self, publication_id: UUID, data: CommentData) -> Comment:
        self._validate_comment(data)
        async with self._unit() as db:
            await self._require_publication_exists(db, publication_id)
            if data.parent_id is not None:
                await self._require_parent(db, data.parent_id, publication_id)
            await self._require_commenter(db, data.email)

            comment = Comment(
                publication_id=publication_id,
                parent_id=data.parent_id,
                user_name=data.user_name,
                email=data.email,
                content=data.content,
                created_at=store.now(),
            )
            await comments.insert(db, comment)
        logger.info("Created comment %s under publication %s", comment.id, publication_id)
        return comment

    async def update_comment(self, comment_id: UUID, data: CommentData) -> Comment:
        """
        Edit a comment and optionally move it under another parent.

        The new parent must live under the same publication and must not be
        the comment itself or anything beneath it. Without a parent_id the
        current parent stays.
        """
        self._validate_comment(data)
        async with self._unit() as db:
            comment = await self._require_comment(db, comment_id)
            parent_id = comment.parent_id

            if data.parent_id is not None and data.parent_id != comment.parent_id:
                if data.parent_id == comment_id:
                    raise ValidationError("A comment cannot reply to itself")
                await self._require_parent(db, data.parent_id, comment.publication_id)
                index = await comments.children_index(db, comment.publication_id)
                if data.parent_id in comments.descendants(index, comment_id):
                    raise ValidationError(
                        f"Comment {data.parent_id} is a reply beneath {comment_id} and cannot become its parent"
                    )
                parent_id = data.parent_id

            if data.email != comment.email:
                await self._require_commenter(db, data.email)

            await comments.update_fields(db, comment_id, data.user_name, data.content, data.email, parent_id)
            updated = await comments.get(db, comment_id)
        logger.info("Updated comment %s", comment_id)
        return updated

    async def get_comment(self, comment_id: UUID) -> Comment:
        async with self._unit(write=False) as db:
            return await self._require_comment(db, comment_id)

    async def list_comments(self, spec: PageSpec = PageSpec()) -> Page:
        validate_page(spec)
        async with self._unit(write=False) as db:
            return await comments.page_all(db, spec)

    async def comments_page(self, publication_id: UUID, spec: PageSpec = PageSpec()) -> Page:
        validate_page(spec)
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.page_by_publication(db, publication_id, spec)

    async def comments_for_publication(self, publication_id: UUID) -> list[Comment]:
        """Every comment under the publication, newest first."""
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            ordered = await comments.by_publication(db, publication_id)
        return list(reversed(ordered))

    async def comments_in_creation_order(self, publication_id: UUID) -> list[Comment]:
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.by_publication(db, publication_id)

    async def root_comments(self, publication_id: UUID) -> list[Comment]:
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.roots(db, publication_id)

    async def replies(self, parent_id: UUID) -> list[Comment]:
        async with self._unit(write=False) as db:
            await self._require_comment(db, parent_id)
            return await comments.replies(db, parent_id)

    async def thread(self, publication_id: UUID) -> list[CommentNode]:
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            ordered = await comments.by_publication(db, publication_id)
        return comments.build_thread(ordered)

    async def latest_comments(self, publication_id: UUID, limit: int = 10) -> list[Comment]:
        validate_limit(limit)
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.latest_by_publication(db, publication_id, limit)

    async def count_comments(self, publication_id: UUID) -> int:
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.count_by_publication(db, publication_id)

    async def search_comments_by_user_name(self, name: str, publication_id: UUID) -> list[Comment]:
        require_text(name, "User name cannot be empty")
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.search_by_user_name(db, name, publication_id)

    async def search_comments_by_email(self, email: str, publication_id: UUID) -> list[Comment]:
        require_text(email, "Email cannot be empty")
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.search_by_email(db, email, publication_id)

    async def search_comment_content(self, term: str, publication_id: UUID) -> list[Comment]:
        require_text(term, "Search term cannot be empty")
        async with self._unit(write=False) as db:
            await self._require_publication_exists(db, publication_id)
            return await comments.search_content(db, term, publication_id)

    async def delete_comment(self, comment_id: UUID) -> list[UUID]:
        """Delete a comment and every reply beneath it. Returns the removed ids."""
        async with self._unit() as db:
            comment = await self._require_comment(db, comment_id)
            return await comments.delete_subtree(db, comment_id, comment.publication_id)

    async def is_email_authorized_to_comment(self, email: str) -> bool:
        return await self.is_registered(email)

    async def add_comment_support(self, comment_id: UUID, email: str) -> Comment:
        return await self._add_support(_COMMENT, comment_id, email)

    async def remove_comment_support(self, comment_id: UUID, email: str) -> Comment:
        return await self._remove_support(_COMMENT, comment_id, email)

    async def comment_support_count(self, comment_id: UUID) -> int:
        return await self._support_count(_COMMENT, comment_id)

    async def comment_support_emails(self, comment_id: UUID) -> set[str]:
        return await self._support_emails(_COMMENT, comment_id)

    async def has_supported_comment(self, comment_id: UUID, email: str) -> bool:
        return await self._has_supported(_COMMENT, comment_id, email)

    async def supported_comment_ids(self, email: str) -> list[UUID]:
        require_email(email)
        async with self._unit(write=False) as db:
            return await comments.supports.items_supported_by(db, email)

    # ─── Support, shared by every supportable item ────────────────────────────

    async def _require_item(self, db: aiosqlite.Connection, target: _Supportable, item_id: UUID):
        item = await target.load(db, item_id)
        if item is None:
            raise NotFound(f"{target.label} not found with id: {item_id}")
        return item

    async def _add_support(self, target: _Supportable, item_id: UUID, email: str):
        require_email(email)
        async with self._unit() as db:
            item = await self._require_item(db, target, item_id)
            if not await registry.is_registered(db, email):
                logger.warning("Support from unregistered email %s refused on %s %s", email, target.label, item_id)
                raise Unauthorized(f"Email is not registered: {email}")
            if await target.supports.add(db, item_id, email):
                item.support_emails.add(email)
                logger.info("Added support from %s to %s %s", email, target.label, item_id)
            else:
                logger.warning("Email %s has already supported %s %s", email, target.label, item_id)
        return item

    async def _remove_support(self, target: _Supportable, item_id: UUID, email: str):
        # No registry check: a supporter who has since unregistered can still retract.
        require_email(email)
        async with self._unit() as db:
            item = await self._require_item(db, target, item_id)
            if await target.supports.remove(db, item_id, email):
                item.support_emails.discard(email)
                logger.info("Removed support from %s on %s %s", email, target.label, item_id)
            else:
                logger.warning("Email %s has not supported %s %s", email, target.label, item_id)
        return item

    async def _support_count(self, target: _Supportable, item_id: UUID) -> int:
        async with self._unit(write=False) as db:
            await self._require_item(db, target, item_id)
            return await target.supports.count(db, item_id)

    async def _support_emails(self, target: _Supportable, item_id: UUID) -> set[str]:
        async with self._unit(write=False) as db:
            await self._require_item(db, target, item_id)
            return await target.supports.emails(db, item_id)

    async def _has_supported(self, target: _Supportable, item_id: UUID, email: str) -> bool:
        require_text(email, "Email cannot be empty")
        async with self._unit(write=False) as db:
            await self._require_item(db, target, item_id)
            return await target.supports.contains(db, item_id, email)
