"""
Engagement surface — the HTTP face of the engagement core.

Thin on purpose. Parse the request, call the service, shape the answer.
Every rule lives behind EngagementService; this file only decides which
status code each kind of failure becomes.
"""

from typing import Optional
from uuid import UUID

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.errors import EngagementError, NotFound, ValidationError
from core.primitives import (
    Comment, CommentData, CommentNode, IdentityRecord, Page, PageSpec,
    Publication, PublicationData, PublicationKind,
)
from core.service import EngagementService
from core.settings import Settings

_STATUS_BY_KIND = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "unauthorized": status.HTTP_403_FORBIDDEN,
    "not_found": status.HTTP_404_NOT_FOUND,
    "storage_failure": status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ─── Request schemas ──────────────────────────────────────────────────────────

class RegisterIdentity(BaseModel):
    email: str
    display_name: Optional[str] = None


class RenameIdentity(BaseModel):
    display_name: Optional[str] = None


class CreatePublication(BaseModel):
    kind: PublicationKind
    title: str = ""
    content: str
    authors: list[str] = []
    links: list[str] = []


class UpdatePublication(BaseModel):
    title: str = ""
    content: str
    authors: list[str] = []
    links: list[str] = []


class WriteComment(BaseModel):
    user_name: str
    content: str
    email: str
    parent_id: Optional[UUID] = None


class SupportRequest(BaseModel):
    email: str


# ─── Response shaping ─────────────────────────────────────────────────────────

def _identity_out(record: IdentityRecord) -> dict:
    return {
        "email": record.email,
        "display_name": record.display_name,
        "registered_at": record.registered_at.isoformat(),
    }


def _publication_out(p: Publication) -> dict:
    return {
        "id": str(p.id),
        "kind": p.kind.value,
        "title": p.title,
        "content": p.content,
        "authors": sorted(p.authors),
        "links": sorted(p.links),
        "support_count": p.support_count,
        "created_at": p.created_at.isoformat(),
    }


def _comment_out(c: Comment) -> dict:
    return {
        "id": str(c.id),
        "publication_id": str(c.publication_id),
        "parent_id": str(c.parent_id) if c.parent_id else None,
        "user_name": c.user_name,
        "email": c.email,
        "content": c.content,
        "support_count": c.support_count,
        "created_at": c.created_at.isoformat(),
    }


def _node_out(node: CommentNode) -> dict:
    out = _comment_out(node.comment)
    out["replies"] = [_node_out(r) for r in node.replies]
    return out


def _page_out(page: Page, shape) -> dict:
    return {
        "items": [shape(i) for i in page.items],
        "page": page.page,
        "size": page.size,
        "total": page.total,
        "total_pages": page.total_pages,
    }


# ─── App ──────────────────────────────────────────────────────────────────────

def create_app(service: Optional[EngagementService] = None) -> FastAPI:
    service = service or EngagementService(Settings.from_env())

    app = FastAPI(
        title="Engagement",
        description="Analogies, research, threaded comments and support, gated by an email allow-list.",
        version="0.1.0",
    )
    app.state.service = service

    @app.on_event("startup")
    async def startup():
        await service.init()

    @app.exception_handler(EngagementError)
    async def engagement_error(request: Request, exc: EngagementError):
        return JSONResponse(
            status_code=_STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
            content={"kind": exc.kind, "detail": exc.message},
        )

    # ─── Identities ───────────────────────────────────────────────────────────

    @app.post("/identities", status_code=status.HTTP_201_CREATED)
    async def register_identity(body: RegisterIdentity):
        return _identity_out(await service.register(body.email, body.display_name))

    @app.get("/identities")
    async def list_identities():
        return {"emails": await service.registered_emails()}

    @app.get("/identities/{email}")
    async def get_identity(email: str):
        record = await service.lookup(email)
        if record is None:
            raise NotFound(f"Email not registered: {email}")
        return _identity_out(record)

    @app.patch("/identities/{email}")
    async def rename_identity(email: str, body: RenameIdentity):
        return _identity_out(await service.rename_identity(email, body.display_name))

    @app.delete("/identities/{email}", status_code=status.HTTP_204_NO_CONTENT)
    async def remove_identity(email: str):
        await service.remove_identity(email)

    # ─── Publications ─────────────────────────────────────────────────────────

    @app.post("/publications", status_code=status.HTTP_201_CREATED)
    async def create_publication(body: CreatePublication):
        data = PublicationData(
            title=body.title, content=body.content,
            authors=set(body.authors), links=set(body.links),
        )
        return _publication_out(await service.create_publication(body.kind, data))

    @app.get("/publications")
    async def list_publications(
        kind: Optional[PublicationKind] = None,
        page: int = 0,
        size: int = 20,
        newest_first: bool = True,
    ):
        result = await service.list_publications(kind, PageSpec(page=page, size=size, newest_first=newest_first))
        return _page_out(result, _publication_out)

    @app.get("/publications/search")
    async def search_publications(
        kind: Optional[PublicationKind] = None,
        title: Optional[str] = None,
        abstract: Optional[str] = None,
        author: Optional[str] = None,
        term: Optional[str] = None,
    ):
        if title is not None:
            found = await service.search_by_title(kind, title)
        elif abstract is not None:
            found = await service.search_by_abstract(kind, abstract)
        elif author is not None:
            found = await service.search_by_author(kind, author)
        elif term is not None:
            found = await service.search_everywhere(kind, term)
        else:
            raise ValidationError("One of title, abstract, author or term is required")
        return [_publication_out(p) for p in found]

    @app.get("/publications/{publication_id}")
    async def get_publication(publication_id: UUID):
        return _publication_out(await service.get_publication(publication_id))

    @app.put("/publications/{publication_id}")
    async def update_publication(publication_id: UUID, body: UpdatePublication):
        data = PublicationData(
            title=body.title, content=body.content,
            authors=set(body.authors), links=set(body.links),
        )
        return _publication_out(await service.update_publication(publication_id, data))

    @app.delete("/publications/{publication_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_publication(publication_id: UUID):
        await service.delete_publication(publication_id)

    @app.post("/publications/{publication_id}/support")
    async def add_publication_support(publication_id: UUID, body: SupportRequest):
        return _publication_out(await service.add_publication_support(publication_id, body.email))

    @app.delete("/publications/{publication_id}/support")
    async def remove_publication_support(publication_id: UUID, email: str):
        return _publication_out(await service.remove_publication_support(publication_id, email))

    @app.get("/publications/{publication_id}/support")
    async def publication_support(publication_id: UUID, email: Optional[str] = None):
        emails = await service.publication_support_emails(publication_id)
        out = {"count": len(emails), "emails": sorted(emails)}
        if email is not None:
            out["supported"] = await service.has_supported_publication(publication_id, email)
        return out

    # ─── Comments ─────────────────────────────────────────────────────────────

    @app.post("/publications/{publication_id}/comments", status_code=status.HTTP_201_CREATED)
    async def create_comment(publication_id: UUID, body: WriteComment):
        data = CommentData(
            user_name=body.user_name, content=body.content,
            email=body.email, parent_id=body.parent_id,
        )
        return _comment_out(await service.create_comment(publication_id, data))

    @app.get("/publications/{publication_id}/comments")
    async def list_publication_comments(
        publication_id: UUID,
        page: int = 0,
        size: int = 20,
        newest_first: bool = True,
    ):
        result = await service.comments_page(publication_id, PageSpec(page=page, size=size, newest_first=newest_first))
        return _page_out(result, _comment_out)

    @app.get("/publications/{publication_id}/comments/roots")
    async def root_comments(publication_id: UUID):
        return [_comment_out(c) for c in await service.root_comments(publication_id)]

    @app.get("/publications/{publication_id}/comments/thread")
    async def comment_thread(publication_id: UUID):
        return [_node_out(n) for n in await service.thread(publication_id)]

    @app.get("/publications/{publication_id}/comments/search")
    async def search_comments(
        publication_id: UUID,
        user_name: Optional[str] = None,
        email: Optional[str] = None,
        term: Optional[str] = None,
    ):
        if user_name is not None:
            found = await service.search_comments_by_user_name(user_name, publication_id)
        elif email is not None:
            found = await service.search_comments_by_email(email, publication_id)
        elif term is not None:
            found = await service.search_comment_content(term, publication_id)
        else:
            raise ValidationError("One of user_name, email or term is required")
        return [_comment_out(c) for c in found]

    @app.get("/comments")
    async def list_comments(page: int = 0, size: int = 20, newest_first: bool = True):
        result = await service.list_comments(PageSpec(page=page, size=size, newest_first=newest_first))
        return _page_out(result, _comment_out)

    @app.get("/comments/{comment_id}")
    async def get_comment(comment_id: UUID):
        return _comment_out(await service.get_comment(comment_id))

    @app.put("/comments/{comment_id}")
    async def update_comment(comment_id: UUID, body: WriteComment):
        data = CommentData(
            user_name=body.user_name, content=body.content,
            email=body.email, parent_id=body.parent_id,
        )
        return _comment_out(await service.update_comment(comment_id, data))

    @app.delete("/comments/{comment_id}")
    async def delete_comment(comment_id: UUID):
        removed = await service.delete_comment(comment_id)
        return {"deleted": [str(cid) for cid in removed]}

    @app.get("/comments/{comment_id}/replies")
    async def comment_replies(comment_id: UUID):
        return [_comment_out(c) for c in await service.replies(comment_id)]

    @app.post("/comments/{comment_id}/support")
    async def add_comment_support(comment_id: UUID, body: SupportRequest):
        return _comment_out(await service.add_comment_support(comment_id, body.email))

    @app.delete("/comments/{comment_id}/support")
    async def remove_comment_support(comment_id: UUID, email: str):
        return _comment_out(await service.remove_comment_support(comment_id, email))

    @app.get("/comments/{comment_id}/support")
    async def comment_support(comment_id: UUID, email: Optional[str] = None):
        emails = await service.comment_support_emails(comment_id)
        out = {"count": len(emails), "emails": sorted(emails)}
        if email is not None:
            out["supported"] = await service.has_supported_comment(comment_id, email)
        return out

    return app


app = create_app()
