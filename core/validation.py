"""
Semantic checks shared by every store and the service.

Shape is the transport's problem. These check meaning: blank where a value is
required, too many authors, an email that cannot be an email.
"""

import re
from typing import Iterable, Optional

from .errors import ValidationError
from .primitives import PageSpec, PublicationData, PublicationKind

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+$")

MAX_PAGE_SIZE = 100


def has_text(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def require_text(value: Optional[str], message: str) -> str:
    if not has_text(value):
        raise ValidationError(message)
    return value


def require_email(email: Optional[str]) -> str:
    """
    Blank and format check. No case folding, no trimming: the email is
    compared exactly as given everywhere else.
    """
    require_text(email, "Email is required")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email format: {email}")
    return email


def require_emails(emails: Optional[Iterable[str]]) -> list[str]:
    emails = list(emails or [])
    if not emails:
        raise ValidationError("Email list cannot be empty")
    return emails


def validate_publication(
    kind: PublicationKind,
    data: PublicationData,
    max_authors: int,
    max_links: int,
) -> None:
    if kind == PublicationKind.ANALOGY:
        require_text(data.title, "Analogy title is required")
        require_text(data.content, "Analogy content is required")
    else:
        require_text(data.content, "Research abstract is required")

    authors = set(data.authors or ())
    links = set(data.links or ())

    if not authors:
        raise ValidationError("At least one author is required")
    if len(authors) > max_authors:
        raise ValidationError(f"Maximum number of authors exceeded ({len(authors)} > {max_authors})")
    if any(not has_text(a) for a in authors):
        raise ValidationError("Author names cannot be blank")
    if len(links) > max_links:
        raise ValidationError(f"Maximum number of links exceeded ({len(links)} > {max_links})")


def validate_page(spec: PageSpec) -> PageSpec:
    if spec.page < 0:
        raise ValidationError("Page index cannot be negative")
    if not 1 <= spec.size <= MAX_PAGE_SIZE:
        raise ValidationError(f"Page size must be between 1 and {MAX_PAGE_SIZE}")
    return spec


def validate_limit(limit: int) -> int:
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    return limit
