"""
Support behaves the same on publications and comments. Each case runs
against both through a small adapter.
"""

import asyncio
from uuid import uuid4

import pytest
import pytest_asyncio

from core.errors import NotFound, Unauthorized, ValidationError

from helpers import comment_data


class _Target:
    def __init__(self, service, item_id, kind):
        self.service = service
        self.id = item_id
        self.kind = kind

    def add(self, email, item_id=None):
        fn = getattr(self.service, f"add_{self.kind}_support")
        return fn(item_id or self.id, email)

    def remove(self, email, item_id=None):
        fn = getattr(self.service, f"remove_{self.kind}_support")
        return fn(item_id or self.id, email)

    def count(self, item_id=None):
        return getattr(self.service, f"{self.kind}_support_count")(item_id or self.id)

    def emails(self, item_id=None):
        return getattr(self.service, f"{self.kind}_support_emails")(item_id or self.id)

    def has(self, email):
        return getattr(self.service, f"has_supported_{self.kind}")(self.id, email)

    def supported_ids(self, email):
        return getattr(self.service, f"supported_{self.kind}_ids")(email)


@pytest_asyncio.fixture(params=["publication", "comment"])
async def target(request, service, publication, commenter):
    if request.param == "publication":
        return _Target(service, publication.id, "publication")
    comment = await service.create_comment(publication.id, comment_data())
    return _Target(service, comment.id, "comment")


@pytest.mark.asyncio
async def test_add_twice_is_a_no_op(target) -> None:
    once = await target.add("a@x.com")
    twice = await target.add("a@x.com")

    assert once.support_emails == {"a@x.com"}
    assert twice.support_emails == {"a@x.com"}
    assert await target.count() == 1


@pytest.mark.asyncio
async def test_remove_non_member_is_a_no_op(target) -> None:
    result = await target.remove("a@x.com")

    assert result.support_emails == set()
    assert await target.count() == 0


@pytest.mark.asyncio
async def test_unregistered_email_cannot_add(target) -> None:
    with pytest.raises(Unauthorized):
        await target.add("b@x.com")
    assert await target.emails() == set()


@pytest.mark.asyncio
async def test_unregistered_email_can_still_retract(target) -> None:
    await target.add("a@x.com")
    await target.service.remove_identity("a@x.com")

    result = await target.remove("a@x.com")
    assert result.support_emails == set()
    assert await target.has("a@x.com") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["", "   ", "no-at-sign", "two@@x.com"])
async def test_malformed_email_is_a_validation_error(target, email) -> None:
    with pytest.raises(ValidationError):
        await target.add(email)
    with pytest.raises(ValidationError):
        await target.remove(email)


@pytest.mark.asyncio
async def test_unknown_item_is_not_found(target) -> None:
    missing = uuid4()
    with pytest.raises(NotFound):
        await target.add("a@x.com", item_id=missing)
    with pytest.raises(NotFound):
        await target.remove("a@x.com", item_id=missing)
    with pytest.raises(NotFound):
        await target.count(item_id=missing)
    with pytest.raises(NotFound):
        await target.emails(item_id=missing)


@pytest.mark.asyncio
async def test_count_always_matches_emails(target) -> None:
    await target.service.register_many(["b@x.com", "c@x.com"])
    steps = [
        ("add", "a@x.com"), ("add", "b@x.com"), ("add", "a@x.com"),
        ("remove", "c@x.com"), ("add", "c@x.com"), ("remove", "a@x.com"),
    ]
    for op, email in steps:
        await getattr(target, op)(email)
        assert await target.count() == len(await target.emails())

    assert await target.emails() == {"b@x.com", "c@x.com"}


@pytest.mark.asyncio
async def test_supported_ids_by_email(target) -> None:
    await target.add("a@x.com")
    assert await target.supported_ids("a@x.com") == [target.id]

    await target.remove("a@x.com")
    assert await target.supported_ids("a@x.com") == []


@pytest.mark.asyncio
async def test_concurrent_adds_for_same_pair_count_once(target) -> None:
    await asyncio.gather(*(target.add("a@x.com") for _ in range(8)))
    assert await target.count() == 1
    assert await target.emails() == {"a@x.com"}
