import pytest

from core.errors import NotFound, ValidationError


@pytest.mark.asyncio
async def test_register_is_idempotent(service) -> None:
    first = await service.register("a@x.com", "Ada")
    second = await service.register("a@x.com", "Someone else")

    assert second.email == first.email
    assert second.display_name == "Ada"
    assert second.registered_at == first.registered_at
    assert await service.count_registered() == 1


@pytest.mark.asyncio
async def test_is_registered_matches_exact_string(service) -> None:
    await service.register("a@x.com")

    assert await service.is_registered("a@x.com") is True
    assert await service.is_registered("A@x.com") is False
    assert await service.is_registered(" a@x.com") is False


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["", "   "])
async def test_blank_email_is_rejected(service, email) -> None:
    with pytest.raises(ValidationError):
        await service.is_registered(email)
    with pytest.raises(ValidationError):
        await service.register(email)


@pytest.mark.asyncio
async def test_remove_unknown_email_is_a_no_op(service) -> None:
    await service.remove_identity("ghost@x.com")
    assert await service.count_registered() == 0


@pytest.mark.asyncio
async def test_remove_then_lookup(service) -> None:
    await service.register("a@x.com")
    await service.remove_identity("a@x.com")

    assert await service.lookup("a@x.com") is None
    assert await service.is_registered("a@x.com") is False


@pytest.mark.asyncio
async def test_rename_changes_only_display_name(service) -> None:
    original = await service.register("a@x.com", "Ada")
    renamed = await service.rename_identity("a@x.com", "Ada L.")

    assert renamed.display_name == "Ada L."
    assert renamed.registered_at == original.registered_at

    with pytest.raises(NotFound):
        await service.rename_identity("ghost@x.com", "Nobody")


@pytest.mark.asyncio
async def test_bulk_registration_and_status(service) -> None:
    await service.register_many(["a@x.com", "b@x.com", "a@x.com"])

    assert await service.registered_emails() == ["a@x.com", "b@x.com"]

    statuses = await service.check_registration(["a@x.com", "c@x.com"])
    assert [(s.email, s.registered) for s in statuses] == [("a@x.com", True), ("c@x.com", False)]

    await service.remove_many(["a@x.com", "c@x.com"])
    assert await service.registered_emails() == ["b@x.com"]

    assert await service.remove_all_identities() == 1
    assert await service.count_registered() == 0


@pytest.mark.asyncio
async def test_bulk_operations_reject_empty_lists(service) -> None:
    with pytest.raises(ValidationError):
        await service.register_many([])
    with pytest.raises(ValidationError):
        await service.remove_many([])
    with pytest.raises(ValidationError):
        await service.check_registration([])
