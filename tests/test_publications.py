from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from core.errors import NotFound, ValidationError
from core.primitives import PageSpec, PublicationData, PublicationKind
from core.service import EngagementService
from core.settings import Settings

from helpers import analogy_data


@pytest.mark.asyncio
async def test_create_assigns_identity_and_empty_support(service) -> None:
    p = await service.create_publication(PublicationKind.ANALOGY, analogy_data(links=["https://nature.com/x"]))

    stored = await service.get_publication(p.id)
    assert stored.id == p.id
    assert stored.kind == PublicationKind.ANALOGY
    assert stored.authors == {"Ada"}
    assert stored.links == {"https://nature.com/x"}
    assert stored.support_emails == set()
    assert stored.support_count == 0
    assert stored.created_at == p.created_at


@pytest.mark.asyncio
async def test_author_boundaries(service) -> None:
    ten = [f"Author {i}" for i in range(10)]
    p = await service.create_publication(PublicationKind.ANALOGY, analogy_data(authors=ten))
    assert len(p.authors) == 10

    with pytest.raises(ValidationError):
        await service.create_publication(PublicationKind.ANALOGY, analogy_data(authors=ten + ["Author 10"]))
    with pytest.raises(ValidationError):
        await service.create_publication(PublicationKind.ANALOGY, analogy_data(authors=[]))


@pytest.mark.asyncio
async def test_link_boundaries(service) -> None:
    five = [f"https://example.org/{i}" for i in range(5)]
    await service.create_publication(PublicationKind.ANALOGY, analogy_data(links=five))

    with pytest.raises(ValidationError):
        await service.create_publication(PublicationKind.ANALOGY, analogy_data(links=five + ["https://example.org/5"]))


@pytest.mark.asyncio
async def test_limits_come_from_settings(tmp_path) -> None:
    svc = EngagementService(Settings(db_path=tmp_path / "limits.db", max_authors=2, max_links=0))
    await svc.init()

    await svc.create_publication(PublicationKind.ANALOGY, analogy_data(authors=["A", "B"]))
    with pytest.raises(ValidationError):
        await svc.create_publication(PublicationKind.ANALOGY, analogy_data(authors=["A", "B", "C"]))
    with pytest.raises(ValidationError):
        await svc.create_publication(PublicationKind.ANALOGY, analogy_data(links=["https://a.org"]))


@pytest.mark.asyncio
@pytest.mark.parametrize("title, content", [("", "body"), ("   ", "body"), ("T", ""), ("T", "  ")])
async def test_analogy_requires_title_and_content(service, title, content) -> None:
    with pytest.raises(ValidationError):
        await service.create_publication(PublicationKind.ANALOGY, analogy_data(title=title, content=content))


@pytest.mark.asyncio
async def test_research_requires_abstract_but_not_title(service) -> None:
    r = await service.create_publication(
        PublicationKind.RESEARCH,
        PublicationData(content="We measured things.", authors={"Grace"}),
    )
    assert r.kind == PublicationKind.RESEARCH
    assert r.title == ""

    with pytest.raises(ValidationError):
        await service.create_publication(PublicationKind.RESEARCH, PublicationData(content=" ", authors={"Grace"}))


@pytest.mark.asyncio
async def test_update_keeps_created_at_and_supporters(service, publication) -> None:
    await service.register("a@x.com")
    await service.add_publication_support(publication.id, "a@x.com")

    updated = await service.update_publication(
        publication.id,
        PublicationData(title="New", content="New body", authors={"Bob", "Eve"}, links={"https://b.org"}),
    )

    assert updated.title == "New"
    assert updated.authors == {"Bob", "Eve"}
    assert updated.links == {"https://b.org"}
    assert updated.created_at == publication.created_at
    assert updated.support_emails == {"a@x.com"}


@pytest.mark.asyncio
async def test_update_validates_and_requires_existing(service, publication) -> None:
    with pytest.raises(NotFound):
        await service.update_publication(uuid4(), analogy_data())
    with pytest.raises(ValidationError):
        await service.update_publication(publication.id, analogy_data(authors=[]))

    unchanged = await service.get_publication(publication.id)
    assert unchanged.authors == {"Ada"}


@pytest.mark.asyncio
async def test_get_and_delete_unknown_publication(service) -> None:
    with pytest.raises(NotFound):
        await service.get_publication(uuid4())
    with pytest.raises(NotFound):
        await service.delete_publication(uuid4())


@pytest.mark.asyncio
async def test_searches_are_case_insensitive_substrings(service) -> None:
    climate = await service.create_publication(
        PublicationKind.ANALOGY,
        analogy_data(title="Climate as a bathtub", authors=["Jane Smith"], content="Stocks and flows"),
    )
    await service.create_publication(
        PublicationKind.ANALOGY,
        analogy_data(title="Cells as factories", authors=["Kim Lee"], content="Ribosomes"),
    )

    assert [p.id for p in await service.search_by_title(PublicationKind.ANALOGY, "CLIMATE")] == [climate.id]
    assert [p.id for p in await service.search_by_author(None, "smith")] == [climate.id]
    assert [p.id for p in await service.search_by_abstract(None, "flows")] == [climate.id]
    assert [p.id for p in await service.search_everywhere(None, "jane")] == [climate.id]
    assert len(await service.search_everywhere(None, "as")) == 2
    assert await service.search_by_title(PublicationKind.RESEARCH, "climate") == []


@pytest.mark.asyncio
async def test_searches_fold_accented_letters(service) -> None:
    tree = await service.create_publication(
        PublicationKind.ANALOGY,
        analogy_data(title="ÁRBOL de Ñandú", authors=["José Álvarez"], content="RAÍCES PROFUNDAS"),
    )
    await service.create_publication(PublicationKind.ANALOGY, analogy_data(title="Arbol sin tilde"))

    assert [p.id for p in await service.search_by_title(None, "árbol")] == [tree.id]
    assert [p.id for p in await service.search_by_author(None, "álvarez")] == [tree.id]
    assert [p.id for p in await service.search_by_abstract(None, "raíces")] == [tree.id]
    assert [p.id for p in await service.search_everywhere(None, "ñandú")] == [tree.id]
    assert [p.id for p in await service.search_everywhere(None, "JOSÉ")] == [tree.id]


@pytest.mark.asyncio
async def test_search_text_with_wildcard_characters_is_literal(service) -> None:
    await service.create_publication(PublicationKind.ANALOGY, analogy_data(title="Plain"))
    assert await service.search_by_title(None, "%") == []
    assert await service.search_by_title(None, "_") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "  "])
async def test_blank_search_text_is_rejected(service, text) -> None:
    with pytest.raises(ValidationError):
        await service.search_by_title(None, text)
    with pytest.raises(ValidationError):
        await service.search_by_author(None, text)
    with pytest.raises(ValidationError):
        await service.search_everywhere(None, text)


@pytest.mark.asyncio
async def test_paging_and_latest(service) -> None:
    created = [
        await service.create_publication(PublicationKind.ANALOGY, analogy_data(title=f"T{i}"))
        for i in range(5)
    ]
    await service.create_publication(PublicationKind.RESEARCH, PublicationData(content="R", authors={"R"}))

    first = await service.list_publications(PublicationKind.ANALOGY, PageSpec(page=0, size=2))
    assert first.total == 5
    assert first.total_pages == 3
    assert [p.title for p in first.items] == ["T4", "T3"]

    last = await service.list_publications(PublicationKind.ANALOGY, PageSpec(page=2, size=2))
    assert [p.title for p in last.items] == ["T0"]

    oldest = await service.list_publications(PublicationKind.ANALOGY, PageSpec(size=1, newest_first=False))
    assert oldest.items[0].id == created[0].id

    everything = await service.list_publications(None, PageSpec(size=10))
    assert everything.total == 6

    latest = await service.latest_publications(PublicationKind.ANALOGY, 2)
    assert [p.title for p in latest] == ["T4", "T3"]


@pytest.mark.asyncio
async def test_bad_page_spec_is_rejected(service) -> None:
    with pytest.raises(ValidationError):
        await service.list_publications(None, PageSpec(page=-1))
    with pytest.raises(ValidationError):
        await service.list_publications(None, PageSpec(size=0))
    with pytest.raises(ValidationError):
        await service.latest_publications(None, 0)


@pytest.mark.asyncio
async def test_most_supported_orders_by_supporter_count(service) -> None:
    await service.register_many(["a@x.com", "b@x.com"])
    quiet = await service.create_publication(PublicationKind.ANALOGY, analogy_data(title="quiet"))
    loud = await service.create_publication(PublicationKind.ANALOGY, analogy_data(title="loud"))
    await service.add_publication_support(loud.id, "a@x.com")
    await service.add_publication_support(loud.id, "b@x.com")
    await service.add_publication_support(quiet.id, "a@x.com")

    ranked = await service.most_supported_publications(PublicationKind.ANALOGY, 5)
    assert [p.id for p in ranked] == [loud.id, quiet.id]


@pytest.mark.asyncio
async def test_link_domain_and_date_range(service) -> None:
    p = await service.create_publication(
        PublicationKind.ANALOGY, analogy_data(links=["https://www.Nature.com/articles/1"])
    )
    await service.create_publication(PublicationKind.ANALOGY, analogy_data(links=["https://arxiv.org/abs/1"]))

    assert [x.id for x in await service.find_by_link_domain(None, "nature.com")] == [p.id]

    now = datetime.now(timezone.utc)
    in_range = await service.publications_created_between(None, now - timedelta(hours=1), now + timedelta(hours=1))
    assert len(in_range) == 2
    assert await service.publications_created_between(None, now + timedelta(hours=1), now + timedelta(hours=2)) == []

    with pytest.raises(ValidationError):
        await service.publications_created_between(None, now, now - timedelta(days=1))
