"""
Shared fixtures: a fresh engagement database per test.
"""

import pytest
import pytest_asyncio

from core.primitives import PublicationKind
from core.service import EngagementService
from core.settings import Settings

from helpers import analogy_data


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(db_path=tmp_path / "engagement.db")


@pytest_asyncio.fixture
async def service(settings) -> EngagementService:
    svc = EngagementService(settings)
    await svc.init()
    return svc


@pytest_asyncio.fixture
async def publication(service):
    return await service.create_publication(PublicationKind.ANALOGY, analogy_data())


@pytest_asyncio.fixture
async def commenter(service):
    return await service.register("a@x.com", "Ada")
