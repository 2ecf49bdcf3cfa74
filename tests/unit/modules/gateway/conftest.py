import pytest_asyncio

from tests.factories import ProviderFactory


@pytest_asyncio.fixture
async def gemini(db_session):
    return await ProviderFactory.create_async(
        db_session, name="Gemini", api_keys=["gemini-upstream-1"]
    )
