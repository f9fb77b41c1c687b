"""Test fixtures for the application."""

from datetime import datetime, UTC
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docqa.core.config import settings
from docqa.core.constants import AccessLevel
from docqa.db.base import Base
from docqa.db.models.document import Document
from docqa.db.models.owner import Owner


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """Create a clean database session for a test."""
    engine = create_async_engine(settings.TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def mock_db_session():
    """Mock the database session."""
    session = AsyncMock(spec=AsyncSession)

    mock_result = MagicMock()
    session.execute.return_value = mock_result
    mock_result.scalars.return_value.all.return_value = []
    mock_result.scalars.return_value.first.return_value = None

    return session


def make_owner(slug: str = "acme", chunk_limit: int = 50, forced_model: str | None = None) -> Owner:
    return Owner(
        id=f"owner-{slug}",
        slug=slug,
        name=slug.title(),
        default_chunk_limit=chunk_limit,
        forced_model=forced_model,
    )


def make_document(
    slug: str,
    owner: Owner | None = None,
    access_level: str = AccessLevel.PUBLIC.value,
    passcode: str | None = None,
    forced_model: str | None = None,
    title: str | None = None,
) -> Document:
    document = Document(
        id=f"doc-{slug}",
        slug=slug,
        title=title or slug.replace("-", " ").title(),
        owner_id=owner.id if owner else None,
        access_level=access_level,
        passcode=passcode,
        active=True,
        embedding_type="openai",
        forced_model=forced_model,
        doc_metadata={},
        created_at=datetime.now(UTC),
    )
    document.owner = owner
    return document


@pytest.fixture
def owner():
    return make_owner()


@pytest.fixture
def documents(owner) -> List[Document]:
    return [make_document("cardiology-manual", owner), make_document("renal-guide", owner)]
