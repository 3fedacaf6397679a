"""
Shared fixtures.

Database tests run against a throwaway SQLite file per test (aiosqlite).
NullPool keeps connections from leaking across event loops, which matters
for the TestClient-based API tests.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from intentguard.database import Base
from intentguard.models import records  # noqa: F401
from intentguard.services.scoring.models import CorpusDocument, DocumentRole
from intentguard.services.scoring.protocols import CorpusScorer
from intentguard.services.taxonomy.models import Category


# =============================================================================
# TAXONOMY HELPERS
# =============================================================================

def make_category(code, name, parent_code=None, depth=0, **kwargs) -> Category:
    return Category(code=code, name=name, parent_code=parent_code, depth=depth, **kwargs)


@pytest.fixture
def two_categories() -> list[Category]:
    return [
        make_category("A", "security", keywords=("auth", "token")),
        make_category("B", "testing", keywords=("pytest", "test")),
    ]


def intent(source_id: str, text: str, weight: float = 1.0) -> CorpusDocument:
    return CorpusDocument(source_id=source_id, role=DocumentRole.INTENT, text=text, weight=weight)


def reality(source_id: str, text: str, weight: float = 1.0) -> CorpusDocument:
    return CorpusDocument(source_id=source_id, role=DocumentRole.REALITY, text=text, weight=weight)


class TableScorer(CorpusScorer):
    """Scores from a lookup table: {text: {category name: score}}. Missing → 0."""

    def __init__(self, table: dict[str, dict[str, float]]):
        self.table = table

    def score(self, category, text) -> float:
        return self.table.get(text, {}).get(category.name, 0.0)


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'intentguard-test.db'}"


@pytest_asyncio.fixture
async def session_factory(database_url):
    engine = create_async_engine(database_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
