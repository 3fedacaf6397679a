"""
Tests for the end-to-end trust debt pipeline (no database).
"""

import pytest

from conftest import TableScorer, intent, reality
from intentguard.services.grading.engine import GradingEngine
from intentguard.services.matrix.builder import EmptyTaxonomyError
from intentguard.services.pipeline import TrustDebtPipeline, run_trust_debt_pipeline
from intentguard.services.scoring.keyword_scorer import KeywordScorer
from intentguard.services.taxonomy.manager import TaxonomyManager


@pytest.fixture
def manager(two_categories):
    manager = TaxonomyManager()
    manager.register(two_categories).raise_for_errors()
    return manager


DOCUMENTS = [
    intent("README.md", "auth token pytest"),
    reality("src/auth.py", "auth token"),
]


class RecordingScorer(TableScorer):
    """Table scorer that remembers prepare() calls."""

    def __init__(self, table):
        super().__init__(table)
        self.prepared = []

    async def prepare(self, categories, documents):
        self.prepared.append((len(categories), len(documents)))
        return 0


@pytest.mark.asyncio
async def test_pipeline_runs_all_stages(manager):
    grading = GradingEngine()
    pipeline = TrustDebtPipeline(manager, KeywordScorer(), grading=grading)

    result = await pipeline.run("repo-main", DOCUMENTS)

    assert result.snapshot.version == manager.version
    assert result.build.trust_debt.size == 2
    assert result.orthogonality is not None
    assert result.record.subject == "repo-main"
    assert result.record.taxonomy_version == manager.version
    # testing is documented but never shows up in reality
    assert result.record.total_units > 0
    assert result.identity.dimensions == ("security", "testing")
    assert 0.0 <= result.identity.sovereignty_score <= 1.0
    assert grading.history.latest("repo-main") is result.record


@pytest.mark.asyncio
async def test_pipeline_prepares_scorer_and_can_skip_orthogonality(manager):
    scorer = RecordingScorer({"auth token pytest": {"security": 1.0}})
    pipeline = TrustDebtPipeline(manager, scorer, check_orthogonality=False)

    result = await pipeline.run("repo-main", DOCUMENTS)

    assert scorer.prepared == [(2, 2)]
    assert result.orthogonality is None
    assert result.record.orthogonality_score is None


@pytest.mark.asyncio
async def test_pipeline_refuses_empty_taxonomy():
    with pytest.raises(EmptyTaxonomyError):
        await run_trust_debt_pipeline("repo-main", DOCUMENTS, TaxonomyManager(), KeywordScorer())


@pytest.mark.asyncio
async def test_identical_corpora_have_no_debt(manager):
    documents = [intent("a", "auth token pytest"), reality("b", "auth token pytest")]

    result = await run_trust_debt_pipeline("mirror", documents, manager, KeywordScorer())

    assert result.record.total_units == 0.0
    assert all(s.health_score == 1.0 for s in result.record.category_scores)
