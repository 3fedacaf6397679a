"""
Tests for the corpus scorers.

The embedding scorer is exercised with a fake client exposing the same
`embeddings.create` shape as AsyncOpenAI, so no network access is needed.
"""

import math
from types import SimpleNamespace

import pytest

from conftest import TableScorer, intent, make_category
from intentguard.services.matrix.builder import MatrixBuilder
from intentguard.services.scoring.embedding_scorer import EmbeddingScorer, category_descriptor
from intentguard.services.scoring.keyword_scorer import KeywordScorer
from intentguard.services.scoring.protocols import ScorerContractError, ensure_valid_score
from intentguard.services.taxonomy.models import TaxonomySnapshot


# =============================================================================
# KEYWORD SCORER
# =============================================================================

def test_keyword_score_combines_coverage_and_frequency():
    category = make_category("A", "security", keywords=("auth", "token", "secret"))
    text = "Rotate the auth token. Auth must never log tokens."

    score = KeywordScorer().score(category, text)

    # coverage 2/3, frequency min(1, 4/6)
    assert score == pytest.approx(2 / 3 * 0.7 + 2 / 3 * 0.3)


def test_keyword_matches_word_starts_only():
    category = make_category("A", "testing", keywords=("test",))
    scorer = KeywordScorer()

    assert scorer.score(category, "the latest release") == 0.0
    assert scorer.score(category, "Testing matters") > 0.0


def test_keyword_starting_with_punctuation_matches():
    category = make_category("A", "configuration", keywords=(".env", "@app"))
    scorer = KeywordScorer()

    assert scorer.score(category, ".env holds the secrets") > 0.0
    assert scorer.score(category, "routes live under @app") > 0.0
    # still anchored: no match glued onto a preceding word
    assert scorer.score(category, "prod.env and my@app") == 0.0


def test_keyword_overrides_and_name_fallback():
    declared = make_category("A", "security", keywords=("auth",))
    unnamed = make_category("B", "code_quality")
    scorer = KeywordScorer(keyword_overrides={"security": ["vault"]})

    assert scorer.keywords_for(declared) == ["vault"]
    assert scorer.keywords_for(unnamed) == ["code", "quality"]
    assert scorer.score(declared, "auth auth auth") == 0.0


def test_keyword_empty_text_scores_zero():
    assert KeywordScorer().score(make_category("A", "security"), "") == 0.0


# =============================================================================
# CONTRACT
# =============================================================================

@pytest.mark.parametrize("bad", [-0.1, math.nan, math.inf])
def test_contract_rejects_invalid_scores(bad):
    with pytest.raises(ScorerContractError):
        ensure_valid_score(bad, make_category("A", "security"), "doc-1")


def test_builder_surfaces_contract_breach():
    category = make_category("A", "security")
    scorer = TableScorer({"bad doc": {"security": -1.0}})
    snapshot = TaxonomySnapshot(version=1, categories=(category,))

    with pytest.raises(ScorerContractError):
        MatrixBuilder(scorer).build(snapshot, [intent("x", "bad doc")])


# =============================================================================
# EMBEDDING SCORER
# =============================================================================

def fake_openai(vectors: dict[str, list[float]]):
    """Stand-in for AsyncOpenAI: embeddings.create returns vectors by text."""
    calls = []

    async def create(model, input):
        calls.append(list(input))
        return SimpleNamespace(data=[SimpleNamespace(embedding=vectors[text]) for text in input])

    return SimpleNamespace(embeddings=SimpleNamespace(create=create)), calls


@pytest.mark.asyncio
async def test_embedding_scorer_prepares_once_and_scores_by_cosine():
    category = make_category("A", "security", keywords=("auth",))
    descriptor = category_descriptor(category)
    assert descriptor == "security: auth"

    client, calls = fake_openai({
        descriptor: [1.0, 0.0],
        "aligned doc": [2.0, 0.0],
        "opposite doc": [-1.0, 0.0],
    })
    scorer = EmbeddingScorer(client=client, model="test-model")
    documents = [intent("1", "aligned doc"), intent("2", "opposite doc")]

    prepared = await scorer.prepare([category], documents)
    assert prepared == 3
    assert await scorer.prepare([category], documents) == 0, "Cached texts are not re-embedded"
    assert len(calls) == 1

    assert scorer.score(category, "aligned doc") == pytest.approx(1.0)
    assert scorer.score(category, "opposite doc") == 0.0, "Negative similarity floors at 0"


@pytest.mark.asyncio
async def test_embedding_scorer_requires_prepare():
    client, _ = fake_openai({})
    scorer = EmbeddingScorer(client=client, model="test-model")

    with pytest.raises(KeyError):
        scorer.score(make_category("A", "security"), "never embedded")


@pytest.mark.asyncio
async def test_embedding_scorer_skips_empty_documents():
    category = make_category("A", "security", keywords=("auth",))
    client, calls = fake_openai({category_descriptor(category): [1.0, 0.0], "auth doc": [1.0, 0.0]})
    scorer = EmbeddingScorer(client=client, model="test-model")

    prepared = await scorer.prepare([category], [intent("1", "auth doc"), intent("2", "")])

    assert prepared == 2
    assert "" not in calls[0], "Empty text was sent for embedding"
    assert scorer.score(category, "") == 0.0
