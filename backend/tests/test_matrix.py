"""
Tests for presence and trust debt matrix construction.
"""

import random

import pytest

from conftest import TableScorer, intent, make_category, reality
from intentguard.services.grading.engine import GradingEngine
from intentguard.services.matrix.builder import EmptyTaxonomyError, MatrixBuilder
from intentguard.services.matrix.models import CellRegion, PresenceMatrix
from intentguard.services.scoring.keyword_scorer import KeywordScorer
from intentguard.services.scoring.models import DocumentRole
from intentguard.services.taxonomy.models import TaxonomySnapshot


@pytest.fixture
def snapshot(two_categories):
    return TaxonomySnapshot(version=3, categories=tuple(two_categories))


def builder_for(scorer, reality_emphasis=1.5, intent_emphasis=1.8):
    return MatrixBuilder(
        scorer,
        reality_emphasis=reality_emphasis,
        intent_emphasis=intent_emphasis,
        diagonal_self_boost=0.5,
        max_workers=1,
    )


# =============================================================================
# PRESENCE + TRUST DEBT VALUES
# =============================================================================

def test_worked_example_values(snapshot):
    """
    intent doc:  security=1, testing=0
    reality doc: security=1, testing=1
    """
    scorer = TableScorer({
        "spec": {"security": 1.0},
        "code": {"security": 1.0, "testing": 1.0},
    })

    result = builder_for(scorer).build(snapshot, [intent("s", "spec"), reality("c", "code")])

    assert result.intent.values == [[1.5, 0.0], [0.0, 0.0]]
    assert result.reality.values == [[1.5, 1.0], [1.0, 1.5]]

    td = result.trust_debt
    assert td.value(0, 0) == pytest.approx(0.0)
    assert td.value(0, 1) == pytest.approx(1.0 * 1.5)
    assert td.value(1, 0) == pytest.approx(1.0 * 1.8)
    assert td.value(1, 1) == pytest.approx(1.5)
    assert td.taxonomy_version == 3


def test_axes_symmetric_values_asymmetric(snapshot):
    scorer = TableScorer({
        "spec": {"security": 1.0},
        "code": {"security": 1.0, "testing": 1.0},
    })

    td = builder_for(scorer).build(snapshot, [intent("s", "spec"), reality("c", "code")]).trust_debt

    assert td.row_labels == td.column_labels == ["A", "B"]
    assert td.value(0, 1) != td.value(1, 0)
    assert td.region(0, 0) == CellRegion.DIAGONAL
    assert td.region(0, 1) == CellRegion.UPPER
    assert td.region(1, 0) == CellRegion.LOWER


def test_mirrored_presence_gives_positive_debt(two_categories):
    """
    Reality is intent transposed. A subtractive |upper - lower| metric
    calls this zero; the additive total does not.
    """
    categories = tuple(two_categories)
    intent_matrix = PresenceMatrix(DocumentRole.INTENT, categories, [[0.0, 2.0], [0.0, 0.0]], 1)
    reality_matrix = PresenceMatrix(DocumentRole.REALITY, categories, [[0.0, 0.0], [2.0, 0.0]], 1)

    builder = builder_for(TableScorer({}), reality_emphasis=1.0, intent_emphasis=1.0)
    td = builder.build_trust_debt_matrix(intent_matrix, reality_matrix)
    sums = GradingEngine().sum_triangles(td)

    assert sums.upper_sum - sums.lower_sum == pytest.approx(0.0)
    assert sums.total_units > 0


def test_lower_cells_explain_from_mirrored_presence(snapshot, two_categories):
    scorer = TableScorer({
        "spec": {"security": 1.0},
        "code": {"security": 1.0, "testing": 1.0},
    })
    td = builder_for(scorer).build(snapshot, [intent("s", "spec"), reality("c", "code")]).trust_debt
    security, testing = two_categories

    cell = td.cell_by_ids(testing.stable_id, security.stable_id)

    assert cell.region == CellRegion.LOWER
    assert (cell.row_code, cell.col_code) == ("B", "A")
    assert cell.intent_value == 0.0
    assert cell.reality_value == 1.0
    assert len(td.cells()) == 4


# =============================================================================
# EDGE CASES
# =============================================================================

def test_no_documents_gives_zero_matrices(snapshot):
    result = builder_for(KeywordScorer()).build(snapshot, [])

    assert result.intent.document_count == 0
    assert result.trust_debt.values == [[0.0, 0.0], [0.0, 0.0]]


def test_missing_intent_corpus_is_recorded_as_debt(snapshot):
    result = builder_for(KeywordScorer()).build(snapshot, [reality("c", "auth token pytest")])

    assert result.intent.document_count == 0
    assert result.trust_debt.value(0, 0) > 0, "Undocumented reality is debt"


def test_empty_snapshot_is_rejected():
    with pytest.raises(EmptyTaxonomyError):
        builder_for(KeywordScorer()).build(TaxonomySnapshot(version=0, categories=()), [])


def test_mismatched_axes_are_rejected(two_categories):
    a = PresenceMatrix.zeros(DocumentRole.INTENT, tuple(two_categories))
    b = PresenceMatrix.zeros(DocumentRole.REALITY, (make_category("Z", "other"),))

    with pytest.raises(ValueError):
        builder_for(KeywordScorer()).build_trust_debt_matrix(a, b)


# =============================================================================
# REPRODUCIBILITY
# =============================================================================

def test_build_is_independent_of_document_order_and_threads(snapshot):
    documents = [
        intent(f"spec-{k}", text)
        for k, text in enumerate(["auth token", "pytest coverage", "auth test", "token rotation"])
    ] + [
        reality(f"commit-{k}", text, weight=0.5 + k / 10)
        for k, text in enumerate(["auth", "pytest pytest", "token test auth", "refactor"])
    ]
    shuffled = list(documents)
    random.Random(7).shuffle(shuffled)

    inline = MatrixBuilder(KeywordScorer(), max_workers=1).build(snapshot, documents)
    threaded = MatrixBuilder(KeywordScorer(), max_workers=4).build(snapshot, shuffled)

    assert inline.trust_debt.values == threaded.trust_debt.values
    assert inline.intent.values == threaded.intent.values
