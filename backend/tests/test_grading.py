"""
Tests for the grading engine and the grade history.
"""

import pytest

from intentguard.services.grading.engine import GradingEngine
from intentguard.services.grading.history import GradeHistory
from intentguard.services.grading.models import Grade, GradeBands, GradeRecord, Trend
from intentguard.services.matrix.models import PresenceMatrix, TrustDebtMatrix
from intentguard.services.scoring.models import DocumentRole


def matrix_with(categories, values, taxonomy_version=None) -> TrustDebtMatrix:
    categories = tuple(categories)
    return TrustDebtMatrix(
        categories=categories,
        values=values,
        intent=PresenceMatrix.zeros(DocumentRole.INTENT, categories),
        reality=PresenceMatrix.zeros(DocumentRole.REALITY, categories),
        reality_emphasis=1.5,
        intent_emphasis=1.8,
        taxonomy_version=taxonomy_version,
    )


@pytest.fixture
def engine():
    return GradingEngine(bands=GradeBands(500, 1500, 3000), health_reference_units=500)


# =============================================================================
# TRIANGLES + BANDS
# =============================================================================

def test_sum_triangles_is_additive(engine, two_categories):
    td = matrix_with(two_categories, [[80.0, 120.0], [300.0, 0.0]])

    sums = engine.sum_triangles(td)

    assert (sums.upper_sum, sums.lower_sum, sums.diagonal_sum) == (120.0, 300.0, 80.0)
    assert sums.total_units == 500.0
    assert sums.asymmetry_ratio == pytest.approx(0.4)


def test_asymmetry_ratio_undefined_without_lower_debt(engine, two_categories):
    sums = engine.sum_triangles(matrix_with(two_categories, [[0.0, 10.0], [0.0, 0.0]]))

    assert sums.asymmetry_ratio is None


@pytest.mark.parametrize(
    "units, expected",
    [
        (0, Grade.A),
        (500, Grade.A),
        (500.01, Grade.B),
        (1500, Grade.B),
        (2999.9, Grade.C),
        (3000, Grade.C),
        (3000.1, Grade.D),
    ],
)
def test_grade_bands_are_inclusive(engine, units, expected):
    assert engine.classify(units) == expected


def test_bands_must_ascend():
    with pytest.raises(ValueError):
        GradeBands(a_max=1500, b_max=500, c_max=3000)


# =============================================================================
# MONOTONICITY
# =============================================================================

def test_more_debt_never_improves_grade_or_health(engine, two_categories):
    previous_rank = -1
    previous_health = 2.0

    for bump in [0, 100, 400, 1200, 2500, 5000]:
        td = matrix_with(two_categories, [[0.0, 50.0 + bump], [20.0, 10.0]])
        record = engine.grade(td)
        health = engine.per_category_score(td, 0)

        assert record.grade.rank >= previous_rank, f"Grade improved at bump={bump}"
        assert health <= previous_health, f"Health improved at bump={bump}"
        previous_rank = record.grade.rank
        previous_health = health

    assert previous_rank == Grade.D.rank


def test_per_category_health(engine, two_categories):
    small = matrix_with(two_categories, [[0.0, 100.0], [0.0, 0.0]])
    large = matrix_with(two_categories, [[0.0, 1000.0], [0.0, 0.0]])

    # total below the reference floor: 1 - 100/500
    assert engine.per_category_score(small, 0) == pytest.approx(0.8)
    assert engine.per_category_score(small, 1) == pytest.approx(0.8)
    # all debt touches this category: 1 - 1000/1000
    assert engine.per_category_score(large, 0) == pytest.approx(0.0)


def test_grade_record_carries_breakdown(engine, two_categories):
    td = matrix_with(two_categories, [[0.0, 100.0], [0.0, 0.0]], taxonomy_version=4)

    record = engine.grade(td, subject="repo-main", orthogonality_score=0.9)

    assert record.subject == "repo-main"
    assert record.taxonomy_version == 4
    assert record.orthogonality_score == 0.9
    assert [s.name for s in record.category_scores] == ["security", "testing"]
    assert record.score_for(two_categories[0].stable_id).units == 100.0


# =============================================================================
# HISTORY
# =============================================================================

def record(units, subject="repo"):
    return GradeRecord(
        total_units=units,
        grade=Grade.A,
        upper_sum=units,
        lower_sum=0.0,
        diagonal_sum=0.0,
        subject=subject,
    )


def test_history_is_append_only_timeline():
    history = GradeHistory()
    engine = GradingEngine(history=history)

    engine.append_history(record(100))
    engine.append_history(record(50, subject="other"))
    engine.append_history(record(80))

    assert len(history) == 3
    assert [r.total_units for r in history.timeline("repo")] == [100, 80]
    assert history.latest().subject == "repo"
    assert history.latest("other").total_units == 50
    assert history.latest("missing") is None


@pytest.mark.parametrize(
    "units, expected",
    [
        ([100], Trend.STABLE),
        ([100, 80], Trend.IMPROVING),
        ([80, 100], Trend.DEGRADING),
        ([100, 100], Trend.STABLE),
    ],
)
def test_trend_compares_last_two(units, expected):
    history = GradeHistory()
    for value in units:
        history.append(record(value))

    assert history.trend() == expected
