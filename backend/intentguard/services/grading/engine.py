"""
Grading Engine.

WHAT THIS DOES:
Reduces a trust debt matrix to a single number of "units", a letter grade,
and a per-category health breakdown that later becomes the identity vector.

FORMULA:
    total_units = upper_sum + lower_sum + diagonal_sum

Additive on purpose. The alternative |upper - lower| reports ZERO debt for
a project that is broken equally in both directions (lots of undocumented
coupling AND lots of broken promises). Adding the triangles means every
unit of divergence counts, in whichever direction it points.

GRADE BANDS (configurable, defaults):
    A ≤ 500 < B ≤ 1500 < C ≤ 3000 < D

PER-CATEGORY HEALTH:
    units_k  = Σ row k + Σ column k - diagonal k     (diagonal counted once)
    health_k = 1 - units_k / max(total_units, health_reference_units)

Clamped to [0, 1]. Raising any cell in row/column k raises units_k at
least as fast as the denominator, so health never goes up when debt does.

EXAMPLE:
    upper = 120, lower = 300, diagonal = 80
    total = 500 → grade A (boundary is inclusive)

USAGE:
    engine = GradingEngine()
    record = engine.grade(matrix, subject="repo-main")
    engine.append_history(record)
"""

import logging
from typing import Optional

from intentguard.config import get_settings
from intentguard.services.grading.history import GradeHistory
from intentguard.services.grading.models import (
    CategoryScore,
    Grade,
    GradeBands,
    GradeRecord,
    TriangleSums,
)
from intentguard.services.matrix.models import TrustDebtMatrix

logger = logging.getLogger(__name__)


class GradingEngine:
    """
    Turns trust debt matrices into grade records.

    Pipeline position:
    MatrixBuilder → [GradingEngine] → identity derivation → PermissionEngine
    """

    def __init__(
        self,
        bands: Optional[GradeBands] = None,
        health_reference_units: Optional[float] = None,
        history: Optional[GradeHistory] = None,
    ):
        """
        Initialize the grading engine.

        Args:
            bands: Grade boundaries. Defaults to config values.
            health_reference_units: Floor for the health denominator. Defaults to config value.
            history: Timeline to append records to. A fresh one if omitted.
        """
        settings = get_settings()
        self.bands = bands or GradeBands(
            a_max=settings.grade_a_max,
            b_max=settings.grade_b_max,
            c_max=settings.grade_c_max,
        )
        self.health_reference_units = (
            health_reference_units
            if health_reference_units is not None
            else settings.health_reference_units
        )
        self.history = history if history is not None else GradeHistory()

    # =========================================================================
    # AGGREGATES
    # =========================================================================

    def sum_triangles(self, matrix: TrustDebtMatrix) -> TriangleSums:
        """Sum the upper triangle, lower triangle and diagonal separately."""
        upper = lower = diagonal = 0.0
        for i in range(matrix.size):
            for j in range(matrix.size):
                value = matrix.values[i][j]
                if i == j:
                    diagonal += value
                elif i < j:
                    upper += value
                else:
                    lower += value
        return TriangleSums(upper_sum=upper, lower_sum=lower, diagonal_sum=diagonal)

    def classify(self, total_units: float) -> Grade:
        """Map total units to a letter grade using the configured bands."""
        if total_units <= self.bands.a_max:
            return Grade.A
        if total_units <= self.bands.b_max:
            return Grade.B
        if total_units <= self.bands.c_max:
            return Grade.C
        return Grade.D

    # =========================================================================
    # PER-CATEGORY
    # =========================================================================

    def category_units(self, matrix: TrustDebtMatrix, index: int) -> float:
        """Debt touching one category: its row plus its column, diagonal once."""
        row = sum(matrix.values[index])
        column = sum(matrix.values[i][index] for i in range(matrix.size))
        return row + column - matrix.values[index][index]

    def per_category_score(
        self,
        matrix: TrustDebtMatrix,
        category_index: int,
        total_units: Optional[float] = None,
    ) -> float:
        """
        Health score (0-1) of one category. Higher debt → lower score.

        Args:
            matrix: The trust debt matrix
            category_index: Row/column index of the category
            total_units: Pre-computed total, to avoid re-summing per category

        Returns:
            Health score between 0 and 1
        """
        if total_units is None:
            total_units = self.sum_triangles(matrix).total_units

        units = self.category_units(matrix, category_index)
        denominator = max(total_units, self.health_reference_units)
        if denominator <= 0:
            return 1.0 if units <= 0 else 0.0

        return max(0.0, min(1.0, 1.0 - units / denominator))

    # =========================================================================
    # FULL GRADE
    # =========================================================================

    def grade(
        self,
        matrix: TrustDebtMatrix,
        subject: str = "default",
        taxonomy_version: Optional[int] = None,
        orthogonality_score: Optional[float] = None,
    ) -> GradeRecord:
        """
        Grade a matrix and build its (not yet recorded) GradeRecord.

        Args:
            matrix: The trust debt matrix
            subject: Who/what this run measures (repo, agent, user...)
            taxonomy_version: Defaults to the version the matrix was built from
            orthogonality_score: Optional result of the orthogonality check

        Returns:
            GradeRecord with totals, grade and per-category breakdown
        """
        sums = self.sum_triangles(matrix)
        total = sums.total_units
        grade = self.classify(total)

        category_scores = tuple(
            CategoryScore(
                stable_id=category.stable_id,
                code=category.code,
                name=category.name,
                weight=category.weight,
                units=self.category_units(matrix, i),
                health_score=self.per_category_score(matrix, i, total),
            )
            for i, category in enumerate(matrix.categories)
        )

        record = GradeRecord(
            total_units=total,
            grade=grade,
            upper_sum=sums.upper_sum,
            lower_sum=sums.lower_sum,
            diagonal_sum=sums.diagonal_sum,
            subject=subject,
            taxonomy_version=(
                taxonomy_version
                if taxonomy_version is not None
                else matrix.taxonomy_version
            ),
            asymmetry_ratio=sums.asymmetry_ratio,
            orthogonality_score=orthogonality_score,
            category_scores=category_scores,
        )

        logger.info(
            f"Graded '{subject}': {total:.1f} units → {grade.value} "
            f"(upper={sums.upper_sum:.1f}, lower={sums.lower_sum:.1f}, "
            f"diagonal={sums.diagonal_sum:.1f})"
        )

        return record

    def append_history(self, record: GradeRecord) -> None:
        """Append a record to the timeline. Records are never edited or removed."""
        self.history.append(record)
