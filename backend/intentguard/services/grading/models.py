"""
Grading Models — What the grading engine produces.

- TriangleSums: the matrix reduced to three region totals
- CategoryScore: one category's share of the debt and its health score
- GradeRecord: one immutable line of the grade timeline
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from intentguard.services.taxonomy.models import utcnow


class Grade(str, Enum):
    """Letter grade; A is healthiest."""

    A = "A"
    B = "B"
    C = "C"
    D = "D"

    @property
    def rank(self) -> int:
        """0 for A ... 3 for D. Higher rank = worse grade."""
        return "ABCD".index(self.value)


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


@dataclass(frozen=True)
class GradeBands:
    """Inclusive upper bounds (in units) for grades A, B and C. Above c_max is D."""

    a_max: float = 500.0
    b_max: float = 1500.0
    c_max: float = 3000.0

    def __post_init__(self):
        if not (0 <= self.a_max <= self.b_max <= self.c_max):
            raise ValueError(
                f"Grade bands must be ascending and non-negative, got "
                f"A<={self.a_max}, B<={self.b_max}, C<={self.c_max}"
            )


@dataclass(frozen=True)
class TriangleSums:
    """
    Region totals of a trust debt matrix.

    total_units is ADDITIVE: upper + lower + diagonal. A signed
    |upper - lower| would call two mirror-image disasters "zero debt".
    """

    upper_sum: float
    lower_sum: float
    diagonal_sum: float

    @property
    def total_units(self) -> float:
        return self.upper_sum + self.lower_sum + self.diagonal_sum

    @property
    def asymmetry_ratio(self) -> Optional[float]:
        """upper / lower; informational only. None when lower is 0."""
        if self.lower_sum == 0:
            return None
        return self.upper_sum / self.lower_sum


@dataclass(frozen=True)
class CategoryScore:
    """Per-category breakdown entry of a grade record."""

    stable_id: str
    code: str
    name: str
    weight: float
    units: float
    """Row + column debt of this category (diagonal counted once)."""

    health_score: float
    """0-1, higher is healthier. Monotonically decreasing in units."""


@dataclass(frozen=True)
class GradeRecord:
    """
    One graded run. Immutable once written.

    A sequence of these is the trust debt timeline; identity vectors are
    derived from the latest one.
    """

    total_units: float
    grade: Grade
    upper_sum: float
    lower_sum: float
    diagonal_sum: float
    computed_at: datetime = field(default_factory=utcnow)
    subject: str = "default"
    taxonomy_version: Optional[int] = None
    asymmetry_ratio: Optional[float] = None
    orthogonality_score: Optional[float] = None
    category_scores: tuple[CategoryScore, ...] = ()

    def score_for(self, stable_id: str) -> Optional[CategoryScore]:
        for entry in self.category_scores:
            if entry.stable_id == stable_id:
                return entry
        return None
