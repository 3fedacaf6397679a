"""
Permission Models — Data structures for the geometric permission engine.

- IdentityVector: who is asking, as one health score per category
- PermissionRequirement: what an action needs (sparse, per-category minimums)
- PermissionDecision: the allow/deny outcome with both checks reported
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from intentguard.services.taxonomy.models import utcnow


class OverlapMode(str, Enum):
    """How identity/requirement overlap is measured."""

    COSINE = "cosine"
    """Geometric: max(0, cos θ) between the two vectors."""

    THRESHOLD = "threshold"
    """Fraction of required categories individually met."""


class SovereigntyLevel(str, Enum):
    AUTONOMOUS = "autonomous"
    SUPERVISED = "supervised"
    RESTRICTED = "restricted"
    MANUAL_APPROVAL = "manual_approval"


@dataclass(frozen=True)
class IdentityVector:
    """
    A subject's position in the permission space.

    Derived from the latest grade record, never edited by hand.
    """

    subject: str
    category_scores: dict[str, float]
    """Category name → health score (0.0 to 1.0)."""

    sovereignty_score: float
    """Aggregate trust (0.0 to 1.0)."""

    dimensions: tuple[str, ...] = ()
    """Ordered category names the vector was derived over."""

    taxonomy_version: Optional[int] = None
    last_updated: datetime = field(default_factory=utcnow)

    drift_events: int = 0
    """DENY decisions since the grade record that sovereignty was decayed by."""

    def score(self, category: str) -> float:
        """Score for one category. Absent categories are 0.0."""
        return self.category_scores.get(category, 0.0)


@dataclass(frozen=True)
class PermissionRequirement:
    """What an action requires. Static configuration."""

    action_name: str
    required_scores: dict[str, float] = field(default_factory=dict)
    min_sovereignty: float = 0.0
    description: str = ""


@dataclass(frozen=True)
class CategoryShortfall:
    """A required category the identity does not meet."""

    category: str
    actual: float
    required: float

    def __str__(self) -> str:
        return f"{self.category}: {self.actual:.2f} < {self.required}"


@dataclass
class PermissionDecision:
    """
    Result of a permission check.

    allowed == overlap_passed and sovereignty_passed. failed_categories is
    informational: a decision can be allowed with shortfalls listed.
    """

    allowed: bool
    overlap: float
    sovereignty: float
    threshold: float
    min_sovereignty: float
    overlap_passed: bool
    sovereignty_passed: bool
    failed_categories: list[CategoryShortfall] = field(default_factory=list)
    mode: OverlapMode = OverlapMode.COSINE
    action_name: str = ""
    subject: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def decision_label(self) -> str:
        return "ALLOW" if self.allowed else "DENY"
