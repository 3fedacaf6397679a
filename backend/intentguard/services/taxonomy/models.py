"""
Taxonomy Models — Data structures owned by the Taxonomy Manager.

These dataclasses define the contract between the taxonomy and every
downstream stage:
- Category: one node of the ordered taxonomy
- TaxonomySnapshot: the consistent view a matrix build works from
- ValidationResult / OrderingViolation: why a category set was rejected
- RebalanceEntry / RebalanceResult: the audit trail of a rebalance

IDENTITY VS ORDER:
A category has TWO keys.
- code: "A", "A1", "B12"... human-legible, drives display order, can change
- stable_id: opaque and immutable, used by matrix cells and grade records

A rebalance may rename every code in the taxonomy. Cells computed before it
still point at valid stable_ids, so historical reads never break.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def new_stable_id() -> str:
    """Mint a fresh opaque category identity."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def shortlex_key(code: str) -> tuple[int, str]:
    """Sort key for ShortLex order: shorter codes first, then lexicographic."""
    return (len(code), code)


@dataclass(frozen=True)
class Category:
    """
    A taxonomy category.

    Frozen on purpose: deactivating a category produces a new instance with
    active=False and the SAME stable_id. Nothing ever rewrites a stable_id.
    """

    code: str
    """Rank key used for ordering and display (e.g. 'A', 'A1', 'B2')."""

    name: str
    """Human-readable label. Also the dimension name in identity vectors."""

    parent_code: Optional[str] = None
    """Code of the parent category, None for roots."""

    depth: int = 0
    """0 for roots, parent.depth + 1 otherwise."""

    weight: float = 1.0
    """Relative importance, used when aggregating sovereignty."""

    keywords: tuple[str, ...] = ()
    """Terms the keyword scorer looks for."""

    stable_id: str = field(default_factory=new_stable_id)
    """Durable identity. Never reused, never mutated."""

    active: bool = True
    """Only active categories take part in new matrix builds."""

    supersedes: Optional[str] = None
    """stable_id of the category this record replaced during a rebalance."""

    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_root(self) -> bool:
        return self.parent_code is None


@dataclass(frozen=True)
class TaxonomySnapshot:
    """
    Immutable view of the active category set at one version.

    A matrix build takes exactly one snapshot at the start and never looks
    at the manager again, so a concurrent rebalance cannot leak into it.
    """

    version: int
    categories: tuple[Category, ...]
    taken_at: datetime = field(default_factory=utcnow)

    def __len__(self) -> int:
        return len(self.categories)

    @property
    def is_empty(self) -> bool:
        return not self.categories

    @property
    def codes(self) -> list[str]:
        return [c.code for c in self.categories]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.categories)

    def index_of(self, stable_id: str) -> int:
        for i, category in enumerate(self.categories):
            if category.stable_id == stable_id:
                return i
        raise KeyError(stable_id)


# =============================================================================
# VALIDATION
# =============================================================================

class ViolationRule(str, Enum):
    """Which taxonomy rule a category set broke."""

    LENGTH_ORDER = "length_order"
    LEXICOGRAPHIC_ORDER = "lexicographic_order"
    DUPLICATE_CODE = "duplicate_code"
    DUPLICATE_NAME = "duplicate_name"
    DUPLICATE_STABLE_ID = "duplicate_stable_id"
    MISSING_PARENT = "missing_parent"
    PARENT_ORDER = "parent_order"
    DEPTH_PARENT_MISMATCH = "depth_parent_mismatch"
    UNKNOWN_PREDECESSOR = "unknown_predecessor"
    DUPLICATE_PREDECESSOR = "duplicate_predecessor"


@dataclass(frozen=True)
class OrderingViolation:
    """One broken rule, pinned to the offending pair of categories."""

    rule: ViolationRule
    position: int
    """Index (in the validated sequence) of the first category involved."""

    first_code: str
    second_code: Optional[str]
    message: str


class TaxonomyValidationError(ValueError):
    """Raised when a category set breaks an ordering or depth invariant."""

    def __init__(self, violation: OrderingViolation):
        self.violation = violation
        super().__init__(f"{violation.rule.value}: {violation.message}")


@dataclass
class ValidationResult:
    """Outcome of validating a category set."""

    violations: list[OrderingViolation] = field(default_factory=list)
    checked: int = 0
    """How many categories were in the validated set."""

    @property
    def valid(self) -> bool:
        return not self.violations

    @property
    def error(self) -> Optional[OrderingViolation]:
        """The first offending pair, or None if the set is valid."""
        return self.violations[0] if self.violations else None

    def raise_for_errors(self) -> None:
        if self.error is not None:
            raise TaxonomyValidationError(self.error)


# =============================================================================
# REBALANCE
# =============================================================================

class ChangeKind(str, Enum):
    ADDED = "added"
    RECODED = "recoded"
    REMOVED = "removed"


@dataclass(frozen=True)
class RebalanceEntry:
    """
    One history line written by a rebalance.

    added:   stable_id_old/old_code are None
    recoded: both sides present, codes differ
    removed: stable_id_new/new_code are None
    """

    change: ChangeKind
    reason: str
    version: int
    stable_id_old: Optional[str] = None
    stable_id_new: Optional[str] = None
    old_code: Optional[str] = None
    new_code: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class RebalanceResult:
    """Outcome of a rebalance. On failure nothing was activated."""

    validation: ValidationResult
    version: int
    activated: tuple[Category, ...] = ()
    deactivated: tuple[Category, ...] = ()
    entries: tuple[RebalanceEntry, ...] = ()

    @property
    def success(self) -> bool:
        return self.validation.valid
