"""
Matrix Models — Presence and Trust Debt matrices.

Both are square and indexed by the same snapshot ordering:
row i and column i are always the same category.

PresenceMatrix: how strongly each pair of categories co-occurs in ONE corpus
(Intent or Reality). Rebuilt every run, never stored.

TrustDebtMatrix: the divergence between the two presence matrices. Same axes,
but the triangles mean different things:

              col j →
    row i   ┌──────────────────────────┐
      ↓     │ diag │   UPPER (i<j)     │   upper = reality built it,
            │      │  undocumented     │           nobody documented it
            │      │  coupling         │
            │ LOWER (i>j)  │   diag    │   lower = intent promised it,
            │ broken       │           │           reality never delivered
            │ promise      │           │
            └──────────────────────────┘

So [i][j] and [j][i] are NOT required to be equal: axis-symmetric,
value-asymmetric.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from intentguard.services.scoring.models import DocumentRole
from intentguard.services.taxonomy.models import Category


class CellRegion(str, Enum):
    DIAGONAL = "diagonal"
    UPPER = "upper"
    LOWER = "lower"


def region_of(i: int, j: int) -> CellRegion:
    if i == j:
        return CellRegion.DIAGONAL
    return CellRegion.UPPER if i < j else CellRegion.LOWER


@dataclass
class PresenceMatrix:
    """Category × category presence strength for one corpus role."""

    role: DocumentRole
    categories: tuple[Category, ...]
    values: list[list[float]]
    document_count: int = 0

    @property
    def size(self) -> int:
        return len(self.categories)

    @property
    def stable_ids(self) -> tuple[str, ...]:
        return tuple(c.stable_id for c in self.categories)

    def value(self, i: int, j: int) -> float:
        return self.values[i][j]

    @classmethod
    def zeros(cls, role: DocumentRole, categories: tuple[Category, ...]) -> "PresenceMatrix":
        n = len(categories)
        return cls(role=role, categories=categories, values=[[0.0] * n for _ in range(n)])


@dataclass(frozen=True)
class TrustDebtCell:
    """One cell, addressed by stable identity so it survives rebalances."""

    row_stable_id: str
    col_stable_id: str
    row_code: str
    col_code: str
    region: CellRegion
    value: float
    intent_value: float
    """Intent presence the cell was computed from (mirrored for lower cells)."""

    reality_value: float
    """Reality presence the cell was computed from (mirrored for lower cells)."""


@dataclass
class TrustDebtMatrix:
    """Asymmetric trust debt matrix over a snapshot ordering."""

    categories: tuple[Category, ...]
    values: list[list[float]]
    intent: PresenceMatrix
    reality: PresenceMatrix
    reality_emphasis: float
    intent_emphasis: float
    taxonomy_version: Optional[int] = None
    _index: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        self._index = {c.stable_id: i for i, c in enumerate(self.categories)}

    @property
    def size(self) -> int:
        return len(self.categories)

    @property
    def row_labels(self) -> list[str]:
        return [c.code for c in self.categories]

    @property
    def column_labels(self) -> list[str]:
        # Same list, same order: the axes are symmetric by construction
        return [c.code for c in self.categories]

    def value(self, i: int, j: int) -> float:
        return self.values[i][j]

    def region(self, i: int, j: int) -> CellRegion:
        return region_of(i, j)

    def index_of(self, stable_id: str) -> int:
        return self._index[stable_id]

    def cell(self, i: int, j: int) -> TrustDebtCell:
        # Lower cells are computed from the mirrored (upper) presence pair
        si, sj = (j, i) if i > j else (i, j)
        return TrustDebtCell(
            row_stable_id=self.categories[i].stable_id,
            col_stable_id=self.categories[j].stable_id,
            row_code=self.categories[i].code,
            col_code=self.categories[j].code,
            region=region_of(i, j),
            value=self.values[i][j],
            intent_value=self.intent.values[si][sj],
            reality_value=self.reality.values[si][sj],
        )

    def cell_by_ids(self, row_stable_id: str, col_stable_id: str) -> TrustDebtCell:
        return self.cell(self._index[row_stable_id], self._index[col_stable_id])

    def cells(self) -> list[TrustDebtCell]:
        """Every cell in row-major order."""
        return [self.cell(i, j) for i in range(self.size) for j in range(self.size)]
