from intentguard.services.matrix.builder import (
    EmptyTaxonomyError,
    MatrixBuilder,
    MatrixBuildResult,
)
from intentguard.services.matrix.models import (
    CellRegion,
    PresenceMatrix,
    TrustDebtCell,
    TrustDebtMatrix,
    region_of,
)

__all__ = [
    "EmptyTaxonomyError",
    "MatrixBuilder",
    "MatrixBuildResult",
    "CellRegion",
    "PresenceMatrix",
    "TrustDebtCell",
    "TrustDebtMatrix",
    "region_of",
]
