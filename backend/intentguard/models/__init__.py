# Database models and API schemas
from intentguard.models.records import (
    CategoryRecord,
    GradeRecordRow,
    PermissionAuditRow,
    TaxonomyHistoryEntry,
    TaxonomyState,
    TrustDebtCellRow,
)

__all__ = [
    "CategoryRecord",
    "GradeRecordRow",
    "PermissionAuditRow",
    "TaxonomyHistoryEntry",
    "TaxonomyState",
    "TrustDebtCellRow",
]
