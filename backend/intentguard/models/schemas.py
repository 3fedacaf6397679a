"""
Pydantic schemas for API request/response validation.

These define the shape of data that goes in and out of the API.
The internal service types are frozen dataclasses; every *Response /
*Out schema here can be built from them (or from the ORM rows) with
model_validate, thanks to from_attributes.

FLOW OVERVIEW:
==============
1. Register a taxonomy at /api/taxonomy/register
2. POST intent + reality documents to /api/runs → GradeRecord + identity
3. POST /api/permissions/check → allow/deny for an action
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from intentguard.services.grading.models import Trend
from intentguard.services.permissions.models import OverlapMode, SovereigntyLevel
from intentguard.services.taxonomy.models import ChangeKind, ViolationRule


# =============================================================================
# TAXONOMY SCHEMAS
# =============================================================================
#
# WHEN USED:
# - CategoryIn: register / rebalance request bodies
# - CategoryOut: any category returned by the API (active or not)
# - ViolationOut: 422 bodies when a taxonomy is rejected
#

class CategoryIn(BaseModel):
    """A category as submitted by the caller."""
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    parent_code: str | None = None
    depth: int = Field(default=0, ge=0)
    weight: float = Field(default=1.0, ge=0)
    keywords: list[str] = Field(default_factory=list)
    stable_id: str | None = Field(default=None, description="Generated when omitted")
    supersedes: str | None = Field(default=None, description="stable_id this category replaces (rebalance only)")


class CategoryOut(BaseModel):
    stable_id: str
    code: str
    name: str
    parent_code: str | None = None
    depth: int
    weight: float
    keywords: list[str] = []
    active: bool
    supersedes: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class TaxonomyResponse(BaseModel):
    """
    The active taxonomy.

    USED BY: GET /api/taxonomy, POST /api/taxonomy/register
    """
    version: int
    categories: list[CategoryOut]


class RegisterRequest(BaseModel):
    categories: list[CategoryIn] = Field(min_length=1)


class RebalanceRequest(BaseModel):
    categories: list[CategoryIn] = Field(min_length=1)
    reason: str = Field(min_length=1, description="Why the taxonomy is being regenerated")


class ViolationOut(BaseModel):
    rule: ViolationRule
    position: int
    first_code: str
    second_code: str | None = None
    message: str

    class Config:
        from_attributes = True


class HistoryEntryOut(BaseModel):
    change: ChangeKind
    reason: str
    version: int
    stable_id_old: str | None = None
    stable_id_new: str | None = None
    old_code: str | None = None
    new_code: str | None = None
    timestamp: datetime

    class Config:
        from_attributes = True


class RebalanceResponse(BaseModel):
    """
    Outcome of a successful rebalance.

    USED BY: POST /api/taxonomy/rebalance
    """
    version: int
    activated: list[CategoryOut]
    deactivated: list[CategoryOut]
    entries: list[HistoryEntryOut]


# =============================================================================
# CORPUS + ORTHOGONALITY SCHEMAS
# =============================================================================

class DocumentIn(BaseModel):
    """One corpus document. role says which side of the matrix it feeds."""
    source_id: str = Field(min_length=1)
    role: Literal["intent", "reality"]
    text: str
    weight: float = Field(default=1.0, ge=0)


class OrthogonalityRequest(BaseModel):
    documents: list[DocumentIn]
    ceiling: Optional[float] = Field(default=None, ge=0, le=1)


class CorrelatedPairOut(BaseModel):
    first_stable_id: str
    second_stable_id: str
    first_code: str
    second_code: str
    correlation: float

    class Config:
        from_attributes = True


class OrthogonalityResponse(BaseModel):
    ceiling: float
    document_count: int
    pair_count: int
    is_orthogonal: bool
    orthogonality_score: float
    mean_abs_correlation: float
    max_abs_correlation: float
    flagged_pairs: list[CorrelatedPairOut]

    class Config:
        from_attributes = True


# =============================================================================
# RUN + GRADE SCHEMAS
# =============================================================================
#
# PIPELINE:
# RunRequest → TrustDebtPipeline → GradeRecord (+ cells persisted) → RunResponse
#

class RunRequest(BaseModel):
    """
    Measure one subject.

    USED BY: POST /api/runs
    """
    subject: str = Field(min_length=1, max_length=200)
    documents: list[DocumentIn]
    scorer: Literal["keyword", "embedding"] = "keyword"
    check_orthogonality: bool = True


class CategoryScoreOut(BaseModel):
    stable_id: str
    code: str
    name: str
    weight: float
    units: float
    health_score: float = Field(description="0-1, higher is healthier")

    class Config:
        from_attributes = True


class GradeRecordOut(BaseModel):
    id: int
    subject: str
    total_units: float
    grade: str
    upper_sum: float
    lower_sum: float
    diagonal_sum: float
    asymmetry_ratio: float | None = None
    orthogonality_score: float | None = None
    taxonomy_version: int | None = None
    category_scores: list[CategoryScoreOut]
    computed_at: datetime

    class Config:
        from_attributes = True


class IdentityOut(BaseModel):
    """
    Identity vector of a subject.

    USED BY: GET /api/identity/{subject}, POST /api/runs
    """
    subject: str
    category_scores: dict[str, float]
    sovereignty_score: float
    dimensions: list[str]
    taxonomy_version: int | None = None
    last_updated: datetime
    sovereignty_level: SovereigntyLevel
    sovereignty_description: str
    drift_events_until_floor: int
    drift_events: int = 0


class RunResponse(BaseModel):
    record: GradeRecordOut
    identity: IdentityOut
    orthogonality: OrthogonalityResponse | None = None


class GradeHistoryResponse(BaseModel):
    subject: str
    trend: Trend
    records: list[GradeRecordOut]


class CellOut(BaseModel):
    row_stable_id: str
    col_stable_id: str
    row_code: str
    col_code: str
    region: str
    value: float
    intent_value: float
    reality_value: float

    class Config:
        from_attributes = True


# =============================================================================
# PERMISSION SCHEMAS
# =============================================================================

class RequirementOut(BaseModel):
    action_name: str
    required_scores: dict[str, float]
    min_sovereignty: float
    description: str

    class Config:
        from_attributes = True


class PermissionCheckRequest(BaseModel):
    subject: str
    action_name: str
    threshold: Optional[float] = Field(default=None, ge=0, le=1, description="Defaults to config value")
    mode: OverlapMode = OverlapMode.COSINE


class ShortfallOut(BaseModel):
    category: str
    actual: float
    required: float

    class Config:
        from_attributes = True


class PermissionDecisionOut(BaseModel):
    """
    USED BY: POST /api/permissions/check

    failed_categories is informational; `allowed` only depends on
    overlap_passed and sovereignty_passed.
    """
    allowed: bool
    overlap: float
    sovereignty: float
    threshold: float
    min_sovereignty: float
    overlap_passed: bool
    sovereignty_passed: bool
    failed_categories: list[ShortfallOut]
    mode: OverlapMode
    action_name: str
    subject: str
    timestamp: datetime

    class Config:
        from_attributes = True


class DeniedActionCount(BaseModel):
    action_name: str
    count: int


class AuditStatsOut(BaseModel):
    total_decisions: int
    allow_count: int
    deny_count: int
    allow_rate: float
    average_overlap: float
    average_sovereignty: float
    top_denied_actions: list[DeniedActionCount]
