"""
API Routes — The endpoints that tie everything together.

ENDPOINTS:
- GET  /api/taxonomy                        → Active categories + version
- POST /api/taxonomy/register               → Add categories (422 on violation)
- POST /api/taxonomy/rebalance              → Swap in a regenerated taxonomy (422 on violation)
- GET  /api/taxonomy/history                → Rebalance audit trail
- GET  /api/taxonomy/categories/{stable_id} → Resolve any category, active or not
- POST /api/taxonomy/orthogonality          → Advisory independence check
- POST /api/runs                            → Measure a subject → GradeRecord + identity
- GET  /api/runs/{subject}/history          → Grade timeline + trend
- GET  /api/runs/records/{record_id}/cells  → Matrix cells behind a record
- GET  /api/identity/{subject}              → Identity vector from the latest record
- GET  /api/permissions/requirements        → Registered action requirements
- POST /api/permissions/check               → Allow/deny (and audit) an action
- GET  /api/permissions/audit/stats         → Audit aggregates

FLOW:
1. Register a taxonomy
2. Run the pipeline for a subject with intent + reality documents
3. Check permissions for that subject
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from intentguard.database import get_db
from intentguard.models.schemas import (
    AuditStatsOut,
    CategoryIn,
    CategoryOut,
    CellOut,
    DeniedActionCount,
    DocumentIn,
    GradeHistoryResponse,
    GradeRecordOut,
    HistoryEntryOut,
    IdentityOut,
    OrthogonalityRequest,
    OrthogonalityResponse,
    PermissionCheckRequest,
    PermissionDecisionOut,
    RebalanceRequest,
    RebalanceResponse,
    RegisterRequest,
    RequirementOut,
    RunRequest,
    RunResponse,
    TaxonomyResponse,
    ViolationOut,
)
from intentguard.services.grading.models import GradeRecord
from intentguard.services.matrix.builder import EmptyTaxonomyError
from intentguard.services.permissions.audit import PermissionAuditLogger
from intentguard.services.permissions.geometric import check_permission, interpret_sovereignty
from intentguard.services.permissions.identity import derive_identity, drift_events_until_floor
from intentguard.services.permissions.models import IdentityVector
from intentguard.services.permissions.requirements import RequirementRegistry
from intentguard.services.pipeline import TrustDebtPipeline
from intentguard.services.run_service import RunService
from intentguard.services.scoring.embedding_scorer import EmbeddingScorer
from intentguard.services.scoring.keyword_scorer import KeywordScorer
from intentguard.services.scoring.models import CorpusDocument, DocumentRole
from intentguard.services.scoring.protocols import CorpusScorer, ScorerContractError
from intentguard.services.taxonomy.manager import TaxonomyManager
from intentguard.services.taxonomy.models import Category, ValidationResult, new_stable_id
from intentguard.services.taxonomy.orthogonality import validate_orthogonality
from intentguard.services.taxonomy.repository import TaxonomyRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

_requirements = RequirementRegistry()


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_taxonomy_manager(request: Request) -> TaxonomyManager:
    """The process-wide manager, loaded from the database at startup."""
    manager = getattr(request.app.state, "taxonomy", None)
    if manager is None:
        manager = TaxonomyManager()
        request.app.state.taxonomy = manager
    return manager


def get_requirement_registry() -> RequirementRegistry:
    return _requirements


def _to_category(item: CategoryIn) -> Category:
    return Category(
        code=item.code,
        name=item.name,
        parent_code=item.parent_code,
        depth=item.depth,
        weight=item.weight,
        keywords=tuple(item.keywords),
        stable_id=item.stable_id or new_stable_id(),
        supersedes=item.supersedes,
    )


def _to_documents(items: list[DocumentIn]) -> list[CorpusDocument]:
    return [
        CorpusDocument(
            source_id=item.source_id,
            role=DocumentRole(item.role),
            text=item.text,
            weight=item.weight,
        )
        for item in items
    ]


def _make_scorer(name: str) -> CorpusScorer:
    if name == "embedding":
        return EmbeddingScorer()
    return KeywordScorer()


def _reject(result: ValidationResult) -> HTTPException:
    """422 carrying the first violation plus the full list."""
    return HTTPException(
        status_code=422,
        detail={
            "message": result.error.message,
            "rule": result.error.rule.value,
            "violations": [
                ViolationOut.model_validate(v).model_dump(mode="json") for v in result.violations
            ],
        },
    )


def _identity_out(identity: IdentityVector) -> IdentityOut:
    level, description = interpret_sovereignty(identity.sovereignty_score)
    return IdentityOut(
        subject=identity.subject,
        category_scores=identity.category_scores,
        sovereignty_score=identity.sovereignty_score,
        dimensions=list(identity.dimensions),
        taxonomy_version=identity.taxonomy_version,
        last_updated=identity.last_updated,
        sovereignty_level=level,
        sovereignty_description=description,
        drift_events=identity.drift_events,
        drift_events_until_floor=drift_events_until_floor(identity.sovereignty_score),
    )


async def _latest_record(subject: str, db: AsyncSession) -> GradeRecord:
    record = await RunService(db).latest(subject)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No grade record for subject '{subject}'")
    return record


async def _current_identity(subject: str, db: AsyncSession) -> IdentityVector:
    """Identity from the latest record, decayed by every DENY logged since it."""
    record = await _latest_record(subject, db)
    drift_events = await PermissionAuditLogger(db).count_drift_events(
        subject, since=record.computed_at
    )
    return derive_identity(record, subject=subject, drift_events=drift_events)


# =============================================================================
# TAXONOMY
# =============================================================================

@router.get("/taxonomy", response_model=TaxonomyResponse)
async def get_taxonomy(
    manager: TaxonomyManager = Depends(get_taxonomy_manager),
) -> TaxonomyResponse:
    """The active categories in ShortLex order."""
    snapshot = manager.snapshot()
    return TaxonomyResponse(
        version=snapshot.version,
        categories=[CategoryOut.model_validate(c) for c in snapshot.categories],
    )


@router.post("/taxonomy/register", response_model=TaxonomyResponse)
async def register_categories(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    manager: TaxonomyManager = Depends(get_taxonomy_manager),
) -> TaxonomyResponse:
    """
    Add categories to the active taxonomy.

    The submitted list must be in ShortLex order. The merged set (current
    active + new) must also satisfy every ordering and hierarchy rule,
    otherwise nothing changes and a 422 names the first violation.
    """
    result = manager.register([_to_category(c) for c in request.categories])
    if not result.valid:
        raise _reject(result)

    await TaxonomyRepository(db).save(manager)
    return await get_taxonomy(manager)


@router.post("/taxonomy/rebalance", response_model=RebalanceResponse)
async def rebalance_taxonomy(
    request: RebalanceRequest,
    db: AsyncSession = Depends(get_db),
    manager: TaxonomyManager = Depends(get_taxonomy_manager),
) -> RebalanceResponse:
    """
    Replace the active taxonomy with a regenerated one.

    Every new category gets a fresh stable_id; the previous ones stay
    resolvable. On a 422 the previous taxonomy remains active.
    """
    result = manager.rebalance([_to_category(c) for c in request.categories], request.reason)
    if not result.success:
        raise _reject(result.validation)

    await TaxonomyRepository(db).save(manager)
    return RebalanceResponse(
        version=result.version,
        activated=[CategoryOut.model_validate(c) for c in result.activated],
        deactivated=[CategoryOut.model_validate(c) for c in result.deactivated],
        entries=[HistoryEntryOut.model_validate(e) for e in result.entries],
    )


@router.get("/taxonomy/history", response_model=list[HistoryEntryOut])
async def taxonomy_history(
    manager: TaxonomyManager = Depends(get_taxonomy_manager),
) -> list[HistoryEntryOut]:
    return [HistoryEntryOut.model_validate(e) for e in manager.history()]


@router.get("/taxonomy/categories/{stable_id}", response_model=CategoryOut)
async def resolve_category(
    stable_id: str,
    manager: TaxonomyManager = Depends(get_taxonomy_manager),
) -> CategoryOut:
    """Resolve a category by stable_id, including retired ones."""
    category = manager.resolve(stable_id)
    if category is None:
        raise HTTPException(status_code=404, detail=f"Unknown category '{stable_id}'")
    return CategoryOut.model_validate(category)


@router.post("/taxonomy/orthogonality", response_model=OrthogonalityResponse)
async def check_orthogonality(
    request: OrthogonalityRequest,
    manager: TaxonomyManager = Depends(get_taxonomy_manager),
) -> OrthogonalityResponse:
    """Pairwise correlation of the active categories over a sample corpus (keyword scorer)."""
    snapshot = manager.snapshot()
    report = validate_orthogonality(
        snapshot.categories,
        KeywordScorer(),
        _to_documents(request.documents),
        ceiling=request.ceiling,
    )
    return OrthogonalityResponse.model_validate(report)


# =============================================================================
# RUNS
# =============================================================================

@router.post("/runs", response_model=RunResponse)
async def create_run(
    request: RunRequest,
    db: AsyncSession = Depends(get_db),
    manager: TaxonomyManager = Depends(get_taxonomy_manager),
) -> RunResponse:
    """
    Measure a subject: build matrices, grade, derive identity, persist.

    Example:
        POST /api/runs
        {"subject": "repo-main", "documents": [
            {"source_id": "README.md", "role": "intent", "text": "..."},
            {"source_id": "src/auth.py", "role": "reality", "text": "..."}
        ]}
    """
    logger.info(f"Run requested for '{request.subject}' ({len(request.documents)} documents)")

    pipeline = TrustDebtPipeline(
        manager,
        _make_scorer(request.scorer),
        check_orthogonality=request.check_orthogonality,
    )

    try:
        result = await pipeline.run(request.subject, _to_documents(request.documents))
    except EmptyTaxonomyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ScorerContractError as e:
        logger.error(f"Scorer contract violated during run for '{request.subject}': {e}")
        raise HTTPException(status_code=422, detail=str(e))

    row = await RunService(db).save_run(result.record, result.build.trust_debt)

    return RunResponse(
        record=GradeRecordOut.model_validate(row),
        identity=_identity_out(result.identity),
        orthogonality=(
            OrthogonalityResponse.model_validate(result.orthogonality)
            if result.orthogonality is not None
            else None
        ),
    )


@router.get("/runs/{subject}/history", response_model=GradeHistoryResponse)
async def run_history(
    subject: str,
    db: AsyncSession = Depends(get_db),
) -> GradeHistoryResponse:
    service = RunService(db)
    rows = await service.history(subject)
    if not rows:
        raise HTTPException(status_code=404, detail=f"No grade records for subject '{subject}'")

    return GradeHistoryResponse(
        subject=subject,
        trend=await service.trend(subject),
        records=[GradeRecordOut.model_validate(r) for r in rows],
    )


@router.get("/runs/records/{record_id}/cells", response_model=list[CellOut])
async def run_cells(
    record_id: int,
    db: AsyncSession = Depends(get_db),
) -> list[CellOut]:
    service = RunService(db)
    if await service.get(record_id) is None:
        raise HTTPException(status_code=404, detail=f"Grade record {record_id} not found")
    return [CellOut.model_validate(c) for c in await service.cells(record_id)]


# =============================================================================
# IDENTITY + PERMISSIONS
# =============================================================================

@router.get("/identity/{subject}", response_model=IdentityOut)
async def get_identity(
    subject: str,
    db: AsyncSession = Depends(get_db),
) -> IdentityOut:
    """Identity vector from the subject's latest grade record, with drift applied."""
    return _identity_out(await _current_identity(subject, db))


@router.get("/permissions/requirements", response_model=list[RequirementOut])
async def list_requirements(
    registry: RequirementRegistry = Depends(get_requirement_registry),
) -> list[RequirementOut]:
    return [RequirementOut.model_validate(r) for r in registry.all()]


@router.post("/permissions/check", response_model=PermissionDecisionOut)
async def check_action_permission(
    request: PermissionCheckRequest,
    db: AsyncSession = Depends(get_db),
    registry: RequirementRegistry = Depends(get_requirement_registry),
) -> PermissionDecisionOut:
    """
    Decide whether a subject may perform an action, and audit the decision.

    Both conditions must hold:
    1. overlap(identity, requirement) >= threshold
    2. sovereignty >= requirement.min_sovereignty

    A DENY is a drift event: it lowers the subject's sovereignty for every
    later check until the next measurement run.
    """
    requirement = registry.get(request.action_name)
    if requirement is None:
        raise HTTPException(status_code=404, detail=f"Unknown action '{request.action_name}'")

    identity = await _current_identity(request.subject, db)

    decision = check_permission(
        identity,
        requirement,
        threshold=request.threshold,
        mode=request.mode,
    )
    await PermissionAuditLogger(db).log(decision)

    return PermissionDecisionOut.model_validate(decision)


@router.get("/permissions/audit/stats", response_model=AuditStatsOut)
async def audit_stats(
    action_name: Optional[str] = None,
    subject: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
) -> AuditStatsOut:
    stats = await PermissionAuditLogger(db).stats(action_name=action_name, subject=subject)
    return AuditStatsOut(
        total_decisions=stats.total_decisions,
        allow_count=stats.allow_count,
        deny_count=stats.deny_count,
        allow_rate=stats.allow_rate,
        average_overlap=stats.average_overlap,
        average_sovereignty=stats.average_sovereignty,
        top_denied_actions=[
            DeniedActionCount(action_name=name, count=count)
            for name, count in stats.top_denied_actions
        ],
    )
