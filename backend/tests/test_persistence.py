"""
Tests for the database-backed services: runs, taxonomy repository, audit log.

Each test gets a fresh SQLite file (see conftest.py).
"""

from datetime import datetime, timezone

import pytest

from conftest import intent, make_category, reality
from intentguard.services.grading.models import Trend
from intentguard.services.permissions.audit import PermissionAuditLogger
from intentguard.services.permissions.geometric import check_permission
from intentguard.services.permissions.models import IdentityVector
from intentguard.services.permissions.requirements import get_requirement
from intentguard.services.pipeline import run_trust_debt_pipeline
from intentguard.services.run_service import RunService
from intentguard.services.scoring.keyword_scorer import KeywordScorer
from intentguard.services.taxonomy.manager import TaxonomyManager
from intentguard.services.taxonomy.repository import TaxonomyRepository


def registered_manager() -> TaxonomyManager:
    manager = TaxonomyManager()
    manager.register([
        make_category("A", "security", keywords=("auth", "token")),
        make_category("B", "testing", keywords=("pytest",)),
    ]).raise_for_errors()
    return manager


async def measure(manager, subject="repo-main", reality_text="auth token"):
    return await run_trust_debt_pipeline(
        subject,
        [intent("README.md", "auth token pytest"), reality("src/auth.py", reality_text)],
        manager,
        KeywordScorer(),
    )


# =============================================================================
# RUNS
# =============================================================================

@pytest.mark.asyncio
async def test_save_run_persists_record_and_cells(db):
    manager = registered_manager()
    result = await measure(manager)
    service = RunService(db)

    row = await service.save_run(result.record, result.build.trust_debt)

    assert row.id is not None
    cells = await service.cells(row.id)
    assert len(cells) == 4
    assert {c.region for c in cells} == {"diagonal", "upper", "lower"}

    latest = await service.latest("repo-main")
    assert latest.total_units == pytest.approx(result.record.total_units)
    assert latest.grade == result.record.grade
    assert [s.name for s in latest.category_scores] == ["security", "testing"]


@pytest.mark.asyncio
async def test_history_and_trend(db):
    manager = registered_manager()
    service = RunService(db)

    worse = await measure(manager, reality_text="refactor only")
    better = await measure(manager, reality_text="auth token pytest")
    await service.save_run(worse.record, worse.build.trust_debt)
    await service.save_run(better.record, better.build.trust_debt)

    rows = await service.history("repo-main")
    assert [r.total_units for r in rows] == pytest.approx(
        [worse.record.total_units, better.record.total_units]
    )
    assert await service.trend("repo-main") == Trend.IMPROVING
    assert await service.latest("nobody") is None


@pytest.mark.asyncio
async def test_stored_cells_resolve_after_rebalance(db):
    manager = registered_manager()
    result = await measure(manager)
    row = await RunService(db).save_run(result.record, result.build.trust_debt)

    manager.rebalance(
        [make_category("A", "testing"), make_category("B", "security")],
        reason="recode",
    ).validation.raise_for_errors()

    for cell in await RunService(db).cells(row.id):
        category = manager.resolve(cell.row_stable_id)
        assert category is not None, f"Cell row {cell.row_stable_id} no longer resolves"
        assert category.code == cell.row_code
        assert not category.active


# =============================================================================
# TAXONOMY REPOSITORY
# =============================================================================

@pytest.mark.asyncio
async def test_taxonomy_round_trip(db, session_factory):
    manager = registered_manager()
    old_ids = [c.stable_id for c in manager.active_categories()]
    manager.rebalance(
        [make_category("A", "security"), make_category("B", "documentation")],
        reason="split",
    ).validation.raise_for_errors()

    repository = TaxonomyRepository(db)
    await repository.save(manager)
    await repository.save(manager)

    async with session_factory() as fresh:
        loaded = await TaxonomyRepository(fresh).load()

    assert loaded.version == manager.version
    assert loaded.snapshot().codes == manager.snapshot().codes
    assert loaded.snapshot().names == ("security", "documentation")
    assert len(loaded.history()) == len(manager.history()), "History saved twice"
    for stable_id in old_ids:
        assert loaded.resolve(stable_id).active is False


@pytest.mark.asyncio
async def test_empty_database_loads_empty_manager(db):
    manager = await TaxonomyRepository(db).load()

    assert manager.version == 0
    assert manager.snapshot().is_empty


# =============================================================================
# AUDIT LOG
# =============================================================================

@pytest.mark.asyncio
async def test_audit_log_and_stats(db):
    git_push = get_requirement("git_push")
    strong = IdentityVector(
        subject="agent-7",
        category_scores={"security": 0.9, "reliability": 0.9, "code_quality": 0.8, "testing": 0.7},
        sovereignty_score=0.75,
    )
    weak = IdentityVector(
        subject="agent-7",
        category_scores={"security": 0.9, "reliability": 0.9, "testing": 0.7},
        sovereignty_score=0.75,
    )
    audit = PermissionAuditLogger(db)

    await audit.log(check_permission(strong, git_push, threshold=0.8))
    await audit.log(check_permission(weak, git_push, threshold=0.8))

    denied = await audit.query(decision="DENY")
    assert len(denied) == 1
    assert denied[0].failed_categories == ["code_quality: 0.00 < 0.7"]

    stats = await audit.stats()
    assert stats.total_decisions == 2
    assert stats.allow_count == 1
    assert stats.allow_rate == pytest.approx(0.5)
    assert stats.average_sovereignty == pytest.approx(0.75)
    assert stats.top_denied_actions == [("git_push", 1)]

    empty = await audit.stats(subject="nobody")
    assert empty.total_decisions == 0


@pytest.mark.asyncio
async def test_drift_events_count_denials_since_a_timestamp(db):
    git_push = get_requirement("git_push")
    weak = IdentityVector(
        subject="agent-7",
        category_scores={"security": 0.9, "reliability": 0.9, "testing": 0.7},
        sovereignty_score=0.75,
    )
    strong = IdentityVector(
        subject="agent-7",
        category_scores={"security": 0.9, "reliability": 0.9, "code_quality": 0.8, "testing": 0.7},
        sovereignty_score=0.75,
    )
    audit = PermissionAuditLogger(db)

    for day, identity in [(1, weak), (3, weak), (4, strong)]:
        decision = check_permission(identity, git_push, threshold=0.8)
        decision.timestamp = datetime(2026, 1, day, tzinfo=timezone.utc)
        await audit.log(decision)

    assert await audit.count_drift_events("agent-7") == 2
    assert await audit.count_drift_events("agent-7", since=datetime(2026, 1, 2, tzinfo=timezone.utc)) == 1
    assert await audit.count_drift_events("nobody") == 0
