"""
API tests through FastAPI's TestClient.

The lifespan is not run: tables are created on a temporary SQLite file,
get_db is pointed at it, and each test gets a fresh taxonomy manager.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from intentguard.api.routes import get_taxonomy_manager
from intentguard.database import Base, get_db
from intentguard.main import app
from intentguard.services.taxonomy.manager import TaxonomyManager


CATEGORIES = [
    {"code": "A", "name": "security", "keywords": ["auth", "token"]},
    {"code": "B", "name": "testing", "keywords": ["pytest"]},
]

DOCUMENTS = [
    {"source_id": "README.md", "role": "intent", "text": "auth token pytest"},
    {"source_id": "src/auth.py", "role": "reality", "text": "auth token"},
]


@pytest.fixture
def client(database_url):
    engine = create_async_engine(database_url, poolclass=NullPool)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_tables())
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    manager = TaxonomyManager()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_taxonomy_manager] = lambda: manager

    yield TestClient(app)

    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


def register(client):
    response = client.post("/api/taxonomy/register", json={"categories": CATEGORIES})
    assert response.status_code == 200, response.text
    return response.json()


def run(client, subject="repo-main"):
    response = client.post("/api/runs", json={"subject": subject, "documents": DOCUMENTS})
    assert response.status_code == 200, response.text
    return response.json()


# =============================================================================
# TAXONOMY
# =============================================================================

def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_register_and_read_taxonomy(client):
    body = register(client)

    assert body["version"] == 1
    assert [c["code"] for c in body["categories"]] == ["A", "B"]
    assert client.get("/api/taxonomy").json() == body


def test_register_out_of_order_returns_422(client):
    response = client.post(
        "/api/taxonomy/register",
        json={"categories": list(reversed(CATEGORIES))},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["rule"] == "lexicographic_order"
    assert client.get("/api/taxonomy").json()["version"] == 0


def test_rebalance_keeps_old_categories_resolvable(client):
    old_ids = [c["stable_id"] for c in register(client)["categories"]]

    response = client.post(
        "/api/taxonomy/rebalance",
        json={
            "reason": "recode",
            "categories": [
                {"code": "A", "name": "testing"},
                {"code": "B", "name": "security"},
            ],
        },
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["version"] == 2
    assert {e["change"] for e in body["entries"]} == {"recoded"}

    old = client.get(f"/api/taxonomy/categories/{old_ids[0]}").json()
    assert old["active"] is False
    assert len(client.get("/api/taxonomy/history").json()) == 2
    assert client.get("/api/taxonomy/categories/unknown").status_code == 404


def test_failed_rebalance_returns_422(client):
    register(client)

    response = client.post(
        "/api/taxonomy/rebalance",
        json={"reason": "bad", "categories": [{"code": "A1", "name": "x", "parent_code": "Z", "depth": 1}]},
    )

    assert response.status_code == 422
    assert client.get("/api/taxonomy").json()["version"] == 1


def test_orthogonality_endpoint(client):
    register(client)

    response = client.post("/api/taxonomy/orthogonality", json={"documents": DOCUMENTS})

    assert response.status_code == 200
    assert response.json()["pair_count"] == 1


# =============================================================================
# RUNS + IDENTITY
# =============================================================================

def test_run_persists_and_exposes_history(client):
    register(client)

    body = run(client)

    record = body["record"]
    assert record["grade"] in {"A", "B", "C", "D"}
    assert record["taxonomy_version"] == 1
    assert body["identity"]["dimensions"] == ["security", "testing"]

    history = client.get("/api/runs/repo-main/history").json()
    assert [r["id"] for r in history["records"]] == [record["id"]]
    assert history["trend"] == "stable"

    cells = client.get(f"/api/runs/records/{record['id']}/cells").json()
    assert len(cells) == 4

    identity = client.get("/api/identity/repo-main").json()
    assert identity["category_scores"].keys() == {"security", "testing"}


def test_run_against_empty_taxonomy_returns_409(client):
    response = client.post("/api/runs", json={"subject": "repo-main", "documents": DOCUMENTS})

    assert response.status_code == 409


def test_unknown_subject_returns_404(client):
    assert client.get("/api/identity/nobody").status_code == 404
    assert client.get("/api/runs/nobody/history").status_code == 404
    assert client.get("/api/runs/records/999/cells").status_code == 404


# =============================================================================
# PERMISSIONS
# =============================================================================

def test_requirements_listing(client):
    actions = [r["action_name"] for r in client.get("/api/permissions/requirements").json()]

    assert len(actions) == 10
    assert "git_push" in actions


def test_permission_check_is_audited(client):
    register(client)
    run(client)

    response = client.post(
        "/api/permissions/check",
        json={"subject": "repo-main", "action_name": "git_push"},
    )

    assert response.status_code == 200, response.text
    decision = response.json()
    assert decision["allowed"] == (decision["overlap_passed"] and decision["sovereignty_passed"])
    # code_quality is not a category of this taxonomy, so it is always short
    assert "code_quality" in [f["category"] for f in decision["failed_categories"]]

    stats = client.get("/api/permissions/audit/stats").json()
    assert stats["total_decisions"] == 1


def test_permission_check_unknown_action_or_subject(client):
    register(client)
    run(client)

    unknown_action = client.post(
        "/api/permissions/check",
        json={"subject": "repo-main", "action_name": "launch_rockets"},
    )
    unknown_subject = client.post(
        "/api/permissions/check",
        json={"subject": "nobody", "action_name": "git_push"},
    )

    assert unknown_action.status_code == 404
    assert unknown_subject.status_code == 404


def test_denied_check_decays_identity_sovereignty(client):
    register(client)
    run(client)
    before = client.get("/api/identity/repo-main").json()
    assert before["drift_events"] == 0

    # security + testing can never reach git_push's 0.8 overlap without code_quality
    decision = client.post(
        "/api/permissions/check",
        json={"subject": "repo-main", "action_name": "git_push"},
    ).json()
    assert decision["allowed"] is False

    after = client.get("/api/identity/repo-main").json()
    assert after["drift_events"] == 1
    assert after["sovereignty_score"] == pytest.approx(before["sovereignty_score"] * (1 - 0.003))

    # a fresh measurement starts the count again
    run(client)
    assert client.get("/api/identity/repo-main").json()["drift_events"] == 0
