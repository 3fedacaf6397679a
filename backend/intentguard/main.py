import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from intentguard.api.routes import router
from intentguard.config import get_settings
from intentguard.database import Base, async_session, engine

# Import models so SQLAlchemy knows about them when creating tables
# Without this import, Base.metadata.create_all() would create nothing
from intentguard.models import records  # noqa: F401
from intentguard.services.taxonomy.repository import TaxonomyRepository

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# LIFESPAN: Startup and Shutdown Logic
# =============================================================================
#
# Before yield: create tables, load the taxonomy into app.state
# After yield: close the connection pool
#
# The taxonomy manager is in-memory (snapshots must never wait on I/O), so
# it is rebuilt from the database once here and written back after every
# register/rebalance.
#
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""

    # === STARTUP ===
    async with engine.begin() as conn:
        # If tables already exist, this does nothing (safe to run repeatedly)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        app.state.taxonomy = await TaxonomyRepository(session).load()

    logger.info(f"IntentGuard ready (taxonomy v{app.state.taxonomy.version})")

    # === YIELD (server is now running and handling requests) ===
    yield

    # === SHUTDOWN ===
    await engine.dispose()


app = FastAPI(
    title="IntentGuard Trust Debt Engine",
    description="Measures intent/reality divergence and gates actions on the result",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
