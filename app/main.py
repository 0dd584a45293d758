"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import settings
from app.core.dependencies import get_scenario_validator
from app.core.logging import setup_logging
from app.db.database import AsyncSessionLocal, init_db
from app.services.scenario.repository import ScenarioRepository
from app.api import calls, health, scenarios, webhooks

logger = logging.getLogger(__name__)


async def seed_scenario() -> None:
    """Import the scenario file named by SEED_SCENARIO_FILE, if any."""
    if not settings.seed_scenario_file:
        return
    async with AsyncSessionLocal() as db:
        repository = ScenarioRepository(db, get_scenario_validator())
        scenario_id = await repository.import_yaml(settings.seed_scenario_file)
        logger.info(f"Seed scenario {settings.seed_scenario_file} stored as {scenario_id}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    await seed_scenario()
    yield
    # Shutdown
    pass


app = FastAPI(
    title="IVR Call Agent",
    description="Outbound IVR calls driven by authored question scenarios",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(webhooks.voice.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(scenarios.router, tags=["scenarios"])
app.include_router(calls.router, tags=["calls"])


@app.get("/")
async def root():
    return {
        "message": "IVR Call Agent API",
        "version": "0.1.0",
    }
