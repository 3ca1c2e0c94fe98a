"""
KDP Ads Optimizer — FastAPI Backend
ROI / profitability reporting for KDP advertising, plus an approval queue
that gates every change pushed to Amazon Ads via the official MCP Server.
All data persisted to PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from kdp_ads.config import get_settings
from kdp_ads.database import Database
from kdp_ads.auth import require_auth
from kdp_ads.routers import approvals, campaigns, reports
from kdp_ads.services.change_service import ChangeProposalRegistry
from kdp_ads.services.execution_service import ExecutionDispatcher, build_execution_backend

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "KDP Ads Optimizer"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {SERVICE_NAME}...")
    settings = get_settings()
    database = Database(settings.database_url).connect()
    app.state.database = database

    backend = build_execution_backend(settings)
    dispatcher = ExecutionDispatcher(backend) if backend else None
    app.state.registry = ChangeProposalRegistry(database.sessionmaker, dispatcher)

    try:
        await database.init_db()
        logger.info("Database initialized — all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")
    await database.close()


app = FastAPI(
    title=SERVICE_NAME,
    description="KDP advertising profitability analysis and change approval queue",
    version="1.0.0",
    lifespan=lifespan,
)

# ── Register Routers (all require auth) ──────────────────────────────
_auth = [Depends(require_auth)]
app.include_router(campaigns.router, prefix="/api/campaigns", tags=["Campaigns"], dependencies=_auth)
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"], dependencies=_auth)
app.include_router(approvals.router, prefix="/api/approvals", tags=["Approval Queue"], dependencies=_auth)


@app.get("/api/health")
async def health_check(request: Request):
    database = getattr(request.app.state, "database", None)
    db_ok = await database.check_connection() if database else False
    registry = getattr(request.app.state, "registry", None)
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": SERVICE_NAME,
        "database": "connected" if db_ok else "disconnected",
        "execution": "mcp" if registry and registry.executes_changes else "record-only",
    }
