"""
SimTrace FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import settings
from backend.logging_config import configure_logging
from backend.middleware.body_limit import BodyLimitMiddleware
from backend.routes import diagnose as diagnose_routes
from backend.routes import runs as run_routes

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the effective configuration on startup."""
    logger.info(
        "SimTrace backend starting (env=%s, provider=%s, model=%s, mock=%s, runs_dir=%s, policy_variant=%s)",
        settings.ENVIRONMENT,
        settings.MODEL_PROVIDER,
        settings.DIAGNOSE_MODEL,
        settings.USE_MOCK_LLM,
        settings.RUNS_DIR,
        settings.POLICY_VARIANT,
    )
    yield
    logger.info("SimTrace backend stopped")


app = FastAPI(
    title="SimTrace",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(BodyLimitMiddleware, max_bytes=settings.MAX_REQUEST_BYTES)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(diagnose_routes.router)
app.include_router(run_routes.router)


@app.get("/api/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"ok": True}
