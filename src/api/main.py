"""
FastAPI application for codetutor.

Provides REST API for:
- Initial assessment and personalized curriculum (learning flows)
- Learning sessions with a chat tutor and an editor
- Code events watched by the AI code watcher
- Language catalog, one-shot code feedback and lessons
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from src import __version__
from src.db.database import check_connection, get_engine, init_db

settings = get_settings()

SERVICE_NAME = "codetutor"
SERVICE_VERSION = __version__


def _check_database_health() -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger.info(f"Starting {SERVICE_NAME} service...")
    init_db()
    if not settings.has_ai_configured():
        logger.warning("GEMINI_API_KEY is not set; AI endpoints will return 503")
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info(f"Shutting down {SERVICE_NAME} service...")


app = FastAPI(
    title="CodeTutor",
    description="""
    AI programming tutor with an adaptive curriculum.

    ## Flow

    ```
    3-question assessment
        ↓ Gemini analysis
    Adaptive level (beginner / intermediate_syntax / intermediate_concepts / advanced)
        ↓ Gemini curriculum generation
    Ordered topics, unlocked one at a time
        ↓
    Learning sessions: chat tutor + editor + code watcher
    ```
    """,
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    db_status, db_error = _check_database_health()

    # Overall status is unhealthy if database is down
    overall_status = "healthy" if db_status == "ok" else "unhealthy"

    result: dict[str, Any] = {
        "status": overall_status,
        "timestamp": datetime.utcnow().isoformat(),
        "components": {
            "database": db_status,
            "ai": "configured" if settings.has_ai_configured() else "not_configured",
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}
    else:
        result["tables_missing"] = check_connection().get("tables_missing", [])

    return result


@app.get("/config", tags=["Health"])
def get_config() -> dict[str, Any]:
    """Get current configuration (non-sensitive)."""
    return {
        "database_url": settings.database_url.split("@")[-1]
        if "@" in settings.database_url
        else "configured",
        "gemini": settings.get_gemini_config(),
        "watcher": settings.get_watcher_config(),
        "log_level": settings.log_level,
    }


# ========================================
# Import and mount routers
# ========================================

from src.api.routers import (  # noqa: E402
    assessment_router,
    chat_router,
    code_router,
    curriculum_router,
    flow_router,
    languages_router,
    session_router,
)

app.include_router(flow_router.router, prefix="/api/learning/flows", tags=["Learning Flow"])
app.include_router(session_router.router, prefix="/api/learning/sessions", tags=["Learning Sessions"])
app.include_router(chat_router.router, prefix="/api/chat", tags=["Chat"])
app.include_router(code_router.router, prefix="/api/code", tags=["Code"])
app.include_router(assessment_router.router, prefix="/api/assessment", tags=["Assessment"])
app.include_router(curriculum_router.router, prefix="/api/curriculum", tags=["Curriculum"])
app.include_router(languages_router.router, prefix="/api/languages", tags=["Languages"])
