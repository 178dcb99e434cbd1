"""
Shared FastAPI dependencies for the tutor routers.

Tests override get_clients (scripted fake models) and get_registry through
app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from config import get_settings
from src.db.database import get_db
from src.tutor.errors import (
    AIUnavailableError,
    InvalidTransitionError,
    NotFoundError,
    QuotaExceededError,
    TutorAPIError,
)
from src.tutor.gemini import TutorClients, build_clients
from src.tutor.service import SessionRegistry, TutorService

_registry = SessionRegistry()


@lru_cache(maxsize=1)
def get_clients() -> TutorClients:
    return build_clients(get_settings())


def get_registry() -> SessionRegistry:
    return _registry


def get_watcher_config() -> dict[str, float]:
    settings = get_settings()
    return {
        "min_response_interval": settings.watcher_min_response_interval_seconds,
        "significant_change": settings.watcher_significant_change_chars,
        "stuck_idle_seconds": settings.watcher_stuck_idle_seconds,
    }


def get_tutor_service(
    db: Session = Depends(get_db),
    clients: TutorClients = Depends(get_clients),
    registry: SessionRegistry = Depends(get_registry),
) -> TutorService:
    return TutorService(db, clients, registry, watcher_config=get_watcher_config())


def to_http_error(exc: Exception, context: str) -> HTTPException:
    """
    Translate a tutor error into an HTTPException.

    Call inside the except block; unknown exceptions are logged with their traceback and become 500s.
    """
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValueError):
        # InvalidAnswerError and repository index checks
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, QuotaExceededError):
        logger.warning(f"{context}: {exc}")
        return HTTPException(status_code=429, detail=exc.user_message)
    if isinstance(exc, AIUnavailableError):
        return HTTPException(status_code=503, detail=exc.user_message)
    if isinstance(exc, TutorAPIError):
        logger.error(f"{context}: {exc}")
        return HTTPException(status_code=502, detail=exc.user_message)

    logger.exception(context)
    return HTTPException(status_code=500, detail=str(exc))
