"""
Learning Session API Router.

A session is one sitting at the editor. Starting one produces the welcome
message, the topic explanation and the topic's code example.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field

from src.api.deps import get_tutor_service, to_http_error
from src.tutor.service import TutorService

router = APIRouter()


class SessionStartRequest(BaseModel):
    """Request model for starting a learning session."""

    user_id: str = Field(..., min_length=1, description="Learner identifier")
    language: str = Field(..., description="Language id of an active learning flow")


@router.post("", summary="Start learning session")
def start_session(
    request: SessionStartRequest,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """
    Start a session on the flow's current topic.

    Requires a flow in learning_active (or topic_completed for review).
    """
    logger.info(f"Starting learning session for user={request.user_id} language={request.language}")
    try:
        output = service.start_session(request.user_id, request.language)
        service.session.commit()
        return output.to_dict()
    except Exception as exc:
        raise to_http_error(exc, "Failed to start learning session")


@router.post("/{session_id}/topic", summary="Move session to the flow's current topic")
def sync_topic(
    session_id: str,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """Introduce the current topic after the flow has advanced. No-op if already on it."""
    try:
        output = service.sync_topic(session_id)
        service.session.commit()
        return output.to_dict()
    except Exception as exc:
        raise to_http_error(exc, f"Failed to change topic for session {session_id}")


@router.post("/{session_id}/end", summary="End learning session")
def end_session(
    session_id: str,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    try:
        result = service.end_session(session_id)
        service.session.commit()
        return result
    except Exception as exc:
        raise to_http_error(exc, f"Failed to end session {session_id}")
