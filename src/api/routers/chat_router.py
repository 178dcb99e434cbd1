"""
Chat API Router.

Learner messages go to the session's coordinator; every message either side
sends is stored in the session transcript.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.deps import get_tutor_service, to_http_error
from src.tutor.service import TutorService

router = APIRouter()


class ChatMessageRequest(BaseModel):
    """Request model for a learner chat message."""

    session_id: str = Field(..., description="Active learning session id")
    message: str = Field(..., min_length=1, description="Learner's message")


@router.post("/message", summary="Send chat message")
def send_message(
    request: ChatMessageRequest,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """
    Send a message to the tutor.

    Returns the learner message, the tutor reply and, when the message asks
    for code, an intro message plus the generated example.
    """
    try:
        output = service.chat(request.session_id, request.message)
        service.session.commit()
        return output.to_dict()
    except Exception as exc:
        raise to_http_error(exc, f"Failed to handle chat message for session {request.session_id}")


@router.get("/{session_id}/history", summary="Get chat transcript")
def get_history(
    session_id: str,
    limit: int | None = Query(None, ge=1, le=500, description="Only the most recent N messages"),
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    try:
        messages = service.history(session_id, limit=limit)
        return {
            "session_id": session_id,
            "count": len(messages),
            "messages": [m.to_dict() for m in messages],
        }
    except Exception as exc:
        raise to_http_error(exc, f"Failed to get history for session {session_id}")
