"""
Code API Router.

Editor events from a learning session, plus one-shot feedback and lesson
generation that do not need a session.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.deps import get_clients, get_tutor_service, to_http_error
from src.tutor.feedback import analyze_code, get_lesson
from src.tutor.gemini import TutorClients
from src.tutor.service import TutorService

router = APIRouter()


class CodeEventRequest(BaseModel):
    """Request model for an editor event."""

    session_id: str = Field(..., description="Active learning session id")
    code: str = Field("", description="Full editor contents")
    language: str = Field("python", description="Editor language")
    idle_seconds: float = Field(0, ge=0, description="Seconds since the last keystroke")
    reactor: Literal["watcher", "coordinator"] = Field(
        "watcher",
        description="watcher: event detection + teaching moment; coordinator: chat reaction to the change",
    )


class FeedbackRequest(BaseModel):
    """Request model for one-shot code feedback."""

    code: str = Field(..., min_length=1, description="Code to review")
    language: str = Field("python", description="Code language")


@router.post("/event", summary="Record editor event")
def code_event(
    request: CodeEventRequest,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """
    Persist an editor event and return the tutor's reaction, if any.

    With the watcher the response carries a `moment` (null when the watcher
    stayed quiet); with the coordinator it carries chat `messages`.
    """
    try:
        output = service.code_event(
            request.session_id,
            request.code,
            request.language,
            idle_seconds=request.idle_seconds,
            reactor=request.reactor,
        )
        service.session.commit()
        return output.to_dict()
    except Exception as exc:
        raise to_http_error(exc, f"Failed to process code event for session {request.session_id}")


@router.post("/feedback", summary="Get feedback on code")
def code_feedback(
    request: FeedbackRequest,
    clients: TutorClients = Depends(get_clients),
) -> dict[str, str]:
    try:
        return analyze_code(clients.feedback, request.code, request.language).to_dict()
    except Exception as exc:
        raise to_http_error(exc, "Failed to analyze code")


@router.get("/lesson", summary="Generate a short lesson")
def lesson(
    language: str = Query("python", description="Lesson language"),
    level: str = Query("beginner", description="beginner, intermediate or advanced"),
    clients: TutorClients = Depends(get_clients),
) -> dict[str, Any]:
    try:
        return get_lesson(clients.feedback, language, level).to_dict()
    except Exception as exc:
        raise to_http_error(exc, "Failed to generate lesson")
