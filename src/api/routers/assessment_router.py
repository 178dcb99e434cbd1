"""Assessment API Router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.api.deps import get_tutor_service, to_http_error
from src.tutor.assessment import get_assessment_questions
from src.tutor.languages import get_language
from src.tutor.service import TutorService

router = APIRouter()


@router.get("", summary="List assessments for a user")
def list_assessments(
    user_id: str = Query(..., min_length=1, description="Learner identifier"),
    language: str | None = Query(None, description="Only this language"),
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """Newest first. Only the latest assessment per language is active."""
    try:
        assessments = service.assessments.list_for_user(user_id, language.lower() if language else None)
        return {
            "user_id": user_id,
            "count": len(assessments),
            "assessments": [a.to_dict() for a in assessments],
        }
    except Exception as exc:
        raise to_http_error(exc, f"Failed to list assessments for {user_id}")


@router.get("/questions/{language}", summary="Get assessment questions")
def questions(language: str) -> dict[str, Any]:
    try:
        return get_assessment_questions(get_language(language).id)
    except Exception as exc:
        raise to_http_error(exc, f"Failed to get questions for {language}")
