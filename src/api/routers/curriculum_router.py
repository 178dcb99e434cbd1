"""Curriculum API Router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from src.api.deps import get_tutor_service, to_http_error
from src.tutor.curriculum import next_recommendation
from src.tutor.errors import NotFoundError
from src.tutor.service import TutorService

router = APIRouter()


@router.get("/{user_id}/{language}", summary="Get a user's curriculum")
def get_curriculum(
    user_id: str,
    language: str,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """The curriculum with unlocked topics, completion and the next recommended topic."""
    try:
        curriculum = service.curricula.get_for_user(user_id, language.lower())
        if curriculum is None:
            raise NotFoundError(f"No curriculum for user={user_id} language={language}")

        progress = service.progress.get(curriculum.id)
        recommendation = next_recommendation(curriculum, progress.topics_completed)
        return {
            "curriculum": curriculum.to_dict(),
            "unlocked_topic_ids": service.curricula.unlocked_topic_ids(curriculum.id),
            "completion_percentage": curriculum.completion_percentage(progress.topics_completed),
            "progress": progress.to_dict(),
            "recommendation": recommendation.to_dict() if recommendation else None,
        }
    except Exception as exc:
        raise to_http_error(exc, f"Failed to get curriculum for {user_id}")
