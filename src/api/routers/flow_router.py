"""
Learning Flow API Router.

Endpoints for the per (user, language) learning flow:
- Start (or resume) a flow
- Answer the assessment questions
- Advance through curriculum topics
- Record finished exercises
- Restart the assessment
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field

from src.api.deps import get_tutor_service, to_http_error
from src.tutor.assessment import get_assessment_questions
from src.tutor.service import TutorService

router = APIRouter()


# ========================================
# Request Models
# ========================================


class FlowStartRequest(BaseModel):
    """Request model for starting a learning flow."""

    user_id: str = Field(..., min_length=1, description="Learner identifier")
    language: str = Field(..., description="Language id, e.g. 'python'")


class AnswerRequest(BaseModel):
    """Request model for answering the current assessment question."""

    option: str = Field(..., description="One of the current question's options, verbatim")


class AdvanceRequest(BaseModel):
    """Request model for completing the current topic."""

    score: float = Field(100.0, ge=0, le=100, description="Score for the completed topic")
    struggling_areas: list[str] = Field(default_factory=list, description="Areas the learner struggled with")


class ExerciseRequest(BaseModel):
    """Request model for recording a finished exercise."""

    attempts: int = Field(1, ge=1, description="Attempts the learner needed")
    time_spent: int = Field(0, ge=0, description="Seconds spent on the exercise")


# ========================================
# Endpoints
# ========================================


@router.post("", summary="Start or resume a learning flow")
def start_flow(
    request: FlowStartRequest,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """
    Start the flow for a learner and language.

    A learner with an active assessment and curriculum resumes learning;
    otherwise the flow starts at the first assessment question.
    """
    logger.info(f"Starting flow for user={request.user_id} language={request.language}")
    try:
        flow = service.start_flow(request.user_id, request.language)
        service.session.commit()
        return {
            **flow.to_dict(),
            "intro": get_assessment_questions(flow.language)["intro"],
        }
    except Exception as exc:
        raise to_http_error(exc, "Failed to start flow")


@router.get("/{user_id}/{language}", summary="Get flow state")
def get_flow(
    user_id: str,
    language: str,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    try:
        flow = service.get_flow(user_id, language)
        return flow.to_dict()
    except Exception as exc:
        raise to_http_error(exc, f"Failed to get flow for {user_id}")


@router.post("/{user_id}/{language}/answer", summary="Answer the current assessment question")
def answer_question(
    user_id: str,
    language: str,
    request: AnswerRequest,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """
    Record an answer.

    The third answer triggers assessment analysis and curriculum generation.
    If the AI service fails the flow returns to the first question and the
    step carries a user-facing error.
    """
    try:
        flow, step = service.answer(user_id, language, request.option)
        service.session.commit()
        return {"step": step.to_dict(), "flow": flow.to_dict()}
    except Exception as exc:
        raise to_http_error(exc, f"Failed to record answer for {user_id}")


@router.post("/{user_id}/{language}/advance", summary="Complete the current topic")
def advance_topic(
    user_id: str,
    language: str,
    request: AdvanceRequest | None = None,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    request = request or AdvanceRequest()
    try:
        flow, topic = service.advance(user_id, language, request.score, request.struggling_areas)
        recommendation = service.recommendation(flow)
        service.session.commit()
        return {
            "topic": topic.to_dict() if topic else None,
            "finished": topic is None,
            "recommendation": recommendation.to_dict() if recommendation else None,
            "flow": flow.to_dict(),
        }
    except Exception as exc:
        raise to_http_error(exc, f"Failed to advance flow for {user_id}")


@router.post("/{user_id}/{language}/restart", summary="Restart the assessment")
def restart_flow(
    user_id: str,
    language: str,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    try:
        flow = service.restart(user_id, language)
        service.session.commit()
        return flow.to_dict()
    except Exception as exc:
        raise to_http_error(exc, f"Failed to restart flow for {user_id}")


@router.post(
    "/{user_id}/{language}/exercises/{exercise_id}/complete",
    summary="Record a finished exercise",
)
def complete_exercise(
    user_id: str,
    language: str,
    exercise_id: str,
    request: ExerciseRequest | None = None,
    service: TutorService = Depends(get_tutor_service),
) -> dict[str, Any]:
    """
    Record an exercise result.

    An exercise that took more than three attempts marks the topic as a
    struggling area and adds a reinforce rule to the curriculum.
    """
    request = request or ExerciseRequest()
    try:
        flow, topic, exercise = service.complete_exercise(
            user_id, language, exercise_id, request.attempts, request.time_spent
        )
        service.session.commit()
        return {
            "exercise": exercise.to_dict(),
            "topic_id": topic.id,
            "adaptation_needed": flow.progress.adaptation_needed,
            "flow": flow.to_dict(),
        }
    except Exception as exc:
        raise to_http_error(exc, f"Failed to record exercise {exercise_id} for {user_id}")
