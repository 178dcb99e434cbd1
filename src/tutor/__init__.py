"""
Tutoring core: assessment, curriculum, learning flow, chat/editor coordinator
and the AI code watcher.

Everything here is plain Python over the Gemini client wrapper; persistence
lives in src.db and orchestration in src.tutor.service.
"""

from src.tutor.errors import (
    AIUnavailableError,
    GenerationError,
    InvalidAnswerError,
    InvalidTransitionError,
    MalformedResponseError,
    NotFoundError,
    QuotaExceededError,
    TeachingUnavailableError,
    TutorAPIError,
    TutorError,
)
from src.tutor.flow import AssessmentStep, LearningFlow
from src.tutor.models import AdaptiveLevel, FlowState, Level

__all__ = [
    "AIUnavailableError",
    "AdaptiveLevel",
    "AssessmentStep",
    "FlowState",
    "GenerationError",
    "InvalidAnswerError",
    "InvalidTransitionError",
    "LearningFlow",
    "Level",
    "MalformedResponseError",
    "NotFoundError",
    "QuotaExceededError",
    "TeachingUnavailableError",
    "TutorAPIError",
    "TutorError",
]
