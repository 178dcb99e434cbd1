# SQLAlchemy models
from .base import Base
from .learning import (
    CurriculumTopic,
    LearningFlowRecord,
    PersonalizedCurriculum,
    TopicProgress,
    UserAssessment,
    UserProgress,
)
from .session import (
    ChatMessageRecord,
    CodeEvent,
    LearningSession,
)

__all__ = [
    "Base",
    "ChatMessageRecord",
    "CodeEvent",
    "CurriculumTopic",
    "LearningFlowRecord",
    "LearningSession",
    "PersonalizedCurriculum",
    "TopicProgress",
    "UserAssessment",
    "UserProgress",
]
