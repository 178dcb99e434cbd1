"""
Tutor domain models.

Plain dataclasses shared by the assessment, curriculum, flow and coordination
layers. Persistence lives in src/db/models; these objects carry no ORM state.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


def new_id(prefix: str = "") -> str:
    """Generate a unique identifier, optionally prefixed (e.g. 'topic_')."""
    value = uuid.uuid4().hex
    return f"{prefix}{value}" if prefix else value


def _clamp(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _enum_value(enum_cls: type[Enum], value: Any, default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (TypeError, ValueError):
        return default


def _text(value: Any, default: str = "") -> str:
    """Model replies sometimes nest objects where a string belongs; flatten them."""
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else str(value)


def _optional_text(value: Any) -> str | None:
    return _text(value) or None


def _str_list(value: Any) -> list[str]:
    """A bare string is one item; anything that is not a list or tuple is dropped."""
    if isinstance(value, str):
        return [value] if value else []
    if not isinstance(value, (list, tuple)):
        return []
    return [_text(item) for item in value if item is not None and item != ""]


class Level(str, Enum):
    """Overall level, kept for compatibility with older clients."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class GeneralLevel(str, Enum):
    """Experience with programming in any language."""
    NONE = "none"
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# Same scale, applied to the selected language only
LanguageLevel = GeneralLevel


class AdaptiveLevel(str, Enum):
    """Teaching strategy derived from general + language-specific experience."""
    BEGINNER = "beginner"                            # new to programming
    INTERMEDIATE_SYNTAX = "intermediate_syntax"      # programs, new to this language
    INTERMEDIATE_CONCEPTS = "intermediate_concepts"  # some language experience
    ADVANCED = "advanced"


class LearningStyle(str, Enum):
    VISUAL = "visual"
    PRACTICAL = "practical"
    THEORETICAL = "theoretical"
    MIXED = "mixed"


class TimeAvailable(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TopicType(str, Enum):
    CONCEPT = "concept"
    EXERCISE = "exercise"
    PROJECT = "project"
    CHALLENGE = "challenge"


class MessageRole(str, Enum):
    AI = "ai"
    USER = "user"
    SYSTEM = "system"


class MessageType(str, Enum):
    INTRODUCTION = "introduction"
    EXPLANATION = "explanation"
    QUESTION = "question"
    FEEDBACK = "feedback"
    ENCOURAGEMENT = "encouragement"
    HINT = "hint"


class FlowState(str, Enum):
    """Learning flow states, in the order a learner normally visits them."""
    ASSESSMENT = "assessment"
    GENERATING_CURRICULUM = "generating_curriculum"
    LEARNING_ACTIVE = "learning_active"
    TOPIC_COMPLETED = "topic_completed"


ADAPTATION_ACTIONS = ("skip", "reinforce", "advance", "provide_hint", "change_approach")


@dataclass
class UserAssessment:
    """Learner profile produced from the initial assessment."""

    language: str
    level: Level = Level.BEGINNER
    experience: str = ""
    interests: list[str] = field(default_factory=list)
    previous_knowledge: list[str] = field(default_factory=list)
    learning_style: LearningStyle = LearningStyle.MIXED
    goals: list[str] = field(default_factory=list)
    time_available: TimeAvailable = TimeAvailable.MEDIUM
    general_programming_level: GeneralLevel = GeneralLevel.NONE
    language_specific_level: GeneralLevel = GeneralLevel.NONE
    adaptive_level: AdaptiveLevel = AdaptiveLevel.BEGINNER
    programming_experience_years: int = 0
    language_experience_level: str = "never_used"
    responses: list[str] = field(default_factory=list)
    user_id: str | None = None
    id: str = field(default_factory=new_id)
    completed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in (
            "level",
            "learning_style",
            "time_available",
            "general_programming_level",
            "language_specific_level",
            "adaptive_level",
        ):
            data[key] = getattr(self, key).value
        data["completed_at"] = self.completed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserAssessment:
        completed_at = data.get("completed_at")
        if isinstance(completed_at, str):
            completed_at = datetime.fromisoformat(completed_at)
        return cls(
            id=data.get("id") or new_id(),
            user_id=data.get("user_id"),
            language=data["language"],
            level=_enum_value(Level, data.get("level"), Level.BEGINNER),
            experience=_text(data.get("experience")),
            interests=_str_list(data.get("interests")),
            previous_knowledge=_str_list(data.get("previous_knowledge")),
            learning_style=_enum_value(LearningStyle, data.get("learning_style"), LearningStyle.MIXED),
            goals=_str_list(data.get("goals")),
            time_available=_enum_value(TimeAvailable, data.get("time_available"), TimeAvailable.MEDIUM),
            general_programming_level=_enum_value(
                GeneralLevel, data.get("general_programming_level"), GeneralLevel.NONE
            ),
            language_specific_level=_enum_value(
                GeneralLevel, data.get("language_specific_level"), GeneralLevel.NONE
            ),
            adaptive_level=_enum_value(AdaptiveLevel, data.get("adaptive_level"), AdaptiveLevel.BEGINNER),
            programming_experience_years=_clamp(data.get("programming_experience_years"), 0, 60, 0),
            language_experience_level=_text(data.get("language_experience_level"), "never_used"),
            responses=_str_list(data.get("responses")),
            completed_at=completed_at or datetime.utcnow(),
        )


@dataclass
class Exercise:
    """A practice exercise attached to a topic."""

    question: str
    solution: str = ""
    explanation: str = ""
    starting_code: str = ""
    expected_output: str | None = None
    hints: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("exercise_"))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Exercise:
        return cls(
            id=_text(data.get("id")) or new_id("exercise_"),
            question=_text(data.get("question"), "Practice exercise"),
            solution=_text(data.get("solution")),
            explanation=_text(data.get("explanation")),
            starting_code=_text(data.get("starting_code", data.get("startingCode"))),
            expected_output=_optional_text(data.get("expected_output", data.get("expectedOutput"))),
            hints=_str_list(data.get("hints")),
        )


@dataclass
class LearningTopic:
    """One step of a personalized curriculum."""

    title: str
    description: str = ""
    type: TopicType = TopicType.CONCEPT
    difficulty: int = 1           # 1-5
    estimated_time: int = 30      # minutes
    prerequisites: list[str] = field(default_factory=list)
    learning_objectives: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    priority: int = 5             # 1-10
    focus_area: str | None = None
    code_example: str | None = None
    explanation: str | None = None
    exercises: list[Exercise] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("topic_"))

    def get_exercise(self, exercise_id: str) -> Exercise | None:
        return next((e for e in self.exercises if e.id == exercise_id), None)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearningTopic:
        focus_area = data.get("focus_area", data.get("focusArea"))
        exercises = data.get("exercises")
        if not isinstance(exercises, list):
            exercises = []
        return cls(
            id=_text(data.get("id")) or new_id("topic_"),
            title=_text(data.get("title"), "Untitled topic"),
            description=_text(data.get("description")),
            type=_enum_value(TopicType, data.get("type"), TopicType.CONCEPT),
            difficulty=_clamp(data.get("difficulty"), 1, 5, 1),
            estimated_time=_clamp(data.get("estimated_time", data.get("estimatedTime")), 1, 600, 30),
            prerequisites=_str_list(data.get("prerequisites")),
            learning_objectives=_str_list(data.get("learning_objectives", data.get("learningObjectives"))),
            tags=_str_list(data.get("tags")),
            priority=_clamp(data.get("priority"), 1, 10, 5),
            focus_area=focus_area if isinstance(focus_area, str) and focus_area else None,
            code_example=_optional_text(data.get("code_example", data.get("codeExample"))),
            explanation=_optional_text(data.get("explanation")),
            exercises=[Exercise.from_dict(e) for e in exercises if isinstance(e, dict)],
        )


@dataclass
class AdaptationRule:
    condition: str
    action: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdaptationRule:
        action = data.get("action")
        if action not in ADAPTATION_ACTIONS:
            action = "provide_hint"
        parameters = data.get("parameters")
        return cls(
            condition=_text(data.get("condition")),
            action=action,
            parameters=dict(parameters) if isinstance(parameters, dict) else {},
        )


@dataclass
class PersonalizedCurriculum:
    """
    Ordered topic list for one learner and one language.

    current_topic_index only ever moves forward; it equals len(topics)-1 on the
    last topic and the flow switches to topic_completed instead of moving past it.
    """

    language: str
    topics: list[LearningTopic]
    level: Level = Level.BEGINNER
    adaptive_level: AdaptiveLevel = AdaptiveLevel.BEGINNER
    current_topic_index: int = 0
    estimated_completion_time: int = 0
    adaptation_rules: list[AdaptationRule] = field(default_factory=list)
    user_id: str | None = None
    assessment_id: str | None = None
    id: str = field(default_factory=lambda: new_id("curriculum_"))
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_updated: datetime = field(default_factory=datetime.utcnow)

    @property
    def current_topic(self) -> LearningTopic | None:
        if 0 <= self.current_topic_index < len(self.topics):
            return self.topics[self.current_topic_index]
        return None

    @property
    def has_next_topic(self) -> bool:
        return self.current_topic_index + 1 < len(self.topics)

    def is_exhausted(self, completed_topic_ids: list[str]) -> bool:
        """True once the last topic has been completed."""
        return bool(self.topics) and not self.has_next_topic and self.topics[-1].id in completed_topic_ids

    def completion_percentage(self, completed_topic_ids: list[str]) -> float:
        if not self.topics:
            return 0.0
        topic_ids = {t.id for t in self.topics}
        done = len(topic_ids.intersection(completed_topic_ids))
        return round(100.0 * done / len(self.topics), 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "assessment_id": self.assessment_id,
            "language": self.language,
            "level": self.level.value,
            "adaptive_level": self.adaptive_level.value,
            "topics": [t.to_dict() for t in self.topics],
            "current_topic_index": self.current_topic_index,
            "estimated_completion_time": self.estimated_completion_time,
            "adaptation_rules": [r.to_dict() for r in self.adaptation_rules],
            "created_at": self.created_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PersonalizedCurriculum:
        def _dt(value: Any) -> datetime:
            if isinstance(value, datetime):
                return value
            if isinstance(value, str):
                return datetime.fromisoformat(value)
            return datetime.utcnow()

        return cls(
            id=data.get("id") or new_id("curriculum_"),
            user_id=data.get("user_id"),
            assessment_id=data.get("assessment_id"),
            language=data["language"],
            level=_enum_value(Level, data.get("level"), Level.BEGINNER),
            adaptive_level=_enum_value(AdaptiveLevel, data.get("adaptive_level"), AdaptiveLevel.BEGINNER),
            topics=[LearningTopic.from_dict(t) for t in data.get("topics") or []],
            current_topic_index=int(data.get("current_topic_index") or 0),
            estimated_completion_time=int(data.get("estimated_completion_time") or 0),
            adaptation_rules=[AdaptationRule.from_dict(r) for r in data.get("adaptation_rules") or []],
            created_at=_dt(data.get("created_at")),
            last_updated=_dt(data.get("last_updated")),
        )


@dataclass
class ChatMessage:
    role: MessageRole
    content: str
    message_type: MessageType
    topic_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "message_type": self.message_type.value,
            "topic_id": self.topic_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CodeMetrics:
    lines_of_code: int
    complexity: int = 1
    completeness: float = 0.0   # 0-100
    quality: float = 80.0       # 0-100
    time_spent: int = 0         # seconds


@dataclass
class CodeSnapshot:
    code: str
    language: str
    topic_id: str | None
    is_valid: bool
    metrics: CodeMetrics
    errors: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass
class SessionProgress:
    topics_completed: list[str] = field(default_factory=list)
    exercises_completed: list[str] = field(default_factory=list)
    current_score: float = 0.0
    time_spent: int = 0
    struggling_areas: list[str] = field(default_factory=list)
    strength_areas: list[str] = field(default_factory=list)
    adaptations_made: int = 0
    adaptation_needed: bool = False     # an exercise needed more than three attempts

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SessionProgress:
        data = data or {}
        return cls(
            topics_completed=list(data.get("topics_completed") or []),
            exercises_completed=list(data.get("exercises_completed") or []),
            current_score=float(data.get("current_score") or 0.0),
            time_spent=int(data.get("time_spent") or 0),
            struggling_areas=list(data.get("struggling_areas") or []),
            strength_areas=list(data.get("strength_areas") or []),
            adaptations_made=int(data.get("adaptations_made") or 0),
            adaptation_needed=bool(data.get("adaptation_needed")),
        )


@dataclass
class GeneratedCode:
    """Code example produced for the editor."""
    code: str
    explanation: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "explanation": self.explanation}


@dataclass
class TeachingAction:
    type: str                   # chat_message, code_example, exercise, hint, encouragement
    priority: str = "medium"    # low, medium, high, immediate
    chat_message: ChatMessage | None = None
    code_example: GeneratedCode | None = None
    explanation: str | None = None
