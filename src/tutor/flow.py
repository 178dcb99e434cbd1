"""
Learning flow state machine.

    assessment -> generating_curriculum -> learning_active -> topic_completed

The flow collects the three assessment answers, then analyzes them and
generates a curriculum in one step. Transport failures during that step put
the flow back in `assessment` with a user-facing error; nothing is retried.
The topic index only moves forward.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.tutor.assessment import (
    QUESTION_COUNT,
    AssessmentAnalyzer,
    feedback_for_response,
    get_assessment_questions,
    personalized_welcome,
)
from src.tutor.curriculum import CurriculumFactory
from src.tutor.errors import (
    InvalidAnswerError,
    InvalidTransitionError,
    NotFoundError,
    TutorAPIError,
)
from src.tutor.models import (
    Exercise,
    FlowState,
    LearningTopic,
    PersonalizedCurriculum,
    SessionProgress,
    UserAssessment,
)

MAX_EXERCISE_ATTEMPTS = 3


@dataclass
class AssessmentStep:
    """Result of answering one assessment question."""

    state: FlowState
    feedback: str = ""
    next_question: dict[str, Any] | None = None
    welcome: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "feedback": self.feedback,
            "next_question": self.next_question,
            "welcome": self.welcome,
            "error": self.error,
        }


@dataclass
class LearningFlow:
    """
    Per (user, language) learning flow.

    The analyzer and factory are only needed while answering; a flow restored
    from a snapshot without them can still advance and restart.
    """

    user_id: str
    language: str
    analyzer: AssessmentAnalyzer | None = None
    factory: CurriculumFactory | None = None
    state: FlowState = FlowState.ASSESSMENT
    responses: list[str] = field(default_factory=list)
    assessment: UserAssessment | None = None
    curriculum: PersonalizedCurriculum | None = None
    progress: SessionProgress = field(default_factory=SessionProgress)
    error: str | None = None
    replaces_curriculum: bool = False

    # -------------------------------------------------------------------------
    # Assessment
    # -------------------------------------------------------------------------

    @property
    def questions(self) -> list[dict[str, Any]]:
        return get_assessment_questions(self.language)["questions"]

    def current_question(self) -> dict[str, Any] | None:
        if self.state != FlowState.ASSESSMENT or len(self.responses) >= QUESTION_COUNT:
            return None
        return self.questions[len(self.responses)]

    def answer(self, option: str) -> AssessmentStep:
        """
        Record an answer to the current question.

        After the last answer the flow analyzes the responses and generates the
        curriculum before returning.

        Raises:
            InvalidTransitionError: flow is not in the assessment state
            InvalidAnswerError: option is not one of the current question's options
        """
        question = self.current_question()
        if question is None:
            raise InvalidTransitionError("answer", self.state.value)
        if option not in question["options"]:
            raise InvalidAnswerError(
                f"'{option}' is not an option for question {question['index'] + 1}"
            )

        self.error = None
        self.responses.append(option)
        feedback = feedback_for_response(question["index"], option)

        if len(self.responses) < QUESTION_COUNT:
            return AssessmentStep(
                state=self.state,
                feedback=feedback,
                next_question=self.current_question(),
            )

        self._complete_assessment()
        return AssessmentStep(
            state=self.state,
            feedback=feedback,
            welcome=personalized_welcome(self.assessment) if self.assessment and not self.error else None,
            error=self.error,
        )

    def _complete_assessment(self) -> None:
        if self.analyzer is None or self.factory is None:
            raise InvalidTransitionError("complete assessment without AI services", self.state.value)

        self.state = FlowState.GENERATING_CURRICULUM
        logger.info(f"Generating curriculum for user={self.user_id} language={self.language}")

        try:
            assessment = self.analyzer.analyze(self.responses, self.language, user_id=self.user_id)
            curriculum = self.factory.generate(assessment)
        except TutorAPIError as exc:
            logger.error(f"Curriculum generation failed for user={self.user_id}: {exc}")
            self.state = FlowState.ASSESSMENT
            self.responses = []
            self.error = exc.user_message
            return

        self.replaces_curriculum = self.curriculum is not None
        self.assessment = assessment
        self.curriculum = curriculum
        self.progress = SessionProgress()
        self.state = FlowState.LEARNING_ACTIVE
        logger.info(
            f"Learning active for user={self.user_id}: {len(curriculum.topics)} topics, "
            f"adaptive={assessment.adaptive_level.value}"
        )

    # -------------------------------------------------------------------------
    # Topic progression
    # -------------------------------------------------------------------------

    def resume(
        self,
        assessment: UserAssessment,
        curriculum: PersonalizedCurriculum,
        progress: SessionProgress | None = None,
    ) -> None:
        """Continue an existing assessment + curriculum without re-assessing."""
        self.assessment = assessment
        self.curriculum = curriculum
        self.progress = progress or SessionProgress()
        self.responses = list(assessment.responses)
        self.error = None
        if curriculum.is_exhausted(self.progress.topics_completed):
            self.state = FlowState.TOPIC_COMPLETED
        else:
            self.state = FlowState.LEARNING_ACTIVE

    def current_topic(self) -> LearningTopic | None:
        if self.curriculum is None or self.state not in (
            FlowState.LEARNING_ACTIVE,
            FlowState.TOPIC_COMPLETED,
        ):
            return None
        return self.curriculum.current_topic

    def advance_topic(self, score: float = 100.0) -> LearningTopic | None:
        """
        Complete the current topic and move to the next one.

        Returns:
            The new current topic, or None when the curriculum is finished.

        Raises:
            InvalidTransitionError: flow is not in learning_active
        """
        if self.state != FlowState.LEARNING_ACTIVE or self.curriculum is None:
            raise InvalidTransitionError("advance", self.state.value)

        topic = self.curriculum.current_topic
        if topic is not None and topic.id not in self.progress.topics_completed:
            self.progress.topics_completed.append(topic.id)
            self.progress.current_score += score

        if self.curriculum.has_next_topic:
            self.curriculum.current_topic_index += 1
            return self.curriculum.current_topic

        self.state = FlowState.TOPIC_COMPLETED
        logger.info(f"Curriculum {self.curriculum.id} completed by user={self.user_id}")
        return None

    def complete_exercise(
        self, exercise_id: str, attempts: int = 1, time_spent: int = 0
    ) -> tuple[LearningTopic, Exercise]:
        """
        Record a finished exercise from any topic of the curriculum.

        Time spent is always added; the exercise id is only listed once. More
        than MAX_EXERCISE_ATTEMPTS attempts flags the progress for adaptation.

        Raises:
            InvalidTransitionError: flow has no curriculum yet
            InvalidAnswerError: attempts below 1 or negative time
            NotFoundError: no topic in the curriculum has this exercise
        """
        if self.curriculum is None or self.state not in (
            FlowState.LEARNING_ACTIVE,
            FlowState.TOPIC_COMPLETED,
        ):
            raise InvalidTransitionError("complete an exercise", self.state.value)
        if attempts < 1 or time_spent < 0:
            raise InvalidAnswerError("attempts must be at least 1 and time spent cannot be negative")

        for topic in self.curriculum.topics:
            exercise = topic.get_exercise(exercise_id)
            if exercise is not None:
                break
        else:
            raise NotFoundError(f"Exercise {exercise_id} is not part of curriculum {self.curriculum.id}")

        if exercise_id not in self.progress.exercises_completed:
            self.progress.exercises_completed.append(exercise_id)
        self.progress.time_spent += time_spent
        if attempts > MAX_EXERCISE_ATTEMPTS:
            self.progress.adaptation_needed = True
            logger.info(f"Exercise {exercise_id} took {attempts} attempts; user={self.user_id} needs adaptation")
        return topic, exercise

    def restart(self) -> None:
        """Back to the assessment. The curriculum is replaced once a new one is generated."""
        self.state = FlowState.ASSESSMENT
        self.responses = []
        self.error = None

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        topic = self.current_topic()
        return {
            "user_id": self.user_id,
            "language": self.language,
            "state": self.state.value,
            "responses": list(self.responses),
            "error": self.error,
            "current_question": self.current_question(),
            "current_topic": topic.to_dict() if topic else None,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "curriculum": self.curriculum.to_dict() if self.curriculum else None,
            "progress": self.progress.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        analyzer: AssessmentAnalyzer | None = None,
        factory: CurriculumFactory | None = None,
    ) -> LearningFlow:
        assessment = data.get("assessment")
        curriculum = data.get("curriculum")
        return cls(
            user_id=data["user_id"],
            language=data["language"],
            analyzer=analyzer,
            factory=factory,
            state=FlowState(data.get("state") or FlowState.ASSESSMENT.value),
            responses=list(data.get("responses") or []),
            assessment=UserAssessment.from_dict(assessment) if assessment else None,
            curriculum=PersonalizedCurriculum.from_dict(curriculum) if curriculum else None,
            progress=SessionProgress.from_dict(data.get("progress")),
            error=data.get("error"),
        )
