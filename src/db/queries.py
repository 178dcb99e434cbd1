"""
Repositories for the tutor tables.

Each repository wraps a SQLAlchemy Session and converts between ORM rows
and the plain dataclasses in src.tutor.models. Repositories flush but never
commit; the caller owns the transaction (session_scope or the request).

Usage:
    with session_scope() as session:
        curriculum = CurriculumRepository(session).get_for_user(user_id, "python")
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from src.db.models import (
    ChatMessageRecord,
    CodeEvent,
    CurriculumTopic,
    LearningFlowRecord,
    LearningSession,
    PersonalizedCurriculum,
    TopicProgress,
    UserAssessment,
    UserProgress,
)
from src.tutor import models as domain
from src.tutor.errors import NotFoundError
from src.tutor.flow import LearningFlow

# =============================================================================
# Row <-> domain conversion
# =============================================================================


def assessment_to_domain(row: UserAssessment) -> domain.UserAssessment:
    return domain.UserAssessment.from_dict(
        {
            "id": row.id,
            "user_id": row.user_id,
            "language": row.language,
            "level": row.level,
            "experience": row.experience,
            "interests": row.interests,
            "previous_knowledge": row.previous_knowledge,
            "learning_style": row.learning_style,
            "goals": row.goals,
            "time_available": row.time_available,
            "general_programming_level": row.general_programming_level,
            "language_specific_level": row.language_specific_level,
            "adaptive_level": row.adaptive_level,
            "programming_experience_years": row.programming_experience_years,
            "language_experience_level": row.language_experience_level,
            "responses": row.responses,
            "completed_at": row.completed_at,
        }
    )


def topic_to_domain(row: CurriculumTopic) -> domain.LearningTopic:
    return domain.LearningTopic.from_dict(
        {
            "id": row.topic_id,
            "title": row.title,
            "description": row.description,
            "type": row.type,
            "difficulty": row.difficulty,
            "estimated_time": row.estimated_time,
            "prerequisites": row.prerequisites,
            "learning_objectives": row.learning_objectives,
            "tags": row.tags,
            "priority": row.priority,
            "focus_area": row.focus_area,
            "code_example": row.code_example,
            "explanation": row.explanation,
            "exercises": row.exercises,
        }
    )


def curriculum_to_domain(row: PersonalizedCurriculum) -> domain.PersonalizedCurriculum:
    curriculum = domain.PersonalizedCurriculum.from_dict(
        {
            "id": row.id,
            "user_id": row.user_id,
            "assessment_id": row.assessment_id,
            "language": row.language,
            "level": row.level,
            "adaptive_level": row.adaptive_level,
            "current_topic_index": row.current_topic_index,
            "estimated_completion_time": row.estimated_completion_time,
            "adaptation_rules": row.adaptation_rules,
            "created_at": row.created_at,
            "last_updated": row.last_updated,
        }
    )
    curriculum.topics = [topic_to_domain(t) for t in row.topics]
    return curriculum


def message_to_domain(row: ChatMessageRecord) -> domain.ChatMessage:
    return domain.ChatMessage(
        id=row.id,
        role=domain.MessageRole(row.role),
        content=row.content,
        message_type=domain.MessageType(row.message_type),
        topic_id=row.topic_id,
        metadata=dict(row.extra or {}),
        timestamp=row.created_at,
    )


# =============================================================================
# Assessments
# =============================================================================


class AssessmentRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, assessment: domain.UserAssessment) -> UserAssessment:
        """Store an assessment and make it the active one for its (user, language)."""
        if not assessment.user_id:
            raise ValueError("Assessment must belong to a user")

        self.session.execute(
            update(UserAssessment)
            .where(
                UserAssessment.user_id == assessment.user_id,
                UserAssessment.language == assessment.language,
                UserAssessment.is_active.is_(True),
            )
            .values(is_active=False)
        )

        row = UserAssessment(
            id=assessment.id,
            user_id=assessment.user_id,
            language=assessment.language,
            level=assessment.level.value,
            general_programming_level=assessment.general_programming_level.value,
            language_specific_level=assessment.language_specific_level.value,
            adaptive_level=assessment.adaptive_level.value,
            programming_experience_years=assessment.programming_experience_years,
            language_experience_level=assessment.language_experience_level,
            experience=assessment.experience,
            interests=list(assessment.interests),
            previous_knowledge=list(assessment.previous_knowledge),
            learning_style=assessment.learning_style.value,
            goals=list(assessment.goals),
            time_available=assessment.time_available.value,
            responses=list(assessment.responses),
            is_active=True,
            completed_at=assessment.completed_at,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def get(self, assessment_id: str) -> domain.UserAssessment | None:
        row = self.session.get(UserAssessment, assessment_id)
        return assessment_to_domain(row) if row else None

    def exists(self, assessment_id: str) -> bool:
        return self.session.get(UserAssessment, assessment_id) is not None

    def get_active(self, user_id: str, language: str) -> domain.UserAssessment | None:
        row = self.session.execute(
            select(UserAssessment)
            .where(
                UserAssessment.user_id == user_id,
                UserAssessment.language == language,
                UserAssessment.is_active.is_(True),
            )
            .order_by(UserAssessment.completed_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return assessment_to_domain(row) if row else None

    def list_for_user(self, user_id: str, language: str | None = None) -> list[domain.UserAssessment]:
        query = select(UserAssessment).where(UserAssessment.user_id == user_id)
        if language:
            query = query.where(UserAssessment.language == language)
        rows = self.session.execute(query.order_by(UserAssessment.completed_at.desc())).scalars().all()
        return [assessment_to_domain(r) for r in rows]


# =============================================================================
# Curricula
# =============================================================================


class CurriculumRepository:
    def __init__(self, session: Session):
        self.session = session

    def _row_for_user(self, user_id: str, language: str) -> PersonalizedCurriculum | None:
        return self.session.execute(
            select(PersonalizedCurriculum).where(
                PersonalizedCurriculum.user_id == user_id,
                PersonalizedCurriculum.language == language,
            )
        ).scalar_one_or_none()

    def save_for_user(self, curriculum: domain.PersonalizedCurriculum) -> PersonalizedCurriculum:
        """
        Store a curriculum, replacing any existing one for the same (user, language).

        Topics are stored in order; only the first one starts unlocked.
        """
        if not curriculum.user_id:
            raise ValueError("Curriculum must belong to a user")

        existing = self._row_for_user(curriculum.user_id, curriculum.language)
        if existing is not None:
            logger.info(
                f"Replacing curriculum {existing.id} for user={curriculum.user_id} "
                f"language={curriculum.language}"
            )
            self._delete(existing)

        row = PersonalizedCurriculum(
            id=curriculum.id,
            user_id=curriculum.user_id,
            assessment_id=curriculum.assessment_id,
            language=curriculum.language,
            level=curriculum.level.value,
            adaptive_level=curriculum.adaptive_level.value,
            current_topic_index=curriculum.current_topic_index,
            estimated_completion_time=curriculum.estimated_completion_time,
            adaptation_rules=[r.to_dict() for r in curriculum.adaptation_rules],
            created_at=curriculum.created_at,
            last_updated=curriculum.last_updated,
        )
        row.topics = [
            CurriculumTopic(
                topic_id=topic.id,
                order_index=index,
                title=topic.title,
                description=topic.description,
                type=topic.type.value,
                difficulty=topic.difficulty,
                estimated_time=topic.estimated_time,
                prerequisites=list(topic.prerequisites),
                learning_objectives=list(topic.learning_objectives),
                tags=list(topic.tags),
                priority=topic.priority,
                focus_area=topic.focus_area,
                code_example=topic.code_example,
                explanation=topic.explanation,
                exercises=[e.to_dict() for e in topic.exercises],
                is_unlocked=index <= curriculum.current_topic_index,
            )
            for index, topic in enumerate(curriculum.topics)
        ]
        self.session.add(row)
        self.session.flush()
        return row

    def _delete(self, row: PersonalizedCurriculum) -> None:
        # Explicit cleanup; SQLite does not enforce ON DELETE without PRAGMA foreign_keys
        self.session.execute(
            update(LearningSession)
            .where(LearningSession.curriculum_id == row.id)
            .values(curriculum_id=None)
        )
        self.session.execute(
            update(LearningFlowRecord)
            .where(LearningFlowRecord.curriculum_id == row.id)
            .values(curriculum_id=None)
        )
        progress_ids = select(UserProgress.id).where(UserProgress.curriculum_id == row.id)
        self.session.execute(delete(TopicProgress).where(TopicProgress.progress_id.in_(progress_ids)))
        self.session.execute(delete(UserProgress).where(UserProgress.curriculum_id == row.id))
        self.session.delete(row)
        self.session.flush()

    def get(self, curriculum_id: str) -> domain.PersonalizedCurriculum | None:
        row = self.session.get(PersonalizedCurriculum, curriculum_id)
        return curriculum_to_domain(row) if row else None

    def exists(self, curriculum_id: str) -> bool:
        return self.session.get(PersonalizedCurriculum, curriculum_id) is not None

    def get_for_user(self, user_id: str, language: str) -> domain.PersonalizedCurriculum | None:
        row = self._row_for_user(user_id, language)
        return curriculum_to_domain(row) if row else None

    def get_by_assessment(self, assessment_id: str) -> domain.PersonalizedCurriculum | None:
        row = self.session.execute(
            select(PersonalizedCurriculum).where(PersonalizedCurriculum.assessment_id == assessment_id)
        ).scalar_one_or_none()
        return curriculum_to_domain(row) if row else None

    def update_progress(self, curriculum_id: str, current_topic_index: int) -> PersonalizedCurriculum:
        """
        Move the curriculum to a topic index and unlock every topic up to it.

        Raises:
            NotFoundError: unknown curriculum
            ValueError: the index would move backwards or past the last topic
        """
        row = self.session.get(PersonalizedCurriculum, curriculum_id)
        if row is None:
            raise NotFoundError(f"Curriculum not found: {curriculum_id}")
        if current_topic_index < row.current_topic_index:
            raise ValueError(
                f"Topic index cannot decrease ({row.current_topic_index} -> {current_topic_index})"
            )
        if row.topics and current_topic_index >= len(row.topics):
            raise ValueError(f"Topic index {current_topic_index} out of range")

        row.current_topic_index = current_topic_index
        row.last_updated = datetime.utcnow()
        for topic in row.topics:
            if topic.order_index <= current_topic_index:
                topic.is_unlocked = True
        self.session.flush()
        return row

    def unlock_next_topic(self, curriculum_id: str) -> CurriculumTopic | None:
        """Unlock the first locked topic in order. Returns it, or None if all are unlocked."""
        row = self.session.get(PersonalizedCurriculum, curriculum_id)
        if row is None:
            raise NotFoundError(f"Curriculum not found: {curriculum_id}")
        for topic in row.topics:
            if not topic.is_unlocked:
                topic.is_unlocked = True
                self.session.flush()
                return topic
        return None

    def unlocked_topic_ids(self, curriculum_id: str) -> list[str]:
        rows = self.session.execute(
            select(CurriculumTopic.topic_id)
            .where(CurriculumTopic.curriculum_id == curriculum_id, CurriculumTopic.is_unlocked.is_(True))
            .order_by(CurriculumTopic.order_index)
        ).scalars().all()
        return list(rows)

    def update_adaptation_rules(self, curriculum: domain.PersonalizedCurriculum) -> None:
        row = self.session.get(PersonalizedCurriculum, curriculum.id)
        if row is None:
            raise NotFoundError(f"Curriculum not found: {curriculum.id}")
        row.adaptation_rules = [r.to_dict() for r in curriculum.adaptation_rules]
        row.last_updated = curriculum.last_updated
        self.session.flush()


# =============================================================================
# Progress
# =============================================================================


class ProgressRepository:
    def __init__(self, session: Session):
        self.session = session

    def initialize(self, user_id: str, curriculum_id: str) -> UserProgress:
        """Get or create the progress row for a curriculum."""
        row = self.session.execute(
            select(UserProgress).where(UserProgress.curriculum_id == curriculum_id)
        ).scalar_one_or_none()
        if row is None:
            row = UserProgress(user_id=user_id, curriculum_id=curriculum_id)
            self.session.add(row)
            self.session.flush()
        return row

    def complete_topic(
        self, user_id: str, curriculum_id: str, topic_id: str, score: float = 100.0
    ) -> TopicProgress:
        """Mark a topic completed (idempotent upsert)."""
        progress = self.initialize(user_id, curriculum_id)
        row = self.session.execute(
            select(TopicProgress).where(
                TopicProgress.progress_id == progress.id,
                TopicProgress.topic_id == topic_id,
            )
        ).scalar_one_or_none()

        if row is None:
            row = TopicProgress(topic_id=topic_id, attempts=0)
            progress.topics.append(row)

        if row.status != "completed":
            progress.current_score = (progress.current_score or 0.0) + score
        row.status = "completed"
        row.score = score
        row.attempts = (row.attempts or 0) + 1
        row.completed_at = datetime.utcnow()
        self.session.flush()
        return row

    def update(self, user_id: str, curriculum_id: str, progress: domain.SessionProgress) -> UserProgress:
        row = self.initialize(user_id, curriculum_id)
        row.current_score = progress.current_score
        row.time_spent = progress.time_spent
        row.struggling_areas = list(progress.struggling_areas)
        row.strength_areas = list(progress.strength_areas)
        row.adaptations_made = progress.adaptations_made
        row.exercises_completed = list(progress.exercises_completed)
        row.adaptation_needed = progress.adaptation_needed
        self.session.flush()
        return row

    def get(self, curriculum_id: str) -> domain.SessionProgress:
        row = self.session.execute(
            select(UserProgress).where(UserProgress.curriculum_id == curriculum_id)
        ).scalar_one_or_none()
        if row is None:
            return domain.SessionProgress()
        return domain.SessionProgress(
            topics_completed=[t.topic_id for t in row.topics if t.status == "completed"],
            current_score=row.current_score or 0.0,
            time_spent=row.time_spent or 0,
            struggling_areas=list(row.struggling_areas or []),
            strength_areas=list(row.strength_areas or []),
            adaptations_made=row.adaptations_made or 0,
            exercises_completed=list(row.exercises_completed or []),
            adaptation_needed=bool(row.adaptation_needed),
        )


# =============================================================================
# Learning flows
# =============================================================================


class FlowRepository:
    """
    Persists LearningFlow snapshots.

    The flow row stores state and responses; the assessment and curriculum
    live in their own tables and are saved through their repositories.
    """

    def __init__(self, session: Session):
        self.session = session
        self.assessments = AssessmentRepository(session)
        self.curricula = CurriculumRepository(session)
        self.progress = ProgressRepository(session)

    def _row(self, user_id: str, language: str) -> LearningFlowRecord | None:
        return self.session.execute(
            select(LearningFlowRecord).where(
                LearningFlowRecord.user_id == user_id,
                LearningFlowRecord.language == language,
            )
        ).scalar_one_or_none()

    def load(self, user_id: str, language: str, analyzer=None, factory=None) -> LearningFlow | None:
        row = self._row(user_id, language)
        if row is None:
            return None

        assessment = self.assessments.get(row.assessment_id) if row.assessment_id else None
        curriculum = self.curricula.get(row.curriculum_id) if row.curriculum_id else None
        progress = (
            self.progress.get(curriculum.id) if curriculum else domain.SessionProgress.from_dict(row.progress)
        )
        return LearningFlow(
            user_id=user_id,
            language=language,
            analyzer=analyzer,
            factory=factory,
            state=domain.FlowState(row.state),
            responses=list(row.responses or []),
            assessment=assessment,
            curriculum=curriculum,
            progress=progress,
            error=row.error,
        )

    def save(self, flow: LearningFlow) -> LearningFlowRecord:
        """Upsert the flow and any assessment/curriculum it has produced."""
        if flow.assessment is not None and not self.assessments.exists(flow.assessment.id):
            self.assessments.create(flow.assessment)

        if flow.curriculum is not None:
            if not self.curricula.exists(flow.curriculum.id):
                self.curricula.save_for_user(flow.curriculum)
            else:
                self.curricula.update_progress(flow.curriculum.id, flow.curriculum.current_topic_index)
            self.progress.initialize(flow.user_id, flow.curriculum.id)
            for topic_id in flow.progress.topics_completed:
                self._ensure_completed(flow, topic_id)
            self.progress.update(flow.user_id, flow.curriculum.id, flow.progress)

        row = self._row(flow.user_id, flow.language)
        if row is None:
            row = LearningFlowRecord(user_id=flow.user_id, language=flow.language)
            self.session.add(row)

        row.state = flow.state.value
        row.responses = list(flow.responses)
        row.error = flow.error
        row.assessment_id = flow.assessment.id if flow.assessment else None
        row.curriculum_id = flow.curriculum.id if flow.curriculum else None
        row.progress = flow.progress.to_dict()
        self.session.flush()
        return row

    def _ensure_completed(self, flow: LearningFlow, topic_id: str) -> None:
        existing = self.progress.get(flow.curriculum.id)
        if topic_id not in existing.topics_completed:
            self.progress.complete_topic(flow.user_id, flow.curriculum.id, topic_id)


# =============================================================================
# Sessions
# =============================================================================


class SessionRepository:
    def __init__(self, session: Session):
        self.session = session

    def start(
        self,
        user_id: str,
        language: str,
        curriculum_id: str | None = None,
        topic_id: str | None = None,
    ) -> LearningSession:
        row = LearningSession(
            user_id=user_id,
            language=language,
            curriculum_id=curriculum_id,
            topic_id=topic_id,
            started_at=datetime.utcnow(),
            is_active=True,
        )
        self.session.add(row)
        self.session.flush()
        logger.info(f"Learning session {row.id} started for user={user_id}")
        return row

    def get(self, session_id: str) -> LearningSession:
        row = self.session.get(LearningSession, session_id)
        if row is None:
            raise NotFoundError(f"Learning session not found: {session_id}")
        return row

    def end(self, session_id: str) -> LearningSession:
        """Close a session and record its duration in seconds. Ending twice is a no-op."""
        row = self.get(session_id)
        if not row.is_active:
            return row
        row.ended_at = datetime.utcnow()
        row.duration_seconds = max(0, int((row.ended_at - row.started_at).total_seconds()))
        row.is_active = False
        self.session.flush()
        logger.info(f"Learning session {session_id} ended after {row.duration_seconds}s")
        return row

    def set_topic(self, session_id: str, topic_id: str | None) -> None:
        self.get(session_id).topic_id = topic_id
        self.session.flush()

    def add_chat_message(self, session_id: str, message: domain.ChatMessage) -> ChatMessageRecord:
        position = self.session.execute(
            select(func.count()).select_from(ChatMessageRecord).where(ChatMessageRecord.session_id == session_id)
        ).scalar_one()
        row = ChatMessageRecord(
            id=message.id,
            session_id=session_id,
            role=message.role.value,
            content=message.content,
            message_type=message.message_type.value,
            topic_id=message.topic_id,
            position=position,
            extra=dict(message.metadata),
            created_at=message.timestamp,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def list_chat_messages(self, session_id: str, limit: int | None = None) -> list[domain.ChatMessage]:
        query = (
            select(ChatMessageRecord)
            .where(ChatMessageRecord.session_id == session_id)
            .order_by(ChatMessageRecord.position)
        )
        rows = self.session.execute(query).scalars().all()
        if limit is not None:
            rows = rows[-limit:]
        return [message_to_domain(r) for r in rows]

    def add_code_event(
        self,
        session_id: str,
        code: str,
        language: str,
        event_type: str | None = None,
        significance: str | None = None,
        errors: list[str] | None = None,
        response: dict | None = None,
    ) -> CodeEvent:
        row = CodeEvent(
            session_id=session_id,
            code=code,
            language=language,
            event_type=event_type,
            significance=significance,
            lines_of_code=len(code.split("\n")),
            completeness=min(100.0, len(code) / 10),
            errors=list(errors or []),
            response=response,
        )
        self.session.add(row)
        self.session.flush()
        return row
