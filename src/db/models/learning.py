"""
Learning models.

SQLAlchemy models for assessments, personalized curricula, learning flow
state and topic progress. Column types are portable (Text ids, generic JSON)
so the same schema runs on PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.tutor.models import new_id

from .base import Base


class UserAssessment(Base):
    """
    Result of the three-question initial assessment.

    Only the latest assessment per (user, language) is active; older ones are
    kept for history.
    """

    __tablename__ = "user_assessments"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    language: Mapped[str] = mapped_column(Text, nullable=False)

    # Levels
    level: Mapped[str] = mapped_column(Text, default="beginner")
    general_programming_level: Mapped[str] = mapped_column(Text, default="none")
    language_specific_level: Mapped[str] = mapped_column(Text, default="none")
    adaptive_level: Mapped[str] = mapped_column(Text, default="beginner")
    programming_experience_years: Mapped[int] = mapped_column(Integer, default=0)
    language_experience_level: Mapped[str] = mapped_column(Text, default="never_used")

    # Profile
    experience: Mapped[str] = mapped_column(Text, default="")
    interests: Mapped[list] = mapped_column(JSON, default=list)
    previous_knowledge: Mapped[list] = mapped_column(JSON, default=list)
    learning_style: Mapped[str] = mapped_column(Text, default="mixed")
    goals: Mapped[list] = mapped_column(JSON, default=list)
    time_available: Mapped[str] = mapped_column(Text, default="medium")
    responses: Mapped[list] = mapped_column(JSON, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    completed_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    curriculum: Mapped[PersonalizedCurriculum | None] = relationship(back_populates="assessment")

    __table_args__ = (Index("idx_assessment_user_language", "user_id", "language", "is_active"),)

    def __repr__(self) -> str:
        return f"<UserAssessment user={self.user_id} language={self.language} adaptive={self.adaptive_level}>"


class PersonalizedCurriculum(Base):
    """Generated curriculum. At most one per (user, language)."""

    __tablename__ = "personalized_curricula"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    assessment_id: Mapped[str | None] = mapped_column(
        ForeignKey("user_assessments.id", ondelete="SET NULL")
    )
    language: Mapped[str] = mapped_column(Text, nullable=False)
    level: Mapped[str] = mapped_column(Text, default="beginner")
    adaptive_level: Mapped[str] = mapped_column(Text, default="beginner")
    current_topic_index: Mapped[int] = mapped_column(Integer, default=0)
    estimated_completion_time: Mapped[int] = mapped_column(Integer, default=0)  # minutes
    adaptation_rules: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    assessment: Mapped[UserAssessment | None] = relationship(back_populates="curriculum")
    topics: Mapped[list[CurriculumTopic]] = relationship(
        back_populates="curriculum",
        cascade="all, delete-orphan",
        order_by="CurriculumTopic.order_index",
    )

    __table_args__ = (UniqueConstraint("user_id", "language", name="uq_curriculum_user_language"),)

    def __repr__(self) -> str:
        return (
            f"<PersonalizedCurriculum {self.id} user={self.user_id} "
            f"language={self.language} index={self.current_topic_index}>"
        )


class CurriculumTopic(Base):
    """One ordered topic of a curriculum. Topics unlock in order."""

    __tablename__ = "curriculum_topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    curriculum_id: Mapped[str] = mapped_column(
        ForeignKey("personalized_curricula.id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    type: Mapped[str] = mapped_column(Text, default="concept")
    difficulty: Mapped[int] = mapped_column(Integer, default=1)
    estimated_time: Mapped[int] = mapped_column(Integer, default=30)
    prerequisites: Mapped[list] = mapped_column(JSON, default=list)
    learning_objectives: Mapped[list] = mapped_column(JSON, default=list)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    priority: Mapped[int] = mapped_column(Integer, default=5)
    focus_area: Mapped[str | None] = mapped_column(Text)
    code_example: Mapped[str | None] = mapped_column(Text)
    explanation: Mapped[str | None] = mapped_column(Text)
    exercises: Mapped[list] = mapped_column(JSON, default=list)

    is_unlocked: Mapped[bool] = mapped_column(Boolean, default=False)

    curriculum: Mapped[PersonalizedCurriculum] = relationship(back_populates="topics")

    __table_args__ = (
        UniqueConstraint("curriculum_id", "topic_id", name="uq_curriculum_topic"),
        Index("idx_curriculum_topic_order", "curriculum_id", "order_index"),
    )

    def __repr__(self) -> str:
        return f"<CurriculumTopic {self.order_index}: {self.title}>"


class LearningFlowRecord(Base):
    """Persisted learning-flow state for one (user, language)."""

    __tablename__ = "learning_flows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(Text, nullable=False, default="assessment")
    responses: Mapped[list] = mapped_column(JSON, default=list)
    error: Mapped[str | None] = mapped_column(Text)
    assessment_id: Mapped[str | None] = mapped_column(
        ForeignKey("user_assessments.id", ondelete="SET NULL")
    )
    curriculum_id: Mapped[str | None] = mapped_column(
        ForeignKey("personalized_curricula.id", ondelete="SET NULL")
    )
    progress: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("user_id", "language", name="uq_flow_user_language"),)

    def __repr__(self) -> str:
        return f"<LearningFlowRecord user={self.user_id} language={self.language} state={self.state}>"


class UserProgress(Base):
    """Aggregate progress through one curriculum."""

    __tablename__ = "user_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    curriculum_id: Mapped[str] = mapped_column(
        ForeignKey("personalized_curricula.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    current_score: Mapped[float] = mapped_column(Float, default=0.0)
    time_spent: Mapped[int] = mapped_column(Integer, default=0)  # seconds
    struggling_areas: Mapped[list] = mapped_column(JSON, default=list)
    strength_areas: Mapped[list] = mapped_column(JSON, default=list)
    adaptations_made: Mapped[int] = mapped_column(Integer, default=0)
    exercises_completed: Mapped[list] = mapped_column(JSON, default=list)
    adaptation_needed: Mapped[bool] = mapped_column(Boolean, default=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    topics: Mapped[list[TopicProgress]] = relationship(
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="TopicProgress.id",
    )

    def __repr__(self) -> str:
        return f"<UserProgress user={self.user_id} curriculum={self.curriculum_id} score={self.current_score}>"


class TopicProgress(Base):
    """Per-topic completion state."""

    __tablename__ = "topic_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(
        ForeignKey("user_progress.id", ondelete="CASCADE"), nullable=False
    )
    topic_id: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="in_progress")  # in_progress, completed
    score: Mapped[float | None] = mapped_column(Float)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    progress: Mapped[UserProgress] = relationship(back_populates="topics")

    __table_args__ = (UniqueConstraint("progress_id", "topic_id", name="uq_progress_topic"),)

    def __repr__(self) -> str:
        return f"<TopicProgress topic={self.topic_id} status={self.status}>"
