"""
Learning session models.

A session is one sitting at the editor: its chat transcript and the code
events the watcher saw.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.tutor.models import new_id

from .base import Base


class LearningSession(Base):
    __tablename__ = "learning_sessions"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    language: Mapped[str] = mapped_column(Text, nullable=False)
    curriculum_id: Mapped[str | None] = mapped_column(
        ForeignKey("personalized_curricula.id", ondelete="SET NULL")
    )
    topic_id: Mapped[str | None] = mapped_column(Text)

    started_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    ended_at: Mapped[datetime | None] = mapped_column(DateTime)
    duration_seconds: Mapped[int | None] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    messages: Mapped[list[ChatMessageRecord]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessageRecord.position",
    )
    code_events: Mapped[list[CodeEvent]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_session_user_active", "user_id", "is_active"),)

    def __repr__(self) -> str:
        return f"<LearningSession {self.id} user={self.user_id} active={self.is_active}>"


class ChatMessageRecord(Base):
    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(Text, primary_key=True, default=new_id)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("learning_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(Text, nullable=False)  # ai, user, system
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(Text, nullable=False)
    topic_id: Mapped[str | None] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, default=0)  # order within the session
    # "metadata" is reserved on declarative classes
    extra: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    session: Mapped[LearningSession] = relationship(back_populates="messages")

    def __repr__(self) -> str:
        return f"<ChatMessageRecord {self.role}/{self.message_type}: {self.content[:30]!r}>"


class CodeEvent(Base):
    __tablename__ = "code_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("learning_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(Text, default="")
    language: Mapped[str] = mapped_column(Text, nullable=False)
    event_type: Mapped[str | None] = mapped_column(Text)  # watcher classification
    significance: Mapped[str | None] = mapped_column(Text)
    lines_of_code: Mapped[int] = mapped_column(Integer, default=0)
    completeness: Mapped[float] = mapped_column(Float, default=0.0)
    errors: Mapped[list] = mapped_column(JSON, default=list)
    response: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    session: Mapped[LearningSession] = relationship(back_populates="code_events")

    def __repr__(self) -> str:
        return f"<CodeEvent session={self.session_id} type={self.event_type}>"
