"""
Tutor service: learning flows and sessions on top of the repositories.

Shared by the HTTP API and the interactive CLI. The service never commits;
callers own the transaction.

Coordinators and watchers hold conversational state that is not worth
persisting row by row, so they live in an in-process SessionRegistry keyed by
learning-session id. A coordinator missing from the registry (for example
after a restart) is rebuilt from the persisted chat transcript.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from src.db.queries import (
    AssessmentRepository,
    CurriculumRepository,
    FlowRepository,
    ProgressRepository,
    SessionRepository,
)
from src.tutor.assessment import AssessmentAnalyzer
from src.tutor.coordinator import (
    CoordinatorObserver,
    LearningCoordinator,
    analyze_code_errors,
)
from src.tutor.curriculum import CurriculumFactory, adapt_curriculum, next_recommendation
from src.tutor.errors import InvalidTransitionError, NotFoundError
from src.tutor.flow import AssessmentStep, LearningFlow
from src.tutor.gemini import TutorClients
from src.tutor.languages import get_language
from src.tutor.models import (
    ChatMessage,
    Exercise,
    FlowState,
    GeneratedCode,
    LearningTopic,
    SessionProgress,
)
from src.tutor.watcher import IntelligentAIWatcher

TRANSCRIPT_CONTEXT_MESSAGES = 20


# =============================================================================
# Observers
# =============================================================================


class CollectingObserver(CoordinatorObserver):
    """Buffers coordinator output so one request can return it."""

    def __init__(self) -> None:
        self.messages: list[ChatMessage] = []
        self.code: list[GeneratedCode] = []
        self.progress: list[SessionProgress] = []

    def on_chat_message(self, message: ChatMessage) -> None:
        self.messages.append(message)

    def on_code_generated(self, code: GeneratedCode) -> None:
        self.code.append(code)

    def on_progress_update(self, progress: SessionProgress) -> None:
        self.progress.append(progress)


class PersistingObserver(CoordinatorObserver):
    """Writes every coordinator chat message to the session transcript."""

    def __init__(self, sessions: SessionRepository, session_id: str):
        self.sessions = sessions
        self.session_id = session_id

    def on_chat_message(self, message: ChatMessage) -> None:
        self.sessions.add_chat_message(self.session_id, message)


# =============================================================================
# Registry
# =============================================================================


@dataclass
class SessionState:
    coordinator: LearningCoordinator
    watcher: IntelligentAIWatcher
    lock: threading.Lock = field(default_factory=threading.Lock)


class SessionRegistry:
    """In-process coordinators and watchers per learning session."""

    def __init__(self) -> None:
        self._states: dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SessionState | None:
        with self._lock:
            return self._states.get(session_id)

    def put(self, session_id: str, state: SessionState) -> None:
        with self._lock:
            self._states[session_id] = state

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._states.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


# =============================================================================
# Service
# =============================================================================


@dataclass
class SessionOutput:
    """What a session operation produced, in order."""

    session_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    code: list[GeneratedCode] = field(default_factory=list)
    topic: LearningTopic | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
            "code": [c.to_dict() for c in self.code],
            "topic": self.topic.to_dict() if self.topic else None,
            **self.extra,
        }


class TutorService:
    """
    Learning flows and sessions for one database session.

    Args:
        session: SQLAlchemy session (caller commits)
        clients: role-specific Gemini clients
        registry: shared in-process coordinator/watcher registry
        watcher_config: keyword arguments for IntelligentAIWatcher thresholds
    """

    def __init__(
        self,
        session: Session,
        clients: TutorClients,
        registry: SessionRegistry,
        watcher_config: dict[str, Any] | None = None,
    ):
        self.session = session
        self.clients = clients
        self.registry = registry
        self.watcher_config = watcher_config or {}
        self.flows = FlowRepository(session)
        self.assessments = AssessmentRepository(session)
        self.curricula = CurriculumRepository(session)
        self.progress = ProgressRepository(session)
        self.sessions = SessionRepository(session)

    # -------------------------------------------------------------------------
    # Learning flow
    # -------------------------------------------------------------------------

    def _attach(self, flow: LearningFlow) -> LearningFlow:
        flow.analyzer = AssessmentAnalyzer(self.clients.assessment)
        flow.factory = CurriculumFactory(self.clients.curriculum)
        return flow

    def start_flow(self, user_id: str, language: str) -> LearningFlow:
        """
        Get or create the flow for (user, language).

        A user with an active assessment and a curriculum skips straight to learning.
        """
        language = get_language(language).id
        flow = self.flows.load(user_id, language)
        if flow is not None:
            return self._attach(flow)

        flow = self._attach(LearningFlow(user_id=user_id, language=language))
        assessment = self.assessments.get_active(user_id, language)
        curriculum = self.curricula.get_for_user(user_id, language)
        if assessment is not None and curriculum is not None:
            flow.resume(assessment, curriculum, self.progress.get(curriculum.id))
            logger.info(f"Resumed existing curriculum {curriculum.id} for user={user_id}")

        self.flows.save(flow)
        return flow

    def get_flow(self, user_id: str, language: str) -> LearningFlow:
        flow = self.flows.load(user_id, language.lower())
        if flow is None:
            raise NotFoundError(f"No learning flow for user={user_id} language={language}")
        return self._attach(flow)

    def answer(self, user_id: str, language: str, option: str) -> tuple[LearningFlow, AssessmentStep]:
        flow = self.get_flow(user_id, language)
        step = flow.answer(option)
        self.flows.save(flow)
        return flow, step

    def advance(
        self,
        user_id: str,
        language: str,
        score: float = 100.0,
        struggling_areas: list[str] | None = None,
    ) -> tuple[LearningFlow, LearningTopic | None]:
        """Complete the current topic; struggling areas become reinforce rules on the curriculum."""
        flow = self.get_flow(user_id, language)
        topic = flow.advance_topic(score)
        for area in struggling_areas or []:
            if area not in flow.progress.struggling_areas:
                flow.progress.struggling_areas.append(area)
        if flow.curriculum is not None and flow.progress.struggling_areas:
            adapt_curriculum(flow.curriculum, flow.progress)
            self.curricula.update_adaptation_rules(flow.curriculum)
        self.flows.save(flow)
        return flow, topic

    def complete_exercise(
        self,
        user_id: str,
        language: str,
        exercise_id: str,
        attempts: int = 1,
        time_spent: int = 0,
    ) -> tuple[LearningFlow, LearningTopic, Exercise]:
        """Record an exercise; one that needed too many attempts reinforces its topic."""
        flow = self.get_flow(user_id, language)
        topic, exercise = flow.complete_exercise(exercise_id, attempts, time_spent)
        if flow.progress.adaptation_needed and topic.title not in flow.progress.struggling_areas:
            flow.progress.struggling_areas.append(topic.title)
            adapt_curriculum(flow.curriculum, flow.progress)
            self.curricula.update_adaptation_rules(flow.curriculum)
        self.flows.save(flow)
        return flow, topic, exercise

    def restart(self, user_id: str, language: str) -> LearningFlow:
        flow = self.get_flow(user_id, language)
        flow.restart()
        self.flows.save(flow)
        return flow

    def recommendation(self, flow: LearningFlow) -> LearningTopic | None:
        if flow.curriculum is None:
            return None
        return next_recommendation(flow.curriculum, flow.progress.topics_completed)

    # -------------------------------------------------------------------------
    # Learning sessions
    # -------------------------------------------------------------------------

    def _new_state(self) -> SessionState:
        return SessionState(
            coordinator=LearningCoordinator(self.clients.chat, self.clients.code),
            watcher=IntelligentAIWatcher(self.clients.watcher, self.clients.teacher, **self.watcher_config),
        )

    def _active_flow(self, user_id: str, language: str) -> LearningFlow:
        flow = self.get_flow(user_id, language)
        if flow.state not in (FlowState.LEARNING_ACTIVE, FlowState.TOPIC_COMPLETED) or flow.curriculum is None:
            raise InvalidTransitionError("start a learning session", flow.state.value)
        return flow

    def start_session(self, user_id: str, language: str) -> SessionOutput:
        """
        Open a learning session on the current topic.

        Raises:
            InvalidTransitionError: the flow has no active curriculum
            TutorAPIError: the welcome message or topic example could not be generated
        """
        flow = self._active_flow(user_id, language)
        topic = flow.current_topic()
        if topic is None:
            raise InvalidTransitionError("start a learning session", "curriculum has no topics")
        row = self.sessions.start(user_id, flow.language, flow.curriculum.id, topic.id)

        state = self._new_state()
        collector = CollectingObserver()
        state.coordinator.add_observer(collector)
        state.coordinator.add_observer(PersistingObserver(self.sessions, row.id))
        try:
            state.coordinator.start_learning_session(flow.assessment, topic, flow.progress)
        finally:
            state.coordinator.remove_observer(collector)

        self.registry.put(row.id, state)
        return SessionOutput(session_id=row.id, messages=collector.messages, code=collector.code, topic=topic)

    def end_session(self, session_id: str) -> dict[str, Any]:
        row = self.sessions.end(session_id)
        state = self.registry.get(session_id)
        self.registry.discard(session_id)
        return {
            "session_id": row.id,
            "duration_seconds": row.duration_seconds,
            "is_active": row.is_active,
            "watcher": state.watcher.get_stats() if state else None,
        }

    def _session_state(self, session_id: str) -> SessionState:
        row = self.sessions.get(session_id)
        if not row.is_active:
            raise InvalidTransitionError("use a learning session", "ended")

        state = self.registry.get(session_id)
        if state is not None:
            # Persisting observer holds the request's DB session; rebind it
            for observer in list(state.coordinator.observers):
                if isinstance(observer, PersistingObserver):
                    state.coordinator.remove_observer(observer)
            state.coordinator.add_observer(PersistingObserver(self.sessions, session_id))
            return state

        flow = self._active_flow(row.user_id, row.language)
        topic = flow.current_topic()
        state = self._new_state()
        state.coordinator.restore(
            flow.assessment,
            topic,
            self.sessions.list_chat_messages(session_id, limit=TRANSCRIPT_CONTEXT_MESSAGES),
            flow.progress,
        )
        state.coordinator.add_observer(PersistingObserver(self.sessions, session_id))
        self.registry.put(session_id, state)
        logger.info(f"Coordinator for session {session_id} rebuilt from transcript")
        return state

    def sync_topic(self, session_id: str) -> SessionOutput:
        """Introduce the flow's current topic if the session is still on an older one."""
        row = self.sessions.get(session_id)
        state = self._session_state(session_id)
        flow = self._active_flow(row.user_id, row.language)
        topic = flow.current_topic()
        output = SessionOutput(session_id=session_id, topic=topic)
        if topic is None or row.topic_id == topic.id:
            return output

        collector = CollectingObserver()
        with state.lock:
            state.coordinator.add_observer(collector)
            try:
                state.coordinator.change_topic(topic, flow.progress)
            finally:
                state.coordinator.remove_observer(collector)
        state.watcher.reset_for_new_concept(topic.title)
        self.sessions.set_topic(session_id, topic.id)
        output.messages = collector.messages
        output.code = collector.code
        return output

    def chat(self, session_id: str, text: str) -> SessionOutput:
        state = self._session_state(session_id)
        collector = CollectingObserver()
        with state.lock:
            state.coordinator.add_observer(collector)
            try:
                state.coordinator.on_user_message(text)
            finally:
                state.coordinator.remove_observer(collector)
        return SessionOutput(session_id=session_id, messages=collector.messages, code=collector.code)

    def history(self, session_id: str, limit: int | None = None) -> list[ChatMessage]:
        self.sessions.get(session_id)
        return self.sessions.list_chat_messages(session_id, limit=limit)

    def code_event(
        self,
        session_id: str,
        code: str,
        language: str,
        idle_seconds: float = 0,
        reactor: str = "watcher",
    ) -> SessionOutput:
        """
        Persist an editor event and let the watcher (or the coordinator) react.

        Raises:
            TeachingUnavailableError: the watcher's teacher model failed
            TutorAPIError: the coordinator's code model failed
        """
        state = self._session_state(session_id)
        coordinator = state.coordinator
        output = SessionOutput(session_id=session_id)

        with state.lock:
            if reactor == "coordinator":
                collector = CollectingObserver()
                coordinator.add_observer(collector)
                try:
                    action = coordinator.on_code_change(code, language)
                finally:
                    coordinator.remove_observer(collector)
                output.messages = collector.messages
                output.extra["reacted"] = action is not None
                self.sessions.add_code_event(
                    session_id,
                    code,
                    language,
                    event_type="code_change",
                    errors=analyze_code_errors(code, language),
                    response={"message": action.chat_message.content} if action and action.chat_message else None,
                )
                return output

            topic = coordinator.topic
            moment = state.watcher.watch_and_respond(
                code,
                concept=topic.title if topic else "programming",
                user_level=coordinator.assessment.level.value if coordinator.assessment else "beginner",
                idle_seconds=idle_seconds,
                language=language,
            )

        event = moment.event if moment else None
        self.sessions.add_code_event(
            session_id,
            code,
            language,
            event_type=event.type if event else None,
            significance=event.significance if event else None,
            errors=analyze_code_errors(code, language),
            response=moment.to_dict() if moment else None,
        )
        output.extra["moment"] = moment.to_dict() if moment else None
        return output
