"""
Intelligent code watcher.

Two-stage reaction to editor activity:
1. detection: cheap local rules first, then the fast watcher model classifies
   the change (typing/pause/error/progress/stuck/completion) and rates it
2. teaching: only significant events reach the teacher model, which decides
   whether and how to respond

Responses are rate limited (critical events bypass the limit) and low urgency
events are observed silently once the learner has had a response.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from src.tutor.errors import (
    MalformedResponseError,
    TeachingUnavailableError,
    TutorAPIError,
)
from src.tutor.gemini import GeminiClient

EVENT_TYPES = ("typing", "pause", "error", "progress", "stuck", "completion")
SIGNIFICANCE_LEVELS = ("low", "medium", "high", "critical")
RESPONSE_TYPES = ("observe", "hint", "encourage", "demonstrate", "correct", "advance")

MAX_EVENT_HISTORY = 50
TRIMMED_EVENT_HISTORY = 25
MAX_RESPONSE_HISTORY = 10
TRIMMED_RESPONSE_HISTORY = 5


@dataclass
class CodeEvent:
    type: str
    timestamp: float
    code_snapshot: str
    concept: str
    confidence: int             # 0-100
    significance: str           # low, medium, high, critical

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "concept": self.concept,
            "confidence": self.confidence,
            "significance": self.significance,
        }


@dataclass
class TeachingMoment:
    should_respond: bool
    urgency: str                # low, medium, high, immediate
    response_type: str
    message: str = ""
    code_example: str | None = None
    next_action: str | None = None
    event: CodeEvent | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_respond": self.should_respond,
            "urgency": self.urgency,
            "response_type": self.response_type,
            "message": self.message,
            "code_example": self.code_example,
            "next_action": self.next_action,
            "event": self.event.to_dict() if self.event else None,
        }


def calculate_urgency(event: CodeEvent) -> str:
    if event.significance == "critical":
        return "immediate"
    if event.type == "stuck" and event.confidence > 80:
        return "high"
    if event.type == "error" and event.significance == "high":
        return "high"
    if event.type == "completion":
        return "medium"
    return "low"


def _confidence(value: Any, default: int = 70) -> int:
    try:
        return max(0, min(100, int(value)))
    except (TypeError, ValueError):
        return default


class IntelligentAIWatcher:
    """
    Watches one learner's editor and produces teaching moments.

    Args:
        watcher_client: fast, low-temperature model for event detection
        teacher_client: model that writes the teaching response
        clock: monotonic time source in seconds (injectable for tests)
        min_response_interval: seconds between responses for non-critical events
        significant_change: character delta below which changes are ignored
        stuck_idle_seconds: idle time after which an unchanged editor counts as stuck
    """

    def __init__(
        self,
        watcher_client: GeminiClient,
        teacher_client: GeminiClient,
        clock: Callable[[], float] = time.monotonic,
        min_response_interval: float = 3.0,
        significant_change: int = 10,
        stuck_idle_seconds: int = 30,
    ):
        self.watcher_client = watcher_client
        self.teacher_client = teacher_client
        self.clock = clock
        self.min_response_interval = min_response_interval
        self.significant_change = significant_change
        self.stuck_idle_seconds = stuck_idle_seconds

        self.last_significant_event: CodeEvent | None = None
        self.history: list[CodeEvent] = []
        self.responses: list[str] = []
        self.concept_progress: dict[str, float] = {}
        self.is_processing = False
        self._last_response_at: float | None = None

    def watch_and_respond(
        self,
        code: str,
        concept: str,
        user_level: str = "beginner",
        idle_seconds: float = 0,
        language: str = "python",
    ) -> TeachingMoment | None:
        """
        Analyze the current editor content and decide whether to react.

        Returns:
            A TeachingMoment, or None when nothing is worth reacting to.

        Raises:
            TeachingUnavailableError: the teacher model could not produce a response
        """
        if self.is_processing:
            return None

        self.is_processing = True
        try:
            event = self._detect_event(code, concept, idle_seconds, language)
            if event is None or event.significance == "low":
                return None

            now = self.clock()
            if (
                self._last_response_at is not None
                and now - self._last_response_at < self.min_response_interval
                and event.significance != "critical"
            ):
                logger.debug(f"Watcher rate limited ({event.type}/{event.significance})")
                return None

            moment = self._teaching_response(event, code, concept, user_level, language)

            self.last_significant_event = event
            self._add_to_history(event)

            if moment.should_respond:
                self._last_response_at = now
                self.responses.append(moment.message)
                if len(self.responses) > MAX_RESPONSE_HISTORY:
                    self.responses = self.responses[-TRIMMED_RESPONSE_HISTORY:]
            return moment
        finally:
            self.is_processing = False

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def _detect_event(self, code: str, concept: str, idle_seconds: float, language: str) -> CodeEvent | None:
        length = len(code.strip())
        last_code = self.last_significant_event.code_snapshot if self.last_significant_event else ""
        change = abs(length - len(last_code.strip()))
        now = self.clock()

        if length == 0:
            return CodeEvent(
                type="stuck",
                timestamp=now,
                code_snapshot=code,
                concept=concept,
                confidence=90,
                significance="high" if idle_seconds > 15 else "medium",
            )

        if idle_seconds > self.stuck_idle_seconds and change < 3:
            return CodeEvent(
                type="stuck",
                timestamp=now,
                code_snapshot=code,
                concept=concept,
                confidence=85,
                significance="high",
            )

        if change < self.significant_change:
            return None

        prompt = f"""Quickly analyze this change in {language} code:

CONCEPT BEING TAUGHT: {concept}
CURRENT CODE ({length} chars):
```{language}
{code}
```

PREVIOUS CODE ({len(last_code)} chars):
```{language}
{last_code}
```

IDLE TIME: {idle_seconds}s

Detect the event type (typing/pause/error/progress/stuck/completion) and its significance.

Reply ONLY with JSON:
{{
  "type": "typing|pause|error|progress|stuck|completion",
  "confidence": 0,
  "significance": "low|medium|high|critical"
}}"""

        try:
            data = self.watcher_client.generate_json(prompt)
            event_type = data.get("type")
            significance = data.get("significance")
            if event_type not in EVENT_TYPES or significance not in SIGNIFICANCE_LEVELS:
                raise MalformedResponseError(f"Unexpected watcher classification: {data}")
            return CodeEvent(
                type=event_type,
                timestamp=now,
                code_snapshot=code,
                concept=concept,
                confidence=_confidence(data.get("confidence")),
                significance=significance,
            )
        except (TutorAPIError, MalformedResponseError) as exc:
            logger.debug(f"Watcher detection fell back to size heuristic: {exc}")
            return CodeEvent(
                type="progress" if change > 20 else "typing",
                timestamp=now,
                code_snapshot=code,
                concept=concept,
                confidence=70,
                significance="medium" if change > 30 else "low",
            )

    # -------------------------------------------------------------------------
    # Teaching
    # -------------------------------------------------------------------------

    def _teaching_response(
        self,
        event: CodeEvent,
        code: str,
        concept: str,
        user_level: str,
        language: str,
    ) -> TeachingMoment:
        urgency = calculate_urgency(event)

        if urgency == "low" and self.responses:
            return TeachingMoment(should_respond=False, urgency="low", response_type="observe", event=event)

        recent = " | ".join(self.responses[-2:]) or "None"
        prompt = f"""You are an AI tutor watching a student program in REAL TIME.

EVENT DETECTED:
Type: {event.type}
Confidence: {event.confidence}%
Significance: {event.significance}
Concept: {concept}

STUDENT'S CURRENT CODE:
```{language}
{code}
```

CONTEXT:
- Level: {user_level}
- Progress in {concept}: {self.progress_context(concept)}
- Recent responses: {recent}

React NATURALLY and SPECIFICALLY to what is happening:
1. stuck: offer specific help
2. progress: encourage and suggest the next step
3. error: correct gently
4. completion: congratulate and advance
5. typing: only observe (do not respond)
6. If you recently said something similar, do NOT repeat it

Reply ONLY with JSON:
{{
  "shouldRespond": true,
  "urgency": "{urgency}",
  "responseType": "observe|hint|encourage|demonstrate|correct|advance",
  "message": "your specific reaction (max 2 sentences, 1-2 emojis)",
  "codeExample": "code only if responseType is demonstrate",
  "nextAction": "suggested next action"
}}"""

        try:
            data = self.teacher_client.generate_json(prompt)
        except (TutorAPIError, MalformedResponseError) as exc:
            logger.error(f"Watcher teacher failed: {exc}")
            raise TeachingUnavailableError("Cannot generate a teaching response: AI unavailable") from exc

        response_type = data.get("responseType")
        if response_type not in RESPONSE_TYPES:
            response_type = "observe"
        message = str(data.get("message") or "")

        return TeachingMoment(
            should_respond=bool(data.get("shouldRespond")) and bool(message),
            urgency=data.get("urgency") if data.get("urgency") in ("low", "medium", "high", "immediate") else urgency,
            response_type=response_type,
            message=message,
            code_example=data.get("codeExample") or None,
            next_action=data.get("nextAction") or None,
            event=event,
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def progress_context(self, concept: str) -> str:
        progress = self.concept_progress.get(concept, 0)
        attempts = sum(1 for e in self.history if e.concept == concept)
        return f"{progress:g}% ({attempts} attempts)"

    def _add_to_history(self, event: CodeEvent) -> None:
        self.history.append(event)
        if len(self.history) > MAX_EVENT_HISTORY:
            self.history = self.history[-TRIMMED_EVENT_HISTORY:]

        if event.type in ("progress", "completion"):
            current = self.concept_progress.get(event.concept, 0)
            self.concept_progress[event.concept] = min(100, current + event.confidence / 10)

    def reset_for_new_concept(self, concept: str) -> None:
        self.last_significant_event = None
        self.responses = []
        self.concept_progress[concept] = 0

    def get_stats(self) -> dict[str, Any]:
        return {
            "events_processed": len(self.history),
            "responses_given": len(self.responses),
            "current_progress": dict(self.concept_progress),
            "is_processing": self.is_processing,
        }
