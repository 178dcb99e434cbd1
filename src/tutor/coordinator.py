"""
Chat + editor teaching coordinator.

One LearningCoordinator per learning session. It keeps the conversation and
code history for the session and pushes everything it produces (chat
messages, code for the editor, progress) to registered observers. The chat
model handles conversation; the code model handles examples and reactions to
the learner's code.
"""

from __future__ import annotations

import ast

from loguru import logger

from src.tutor.errors import (
    GenerationError,
    InvalidTransitionError,
    MalformedResponseError,
    QuotaExceededError,
    TutorAPIError,
)
from src.tutor.gemini import GeminiClient, parse_json_response
from src.tutor.models import (
    AdaptiveLevel,
    ChatMessage,
    CodeMetrics,
    CodeSnapshot,
    GeneratedCode,
    LearningTopic,
    MessageRole,
    MessageType,
    SessionProgress,
    TeachingAction,
    UserAssessment,
)

CHAT_CONTEXT_MESSAGES = 3
RECENT_CHAT_MESSAGES = 5
RECENT_CODE_SNAPSHOTS = 5
MIN_REACTION_LENGTH = 15
COMPLETENESS_REACTION_THRESHOLD = 70

PRACTICE_MESSAGE = (
    "Now it's your turn! Try changing the code above or write your own example. "
    "I'm here to help! 💡"
)
CHAT_FALLBACK_MESSAGE = "Got it! I'll help you with that. 😊"
CODE_INTRO_MESSAGE = "Let me show you an example in the editor! 👨‍💻"

CODE_KEYWORDS = (
    "example", "code", "show", "how to", "how do", "demonstrate",
    "don't understand", "dont understand", "explain", "how", "give me",
    "generate", "create", "implement", "write", "tutorial", "practice",
    "exercise",
)

_CODE_LINE_MARKERS = ("def ", "print(", "=", "if ", "for ", "#")
_BRACKETS = {")": "(", "]": "[", "}": "{"}


class CoordinatorObserver:
    """Receives coordinator output. Override the hooks you need."""

    def on_chat_message(self, message: ChatMessage) -> None:
        pass

    def on_code_generated(self, code: GeneratedCode) -> None:
        pass

    def on_progress_update(self, progress: SessionProgress) -> None:
        pass


# =============================================================================
# Code inspection helpers
# =============================================================================

def calculate_code_metrics(code: str) -> CodeMetrics:
    return CodeMetrics(
        lines_of_code=len(code.split("\n")),
        complexity=1,
        completeness=min(100.0, len(code) / 10),
        quality=80.0,
        time_spent=0,
    )


def analyze_code_errors(code: str, language: str) -> list[str]:
    """Cheap static checks: Python syntax, bracket balance for other languages."""
    if not code.strip():
        return []

    if language.lower() == "python":
        try:
            ast.parse(code)
        except SyntaxError as exc:
            return [f"line {exc.lineno}: {exc.msg}"]
        return []

    stack: list[str] = []
    for char in code:
        if char in "([{":
            stack.append(char)
        elif char in _BRACKETS:
            if not stack or stack.pop() != _BRACKETS[char]:
                return [f"unbalanced '{char}'"]
    if stack:
        return [f"unclosed '{stack[-1]}'"]
    return []


def should_generate_code(text: str) -> bool:
    """Whether a chat message is asking to see code."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in CODE_KEYWORDS)


def salvage_code_example(text: str, request: str, language: str) -> GeneratedCode:
    """Build a code example from a reply that contains no JSON at all."""
    code_lines = [line for line in text.split("\n") if any(m in line for m in _CODE_LINE_MARKERS)]
    if code_lines:
        code = "\n".join(code_lines)
    else:
        code = f'# Example: {request}\nprint("Example based on: {request}")'
    return GeneratedCode(code=code, explanation=f"Here is an example of {request} in {language}")


# =============================================================================
# Prompt strategies
# =============================================================================

_TOPIC_CODE_STRATEGIES = {
    AdaptiveLevel.INTERMEDIATE_SYNTAX: """STRATEGY: INTERMEDIATE SYNTAX
The learner understands programming concepts but needs {language} syntax.
- Use concepts they already know (loops, conditionals, functions)
- Show the {language}-specific syntax with comments on syntax differences
- Skip basic concept explanations
- 15-25 lines of code""",
    AdaptiveLevel.INTERMEDIATE_CONCEPTS: """STRATEGY: INTERMEDIATE CONCEPTS
The learner has a base in the language and wants to go deeper.
- Language-specific intermediate concepts, patterns and best practices
- Explain the "why" as well as the "how"
- 20-30 lines of code""",
    AdaptiveLevel.ADVANCED: """STRATEGY: ADVANCED CONCEPTS
The learner is experienced.
- Advanced patterns and optimizations, professional code
- Explain trade-offs and design decisions
- 25-40 lines of code""",
    AdaptiveLevel.BEGINNER: """STRATEGY: COMPLETE FUNDAMENTALS
The learner is new to programming.
- Very basic concepts, every line explained
- Simple practical examples
- 8-15 lines of code""",
}

_SPECIFIC_CODE_STRATEGIES = {
    AdaptiveLevel.INTERMEDIATE_SYNTAX: (
        "The learner understands programming but needs {language} syntax. Show how to do it "
        "specifically in {language}, focus on syntax, and comment on differences from other languages."
    ),
    AdaptiveLevel.BEGINNER: (
        "The learner is a beginner. Explain the basic concept first, keep the code very simple "
        "and add many explanatory comments."
    ),
}
_SPECIFIC_CODE_DEFAULT = (
    "The learner has a base and wants to go deeper. Show a more sophisticated example with "
    "good practices and explain the reasoning behind the choices."
)


class LearningCoordinator:
    """
    Coordinates the chat and the editor for one learning session.

    Args:
        chat_client: conversational model (welcome, explanations, replies)
        code_client: code model (examples, reactions to the learner's code)
    """

    def __init__(self, chat_client: GeminiClient, code_client: GeminiClient):
        self.chat_client = chat_client
        self.code_client = code_client
        self.observers: list[CoordinatorObserver] = []
        self.assessment: UserAssessment | None = None
        self.topic: LearningTopic | None = None
        self.progress = SessionProgress()
        self.conversation_history: list[ChatMessage] = []
        self.code_history: list[CodeSnapshot] = []
        self.is_processing = False

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def add_observer(self, observer: CoordinatorObserver) -> None:
        if observer not in self.observers:
            self.observers.append(observer)

    def remove_observer(self, observer: CoordinatorObserver) -> None:
        self.observers = [o for o in self.observers if o is not observer]

    def _add_chat_message(self, message: ChatMessage) -> ChatMessage:
        self.conversation_history.append(message)
        for observer in list(self.observers):
            observer.on_chat_message(message)
        return message

    def _emit_code(self, code: GeneratedCode) -> None:
        for observer in list(self.observers):
            observer.on_code_generated(code)

    @property
    def recent_history(self) -> list[ChatMessage]:
        return self.conversation_history[-RECENT_CHAT_MESSAGES:]

    @property
    def is_active(self) -> bool:
        return self.assessment is not None and self.topic is not None

    def _ai_message(self, content: str, message_type: MessageType) -> ChatMessage:
        return ChatMessage(
            role=MessageRole.AI,
            content=content,
            message_type=message_type,
            topic_id=self.topic.id if self.topic else None,
        )

    def _require_session(self, operation: str) -> tuple[UserAssessment, LearningTopic]:
        if self.assessment is None or self.topic is None:
            raise InvalidTransitionError(operation, "no active learning session")
        return self.assessment, self.topic

    # -------------------------------------------------------------------------
    # Session start
    # -------------------------------------------------------------------------

    def start_learning_session(
        self,
        assessment: UserAssessment,
        topic: LearningTopic,
        progress: SessionProgress | None = None,
    ) -> None:
        """
        Open the session: welcome, topic explanation, topic code example, practice nudge.

        Raises:
            TutorAPIError: the welcome message or the topic code example could not be generated
        """
        self.assessment = assessment
        self.topic = topic
        self.progress = progress or SessionProgress()

        self._add_chat_message(self._generate_welcome_message())
        self._introduce_topic()

    def change_topic(self, topic: LearningTopic, progress: SessionProgress | None = None) -> None:
        """Move the session to a new topic and introduce it."""
        self._require_session("change topic")
        self.topic = topic
        if progress is not None:
            self.progress = progress
        for observer in list(self.observers):
            observer.on_progress_update(self.progress)
        self._introduce_topic()

    def _introduce_topic(self) -> None:
        self.is_processing = True
        try:
            self._add_chat_message(self._generate_topic_explanation())
            self._emit_code(self._generate_topic_code_example())
            self._add_chat_message(self._ai_message(PRACTICE_MESSAGE, MessageType.ENCOURAGEMENT))
        finally:
            self.is_processing = False

    def _generate_welcome_message(self) -> ChatMessage:
        assessment, topic = self._require_session("welcome")
        prompt = f"""You are a friendly programming tutor. Write a personalized welcome message.

STUDENT PROFILE:
- Level: {assessment.level.value}
- Language: {assessment.language}
- Interests: {", ".join(assessment.interests)}
- Goals: {", ".join(assessment.goals)}
- Style: {assessment.learning_style.value}

CURRENT TOPIC: {topic.title}

The message should be warm and motivating, mention the current topic, connect with the
learner's interests, be at most 2-3 sentences and use 1-2 fitting emojis.

Reply with the message text only."""

        text = self.chat_client.generate_text(prompt)
        return self._ai_message(text, MessageType.INTRODUCTION)

    def _generate_topic_explanation(self) -> ChatMessage:
        assessment, topic = self._require_session("explain topic")
        prompt = f"""Explain this {assessment.language} topic in a clear, motivating way:

TOPIC: {topic.title}
DESCRIPTION: {topic.description}
OBJECTIVES: {", ".join(topic.learning_objectives)}
LEARNER LEVEL: {assessment.level.value}
LEARNING STYLE: {assessment.learning_style.value}

Keep it accessible for the learner's level, connect it to practical uses, use 3-4
conversational sentences and mention that you will show an example.

Reply with the explanation text only."""

        try:
            text = self.chat_client.generate_text(prompt)
        except TutorAPIError as exc:
            logger.warning(f"Topic explanation failed, using default text: {exc}")
            text = f"Let's learn about {topic.title}! This concept is fundamental to programming."
        return self._ai_message(text, MessageType.EXPLANATION)

    def _generate_topic_code_example(self) -> GeneratedCode:
        assessment, topic = self._require_session("generate topic example")
        strategy = _TOPIC_CODE_STRATEGIES.get(
            assessment.adaptive_level, _TOPIC_CODE_STRATEGIES[AdaptiveLevel.BEGINNER]
        )
        prompt = f"""Create a {assessment.language} code example adapted to this learner:

- Adaptive level: {assessment.adaptive_level.value}
- General experience: {assessment.general_programming_level.value}
- Language knowledge: {assessment.language_specific_level.value}
- Years of experience: {assessment.programming_experience_years}

TOPIC: {topic.title}
OBJECTIVES: {", ".join(topic.learning_objectives)}
INTERESTS: {", ".join(assessment.interests)}

{strategy.format(language=assessment.language)}

The code must be clear, well commented, practical and relevant to the learner's interests.

Reply in JSON:
{{
  "code": "code here",
  "explanation": "1-2 sentences on what the code does and why it fits this level"
}}"""

        try:
            data = self.code_client.generate_json(prompt)
        except QuotaExceededError:
            logger.error("Gemini quota exceeded while generating topic example")
            raise
        except MalformedResponseError as exc:
            raise GenerationError(f"Topic code example was not valid JSON: {exc}") from exc

        code = str(data.get("code") or "")
        if not code:
            raise GenerationError("Topic code example reply had no code")
        logger.debug(f"Topic example generated: {len(code.splitlines())} lines for {topic.title}")
        return GeneratedCode(code=code, explanation=str(data.get("explanation") or ""))

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    def on_user_message(self, text: str) -> list[TeachingAction]:
        """
        Handle a chat message from the learner.

        Returns:
            The teaching actions taken (the chat reply, plus a code example when asked for one).

        Raises:
            InvalidTransitionError: no session has been started
            TutorAPIError: a requested code example could not be generated
        """
        self._require_session("chat")

        self._add_chat_message(
            ChatMessage(
                role=MessageRole.USER,
                content=text,
                message_type=MessageType.QUESTION,
                topic_id=self.topic.id if self.topic else None,
            )
        )

        reply = self._add_chat_message(self._generate_chat_response(text))
        actions = [TeachingAction(type="chat_message", priority="medium", chat_message=reply)]

        if should_generate_code(text):
            logger.debug(f"Code requested in chat: {text[:50]}")
            intro = self._add_chat_message(self._ai_message(CODE_INTRO_MESSAGE, MessageType.EXPLANATION))
            example = self._generate_specific_code_example(text)
            self._emit_code(example)
            actions.append(
                TeachingAction(
                    type="code_example",
                    priority="high",
                    chat_message=intro,
                    code_example=example,
                    explanation=example.explanation,
                )
            )
        return actions

    def _generate_chat_response(self, text: str) -> ChatMessage:
        assessment, topic = self._require_session("reply")
        # The learner's message is already the last entry
        recent = "\n".join(
            f"{m.role.value}: {m.content}" for m in self.conversation_history[-CHAT_CONTEXT_MESSAGES:]
        )
        prompt = f"""You are a programming tutor chatting with a student.

CONTEXT:
- Current topic: {topic.title}
- Learner level: {assessment.level.value}
- Last messages:
{recent}

STUDENT MESSAGE: "{text}"

Reply as an experienced tutor: helpful and encouraging, answer the question directly,
explain technical doubts clearly, offer to show an example in the editor when useful,
conversational, at most 2-3 sentences, emojis when appropriate.

Reply with the response text only."""

        try:
            content = self.chat_client.generate_text(prompt)
        except TutorAPIError as exc:
            logger.warning(f"Chat reply failed, using default reply: {exc}")
            content = CHAT_FALLBACK_MESSAGE
        return self._ai_message(content, MessageType.FEEDBACK)

    def _generate_specific_code_example(self, request: str) -> GeneratedCode:
        assessment, topic = self._require_session("generate code example")
        strategy = _SPECIFIC_CODE_STRATEGIES.get(assessment.adaptive_level, _SPECIFIC_CODE_DEFAULT)
        prompt = f"""The student asked: "{request}"

CONTEXT:
- Current topic: {topic.title}
- Language: {assessment.language}
- Adaptive level: {assessment.adaptive_level.value}
- General experience: {assessment.general_programming_level.value}
- Language knowledge: {assessment.language_specific_level.value}

{strategy.format(language=assessment.language)}

Create a code example that answers the question at the right level.

IMPORTANT:
- Reply ONLY with valid JSON, no text outside it and no markdown code blocks
- Escape double quotes inside strings

Required format:
{{
  "code": "code here with \\n for line breaks",
  "explanation": "explanation here"
}}"""

        text = self.code_client.generate_text(prompt)
        if "{" not in text:
            logger.info("Code reply had no JSON, salvaging code-looking lines")
            return salvage_code_example(text, request, assessment.language)

        try:
            data = parse_json_response(text)
        except MalformedResponseError as exc:
            raise GenerationError(f"Code example was not valid JSON: {exc}") from exc

        return GeneratedCode(
            code=str(data.get("code") or ""),
            explanation=str(data.get("explanation") or ""),
        )

    # -------------------------------------------------------------------------
    # Editor
    # -------------------------------------------------------------------------

    def on_code_change(self, code: str, language: str) -> TeachingAction | None:
        """
        Record an editor snapshot and react to it when it is worth reacting to.

        Returns None while another step is running, when no session is active,
        or when the change is not significant.

        Raises:
            TutorAPIError: the code model failed while reacting
        """
        if self.is_processing or not self.is_active:
            return None

        previous = self.code_history[-1].code if self.code_history else None
        snapshot = CodeSnapshot(
            code=code,
            language=language,
            topic_id=self.topic.id if self.topic else None,
            is_valid=bool(code.strip()),
            errors=analyze_code_errors(code, language),
            metrics=calculate_code_metrics(code),
        )
        self.code_history.append(snapshot)
        self.code_history = self.code_history[-RECENT_CODE_SNAPSHOTS:]

        if not self._should_react(snapshot, previous):
            return None

        action = self._generate_code_reaction(snapshot)
        if action.chat_message is not None:
            self._add_chat_message(action.chat_message)
        return action

    @staticmethod
    def _should_react(snapshot: CodeSnapshot, previous: str | None) -> bool:
        if len(snapshot.code.strip()) <= MIN_REACTION_LENGTH:
            return False
        changed = previous is not None and previous != snapshot.code
        return (
            changed
            or bool(snapshot.errors)
            or snapshot.metrics.completeness > COMPLETENESS_REACTION_THRESHOLD
        )

    def _generate_code_reaction(self, snapshot: CodeSnapshot) -> TeachingAction:
        assessment, topic = self._require_session("react to code")
        error_lines = "".join(f"\n  - {error}" for error in snapshot.errors)
        prompt = f"""You monitor a student's code in real time. Analyze it and write a contextual reply.

STUDENT PROFILE:
- Level: {assessment.level.value}
- Language: {assessment.language}
- Current topic: {topic.title}

CURRENT CODE:
```{snapshot.language}
{snapshot.code}
```

ANALYSIS:
- Lines: {snapshot.metrics.lines_of_code}
- Completeness: {snapshot.metrics.completeness}%
- Errors detected: {len(snapshot.errors)}{error_lines}

If there is progress, acknowledge what was done well. If there are errors, give precise
hints. If the student seems stuck, suggest specific next steps. If something was
completed, congratulate and suggest how to extend it. Technical but friendly, at most
2 sentences, emojis when appropriate.

Reply with the message for the student only:"""

        content = self.code_client.generate_text(prompt)
        message = ChatMessage(
            role=MessageRole.AI,
            content=content,
            message_type=MessageType.FEEDBACK,
            topic_id=snapshot.topic_id,
        )
        return TeachingAction(type="chat_message", priority="medium", chat_message=message)

    # -------------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------------

    def restore(
        self,
        assessment: UserAssessment,
        topic: LearningTopic,
        history: list[ChatMessage],
        progress: SessionProgress | None = None,
    ) -> None:
        """Rebuild session state from persisted messages without generating anything."""
        self.assessment = assessment
        self.topic = topic
        self.progress = progress or SessionProgress()
        self.conversation_history = list(history)

