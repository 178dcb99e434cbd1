"""
Gemini client wrapper.

Each tutoring role (assessment analysis, curriculum generation, chat, code,
watcher, teacher, feedback) gets its own GeminiClient with its own model,
temperature and token budget. The underlying google.generativeai model is
loaded lazily, so constructing clients never touches the network.

Failures are translated into the tutor error hierarchy:
- quota exhaustion -> QuotaExceededError
- network/auth/server failures -> GenerationError
- missing API key -> AIUnavailableError
- replies that are not the requested JSON -> MalformedResponseError
"""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from google.api_core import exceptions as google_exceptions
from loguru import logger

from src.tutor.errors import (
    AIUnavailableError,
    GenerationError,
    MalformedResponseError,
    QuotaExceededError,
)

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")

# genai.configure() is process-global; two API keys share it, so configure+call is serialized.
_configure_lock = threading.Lock()


class TextModel(Protocol):
    """Anything with the google.generativeai GenerativeModel call shape."""

    def generate_content(self, prompt: str) -> Any: ...


def parse_json_response(text: str) -> dict[str, Any]:
    """
    Extract a JSON object from an LLM reply.

    Strips markdown fences first, then falls back to the outermost {...} block.

    Raises:
        MalformedResponseError: if no JSON object can be decoded.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_BLOCK_RE.search(cleaned)
        if not match:
            raise MalformedResponseError("Model reply contains no JSON object", raw_text=text)
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(f"Model reply is not valid JSON: {exc}", raw_text=text) from exc

    if not isinstance(data, dict):
        raise MalformedResponseError("Model reply JSON is not an object", raw_text=text)
    return data


def _is_quota_error(exc: BaseException) -> bool:
    return isinstance(exc, google_exceptions.ResourceExhausted) or "quota" in str(exc).lower()


class GeminiClient:
    """
    Role-specific Gemini text generator.

    Args:
        api_key: Gemini API key (None disables the client)
        model_name: Gemini model identifier
        temperature: Sampling temperature
        max_output_tokens: Output token budget
        role: Label used in log lines
        model: Pre-built model object (tests inject scripted stand-ins here)
    """

    def __init__(
        self,
        api_key: str | None,
        model_name: str = "gemini-2.0-flash",
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        role: str = "tutor",
        model: TextModel | None = None,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.role = role
        self._client = model
        self._injected = model is not None

    @property
    def is_available(self) -> bool:
        """Check if the client can make calls (has API key or an injected model)."""
        return self._injected or bool(self.api_key)

    @property
    def client(self) -> TextModel:
        """Lazy-load Gemini model."""
        if self._client is None:
            import google.generativeai as genai

            self._client = genai.GenerativeModel(
                model_name=self.model_name,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_output_tokens,
                },
            )
        return self._client

    def _call(self, prompt: str) -> Any:
        if self._injected:
            return self.client.generate_content(prompt)

        import google.generativeai as genai

        with _configure_lock:
            genai.configure(api_key=self.api_key)
            return self.client.generate_content(prompt)

    def generate_text(self, prompt: str) -> str:
        """
        Send a prompt and return the stripped reply text.

        Raises:
            AIUnavailableError: no API key configured
            QuotaExceededError: Gemini quota exhausted
            GenerationError: any other API or transport failure
        """
        if not self.is_available:
            raise AIUnavailableError(f"No Gemini API key configured for role '{self.role}'")

        try:
            response = self._call(prompt)
            text = response.text
        except google_exceptions.GoogleAPIError as exc:
            if _is_quota_error(exc):
                logger.error(f"Gemini quota exceeded ({self.role}/{self.model_name}): {exc}")
                raise QuotaExceededError(str(exc)) from exc
            logger.error(f"Gemini API error ({self.role}/{self.model_name}): {exc}")
            raise GenerationError(str(exc)) from exc
        except (ConnectionError, TimeoutError, OSError) as exc:
            logger.error(f"Gemini unreachable ({self.role}): {exc}")
            raise GenerationError(f"Network error contacting Gemini: {exc}") from exc
        except ValueError as exc:
            # response.text raises ValueError when the candidate was blocked or empty
            if _is_quota_error(exc):
                raise QuotaExceededError(str(exc)) from exc
            logger.warning(f"Gemini returned no usable text ({self.role}): {exc}")
            raise GenerationError(f"Empty or blocked response: {exc}") from exc

        return (text or "").strip()

    def generate_json(self, prompt: str) -> dict[str, Any]:
        """Send a prompt that asks for JSON and return the decoded object."""
        text = self.generate_text(prompt)
        return parse_json_response(text)


@dataclass
class TutorClients:
    """The set of role clients one tutoring deployment uses."""

    assessment: GeminiClient
    curriculum: GeminiClient
    chat: GeminiClient
    code: GeminiClient
    watcher: GeminiClient
    teacher: GeminiClient
    feedback: GeminiClient


def build_clients(settings: Any) -> TutorClients:
    """
    Build role clients from settings.

    Chat, analysis, watcher and feedback use the primary key; code examples and
    teaching responses use the secondary key (falling back to the primary).
    """
    primary = settings.gemini_api_key
    secondary = settings.get_secondary_api_key()

    if not primary:
        logger.warning("No Gemini API key - AI tutoring disabled")

    return TutorClients(
        assessment=GeminiClient(
            primary,
            settings.assessment_model,
            settings.assessment_temperature,
            settings.assessment_max_tokens,
            role="assessment",
        ),
        curriculum=GeminiClient(
            primary,
            settings.curriculum_model,
            settings.curriculum_temperature,
            settings.curriculum_max_tokens,
            role="curriculum",
        ),
        chat=GeminiClient(
            primary,
            settings.chat_model,
            settings.chat_temperature,
            settings.chat_max_tokens,
            role="chat",
        ),
        code=GeminiClient(
            secondary,
            settings.code_model,
            settings.code_temperature,
            settings.code_max_tokens,
            role="code",
        ),
        watcher=GeminiClient(
            primary,
            settings.watcher_model,
            settings.watcher_temperature,
            settings.watcher_max_tokens,
            role="watcher",
        ),
        teacher=GeminiClient(
            secondary,
            settings.teacher_model,
            settings.teacher_temperature,
            settings.teacher_max_tokens,
            role="teacher",
        ),
        feedback=GeminiClient(
            primary,
            settings.feedback_model,
            settings.feedback_temperature,
            settings.feedback_max_tokens,
            role="feedback",
        ),
    )
