"""
Tutor exception hierarchy.

API-facing errors (anything raised while talking to Gemini) derive from
TutorAPIError so the learning flow can treat them uniformly; state and
input errors are raised by the flow itself.
"""

from __future__ import annotations


class TutorError(Exception):
    """Base class for all tutor errors."""


class TutorAPIError(TutorError):
    """The external generative-language API could not produce a result."""

    user_message = "The AI tutor is unavailable right now. Please try again."


class AIUnavailableError(TutorAPIError):
    """No Gemini API key is configured."""

    user_message = "The AI tutor is not configured (missing Gemini API key)."


class QuotaExceededError(TutorAPIError):
    """The Gemini quota (requests per minute/day) has been exhausted."""

    user_message = "The Gemini API quota has been exceeded. Please try again later."


class GenerationError(TutorAPIError):
    """Network, auth or server failure while calling Gemini."""


class MalformedResponseError(TutorError):
    """The model replied, but not with the JSON shape we asked for."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class TeachingUnavailableError(TutorAPIError):
    """The code watcher could not produce a teaching response."""


class InvalidTransitionError(TutorError):
    """An operation was attempted in a learning-flow state that does not allow it."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while flow is in state '{state}'")
        self.operation = operation
        self.state = state


class InvalidAnswerError(TutorError, ValueError):
    """Learner input that the current step does not accept (unknown option, bad exercise result)."""


class NotFoundError(TutorError, LookupError):
    """A requested record does not exist."""
