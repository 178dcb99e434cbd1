"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Tests run against a throwaway SQLite database and scripted Gemini models;
no network access or API key is needed.
"""
import json
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Settings are read once at import time, so the database must be chosen first
_DB_DIR = tempfile.mkdtemp(prefix="codetutor-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["GEMINI_API_KEY"] = ""
os.environ["GEMINI_API_KEY_SECONDARY"] = ""
os.environ["LOG_FILE"] = ""

from google.api_core import exceptions as google_exceptions  # noqa: E402

from src.tutor.gemini import GeminiClient, TutorClients  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite database, FastAPI TestClient)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ========================================
# Scripted Gemini models
# ========================================


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """
    Stand-in for google.generativeai.GenerativeModel.

    Each call pops the next scripted item: a string is returned as the reply
    text, a dict is returned as JSON text, an exception is raised, and a
    callable is called with the prompt. When the script runs out, `default`
    is used (or the test fails if there is none).
    """

    def __init__(self, responses=(), default=None):
        self.responses = list(responses)
        self.default = default
        self.prompts = []

    def generate_content(self, prompt):
        self.prompts.append(prompt)
        if self.responses:
            item = self.responses.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            raise AssertionError(f"FakeModel ran out of scripted replies for prompt: {prompt[:80]!r}")

        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(prompt)
        if isinstance(item, dict):
            item = json.dumps(item)
        return FakeResponse(item)


@pytest.fixture
def fake_client():
    """Factory: fake_client(*replies, default=None, role="test") -> GeminiClient."""

    def _make(*responses, default=None, role="test"):
        return GeminiClient(api_key=None, role=role, model=FakeModel(responses, default=default))

    return _make


@pytest.fixture
def quota_error():
    return google_exceptions.ResourceExhausted("Quota exceeded for requests per minute")


@pytest.fixture
def server_error():
    return google_exceptions.ServiceUnavailable("backend unavailable")


@pytest.fixture
def offline_client():
    """A client with neither a key nor a model: every call raises AIUnavailableError."""
    return GeminiClient(api_key=None, role="offline")


# ========================================
# Sample model replies
# ========================================


@pytest.fixture
def analysis_reply():
    return {
        "generalProgrammingLevel": "intermediate",
        "languageSpecificLevel": "none",
        "adaptiveLevel": "intermediate_syntax",
        "level": "intermediate",
        "experience": "Knows Java, new to Python",
        "interests": ["web", "automation"],
        "previousKnowledge": ["loops", "functions"],
        "learningStyle": "practical",
        "goals": ["build tools"],
        "timeAvailable": "medium",
        "programmingExperienceYears": 3,
        "languageExperienceLevel": "never_used",
    }


@pytest.fixture
def curriculum_reply():
    titles = [
        "Python Syntax Basics",
        "Lists and Dicts",
        "Comprehensions",
        "Functions",
        "Modules",
        "Classes",
        "Exceptions",
        "Files",
    ]
    return {
        "topics": [
            {
                "title": title,
                "description": f"About {title}",
                "type": "concept" if i % 2 == 0 else "exercise",
                "difficulty": min(5, 1 + i // 2),
                "estimatedTime": 30,
                "prerequisites": [titles[i - 1]] if i else [],
                "learningObjectives": [f"Understand {title}"],
                "tags": ["python"],
                "priority": 10 - i,
                "focusArea": "syntax",
                "codeExample": f"# {title}",
                "exercises": [
                    {
                        "question": f"Practice {title}",
                        "startingCode": "# your code\n",
                        "hints": ["Start small"],
                        "solution": "pass",
                    }
                ],
            }
            for i, title in enumerate(titles)
        ],
        "estimatedCompletionTime": 240,
        "adaptationRules": [
            {"condition": "struggling_with_syntax", "action": "reinforce", "parameters": {"extra": 1}},
        ],
    }


@pytest.fixture
def tutor_clients(fake_client, analysis_reply, curriculum_reply):
    """Clients that answer every role with a plausible reply."""
    return TutorClients(
        assessment=fake_client(default=analysis_reply, role="assessment"),
        curriculum=fake_client(default=curriculum_reply, role="curriculum"),
        chat=fake_client(default="Welcome! Let's write some Python 🐍", role="chat"),
        code=fake_client(
            default={"code": "name = 'Ada'\nprint(name)", "explanation": "Assigns and prints a name."},
            role="code",
        ),
        watcher=fake_client(default={"type": "progress", "confidence": 80, "significance": "medium"}, role="watcher"),
        teacher=fake_client(
            default={
                "shouldRespond": True,
                "urgency": "medium",
                "responseType": "encourage",
                "message": "Nice progress! Try printing the result next.",
                "nextAction": "print the value",
            },
            role="teacher",
        ),
        feedback=fake_client(
            default="SUGGESTION: Use f-strings\nEXPLANATION: They are easier to read\nTYPE: hint",
            role="feedback",
        ),
    )


# ========================================
# Database
# ========================================


@pytest.fixture
def db_session():
    """Fresh tables per test; yields a session the test may commit or not."""
    from src.db.database import SessionLocal, drop_db, init_db

    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        drop_db()
