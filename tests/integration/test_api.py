"""
Integration tests for the HTTP API.

Runs the FastAPI app against the SQLite test database with scripted Gemini
models injected through dependency overrides.
"""

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_clients, get_registry
from src.api.main import app
from src.db.database import drop_db, init_db
from src.tutor.assessment import GENERAL_EXPERIENCE_OPTIONS
from src.tutor.errors import TeachingUnavailableError
from src.tutor.service import SessionRegistry

ANSWERS = [GENERAL_EXPERIENCE_OPTIONS[2], "I have never used Python", "Functions"]
FLOWS = "/api/learning/flows"
SESSIONS = "/api/learning/sessions"


@pytest.fixture
def deps(tutor_clients):
    """Mutable dependency values; tests may swap clients or the registry."""
    return {"clients": tutor_clients, "registry": SessionRegistry()}


@pytest.fixture
def client(deps):
    init_db()
    app.dependency_overrides[get_clients] = lambda: deps["clients"]
    app.dependency_overrides[get_registry] = lambda: deps["registry"]
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        drop_db()


def _complete_assessment(client, user_id="u1", language="python"):
    client.post(FLOWS, json={"user_id": user_id, "language": language})
    response = None
    for option in ANSWERS:
        response = client.post(f"{FLOWS}/{user_id}/{language}/answer", json={"option": option})
    return response.json()


def _start_session(client, user_id="u1", language="python"):
    _complete_assessment(client, user_id, language)
    response = client.post(SESSIONS, json={"user_id": user_id, "language": language})
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_root(self, client):
        data = client.get("/").json()
        assert data["service"] == "codetutor"
        assert data["status"] == "ok"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["components"]["database"] == "ok"
        assert data["tables_missing"] == []

    def test_config_hides_secrets(self, client):
        data = client.get("/config").json()
        assert "watcher" in data
        assert "roles" in data["gemini"]
        assert "gemini_api_key" not in str(data)


class TestLearningFlowAPI:
    def test_start_flow(self, client):
        response = client.post(FLOWS, json={"user_id": "u1", "language": "Python"})

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "assessment"
        assert data["language"] == "python"
        assert data["current_question"]["index"] == 0
        assert "Python" in data["intro"]

    def test_start_is_idempotent(self, client):
        client.post(FLOWS, json={"user_id": "u1", "language": "python"})
        client.post(f"{FLOWS}/u1/python/answer", json={"option": ANSWERS[0]})

        data = client.post(FLOWS, json={"user_id": "u1", "language": "python"}).json()
        assert data["responses"] == [ANSWERS[0]]

    def test_unsupported_language(self, client):
        response = client.post(FLOWS, json={"user_id": "u1", "language": "cobol"})
        assert response.status_code == 404

    def test_unknown_flow(self, client):
        assert client.get(f"{FLOWS}/nobody/python").status_code == 404

    def test_answers_build_curriculum(self, client):
        data = _complete_assessment(client)

        assert data["step"]["state"] == "learning_active"
        assert data["step"]["welcome"]
        assert data["flow"]["assessment"]["adaptive_level"] == "intermediate_syntax"
        assert data["flow"]["current_topic"]["title"] == "Python Syntax Basics"
        assert len(data["flow"]["curriculum"]["topics"]) == 8

    def test_invalid_option(self, client):
        client.post(FLOWS, json={"user_id": "u1", "language": "python"})
        response = client.post(f"{FLOWS}/u1/python/answer", json={"option": "I am a wizard"})
        assert response.status_code == 422

    def test_answer_after_assessment_conflicts(self, client):
        _complete_assessment(client)
        response = client.post(f"{FLOWS}/u1/python/answer", json={"option": ANSWERS[0]})
        assert response.status_code == 409

    def test_quota_error_restarts_assessment(self, client, deps, fake_client, quota_error):
        deps["clients"] = replace(deps["clients"], assessment=fake_client(quota_error))
        data = _complete_assessment(client)

        assert data["step"]["state"] == "assessment"
        assert "quota" in data["step"]["error"].lower()
        assert data["flow"]["responses"] == []

    def test_advance_and_recommendation(self, client):
        _complete_assessment(client)
        response = client.post(f"{FLOWS}/u1/python/advance", json={"score": 90})

        data = response.json()
        assert data["topic"]["title"] == "Lists and Dicts"
        assert data["finished"] is False
        assert data["recommendation"]["title"] == "Lists and Dicts"
        assert data["flow"]["progress"]["topics_completed"] == [data["flow"]["curriculum"]["topics"][0]["id"]]

    def test_advance_without_body(self, client):
        _complete_assessment(client)
        assert client.post(f"{FLOWS}/u1/python/advance").status_code == 200

    def test_advance_during_assessment_conflicts(self, client):
        client.post(FLOWS, json={"user_id": "u1", "language": "python"})
        assert client.post(f"{FLOWS}/u1/python/advance").status_code == 409

    def test_complete_exercise(self, client):
        flow = _complete_assessment(client)["flow"]
        exercise_id = flow["current_topic"]["exercises"][0]["id"]

        response = client.post(
            f"{FLOWS}/u1/python/exercises/{exercise_id}/complete",
            json={"attempts": 2, "time_spent": 60},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["exercise"]["question"] == "Practice Python Syntax Basics"
        assert data["adaptation_needed"] is False
        assert data["flow"]["progress"]["exercises_completed"] == [exercise_id]
        assert data["flow"]["progress"]["time_spent"] == 60

    def test_struggling_exercise_adapts_curriculum(self, client):
        flow = _complete_assessment(client)["flow"]
        exercise_id = flow["current_topic"]["exercises"][0]["id"]

        data = client.post(f"{FLOWS}/u1/python/exercises/{exercise_id}/complete", json={"attempts": 5}).json()

        assert data["adaptation_needed"] is True
        assert data["flow"]["progress"]["struggling_areas"] == ["Python Syntax Basics"]
        curriculum = client.get("/api/curriculum/u1/python").json()["curriculum"]
        conditions = [r["condition"] for r in curriculum["adaptation_rules"]]
        assert "struggling_with:Python Syntax Basics" in conditions

    def test_unknown_exercise(self, client):
        _complete_assessment(client)
        assert client.post(f"{FLOWS}/u1/python/exercises/nope/complete").status_code == 404

    def test_exercise_needs_positive_attempts(self, client):
        flow = _complete_assessment(client)["flow"]
        exercise_id = flow["current_topic"]["exercises"][0]["id"]
        response = client.post(f"{FLOWS}/u1/python/exercises/{exercise_id}/complete", json={"attempts": 0})
        assert response.status_code == 422

    def test_exercise_during_assessment_conflicts(self, client):
        client.post(FLOWS, json={"user_id": "u1", "language": "python"})
        assert client.post(f"{FLOWS}/u1/python/exercises/x/complete").status_code == 409

    def test_restart(self, client):
        _complete_assessment(client)
        data = client.post(f"{FLOWS}/u1/python/restart").json()

        assert data["state"] == "assessment"
        assert data["responses"] == []

    def test_new_assessment_replaces_curriculum(self, client):
        first = _complete_assessment(client)["flow"]["curriculum"]["id"]
        client.post(f"{FLOWS}/u1/python/restart")
        second = _complete_assessment(client)["flow"]["curriculum"]["id"]

        assert first != second
        curriculum = client.get("/api/curriculum/u1/python").json()["curriculum"]
        assert curriculum["id"] == second

        assessments = client.get("/api/assessment", params={"user_id": "u1"}).json()
        assert assessments["count"] == 2


class TestCurriculumAPI:
    def test_curriculum_view(self, client):
        _complete_assessment(client)
        client.post(f"{FLOWS}/u1/python/advance", json={"score": 80, "struggling_areas": ["loops"]})

        data = client.get("/api/curriculum/u1/python").json()

        assert len(data["unlocked_topic_ids"]) == 2
        assert data["completion_percentage"] == 12.5
        assert data["progress"]["struggling_areas"] == ["loops"]
        conditions = [r["condition"] for r in data["curriculum"]["adaptation_rules"]]
        assert "struggling_with:loops" in conditions

    def test_missing_curriculum(self, client):
        assert client.get("/api/curriculum/nobody/python").status_code == 404

    def test_questions(self, client):
        data = client.get("/api/assessment/questions/javascript").json()
        assert len(data["questions"]) == 3
        assert "JavaScript" in data["intro"]


class TestSessionAPI:
    def test_start_session(self, client):
        data = _start_session(client)

        assert data["session_id"]
        assert [m["message_type"] for m in data["messages"]] == ["introduction", "explanation", "encouragement"]
        assert data["code"][0]["code"] == "name = 'Ada'\nprint(name)"
        assert data["topic"]["title"] == "Python Syntax Basics"

    def test_start_before_assessment_conflicts(self, client):
        client.post(FLOWS, json={"user_id": "u1", "language": "python"})
        response = client.post(SESSIONS, json={"user_id": "u1", "language": "python"})
        assert response.status_code == 409

    def test_quota_on_session_start(self, client, deps, fake_client, quota_error):
        _complete_assessment(client)
        deps["clients"] = replace(deps["clients"], code=fake_client(quota_error))

        response = client.post(SESSIONS, json={"user_id": "u1", "language": "python"})

        assert response.status_code == 429
        assert "quota" in response.json()["detail"].lower()
        assert len(deps["registry"]) == 0

    def test_topic_sync_after_advance(self, client):
        session_id = _start_session(client)["session_id"]
        assert client.post(f"{SESSIONS}/{session_id}/topic").json()["messages"] == []

        client.post(f"{FLOWS}/u1/python/advance")
        data = client.post(f"{SESSIONS}/{session_id}/topic").json()

        assert data["topic"]["title"] == "Lists and Dicts"
        assert [m["message_type"] for m in data["messages"]] == ["explanation", "encouragement"]
        assert len(data["code"]) == 1

    def test_end_session(self, client):
        session_id = _start_session(client)["session_id"]
        data = client.post(f"{SESSIONS}/{session_id}/end").json()

        assert data["is_active"] is False
        assert data["duration_seconds"] >= 0
        assert data["watcher"]["events_processed"] == 0

        response = client.post("/api/chat/message", json={"session_id": session_id, "message": "hi"})
        assert response.status_code == 409

    def test_unknown_session(self, client):
        assert client.post(f"{SESSIONS}/missing/end").status_code == 404


class TestChatAPI:
    def test_chat_reply(self, client):
        session_id = _start_session(client)["session_id"]
        data = client.post("/api/chat/message", json={"session_id": session_id, "message": "Thanks!"}).json()

        assert [m["role"] for m in data["messages"]] == ["user", "ai"]
        assert data["code"] == []

    def test_code_request(self, client):
        session_id = _start_session(client)["session_id"]
        data = client.post(
            "/api/chat/message", json={"session_id": session_id, "message": "Can you show me an example?"}
        ).json()

        assert len(data["messages"]) == 3
        assert data["code"][0]["code"] == "name = 'Ada'\nprint(name)"

    def test_history(self, client):
        session_id = _start_session(client)["session_id"]
        client.post("/api/chat/message", json={"session_id": session_id, "message": "Thanks!"})

        data = client.get(f"/api/chat/{session_id}/history").json()
        assert data["count"] == 5
        assert data["messages"][3]["content"] == "Thanks!"

        recent = client.get(f"/api/chat/{session_id}/history", params={"limit": 2}).json()
        assert recent["count"] == 2

    def test_coordinator_rebuilt_from_transcript(self, client, deps):
        session_id = _start_session(client)["session_id"]
        deps["registry"] = SessionRegistry()

        response = client.post("/api/chat/message", json={"session_id": session_id, "message": "Thanks!"})

        assert response.status_code == 200
        assert len(deps["registry"]) == 1
        assert client.get(f"/api/chat/{session_id}/history").json()["count"] == 5

    def test_unknown_session(self, client):
        response = client.post("/api/chat/message", json={"session_id": "missing", "message": "hi"})
        assert response.status_code == 404


class TestCodeAPI:
    def test_watcher_moment(self, client):
        session_id = _start_session(client)["session_id"]
        response = client.post(
            "/api/code/event",
            json={"session_id": session_id, "code": "for i in range(10):\n    print(i * 2)", "language": "python"},
        )

        moment = response.json()["moment"]
        assert moment["should_respond"] is True
        assert moment["message"] == "Nice progress! Try printing the result next."
        assert moment["event"]["type"] == "progress"

    def test_small_change_stays_quiet(self, client):
        session_id = _start_session(client)["session_id"]
        data = client.post("/api/code/event", json={"session_id": session_id, "code": "x = 1"}).json()
        assert data["moment"] is None

    def test_coordinator_reaction(self, client):
        session_id = _start_session(client)["session_id"]
        data = client.post(
            "/api/code/event",
            json={"session_id": session_id, "code": "print('missing paren'", "reactor": "coordinator"},
        ).json()

        assert data["reacted"] is True
        assert data["messages"][0]["message_type"] == "feedback"

    def test_teacher_failure(self, client, deps, fake_client, server_error):
        session_id = _start_session(client)["session_id"]
        deps["registry"] = SessionRegistry()
        deps["clients"] = replace(deps["clients"], teacher=fake_client(server_error))

        response = client.post("/api/code/event", json={"session_id": session_id, "code": "", "idle_seconds": 20})
        assert response.status_code == 502
        assert response.json()["detail"] == TeachingUnavailableError.user_message
        assert "backend unavailable" not in response.json()["detail"]

    def test_feedback(self, client):
        data = client.post("/api/code/feedback", json={"code": "print('hi ' + name)"}).json()
        assert data == {"suggestion": "Use f-strings", "explanation": "They are easier to read", "type": "hint"}

    def test_lesson(self, client):
        data = client.get("/api/code/lesson", params={"language": "python"}).json()
        assert data["title"] == "Programming Lesson"


class TestLanguagesAPI:
    def test_list(self, client):
        data = client.get("/api/languages").json()
        assert data["count"] == 6

    def test_detail_with_lessons(self, client):
        data = client.get("/api/languages/javascript").json()
        assert data["name"] == "JavaScript"
        assert len(data["lessons"]) == 2

    def test_unknown(self, client):
        assert client.get("/api/languages/cobol").status_code == 404
