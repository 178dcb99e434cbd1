"""
Unit tests for one-shot code feedback and lesson generation.
"""

from src.tutor.feedback import analyze_code, get_lesson, parse_feedback, parse_lesson


class TestCodeFeedback:
    def test_parses_sections(self, fake_client):
        client = fake_client(
            "SUGGESTION: Use a list comprehension\n"
            "EXPLANATION: Comprehensions build lists in one expression\n"
            "TYPE: hint"
        )
        feedback = analyze_code(client, "result = []\nfor x in xs:\n    result.append(x)", "python")

        assert feedback.suggestion == "Use a list comprehension"
        assert feedback.explanation == "Comprehensions build lists in one expression"
        assert feedback.type == "hint"
        assert "```python" in client.client.prompts[0]

    def test_multiline_suggestion(self):
        feedback = parse_feedback("SUGGESTION: First line\nsecond line\nEXPLANATION: Why\nTYPE: correction")
        assert feedback.suggestion == "First line\nsecond line"
        assert feedback.type == "correction"

    def test_missing_sections_get_defaults(self):
        feedback = parse_feedback("Looks fine to me!")
        assert feedback.suggestion == "Keep practicing!"
        assert feedback.explanation == "You're on the right track."
        assert feedback.type == "encouragement"

    def test_unknown_type_is_encouragement(self):
        assert parse_feedback("SUGGESTION: a\nEXPLANATION: b\nTYPE: scolding").type == "encouragement"

    def test_api_failure_returns_encouragement(self, fake_client, server_error):
        feedback = analyze_code(fake_client(server_error), "print(1)", "python")
        assert feedback.type == "encouragement"
        assert feedback.suggestion.startswith("Keep writing code")

    def test_to_dict(self):
        data = parse_feedback("SUGGESTION: a\nEXPLANATION: b\nTYPE: hint").to_dict()
        assert data == {"suggestion": "a", "explanation": "b", "type": "hint"}


class TestLesson:
    def test_parses_sections(self, fake_client):
        client = fake_client(
            "TITLE: Loops\n"
            "DESCRIPTION: Repeat work\n"
            "CODE: for i in range(3):\n    print(i)\n"
            "OBJECTIVES: Write a for loop | Use range"
        )
        lesson = get_lesson(client, "python", "beginner")

        assert lesson.title == "Loops"
        assert lesson.description == "Repeat work"
        assert lesson.code == "for i in range(3):\n    print(i)"
        assert lesson.objectives == ["Write a for loop", "Use range"]
        assert "beginner level" in client.client.prompts[0]

    def test_missing_sections_get_defaults(self):
        lesson = parse_lesson("Sorry, no lesson today")
        assert lesson.title == "Programming Lesson"
        assert lesson.code == "// Your code here"
        assert lesson.objectives == ["Learn basic concepts"]

    def test_api_failure_returns_basic_lesson(self, fake_client, quota_error):
        lesson = get_lesson(fake_client(quota_error), "javascript", "beginner")
        assert lesson.title == "Basic Lesson"
        assert len(lesson.objectives) == 2
