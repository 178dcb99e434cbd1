"""
Unit tests for the chat + editor learning coordinator.
"""

import pytest

from src.tutor.coordinator import (
    CHAT_FALLBACK_MESSAGE,
    CODE_INTRO_MESSAGE,
    PRACTICE_MESSAGE,
    RECENT_CODE_SNAPSHOTS,
    CoordinatorObserver,
    LearningCoordinator,
    analyze_code_errors,
    calculate_code_metrics,
    salvage_code_example,
    should_generate_code,
)
from src.tutor.errors import (
    GenerationError,
    InvalidTransitionError,
    QuotaExceededError,
)
from src.tutor.models import (
    AdaptiveLevel,
    LearningTopic,
    MessageRole,
    MessageType,
    UserAssessment,
)

EXAMPLE = {"code": "age = 30\nprint(age)", "explanation": "Stores and prints an age."}


class RecordingObserver(CoordinatorObserver):
    def __init__(self):
        self.messages = []
        self.code = []
        self.progress = []

    def on_chat_message(self, message):
        self.messages.append(message)

    def on_code_generated(self, code):
        self.code.append(code)

    def on_progress_update(self, progress):
        self.progress.append(progress)


@pytest.fixture
def assessment():
    return UserAssessment(
        language="python",
        adaptive_level=AdaptiveLevel.INTERMEDIATE_SYNTAX,
        interests=["games"],
        goals=["build a game"],
    )


@pytest.fixture
def topic():
    return LearningTopic(
        id="topic_variables",
        title="Variables & Data Types",
        learning_objectives=["Create variables"],
    )


@pytest.fixture
def started(fake_client, assessment, topic):
    """A coordinator whose session has been started, plus its observer."""
    chat = fake_client("Welcome, game builder! 🎮", "Variables hold values.", default="Sure thing!")
    code = fake_client(EXAMPLE)
    coordinator = LearningCoordinator(chat, code)
    observer = RecordingObserver()
    coordinator.add_observer(observer)
    coordinator.start_learning_session(assessment, topic)
    return coordinator, observer


class TestCodeHelpers:
    def test_metrics(self):
        metrics = calculate_code_metrics("a = 1\nb = 2")
        assert metrics.lines_of_code == 2
        assert metrics.completeness == pytest.approx(1.1)

    def test_completeness_is_capped(self):
        assert calculate_code_metrics("x" * 5000).completeness == 100.0

    def test_python_syntax_error(self):
        errors = analyze_code_errors("def broken(:\n    pass", "python")
        assert len(errors) == 1
        assert errors[0].startswith("line 1")

    def test_valid_python(self):
        assert analyze_code_errors("def ok():\n    return 1", "python") == []

    def test_bracket_balance_for_other_languages(self):
        assert analyze_code_errors("function f() { return [1, 2]; }", "javascript") == []
        assert analyze_code_errors("function f() { return [1, 2; }", "javascript") == ["unbalanced '}'"]
        assert analyze_code_errors("if (x) {", "java") == ["unclosed '{'"]

    def test_empty_code_has_no_errors(self):
        assert analyze_code_errors("   ", "python") == []

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Can you show me an example?", True),
            ("How do loops work?", True),
            ("I don't understand this", True),
            ("Thanks!", False),
            ("ok cool", False),
        ],
    )
    def test_should_generate_code(self, text, expected):
        assert should_generate_code(text) is expected

    def test_salvage_keeps_code_lines(self):
        result = salvage_code_example("Here you go:\nx = 5\nprint(x)\nThat's it", "variables", "python")
        assert result.code == "x = 5\nprint(x)"
        assert "variables" in result.explanation

    def test_salvage_without_code_lines(self):
        result = salvage_code_example("No idea, sorry", "loops", "python")
        assert result.code.startswith("# Example: loops")


class TestSessionStart:
    def test_emits_welcome_explanation_code_and_practice(self, started, topic):
        coordinator, observer = started

        assert [m.message_type for m in observer.messages] == [
            MessageType.INTRODUCTION,
            MessageType.EXPLANATION,
            MessageType.ENCOURAGEMENT,
        ]
        assert observer.messages[0].content == "Welcome, game builder! 🎮"
        assert observer.messages[2].content == PRACTICE_MESSAGE
        assert all(m.topic_id == topic.id for m in observer.messages)
        assert observer.code[0].code == EXAMPLE["code"]
        assert coordinator.is_active
        assert not coordinator.is_processing

    def test_explanation_failure_uses_default_text(self, fake_client, assessment, topic, server_error):
        coordinator = LearningCoordinator(fake_client("Hi!", server_error), fake_client(EXAMPLE))
        observer = RecordingObserver()
        coordinator.add_observer(observer)
        coordinator.start_learning_session(assessment, topic)

        assert observer.messages[1].content.startswith("Let's learn about Variables & Data Types")

    def test_welcome_failure_propagates(self, fake_client, assessment, topic, server_error):
        coordinator = LearningCoordinator(fake_client(server_error), fake_client(EXAMPLE))
        with pytest.raises(GenerationError):
            coordinator.start_learning_session(assessment, topic)

    def test_code_example_quota_error_propagates(self, fake_client, assessment, topic, quota_error):
        coordinator = LearningCoordinator(fake_client("Hi!", "Explanation"), fake_client(quota_error))
        with pytest.raises(QuotaExceededError):
            coordinator.start_learning_session(assessment, topic)
        assert not coordinator.is_processing

    def test_code_example_not_json_is_generation_error(self, fake_client, assessment, topic):
        coordinator = LearningCoordinator(fake_client("Hi!", "Explanation"), fake_client("print('no json')"))
        with pytest.raises(GenerationError):
            coordinator.start_learning_session(assessment, topic)

    def test_code_example_without_code_is_generation_error(self, fake_client, assessment, topic):
        coordinator = LearningCoordinator(
            fake_client("Hi!", "Explanation"), fake_client({"code": "", "explanation": "nothing"})
        )
        with pytest.raises(GenerationError):
            coordinator.start_learning_session(assessment, topic)

    def test_prompt_uses_adaptive_strategy(self, fake_client, assessment, topic):
        code = fake_client(EXAMPLE)
        LearningCoordinator(fake_client("Hi!", "Explanation"), code).start_learning_session(assessment, topic)
        assert "INTERMEDIATE SYNTAX" in code.client.prompts[0]


class TestChat:
    def test_requires_session(self, fake_client):
        coordinator = LearningCoordinator(fake_client(), fake_client())
        with pytest.raises(InvalidTransitionError):
            coordinator.on_user_message("hello")

    def test_plain_message_gets_reply(self, started):
        coordinator, observer = started
        observer.messages.clear()

        actions = coordinator.on_user_message("Thanks!")

        assert [m.role for m in observer.messages] == [MessageRole.USER, MessageRole.AI]
        assert observer.messages[1].content == "Sure thing!"
        assert len(actions) == 1
        assert actions[0].type == "chat_message"

    def test_reply_failure_uses_fallback(self, fake_client, assessment, topic, server_error):
        chat = fake_client("Hi!", "Explanation", server_error)
        coordinator = LearningCoordinator(chat, fake_client(EXAMPLE))
        coordinator.start_learning_session(assessment, topic)

        actions = coordinator.on_user_message("Thanks!")
        assert actions[0].chat_message.content == CHAT_FALLBACK_MESSAGE

    def test_code_request_generates_example(self, fake_client, assessment, topic):
        code = fake_client(EXAMPLE, '{"code": "for i in range(3):\\n    print(i)", "explanation": "A loop."}')
        coordinator = LearningCoordinator(fake_client("Hi!", "Explanation", "Loops repeat code."), code)
        observer = RecordingObserver()
        coordinator.add_observer(observer)
        coordinator.start_learning_session(assessment, topic)
        observer.messages.clear()

        actions = coordinator.on_user_message("Can you show me an example of a loop?")

        assert [a.type for a in actions] == ["chat_message", "code_example"]
        assert observer.messages[-1].content == CODE_INTRO_MESSAGE
        assert observer.code[-1].code == "for i in range(3):\n    print(i)"
        assert actions[1].explanation == "A loop."

    def test_code_reply_without_json_is_salvaged(self, fake_client, assessment, topic):
        code = fake_client(EXAMPLE, "x = 1\nprint(x)")
        coordinator = LearningCoordinator(fake_client("Hi!", "Explanation", "Okay!"), code)
        coordinator.start_learning_session(assessment, topic)

        actions = coordinator.on_user_message("show me code")
        assert actions[1].code_example.code == "x = 1\nprint(x)"

    def test_code_reply_with_broken_json_raises(self, fake_client, assessment, topic):
        code = fake_client(EXAMPLE, '{"code": "x = 1", "explanation": ')
        coordinator = LearningCoordinator(fake_client("Hi!", "Explanation", "Okay!"), code)
        coordinator.start_learning_session(assessment, topic)

        with pytest.raises(GenerationError):
            coordinator.on_user_message("show me code")

    def test_history(self, started):
        coordinator, _ = started
        coordinator.on_user_message("Thanks!")
        assert len(coordinator.conversation_history) == 5
        assert len(coordinator.recent_history) == 5


class TestCodeChanges:
    def test_ignored_without_session(self, fake_client):
        coordinator = LearningCoordinator(fake_client(), fake_client())
        assert coordinator.on_code_change("print('hello world')", "python") is None

    def test_short_code_is_ignored(self, started):
        coordinator, _ = started
        assert coordinator.on_code_change("x = 1", "python") is None

    def test_first_snapshot_without_errors_is_ignored(self, started):
        coordinator, _ = started
        assert coordinator.on_code_change("name = 'Ada Lovelace'", "python") is None

    def test_reacts_to_change_from_previous_snapshot(self, fake_client, assessment, topic):
        code = fake_client(EXAMPLE, "Nice, now print it! 👍")
        coordinator = LearningCoordinator(fake_client("Hi!", "Explanation"), code)
        observer = RecordingObserver()
        coordinator.add_observer(observer)
        coordinator.start_learning_session(assessment, topic)

        coordinator.on_code_change("name = 'Ada Lovelace'", "python")
        action = coordinator.on_code_change("name = 'Ada Lovelace'\nage = 36", "python")

        assert action is not None
        assert action.chat_message.content == "Nice, now print it! 👍"
        assert observer.messages[-1].message_type == MessageType.FEEDBACK

    def test_unchanged_code_is_ignored(self, started):
        coordinator, _ = started
        coordinator.on_code_change("name = 'Ada Lovelace'", "python")
        assert coordinator.on_code_change("name = 'Ada Lovelace'", "python") is None

    def test_reacts_to_syntax_errors(self, fake_client, assessment, topic):
        code = fake_client(EXAMPLE, "Check the parenthesis on line 1 🔍")
        coordinator = LearningCoordinator(fake_client("Hi!", "Explanation"), code)
        coordinator.start_learning_session(assessment, topic)

        action = coordinator.on_code_change("print('missing paren'", "python")
        assert action.chat_message.content.startswith("Check the parenthesis")
        assert "Errors detected: 1" in code.client.prompts[-1]

    def test_keeps_recent_snapshots(self, started):
        coordinator, _ = started
        for i in range(RECENT_CODE_SNAPSHOTS + 3):
            coordinator.on_code_change(f"v{i} = {i}", "python")
        assert len(coordinator.code_history) == RECENT_CODE_SNAPSHOTS

    def test_ignored_while_processing(self, started):
        coordinator, _ = started
        coordinator.is_processing = True
        assert coordinator.on_code_change("print('missing paren'", "python") is None


class TestTopicChangeAndRestore:
    def test_change_topic_introduces_new_topic(self, fake_client, assessment, topic):
        code = fake_client(EXAMPLE, EXAMPLE)
        chat = fake_client("Hi!", "Explanation", "Loops repeat things.")
        coordinator = LearningCoordinator(chat, code)
        observer = RecordingObserver()
        coordinator.add_observer(observer)
        coordinator.start_learning_session(assessment, topic)
        observer.messages.clear()

        loops = LearningTopic(id="topic_loops", title="Loops")
        coordinator.change_topic(loops)

        assert coordinator.topic is loops
        assert len(observer.progress) == 1
        assert [m.message_type for m in observer.messages] == [MessageType.EXPLANATION, MessageType.ENCOURAGEMENT]
        assert all(m.topic_id == "topic_loops" for m in observer.messages)

    def test_change_topic_requires_session(self, fake_client):
        with pytest.raises(InvalidTransitionError):
            LearningCoordinator(fake_client(), fake_client()).change_topic(LearningTopic(title="Loops"))

    def test_restore_generates_nothing(self, fake_client, assessment, topic, started):
        _, observer = started
        coordinator = LearningCoordinator(fake_client(), fake_client())
        coordinator.restore(assessment, topic, observer.messages)

        assert coordinator.is_active
        assert coordinator.conversation_history == observer.messages
        assert coordinator.conversation_history is not observer.messages

    def test_remove_observer(self, started):
        coordinator, observer = started
        coordinator.remove_observer(observer)
        count = len(observer.messages)
        coordinator.on_user_message("Thanks!")
        assert len(observer.messages) == count
