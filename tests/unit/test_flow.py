"""
Unit tests for the learning flow state machine.
"""

import pytest

from src.tutor.assessment import GENERAL_EXPERIENCE_OPTIONS, AssessmentAnalyzer
from src.tutor.curriculum import CurriculumFactory
from src.tutor.errors import InvalidAnswerError, InvalidTransitionError, NotFoundError
from src.tutor.flow import MAX_EXERCISE_ATTEMPTS, LearningFlow
from src.tutor.models import FlowState, LearningTopic, PersonalizedCurriculum, UserAssessment

ANSWERS = [GENERAL_EXPERIENCE_OPTIONS[2], "I have never used Python", "Functions"]


@pytest.fixture
def make_flow(fake_client, analysis_reply, curriculum_reply):
    def _make(assessment_replies=None, curriculum_replies=None):
        analyzer = AssessmentAnalyzer(fake_client(*(assessment_replies or [analysis_reply])))
        factory = CurriculumFactory(fake_client(*(curriculum_replies or [curriculum_reply])))
        return LearningFlow(user_id="u1", language="python", analyzer=analyzer, factory=factory)

    return _make


def _answer_all(flow):
    step = None
    for answer in ANSWERS:
        step = flow.answer(answer)
    return step


class TestAssessmentPhase:
    def test_starts_at_first_question(self, make_flow):
        flow = make_flow()
        assert flow.state == FlowState.ASSESSMENT
        assert flow.current_question()["index"] == 0

    def test_answer_returns_feedback_and_next_question(self, make_flow):
        flow = make_flow()
        step = flow.answer(GENERAL_EXPERIENCE_OPTIONS[0])

        assert step.state == FlowState.ASSESSMENT
        assert "Everyone starts from zero" in step.feedback
        assert step.next_question["index"] == 1
        assert flow.responses == [GENERAL_EXPERIENCE_OPTIONS[0]]

    def test_unknown_option_is_rejected(self, make_flow):
        flow = make_flow()
        with pytest.raises(InvalidAnswerError):
            flow.answer("I write compilers for fun")
        assert flow.responses == []

    def test_invalid_answer_is_a_value_error(self):
        assert issubclass(InvalidAnswerError, ValueError)

    def test_third_answer_generates_curriculum(self, make_flow):
        flow = make_flow()
        step = _answer_all(flow)

        assert step.state == FlowState.LEARNING_ACTIVE
        assert step.error is None
        assert "consolidate" in step.welcome
        assert flow.assessment.user_id == "u1"
        assert flow.curriculum.assessment_id == flow.assessment.id
        assert flow.current_topic().title == "Python Syntax Basics"
        assert flow.progress.topics_completed == []

    def test_quota_error_returns_to_assessment(self, make_flow, quota_error):
        flow = make_flow(assessment_replies=[quota_error])
        step = _answer_all(flow)

        assert step.state == FlowState.ASSESSMENT
        assert "quota" in step.error.lower()
        assert step.welcome is None
        assert flow.responses == []
        assert flow.assessment is None
        assert flow.current_question()["index"] == 0

    def test_curriculum_failure_returns_to_assessment(self, make_flow, analysis_reply, server_error):
        flow = make_flow(curriculum_replies=[server_error])
        step = _answer_all(flow)

        assert step.state == FlowState.ASSESSMENT
        assert step.error
        assert flow.curriculum is None

    def test_error_clears_on_next_answer(self, make_flow, quota_error):
        flow = make_flow(assessment_replies=[quota_error])
        _answer_all(flow)
        assert flow.error

        flow.answer(ANSWERS[0])
        assert flow.error is None

    def test_cannot_answer_while_learning(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        with pytest.raises(InvalidTransitionError):
            flow.answer(ANSWERS[0])

    def test_completion_needs_ai_services(self):
        flow = LearningFlow(user_id="u1", language="python")
        flow.answer(ANSWERS[0])
        flow.answer(ANSWERS[1])
        with pytest.raises(InvalidTransitionError):
            flow.answer(ANSWERS[2])


class TestTopicProgression:
    def test_advance_moves_forward(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        first = flow.current_topic()

        nxt = flow.advance_topic(score=80)

        assert nxt.title == "Lists and Dicts"
        assert flow.curriculum.current_topic_index == 1
        assert flow.progress.topics_completed == [first.id]
        assert flow.progress.current_score == 80

    def test_last_topic_completes_curriculum(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        for _ in range(len(flow.curriculum.topics) - 1):
            assert flow.advance_topic() is not None

        assert flow.advance_topic() is None
        assert flow.state == FlowState.TOPIC_COMPLETED
        assert flow.curriculum.current_topic_index == len(flow.curriculum.topics) - 1
        assert len(flow.progress.topics_completed) == len(flow.curriculum.topics)

    def test_cannot_advance_after_completion(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        flow.curriculum.current_topic_index = len(flow.curriculum.topics) - 1
        flow.advance_topic()
        with pytest.raises(InvalidTransitionError):
            flow.advance_topic()

    def test_cannot_advance_during_assessment(self, make_flow):
        with pytest.raises(InvalidTransitionError):
            make_flow().advance_topic()

    def test_restart_keeps_curriculum_until_replaced(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        old_curriculum = flow.curriculum

        flow.restart()

        assert flow.state == FlowState.ASSESSMENT
        assert flow.responses == []
        assert flow.curriculum is old_curriculum
        assert flow.current_topic() is None

    def test_new_assessment_replaces_curriculum(self, make_flow, analysis_reply, curriculum_reply):
        flow = make_flow(
            assessment_replies=[analysis_reply, analysis_reply],
            curriculum_replies=[curriculum_reply, curriculum_reply],
        )
        _answer_all(flow)
        first_id = flow.curriculum.id

        flow.restart()
        _answer_all(flow)

        assert flow.replaces_curriculum
        assert flow.curriculum.id != first_id
        assert flow.state == FlowState.LEARNING_ACTIVE

    def test_nested_profile_fields_are_flattened(self, make_flow, analysis_reply):
        reply = {
            **analysis_reply,
            "experience": {"summary": "Java dev", "years": 3},
            "interests": "web development",
        }
        flow = make_flow(assessment_replies=[reply])
        _answer_all(flow)

        assert flow.state == FlowState.LEARNING_ACTIVE
        assert isinstance(flow.assessment.experience, str)
        assert "Java dev" in flow.assessment.experience
        assert flow.assessment.interests == ["web development"]


class TestExercises:
    def test_complete_exercise(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        exercise_id = flow.current_topic().exercises[0].id

        topic, exercise = flow.complete_exercise(exercise_id, attempts=2, time_spent=90)

        assert topic is flow.current_topic()
        assert exercise.question == "Practice Python Syntax Basics"
        assert flow.progress.exercises_completed == [exercise_id]
        assert flow.progress.time_spent == 90
        assert not flow.progress.adaptation_needed

    def test_repeat_adds_time_but_lists_once(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        exercise_id = flow.current_topic().exercises[0].id

        flow.complete_exercise(exercise_id, time_spent=30)
        flow.complete_exercise(exercise_id, time_spent=45)

        assert flow.progress.exercises_completed == [exercise_id]
        assert flow.progress.time_spent == 75

    def test_exercise_from_a_later_topic(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        later = flow.curriculum.topics[3]

        topic, _ = flow.complete_exercise(later.exercises[0].id)
        assert topic.id == later.id

    def test_many_attempts_flag_adaptation(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        exercise_id = flow.current_topic().exercises[0].id

        flow.complete_exercise(exercise_id, attempts=MAX_EXERCISE_ATTEMPTS)
        assert not flow.progress.adaptation_needed
        flow.complete_exercise(exercise_id, attempts=MAX_EXERCISE_ATTEMPTS + 1)
        assert flow.progress.adaptation_needed

    def test_unknown_exercise(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        with pytest.raises(NotFoundError):
            flow.complete_exercise("nope")

    def test_invalid_result_is_rejected(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        exercise_id = flow.current_topic().exercises[0].id
        with pytest.raises(InvalidAnswerError):
            flow.complete_exercise(exercise_id, attempts=0)
        with pytest.raises(InvalidAnswerError):
            flow.complete_exercise(exercise_id, time_spent=-1)
        assert flow.progress.exercises_completed == []

    def test_needs_a_curriculum(self, make_flow):
        with pytest.raises(InvalidTransitionError):
            make_flow().complete_exercise("anything")


class TestResume:
    def _curriculum(self):
        return PersonalizedCurriculum(
            language="python",
            topics=[LearningTopic(title="A", id="a"), LearningTopic(title="B", id="b")],
        )

    def test_resume_goes_straight_to_learning(self):
        flow = LearningFlow(user_id="u1", language="python")
        assessment = UserAssessment(language="python", responses=ANSWERS)
        flow.resume(assessment, self._curriculum())

        assert flow.state == FlowState.LEARNING_ACTIVE
        assert flow.responses == ANSWERS
        assert flow.current_topic().id == "a"

    def test_resume_finished_curriculum(self):
        from src.tutor.models import SessionProgress

        curriculum = self._curriculum()
        curriculum.current_topic_index = 1
        flow = LearningFlow(user_id="u1", language="python")
        flow.resume(UserAssessment(language="python"), curriculum, SessionProgress(topics_completed=["a", "b"]))

        assert flow.state == FlowState.TOPIC_COMPLETED


class TestSnapshot:
    def test_dict_round_trip_keeps_state(self, make_flow):
        flow = make_flow()
        _answer_all(flow)
        flow.advance_topic()

        restored = LearningFlow.from_dict(flow.to_dict())

        assert restored.state == FlowState.LEARNING_ACTIVE
        assert restored.curriculum.current_topic_index == 1
        assert restored.current_topic().id == flow.current_topic().id
        assert restored.progress.topics_completed == flow.progress.topics_completed
        assert restored.assessment.adaptive_level == flow.assessment.adaptive_level

    def test_snapshot_shows_current_question(self, make_flow):
        data = make_flow().to_dict()
        assert data["state"] == "assessment"
        assert data["current_question"]["index"] == 0
        assert data["current_topic"] is None
