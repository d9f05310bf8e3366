"""
Tests for engine module.

Tests cover:
- The attempt lifecycle and its protocol errors
- Navigation and answer replacement
- Attempt caps and deterministic shuffling
- Review before finish
- Deadlines computed from an injected clock
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from quizlab.config import EngineConfig
from quizlab.engine import Completed, InProgress, NotStarted, QuizEngine, Reviewing
from quizlab.errors import (
    AlreadyInProgress,
    InvalidState,
    MaxAttemptsExceeded,
    NoQuestions,
    OutOfQuestions,
)
from quizlab.grader import Grader
from quizlab.models import (
    Choice,
    FreeformCode,
    MultipleChoice,
    Quiz,
    Success,
    TestCase,
)
from quizlab.runner import TestRunner
from quizlab.sandbox import Sandbox

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock returning a settable time."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def keyword_quiz(**kwargs):
    question = MultipleChoice(id="kw", prompt="Which keyword?", options=("let", "var", "const"),
                              correct_index=0, points=10)
    return Quiz(id="js-keywords", title="Keywords", questions=(question,), passing_score=0.7, **kwargs)


def three_question_quiz(**kwargs):
    questions = tuple(
        MultipleChoice(id=f"q{i}", prompt=f"Question {i}", options=("a", "b"), correct_index=0)
        for i in range(3)
    )
    return Quiz(id="three", title="Three", questions=questions, **kwargs)


def make_engine(quiz, **kwargs):
    kwargs.setdefault("clock", FakeClock())
    return QuizEngine(quiz, grader=Grader(runner=TestRunner(sandbox=Mock(spec=Sandbox))), **kwargs)


class TestScenarios:
    """End-to-end single question attempts."""

    def test_correct_answer_passes(self):
        engine = make_engine(keyword_quiz())
        question = engine.start()
        assert question.id == "kw"

        feedback = engine.submit_answer(Choice(0))
        assert feedback.correct is True
        assert feedback.points_earned == 10

        score = engine.finish()
        assert score.points_earned == 10
        assert score.points_possible == 10
        assert score.percentage == 1.0
        assert score.passed is True

    def test_wrong_answer_fails(self):
        engine = make_engine(keyword_quiz())
        engine.start()

        feedback = engine.submit_answer(Choice(1))
        assert feedback.correct is False
        assert feedback.points_earned == 0

        score = engine.finish()
        assert score.percentage == 0.0
        assert score.passed is False

    def test_unanswered_questions_count_as_incorrect(self):
        engine = make_engine(three_question_quiz())
        engine.start()
        engine.submit_answer(Choice(0))

        score = engine.finish()
        assert score.correct_count == 1
        assert score.points_earned == 1
        assert score.total_questions == 3

    def test_resubmission_replaces_answer(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        engine.submit_answer(Choice(2))
        engine.submit_answer(Choice(0))

        assert engine.finish().passed is True


class TestLifecycle:
    """Test state transitions and protocol errors."""

    def test_initial_state(self):
        engine = make_engine(keyword_quiz())
        assert isinstance(engine.state, NotStarted)
        assert engine.attempt_count == 0
        assert engine.progress() == 0.0

    def test_submit_before_start(self):
        with pytest.raises(InvalidState):
            make_engine(keyword_quiz()).submit_answer(Choice(0))

    def test_finish_before_start(self):
        with pytest.raises(InvalidState):
            make_engine(keyword_quiz()).finish()

    def test_start_twice(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        with pytest.raises(AlreadyInProgress):
            engine.start()

    def test_empty_quiz(self):
        engine = make_engine(Quiz(id="empty", title="Empty"))
        with pytest.raises(NoQuestions):
            engine.start()
        assert engine.attempt_count == 0

    def test_finish_is_idempotent(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        engine.submit_answer(Choice(0))

        first = engine.finish()
        assert engine.finish() == first
        assert isinstance(engine.state, Completed)
        assert engine.state.attempt_number == 1

    def test_submit_after_finish(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        engine.finish()
        with pytest.raises(InvalidState):
            engine.submit_answer(Choice(0))

    def test_new_attempt_after_completion(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        engine.submit_answer(Choice(1))
        engine.finish()

        engine.start()
        assert isinstance(engine.state, InProgress)
        assert engine.answered_count() == 0
        engine.submit_answer(Choice(0))
        assert engine.finish().passed is True
        assert engine.attempt_count == 2

    def test_duration_from_clock(self):
        clock = FakeClock()
        engine = make_engine(keyword_quiz(), clock=clock)
        engine.start()
        clock.advance(45)
        engine.finish()
        assert engine.state.duration_secs == 45.0


class TestAttemptLimit:
    """Test max_attempts enforcement."""

    def test_max_attempts(self):
        engine = make_engine(keyword_quiz(max_attempts=1))
        assert engine.can_attempt()
        engine.start()
        engine.finish()

        assert not engine.can_attempt()
        with pytest.raises(MaxAttemptsExceeded):
            engine.start()

    def test_unlimited_attempts(self):
        engine = make_engine(keyword_quiz())
        for _ in range(5):
            engine.start()
            engine.finish()
        assert engine.can_attempt()


class TestNavigation:
    """Test moving between questions."""

    def test_next_and_previous(self):
        engine = make_engine(three_question_quiz())
        engine.start()

        assert engine.next_question().id == "q1"
        assert engine.next_question().id == "q2"
        with pytest.raises(OutOfQuestions):
            engine.next_question()
        assert engine.previous_question().id == "q1"
        assert engine.current_index() == 1

    def test_previous_at_first(self):
        engine = make_engine(three_question_quiz())
        engine.start()
        with pytest.raises(OutOfQuestions):
            engine.previous_question()

    def test_go_to(self):
        engine = make_engine(three_question_quiz())
        engine.start()
        assert engine.go_to(2).id == "q2"
        with pytest.raises(OutOfQuestions):
            engine.go_to(3)
        with pytest.raises(OutOfQuestions):
            engine.go_to(-1)

    def test_navigation_does_not_require_answers(self):
        engine = make_engine(three_question_quiz())
        engine.start()
        engine.go_to(2)
        engine.submit_answer(Choice(0))

        assert engine.answered_count() == 1
        assert engine.progress() == pytest.approx(1 / 3)
        assert engine.feedback_for(2).correct is True
        assert engine.feedback_for(0) is None

    def test_navigation_requires_attempt(self):
        engine = make_engine(three_question_quiz())
        with pytest.raises(InvalidState):
            engine.next_question()
        with pytest.raises(InvalidState):
            engine.current_question()


class TestShuffle:
    """Test deterministic presentation order."""

    def order_for(self, seed, attempts=1):
        quiz = Quiz(
            id="shuffled", title="Shuffled", shuffle=True,
            questions=tuple(MultipleChoice(id=f"q{i}", prompt="?", options=("a", "b"), correct_index=0)
                            for i in range(8)),
        )
        engine = make_engine(quiz, config=EngineConfig(shuffle_seed=seed))
        orders = []
        for _ in range(attempts):
            engine.start()
            orders.append([q.id for q in engine.questions()])
            engine.finish()
        return orders

    def test_same_seed_same_order(self):
        assert self.order_for(7) == self.order_for(7)

    def test_order_is_permutation(self):
        order = self.order_for(7)[0]
        assert sorted(order) == sorted(f"q{i}" for i in range(8))

    def test_unshuffled_quiz_keeps_order(self):
        engine = make_engine(three_question_quiz())
        engine.start()
        assert [q.id for q in engine.questions()] == ["q0", "q1", "q2"]

    def test_answers_follow_presented_question(self):
        quiz = Quiz(
            id="shuffled", title="Shuffled", shuffle=True,
            questions=tuple(MultipleChoice(id=f"q{i}", prompt="?", options=("a", "b"),
                                           correct_index=i % 2, points=1)
                            for i in range(6)),
        )
        engine = make_engine(quiz, config=EngineConfig(shuffle_seed=3))
        engine.start()
        for position, question in enumerate(engine.questions()):
            engine.go_to(position)
            engine.submit_answer(Choice(question.correct_index))

        assert engine.finish().points_earned == 6


class TestReview:
    """Test the optional review step."""

    def test_review_disabled_by_default(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        engine.submit_answer(Choice(0))
        with pytest.raises(InvalidState):
            engine.review()

    def test_review_requires_all_answers(self):
        engine = make_engine(three_question_quiz(), config=EngineConfig(review_before_finish=True))
        engine.start()
        engine.submit_answer(Choice(0))
        with pytest.raises(InvalidState):
            engine.review()

    def test_review_then_finish(self):
        engine = make_engine(keyword_quiz(), config=EngineConfig(review_before_finish=True))
        engine.start()
        engine.submit_answer(Choice(0))

        reviewing = engine.review()
        assert isinstance(reviewing, Reviewing)
        assert reviewing.feedback[0].correct is True
        with pytest.raises(AlreadyInProgress):
            engine.start()
        with pytest.raises(InvalidState):
            engine.submit_answer(Choice(1))

        assert engine.finish().passed is True


class TestDeadline:
    """Test time limit bookkeeping."""

    def test_no_limit(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        assert engine.deadline() is None
        assert engine.is_expired(START + timedelta(days=1)) is False
        assert engine.remaining(START) is None

    def test_deadline_from_start_time(self):
        engine = make_engine(keyword_quiz(time_limit_secs=60))
        engine.start()

        assert engine.deadline() == START + timedelta(seconds=60)
        assert engine.remaining(START + timedelta(seconds=20)) == timedelta(seconds=40)
        assert engine.is_expired(START + timedelta(seconds=59)) is False
        assert engine.is_expired(START + timedelta(seconds=60)) is True
        assert engine.remaining(START + timedelta(seconds=90)) == timedelta(0)

    def test_engine_does_not_auto_finish(self):
        engine = make_engine(keyword_quiz(time_limit_secs=60))
        engine.start()
        assert engine.is_expired(START + timedelta(hours=1))
        assert isinstance(engine.state, InProgress)
        engine.finish()
        assert engine.deadline() is None


class TestPreviewAndLogging:
    """Test code preview and session logging."""

    def test_preview_runs_visible_tests_only(self):
        sandbox = Mock(spec=Sandbox)
        sandbox.execute.return_value = Success("42\n", 1)
        question = FreeformCode(id="code", prompt="Print 42", language="python",
                                visible_tests=(TestCase("v", "", "42"),),
                                hidden_tests=(TestCase("h", "", "42"),))
        quiz = Quiz(id="code-quiz", title="Code", questions=(question,))
        engine = QuizEngine(quiz, grader=Grader(runner=TestRunner(sandbox=sandbox)), clock=FakeClock())
        engine.start()

        results = engine.preview("print(42)")
        assert results.total_count == 1
        assert engine.answered_count() == 0

    def test_preview_on_choice_question(self):
        engine = make_engine(keyword_quiz())
        engine.start()
        with pytest.raises(InvalidState):
            engine.preview("print(1)")

    def test_session_logger_receives_events(self):
        session_logger = Mock()
        engine = make_engine(keyword_quiz(), session_logger=session_logger)
        engine.start()
        engine.submit_answer(Choice(0))
        engine.finish()

        events = [c[0][0] for c in session_logger.call_args_list]
        assert events == ["ATTEMPT_START", "ANSWER", "ATTEMPT_FINISH"]
        assert "correct" in session_logger.call_args_list[1][0][1]
