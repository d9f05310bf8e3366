"""
Quiz state machine.

QuizEngine owns exactly one attempt at a time and moves through

    NotStarted -> InProgress -> [Reviewing ->] Completed -> InProgress ...

Every submitted answer is graded before submit_answer returns. The engine
never reads the clock to enforce a time limit; callers compare deadline()
with their own notion of now and call finish() themselves.

One engine serves one learner session; it does no locking.
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from .config import EngineConfig
from .errors import (
    AlreadyInProgress,
    InvalidState,
    MaxAttemptsExceeded,
    NoQuestions,
    OutOfQuestions,
)
from .grader import Grader
from .models import (
    Answer,
    CodeCompletion,
    Feedback,
    FreeformCode,
    Question,
    Quiz,
    Score,
    TestResults,
)
from .runner import TestRunner
from .sandbox import Sandbox

logger = logging.getLogger(__name__)


# ===== STATES =====

@dataclass
class NotStarted:
    pass


@dataclass
class InProgress:
    current_index: int
    answers: List[Optional[Answer]]
    started_at: datetime
    feedback: List[Optional[Feedback]] = field(default_factory=list)


@dataclass
class Reviewing:
    answers: Tuple[Answer, ...]
    feedback: Tuple[Feedback, ...]


@dataclass
class Completed:
    score: Score
    duration_secs: float
    attempt_number: int


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuizEngine:
    """Runs attempts of one quiz with immediate per-answer feedback."""

    def __init__(
        self,
        quiz: Quiz,
        grader: Optional[Grader] = None,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        session_logger: Optional[Callable[[str, str], None]] = None
    ):
        """
        Args:
            quiz: Quiz to run
            grader: Grader to use; built from config when omitted
            config: Engine configuration (defaults if omitted)
            clock: Returns the current time; only used for timestamps
            session_logger: Optional callback receiving (event, details)
        """
        self.quiz = quiz
        self.config = config or EngineConfig.default()
        self.grader = grader or Grader(
            TestRunner(Sandbox(self.config.sandbox), checker=self.config.checker)
        )
        self._clock = clock or _utc_now
        self._session_logger = session_logger

        self.state = NotStarted()
        self.attempt_count = 0
        self._order: List[int] = []
        self._started_at: Optional[datetime] = None

    # ===== HELPER FUNCTIONS =====

    def _log(self, event: str, details: str = "", **context):
        logger.info("%s %s", event, details,
                    extra={"event": event, "quiz_id": str(self.quiz.id),
                           "attempt": self.attempt_count, **context})
        if self._session_logger:
            self._session_logger(event, details)

    def _require_in_progress(self, operation: str) -> InProgress:
        if not isinstance(self.state, InProgress):
            raise InvalidState(f"Cannot {operation} while {type(self.state).__name__}")
        return self.state

    def _question_at(self, position: int) -> Question:
        return self.quiz.questions[self._order[position]]

    def _presentation_order(self) -> List[int]:
        order = list(range(self.quiz.question_count()))
        if self.quiz.shuffle:
            seed = self.config.shuffle_seed or 0
            random.Random(f"{seed}:{self.quiz.id}:{self.attempt_count}").shuffle(order)
        return order

    # ===== ATTEMPT LIFECYCLE =====

    def can_attempt(self) -> bool:
        if self.quiz.max_attempts is None:
            return True
        return self.attempt_count < self.quiz.max_attempts

    def start(self) -> Question:
        """
        Begin a new attempt and return its first question.

        Raises:
            AlreadyInProgress: An attempt is running or being reviewed
            MaxAttemptsExceeded: The quiz's attempt cap is reached
            NoQuestions: The quiz is empty
        """
        if isinstance(self.state, (InProgress, Reviewing)):
            raise AlreadyInProgress()
        if not self.can_attempt():
            raise MaxAttemptsExceeded(
                f"Maximum attempts reached ({self.quiz.max_attempts})"
            )
        if self.quiz.question_count() == 0:
            raise NoQuestions()

        self.attempt_count += 1
        self._order = self._presentation_order()
        count = len(self._order)
        self._started_at = self._clock()
        self.state = InProgress(
            current_index=0,
            answers=[None] * count,
            started_at=self._started_at,
            feedback=[None] * count,
        )
        self._log("ATTEMPT_START", f"Attempt {self.attempt_count}, {count} question(s)")
        return self._question_at(0)

    def submit_answer(self, answer: Answer) -> Feedback:
        """
        Grade an answer to the current question and record it.

        A later submission for the same question replaces the earlier one.
        The current question does not change.
        """
        state = self._require_in_progress("submit an answer")
        question = self._question_at(state.current_index)

        feedback = self.grader.grade(question, answer)
        state.answers[state.current_index] = answer
        state.feedback[state.current_index] = feedback

        self._log(
            "ANSWER",
            f"Question {question.id}: {'correct' if feedback.correct else 'incorrect'}",
            question_id=str(question.id), correct=feedback.correct,
            points=feedback.points_earned,
        )
        return feedback

    def review(self) -> Reviewing:
        """Enter review once every question has an answer (if enabled)."""
        state = self._require_in_progress("review")
        if not self.config.review_before_finish:
            raise InvalidState("Review is not enabled for this engine")
        if any(a is None for a in state.answers):
            raise InvalidState("Every question must be answered before review")

        self.state = Reviewing(answers=tuple(state.answers), feedback=tuple(state.feedback))
        self._log("REVIEW", f"{len(state.answers)} answer(s) under review")
        return self.state

    def finish(self) -> Score:
        """
        Complete the attempt and return its score.

        Unanswered questions count as incorrect. Calling finish() again after
        completion returns the same score.
        """
        if isinstance(self.state, Completed):
            return self.state.score
        if isinstance(self.state, InProgress):
            answers, feedback = self.state.answers, self.state.feedback
        elif isinstance(self.state, Reviewing):
            answers, feedback = self.state.answers, self.state.feedback
        else:
            raise InvalidState("Cannot finish a quiz that has not started")

        by_id = {}
        graded = {}
        for position, answer in enumerate(answers):
            if answer is None:
                continue
            question_id = self._question_at(position).id
            by_id[question_id] = answer
            if feedback[position] is not None:
                graded[question_id] = feedback[position]

        score = self.grader.grade_quiz(self.quiz, by_id, graded=graded)
        duration = (self._clock() - self._started_at).total_seconds()
        self.state = Completed(score=score, duration_secs=duration,
                               attempt_number=self.attempt_count)
        self._log(
            "ATTEMPT_FINISH",
            f"Score {score.points_earned}/{score.points_possible}, "
            f"{'passed' if score.passed else 'failed'}",
            points=score.points_earned,
        )
        return score

    # ===== NAVIGATION =====

    def current_question(self) -> Question:
        state = self._require_in_progress("show a question")
        return self._question_at(state.current_index)

    def current_index(self) -> int:
        return self._require_in_progress("show a question").current_index

    def next_question(self) -> Question:
        state = self._require_in_progress("move to the next question")
        if state.current_index + 1 >= len(self._order):
            raise OutOfQuestions("No more questions; call finish() instead")
        state.current_index += 1
        return self._question_at(state.current_index)

    def previous_question(self) -> Question:
        state = self._require_in_progress("move to the previous question")
        if state.current_index == 0:
            raise OutOfQuestions("Already at the first question")
        state.current_index -= 1
        return self._question_at(state.current_index)

    def go_to(self, index: int) -> Question:
        state = self._require_in_progress("move between questions")
        if not 0 <= index < len(self._order):
            raise OutOfQuestions(f"Question index {index} out of range (0..{len(self._order) - 1})")
        state.current_index = index
        return self._question_at(index)

    def questions(self) -> List[Question]:
        """Questions of the current attempt in presentation order."""
        return [self._question_at(p) for p in range(len(self._order))]

    # ===== PROGRESS =====

    def answered_count(self) -> int:
        if isinstance(self.state, InProgress):
            return sum(1 for a in self.state.answers if a is not None)
        if isinstance(self.state, Reviewing):
            return len(self.state.answers)
        return 0

    def progress(self) -> float:
        """Fraction of questions answered (0.0 - 1.0)."""
        if isinstance(self.state, NotStarted):
            return 0.0
        if isinstance(self.state, InProgress):
            return self.answered_count() / len(self._order)
        return 1.0

    def feedback_for(self, index: int) -> Optional[Feedback]:
        """Feedback recorded for the question at a presentation position, if any."""
        state = self._require_in_progress("show feedback")
        return state.feedback[index]

    # ===== CODE PREVIEW =====

    def preview(self, code: str) -> TestResults:
        """Run the current code question's visible tests; nothing is recorded."""
        question = self.current_question()
        if not isinstance(question, (FreeformCode, CodeCompletion)):
            raise InvalidState(f"A {question.kind} question has no tests to preview")
        return self.grader.preview(question, code)

    # ===== TIME LIMIT =====

    def deadline(self) -> Optional[datetime]:
        """When the running attempt's time limit elapses (None without a limit)."""
        if self.quiz.time_limit_secs is None or self._started_at is None:
            return None
        if not isinstance(self.state, (InProgress, Reviewing)):
            return None
        return self._started_at + timedelta(seconds=self.quiz.time_limit_secs)

    def is_expired(self, now: datetime) -> bool:
        deadline = self.deadline()
        return deadline is not None and now >= deadline

    def remaining(self, now: datetime) -> Optional[timedelta]:
        deadline = self.deadline()
        if deadline is None:
            return None
        return max(deadline - now, timedelta(0))
