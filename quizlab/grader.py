"""
Grader module for scoring answers against questions.

Provides the Grader class. Grading is a pure function of (question, answer)
except for code answers, which are run through the TestRunner and sandbox.
A mismatched answer variant is graded incorrect rather than raised.
"""

import logging
from typing import Dict, Mapping, Optional, Sequence, Union

from .models import (
    Answer,
    Blanks,
    Choice,
    Code,
    CodeCompletion,
    Feedback,
    FreeformCode,
    Matching,
    MultiChoice,
    MultipleChoice,
    MultipleSelect,
    Order,
    Ordering,
    Pairs,
    Question,
    Quiz,
    Score,
    Submission,
    TestResults,
)
from .runner import TestRunner

logger = logging.getLogger(__name__)

AnswerSet = Union[Sequence[Optional[Answer]], Mapping[str, Answer]]


def _code_explanation(results: TestResults) -> str:
    """Summarize a suite run without revealing hidden test data."""
    lines = [results.summary()]
    visible_failures = [r for r in results.failed_tests() if not r.hidden]
    hidden_failures = [r for r in results.failed_tests() if r.hidden]
    if visible_failures:
        lines.append(visible_failures[0].summary())
    if hidden_failures:
        lines.append(f"{len(hidden_failures)} hidden test(s) failed")
    return "\n".join(lines)


class Grader:
    """Grades single answers and whole quizzes."""

    def __init__(self, runner: Optional[TestRunner] = None):
        self._runner = runner
        # question type -> (accepted answer types, handler)
        self._dispatch = {
            MultipleChoice: ((Choice,), self._grade_multiple_choice),
            MultipleSelect: ((MultiChoice,), self._grade_multiple_select),
            CodeCompletion: ((Blanks, Code), self._grade_code_completion),
            Ordering: ((Order,), self._grade_ordering),
            Matching: ((Pairs,), self._grade_matching),
            FreeformCode: ((Code,), self._grade_freeform),
        }

    @property
    def runner(self) -> TestRunner:
        if self._runner is None:
            self._runner = TestRunner()
        return self._runner

    def supported_question_types(self):
        return tuple(self._dispatch)

    # ===== SINGLE ANSWERS =====

    def grade(self, question: Question, answer: Answer) -> Feedback:
        """
        Grade one answer.

        Args:
            question: Any question variant
            answer: Any answer variant; one of the wrong shape is incorrect

        Returns:
            Feedback with all of the question's points when correct, none otherwise
        """
        try:
            accepted, handler = self._dispatch[type(question)]
        except KeyError:
            raise TypeError(f"No grading rule for question type {type(question).__name__}")

        if not isinstance(answer, accepted):
            return Feedback.for_incorrect(
                f"A {type(answer).__name__} answer cannot answer a {question.kind} question"
            )
        return handler(question, answer)

    def _grade_multiple_choice(self, question: MultipleChoice, answer: Choice) -> Feedback:
        if answer.index == question.correct_index:
            return Feedback.for_correct(question.explanation or "Correct!", question.points)
        correct = question.options[question.correct_index]
        return Feedback.for_incorrect(
            question.explanation or f"The correct answer is: {correct}"
        )

    def _grade_multiple_select(self, question: MultipleSelect, answer: MultiChoice) -> Feedback:
        if answer.indices == question.correct_indices:
            return Feedback.for_correct(question.explanation or "Correct!", question.points)
        correct = ", ".join(question.options[i] for i in sorted(question.correct_indices))
        return Feedback.for_incorrect(
            question.explanation or f"The correct answers are: {correct}"
        )

    def _grade_ordering(self, question: Ordering, answer: Order) -> Feedback:
        if answer.permutation == question.correct_order:
            return Feedback.for_correct(question.explanation or "Correct order!", question.points)
        correct = " -> ".join(question.items[i] for i in question.correct_order)
        return Feedback.for_incorrect(question.explanation or f"The correct order is: {correct}")

    def _grade_matching(self, question: Matching, answer: Pairs) -> Feedback:
        if answer.pairs == question.correct_pairs:
            return Feedback.for_correct(question.explanation or "All pairs match!", question.points)
        right_count = len(answer.pairs & question.correct_pairs)
        return Feedback.for_incorrect(
            question.explanation
            or f"{right_count} of {len(question.correct_pairs)} pairs are correct"
        )

    def _grade_code_completion(self, question: CodeCompletion, answer) -> Feedback:
        if isinstance(answer, Blanks):
            fills = answer.as_dict()
            wrong = [b for b in question.blanks if not b.is_acceptable(fills.get(b.id, ""))]
            if not wrong:
                return Feedback.for_correct("All blanks are correct!", question.points)
            if not question.test_cases:
                hints = [f"Blank '{b.id}' is not correct" + (f" (hint: {b.hint})" if b.hint else "")
                         for b in wrong]
                return Feedback.for_incorrect("\n".join(hints))
            source = question.fill(fills)
        else:
            source = answer.source

        return self._grade_with_tests(question, source, question.test_cases, ())

    def _grade_freeform(self, question: FreeformCode, answer: Code) -> Feedback:
        return self._grade_with_tests(question, answer.source, question.visible_tests,
                                      question.hidden_tests)

    def _grade_with_tests(self, question, source: str, visible, hidden) -> Feedback:
        if not visible and not hidden:
            return Feedback.for_incorrect("This question has no tests, so it cannot be graded")

        results = self.runner.run_tests(
            Submission(source=source, language=question.language),
            visible,
            points=question.points,
            hidden=hidden,
        )
        logger.debug("Question %s code answer: %s", question.id, results.summary())
        explanation = _code_explanation(results)
        if results.all_passed:
            return Feedback.for_correct(explanation, question.points)
        return Feedback.for_incorrect(explanation)

    # ===== PREVIEW =====

    def preview(self, question: Question, source: str) -> TestResults:
        """Run only the visible tests of a code question; hidden tests never run here."""
        if isinstance(question, FreeformCode):
            visible = question.visible_tests
        elif isinstance(question, CodeCompletion):
            visible = question.test_cases
        else:
            raise TypeError(f"A {question.kind} question has no tests to preview")
        return self.runner.run_tests(
            Submission(source=source, language=question.language),
            visible,
            points=question.points,
        )

    # ===== WHOLE QUIZ =====

    def grade_quiz(
        self,
        quiz: Quiz,
        answers: AnswerSet,
        graded: Optional[Mapping[str, Feedback]] = None
    ) -> Score:
        """
        Score a whole quiz.

        Args:
            quiz: The quiz definition
            answers: Answers aligned with quiz.questions (None for unanswered),
                or a mapping from question id to answer
            graded: Feedback already produced for some question ids; reused
                instead of grading again

        Returns:
            Score over all questions; unanswered questions earn nothing
        """
        graded = graded or {}
        if isinstance(answers, Mapping):
            by_id: Dict[str, Optional[Answer]] = dict(answers)
        else:
            by_id = {q.id: a for q, a in zip(quiz.questions, answers)}

        points_earned = 0
        correct_count = 0
        for question in quiz.questions:
            answer = by_id.get(question.id)
            if answer is None:
                continue
            feedback = graded.get(question.id)
            if feedback is None:
                feedback = self.grade(question, answer)
            if feedback.correct:
                correct_count += 1
                points_earned += feedback.points_earned

        return Score.calculate(
            points_earned=points_earned,
            points_possible=quiz.total_points(),
            passing_score=quiz.passing_score,
            correct_count=correct_count,
            total_questions=quiz.question_count(),
        )
