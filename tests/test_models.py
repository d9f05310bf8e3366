"""
Tests for models module.

Covers the invariants enforced on construction and the small behaviours of
the result types:
- Question and quiz validation
- Answer normalization
- Score calculation edge cases
- Dictionary forms of the closed variant sets
"""

import pytest
from pathlib import Path

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from quizlab.errors import InvalidDefinition
from quizlab.ids import QuestionId, QuizId
from quizlab.models import (
    ANSWER_TYPES,
    EXECUTION_RESULT_TYPES,
    QUESTION_TYPES,
    Answer,
    Blank,
    Blanks,
    CodeCompletion,
    ExecutionResult,
    FreeformCode,
    Language,
    Lab,
    Matching,
    MultiChoice,
    MultipleChoice,
    MultipleSelect,
    Ordering,
    Question,
    Quiz,
    RuntimeFault,
    Score,
    Success,
    TestCase,
    TestResult,
    TestResults,
)


def make_choice(question_id="q1", points=1):
    return MultipleChoice(id=question_id, prompt="Pick", options=("a", "b", "c"),
                          correct_index=0, points=points)


class TestIdentifiers:
    """Test identifier types."""

    def test_identifier_is_plain_string(self):
        assert QuestionId("q1") == "q1"
        assert isinstance(QuizId("quiz"), str)

    def test_empty_identifier_rejected(self):
        with pytest.raises(ValueError):
            QuestionId("")

    def test_repr_names_type(self):
        assert repr(QuizId("intro")) == "QuizId('intro')"


class TestLanguage:
    """Test language coercion."""

    def test_coerce_accepts_value_extension_and_display_name(self):
        assert Language.coerce("python") is Language.PYTHON
        assert Language.coerce("rs") is Language.RUST
        assert Language.coerce("JavaScript") is Language.JAVASCRIPT

    def test_coerce_unknown_language(self):
        with pytest.raises(InvalidDefinition):
            Language.coerce("cobol")


class TestQuestionValidation:
    """Test invariants checked when questions are built."""

    def test_correct_index_out_of_range(self):
        with pytest.raises(InvalidDefinition):
            MultipleChoice(id="q1", prompt="?", options=("a", "b"), correct_index=2)

    def test_points_must_be_positive(self):
        with pytest.raises(InvalidDefinition):
            make_choice(points=0)

    def test_multiple_select_indices_in_range(self):
        with pytest.raises(InvalidDefinition):
            MultipleSelect(id="q1", prompt="?", options=("a", "b"), correct_indices={0, 5})

    def test_ordering_requires_permutation(self):
        with pytest.raises(InvalidDefinition):
            Ordering(id="q1", prompt="?", items=("a", "b", "c"), correct_order=(0, 0, 1))

    def test_matching_requires_bijection(self):
        with pytest.raises(InvalidDefinition):
            Matching(id="q1", prompt="?", left=("a", "b"), right=("x", "y"),
                     correct_pairs={(0, 0), (1, 0)})

    def test_matching_accepts_bijection(self):
        question = Matching(id="q1", prompt="?", left=("a", "b"), right=("x", "y"),
                            correct_pairs=[(0, 1), (1, 0)])
        assert question.correct_pairs == frozenset({(0, 1), (1, 0)})

    def test_code_completion_blank_needs_placeholder(self):
        with pytest.raises(InvalidDefinition):
            CodeCompletion(id="q1", prompt="?", template="print(1)",
                           blanks=(Blank(id="x", acceptable_answers=("1",)),))

    def test_code_completion_fill(self):
        question = CodeCompletion(id="q1", prompt="?", template="print({{a}} + {{b}})",
                                  blanks=(Blank("a", ("1",)), Blank("b", ("2",))))
        assert question.fill({"a": "1", "b": "41"}) == "print(1 + 41)"

    def test_freeform_coerces_language_and_tests(self):
        question = FreeformCode(id="q1", prompt="?", language="py",
                                visible_tests=[{"name": "t1", "input": "", "expected_output": "x"}])
        assert question.language is Language.PYTHON
        assert isinstance(question.visible_tests[0], TestCase)

    def test_test_case_timeout_must_be_positive(self):
        with pytest.raises(InvalidDefinition):
            TestCase(name="t", timeout_ms=0)

    def test_from_dict_unknown_kind(self):
        with pytest.raises(InvalidDefinition):
            Question.from_dict({"kind": "essay", "id": "q1"})

    def test_from_dict_missing_field(self):
        with pytest.raises(InvalidDefinition):
            Question.from_dict({"kind": "multiple_choice", "id": "q1", "prompt": "?"})


class TestQuizValidation:
    """Test Quiz invariants."""

    def test_passing_score_range(self):
        with pytest.raises(InvalidDefinition):
            Quiz(id="quiz", title="T", questions=(make_choice(),), passing_score=1.5)

    def test_question_ids_unique(self):
        with pytest.raises(InvalidDefinition):
            Quiz(id="quiz", title="T", questions=(make_choice("q1"), make_choice("q1")))

    def test_max_attempts_positive(self):
        with pytest.raises(InvalidDefinition):
            Quiz(id="quiz", title="T", questions=(make_choice(),), max_attempts=0)

    def test_total_points(self):
        quiz = Quiz(id="quiz", title="T",
                    questions=(make_choice("q1", 3), make_choice("q2", 7)))
        assert quiz.total_points() == 10
        assert quiz.question_count() == 2


class TestLabValidation:
    """Test Lab invariants."""

    def test_negative_points_rejected(self):
        with pytest.raises(InvalidDefinition):
            Lab(id="lab", title="T", points=-1)

    def test_known_checker_accepted(self):
        lab = Lab(id="lab", title="T", checker="float_isclose")
        assert lab.checker == "float_isclose"

    def test_unknown_checker_rejected(self):
        with pytest.raises(InvalidDefinition) as exc_info:
            Lab(id="lab", title="T", checker="nope")
        assert "nope" in str(exc_info.value)
        assert "exact_match" in str(exc_info.value)

    def test_from_dict_validates_checker(self):
        with pytest.raises(InvalidDefinition):
            Lab.from_dict({"id": "lab", "title": "T", "checker": "nope"})
        assert Lab.from_dict({"id": "lab", "title": "T", "checker": None}).checker == "exact_match"


class TestAnswers:
    """Test answer normalization."""

    def test_multi_choice_duplicates_collapse(self):
        assert MultiChoice([1, 1, 2]).indices == frozenset({1, 2})

    def test_blanks_accept_dict_and_sort(self):
        answer = Blanks({"b": "2", "a": "1"})
        assert answer.fills == (("a", "1"), ("b", "2"))
        assert answer.as_dict() == {"a": "1", "b": "2"}

    def test_blank_acceptance_ignores_surrounding_whitespace(self):
        assert Blank("x", ("len",)).is_acceptable("  len ")
        assert not Blank("x", ("len",)).is_acceptable("size")

    def test_answer_from_dict_unknown_kind(self):
        with pytest.raises(InvalidDefinition):
            Answer.from_dict({"kind": "essay"})


class TestScore:
    """Test Score.calculate."""

    def test_zero_possible_points(self):
        score = Score.calculate(0, 0, 0.0, 0, 0)
        assert score.percentage == 0.0
        assert score.passed is False

    def test_passed_at_threshold(self):
        score = Score.calculate(7, 10, 0.7, 7, 10)
        assert score.percentage == pytest.approx(0.7)
        assert score.passed is True

    def test_percentage_clamped(self):
        score = Score.calculate(12, 10, 0.5, 1, 1)
        assert score.percentage == 1.0


class TestResultsTypes:
    """Test TestResult and TestResults helpers."""

    def test_summary_and_pass_rate(self):
        results = TestResults(
            results=(TestResult("a", True, "1", "1"), TestResult("b", True, "2", "2"),
                     TestResult("c", False, "3", "4")),
            all_passed=False, passed_count=2, total_count=3,
        )
        assert results.summary() == "2/3 tests passed (66%)"
        assert [r.name for r in results.failed_tests()] == ["c"]

    def test_empty_pass_rate(self):
        results = TestResults(results=(), all_passed=True, passed_count=0, total_count=0)
        assert results.pass_rate() == 0.0

    def test_hidden_failure_summary_redacted(self):
        result = TestResult("secret", False, "", "", hidden=True)
        assert result.summary() == "FAIL secret: wrong output"

    def test_failure_summary_with_error(self):
        result = TestResult("t", False, "1", "", error="Execution timed out")
        assert result.summary() == "FAIL t: Execution timed out"


class TestClosedVariants:
    """Test the variant registries."""

    def test_kinds_unique(self):
        for types in (QUESTION_TYPES, ANSWER_TYPES, EXECUTION_RESULT_TYPES):
            kinds = [cls.kind for cls in types]
            assert len(set(kinds)) == len(kinds)
            assert all(kinds)

    def test_execution_result_dict_form(self):
        fault = RuntimeFault("ZeroDivisionError: division by zero", 3)
        assert fault.to_dict() == {"kind": "runtime_error",
                                   "message": "ZeroDivisionError: division by zero", "line": 3}
        assert ExecutionResult.from_dict(fault.to_dict()) == fault

    def test_only_success_is_success(self):
        assert Success("out").is_success()
        assert not RuntimeFault("x").is_success()
        assert RuntimeFault("boom").error_message() == "boom"
