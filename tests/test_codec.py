"""
Tests for codec module.

Tests cover:
- Versioned envelopes for every encodable type
- Rejection of foreign, newer and malformed documents
- Key and password sealing
- Loading documents from disk
"""

import json
import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from quizlab import codec
from quizlab.errors import CodecError
from quizlab.models import (
    Blank,
    Blanks,
    CodeCompletion,
    FreeformCode,
    Lab,
    Matching,
    MultipleChoice,
    MultipleSelect,
    Ordering,
    Quiz,
    RuntimeFault,
    Score,
    TestCase,
    TestResult,
    TestResults,
    TestSuite,
)


@pytest.fixture
def quiz():
    return Quiz(
        id="mixed",
        title="Every question kind",
        passing_score=0.6,
        time_limit_secs=600,
        max_attempts=3,
        shuffle=True,
        questions=(
            MultipleChoice(id="mc", prompt="Pick", options=("a", "b"), correct_index=1),
            MultipleSelect(id="ms", prompt="Pick some", options=("a", "b", "c"), correct_indices={0, 2}),
            Ordering(id="ord", prompt="Sort", items=("x", "y"), correct_order=(1, 0)),
            Matching(id="match", prompt="Match", left=("1", "2"), right=("one", "two"),
                     correct_pairs={(0, 0), (1, 1)}),
            CodeCompletion(id="cc", prompt="Fill", template="print({{v}})",
                           blanks=(Blank("v", ("1",), hint="a number"),),
                           test_cases=(TestCase("t", "", "1"),)),
            FreeformCode(id="ff", prompt="Write", language="rust",
                         visible_tests=(TestCase("v", "1", "2", timeout_ms=1000),),
                         hidden_tests=(TestCase("h", "2", "4"),), points=5),
        ),
    )


class TestEnvelope:
    """Test plain encoding."""

    def test_quiz_round_trip(self, quiz):
        text = codec.dumps(quiz)
        envelope = json.loads(text)

        assert envelope["format"] == "quizlab"
        assert envelope["version"] == codec.FORMAT_VERSION
        assert envelope["type"] == "quiz"
        assert codec.loads(text, expected="quiz") == quiz

    def test_lab_round_trip(self):
        lab = Lab(id="lab1", title="Lab", language="javascript", points=50, require_all_pass=True,
                  checker="ignore_case", test_suite=TestSuite((TestCase("t", "in", "out"),)))
        assert codec.loads(codec.dumps(lab)) == lab

    def test_result_values_round_trip(self):
        results = TestResults(
            results=(TestResult("a", True, "1", "1", duration_ms=5),
                     TestResult("b", False, "", "", error="Execution timed out", hidden=True)),
            all_passed=False, passed_count=1, total_count=2, score=5.0, max_score=10.0,
        )
        score = Score.calculate(7, 10, 0.7, 7, 10)
        fault = RuntimeFault("TypeError: bad operand", 3)

        for value in (results, score, fault, Blanks({"v": "1"})):
            assert codec.loads(codec.dumps(value)) == value

    def test_type_names(self, quiz):
        assert codec.type_name(quiz.questions[0]) == "question"
        assert codec.type_name(Blanks({})) == "answer"
        assert codec.type_name(RuntimeFault("boom")) == "execution_result"

    def test_unencodable_value(self):
        with pytest.raises(CodecError):
            codec.dumps(object())

    def test_expected_type_mismatch(self, quiz):
        with pytest.raises(CodecError, match="Expected a lab"):
            codec.loads(codec.dumps(quiz), expected="lab")

    def test_foreign_document(self):
        with pytest.raises(CodecError):
            codec.loads('{"id": "quiz"}')

    def test_newer_version(self, quiz):
        envelope = codec.to_envelope(quiz)
        envelope["version"] = codec.FORMAT_VERSION + 1
        with pytest.raises(CodecError, match="newer"):
            codec.from_envelope(envelope)

    def test_unknown_type(self):
        with pytest.raises(CodecError, match="Unknown document type"):
            codec.from_envelope({"format": "quizlab", "version": 1, "type": "essay", "data": {}})

    def test_malformed_data(self):
        envelope = {"format": "quizlab", "version": 1, "type": "quiz",
                    "data": {"id": "q", "questions": [{"kind": "multiple_choice", "id": "x"}]}}
        with pytest.raises(CodecError, match="Malformed quiz"):
            codec.from_envelope(envelope)

    def test_invalid_json(self):
        with pytest.raises(CodecError, match="Invalid JSON"):
            codec.loads("{not json")


class TestSealing:
    """Test encrypted content."""

    def test_key_round_trip(self, quiz):
        key = codec.generate_key()
        blob = codec.seal(quiz, key=key)

        assert b"Every question kind" not in blob
        assert not codec.is_password_sealed(blob)
        assert codec.unseal(blob, key=key, expected="quiz") == quiz

    def test_key_as_text(self, quiz):
        key = codec.generate_key()
        blob = codec.seal(quiz, key=key.decode() + "\n")
        assert codec.unseal(blob, key=key.decode()) == quiz

    def test_wrong_key(self, quiz):
        blob = codec.seal(quiz, key=codec.generate_key())
        with pytest.raises(CodecError, match="Wrong key"):
            codec.unseal(blob, key=codec.generate_key())

    def test_invalid_key(self, quiz):
        with pytest.raises(CodecError, match="Invalid key"):
            codec.seal(quiz, key=b"too-short")

    def test_password_round_trip_and_wrong_password(self, quiz):
        blob = codec.seal(quiz, password="correct horse")
        assert codec.is_password_sealed(blob)
        assert codec.unseal(blob, password="correct horse") == quiz

        with pytest.raises(CodecError):
            codec.unseal(blob, password="battery staple")

    def test_exactly_one_secret(self, quiz):
        with pytest.raises(CodecError):
            codec.seal(quiz)
        with pytest.raises(CodecError):
            codec.seal(quiz, key=codec.generate_key(), password="secret")

    def test_key_sealed_needs_key(self, quiz):
        blob = codec.seal(quiz, key=codec.generate_key())
        with pytest.raises(CodecError, match="key is required"):
            codec.unseal(blob, password="secret")


class TestLoadFile:
    """Test loading documents from disk."""

    def test_plain_json_file(self, tmp_path, quiz):
        path = tmp_path / "quiz.json"
        path.write_text(codec.dumps(quiz, indent=2), encoding="utf-8")
        assert codec.load_file(path, expected="quiz") == quiz

    def test_sealed_file(self, tmp_path, quiz):
        key = codec.generate_key()
        path = tmp_path / "quiz.sealed"
        path.write_bytes(codec.seal(quiz, key=key))
        assert codec.load_file(path, key=key) == quiz
