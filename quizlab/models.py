"""
Data models for quizzes, labs and their results.

Provides immutable structures for Question, Answer, Quiz, Lab, TestCase and the
result types produced by grading and execution. Every variant set (questions,
answers, execution results) is closed: the tuples at the bottom of this module
list all members, and each member carries a ``kind`` tag used for encoding.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Tuple

from .checkers import CHECKERS
from .errors import InvalidDefinition
from .ids import LabId, QuestionId, QuizId


DEFAULT_TEST_TIMEOUT_MS = 5000


class Language(str, Enum):
    """Programming languages a submission can be written in."""
    PYTHON = "python"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    RUST = "rust"
    SQL = "sql"
    MARKDOWN = "markdown"

    @property
    def display_name(self) -> str:
        return _LANGUAGE_NAMES[self]

    @property
    def extension(self) -> str:
        return _LANGUAGE_EXTENSIONS[self]

    @staticmethod
    def coerce(value) -> 'Language':
        """Accept a Language, its value, its display name or its file extension."""
        if isinstance(value, Language):
            return value
        text = str(value).strip().lower()
        for language in Language:
            if text in (language.value, language.extension, language.display_name.lower()):
                return language
        raise InvalidDefinition(f"Unknown language: {value!r}")


_LANGUAGE_NAMES = {
    Language.PYTHON: "Python",
    Language.JAVASCRIPT: "JavaScript",
    Language.TYPESCRIPT: "TypeScript",
    Language.RUST: "Rust",
    Language.SQL: "SQL",
    Language.MARKDOWN: "Markdown",
}

_LANGUAGE_EXTENSIONS = {
    Language.PYTHON: "py",
    Language.JAVASCRIPT: "js",
    Language.TYPESCRIPT: "ts",
    Language.RUST: "rs",
    Language.SQL: "sql",
    Language.MARKDOWN: "md",
}


# ===== HELPERS =====

def _set(obj, **values):
    """Assign normalized values on a frozen dataclass during __post_init__."""
    for name, value in values.items():
        object.__setattr__(obj, name, value)


def _plain(value: Any) -> Any:
    """Convert a model value into JSON-compatible builtins."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, frozenset):
        return [_plain(v) for v in sorted(value)]
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    return value


def _to_dict(obj, kind: Optional[str] = None) -> Dict[str, Any]:
    data = {"kind": kind} if kind else {}
    for f in fields(obj):
        data[f.name] = _plain(getattr(obj, f.name))
    return data


def _check_points(question) -> None:
    if not isinstance(question.points, int) or isinstance(question.points, bool) or question.points <= 0:
        raise InvalidDefinition(f"Question '{question.id}': points must be a positive integer")


def _check_indices(question_id, indices, size: int, label: str) -> None:
    for index in indices:
        if not isinstance(index, int) or not 0 <= index < size:
            raise InvalidDefinition(
                f"Question '{question_id}': {label} index {index!r} out of range (0..{size - 1})"
            )


def _test_cases(values) -> Tuple['TestCase', ...]:
    return tuple(v if isinstance(v, TestCase) else TestCase.from_dict(v) for v in values)


# ===== TEST CASES =====

@dataclass(frozen=True)
class TestCase:
    """A single stdin/stdout test case."""
    __test__ = False  # keep pytest from collecting this class

    name: str
    input: str = ""
    expected_output: str = ""
    timeout_ms: int = DEFAULT_TEST_TIMEOUT_MS

    def __post_init__(self):
        if not isinstance(self.timeout_ms, int) or self.timeout_ms <= 0:
            raise InvalidDefinition(f"Test '{self.name}': timeout_ms must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'TestCase':
        """Create a TestCase object from a dictionary."""
        return TestCase(
            name=data['name'],
            input=data.get('input') or "",
            expected_output=data.get('expected_output') or "",
            timeout_ms=data.get('timeout_ms', DEFAULT_TEST_TIMEOUT_MS),
        )


@dataclass(frozen=True)
class TestSuite:
    """Ordered collection of test cases for a lab."""
    __test__ = False

    tests: Tuple[TestCase, ...] = ()

    def __post_init__(self):
        _set(self, tests=_test_cases(self.tests))

    def __iter__(self):
        return iter(self.tests)

    def __len__(self) -> int:
        return len(self.tests)

    def test_count(self) -> int:
        return len(self.tests)

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'TestSuite':
        return TestSuite(tests=_test_cases(data.get('tests', ())))


# ===== QUESTIONS =====

class Question:
    """Base of the closed set of question variants."""
    kind: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self, self.kind)

    @staticmethod
    def from_dict(data: dict) -> 'Question':
        """Create the matching Question variant from a dictionary."""
        kind = data.get('kind')
        cls = _QUESTION_KINDS.get(kind)
        if cls is None:
            raise InvalidDefinition(f"Unknown question kind: {kind!r}")
        kwargs = {k: v for k, v in data.items() if k != 'kind'}
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise InvalidDefinition(f"Malformed {kind} question: {e}") from e


@dataclass(frozen=True)
class MultipleChoice(Question):
    """Single correct option out of several."""
    id: QuestionId
    prompt: str
    options: Tuple[str, ...]
    correct_index: int
    explanation: str = ""
    points: int = 1

    kind: ClassVar[str] = "multiple_choice"

    def __post_init__(self):
        _set(self, id=QuestionId(self.id), options=tuple(self.options))
        _check_points(self)
        _check_indices(self.id, [self.correct_index], len(self.options), "correct")


@dataclass(frozen=True)
class MultipleSelect(Question):
    """Any subset of the options may be correct."""
    id: QuestionId
    prompt: str
    options: Tuple[str, ...]
    correct_indices: FrozenSet[int]
    explanation: str = ""
    points: int = 1

    kind: ClassVar[str] = "multiple_select"

    def __post_init__(self):
        _set(self, id=QuestionId(self.id), options=tuple(self.options),
             correct_indices=frozenset(self.correct_indices))
        _check_points(self)
        _check_indices(self.id, self.correct_indices, len(self.options), "correct")


@dataclass(frozen=True)
class Blank:
    """A gap in a code template with its accepted fillings."""
    id: str
    acceptable_answers: Tuple[str, ...] = ()
    hint: Optional[str] = None

    def __post_init__(self):
        _set(self, acceptable_answers=tuple(self.acceptable_answers))

    def is_acceptable(self, answer: str) -> bool:
        return answer.strip() in (a.strip() for a in self.acceptable_answers)

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'Blank':
        return Blank(
            id=data['id'],
            acceptable_answers=tuple(data.get('acceptable_answers', ())),
            hint=data.get('hint'),
        )


@dataclass(frozen=True)
class CodeCompletion(Question):
    """
    Code template with ``{{blank_id}}`` placeholders.

    Answered either with Blanks (one filling per placeholder) or with the
    completed source as Code; test cases, when present, decide correctness of
    fillings that are not literally in the accepted list.
    """
    id: QuestionId
    prompt: str
    template: str
    blanks: Tuple[Blank, ...]
    test_cases: Tuple[TestCase, ...] = ()
    points: int = 1
    language: Language = Language.PYTHON

    kind: ClassVar[str] = "code_completion"

    def __post_init__(self):
        blanks = tuple(b if isinstance(b, Blank) else Blank.from_dict(b) for b in self.blanks)
        _set(self, id=QuestionId(self.id), blanks=blanks,
             test_cases=_test_cases(self.test_cases),
             language=Language.coerce(self.language))
        _check_points(self)
        for blank in blanks:
            if "{{" + blank.id + "}}" not in self.template:
                raise InvalidDefinition(
                    f"Question '{self.id}': blank '{blank.id}' has no placeholder in the template"
                )

    def fill(self, fills: Dict[str, str]) -> str:
        """Substitute blank fillings into the template."""
        source = self.template
        for blank in self.blanks:
            source = source.replace("{{" + blank.id + "}}", fills.get(blank.id, ""))
        return source


@dataclass(frozen=True)
class Ordering(Question):
    """Items to be arranged into one correct sequence."""
    id: QuestionId
    prompt: str
    items: Tuple[str, ...]
    correct_order: Tuple[int, ...]
    explanation: str = ""
    points: int = 1

    kind: ClassVar[str] = "ordering"

    def __post_init__(self):
        _set(self, id=QuestionId(self.id), items=tuple(self.items),
             correct_order=tuple(self.correct_order))
        _check_points(self)
        if sorted(self.correct_order) != list(range(len(self.items))):
            raise InvalidDefinition(
                f"Question '{self.id}': correct_order must be a permutation of the item indices"
            )


@dataclass(frozen=True)
class Matching(Question):
    """Pair every left item with exactly one right item."""
    id: QuestionId
    prompt: str
    left: Tuple[str, ...]
    right: Tuple[str, ...]
    correct_pairs: FrozenSet[Tuple[int, int]]
    points: int = 1
    explanation: str = ""

    kind: ClassVar[str] = "matching"

    def __post_init__(self):
        pairs = frozenset((int(a), int(b)) for a, b in self.correct_pairs)
        _set(self, id=QuestionId(self.id), left=tuple(self.left), right=tuple(self.right),
             correct_pairs=pairs)
        _check_points(self)
        lefts = sorted(a for a, _ in pairs)
        rights = sorted(b for _, b in pairs)
        if (len(self.left) != len(self.right)
                or lefts != list(range(len(self.left)))
                or rights != list(range(len(self.right)))):
            raise InvalidDefinition(
                f"Question '{self.id}': correct_pairs must be a bijection between left and right"
            )


@dataclass(frozen=True)
class FreeformCode(Question):
    """Write a whole program; graded by visible and hidden tests."""
    id: QuestionId
    prompt: str
    language: Language
    starter_code: str = ""
    visible_tests: Tuple[TestCase, ...] = ()
    hidden_tests: Tuple[TestCase, ...] = ()
    points: int = 1

    kind: ClassVar[str] = "freeform_code"

    def __post_init__(self):
        _set(self, id=QuestionId(self.id), language=Language.coerce(self.language),
             visible_tests=_test_cases(self.visible_tests),
             hidden_tests=_test_cases(self.hidden_tests))
        _check_points(self)


# ===== ANSWERS =====

class Answer:
    """Base of the closed set of answer variants."""
    kind: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self, self.kind)

    @staticmethod
    def from_dict(data: dict) -> 'Answer':
        """Create the matching Answer variant from a dictionary."""
        kind = data.get('kind')
        cls = _ANSWER_KINDS.get(kind)
        if cls is None:
            raise InvalidDefinition(f"Unknown answer kind: {kind!r}")
        kwargs = {k: v for k, v in data.items() if k != 'kind'}
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise InvalidDefinition(f"Malformed {kind} answer: {e}") from e


@dataclass(frozen=True)
class Choice(Answer):
    index: int
    kind: ClassVar[str] = "choice"


@dataclass(frozen=True)
class MultiChoice(Answer):
    """Selected option indices; duplicates collapse."""
    indices: FrozenSet[int]
    kind: ClassVar[str] = "multi_choice"

    def __post_init__(self):
        _set(self, indices=frozenset(self.indices))


@dataclass(frozen=True)
class Order(Answer):
    permutation: Tuple[int, ...]
    kind: ClassVar[str] = "order"

    def __post_init__(self):
        _set(self, permutation=tuple(self.permutation))


@dataclass(frozen=True)
class Pairs(Answer):
    pairs: FrozenSet[Tuple[int, int]]
    kind: ClassVar[str] = "pairs"

    def __post_init__(self):
        _set(self, pairs=frozenset((a, b) for a, b in self.pairs))


@dataclass(frozen=True)
class Code(Answer):
    source: str
    kind: ClassVar[str] = "code"


@dataclass(frozen=True)
class Blanks(Answer):
    """Fillings for a CodeCompletion template, keyed by blank id."""
    fills: Tuple[Tuple[str, str], ...]
    kind: ClassVar[str] = "blanks"

    def __post_init__(self):
        items = self.fills.items() if isinstance(self.fills, dict) else self.fills
        _set(self, fills=tuple(sorted((str(k), str(v)) for k, v in items)))

    def as_dict(self) -> Dict[str, str]:
        return dict(self.fills)


# ===== QUIZ AND LAB =====

@dataclass(frozen=True)
class Quiz:
    """An ordered set of questions with pass/attempt policy."""
    id: QuizId
    title: str
    questions: Tuple[Question, ...] = ()
    passing_score: float = 0.7
    time_limit_secs: Optional[int] = None
    max_attempts: Optional[int] = None
    shuffle: bool = False

    def __post_init__(self):
        questions = tuple(q if isinstance(q, Question) else Question.from_dict(q)
                          for q in self.questions)
        _set(self, id=QuizId(self.id), questions=questions)
        if not 0.0 <= self.passing_score <= 1.0:
            raise InvalidDefinition(f"Quiz '{self.id}': passing_score must be within [0, 1]")
        if self.time_limit_secs is not None and self.time_limit_secs <= 0:
            raise InvalidDefinition(f"Quiz '{self.id}': time_limit_secs must be positive")
        if self.max_attempts is not None and self.max_attempts <= 0:
            raise InvalidDefinition(f"Quiz '{self.id}': max_attempts must be positive")
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise InvalidDefinition(f"Quiz '{self.id}': question ids must be unique")

    def total_points(self) -> int:
        return sum(q.points for q in self.questions)

    def question_count(self) -> int:
        return len(self.questions)

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'Quiz':
        """Create a Quiz object from a dictionary."""
        return Quiz(
            id=data['id'],
            title=data.get('title', ''),
            questions=tuple(Question.from_dict(q) for q in data.get('questions', ())),
            passing_score=float(data.get('passing_score', 0.7)),
            time_limit_secs=data.get('time_limit_secs'),
            max_attempts=data.get('max_attempts'),
            shuffle=bool(data.get('shuffle', False)),
        )


@dataclass(frozen=True)
class Lab:
    """
    Hands-on coding exercise graded by a test suite.

    Attributes:
        points: Points allocated to the whole suite
        require_all_pass: All-or-nothing scoring instead of proportional
        checker: Output comparison policy name (see checkers module)
    """
    id: LabId
    title: str
    language: Language = Language.PYTHON
    test_suite: TestSuite = field(default_factory=TestSuite)
    points: int = 100
    description: str = ""
    require_all_pass: bool = False
    checker: str = "exact_match"
    hints: Tuple[str, ...] = ()

    def __post_init__(self):
        suite = self.test_suite
        if not isinstance(suite, TestSuite):
            suite = TestSuite.from_dict(suite)
        _set(self, id=LabId(self.id), language=Language.coerce(self.language),
             test_suite=suite, hints=tuple(self.hints))
        if not isinstance(self.points, int) or self.points < 0:
            raise InvalidDefinition(f"Lab '{self.id}': points must be a non-negative integer")
        if self.checker not in CHECKERS:
            raise InvalidDefinition(
                f"Lab '{self.id}': unknown checker {self.checker!r}. Choose from: {', '.join(sorted(CHECKERS))}")

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'Lab':
        """Create a Lab object from a dictionary."""
        return Lab(
            id=data['id'],
            title=data.get('title', ''),
            language=data.get('language', Language.PYTHON.value),
            test_suite=TestSuite.from_dict(data.get('test_suite', {})),
            points=data.get('points', 100),
            description=data.get('description', ''),
            require_all_pass=bool(data.get('require_all_pass', False)),
            checker=data.get('checker') or 'exact_match',
            hints=tuple(data.get('hints', ())),
        )


@dataclass(frozen=True)
class Submission:
    """Source text handed to the sandbox for one run."""
    source: str
    language: Language = Language.PYTHON

    def __post_init__(self):
        _set(self, language=Language.coerce(self.language))


# ===== RESULTS =====

@dataclass(frozen=True)
class Feedback:
    """Immediate grading outcome for one submitted answer."""
    correct: bool
    points_earned: int
    explanation: str = ""

    @staticmethod
    def for_correct(explanation: str, points: int) -> 'Feedback':
        return Feedback(correct=True, points_earned=points, explanation=explanation)

    @staticmethod
    def for_incorrect(explanation: str) -> 'Feedback':
        return Feedback(correct=False, points_earned=0, explanation=explanation)

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'Feedback':
        return Feedback(
            correct=bool(data['correct']),
            points_earned=int(data['points_earned']),
            explanation=data.get('explanation', ''),
        )


@dataclass(frozen=True)
class Score:
    """Final result of one quiz attempt."""
    points_earned: int
    points_possible: int
    percentage: float
    correct_count: int
    total_questions: int
    passed: bool

    @staticmethod
    def calculate(
        points_earned: int,
        points_possible: int,
        passing_score: float,
        correct_count: int,
        total_questions: int
    ) -> 'Score':
        """
        Build a Score from raw totals.

        A quiz worth zero points scores 0 and never passes.
        """
        if points_possible > 0:
            percentage = min(max(points_earned / points_possible, 0.0), 1.0)
            passed = percentage >= passing_score
        else:
            percentage = 0.0
            passed = False
        return Score(
            points_earned=points_earned,
            points_possible=points_possible,
            percentage=percentage,
            correct_count=correct_count,
            total_questions=total_questions,
            passed=passed,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'Score':
        return Score(
            points_earned=int(data['points_earned']),
            points_possible=int(data['points_possible']),
            percentage=float(data['percentage']),
            correct_count=int(data['correct_count']),
            total_questions=int(data['total_questions']),
            passed=bool(data['passed']),
        )


@dataclass(frozen=True)
class TestResult:
    """Outcome of one test case in one run."""
    __test__ = False

    name: str
    passed: bool
    expected: str
    actual: str
    duration_ms: Optional[int] = None
    error: Optional[str] = None
    hidden: bool = False

    def is_failed(self) -> bool:
        return not self.passed

    def summary(self) -> str:
        if self.passed:
            return f"PASS {self.name}"
        if self.error:
            return f"FAIL {self.name}: {self.error}"
        if self.hidden:
            return f"FAIL {self.name}: wrong output"
        return f"FAIL {self.name}: expected {self.expected!r}, got {self.actual!r}"

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'TestResult':
        return TestResult(
            name=data['name'],
            passed=bool(data['passed']),
            expected=data.get('expected', ''),
            actual=data.get('actual', ''),
            duration_ms=data.get('duration_ms'),
            error=data.get('error'),
            hidden=bool(data.get('hidden', False)),
        )


@dataclass(frozen=True)
class TestResults:
    """Aggregated outcome of a whole suite for one submission."""
    __test__ = False

    results: Tuple[TestResult, ...]
    all_passed: bool
    passed_count: int
    total_count: int
    score: float = 0.0
    max_score: float = 0.0

    def __post_init__(self):
        _set(self, results=tuple(r if isinstance(r, TestResult) else TestResult.from_dict(r)
                                 for r in self.results))

    def pass_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.passed_count / self.total_count

    def failed_tests(self) -> List[TestResult]:
        return [r for r in self.results if not r.passed]

    def summary(self) -> str:
        return (f"{self.passed_count}/{self.total_count} tests passed "
                f"({int(self.pass_rate() * 100)}%)")

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self)

    @staticmethod
    def from_dict(data: dict) -> 'TestResults':
        return TestResults(
            results=tuple(TestResult.from_dict(r) for r in data.get('results', ())),
            all_passed=bool(data['all_passed']),
            passed_count=int(data['passed_count']),
            total_count=int(data['total_count']),
            score=float(data.get('score', 0.0)),
            max_score=float(data.get('max_score', 0.0)),
        )


# ===== EXECUTION OUTCOMES =====

class ExecutionResult:
    """Base of the closed set of sandbox outcomes. Exactly one applies per run."""
    kind: ClassVar[str] = ""

    def is_success(self) -> bool:
        return False

    def error_message(self) -> Optional[str]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return _to_dict(self, self.kind)

    @staticmethod
    def from_dict(data: dict) -> 'ExecutionResult':
        kind = data.get('kind')
        cls = _RESULT_KINDS.get(kind)
        if cls is None:
            raise InvalidDefinition(f"Unknown execution result kind: {kind!r}")
        return cls(**{k: v for k, v in data.items() if k != 'kind'})


@dataclass(frozen=True)
class Success(ExecutionResult):
    output: str
    duration_ms: int = 0
    kind: ClassVar[str] = "success"

    def is_success(self) -> bool:
        return True


@dataclass(frozen=True)
class RuntimeFault(ExecutionResult):
    """The submitted program failed to compile or raised while running."""
    message: str
    line: Optional[int] = None
    kind: ClassVar[str] = "runtime_error"

    def error_message(self) -> Optional[str]:
        return self.message


@dataclass(frozen=True)
class Timeout(ExecutionResult):
    partial_output: str = ""
    kind: ClassVar[str] = "timeout"


@dataclass(frozen=True)
class MemoryExceeded(ExecutionResult):
    limit_bytes: int = 0
    kind: ClassVar[str] = "memory_exceeded"


@dataclass(frozen=True)
class ExecutionError(ExecutionResult):
    """The sandbox itself could not run the submission."""
    message: str
    kind: ClassVar[str] = "error"

    def error_message(self) -> Optional[str]:
        return self.message


QUESTION_TYPES = (MultipleChoice, MultipleSelect, CodeCompletion, Ordering, Matching, FreeformCode)
ANSWER_TYPES = (Choice, MultiChoice, Order, Pairs, Code, Blanks)
EXECUTION_RESULT_TYPES = (Success, RuntimeFault, Timeout, MemoryExceeded, ExecutionError)

_QUESTION_KINDS = {cls.kind: cls for cls in QUESTION_TYPES}
_ANSWER_KINDS = {cls.kind: cls for cls in ANSWER_TYPES}
_RESULT_KINDS = {cls.kind: cls for cls in EXECUTION_RESULT_TYPES}
