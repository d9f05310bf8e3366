"""
Test runner module for checking submissions against test suites.

Provides the TestRunner class which drives the sandbox once per test case,
applies a checker function to each output and aggregates the results into a
scored TestResults.
"""

import logging
import re
import time
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .checkers import get_checker
from .models import (
    ExecutionError,
    ExecutionResult,
    Lab,
    MemoryExceeded,
    RuntimeFault,
    Submission,
    Success,
    TestCase,
    TestResult,
    TestResults,
    Timeout,
)
from .sandbox import Sandbox

logger = logging.getLogger(__name__)


def error_text(result: ExecutionResult) -> Optional[str]:
    """Message stored on a failed TestResult for a non-success outcome."""
    if isinstance(result, RuntimeFault):
        if result.line is not None:
            return f"Runtime error at line {result.line}: {result.message}"
        return f"Runtime error: {result.message}"
    if isinstance(result, Timeout):
        return "Execution timed out"
    if isinstance(result, MemoryExceeded):
        return f"Memory limit exceeded ({result.limit_bytes} bytes)"
    if isinstance(result, ExecutionError):
        return result.message
    return None


def outcome_from_error(error: str) -> ExecutionResult:
    """Rebuild the execution outcome behind a TestResult.error message."""
    if error == "Execution timed out":
        return Timeout()
    match = re.fullmatch(r"Memory limit exceeded \((\d+) bytes\)", error)
    if match:
        return MemoryExceeded(limit_bytes=int(match.group(1)))
    match = re.fullmatch(r"Runtime error(?: at line (\d+))?: (.*)", error, re.DOTALL)
    if match:
        line = int(match.group(1)) if match.group(1) else None
        return RuntimeFault(match.group(2), line)
    return ExecutionError(error)


class TestRunner:
    """Handles test case execution and output validation."""
    __test__ = False

    def __init__(self, sandbox: Optional[Sandbox] = None, checker: str = "exact_match"):
        """
        Args:
            sandbox: Sandbox used for every run (a default one if omitted)
            checker: Default output comparison policy name
        """
        self.sandbox = sandbox or Sandbox()
        self.default_checker = get_checker(checker)

    # ===== TEST EXECUTION =====

    def run_tests(
        self,
        submission: Submission,
        suite,
        points: float = 0,
        require_all_pass: bool = False,
        checker: Optional[str] = None,
        hidden: Iterable[TestCase] = ()
    ) -> TestResults:
        """
        Run every test case against one submission.

        Args:
            submission: Source text and language
            suite: TestSuite (or sequence of TestCase) shown to the learner
            points: Points allocated to the whole suite
            require_all_pass: Award points only when every test passes
            checker: Output comparison policy; the runner default if None
            hidden: Extra test cases whose inputs and outputs are redacted

        Returns:
            TestResults with one TestResult per test case, in order
        """
        checker_func = get_checker(checker) if checker else self.default_checker
        cases: List[Tuple[TestCase, bool]] = [(case, False) for case in suite]
        cases.extend((case, True) for case in hidden)

        results = [
            self._run_case(submission, case, checker_func, is_hidden)
            for case, is_hidden in cases
        ]

        passed_count = sum(1 for r in results if r.passed)
        total = len(results)
        score = self.calculate_score(results, points, require_all_pass)
        logger.debug("Suite finished: %d/%d passed, score %.2f/%s", passed_count, total, score, points)

        return TestResults(
            results=tuple(results),
            all_passed=passed_count == total,
            passed_count=passed_count,
            total_count=total,
            score=score,
            max_score=float(points),
        )

    def run_lab(self, source: str, lab: Lab) -> TestResults:
        """Run a lab's suite against submitted source using the lab's policy."""
        return self.run_tests(
            Submission(source=source, language=lab.language),
            lab.test_suite,
            points=lab.points,
            require_all_pass=lab.require_all_pass,
            checker=lab.checker,
        )

    def _run_case(
        self,
        submission: Submission,
        case: TestCase,
        checker_func: Callable[[str, str], bool],
        is_hidden: bool
    ) -> TestResult:
        start_time = time.monotonic()
        outcome = self.sandbox.execute(
            submission.source,
            submission.language,
            case.input,
            timeout_ms=case.timeout_ms,
        )
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        if isinstance(outcome, Success):
            passed = checker_func(outcome.output, case.expected_output)
            actual = outcome.output
            error = None
            elapsed_ms = outcome.duration_ms or elapsed_ms
        else:
            passed = False
            actual = outcome.partial_output if isinstance(outcome, Timeout) else ""
            error = error_text(outcome)

        if is_hidden:
            return TestResult(name=case.name, passed=passed, expected="", actual="",
                              duration_ms=elapsed_ms, error=error, hidden=True)
        return TestResult(name=case.name, passed=passed, expected=case.expected_output,
                          actual=actual, duration_ms=elapsed_ms, error=error)

    # ===== SCORING =====

    @staticmethod
    def calculate_score(
        results: Sequence[TestResult],
        max_points: float,
        require_all_pass: bool = False
    ) -> float:
        """
        Points earned for a suite.

        Proportional: ``max_points * (passed / total)`` rounded to 2 places.
        With require_all_pass the lab is all-or-nothing. Empty suites score 0.
        """
        total = len(results)
        passed_count = sum(1 for r in results if r.passed)
        if total <= 0:
            return 0.0
        if require_all_pass:
            return float(max_points) if passed_count == total else 0.0
        return round(max_points * (passed_count / total), 2)

    # ===== UTILITY METHODS =====

    @staticmethod
    def format_test_results(results: TestResults, show_details: bool = False) -> str:
        """
        Format test results for terminal display.

        Args:
            results: Results from run_tests or run_lab
            show_details: If True, show error messages and output comparison for failed tests
        """
        lines = [f"Running {results.total_count} test(s)..."]

        for number, result in enumerate(results.results, start=1):
            elapsed = f" ({result.duration_ms} ms)" if result.duration_ms is not None else ""
            label = "hidden test" if result.hidden else result.name
            if result.passed:
                lines.append(f"  [{number}] PASS {label}{elapsed}")
                continue
            if result.error:
                lines.append(f"  [{number}] FAIL {label}: {result.error.splitlines()[0][:200]}")
            else:
                lines.append(f"  [{number}] FAIL {label}: wrong output")

            if show_details and not result.hidden and result.error is None:
                lines.append(f"      expected: {result.expected[:100]!r}")
                lines.append(f"      got:      {result.actual[:100]!r}")

        lines.append("")
        lines.append(results.summary())
        if results.max_score:
            lines.append(f"Score: {results.score:g}/{results.max_score:g}")
        return "\n".join(lines)

