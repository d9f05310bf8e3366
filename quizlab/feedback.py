"""
Feedback module for turning failures into explanations a learner can act on.

Provides FeedbackGenerator, which classifies compiler and runtime error text
with the ordered pattern tables in feedback_rules, explains every execution
outcome, and describes how a program's output differs from the expected one.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from . import feedback_rules
from .checkers import normalize_output
from .models import (
    ExecutionError,
    ExecutionResult,
    Language,
    MemoryExceeded,
    RuntimeFault,
    Success,
    Timeout,
)


class ErrorCategory(str, Enum):
    SYNTAX_ERROR = feedback_rules.SYNTAX_ERROR
    TYPE_MISMATCH = feedback_rules.TYPE_MISMATCH
    NOT_FOUND = feedback_rules.NOT_FOUND
    BORROW_CHECKER = feedback_rules.BORROW_CHECKER
    RUNTIME_ERROR = feedback_rules.RUNTIME_ERROR
    TIMEOUT = feedback_rules.TIMEOUT
    MEMORY_EXCEEDED = feedback_rules.MEMORY_EXCEEDED
    UNKNOWN = feedback_rules.UNKNOWN


class DifferenceType(str, Enum):
    NONE = "none"
    WHITESPACE = "whitespace"
    CASE = "case"
    LINE_COUNT = "line_count"
    CONTENT = "content"


@dataclass(frozen=True)
class ErrorExplanation:
    category: ErrorCategory
    summary: str
    explanation: str
    suggestion: str
    related_concepts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class OutputComparison:
    matches: bool
    difference: DifferenceType
    hint: str = ""


def _language_key(language) -> str:
    try:
        return Language.coerce(language).value
    except ValueError:
        return str(language).lower()


def _first_line(message: str, limit: int = 120) -> str:
    for line in str(message).splitlines():
        if line.strip():
            return line.strip()[:limit]
    return ""


class FeedbackGenerator:
    """Deterministic lookup from failure signals to structured explanations."""

    def __init__(self):
        self._rules = {
            language: [(re.compile(pattern), rest) for pattern, *rest in rules]
            for language, rules in feedback_rules.LANGUAGE_RULES.items()
        }

    def explain_error(self, message: str, language) -> ErrorExplanation:
        """
        Classify compiler or runtime error text.

        Args:
            message: Error text as reported by the sandbox
            language: Language (or its name) the failing program is written in

        Returns:
            The explanation of the first matching rule for the language, or a
            generic explanation when no rule matches
        """
        text = str(message or "").lower()
        for pattern, (category, summary, explanation, suggestion, concepts) in \
                self._rules.get(_language_key(language), []):
            if pattern.search(text):
                return ErrorExplanation(
                    category=ErrorCategory(category),
                    summary=summary,
                    explanation=explanation,
                    suggestion=suggestion,
                    related_concepts=tuple(concepts),
                )

        return ErrorExplanation(
            category=ErrorCategory.UNKNOWN,
            summary=_first_line(message) or "Unknown error",
            explanation="Your program stopped with an error that has no specific explanation.",
            suggestion="Read the error message carefully and check the line it points to.",
        )

    def explain_result(self, result: ExecutionResult, language) -> Optional[ErrorExplanation]:
        """Explain any execution outcome; successful runs need no explanation."""
        if isinstance(result, Success):
            return None
        if isinstance(result, RuntimeFault):
            explanation = self.explain_error(result.message, language)
            if result.line is not None:
                explanation = ErrorExplanation(
                    category=explanation.category,
                    summary=f"{explanation.summary} (line {result.line})",
                    explanation=explanation.explanation,
                    suggestion=explanation.suggestion,
                    related_concepts=explanation.related_concepts,
                )
            return explanation
        if isinstance(result, Timeout):
            return ErrorExplanation(
                category=ErrorCategory.TIMEOUT,
                summary="Time limit exceeded",
                explanation="Your program did not finish in time. This is a resource limit, "
                            "not necessarily a bug in the logic.",
                suggestion="Look for loops that never end, or use a faster algorithm.",
                related_concepts=("Loops", "Complexity"),
            )
        if isinstance(result, MemoryExceeded):
            limit = f" ({result.limit_bytes} bytes)" if result.limit_bytes else ""
            return ErrorExplanation(
                category=ErrorCategory.MEMORY_EXCEEDED,
                summary="Memory limit exceeded",
                explanation=f"Your program used more memory than allowed{limit}.",
                suggestion="Avoid building very large collections; process data as you read it.",
                related_concepts=("Memory", "Data Structures"),
            )
        if isinstance(result, ExecutionError):
            return ErrorExplanation(
                category=ErrorCategory.UNKNOWN,
                summary="Submission could not be run",
                explanation=result.message,
                suggestion="This is not a problem with your program. Try again or ask an instructor.",
            )
        raise TypeError(f"Unknown execution result: {result!r}")

    def compare_outputs(self, expected: str, actual: str) -> OutputComparison:
        """
        Describe how actual output differs from expected output.

        Trailing whitespace is never a difference, matching the default checker.
        """
        expected_norm = normalize_output(expected)
        actual_norm = normalize_output(actual)
        if expected_norm == actual_norm:
            return OutputComparison(matches=True, difference=DifferenceType.NONE)

        if expected_norm.split() == actual_norm.split():
            return OutputComparison(
                matches=False,
                difference=DifferenceType.WHITESPACE,
                hint="The values are right but spacing or line breaks differ.",
            )
        if expected_norm.casefold() == actual_norm.casefold():
            return OutputComparison(
                matches=False,
                difference=DifferenceType.CASE,
                hint="The text is right but upper/lower case differs.",
            )

        expected_lines = expected_norm.split("\n")
        actual_lines = actual_norm.split("\n")
        if len(expected_lines) != len(actual_lines):
            return OutputComparison(
                matches=False,
                difference=DifferenceType.LINE_COUNT,
                hint=f"Expected {len(expected_lines)} line(s) of output, got {len(actual_lines)}.",
            )

        for number, (want, got) in enumerate(zip(expected_lines, actual_lines), start=1):
            if want != got:
                return OutputComparison(
                    matches=False,
                    difference=DifferenceType.CONTENT,
                    hint=f"Line {number}: expected {want!r}, got {got!r}.",
                )
        return OutputComparison(matches=False, difference=DifferenceType.CONTENT)

    def related_concepts(self, results: List[ExecutionResult], language) -> List[str]:
        """Concept tags across several failed runs, most frequent first."""
        counts = {}
        for result in results:
            explanation = self.explain_result(result, language)
            if explanation is None:
                continue
            for concept in explanation.related_concepts:
                counts[concept] = counts.get(concept, 0) + 1
        return sorted(counts, key=lambda c: (-counts[c], c))
