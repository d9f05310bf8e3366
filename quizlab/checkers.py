"""
Output comparison policies for test cases.

Every checker takes (actual, expected) program output and returns True when
the actual output is acceptable. All of them tolerate trailing whitespace.
"""

import math
from typing import Callable, Dict


def normalize_output(text: str) -> str:
    """Drop trailing whitespace on every line and trailing blank lines."""
    lines = str(text).replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(line.rstrip() for line in lines).rstrip()


def exact_match(actual: str, expected: str) -> bool:
    """
    Default checker: exact string equality after stripping trailing whitespace.

    Args:
        actual: Output from the learner's program
        expected: Expected output from the test case

    Returns:
        True if outputs match exactly (after trailing whitespace removal)
    """
    return normalize_output(actual) == normalize_output(expected)


def ignore_case(actual: str, expected: str) -> bool:
    """Like exact_match, but letter case is not significant."""
    return normalize_output(actual).casefold() == normalize_output(expected).casefold()


def float_isclose(actual: str, expected: str) -> bool:
    """
    Checker for whitespace-separated floating-point values with tolerance.

    Uses math.isclose with rel_tol=1e-6 (relative tolerance) and abs_tol=1e-8
    for every token pair. The token counts must match.
    """
    actual_tokens = str(actual).split()
    expected_tokens = str(expected).split()
    if len(actual_tokens) != len(expected_tokens):
        return False
    try:
        return all(
            math.isclose(float(a), float(e), rel_tol=1e-6, abs_tol=1e-8)
            for a, e in zip(actual_tokens, expected_tokens)
        )
    except ValueError:
        return False


def unordered_tokens(actual: str, expected: str) -> bool:
    """
    Checker for outputs where order does not matter.

    Treats outputs as whitespace-separated values, sorts both and compares.
    """
    return sorted(str(actual).split()) == sorted(str(expected).split())


CHECKERS: Dict[str, Callable[[str, str], bool]] = {
    "exact_match": exact_match,
    "ignore_case": ignore_case,
    "float_isclose": float_isclose,
    "unordered_list_equal": unordered_tokens,
}


def get_checker(name: str) -> Callable[[str, str], bool]:
    """Look up a checker by name; unknown names raise ValueError."""
    try:
        return CHECKERS[name or "exact_match"]
    except KeyError:
        raise ValueError(f"Unknown checker: {name!r}. Choose from: {', '.join(sorted(CHECKERS))}")
