#!/usr/bin/env python3
"""
verify_content.py - Validate quiz or lab content and check reference solutions.

Usage with key file:
    python tools/verify_content.py --content labs/fizzbuzz.enc --key-file COURSE.key

Usage with a reference solution:
    python tools/verify_content.py --content fizzbuzz.json --solution solutions/fizzbuzz.py
"""

import argparse
import getpass
import sys
from collections import Counter
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))
from quizlab.codec import is_password_sealed, load_file
from quizlab.errors import CodecError
from quizlab.grader import Grader
from quizlab.models import Code, CodeCompletion, FreeformCode, Lab, Quiz
from quizlab.runner import TestRunner


def describe_quiz(quiz: Quiz, verbose: bool = False) -> list:
    """Print a quiz summary; returns warnings."""
    warnings = []
    print(f"[OK] Quiz: {quiz.id} - {quiz.title}")
    print(f"  Questions: {quiz.question_count()} ({quiz.total_points()} points)")
    print(f"  Passing score: {quiz.passing_score:.0%}")

    for kind, count in sorted(Counter(q.kind for q in quiz.questions).items()):
        print(f"  - {kind}: {count}")

    for question in quiz.questions:
        if isinstance(question, FreeformCode) and not (question.visible_tests or question.hidden_tests):
            warnings.append(f"{question.id}: code question has no tests and can never be correct")
        if isinstance(question, FreeformCode) and not question.hidden_tests:
            warnings.append(f"{question.id}: no hidden tests")
        if verbose:
            print(f"  [OK] {question.id} ({question.kind}, {question.points} pt)")

    if quiz.question_count() == 0:
        warnings.append("Quiz has no questions and cannot be started")
    return warnings


def describe_lab(lab: Lab) -> list:
    print(f"[OK] Lab: {lab.id} - {lab.title}")
    print(f"  Language: {lab.language.display_name}")
    print(f"  Tests: {lab.test_suite.test_count()} ({lab.points} points, "
          f"{'all-or-nothing' if lab.require_all_pass else 'proportional'})")
    print(f"  Checker: {lab.checker}")
    if lab.test_suite.test_count() == 0:
        return ["Lab has no tests"]
    return []


def check_solution(content, solution_file: str) -> bool:
    """Run a reference solution against every test of the content."""
    source = Path(solution_file).read_text(encoding='utf-8')
    runner = TestRunner()

    if isinstance(content, Lab):
        results = runner.run_lab(source, content)
        print(runner.format_test_results(results, show_details=True))
        return results.all_passed

    code_questions = [q for q in content.questions if isinstance(q, (FreeformCode, CodeCompletion))]
    if len(code_questions) != 1:
        print("[ERROR] --solution needs a lab or a quiz with exactly one code question",
              file=sys.stderr)
        return False
    feedback = Grader(runner).grade(code_questions[0], Code(source))
    print(feedback.explanation)
    return feedback.correct


def verify_content(content_file: str, key_file: str = None, use_password: bool = False,
                   solution_file: str = None, verbose: bool = False) -> bool:
    """
    Verify a quiz or lab (sealed or plaintext).
    Returns True if valid, False otherwise.
    """
    try:
        secret = {}
        path = Path(content_file)
        if path.suffix.lower() != '.json':
            if is_password_sealed(path.read_bytes()):
                if not use_password:
                    print("[ERROR] This content was sealed with a password. Use --password flag.",
                          file=sys.stderr)
                    return False
                secret["password"] = getpass.getpass("Enter password: ")
            else:
                if not key_file:
                    print("[ERROR] This content was sealed with a key file. Use --key-file.",
                          file=sys.stderr)
                    return False
                secret["key"] = Path(key_file).read_bytes()

        content = load_file(path, **secret)
        print("[OK] Content decoded successfully")

        if isinstance(content, Quiz):
            warnings = describe_quiz(content, verbose)
        elif isinstance(content, Lab):
            warnings = describe_lab(content)
        else:
            print(f"[ERROR] Expected a quiz or lab, got {type(content).__name__}", file=sys.stderr)
            return False

        if warnings:
            print(f"\n[WARNING] ({len(warnings)}):")
            for warn in warnings:
                print(f"  - {warn}")

        if solution_file:
            print(f"\n[SOLUTION] {solution_file}")
            if not check_solution(content, solution_file):
                print("\n[ERROR] Reference solution does not pass every test")
                return False

        print(f"\n[OK] Content validation PASSED")
        return True

    except FileNotFoundError as e:
        print(f"[ERROR] File not found: {e}", file=sys.stderr)
        return False
    except CodecError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return False


def main():
    parser = argparse.ArgumentParser(
        description="Validate quiz or lab content.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Verify sealed lab
  python tools/verify_content.py --content labs/fizzbuzz.enc --key-file COURSE.key

  # Verify plaintext content while authoring, with a reference solution
  python tools/verify_content.py --content fizzbuzz.json --solution fizzbuzz.py
        """
    )
    parser.add_argument("--content", required=True, help="Path to content file (.enc or .json)")
    parser.add_argument("--key-file", help="Key file (for key-sealed content)")
    parser.add_argument("--password", action="store_true",
                        help="Use password to unseal (for password-sealed content)")
    parser.add_argument("--solution", help="Reference solution that must pass every test")
    parser.add_argument("--verbose", action="store_true", help="Show every question")

    args = parser.parse_args()

    success = verify_content(args.content, args.key_file, args.password, args.solution, args.verbose)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
