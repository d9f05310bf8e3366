"""
quizlab command line.

Runs lab submissions against their test suites, drives interactive quiz
sessions on the terminal and explains error messages.
"""

import argparse
import getpass
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .codec import load_file
from .config import EngineConfig
from .config_loader import create_sample_config, load_config
from .engine import Completed, QuizEngine
from .errors import CodecError, InvalidDefinition, QuizError
from .feedback import FeedbackGenerator
from .models import (
    Blanks,
    Choice,
    Code,
    CodeCompletion,
    FreeformCode,
    Matching,
    MultiChoice,
    MultipleChoice,
    MultipleSelect,
    Order,
    Ordering,
    Pairs,
    Question,
)
from .log import setup_logging
from .runner import TestRunner, outcome_from_error
from .sandbox import Sandbox

logger = logging.getLogger(__name__)

QUIZ_HELP = """Commands:
  show             Show the current question
  answer <value>   Answer the current question (see the answer format below it)
  submit <file>    Answer a code question with the contents of a file
  test <file>      Run the visible tests of a code question without answering
  next / prev      Move to the next or previous question
  goto <n>         Jump to question n
  status           Show progress
  review           Review all answers before finishing (if enabled)
  finish           Finish the attempt and show the score
  help             Show this help
  exit             Leave without finishing"""


# ===== HELPERS =====

def _read_secret(args) -> dict:
    """Key material for sealed content, from --key-file or a password prompt."""
    if getattr(args, "key_file", None):
        return {"key": Path(args.key_file).read_bytes().strip()}
    if getattr(args, "password", False):
        return {"password": getpass.getpass("Content password: ")}
    return {}


def _load_content(path: str, expected: str, args):
    path = Path(path)
    secret = {} if path.suffix.lower() == ".json" else _read_secret(args)
    return load_file(path, expected=expected, **secret)


def _load_engine_config(args) -> EngineConfig:
    config = load_config(Path(args.config) if getattr(args, "config", None) else None)
    if not args.log_level:
        logging.getLogger("quizlab").setLevel(config.log_level)
    return config


def format_question(question: Question, position: int, total: int) -> str:
    lines = [f"Question {position + 1}/{total} [{question.points} pt]", "", question.prompt, ""]

    if isinstance(question, (MultipleChoice, MultipleSelect)):
        lines += [f"  {i + 1}. {option}" for i, option in enumerate(question.options)]
        hint = "answer 2" if isinstance(question, MultipleChoice) else "answer 1,3"
    elif isinstance(question, Ordering):
        lines += [f"  {i + 1}. {item}" for i, item in enumerate(question.items)]
        hint = "answer 3 1 2   (item numbers in the correct order)"
    elif isinstance(question, Matching):
        lines += [f"  {i + 1}. {item}" for i, item in enumerate(question.left)]
        lines.append("")
        lines += [f"  {chr(ord('a') + i)}. {item}" for i, item in enumerate(question.right)]
        hint = "answer 1a 2c 3b"
    elif isinstance(question, CodeCompletion):
        lines += ["    " + line for line in question.template.splitlines()]
        hint = "answer " + "; ".join(f"{b.id}=..." for b in question.blanks) + "   or: submit <file>"
    elif isinstance(question, FreeformCode):
        if question.starter_code:
            lines += ["    " + line for line in question.starter_code.splitlines()]
        hint = f"submit <file>   ({question.language.display_name})"
    else:
        hint = ""

    lines += ["", f"Answer format: {hint}"]
    return "\n".join(lines)


def parse_answer(question: Question, text: str):
    """
    Build the Answer for a question from its terminal form.

    Numbers are 1-based on the terminal. Raises ValueError on bad input.
    """
    text = text.strip()
    if not text:
        raise ValueError("Empty answer")

    if isinstance(question, MultipleChoice):
        return Choice(int(text) - 1)
    if isinstance(question, MultipleSelect):
        return MultiChoice(frozenset(int(part) - 1 for part in text.replace(",", " ").split()))
    if isinstance(question, Ordering):
        return Order(tuple(int(part) - 1 for part in text.replace(",", " ").split()))
    if isinstance(question, Matching):
        pairs = []
        for token in text.replace(",", " ").split():
            number, letter = token[:-1], token[-1].lower()
            if not number.isdigit() or not letter.isalpha():
                raise ValueError(f"Bad pair '{token}'; use forms like 1a")
            pairs.append((int(number) - 1, ord(letter) - ord("a")))
        return Pairs(frozenset(pairs))
    if isinstance(question, CodeCompletion):
        fills = {}
        for part in text.split(";"):
            if "=" not in part:
                raise ValueError(f"Bad blank '{part.strip()}'; use id=value")
            blank_id, value = part.split("=", 1)
            fills[blank_id.strip()] = value.strip()
        return Blanks(fills)
    raise ValueError("Use 'submit <file>' for code questions")


# ===== COMMANDS =====

def cmd_run(args) -> int:
    """Run a submission file against a lab."""
    config = _load_engine_config(args)
    lab = _load_content(args.lab, "lab", args)
    source = Path(args.source).read_text(encoding="utf-8")

    runner = TestRunner(Sandbox(config.sandbox), checker=config.checker)
    print(f"Lab: {lab.title or lab.id}")
    results = runner.run_lab(source, lab)
    print(runner.format_test_results(results, show_details=args.details))

    if args.details:
        generator = FeedbackGenerator()
        errors = [r.error for r in results.failed_tests() if r.error]
        if errors:
            explanation = generator.explain_result(outcome_from_error(errors[0]), lab.language)
            print()
            print(f"{explanation.summary}: {explanation.explanation}")
            print(f"Suggestion: {explanation.suggestion}")

    return 0 if results.all_passed else 1


def cmd_explain(args) -> int:
    explanation = FeedbackGenerator().explain_error(args.message, args.language)
    print(f"Category:    {explanation.category.value}")
    print(f"Summary:     {explanation.summary}")
    print(f"Explanation: {explanation.explanation}")
    print(f"Suggestion:  {explanation.suggestion}")
    if explanation.related_concepts:
        print(f"Concepts:    {', '.join(explanation.related_concepts)}")
    return 0


def cmd_init_config(args) -> int:
    create_sample_config(Path(args.path))
    print(f"Sample configuration created at: {args.path}")
    return 0


class QuizSession:
    """Interactive terminal front end for one QuizEngine."""

    def __init__(self, engine: QuizEngine, input_fn=input, output=None):
        self.engine = engine
        self._input = input_fn
        self._out = output or sys.stdout

    def say(self, text: str = ""):
        print(text, file=self._out)

    def show(self):
        question = self.engine.current_question()
        total = self.engine.quiz.question_count()
        self.say(format_question(question, self.engine.current_index(), total))

    def show_score(self, score):
        self.say(f"Score: {score.points_earned}/{score.points_possible} "
                 f"({score.percentage:.0%}), {score.correct_count}/{score.total_questions} correct")
        self.say("PASSED" if score.passed else "NOT PASSED")

    def handle(self, command: str, argument: str) -> bool:
        """Run one command; returns False when the session should end."""
        engine = self.engine
        if command in ("exit", "quit"):
            return False
        if command == "help":
            self.say(QUIZ_HELP)
        elif command == "show":
            self.show()
        elif command == "answer":
            feedback = engine.submit_answer(parse_answer(engine.current_question(), argument))
            self.say(("Correct! " if feedback.correct else "Incorrect. ") + feedback.explanation)
        elif command == "submit":
            source = Path(argument).read_text(encoding="utf-8")
            feedback = engine.submit_answer(Code(source))
            self.say(("Correct! " if feedback.correct else "Incorrect.\n") + feedback.explanation)
        elif command == "test":
            source = Path(argument).read_text(encoding="utf-8")
            self.say(TestRunner.format_test_results(engine.preview(source), show_details=True))
        elif command == "next":
            engine.next_question()
            self.show()
        elif command == "prev":
            engine.previous_question()
            self.show()
        elif command == "goto":
            engine.go_to(int(argument) - 1)
            self.show()
        elif command == "status":
            self.say(f"Answered {engine.answered_count()}/{engine.quiz.question_count()} "
                     f"({engine.progress():.0%})")
        elif command == "review":
            reviewing = engine.review()
            for number, feedback in enumerate(reviewing.feedback, start=1):
                self.say(f"  {number}. {'correct' if feedback.correct else 'incorrect'}")
            self.say("Type 'finish' to submit.")
        elif command == "finish":
            self.show_score(engine.finish())
            return False
        else:
            self.say(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return True

    def run(self) -> int:
        self.engine.start()
        self.say(f"Quiz: {self.engine.quiz.title or self.engine.quiz.id}")
        self.say(QUIZ_HELP)
        self.say()
        self.show()

        while not isinstance(self.engine.state, Completed):
            try:
                line = self._input("quiz> ").strip()
            except (KeyboardInterrupt, EOFError):
                self.say("\nLeaving without finishing.")
                return 1
            if not line:
                continue
            command, _, argument = line.partition(" ")
            try:
                if not self.handle(command.lower(), argument):
                    break
            except (QuizError, ValueError, OSError) as e:
                self.say(f"Error: {e}")

        state = self.engine.state
        return 0 if isinstance(state, Completed) and state.score.passed else 1


def cmd_quiz(args) -> int:
    config = _load_engine_config(args)
    quiz = _load_content(args.quiz, "quiz", args)
    engine = QuizEngine(quiz, config=config)
    return QuizSession(engine).run()


# ===== ENTRY POINT =====

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quizlab",
        description="Quiz and lab assessment engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  quizlab run labs/fizzbuzz.json solution.py --details
  quizlab run labs/fizzbuzz.enc solution.py --key-file COURSE.key
  quizlab quiz quizzes/basics.json
  quizlab explain --language python "NameError: name 'x' is not defined"
  quizlab init-config quizlab.json
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Logging level (default: from config, else WARNING)")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON objects")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_content_options(sub):
        sub.add_argument("--config", help="Path to configuration file (default: ./quizlab.json)")
        secret = sub.add_mutually_exclusive_group()
        secret.add_argument("--key-file", help="Key file for sealed content")
        secret.add_argument("--password", action="store_true", help="Prompt for the content password")

    run_parser = subparsers.add_parser("run", help="Run a submission against a lab")
    run_parser.add_argument("lab", help="Lab file (.json, or sealed .enc)")
    run_parser.add_argument("source", help="Submission source file")
    run_parser.add_argument("--details", action="store_true",
                            help="Show outputs and explanations for failed tests")
    add_content_options(run_parser)
    run_parser.set_defaults(func=cmd_run)

    quiz_parser = subparsers.add_parser("quiz", help="Take a quiz on the terminal")
    quiz_parser.add_argument("quiz", help="Quiz file (.json, or sealed .enc)")
    add_content_options(quiz_parser)
    quiz_parser.set_defaults(func=cmd_quiz)

    explain_parser = subparsers.add_parser("explain", help="Explain an error message")
    explain_parser.add_argument("--language", default="python", help="Language of the program")
    explain_parser.add_argument("message", help="Error message text")
    explain_parser.set_defaults(func=cmd_explain)

    init_parser = subparsers.add_parser("init-config", help="Write a sample configuration file")
    init_parser.add_argument("path", help="Where to write the configuration")
    init_parser.set_defaults(func=cmd_init_config)

    return parser


def main(argv: Optional[list] = None) -> int:
    """Entry point for the quizlab command line."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level or "WARNING", log_file=args.log_file, structured=args.json_logs)

    try:
        return args.func(args)
    except (CodecError, InvalidDefinition) as e:
        print(f"Error: Failed to load content. Details: {e}", file=sys.stderr)
        return 2
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
