"""
Engine configuration set by course authors.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .checkers import CHECKERS
from .sandbox import SandboxConfig


@dataclass
class EngineConfig:
    """
    Configuration shared by the quiz engine, grader and test runner.

    Attributes:
        sandbox: Resource envelope for every code run
        checker: Default output comparison policy (see checkers module)
        review_before_finish: Allow the Reviewing state once every question is answered
        shuffle_seed: Seed mixed into the question order of shuffled quizzes
        log_level: Level name used by the command line
    """
    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    checker: str = "exact_match"
    review_before_finish: bool = False
    shuffle_seed: Optional[int] = None
    log_level: str = "WARNING"

    @staticmethod
    def from_dict(data: dict) -> 'EngineConfig':
        """Create EngineConfig from dictionary."""
        return EngineConfig(
            sandbox=SandboxConfig.from_dict(data.get('sandbox', {})),
            checker=data.get('checker', 'exact_match'),
            review_before_finish=bool(data.get('review_before_finish', False)),
            shuffle_seed=data.get('shuffle_seed'),
            log_level=str(data.get('log_level', 'WARNING')).upper(),
        )

    def to_dict(self) -> dict:
        return {
            "sandbox": self.sandbox.to_dict(),
            "checker": self.checker,
            "review_before_finish": self.review_before_finish,
            "shuffle_seed": self.shuffle_seed,
            "log_level": self.log_level,
        }

    def validate(self) -> Tuple[bool, str]:
        """
        Validate configuration consistency.

        Returns:
            Tuple of (is_valid, error_message)
        """
        is_valid, error_message = self.sandbox.validate()
        if not is_valid:
            return False, f"sandbox: {error_message}"

        if self.checker not in CHECKERS:
            return False, f"Unknown checker '{self.checker}'. Choose from: {', '.join(sorted(CHECKERS))}"

        if self.shuffle_seed is not None and (
                not isinstance(self.shuffle_seed, int) or isinstance(self.shuffle_seed, bool)):
            return False, "shuffle_seed must be an integer or null"

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return False, f"Unknown log level '{self.log_level}'"

        return True, ""

    @staticmethod
    def default() -> 'EngineConfig':
        """Return the default configuration."""
        return EngineConfig()
