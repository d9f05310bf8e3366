"""
Exception types raised by the assessment core.

Only protocol misuse and invalid definitions are raised. Outcomes of running
learner code are returned as ExecutionResult values and never raised.
"""


class QuizError(Exception):
    """Base class for QuizEngine protocol errors."""

    message = "Invalid quiz operation"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)


class InvalidState(QuizError):
    """Operation is not valid in the engine's current state."""

    message = "Invalid state for this operation"


class AlreadyInProgress(QuizError):
    """start() was called while an attempt is still running."""

    message = "An attempt is already in progress"


class OutOfQuestions(QuizError):
    """Navigation moved past the first or last question."""

    message = "No more questions"


class MaxAttemptsExceeded(QuizError):
    """The quiz's attempt cap has been reached."""

    message = "Maximum attempts reached"


class NoQuestions(QuizError):
    """The quiz has no questions to present."""

    message = "Quiz has no questions"


class InvalidDefinition(ValueError):
    """Quiz, question or lab content violates a model invariant."""


class SandboxConfigError(ValueError):
    """Sandbox limits are unusable (e.g. zero timeout)."""


class CodecError(ValueError):
    """Payload cannot be decoded or unsealed."""
