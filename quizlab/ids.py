"""
Identifier types for quizzes, questions and labs.

Each identifier is a distinct ``str`` subclass so a QuizId is never passed
where a QuestionId is expected by accident, while still serializing as a
plain string.
"""


class _Identifier(str):
    """Opaque, immutable string identifier."""

    __slots__ = ()

    def __new__(cls, value: str):
        if not isinstance(value, str) or not value:
            raise ValueError(f"{cls.__name__} must be a non-empty string")
        return super().__new__(cls, value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str.__repr__(self)})"


class QuestionId(_Identifier):
    """Unique identifier for a question within a quiz."""


class QuizId(_Identifier):
    """Unique identifier for a quiz."""


class LabId(_Identifier):
    """Unique identifier for a lab."""
