"""Exception hierarchy for the quiz engine and its collaborators."""

from __future__ import annotations

__all__ = [
    "QuizError",
    "UnauthenticatedError",
    "EmptyPhaseError",
    "UnknownPhaseError",
    "QuestionFormatError",
    "PersistenceError",
    "OfflineQueueError",
    "InvalidTransitionError",
    "QuizConfigError",
]


class QuizError(RuntimeError):
    """Base class for every error raised by :mod:`mathfly.quiz`."""


class UnauthenticatedError(QuizError):
    """Raised when a session is started without a user context."""


class EmptyPhaseError(QuizError, LookupError):
    """Raised when a phase has no questions available."""

    def __init__(self, phase: object) -> None:
        label = getattr(phase, "value", phase)
        super().__init__(f"No questions found for phase '{label}'.")
        self.phase = phase


class UnknownPhaseError(QuizError, ValueError):
    """Raised when a phase name or number is outside the four phases."""


class QuestionFormatError(QuizError, ValueError):
    """Raised when a question record cannot be parsed."""


class PersistenceError(QuizError):
    """Raised when the result store rejects or fails a write."""


class OfflineQueueError(QuizError):
    """Raised when the offline queue file cannot be read or written."""


class InvalidTransitionError(QuizError):
    """Raised by strict callers for an operation not valid in this state.

    The engine itself reports invalid transitions by returning ``None``.
    """


class QuizConfigError(QuizError):
    """Raised when quiz configuration parsing or validation fails."""
