"""Data structures shared by the quiz engine, store and front ends."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from .errors import QuestionFormatError, UnknownPhaseError

OPTION_KEYS: tuple[str, ...] = ("a", "b", "c", "d")

# Field names used by the original question bank export.
_LEGACY_FIELDS = {
    "id": "id_pergunta",
    "prompt": "enunciado",
    "correct_option": "resposta_correta",
    "phase": "nivel",
}


class Phase(Enum):
    """The four difficulty tiers, declared in play order."""

    FACIL = "facil"
    MEDIO = "medio"
    DIFICIL = "dificil"
    EXPERT = "expert"

    @property
    def number(self) -> int:
        return list(Phase).index(self) + 1

    @property
    def title(self) -> str:
        return _PHASE_TITLES[self]

    @classmethod
    def from_number(cls, number: int) -> "Phase":
        members = list(cls)
        if isinstance(number, bool) or not 1 <= int(number) <= len(members):
            raise UnknownPhaseError(
                f"Phase number must be between 1 and {len(members)}, "
                f"got {number!r}."
            )
        return members[int(number) - 1]

    @classmethod
    def from_value(cls, value: "Phase | str | int") -> "Phase":
        if isinstance(value, Phase):
            return value
        if isinstance(value, int):
            return cls.from_number(value)
        normalized = str(value).strip().lower()
        if normalized.isdigit():
            return cls.from_number(int(normalized))
        for member in cls:
            if member.value == normalized:
                return member
        expected = ", ".join(member.value for member in cls)
        raise UnknownPhaseError(
            f"Unknown phase '{value}'. Expected one of: {expected}."
        )


_PHASE_TITLES = {
    Phase.FACIL: "Basic arithmetic",
    Phase.MEDIO: "Fractions and geometry",
    Phase.DIFICIL: "Algebra and trigonometry",
    Phase.EXPERT: "Calculus",
}


@dataclass(frozen=True)
class Question:
    """A four-option multiple-choice question bound to one phase."""

    id: str
    prompt: str
    options: Mapping[str, str]
    correct_option: str
    phase: Phase

    def option_text(self, key: str | None) -> str | None:
        if not key:
            return None
        return self.options.get(key)

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "Question":
        """Build a question from a JSON record.

        Both the native layout (``options`` table) and the original bank
        layout (``alternativa_a`` .. ``alternativa_d``) are accepted.
        """

        identifier = _field(data, "id")
        prompt = _field(data, "prompt")
        phase_raw = _field(data, "phase")
        correct = str(_field(data, "correct_option")).strip().lower()

        raw_options = data.get("options")
        if isinstance(raw_options, Mapping):
            options = {
                str(key).strip().lower(): str(text)
                for key, text in raw_options.items()
            }
        else:
            options = {
                key: str(data[f"alternativa_{key}"])
                for key in OPTION_KEYS
                if f"alternativa_{key}" in data
            }

        if sorted(options) != list(OPTION_KEYS):
            raise QuestionFormatError(
                f"Question '{identifier}' must define options a, b, c and d."
            )
        if correct not in OPTION_KEYS:
            raise QuestionFormatError(
                f"Question '{identifier}' has invalid correct option "
                f"'{correct}'."
            )
        try:
            phase = Phase.from_value(phase_raw)
        except UnknownPhaseError as exc:
            raise QuestionFormatError(
                f"Question '{identifier}': {exc}"
            ) from exc

        return cls(
            id=str(identifier),
            prompt=str(prompt).strip(),
            options=MappingProxyType(dict(options)),
            correct_option=correct,
            phase=phase,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "options": dict(self.options),
            "correct_option": self.correct_option,
            "phase": self.phase.value,
        }


def _field(data: Mapping[str, Any], name: str) -> Any:
    if name in data and data[name] not in (None, ""):
        return data[name]
    legacy = _LEGACY_FIELDS.get(name)
    if legacy and data.get(legacy) not in (None, ""):
        return data[legacy]
    raise QuestionFormatError(f"Question record is missing '{name}'.")


@dataclass
class QuizSession:
    """Mutable state of the single active attempt."""

    phase: Phase
    questions: list[Question]
    start_time: float
    question_started_at: float
    current_question_index: int = 0
    answers: list[str] = field(default_factory=list)
    score: int = 0

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question | None:
        if self.current_question_index >= len(self.questions):
            return None
        return self.questions[self.current_question_index]

    @property
    def current_answered(self) -> bool:
        return len(self.answers) > self.current_question_index

    @property
    def is_complete(self) -> bool:
        return len(self.answers) == len(self.questions)

    def correct_count(self) -> int:
        return sum(
            1
            for answer, question in zip(self.answers, self.questions)
            if answer == question.correct_option
        )


@dataclass(frozen=True)
class SubmissionFeedback:
    """Outcome of a single answer submission."""

    is_correct: bool
    correct_answer: str
    points: int
    is_complete: bool


@dataclass(frozen=True)
class QuizResults:
    """Aggregate outcome of a finished session."""

    phase: Phase
    score: int
    correct_answers: int
    total_questions: int
    accuracy: float
    time_spent: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "score": self.score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "accuracy": self.accuracy,
            "time_spent": self.time_spent,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QuizResults":
        return cls(
            phase=Phase.from_value(data["phase"]),
            score=int(data["score"]),
            correct_answers=int(data["correct_answers"]),
            total_questions=int(data["total_questions"]),
            accuracy=float(data["accuracy"]),
            time_spent=int(data.get("time_spent", 0)),
        )


@dataclass(frozen=True)
class PhaseResult:
    """One persisted row of ``phase_results``."""

    user_id: str
    phase: int
    correct_answers: int
    points_earned: int
    completed_at: datetime
    total_questions: int | None = None


@dataclass(frozen=True)
class UserProgress:
    """Cumulative progress row for a user."""

    user_id: str
    total_correct: int
    total_points: int
    max_phase: int


@dataclass(frozen=True)
class PhaseStatus:
    """Derived navigation state for a phase."""

    phase: Phase
    unlocked: bool
    completed: bool
    best_score: int | None = None


@dataclass(frozen=True)
class RankingEntry:
    """A row of the global ranking."""

    user_id: str
    points: int
    phase: int
    completed_at: datetime
