"""Question sources and the randomized per-phase question provider."""

from __future__ import annotations

import logging
import random
from importlib import resources
from pathlib import Path
from typing import Callable, Iterable, MutableSequence, Sequence, TypeVar

from .errors import EmptyPhaseError, QuestionFormatError
from .models import Phase, Question
from .utils import iter_jsonl

__all__ = [
    "QuestionSource",
    "BundledQuestionSource",
    "JsonlQuestionSource",
    "QuestionCache",
    "QuestionProvider",
    "parse_question_lines",
    "shuffle_in_place",
]

logger = logging.getLogger(__name__)

QuestionSource = Callable[[Phase], Sequence[Question]]

T = TypeVar("T")


def parse_question_lines(
    lines: Sequence[str], *, origin: str
) -> list[Question]:
    """Parse JSONL question records, reporting the failing line."""

    try:
        records = list(iter_jsonl(lines))
    except ValueError as exc:
        raise QuestionFormatError(f"{origin} {exc}") from exc

    questions: list[Question] = []
    for number, record in records:
        try:
            questions.append(Question.from_record(record))
        except QuestionFormatError as exc:
            raise QuestionFormatError(
                f"{origin} line {number}: {exc}"
            ) from exc
    return questions


def _by_phase(questions: Iterable[Question], phase: Phase) -> list[Question]:
    return [question for question in questions if question.phase is phase]


class BundledQuestionSource:
    """The default math question bank shipped with the package."""

    package = "mathfly.quiz"
    resource = "data/questions.jsonl"

    def __init__(self) -> None:
        self._questions: list[Question] | None = None

    def _load(self) -> list[Question]:
        if self._questions is None:
            text = (
                resources.files(self.package)
                .joinpath(self.resource)
                .read_text(encoding="utf-8")
            )
            self._questions = parse_question_lines(
                text.splitlines(), origin=self.resource
            )
        return self._questions

    def __call__(self, phase: Phase) -> list[Question]:
        return _by_phase(self._load(), phase)


class JsonlQuestionSource:
    """Questions read from a user-provided JSONL bank file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def __call__(self, phase: Phase) -> list[Question]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise QuestionFormatError(
                f"Question bank not found: {self.path}"
            ) from exc
        questions = parse_question_lines(
            text.splitlines(), origin=str(self.path)
        )
        return _by_phase(questions, phase)


class QuestionCache:
    """Per-phase question pools kept for the lifetime of a provider."""

    def __init__(self) -> None:
        self._pools: dict[Phase, tuple[Question, ...]] = {}

    def get(self, phase: Phase) -> tuple[Question, ...] | None:
        return self._pools.get(phase)

    def put(self, phase: Phase, questions: Sequence[Question]) -> None:
        self._pools[phase] = tuple(questions)

    def invalidate(self, phase: Phase | None = None) -> None:
        """Drop one cached pool, or every pool when ``phase`` is ``None``."""

        if phase is None:
            self._pools.clear()
        else:
            self._pools.pop(phase, None)

    def __contains__(self, phase: object) -> bool:
        return phase in self._pools


def shuffle_in_place(items: MutableSequence[T], rng: random.Random) -> None:
    """Fisher-Yates shuffle: swap each index with a uniform lower-or-equal one."""

    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]


class QuestionProvider:
    """Hands out random, non-repeating question subsets per phase."""

    def __init__(
        self,
        source: QuestionSource | None = None,
        *,
        rng: random.Random | None = None,
        cache: QuestionCache | None = None,
    ) -> None:
        self._source = source or BundledQuestionSource()
        self._rng = rng or random.Random()
        self.cache = cache or QuestionCache()

    def pool(self, phase: Phase) -> tuple[Question, ...]:
        cached = self.cache.get(phase)
        if cached is not None:
            return cached
        questions = [
            question
            for question in self._source(phase)
            if question.phase is phase
        ]
        unique: dict[str, Question] = {}
        for question in questions:
            unique.setdefault(question.id, question)
        pool = tuple(unique.values())
        if pool:
            self.cache.put(phase, pool)
        logger.debug(
            "Loaded question pool",
            extra={"phase": phase.value, "pool_size": len(pool)},
        )
        return pool

    def get_questions(self, phase: Phase, count: int = 5) -> list[Question]:
        """Return ``min(count, pool size)`` distinct questions for ``phase``.

        Raises :class:`EmptyPhaseError` when the phase has no questions.
        """

        pool = self.pool(phase)
        if not pool:
            raise EmptyPhaseError(phase)
        selection = list(pool)
        shuffle_in_place(selection, self._rng)
        selected = selection[: max(0, count)]
        logger.info(
            "Selected questions",
            extra={
                "phase": phase.value,
                "requested": count,
                "selected": len(selected),
            },
        )
        return selected
