"""Quiz doubles: deterministic clocks, schedulers and question sources."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Sequence

from mathfly.quiz.models import Phase, Question, QuizResults


class FakeClock:
    """Manually advanced clock usable wherever ``time.time`` is injected."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@dataclass
class FakeTimer:
    interval: float
    callback: Callable[[], None]
    stopped: bool = False

    def stop(self) -> None:
        self.stopped = True

    def fire(self, times: int = 1) -> None:
        for _ in range(times):
            if self.stopped:
                return
            self.callback()


@dataclass
class FakeScheduler:
    """Scheduler double that records every handle it hands out."""

    timers: list[FakeTimer] = field(default_factory=list)

    def __call__(
        self, interval: float, callback: Callable[[], None]
    ) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if not timer.stopped]


def make_question(
    identifier: str,
    phase: Phase = Phase.FACIL,
    *,
    correct: str = "a",
    prompt: str | None = None,
) -> Question:
    return Question(
        id=identifier,
        prompt=prompt or f"Question {identifier}?",
        options=MappingProxyType(
            {"a": "1", "b": "2", "c": "3", "d": "4"}
        ),
        correct_option=correct,
        phase=phase,
    )


def make_results(
    phase: Phase = Phase.FACIL,
    *,
    score: int = 16,
    correct: int = 1,
    total: int = 2,
) -> QuizResults:
    return QuizResults(
        phase=phase,
        score=score,
        correct_answers=correct,
        total_questions=total,
        accuracy=(correct / total) * 100 if total else 0.0,
        time_spent=12,
    )


class StaticSource:
    """Question source backed by an in-memory list; counts its calls."""

    def __init__(self, questions: Iterable[Question]) -> None:
        self.questions: Sequence[Question] = list(questions)
        self.calls = 0

    def __call__(self, phase: Phase) -> list[Question]:
        self.calls += 1
        return [q for q in self.questions if q.phase is phase]
