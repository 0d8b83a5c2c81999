"""Point calculation for answered questions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType

from .models import Phase

DEFAULT_TIME_LIMIT = 30
DEFAULT_BONUS_DIVISOR = 5

BASE_POINTS = MappingProxyType(
    {
        Phase.FACIL: 10,
        Phase.MEDIO: 20,
        Phase.DIFICIL: 30,
        Phase.EXPERT: 50,
    }
)


def score_answer(
    phase: Phase,
    is_correct: bool,
    elapsed_seconds: float,
    *,
    time_limit: float = DEFAULT_TIME_LIMIT,
    bonus_divisor: float = DEFAULT_BONUS_DIVISOR,
) -> int:
    """Return the points earned for one answer.

    A correct answer earns the phase base points plus one bonus point for
    every ``bonus_divisor`` seconds left on the clock. The bonus bottoms out
    at zero once ``elapsed_seconds`` reaches ``time_limit``.

    >>> score_answer(Phase.FACIL, True, 0)
    16
    >>> score_answer(Phase.FACIL, True, 45)
    10
    """

    if not is_correct:
        return 0
    if bonus_divisor <= 0:
        raise ValueError("bonus_divisor must be > 0")
    elapsed = max(0.0, float(elapsed_seconds))
    bonus = max(0, math.floor((time_limit - elapsed) / bonus_divisor))
    return BASE_POINTS[phase] + bonus


@dataclass(frozen=True)
class ScoringRules:
    """Tunable scoring parameters loaded from configuration."""

    time_limit: int = DEFAULT_TIME_LIMIT
    bonus_divisor: float = DEFAULT_BONUS_DIVISOR

    def score(
        self, phase: Phase, is_correct: bool, elapsed_seconds: float
    ) -> int:
        return score_answer(
            phase,
            is_correct,
            elapsed_seconds,
            time_limit=self.time_limit,
            bonus_divisor=self.bonus_divisor,
        )

    def max_points(self, phase: Phase) -> int:
        return self.score(phase, True, 0)
