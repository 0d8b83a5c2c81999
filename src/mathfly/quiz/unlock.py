"""Phase unlock rules derived from the stored result history.

Unlock state is never persisted. Every call evaluates the full history it is
given, so the answer always matches the underlying ``phase_results`` rows.
"""

from __future__ import annotations

from typing import Iterable

from .models import Phase, PhaseResult, PhaseStatus

DEFAULT_UNLOCK_THRESHOLD = 3

__all__ = [
    "DEFAULT_UNLOCK_THRESHOLD",
    "is_unlocked",
    "is_completed",
    "best_score",
    "phase_statuses",
]


def _passed(
    phase_number: int, history: Iterable[PhaseResult], threshold: int
) -> bool:
    return any(
        result.phase == phase_number and result.correct_answers >= threshold
        for result in history
    )


def is_unlocked(
    phase_number: int,
    history: Iterable[PhaseResult],
    threshold: int = DEFAULT_UNLOCK_THRESHOLD,
) -> bool:
    """Phase 1 is always open; phase n opens once phase n-1 was passed."""

    phase = Phase.from_number(phase_number)
    if phase.number == 1:
        return True
    return _passed(phase.number - 1, history, threshold)


def is_completed(
    phase_number: int,
    history: Iterable[PhaseResult],
    threshold: int = DEFAULT_UNLOCK_THRESHOLD,
) -> bool:
    phase = Phase.from_number(phase_number)
    return _passed(phase.number, history, threshold)


def best_score(
    phase_number: int, history: Iterable[PhaseResult]
) -> int | None:
    phase = Phase.from_number(phase_number)
    scores = [
        result.points_earned
        for result in history
        if result.phase == phase.number
    ]
    return max(scores) if scores else None


def phase_statuses(
    history: Iterable[PhaseResult],
    threshold: int = DEFAULT_UNLOCK_THRESHOLD,
) -> list[PhaseStatus]:
    """Return the navigation status of every phase in play order."""

    results = list(history)
    return [
        PhaseStatus(
            phase=phase,
            unlocked=is_unlocked(phase.number, results, threshold),
            completed=is_completed(phase.number, results, threshold),
            best_score=best_score(phase.number, results),
        )
        for phase in Phase
    ]
