"""Player statistics and the live global ranking."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

from .models import Phase, PhaseResult, RankingEntry
from .persistence import ResultStore

__all__ = [
    "UserStats",
    "Performance",
    "RankingBoard",
    "compute_user_stats",
    "recent_performance",
    "result_accuracy",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserStats:
    total_score: int
    total_games: int
    average_accuracy: float
    best_phase: Phase
    last_played: datetime | None


@dataclass(frozen=True)
class Performance:
    result: PhaseResult
    accuracy: float


def result_accuracy(result: PhaseResult, fallback_questions: int) -> float:
    """Accuracy of one stored result in percent.

    Rows carry their own question count; ``fallback_questions`` only applies
    to rows stored without one.
    """

    total = result.total_questions or fallback_questions
    if total <= 0:
        return 0.0
    return result.correct_answers / total * 100


def compute_user_stats(
    store: ResultStore, user_id: str, *, fallback_questions: int = 5
) -> UserStats:
    progress = store.progress(user_id)
    history = store.history(user_id)

    asked = sum(
        result.total_questions or fallback_questions for result in history
    )
    correct = sum(result.correct_answers for result in history)
    average = (correct / asked * 100) if asked else 0.0

    return UserStats(
        total_score=progress.total_points if progress else 0,
        total_games=len(history),
        average_accuracy=average,
        best_phase=Phase.from_number(progress.max_phase)
        if progress
        else Phase.FACIL,
        last_played=max(
            (result.completed_at for result in history), default=None
        ),
    )


def recent_performance(
    store: ResultStore,
    user_id: str,
    *,
    limit: int = 10,
    fallback_questions: int = 5,
) -> list[Performance]:
    return [
        Performance(result, result_accuracy(result, fallback_questions))
        for result in store.recent_results(user_id, limit=limit)
    ]


class RankingBoard:
    """Global top results, refreshed whenever the store records a result."""

    def __init__(
        self,
        store: ResultStore,
        *,
        limit: int = 20,
        on_change: Callable[[Sequence[RankingEntry]], None] | None = None,
    ) -> None:
        self._store = store
        self._limit = limit
        self._on_change = on_change
        self._lock = threading.Lock()
        self._entries: list[RankingEntry] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def entries(self) -> list[RankingEntry]:
        with self._lock:
            return list(self._entries)

    def refresh(self) -> list[RankingEntry]:
        entries = self._store.top_results(self._limit)
        with self._lock:
            self._entries = entries
        if self._on_change is not None:
            self._on_change(list(entries))
        return list(entries)

    def start(self) -> None:
        """Load the ranking and follow new results until :meth:`stop`."""

        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._handle_insert)
        self.refresh()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_insert(self, result: PhaseResult) -> None:
        logger.debug(
            "New result detected; refreshing ranking",
            extra={"user_id": result.user_id, "points": result.points_earned},
        )
        self.refresh()
