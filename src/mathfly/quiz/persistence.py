"""Result store (SQLAlchemy) and the gateway that adds offline fallback."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

from sqlalchemy import create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import PersistenceError
from .models import PhaseResult, QuizResults, RankingEntry, UserProgress
from .offline import OfflineEntry, OfflineQueue
from .tables import Base, PhaseResultRow, UserProgressRow

__all__ = [
    "ResultListener",
    "ResultStore",
    "ResultSink",
    "ResultGateway",
    "SyncReport",
    "sqlite_url",
]

logger = logging.getLogger(__name__)

ResultListener = Callable[[PhaseResult], None]


def sqlite_url(path: Path) -> str:
    return f"sqlite:///{Path(path).resolve()}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _phase_result(row: PhaseResultRow) -> PhaseResult:
    return PhaseResult(
        user_id=row.user_id,
        phase=row.phase,
        correct_answers=row.correct_answers,
        points_earned=row.points_earned,
        completed_at=row.completed_at,
        total_questions=row.total_questions,
    )


class ResultSink(Protocol):
    def save(self, user_id: str, results: QuizResults) -> PhaseResult:
        ...


class ResultStore:
    """Durable ``phase_results`` / ``user_progress`` storage.

    Any SQLAlchemy URL works; the CLI defaults to a SQLite file inside the
    workspace. Inserts into ``phase_results`` are broadcast to subscribers
    after the transaction commits.
    """

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        engine_kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        try:
            self.engine = create_engine(url, **engine_kwargs)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Unable to open result store: {exc}"
            ) from exc
        self._schema_ready = False
        self._schema_lock = threading.Lock()
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._clock = clock
        self._listeners: list[ResultListener] = []
        self._listeners_lock = threading.Lock()

    def _ensure_schema(self) -> None:
        with self._schema_lock:
            if self._schema_ready:
                return
            try:
                Base.metadata.create_all(self.engine)
            except SQLAlchemyError as exc:
                raise PersistenceError(
                    f"Unable to open result store: {exc}"
                ) from exc
            self._schema_ready = True

    def save(self, user_id: str, results: QuizResults) -> PhaseResult:
        """Append a phase result and upsert progress in one transaction."""

        self._ensure_schema()
        phase_number = results.phase.number
        try:
            with self._sessions.begin() as session:
                row = PhaseResultRow(
                    user_id=user_id,
                    phase=phase_number,
                    correct_answers=results.correct_answers,
                    points_earned=results.score,
                    total_questions=results.total_questions,
                    completed_at=self._clock(),
                )
                session.add(row)

                progress = session.scalars(
                    select(UserProgressRow)
                    .where(UserProgressRow.user_id == user_id)
                    .with_for_update()
                ).first()
                if progress is not None:
                    progress.total_correct += results.correct_answers
                    progress.total_points += results.score
                    progress.max_phase = max(progress.max_phase, phase_number)
                else:
                    session.add(
                        UserProgressRow(
                            user_id=user_id,
                            max_phase=phase_number,
                            total_correct=results.correct_answers,
                            total_points=results.score,
                        )
                    )
                session.flush()
                saved = _phase_result(row)
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to save phase result",
                extra={"user_id": user_id, "phase": phase_number},
                exc_info=True,
            )
            raise PersistenceError(f"Failed to save result: {exc}") from exc

        logger.info(
            "Saved phase result",
            extra={
                "user_id": user_id,
                "phase": phase_number,
                "points": results.score,
            },
        )
        self._notify(saved)
        return saved

    def history(self, user_id: str) -> list[PhaseResult]:
        query = (
            select(PhaseResultRow)
            .where(PhaseResultRow.user_id == user_id)
            .order_by(PhaseResultRow.completed_at, PhaseResultRow.id)
        )
        return [_phase_result(row) for row in self._fetch(query)]

    def recent_results(
        self, user_id: str, limit: int = 10
    ) -> list[PhaseResult]:
        query = (
            select(PhaseResultRow)
            .where(PhaseResultRow.user_id == user_id)
            .order_by(
                PhaseResultRow.completed_at.desc(), PhaseResultRow.id.desc()
            )
            .limit(limit)
        )
        return [_phase_result(row) for row in self._fetch(query)]

    def top_results(self, limit: int = 20) -> list[RankingEntry]:
        query = (
            select(PhaseResultRow)
            .order_by(
                PhaseResultRow.points_earned.desc(),
                PhaseResultRow.completed_at,
            )
            .limit(limit)
        )
        return [
            RankingEntry(
                user_id=row.user_id,
                points=row.points_earned,
                phase=row.phase,
                completed_at=row.completed_at,
            )
            for row in self._fetch(query)
        ]

    def progress(self, user_id: str) -> UserProgress | None:
        query = select(UserProgressRow).where(
            UserProgressRow.user_id == user_id
        )
        rows = self._fetch(query)
        if not rows:
            return None
        row = rows[0]
        return UserProgress(
            user_id=row.user_id,
            total_correct=row.total_correct,
            total_points=row.total_points,
            max_phase=row.max_phase,
        )

    def _fetch(self, query) -> list:
        self._ensure_schema()
        try:
            with self._sessions() as session:
                return list(session.scalars(query))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read results: {exc}") from exc

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        """Register ``listener`` for committed inserts; return an unsubscriber."""

        with self._listeners_lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, result: PhaseResult) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(result)
            except Exception:
                logger.exception(
                    "Result listener failed",
                    extra={"listener": repr(listener)},
                )

    def dispose(self) -> None:
        self.engine.dispose()


@dataclass(frozen=True)
class SyncReport:
    """Outcome of replaying the offline queue."""

    attempted: int
    synced: int
    remaining: int

    @property
    def complete(self) -> bool:
        return self.remaining == 0


class ResultGateway:
    """Saves finished sessions and replays the offline queue on demand."""

    def __init__(
        self, store: ResultSink, queue: OfflineQueue | None = None
    ) -> None:
        self.store = store
        self.queue = queue
        self._sync_lock = threading.Lock()

    def save(self, user_id: str, results: QuizResults) -> PhaseResult:
        """Persist ``results``; raises :class:`PersistenceError` on failure."""

        return self.store.save(user_id, results)

    def save_offline(
        self, results: QuizResults, *, user_id: str | None = None
    ) -> OfflineEntry | None:
        if self.queue is None:
            logger.warning(
                "No offline queue configured; result dropped",
                extra={"phase": results.phase.value, "score": results.score},
            )
            return None
        return self.queue.enqueue(results, user_id=user_id)

    def sync_offline_progress(self, user_id: str) -> SyncReport:
        """Replay ``user_id``'s unsynced entries in queue order.

        Entries queued for another player stay pending; entries queued
        without a player are credited to ``user_id``. Each entry is marked
        synced only after its save succeeds, and the replay stops at the
        first failure so later attempts resume there. Concurrent callers
        are serialized.
        """

        if self.queue is None:
            return SyncReport(attempted=0, synced=0, remaining=0)

        with self._sync_lock:
            pending = [
                entry
                for entry in self.queue.pending()
                if entry.user_id in (None, user_id)
            ]
            attempted = 0
            synced = 0
            for entry in pending:
                attempted += 1
                try:
                    self.save(entry.user_id or user_id, entry.result)
                except PersistenceError as exc:
                    logger.warning(
                        "Offline sync interrupted",
                        extra={"entry_id": entry.id, "error": str(exc)},
                    )
                    break
                self.queue.mark_synced(entry.id)
                synced += 1
            remaining = len(pending) - synced

        logger.info(
            "Offline sync finished",
            extra={
                "user_id": user_id,
                "synced": synced,
                "remaining": remaining,
            },
        )
        return SyncReport(attempted=attempted, synced=synced, remaining=remaining)
