"""Durable local queue for results that could not reach the result store."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping

from .errors import OfflineQueueError
from .models import QuizResults
from .utils import read_jsonl, write_jsonl

__all__ = ["OfflineEntry", "OfflineQueue"]

logger = logging.getLogger(__name__)

_LOCK_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class OfflineEntry:
    """A queued result payload awaiting synchronization."""

    id: str
    result: QuizResults
    timestamp: float
    synced: bool = False
    user_id: str | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "result": self.result.to_dict(),
            "user_id": self.user_id,
            "timestamp": self.timestamp,
            "synced": self.synced,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "OfflineEntry":
        return cls(
            id=str(data["id"]),
            result=QuizResults.from_dict(data["result"]),
            timestamp=float(data.get("timestamp", 0.0)),
            synced=bool(data.get("synced", False)),
            user_id=data.get("user_id"),
        )



class _QueueLock:
    """Filesystem lock shared by every process using the same queue file."""

    def __init__(self, path: Path, timeout: float) -> None:
        self._path = path
        self._timeout = timeout

    def __enter__(self) -> "_QueueLock":
        deadline = time.time() + self._timeout
        while True:
            try:
                fd = os.open(
                    self._path,
                    os.O_CREAT | os.O_EXCL | os.O_WRONLY,
                )
                os.close(fd)
                break
            except FileExistsError:
                if time.time() > deadline:
                    raise OfflineQueueError(
                        f"Timed out waiting for offline queue lock: "
                        f"{self._path}"
                    )
                time.sleep(0.05)
            except OSError as exc:
                raise OfflineQueueError(
                    f"Unable to lock offline queue {self._path}: {exc}"
                ) from exc
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self._path.unlink(missing_ok=True)


class OfflineQueue:
    """Append-mostly JSONL file of :class:`OfflineEntry` records.

    Entries are only ever marked as synced, never removed, except through
    :meth:`clear_synced`. Every read-modify-write holds both a thread lock and
    a ``<queue>.lock`` file next to the queue, so an enqueue racing a sync
    cannot drop either update even across processes.
    """

    def __init__(
        self,
        path: Path,
        *,
        clock: Callable[[], float] = time.time,
        lock_timeout: float = _LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        self._lock_path = self.path.with_name(self.path.name + ".lock")
        self._lock_timeout = lock_timeout

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise OfflineQueueError(
                    f"Unable to prepare offline queue {self.path}: {exc}"
                ) from exc
            with _QueueLock(self._lock_path, self._lock_timeout):
                yield

    def _load(self) -> list[OfflineEntry]:
        try:
            return [
                OfflineEntry.from_record(record)
                for record in read_jsonl(self.path)
            ]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise OfflineQueueError(
                f"Offline queue at {self.path} is unreadable: {exc}"
            ) from exc

    def _store(self, entries: list[OfflineEntry]) -> None:
        try:
            write_jsonl(self.path, [entry.to_record() for entry in entries])
        except OSError as exc:
            raise OfflineQueueError(
                f"Failed to write offline queue {self.path}: {exc}"
            ) from exc

    def enqueue(
        self, result: QuizResults, *, user_id: str | None = None
    ) -> OfflineEntry:
        entry = OfflineEntry(
            id=uuid.uuid4().hex,
            result=result,
            timestamp=self._clock(),
            synced=False,
            user_id=user_id,
        )
        with self._exclusive():
            try:
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(entry.to_record()))
                    handle.write("\n")
            except OSError as exc:
                raise OfflineQueueError(
                    f"Failed to append to offline queue {self.path}: {exc}"
                ) from exc
        logger.info(
            "Queued result offline",
            extra={"entry_id": entry.id, "phase": result.phase.value},
        )
        return entry

    def entries(self) -> list[OfflineEntry]:
        with self._exclusive():
            return self._load()

    def pending(self) -> list[OfflineEntry]:
        return [entry for entry in self.entries() if not entry.synced]

    def mark_synced(self, entry_id: str) -> bool:
        """Flag ``entry_id`` as synced; return ``False`` if it is unknown."""

        with self._exclusive():
            entries = self._load()
            found = False
            for index, entry in enumerate(entries):
                if entry.id == entry_id and not entry.synced:
                    entries[index] = replace(entry, synced=True)
                    found = True
                    break
            if found:
                self._store(entries)
        return found

    def clear_synced(self) -> int:
        """Drop synced entries and return how many were removed."""

        with self._exclusive():
            entries = self._load()
            kept = [entry for entry in entries if not entry.synced]
            removed = len(entries) - len(kept)
            if removed:
                self._store(kept)
        return removed
