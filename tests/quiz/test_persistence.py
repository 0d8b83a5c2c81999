from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from mathfly.quiz.errors import PersistenceError
from mathfly.quiz.models import Phase
from mathfly.quiz.persistence import (
    ResultGateway,
    ResultStore,
    sqlite_url,
)
from fixtures import make_results


class SteppingClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def timed_store():
    store = ResultStore("sqlite://", clock=SteppingClock())
    yield store
    store.dispose()


class FlakyStore:
    """Delegates to a real store but fails on the listed call numbers."""

    def __init__(self, store: ResultStore, fail_on: set[int]) -> None:
        self.store = store
        self.fail_on = fail_on
        self.calls = 0

    def save(self, user_id, results):
        self.calls += 1
        if self.calls in self.fail_on:
            raise PersistenceError("connection lost")
        return self.store.save(user_id, results)


def test_save_inserts_result_and_progress(store):
    saved = store.save("ana", make_results(Phase.FACIL, score=16, correct=1))

    assert saved.user_id == "ana"
    assert saved.phase == 1
    assert saved.points_earned == 16
    assert saved.total_questions == 2

    progress = store.progress("ana")
    assert progress.total_points == 16
    assert progress.total_correct == 1
    assert progress.max_phase == 1


def test_save_accumulates_progress(store):
    store.save("ana", make_results(Phase.MEDIO, score=40, correct=2))
    store.save("ana", make_results(Phase.FACIL, score=10, correct=1))

    progress = store.progress("ana")

    assert progress.total_points == 50
    assert progress.total_correct == 3
    assert progress.max_phase == 2
    assert len(store.history("ana")) == 2


def test_progress_is_per_user(store):
    store.save("ana", make_results(score=10))

    assert store.progress("bia") is None
    assert store.history("bia") == []


def test_history_and_recent_ordering(timed_store):
    for score in (10, 20, 30):
        timed_store.save("ana", make_results(score=score))

    history = timed_store.history("ana")
    recent = timed_store.recent_results("ana", limit=2)

    assert [r.points_earned for r in history] == [10, 20, 30]
    assert [r.points_earned for r in recent] == [30, 20]


def test_top_results_orders_by_points(timed_store):
    timed_store.save("ana", make_results(score=16))
    timed_store.save("bia", make_results(Phase.EXPERT, score=112))
    timed_store.save("caio", make_results(score=40))

    ranking = timed_store.top_results(limit=2)

    assert [(r.user_id, r.points, r.phase) for r in ranking] == [
        ("bia", 112, 4),
        ("caio", 40, 1),
    ]


def test_save_is_atomic_when_progress_write_fails(store):
    def fail_progress(conn, cursor, statement, parameters, context, many):
        if "user_progress" in statement and statement.lstrip().upper()[
            :6
        ] in ("INSERT", "UPDATE"):
            raise OperationalError(statement, parameters, Exception("boom"))

    event.listen(store.engine, "before_cursor_execute", fail_progress)
    try:
        with pytest.raises(PersistenceError):
            store.save("ana", make_results(score=16))
    finally:
        event.remove(store.engine, "before_cursor_execute", fail_progress)

    assert store.history("ana") == []
    assert store.progress("ana") is None


def test_subscribers_receive_committed_results(store):
    received = []
    unsubscribe = store.subscribe(received.append)

    store.save("ana", make_results(score=16))
    unsubscribe()
    store.save("ana", make_results(score=10))

    assert [r.points_earned for r in received] == [16]


def test_failing_subscriber_does_not_break_save(store):
    def broken(result):
        raise RuntimeError("listener bug")

    received = []
    store.subscribe(broken)
    store.subscribe(received.append)

    saved = store.save("ana", make_results(score=16))

    assert received == [saved]


def test_file_store_persists_between_instances(tmp_path):
    url = sqlite_url(tmp_path / "db" / "results.sqlite3")
    (tmp_path / "db").mkdir()

    first = ResultStore(url)
    first.save("ana", make_results(score=16))
    first.dispose()

    second = ResultStore(url)
    try:
        assert [r.points_earned for r in second.history("ana")] == [16]
    finally:
        second.dispose()


def test_unopenable_database_fails_on_first_use(tmp_path):
    store = ResultStore(sqlite_url(tmp_path / "missing" / "dir" / "x.sqlite3"))

    try:
        with pytest.raises(PersistenceError, match="Unable to open"):
            store.history("ana")
        with pytest.raises(PersistenceError, match="Unable to open"):
            store.save("ana", make_results())
    finally:
        store.dispose()


def test_gateway_without_queue_drops_offline_results(store):
    gateway = ResultGateway(store)

    assert gateway.save_offline(make_results()) is None
    report = gateway.sync_offline_progress("ana")
    assert (report.attempted, report.synced, report.remaining) == (0, 0, 0)
    assert report.complete


def test_sync_replays_queue_in_order_and_is_idempotent(
    timed_store, queue
):
    gateway = ResultGateway(timed_store, queue)
    gateway.save_offline(make_results(score=10), user_id="ana")
    gateway.save_offline(make_results(score=20))

    report = gateway.sync_offline_progress("ana")

    assert (report.attempted, report.synced, report.remaining) == (2, 2, 0)
    assert [r.points_earned for r in timed_store.history("ana")] == [10, 20]
    assert queue.pending() == []

    again = gateway.sync_offline_progress("ana")
    assert again.attempted == 0
    assert len(timed_store.history("ana")) == 2


def test_sync_credits_each_entry_to_its_own_player(store, queue):
    gateway = ResultGateway(store, queue)
    gateway.save_offline(make_results(score=99), user_id="bob")
    gateway.save_offline(make_results(score=10), user_id="ana")

    report = gateway.sync_offline_progress("ana")

    assert (report.attempted, report.synced, report.remaining) == (1, 1, 0)
    assert [r.points_earned for r in store.history("ana")] == [10]
    assert store.history("bob") == []
    assert [e.user_id for e in queue.pending()] == ["bob"]

    later = gateway.sync_offline_progress("bob")
    assert later.synced == 1
    assert [r.points_earned for r in store.history("bob")] == [99]
    assert queue.pending() == []


def test_sync_stops_at_first_failure_and_resumes(store, queue):
    flaky = FlakyStore(store, fail_on={2})
    gateway = ResultGateway(flaky, queue)
    for score in (10, 20, 30):
        gateway.save_offline(make_results(score=score))

    report = gateway.sync_offline_progress("ana")

    assert (report.attempted, report.synced, report.remaining) == (2, 1, 2)
    assert not report.complete
    assert [e.result.score for e in queue.pending()] == [20, 30]

    resumed = gateway.sync_offline_progress("ana")
    assert resumed.synced == 2
    assert [r.points_earned for r in store.history("ana")] == [10, 20, 30]
