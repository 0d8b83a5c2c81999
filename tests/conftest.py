from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Iterator

import pytest

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

# Ensure project root and src/ are importable when tests spawn subprocesses
ROOT = TESTS_DIR.parent
for extra in (ROOT, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import FakeClock, WorkspaceBuilder  # noqa: E402

from mathfly.core.logging import release_logger  # noqa: E402
from mathfly.quiz.offline import OfflineQueue  # noqa: E402
from mathfly.quiz.persistence import ResultGateway, ResultStore  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    """Keep every test away from the real workspace and MATHFLY_* env."""

    for key in list(os.environ):
        if key.startswith("MATHFLY_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MATHFLY_DATA_HOME", str(tmp_path / "mathfly-home"))
    yield
    release_logger(logging.getLogger("mathfly"))


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a helper bound to pytest's per-test tmp directory."""

    return WorkspaceBuilder(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Iterator[ResultStore]:
    """In-memory result store, disposed after the test."""

    result_store = ResultStore("sqlite://")
    yield result_store
    result_store.dispose()


@pytest.fixture
def queue(tmp_path: Path, clock: FakeClock) -> OfflineQueue:
    return OfflineQueue(tmp_path / "queue" / "offline.jsonl", clock=clock)


@pytest.fixture
def gateway(store: ResultStore, queue: OfflineQueue) -> ResultGateway:
    return ResultGateway(store, queue)
