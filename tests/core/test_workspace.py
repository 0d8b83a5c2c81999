from __future__ import annotations

from pathlib import Path

import pytest

from mathfly.core import workspace
from mathfly.quiz.offline import OfflineQueue
from mathfly.quiz.persistence import ResultStore, sqlite_url
from fixtures import make_results


def test_fresh_workspace_holds_store_and_queue_directories(tmp_path):
    layout = workspace.ensure_workspace(path=tmp_path / "ws")

    assert dict(layout.items()) == {
        "config": layout.home / "config",
        "logs": layout.home / "logs",
        "db": layout.home / "db",
        "queue": layout.home / "queue",
    }
    assert all(layout.created.values())
    assert layout.database_path == layout.home / "db" / "mathfly.sqlite3"
    assert layout.offline_queue_path == (
        layout.home / "queue" / "offline_progress.jsonl"
    )


def test_store_and_queue_live_inside_the_workspace(tmp_path):
    layout = workspace.ensure_workspace(path=tmp_path / "ws")

    store = ResultStore(sqlite_url(layout.database_path))
    store.save("ana", make_results())
    store.dispose()
    OfflineQueue(layout.offline_queue_path).enqueue(make_results())

    assert layout.database_path.is_file()
    assert layout.offline_queue_path.is_file()


def test_second_run_reports_existing_directories(tmp_path):
    workspace.ensure_workspace(path=tmp_path / "ws")

    again = workspace.ensure_workspace(path=tmp_path / "ws")

    assert not any(again.created.values())


@pytest.mark.parametrize("custom, expected", [(True, "custom"), (False, "default")])
def test_home_resolution_from_environment(
    tmp_path, monkeypatch, custom, expected
):
    monkeypatch.setattr(workspace, "DEFAULT_WORKSPACE", tmp_path / "default")
    value = str(tmp_path / "custom") if custom else "  "

    layout = workspace.ensure_workspace(
        env={workspace.WORKSPACE_ENV: value}, create=False
    )

    target = tmp_path / expected
    assert layout.home == target.resolve()
    assert not target.exists()


def test_describe_layout_lists_every_directory(tmp_path):
    mapping = workspace.describe_layout(path=tmp_path / "ws")

    assert set(mapping) == {"home", "config", "logs", "db", "queue"}
    assert mapping["db"] == mapping["home"] / "db"
    assert not (tmp_path / "ws").exists()


def test_unknown_directory_name(tmp_path):
    layout = workspace.ensure_workspace(path=tmp_path / "ws", create=False)

    with pytest.raises(KeyError, match="backups"):
        layout.path_for("backups")


@pytest.mark.parametrize("blocked", ["", "queue"])
def test_file_in_place_of_directory(tmp_path, blocked):
    home = tmp_path / "ws"
    if blocked:
        home.mkdir()
    (home / blocked if blocked else home).write_text("x", encoding="utf-8")

    with pytest.raises(workspace.WorkspaceError):
        workspace.ensure_workspace(path=home)


def test_default_home_falls_back_to_temp(tmp_path, monkeypatch):
    default = tmp_path / "unwritable"
    fallback = tmp_path / "tmp-home"
    monkeypatch.setattr(workspace, "DEFAULT_WORKSPACE", default)
    monkeypatch.setattr(workspace, "_fallback_base", lambda: fallback)
    real_ensure_dir = workspace._ensure_dir

    def deny_default(path: Path) -> bool:
        if path == default.resolve():
            raise PermissionError("denied")
        return real_ensure_dir(path)

    monkeypatch.setattr(workspace, "_ensure_dir", deny_default)

    layout = workspace.ensure_workspace(env={})

    assert layout.home == fallback
    assert layout.offline_queue_path.parent.is_dir()


def test_explicit_home_never_falls_back(tmp_path, monkeypatch):
    monkeypatch.setattr(workspace, "_fallback_base", lambda: tmp_path / "fb")

    def deny(path: Path) -> bool:
        raise PermissionError("denied")

    monkeypatch.setattr(workspace, "_ensure_dir", deny)

    with pytest.raises(workspace.WorkspaceError, match="Unable to prepare"):
        workspace.ensure_workspace(path=tmp_path / "explicit")
    assert not (tmp_path / "fb").exists()
