from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator

import pytest

from mathfly.core import workspace as workspace_mod
from mathfly.quiz import _main
from mathfly.quiz.models import Phase
from mathfly.quiz.offline import OfflineQueue
from mathfly.quiz.persistence import ResultStore, sqlite_url
from fixtures import make_results


def run(tmp_path: Path, *argv: str) -> int:
    return _main.main([*argv, "--workspace", str(tmp_path)])


@pytest.fixture
def layout(tmp_path: Path) -> workspace_mod.WorkspaceLayout:
    return workspace_mod.ensure_workspace(path=tmp_path)


@pytest.fixture
def workspace_store(layout) -> Iterator[ResultStore]:
    store = ResultStore(sqlite_url(layout.database_path))
    yield store
    store.dispose()


def scripted_input(monkeypatch: pytest.MonkeyPatch, answers: list[str]):
    iterator = iter(answers)

    def _input(prompt: str = "") -> str:
        return next(iterator)

    monkeypatch.setattr("builtins.input", _input)


def test_config_init_writes_template_once(tmp_path: Path, capsys) -> None:
    assert run(tmp_path, "config", "init") == 0
    target = tmp_path / "config" / "mathfly.toml"
    assert target.exists()
    assert f"Created template {target}" in capsys.readouterr().out

    assert run(tmp_path, "config", "init") == 2
    assert "already exists" in capsys.readouterr().err

    assert run(tmp_path, "config", "init", "--force") == 0


def test_config_show_reports_resolved_values(tmp_path: Path, capsys) -> None:
    run(tmp_path, "config", "init")
    capsys.readouterr()

    code = run(tmp_path, "config", "show", "--log-level", "debug")

    out = capsys.readouterr().out
    assert code == 0
    assert "config file: " in out
    assert "mathfly.toml" in out
    assert "question_count: 5" in out
    assert "question_bank: (bundled)" in out
    assert "user_id: (unset)" in out
    assert "log_level: DEBUG" in out


def test_missing_config_file_is_usage_error(tmp_path: Path, capsys) -> None:
    code = run(
        tmp_path, "phases", "--config", str(tmp_path / "nope.toml")
    )

    assert code == 2
    assert "Config file not found" in capsys.readouterr().err


def test_phases_requires_user(tmp_path: Path, capsys) -> None:
    assert run(tmp_path, "phases") == 2
    assert "No user configured" in capsys.readouterr().err


def test_phases_shows_unlock_status(
    tmp_path: Path, capsys, workspace_store
) -> None:
    workspace_store.save("ana", make_results(score=40, correct=3, total=5))

    code = run(tmp_path, "phases", "--user", "ana")

    out = capsys.readouterr().out
    assert code == 0
    assert "Phases" in out
    assert "completed" in out
    assert "unlocked" in out
    assert "40" in out


def test_stats_and_ranking(tmp_path: Path, capsys, workspace_store) -> None:
    workspace_store.save("ana", make_results(score=16, correct=1, total=2))
    workspace_store.save(
        "bia", make_results(Phase.MEDIO, score=90, correct=5, total=5)
    )

    assert run(tmp_path, "stats", "--user", "ana") == 0
    out = capsys.readouterr().out
    assert "Stats for ana" in out
    assert "50.0%" in out

    assert run(tmp_path, "ranking", "--limit", "5") == 0
    out = capsys.readouterr().out
    assert out.index("bia") < out.index("ana")


def test_ranking_without_results(tmp_path: Path, capsys) -> None:
    assert run(tmp_path, "ranking") == 0
    assert "No results recorded yet." in capsys.readouterr().out


def test_sync_replays_offline_queue(
    tmp_path: Path, capsys, layout, workspace_store
) -> None:
    assert run(tmp_path, "sync", "--user", "ana") == 0
    assert "Offline queue is empty." in capsys.readouterr().out

    queue = OfflineQueue(layout.offline_queue_path)
    queue.enqueue(make_results(score=16), user_id="ana")
    queue.enqueue(make_results(score=30), user_id="ana")

    assert run(tmp_path, "sync", "--user", "ana") == 0
    assert "Synced 2 of 2 queued result(s); 0 remaining." in (
        capsys.readouterr().out
    )
    assert [r.points_earned for r in workspace_store.history("ana")] == [
        16,
        30,
    ]
    assert queue.pending() == []


def test_questions_list_bundled_and_filtered(tmp_path: Path, capsys) -> None:
    assert run(tmp_path, "questions", "list", "--phase", "1") == 0
    out = capsys.readouterr().out
    assert "f1" in out
    assert "m1" not in out


def test_questions_list_empty_bank(tmp_path: Path, capsys) -> None:
    bank = tmp_path / "empty.jsonl"
    bank.write_text("", encoding="utf-8")

    code = run(tmp_path, "questions", "list", "--bank", str(bank))

    assert code == 1
    assert "No questions to show" in capsys.readouterr().out


def test_unknown_phase_is_reported(tmp_path: Path, capsys) -> None:
    code = run(tmp_path, "play", "--user", "ana", "--phase", "9")

    assert code == 1
    assert "Phase number must be between 1 and 4" in capsys.readouterr().err


def test_play_console_session_records_result(
    tmp_path: Path, capsys, monkeypatch, workspace_store
) -> None:
    scripted_input(monkeypatch, ["a", "a"])

    code = run(tmp_path, "play", "--user", "ana", "--count", "2")

    out = capsys.readouterr().out
    assert code == 0
    assert "Question 1" in out
    assert "Quiz Results" in out
    history = workspace_store.history("ana")
    assert len(history) == 1
    assert history[0].phase == 1
    assert history[0].total_questions == 2
    assert (tmp_path / "logs" / "mathfly.log").exists()


def test_play_queues_offline_when_store_is_unreachable(
    tmp_path: Path, capsys, monkeypatch, layout
) -> None:
    scripted_input(monkeypatch, ["a", "a"])
    url = sqlite_url(tmp_path / "missing" / "dir" / "x.sqlite3")

    code = run(
        tmp_path,
        "play",
        "--user",
        "ana",
        "--count",
        "2",
        "--database-url",
        url,
    )

    captured = capsys.readouterr()
    assert code == 0
    assert "results will be queued offline" in captured.err
    assert "Quiz Results" in captured.out
    pending = OfflineQueue(layout.offline_queue_path).pending()
    assert len(pending) == 1
    assert pending[0].user_id == "ana"
    assert pending[0].result.total_questions == 2


def test_play_log_records_carry_player_and_phase(
    tmp_path: Path, monkeypatch, workspace_store
) -> None:
    scripted_input(monkeypatch, ["q"])

    assert run(tmp_path, "play", "--user", "ana") == 0

    lines = (tmp_path / "logs" / "mathfly.log").read_text(encoding="utf-8")
    ended = [
        json.loads(line)
        for line in lines.splitlines()
        if "Console session ended" in line
    ]
    assert ended[0]["context"] == {
        "command": "play",
        "user_id": "ana",
        "phase": "facil",
    }
    assert ended[0]["extra"]["exit_action"] == "quit"


def test_play_quit_saves_nothing(
    tmp_path: Path, capsys, monkeypatch, workspace_store
) -> None:
    scripted_input(monkeypatch, ["q"])

    assert run(tmp_path, "play", "--user", "ana") == 0
    assert "Leaving without saving" in capsys.readouterr().out
    assert workspace_store.history("ana") == []


def test_play_refuses_locked_phase(tmp_path: Path, capsys) -> None:
    code = run(tmp_path, "play", "--user", "ana", "--phase", "medio")

    assert code == 1
    assert "Phase 2 is locked" in capsys.readouterr().err


def test_play_without_user_fails_to_start(tmp_path: Path, capsys) -> None:
    code = run(tmp_path, "play")

    assert code == 1
    assert "User is not authenticated." in capsys.readouterr().out
