from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from mathfly.core import logging as core_logging
from mathfly.quiz.models import Phase


def _records(path: Path) -> list[dict]:
    return [
        json.loads(line)
        for line in path.read_text(encoding="utf-8").splitlines()
    ]


def _managed(logger: logging.Logger) -> list[str]:
    return sorted(
        h.get_name() for h in logger.handlers if h.get_name().startswith("mathfly-")
    )


def test_records_carry_quiz_context_and_extras(tmp_path):
    logger, path = core_logging.configure_logger(
        "mathfly", log_dir=tmp_path / "logs"
    )

    with core_logging.log_context(command="play", user_id="ana"):
        with core_logging.log_context(phase="facil", ignored=None):
            logger.info(
                "Quiz started",
                extra={"questions": 5, "bank": Path("/tmp/bank.jsonl")},
            )
        logger.info("Session ended")
    logger.info("Outside any block")

    first, second, third = _records(path)
    assert path == tmp_path / "logs" / "mathfly.log"
    assert first["message"] == "Quiz started"
    assert first["context"] == {
        "command": "play",
        "user_id": "ana",
        "phase": "facil",
    }
    assert first["extra"] == {"questions": 5, "bank": "/tmp/bank.jsonl"}
    assert second["context"] == {"command": "play", "user_id": "ana"}
    assert "context" not in third
    assert "extra" not in third


def test_non_json_values_are_rendered(tmp_path):
    logger, path = core_logging.configure_logger(
        "mathfly", log_dir=tmp_path / "logs"
    )

    try:
        raise ValueError("store down")
    except ValueError:
        logger.exception(
            "Saving result failed",
            extra={
                "phase": Phase.MEDIO,
                "completed_at": datetime(2024, 5, 1, tzinfo=timezone.utc),
                "users": {"ana"},
            },
        )

    record = _records(path)[-1]
    assert record["level"] == "ERROR"
    assert "store down" in record["exception"]
    assert record["extra"]["phase"] == "medio"
    assert record["extra"]["completed_at"].startswith("2024-05-01")
    assert record["extra"]["users"] == ["ana"]


def test_level_filters_file_output(tmp_path):
    logger, path = core_logging.configure_logger(
        "mathfly", log_dir=tmp_path / "logs", level="warning"
    )

    logging.getLogger("mathfly.quiz.engine").info("hidden")
    logging.getLogger("mathfly.quiz.persistence").warning("shown")

    records = _records(path)
    assert [r["message"] for r in records] == ["shown"]
    assert records[0]["logger"] == "mathfly.quiz.persistence"


def test_reconfigure_replaces_handlers(tmp_path):
    logger, first = core_logging.configure_logger(
        "mathfly", log_dir=tmp_path / "one", verbose=True
    )
    assert _managed(logger) == ["mathfly-console", "mathfly-file"]

    _, second = core_logging.configure_logger(
        "mathfly", log_dir=tmp_path / "two"
    )

    assert _managed(logger) == ["mathfly-file"]
    assert second.parent == tmp_path / "two"
    assert first != second

    core_logging.release_logger(logger)
    assert _managed(logger) == []


def test_verbose_mirrors_debug_to_stderr(tmp_path, capsys):
    logger, path = core_logging.configure_logger(
        "mathfly", log_dir=tmp_path / "logs", level="ERROR", verbose=True
    )

    logging.getLogger("mathfly.quiz.controller").debug("Question timed out")

    assert "DEBUG mathfly.quiz.controller: Question timed out" in (
        capsys.readouterr().err
    )
    assert _records(path)[0]["message"] == "Question timed out"


def test_release_leaves_foreign_handlers(tmp_path):
    logger, _ = core_logging.configure_logger(
        "mathfly", log_dir=tmp_path / "logs"
    )
    foreign = logging.NullHandler()
    logger.addHandler(foreign)

    core_logging.release_logger(logger)

    assert logger.handlers == [foreign]
    logger.removeHandler(foreign)
