"""Configuration loader for quiz commands."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

from mathfly.core import config as core_config
from mathfly.core import workspace as workspace_mod

from .errors import QuizConfigError
from .persistence import sqlite_url
from .scoring import ScoringRules

CONFIG_FILENAME = "mathfly.toml"
CONFIG_ENV = "MATHFLY_CONFIG"
ENV_PREFIX = "MATHFLY_"

_DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class QuizConfig:
    """Fully resolved settings for a quiz run."""

    question_count: int
    time_limit: int
    bonus_divisor: float
    feedback_delay: float
    unlock_threshold: int
    question_bank: Optional[Path]
    database_url: str
    offline_queue: Path
    user_id: Optional[str]
    log_level: str

    def scoring_rules(self) -> ScoringRules:
        return ScoringRules(
            time_limit=self.time_limit, bonus_divisor=self.bonus_divisor
        )


@dataclass(frozen=True)
class ConfigOverrides:
    """CLI-sourced overrides applied on top of file/env options."""

    user_id: Optional[str] = None
    question_count: Optional[int] = None
    question_bank: Optional[Path] = None
    database_url: Optional[str] = None
    log_level: Optional[str] = None


@dataclass(frozen=True)
class LoadResult:
    config: QuizConfig
    layout: workspace_mod.WorkspaceLayout
    config_path: Optional[Path]


def load_config(
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[ConfigOverrides] = None,
    env: Optional[Mapping[str, str]] = None,
    workspace_path: Optional[Path] = None,
) -> LoadResult:
    """Load configuration applying precedence CLI > env > TOML > defaults."""

    overrides = overrides or ConfigOverrides()
    env_map = os.environ if env is None else env

    try:
        layout = workspace_mod.ensure_workspace(
            env=env_map, path=workspace_path
        )
    except workspace_mod.WorkspaceError as exc:
        raise QuizConfigError(str(exc)) from exc
    default_path = layout.path_for("config") / CONFIG_FILENAME

    requested_path = _resolve_config_path(
        config_path=config_path, env_map=env_map, default_path=default_path
    )

    table = _default_table()
    loaded_path: Optional[Path] = None
    if requested_path.exists():
        loaded_path = requested_path
        try:
            parsed = core_config.load_toml(requested_path)
            core_config.merge_defaults(table, parsed)
        except core_config.TomlConfigError as exc:
            raise QuizConfigError(str(exc)) from exc
    elif requested_path != default_path:
        raise QuizConfigError(f"Config file not found: {requested_path}")

    quiz = table["quiz"]
    question_count = _positive_int(
        "quiz.question_count",
        _pick_first(
            overrides.question_count,
            _env_int(env_map, "QUESTION_COUNT"),
            quiz["question_count"],
        ),
    )
    time_limit = _positive_int("quiz.time_limit", quiz["time_limit"])
    bonus_divisor = float(quiz["bonus_divisor"])
    if bonus_divisor <= 0:
        raise QuizConfigError("quiz.bonus_divisor must be > 0.")
    feedback_delay = float(quiz["feedback_delay"])
    if feedback_delay < 0:
        raise QuizConfigError("quiz.feedback_delay must be >= 0.")
    threshold = _positive_int(
        "quiz.unlock_threshold", quiz["unlock_threshold"]
    )

    bank = _pick_first(
        overrides.question_bank,
        _env_path(env_map, "QUESTION_BANK"),
        _optional_path(table["questions"]["bank"]),
    )
    if bank is not None and not bank.is_absolute():
        bank = (layout.home / bank).resolve()

    database_url = _pick_first(
        overrides.database_url,
        _env_string(env_map, "DATABASE_URL"),
        _optional_string(table["storage"]["database_url"]),
    ) or sqlite_url(layout.database_path)

    user_id = _pick_first(
        overrides.user_id,
        _env_string(env_map, "USER"),
        _optional_string(table["user"]["id"]),
    )

    log_level = _pick_first(
        overrides.log_level,
        _env_string(env_map, "LOG_LEVEL"),
        _optional_string(table["logging"]["level"]),
    ) or _DEFAULT_LOG_LEVEL

    config = QuizConfig(
        question_count=question_count,
        time_limit=time_limit,
        bonus_divisor=bonus_divisor,
        feedback_delay=feedback_delay,
        unlock_threshold=threshold,
        question_bank=bank,
        database_url=str(database_url),
        offline_queue=layout.offline_queue_path,
        user_id=user_id,
        log_level=str(log_level).upper(),
    )
    return LoadResult(config=config, layout=layout, config_path=loaded_path)


def _default_table() -> MutableMapping[str, MutableMapping[str, object]]:
    return {
        "quiz": {
            "question_count": 5,
            "time_limit": 30,
            "bonus_divisor": 5.0,
            "feedback_delay": 1.5,
            "unlock_threshold": 3,
        },
        "questions": {"bank": ""},
        "storage": {"database_url": ""},
        "user": {"id": ""},
        "logging": {"level": _DEFAULT_LOG_LEVEL},
    }


def _resolve_config_path(
    *,
    config_path: Optional[Path],
    env_map: Mapping[str, str],
    default_path: Path,
) -> Path:
    if config_path is not None:
        return config_path.expanduser()
    env_candidate = _optional_string(env_map.get(CONFIG_ENV))
    if env_candidate:
        return Path(env_candidate).expanduser()
    return default_path


def _positive_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise QuizConfigError(f"{name} must be a positive integer.")
    return value


def _optional_path(value: object) -> Optional[Path]:
    raw = _optional_string(value)
    return Path(raw).expanduser() if raw else None


def _optional_string(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _env_string(env_map: Mapping[str, str], key: str) -> Optional[str]:
    return _optional_string(env_map.get(f"{ENV_PREFIX}{key}"))


def _env_path(env_map: Mapping[str, str], key: str) -> Optional[Path]:
    raw = _env_string(env_map, key)
    return Path(raw).expanduser() if raw else None


def _env_int(env_map: Mapping[str, str], key: str) -> Optional[int]:
    raw = _env_string(env_map, key)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise QuizConfigError(
            f"{ENV_PREFIX}{key} must be an integer, got '{raw}'."
        ) from exc


def _pick_first(*candidates):
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None
