"""``mathfly`` quiz subcommands: play, phases, stats, ranking, sync and more."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table

from mathfly.core import config_templates
from mathfly.core import logging as logging_mod
from mathfly.core.logging import log_context
from mathfly.core import workspace as workspace_mod

from . import stats as stats_mod
from .config import ConfigOverrides, LoadResult, QuizConfig, load_config
from .console import (
    render_phase_table,
    render_ranking,
    render_stats,
    run_console_quiz,
)
from .controller import QuizController
from .engine import QuizEngine
from .errors import PersistenceError, QuizConfigError, QuizError
from .models import Phase
from .offline import OfflineQueue
from .persistence import ResultGateway, ResultStore
from .questions import (
    BundledQuestionSource,
    JsonlQuestionSource,
    QuestionProvider,
)
from .unlock import is_unlocked, phase_statuses

LOGGER_NAME = "mathfly"


@dataclass
class QuizRuntime:
    """Collaborators shared by every quiz subcommand."""

    loaded: LoadResult
    logger: logging.Logger
    log_path: Path
    store: ResultStore
    gateway: ResultGateway
    provider: QuestionProvider

    @property
    def config(self) -> QuizConfig:
        return self.loaded.config

    def close(self) -> None:
        self.store.dispose()
        logging_mod.release_logger(self.logger)


def _overrides_from_args(args: argparse.Namespace) -> ConfigOverrides:
    return ConfigOverrides(
        user_id=getattr(args, "user", None),
        question_count=getattr(args, "count", None),
        question_bank=getattr(args, "bank", None),
        database_url=getattr(args, "database_url", None),
        log_level=getattr(args, "log_level", None),
    )


def _load(args: argparse.Namespace) -> LoadResult:
    return load_config(
        config_path=args.config,
        overrides=_overrides_from_args(args),
        workspace_path=args.workspace,
    )


def build_runtime(args: argparse.Namespace) -> QuizRuntime:
    loaded = _load(args)
    config = loaded.config
    logger, log_path = logging_mod.configure_logger(
        LOGGER_NAME,
        log_dir=loaded.layout.path_for("logs"),
        level=config.log_level,
        verbose=bool(getattr(args, "verbose", False)),
    )
    source = (
        JsonlQuestionSource(config.question_bank)
        if config.question_bank is not None
        else BundledQuestionSource()
    )
    store = ResultStore(config.database_url)
    gateway = ResultGateway(store, OfflineQueue(config.offline_queue))
    logger.debug(
        "Runtime ready",
        extra={
            "command": args.command,
            "workspace": str(loaded.layout.home),
            "config_path": str(loaded.config_path)
            if loaded.config_path
            else None,
        },
    )
    return QuizRuntime(
        loaded=loaded,
        logger=logger,
        log_path=log_path,
        store=store,
        gateway=gateway,
        provider=QuestionProvider(source),
    )


def _error(message: str) -> None:
    sys.stderr.write(f"Error: {message}\n")


def _require_user(runtime: QuizRuntime) -> Optional[str]:
    user_id = runtime.config.user_id
    if not user_id:
        _error("No user configured. Pass --user or set [user] id.")
    return user_id


def _cmd_play(args: argparse.Namespace, runtime: QuizRuntime) -> int:
    config = runtime.config
    phase = Phase.from_value(args.phase)
    user_id = config.user_id

    if user_id:
        try:
            history = runtime.store.history(user_id)
        except PersistenceError as exc:
            # Only phase 1 is open without history; results queue offline.
            runtime.logger.warning(
                "Result store unavailable before play",
                extra={"error": str(exc)},
            )
            sys.stderr.write(
                "Result store unavailable; results will be queued offline.\n"
            )
            history = []
        if not is_unlocked(phase.number, history, config.unlock_threshold):
            _error(
                f"Phase {phase.number} is locked. Score at least "
                f"{config.unlock_threshold} correct answers in phase "
                f"{phase.number - 1} first."
            )
            return 1

    engine = QuizEngine(
        runtime.provider,
        runtime.gateway,
        user=lambda: user_id,
        rules=config.scoring_rules(),
    )

    if args.tui:
        from .view import MathflyApp

        app = MathflyApp(
            engine,
            phase,
            time_limit=config.time_limit,
            question_count=config.question_count,
            feedback_delay=config.feedback_delay,
        )
        with log_context(phase=phase.value):
            app.run()
        return 0

    controller = QuizController(
        engine,
        time_limit=config.time_limit,
        question_count=config.question_count,
    )
    console = Console()
    with log_context(phase=phase.value):
        outcome = run_console_quiz(
            controller,
            phase,
            console,
            lambda: console.input("[bold]Answer:[/] "),
        )
        runtime.logger.info(
            "Console session ended",
            extra={
                "exit_action": outcome.exit_action,
                "timeouts": outcome.timeouts,
            },
        )
    return 1 if outcome.exit_action == "error" else 0


def _cmd_phases(args: argparse.Namespace, runtime: QuizRuntime) -> int:
    user_id = _require_user(runtime)
    if not user_id:
        return 2
    statuses = phase_statuses(
        runtime.store.history(user_id), runtime.config.unlock_threshold
    )
    render_phase_table(Console(), statuses)
    return 0


def _cmd_stats(args: argparse.Namespace, runtime: QuizRuntime) -> int:
    user_id = _require_user(runtime)
    if not user_id:
        return 2
    fallback = runtime.config.question_count
    stats = stats_mod.compute_user_stats(
        runtime.store, user_id, fallback_questions=fallback
    )
    performance = stats_mod.recent_performance(
        runtime.store,
        user_id,
        limit=args.limit,
        fallback_questions=fallback,
    )
    render_stats(Console(), user_id, stats, performance)
    return 0


def _cmd_ranking(args: argparse.Namespace, runtime: QuizRuntime) -> int:
    board = stats_mod.RankingBoard(runtime.store, limit=args.limit)
    render_ranking(Console(), board.refresh())
    return 0


def _cmd_sync(args: argparse.Namespace, runtime: QuizRuntime) -> int:
    user_id = _require_user(runtime)
    if not user_id:
        return 2
    report = runtime.gateway.sync_offline_progress(user_id)
    if report.attempted == 0:
        print("Offline queue is empty.")
        return 0
    print(
        f"Synced {report.synced} of {report.attempted} queued result(s); "
        f"{report.remaining} remaining."
    )
    return 0 if report.complete else 1


def _cmd_questions_list(
    args: argparse.Namespace, runtime: QuizRuntime
) -> int:
    phases = [Phase.from_value(args.phase)] if args.phase else list(Phase)
    table = Table(title="Questions")
    table.add_column("ID")
    table.add_column("Phase")
    table.add_column("Prompt", overflow="fold")
    shown = 0
    for phase in phases:
        for question in runtime.provider.pool(phase):
            table.add_row(question.id, phase.value, question.prompt)
            shown += 1
    if shown == 0:
        print("No questions to show with given filters.")
        return 1
    Console().print(table)
    return 0


def _cmd_config_init(args: argparse.Namespace) -> int:
    template = config_templates.get_template("quiz")
    try:
        layout = workspace_mod.ensure_workspace(path=args.workspace)
        path = template.write(layout.path_for("config"), overwrite=args.force)
    except (
        config_templates.ConfigTemplateError,
        workspace_mod.WorkspaceError,
    ) as exc:
        _error(str(exc))
        return 2
    print(f"Created template {path}")
    return 0


def _cmd_config_show(args: argparse.Namespace) -> int:
    loaded = _load(args)
    config = loaded.config
    print(f"config file: {loaded.config_path or '(defaults)'}")
    print(f"workspace: {loaded.layout.home}")
    for name, value in (
        ("question_count", config.question_count),
        ("time_limit", config.time_limit),
        ("bonus_divisor", config.bonus_divisor),
        ("feedback_delay", config.feedback_delay),
        ("unlock_threshold", config.unlock_threshold),
        ("question_bank", config.question_bank or "(bundled)"),
        ("database_url", config.database_url),
        ("user_id", config.user_id or "(unset)"),
        ("log_level", config.log_level),
    ):
        print(f"{name}: {value}")
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Path to mathfly.toml")
    common.add_argument(
        "--workspace",
        type=Path,
        help="Workspace root (defaults to MATHFLY_DATA_HOME)",
    )
    common.add_argument("--log-level", dest="log_level")
    common.add_argument(
        "--verbose", action="store_true", help="Mirror logs to stderr"
    )
    common.add_argument("--database-url", dest="database_url")

    p = argparse.ArgumentParser(
        prog="mathfly",
        description="Timed multiple-choice math quiz",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    sub = p.add_subparsers(dest="command", required=True)

    sp_play = sub.add_parser(
        "play", parents=[common], help="Play a quiz session"
    )
    sp_play.add_argument(
        "--phase", default="1", help="Phase number (1-4) or name"
    )
    sp_play.add_argument("--count", type=int)
    sp_play.add_argument("--user")
    sp_play.add_argument("--bank", type=Path, help="JSONL question bank")
    sp_play.add_argument(
        "--tui", action="store_true", help="Use the Textual interface"
    )

    sp_phases = sub.add_parser(
        "phases", parents=[common], help="Show phase unlock status"
    )
    sp_phases.add_argument("--user")

    sp_stats = sub.add_parser(
        "stats", parents=[common], help="Show player statistics"
    )
    sp_stats.add_argument("--user")
    sp_stats.add_argument("--limit", type=int, default=10)

    sp_rank = sub.add_parser(
        "ranking", parents=[common], help="Show the global ranking"
    )
    sp_rank.add_argument("--limit", type=int, default=20)

    sp_sync = sub.add_parser(
        "sync", parents=[common], help="Replay the offline result queue"
    )
    sp_sync.add_argument("--user")

    sp_q = sub.add_parser("questions", help="Question bank commands")
    q_sub = sp_q.add_subparsers(dest="action", required=True)
    sp_q_list = q_sub.add_parser(
        "list", parents=[common], help="List questions"
    )
    sp_q_list.add_argument("--phase")
    sp_q_list.add_argument("--bank", type=Path, help="JSONL question bank")

    sp_cfg = sub.add_parser("config", help="Configuration commands")
    cfg_sub = sp_cfg.add_subparsers(dest="action", required=True)
    sp_cfg_init = cfg_sub.add_parser(
        "init", parents=[common], help="Write the config template"
    )
    sp_cfg_init.add_argument("--force", action="store_true")
    cfg_sub.add_parser(
        "show", parents=[common], help="Print the resolved configuration"
    )
    return p


_RUNTIME_COMMANDS = {
    ("play", None): _cmd_play,
    ("phases", None): _cmd_phases,
    ("stats", None): _cmd_stats,
    ("ranking", None): _cmd_ranking,
    ("sync", None): _cmd_sync,
    ("questions", "list"): _cmd_questions_list,
}

_CONFIG_COMMANDS = {
    "init": _cmd_config_init,
    "show": _cmd_config_show,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    action = getattr(args, "action", None)

    try:
        if args.command == "config":
            return _CONFIG_COMMANDS[action](args)

        handler = _RUNTIME_COMMANDS.get((args.command, action))
        if handler is None:  # pragma: no cover - argparse guards this
            parser.print_help()
            return 2
        runtime = build_runtime(args)
    except QuizConfigError as exc:
        _error(str(exc))
        return 2
    except QuizError as exc:
        _error(str(exc))
        return 1

    try:
        with log_context(
            command=args.command, user_id=runtime.config.user_id
        ):
            return handler(args, runtime)
    except QuizError as exc:
        runtime.logger.error(
            "Command failed",
            extra={"command": args.command, "error": str(exc)},
        )
        _error(str(exc))
        return 1
    finally:
        runtime.close()


if __name__ == "__main__":  # pragma: no cover - manual invocation guard
    raise SystemExit(main())
