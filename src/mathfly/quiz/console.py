"""Rich-powered console front end for quiz sessions and player reports.

``run_console_quiz`` drives a :class:`~mathfly.quiz.controller.QuizController`
synchronously: it renders the visible question, reads one command from an
injectable input provider, and feeds the time spent waiting into the
controller countdown. Answers that arrive after the clock ran out are
discarded and the question is recorded as timed out.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Literal, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .controller import QuizController, Screen
from .models import (
    OPTION_KEYS,
    Phase,
    PhaseStatus,
    Question,
    QuizResults,
    RankingEntry,
    SubmissionFeedback,
)
from .stats import Performance, UserStats

InputProvider = Callable[[], str]
ExitAction = Literal["submitted", "quit", "error"]


@dataclass(frozen=True)
class ConsoleCommand:
    type: Literal["answer", "quit"]
    choice: str | None = None


@dataclass(frozen=True)
class ConsoleRunResult:
    """Return value from ``run_console_quiz``."""

    results: QuizResults | None
    exit_action: ExitAction
    timeouts: int = 0


def parse_console_command(raw: str | None) -> ConsoleCommand | None:
    """Parse raw user input into an answer or quit command."""

    if raw is None:
        return None
    text = raw.strip().lower()
    if not text:
        return None
    if text in {"q", "quit", "exit"}:
        return ConsoleCommand("quit")
    key = text.rstrip(")").strip()
    if key in OPTION_KEYS:
        return ConsoleCommand("answer", key)
    return None


def run_console_quiz(
    controller: QuizController,
    phase: Phase,
    console: Console,
    input_provider: InputProvider,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> ConsoleRunResult:
    """Play one session of ``phase`` in the console."""

    if not controller.begin(phase):
        console.print(
            Panel(
                controller.error or "Unable to start the quiz.",
                title=f"Phase {phase.number}: {phase.title}",
                border_style="red",
            )
        )
        return ConsoleRunResult(None, "error")

    timeouts = 0
    shown_at: float | None = None
    allowed = 0
    while controller.screen is Screen.PLAYING:
        question = controller.question
        _render_question(console, controller, question)
        if shown_at is None:
            shown_at = clock()
            allowed = controller.time_left
        try:
            raw = input_provider()
        except (EOFError, KeyboardInterrupt, StopIteration):
            console.print("\n[bold yellow]Session interrupted.[/]")
            controller.leave()
            return ConsoleRunResult(None, "quit", timeouts)
        spent = max(0.0, clock() - shown_at)

        command = parse_console_command(raw)
        if command is not None and command.type == "quit":
            console.print("\n[bold yellow]Leaving without saving.[/]")
            controller.leave()
            return ConsoleRunResult(None, "quit", timeouts)

        # The deadline counts from when the question was first shown,
        # across any rejected inputs.
        timed_out = spent >= allowed
        if timed_out:
            controller.tick(controller.time_left)
        else:
            controller.tick(controller.time_left - (allowed - int(spent)))
            if command is None:
                console.print(
                    "[red]Unrecognized answer. Choose a, b, c or d "
                    "(or q to quit).[/]"
                )
                continue
            controller.answer(command.choice or "")

        feedback = controller.feedback
        if feedback is None:
            continue
        if timed_out:
            timeouts += 1
        _render_feedback(console, question, feedback, timed_out=timed_out)
        shown_at = None
        controller.proceed()

    results = controller.results
    if results is not None:
        render_results(console, results)
    return ConsoleRunResult(results, "submitted", timeouts)


def _render_question(
    console: Console, controller: QuizController, question: Question | None
) -> None:
    if question is None:
        return
    number, total = controller.progress
    header = Text.assemble(
        (f"Question {number}", "bold cyan"),
        (f" / {total}", "dim"),
        (f"  ⏱ {controller.time_left}s", "yellow"),
    )
    console.print()
    console.rule(header)
    console.print(Text(question.prompt, style="bold"))

    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Key", justify="center", style="cyan")
    table.add_column("Option")
    for key in OPTION_KEYS:
        table.add_row(key, question.option_text(key) or "")
    console.print(table)
    console.print(Text("Answer with a, b, c or d | q to quit", style="dim"))


def _render_feedback(
    console: Console,
    question: Question | None,
    feedback: SubmissionFeedback,
    *,
    timed_out: bool,
) -> None:
    if feedback.is_correct:
        console.print(
            f"[bold green]Correct![/] +{feedback.points} points"
        )
        return
    correct = feedback.correct_answer
    text = question.option_text(correct) if question else None
    label = f"{correct}) {text}" if text else correct
    lead = "Time's up!" if timed_out else "Wrong."
    console.print(f"[bold red]{lead}[/] Correct answer: {label}")


def render_results(console: Console, results: QuizResults) -> None:
    console.print()
    console.rule(Text("Quiz Results", style="bold magenta"))
    overview = Table(
        show_header=False,
        box=box.MINIMAL_DOUBLE_HEAD,
        expand=False,
    )
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row(
        "Phase", f"{results.phase.number} ({results.phase.title})"
    )
    overview.add_row("Score", str(results.score))
    overview.add_row(
        "Correct",
        f"{results.correct_answers}/{results.total_questions}",
    )
    overview.add_row("Accuracy", f"{results.accuracy:.1f}%")
    overview.add_row("Time", f"{results.time_spent}s")
    console.print(overview)


def render_phase_table(
    console: Console, statuses: Sequence[PhaseStatus]
) -> None:
    table = Table(title="Phases", box=box.SIMPLE, expand=False)
    table.add_column("#", justify="right")
    table.add_column("Phase")
    table.add_column("Status")
    table.add_column("Best score", justify="right")
    for status in statuses:
        if status.completed:
            label = Text("completed", style="green")
        elif status.unlocked:
            label = Text("unlocked", style="cyan")
        else:
            label = Text("locked", style="dim")
        table.add_row(
            str(status.phase.number),
            status.phase.title,
            label,
            "-" if status.best_score is None else str(status.best_score),
        )
    console.print(table)


def render_stats(
    console: Console,
    user_id: str,
    stats: UserStats,
    performance: Sequence[Performance],
) -> None:
    overview = Table(
        title=f"Stats for {user_id}",
        show_header=False,
        box=box.MINIMAL_DOUBLE_HEAD,
        expand=False,
    )
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row("Total score", str(stats.total_score))
    overview.add_row("Games played", str(stats.total_games))
    overview.add_row("Average accuracy", f"{stats.average_accuracy:.1f}%")
    overview.add_row(
        "Best phase", f"{stats.best_phase.number} ({stats.best_phase.title})"
    )
    last = (
        stats.last_played.strftime("%Y-%m-%d %H:%M")
        if stats.last_played
        else "-"
    )
    overview.add_row("Last played", last)
    console.print(overview)

    if not performance:
        return
    recent = Table(title="Recent games", box=box.SIMPLE, expand=False)
    recent.add_column("When")
    recent.add_column("Phase", justify="right")
    recent.add_column("Correct", justify="right")
    recent.add_column("Points", justify="right")
    recent.add_column("Accuracy", justify="right")
    for item in performance:
        result = item.result
        recent.add_row(
            result.completed_at.strftime("%Y-%m-%d %H:%M"),
            str(result.phase),
            str(result.correct_answers),
            str(result.points_earned),
            f"{item.accuracy:.1f}%",
        )
    console.print(recent)


def render_ranking(
    console: Console, entries: Sequence[RankingEntry]
) -> None:
    if not entries:
        console.print(
            Panel(
                "No results recorded yet.",
                title="Ranking",
                border_style="yellow",
            )
        )
        return
    table = Table(title="Ranking", box=box.SIMPLE, expand=False)
    table.add_column("#", justify="right")
    table.add_column("Player")
    table.add_column("Points", justify="right")
    table.add_column("Phase", justify="right")
    table.add_column("When")
    for position, entry in enumerate(entries, start=1):
        table.add_row(
            str(position),
            entry.user_id,
            str(entry.points),
            str(entry.phase),
            entry.completed_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)
