from typing import Callable, List, Optional

from textual.app import App, ComposeResult
from textual.containers import Container, Vertical
from textual.css.query import NoMatches
from textual.widgets import Button, Footer, Header, Static

from .controller import QuizController, Screen, ScreenChange, TimerHandle
from .engine import QuizEngine
from .models import (
    OPTION_KEYS,
    Phase,
    Question,
    QuizResults,
    SubmissionFeedback,
)


def format_time_left(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def feedback_text(
    feedback: SubmissionFeedback, question: Optional[Question] = None
) -> str:
    if feedback.is_correct:
        return f"Correct! +{feedback.points} points"
    correct = feedback.correct_answer
    text = question.option_text(correct) if question else None
    label = f"{correct}) {text}" if text else correct
    return f"Wrong. Correct answer: {label}"


def option_label(question: Question, key: str) -> str:
    return f"{key}) {question.option_text(key) or ''}"


def results_lines(results: QuizResults) -> List[str]:
    """Summary rows shown on the results screen."""
    return [
        f"Phase {results.phase.number}: {results.phase.title}",
        f"Score: {results.score}",
        f"Correct: {results.correct_answers}/{results.total_questions}",
        f"Accuracy: {results.accuracy:.1f}%",
        f"Time: {results.time_spent}s",
    ]


def intro_lines(
    phase: Phase, question_count: int, time_limit: int
) -> List[str]:
    return [
        f"Phase {phase.number}: {phase.title}",
        f"{question_count} questions, {time_limit}s each.",
        "Press Enter to start.",
    ]


class MathflyApp(App):
    CSS_PATH = None
    CSS = """
#timer { color: $warning; }
#options Button { width: 100%; }
#options Button.correct { background: $success; }
#options Button.wrong { background: $error; }
"""
    BINDINGS = [
        ("a", "answer('a')", "A"),
        ("b", "answer('b')", "B"),
        ("c", "answer('c')", "C"),
        ("d", "answer('d')", "D"),
        ("enter", "start", "Start"),
        ("r", "restart", "Play again"),
        ("escape", "leave", "Back"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        engine: QuizEngine,
        phase: Phase,
        *,
        time_limit: int,
        question_count: int,
        feedback_delay: float = 1.5,
    ) -> None:
        super().__init__()
        self.phase = phase
        self.feedback_delay = feedback_delay
        self.controller = QuizController(
            engine,
            time_limit=time_limit,
            question_count=question_count,
            scheduler=self._schedule,
        )
        self.controller.subscribe(self._on_screen_change)
        self._last_answer: Optional[str] = None
        self._feedback_timer: Optional[TimerHandle] = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="stage"):
            yield Static("", id="progress")
            yield Static("", id="timer")
            yield Static("", id="prompt")
            with Vertical(id="options"):
                for key in OPTION_KEYS:
                    yield Button(key, id=f"option-{key}")
            yield Static("", id="status")
        yield Footer()

    def on_mount(self) -> None:
        self.title = "mathfly"
        self._refresh_view()

    # Controller wiring
    def _schedule(
        self, interval: float, callback: Callable[[], None]
    ) -> TimerHandle:
        def _tick() -> None:
            callback()
            self._refresh_timer()

        return self.set_interval(interval, _tick)

    def _cancel_feedback_timer(self) -> None:
        timer, self._feedback_timer = self._feedback_timer, None
        if timer is not None:
            timer.stop()

    def _on_screen_change(self, change: ScreenChange) -> None:
        self._cancel_feedback_timer()
        if change.current is Screen.FEEDBACK:
            self._feedback_timer = self.set_timer(
                self.feedback_delay, self.controller.proceed
            )
        if change.current is Screen.PLAYING:
            self._last_answer = None
        self._refresh_view()

    # Actions
    def action_answer(self, key: str) -> None:
        if self.controller.screen is not Screen.PLAYING:
            return
        self._last_answer = key
        self.controller.answer(key)

    def action_start(self) -> None:
        if self.controller.screen is Screen.INTRO:
            self.controller.begin(self.phase)

    def action_restart(self) -> None:
        if self.controller.screen is Screen.RESULTS:
            self.controller.restart()

    def action_leave(self) -> None:
        self._cancel_feedback_timer()
        self.controller.leave()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        bid = event.button.id or ""
        if bid.startswith("option-"):
            self.action_answer(bid[-1])

    # Rendering
    def _refresh_timer(self) -> None:
        try:
            timer = self.query_one("#timer", Static)
        except NoMatches:
            return
        if self.controller.screen in (Screen.PLAYING, Screen.FEEDBACK):
            timer.update(format_time_left(self.controller.time_left))
        else:
            timer.update("")

    def _refresh_view(self) -> None:
        try:
            progress = self.query_one("#progress", Static)
            prompt = self.query_one("#prompt", Static)
            status = self.query_one("#status", Static)
        except NoMatches:
            return
        controller = self.controller
        screen = controller.screen
        question = controller.question

        if screen is Screen.INTRO:
            progress.update("")
            lines = intro_lines(
                self.phase, controller.question_count, controller.time_limit
            )
            prompt.update("\n".join(lines))
            status.update(controller.error or "")
        elif screen is Screen.LOADING:
            progress.update("")
            prompt.update("Loading...")
            status.update("")
        elif screen is Screen.RESULTS and controller.results is not None:
            progress.update("")
            prompt.update("\n".join(results_lines(controller.results)))
            status.update("Press r to play again or Esc to go back.")
        elif question is not None:
            number, total = controller.progress
            progress.update(f"Question {number}/{total}")
            prompt.update(question.prompt)
            if screen is Screen.FEEDBACK and controller.feedback is not None:
                status.update(feedback_text(controller.feedback, question))
            else:
                status.update("")

        self._refresh_options(question)
        self._refresh_timer()

    def _refresh_options(self, question: Optional[Question]) -> None:
        screen = self.controller.screen
        feedback = self.controller.feedback
        for key in OPTION_KEYS:
            try:
                button = self.query_one(f"#option-{key}", Button)
            except NoMatches:
                return
            button.remove_class("correct", "wrong")
            if question is None:
                button.display = False
                continue
            button.display = True
            button.label = option_label(question, key)
            button.disabled = screen is not Screen.PLAYING
            if screen is Screen.FEEDBACK and feedback is not None:
                if key == feedback.correct_answer:
                    button.add_class("correct")
                elif key == self._last_answer:
                    button.add_class("wrong")
