"""Screen state machine and per-question countdown for quiz front ends.

The controller is UI-agnostic. Front ends render :attr:`QuizController.screen`
and subscribe to :class:`ScreenChange` notifications; the only wall-clock
scheduling happens through the injected ``scheduler`` (Textual's
``set_interval`` in the TUI) or through explicit :meth:`QuizController.tick`
calls (the Rich console loop and tests).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from .engine import DEFAULT_QUESTION_COUNT, TIMEOUT_ANSWER, QuizEngine
from .errors import QuizError
from .models import Phase, Question, QuizResults, SubmissionFeedback
from .scoring import DEFAULT_TIME_LIMIT

__all__ = [
    "Screen",
    "ScreenChange",
    "TimerHandle",
    "Scheduler",
    "CountdownTimer",
    "QuizController",
]

logger = logging.getLogger(__name__)


class Screen(Enum):
    INTRO = "intro"
    LOADING = "loading"
    PLAYING = "playing"
    FEEDBACK = "feedback"
    RESULTS = "results"


@dataclass(frozen=True)
class ScreenChange:
    previous: Screen
    current: Screen


class TimerHandle(Protocol):
    def stop(self) -> None:
        ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]
ScreenListener = Callable[[ScreenChange], None]


class CountdownTimer:
    """Whole-second countdown that fires ``on_expire`` once at zero."""

    def __init__(
        self,
        seconds: int,
        on_expire: Callable[[], None],
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.remaining = int(seconds)
        self._on_expire = on_expire
        self._handle: TimerHandle | None = None
        self.running = True
        if scheduler is not None:
            self._handle = scheduler(1.0, self.tick)

    def tick(self, seconds: int = 1) -> None:
        if not self.running:
            return
        self.remaining = max(0, self.remaining - max(0, int(seconds)))
        if self.remaining == 0:
            self.stop()
            self._on_expire()

    def stop(self) -> None:
        self.running = False
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.stop()


class QuizController:
    def __init__(
        self,
        engine: QuizEngine,
        *,
        time_limit: int = DEFAULT_TIME_LIMIT,
        question_count: int = DEFAULT_QUESTION_COUNT,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.engine = engine
        self.time_limit = time_limit
        self.question_count = question_count
        self._scheduler = scheduler
        self.screen = Screen.INTRO
        self.phase: Phase | None = None
        self.feedback: SubmissionFeedback | None = None
        self.results: QuizResults | None = None
        self.error: str | None = None
        self.countdown: CountdownTimer | None = None
        self._listeners: list[ScreenListener] = []
        self._lock = threading.RLock()

    # Observation -------------------------------------------------------

    def subscribe(self, listener: ScreenListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _go(self, screen: Screen) -> None:
        previous, self.screen = self.screen, screen
        if previous is screen:
            return
        change = ScreenChange(previous, screen)
        for listener in list(self._listeners):
            listener(change)

    @property
    def time_left(self) -> int:
        if self.countdown is None:
            return 0
        return self.countdown.remaining

    @property
    def question(self) -> Question | None:
        if self.screen not in (Screen.PLAYING, Screen.FEEDBACK):
            return None
        return self.engine.current_question

    @property
    def progress(self) -> tuple[int, int]:
        """``(question number, total)`` of the visible question, 1-based."""

        session = self.engine.session
        if session is None:
            return (0, 0)
        return (session.current_question_index + 1, session.total_questions)

    # Countdown ---------------------------------------------------------

    def _start_countdown(self) -> None:
        self._stop_countdown()
        self.countdown = CountdownTimer(
            self.time_limit, self._time_up, scheduler=self._scheduler
        )

    def _stop_countdown(self) -> None:
        countdown, self.countdown = self.countdown, None
        if countdown is not None:
            countdown.stop()

    def tick(self, seconds: int = 1) -> None:
        with self._lock:
            if self.screen is not Screen.PLAYING or self.countdown is None:
                return
            self.countdown.tick(seconds)

    def _time_up(self) -> None:
        logger.info(
            "Question timed out",
            extra={"question": self.progress[0]},
        )
        self.answer(TIMEOUT_ANSWER)

    # Transitions -------------------------------------------------------

    def begin(self, phase: Phase, count: int | None = None) -> bool:
        """Load a new session; return ``False`` and set :attr:`error` on failure."""

        with self._lock:
            if self.screen not in (Screen.INTRO, Screen.RESULTS):
                return False
            self._stop_countdown()
            self.feedback = None
            self.results = None
            self.error = None
            self._go(Screen.LOADING)
            try:
                self.engine.start(phase, count or self.question_count)
            except QuizError as exc:
                self.error = str(exc)
                self._go(Screen.INTRO)
                return False
            self.phase = phase
            self._start_countdown()
            self._go(Screen.PLAYING)
            return True

    def answer(self, choice: str) -> SubmissionFeedback | None:
        with self._lock:
            if self.screen is not Screen.PLAYING:
                return None
            self._stop_countdown()
            feedback = self.engine.submit(choice)
            if feedback is None:
                return None
            self.feedback = feedback
            self._go(Screen.FEEDBACK)
            return feedback

    def proceed(self) -> QuizResults | None:
        """Leave the feedback screen: next question, or finish the session."""

        with self._lock:
            if self.screen is not Screen.FEEDBACK or self.feedback is None:
                return None
            complete = self.feedback.is_complete
            self.feedback = None
            self.engine.advance()
            if not complete:
                self._start_countdown()
                self._go(Screen.PLAYING)
                return None
            self._go(Screen.LOADING)
            self.results = self.engine.finish()
            self._go(Screen.RESULTS)
            return self.results

    def restart(self) -> bool:
        """Play the same phase again."""

        phase = self.phase
        self.leave()
        if phase is None:
            return False
        return self.begin(phase)

    def leave(self) -> None:
        with self._lock:
            self._stop_countdown()
            self.engine.reset()
            self.feedback = None
            self.results = None
            self.error = None
            self._go(Screen.INTRO)
