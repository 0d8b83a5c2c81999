"""Quiz session engine: the start/submit/advance/finish/reset protocol.

The engine owns at most one :class:`QuizSession`. Every operation returns an
explicit value describing the transition so front ends never have to observe
hidden state:

``start``
    ``NO_SESSION`` (or any state) -> ``ACTIVE``; raises on failure.
``submit``
    ``ACTIVE`` -> ``SUBMITTED``; returns ``None`` when not applicable.
``advance``
    ``SUBMITTED`` -> ``ACTIVE``; returns ``None`` when not applicable.
``finish``
    all questions answered -> ``NO_SESSION``; always returns the locally
    computed results, even when persistence fails.
``reset``
    any state -> ``NO_SESSION``.
"""

from __future__ import annotations

import logging
import math
import time
from enum import Enum
from typing import Callable

from .errors import (
    InvalidTransitionError,
    OfflineQueueError,
    PersistenceError,
    QuizError,
    UnauthenticatedError,
)
from .models import (
    Phase,
    Question,
    QuizResults,
    QuizSession,
    SubmissionFeedback,
)
from .persistence import ResultGateway
from .questions import QuestionProvider
from .scoring import ScoringRules

__all__ = ["EngineState", "QuizEngine", "TIMEOUT_ANSWER"]

logger = logging.getLogger(__name__)

# Submitted when the countdown expires; never equal to an option label.
TIMEOUT_ANSWER = ""

DEFAULT_QUESTION_COUNT = 5


class EngineState(Enum):
    NO_SESSION = "no_session"
    ACTIVE = "active"
    SUBMITTED = "submitted"


class QuizEngine:
    def __init__(
        self,
        provider: QuestionProvider,
        gateway: ResultGateway,
        *,
        user: Callable[[], str | None],
        rules: ScoringRules | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.provider = provider
        self.gateway = gateway
        self.rules = rules or ScoringRules()
        self._user = user
        self._clock = clock
        self.session: QuizSession | None = None
        self.error: str | None = None

    @property
    def state(self) -> EngineState:
        session = self.session
        if session is None:
            return EngineState.NO_SESSION
        if session.current_question is None or session.current_answered:
            return EngineState.SUBMITTED
        return EngineState.ACTIVE

    @property
    def current_question(self) -> Question:
        """The visible question; raises when no question is on screen."""

        if self.session is None:
            raise InvalidTransitionError("No active quiz session.")
        question = self.session.current_question
        if question is None:
            raise InvalidTransitionError("Every question has been shown.")
        return question

    def elapsed(self) -> float:
        """Seconds since the current question became current."""

        if self.session is None:
            return 0.0
        return max(0.0, self._clock() - self.session.question_started_at)

    def start(
        self, phase: Phase, count: int = DEFAULT_QUESTION_COUNT
    ) -> QuizSession:
        """Open a new session for ``phase`` with up to ``count`` questions.

        Raises :class:`UnauthenticatedError` without a user and
        :class:`EmptyPhaseError` when the phase has no questions. The
        failure message is also kept in :attr:`error`.
        """

        if count < 1:
            raise ValueError("count must be >= 1")
        self.error = None
        try:
            if not self._user():
                raise UnauthenticatedError("User is not authenticated.")
            questions = self.provider.get_questions(phase, count)
        except QuizError as exc:
            self.error = str(exc)
            logger.warning(
                "Quiz start failed",
                extra={"phase": phase.value, "error": self.error},
            )
            raise

        now = self._clock()
        self.session = QuizSession(
            phase=phase,
            questions=list(questions),
            start_time=now,
            question_started_at=now,
        )
        logger.info(
            "Quiz started",
            extra={"phase": phase.value, "questions": len(questions)},
        )
        return self.session

    def submit(self, answer: str) -> SubmissionFeedback | None:
        session = self.session
        if session is None or self.state is not EngineState.ACTIVE:
            logger.debug(
                "Ignored answer submission",
                extra={"state": self.state.value},
            )
            return None

        question = session.questions[session.current_question_index]
        is_correct = answer == question.correct_option
        points = self.rules.score(session.phase, is_correct, self.elapsed())

        session.answers.append(answer)
        session.score += points

        feedback = SubmissionFeedback(
            is_correct=is_correct,
            correct_answer=question.correct_option,
            points=points,
            is_complete=session.is_complete,
        )
        logger.debug(
            "Answer submitted",
            extra={
                "question_id": question.id,
                "timed_out": answer == TIMEOUT_ANSWER,
                "is_correct": is_correct,
                "points": points,
            },
        )
        return feedback

    def advance(self) -> QuizSession | None:
        session = self.session
        if session is None or not session.current_answered:
            return None
        session.current_question_index += 1
        session.question_started_at = self._clock()
        return session

    def finish(self) -> QuizResults | None:
        """Close the session and persist its results.

        Persistence failures are logged and the results are queued offline;
        the caller always receives the results.
        """

        session = self.session
        if session is None or not session.is_complete:
            return None

        correct = session.correct_count()
        total = session.total_questions
        results = QuizResults(
            phase=session.phase,
            score=session.score,
            correct_answers=correct,
            total_questions=total,
            accuracy=(correct / total) * 100,
            time_spent=math.floor(max(0.0, self._clock() - session.start_time)),
        )
        self.session = None

        user_id = self._user()
        if not user_id:
            logger.warning(
                "Finished without a user; queueing result offline",
                extra={"phase": results.phase.value},
            )
            self._queue_offline(results, None)
            return results

        try:
            self.gateway.save(user_id, results)
        except PersistenceError as exc:
            logger.warning(
                "Saving result failed; queueing offline",
                extra={"user_id": user_id, "error": str(exc)},
            )
            self._queue_offline(results, user_id)
        return results

    def _queue_offline(self, results: QuizResults, user_id: str | None) -> None:
        try:
            self.gateway.save_offline(results, user_id=user_id)
        except OfflineQueueError:
            logger.exception(
                "Offline queue unavailable; result kept in memory only",
                extra={"phase": results.phase.value, "score": results.score},
            )

    def reset(self) -> None:
        self.session = None
        self.error = None
