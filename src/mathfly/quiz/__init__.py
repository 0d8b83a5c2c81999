from ._main import build_arg_parser
from .config import ConfigOverrides, QuizConfig, load_config
from .console import run_console_quiz, ConsoleRunResult
from .controller import CountdownTimer, QuizController, Screen
from .engine import EngineState, QuizEngine, TIMEOUT_ANSWER
from .errors import (
    EmptyPhaseError,
    PersistenceError,
    QuizError,
    UnauthenticatedError,
)
from .models import (
    Phase,
    PhaseResult,
    Question,
    QuizResults,
    QuizSession,
    SubmissionFeedback,
)
from .offline import OfflineQueue
from .persistence import ResultGateway, ResultStore, SyncReport
from .questions import QuestionProvider
from .scoring import ScoringRules, score_answer
from .stats import RankingBoard, compute_user_stats, recent_performance
from .unlock import is_unlocked, phase_statuses
from .view import MathflyApp

__all__ = [
    "build_arg_parser",
    "ConfigOverrides",
    "QuizConfig",
    "load_config",
    "run_console_quiz",
    "ConsoleRunResult",
    "CountdownTimer",
    "QuizController",
    "Screen",
    "EngineState",
    "QuizEngine",
    "TIMEOUT_ANSWER",
    "EmptyPhaseError",
    "PersistenceError",
    "QuizError",
    "UnauthenticatedError",
    "Phase",
    "PhaseResult",
    "Question",
    "QuizResults",
    "QuizSession",
    "SubmissionFeedback",
    "OfflineQueue",
    "ResultGateway",
    "ResultStore",
    "SyncReport",
    "QuestionProvider",
    "ScoringRules",
    "score_answer",
    "RankingBoard",
    "compute_user_stats",
    "recent_performance",
    "is_unlocked",
    "phase_statuses",
    "MathflyApp",
]
