"""
Tiered quiz cycle: a clock-agnostic quiz state machine plus a Discord host.
"""
from .data_manager import DataManager, InMemoryQuestionBank, QuestionBank
from .errors import (
    QuizConfigurationError,
    QuizError,
    SessionConflictError,
    SessionNotFoundError,
)
from .hints import HintAllowance
from .models import (
    AnswerEvent,
    Difficulty,
    FeedbackView,
    OptionSlot,
    Phase,
    Question,
    QuestionView,
    QuizSettings,
    Round,
    SessionResult,
    SessionState,
)
from .quiz_engine import QuizEngine, QuizEventListener
from .shuffler import RoundShuffler
from .timer import CountdownTimer

__all__ = [
    "AnswerEvent",
    "CountdownTimer",
    "DataManager",
    "Difficulty",
    "FeedbackView",
    "HintAllowance",
    "InMemoryQuestionBank",
    "OptionSlot",
    "Phase",
    "Question",
    "QuestionBank",
    "QuestionView",
    "QuizConfigurationError",
    "QuizEngine",
    "QuizError",
    "QuizEventListener",
    "Round",
    "RoundShuffler",
    "SessionConflictError",
    "SessionNotFoundError",
    "SessionResult",
    "SessionState",
    "QuizSettings",
]
