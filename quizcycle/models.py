"""
Core data models for the tiered quiz cycle.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple


class Difficulty(str, Enum):
    """Built-in difficulty tiers, in progression order."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


DEFAULT_DIFFICULTIES = tuple(d.value for d in Difficulty)


class Phase(Enum):
    """States of the quiz progression state machine."""
    AWAITING_ANSWER = "awaiting_answer"
    SHOWING_FEEDBACK = "showing_feedback"
    COMPLETE = "complete"


@dataclass
class Question:
    """Represents a single quiz question."""
    text: str
    options: List[str]
    correct_option: str
    explanation: str = ""

    @property
    def has_explanation(self) -> bool:
        return bool(self.explanation and self.explanation.strip())


@dataclass(frozen=True)
class AnswerEvent:
    """Input to answer evaluation: a chosen option or a timeout."""
    chosen_option_value: Optional[str]
    via_timeout: bool = False

    def __post_init__(self):
        if self.via_timeout and self.chosen_option_value is not None:
            raise ValueError("A timeout answer cannot carry a chosen option")
        if not self.via_timeout and self.chosen_option_value is None:
            raise ValueError("A player answer must carry a chosen option")

    @classmethod
    def timeout(cls) -> "AnswerEvent":
        return cls(chosen_option_value=None, via_timeout=True)

    @classmethod
    def choice(cls, label: str) -> "AnswerEvent":
        return cls(chosen_option_value=label, via_timeout=False)


@dataclass
class OptionSlot:
    """One displayed answer option, keyed by its label."""
    label: str
    visible: bool = True


@dataclass
class Round:
    """The live instance of a difficulty tier: shuffled questions plus a cursor."""
    difficulty: str
    questions: List[Question]
    question_index: int = 0

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.question_index < len(self.questions):
            return self.questions[self.question_index]
        return None

    @property
    def has_more(self) -> bool:
        return self.question_index + 1 < len(self.questions)

    @property
    def size(self) -> int:
        return len(self.questions)


@dataclass
class SessionState:
    """Mutable state of one quiz attempt. Owned by QuizEngine."""
    current_difficulty_index: int = -1
    current_round: Optional[Round] = None
    total_questions_seen: int = 0
    correct_count: int = 0
    hints_remaining: int = 0
    time_remaining: float = 0.0
    phase: Phase = Phase.AWAITING_ANSWER

    def snapshot(self) -> "SessionState":
        """Return a detached copy safe to hand to callers."""
        round_copy = None
        if self.current_round is not None:
            round_copy = replace(self.current_round, questions=list(self.current_round.questions))
        return replace(self, current_round=round_copy)


@dataclass(frozen=True)
class SessionResult:
    """Immutable summary emitted once when a session completes."""
    correct_count: int
    total_questions_seen: int
    aborted: bool = False

    @property
    def score_text(self) -> str:
        return f"Quiz Score: {self.correct_count}/{self.total_questions_seen}"

    @property
    def percentage(self) -> float:
        if self.total_questions_seen == 0:
            return 0.0
        return (self.correct_count / self.total_questions_seen) * 100

    @property
    def is_empty(self) -> bool:
        return self.total_questions_seen == 0


@dataclass(frozen=True)
class QuestionView:
    """View-model emitted on every entry into AWAITING_ANSWER."""
    question_text: str
    ordered_option_labels: Tuple[str, ...]
    visible_option_labels: Tuple[str, ...]
    time_remaining: float
    hint_available: bool
    difficulty: str
    question_number: int
    round_size: int


@dataclass(frozen=True)
class FeedbackView:
    """View-model emitted on every entry into SHOWING_FEEDBACK."""
    chosen_is_correct: bool
    chosen_option_label: Optional[str]
    correct_option_label: str
    explanation_text: Optional[str]
    via_timeout: bool
    integrity_error: bool
    hold_duration: float


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    time_per_question: float = 10.0
    explanation_duration: float = 2.0
    feedback_duration: float = 0.5
    hint_count: int = 1
    hint_removal_count: int = 2
    difficulties: List[str] = field(default_factory=lambda: list(DEFAULT_DIFFICULTIES))
