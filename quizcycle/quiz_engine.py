"""
Quiz engine core logic for the tiered quiz cycle.
Handles difficulty progression, question timing, answer evaluation,
hints and feedback sequencing.
"""
import logging
import random
import threading
import time
from enum import Enum
from typing import List, Optional

from .data_manager import QuestionBank
from .errors import QuizConfigurationError
from .hints import HintAllowance
from .models import (
    AnswerEvent,
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
from .shuffler import RoundShuffler
from .timer import TIME_EPSILON, CountdownTimer

logger = logging.getLogger(__name__)


class QuizEventListener:
    """Receives engine events. Override the hooks you need."""

    def on_question(self, view: QuestionView) -> None:
        pass

    def on_tick(self, time_remaining: float) -> None:
        pass

    def on_hint(self, hidden_labels: List[str], hints_remaining: int) -> None:
        pass

    def on_feedback(self, view: FeedbackView) -> None:
        pass

    def on_complete(self, result: SessionResult) -> None:
        pass


class QuizEngine:
    """
    State machine driving one quiz attempt across difficulty tiers.

    The engine is clock-agnostic: the host calls tick() with elapsed
    seconds, and submit_answer()/use_hint() on player input. Every stimulus
    runs under one re-entrant lock, so a timer expiry raised from inside
    tick() and a late click can never interleave.

    Phases:
        AWAITING_ANSWER -> SHOWING_FEEDBACK on answer or timeout
        SHOWING_FEEDBACK -> AWAITING_ANSWER when the hold elapses and the
            round (or a later non-empty tier) has another question
        SHOWING_FEEDBACK -> COMPLETE when every tier is exhausted
        any -> COMPLETE on abort()
    """

    def __init__(
        self,
        question_bank: QuestionBank,
        settings: Optional[QuizSettings] = None,
        shuffler: Optional[RoundShuffler] = None,
        hints: Optional[HintAllowance] = None,
        rng: Optional[random.Random] = None,
        session_id: str = "local"
    ):
        """
        Initialize the quiz engine.

        Args:
            question_bank: Source of questions per difficulty tier
            settings: Timing, hint and tier configuration
            shuffler: Question/option shuffler (built from rng if omitted)
            hints: Hint allowance (built from settings and rng if omitted)
            rng: Shared random source for the default shuffler and hints
            session_id: Identifier used in log records

        Raises:
            QuizConfigurationError: If settings cannot drive a session
        """
        self.settings = settings or QuizSettings()
        self._validate_settings(self.settings)

        self._question_bank = question_bank
        self._session_id = session_id
        self._difficulties = [self._tier_name(d) for d in self.settings.difficulties]
        self._shuffler = shuffler or RoundShuffler(rng)
        self._hints = hints or HintAllowance(
            self.settings.hint_count, self.settings.hint_removal_count, rng
        )
        self._timer = CountdownTimer(on_expire=self._on_timer_expired, timer_id=session_id)
        self._lock = threading.RLock()
        self._listeners: List[QuizEventListener] = []

        self._state = SessionState(hints_remaining=self._hints.remaining)
        self._option_slots: List[OptionSlot] = []
        self._integrity_error = False
        self._feedback_hold = 0.0
        self._feedback_elapsed = 0.0
        self._last_feedback: Optional[FeedbackView] = None
        self._result: Optional[SessionResult] = None
        self._started = False
        self._total_planned = 0

    @staticmethod
    def _tier_name(difficulty) -> str:
        if isinstance(difficulty, Enum):
            return str(difficulty.value)
        return str(difficulty)

    @staticmethod
    def _validate_settings(settings: QuizSettings) -> None:
        if settings.time_per_question <= 0:
            raise QuizConfigurationError(
                f"time_per_question must be positive, got {settings.time_per_question}"
            )
        if settings.explanation_duration < 0 or settings.feedback_duration < 0:
            raise QuizConfigurationError("Feedback durations cannot be negative")
        if settings.hint_count < 0:
            raise QuizConfigurationError(f"hint_count cannot be negative, got {settings.hint_count}")
        if settings.hint_removal_count < 1:
            raise QuizConfigurationError(
                f"hint_removal_count must be at least 1, got {settings.hint_removal_count}"
            )
        if not settings.difficulties:
            raise QuizConfigurationError("At least one difficulty tier is required")

    # Listener management

    def add_listener(self, listener: QuizEventListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: QuizEventListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, hook: str, *args) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, hook)(*args)
            except Exception:
                logger.exception(
                    f"Listener {type(listener).__name__}.{hook} failed for session {self._session_id}",
                    extra={
                        'event_type': 'listener_error',
                        'session_id': self._session_id,
                        'hook': hook,
                        'timestamp': time.time()
                    }
                )

    # Stimuli

    def start(self) -> None:
        """
        Load the first non-empty tier and present its first question.

        If every tier is empty the engine completes immediately with a
        zero-question result. Calling start() again is a no-op.
        """
        with self._lock:
            if self._started:
                logger.debug(f"Session {self._session_id} already started, ignoring start()")
                return
            self._started = True
            logger.info(
                f"Quiz session {self._session_id} starting with tiers {self._difficulties}",
                extra={
                    'event_type': 'session_start',
                    'session_id': self._session_id,
                    'difficulties': list(self._difficulties),
                    'hints': self._hints.remaining,
                    'timestamp': time.time()
                }
            )
            self.load_next_difficulty()

    def submit_answer(self, event: AnswerEvent) -> bool:
        """
        Evaluate an answer for the active question.

        Only legal while awaiting an answer. Answers during feedback, after
        completion, or naming an option that is not visible are ignored.

        Args:
            event: The chosen option, or a timeout

        Returns:
            True if the answer was accepted and evaluated
        """
        with self._lock:
            if not self._started or self._state.phase is not Phase.AWAITING_ANSWER:
                logger.debug(
                    f"Ignoring answer for session {self._session_id} in phase "
                    f"{self._state.phase.value if self._started else 'not_started'}"
                )
                return False

            if not event.via_timeout and event.chosen_option_value not in self.visible_options:
                logger.debug(
                    f"Ignoring answer '{event.chosen_option_value}' for session {self._session_id}: not a visible option"
                )
                return False

            self._evaluate(event)
            return True

    def answer(self, label: str) -> bool:
        """Submit a player's choice by option label."""
        return self.submit_answer(AnswerEvent.choice(label))

    def use_hint(self) -> List[str]:
        """
        Spend a hint to hide distractors on the active question.

        Returns:
            Labels of the options that were hidden; empty when the hint
            request was ignored
        """
        with self._lock:
            if not self._started or self._state.phase is not Phase.AWAITING_ANSWER:
                logger.debug(f"Ignoring hint for session {self._session_id}: not awaiting an answer")
                return []
            if not self._hints.available:
                logger.debug(f"Ignoring hint for session {self._session_id}: no hints remaining")
                return []
            if self._integrity_error:
                logger.debug(f"Ignoring hint for session {self._session_id}: correct answer missing from options")
                return []

            question = self.current_question
            targets = self._hints.pick_hint_targets(self._option_slots, question.correct_option)
            self._hints.consume()
            self._state.hints_remaining = self._hints.remaining

            hidden = []
            for index in sorted(targets):
                self._option_slots[index].visible = False
                hidden.append(self._option_slots[index].label)

            logger.info(
                f"Hint used in session {self._session_id}: hid {len(hidden)} option(s), "
                f"{self._hints.remaining} hint(s) left",
                extra={
                    'event_type': 'hint_used',
                    'session_id': self._session_id,
                    'hidden': hidden,
                    'hints_remaining': self._hints.remaining,
                    'timestamp': time.time()
                }
            )
            self._emit('on_hint', list(hidden), self._hints.remaining)
            return hidden

    def tick(self, delta_time: float) -> None:
        """
        Advance the engine clock.

        Counts down the question timer while awaiting an answer (a timeout
        is submitted on expiry) and the feedback hold while showing
        feedback (the next question or tier is loaded when it ends).

        Args:
            delta_time: Seconds elapsed since the previous tick

        Raises:
            ValueError: If delta_time is negative
        """
        if delta_time < 0:
            raise ValueError(f"delta_time cannot be negative, got {delta_time}")

        with self._lock:
            if not self._started or self._state.phase is Phase.COMPLETE:
                return

            if self._state.phase is Phase.AWAITING_ANSWER:
                remaining = self._timer.tick(delta_time)
                if self._state.phase is Phase.AWAITING_ANSWER:
                    self._state.time_remaining = remaining
                    self._emit('on_tick', remaining)
                return

            self._feedback_elapsed += delta_time
            if self._feedback_elapsed + TIME_EPSILON >= self._feedback_hold:
                self._finish_feedback()

    def abort(self, reason: str = "aborted") -> Optional[SessionResult]:
        """
        Tear the session down from outside (player left, channel stopped).

        Accepted in every phase, including during the feedback hold.

        Returns:
            The session result (the existing one if already complete)
        """
        with self._lock:
            if self._state.phase is Phase.COMPLETE:
                return self._result
            logger.info(f"Aborting quiz session {self._session_id}: {reason}")
            self._timer.cancel()
            self._started = True
            self._complete(aborted=True)
            return self._result

    # Transitions

    def load_next_difficulty(self) -> None:
        """
        Advance to the next tier that has questions.

        Empty tiers are skipped without touching the score. When no tiers
        remain the session completes.
        """
        with self._lock:
            if self._state.phase is Phase.COMPLETE:
                return
            while True:
                self._state.current_difficulty_index += 1
                index = self._state.current_difficulty_index

                if index >= len(self._difficulties):
                    logger.info(f"All difficulties completed for session {self._session_id}")
                    self._state.current_round = None
                    self._complete(aborted=False)
                    return

                difficulty = self._difficulties[index]
                questions = self._question_bank.get_questions(difficulty) or []
                if not questions:
                    logger.info(
                        f"No questions found for '{difficulty}' in session {self._session_id}, moving to next difficulty"
                    )
                    continue

                self._state.current_round = Round(
                    difficulty=difficulty,
                    questions=self._shuffler.shuffle_questions(questions)
                )
                self._total_planned += len(questions)
                logger.info(
                    f"Loaded '{difficulty}' round with {len(questions)} questions for session {self._session_id}",
                    extra={
                        'event_type': 'round_loaded',
                        'session_id': self._session_id,
                        'difficulty': difficulty,
                        'question_count': len(questions),
                        'timestamp': time.time()
                    }
                )
                self._start_question()
                return

    def _start_question(self) -> None:
        question = self.current_question
        labels = self._shuffler.shuffle_options(question)
        self._option_slots = [OptionSlot(label) for label in labels]

        matches = labels.count(question.correct_option)
        self._integrity_error = matches == 0
        if self._integrity_error:
            logger.error(
                f"Data integrity error in session {self._session_id}: correct answer "
                f"'{question.correct_option}' is not among the options of '{question.text}'",
                extra={
                    'event_type': 'question_integrity_error',
                    'session_id': self._session_id,
                    'question': question.text,
                    'timestamp': time.time()
                }
            )
        elif matches > 1:
            logger.warning(f"Correct answer '{question.correct_option}' appears {matches} times in '{question.text}'")

        self._state.phase = Phase.AWAITING_ANSWER
        self._feedback_hold = 0.0
        self._feedback_elapsed = 0.0
        self._timer.start(self.settings.time_per_question)
        self._state.time_remaining = self._timer.remaining_time

        current_round = self._state.current_round
        view = QuestionView(
            question_text=question.text,
            ordered_option_labels=tuple(labels),
            visible_option_labels=tuple(labels),
            time_remaining=self._state.time_remaining,
            hint_available=self._hints.available and not self._integrity_error,
            difficulty=current_round.difficulty,
            question_number=current_round.question_index + 1,
            round_size=current_round.size
        )
        logger.debug(
            f"Session {self._session_id} presenting {current_round.difficulty} question "
            f"{view.question_number}/{view.round_size}"
        )
        self._emit('on_question', view)

    def _on_timer_expired(self) -> None:
        logger.info(f"Time's up for session {self._session_id}")
        self.submit_answer(AnswerEvent.timeout())

    def _evaluate(self, event: AnswerEvent) -> None:
        self._timer.cancel()
        self._state.time_remaining = self._timer.remaining_time
        question = self.current_question

        if event.via_timeout or self._integrity_error:
            is_correct = False
        else:
            is_correct = event.chosen_option_value == question.correct_option

        if is_correct:
            self._state.correct_count += 1
        self._state.total_questions_seen += 1

        if question.has_explanation:
            self._feedback_hold = self.settings.explanation_duration
        else:
            self._feedback_hold = self.settings.feedback_duration
        self._feedback_elapsed = 0.0
        self._state.phase = Phase.SHOWING_FEEDBACK

        self._last_feedback = FeedbackView(
            chosen_is_correct=is_correct,
            chosen_option_label=event.chosen_option_value,
            correct_option_label=question.correct_option,
            explanation_text=question.explanation if question.has_explanation else None,
            via_timeout=event.via_timeout,
            integrity_error=self._integrity_error,
            hold_duration=self._feedback_hold
        )
        logger.info(
            f"Session {self._session_id} answer {'correct' if is_correct else 'incorrect'}"
            f"{' (timeout)' if event.via_timeout else ''}: "
            f"{self._state.correct_count}/{self._state.total_questions_seen}",
            extra={
                'event_type': 'answer_evaluated',
                'session_id': self._session_id,
                'correct': is_correct,
                'via_timeout': event.via_timeout,
                'integrity_error': self._integrity_error,
                'timestamp': time.time()
            }
        )
        self._emit('on_feedback', self._last_feedback)

    def _finish_feedback(self) -> None:
        current_round = self._state.current_round
        if current_round is not None and current_round.has_more:
            current_round.question_index += 1
            self._start_question()
        else:
            self.load_next_difficulty()

    def _complete(self, aborted: bool) -> None:
        if self._result is not None:
            return
        self._timer.cancel()
        self._state.phase = Phase.COMPLETE
        self._result = SessionResult(
            correct_count=self._state.correct_count,
            total_questions_seen=self._state.total_questions_seen,
            aborted=aborted
        )
        logger.info(
            f"Quiz session {self._session_id} completed{' (aborted)' if aborted else ''}. "
            f"Final Score: {self._result.correct_count}/{self._result.total_questions_seen}",
            extra={
                'event_type': 'session_complete',
                'session_id': self._session_id,
                'correct_count': self._result.correct_count,
                'total_questions_seen': self._result.total_questions_seen,
                'aborted': aborted,
                'timestamp': time.time()
            }
        )
        self._emit('on_complete', self._result)

    # Introspection

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def state(self) -> SessionState:
        """Detached snapshot of the session state."""
        with self._lock:
            return self._state.snapshot()

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def is_complete(self) -> bool:
        return self._state.phase is Phase.COMPLETE

    @property
    def current_question(self) -> Optional[Question]:
        if self._state.current_round is None:
            return None
        return self._state.current_round.current_question

    @property
    def current_difficulty(self) -> Optional[str]:
        if self._state.current_round is None:
            return None
        return self._state.current_round.difficulty

    @property
    def option_slots(self) -> List[OptionSlot]:
        return [OptionSlot(slot.label, slot.visible) for slot in self._option_slots]

    @property
    def visible_options(self) -> List[str]:
        return [slot.label for slot in self._option_slots if slot.visible]

    @property
    def hints_remaining(self) -> int:
        return self._state.hints_remaining

    @property
    def hint_available(self) -> bool:
        return (
            self._state.phase is Phase.AWAITING_ANSWER
            and self._hints.available
            and not self._integrity_error
        )

    @property
    def time_remaining(self) -> float:
        return self._state.time_remaining

    @property
    def feedback_remaining(self) -> float:
        if self._state.phase is not Phase.SHOWING_FEEDBACK:
            return 0.0
        return max(0.0, self._feedback_hold - self._feedback_elapsed)

    @property
    def last_feedback(self) -> Optional[FeedbackView]:
        return self._last_feedback

    @property
    def correct_count(self) -> int:
        return self._state.correct_count

    @property
    def total_questions_seen(self) -> int:
        return self._state.total_questions_seen

    @property
    def total_planned(self) -> int:
        """Sum of the sizes of every tier loaded so far."""
        return self._total_planned

    @property
    def result(self) -> Optional[SessionResult]:
        return self._result
