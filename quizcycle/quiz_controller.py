"""
Quiz session controller.
Owns one QuizEngine per channel and the asyncio task that ticks it.
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import QuestionBank
from .errors import SessionConflictError, SessionNotFoundError
from .models import Phase, SessionResult
from .quiz_engine import QuizEngine, QuizEventListener


@dataclass
class ChannelSession:
    """An engine bound to a channel plus the task driving its clock."""
    channel_id: int
    engine: QuizEngine
    start_time: datetime = field(default_factory=datetime.now)
    tick_task: Optional[asyncio.Task] = None


class _SessionCleanup(QuizEventListener):
    """Drops the channel's session once its engine completes."""

    def __init__(self, controller: "QuizController", channel_id: int):
        self._controller = controller
        self._channel_id = channel_id

    def on_complete(self, result: SessionResult) -> None:
        self._controller._forget_session(self._channel_id, result)


class QuizController:
    """
    Orchestrates quiz sessions across channels.

    Each channel can have at most one running session. The controller
    creates the engine, starts the tick loop on the running event loop,
    routes player input to the engine and tears sessions down on stop or
    completion.
    """

    def __init__(
        self,
        question_bank: QuestionBank,
        config_manager: Optional[ConfigManager] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the quiz controller.

        Args:
            question_bank: Source of questions for every session
            config_manager: Settings source; defaults are used if omitted
            rng: Random source shared by the engines (tests pass a seeded one)
        """
        self.logger = logging.getLogger(__name__)
        self.question_bank = question_bank
        self.config_manager = config_manager or ConfigManager()
        self._rng = rng

        # Active sessions mapped by channel ID
        self._active_sessions: Dict[int, ChannelSession] = {}
        self._last_results: Dict[int, SessionResult] = {}

        self.logger.info("QuizController initialized")

    def create_session(self, channel_id: int, listener: Optional[QuizEventListener] = None) -> QuizEngine:
        """
        Create a quiz engine for a channel without starting it.

        Args:
            channel_id: Channel identifier
            listener: Renderer receiving the engine's events

        Returns:
            The new engine

        Raises:
            SessionConflictError: If the channel already has a running session
        """
        if self.has_active_session(channel_id):
            raise SessionConflictError(f"Channel {channel_id} already has an active quiz session")

        engine = QuizEngine(
            self.question_bank,
            settings=self.config_manager.get_quiz_settings(),
            rng=self._rng,
            session_id=str(channel_id)
        )
        if listener is not None:
            engine.add_listener(listener)
        engine.add_listener(_SessionCleanup(self, channel_id))

        self._active_sessions[channel_id] = ChannelSession(channel_id=channel_id, engine=engine)
        self.logger.info(f"Created quiz session for channel {channel_id}")
        return engine

    def get_engine(self, channel_id: int) -> Optional[QuizEngine]:
        session = self._active_sessions.get(channel_id)
        return session.engine if session else None

    def get_session(self, channel_id: int) -> Optional[ChannelSession]:
        return self._active_sessions.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a channel has a quiz that has not completed.

        Args:
            channel_id: Channel identifier

        Returns:
            True if channel has an active session, False otherwise
        """
        session = self._active_sessions.get(channel_id)
        return session is not None and not session.engine.is_complete

    def get_last_result(self, channel_id: int) -> Optional[SessionResult]:
        return self._last_results.get(channel_id)

    async def start_quiz(self, channel_id: int, listener: Optional[QuizEventListener] = None) -> Dict[str, Any]:
        """
        Start a tiered quiz in a channel and its tick loop.

        Must be awaited from within the running event loop.

        Returns:
            Dictionary with success status, user-friendly message and session info
        """
        try:
            engine = self.create_session(channel_id, listener)
        except SessionConflictError as e:
            self.logger.warning(str(e))
            return {
                'success': False,
                'error': str(e),
                'user_message': "❌ A quiz is already running in this channel. Use /stop to end it first."
            }

        engine.start()

        if engine.is_complete:
            result = engine.result
            self.logger.warning(f"No questions available for channel {channel_id}")
            return {
                'success': False,
                'error': "No questions available in any difficulty tier",
                'user_message': "❌ No quiz available: every difficulty tier is empty.",
                'result': result
            }

        session = self._active_sessions[channel_id]
        session.tick_task = asyncio.create_task(self._run_tick_loop(channel_id, engine))
        return {
            'success': True,
            'message': f"Quiz started in channel {channel_id}",
            'user_message': "🎯 Quiz started!",
            'session_info': self.get_session_progress(channel_id)
        }

    async def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Abort the running quiz in a channel.

        Returns:
            Dictionary with success status, user-friendly message and the result
        """
        session = self._active_sessions.get(channel_id)
        if session is None:
            return {
                'success': False,
                'error': f"No active session for channel {channel_id}",
                'user_message': "❌ No quiz is running in this channel."
            }

        result = session.engine.abort("stopped by user")
        await self._cancel_tick_task(session)
        self._active_sessions.pop(channel_id, None)
        self.logger.info(f"Stopped quiz session for channel {channel_id}")
        return {
            'success': True,
            'message': f"Quiz stopped in channel {channel_id}",
            'user_message': f"🛑 Quiz stopped. {result.score_text}",
            'result': result
        }

    def submit_answer(self, channel_id: int, label: str) -> bool:
        """
        Route a player's option click to the channel's engine.

        Raises:
            SessionNotFoundError: If the channel has no session
        """
        engine = self.get_engine(channel_id)
        if engine is None:
            raise SessionNotFoundError(f"No active session for channel {channel_id}")
        return engine.answer(label)

    def use_hint(self, channel_id: int) -> List[str]:
        """
        Route a hint request to the channel's engine.

        Raises:
            SessionNotFoundError: If the channel has no session
        """
        engine = self.get_engine(channel_id)
        if engine is None:
            raise SessionNotFoundError(f"No active session for channel {channel_id}")
        return engine.use_hint()

    def get_session_progress(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a channel's session.

        Returns:
            Dictionary with progress details, or None if no session exists
        """
        session = self._active_sessions.get(channel_id)
        if session is None:
            return None

        engine = session.engine
        current_round = engine.state.current_round
        return {
            'channel_id': channel_id,
            'phase': engine.phase.value,
            'difficulty': engine.current_difficulty,
            'question_number': current_round.question_index + 1 if current_round else 0,
            'round_size': current_round.size if current_round else 0,
            'correct_count': engine.correct_count,
            'total_questions_seen': engine.total_questions_seen,
            'hints_remaining': engine.hints_remaining,
            'time_remaining': engine.time_remaining,
            'start_time': session.start_time.isoformat()
        }

    def get_all_active_sessions(self) -> Dict[int, Dict[str, Any]]:
        return {
            channel_id: self.get_session_progress(channel_id)
            for channel_id in list(self._active_sessions.keys())
        }

    async def shutdown(self) -> None:
        """Abort every running session (bot shutdown)."""
        for channel_id in list(self._active_sessions.keys()):
            await self.stop_quiz(channel_id)

    async def _run_tick_loop(self, channel_id: int, engine: QuizEngine) -> None:
        """Feed the engine elapsed loop time until it completes."""
        loop = asyncio.get_running_loop()
        interval = self.config_manager.get_tick_interval()
        last = loop.time()
        self.logger.debug(f"Tick loop started for channel {channel_id} (interval {interval}s)")

        try:
            while engine.phase is not Phase.COMPLETE:
                await asyncio.sleep(interval)
                now = loop.time()
                engine.tick(now - last)
                last = now
        except asyncio.CancelledError:
            self.logger.debug(f"Tick loop cancelled for channel {channel_id}")
            raise
        except Exception:
            self.logger.exception(f"Tick loop failed for channel {channel_id}, aborting session")
            engine.abort("tick loop error")
        finally:
            self.logger.debug(f"Tick loop finished for channel {channel_id}")

    async def _cancel_tick_task(self, session: ChannelSession) -> None:
        task = session.tick_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _forget_session(self, channel_id: int, result: SessionResult) -> None:
        self._last_results[channel_id] = result
        session = self._active_sessions.get(channel_id)
        if session is not None and session.engine.result is result:
            self._active_sessions.pop(channel_id, None)
            self.logger.info(f"Quiz session for channel {channel_id} finished: {result.score_text}")
