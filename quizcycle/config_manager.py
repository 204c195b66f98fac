"""
Configuration manager for quiz timing, hints and difficulty progression.
"""
import logging
import os
from typing import Any, Dict, List, Optional
from pathlib import Path

from .models import DEFAULT_DIFFICULTIES, QuizSettings


class ConfigManager:
    """Manages quiz configuration settings and their validation."""

    # Default configuration values
    DEFAULT_TIME_PER_QUESTION = 10.0
    DEFAULT_EXPLANATION_DURATION = 2.0
    DEFAULT_FEEDBACK_DURATION = 0.5
    DEFAULT_HINT_COUNT = 1
    DEFAULT_TICK_INTERVAL = 0.25
    DEFAULT_QUESTION_FILE = None  # Use the bundled quiz_data.json

    # Validation limits
    MIN_TIME_PER_QUESTION = 1.0
    MAX_TIME_PER_QUESTION = 300.0  # 5 minutes
    MAX_FEEDBACK_DURATION = 30.0
    MIN_HINT_COUNT = 0
    MAX_HINT_COUNT = 10
    MIN_TICK_INTERVAL = 0.05
    MAX_TICK_INTERVAL = 2.0

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._question_file: Optional[str] = self.DEFAULT_QUESTION_FILE
        self._tick_interval = self.DEFAULT_TICK_INTERVAL

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            A copy of the current QuizSettings
        """
        return QuizSettings(
            time_per_question=self._global_settings.time_per_question,
            explanation_duration=self._global_settings.explanation_duration,
            feedback_duration=self._global_settings.feedback_duration,
            hint_count=self._global_settings.hint_count,
            hint_removal_count=self._global_settings.hint_removal_count,
            difficulties=list(self._global_settings.difficulties)
        )

    def _set_duration(self, attribute: str, label: str, value: Any, minimum: float, maximum: float) -> Dict[str, Any]:
        """Validate and store a duration in seconds."""
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            error_msg = f"{label} must be a number, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }

        if value < minimum:
            error_msg = f"{label} must be at least {minimum} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too short: Minimum is {minimum} seconds"
            }

        if value > maximum:
            error_msg = f"{label} cannot exceed {maximum} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too long: Maximum is {maximum} seconds"
            }

        setattr(self._global_settings, attribute, float(value))
        self.logger.info(f"{label} set to {value} seconds")
        return {
            'success': True,
            'message': f"{label} set to {value} seconds",
            'user_message': f"✅ {label} set to {value} seconds"
        }

    def set_time_per_question(self, seconds: float) -> Dict[str, Any]:
        """
        Set the answer time limit for each question.

        Args:
            seconds: Time limit in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_duration(
            'time_per_question', "Time per question", seconds,
            self.MIN_TIME_PER_QUESTION, self.MAX_TIME_PER_QUESTION
        )

    def get_time_per_question(self) -> float:
        return self._global_settings.time_per_question

    def set_explanation_duration(self, seconds: float) -> Dict[str, Any]:
        """
        Set how long feedback stays up for questions with an explanation.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_duration(
            'explanation_duration', "Explanation duration", seconds, 0.0, self.MAX_FEEDBACK_DURATION
        )

    def get_explanation_duration(self) -> float:
        return self._global_settings.explanation_duration

    def set_feedback_duration(self, seconds: float) -> Dict[str, Any]:
        """
        Set how long feedback stays up for questions without an explanation.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        return self._set_duration(
            'feedback_duration', "Feedback duration", seconds, 0.0, self.MAX_FEEDBACK_DURATION
        )

    def get_feedback_duration(self) -> float:
        return self._global_settings.feedback_duration

    def set_hint_count(self, count: int) -> Dict[str, Any]:
        """
        Set the number of hints granted per session.

        Args:
            count: Number of hints

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(count, bool) or not isinstance(count, int):
            error_msg = f"Hint count must be an integer, got {type(count).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            }

        if count < self.MIN_HINT_COUNT or count > self.MAX_HINT_COUNT:
            error_msg = f"Hint count must be between {self.MIN_HINT_COUNT} and {self.MAX_HINT_COUNT}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Hint count must be between {self.MIN_HINT_COUNT} and {self.MAX_HINT_COUNT}"
            }

        self._global_settings.hint_count = count
        self.logger.info(f"Hint count set to {count}")
        return {
            'success': True,
            'message': f"Hint count set to {count}",
            'user_message': f"✅ {count} hint{'s' if count != 1 else ''} per quiz"
        }

    def get_hint_count(self) -> int:
        return self._global_settings.hint_count

    def set_difficulties(self, difficulties: List[str]) -> Dict[str, Any]:
        """
        Set the difficulty tiers and the order they are played in.

        Args:
            difficulties: Tier names in progression order

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(difficulties, (list, tuple)) or not difficulties:
            error_msg = "Difficulties must be a non-empty list of tier names"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Provide at least one difficulty tier"
            }

        if not all(isinstance(name, str) and name.strip() for name in difficulties):
            error_msg = "Difficulty names must be non-empty strings"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Difficulty names must be non-empty text"
            }

        names = [name.strip() for name in difficulties]
        if len(set(names)) != len(names):
            error_msg = f"Difficulty names must be unique, got {names}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Each difficulty tier can only appear once"
            }

        self._global_settings.difficulties = names
        order = " → ".join(self._global_settings.difficulties)
        self.logger.info(f"Difficulty order set to {order}")
        return {
            'success': True,
            'message': f"Difficulty order set to {order}",
            'user_message': f"✅ Tiers will be played as {order}"
        }

    def get_difficulties(self) -> List[str]:
        return list(self._global_settings.difficulties)

    def set_question_file(self, path: Optional[str]) -> Dict[str, Any]:
        """
        Set the JSON question file path with validation.

        Args:
            path: Path to the question file, or None for the bundled file

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if path is None:
            self._question_file = None
            self.logger.info("Question file set to bundled default")
            return {
                'success': True,
                'message': "Question file set to bundled default",
                'user_message': "✅ Using the bundled question file"
            }

        if not isinstance(path, str) or not path.strip():
            error_msg = "Question file path must be a non-empty string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Question file path cannot be empty"
            }

        try:
            normalized_path = str(Path(path).expanduser().resolve())
        except (OSError, ValueError, RuntimeError) as e:
            error_msg = f"Invalid question file path: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {path}"
            }

        if not normalized_path.lower().endswith(".json"):
            error_msg = f"Question file must be a .json file: {normalized_path}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Question file must be a .json file"
            }

        self._question_file = normalized_path
        self.logger.info(f"Question file set to {normalized_path}")
        return {
            'success': True,
            'message': f"Question file set to {normalized_path}",
            'user_message': f"✅ Question file set to {normalized_path}"
        }

    def get_question_file(self) -> Optional[str]:
        return self._question_file

    def set_tick_interval(self, seconds: float) -> Dict[str, Any]:
        """
        Set how often the session controller ticks running quizzes.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            error_msg = f"Tick interval must be a number, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {'success': False, 'error': error_msg, 'user_message': "❌ Tick interval must be a number"}

        if seconds < self.MIN_TICK_INTERVAL or seconds > self.MAX_TICK_INTERVAL:
            error_msg = f"Tick interval must be between {self.MIN_TICK_INTERVAL} and {self.MAX_TICK_INTERVAL} seconds"
            self.logger.error(error_msg)
            return {'success': False, 'error': error_msg, 'user_message': f"❌ {error_msg}"}

        self._tick_interval = float(seconds)
        self.logger.info(f"Tick interval set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Tick interval set to {seconds} seconds",
            'user_message': f"✅ Tick interval set to {seconds} seconds"
        }

    def get_tick_interval(self) -> float:
        return self._tick_interval

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a loaded config.json.

        Invalid values are logged and skipped so the defaults stay in place.

        Args:
            config: Full configuration dictionary

        Returns:
            List of error messages for values that were rejected
        """
        quiz_config = config.get('quiz', {}) if isinstance(config, dict) else {}
        setters = [
            ('question_file', self.set_question_file),
            ('time_per_question', self.set_time_per_question),
            ('explanation_duration', self.set_explanation_duration),
            ('feedback_duration', self.set_feedback_duration),
            ('hint_count', self.set_hint_count),
            ('difficulties', self.set_difficulties),
            ('tick_interval', self.set_tick_interval),
        ]

        errors = []
        for key, setter in setters:
            if key not in quiz_config:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        env_question_file = os.getenv('QUIZ_QUESTION_FILE')
        if env_question_file:
            result = self.set_question_file(env_question_file)
            if not result['success']:
                errors.append(f"QUIZ_QUESTION_FILE: {result['error']}")

        if errors:
            self.logger.warning(f"Rejected {len(errors)} configuration value(s), defaults kept")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = QuizSettings(
            time_per_question=self.DEFAULT_TIME_PER_QUESTION,
            explanation_duration=self.DEFAULT_EXPLANATION_DURATION,
            feedback_duration=self.DEFAULT_FEEDBACK_DURATION,
            hint_count=self.DEFAULT_HINT_COUNT,
            difficulties=list(DEFAULT_DIFFICULTIES)
        )
        self._question_file = self.DEFAULT_QUESTION_FILE
        self._tick_interval = self.DEFAULT_TICK_INTERVAL
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._global_settings

        if not (self.MIN_TIME_PER_QUESTION <= settings.time_per_question <= self.MAX_TIME_PER_QUESTION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid time per question: {settings.time_per_question}")

        for name in ("explanation_duration", "feedback_duration"):
            value = getattr(settings, name)
            if not (0 <= value <= self.MAX_FEEDBACK_DURATION):
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {name.replace('_', ' ')}: {value}")

        if not (self.MIN_HINT_COUNT <= settings.hint_count <= self.MAX_HINT_COUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid hint count: {settings.hint_count}")

        if not settings.difficulties:
            validation_result["valid"] = False
            validation_result["issues"].append("Invalid difficulties: no tiers configured")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        return (
            f"Quiz Settings:\n"
            f"• Tiers: {' → '.join(settings.difficulties)}\n"
            f"• Time per question: {settings.time_per_question:g} seconds\n"
            f"• Explanation hold: {settings.explanation_duration:g} seconds\n"
            f"• Feedback hold: {settings.feedback_duration:g} seconds\n"
            f"• Hints: {settings.hint_count}\n"
            f"• Question file: {self._question_file or 'bundled quiz_data.json'}"
        )
