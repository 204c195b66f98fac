"""
Exception hierarchy for the tiered quiz cycle.
"""


class QuizError(Exception):
    """Base exception for quiz errors."""
    pass


class QuizConfigurationError(QuizError):
    """Raised when an engine is built with settings it cannot run with."""
    pass


class SessionConflictError(QuizError):
    """Raised when attempting to create a session that conflicts with existing session."""
    pass


class SessionNotFoundError(QuizError):
    """Raised when attempting to operate on a non-existent session."""
    pass
