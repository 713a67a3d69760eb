"""
Custom exception hierarchy for the knowledge collection system.

All application exceptions inherit from MycelError. Every error carries a
``recoverable`` flag so callers can tell "try the turn again" apart from
"this input/session cannot proceed".
"""

from typing import List, Optional


class MycelError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, recoverable: bool = False):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(MycelError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(MycelError):
    """Base for LLM-related errors.

    Raised non-recoverable by default. Transient transport failures that
    exhausted their retries are raised with ``recoverable=True``.
    """

    def __init__(
        self,
        message: str,
        recoverable: bool = False,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message, recoverable=recoverable)


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=True)


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=True, status_code=429)


# =============================================================================
# Agent (pipeline step) Errors
# =============================================================================


class AgentError(MycelError):
    """A pipeline step could not produce its output."""

    pass


class AgentOutputInvalidError(AgentError):
    """Model output never matched the expected shape within the retry budget."""

    def __init__(self, agent_name: str, attempts: int, validation_errors: List[str]):
        self.agent_name = agent_name
        self.attempts = attempts
        self.validation_errors = validation_errors
        super().__init__(
            f"{agent_name} returned invalid output after {attempts} attempts: "
            f"{'; '.join(validation_errors)}"
        )


class AgentPreconditionError(AgentError):
    """A step ran without data it requires from an earlier step."""

    pass


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(MycelError):
    """Session-related error."""

    pass


class SessionNotFoundError(SessionError):
    """Session does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class SessionStateError(SessionError):
    """Operation not allowed for the session's current status."""

    def __init__(self, session_id: str, status: str):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session is already {status}")


class SessionTurnLimitError(SessionError):
    """Session already used its configured number of turns."""

    def __init__(self, session_id: str, max_turns: int):
        self.session_id = session_id
        self.max_turns = max_turns
        super().__init__(f"Maximum turns ({max_turns}) reached for session: {session_id}")


class SessionCompletedError(SessionStateError):
    """Attempted operation on completed session."""

    def __init__(self, session_id: str):
        super().__init__(session_id, "complete")


class SessionAbandonedError(SessionStateError):
    """Session was abandoned."""

    def __init__(self, session_id: str):
        super().__init__(session_id, "abandoned")


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(MycelError):
    """Repository read/write failed."""

    pass
