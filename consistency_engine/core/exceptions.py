"""Exceptions raised by the consistency engine."""


class ConsistencyEngineError(Exception):
    """Base class for engine errors."""


class CapabilityNotConfiguredError(ConsistencyEngineError):
    """Raised when an external text capability has no credentials."""

    def __init__(self, capability: str, setting: str = "ANTHROPIC_API_KEY"):
        super().__init__(f"{setting} is not configured")
        self.capability = capability
        self.setting = setting


class AnalyzerOutputError(ConsistencyEngineError):
    """Raised when analyzer output cannot be validated against its schema."""


class SessionNotFoundError(ConsistencyEngineError):
    """Raised when an editing session id is unknown."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id
