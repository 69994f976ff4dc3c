"""
Custom Exceptions for the Pitch Deck backend.

Provides specific exception types for different error scenarios,
improving error handling, debugging, and user-facing error messages.

The learning layer (tracker, analyzer, recommendation engine) catches these
at its public boundaries; they only reach HTTP handlers from read endpoints.
"""


class PitchDeckError(Exception):
    """Base exception for all backend errors."""
    pass


# =============================================================================
# Persistence Exceptions
# =============================================================================

class PersistenceError(PitchDeckError):
    """Raised when the event or pattern store cannot complete an operation."""

    def __init__(self, operation: str, reason: str = None):
        self.operation = operation
        self.reason = reason
        msg = f"Persistence operation failed: {operation}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


# =============================================================================
# Learning Layer Exceptions
# =============================================================================

class InvalidScopeError(PitchDeckError):
    """Raised when a scope type is unknown or a scoped query lacks its scope id."""

    def __init__(self, scope_type: str, scope_id: str = None):
        self.scope_type = scope_type
        self.scope_id = scope_id
        super().__init__(f"Invalid learning scope: {scope_type} (scope_id={scope_id})")


class SessionNotFoundError(PitchDeckError):
    """Raised when a named tracking session does not exist or has expired."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found or expired: {session_id}")


class SessionConflictError(PitchDeckError):
    """Raised when a new session would reuse an id that is already in use."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session id already in use: {session_id}")


class InvalidEventTypeError(PitchDeckError):
    """Raised when an event type is outside the known vocabulary."""

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"Unknown event type: {event_type}")


# =============================================================================
# AI/LLM Exceptions
# =============================================================================

class LLMError(PitchDeckError):
    """Base exception for LLM-related errors."""
    pass


class LLMProviderUnavailable(LLMError):
    """Raised when a provider is not configured or cannot be reached."""

    def __init__(self, provider: str, reason: str = None):
        self.provider = provider
        self.reason = reason
        msg = f"LLM provider '{provider}' is unavailable"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LLMResponseParseError(LLMError):
    """Raised when a provider response cannot be parsed into slide content."""

    def __init__(self, provider: str, snippet: str = ""):
        self.provider = provider
        self.snippet = snippet[:200]
        super().__init__(f"Could not parse slide content from {provider} response")
