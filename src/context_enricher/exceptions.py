"""Custom exceptions for the Context Enricher."""

from typing import Optional


class EnrichmentError(Exception):
    """Base exception for all enrichment errors."""

    pass


class ProviderError(EnrichmentError):
    """A call to the AI provider failed. Retryable at the batch level."""

    pass


class TransportError(ProviderError):
    """Network-level failure talking to the provider."""

    pass


class RateLimitError(TransportError):
    """Rate limit or server overload - retryable with backoff."""

    pass


class CallTimeoutError(TransportError):
    """Exception raised when a single provider call exceeds its timeout.

    Attributes:
        message: Description of the timeout
        timeout: The timeout that was exceeded, in seconds
    """

    def __init__(self, message: str, timeout: Optional[float] = None):
        self.message = message
        self.timeout = timeout
        super().__init__(self.message)


class APIError(ProviderError):
    """General API error returned by the provider."""

    pass


class AuthenticationError(ProviderError):
    """Authentication failed."""

    pass


class InvalidResponseShapeError(EnrichmentError):
    """Exception raised when a model response is not the expected structure.

    Attributes:
        message: Description of the problem
        raw_response: The (possibly truncated) raw text that failed to parse
    """

    def __init__(self, message: str, raw_response: Optional[str] = None):
        self.message = message
        self.raw_response = raw_response
        super().__init__(self.message)


class SessionSetupError(EnrichmentError):
    """Exception raised when a session cannot establish its cached context.

    This is fatal for the document being processed.

    Attributes:
        message: Description of the failure
        session_id: The session that failed
    """

    def __init__(self, message: str, session_id: Optional[str] = None):
        self.message = message
        self.session_id = session_id
        super().__init__(self.message)


class SessionNotFoundError(EnrichmentError, KeyError):
    """No session with the given id is registered."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Session not found"


class ReassemblyError(EnrichmentError):
    """Reassembled output would break block count or order."""

    pass
