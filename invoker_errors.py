"""Exception hierarchy for the HTTP invoker."""


class InvokerError(Exception):
    """Base exception for all invocation failures."""


class ConfigurationError(InvokerError, ValueError):
    """Raised when the incoming event is missing a required field or is malformed."""


class HeaderConstructionError(InvokerError, ValueError):
    """Raised when a header name or value cannot be sent as an HTTP header."""

    def __init__(self, message: str, name: str | None = None) -> None:
        super().__init__(message)
        self.name = name


class TransportError(InvokerError):
    """Raised when the outbound call could not be completed.

    Attributes:
        url: Target URL of the failed call
        method: HTTP method of the failed call
    """

    def __init__(self, message: str, url: str | None = None, method: str | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.method = method


class TransportTimeoutError(TransportError):
    """Raised when the outbound call exceeds its timeout bound."""
