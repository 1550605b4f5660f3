"""Typed errors raised by the football-data.org provider."""

from typing import Optional


class FootballDataError(RuntimeError):
    """Base class for every provider failure."""


class ConfigurationError(FootballDataError):
    """Raised before any request when the API key is missing."""


class AuthenticationFailed(FootballDataError):
    """Raised when the API rejects the key (HTTP 403)."""


class RateLimitExceeded(FootballDataError):
    """Raised when the API answers HTTP 429 despite client-side throttling."""


class UpstreamError(FootballDataError):
    """Raised for any other non-2xx response."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API error {status_code}: {body}")


class TransportError(FootballDataError):
    """Raised when the request never got a response (DNS, connect, timeout)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
