"""Custom exception types for the content pipeline metrics engine."""


class ContentPipelineError(Exception):
    """Base exception for all content pipeline metrics errors."""


class ConfigurationError(ContentPipelineError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(ContentPipelineError):
    """Raised when a workspace has no Linear API key configured."""


class ApiError(ContentPipelineError):
    """Raised when a Linear API request fails or returns an unexpected response."""


class SourceRateLimitError(ApiError):
    """Raised by the transport when Linear rejects a request as rate limited."""


class NoTeamFoundError(ApiError):
    """Raised when a workspace credential cannot see any team."""


class RateLimitError(ContentPipelineError):
    """User-facing rate limit failure surfaced by the refresh controller."""

    DEFAULT_MESSAGE = "API rate limit reached. Data will refresh when available."

    def __init__(self, message: str = DEFAULT_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class InvalidTransitionError(ContentPipelineError):
    """Raised when the refresh state machine is asked for an illegal transition."""
