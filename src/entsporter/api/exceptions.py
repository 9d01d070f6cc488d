"""App Search API exceptions."""

from typing import Optional


class AppSearchAPIError(Exception):
    """Base exception for App Search API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize App Search API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data

    @property
    def retriable(self) -> bool:
        """Whether repeating the request later may succeed."""
        return self.status_code is None or self.status_code >= 500


class AppSearchAuthenticationError(AppSearchAPIError):
    """Authentication error with App Search API."""

    @property
    def retriable(self) -> bool:
        return False


class AppSearchRateLimitError(AppSearchAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    @property
    def retriable(self) -> bool:
        return True


class AppSearchNotFoundError(AppSearchAPIError):
    """Resource not found error."""

    @property
    def retriable(self) -> bool:
        return False
