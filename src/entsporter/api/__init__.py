"""App Search API access."""

from .client import APIResponse, AppSearchClient, AppSearchClientFactory
from .exceptions import (
    AppSearchAPIError,
    AppSearchAuthenticationError,
    AppSearchNotFoundError,
    AppSearchRateLimitError,
)

__all__ = [
    'APIResponse',
    'AppSearchClient',
    'AppSearchClientFactory',
    'AppSearchAPIError',
    'AppSearchAuthenticationError',
    'AppSearchNotFoundError',
    'AppSearchRateLimitError',
]
