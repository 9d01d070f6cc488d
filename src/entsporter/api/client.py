"""App Search API client implementation."""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..config.config import AppSearchInstanceConfig
from .exceptions import (
    AppSearchAPIError,
    AppSearchAuthenticationError,
    AppSearchNotFoundError,
    AppSearchRateLimitError,
)
from .rate_limiter import RateLimiter

USER_AGENT = 'entsporter/0.1.0'

# Keys under which App Search list endpoints return their items
RESULT_KEYS = (
    'results',
    'synonym_sets',
    'curations',
    'domains',
    'entry_points',
    'crawl_rules',
    'sitemaps',
)


def engine_path(engine_name: str, *parts: str) -> str:
    """Build an endpoint path below ``engines/<engine_name>``."""
    path = f'engines/{quote(engine_name, safe="")}'
    for part in parts:
        path += '/' + part.strip('/')
    return path


def extract_results(data: Any) -> List[Dict[str, Any]]:
    """Pull the item list out of a list endpoint payload."""
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []
    for key in RESULT_KEYS:
        items = data.get(key)
        if isinstance(items, list):
            return items
    return []


def total_pages(data: Any) -> Optional[int]:
    """Read ``meta.page.total_pages`` from a list endpoint payload."""
    if not isinstance(data, dict):
        return None
    page = (data.get('meta') or {}).get('page') or {}
    value = page.get('total_pages')
    return int(value) if value is not None else None


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


def _error_message(status_code: int, error_data: Any, text: str) -> str:
    if isinstance(error_data, dict):
        errors = error_data.get('errors') or error_data.get('error')
        if isinstance(errors, list):
            return '; '.join(str(e) for e in errors)
        if errors:
            return str(errors)
        if error_data.get('message'):
            return str(error_data['message'])
    return f'HTTP {status_code}: {text}' if text else f'HTTP {status_code}'


def _raise_for_status(status_code: int, headers: Dict[str, str], error_data, text):
    """Map an error status to the matching exception."""
    if status_code == 429:
        retry_after = int(headers.get('Retry-After', 60))
        raise AppSearchRateLimitError(
            f'Rate limit exceeded. Retry after {retry_after} seconds',
            retry_after=retry_after,
            status_code=status_code,
        )

    if status_code == 401:
        raise AppSearchAuthenticationError(
            'Authentication failed', status_code=status_code
        )

    if status_code == 404:
        raise AppSearchNotFoundError(
            _error_message(status_code, error_data, 'Resource not found'),
            status_code=status_code,
            response_data=error_data if isinstance(error_data, dict) else None,
        )

    raise AppSearchAPIError(
        f'API request failed: {_error_message(status_code, error_data, text)}',
        status_code=status_code,
        response_data=error_data if isinstance(error_data, dict) else None,
    )


class AppSearchClient:
    """App Search API client with bearer-key authentication."""

    def __init__(self, config: AppSearchInstanceConfig):
        """Initialize App Search client.

        Args:
            config: App Search cluster configuration
        """
        self.config = config
        self.base_url = config.url.rstrip('/') + '/api/as/v1'
        self.rate_limiter = RateLimiter(config.rate_limit_per_second)
        self.session = requests.Session()
        self.session.headers.update(self._headers())

        logger.debug(f'Initialized App Search client for {config.url}')

    def _headers(self) -> Dict[str, str]:
        return {
            'Authorization': f'Bearer {self.config.api_key}',
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Args:
            response: Raw HTTP response

        Returns:
            Standardized API response

        Raises:
            AppSearchAPIError: For various API errors
        """
        headers = dict(response.headers)

        if response.status_code >= 400:
            try:
                error_data = response.json()
            except ValueError:
                error_data = None
            _raise_for_status(
                response.status_code, headers, error_data, getattr(response, 'text', '')
            )

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    def _request(self, method: str, endpoint: str, **kwargs) -> APIResponse:
        url = self._build_url(endpoint)
        kwargs.setdefault('timeout', self.config.timeout)

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.error(f'Network error during {method} request: {e}')
            raise AppSearchAPIError(f'Network error: {e}')

        return self._handle_response(response)

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make GET request."""
        return self._request('GET', endpoint, params=params, **kwargs)

    def post(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make POST request."""
        return self._request('POST', endpoint, json=data, **kwargs)

    def put(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make PUT request."""
        return self._request('PUT', endpoint, json=data, **kwargs)

    def delete(self, endpoint: str, **kwargs) -> APIResponse:
        """Make DELETE request."""
        return self._request('DELETE', endpoint, **kwargs)

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        **kwargs,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        await self.rate_limiter.acquire()

        async with aiohttp.ClientSession(
            headers=self._headers(), timeout=timeout
        ) as session:
            try:
                async with session.request(
                    method=method, url=url, params=params, json=data, **kwargs
                ) as response:
                    response_headers = dict(response.headers)
                    response_text = await response.text()

                    try:
                        response_data = (
                            json.loads(response_text) if response_text else None
                        )
                    except ValueError:
                        response_data = response_text

                    if response.status >= 400:
                        _raise_for_status(
                            response.status,
                            response_headers,
                            response_data,
                            response_text,
                        )

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

            except aiohttp.ClientError as e:
                logger.error(f'Network error during API request: {e}')
                raise AppSearchAPIError(f'Network error: {e}')

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self._make_request_async('GET', endpoint, params=params, **kwargs)

    async def post_async(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous POST request."""
        return await self._make_request_async('POST', endpoint, data=data, **kwargs)

    async def put_async(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous PUT request."""
        return await self._make_request_async('PUT', endpoint, data=data, **kwargs)

    async def delete_async(self, endpoint: str, **kwargs) -> APIResponse:
        """Make asynchronous DELETE request."""
        return await self._make_request_async('DELETE', endpoint, **kwargs)

    @staticmethod
    def _page_params(
        params: Optional[Dict[str, Any]], page: int, page_size: int
    ) -> Dict[str, Any]:
        query = dict(params or {})
        query['page[current]'] = page
        query['page[size]'] = page_size
        return query

    def get_paginated(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        page_size: int = 25,
    ) -> List[Dict[str, Any]]:
        """Get all pages of a paginated endpoint.

        Pages are requested until ``meta.page.total_pages`` is reached or a
        page comes back empty. Errors on any page propagate.

        Args:
            endpoint: API endpoint
            params: Query parameters
            page_size: Items per page

        Returns:
            List of all items from all pages
        """
        all_items = []
        page = 1

        while True:
            response = self.get(
                endpoint, params=self._page_params(params, page, page_size)
            )

            items = extract_results(response.data)
            if not items:
                break

            all_items.extend(items)

            pages = total_pages(response.data)
            if pages is None or page >= pages:
                break

            page += 1

        logger.debug(f'Retrieved {len(all_items)} items from {endpoint}')
        return all_items

    async def get_paginated_async(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        page_size: int = 25,
    ) -> List[Dict[str, Any]]:
        """Asynchronous counterpart of :meth:`get_paginated`."""
        all_items = []
        page = 1

        while True:
            response = await self.get_async(
                endpoint, params=self._page_params(params, page, page_size)
            )

            items = extract_results(response.data)
            if not items:
                break

            all_items.extend(items)

            pages = total_pages(response.data)
            if pages is None or page >= pages:
                break

            page += 1

        logger.debug(f'Retrieved {len(all_items)} items from {endpoint}')
        return all_items

    def test_connection(self) -> bool:
        """Test connection to the App Search cluster.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get('engines', params=self._page_params(None, 1, 1))
            return response.success
        except AppSearchAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.debug('App Search client session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class AppSearchClientFactory:
    """Factory for creating App Search API clients."""

    @staticmethod
    def create_client(config: AppSearchInstanceConfig) -> AppSearchClient:
        """Create App Search client from configuration.

        Args:
            config: App Search cluster configuration

        Returns:
            Configured App Search client
        """
        return AppSearchClient(config)
