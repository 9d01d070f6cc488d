"""Engine enumeration."""

from typing import Any, List

from loguru import logger
from pydantic import ValidationError

from ..api.client import AppSearchClient, extract_results, total_pages
from ..api.exceptions import AppSearchAPIError
from ..exceptions import ListingError
from ..models.engine import Engine

DEFAULT_PAGE_SIZE = 25


def _page_params(page: int, page_size: int) -> dict:
    return {'page[current]': page, 'page[size]': page_size}


def _listing_error(client: AppSearchClient, page: int, error: Exception) -> ListingError:
    return ListingError(
        f'Failed to list engines on {client.config.url} (page {page}): {error}'
    )


def _collect_page(engines: List[Engine], data: Any, page: int) -> bool:
    """Add one page of engines; returns whether another page follows."""
    results = extract_results(data)
    if not results:
        return False

    try:
        engines.extend(Engine(**item) for item in results)
    except (TypeError, ValidationError) as e:
        raise ListingError(f'Unexpected engine listing payload on page {page}: {e}') from e

    if page % 10 == 0:
        logger.bind(component='EngineLister').debug(
            f'Fetched {len(engines)} engines so far...'
        )

    pages = total_pages(data)
    return pages is not None and page < pages


def list_engines(client: AppSearchClient, page_size: int = DEFAULT_PAGE_SIZE) -> List[Engine]:
    """List every engine visible on a cluster.

    Pages are drained until the reported total page count is reached or a
    page returns no results. The listing is all-or-nothing: an error on any
    page aborts it.

    Args:
        client: Client for the cluster to enumerate
        page_size: Engines per page

    Returns:
        Engines in listing order

    Raises:
        ListingError: If any page cannot be fetched or parsed
    """
    engines: List[Engine] = []
    page = 1

    while True:
        try:
            response = client.get('engines', params=_page_params(page, page_size))
        except AppSearchAPIError as e:
            raise _listing_error(client, page, e) from e

        if not _collect_page(engines, response.data, page):
            break
        page += 1

    logger.bind(component='EngineLister').info(
        f'Found {len(engines)} engines on {client.config.url}'
    )
    return engines


async def list_engines_async(
    client: AppSearchClient, page_size: int = DEFAULT_PAGE_SIZE
) -> List[Engine]:
    """Asynchronous counterpart of :func:`list_engines`."""
    engines: List[Engine] = []
    page = 1

    while True:
        try:
            response = await client.get_async(
                'engines', params=_page_params(page, page_size)
            )
        except AppSearchAPIError as e:
            raise _listing_error(client, page, e) from e

        if not _collect_page(engines, response.data, page):
            break
        page += 1

    logger.bind(component='EngineLister').info(
        f'Found {len(engines)} engines on {client.config.url}'
    )
    return engines


def list_engine_names(client: AppSearchClient, prefix: str = '') -> set:
    """Names of engines on a cluster, restricted to ``prefix`` when set."""
    return {
        engine.name
        for engine in list_engines(client)
        if not prefix or engine.name.startswith(prefix)
    }
