"""Single-engine export from a source cluster."""

import asyncio
from pathlib import Path
from typing import Any, Dict, List

from loguru import logger

from ..api.client import AppSearchClient, engine_path
from ..api.exceptions import AppSearchAPIError
from ..exceptions import ExportError
from ..models.engine import CrawlerConfig, EngineExport, EngineInfo

CRAWLER_SUBRESOURCES = ('entry_points', 'crawl_rules', 'sitemaps')


def _has_nested_subresources(domains: List[Dict[str, Any]]) -> bool:
    if not domains:
        return False
    return all(
        isinstance(d.get('entry_points', d.get('entryPoints')), list)
        and isinstance(d.get('crawl_rules', d.get('crawlRules')), list)
        and isinstance(d.get('sitemaps'), list)
        for d in domains
    )


def flatten_crawler_domains(domains: List[Dict[str, Any]]) -> CrawlerConfig:
    """Split domains with nested sub-resources into flat lists.

    Each flattened entry point, crawl rule and sitemap is tagged with the
    ``domain_id`` of its domain.
    """
    crawler = CrawlerConfig()
    for domain in domains:
        normalized = dict(domain)
        normalized['entry_points'] = list(
            normalized.pop('entryPoints', None) or normalized.get('entry_points') or []
        )
        normalized['crawl_rules'] = list(
            normalized.pop('crawlRules', None) or normalized.get('crawl_rules') or []
        )
        normalized['sitemaps'] = list(normalized.get('sitemaps') or [])

        domain_id = normalized.get('id')
        for entry_point in normalized['entry_points']:
            crawler.entry_points.append({'domain_id': domain_id, **entry_point})
        for rule in normalized['crawl_rules']:
            crawler.crawl_rules.append({'domain_id': domain_id, **rule})
        for sitemap in normalized['sitemaps']:
            crawler.sitemaps.append({'domain_id': domain_id, **sitemap})

        crawler.domains.append(normalized)
    return crawler


class EngineExporter:
    """Reads an engine's configuration from the source cluster."""

    def __init__(self, client: AppSearchClient):
        """Initialize engine exporter.

        Args:
            client: Source cluster client
        """
        self.client = client
        self.logger = logger.bind(component='EngineExporter')

    async def export_engine(self, engine_name: str) -> EngineExport:
        """Export schema, synonyms, curations, search settings and crawler config.

        The parts are fetched in sequence. Crawler configuration is
        best-effort; every other part must succeed.

        Raises:
            ExportError: If the engine or a required part cannot be read
        """
        self.logger.info(
            f'Exporting engine {engine_name} from {self.client.config.url}'
        )

        try:
            engine = (await self.client.get_async(engine_path(engine_name))).data or {}
            schema = (
                await self.client.get_async(engine_path(engine_name, 'schema'))
            ).data or {}
            synonyms = await self.client.get_paginated_async(
                engine_path(engine_name, 'synonyms')
            )
            curations = await self.client.get_paginated_async(
                engine_path(engine_name, 'curations')
            )
            search_settings = (
                await self.client.get_async(engine_path(engine_name, 'search_settings'))
            ).data or {}
        except AppSearchAPIError as e:
            raise ExportError(
                f'Failed to export engine {engine_name}: {e}', engine=engine_name
            ) from e

        crawler = await self.export_crawler(engine_name)

        return EngineExport(
            read_only=EngineInfo(
                name=engine.get('name', engine_name),
                type=engine.get('type'),
                language=engine.get('language'),
            ),
            schema=schema,
            synonyms=synonyms,
            curations=curations,
            search_settings=search_settings,
            crawler=crawler,
        )

    async def export_to_file(self, engine_name: str, output_path) -> EngineExport:
        """Export an engine and write it as JSON to ``output_path``."""
        export = await self.export_engine(engine_name)
        path = Path(output_path)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(export.to_json(), encoding='utf-8')
        except OSError as e:
            raise ExportError(
                f'Failed to write export of {engine_name} to {path}: {e}',
                engine=engine_name,
            ) from e

        self.logger.info(f'Wrote engine {engine_name} to {path}')
        return export

    async def _fetch_all_or_empty(self, endpoint: str) -> List[Dict[str, Any]]:
        try:
            return await self.client.get_paginated_async(endpoint)
        except AppSearchAPIError as e:
            self.logger.warning(f'Could not fetch {endpoint}: {e}')
            return []

    async def export_crawler(self, engine_name: str) -> CrawlerConfig:
        """Export crawler configuration.

        Domains with nested sub-resources are preferred; otherwise entry
        points, crawl rules and sitemaps are fetched from their own
        endpoints. Unavailable endpoints yield empty lists.
        """
        domains = await self._fetch_all_or_empty(
            engine_path(engine_name, 'crawler', 'domains')
        )

        if _has_nested_subresources(domains):
            return flatten_crawler_domains(domains)

        entry_points, crawl_rules, sitemaps = await asyncio.gather(
            *[
                self._fetch_all_or_empty(engine_path(engine_name, 'crawler', name))
                for name in CRAWLER_SUBRESOURCES
            ]
        )

        return CrawlerConfig(
            domains=domains,
            entry_points=entry_points,
            crawl_rules=crawl_rules,
            sitemaps=sitemaps,
        )
