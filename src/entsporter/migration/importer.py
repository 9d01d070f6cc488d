"""Single-engine import into a target cluster."""

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import ValidationError

from ..api.client import AppSearchClient, engine_path
from ..api.exceptions import AppSearchAPIError, AppSearchNotFoundError
from ..exceptions import EngineImportError, ImportFailure
from ..models.engine import CrawlerConfig, EngineExport

SCHEMA_BATCH_SIZE = 64
SEARCH_SETTINGS_FIELDS = ('search_fields', 'result_fields', 'boosts', 'precision')


def load_export(input_path) -> EngineExport:
    """Read an export file.

    Raises:
        EngineImportError: If the file is missing or malformed
    """
    path = Path(input_path)
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
        return EngineExport.model_validate(data)
    except (OSError, ValueError, ValidationError) as e:
        raise EngineImportError(f'Cannot read export file {path}: {e}') from e


def _name_taken(error: AppSearchAPIError) -> bool:
    return error.status_code in (400, 409) and 'taken' in str(error).lower()


def _failure_kind(error: AppSearchAPIError) -> ImportFailure:
    return ImportFailure.RETRIABLE if error.retriable else ImportFailure.FATAL


class EngineImporter:
    """Recreates an exported engine on the target cluster."""

    def __init__(
        self,
        client: AppSearchClient,
        delete_timeout: float = 60.0,
        delete_poll_interval: float = 1.0,
        create_attempts: int = 6,
        create_retry_delay: float = 5.0,
    ):
        """Initialize engine importer.

        Args:
            client: Target cluster client
            delete_timeout: Seconds to wait for a deleted engine to disappear
            delete_poll_interval: Seconds between deletion checks
            create_attempts: Attempts to create an engine whose name is still taken
            create_retry_delay: Seconds between creation attempts
        """
        self.client = client
        self.delete_timeout = delete_timeout
        self.delete_poll_interval = delete_poll_interval
        self.create_attempts = create_attempts
        self.create_retry_delay = create_retry_delay
        self.logger = logger.bind(component='EngineImporter')

    async def import_from_file(
        self, engine_name: str, input_path, force: bool = False
    ) -> None:
        """Import the export file at ``input_path`` as ``engine_name``."""
        self.logger.info(f'Reading engine settings from {input_path}')
        await self.import_engine(engine_name, load_export(input_path), force=force)

    async def import_engine(
        self, engine_name: str, export: EngineExport, force: bool = False
    ) -> None:
        """Create ``engine_name`` and apply the exported configuration.

        Raises:
            EngineImportError: If the engine cannot be created or configured
        """
        self.logger.info(
            f'Importing engine settings into {engine_name} on {self.client.config.url}'
        )

        try:
            await self.create_engine(engine_name, export, force=force)
            await self.import_schema(engine_name, export.schema_)
            await self.import_synonyms(engine_name, export)
            await self.import_curations(engine_name, export)
            await self.import_search_settings(engine_name, export.search_settings)
        except AppSearchAPIError as e:
            raise EngineImportError(
                f'Failed to import engine {engine_name}: {e}',
                engine=engine_name,
                kind=_failure_kind(e),
            ) from e

        if export.crawler and not export.crawler.is_empty:
            try:
                await self.import_crawler(engine_name, export.crawler)
            except AppSearchAPIError as e:
                self.logger.error(f'Crawler import failed for {engine_name}: {e}')

        self.logger.info(f'Engine {engine_name} imported')

    async def engine_exists(self, engine_name: str) -> bool:
        try:
            await self.client.get_async(engine_path(engine_name))
        except AppSearchNotFoundError:
            return False
        return True

    async def create_engine(
        self, engine_name: str, export: EngineExport, force: bool = False
    ) -> None:
        """Create the destination engine, replacing it when ``force`` is set."""
        if await self.engine_exists(engine_name):
            if not force:
                raise EngineImportError(
                    f'Engine {engine_name} already exists. Use --force to delete and recreate.',
                    engine=engine_name,
                    kind=ImportFailure.ALREADY_EXISTS,
                )
            self.logger.info(f'Engine {engine_name} already exists, deleting (--force)')
            await self.delete_engine(engine_name)

        settings: Dict[str, Any] = {'name': engine_name}
        if export.read_only.language:
            settings['language'] = export.read_only.language

        for attempt in range(1, self.create_attempts + 1):
            try:
                await self.client.post_async('engines', data=settings)
                break
            except AppSearchAPIError as e:
                if not _name_taken(e) or attempt == self.create_attempts:
                    raise
                self.logger.warning(
                    f'Engine name {engine_name} still taken '
                    f'(attempt {attempt}/{self.create_attempts}), retrying'
                )
                await asyncio.sleep(self.create_retry_delay)

        self.logger.info(f'Engine {engine_name} created')

    async def delete_engine(self, engine_name: str) -> None:
        """Delete an engine and wait until it is gone."""
        try:
            await self.client.delete_async(engine_path(engine_name))
        except AppSearchNotFoundError:
            self.logger.info(f'Engine {engine_name} does not exist, proceeding')
            return

        await self.wait_for_delete(engine_name)

    async def wait_for_delete(self, engine_name: str) -> None:
        """Poll until ``engine_name`` no longer exists.

        Raises:
            EngineImportError: If the engine is still present after the timeout
        """
        deadline = time.monotonic() + self.delete_timeout
        while await self.engine_exists(engine_name):
            if time.monotonic() >= deadline:
                raise EngineImportError(
                    f'Engine {engine_name} still exists {self.delete_timeout:.0f}s after deletion',
                    engine=engine_name,
                    kind=ImportFailure.RETRIABLE,
                )
            await asyncio.sleep(self.delete_poll_interval)
        self.logger.info(f'Engine {engine_name} deleted')

    async def import_schema(self, engine_name: str, schema: Dict[str, str]) -> None:
        """Push the schema in batches of fields."""
        fields = list(schema)
        for start in range(0, len(fields), SCHEMA_BATCH_SIZE):
            chunk = fields[start : start + SCHEMA_BATCH_SIZE]
            self.logger.debug(
                f'Pushing schema batch: fields {start + 1} to {start + len(chunk)}'
            )
            await self.client.post_async(
                engine_path(engine_name, 'schema'),
                data={name: schema[name] for name in chunk},
            )

    async def import_synonyms(self, engine_name: str, export: EngineExport) -> None:
        for synonym_set in export.synonyms:
            await self.client.post_async(
                engine_path(engine_name, 'synonyms'),
                data={'synonyms': synonym_set.get('synonyms', [])},
            )
        self.logger.debug(f'Imported {len(export.synonyms)} synonym sets')

    async def import_curations(self, engine_name: str, export: EngineExport) -> None:
        for curation in export.curations:
            await self.client.post_async(
                engine_path(engine_name, 'curations'),
                data={
                    'queries': curation.get('queries', []),
                    'promoted': curation.get('promoted', []),
                    'hidden': curation.get('hidden', []),
                },
            )
        self.logger.debug(f'Imported {len(export.curations)} curations')

    async def import_search_settings(
        self, engine_name: str, search_settings: Dict[str, Any]
    ) -> None:
        """Apply the writable subset of the exported search settings."""
        body = {
            key: search_settings[key]
            for key in SEARCH_SETTINGS_FIELDS
            if search_settings.get(key)
        }
        await self.client.put_async(
            engine_path(engine_name, 'search_settings'), data=body
        )

    async def _post_crawler(self, endpoint: str, body: Dict[str, Any]) -> Optional[Dict]:
        try:
            response = await self.client.post_async(endpoint, data=body)
        except AppSearchAPIError as e:
            self.logger.warning(f'Could not create {endpoint}: {e}')
            return None
        return response.data or {}

    async def import_crawler(self, engine_name: str, crawler: CrawlerConfig) -> None:
        """Recreate crawler domains and their sub-resources.

        Domains get new ids on the target; sub-resources are attached to the
        new id of the domain they referenced. Individual failures are logged
        and skipped.
        """
        base = engine_path(engine_name, 'crawler', 'domains')
        domain_ids: Dict[Any, Any] = {}

        for domain in crawler.domains:
            body = {'name': domain.get('name') or domain.get('url') or domain.get('domain', '')}
            if domain.get('default_crawl_rule'):
                body['default_crawl_rule'] = domain['default_crawl_rule']

            created = await self._post_crawler(base, body)
            if created is None:
                continue
            original_key = domain.get('id') or body['name']
            domain_ids[original_key] = created.get('id')
            self.logger.debug(f'Created domain {body["name"]} => id {created.get("id")}')

        subresources = (
            ('entry_points', crawler.entry_points, lambda item: {'value': item.get('value')}),
            (
                'crawl_rules',
                crawler.crawl_rules,
                lambda item: {
                    'policy': item.get('policy'),
                    'rule': item.get('rule'),
                    'pattern': item.get('pattern'),
                    'order': item.get('order'),
                },
            ),
            ('sitemaps', crawler.sitemaps, lambda item: {'url': item.get('url') or item.get('value')}),
        )

        for name, items, make_body in subresources:
            for item in items:
                domain_id = domain_ids.get(item.get('domain_id')) or item.get('domain_id')
                if not domain_id:
                    self.logger.warning(f'Skipping {name} entry without domain_id')
                    continue
                await self._post_crawler(f'{base}/{domain_id}/{name}', make_body(item))

        self.logger.info(f'Crawler import finished for {engine_name}')
