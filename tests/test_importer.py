"""Tests for engine import."""

import json

import pytest

from entsporter.api.exceptions import AppSearchAPIError, AppSearchNotFoundError
from entsporter.exceptions import EngineImportError, ImportFailure
from entsporter.migration.importer import SCHEMA_BATCH_SIZE, EngineImporter, load_export
from entsporter.models.engine import CrawlerConfig, EngineExport, EngineInfo

NOT_FOUND = AppSearchNotFoundError('Not found', status_code=404)


def make_export(**overrides):
    data = dict(
        read_only=EngineInfo(name='parks', type='default', language='en'),
        schema={'title': 'text'},
        synonyms=[{'id': 'syn-1', 'synonyms': ['lake', 'pond']}],
        curations=[{'id': 'cur-1', 'queries': ['yosemite'], 'promoted': ['doc-1'], 'hidden': ['doc-9']}],
        search_settings={
            'search_fields': {'title': {'weight': 2}},
            'result_fields': {'title': {'raw': {}}},
            'boosts': {},
            'precision': 4,
            'precision_enabled': True,
        },
    )
    data.update(overrides)
    return EngineExport(**data)


def make_importer(client, **kwargs):
    kwargs.setdefault('delete_poll_interval', 0)
    kwargs.setdefault('create_retry_delay', 0)
    return EngineImporter(client, **kwargs)


class TestEngineImporter:
    """Test recreating an engine on the target."""

    @pytest.mark.asyncio
    async def test_import_new_engine(self, fake_client):
        """A new engine is created and configured."""
        await make_importer(fake_client).import_engine('copy-parks', make_export())

        assert fake_client.calls_to('POST', 'engines')[0] == (
            'engines',
            {'name': 'copy-parks', 'language': 'en'},
        )
        assert fake_client.calls_to('POST', 'engines/copy-parks/schema') == [
            ('engines/copy-parks/schema', {'title': 'text'})
        ]
        assert fake_client.calls_to('POST', 'engines/copy-parks/synonyms') == [
            ('engines/copy-parks/synonyms', {'synonyms': ['lake', 'pond']})
        ]
        assert fake_client.calls_to('POST', 'engines/copy-parks/curations') == [
            (
                'engines/copy-parks/curations',
                {'queries': ['yosemite'], 'promoted': ['doc-1'], 'hidden': ['doc-9']},
            )
        ]

    @pytest.mark.asyncio
    async def test_search_settings_whitelist(self, fake_client):
        """Only writable search settings are sent, and only when set."""
        await make_importer(fake_client).import_engine('parks', make_export())

        [(endpoint, body)] = fake_client.calls_to('PUT')
        assert endpoint == 'engines/parks/search_settings'
        assert body == {
            'search_fields': {'title': {'weight': 2}},
            'result_fields': {'title': {'raw': {}}},
            'precision': 4,
        }

    @pytest.mark.asyncio
    async def test_schema_is_batched(self, fake_client):
        """Large schemas are pushed in fixed-size batches."""
        schema = {f'field_{i}': 'text' for i in range(SCHEMA_BATCH_SIZE * 2 + 2)}

        await make_importer(fake_client).import_engine('parks', make_export(schema=schema))

        batches = [body for _, body in fake_client.calls_to('POST', 'engines/parks/schema')]
        assert [len(b) for b in batches] == [SCHEMA_BATCH_SIZE, SCHEMA_BATCH_SIZE, 2]
        merged = {}
        for batch in batches:
            merged.update(batch)
        assert merged == schema

    @pytest.mark.asyncio
    async def test_existing_engine_without_force(self, fake_client):
        """An existing destination is refused without force."""
        fake_client.on('GET', 'engines/parks', {'name': 'parks'})

        with pytest.raises(EngineImportError) as exc_info:
            await make_importer(fake_client).import_engine('parks', make_export())

        assert exc_info.value.kind == ImportFailure.ALREADY_EXISTS
        assert fake_client.calls_to('DELETE') == []
        assert fake_client.calls_to('POST') == []

    @pytest.mark.asyncio
    async def test_existing_engine_with_force(self, fake_client):
        """With force the engine is deleted, awaited and recreated."""
        fake_client.on('GET', 'engines/parks', {'name': 'parks'}, {'name': 'parks'}, NOT_FOUND)

        await make_importer(fake_client).import_engine('parks', make_export(), force=True)

        methods = [(m, e) for m, e, _ in fake_client.calls[:5]]
        assert methods == [
            ('GET', 'engines/parks'),
            ('DELETE', 'engines/parks'),
            ('GET', 'engines/parks'),
            ('GET', 'engines/parks'),
            ('POST', 'engines'),
        ]

    @pytest.mark.asyncio
    async def test_delete_timeout_is_retriable(self, fake_client):
        """An engine that never disappears fails as retriable."""
        fake_client.on('GET', 'engines/parks', {'name': 'parks'})

        with pytest.raises(EngineImportError) as exc_info:
            await make_importer(fake_client, delete_timeout=0).import_engine(
                'parks', make_export(), force=True
            )

        assert exc_info.value.kind == ImportFailure.RETRIABLE

    @pytest.mark.asyncio
    async def test_name_taken_is_retried(self, fake_client):
        """Creation is retried while the name is still taken."""
        taken = AppSearchAPIError('API request failed: Name is already taken', status_code=400)
        fake_client.on('POST', 'engines', taken, taken, {'name': 'parks'})

        await make_importer(fake_client).import_engine('parks', make_export())

        assert len(fake_client.calls_to('POST', 'engines')) >= 3
        assert [e for e, _ in fake_client.calls_to('POST')][:3] == ['engines'] * 3

    @pytest.mark.asyncio
    async def test_name_taken_gives_up(self, fake_client):
        """After the last attempt the error is reported."""
        taken = AppSearchAPIError('Name is already taken', status_code=400)
        fake_client.on('POST', 'engines', taken)

        with pytest.raises(EngineImportError) as exc_info:
            await make_importer(fake_client, create_attempts=2).import_engine(
                'parks', make_export()
            )

        assert exc_info.value.kind == ImportFailure.FATAL
        assert len(fake_client.calls_to('POST', 'engines')) == 2

    @pytest.mark.asyncio
    async def test_server_error_is_retriable(self, fake_client):
        """A 5xx while configuring the engine is retriable."""
        fake_client.on(
            'POST', 'engines/parks/schema', AppSearchAPIError('unavailable', status_code=503)
        )

        with pytest.raises(EngineImportError) as exc_info:
            await make_importer(fake_client).import_engine('parks', make_export())

        assert exc_info.value.kind == ImportFailure.RETRIABLE
        assert exc_info.value.engine == 'parks'

    @pytest.mark.asyncio
    async def test_crawler_domain_ids_are_remapped(self, fake_client):
        """Sub-resources are attached to the new domain ids."""
        crawler = CrawlerConfig(
            domains=[{'id': 'old-1', 'name': 'https://parks.example.com'}],
            entry_points=[{'domain_id': 'old-1', 'value': '/'}],
            crawl_rules=[{'domain_id': 'old-1', 'policy': 'deny', 'rule': 'begins', 'pattern': '/admin', 'order': 0}],
            sitemaps=[{'domain_id': 'old-1', 'url': 'https://parks.example.com/sitemap.xml'}],
        )
        fake_client.on('POST', 'engines/parks/crawler/domains', {'id': 'new-1'})

        await make_importer(fake_client).import_engine('parks', make_export(crawler=crawler))

        base = 'engines/parks/crawler/domains'
        assert fake_client.calls_to('POST', f'{base}/new-1/entry_points') == [
            (f'{base}/new-1/entry_points', {'value': '/'})
        ]
        assert fake_client.calls_to('POST', f'{base}/new-1/crawl_rules')[0][1]['pattern'] == '/admin'
        assert fake_client.calls_to('POST', f'{base}/new-1/sitemaps') == [
            (f'{base}/new-1/sitemaps', {'url': 'https://parks.example.com/sitemap.xml'})
        ]

    @pytest.mark.asyncio
    async def test_crawler_failure_does_not_fail_import(self, fake_client):
        """Crawler errors are logged and skipped."""
        crawler = CrawlerConfig(
            domains=[{'id': 'old-1', 'name': 'https://parks.example.com'}],
            entry_points=[{'domain_id': 'old-1', 'value': '/'}],
        )
        fake_client.on(
            'POST', 'engines/parks/crawler/domains', AppSearchAPIError('crawler disabled', status_code=400)
        )

        await make_importer(fake_client).import_engine('parks', make_export(crawler=crawler))

        assert fake_client.calls_to('PUT', 'engines/parks/search_settings')


class TestLoadExport:
    """Test reading export files."""

    @pytest.mark.asyncio
    async def test_import_from_file(self, fake_client, tmp_path):
        """An export file is read and imported."""
        path = tmp_path / 'parks.json'
        path.write_text(make_export().to_json())

        await make_importer(fake_client).import_from_file('parks', path)

        assert fake_client.calls_to('POST', 'engines')[0][1]['name'] == 'parks'

    def test_round_trip_keys(self, tmp_path):
        """Files written with on-disk keys load back."""
        path = tmp_path / 'parks.json'
        path.write_text(
            json.dumps(
                {
                    'read_only': {'name': 'parks'},
                    'schema': {'title': 'text'},
                    'searchSettings': {'precision': 2},
                    'crawler': {'domains': [], 'entryPoints': [{'value': '/'}]},
                }
            )
        )

        export = load_export(path)

        assert export.schema_ == {'title': 'text'}
        assert export.search_settings == {'precision': 2}
        assert export.crawler.entry_points == [{'value': '/'}]
        assert export.synonyms == []

    def test_missing_file(self, tmp_path):
        """A missing file raises EngineImportError."""
        with pytest.raises(EngineImportError):
            load_export(tmp_path / 'missing.json')

    def test_malformed_file(self, tmp_path):
        """Invalid JSON raises EngineImportError."""
        path = tmp_path / 'broken.json'
        path.write_text('{"read_only":')

        with pytest.raises(EngineImportError):
            load_export(path)
