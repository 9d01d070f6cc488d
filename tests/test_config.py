"""Tests for configuration management."""

import os
import tempfile
import warnings
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from entsporter.config.config import AppSearchInstanceConfig, Config, MigrationConfig
from entsporter.exceptions import ConfigurationError


class TestAppSearchInstanceConfig:
    """Test App Search cluster configuration."""

    def test_valid_config(self):
        """Test valid configuration creation."""
        config = AppSearchInstanceConfig(
            url='https://source.ent.example.com',
            api_key='private-abc',
            timeout=30,
            rate_limit_per_second=10,
        )

        assert config.url == 'https://source.ent.example.com'
        assert config.api_key == 'private-abc'
        assert config.timeout == 30
        assert config.rate_limit_per_second == 10

    def test_url_validation(self):
        """Test URL validation."""
        for url in ['https://ent.example.com', 'http://localhost:3002']:
            config = AppSearchInstanceConfig(url=url, api_key='private-x')
            assert config.url == url

        with pytest.raises(ValueError):
            AppSearchInstanceConfig(url='ent.example.com', api_key='private-x')

    def test_trailing_slash_is_stripped(self):
        """Endpoints are normalized without a trailing slash."""
        config = AppSearchInstanceConfig(url='https://ent.example.com/', api_key='k')

        assert config.url == 'https://ent.example.com'

    def test_missing_api_key(self):
        """Test that missing API key raises validation error."""
        with pytest.raises(ValueError):
            AppSearchInstanceConfig(url='https://ent.example.com')

        with pytest.raises(ValueError):
            AppSearchInstanceConfig(url='https://ent.example.com', api_key='  ')


class TestMigrationConfig:
    """Test bulk migration settings."""

    def test_defaults(self):
        """Defaults match the documented values."""
        config = MigrationConfig()

        assert config.concurrency == 5
        assert config.output_dir == './engines-export'
        assert config.target_prefix == ''
        assert config.state_file == './migration-state.json'
        assert config.resume is False
        assert config.retry_failed_only is False
        assert config.seconds_per_engine == 240.0

    def test_concurrency_must_be_positive(self):
        """Zero concurrency is rejected."""
        with pytest.raises(ValueError):
            MigrationConfig(concurrency=0)

    def test_retry_failed_only_requires_resume(self):
        """check_modes rejects retry-only without resume."""
        with pytest.raises(ConfigurationError):
            MigrationConfig(retry_failed_only=True).check_modes()

        MigrationConfig(retry_failed_only=True, resume=True).check_modes()


class TestConfig:
    """Test main configuration class."""

    def test_config_from_dict(self):
        """Test configuration creation from dictionary."""
        config = Config(
            **{
                'source': {'url': 'https://source.example.com', 'api_key': 'private-s'},
                'destination': {'url': 'https://dest.example.com', 'api_key': 'private-d'},
                'migration': {'concurrency': 3, 'target_prefix': 'copy-'},
            }
        )

        assert config.source.url == 'https://source.example.com'
        assert config.destination.api_key == 'private-d'
        assert config.migration.concurrency == 3
        assert config.migration.target_prefix == 'copy-'
        assert config.logging.level == 'INFO'

    def test_unknown_section_rejected(self):
        """Unknown top-level keys are rejected."""
        with pytest.raises(ValueError):
            Config(
                source={'url': 'https://a.example.com', 'api_key': 'k'},
                destination={'url': 'https://b.example.com', 'api_key': 'k'},
                users={'enabled': True},
            )

    def test_config_from_file(self):
        """Test loading configuration from YAML file."""
        config_data = {
            'source': {'url': 'https://source.example.com', 'api_key': 'private-s'},
            'destination': {'url': 'https://dest.example.com', 'api_key': 'private-d'},
            'logging': {'level': 'debug'},
        }

        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(config_data, f)
            config_path = f.name

        try:
            config = Config.from_file(config_path)

            assert config.source.api_key == 'private-s'
            assert config.logging.level == 'DEBUG'
        finally:
            os.unlink(config_path)

    def test_config_from_file_not_found(self):
        """Test loading configuration from non-existent file."""
        with pytest.raises(FileNotFoundError):
            Config.from_file('nonexistent.yaml')

    @patch.dict(
        os.environ,
        {
            'SOURCE_APP_SEARCH_URL': 'https://source.example.com',
            'SOURCE_APP_SEARCH_KEY': 'private-s',
            'DEST_APP_SEARCH_URL': 'https://dest.example.com',
            'DEST_APP_SEARCH_KEY': 'private-d',
            'MIGRATION_CONCURRENCY': '7',
            'MIGRATION_TARGET_PREFIX': 'copy-',
        },
    )
    def test_config_from_env(self):
        """Test loading configuration from environment variables."""
        config = Config.from_env()

        assert config.source.url == 'https://source.example.com'
        assert config.destination.api_key == 'private-d'
        assert config.migration.concurrency == 7
        assert config.migration.target_prefix == 'copy-'
        assert config.migration.output_dir == './engines-export'

    def test_config_to_file(self):
        """Test saving configuration to file."""
        config = Config(
            source={'url': 'https://source.example.com', 'api_key': 'private-s'},
            destination={'url': 'https://dest.example.com', 'api_key': 'private-d'},
        )

        with tempfile.TemporaryDirectory() as tmp:
            config_path = Path(tmp) / 'config.yaml'
            config.to_file(str(config_path))

            loaded = Config.from_file(str(config_path))

        assert loaded.source.url == config.source.url
        assert loaded.migration.concurrency == config.migration.concurrency

    def test_config_to_file_without_deprecation_warnings(self, tmp_path):
        """Saving uses the current pydantic serialization API."""
        config = Config(
            source={'url': 'https://source.example.com', 'api_key': 'private-s'},
            destination={'url': 'https://dest.example.com', 'api_key': 'private-d'},
            migration={'target_prefix': 'copy-'},
        )
        config_path = tmp_path / 'config.yaml'

        with warnings.catch_warnings():
            warnings.simplefilter('error', DeprecationWarning)
            config.to_file(str(config_path))

        data = yaml.safe_load(config_path.read_text())
        assert data['source']['url'] == 'https://source.example.com'
        assert data['migration']['target_prefix'] == 'copy-'

    def test_create_template(self):
        """The template is a loadable configuration."""
        with tempfile.TemporaryDirectory() as tmp:
            template_path = Path(tmp) / 'config.yaml'
            Config.create_template(str(template_path))

            config = Config.from_file(str(template_path))

        assert config.source.url.startswith('https://')
        assert config.migration.concurrency == 5
