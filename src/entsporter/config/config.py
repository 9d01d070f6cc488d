"""Configuration management for entsporter."""

from typing import Optional, Dict, Any
from pathlib import Path
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

from ..exceptions import ConfigurationError


class AppSearchInstanceConfig(BaseModel):
    """Configuration for an App Search cluster."""

    url: str = Field(..., description='App Search endpoint URL')
    api_key: str = Field(..., description='Private API key')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )

    @validator('url')
    def validate_url(cls, v):
        """Validate endpoint URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('api_key')
    def validate_api_key(cls, v):
        """Validate that an API key is provided."""
        if not v or not v.strip():
            raise ValueError('api_key must not be empty')
        return v.strip()

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v


class MigrationConfig(BaseModel):
    """Bulk migration settings."""

    concurrency: int = Field(default=5, description='Engines to process in parallel')
    output_dir: str = Field(
        default='./engines-export', description='Directory for exported JSON files'
    )
    target_prefix: str = Field(
        default='', description='Prefix for destination engine names'
    )
    state_file: str = Field(
        default='./migration-state.json', description='State file for resume'
    )
    filter: str = Field(default='', description='Substring filter for engine names')

    force: bool = Field(default=False, description='Overwrite existing engines')
    resume: bool = Field(default=False, description='Resume from previous run')
    retry_failed_only: bool = Field(
        default=False, description='Only retry previously failed engines'
    )
    skip_existing: bool = Field(
        default=False, description='Skip engines that exist on target'
    )
    cleanup: bool = Field(default=False, description='Delete JSON after import')
    dry_run: bool = Field(default=False, description='Preview without migrating')

    # Estimates and importer tuning
    seconds_per_engine: float = Field(
        default=240.0, description='Assumed seconds per engine for dry-run estimates'
    )
    delete_timeout: float = Field(
        default=60.0, description='Seconds to wait for a forced delete to settle'
    )
    create_attempts: int = Field(
        default=6, description='Attempts to create an engine whose name is still taken'
    )
    create_retry_delay: float = Field(
        default=5.0, description='Seconds between engine creation attempts'
    )

    @validator('concurrency')
    def validate_concurrency(cls, v):
        """Validate concurrency is positive."""
        if v <= 0:
            raise ValueError('Concurrency must be positive')
        return v

    @validator('seconds_per_engine', 'delete_timeout', 'create_retry_delay')
    def validate_non_negative(cls, v):
        """Validate durations are not negative."""
        if v < 0:
            raise ValueError('Durations must not be negative')
        return v

    @validator('create_attempts')
    def validate_create_attempts(cls, v):
        """Validate at least one creation attempt is made."""
        if v <= 0:
            raise ValueError('create_attempts must be positive')
        return v

    def check_modes(self) -> None:
        """Reject flag combinations that cannot run.

        Raises:
            ConfigurationError: If retry_failed_only is set without resume
        """
        if self.retry_failed_only and not self.resume:
            raise ConfigurationError('--retry-failed-only requires --resume')


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


TEMPLATE = {
    'source': {
        'url': 'https://source-deployment.ent.example.com',
        'api_key': 'private-xxxxxxxxxxxxxxxxxxxxxxxx',
        'timeout': 30,
    },
    'destination': {
        'url': 'https://target-deployment.ent.example.com',
        'api_key': 'private-yyyyyyyyyyyyyyyyyyyyyyyy',
        'timeout': 30,
    },
    'migration': {
        'concurrency': 5,
        'output_dir': './engines-export',
        'target_prefix': '',
        'state_file': './migration-state.json',
        'force': False,
        'resume': False,
        'retry_failed_only': False,
        'skip_existing': False,
        'cleanup': False,
    },
    'logging': {
        'level': 'INFO',
        'file': 'migration.log',
    },
}


class Config(BaseModel):
    """Main configuration class for entsporter."""

    source: AppSearchInstanceConfig = Field(..., description='Source cluster')
    destination: AppSearchInstanceConfig = Field(..., description='Target cluster')
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError(f'Configuration file is not a mapping: {config_path}')

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config_data = {
            'source': {
                'url': os.getenv('SOURCE_APP_SEARCH_URL'),
                'api_key': os.getenv('SOURCE_APP_SEARCH_KEY'),
            },
            'destination': {
                'url': os.getenv('DEST_APP_SEARCH_URL'),
                'api_key': os.getenv('DEST_APP_SEARCH_KEY'),
            },
            'migration': {
                'concurrency': int(os.getenv('MIGRATION_CONCURRENCY', 5)),
                'output_dir': os.getenv('MIGRATION_OUTPUT_DIR'),
                'target_prefix': os.getenv('MIGRATION_TARGET_PREFIX'),
                'state_file': os.getenv('MIGRATION_STATE_FILE'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.model_dump(), f, default_flow_style=False, indent=2, sort_keys=False
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(TEMPLATE, f, default_flow_style=False, indent=2, sort_keys=False)
