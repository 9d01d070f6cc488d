"""Migration engine - main entry point for bulk migration operations."""

from pathlib import Path
from typing import Optional

from loguru import logger

from ..api.client import AppSearchClientFactory
from ..config.config import Config
from .dry_run import DryRunReport
from .exporter import EngineExporter
from .importer import EngineImporter
from .lister import list_engine_names, list_engines_async
from .orchestrator import (
    BulkOptions,
    MigrationOrchestrator,
    MigrationReport,
    Observer,
)
from .processor import UnitProcessor
from .state import StateStore


class MigrationEngine:
    """Wires clients, processor and orchestrator from a configuration."""

    def __init__(self, config: Config, observer: Optional[Observer] = None):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            observer: Optional progress callback

        Raises:
            ConfigurationError: If the migration flags cannot be combined
        """
        config.migration.check_modes()

        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        self.source_client = AppSearchClientFactory.create_client(config.source)
        self.destination_client = AppSearchClientFactory.create_client(
            config.destination
        )

        migration = config.migration
        self.processor = UnitProcessor(
            exporter=EngineExporter(self.source_client),
            importer=EngineImporter(
                self.destination_client,
                delete_timeout=migration.delete_timeout,
                create_attempts=migration.create_attempts,
                create_retry_delay=migration.create_retry_delay,
            ),
            output_dir=migration.output_dir,
            force=migration.force,
            cleanup=migration.cleanup,
        )
        self.state_store = StateStore(migration.state_file)
        self.orchestrator = MigrationOrchestrator(
            BulkOptions.from_config(migration),
            self.state_store,
            self.processor,
            target_lister=lambda: list_engine_names(self.destination_client),
            observer=observer,
        )

    async def migrate(self) -> MigrationReport:
        """List source engines and migrate them.

        Returns:
            Final migration report
        """
        self.logger.info('Starting bulk engine migration')

        try:
            Path(self.config.migration.output_dir).mkdir(parents=True, exist_ok=True)
            engines = await list_engines_async(self.source_client)
            report = await self.orchestrator.execute(engines)

            self.logger.info(
                f'Migration finished: {report.succeeded} succeeded, {report.failed} failed'
            )
            return report

        except Exception as e:
            self.logger.error(f'Migration failed: {e}')
            raise
        finally:
            self.close()

    async def dry_run(self) -> DryRunReport:
        """List source engines and preview the migration.

        Returns:
            Dry-run report
        """
        self.logger.info('Starting bulk engine migration dry run')

        try:
            engines = await list_engines_async(self.source_client)
            return await self.orchestrator.dry_run(engines)
        except Exception as e:
            self.logger.error(f'Dry run failed: {e}')
            raise
        finally:
            self.close()

    async def run(self):
        """Dry run or migrate depending on the configuration."""
        if self.config.migration.dry_run:
            return await self.dry_run()
        return await self.migrate()

    def test_connectivity(self) -> None:
        """Test connectivity to both clusters.

        Raises:
            ConnectionError: If connectivity test fails
        """
        self.logger.info('Testing connectivity to App Search clusters')

        if not self.source_client.test_connection():
            raise ConnectionError('Cannot connect to source App Search cluster')

        if not self.destination_client.test_connection():
            raise ConnectionError('Cannot connect to target App Search cluster')

        self.logger.info('Connectivity tests passed')

    def close(self) -> None:
        self.source_client.close()
        self.destination_client.close()
