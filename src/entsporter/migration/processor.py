"""Per-engine unit of work: export from source, import into target."""

import time
from enum import Enum
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field

from .exporter import EngineExporter
from .importer import EngineImporter
from .planning import WorkItem


class UnitStatus(str, Enum):
    """Outcome of one unit."""

    SUCCESS = 'success'
    FAILED = 'failed'


class UnitResult(BaseModel):
    """Tagged outcome of migrating one engine."""

    engine: str = Field(..., description='Source engine name')
    destination: str = Field(..., description='Destination engine name')
    status: UnitStatus
    error: Optional[str] = Field(default=None, description='Error message if failed')
    duration: float = Field(default=0.0, description='Seconds spent on the unit')

    @property
    def success(self) -> bool:
        return self.status == UnitStatus.SUCCESS


class UnitProcessor:
    """Exports an engine to a file and imports that file into the target.

    The two phases form a single pass/fail unit: an engine that exported but
    failed to import is a failure.
    """

    def __init__(
        self,
        exporter: EngineExporter,
        importer: EngineImporter,
        output_dir,
        force: bool = False,
        cleanup: bool = False,
    ):
        self.exporter = exporter
        self.importer = importer
        self.output_dir = Path(output_dir)
        self.force = force
        self.cleanup = cleanup
        self.logger = logger.bind(component='UnitProcessor')

    def export_path(self, engine_name: str) -> Path:
        return self.output_dir / f'{engine_name}.json'

    async def process(self, item: WorkItem) -> UnitResult:
        """Migrate one engine.

        Raises:
            Exception: Whatever the export or import phase raised
        """
        started = time.monotonic()
        path = self.export_path(item.name)

        self.logger.info(f'{item.name} -> {item.destination}')
        await self.exporter.export_to_file(item.name, path)
        await self.importer.import_from_file(item.destination, path, force=self.force)

        if self.cleanup:
            self._remove(path)

        return UnitResult(
            engine=item.name,
            destination=item.destination,
            status=UnitStatus.SUCCESS,
            duration=time.monotonic() - started,
        )

    def _remove(self, path: Path) -> None:
        try:
            path.unlink()
        except OSError as e:
            self.logger.debug(f'Could not remove {path}: {e}')
