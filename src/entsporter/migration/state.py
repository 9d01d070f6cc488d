"""Resumable migration state and its JSON file store."""

import json
import os
import time
from pathlib import Path
from typing import List, Optional, Set

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from ..exceptions import StateError


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class FailedEngine(BaseModel):
    """A failure recorded against one engine."""

    engine: str = Field(..., description='Source engine name')
    error: str = Field(default='', description='Error message')


class MigrationState(BaseModel):
    """Progress of a bulk migration across runs.

    ``completed`` and the engines in ``failed`` are kept disjoint, and each
    engine appears at most once in either list.
    """

    completed: List[str] = Field(default_factory=list)
    failed: List[FailedEngine] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    start_time: int = Field(default_factory=now_ms, alias='startTime')

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @classmethod
    def fresh(cls, start_time: Optional[int] = None) -> 'MigrationState':
        """Empty state for a new run."""
        return cls(start_time=start_time if start_time is not None else now_ms())

    @property
    def completed_set(self) -> Set[str]:
        return set(self.completed)

    @property
    def failed_names(self) -> Set[str]:
        return {entry.engine for entry in self.failed}

    def record_success(self, engine: str) -> None:
        """Mark an engine completed, superseding any earlier failure."""
        self.failed = [entry for entry in self.failed if entry.engine != engine]
        if engine not in self.completed:
            self.completed.append(engine)

    def record_failure(self, engine: str, error: str) -> None:
        """Record a failure, replacing any earlier one for the same engine."""
        self.failed = [entry for entry in self.failed if entry.engine != engine]
        self.failed.append(FailedEngine(engine=engine, error=error))
        if engine in self.completed:
            self.completed = [name for name in self.completed if name != engine]

    def forget_failures(self, engines: Set[str]) -> None:
        """Drop failure entries for the given engines."""
        self.failed = [entry for entry in self.failed if entry.engine not in engines]

    def normalize(self) -> 'MigrationState':
        """Repair duplicates and completed/failed overlap from older files.

        Completed wins over failed; for repeated failures the last entry is kept.
        """
        completed = list(dict.fromkeys(self.completed))
        done = set(completed)
        latest = {}
        for entry in self.failed:
            if entry.engine not in done:
                latest.pop(entry.engine, None)
                latest[entry.engine] = entry
        self.completed = completed
        self.failed = list(latest.values())
        self.skipped = list(dict.fromkeys(self.skipped))
        return self

    def to_record(self) -> dict:
        """Serializable form with all four persisted keys."""
        return self.model_dump(by_alias=True)


class StateStore:
    """Stores a :class:`MigrationState` as a JSON file."""

    def __init__(self, path):
        self.path = Path(path)
        self.logger = logger.bind(component='StateStore')

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> MigrationState:
        """Load the stored state.

        A missing, unreadable or corrupt file yields a fresh state: a first
        run is not an error.
        """
        if not self.path.exists():
            self.logger.info(f'No state file at {self.path}, starting fresh')
            return MigrationState.fresh()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            state = MigrationState.model_validate(data)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            self.logger.warning(
                f'Could not read state file {self.path} ({e}), starting fresh'
            )
            return MigrationState.fresh()

        state.normalize()
        self.logger.info(
            f'Loaded state from {self.path}: '
            f'{len(state.completed)} completed, {len(state.failed)} failed'
        )
        return state

    def save(self, state: MigrationState) -> None:
        """Overwrite the stored state.

        The record is written to a temporary sibling and renamed over the
        target, so readers never observe a partial file.

        Raises:
            StateError: If the state cannot be written
        """
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            if self.path.parent != Path(''):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(state.to_record(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                self.logger.warning(f'Could not remove {tmp_path}: {cleanup_error}')
            raise StateError(f'Failed to save state to {self.path}: {e}') from e

        self.logger.debug(f'State saved to {self.path}')
