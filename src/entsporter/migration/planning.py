"""Work-set computation shared by live runs and dry runs."""

from enum import Enum
from typing import Iterable, List, Optional, Set

from pydantic import BaseModel, Field

from ..models.engine import Engine
from .state import MigrationState


class Disposition(str, Enum):
    """What a run will do with one candidate engine."""

    COMPLETED = 'completed'
    NOT_PREVIOUSLY_FAILED = 'not_previously_failed'
    EXISTS_ON_TARGET = 'exists_on_target'
    RETRY = 'retry'
    OVERWRITE = 'overwrite'
    FRESH = 'fresh'

    @property
    def should_process(self) -> bool:
        return self in PROCESSED_DISPOSITIONS


PROCESSED_DISPOSITIONS = frozenset(
    {Disposition.RETRY, Disposition.OVERWRITE, Disposition.FRESH}
)


class PlanOptions(BaseModel):
    """Flags that influence the work set."""

    target_prefix: str = ''
    retry_failed_only: bool = False
    skip_existing: bool = False
    force: bool = False


class WorkItem(BaseModel):
    """One candidate engine and the decision taken for it."""

    engine: Engine
    destination: str = Field(..., description='Destination engine name')
    disposition: Disposition
    exists_on_target: bool = False
    previously_failed: bool = False

    @property
    def name(self) -> str:
        return self.engine.name

    @property
    def should_process(self) -> bool:
        return self.disposition.should_process


class WorkPlan(BaseModel):
    """Classification of every candidate of a run."""

    items: List[WorkItem] = Field(default_factory=list)

    @property
    def candidates(self) -> List[Engine]:
        return [item.engine for item in self.items]

    @property
    def work_set(self) -> List[WorkItem]:
        """Items the run will process, in listing order."""
        return [item for item in self.items if item.should_process]

    @property
    def skipped(self) -> List[WorkItem]:
        return [item for item in self.items if not item.should_process]

    def __len__(self) -> int:
        return len(self.items)


def filter_engines(engines: Iterable[Engine], name_filter: str = '') -> List[Engine]:
    """Engines whose name contains ``name_filter`` (case-sensitive)."""
    if not name_filter:
        return list(engines)
    return [engine for engine in engines if name_filter in engine.name]


def classify(
    engine: Engine,
    state: MigrationState,
    options: PlanOptions,
    existing_on_target: Set[str],
    completed: Optional[Set[str]] = None,
    failed: Optional[Set[str]] = None,
) -> WorkItem:
    """Decide what to do with one candidate."""
    completed = state.completed_set if completed is None else completed
    failed = state.failed_names if failed is None else failed

    destination = f'{options.target_prefix}{engine.name}'
    exists = destination in existing_on_target
    previously_failed = engine.name in failed

    if engine.name in completed:
        disposition = Disposition.COMPLETED
    elif options.retry_failed_only and not previously_failed:
        disposition = Disposition.NOT_PREVIOUSLY_FAILED
    elif options.skip_existing and exists and not options.force:
        disposition = Disposition.EXISTS_ON_TARGET
    elif previously_failed:
        disposition = Disposition.RETRY
    elif exists:
        disposition = Disposition.OVERWRITE
    else:
        disposition = Disposition.FRESH

    return WorkItem(
        engine=engine,
        destination=destination,
        disposition=disposition,
        exists_on_target=exists,
        previously_failed=previously_failed,
    )


def build_work_plan(
    candidates: Iterable[Engine],
    state: MigrationState,
    options: PlanOptions,
    existing_on_target: Optional[Set[str]] = None,
) -> WorkPlan:
    """Classify every candidate against the state and flags.

    Deterministic for identical inputs; does not mutate ``state``.
    """
    existing = existing_on_target or set()
    completed = state.completed_set
    failed = state.failed_names
    return WorkPlan(
        items=[
            classify(engine, state, options, existing, completed, failed)
            for engine in candidates
        ]
    )
