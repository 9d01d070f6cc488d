"""Bulk migration orchestrator.

Computes the work set for a run, processes it in sequential batches of
concurrent units, and persists the migration state after every batch so an
interrupted run can resume where it stopped.
"""

import asyncio
import time
from typing import Any, Callable, Iterable, List, Optional, Set, Tuple

from loguru import logger
from pydantic import BaseModel, Field

from ..config.config import MigrationConfig
from ..exceptions import ConfigurationError
from ..models.engine import Engine
from .dry_run import DEFAULT_SECONDS_PER_ENGINE, DryRunReport, build_dry_run_report
from .planning import PlanOptions, WorkItem, WorkPlan, build_work_plan, filter_engines
from .processor import UnitResult, UnitStatus
from .state import FailedEngine, MigrationState, StateStore

FAILURE_DISPLAY_CAP = 20
RETRY_HINT = (
    'entsporter bulk --resume --retry-failed-only --concurrency 3 --force ...'
)


class BulkOptions(PlanOptions):
    """Options of a bulk migration run."""

    name_filter: str = Field(default='', description='Substring filter for engine names')
    resume: bool = Field(default=False, description='Continue from stored state')
    concurrency: int = Field(default=5, gt=0, description='Units in flight per batch')
    seconds_per_engine: float = Field(default=DEFAULT_SECONDS_PER_ENGINE)

    @classmethod
    def from_config(cls, config: MigrationConfig) -> 'BulkOptions':
        return cls(
            name_filter=config.filter,
            target_prefix=config.target_prefix,
            resume=config.resume,
            retry_failed_only=config.retry_failed_only,
            skip_existing=config.skip_existing,
            force=config.force,
            concurrency=config.concurrency,
            seconds_per_engine=config.seconds_per_engine,
        )


class ProgressEvent(BaseModel):
    """Progress after a batch has been folded into state and saved."""

    batch_number: int
    total_batches: int
    batch_results: List[UnitResult] = Field(default_factory=list)
    processed: int = Field(..., description='Candidates done, including earlier runs')
    total: int = Field(..., description='Candidates of this run')
    succeeded: int
    failed: int
    elapsed_seconds: float
    rate: float = Field(..., description='Engines per second since the state start time')
    eta_seconds: Optional[float] = None

    @property
    def percent(self) -> float:
        return self.processed / self.total * 100 if self.total else 100.0


class MigrationReport(BaseModel):
    """Terminal report of a bulk run."""

    total: int = Field(..., description='Candidates matching the filter')
    work_set_size: int = Field(..., description='Engines attempted in this run')
    processed: int = Field(default=0, description='Units settled in this run')
    succeeded: int = Field(..., description='Candidates recorded as completed')
    failed: int = Field(..., description='Failure entries in the state')
    success_rate: float
    started_at: int = Field(..., description='State start time, epoch ms')
    duration_seconds: float
    failures: List[FailedEngine] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def exit_code(self) -> int:
        return 1 if self.has_failures else 0

    @property
    def displayed_failures(self) -> List[FailedEngine]:
        return self.failures[:FAILURE_DISPLAY_CAP]

    @property
    def hidden_failures(self) -> int:
        return max(0, len(self.failures) - FAILURE_DISPLAY_CAP)

    @property
    def retry_hint(self) -> Optional[str]:
        return RETRY_HINT if self.has_failures else None


Observer = Callable[[ProgressEvent], Any]


class MigrationOrchestrator:
    """Drives a bulk migration over a list of source engines."""

    def __init__(
        self,
        options: BulkOptions,
        state_store: StateStore,
        processor,
        target_lister: Optional[Callable[[], Iterable[str]]] = None,
        observer: Optional[Observer] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize migration orchestrator.

        Args:
            options: Run options
            state_store: Store for the resumable state
            processor: Object with an async ``process(WorkItem)`` method
            target_lister: Returns engine names present on the target cluster
            observer: Called with a ProgressEvent after each batch
            clock: Wall clock in seconds

        Raises:
            ConfigurationError: If the options cannot be combined
        """
        if options.retry_failed_only and not options.resume:
            raise ConfigurationError('--retry-failed-only requires --resume')
        if options.skip_existing and target_lister is None:
            raise ConfigurationError('--skip-existing needs access to the target cluster')

        self.options = options
        self.state_store = state_store
        self.processor = processor
        self.target_lister = target_lister
        self.observer = observer
        self.clock = clock
        self.logger = logger.bind(component='MigrationOrchestrator')

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def load_state(self) -> MigrationState:
        """Stored state when resuming, otherwise a fresh one."""
        if self.options.resume:
            return self.state_store.load()
        return MigrationState.fresh(start_time=self._now_ms())

    def existing_on_target(self) -> Set[str]:
        """Destination names already present on the target.

        Only listed with ``skip_existing``; restricted to ``target_prefix``
        when one is set. Listing errors propagate.
        """
        if not self.options.skip_existing:
            return set()

        prefix = self.options.target_prefix
        existing = {
            name
            for name in self.target_lister()
            if not prefix or name.startswith(prefix)
        }
        self.logger.info(f'Found {len(existing)} existing engines on target')
        return existing

    def prepare(self, engines: Iterable[Engine]) -> Tuple[MigrationState, WorkPlan]:
        """Compute state and work plan for a run without side effects."""
        candidates = filter_engines(engines, self.options.name_filter)
        state = self.load_state()
        existing = self.existing_on_target() if candidates else set()
        plan = build_work_plan(candidates, state, self.options, existing)
        return state, plan

    async def dry_run(self, engines: Iterable[Engine]) -> DryRunReport:
        """Preview a run. No unit is processed and no state is saved."""
        _, plan = await asyncio.to_thread(self.prepare, list(engines))
        return build_dry_run_report(
            plan, self.options.concurrency, self.options.seconds_per_engine
        )

    async def execute(self, engines: Iterable[Engine]) -> MigrationReport:
        """Run the migration and return the final report.

        Raises:
            ListingError: If the target listing fails
            StateError: If state cannot be persisted
        """
        run_started = self.clock()
        # State file read and target listing block, so they run off the loop
        state, plan = await asyncio.to_thread(self.prepare, list(engines))
        work_set = plan.work_set

        self.logger.info(
            f'{len(plan)} candidates, {len(plan) - len(work_set)} skipped, '
            f'{len(work_set)} to migrate with concurrency {self.options.concurrency}'
        )

        if not work_set:
            self.logger.info('Nothing to migrate')
            return self.build_report(state, plan, 0, run_started)

        if self.options.retry_failed_only:
            # Retried engines that fail again are re-added when folding
            state.forget_failures(state.failed_names)
            self.logger.info(f'Retry-failed-only mode: {len(work_set)} engines to retry')

        candidate_names = {item.name for item in plan.items}
        already_done = len(candidate_names & state.completed_set)
        batches = [
            work_set[i : i + self.options.concurrency]
            for i in range(0, len(work_set), self.options.concurrency)
        ]
        processed_run = 0

        for number, batch in enumerate(batches, start=1):
            self.logger.info(
                f'Batch {number}/{len(batches)}: {len(batch)} engines '
                f'({processed_run + 1}-{processed_run + len(batch)} of {len(work_set)})'
            )

            results = await asyncio.gather(*[self._run_unit(item) for item in batch])
            processed_run += len(results)

            self._fold(state, results)
            self.state_store.save(state)

            event = self._progress(
                state,
                candidate_names,
                number,
                len(batches),
                results,
                already_done + processed_run,
                len(work_set) - processed_run,
            )
            self._emit(event)

        return self.build_report(state, plan, processed_run, run_started)

    async def _run_unit(self, item: WorkItem) -> UnitResult:
        """Process one item, turning any error into a failed outcome."""
        try:
            result = await self.processor.process(item)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            self.logger.error(f'{item.name} failed: {message}')
            return UnitResult(
                engine=item.name,
                destination=item.destination,
                status=UnitStatus.FAILED,
                error=message,
            )

        if isinstance(result, UnitResult):
            return result
        return UnitResult(
            engine=item.name, destination=item.destination, status=UnitStatus.SUCCESS
        )

    def _fold(self, state: MigrationState, results: List[UnitResult]) -> None:
        for result in results:
            if result.success:
                state.record_success(result.engine)
                self.logger.info(f'✅ {result.engine} -> {result.destination}')
            else:
                state.record_failure(result.engine, result.error or '')
                self.logger.warning(f'❌ {result.engine}: {result.error}')

    def _progress(
        self,
        state: MigrationState,
        candidate_names: Set[str],
        batch_number: int,
        total_batches: int,
        results: List[UnitResult],
        processed: int,
        remaining: int,
    ) -> ProgressEvent:
        elapsed = max(0.0, (self._now_ms() - state.start_time) / 1000)
        rate = processed / elapsed if elapsed > 0 else 0.0
        eta = remaining / rate if rate > 0 else None

        return ProgressEvent(
            batch_number=batch_number,
            total_batches=total_batches,
            batch_results=results,
            processed=processed,
            total=len(candidate_names),
            succeeded=len(candidate_names & state.completed_set),
            failed=len(state.failed),
            elapsed_seconds=elapsed,
            rate=rate,
            eta_seconds=eta,
        )

    def _emit(self, event: ProgressEvent) -> None:
        eta = f'{event.eta_seconds / 60:.1f} min' if event.eta_seconds is not None else 'n/a'
        self.logger.info(
            f'Progress {event.processed}/{event.total} ({event.percent:.1f}%): '
            f'{event.succeeded} succeeded, {event.failed} failed, '
            f'{event.rate * 60:.1f} engines/min, ETA {eta}'
        )
        if self.observer is not None:
            self.observer(event)

    def build_report(
        self,
        state: MigrationState,
        plan: WorkPlan,
        processed: int,
        run_started: float,
    ) -> MigrationReport:
        total = len(plan)
        succeeded = len({item.name for item in plan.items} & state.completed_set)

        return MigrationReport(
            total=total,
            work_set_size=len(plan.work_set),
            processed=processed,
            succeeded=succeeded,
            failed=len(state.failed),
            success_rate=succeeded / total * 100 if total else 0.0,
            started_at=state.start_time,
            duration_seconds=max(0.0, self.clock() - run_started),
            failures=list(state.failed),
        )
