"""Tests for dry-run previews and work planning."""

import asyncio
import itertools
import json

import pytest

from entsporter.migration.dry_run import LABELS, build_dry_run_report
from entsporter.migration.orchestrator import BulkOptions, MigrationOrchestrator
from entsporter.migration.planning import (
    Disposition,
    PlanOptions,
    build_work_plan,
    filter_engines,
)
from entsporter.migration.processor import UnitResult, UnitStatus
from entsporter.migration.state import MigrationState, StateStore
from entsporter.models.engine import Engine

ENGINES = [Engine(name=name) for name in ('done', 'broken', 'present', 'new', 'other')]
TARGET = ['x-present', 'x-done', 'unrelated']


class RecordingProcessor:
    def __init__(self):
        self.calls = []

    async def process(self, item):
        self.calls.append(item.name)
        await asyncio.sleep(0)
        return UnitResult(
            engine=item.name, destination=item.destination, status=UnitStatus.SUCCESS
        )


def seed_state(path):
    path.write_text(
        json.dumps(
            {
                'completed': ['done'],
                'failed': [{'engine': 'broken', 'error': 'timeout'}],
                'skipped': [],
                'startTime': 1_600_000_000_000,
            }
        )
    )


def flag_combinations():
    for resume, retry_only, skip_existing, force in itertools.product([False, True], repeat=4):
        if retry_only and not resume:
            continue
        yield dict(
            resume=resume,
            retry_failed_only=retry_only,
            skip_existing=skip_existing,
            force=force,
        )


class TestDryRunParity:
    """A dry run lists exactly what a live run would process."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize('flags', list(flag_combinations()))
    async def test_preview_matches_live_run(self, tmp_path, flags):
        """Dry-run migrating set equals the live processed set."""
        options = BulkOptions(target_prefix='x-', concurrency=2, **flags)

        preview_file = tmp_path / 'preview.json'
        seed_state(preview_file)
        preview = await MigrationOrchestrator(
            options,
            StateStore(preview_file),
            RecordingProcessor(),
            target_lister=lambda: TARGET,
        ).dry_run(ENGINES)

        live_file = tmp_path / 'live.json'
        seed_state(live_file)
        processor = RecordingProcessor()
        await MigrationOrchestrator(
            options,
            StateStore(live_file),
            processor,
            target_lister=lambda: TARGET,
        ).execute(ENGINES)

        assert sorted(preview.migrating) == sorted(processor.calls)

    @pytest.mark.asyncio
    async def test_dry_run_leaves_state_untouched(self, tmp_path):
        """Even retry-only mode does not rewrite the state on a dry run."""
        state_file = tmp_path / 'state.json'
        seed_state(state_file)
        before = state_file.read_text()
        processor = RecordingProcessor()

        report = await MigrationOrchestrator(
            BulkOptions(resume=True, retry_failed_only=True),
            StateStore(state_file),
            processor,
        ).dry_run(ENGINES)

        assert report.migrating == ['broken']
        assert processor.calls == []
        assert state_file.read_text() == before

    @pytest.mark.asyncio
    async def test_dry_run_without_state_file_creates_none(self, tmp_path):
        """A preview never creates the state file."""
        state_file = tmp_path / 'state.json'

        await MigrationOrchestrator(
            BulkOptions(resume=True), StateStore(state_file), RecordingProcessor()
        ).dry_run(ENGINES)

        assert not state_file.exists()


class TestDryRunReport:
    """Test report rows, labels and estimates."""

    def test_labels_and_counts(self):
        """Rows carry the label of their disposition."""
        state = MigrationState(
            completed=['done'], failed=[{'engine': 'broken', 'error': 'x'}]
        )
        plan = build_work_plan(
            ENGINES,
            state,
            PlanOptions(target_prefix='x-', skip_existing=True),
            {'x-present'},
        )

        report = build_dry_run_report(plan, concurrency=2)

        labels = {row.source: row.label for row in report.rows}
        assert labels == {
            'done': '[COMPLETED]',
            'broken': '[RETRY]',
            'present': '[SKIP - exists]',
            'new': '',
            'other': '',
        }
        assert [row.index for row in report.rows] == [1, 2, 3, 4, 5]
        assert report.rows[2].destination == 'x-present'
        assert report.will_migrate == 3
        assert report.will_skip == 2

    def test_estimate(self):
        """Estimate is engines times seconds per engine over concurrency."""
        plan = build_work_plan(
            [Engine(name=f'e{i}') for i in range(3)], MigrationState(), PlanOptions()
        )

        report = build_dry_run_report(plan, concurrency=2, seconds_per_engine=240)

        assert report.estimated_seconds == pytest.approx(360.0)
        assert report.estimated_minutes == pytest.approx(6.0)

    def test_every_disposition_has_a_label(self):
        """Each disposition maps to a display label."""
        assert set(LABELS) == set(Disposition)


class TestPlanning:
    """Test candidate classification."""

    def test_filter_engines(self):
        """Filtering is a case-sensitive substring match."""
        engines = [Engine(name=n) for n in ('parks', 'Parks', 'sparkle', 'lakes')]

        assert [e.name for e in filter_engines(engines, 'park')] == ['parks', 'sparkle']
        assert len(filter_engines(engines, '')) == 4

    def test_retry_only_skips_engines_without_failure(self):
        """Retry-only mode keeps only previously failed engines."""
        state = MigrationState(failed=[{'engine': 'broken', 'error': 'x'}])
        plan = build_work_plan(ENGINES, state, PlanOptions(retry_failed_only=True))

        assert [item.name for item in plan.work_set] == ['broken']
        assert plan.items[0].disposition == Disposition.NOT_PREVIOUSLY_FAILED

    def test_completed_wins_over_everything(self):
        """A completed engine is never reprocessed, even with force."""
        state = MigrationState(completed=['done'])
        plan = build_work_plan(
            [Engine(name='done')], state, PlanOptions(force=True, skip_existing=True), {'done'}
        )

        assert plan.items[0].disposition == Disposition.COMPLETED
        assert plan.work_set == []

    def test_existing_without_skip_is_overwritten(self):
        """An existing destination without skip-existing is an overwrite."""
        plan = build_work_plan(
            [Engine(name='present')], MigrationState(), PlanOptions(), {'present'}
        )

        assert plan.items[0].disposition == Disposition.OVERWRITE
        assert plan.items[0].exists_on_target

    def test_plan_does_not_mutate_state(self):
        """Planning leaves the state as it was."""
        state = MigrationState(completed=['done'], failed=[{'engine': 'broken', 'error': 'x'}])
        before = state.to_record()

        build_work_plan(ENGINES, state, PlanOptions(retry_failed_only=True))

        assert state.to_record() == before

    def test_plan_preserves_listing_order(self):
        """Work set follows the source listing order."""
        plan = build_work_plan(ENGINES, MigrationState(), PlanOptions())

        assert [item.name for item in plan.work_set] == [e.name for e in ENGINES]
