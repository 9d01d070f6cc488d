"""Migration engine, orchestrator and per-engine operations."""

from .dry_run import DryRunReport, DryRunRow, build_dry_run_report
from .engine import MigrationEngine
from .exporter import EngineExporter
from .importer import EngineImporter
from .lister import list_engine_names, list_engines, list_engines_async
from .orchestrator import (
    BulkOptions,
    MigrationOrchestrator,
    MigrationReport,
    ProgressEvent,
)
from .planning import Disposition, WorkItem, WorkPlan, build_work_plan, filter_engines
from .processor import UnitProcessor, UnitResult, UnitStatus
from .state import FailedEngine, MigrationState, StateStore

__all__ = [
    'BulkOptions',
    'Disposition',
    'DryRunReport',
    'DryRunRow',
    'EngineExporter',
    'EngineImporter',
    'FailedEngine',
    'MigrationEngine',
    'MigrationOrchestrator',
    'MigrationReport',
    'MigrationState',
    'ProgressEvent',
    'StateStore',
    'UnitProcessor',
    'UnitResult',
    'UnitStatus',
    'WorkItem',
    'WorkPlan',
    'build_dry_run_report',
    'build_work_plan',
    'filter_engines',
    'list_engine_names',
    'list_engines',
    'list_engines_async',
]
