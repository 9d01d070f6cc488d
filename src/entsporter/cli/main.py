"""Main CLI entry point for entsporter."""

import sys
import asyncio
from datetime import datetime
from typing import Any, Dict, Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
)
from rich.table import Table

from .. import __version__
from ..api.client import AppSearchClient
from ..config.config import AppSearchInstanceConfig, Config, MigrationConfig
from ..exceptions import ConfigurationError
from ..migration.dry_run import DryRunReport
from ..migration.engine import MigrationEngine
from ..migration.exporter import EngineExporter
from ..migration.importer import EngineImporter
from ..migration.orchestrator import FAILURE_DISPLAY_CAP, MigrationReport, ProgressEvent
from ..migration.state import StateStore
from ..utils.logging import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name='entsporter')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """entsporter - Migrate App Search engine configuration between clusters."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]entsporter[/bold green]\nInitializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your App Search cluster details[/yellow]'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.argument('filter', default='', required=False)
@click.option('--from-endpoint', envvar='SOURCE_APP_SEARCH_URL', help='Source endpoint')
@click.option('--from-key', envvar='SOURCE_APP_SEARCH_KEY', help='Source private key')
@click.option('--to-endpoint', envvar='DEST_APP_SEARCH_URL', help='Target endpoint')
@click.option('--to-key', envvar='DEST_APP_SEARCH_KEY', help='Target private key')
@click.option('--output-dir', default=None, help='Directory for JSON files')
@click.option('--target-prefix', default=None, help='Prefix for target engine names')
@click.option(
    '--concurrency', type=int, default=None, help='Engines to process in parallel'
)
@click.option('--state-file', default=None, help='State file for resume')
@click.option('--force', is_flag=True, help='Overwrite existing engines')
@click.option('--resume', is_flag=True, help='Resume from previous run')
@click.option(
    '--retry-failed-only',
    is_flag=True,
    help='Only retry previously failed engines (requires --resume)',
)
@click.option('--skip-existing', is_flag=True, help='Skip engines that exist on target')
@click.option('--cleanup', is_flag=True, help='Delete JSON after import')
@click.option('--dry-run', is_flag=True, help='List engines only')
@click.pass_context
def bulk(ctx: click.Context, filter: str, **options: Any) -> None:
    """Bulk migrate every engine whose name contains FILTER."""
    console.print(
        Panel.fit(
            '[bold blue]entsporter[/bold blue]\nBulk engine migration',
            border_style='blue',
        )
    )

    try:
        config = _build_bulk_config(ctx, filter, options)
        config.migration.check_modes()
    except ConfigurationError as e:
        console.print(f'[red]✗[/red] Error: {e}')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Invalid configuration: {e}')
        sys.exit(1)

    _setup_logging_with_config(ctx, config)
    _print_run_settings(config)

    try:
        exit_code = asyncio.run(_run_bulk(config))
    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    sys.exit(exit_code)


@cli.command('export')
@click.argument('engine')
@click.option('--endpoint', envvar='APP_SEARCH_ENDPOINT', required=True, help='App Search endpoint')
@click.option('--key', envvar='APP_SEARCH_PRIVATE_KEY', required=True, help='Private API key')
@click.option('--output', '-o', default=None, help='Output JSON file (default: <engine>.json)')
@click.pass_context
def export_engine(
    ctx: click.Context, engine: str, endpoint: str, key: str, output: Optional[str]
) -> None:
    """Export one engine's configuration to a JSON file."""
    output = output or f'{engine}.json'

    try:
        client = AppSearchClient(AppSearchInstanceConfig(url=endpoint, api_key=key))
        try:
            asyncio.run(EngineExporter(client).export_to_file(engine, output))
        finally:
            client.close()
    except Exception as e:
        console.print(f'[red]✗[/red] Export failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    console.print(f'[green]✓[/green] Engine {engine} exported to {output}')


@cli.command('import')
@click.argument('engine')
@click.option('--endpoint', envvar='APP_SEARCH_ENDPOINT', required=True, help='App Search endpoint')
@click.option('--key', envvar='APP_SEARCH_PRIVATE_KEY', required=True, help='Private API key')
@click.option('--input', '-i', 'input_path', required=True, help='Exported JSON file')
@click.option('--force', is_flag=True, help='Delete and recreate an existing engine')
@click.pass_context
def import_engine(
    ctx: click.Context,
    engine: str,
    endpoint: str,
    key: str,
    input_path: str,
    force: bool,
) -> None:
    """Import one engine's configuration from a JSON file."""
    try:
        client = AppSearchClient(AppSearchInstanceConfig(url=endpoint, api_key=key))
        try:
            asyncio.run(
                EngineImporter(client).import_from_file(engine, input_path, force=force)
            )
        finally:
            client.close()
    except Exception as e:
        console.print(f'[red]✗[/red] Import failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    console.print(f'[green]✓[/green] Engine {engine} imported from {input_path}')


@cli.command()
@click.option(
    '--state-file', default='./migration-state.json', help='State file to inspect'
)
def status(state_file: str) -> None:
    """Show the progress recorded in a state file."""
    console.print(
        Panel.fit(
            '[bold magenta]entsporter[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    store = StateStore(state_file)
    if not store.exists():
        console.print(f'[yellow]No state file found at {state_file}[/yellow]')
        return

    state = store.load()
    started = datetime.fromtimestamp(state.start_time / 1000)

    table = Table(title='Migration State')
    table.add_column('Setting', style='cyan')
    table.add_column('Value', style='green')
    table.add_row('State file', state_file)
    table.add_row('Started', started.strftime('%Y-%m-%d %H:%M:%S'))
    table.add_row('Completed', str(len(state.completed)))
    table.add_row('Failed', str(len(state.failed)))
    table.add_row('Skipped', str(len(state.skipped)))
    console.print(table)

    _print_failures(state.failed[:FAILURE_DISPLAY_CAP], len(state.failed))


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Check connectivity to both clusters."""
    console.print(
        Panel.fit(
            '[bold cyan]entsporter[/bold cyan]\nValidating connectivity...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)
        engine = MigrationEngine(config)
        try:
            engine.test_connectivity()
        finally:
            engine.close()

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)
    else:
        default_paths = ['config.yaml', 'config.yml', '.entsporter.yaml']
        for path in default_paths:
            if Path(path).exists():
                return Config.from_file(path)

        try:
            return Config.from_env()
        except Exception:
            raise FileNotFoundError(
                'No configuration found. Pass --from-endpoint/--from-key/--to-endpoint/--to-key, '
                'use --config to specify a file or run "entsporter init" to create one.'
            )


def _build_bulk_config(
    ctx: click.Context, name_filter: str, options: Dict[str, Any]
) -> Config:
    """Merge command line options over the loaded configuration."""
    endpoints = {
        key: options.pop(key)
        for key in ('from_endpoint', 'from_key', 'to_endpoint', 'to_key')
    }

    if all(endpoints.values()) and not ctx.obj.get('config_path'):
        config = Config(
            source={'url': endpoints['from_endpoint'], 'api_key': endpoints['from_key']},
            destination={'url': endpoints['to_endpoint'], 'api_key': endpoints['to_key']},
        )
    else:
        config = _load_config(ctx)
        source = config.source.model_dump()
        destination = config.destination.model_dump()
        if endpoints['from_endpoint']:
            source['url'] = endpoints['from_endpoint']
        if endpoints['from_key']:
            source['api_key'] = endpoints['from_key']
        if endpoints['to_endpoint']:
            destination['url'] = endpoints['to_endpoint']
        if endpoints['to_key']:
            destination['api_key'] = endpoints['to_key']
        config.source = AppSearchInstanceConfig(**source)
        config.destination = AppSearchInstanceConfig(**destination)

    overrides = {
        key: value
        for key, value in options.items()
        if value is not None and value is not False
    }
    if name_filter:
        overrides['filter'] = name_filter

    config.migration = MigrationConfig(**{**config.migration.model_dump(), **overrides})
    return config


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _print_run_settings(config: Config) -> None:
    migration = config.migration

    table = Table(title='Bulk Migration')
    table.add_column('Setting', style='cyan')
    table.add_column('Value', style='green')
    table.add_row('Source', config.source.url)
    table.add_row('Target', config.destination.url)
    table.add_row('Output', migration.output_dir)
    table.add_row('Prefix', f'"{migration.target_prefix}"')
    table.add_row('Concurrency', f'{migration.concurrency} engines at once')
    table.add_row('State file', migration.state_file)
    if migration.filter:
        table.add_row('Filter', f'"{migration.filter}"')

    modes = [
        flag
        for flag in ('force', 'resume', 'retry_failed_only', 'skip_existing', 'cleanup', 'dry_run')
        if getattr(migration, flag)
    ]
    if modes:
        table.add_row('Modes', ', '.join('--' + m.replace('_', '-') for m in modes))

    console.print(table)


async def _run_bulk(config: Config) -> int:
    """Run the bulk migration with progress display.

    Returns:
        Process exit code
    """
    if config.migration.dry_run:
        report = await MigrationEngine(config).run()
        _display_dry_run(report, config.migration.resume)
        return 0

    with Progress(
        SpinnerColumn(),
        TextColumn('[progress.description]{task.description}'),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task('[blue]Migration starting...', total=None)

        def update_progress(event: ProgressEvent) -> None:
            eta = (
                f', ETA ~{event.eta_seconds / 60:.1f} min'
                if event.eta_seconds is not None
                else ''
            )
            progress.update(
                task,
                completed=event.processed,
                total=event.total,
                description=(
                    f'[blue]Batch {event.batch_number}/{event.total_batches} '
                    f'({event.rate * 60:.1f} engines/min{eta})'
                ),
            )
            for result in event.batch_results:
                if result.success:
                    progress.console.print(f'[green]✓[/green] {result.engine} -> {result.destination}')
                else:
                    progress.console.print(f'[red]✗[/red] {result.engine}: {result.error}')

        report = await MigrationEngine(config, observer=update_progress).run()
        progress.update(task, description='[green]Migration finished')

    _display_migration_report(report, config.migration.state_file)
    return report.exit_code


def _display_dry_run(report: DryRunReport, resume: bool) -> None:
    """Display the dry-run preview."""
    table = Table(title='Engines to migrate')
    table.add_column('#', style='dim')
    table.add_column('Status', style='yellow')
    table.add_column('Source', style='cyan')
    table.add_column('Target', style='green')

    for row in report.rows:
        # A resumed preview lists only what would still run
        if row.will_migrate or not resume:
            table.add_row(str(row.index), row.label, row.source, row.destination)

    console.print(table)
    console.print(f'Will migrate: {report.will_migrate}')
    console.print(f'Will skip: {report.will_skip}')
    console.print(
        f'[blue]Estimated time:[/blue] ~{report.estimated_minutes:.0f} minutes'
    )


def _print_failures(failures, total_failed: int) -> None:
    if not failures:
        return
    console.print(f'\n[red]Failed engines ({total_failed}):[/red]')
    for failure in failures:
        console.print(f'  • {failure.engine}: {failure.error}')
    if total_failed > len(failures):
        console.print(f'  ... and {total_failed - len(failures)} more')


def _display_migration_report(report: MigrationReport, state_file: str) -> None:
    """Display the final migration report."""
    table = Table(title='Migration Summary')
    table.add_column('Total', style='blue')
    table.add_column('Attempted', style='cyan')
    table.add_column('Succeeded', style='green')
    table.add_column('Failed', style='red')
    table.add_column('Success rate', style='yellow')
    table.add_row(
        str(report.total),
        str(report.work_set_size),
        str(report.succeeded),
        str(report.failed),
        f'{report.success_rate:.1f}%',
    )
    console.print(table)
    console.print(f'\n[blue]Duration:[/blue] {report.duration_seconds / 60:.1f} minutes')

    _print_failures(report.displayed_failures, len(report.failures))
    if report.retry_hint:
        console.print('\n[yellow]To retry failed engines:[/yellow]')
        console.print(f'  {report.retry_hint}')

    console.print(f'\n[blue]State saved to:[/blue] {state_file}')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
