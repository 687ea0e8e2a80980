#!/usr/bin/env python3
"""
modmigrate command line interface.

Usage:
    modmigrate --path modules init
    modmigrate --path modules migrate billing           # next version
    modmigrate --path modules migrate billing latest
    modmigrate --path modules rollback billing 1
    modmigrate --path modules version billing
    modmigrate --path modules status billing
    modmigrate --config modmigrate.yaml migrate-all

Connection settings come from --database-url, the config file, or the
DATABASE_* / SQLITE_PATH environment variables.
"""

import argparse
import sys
from typing import Any, Dict, List, Optional
import logging

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import load_config
from .exceptions import ConfigError, MigrationError
from .factory import MigratorFactory
from .logging_config import setup_logging
from .migrations import MigrationEngine, MigrationOutcome, OutcomeStatus

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

STATUS_STYLES = {
    OutcomeStatus.SUCCESS: ('✅', 'green'),
    OutcomeStatus.NOOP: ('ℹ️', 'cyan'),
    OutcomeStatus.FAILURE: ('❌', 'red'),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='modmigrate',
        description='Per-module schema migrations',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split('Usage:')[1] if __doc__ else None,
    )
    parser.add_argument('--config', help='YAML configuration file')
    parser.add_argument('--path', help='Directory holding <module>/migrations/')
    parser.add_argument('--database-url', help='SQLAlchemy database URL')
    parser.add_argument('--strict', action='store_true',
                        help='Fail on migration files without a Migration subclass')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('init', help='Create the migrations tracking table')

    migrate = subparsers.add_parser('migrate', help='Migrate a module up')
    migrate.add_argument('module')
    migrate.add_argument('target', nargs='?', help="Version number or 'latest' (default: next version)")

    rollback = subparsers.add_parser('rollback', help='Roll a module back')
    rollback.add_argument('module')
    rollback.add_argument('target', nargs='?', help='Version number (default: previous version)')

    version = subparsers.add_parser('version', help='Show the current version of a module')
    version.add_argument('module')

    status = subparsers.add_parser('status', help='Show applied and pending migrations of a module')
    status.add_argument('module')

    subparsers.add_parser('migrate-all', help='Migrate every module to latest')

    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.path:
        overrides.setdefault('migrations', {})['path'] = args.path
    if args.strict:
        overrides.setdefault('migrations', {})['strict'] = True
    if args.database_url:
        overrides['database'] = {'connection': args.database_url}
    if args.debug:
        overrides['logging'] = {'level': 'DEBUG'}
    return overrides


def print_outcome(console: Console, outcome: MigrationOutcome) -> None:
    emoji, style = STATUS_STYLES[outcome.status]
    console.print(f"{emoji} [{style}]{escape(outcome.module)}[/{style}]: {escape(outcome.reason)}")
    if outcome.status is OutcomeStatus.FAILURE and outcome.applied:
        console.print(f"   Applied before the failure (not undone): {outcome.applied}")


def print_status(console: Console, status: Dict[str, Any]) -> None:
    table = Table(title=f"Migrations of '{status['module']}'")
    table.add_column('Version', justify='right')
    table.add_column('Migration')
    table.add_column('State')

    for item in status['applied']:
        table.add_row(str(item['version']), item['name'], '[green]applied[/green]')
    for item in status['pending']:
        table.add_row(str(item['version']), item['name'], '[yellow]pending[/yellow]')

    console.print(table)
    current = status['current_version']
    console.print(f"Current version: {current if current is not None else 'never migrated'} "
                  f"/ latest: {status['latest_version']}")


def run_command(engine: MigrationEngine, args: argparse.Namespace, console: Console) -> int:
    if args.command == 'init':
        if engine.init_tracking_table():
            console.print('✅ Migrations table is ready')
            return EXIT_OK
        console.print('❌ Failed to create migrations table')
        return EXIT_FAILURE

    if args.command in ('migrate', 'rollback'):
        action = engine.migrate if args.command == 'migrate' else engine.rollback
        outcome = action(args.module, args.target)
        print_outcome(console, outcome)
        return EXIT_OK if outcome.ok else EXIT_FAILURE

    if args.command == 'migrate-all':
        outcomes = engine.migrate_all()
        for outcome in outcomes:
            print_outcome(console, outcome)
        return EXIT_OK if all(outcome.ok for outcome in outcomes) else EXIT_FAILURE

    if args.command == 'version':
        current = engine.get_version(args.module)
        console.print(str(current) if current is not None else 'never migrated')
        return EXIT_OK

    if args.command == 'status':
        print_status(console, engine.status(args.module))
        return EXIT_OK

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    args = build_parser().parse_args(argv)
    console = console or Console()

    try:
        config = load_config(args.config, _overrides(args))
        setup_logging(config)
        engine = MigratorFactory.create_engine(config)
    except ConfigError as e:
        console.print(f"❌ [red]Configuration error:[/red] {escape(str(e))}")
        return EXIT_CONFIG

    try:
        return run_command(engine, args, console)
    except MigrationError as e:
        logging.getLogger('modmigrate.cli').debug('Command failed', exc_info=True)
        console.print(f"❌ [red]{escape(str(e))}[/red]")
        return EXIT_FAILURE
    finally:
        engine.db.close()


if __name__ == '__main__':
    sys.exit(main())
