# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Command-line interface for pubkit.

Subcommands::

    pubkit publish [--registry R | --registries R1,R2] [PATH]
    pubkit check   [--registry R] [PATH]
    pubkit stats   [--registry R] [--package P] [--limit N] [--format table|json] [PATH]
    pubkit init    [--force] [PATH]
    pubkit explain CODE

Exit codes: ``0`` success, ``1`` failure, ``130`` interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich_argparse import RichHelpFormatter

from pubkit import __version__
from pubkit.analytics import AnalyticsStore
from pubkit.backends.locator import BackendLocator
from pubkit.batch import BatchOutcome, BatchPolicy, BatchPublisher
from pubkit.config import PublishConfig, load_config
from pubkit.confirm import Confirmer, NonInteractiveConfirmer, TerminalConfirmer
from pubkit.errors import E, PubkitError, explain, render_error
from pubkit.init import write_default_config
from pubkit.logging import configure_logging, get_logger
from pubkit.observer import ConsoleObserver
from pubkit.options import ALLOWED_ACCESS, PublishOptions
from pubkit.orchestrator import Publisher

logger = get_logger(__name__)


def _project_dir(args: argparse.Namespace) -> Path:
    path = Path(args.path).resolve()
    if not path.is_dir():
        raise PubkitError(E.CONFIG_INVALID_VALUE, f'{path} is not a directory.')
    return path


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f'must be >= 1, got {number}')
    return number


def _split_registries(value: str) -> list[str]:
    return [name.strip() for name in value.split(',') if name.strip()]


def _options_from_args(args: argparse.Namespace) -> PublishOptions:
    return PublishOptions(
        registry=args.registry,
        dry_run=True if args.dry_run else None,
        non_interactive=True if args.non_interactive else None,
        resume=args.resume,
        otp=args.otp,
        tag=args.tag,
        access=args.access,
        skip_hooks=args.skip_hooks,
        hooks_only=args.hooks_only,
    )


def _confirmer(config: PublishConfig, options: PublishOptions) -> Confirmer:
    return TerminalConfirmer() if config.interactive(options) else NonInteractiveConfirmer()


def _print_batch(outcome: BatchOutcome, console: Console) -> None:
    table = Table(show_header=True, header_style='bold', show_edge=False, pad_edge=False)
    table.add_column('Registry')
    table.add_column('Status')
    table.add_column('Version')
    table.add_column('Detail')
    for registry in [*outcome.succeeded, *outcome.failed, *outcome.skipped]:
        result = outcome.results.get(registry)
        version = result.version if result else ''
        if registry in outcome.succeeded:
            status, detail = '[green]✅ published[/green]', (result.verification_url if result else '') or ''
        elif registry in outcome.failed:
            status, detail = '[red]❌ failed[/red]', outcome.failed[registry]
        else:
            status, detail = '[yellow]⏭️  skipped[/yellow]', ''
        table.add_row(escape(registry), status, escape(version), escape(detail))
    console.print(table)
    console.print(outcome.summary())


async def _cmd_publish(args: argparse.Namespace) -> int:
    """Handle the ``publish`` subcommand."""
    project_dir = _project_dir(args)
    config = load_config(project_dir)
    options = _options_from_args(args)
    observer = ConsoleObserver()
    analytics = AnalyticsStore(project_dir)

    if args.registries:
        registries = _split_registries(args.registries)
        policy = BatchPolicy(
            sequential=args.sequential or config.batch.sequential,
            continue_on_error=args.continue_on_error or config.batch.continue_on_error,
            max_concurrency=args.max_concurrency or config.batch.max_concurrency,
            options=options,
        )
        confirmer = _confirmer(config, options) if policy.sequential else NonInteractiveConfirmer()
        batch = BatchPublisher(
            project_dir,
            publisher_factory=lambda _registry: Publisher(
                project_dir,
                config=config,
                confirmer=confirmer,
                analytics=analytics,
                observer=observer,
            ),
        )
        outcome = await batch.publish(registries, policy)
        _print_batch(outcome, Console())
        return 0 if outcome.success else 1

    options = config.with_default_registry(options)
    publisher = Publisher(
        project_dir,
        config=config,
        confirmer=_confirmer(config, options),
        analytics=analytics,
        observer=observer,
    )
    result = await publisher.publish(options)
    if not result.success:
        for error in result.errors:
            print(f'  {error}', file=sys.stderr)  # noqa: T201 - CLI output
    return 0 if result.success else 1


async def _cmd_check(args: argparse.Namespace) -> int:
    """Handle the ``check`` subcommand: detection and validation only."""
    project_dir = _project_dir(args)
    config = load_config(project_dir)
    locator = BackendLocator()
    console = Console()

    detected = locator.detect(project_dir)
    for match in detected:
        console.print(
            f'🔎 {escape(match.registry_type)} '
            f'[dim]{escape(str(match.manifest_path))} (confidence {match.confidence:.1f})[/dim]'
        )
    registry = args.registry or config.default_registry or (detected[0].registry_type if detected else None)
    if registry is None:
        raise PubkitError(E.REGISTRY_NOT_DETECTED, f'No supported package manifest found in {project_dir}.')

    report = await locator.load(registry, project_dir).validate()
    name = report.metadata.get('package_name', '?')
    version = report.metadata.get('version', '?')
    for issue in report.errors:
        console.print(f'  [red]✗ {escape(str(issue))}[/red]')
    for issue in report.warnings:
        console.print(f'  [yellow]⚠ {escape(str(issue))}[/yellow]')
    if report.valid:
        console.print(f'[green]✅ {escape(name)}@{escape(version)} is ready for {escape(registry)}[/green]')
        return 0
    console.print(f'[red]❌ {escape(name)}@{escape(version)} failed validation for {escape(registry)}[/red]')
    return 1


def _cmd_stats(args: argparse.Namespace) -> int:
    """Handle the ``stats`` subcommand."""
    store = AnalyticsStore(_project_dir(args))
    filters = {'registry': args.registry, 'package_name': args.package}
    stats = store.statistics(**filters)
    records = store.records(**filters, limit=args.limit)

    if args.format == 'json':
        payload = {'statistics': asdict(stats), 'records': [asdict(r) for r in records]}
        print(json.dumps(payload, indent=2))  # noqa: T201 - CLI output
        return 0

    console = Console()
    if not stats.total_attempts:
        console.print('No publish history recorded yet.')
        return 0

    console.print(
        f'[bold]{stats.total_attempts}[/bold] attempts, '
        f'[green]{stats.success_count} succeeded[/green], '
        f'[red]{stats.failure_count} failed[/red] '
        f'({stats.success_rate:.1f}% success, avg {stats.average_duration:.1f}s)'
    )
    table = Table(show_header=True, header_style='bold', show_edge=False, pad_edge=False)
    table.add_column('Registry')
    table.add_column('Attempts', justify='right')
    table.add_column('Success', justify='right')
    table.add_column('Avg time', justify='right')
    for registry, entry in stats.by_registry.items():
        table.add_row(
            escape(registry),
            str(entry.attempts),
            f'{entry.success_rate:.1f}%',
            f'{entry.average_duration:.1f}s',
        )
    console.print(table)

    recent = Table(show_header=True, header_style='bold', show_edge=False, pad_edge=False, title='Recent')
    recent.add_column('When')
    recent.add_column('Registry')
    recent.add_column('Package')
    recent.add_column('Result')
    for record in records:
        result = '[green]✅[/green]' if record.success else f'[red]❌ {escape(record.error or "")}[/red]'
        recent.add_row(
            record.timestamp,
            escape(record.registry),
            escape(f'{record.package_name}@{record.version}'),
            result,
        )
    console.print(recent)
    return 0


def _cmd_init(args: argparse.Namespace) -> int:
    """Handle the ``init`` subcommand."""
    written = write_default_config(_project_dir(args), force=args.force)
    if written is None:
        print('Configuration already exists (use --force to overwrite).')  # noqa: T201 - CLI output
    else:
        print(f'Created {written}')  # noqa: T201 - CLI output
    return 0


def _cmd_explain(args: argparse.Namespace) -> int:
    """Handle the ``explain`` subcommand."""
    result = explain(args.code)
    if result is None:
        print(f'Unknown error code: {args.code}')  # noqa: T201 - CLI output
        return 1
    print(result)  # noqa: T201 - CLI output
    return 0


def _add_path(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        'path',
        nargs='?',
        default='.',
        help='Project directory (default: current directory).',
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    RichHelpFormatter.styles['argparse.groups'] = 'bold yellow'
    parser = argparse.ArgumentParser(
        prog='pubkit',
        description='Resumable package publishing to npm, crates.io, PyPI and Homebrew.',
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}',
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging.')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only log warnings and errors.')
    parser.add_argument('--json-log', action='store_true', help='Emit logs as JSON lines.')

    subparsers = parser.add_subparsers(dest='command')

    publish_parser = subparsers.add_parser(
        'publish',
        help='Publish the package to one or more registries.',
        formatter_class=RichHelpFormatter,
    )
    target = publish_parser.add_mutually_exclusive_group()
    target.add_argument('--registry', '-r', help='Registry to publish to (default: detected).')
    target.add_argument('--registries', metavar='R1,R2', help='Comma-separated registries for a batch publish.')
    publish_parser.add_argument('--sequential', action='store_true', help='Batch: publish one registry at a time.')
    publish_parser.add_argument(
        '--max-concurrency',
        type=_positive_int,
        default=None,
        help='Batch: max registries publishing at once (default: from config, 3).',
    )
    publish_parser.add_argument(
        '--continue-on-error',
        action='store_true',
        help='Batch: keep going after a registry fails.',
    )
    publish_parser.add_argument('--dry-run', action='store_true', help='Validate and simulate, but do not publish.')
    publish_parser.add_argument('--non-interactive', action='store_true', help='Never prompt.')
    publish_parser.add_argument('--resume', action='store_true', help='Resume an interrupted publish.')
    publish_parser.add_argument('--otp', help='One-time password for registries with 2FA.')
    publish_parser.add_argument('--tag', help='Distribution tag (npm --tag).')
    publish_parser.add_argument('--access', choices=sorted(ALLOWED_ACCESS), help='npm scoped package access.')
    publish_parser.add_argument('--skip-hooks', action='store_true', help='Do not run lifecycle hooks.')
    publish_parser.add_argument(
        '--hooks-only',
        action='store_true',
        help='Run hooks through pre_publish, then stop.',
    )
    _add_path(publish_parser)

    check_parser = subparsers.add_parser(
        'check',
        help='Detect the registry and validate package metadata.',
        formatter_class=RichHelpFormatter,
    )
    check_parser.add_argument('--registry', '-r', help='Registry to validate for.')
    _add_path(check_parser)

    stats_parser = subparsers.add_parser(
        'stats',
        help='Show publish history and success rates.',
        formatter_class=RichHelpFormatter,
    )
    stats_parser.add_argument('--registry', '-r', help='Only this registry.')
    stats_parser.add_argument('--package', help='Only this package.')
    stats_parser.add_argument('--limit', type=_positive_int, default=10, help='Recent attempts to list (default: 10).')
    stats_parser.add_argument('--format', choices=('table', 'json'), default='table', help='Output format.')
    _add_path(stats_parser)

    init_parser = subparsers.add_parser(
        'init',
        help='Write a default .publish-config.toml.',
        formatter_class=RichHelpFormatter,
    )
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing file.')
    _add_path(init_parser)

    explain_parser = subparsers.add_parser(
        'explain',
        help='Explain an error code.',
        formatter_class=RichHelpFormatter,
    )
    explain_parser.add_argument('code', help='Error code, e.g. PK-STATE-CORRUPTED.')

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, json_log=args.json_log)

    try:
        command = args.command
        if command == 'publish':
            return asyncio.run(_cmd_publish(args))
        if command == 'check':
            return asyncio.run(_cmd_check(args))
        if command == 'stats':
            return _cmd_stats(args)
        if command == 'init':
            return _cmd_init(args)
        if command == 'explain':
            return _cmd_explain(args)

        parser.print_help()  # noqa: T201 - CLI output
        print(  # noqa: T201 - CLI output
            f'\n{parser.prog}: error: please provide a command',
            file=sys.stderr,
        )
        return 2

    except PubkitError as exc:
        render_error(exc)
        return 1
    except KeyboardInterrupt:
        logger.info('interrupted')
        return 130


def _main() -> None:
    """Wrapper for pyproject.toml [project.scripts] entry point."""
    sys.exit(main())


__all__ = [
    'build_parser',
    'main',
]
