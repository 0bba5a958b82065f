"""pricesync CLI - offline conflict inspection and resolution

Command groups are organized into separate modules:
- workspace.py: init
- conflicts.py: detect, conflicts pending/history/stats/resolve/auto/cleanup/strategies
- config.py: config set, get, show
- common.py: shared utilities
"""
import logging
from pathlib import Path

import click

from .. import __version__
from ..config import BASE_PATH_ENV, get_base_path
from .common import VERBOSITY_NORMAL, VERBOSITY_QUIET, VERBOSITY_VERBOSE
from .config import config_group
from .conflicts import conflicts_group, detect
from .workspace import workspace_group


@click.group()
@click.version_option(version=__version__, prog_name="pricesync")
@click.option('--data-dir', type=click.Path(), default=None, envvar=BASE_PATH_ENV,
              help='Base directory for pricesync data (default: ~/.pricesync)')
@click.option('--verbose', '-v', is_flag=True, default=False,
              help='Enable verbose output and debug logging')
@click.option('--quiet', '-q', is_flag=True, default=False,
              help='Suppress non-essential output')
@click.pass_context
def cli(ctx, data_dir, verbose, quiet):
    """pricesync - offline conflict detection and resolution

    \b
    Key Commands:
        init                  Initialize the data directory
        detect                Detect conflicts between two record versions
        conflicts pending     List pending conflicts
        conflicts resolve     Resolve a conflict by hand
        conflicts auto        Resolve with an automatic strategy
        conflicts stats       Show conflict statistics
        conflicts cleanup     Purge old resolved conflicts
        config                Configuration management

    \b
    Examples:
        pricesync init
        pricesync detect local.json --remote server.json --action update
        pricesync conflicts auto last_modified
        pricesync conflicts cleanup --days 30
    """
    ctx.ensure_object(dict)

    # Validate mutually exclusive flags
    if verbose and quiet:
        raise click.UsageError("--verbose and --quiet are mutually exclusive")

    if quiet:
        ctx.obj['verbosity'] = VERBOSITY_QUIET
    elif verbose:
        ctx.obj['verbosity'] = VERBOSITY_VERBOSE
    else:
        ctx.obj['verbosity'] = VERBOSITY_NORMAL

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.obj['data_dir'] = Path(data_dir) if data_dir else None


# Register setup command (init)
cli.add_command(workspace_group.commands['init'])

# Register detection command
cli.add_command(detect)

# Register conflict command group
cli.add_command(conflicts_group, name='conflicts')

# Register config command group (config set, get, show)
cli.add_command(config_group, name='config')


def main():
    """Entry point for the CLI."""
    cli()


__all__ = [
    '__version__',
    'cli',
    'main',
    'get_base_path',
]
