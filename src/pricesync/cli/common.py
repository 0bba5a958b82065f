"""Shared utilities for pricesync CLI commands."""
import json
import sys
from typing import Any

import click

from ..config import CONFIG_FILENAME, get_base_path, load_config
from ..engine import ConflictEngine
from ..errors import ConflictEngineError

# Verbosity levels
VERBOSITY_QUIET = 0
VERBOSITY_NORMAL = 1
VERBOSITY_VERBOSE = 2


def should_print(verbosity: int, message_level: int) -> bool:
    """Determine if a message should be printed based on verbosity settings.

    Args:
        verbosity: Current verbosity level (0=quiet, 1=normal, 2=verbose).
        message_level: Minimum verbosity level required for this message.
    """
    return verbosity >= message_level


def echo_verbose(message: str, verbosity: int) -> None:
    """Print a message only in verbose mode."""
    if should_print(verbosity, VERBOSITY_VERBOSE):
        click.echo(message, err=False)


def echo_normal(message: str, verbosity: int) -> None:
    """Print a message in normal and verbose modes."""
    if should_print(verbosity, VERBOSITY_NORMAL):
        click.echo(message, err=False)


def echo_quiet(message: Any, verbosity: int) -> None:
    """Print a message that is always shown, even in quiet mode."""
    click.echo(message, err=False)


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


def fail(message: str) -> None:
    """Print an error in red and exit with status 1."""
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


def open_engine(ctx) -> ConflictEngine:
    """Build the engine for the current --data-dir.

    Exits with an error when the data directory has not been initialized.
    """
    base_path = get_base_path(ctx.obj.get('data_dir'))
    if not (base_path / CONFIG_FILENAME).exists():
        fail("pricesync not initialized. Run 'pricesync init' first.")
    try:
        return ConflictEngine.from_config(load_config(base_path))
    except ConflictEngineError as e:
        fail(str(e))
