"""Data directory setup commands for pricesync CLI."""
import click

from ..config import CONFIG_FILENAME, CONFIG_TEMPLATE, get_base_path, load_config
from ..errors import ConflictEngineError
from ..store import SQLiteConflictStore

# Local CLI imports
from .common import echo_normal, fail


@click.group()
def workspace_group():
    """Data directory commands."""
    pass


@workspace_group.command("init")
@click.pass_context
def init(ctx) -> None:
    """Initialize the pricesync data directory.

    Creates the following:
    - ~/.pricesync/ directory
    - config.yaml with default settings
    - SQLite conflict store
    """
    verbosity = ctx.obj.get('verbosity', 1)
    base_path = get_base_path(ctx.obj.get('data_dir'))

    echo_normal(click.style("Initializing pricesync...", fg="cyan", bold=True), verbosity)

    # 1. Create directory
    base_path.mkdir(parents=True, exist_ok=True)
    echo_normal(f" ✓ Created directory: {base_path}", verbosity)

    # 2. Create config.yaml
    config_path = base_path / CONFIG_FILENAME
    if not config_path.exists():
        config_path.write_text(CONFIG_TEMPLATE)
        echo_normal(f" ✓ Created config: {config_path}", verbosity)
    else:
        echo_normal(f" ⚠ Config exists: {config_path}", verbosity)

    # 3. Initialize the conflict store
    try:
        config = load_config(base_path)
        existed = config.db_path.exists()
        SQLiteConflictStore(config.db_path).close()
    except ConflictEngineError as e:
        fail(str(e))

    if existed:
        echo_normal(f" ⚠ Database exists: {config.db_path}", verbosity)
    else:
        echo_normal(f" ✓ Initialized database: {config.db_path}", verbosity)
