"""Configuration management commands for pricesync CLI."""
import click
import yaml

from ..config import CONFIG_FILENAME, EngineConfig, get_base_path
from ..errors import ValidationError

# Local CLI imports
from .common import echo_normal, echo_quiet, fail


def _read_config(ctx):
    base_path = get_base_path(ctx.obj.get('data_dir'))
    config_path = base_path / CONFIG_FILENAME
    if not config_path.exists():
        fail("pricesync not initialized. Run 'pricesync init' first.")
    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        fail(f"Invalid YAML in {config_path}: {e}")
    return base_path, config_path, data


@click.group()
def config_group():
    """Configuration management commands."""
    pass


@config_group.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def config_set(ctx, key: str, value: str) -> None:
    """Set a configuration value.

    The value is parsed as YAML, so numbers and booleans keep their type.

    Examples:
        pricesync config set retention.days 14
        pricesync config set detection.clock_skew_threshold_ms 2000
    """
    verbosity = ctx.obj.get('verbosity', 1)
    base_path, config_path, config_data = _read_config(ctx)

    # Parse nested keys (e.g., 'retention.days')
    keys = key.split('.')
    current = config_data
    for k in keys[:-1]:
        if not isinstance(current.get(k), dict):
            current[k] = {}
        current = current[k]
    current[keys[-1]] = yaml.safe_load(value)

    try:
        EngineConfig.from_dict(config_data, base_path=base_path)
    except ValidationError as e:
        fail(str(e))

    config_path.write_text(yaml.dump(config_data, default_flow_style=False))
    echo_normal(click.style(f"✓ Set {key} = {value}", fg="green"), verbosity)


@config_group.command('get')
@click.argument('key')
@click.pass_context
def config_get(ctx, key: str) -> None:
    """Get a configuration value.

    Examples:
        pricesync config get retention.days
    """
    verbosity = ctx.obj.get('verbosity', 1)
    _, _, config_data = _read_config(ctx)

    current = config_data
    for k in key.split('.'):
        if not isinstance(current, dict) or k not in current:
            fail(f"Key '{key}' not found")
        current = current[k]

    echo_quiet(current, verbosity)


@config_group.command('show')
@click.pass_context
def config_show(ctx) -> None:
    """Display full configuration."""
    verbosity = ctx.obj.get('verbosity', 1)
    _, config_path, _ = _read_config(ctx)

    echo_normal(click.style("Current configuration:", fg="cyan", bold=True), verbosity)
    echo_quiet(config_path.read_text(), verbosity)
