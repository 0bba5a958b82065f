"""Conflict detection and resolution commands for pricesync CLI."""
import json
from pathlib import Path
from typing import Optional, Tuple

import click

from ..errors import ConflictEngineError
from ..models import ConflictType, MutationAction, ResolutionOutcome, Severity
from ..strategies import get_strategy, list_strategies

# Local CLI imports
from .common import echo_json, echo_normal, echo_quiet, echo_verbose, fail, open_engine

SEVERITY_COLORS = {
    Severity.LOW.value: "green",
    Severity.MEDIUM.value: "yellow",
    Severity.HIGH.value: "red",
}


def _load_record(path: Path) -> dict:
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, ValueError) as e:
        fail(f"Cannot read record from {path}: {e}")
    if not isinstance(data, dict):
        fail(f"{path} must contain a JSON object")
    return data


def _format_conflict(conflict) -> str:
    severity = click.style(
        conflict.severity.value.upper(),
        fg=SEVERITY_COLORS.get(conflict.severity.value, "white"),
    )
    return (
        f"{conflict.id}  [{severity}] {conflict.type.value} "
        f"({conflict.action.value})  {conflict.description}"
    )


@click.group()
def conflicts_group():
    """Conflict inspection and resolution commands."""
    pass


@click.command('detect')
@click.argument('local', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--remote', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help='JSON file with the server version (omit if absent)')
@click.option('--action', required=True,
              type=click.Choice([a.value for a in MutationAction]),
              help='Mutation the local replica attempted')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
def detect(ctx, local: Path, remote: Optional[Path], action: str, as_json: bool) -> None:
    """Detect conflicts between a local and a remote record.

    Detected conflicts are recorded as pending.

    Examples:
        pricesync detect local.json --remote server.json --action update
        pricesync detect draft.json --remote server.json --action create --json
    """
    verbosity = ctx.obj.get('verbosity', 1)
    local_record = _load_record(local)
    remote_record = _load_record(remote) if remote else None

    with open_engine(ctx) as engine:
        result = engine.detect_conflicts(local_record, remote_record, action)

    if result.error:
        fail(f"Detection failed: {result.error}")

    if as_json:
        echo_json(result.to_dict())
        return

    if not result.has_conflicts:
        echo_normal(click.style("✓ No conflicts detected", fg="green"), verbosity)
        return

    echo_quiet(click.style(f"{len(result.conflicts)} conflict(s) detected:", fg="yellow", bold=True), verbosity)
    for conflict in result.conflicts:
        echo_quiet(f"  {_format_conflict(conflict)}", verbosity)
    echo_normal("\nSuggested strategies:", verbosity)
    for strategy in result.resolution_suggestions:
        mode = "auto" if strategy.automatic else "manual"
        echo_normal(f"  {strategy.priority}. {strategy.id} ({mode}) - {strategy.description}", verbosity)


@conflicts_group.command('pending')
@click.option('--type', 'conflict_type', type=click.Choice([t.value for t in ConflictType]),
              default=None, help='Only show conflicts of this type')
@click.option('--severity', type=click.Choice([s.value for s in Severity]),
              default=None, help='Only show conflicts of this severity')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
def pending(ctx, conflict_type: Optional[str], severity: Optional[str], as_json: bool) -> None:
    """List pending conflicts, oldest first."""
    verbosity = ctx.obj.get('verbosity', 1)
    with open_engine(ctx) as engine:
        conflicts = engine.get_pending_conflicts(conflict_type=conflict_type, severity=severity)

    if as_json:
        echo_json([c.to_dict() for c in conflicts])
        return

    if not conflicts:
        echo_normal(click.style("✓ No pending conflicts", fg="green"), verbosity)
        return

    for conflict in conflicts:
        echo_quiet(_format_conflict(conflict), verbosity)
        echo_verbose(f"    detected: {conflict.detected_at.isoformat()}", verbosity)
        echo_verbose(f"    local:    {json.dumps(conflict.local_data, sort_keys=True)}", verbosity)
        echo_verbose(f"    remote:   {json.dumps(conflict.remote_data, sort_keys=True)}", verbosity)


@conflicts_group.command('history')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
def history(ctx, as_json: bool) -> None:
    """Show resolutions, most recent first."""
    verbosity = ctx.obj.get('verbosity', 1)
    with open_engine(ctx) as engine:
        resolutions = sorted(
            engine.get_resolution_history(),
            key=lambda r: r.resolved_at,
            reverse=True,
        )

    if as_json:
        echo_json([r.to_dict() for r in resolutions])
        return

    if not resolutions:
        echo_normal("No resolved conflicts", verbosity)
        return

    for resolution in resolutions:
        line = (
            f"{resolution.resolved_at.isoformat()}  {resolution.conflict_id}  "
            f"{resolution.strategy.id} -> {resolution.resolution.value} "
            f"(by {resolution.resolved_by.value})"
        )
        echo_quiet(line, verbosity)
        if resolution.details:
            echo_verbose(f"    {resolution.details}", verbosity)


@conflicts_group.command('stats')
@click.option('--json', 'as_json', is_flag=True, help='Output as JSON')
@click.pass_context
def stats(ctx, as_json: bool) -> None:
    """Show conflict counts by status, type and severity."""
    verbosity = ctx.obj.get('verbosity', 1)
    with open_engine(ctx) as engine:
        statistics = engine.get_conflict_statistics()

    if as_json:
        echo_json(statistics.to_dict())
        return

    echo_normal(click.style("=== Conflict Statistics ===", fg="cyan", bold=True), verbosity)
    echo_quiet(f"Total:    {statistics.total}", verbosity)
    echo_quiet(f"Pending:  {statistics.pending}", verbosity)
    echo_quiet(f"Resolved: {statistics.resolved}", verbosity)
    if statistics.by_type:
        echo_normal("\nBy type:", verbosity)
        for key, count in sorted(statistics.by_type.items()):
            echo_normal(f"  {key}: {count}", verbosity)
    if statistics.by_severity:
        echo_normal("\nBy severity:", verbosity)
        for key, count in sorted(statistics.by_severity.items()):
            echo_normal(f"  {key}: {count}", verbosity)


@conflicts_group.command('resolve')
@click.argument('conflict_id')
@click.argument('outcome', type=click.Choice([o.value for o in ResolutionOutcome]))
@click.option('--details', default=None, help='Reason for the decision')
@click.pass_context
def resolve(ctx, conflict_id: str, outcome: str, details: Optional[str]) -> None:
    """Resolve a pending conflict by hand.

    Examples:
        pricesync conflicts resolve 1b2c... remote
        pricesync conflicts resolve 1b2c... local --details "field price verified"
    """
    verbosity = ctx.obj.get('verbosity', 1)
    with open_engine(ctx) as engine:
        try:
            engine.resolve_conflict_manually(conflict_id, outcome, details)
        except ConflictEngineError as e:
            fail(str(e))
    echo_normal(click.style(f"✓ Resolved {conflict_id} -> {outcome}", fg="green"), verbosity)


@conflicts_group.command('auto')
@click.argument('strategy_id')
@click.argument('conflict_ids', nargs=-1)
@click.pass_context
def auto(ctx, strategy_id: str, conflict_ids: Tuple[str, ...]) -> None:
    """Resolve conflicts with an automatic strategy.

    Applies to every pending conflict when no ids are given.

    Examples:
        pricesync conflicts auto last_modified
        pricesync conflicts auto remote_priority 1b2c... 9f8e...
    """
    verbosity = ctx.obj.get('verbosity', 1)
    try:
        strategy = get_strategy(strategy_id)
    except ConflictEngineError as e:
        fail(str(e))
    if not strategy.automatic:
        fail(f"Strategy {strategy_id} is not automatic; use 'conflicts resolve'")

    with open_engine(ctx) as engine:
        if conflict_ids:
            targets = []
            for conflict_id in conflict_ids:
                conflict = engine.get_conflict(conflict_id)
                if conflict is None:
                    fail(f"Conflict not found: {conflict_id}")
                targets.append(conflict)
        else:
            targets = engine.get_pending_conflicts()
        try:
            resolutions = engine.resolve_conflicts_automatically(targets, strategy)
        except ConflictEngineError as e:
            fail(str(e))

    for resolution in resolutions:
        echo_verbose(f"  {resolution.conflict_id} -> {resolution.resolution.value}", verbosity)
    echo_normal(
        click.style(f"✓ Resolved {len(resolutions)} of {len(targets)} conflict(s) with {strategy_id}", fg="green"),
        verbosity,
    )


@conflicts_group.command('cleanup')
@click.option('--days', type=float, default=None,
              help='Retention window in days (default: retention.days from config)')
@click.pass_context
def cleanup(ctx, days: Optional[float]) -> None:
    """Delete resolved conflicts older than the retention window."""
    verbosity = ctx.obj.get('verbosity', 1)
    with open_engine(ctx) as engine:
        try:
            deleted = engine.cleanup_resolved_conflicts(days)
        except ConflictEngineError as e:
            fail(str(e))
    echo_normal(click.style(f"✓ Deleted {deleted} resolved conflict(s)", fg="green"), verbosity)


@conflicts_group.command('strategies')
@click.pass_context
def strategies(ctx) -> None:
    """List resolution strategies by priority."""
    verbosity = ctx.obj.get('verbosity', 1)
    for strategy in list_strategies():
        mode = "auto" if strategy.automatic else "manual"
        echo_quiet(f"{strategy.priority}. {strategy.id:<16} {mode:<7} {strategy.description}", verbosity)
