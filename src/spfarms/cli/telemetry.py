from __future__ import annotations

import json
from collections import deque
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console

from spfarms.cli.render import transition_records_table
from spfarms.config import ClientConfig
from spfarms.telemetry import tail_jsonl

DEFAULT_TRANSITION_LOG = Path("telemetry/transitions.jsonl")

telemetry_app = typer.Typer(add_completion=False, no_args_is_help=True, help="Transition log maintenance utilities.")
console = Console()


def _resolve_log(ctx: typer.Context, transition_log: Path | None) -> Path:
    if transition_log is not None:
        return transition_log
    config = ctx.find_object(ClientConfig)
    if config is not None and config.transition_log is not None:
        return config.transition_log
    return DEFAULT_TRANSITION_LOG


def _read_lines(path: Path) -> Iterable[tuple[str, dict[str, object] | None]]:
    with path.open("r", encoding="utf-8") as handle:
        for raw in handle:
            line = raw.rstrip("\n")
            if not line:
                yield raw, None
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                yield raw, None
            else:
                yield raw, payload if isinstance(payload, dict) else None


@telemetry_app.command("prune")
def prune(
    ctx: typer.Context,
    transition_log: Path | None = typer.Argument(
        None,
        exists=False,
        dir_okay=False,
        writable=True,
        help="Transition JSONL file to prune; defaults to the configured transition log.",
    ),
    keep: int = typer.Option(
        5000,
        "--keep",
        "-k",
        min=1,
        help="Number of most-recent transition records to retain.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Preview the prune operation without modifying the file.",
    ),
) -> None:
    """Trim the transition log to its most recent records."""
    transition_log = _resolve_log(ctx, transition_log)
    if not transition_log.exists():
        typer.echo(f"No transition log found at {transition_log}. Nothing to prune.")
        raise typer.Exit(0)

    lines = list(_read_lines(transition_log))
    if len(lines) <= keep:
        typer.echo(f"Transition log contains {len(lines)} record(s); nothing to prune (keep={keep}).")
        raise typer.Exit(0)

    kept_entries = deque(lines, maxlen=keep)
    removed = len(lines) - keep
    if dry_run:
        typer.echo(f"[dry-run] Would remove {removed} record(s) and keep {keep}.")
        raise typer.Exit(0)

    tmp_path = transition_log.with_suffix(transition_log.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        for raw, _ in kept_entries:
            handle.write(raw if raw.endswith("\n") else f"{raw}\n")
    tmp_path.replace(transition_log)
    typer.echo(f"Pruned {removed} record(s); {keep} remain in {transition_log}.")


@telemetry_app.command("tail")
def tail(
    ctx: typer.Context,
    transition_log: Path | None = typer.Argument(
        None,
        dir_okay=False,
        help="Transition JSONL file to read; defaults to the configured transition log.",
    ),
    count: int = typer.Option(10, "--count", "-n", min=1, help="Number of records to show."),
    harvest_id: int | None = typer.Option(None, "--harvest", help="Only show records for this harvest."),
) -> None:
    """Show the most recent transition records."""
    transition_log = _resolve_log(ctx, transition_log)
    records = tail_jsonl(transition_log, count if harvest_id is None else 1_000_000)
    records = [r for r in records if r.get("record_type", "transition") == "transition"]
    if harvest_id is not None:
        records = [r for r in records if r.get("harvest_id") == harvest_id][-count:]
    if not records:
        typer.echo(f"No transition records found in {transition_log}.")
        raise typer.Exit(0)
    console.print(transition_records_table(records))


__all__ = ["telemetry_app", "prune", "tail", "DEFAULT_TRANSITION_LOG"]
