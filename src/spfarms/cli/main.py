from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any, NoReturn

import click
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from spfarms.api import HarvestApiClient
from spfarms.cli._utils import parse_id_list, parse_strain_weights
from spfarms.cli.render import (
    harvest_list_table,
    flower_inventory_table,
    print_harvest,
    strain_weights_table,
)
from spfarms.cli.telemetry import telemetry_app
from spfarms.config import ClientConfig, load_config
from spfarms.core.errors import (
    ApiError,
    InvalidTransitionError,
    SPFarmsValueError,
    TransitionBlockedError,
    TransitionError,
)
from spfarms.harvest import StageTransitionController
from spfarms.harvest.inventory import flower_inventory, harvest_weights_frame
from spfarms.harvest.lifecycle import get_transition
from spfarms.harvest.models import HARVEST_STATUS_LABELS, HarvestStatus
from spfarms.harvest.progress import drying_summary, trim_summary, wet_summary
from spfarms.harvest.weights import parse_grams

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Drive SPFarms harvests through their lifecycle.")
app.add_typer(telemetry_app, name="telemetry")
console = Console()
STATUS_CHOICE = click.Choice([status.value for status in HarvestStatus], case_sensitive=False)
HARVEST_TYPE_CHOICE = click.Choice(["whole_plant", "partial"], case_sensitive=False)


def make_client(config: ClientConfig) -> HarvestApiClient:
    return HarvestApiClient.from_config(config)


def _config(ctx: typer.Context) -> ClientConfig:
    return ctx.ensure_object(ClientConfig)


def _fail(prefix: str, exc: Exception) -> NoReturn:
    console.print(f"[red]{prefix}:[/red] {exc}")
    raise typer.Exit(1)


def _controller(ctx: typer.Context, harvest_id: int) -> StageTransitionController:
    config = _config(ctx)
    client = make_client(config)
    try:
        return StageTransitionController.load(
            client,
            harvest_id,
            role=config.role,
            log_path=config.transition_log,
        )
    except ApiError as exc:
        _fail("Failed to load harvest", exc)


def _weights(field: str, weight_args: list[str] | None) -> dict[str, dict[int, str]]:
    try:
        parsed = parse_strain_weights(weight_args)
    except SPFarmsValueError as exc:
        raise typer.BadParameter(str(exc), param_hint=f"--{field}") from exc
    return {f"{field}_weight_grams": parsed} if parsed else {}


def _print_form_summary(controller: StageTransitionController, action: str) -> None:
    if action == "start_drying":
        lines = [wet_summary(controller.inputs)]
    elif action == "finish_drying":
        lines = list(drying_summary(controller.inputs, controller.harvest))
    elif action == "finish_trimming":
        lines = [trim_summary(controller.inputs)]
    else:
        lines = []
    for line in lines:
        if line:
            console.print(f"[dim]{line}[/dim]")


def _run_transition(
    ctx: typer.Context,
    harvest_id: int,
    action: str | None,
    weights: Mapping[str, Mapping[int, str]] | None = None,
    **kwargs: Any,
) -> None:
    controller = _controller(ctx, harvest_id)
    for field, values in (weights or {}).items():
        controller.set_weights(field, values)
    if action is None:
        pending = controller.pending
        if pending is None:
            _fail("Nothing to do", InvalidTransitionError(f"Harvest {harvest_id} is closed"))
        action = pending.action
    transition = get_transition(action)
    from_status = controller.harvest.status
    _print_form_summary(controller, action)

    try:
        updated = getattr(controller, action)(**kwargs)
    except TransitionBlockedError as exc:
        console.print(f"[red]Blocked:[/red] {exc.message}")
        if exc.missing_strain_ids:
            names = {s.id: escape(s.name) for s in controller.harvest.strains_in_harvest}
            missing = ", ".join(f"{names.get(sid, sid)} (#{sid})" for sid in exc.missing_strain_ids)
            console.print(f"[yellow]Missing strains:[/yellow] {missing}")
        raise typer.Exit(1)
    except InvalidTransitionError as exc:
        _fail("Invalid transition", exc)
    except SPFarmsValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except TransitionError as exc:
        console.print(f"[red]{exc.message}[/red]")
        if exc.recorded_strain_ids:
            recorded = ", ".join(str(sid) for sid in exc.recorded_strain_ids)
            console.print(f"[yellow]Weights already recorded for strains:[/yellow] {recorded}")
        raise typer.Exit(1)

    console.print(
        f"[green]{transition.label}[/green] harvest {updated.id}: "
        f"{HARVEST_STATUS_LABELS[from_status]} → {HARVEST_STATUS_LABELS[updated.status]}"
    )


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Path | None = typer.Option(
        None,
        "--config",
        dir_okay=False,
        help="YAML config file (defaults to $SPFARMS_CONFIG or ~/.config/spfarms/config.yaml).",
    ),
    api_url: str | None = typer.Option(None, "--api-url", help="Backend URL (overrides config/env)."),
    token: str | None = typer.Option(None, "--token", help="Bearer token (overrides config/env)."),
    role: str | None = typer.Option(None, "--role", help="Acting user role; 'admin' unlocks review and close."),
) -> None:
    """Harvest lifecycle tooling for the SPFarms backend."""
    try:
        ctx.obj = load_config(config_path, api_url=api_url, token=token, role=role)
    except SPFarmsValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("list")
def list_harvests(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", click_type=STATUS_CHOICE, help="Only show this status."),
) -> None:
    """List harvests."""
    client = make_client(_config(ctx))
    try:
        harvests = client.get_harvests()
    except ApiError as exc:
        _fail("Failed to load harvests", exc)
    if status:
        harvests = [h for h in harvests if h.status.value == status.lower()]
    if not harvests:
        console.print("No harvests yet.")
        return
    console.print(harvest_list_table(harvests))


@app.command()
def show(
    ctx: typer.Context,
    harvest_id: int = typer.Argument(..., help="Harvest id."),
    activity: bool = typer.Option(True, "--activity/--no-activity", help="Include the audit timeline."),
) -> None:
    """Show a harvest: progress, weights, next step, plants, and activity."""
    controller = _controller(ctx, harvest_id)
    events = controller.audit_events() if activity else []
    print_harvest(console, controller, events)


@app.command("start-drying")
def start_drying(
    ctx: typer.Context,
    harvest_id: int = typer.Argument(..., help="Harvest id."),
    wet: list[str] | None = typer.Option(None, "--wet", help="Wet weight per strain as strain_id=grams."),
    waste: list[str] | None = typer.Option(None, "--waste", help="Waste weight per strain as strain_id=grams."),
    room: int | None = typer.Option(None, "--room", help="Drying room id."),
) -> None:
    """Record wet weights and move the harvest to drying."""
    weights = {**_weights("wet", wet), **_weights("waste", waste)}
    _run_transition(ctx, harvest_id, "start_drying", weights, drying_room_id=room)


@app.command("finish-drying")
def finish_drying(
    ctx: typer.Context,
    harvest_id: int = typer.Argument(..., help="Harvest id."),
    dry: list[str] | None = typer.Option(None, "--dry", help="Dry weight per strain as strain_id=grams."),
) -> None:
    """Record dry weights and mark the harvest as dried."""
    _run_transition(ctx, harvest_id, "finish_drying", _weights("dry", dry))


@app.command("start-trimming")
def start_trimming(ctx: typer.Context, harvest_id: int = typer.Argument(..., help="Harvest id.")) -> None:
    """Move a dried harvest to trimming."""
    _run_transition(ctx, harvest_id, "start_trimming")


@app.command("finish-trimming")
def finish_trimming(
    ctx: typer.Context,
    harvest_id: int = typer.Argument(..., help="Harvest id."),
    flower: list[str] | None = typer.Option(None, "--flower", help="Flower weight per strain as strain_id=grams."),
    shake: list[str] | None = typer.Option(None, "--shake", help="Shake weight per strain as strain_id=grams."),
    waste: list[str] | None = typer.Option(None, "--waste", help="Trim waste per strain as strain_id=grams."),
) -> None:
    """Record trim weights and move the harvest to curing."""
    weights = {**_weights("flower", flower), **_weights("shake", shake), **_weights("waste", waste)}
    _run_transition(ctx, harvest_id, "finish_trimming", weights)


@app.command("finish-curing")
def finish_curing(ctx: typer.Context, harvest_id: int = typer.Argument(..., help="Harvest id.")) -> None:
    """Mark curing complete; the harvest becomes packaged."""
    _run_transition(ctx, harvest_id, "finish_curing")


@app.command()
def review(ctx: typer.Context, harvest_id: int = typer.Argument(..., help="Harvest id.")) -> None:
    """Admin review of a packaged harvest."""
    _run_transition(ctx, harvest_id, "admin_review")


@app.command()
def close(ctx: typer.Context, harvest_id: int = typer.Argument(..., help="Harvest id.")) -> None:
    """Close a reviewed, packaged harvest (admin only)."""
    _run_transition(ctx, harvest_id, "close")


@app.command()
def advance(ctx: typer.Context, harvest_id: int = typer.Argument(..., help="Harvest id.")) -> None:
    """Run whichever transition is pending for the harvest's current status."""
    _run_transition(ctx, harvest_id, None)


@app.command("record-weight")
def record_weight(
    ctx: typer.Context,
    harvest_id: int = typer.Argument(..., help="Harvest id."),
    strain_id: int = typer.Argument(..., help="Strain id within the harvest."),
    wet: str | None = typer.Option(None, "--wet", help="Wet grams."),
    dry: str | None = typer.Option(None, "--dry", help="Dry grams."),
    waste: str | None = typer.Option(None, "--waste", help="Waste grams."),
    flower: str | None = typer.Option(None, "--flower", help="Flower grams."),
    shake: str | None = typer.Option(None, "--shake", help="Shake grams."),
) -> None:
    """Persist one strain's weights without changing the harvest status."""
    controller = _controller(ctx, harvest_id)
    weights = {
        "wet_weight_grams": wet,
        "dry_weight_grams": dry,
        "waste_weight_grams": waste,
        "flower_weight_grams": flower,
        "shake_weight_grams": shake,
    }
    try:
        controller.record_strain_weight(strain_id, **{k: v for k, v in weights.items() if v is not None})
    except SPFarmsValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except ApiError as exc:
        _fail(controller.error or "Failed to save", exc)
    console.print(f"[green]Saved[/green] strain {strain_id} weights on harvest {harvest_id}.")
    console.print(strain_weights_table(controller.harvest))


@app.command("add-plants")
def add_plants(
    ctx: typer.Context,
    harvest_id: int = typer.Argument(..., help="Harvest id."),
    plant_ids: list[str] | None = typer.Argument(None, help="Plant ids (space or comma separated)."),
) -> None:
    """Add flowering plants to an active harvest; lists candidates when no ids are given."""
    try:
        ids = parse_id_list(plant_ids)
    except SPFarmsValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="PLANT_IDS") from exc
    controller = _controller(ctx, harvest_id)
    if not ids:
        try:
            plants = controller.available_plants()
        except ApiError as exc:
            _fail("Failed to load plants", exc)
        if not plants:
            console.print("No flowering plants available to add.")
            return
        table = Table(title="Available Plants")
        table.add_column("ID", justify="right")
        table.add_column("Plant")
        table.add_column("Strain")
        table.add_column("Room")
        for plant in plants:
            table.add_row(
                str(plant.id),
                plant.plant_uid or "",
                escape(plant.strain.name) if plant.strain else "",
                escape(plant.room.name) if plant.room else "",
            )
        console.print(table)
        return
    try:
        before = controller.harvest.plant_count
        updated = controller.add_plants(ids)
    except InvalidTransitionError as exc:
        _fail("Cannot add plants", exc)
    except ApiError as exc:
        _fail(controller.error or "Failed to add plants", exc)
    console.print(
        f"[green]Added[/green] {updated.plant_count - before} plant(s) to harvest {harvest_id} "
        f"(total: {updated.plant_count})."
    )


@app.command()
def create(
    ctx: typer.Context,
    plant: list[str] = typer.Option(..., "--plant", "-p", help="Plant id(s) to harvest; repeat or comma separate."),
    name: str | None = typer.Option(None, "--name", help="Harvest name (server generates one when omitted)."),
    harvest_type: str = typer.Option(
        "whole_plant",
        "--type",
        click_type=HARVEST_TYPE_CHOICE,
        help="Harvest type.",
    ),
    harvest_date: datetime | None = typer.Option(
        None,
        "--date",
        formats=["%Y-%m-%d"],
        help="Harvest date (defaults to today).",
    ),
    wet: str | None = typer.Option(None, "--wet", help="Total wet grams, if weighed as one batch."),
    room: int | None = typer.Option(None, "--room", help="Drying room id."),
    notes: str | None = typer.Option(None, "--notes", help="Free-form notes."),
) -> None:
    """Create a harvest from flowering plants."""
    try:
        plant_ids = parse_id_list(plant)
        wet_grams = parse_grams(wet)
    except SPFarmsValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if not plant_ids:
        raise typer.BadParameter("Select at least one plant", param_hint="--plant")
    client = make_client(_config(ctx))
    try:
        harvest = client.create_harvest(
            plant_ids,
            name=name,
            harvest_type=harvest_type.lower(),
            harvest_date=harvest_date.date() if harvest_date else date.today(),
            wet_weight_grams=wet_grams,
            drying_room_id=room,
            notes=notes,
        )
    except ApiError as exc:
        _fail("Failed to create harvest", exc)
    console.print(
        f"[green]Created[/green] harvest {harvest.id} ({escape(harvest.name)}) with {harvest.plant_count} plant(s)."
    )


@app.command()
def flower(
    ctx: typer.Context,
    out: Path | None = typer.Option(None, "--out", dir_okay=False, help="Write the inventory to CSV."),
) -> None:
    """Trimmed flower and shake inventory by strain."""
    client = make_client(_config(ctx))
    try:
        harvests = client.get_harvests()
    except ApiError as exc:
        _fail("Failed to load harvests", exc)
    inventory = flower_inventory(harvests)
    if inventory.empty:
        console.print("No flower inventory yet.")
    else:
        console.print(flower_inventory_table(inventory))
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        inventory.to_csv(out, index=False)
        console.print(f"[dim]Inventory written to {out}[/dim]")


@app.command()
def weights(
    ctx: typer.Context,
    harvest_id: int = typer.Argument(..., help="Harvest id."),
    out: Path | None = typer.Option(None, "--out", dir_okay=False, help="Write per-strain weights to CSV."),
) -> None:
    """Per-strain weights of one harvest."""
    controller = _controller(ctx, harvest_id)
    if out is None:
        console.print(strain_weights_table(controller.harvest))
        return
    frame = harvest_weights_frame(controller.harvest)
    out.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(out, index=False)
    console.print(f"[dim]{len(frame)} strain row(s) written to {out}[/dim]")


if __name__ == "__main__":
    app()
