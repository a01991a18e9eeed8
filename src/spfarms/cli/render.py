"""Rich renderables for harvests, inventory, and transition telemetry."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import pandas as pd
from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from spfarms.harvest.audit import event_label, format_event_detail, time_ago
from spfarms.harvest.controller import StageTransitionController
from spfarms.harvest.models import (
    HARVEST_STATUS_LABELS,
    AuditEvent,
    Harvest,
    HarvestStatus,
)
from spfarms.harvest.progress import (
    CURING_TARGET_DAYS,
    DRYING_TARGET_DAYS,
    render_progress,
    stage_timer,
)
from spfarms.harvest.weights import format_grams, grams_to_lbs

STATUS_STYLES: dict[HarvestStatus, str] = {
    HarvestStatus.ACTIVE: "blue",
    HarvestStatus.DRYING: "yellow",
    HarvestStatus.DRIED: "green",
    HarvestStatus.TRIMMING: "magenta",
    HarvestStatus.CURING: "bright_magenta",
    HarvestStatus.PACKAGED: "purple",
    HarvestStatus.CLOSED: "bright_black",
}

_TRIM_STATUSES = {
    HarvestStatus.TRIMMING,
    HarvestStatus.CURING,
    HarvestStatus.PACKAGED,
    HarvestStatus.CLOSED,
}

_TIMESTAMP_LABELS = (
    ("drying_started_at", "Drying started"),
    ("dried_at", "Dried"),
    ("trimming_started_at", "Trimming started"),
    ("trimming_finished_at", "Trimming finished"),
    ("curing_started_at", "Curing started"),
    ("curing_finished_at", "Curing finished"),
    ("closed_at", "Closed"),
)


def _grams(value: float | None) -> str:
    return "—" if value is None else f"{format_grams(value)}"


def status_badge(status: HarvestStatus) -> Text:
    return Text(HARVEST_STATUS_LABELS[status], style=f"bold {STATUS_STYLES[status]}")


def harvest_header(harvest: Harvest) -> Text:
    header = Text()
    header.append(harvest.name, style="bold")
    header.append("  ")
    header.append_text(status_badge(harvest.status))
    parts = [
        harvest.strain.name if harvest.strain else None,
        harvest.harvest_type,
        f"{harvest.plant_count} plant{'s' if harvest.plant_count != 1 else ''}",
        harvest.harvest_date.isoformat() if harvest.harvest_date else None,
        f"Day {harvest.total_days}" if harvest.total_days is not None else None,
    ]
    header.append("\n")
    header.append(" · ".join(p for p in parts if p), style="dim")
    return header


def show_trim_columns(harvest: Harvest) -> bool:
    has_trim = any(
        hw.flower_weight_grams is not None or hw.shake_weight_grams is not None
        for hw in harvest.harvest_weights
    )
    return has_trim or harvest.status in _TRIM_STATUSES


def next_step_panel(controller: StageTransitionController) -> Panel:
    """Contextual next-step card for the harvest's current status."""
    harvest = controller.harvest
    transition = controller.pending
    lines: list[RenderableType] = []
    if transition is None:
        lines.append(Text("Harvest closed. No further steps.", style="dim"))
        return Panel(Group(*lines), title="Complete", border_style="bright_black")

    if harvest.status is HarvestStatus.ACTIVE:
        if harvest.wet_weight_grams:
            lines.append(Text(f"Wet weight recorded ({format_grams(harvest.wet_weight_grams)}g). Ready to move to drying."))
        else:
            lines.append(Text("Record wet weights per strain before moving to drying."))
    elif harvest.status is HarvestStatus.DRYING:
        label, _ = stage_timer(harvest.drying_days, DRYING_TARGET_DAYS)
        lines.append(Text(label))
        if harvest.drying_room:
            lines.append(Text(f"Location: {harvest.drying_room.name}", style="dim"))
        lines.append(Text("Record final weights per strain and mark as dried."))
    elif harvest.status is HarvestStatus.DRIED:
        detail = f"Dried for {harvest.drying_days if harvest.drying_days is not None else '?'} days."
        if harvest.dry_weight_loss_pct is not None:
            detail += f" Weight loss: {harvest.dry_weight_loss_pct}%."
        lines.append(Text(detail))
    elif harvest.status is HarvestStatus.TRIMMING:
        lines.append(Text(f"Day {harvest.trimming_days or 0}"))
        lines.append(Text("Record trim weights per strain."))
    elif harvest.status is HarvestStatus.CURING:
        label, _ = stage_timer(harvest.curing_days, CURING_TARGET_DAYS)
        lines.append(Text(label))
        if harvest.flower_weight_grams is not None:
            detail = f"Flower: {format_grams(harvest.flower_weight_grams)}g"
            if harvest.shake_weight_grams is not None:
                detail += f" · Shake: {format_grams(harvest.shake_weight_grams)}g"
            lines.append(Text(detail))
    elif harvest.status is HarvestStatus.PACKAGED:
        if harvest.is_reviewed and harvest.admin_reviewed_at is not None:
            reviewer = harvest.admin_reviewed_by.display_name if harvest.admin_reviewed_by else "an admin"
            lines.append(Text(f"Reviewed by {reviewer} on {harvest.admin_reviewed_at.date().isoformat()}"))
            if not controller.is_admin:
                lines.append(Text("Waiting for an admin to close this harvest.", style="dim"))
        else:
            lines.append(Text("An admin must review and approve this harvest before it can be closed."))
            if not controller.is_admin:
                lines.append(Text("Waiting for admin review.", style="yellow"))

    reason = controller.blocked_reason()
    if reason:
        lines.append(Text(reason, style="red"))
    else:
        lines.append(Text(f"Ready: {transition.label}", style="green"))
    if controller.error:
        lines.append(Text(controller.error, style="red"))
    return Panel(Group(*lines), title=f"Next Step: {transition.label}", border_style=STATUS_STYLES[harvest.status])


def aggregate_weights_table(harvest: Harvest) -> Table:
    table = Table(title="Weights")
    table.add_column("Measure")
    table.add_column("Grams", justify="right")
    table.add_column("Pounds", justify="right")
    rows: list[tuple[str, float | None]] = [
        ("Wet", harvest.wet_weight_grams),
        ("Dry", harvest.dry_weight_grams),
        ("Waste", harvest.waste_weight_grams),
    ]
    if harvest.flower_weight_grams is not None or harvest.shake_weight_grams is not None:
        rows += [("Flower", harvest.flower_weight_grams), ("Shake", harvest.shake_weight_grams)]
    for label, value in rows:
        lbs = grams_to_lbs(value) if value is not None else "—"
        if label == "Dry" and value is not None and harvest.dry_weight_loss_pct is not None:
            lbs = f"{lbs} · {harvest.dry_weight_loss_pct}% loss"
        table.add_row(label, _grams(value), lbs)
    return table


def strain_weights_table(harvest: Harvest) -> Table:
    trim = show_trim_columns(harvest)
    table = Table(title="Weights by Strain")
    table.add_column("Strain")
    table.add_column("Plants", justify="right")
    for label in ("Wet (g)", "Dry (g)", "Waste (g)"):
        table.add_column(label, justify="right")
    if trim:
        table.add_column("Flower (g)", justify="right")
        table.add_column("Shake (g)", justify="right")
    for strain in harvest.strains_in_harvest:
        hw = harvest.weight_for(strain.id)
        row = [
            f"{escape(strain.name)} [dim]#{strain.id}[/dim]",
            str(harvest.plant_count_for(strain.id)),
            _grams(hw.wet_weight_grams if hw else None),
            _grams(hw.dry_weight_grams if hw else None),
            _grams(hw.waste_weight_grams if hw else None),
        ]
        if trim:
            row += [
                _grams(hw.flower_weight_grams if hw else None),
                _grams(hw.shake_weight_grams if hw else None),
            ]
        table.add_row(*row)
    return table


def plants_table(harvest: Harvest) -> Table:
    table = Table(title=f"Harvested Plants ({len(harvest.harvest_plants)})")
    table.add_column("Plant")
    table.add_column("Strain")
    table.add_column("Wet (g)", justify="right")
    for hp in harvest.harvest_plants:
        table.add_row(hp.plant_uid or str(hp.plant_id), escape(hp.strain_name or str(hp.strain_id)), _grams(hp.wet_weight_grams))
    return table


def audit_table(events: Sequence[AuditEvent]) -> Table:
    table = Table(title="Activity")
    table.add_column("When", style="dim")
    table.add_column("Event")
    table.add_column("Detail")
    table.add_column("By", style="dim")
    for event in events:
        table.add_row(
            time_ago(event.created_at),
            event_label(event),
            format_event_detail(event),
            event.actor.display_name if event.actor else "",
        )
    return table


def harvest_footer(harvest: Harvest) -> Text:
    lines = [f"UID: {harvest.harvest_uid or '—'}"]
    if harvest.created_by:
        lines.append(f"Created by: {harvest.created_by.display_name}")
    for attr, label in _TIMESTAMP_LABELS:
        value = getattr(harvest, attr)
        if value is not None:
            lines.append(f"{label}: {value.date().isoformat()}")
    if harvest.metrc_id:
        lines.append(f"METRC ID: {harvest.metrc_id}")
    if harvest.metrc_tag:
        lines.append(f"METRC Tag: {harvest.metrc_tag}")
    return Text("\n".join(lines), style="dim")


def print_harvest(
    console: Console,
    controller: StageTransitionController,
    events: Sequence[AuditEvent] = (),
) -> None:
    harvest = controller.harvest
    console.print(harvest_header(harvest))
    console.print(render_progress(harvest.status))
    console.print(next_step_panel(controller))
    console.print(aggregate_weights_table(harvest))
    if harvest.strains_in_harvest:
        console.print(strain_weights_table(harvest))
    console.print(plants_table(harvest))
    if harvest.notes:
        console.print(Panel(harvest.notes, title="Notes"))
    if events:
        console.print(audit_table(events))
    console.print(harvest_footer(harvest))


def harvest_list_table(harvests: Iterable[Harvest]) -> Table:
    table = Table(title="Harvests")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Strain")
    table.add_column("Plants", justify="right")
    table.add_column("Date")
    for harvest in harvests:
        status = status_badge(harvest.status)
        if harvest.status is HarvestStatus.DRYING and harvest.drying_days is not None:
            status.append(f" · Day {harvest.drying_days}", style="dim")
        table.add_row(
            str(harvest.id),
            escape(harvest.name),
            status,
            escape(harvest.strain.name) if harvest.strain else "",
            str(harvest.plant_count),
            harvest.harvest_date.isoformat() if harvest.harvest_date else "",
        )
    return table


def flower_inventory_table(inventory: pd.DataFrame) -> Table:
    flower_total = float(inventory["flower_grams"].sum()) if not inventory.empty else 0.0
    shake_total = float(inventory["shake_grams"].sum()) if not inventory.empty else 0.0
    table = Table(
        title="Flower Inventory",
        caption=(
            f"Total flower {flower_total:.1f}g ({grams_to_lbs(flower_total)} lbs) · "
            f"Total shake {shake_total:.1f}g ({grams_to_lbs(shake_total)} lbs)"
        ),
    )
    table.add_column("Strain")
    table.add_column("Flower (g)", justify="right")
    table.add_column("Shake (g)", justify="right")
    table.add_column("Harvests", justify="right")
    for row in inventory.itertuples(index=False):
        table.add_row(
            escape(str(row.strain_name)),
            f"{row.flower_grams:.1f}",
            f"{row.shake_grams:.1f}",
            str(row.harvest_count),
        )
    return table


def transition_records_table(records: Sequence[Mapping[str, Any]]) -> Table:
    table = Table(title="Transitions")
    table.add_column("Finished")
    table.add_column("Harvest", justify="right", no_wrap=True)
    table.add_column("Action", no_wrap=True)
    table.add_column("From → To")
    table.add_column("Status")
    table.add_column("Error")
    for record in records:
        status = str(record.get("status", ""))
        table.add_row(
            str(record.get("finished_at", "")),
            str(record.get("harvest_id", "")),
            str(record.get("action", "")),
            f"{record.get('from_status') or '?'} → {record.get('to_status') or '?'}",
            Text(status, style="green" if status == "ok" else "red"),
            escape(str(record.get("error") or "")),
        )
    return table


__all__ = [
    "STATUS_STYLES",
    "status_badge",
    "harvest_header",
    "show_trim_columns",
    "next_step_panel",
    "aggregate_weights_table",
    "strain_weights_table",
    "plants_table",
    "audit_table",
    "harvest_footer",
    "print_harvest",
    "harvest_list_table",
    "flower_inventory_table",
    "transition_records_table",
]
