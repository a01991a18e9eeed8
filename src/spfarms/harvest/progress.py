"""Derived display state: lifecycle progress bar and advisory stage summaries."""

from __future__ import annotations

from rich.text import Text

from spfarms.harvest.lifecycle import status_index
from spfarms.harvest.models import HARVEST_STATUS_LABELS, HARVEST_STATUS_ORDER, Harvest, HarvestStatus
from spfarms.harvest.weights import StrainWeightInputs, format_grams, water_loss_pct

DRYING_TARGET_DAYS = 14
CURING_TARGET_DAYS = 30


def progress_segments(status: HarvestStatus | str) -> tuple[bool, ...]:
    """One flag per lifecycle step; steps up to and including ``status`` are filled."""
    current = status_index(status)
    return tuple(i <= current for i in range(len(HARVEST_STATUS_ORDER)))


def render_progress(status: HarvestStatus | str, width: int = 6) -> Text:
    """Render the seven-step bar followed by the step labels.

    Segments widen to fit the longest label.
    """
    status = HarvestStatus(status)
    width = max(width, *(len(label) for label in HARVEST_STATUS_LABELS.values()))
    bar = Text()
    for filled in progress_segments(status):
        bar.append("━" * width, style="green" if filled else "dim")
        bar.append(" ")
    bar.append("\n")
    for step in HARVEST_STATUS_ORDER:
        label = HARVEST_STATUS_LABELS[step].ljust(width)
        bar.append(label, style="bold" if step is status else "dim")
        bar.append(" ")
    return bar


def wet_summary(inputs: StrainWeightInputs) -> str | None:
    """Advisory totals for the start-drying form."""
    if not inputs.has_any("wet_weight_grams"):
        return None
    line = f"Total wet: {format_grams(inputs.total('wet_weight_grams'))}g"
    if inputs.has_any("waste_weight_grams"):
        line += f" · Total waste: {format_grams(inputs.total('waste_weight_grams'))}g"
    return line


def drying_summary(inputs: StrainWeightInputs, harvest: Harvest) -> list[str]:
    """Advisory ``Total dry`` and ``Water loss`` lines for the finish-drying form."""
    total_dry = inputs.total("dry_weight_grams")
    if total_dry <= 0:
        return []
    lines = [f"Total dry: {format_grams(total_dry)}g"]
    loss = water_loss_pct(total_dry, harvest.wet_weight_grams)
    if loss is not None:
        lines.append(f"Water loss: {loss:.1f}% from {format_grams(harvest.wet_weight_grams or 0)}g wet")
    return lines


def trim_summary(inputs: StrainWeightInputs) -> str | None:
    """Advisory totals for the finish-trimming form."""
    flower = inputs.total("flower_weight_grams")
    shake = inputs.total("shake_weight_grams")
    waste = inputs.total("waste_weight_grams")
    if flower <= 0 and shake <= 0 and waste <= 0:
        return None
    return f"Flower: {format_grams(flower)}g · Shake: {format_grams(shake)}g · Waste: {format_grams(waste)}g"


def stage_timer(days: int | None, target: int) -> tuple[str, float]:
    """Day counter label and the fraction of ``target`` elapsed (capped at 1)."""
    elapsed = days or 0
    return f"Day {elapsed}/{target}", min(elapsed / target, 1.0)


__all__ = [
    "DRYING_TARGET_DAYS",
    "CURING_TARGET_DAYS",
    "progress_segments",
    "render_progress",
    "wet_summary",
    "drying_summary",
    "trim_summary",
    "stage_timer",
]
