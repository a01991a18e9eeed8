"""One-line descriptions of harvest audit events."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from spfarms.harvest.models import AuditEvent
from spfarms.harvest.weights import advisory_grams, format_grams, grams_to_lbs

AUDIT_EVENT_LABELS: dict[str, str] = {
    "harvest_created": "Harvest created",
    "harvest_plants_added": "Plants added",
    "harvest_wet_weight_recorded": "Wet weight recorded",
    "harvest_drying_started": "Drying started",
    "harvest_dry_weight_recorded": "Dry weight recorded",
    "harvest_drying_finished": "Drying finished",
    "harvest_status_changed": "Status changed",
    "harvest_strain_weight_recorded": "Strain weight recorded",
    "harvest_waste_recorded": "Waste recorded",
    "harvest_updated": "Harvest updated",
    "harvest_trimming_started": "Trimming started",
    "harvest_trimming_finished": "Trimming finished",
    "harvest_curing_finished": "Curing finished",
    "harvest_admin_reviewed": "Admin reviewed",
}


def _w(grams: Any) -> str:
    value = advisory_grams(grams)
    return f"{format_grams(value)}g ({grams_to_lbs(value)}lb)"


def _plural(count: Any, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def _created(m: Mapping[str, Any]) -> str:
    detail = f"{m.get('plant_count')} plants, {m.get('harvest_type')} harvest"
    if m.get("strain_name"):
        detail += f" — {m['strain_name']}"
    return detail


def _drying_started(m: Mapping[str, Any]) -> str:
    if m.get("drying_room_name"):
        return f"Room: {m['drying_room_name']}, {_w(m.get('wet_weight_grams'))} wet"
    return f"{_w(m.get('wet_weight_grams'))} wet"


def _drying_finished(m: Mapping[str, Any]) -> str:
    parts: list[str] = []
    if m.get("dry_weight_grams"):
        parts.append(f"{_w(m['dry_weight_grams'])} dry")
    if m.get("drying_days"):
        parts.append(f"{m['drying_days']} days")
    return ", ".join(parts)


def _strain_weight(m: Mapping[str, Any]) -> str:
    parts: list[str] = []
    if m.get("strain_name"):
        parts.append(str(m["strain_name"]))
    for key, label in (
        ("wet_weight_grams", "wet"),
        ("dry_weight_grams", "dry"),
        ("flower_weight_grams", "flower"),
        ("shake_weight_grams", "shake"),
    ):
        if m.get(key):
            parts.append(f"{_w(m[key])} {label}")
    return " — ".join(parts)


def _trimming_finished(m: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for key, label in (
        ("flower_weight_grams", "flower"),
        ("shake_weight_grams", "shake"),
        ("waste_weight_grams", "waste"),
    ):
        if m.get(key):
            parts.append(f"{_w(m[key])} {label}")
    if m.get("trimming_days"):
        parts.append(f"{m['trimming_days']} days")
    return ", ".join(parts)


_FORMATTERS: dict[str, Callable[[Mapping[str, Any]], str]] = {
    "harvest_created": _created,
    "harvest_plants_added": lambda m: (
        f"{_plural(m.get('plant_count'), 'plant')} added (total: {m.get('new_total')})"
    ),
    "harvest_wet_weight_recorded": lambda m: _w(m.get("wet_weight_grams")),
    "harvest_drying_started": _drying_started,
    "harvest_dry_weight_recorded": lambda m: _w(m.get("dry_weight_grams")),
    "harvest_drying_finished": _drying_finished,
    "harvest_status_changed": lambda m: f"{m.get('from')} → {m.get('to')}",
    "harvest_strain_weight_recorded": _strain_weight,
    "harvest_waste_recorded": lambda m: _w(m.get("waste_weight_grams")),
    "harvest_trimming_started": lambda m: (
        f"{_w(m['dry_weight_grams'])} dry weight" if m.get("dry_weight_grams") else ""
    ),
    "harvest_trimming_finished": _trimming_finished,
    "harvest_curing_finished": lambda m: f"{m['curing_days']} days" if m.get("curing_days") else "",
    "harvest_admin_reviewed": lambda m: f"Reviewed by {m['reviewed_by']}" if m.get("reviewed_by") else "",
}


def event_label(event: AuditEvent) -> str:
    return AUDIT_EVENT_LABELS.get(event.event_type, event.event_type.replace("_", " ").capitalize())


def format_event_detail(event: AuditEvent) -> str:
    """Describe ``event`` from its metadata; unknown event types yield ``""``."""
    formatter = _FORMATTERS.get(event.event_type)
    if formatter is None:
        return ""
    return formatter(event.metadata)


def time_ago(timestamp: datetime | None, now: datetime | None = None) -> str:
    """Relative age (``just now``, ``5m ago``, ...); a date once older than a week."""
    if timestamp is None:
        return ""
    now = now or datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    seconds = int((now - timestamp).total_seconds())
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 7:
        return f"{days}d ago"
    return timestamp.date().isoformat()


__all__ = ["AUDIT_EVENT_LABELS", "event_label", "format_event_detail", "time_ago"]
