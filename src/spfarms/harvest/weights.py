"""Per-strain weight aggregation for harvest stage forms.

Users type weights per strain while a stage form is open. The aggregator keeps
the raw text, exposes advisory totals for display, decides whether every strain
has the value a transition needs, and turns the inputs into the individual
``record_strain_weight`` requests that precede the transition.

Empty input means "not provided" and is never submitted as an explicit zero.
Totals shown to the user are advisory: the server sums the persisted records and
its aggregate wins.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, field_validator

from spfarms.core.errors import SPFarmsValueError

WEIGHT_FIELDS: tuple[str, ...] = (
    "wet_weight_grams",
    "dry_weight_grams",
    "waste_weight_grams",
    "flower_weight_grams",
    "shake_weight_grams",
)

WEIGHT_LABELS: dict[str, str] = {
    "wet_weight_grams": "wet",
    "dry_weight_grams": "dry",
    "waste_weight_grams": "waste",
    "flower_weight_grams": "flower",
    "shake_weight_grams": "shake",
}

GRAMS_PER_POUND = 453.592


def _check_field(field: str) -> str:
    if field not in WEIGHT_FIELDS:
        allowed = ", ".join(WEIGHT_FIELDS)
        raise SPFarmsValueError(f"Unknown weight field '{field}'. Allowed: {allowed}.")
    return field


def parse_grams(text: str | float | None) -> float | None:
    """Parse a user-entered weight; blank input returns ``None``."""
    if text is None:
        return None
    if isinstance(text, (int, float)):
        value = float(text)
    else:
        stripped = text.strip()
        if not stripped:
            return None
        try:
            value = float(stripped)
        except ValueError as exc:
            raise SPFarmsValueError(f"Weight must be numeric grams (got '{text}')") from exc
    if not math.isfinite(value):
        raise SPFarmsValueError(f"Weight must be a finite number of grams (got '{text}')")
    if value < 0:
        raise SPFarmsValueError(f"Weight must be non-negative (got '{text}')")
    return value


def advisory_grams(text: str | float | None) -> float:
    """Lenient parse for display sums: blank, NaN, infinity and garbage count as 0."""
    if text is None:
        return 0.0
    try:
        value = float(text)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


def format_grams(value: float) -> str:
    """Plain gram figure: integers without decimals, otherwise up to three places."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def grams_to_lbs(grams: float) -> str:
    return f"{grams / GRAMS_PER_POUND:.2f}"


def water_loss_pct(total_dry: float, wet_weight_grams: float | None) -> float | None:
    """Percentage of wet weight lost in drying, rounded to one decimal.

    Only defined once a wet weight is recorded and some dry weight has been typed.
    """
    if not wet_weight_grams or total_dry <= 0:
        return None
    return round((1 - total_dry / wet_weight_grams) * 100, 1)


class StrainWeightRecord(BaseModel):
    """Body of one ``record_strain_weight`` request."""

    strain_id: int
    wet_weight_grams: float | None = None
    dry_weight_grams: float | None = None
    waste_weight_grams: float | None = None
    flower_weight_grams: float | None = None
    shake_weight_grams: float | None = None

    @field_validator(*WEIGHT_FIELDS)
    @classmethod
    def _non_negative(cls, value: float | None) -> float | None:
        if value is not None and value < 0:
            raise ValueError("Strain weights must be non-negative")
        return value

    def payload(self) -> dict[str, float | int]:
        return self.model_dump(exclude_none=True)

    def provided_fields(self) -> list[str]:
        return [field for field in WEIGHT_FIELDS if getattr(self, field) is not None]


class StrainWeightInputs:
    """Raw per-strain form values keyed by strain id and weight field."""

    def __init__(self) -> None:
        self._values: dict[int, dict[str, str]] = {}

    def set(self, strain_id: int, field: str, text: str | float | None) -> None:
        _check_field(field)
        row = self._values.setdefault(strain_id, {})
        if text is None:
            row.pop(field, None)
        else:
            row[field] = str(text)

    def update(self, field: str, values: dict[int, str | float]) -> None:
        for strain_id, text in values.items():
            self.set(strain_id, field, text)

    def get(self, strain_id: int, field: str) -> str:
        _check_field(field)
        return self._values.get(strain_id, {}).get(field, "")

    def clear(self, fields: Iterable[str] | None = None) -> None:
        if fields is None:
            self._values.clear()
            return
        for field in fields:
            _check_field(field)
            for row in self._values.values():
                row.pop(field, None)

    def values(self, field: str) -> list[str]:
        _check_field(field)
        return [row[field] for row in self._values.values() if field in row]

    def has_any(self, field: str) -> bool:
        return any(text.strip() for text in self.values(field))

    def total(self, field: str) -> float:
        """Advisory sum across every strain that has a value for ``field``."""
        return sum(advisory_grams(text) for text in self.values(field))

    def missing(self, strain_ids: Sequence[int], field: str) -> list[int]:
        """Strains lacking a strictly positive value for ``field``."""
        return [sid for sid in strain_ids if advisory_grams(self.get(sid, field)) <= 0]

    def is_filled(self, strain_ids: Sequence[int], field: str) -> bool:
        return not self.missing(strain_ids, field)

    def records(self, strain_ids: Sequence[int], fields: Sequence[str]) -> list[StrainWeightRecord]:
        """Build one record per strain that has at least one non-empty field.

        Strains keep the order of ``strain_ids``; fields outside ``fields`` are
        ignored even if typed.
        """
        for field in fields:
            _check_field(field)
        records: list[StrainWeightRecord] = []
        for strain_id in strain_ids:
            parsed = {field: parse_grams(self.get(strain_id, field)) for field in fields}
            provided = {field: value for field, value in parsed.items() if value is not None}
            if provided:
                records.append(StrainWeightRecord(strain_id=strain_id, **provided))
        return records


__all__ = [
    "WEIGHT_FIELDS",
    "WEIGHT_LABELS",
    "GRAMS_PER_POUND",
    "parse_grams",
    "advisory_grams",
    "format_grams",
    "grams_to_lbs",
    "water_loss_pct",
    "StrainWeightRecord",
    "StrainWeightInputs",
]
