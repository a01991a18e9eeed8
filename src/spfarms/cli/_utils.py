"""CLI helper utilities for SPFarms."""

from __future__ import annotations

from collections.abc import Sequence

from spfarms.core.errors import SPFarmsValueError
from spfarms.harvest.weights import parse_grams


def parse_strain_weights(weight_args: Sequence[str] | None) -> dict[int, str]:
    """Parse ``strain_id=grams`` strings into a mapping of raw gram text.

    The grams are validated but returned as text so the aggregator keeps the
    distinction between blank and zero.
    """
    weights: dict[int, str] = {}
    if not weight_args:
        return weights
    for arg in weight_args:
        if "=" not in arg:
            raise SPFarmsValueError(f"Strain weight must be in strain_id=grams format (got '{arg}')")
        raw_id, raw_value = arg.split("=", 1)
        raw_id = raw_id.strip()
        if not raw_id:
            raise SPFarmsValueError(f"Strain weight missing strain id in '{arg}'")
        try:
            strain_id = int(raw_id)
        except ValueError as exc:
            raise SPFarmsValueError(f"Strain id must be an integer (got '{raw_id}')") from exc
        parse_grams(raw_value)
        weights[strain_id] = raw_value.strip()
    return weights


def parse_id_list(values: Sequence[str] | None) -> list[int]:
    """Parse ids given as repeated arguments and/or comma-separated lists."""
    ids: list[int] = []
    for value in values or ():
        for part in value.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                ids.append(int(part))
            except ValueError as exc:
                raise SPFarmsValueError(f"Ids must be integers (got '{part}')") from exc
    return ids


__all__ = ["parse_strain_weights", "parse_id_list"]
