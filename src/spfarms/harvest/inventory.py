"""Tabular summaries of harvest weights (flower inventory, per-strain exports)."""

from __future__ import annotations

from collections.abc import Iterable

import pandas as pd

from spfarms.harvest.models import Harvest
from spfarms.harvest.weights import WEIGHT_FIELDS

__all__ = [
    "FLOWER_INVENTORY_COLUMNS",
    "FLOWER_SOURCE_COLUMNS",
    "HARVEST_WEIGHT_COLUMNS",
    "flower_inventory",
    "flower_sources",
    "harvest_weights_frame",
]

FLOWER_INVENTORY_COLUMNS = [
    "strain_id",
    "strain_name",
    "flower_grams",
    "shake_grams",
    "harvest_count",
]

FLOWER_SOURCE_COLUMNS = [
    "strain_id",
    "strain_name",
    "harvest_id",
    "harvest_name",
    "flower_grams",
    "shake_grams",
]

HARVEST_WEIGHT_COLUMNS = ["strain_id", "strain_name", "plant_count", *WEIGHT_FIELDS]


def flower_sources(harvests: Iterable[Harvest]) -> pd.DataFrame:
    """One row per (strain, harvest) that produced trimmed flower or shake.

    Records where both flower and shake are missing or zero are skipped.
    """
    rows: list[dict[str, object]] = []
    for harvest in harvests:
        for hw in harvest.harvest_weights:
            flower = float(hw.flower_weight_grams or 0)
            shake = float(hw.shake_weight_grams or 0)
            if flower == 0 and shake == 0:
                continue
            rows.append(
                {
                    "strain_id": hw.strain_id,
                    "strain_name": hw.strain_name,
                    "harvest_id": harvest.id,
                    "harvest_name": harvest.name,
                    "flower_grams": flower,
                    "shake_grams": shake,
                }
            )
    if not rows:
        return pd.DataFrame(columns=FLOWER_SOURCE_COLUMNS)
    return pd.DataFrame(rows).reindex(columns=FLOWER_SOURCE_COLUMNS)


def flower_inventory(harvests: Iterable[Harvest]) -> pd.DataFrame:
    """Trimmed flower and shake totals by strain across ``harvests``.

    Sorted by flower grams, largest first. Grand totals are the column sums.
    """
    sources = flower_sources(harvests)
    if sources.empty:
        return pd.DataFrame(columns=FLOWER_INVENTORY_COLUMNS)
    grouped = (
        sources.groupby("strain_id", sort=False)
        .agg(
            strain_name=("strain_name", "first"),
            flower_grams=("flower_grams", "sum"),
            shake_grams=("shake_grams", "sum"),
            harvest_count=("harvest_id", "nunique"),
        )
        .reset_index()
    )
    grouped = grouped.sort_values("flower_grams", ascending=False, kind="stable")
    return grouped.reindex(columns=FLOWER_INVENTORY_COLUMNS).reset_index(drop=True)


def harvest_weights_frame(harvest: Harvest) -> pd.DataFrame:
    """Per-strain weights for one harvest, one row per strain in the harvest."""
    rows: list[dict[str, object]] = []
    for strain in harvest.strains_in_harvest:
        hw = harvest.weight_for(strain.id)
        row: dict[str, object] = {
            "strain_id": strain.id,
            "strain_name": strain.name,
            "plant_count": harvest.plant_count_for(strain.id),
        }
        for field in WEIGHT_FIELDS:
            row[field] = getattr(hw, field) if hw is not None else None
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=HARVEST_WEIGHT_COLUMNS)
    return pd.DataFrame(rows).reindex(columns=HARVEST_WEIGHT_COLUMNS)
