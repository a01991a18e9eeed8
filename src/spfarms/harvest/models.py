"""Pydantic models describing the server-owned harvest records."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

Grams = float


class HarvestStatus(str, Enum):
    ACTIVE = "active"
    DRYING = "drying"
    DRIED = "dried"
    TRIMMING = "trimming"
    CURING = "curing"
    PACKAGED = "packaged"
    CLOSED = "closed"


HARVEST_STATUS_ORDER: tuple[HarvestStatus, ...] = (
    HarvestStatus.ACTIVE,
    HarvestStatus.DRYING,
    HarvestStatus.DRIED,
    HarvestStatus.TRIMMING,
    HarvestStatus.CURING,
    HarvestStatus.PACKAGED,
    HarvestStatus.CLOSED,
)

HARVEST_STATUS_LABELS: dict[HarvestStatus, str] = {
    HarvestStatus.ACTIVE: "Active",
    HarvestStatus.DRYING: "Drying",
    HarvestStatus.DRIED: "Dried",
    HarvestStatus.TRIMMING: "Trimming",
    HarvestStatus.CURING: "Curing",
    HarvestStatus.PACKAGED: "Packaged",
    HarvestStatus.CLOSED: "Closed",
}


def _non_negative(value: Grams | None) -> Grams | None:
    if value is not None and value < 0:
        raise ValueError("Weight fields must be non-negative grams")
    return value


class StrainRef(BaseModel):
    id: int
    name: str


class UserRef(BaseModel):
    id: int | None = None
    full_name: str | None = None
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "unknown"


class Room(BaseModel):
    """Facility room; ``room_type`` is ``dry``/``cure`` for drying rooms."""

    id: int
    name: str
    room_type: str | None = None


class Facility(BaseModel):
    id: int | None = None
    name: str | None = None
    rooms: list[Room] = Field(default_factory=list)

    def drying_rooms(self) -> list[Room]:
        """Rooms a harvest can be moved into when drying starts."""
        return [room for room in self.rooms if room.room_type in {"dry", "cure"}]


class Plant(BaseModel):
    id: int
    plant_uid: str | None = None
    strain: StrainRef
    room: Room | None = None
    growth_phase: str | None = None


class HarvestWeight(BaseModel):
    """Per-strain weight record held by a harvest.

    Attributes
    ----------
    strain_id / strain_name:
        Strain the measurements belong to.
    wet_weight_grams / dry_weight_grams / waste_weight_grams:
        Weights captured while moving into and out of drying.
    flower_weight_grams / shake_weight_grams:
        Trim outputs captured when trimming finishes.
    """

    strain_id: int
    strain_name: str | None = None
    wet_weight_grams: Grams | None = None
    dry_weight_grams: Grams | None = None
    waste_weight_grams: Grams | None = None
    flower_weight_grams: Grams | None = None
    shake_weight_grams: Grams | None = None

    @field_validator(
        "wet_weight_grams",
        "dry_weight_grams",
        "waste_weight_grams",
        "flower_weight_grams",
        "shake_weight_grams",
    )
    @classmethod
    def _weights_non_negative(cls, value: Grams | None) -> Grams | None:
        return _non_negative(value)


class HarvestPlant(BaseModel):
    plant_id: int
    plant_uid: str | None = None
    strain_id: int
    strain_name: str | None = None
    wet_weight_grams: Grams | None = None


class AuditEvent(BaseModel):
    id: int
    event_type: str
    trackable_type: str | None = None
    trackable_id: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    actor: UserRef | None = None


class Harvest(BaseModel):
    """One post-harvest processing run, as reported by the server.

    The client never patches a harvest locally: every successful request returns
    the full record and replaces the cached copy. Aggregate weights are the
    server's sums of ``harvest_weights``; stage timestamps are write-once.
    """

    id: int
    name: str
    harvest_uid: str | None = None
    status: HarvestStatus
    harvest_type: str | None = None
    harvest_date: date | None = None
    notes: str | None = None

    wet_weight_grams: Grams | None = None
    dry_weight_grams: Grams | None = None
    waste_weight_grams: Grams | None = None
    flower_weight_grams: Grams | None = None
    shake_weight_grams: Grams | None = None
    dry_weight_loss_pct: float | None = None

    drying_days: int | None = None
    trimming_days: int | None = None
    curing_days: int | None = None
    total_days: int | None = None

    strain: StrainRef | None = None
    strains_in_harvest: list[StrainRef] = Field(default_factory=list)
    harvest_weights: list[HarvestWeight] = Field(default_factory=list)
    harvest_plants: list[HarvestPlant] = Field(default_factory=list)
    plant_count: int | None = None
    drying_room: Room | None = None

    drying_started_at: datetime | None = None
    dried_at: datetime | None = None
    trimming_started_at: datetime | None = None
    trimming_finished_at: datetime | None = None
    curing_started_at: datetime | None = None
    curing_finished_at: datetime | None = None
    closed_at: datetime | None = None
    admin_reviewed_at: datetime | None = None
    admin_reviewed_by: UserRef | None = None

    created_by: UserRef | None = None
    metrc_id: str | None = None
    metrc_tag: str | None = None

    @field_validator(
        "wet_weight_grams",
        "dry_weight_grams",
        "waste_weight_grams",
        "flower_weight_grams",
        "shake_weight_grams",
    )
    @classmethod
    def _weights_non_negative(cls, value: Grams | None) -> Grams | None:
        return _non_negative(value)

    @field_validator("strains_in_harvest", "harvest_weights", "harvest_plants", mode="before")
    @classmethod
    def _null_collections(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _default_plant_count(self) -> Harvest:
        if self.plant_count is None:
            self.plant_count = len(self.harvest_plants)
        return self

    @property
    def is_reviewed(self) -> bool:
        return self.admin_reviewed_at is not None

    def strain_ids(self) -> list[int]:
        return [strain.id for strain in self.strains_in_harvest]

    def weight_for(self, strain_id: int) -> HarvestWeight | None:
        return next((hw for hw in self.harvest_weights if hw.strain_id == strain_id), None)

    def plant_count_for(self, strain_id: int) -> int:
        return sum(1 for hp in self.harvest_plants if hp.strain_id == strain_id)


__all__ = [
    "Grams",
    "HarvestStatus",
    "HARVEST_STATUS_ORDER",
    "HARVEST_STATUS_LABELS",
    "StrainRef",
    "UserRef",
    "Room",
    "Facility",
    "Plant",
    "HarvestWeight",
    "HarvestPlant",
    "AuditEvent",
    "Harvest",
]
