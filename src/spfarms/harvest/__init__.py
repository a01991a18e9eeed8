"""Harvest lifecycle: records, state machine table, controller, and display helpers."""

from .controller import HarvestClient, StageTransitionController
from .lifecycle import (
    ADMIN_ROLE,
    TRANSITIONS,
    StageTransition,
    next_transition,
    required_field,
    transition_for,
)
from .models import (
    HARVEST_STATUS_LABELS,
    HARVEST_STATUS_ORDER,
    AuditEvent,
    Facility,
    Harvest,
    HarvestPlant,
    HarvestStatus,
    HarvestWeight,
    Plant,
    Room,
    StrainRef,
    UserRef,
)
from .progress import progress_segments, render_progress
from .weights import (
    WEIGHT_FIELDS,
    StrainWeightInputs,
    StrainWeightRecord,
    parse_grams,
    water_loss_pct,
)

__all__ = [
    "ADMIN_ROLE",
    "TRANSITIONS",
    "StageTransition",
    "next_transition",
    "required_field",
    "transition_for",
    "HARVEST_STATUS_LABELS",
    "HARVEST_STATUS_ORDER",
    "AuditEvent",
    "Facility",
    "Harvest",
    "HarvestPlant",
    "HarvestStatus",
    "HarvestWeight",
    "Plant",
    "Room",
    "StrainRef",
    "UserRef",
    "HarvestClient",
    "StageTransitionController",
    "progress_segments",
    "render_progress",
    "WEIGHT_FIELDS",
    "StrainWeightInputs",
    "StrainWeightRecord",
    "parse_grams",
    "water_loss_pct",
]
