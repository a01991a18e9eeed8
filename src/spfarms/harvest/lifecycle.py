"""Harvest lifecycle state machine table.

Each harvest status has exactly one legal forward action. The table below names
that action, the per-strain measurement that must be complete before it may be
submitted, the weight fields recorded alongside it, and the status the server is
expected to report afterwards. The server remains the authority: the client uses
the table to decide *when* to call an endpoint, never to compute a status.
"""

from __future__ import annotations

from dataclasses import dataclass

from spfarms.core.errors import InvalidTransitionError
from spfarms.harvest.models import HARVEST_STATUS_ORDER, Harvest, HarvestStatus

ADMIN_ROLE = "admin"

_FAILURE_VERBS = {
    "admin_review": "review harvest",
    "close": "close harvest",
}


@dataclass(frozen=True, slots=True)
class StageTransition:
    """One row of the lifecycle table.

    Attributes
    ----------
    action:
        Endpoint suffix under ``/facility/harvests/:id/`` (also the controller method name).
    from_status / to_status:
        Status the harvest must be in, and the status the server reports on success.
    label:
        Button text shown to the user.
    required_field:
        Per-strain weight field that must be strictly positive for every strain.
    record_fields:
        Weight fields submitted through ``record_strain_weight`` before the transition.
    skip_required_if_aggregate:
        When true, ``required_field`` is only enforced while the harvest-level
        aggregate of the same name is unset.
    admin_only:
        Only an ``admin`` actor may submit the transition.
    requires_review:
        For ``packaged`` rows: whether the row applies to reviewed (``True``) or
        unreviewed (``False``) harvests. ``None`` elsewhere.
    blocked_message:
        Inline message shown while the required input is incomplete.
    """

    action: str
    from_status: HarvestStatus
    to_status: HarvestStatus
    label: str
    required_field: str | None = None
    record_fields: tuple[str, ...] = ()
    skip_required_if_aggregate: bool = False
    admin_only: bool = False
    requires_review: bool | None = None
    blocked_message: str | None = None

    @property
    def failure_message(self) -> str:
        return f"Failed to {_FAILURE_VERBS.get(self.action, self.action.replace('_', ' '))}"


TRANSITIONS: tuple[StageTransition, ...] = (
    StageTransition(
        action="start_drying",
        from_status=HarvestStatus.ACTIVE,
        to_status=HarvestStatus.DRYING,
        label="Start Drying",
        required_field="wet_weight_grams",
        record_fields=("wet_weight_grams", "waste_weight_grams"),
        skip_required_if_aggregate=True,
        blocked_message="Wet weight is required for each strain before moving to drying",
    ),
    StageTransition(
        action="finish_drying",
        from_status=HarvestStatus.DRYING,
        to_status=HarvestStatus.DRIED,
        label="Mark as Dried",
        required_field="dry_weight_grams",
        record_fields=("dry_weight_grams",),
        blocked_message="Dry weight is required for each strain",
    ),
    StageTransition(
        action="start_trimming",
        from_status=HarvestStatus.DRIED,
        to_status=HarvestStatus.TRIMMING,
        label="Start Trimming",
    ),
    StageTransition(
        action="finish_trimming",
        from_status=HarvestStatus.TRIMMING,
        to_status=HarvestStatus.CURING,
        label="Finish Trimming",
        required_field="flower_weight_grams",
        record_fields=("flower_weight_grams", "shake_weight_grams", "waste_weight_grams"),
        blocked_message="Flower weight is required for each strain",
    ),
    StageTransition(
        action="finish_curing",
        from_status=HarvestStatus.CURING,
        to_status=HarvestStatus.PACKAGED,
        label="Finish Curing",
    ),
    StageTransition(
        action="admin_review",
        from_status=HarvestStatus.PACKAGED,
        to_status=HarvestStatus.PACKAGED,
        label="Review Harvest",
        admin_only=True,
        requires_review=False,
        blocked_message="Only an admin can review this harvest",
    ),
    StageTransition(
        action="close",
        from_status=HarvestStatus.PACKAGED,
        to_status=HarvestStatus.CLOSED,
        label="Close Harvest",
        admin_only=True,
        requires_review=True,
        blocked_message="Only an admin can close this harvest",
    ),
)

TRANSITIONS_BY_ACTION: dict[str, StageTransition] = {t.action: t for t in TRANSITIONS}


def transition_for(status: HarvestStatus | str, reviewed: bool = False) -> StageTransition | None:
    """Return the single legal transition out of ``status`` (``None`` once closed)."""
    status = HarvestStatus(status)
    for transition in TRANSITIONS:
        if transition.from_status is not status:
            continue
        if transition.requires_review is not None and transition.requires_review != reviewed:
            continue
        return transition
    return None


def next_transition(harvest: Harvest) -> StageTransition | None:
    return transition_for(harvest.status, harvest.is_reviewed)


def get_transition(action: str) -> StageTransition:
    try:
        return TRANSITIONS_BY_ACTION[action]
    except KeyError as exc:
        available = ", ".join(TRANSITIONS_BY_ACTION)
        raise InvalidTransitionError(f"Unknown action '{action}'. Available: {available}") from exc


def required_field(harvest: Harvest, transition: StageTransition | None = None) -> str | None:
    """Per-strain field gating ``transition`` (defaults to the pending one)."""
    transition = transition or next_transition(harvest)
    if transition is None or transition.required_field is None:
        return None
    if transition.skip_required_if_aggregate and getattr(harvest, transition.required_field):
        return None
    return transition.required_field


def record_fields(harvest: Harvest, transition: StageTransition) -> tuple[str, ...]:
    """Weight fields submitted per strain ahead of ``transition``.

    The wet weight is only re-sent while the harvest has no aggregate wet weight.
    """
    if transition.skip_required_if_aggregate and transition.required_field:
        if getattr(harvest, transition.required_field):
            return tuple(f for f in transition.record_fields if f != transition.required_field)
    return transition.record_fields


def ensure_legal(harvest: Harvest, action: str) -> StageTransition:
    """Return the table row for ``action`` if it is the pending step for ``harvest``."""
    transition = get_transition(action)
    pending = next_transition(harvest)
    if pending is None or pending.action != action:
        expected = pending.action if pending else "none (harvest is closed)"
        raise InvalidTransitionError(
            f"Cannot {action} a harvest in status '{harvest.status.value}'"
            f"{' (reviewed)' if harvest.is_reviewed else ''}; next action is {expected}"
        )
    return transition


def status_index(status: HarvestStatus | str) -> int:
    return HARVEST_STATUS_ORDER.index(HarvestStatus(status))


__all__ = [
    "ADMIN_ROLE",
    "StageTransition",
    "TRANSITIONS",
    "TRANSITIONS_BY_ACTION",
    "transition_for",
    "next_transition",
    "get_transition",
    "required_field",
    "record_fields",
    "ensure_legal",
    "status_index",
]
