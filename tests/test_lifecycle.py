from __future__ import annotations

from datetime import datetime, timezone

import pytest

from spfarms.core.errors import InvalidTransitionError
from spfarms.harvest.lifecycle import (
    TRANSITIONS,
    ensure_legal,
    get_transition,
    next_transition,
    record_fields,
    required_field,
    status_index,
    transition_for,
)
from spfarms.harvest.models import HARVEST_STATUS_ORDER, HarvestStatus
from tests.fakes import make_harvest

REVIEWED_AT = datetime(2026, 10, 10, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "status, reviewed, action, to_status",
    [
        ("active", False, "start_drying", "drying"),
        ("drying", False, "finish_drying", "dried"),
        ("dried", False, "start_trimming", "trimming"),
        ("trimming", False, "finish_trimming", "curing"),
        ("curing", False, "finish_curing", "packaged"),
        ("packaged", False, "admin_review", "packaged"),
        ("packaged", True, "close", "closed"),
    ],
)
def test_single_forward_action_per_status(status, reviewed, action, to_status):
    transition = transition_for(status, reviewed)
    assert transition is not None
    assert transition.action == action
    assert transition.to_status is HarvestStatus(to_status)


def test_closed_has_no_transition():
    assert transition_for("closed") is None
    assert transition_for("closed", True) is None


def test_table_covers_every_non_terminal_status():
    sources = {t.from_status for t in TRANSITIONS}
    assert sources == set(HARVEST_STATUS_ORDER) - {HarvestStatus.CLOSED}


def test_review_and_close_are_admin_only():
    assert get_transition("admin_review").admin_only
    assert get_transition("close").admin_only
    assert not get_transition("finish_curing").admin_only


def test_failure_messages():
    assert get_transition("close").failure_message == "Failed to close harvest"
    assert get_transition("admin_review").failure_message == "Failed to review harvest"
    assert get_transition("start_drying").failure_message == "Failed to start drying"


def test_unknown_action():
    with pytest.raises(InvalidTransitionError):
        get_transition("harvest_again")


def test_required_field_wet_only_without_aggregate():
    harvest = make_harvest("active")
    assert required_field(harvest) == "wet_weight_grams"
    assert record_fields(harvest, next_transition(harvest)) == ("wet_weight_grams", "waste_weight_grams")

    weighed = make_harvest("active", wet_weight_grams=800)
    assert required_field(weighed) is None
    assert record_fields(weighed, next_transition(weighed)) == ("waste_weight_grams",)


@pytest.mark.parametrize(
    "status, field",
    [("drying", "dry_weight_grams"), ("trimming", "flower_weight_grams"), ("dried", None), ("curing", None)],
)
def test_required_field_per_stage(status, field):
    assert required_field(make_harvest(status, wet_weight_grams=800)) == field


def test_ensure_legal_rejects_out_of_order_action():
    harvest = make_harvest("drying")
    assert ensure_legal(harvest, "finish_drying").action == "finish_drying"
    with pytest.raises(InvalidTransitionError, match="next action is finish_drying"):
        ensure_legal(harvest, "start_trimming")


def test_ensure_legal_close_requires_review():
    unreviewed = make_harvest("packaged")
    with pytest.raises(InvalidTransitionError, match="next action is admin_review"):
        ensure_legal(unreviewed, "close")
    reviewed = make_harvest("packaged", admin_reviewed_at=REVIEWED_AT)
    assert ensure_legal(reviewed, "close").to_status is HarvestStatus.CLOSED
    with pytest.raises(InvalidTransitionError):
        ensure_legal(reviewed, "admin_review")


def test_status_index_follows_lifecycle_order():
    assert [status_index(s) for s in HARVEST_STATUS_ORDER] == list(range(7))
    assert status_index("packaged") == 5
