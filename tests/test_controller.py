from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from spfarms.core.errors import (
    ApiError,
    InvalidTransitionError,
    SPFarmsValueError,
    TransitionBlockedError,
    TransitionError,
)
from spfarms.harvest.controller import StageTransitionController
from spfarms.harvest.models import Facility, HarvestStatus, Plant, Room
from spfarms.harvest.progress import drying_summary
from tests.fakes import FakeClient, dried_weights, make_harvest

REVIEWED_AT = datetime(2026, 10, 10, tzinfo=timezone.utc)


def _controller(status="active", *, role="default", client_kwargs=None, **overrides):
    harvest = make_harvest(status, **overrides)
    client = FakeClient(harvest, **(client_kwargs or {}))
    return StageTransitionController(client, harvest, role=role), client


def test_load_fetches_harvest():
    harvest = make_harvest("drying")
    client = FakeClient(harvest)
    controller = StageTransitionController.load(client, 7, role="admin")
    assert controller.harvest == harvest
    assert controller.is_admin
    assert client.call_names() == ["get_harvest"]


def test_start_drying_blocked_until_every_strain_has_wet_weight():
    controller, client = _controller("active")
    assert not controller.can_submit()
    assert controller.missing_strains() == [1, 2]

    controller.set_weight(1, "wet_weight_grams", "500")
    assert not controller.can_submit()
    assert controller.blocked_reason() == "Wet weight is required for each strain before moving to drying"

    controller.set_weight(2, "wet_weight_grams", "0")
    assert not controller.can_submit()

    controller.set_weight(2, "wet_weight_grams", "300")
    assert controller.can_submit()
    assert controller.blocked_reason() is None


def test_start_drying_skips_wet_gate_when_aggregate_recorded():
    controller, client = _controller("active", wet_weight_grams=800)
    assert controller.required_field() is None
    assert controller.can_submit()

    updated = controller.start_drying(drying_room_id=4)
    assert updated.status is HarvestStatus.DRYING
    assert client.calls[-1] == ("start_drying", (7,), {"drying_room_id": 4})


def test_blocked_transition_sends_no_request():
    controller, client = _controller("active")
    controller.set_weight(1, "wet_weight_grams", "500")
    with pytest.raises(TransitionBlockedError) as excinfo:
        controller.start_drying()
    assert excinfo.value.missing_strain_ids == (2,)
    assert client.calls == []
    assert controller.error == "Wet weight is required for each strain before moving to drying"
    assert controller.harvest.status is HarvestStatus.ACTIVE


def test_submission_gated_while_request_in_progress():
    controller, client = _controller("dried")
    assert controller.can_submit()
    controller.is_saving = True
    assert not controller.can_submit()
    with pytest.raises(TransitionBlockedError, match="A request is already in progress"):
        controller.start_trimming()
    assert client.calls == []
    assert controller.harvest.status is HarvestStatus.DRIED


def test_infinite_weight_counts_as_missing():
    controller, client = _controller("drying")
    controller.set_weights("dry_weight_grams", {1: "inf", 2: "1e999"})
    assert controller.missing_strains() == [1, 2]
    assert not controller.can_submit()
    with pytest.raises(TransitionBlockedError):
        controller.finish_drying()
    assert client.calls == []


def test_start_drying_records_each_strain_then_transitions():
    controller, client = _controller("active")
    controller.set_weights("wet_weight_grams", {1: "500", 2: "300"})
    controller.set_weight(2, "waste_weight_grams", "15")

    updated = controller.start_drying()

    assert client.call_names() == ["record_strain_weight", "record_strain_weight", "start_drying"]
    payloads = [args[1].payload() for name, args, _ in client.calls if name == "record_strain_weight"]
    assert payloads == [
        {"strain_id": 1, "wet_weight_grams": 500.0},
        {"strain_id": 2, "wet_weight_grams": 300.0, "waste_weight_grams": 15.0},
    ]
    assert updated.status is HarvestStatus.DRYING
    assert controller.harvest is updated
    assert controller.harvest.wet_weight_grams == 800
    assert controller.inputs.values("wet_weight_grams") == []
    assert controller.error == ""
    assert not controller.is_saving


def test_finish_drying_blocked_while_any_strain_is_empty():
    controller, client = _controller("drying", wet_weight_grams=800, harvest_weights=dried_weights())
    for value in ("100", "0", "250", "abc"):
        controller.set_weight(1, "dry_weight_grams", value)
        controller.set_weight(2, "dry_weight_grams", "")
        assert not controller.can_submit()
        assert controller.blocked_reason() == "Dry weight is required for each strain"
    with pytest.raises(TransitionBlockedError):
        controller.finish_drying()
    assert client.calls == []


def test_drying_summary_example():
    controller, _ = _controller("drying", wet_weight_grams=800, harvest_weights=dried_weights())
    controller.set_weights("dry_weight_grams", {1: "100", 2: "80"})
    assert drying_summary(controller.inputs, controller.harvest) == [
        "Total dry: 180g",
        "Water loss: 77.5% from 800g wet",
    ]


def test_finish_drying_sends_advisory_dry_total():
    controller, client = _controller("drying", wet_weight_grams=800, harvest_weights=dried_weights())
    controller.set_weights("dry_weight_grams", {1: "100", 2: "80"})

    updated = controller.finish_drying()

    assert updated.status is HarvestStatus.DRIED
    assert updated.dry_weight_grams == 180
    assert client.calls[-1] == (
        "finish_drying",
        (7,),
        {"dry_weight_grams": 180.0, "waste_weight_grams": None},
    )


def test_finish_trimming_requires_flower_only():
    controller, client = _controller("trimming", wet_weight_grams=800)
    controller.set_weights("shake_weight_grams", {1: "20", 2: "10"})
    assert controller.blocked_reason() == "Flower weight is required for each strain"

    controller.set_weights("flower_weight_grams", {1: "90", 2: "60"})
    assert controller.can_submit()
    updated = controller.finish_trimming()

    assert updated.status is HarvestStatus.CURING
    assert updated.flower_weight_grams == 150
    assert updated.shake_weight_grams == 30
    assert client.call_names()[-1] == "finish_trimming"


@pytest.mark.parametrize(
    "status, method, expected",
    [("dried", "start_trimming", "trimming"), ("curing", "finish_curing", "packaged")],
)
def test_confirmation_only_transitions(status, method, expected):
    controller, client = _controller(status, wet_weight_grams=800)
    assert controller.can_submit()
    updated = getattr(controller, method)()
    assert updated.status is HarvestStatus(expected)
    assert client.call_names() == [method]


def test_review_requires_admin():
    controller, client = _controller("packaged")
    assert controller.blocked_reason() == "Only an admin can review this harvest"
    with pytest.raises(TransitionBlockedError):
        controller.admin_review()
    assert client.calls == []


def test_admin_review_then_close():
    controller, client = _controller("packaged", role="admin")
    reviewed = controller.admin_review()
    assert reviewed.status is HarvestStatus.PACKAGED
    assert reviewed.is_reviewed
    assert controller.pending.action == "close"

    closed = controller.close()
    assert closed.status is HarvestStatus.CLOSED
    assert controller.pending is None
    assert not controller.can_submit()


def test_close_reviewed_harvest_as_admin_replaces_state():
    controller, client = _controller("packaged", role="admin", admin_reviewed_at=REVIEWED_AT)
    before = controller.harvest

    updated = controller.close()

    assert updated.status is HarvestStatus.CLOSED
    assert controller.harvest is client.harvest
    assert controller.harvest is not before
    assert client.call_names() == ["close"]


def test_close_blocked_without_review():
    controller, client = _controller("packaged", role="admin")
    with pytest.raises(InvalidTransitionError):
        controller.close()
    assert client.calls == []
    assert "next action is admin_review" in controller.error


def test_close_blocked_for_non_admin_even_when_reviewed():
    controller, client = _controller("packaged", admin_reviewed_at=REVIEWED_AT)
    with pytest.raises(TransitionBlockedError, match="Only an admin can close"):
        controller.close()
    assert client.calls == []


def test_out_of_order_action_is_rejected():
    controller, client = _controller("active", wet_weight_grams=800)
    with pytest.raises(InvalidTransitionError):
        controller.finish_curing()
    assert client.calls == []


def test_failed_transition_keeps_harvest_and_reports_error():
    failures = {"start_drying": ApiError("Drying room is full", 422)}
    controller, client = _controller("active", client_kwargs={"failures": failures})
    original = controller.harvest
    controller.set_weights("wet_weight_grams", {1: "500", 2: "300"})

    with pytest.raises(TransitionError) as excinfo:
        controller.start_drying()

    assert excinfo.value.status_code == 422
    assert excinfo.value.recorded_strain_ids == (1, 2)
    assert controller.error == "Drying room is full"
    assert controller.harvest is original
    assert controller.inputs.get(1, "wet_weight_grams") == "500"
    assert not controller.is_saving


def test_partial_failure_reports_recorded_strains():
    controller, client = _controller("drying", client_kwargs={"fail_strains": {2}})
    controller.set_weights("dry_weight_grams", {1: "100", 2: "80"})

    with pytest.raises(TransitionError) as excinfo:
        controller.finish_drying()

    assert excinfo.value.recorded_strain_ids == (1,)
    assert excinfo.value.action == "finish_drying"
    assert "finish_drying" not in client.call_names()
    assert controller.harvest.status is HarvestStatus.DRYING


def test_failure_without_message_uses_default():
    failures = {"finish_curing": ApiError("")}
    controller, _ = _controller("curing", client_kwargs={"failures": failures})
    with pytest.raises(TransitionError):
        controller.finish_curing()
    assert controller.error == "Failed to finish curing"


def test_invalid_weight_text_blocks_submission():
    controller, client = _controller("active")
    controller.set_weights("wet_weight_grams", {1: "500", 2: "300"})
    controller.set_weight(2, "waste_weight_grams", "lots")
    with pytest.raises(SPFarmsValueError):
        controller.start_drying()
    assert client.calls == []
    assert "numeric" in controller.error


def test_advance_runs_pending_transition():
    controller, client = _controller("dried")
    assert controller.advance().status is HarvestStatus.TRIMMING
    assert client.call_names() == ["start_trimming"]
    assert controller.pending.action == "finish_trimming"


def test_advance_on_closed_harvest():
    controller, _ = _controller("closed")
    with pytest.raises(InvalidTransitionError):
        controller.advance()


def test_transition_log_records_outcome(tmp_path):
    log_path = tmp_path / "transitions.jsonl"
    harvest = make_harvest("drying")
    client = FakeClient(harvest, fail_strains={2})
    controller = StageTransitionController(client, harvest, role="default", log_path=log_path)
    controller.set_weights("dry_weight_grams", {1: "100", 2: "80"})
    with pytest.raises(TransitionError):
        controller.finish_drying()

    client.fail_strains.clear()
    controller.finish_drying()

    records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    assert [r["status"] for r in records] == ["error", "ok"]
    assert records[0]["recorded_strain_ids"] == [1]
    assert records[0]["action"] == "finish_drying"
    assert records[1]["from_status"] == "drying"
    assert records[1]["to_status"] == "dried"
    assert records[1]["recorded_strain_ids"] == [1, 2]


def test_unwritable_transition_log_keeps_server_state(tmp_path):
    harvest = make_harvest("dried")
    client = FakeClient(harvest)
    controller = StageTransitionController(client, harvest, role="default", log_path=tmp_path)
    with pytest.warns(RuntimeWarning, match="Could not write transition record"):
        updated = controller.start_trimming()
    assert updated.status is HarvestStatus.TRIMMING
    assert controller.harvest.status is HarvestStatus.TRIMMING
    assert not controller.is_saving
    assert client.call_names() == ["start_trimming"]


def test_record_strain_weight_replaces_harvest():
    controller, client = _controller("trimming")
    updated = controller.record_strain_weight(2, flower_weight_grams="60", shake_weight_grams="")
    assert updated.weight_for(2).flower_weight_grams == 60
    assert updated.weight_for(2).shake_weight_grams is None
    assert controller.harvest is updated


@pytest.mark.parametrize(
    "strain_id, weights",
    [
        (9, {"dry_weight_grams": "5"}),
        (1, {"bud_weight_grams": "5"}),
        (1, {"dry_weight_grams": ""}),
        (1, {}),
    ],
)
def test_record_strain_weight_validation(strain_id, weights):
    controller, client = _controller("drying")
    with pytest.raises(SPFarmsValueError):
        controller.record_strain_weight(strain_id, **weights)
    assert client.calls == []


def test_record_strain_weight_failure_sets_error():
    failures = {"record_strain_weight": ApiError("", 500)}
    controller, _ = _controller("drying", client_kwargs={"failures": failures})
    with pytest.raises(ApiError):
        controller.record_strain_weight(1, dry_weight_grams="10")
    assert controller.error == "Failed to save"


def test_add_plants_dedupes_and_requires_active():
    controller, client = _controller("active")
    assert controller.add_plants([]) is controller.harvest
    assert client.calls == []

    controller.add_plants([301, 301, 302])
    assert client.calls[-1] == ("add_plants", (7, [301, 302]), {})
    assert controller.harvest.plant_count == 5

    drying, _ = _controller("drying")
    with pytest.raises(InvalidTransitionError):
        drying.add_plants([301])


def test_auxiliary_loads_swallow_api_errors():
    failures = {
        "get_harvest_audit_events": ApiError("boom", 500),
        "get_facility": ApiError("boom", 500),
    }
    controller, _ = _controller("active", client_kwargs={"failures": failures})
    assert controller.audit_events() == []
    assert controller.drying_rooms() == []


def test_drying_rooms_filters_room_type():
    facility = Facility(
        id=1,
        rooms=[
            Room(id=1, name="Flower 1", room_type="flower"),
            Room(id=2, name="Dry Room", room_type="dry"),
            Room(id=3, name="Cure Room", room_type="cure"),
        ],
    )
    controller, _ = _controller("active", client_kwargs={"facility": facility})
    assert [room.id for room in controller.drying_rooms()] == [2, 3]


def test_available_plants_excludes_harvested():
    plants = [
        Plant(id=101, strain={"id": 1, "name": "Blue Dream"}),
        Plant(id=301, strain={"id": 1, "name": "Blue Dream"}),
    ]
    controller, client = _controller("active", client_kwargs={"plants": plants})
    assert [plant.id for plant in controller.available_plants()] == [301]
    assert client.calls[-1] == ("get_plants", (), {"growth_phase": "flowering"})


def test_refresh_replaces_cached_harvest():
    controller, client = _controller("drying")
    client.harvest = make_harvest("dried", dry_weight_grams=180)
    assert controller.refresh().status is HarvestStatus.DRIED
    assert controller.harvest.dry_weight_grams == 180
