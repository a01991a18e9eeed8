"""Stage transition controller for a single harvest.

The controller owns the client-side copy of one :class:`Harvest` plus the
per-strain form inputs. For the harvest's current status it exposes the single
legal forward action, gates it on the per-strain measurements that action needs,
and submits it: weight records first (one request per strain, sequentially),
then the transition itself. Every successful response replaces the cached
harvest wholesale.

Partial failure is possible: if a weight record or the transition request fails
after some strains were recorded, those records stay persisted server-side. The
raised :class:`TransitionError` lists them in ``recorded_strain_ids``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from contextlib import AbstractContextManager, nullcontext
from pathlib import Path
from typing import Any, Protocol

from spfarms.core.errors import (
    ApiError,
    InvalidTransitionError,
    SPFarmsValueError,
    TransitionBlockedError,
    TransitionError,
)
from spfarms.harvest.lifecycle import (
    ADMIN_ROLE,
    StageTransition,
    ensure_legal,
    next_transition,
    record_fields,
    required_field,
)
from spfarms.harvest.models import AuditEvent, Facility, Harvest, HarvestStatus, Plant, Room
from spfarms.harvest.weights import (
    WEIGHT_FIELDS,
    StrainWeightInputs,
    StrainWeightRecord,
    parse_grams,
)
from spfarms.telemetry import TransitionLogger


class HarvestClient(Protocol):
    """Subset of :class:`spfarms.api.HarvestApiClient` the controller relies on."""

    def get_harvest(self, harvest_id: int) -> Harvest: ...

    def get_harvest_audit_events(self, harvest_id: int) -> list[AuditEvent]: ...

    def get_facility(self) -> Facility: ...

    def get_plants(self, growth_phase: str | None = None) -> list[Plant]: ...

    def record_strain_weight(self, harvest_id: int, record: StrainWeightRecord) -> Harvest: ...

    def add_plants(self, harvest_id: int, plant_ids: Iterable[int]) -> Harvest: ...

    def start_drying(self, harvest_id: int, drying_room_id: int | None = None) -> Harvest: ...

    def finish_drying(
        self,
        harvest_id: int,
        dry_weight_grams: float | None = None,
        waste_weight_grams: float | None = None,
    ) -> Harvest: ...

    def start_trimming(self, harvest_id: int) -> Harvest: ...

    def finish_trimming(self, harvest_id: int) -> Harvest: ...

    def finish_curing(self, harvest_id: int) -> Harvest: ...

    def admin_review(self, harvest_id: int) -> Harvest: ...

    def close(self, harvest_id: int) -> Harvest: ...


class StageTransitionController:
    """Drive one harvest through its lifecycle.

    Parameters
    ----------
    client:
        API client used for every request.
    harvest:
        Current server representation of the harvest.
    role:
        Role of the acting user; review and close require ``admin``.
    log_path:
        Optional JSONL path; each attempted transition appends one record.
    """

    def __init__(
        self,
        client: HarvestClient,
        harvest: Harvest,
        *,
        role: str = "default",
        log_path: str | Path | None = None,
    ) -> None:
        self.client = client
        self.harvest = harvest
        self.role = role
        self.log_path = Path(log_path) if log_path else None
        self.inputs = StrainWeightInputs()
        self.error = ""
        self.is_saving = False

    @classmethod
    def load(cls, client: HarvestClient, harvest_id: int, **kwargs: Any) -> StageTransitionController:
        """Fetch a harvest and wrap it; fetch failures propagate as :class:`ApiError`."""
        return cls(client, client.get_harvest(harvest_id), **kwargs)

    # State

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def pending(self) -> StageTransition | None:
        return next_transition(self.harvest)

    def required_field(self) -> str | None:
        return required_field(self.harvest)

    def missing_strains(self) -> list[int]:
        """Strains still lacking a positive value for the pending required field."""
        field = self.required_field()
        if field is None:
            return []
        return self.inputs.missing(self.harvest.strain_ids(), field)

    def blocked_reason(self) -> str | None:
        transition = self.pending
        if transition is None:
            return None
        if transition.admin_only and not self.is_admin:
            return transition.blocked_message
        if self.missing_strains():
            return transition.blocked_message
        return None

    def can_submit(self) -> bool:
        """Whether the pending action's submit control should be enabled."""
        if self.is_saving or self.pending is None:
            return False
        return self.blocked_reason() is None

    def set_weight(self, strain_id: int, field: str, text: str | float | None) -> None:
        self.inputs.set(strain_id, field, text)

    def set_weights(self, field: str, values: Mapping[int, str | float]) -> None:
        self.inputs.update(field, dict(values))

    def refresh(self) -> Harvest:
        self.harvest = self.client.get_harvest(self.harvest.id)
        return self.harvest

    # Transitions

    def start_drying(self, drying_room_id: int | None = None) -> Harvest:
        return self._submit(
            "start_drying",
            lambda: self.client.start_drying(self.harvest.id, drying_room_id=drying_room_id),
        )

    def finish_drying(self) -> Harvest:
        total_dry = self.inputs.total("dry_weight_grams")
        return self._submit(
            "finish_drying",
            lambda: self.client.finish_drying(
                self.harvest.id,
                dry_weight_grams=total_dry if total_dry > 0 else None,
            ),
        )

    def start_trimming(self) -> Harvest:
        return self._submit("start_trimming", lambda: self.client.start_trimming(self.harvest.id))

    def finish_trimming(self) -> Harvest:
        return self._submit("finish_trimming", lambda: self.client.finish_trimming(self.harvest.id))

    def finish_curing(self) -> Harvest:
        return self._submit("finish_curing", lambda: self.client.finish_curing(self.harvest.id))

    def admin_review(self) -> Harvest:
        return self._submit("admin_review", lambda: self.client.admin_review(self.harvest.id))

    def close(self) -> Harvest:
        return self._submit("close", lambda: self.client.close(self.harvest.id))

    def advance(self, **kwargs: Any) -> Harvest:
        """Submit whichever transition is pending; ``kwargs`` go to that method."""
        transition = self.pending
        if transition is None:
            raise InvalidTransitionError(f"Harvest {self.harvest.id} is closed; no further transitions")
        return getattr(self, transition.action)(**kwargs)

    # Edits outside the transition flow

    def record_strain_weight(self, strain_id: int, **weights: str | float | None) -> Harvest:
        """Persist one strain's weights and adopt the returned harvest."""
        if strain_id not in self.harvest.strain_ids():
            raise SPFarmsValueError(f"Strain {strain_id} is not part of harvest {self.harvest.id}")
        unknown = set(weights) - set(WEIGHT_FIELDS)
        if unknown:
            raise SPFarmsValueError(f"Unknown weight field(s): {', '.join(sorted(unknown))}")
        parsed = {field: parse_grams(text) for field, text in weights.items()}
        provided = {field: value for field, value in parsed.items() if value is not None}
        if not provided:
            raise SPFarmsValueError("Enter at least one weight to record")
        record = StrainWeightRecord(strain_id=strain_id, **provided)
        return self._write(
            "Failed to save",
            lambda: self.client.record_strain_weight(self.harvest.id, record),
        )

    def add_plants(self, plant_ids: Iterable[int]) -> Harvest:
        """Add plants to an ``active`` harvest; an empty selection is a no-op."""
        ids = list(dict.fromkeys(int(pid) for pid in plant_ids))
        if not ids:
            return self.harvest
        if self.harvest.status is not HarvestStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Plants can only be added while a harvest is active (status: {self.harvest.status.value})"
            )
        return self._write("Failed to add plants", lambda: self.client.add_plants(self.harvest.id, ids))

    # Auxiliary loads (failures are swallowed so the harvest view still renders)

    def audit_events(self) -> list[AuditEvent]:
        try:
            return self.client.get_harvest_audit_events(self.harvest.id)
        except ApiError:
            return []

    def drying_rooms(self) -> list[Room]:
        try:
            return self.client.get_facility().drying_rooms()
        except ApiError:
            return []

    def available_plants(self) -> list[Plant]:
        """Flowering plants not already in the harvest."""
        existing = {hp.plant_id for hp in self.harvest.harvest_plants}
        plants = self.client.get_plants(growth_phase="flowering")
        return [plant for plant in plants if plant.id not in existing]

    # Internals

    def _fail(self, message: str) -> str:
        self.error = message
        return message

    def _preflight(self, transition: StageTransition) -> None:
        if self.is_saving:
            raise TransitionBlockedError("A request is already in progress")
        if transition.admin_only and not self.is_admin:
            message = transition.blocked_message or "Admin role required"
            raise TransitionBlockedError(self._fail(message))
        missing = self.missing_strains()
        if missing:
            message = transition.blocked_message or "Required weights are missing"
            raise TransitionBlockedError(self._fail(message), missing)

    def _log(self, transition: StageTransition) -> AbstractContextManager[TransitionLogger | None]:
        if self.log_path is None:
            return nullcontext()
        return TransitionLogger(
            self.log_path,
            harvest_id=self.harvest.id,
            action=transition.action,
            from_status=self.harvest.status.value,
            role=self.role,
        )

    def _submit(self, action: str, call: Callable[[], Harvest]) -> Harvest:
        try:
            transition = ensure_legal(self.harvest, action)
        except InvalidTransitionError as exc:
            self._fail(str(exc))
            raise
        self._preflight(transition)

        fields = record_fields(self.harvest, transition)
        try:
            records = self.inputs.records(self.harvest.strain_ids(), fields)
        except SPFarmsValueError as exc:
            self._fail(str(exc))
            raise

        recorded: list[int] = []
        self.is_saving = True
        self.error = ""
        try:
            with self._log(transition) as log:
                try:
                    for record in records:
                        self.client.record_strain_weight(self.harvest.id, record)
                        recorded.append(record.strain_id)
                        if log is not None:
                            log.strain_recorded(record.strain_id)
                    updated = call()
                except ApiError as exc:
                    self._fail(exc.message or transition.failure_message)
                    raise TransitionError(
                        self.error,
                        action=action,
                        status_code=exc.status_code,
                        recorded_strain_ids=recorded,
                    ) from exc
                self.harvest = updated
                self.inputs.clear(transition.record_fields)
                if log is not None:
                    log.succeeded(updated.status.value)
        finally:
            self.is_saving = False
        return updated

    def _write(self, failure: str, call: Callable[[], Harvest]) -> Harvest:
        self.is_saving = True
        self.error = ""
        try:
            updated = call()
        except ApiError as exc:
            self._fail(exc.message or failure)
            raise
        finally:
            self.is_saving = False
        self.harvest = updated
        return updated


__all__ = ["HarvestClient", "StageTransitionController"]
