"""REST client for the SPFarms facility/harvest endpoints."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from spfarms.config import DEFAULT_API_URL, ClientConfig
from spfarms.core.errors import ApiError, SessionExpiredError
from spfarms.harvest.models import AuditEvent, Facility, Harvest, Plant
from spfarms.harvest.weights import StrainWeightRecord

API_PREFIX = "/api/v1"
HARVESTS_PATH = "/facility/harvests"
DEFAULT_TIMEOUT = 20.0
FALLBACK_MESSAGE = "An error occurred"

_M = TypeVar("_M", bound=BaseModel)


def _safe_json(resp: requests.Response) -> Any:
    """Return the decoded body, or ``None`` for empty/non-JSON bodies."""
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


def _error_message(data: Any, status_code: int) -> str:
    if not isinstance(data, dict):
        return FALLBACK_MESSAGE
    for key in ("message", "error", "detail"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    errors = data.get("errors")
    if isinstance(errors, list):
        details = [
            str(err.get("detail") or err.get("title"))
            for err in errors
            if isinstance(err, dict) and (err.get("detail") or err.get("title"))
        ]
        if details:
            return "; ".join(details)
    return f"HTTP error! status: {status_code}"


def _unwrap_record(record: Any) -> dict[str, Any]:
    """Flatten a JSON:API resource object (``id`` + ``attributes``) into a dict."""
    if not isinstance(record, dict):
        raise ApiError("Unexpected response shape from API")
    if "attributes" in record:
        flat = dict(record.get("attributes") or {})
        if record.get("id") is not None:
            flat["id"] = int(record["id"])
        return flat
    return dict(record)


def unwrap(document: Any) -> dict[str, Any]:
    """Return the single resource carried by a JSON:API document or bare object."""
    if isinstance(document, dict) and "data" in document:
        return _unwrap_record(document["data"])
    return _unwrap_record(document)


def unwrap_many(document: Any) -> list[dict[str, Any]]:
    """Return the resources carried by a JSON:API collection or bare list."""
    if isinstance(document, dict) and "data" in document:
        document = document["data"]
    if not isinstance(document, list):
        raise ApiError("Expected a list of records from API")
    return [_unwrap_record(item) for item in document]


def _parse(model: type[_M], data: Mapping[str, Any]) -> _M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ApiError(f"Unexpected {model.__name__} payload from API: {exc}") from exc


def _compact(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class HarvestApiClient:
    """Thin typed wrapper over the harvest endpoints.

    Every mutating call returns the full, freshly serialised :class:`Harvest`;
    callers replace their cached copy with it rather than patching fields.
    Failures raise :class:`ApiError` (``SessionExpiredError`` on HTTP 401). There
    is no automatic retry.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: ClientConfig, session: requests.Session | None = None) -> HarvestApiClient:
        return cls(config.api_url, token=config.token, timeout=config.timeout, session=session)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        url = f"{self.base_url}{API_PREFIX}{path}"
        try:
            resp = self.session.request(
                method,
                url,
                json=dict(json) if json is not None else None,
                params=dict(params) if params else None,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ApiError(f"Network error on {url}: {exc}") from exc

        data = _safe_json(resp)
        if resp.status_code >= 400:
            message = _error_message(data, resp.status_code)
            if resp.status_code == 401:
                raise SessionExpiredError(message, resp.status_code)
            raise ApiError(message, resp.status_code)
        return data

    def _harvest_path(self, harvest_id: int, action: str | None = None) -> str:
        path = f"{HARVESTS_PATH}/{int(harvest_id)}"
        return f"{path}/{action}" if action else path

    def _harvest(self, method: str, path: str, body: Mapping[str, Any] | None = None) -> Harvest:
        return _parse(Harvest, unwrap(self.request(method, path, json=body)))

    # Reads

    def get_harvests(self) -> list[Harvest]:
        return [_parse(Harvest, item) for item in unwrap_many(self.request("GET", HARVESTS_PATH))]

    def get_harvest(self, harvest_id: int) -> Harvest:
        return self._harvest("GET", self._harvest_path(harvest_id))

    def get_harvest_audit_events(self, harvest_id: int) -> list[AuditEvent]:
        document = self.request("GET", self._harvest_path(harvest_id, "audit_events"))
        return [_parse(AuditEvent, item) for item in unwrap_many(document)]

    def get_facility(self) -> Facility:
        return _parse(Facility, unwrap(self.request("GET", "/facility")))

    def get_plants(self, growth_phase: str | None = None) -> list[Plant]:
        params = _compact({"growth_phase": growth_phase})
        document = self.request("GET", "/facility/plants", params=params)
        return [_parse(Plant, item) for item in unwrap_many(document)]

    # Creation and membership

    def create_harvest(
        self,
        plant_ids: Iterable[int],
        *,
        name: str | None = None,
        harvest_type: str | None = None,
        harvest_date: date | str | None = None,
        wet_weight_grams: float | None = None,
        drying_room_id: int | None = None,
        notes: str | None = None,
    ) -> Harvest:
        if isinstance(harvest_date, date):
            harvest_date = harvest_date.isoformat()
        body = {
            "harvest": _compact(
                {
                    "name": name,
                    "harvest_type": harvest_type,
                    "harvest_date": harvest_date,
                    "wet_weight_grams": wet_weight_grams,
                    "drying_room_id": drying_room_id,
                    "notes": notes,
                }
            ),
            "plant_ids": [int(pid) for pid in plant_ids],
        }
        return self._harvest("POST", HARVESTS_PATH, body)

    def add_plants(self, harvest_id: int, plant_ids: Iterable[int]) -> Harvest:
        body = {"plant_ids": [int(pid) for pid in plant_ids]}
        return self._harvest("POST", self._harvest_path(harvest_id, "add_plants"), body)

    def record_strain_weight(self, harvest_id: int, record: StrainWeightRecord) -> Harvest:
        path = self._harvest_path(harvest_id, "record_strain_weight")
        return self._harvest("POST", path, record.payload())

    # Stage transitions

    def start_drying(self, harvest_id: int, drying_room_id: int | None = None) -> Harvest:
        body = _compact({"drying_room_id": drying_room_id})
        return self._harvest("POST", self._harvest_path(harvest_id, "start_drying"), body)

    def finish_drying(
        self,
        harvest_id: int,
        dry_weight_grams: float | None = None,
        waste_weight_grams: float | None = None,
    ) -> Harvest:
        body = _compact({"dry_weight_grams": dry_weight_grams, "waste_weight_grams": waste_weight_grams})
        return self._harvest("POST", self._harvest_path(harvest_id, "finish_drying"), body)

    def start_trimming(self, harvest_id: int) -> Harvest:
        return self._harvest("POST", self._harvest_path(harvest_id, "start_trimming"))

    def finish_trimming(self, harvest_id: int) -> Harvest:
        return self._harvest("POST", self._harvest_path(harvest_id, "finish_trimming"))

    def finish_curing(self, harvest_id: int) -> Harvest:
        return self._harvest("POST", self._harvest_path(harvest_id, "finish_curing"))

    def admin_review(self, harvest_id: int) -> Harvest:
        return self._harvest("POST", self._harvest_path(harvest_id, "admin_review"))

    def close(self, harvest_id: int) -> Harvest:
        return self._harvest("POST", self._harvest_path(harvest_id, "close"))


__all__ = ["API_PREFIX", "HarvestApiClient", "unwrap", "unwrap_many"]
