"""Context manager recording one JSONL record per attempted stage transition."""

from __future__ import annotations

import time
import warnings
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from .jsonl import append_jsonl


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(slots=True)
class TransitionLogger(AbstractContextManager["TransitionLogger"]):
    """Record the outcome of a harvest stage transition.

    Parameters
    ----------
    log_path:
        JSONL path where transition records are appended.
    harvest_id:
        Harvest the transition targets.
    action:
        Transition name (``start_drying``, ``close``, ...).
    from_status:
        Status before the request was issued.
    role:
        Role of the acting user.

    The record is written when the context exits. Exceptions propagate; they are
    logged with ``status="error"`` and their message. A record that cannot be
    written emits a ``RuntimeWarning`` and is dropped. Call :meth:`succeeded`
    with the status reported by the server before leaving the block.
    """

    log_path: Path
    harvest_id: int
    action: str
    from_status: str | None = None
    role: str | None = None
    schema_version: str = "1.0"
    run_id: str = field(default_factory=lambda: uuid4().hex, init=False)
    to_status: str | None = field(default=None, init=False)
    recorded_strain_ids: list[int] = field(default_factory=list, init=False)
    _start_time: float = field(default=0.0, init=False)
    _start_timestamp: str | None = field(default=None, init=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.log_path = Path(self.log_path)

    def __enter__(self) -> "TransitionLogger":
        self._start_time = time.perf_counter()
        self._start_timestamp = _iso_now()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type:
            recorded = getattr(exc, "recorded_strain_ids", None)
            if recorded is not None:
                self.recorded_strain_ids = list(recorded)
            self._close(status="error", error=str(exc) or repr(exc))
            return False
        self._close(status="ok", error=None)
        return False

    def strain_recorded(self, strain_id: int) -> None:
        self.recorded_strain_ids.append(strain_id)

    def succeeded(self, to_status: str) -> None:
        self.to_status = to_status

    def elapsed(self) -> float:
        """Return the elapsed wall-clock seconds since the transition started."""
        return time.perf_counter() - self._start_time

    def _close(self, *, status: str, error: str | None) -> None:
        if self._closed:
            return
        duration = self.elapsed() if self._start_time else 0.0
        record = {
            "record_type": "transition",
            "schema_version": self.schema_version,
            "run_id": self.run_id,
            "harvest_id": self.harvest_id,
            "action": self.action,
            "role": self.role,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "status": status,
            "error": error,
            "recorded_strain_ids": list(self.recorded_strain_ids),
            "started_at": self._start_timestamp,
            "finished_at": _iso_now(),
            "duration_seconds": round(duration, 3),
        }
        self._closed = True
        try:
            append_jsonl(self.log_path, record)
        except OSError as exc:
            warnings.warn(
                f"Could not write transition record to {self.log_path}: {exc}",
                RuntimeWarning,
                stacklevel=3,
            )


__all__ = ["TransitionLogger"]
