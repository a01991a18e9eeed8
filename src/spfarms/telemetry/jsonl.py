"""Utilities for appending and reading structured JSONL records."""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Mapping
from pathlib import Path
from typing import Any


def append_jsonl(path: str | Path, record: Mapping[str, Any]) -> None:
    """Append a JSON record as a single line to the given path."""
    path = Path(path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        json.dump(record, handle, ensure_ascii=False, separators=(",", ":"), default=str)
        handle.write("\n")


def tail_jsonl(path: str | Path, count: int) -> list[dict[str, Any]]:
    """Return the last ``count`` decodable object records of a JSONL file."""
    path = Path(path)
    if not path.exists():
        return []
    records: deque[dict[str, Any]] = deque(maxlen=max(count, 0))
    with path.open("r", encoding="utf-8") as handle:
        for raw in handle:
            line = raw.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                records.append(payload)
    return list(records)


__all__ = ["append_jsonl", "tail_jsonl"]
