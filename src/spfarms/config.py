"""Client configuration (YAML file + environment overrides)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from spfarms.core.errors import SPFarmsValueError

DEFAULT_API_URL = "http://localhost:3001"
DEFAULT_CONFIG_PATH = Path("~/.config/spfarms/config.yaml")

ENV_CONFIG = "SPFARMS_CONFIG"
_ENV_OVERRIDES: dict[str, str] = {
    "SPFARMS_API_URL": "api_url",
    "SPFARMS_API_TOKEN": "token",
    "SPFARMS_ROLE": "role",
    "SPFARMS_TIMEOUT": "timeout",
    "SPFARMS_TRANSITION_LOG": "transition_log",
}


class ClientConfig(BaseModel):
    """Settings shared by the API client, controller, and CLI.

    Attributes
    ----------
    api_url:
        Backend root (without the ``/api/v1`` prefix).
    token:
        Bearer token sent with every request when set.
    role:
        Role of the acting user; ``admin`` unlocks review and close.
    timeout:
        Per-request timeout in seconds.
    transition_log:
        Optional JSONL path receiving one record per attempted stage transition.
    """

    api_url: str = DEFAULT_API_URL
    token: str | None = None
    role: str = "default"
    timeout: float = 20.0
    transition_log: Path | None = None

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("api_url must not be empty")
        return value

    @field_validator("timeout")
    @classmethod
    def _timeout_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    @field_validator("role")
    @classmethod
    def _normalise_role(cls, value: str) -> str:
        return value.strip().lower() or "default"


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SPFarmsValueError(f"Config file {path} must contain a mapping at the top level")
    return data


def _env_overrides(environ: dict[str, str]) -> dict[str, str]:
    return {key: environ[name] for name, key in _ENV_OVERRIDES.items() if environ.get(name)}


def load_config(
    path: str | Path | None = None,
    *,
    environ: dict[str, str] | None = None,
    **overrides: Any,
) -> ClientConfig:
    """Load configuration from YAML, then apply environment and explicit overrides.

    Parameters
    ----------
    path:
        Config file. Defaults to ``$SPFARMS_CONFIG`` or ``~/.config/spfarms/config.yaml``.
        A missing default file yields defaults; a missing explicit file is an error.
    environ:
        Environment mapping (defaults to ``os.environ``).
    overrides:
        Values that win over both file and environment; ``None`` values are ignored.
    """
    env = dict(os.environ if environ is None else environ)
    explicit = path is not None or bool(env.get(ENV_CONFIG))
    config_path = Path(path or env.get(ENV_CONFIG) or DEFAULT_CONFIG_PATH).expanduser()

    data: dict[str, Any] = {}
    if config_path.exists():
        data.update(_read_yaml(config_path))
    elif explicit:
        raise SPFarmsValueError(f"Config file not found: {config_path}")

    data.update(_env_overrides(env))
    data.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return ClientConfig(**data)
    except ValidationError as exc:
        raise SPFarmsValueError(f"Invalid configuration: {exc}") from exc


__all__ = ["ClientConfig", "DEFAULT_API_URL", "DEFAULT_CONFIG_PATH", "load_config"]
