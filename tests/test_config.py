from __future__ import annotations

from pathlib import Path

import pytest

from spfarms.config import DEFAULT_API_URL, ClientConfig, load_config
from spfarms.core.errors import SPFarmsValueError


def test_defaults_when_no_file(tmp_path):
    config = load_config(environ={})
    assert config.api_url == DEFAULT_API_URL
    assert config.role == "default"
    assert config.token is None
    assert config.transition_log is None


def test_yaml_then_env_then_overrides(tmp_path):
    path = tmp_path / "spfarms.yaml"
    path.write_text(
        "api_url: http://farm.local/\nrole: Admin\ntimeout: 5\ntoken: from-file\n",
        encoding="utf-8",
    )
    config = load_config(path, environ={"SPFARMS_API_TOKEN": "from-env", "SPFARMS_TIMEOUT": "8"})
    assert config.api_url == "http://farm.local"
    assert config.role == "admin"
    assert config.token == "from-env"
    assert config.timeout == 8.0

    config = load_config(path, environ={"SPFARMS_ROLE": "admin"}, role="grower", token=None)
    assert config.role == "grower"
    assert config.token == "from-file"


def test_config_path_from_environment(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text("transition_log: logs/transitions.jsonl\n", encoding="utf-8")
    config = load_config(environ={"SPFARMS_CONFIG": str(path)})
    assert config.transition_log == Path("logs/transitions.jsonl")


def test_missing_explicit_file_is_an_error(tmp_path):
    with pytest.raises(SPFarmsValueError, match="not found"):
        load_config(tmp_path / "nope.yaml", environ={})


def test_empty_file_yields_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path, environ={}) == ClientConfig()


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(SPFarmsValueError, match="mapping"):
        load_config(path, environ={})


@pytest.mark.parametrize("overrides", [{"timeout": 0}, {"api_url": "  "}, {"timeout": "soon"}])
def test_invalid_values_rejected(overrides):
    with pytest.raises(SPFarmsValueError, match="Invalid configuration"):
        load_config(environ={}, **overrides)
