import pytest

_ENV_VARS = (
    "SPFARMS_CONFIG",
    "SPFARMS_API_URL",
    "SPFARMS_API_TOKEN",
    "SPFARMS_ROLE",
    "SPFARMS_TIMEOUT",
    "SPFARMS_TRANSITION_LOG",
)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Keep user config files and SPFARMS_* variables out of the tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
