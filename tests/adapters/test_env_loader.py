"""Environment loader adapter tests clarifying namespace coercion.

The scenarios cover prefix naming, nested assignment, and randomised inputs to
prove the adapter keeps matching the documented ``LIB_LAYERED_ENV_*`` rules.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_layered_env.adapters.env.default import ENV_PREFIX, DefaultEnvLoader, assign_nested, default_env_prefix


def test_default_env_prefix() -> None:
    assert default_env_prefix() == ENV_PREFIX
    assert default_env_prefix("dev-shell") == "DEV_SHELL"


def test_env_loader_nested() -> None:
    """Coerce variables into nested dictionaries while ignoring out-of-scope keys."""

    environ = {
        "LIB_LAYERED_ENV_OUTPUT": "tools",
        "LIB_LAYERED_ENV_MAX_WORKERS": "4",
        "LIB_LAYERED_ENV_EXPAND__STRICT": "true",
        "LIB_LAYERED_ENV_PLATFORM": "none",
        "OTHER": "ignored",
    }
    data = DefaultEnvLoader(environ=environ).load()
    assert data == {"output": "tools", "max_workers": 4, "expand": {"strict": True}, "platform": None}


def test_assign_nested_overwrites_scalar_raises() -> None:
    container: dict[str, object] = {"expand": "value"}
    with pytest.raises(ValueError):
        assign_nested(container, "EXPAND__WORKERS", 1)


SCALAR_VALUES = st.sampled_from(["0", "1", "-2", "true", "false", "3.5", "none", "zsh"])
NAMESPACE_KEYS = st.sampled_from(["EXPAND__WORKERS", "EXPAND__STRICT", "SHELL__PATH"])


@given(st.dictionaries(NAMESPACE_KEYS, SCALAR_VALUES, max_size=3))
def test_env_loader_handles_random_namespace(entries) -> None:
    """Randomised namespace inputs should map to consistent nested/coerced payloads."""

    prefix = "DEMO"
    environ = {f"{prefix}_" + key: value for key, value in entries.items()}
    environ["IGNORED"] = "1"
    payload = DefaultEnvLoader(environ=environ).load(prefix)

    def _expect(value: str) -> object:
        lowered = value.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        if lowered in {"none", "null"}:
            return None
        if lowered.lstrip("-").isdigit():
            return int(lowered)
        try:
            return float(value)
        except ValueError:
            return value

    for key, original in entries.items():
        parts = key.lower().split("__")
        node = payload
        for part in parts[:-1]:
            node = node[part]
        assert node[parts[-1]] == _expect(original)
    assert "ignored" not in payload
