"""Environment variable settings adapter.

Purpose
-------
Translate ``LIB_LAYERED_ENV_*`` process variables into a nested settings
mapping, the highest-precedence layer of the tool's own configuration.

Key behaviours
--------------
* Only variables carrying the prefix are captured (``default_env_prefix``).
* ``__`` nests keys (``LIB_LAYERED_ENV_EXPAND__WORKERS`` →
  ``{"expand": {"workers": ...}}``).
* Light coercion of booleans, integers, floats and ``null``/``none``.
"""

from __future__ import annotations

import os
from typing import Mapping

from ...observability import log_debug

ENV_PREFIX = "LIB_LAYERED_ENV"


def default_env_prefix(slug: str = "lib-layered-env") -> str:
    """Return the canonical environment prefix for *slug*.

    Examples
    --------
    >>> default_env_prefix()
    'LIB_LAYERED_ENV'
    >>> default_env_prefix('dev-shell')
    'DEV_SHELL'
    """

    return slug.replace("-", "_").upper()


class DefaultEnvLoader:
    """Load settings variables from the process environment."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def load(self, prefix: str = ENV_PREFIX) -> dict[str, object]:
        """Return a nested mapping built from variables starting with *prefix*.

        Examples
        --------
        >>> env = {'LIB_LAYERED_ENV_SHELL': '/bin/zsh', 'LIB_LAYERED_ENV_EXPAND__WORKERS': '4', 'HOME': '/root'}
        >>> DefaultEnvLoader(environ=env).load()
        {'shell': '/bin/zsh', 'expand': {'workers': 4}}
        """

        prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        collected: dict[str, object] = {}
        for key, value in self._environ.items():
            if prefix and not key.startswith(prefix):
                continue
            stripped = key[len(prefix) :] if prefix else key
            if not stripped:
                continue
            assign_nested(collected, stripped, _coerce(value))
        log_debug("settings_env_loaded", stage="settings", name=None, keys=sorted(collected))
        return collected


def assign_nested(target: dict[str, object], key: str, value: object) -> None:
    """Assign ``value`` inside ``target`` using ``__`` as a nesting delimiter.

    Examples
    --------
    >>> data: dict[str, object] = {}
    >>> assign_nested(data, 'EXPAND__WORKERS', 2)
    >>> data
    {'expand': {'workers': 2}}
    """

    parts = [part.lower() for part in key.split("__")]
    cursor = target
    for part in parts[:-1]:
        child = cursor.setdefault(part, {})
        if not isinstance(child, dict):
            raise ValueError(f"Cannot override scalar with mapping for key {key}")
        cursor = child
    cursor[parts[-1]] = value


def _coerce(value: str) -> object:
    """Coerce textual environment values to Python primitives where possible.

    Examples
    --------
    >>> _coerce('true'), _coerce('10'), _coerce('3.5'), _coerce('/bin/sh')
    (True, 10, 3.5, '/bin/sh')
    """

    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value
