"""Layered settings merge.

Purpose
-------
Combine the tool's own settings from several layers (built-in defaults, the
document's ``[settings]`` table, ``LIB_LAYERED_ENV_*`` variables) into one
mapping while recording which layer supplied each key. The merge is free of
I/O so it can be exercised directly in tests.

Contents
    - ``merge_layers``: public entry point driven by a simple loop.
    - ``_merge_mapping``: recursive stanza applying precedence.
    - ``_assign`` / ``_forget``: keep provenance in step with values.

System Role
-----------
Called by :func:`lib_layered_env.core.load_settings`; precedence is the order
of the layers passed in (last wins).
"""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Iterable


def merge_layers(
    layers: Iterable[tuple[str, Mapping[str, object], str | None]],
) -> tuple[dict[str, object], dict[str, dict[str, object]]]:
    """Merge settings *layers* honouring precedence and provenance.

    Parameters
    ----------
    layers:
        Iterable of ``(layer_name, mapping, source_path)`` tuples ordered from
        lowest to highest precedence.

    Returns
    -------
    tuple[dict[str, object], dict[str, dict[str, object]]]
        ``(merged, provenance)`` where ``provenance`` maps dotted keys to
        ``{"layer", "path", "key"}``.

    Examples
    --------
    >>> merged, meta = merge_layers([
    ...     ("defaults", {"shell": "/bin/sh", "expand": {"workers": 1}}, None),
    ...     ("env", {"expand": {"workers": 4}}, None),
    ... ])
    >>> merged["expand"]["workers"], meta["expand.workers"]["layer"], meta["shell"]["layer"]
    (4, 'env', 'defaults')
    """

    merged: dict[str, object] = {}
    meta: dict[str, dict[str, object]] = {}
    for layer_name, data, path in layers:
        _merge_mapping(merged, meta, deepcopy(dict(data)), layer_name, path, ())
    return merged, meta


def _merge_mapping(
    target: dict[str, object],
    meta: dict[str, dict[str, object]],
    incoming: Mapping[str, object],
    layer: str,
    path: str | None,
    prefix: tuple[str, ...],
) -> None:
    """Recursively merge ``incoming`` into ``target``; nested tables merge, scalars replace."""

    for key, value in incoming.items():
        dotted = ".".join((*prefix, key))
        if isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, dict):
                _forget(meta, dotted)
                existing = {}
            target[key] = existing
            _merge_mapping(existing, meta, value, layer, path, (*prefix, key))
        else:
            _assign(target, meta, key, value, dotted, layer, path)


def _assign(
    target: dict[str, object],
    meta: dict[str, dict[str, object]],
    key: str,
    value: object,
    dotted: str,
    layer: str,
    path: str | None,
) -> None:
    """Assign a scalar and record where it came from."""

    _forget(meta, dotted)
    target[key] = value
    meta[dotted] = {"layer": layer, "path": path, "key": dotted}


def _forget(meta: dict[str, dict[str, object]], prefix: str) -> None:
    """Drop provenance for *prefix* and everything beneath it."""

    for meta_key in [k for k in meta if k == prefix or k.startswith(prefix + ".")]:
        del meta[meta_key]
