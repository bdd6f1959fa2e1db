"""Domain value objects produced by composition and expansion.

Purpose
-------
Anchor the immutable :class:`EnvironmentDescriptor` handed to the
materializer, together with the per-platform expansion results. Like every
domain module this one performs no I/O.

Contents
--------
* :class:`EnvironmentDescriptor` – ordered dependencies, derived environment
  bindings and startup actions for one output on one platform.
* :class:`ResolvedConfig` – an output paired with its platform-specialised
  snapshot.
* :class:`ExpansionResult` – partial mapping of platform → config plus the
  collected :class:`~lib_layered_env.domain.errors.UnsupportedPlatform` errors.

System Role
-----------
:func:`lib_layered_env.application.compose.compose` builds descriptors;
:mod:`lib_layered_env.adapters.materializer.shell` consumes them. The JSON form
returned by :meth:`EnvironmentDescriptor.to_json` is byte-identical for
identical inputs, which is what makes environments reproducible.
"""

from __future__ import annotations

import json
import shlex
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .errors import UnsupportedPlatform
from .model import OutputSpec, Package, Snapshot, StartupAction, TargetPlatform


@dataclass(frozen=True, slots=True)
class EnvironmentDescriptor:
    """Deterministic description of a ready-to-materialize session.

    Why
    ----
    The materializer needs a single read-only value that fully describes the
    session so it never has to look back into registries or overlays.

    What
    ----
    Stores dependencies and startup actions as tuples and environment bindings
    inside a ``MappingProxyType`` that preserves insertion order.

    Examples
    --------
    >>> desc = EnvironmentDescriptor(
    ...     output="default",
    ...     platform=TargetPlatform.parse("x86_64-linux"),
    ...     dependencies=(Package("cc", "1", "/cc/lib"),),
    ...     env={"LD_LIBRARY_PATH": "/cc/lib"},
    ...     startup=(StartupAction("ls", "alias ls=eza"),),
    ... )
    >>> desc.get("LD_LIBRARY_PATH")
    '/cc/lib'
    >>> desc.dependency_names
    ('cc',)
    >>> print(desc.shell_hook())
    export LD_LIBRARY_PATH=/cc/lib
    alias ls=eza
    """

    output: str
    platform: TargetPlatform
    dependencies: tuple[Package, ...]
    env: Mapping[str, str] = field(default_factory=dict)
    startup: tuple[StartupAction, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "dependencies", tuple(self.dependencies))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))
        object.__setattr__(self, "startup", tuple(self.startup))

    @property
    def dependency_names(self) -> tuple[str, ...]:
        return tuple(package.name for package in self.dependencies)

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return the environment binding *name* or *default*."""

        return self.env.get(name, default)

    def as_dict(self) -> dict[str, Any]:
        """Return a mutable, JSON-ready copy of the descriptor.

        Examples
        --------
        >>> desc = EnvironmentDescriptor("dev", TargetPlatform.parse("x86_64-linux"), ())
        >>> desc.as_dict()["platform"]
        'x86_64-linux'
        """

        return {
            "output": self.output,
            "platform": str(self.platform),
            "dependencies": [package.to_dict() for package in self.dependencies],
            "env": dict(self.env),
            "startup": [{"name": action.name, "text": action.text} for action in self.startup],
        }

    def to_json(self, *, indent: int | None = None) -> str:
        """Serialise the descriptor; identical descriptors yield identical bytes.

        Key order follows declaration order rather than being sorted because
        order is part of the descriptor's meaning.
        """

        return json.dumps(self.as_dict(), indent=indent, separators=(",", ":"), ensure_ascii=False)

    def shell_hook(self) -> str:
        """Render the activation script: exports first, then startup actions."""

        lines = [f"export {name}={shlex.quote(value)}" for name, value in self.env.items()]
        lines.extend(action.text.rstrip("\n") for action in self.startup)
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class ResolvedConfig:
    """An output specialised for one target platform.

    ``snapshots`` holds the platform-specialised snapshot of every source the
    output draws from, keyed by source name.
    """

    platform: TargetPlatform
    snapshots: Mapping[str, Snapshot]
    output: OutputSpec

    def __post_init__(self) -> None:
        object.__setattr__(self, "snapshots", MappingProxyType(dict(self.snapshots)))

    @property
    def snapshot(self) -> Snapshot:
        """Return the snapshot of the output's own source."""

        return self.snapshots[self.output.source]


@dataclass(frozen=True, slots=True)
class ExpansionResult:
    """Outcome of expanding an output across a platform matrix.

    ``configs`` holds every platform that succeeded, in request order;
    ``errors`` holds one :class:`UnsupportedPlatform` per failing platform.
    """

    configs: Mapping[str, ResolvedConfig]
    errors: tuple[UnsupportedPlatform, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "configs", MappingProxyType(dict(self.configs)))
        object.__setattr__(self, "errors", tuple(self.errors))

    @property
    def ok(self) -> bool:
        return not self.errors
