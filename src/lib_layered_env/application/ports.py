"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts adapters must satisfy so the application
services and the composition root never depend on concrete implementations.

Contents
--------
* :class:`SourceFetcher` – turns a :class:`Locator` into a package set.
* :class:`FileLoader` – parses structured documents.
* :class:`EnvLoader` – materialises process environment variables.
* :class:`Materializer` – the external engine boundary.
* :class:`RunningSession` – what the materializer hands back.

System Role
-----------
These protocols enforce Dependency Inversion. Each adapter implements one
protocol; tests substitute in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol, runtime_checkable

from ..domain.descriptor import EnvironmentDescriptor
from ..domain.model import Locator, Package, TargetPlatform


@runtime_checkable
class SourceFetcher(Protocol):
    """Reach a locator and return the package set found there.

    Implementations raise :class:`LocatorUnreachable` for I/O failures. The
    registry, not the fetcher, enforces revision pins.
    """

    def fetch(self, source: str, locator: Locator) -> Mapping[str, Package]:
        """Return the packages published at *locator* for *source*."""


@runtime_checkable
class FileLoader(Protocol):
    """Parse a structured file into a mapping."""

    def load(self, path: str) -> Mapping[str, object]:
        """Read *path* and return a mapping representation or raise ``InvalidFormat``."""


@runtime_checkable
class EnvLoader(Protocol):
    """Translate process environment variables into nested settings dictionaries."""

    def load(self, prefix: str) -> Mapping[str, object]:
        """Return variables that match *prefix* (case-insensitive, ``__`` for nesting)."""


@dataclass(frozen=True, slots=True)
class RunningSession:
    """Handle returned by a materializer.

    ``script`` is the activation script that was applied; ``returncode`` is
    ``None`` for dry runs where no process was started.
    """

    platform: TargetPlatform
    script: str
    returncode: int | None = None


@runtime_checkable
class Materializer(Protocol):
    """External engine turning a descriptor into a running session."""

    def materialize(self, descriptor: EnvironmentDescriptor, platform: TargetPlatform) -> RunningSession:
        """Start (or describe) a session or raise ``MaterializeError``."""
