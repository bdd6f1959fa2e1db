"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by adapters, the application services,
the composition root, and the CLI. The hierarchy lives in the domain layer so
outer layers may depend on it without creating import cycles.

Contents
--------
* :class:`LayeredEnvError` – umbrella base class carrying a process exit code.
* :class:`InvalidDocument` / :class:`InvalidFormat` / :class:`NotFound` –
  problems reading environment documents and package sets.
* :class:`ResolutionError` and its variants – a source could not be turned
  into a snapshot.
* :class:`ComposeError` and its variants – a single composition failed.
* :class:`MaterializeError` – the external engine rejected a descriptor.

System Role
-----------
Registry and overlay errors abort only the composition that triggered them.
:class:`UnsupportedPlatform` is collected per platform by the expander. The
CLI maps each family to a distinct exit code via :attr:`LayeredEnvError.exit_code`.
"""

from __future__ import annotations

from typing import ClassVar


class LayeredEnvError(Exception):
    """Base type for all exceptions emitted by ``lib_layered_env``.

    Why
    ----
    Provide a single catch-all type for consumers that do not need fine-grained
    handling, and a single place where the CLI reads the exit code.
    """

    exit_code: ClassVar[int] = 1


class InvalidDocument(LayeredEnvError):
    """Raised when an environment document is structurally wrong.

    Typical Sources
    ---------------
    Unknown overlay kinds, outputs referencing undeclared sources, package
    entries without a ``lib_dir``.
    """

    exit_code: ClassVar[int] = 6


class InvalidFormat(InvalidDocument):
    """Raised when an input artifact cannot be parsed into structured data.

    Typical Sources
    ---------------
    Structured file loaders (:mod:`tomllib`, :mod:`json`, :mod:`yaml`).
    """


class NotFound(InvalidDocument):
    """Represents a missing document or package-set file."""


class ResolutionError(LayeredEnvError):
    """A declared source could not be resolved to a snapshot."""

    exit_code: ClassVar[int] = 3

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class UnknownSource(ResolutionError):
    """The requested source name was never declared."""


class LocatorUnreachable(ResolutionError):
    """The declared locator could not be reached (filesystem, network, scheme)."""


class RevisionMismatch(ResolutionError):
    """The pinned revision does not match the content found at the locator."""

    def __init__(self, message: str, *, source: str | None = None, expected: str, actual: str) -> None:
        super().__init__(message, source=source)
        self.expected = expected
        self.actual = actual


class ComposeError(LayeredEnvError):
    """A single composition failed; sibling compositions are unaffected."""

    exit_code: ClassVar[int] = 4


class DependencyNotFound(ComposeError):
    """A requested dependency name is absent from the overlaid snapshot."""

    def __init__(self, name: str, *, source: str | None = None) -> None:
        where = f" in source {source!r}" if source else ""
        super().__init__(f"Dependency {name!r} not found{where}")
        self.name = name
        self.source = source


class OverlayTargetMissing(ComposeError):
    """An overlay tried to replace or shadow an entry that does not exist."""

    def __init__(self, overlay: str, target: str) -> None:
        super().__init__(f"Overlay {overlay!r} targets missing package {target!r}")
        self.overlay = overlay
        self.target = target


class UnsupportedPlatform(ComposeError):
    """A dependency has no variant for the requested target platform.

    Non-fatal to a platform matrix: the expander collects one instance per
    failing platform and keeps going.
    """

    def __init__(self, platform: str, package: str) -> None:
        super().__init__(f"Package {package!r} is not available on {platform}")
        self.platform = platform
        self.package = package


class MaterializeError(LayeredEnvError):
    """Opaque failure reported by the materializer boundary."""

    exit_code: ClassVar[int] = 5
