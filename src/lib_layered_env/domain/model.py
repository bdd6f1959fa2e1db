"""Domain value objects for sources, packages and outputs.

Purpose
-------
Describe everything the composer reasons about as frozen dataclasses and
read-only mappings. The module performs no I/O; adapters build these objects
from documents and the application layer transforms them.

Contents
--------
* :class:`Locator` – where a source lives plus an optional revision pin.
* :class:`Source` – a named locator (or an alias of another source).
* :class:`Package` – a package value with its library/include/bin directories.
* :class:`Snapshot` – immutable, content-addressed package set.
* :class:`TargetPlatform` – ``<arch>-<os>`` identifier.
* :class:`Add` / :class:`Replace` / :class:`Shadow` – overlay operations.
* :class:`Overlay` – ordered operations attached to one base source.
* :class:`StartupAction`, :class:`EnvVarSpec`, :class:`OutputSpec`,
  :class:`Document` – the declarative environment document.
"""

from __future__ import annotations

import hashlib
import json
import platform as _platform
import sys
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Final, Iterator, Mapping, Union

DEFAULT_PLATFORMS: Final[tuple[str, ...]] = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "aarch64-darwin",
)

DERIVATION_RULES: Final[tuple[str, ...]] = ("library-path", "include-path", "bin-path", "literal")

_PATCHABLE_FIELDS: Final[frozenset[str]] = frozenset({"version", "lib_dir", "include_dir", "bin_dir", "platforms"})

_ARCH_ALIASES: Final[dict[str, str]] = {"amd64": "x86_64", "x64": "x86_64", "arm64": "aarch64"}
_OS_ALIASES: Final[dict[str, str]] = {"win32": "windows", "cygwin": "windows"}


@dataclass(frozen=True, slots=True)
class Locator:
    """Location of a source and an optional pinned revision.

    Examples
    --------
    >>> Locator.parse("path:./pkgs.toml", revision="abc")
    Locator(scheme='path', location='./pkgs.toml', revision='abc')
    >>> Locator.parse("/srv/pkgs.toml").scheme
    'path'
    >>> str(Locator.parse("github:NixOS/nixpkgs"))
    'github:NixOS/nixpkgs'
    """

    scheme: str
    location: str
    revision: str | None = None

    @classmethod
    def parse(cls, url: str, *, revision: str | None = None) -> Locator:
        scheme, sep, rest = url.partition(":")
        # Windows drive letters and bare paths have no usable scheme.
        if not sep or len(scheme) == 1 or "/" in scheme or "\\" in scheme:
            return cls("path", url, revision)
        if rest.startswith("//"):
            rest = rest[2:]
        return cls(scheme.lower(), rest, revision)

    def __str__(self) -> str:
        return f"{self.scheme}:{self.location}"


@dataclass(frozen=True, slots=True)
class Source:
    """A named, versioned provider of packages.

    ``follows`` names another source whose snapshot this one re-uses; such a
    source carries no locator of its own.
    """

    name: str
    locator: Locator | None = None
    follows: str | None = None


@dataclass(frozen=True, slots=True)
class Package:
    """A package value as seen by the composer.

    ``platforms`` is empty when the package is available everywhere.
    ``variants`` maps a platform identifier to field overrides used on that
    platform only.

    Examples
    --------
    >>> pkg = Package("openssl", "3.0", "/s/openssl/lib", variants={"aarch64-linux": {"lib_dir": "/s/arm/lib"}})
    >>> pkg.for_platform("aarch64-linux").lib_dir
    '/s/arm/lib'
    >>> pkg.for_platform("x86_64-linux") is pkg
    True
    """

    name: str
    version: str
    lib_dir: str
    include_dir: str | None = None
    bin_dir: str | None = None
    platforms: tuple[str, ...] = ()
    variants: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "platforms", tuple(self.platforms))
        frozen = {key: MappingProxyType(dict(value)) for key, value in self.variants.items()}
        object.__setattr__(self, "variants", MappingProxyType(frozen))

    def __hash__(self) -> int:
        return hash(self.identity)

    @property
    def identity(self) -> tuple[str, str, str]:
        """Return the key used to collapse duplicates reachable via two names."""

        return (self.name, self.version, self.lib_dir)

    def supports(self, platform: str) -> bool:
        return not self.platforms or platform in self.platforms or platform in self.variants

    def for_platform(self, platform: str) -> Package:
        """Return the variant selected for *platform* (``self`` when none applies)."""

        overrides = self.variants.get(platform)
        if not overrides:
            return self
        return replace(self, **dict(overrides), variants={})

    def with_changes(self, changes: Mapping[str, Any]) -> Package:
        unknown = set(changes) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot patch package fields: {', '.join(sorted(unknown))}")
        return replace(self, **dict(changes))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "version": self.version, "lib_dir": self.lib_dir}
        if self.include_dir is not None:
            payload["include_dir"] = self.include_dir
        if self.bin_dir is not None:
            payload["bin_dir"] = self.bin_dir
        if self.platforms:
            payload["platforms"] = list(self.platforms)
        if self.variants:
            payload["variants"] = {key: dict(value) for key, value in sorted(self.variants.items())}
        return payload


class Snapshot(MappingABC[str, Package]):
    """Immutable, resolved package set.

    Behaves as a read-only mapping from entry name to :class:`Package`. Two
    entry names may point to the same package (see :class:`Shadow`). The
    ``digest`` is computed from the canonical JSON form of the entries, so two
    snapshots with equal content share a digest.

    Examples
    --------
    >>> snap = Snapshot("base", {"cc": Package("cc", "1", "/cc/lib")})
    >>> snap["cc"].version
    '1'
    >>> len(snap.digest)
    64
    """

    __slots__ = ("_source", "_packages", "_digest")

    def __init__(self, source: str, packages: Mapping[str, Package]) -> None:
        self._source = source
        self._packages: Mapping[str, Package] = MappingProxyType(dict(packages))
        self._digest = _digest_packages(self._packages)

    @property
    def source(self) -> str:
        return self._source

    @property
    def digest(self) -> str:
        return self._digest

    def __getitem__(self, name: str) -> Package:
        return self._packages[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"Snapshot(source={self._source!r}, packages={len(self._packages)}, digest={self._digest[:12]!r})"

    def evolve(self, packages: Mapping[str, Package]) -> Snapshot:
        """Return a new snapshot for the same source holding *packages*."""

        return Snapshot(self._source, packages)


def _digest_packages(packages: Mapping[str, Package]) -> str:
    canonical = {name: package.to_dict() for name, package in sorted(packages.items())}
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class TargetPlatform:
    """Architecture/OS pair used to pick platform-specific package variants.

    Examples
    --------
    >>> TargetPlatform.parse("aarch64-darwin").path_separator
    ':'
    >>> TargetPlatform.parse("x86_64-windows").path_separator
    ';'
    >>> str(TargetPlatform.parse("x86_64-linux"))
    'x86_64-linux'
    """

    arch: str
    os: str

    @classmethod
    def parse(cls, identifier: str) -> TargetPlatform:
        arch, sep, os_name = identifier.strip().partition("-")
        if not sep or not arch or not os_name:
            raise ValueError(f"Platform must look like '<arch>-<os>', got {identifier!r}")
        return cls(_ARCH_ALIASES.get(arch.lower(), arch.lower()), _OS_ALIASES.get(os_name.lower(), os_name.lower()))

    @classmethod
    def current(cls) -> TargetPlatform:
        """Detect the platform of the running interpreter."""

        os_name = sys.platform
        if os_name.startswith("linux"):
            os_name = "linux"
        machine = _platform.machine() or "unknown"
        return cls(_ARCH_ALIASES.get(machine.lower(), machine.lower()), _OS_ALIASES.get(os_name, os_name))

    @property
    def path_separator(self) -> str:
        return ";" if self.os == "windows" else ":"

    def __str__(self) -> str:
        return f"{self.arch}-{self.os}"


@dataclass(frozen=True, slots=True)
class Add:
    """Insert *package* under *name* (defaults to the package name), overwriting any entry."""

    package: Package
    name: str | None = None

    @property
    def key(self) -> str:
        return self.name or self.package.name


@dataclass(frozen=True, slots=True)
class Replace:
    """Patch fields of the existing entry *name*."""

    name: str
    changes: Mapping[str, Any]

    @property
    def key(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class Shadow:
    """Bind *name* to the package currently bound to *target*."""

    name: str
    target: str

    @property
    def key(self) -> str:
        return self.name


OverlayOp = Union[Add, Replace, Shadow]


@dataclass(frozen=True, slots=True)
class Overlay:
    """An ordered, named transformation attached to exactly one base source.

    When ``import_from`` is set the operations are produced at composition
    time: every package of that source becomes an :class:`Add`.
    """

    name: str
    base: str
    ops: tuple[OverlayOp, ...] = ()
    import_from: str | None = None

    def touched(self) -> frozenset[str]:
        """Return the entry names written by the explicit operations."""

        return frozenset(op.key for op in self.ops)


@dataclass(frozen=True, slots=True)
class StartupAction:
    """Opaque shell text run when a session starts."""

    name: str
    text: str


@dataclass(frozen=True, slots=True)
class EnvVarSpec:
    """A derived environment variable: *name* computed with *rule*.

    Examples
    --------
    >>> EnvVarSpec("LD_LIBRARY_PATH", "library-path").rule
    'library-path'
    """

    name: str
    rule: str
    value: str | None = None

    def __post_init__(self) -> None:
        if self.rule not in DERIVATION_RULES:
            raise ValueError(f"Unknown derivation rule {self.rule!r}; expected one of {', '.join(DERIVATION_RULES)}")
        if self.rule == "literal" and self.value is None:
            raise ValueError(f"Literal variable {self.name!r} needs a value")


@dataclass(frozen=True, slots=True)
class OutputSpec:
    """One named output of a document (a development shell)."""

    name: str
    source: str
    packages: tuple[str, ...] = ()
    derive: tuple[EnvVarSpec, ...] = ()
    startup: tuple[StartupAction, ...] = ()


@dataclass(frozen=True, slots=True)
class Document:
    """The parsed declarative environment document."""

    sources: Mapping[str, Source]
    overlays: tuple[Overlay, ...]
    outputs: Mapping[str, OutputSpec]
    platforms: tuple[str, ...] = DEFAULT_PLATFORMS
    settings: Mapping[str, Any] = field(default_factory=dict)
    path: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))
        object.__setattr__(self, "outputs", MappingProxyType(dict(self.outputs)))
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))

    def overlays_for(self, source: str) -> tuple[Overlay, ...]:
        """Return the overlays attached to *source* in declaration order."""

        return tuple(overlay for overlay in self.overlays if overlay.base == source)


def split_dependency(name: str, default_source: str) -> tuple[str, str]:
    """Split ``source:package`` into its parts, defaulting the source.

    Examples
    --------
    >>> split_dependency("base:compiler", "main")
    ('base', 'compiler')
    >>> split_dependency("tool", "main")
    ('main', 'tool')
    """

    source, sep, package = name.partition(":")
    if not sep:
        return default_source, name
    return source, package
