"""Shared fixtures describing a realistic development-shell workspace.

The workspace mirrors a Rust game-engine dev shell: a base package set, a
rust overlay imported from its own source, graphics libraries that only exist
on Linux, and ``ls``/``find`` aliases.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import pytest

from lib_layered_env.application.registry import ResolutionCache, SourceRegistry
from lib_layered_env.domain.errors import LocatorUnreachable
from lib_layered_env.domain.model import Locator, Package, Source

BASE_PACKAGES = """\
[packages.pkg-config]
version = "0.29.2"
prefix = "/store/pkg-config-0.29.2"

[packages.eza]
version = "0.18.0"
prefix = "/store/eza-0.18.0"

[packages.fd]
version = "9.0.0"
prefix = "/store/fd-9.0.0"

[packages.libxkbcommon]
version = "1.6.0"
prefix = "/store/libxkbcommon-1.6.0"
platforms = ["x86_64-linux", "aarch64-linux"]

[packages.libGL]
version = "1.7.0"
prefix = "/store/libGL-1.7.0"
platforms = ["x86_64-linux", "aarch64-linux"]

[packages.wayland]
version = "1.22.0"
prefix = "/store/wayland-1.22.0"
platforms = ["x86_64-linux", "aarch64-linux"]

[packages.openssl]
version = "3.0.13"
prefix = "/store/openssl-3.0.13"

[packages.openssl.variants.aarch64-darwin]
lib_dir = "/store/openssl-3.0.13-arm64/lib"
"""

RUST_PACKAGES = """\
[packages.rust-nightly]
version = "1.79.0-nightly"
prefix = "/store/rust-nightly"

[packages.rust-beta]
version = "1.78.0-beta"
prefix = "/store/rust-beta"
"""

DEVENV = """\
[sources.nixpkgs]
url = "path:nixpkgs.toml"

[sources.rust-overlay]
url = "path:rust-overlay.toml"

[[overlays]]
name = "rust"
base = "nixpkgs"
from = "rust-overlay"

[outputs.default]
source = "nixpkgs"
packages = ["rust-nightly", "pkg-config", "eza", "fd", "rust-beta", "libxkbcommon", "libGL", "wayland", "openssl"]

[outputs.default.derive]
LD_LIBRARY_PATH = "library-path"

[outputs.default.aliases]
ls = "eza"
find = "fd"

[outputs.tools]
packages = ["eza", "fd"]
"""


@dataclass(frozen=True)
class Workspace:
    """Paths of a materialised fixture workspace."""

    root: Path
    document: Path

    def write(self, relative: str, content: str) -> Path:
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return target


@pytest.fixture()
def workspace(tmp_path: Path) -> Workspace:
    """Write the dev-shell document and its two package sets under ``tmp_path``."""

    (tmp_path / "nixpkgs.toml").write_text(BASE_PACKAGES, encoding="utf-8")
    (tmp_path / "rust-overlay.toml").write_text(RUST_PACKAGES, encoding="utf-8")
    document = tmp_path / "devenv.toml"
    document.write_text(DEVENV, encoding="utf-8")
    return Workspace(tmp_path, document)


class MemoryFetcher:
    """In-memory fetcher counting how often each source is fetched."""

    def __init__(self, tables: Mapping[str, Mapping[str, Package]]) -> None:
        self.tables = {location: dict(packages) for location, packages in tables.items()}
        self.calls: dict[str, int] = {}

    def fetch(self, source: str, locator: Locator) -> Mapping[str, Package]:
        self.calls[source] = self.calls.get(source, 0) + 1
        try:
            return self.tables[locator.location]
        except KeyError as exc:
            raise LocatorUnreachable(f"nothing at {locator}", source=source) from exc


@pytest.fixture()
def memory_fetcher() -> MemoryFetcher:
    return MemoryFetcher(
        {
            "base": {
                "compiler": Package("compiler", "13.2", "/store/compiler/lib", include_dir="/store/compiler/include"),
                "zlib": Package("zlib", "1.3", "/store/zlib/lib"),
            },
            "extra": {"tool": Package("tool", "1.2", "/store/tool/lib")},
        }
    )


@pytest.fixture()
def registry(memory_fetcher: MemoryFetcher) -> SourceRegistry:
    sources = [
        Source("base", Locator("mem", "base")),
        Source("extra", Locator("mem", "extra")),
        Source("alias", follows="base"),
    ]
    return SourceRegistry(sources, fetchers={"mem": memory_fetcher}, cache=ResolutionCache())
