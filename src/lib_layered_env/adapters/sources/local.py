"""Filesystem source fetcher.

Purpose
-------
Implement :class:`lib_layered_env.application.ports.SourceFetcher` for
``path:`` and ``file:`` locators. The locator names either a package-set file
(TOML/JSON/YAML) or a directory holding ``packages.toml`` (or ``.json``,
``.yaml``, ``.yml``). Relative locations resolve against ``base_dir``, which
the composition root sets to the document's directory.

System Role
-----------
Registered by :func:`lib_layered_env.core.default_fetchers`. Remote schemes
(``github:`` and friends) have no fetcher here; the registry reports them as
:class:`LocatorUnreachable`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from ...domain.errors import InvalidFormat, LocatorUnreachable, NotFound
from ...domain.model import Locator, Package
from ...observability import log_debug
from ..document.parser import parse_package_set
from ..file_loaders.structured import loader_for

PACKAGE_SET_NAMES = ("packages.toml", "packages.json", "packages.yaml", "packages.yml")


class PathSourceFetcher:
    """Read package sets from the local filesystem.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> _ = (Path(tmp.name) / "packages.toml").write_text('[packages.fd]\\nversion = "9"\\nprefix = "/s/fd"\\n', encoding="utf-8")
    >>> fetcher = PathSourceFetcher(base_dir=tmp.name)
    >>> fetcher.fetch("base", Locator.parse("path:."))["fd"].lib_dir
    '/s/fd/lib'
    >>> tmp.cleanup()
    """

    def __init__(self, *, base_dir: str | Path | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else None

    def fetch(self, source: str, locator: Locator) -> Mapping[str, Package]:
        target = self._locate(source, locator)
        try:
            data = loader_for(target).load(str(target))
        except NotFound as exc:
            raise LocatorUnreachable(f"Source {source!r}: {exc}", source=source) from exc
        except InvalidFormat as exc:
            raise LocatorUnreachable(f"Source {source!r} at {target} is not a package set: {exc}", source=source) from exc
        packages = parse_package_set(data, origin=str(target))
        log_debug("package_set_read", stage="resolve", name=source, path=str(target), packages=len(packages))
        return packages

    def _locate(self, source: str, locator: Locator) -> Path:
        path = Path(locator.location).expanduser()
        if not path.is_absolute() and self._base_dir is not None:
            path = self._base_dir / path
        if path.is_dir():
            for candidate in PACKAGE_SET_NAMES:
                if (path / candidate).is_file():
                    return path / candidate
            raise LocatorUnreachable(f"Source {source!r}: no package set in directory {path}", source=source)
        if not path.exists():
            raise LocatorUnreachable(f"Source {source!r}: {path} does not exist", source=source)
        return path
