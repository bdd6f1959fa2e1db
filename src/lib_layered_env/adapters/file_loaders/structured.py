"""Structured document loaders.

Purpose
-------
Convert on-disk environment documents and package sets into Python mappings.
Adapters are small wrappers around ``tomllib``/``json``/``yaml.safe_load`` so
error handling and observability live in one place.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLFileLoader` – loader for the canonical TOML format.
* :class:`JSONFileLoader` – JSON loader.
* :class:`YAMLFileLoader` – YAML loader backed by PyYAML.
* :data:`LOADERS` / :func:`loader_for` – suffix dispatch.

System Role
-----------
Used by :mod:`lib_layered_env.core` for environment documents and by
:mod:`lib_layered_env.adapters.sources.local` for package sets.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

import yaml

from ...domain.errors import InvalidFormat, NotFound
from ...observability import log_debug, log_error


class BaseFileLoader:
    """Common utilities shared by the structured file loaders."""

    format_name = "unknown"

    def load(self, path: str) -> Mapping[str, object]:
        """Return the mapping stored at *path*.

        Raises
        ------
        NotFound
            *path* is not a regular file.
        InvalidFormat
            The content does not parse or is not a mapping.
        """

        payload = self._read(path)
        try:
            data = self._parse(payload)
        except ValueError as exc:
            log_error("document_invalid", stage="load", name=None, path=path, format=self.format_name, error=str(exc))
            raise InvalidFormat(f"Invalid {self.format_name.upper()} in {path}: {exc}") from exc
        result = self._ensure_mapping({} if data is None else data, path=path)
        log_debug("document_loaded", stage="load", name=None, path=path, format=self.format_name)
        return result

    def _parse(self, payload: bytes) -> object:
        raise NotImplementedError

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`NotFound` when the file is missing.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile(delete=False)
        >>> _ = tmp.write(b"key = 'value'")
        >>> tmp.close()
        >>> BaseFileLoader()._read(tmp.name)[:3]
        b'key'
        >>> Path(tmp.name).unlink()
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"Document not found: {path}")
        payload = file_path.read_bytes()
        log_debug("document_read", stage="load", name=None, path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"key": 1}, path="demo")
        {'key': 1}
        >>> BaseFileLoader._ensure_mapping(42, path="demo")
        Traceback (most recent call last):
        ...
        lib_layered_env.domain.errors.InvalidFormat: File demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"File {path} did not produce a mapping")
        return data


class TOMLFileLoader(BaseFileLoader):
    """Load TOML documents using the standard library parser.

    Examples
    --------
    >>> from tempfile import NamedTemporaryFile
    >>> tmp = NamedTemporaryFile('w', suffix='.toml', delete=False, encoding='utf-8')
    >>> _ = tmp.write('[sources.base]\\nurl = "path:./pkgs.toml"')
    >>> tmp.close()
    >>> TOMLFileLoader().load(tmp.name)["sources"]["base"]["url"]
    'path:./pkgs.toml'
    >>> Path(tmp.name).unlink()
    """

    format_name = "toml"

    def _parse(self, payload: bytes) -> object:
        try:
            return tomllib.loads(payload.decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            raise ValueError(str(exc)) from exc


class JSONFileLoader(BaseFileLoader):
    """Load JSON documents."""

    format_name = "json"

    def _parse(self, payload: bytes) -> object:
        # json.JSONDecodeError is a ValueError subclass.
        return json.loads(payload)


class YAMLFileLoader(BaseFileLoader):
    """Load YAML documents with ``yaml.safe_load``; an empty file is an empty mapping."""

    format_name = "yaml"

    def _parse(self, payload: bytes) -> object:
        try:
            return yaml.safe_load(payload)
        except yaml.YAMLError as exc:
            raise ValueError(str(exc)) from exc


LOADERS: dict[str, BaseFileLoader] = {
    ".toml": TOMLFileLoader(),
    ".json": JSONFileLoader(),
    ".yaml": YAMLFileLoader(),
    ".yml": YAMLFileLoader(),
}


def loader_for(path: str | Path) -> BaseFileLoader:
    """Return the loader matching the suffix of *path*.

    Examples
    --------
    >>> loader_for("devenv.yml").format_name
    'yaml'
    >>> loader_for("devenv.ini")
    Traceback (most recent call last):
    ...
    lib_layered_env.domain.errors.InvalidFormat: Unsupported document format: devenv.ini
    """

    loader = LOADERS.get(Path(path).suffix.lower())
    if loader is None:
        raise InvalidFormat(f"Unsupported document format: {path}")
    return loader
