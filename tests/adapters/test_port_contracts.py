"""Adapter contract tests for the default ports implementation.

Verify the default adapters keep satisfying the application-layer ports in
``lib_layered_env.application.ports`` so dependency inversion stays
enforceable through automated tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from lib_layered_env.adapters.env.default import DefaultEnvLoader, default_env_prefix
from lib_layered_env.adapters.file_loaders.structured import JSONFileLoader, TOMLFileLoader, YAMLFileLoader
from lib_layered_env.adapters.materializer.shell import ShellMaterializer
from lib_layered_env.adapters.sources.local import PathSourceFetcher
from lib_layered_env.application import ports
from lib_layered_env.domain.model import Locator


def test_default_env_loader_contract() -> None:
    prefix = default_env_prefix("demo")
    loader = DefaultEnvLoader(environ={f"{prefix}_EXPAND__WORKERS": "3", "IRRELEVANT": "ignored"})
    assert isinstance(loader, ports.EnvLoader)
    assert loader.load(prefix) == {"expand": {"workers": 3}}


def test_path_fetcher_contract(tmp_path: Path) -> None:
    fetcher = PathSourceFetcher(base_dir=tmp_path)
    assert isinstance(fetcher, ports.SourceFetcher)
    (tmp_path / "packages.yaml").write_text("packages:\n  fd:\n    prefix: /store/fd\n", encoding="utf-8")
    assert fetcher.fetch("base", Locator.parse("path:.")).keys() == {"fd"}


def test_shell_materializer_contract() -> None:
    assert isinstance(ShellMaterializer(dry_run=True), ports.Materializer)


@pytest.mark.parametrize("loader_cls", [TOMLFileLoader, JSONFileLoader, YAMLFileLoader])
def test_structured_loader_contract(tmp_path: Path, loader_cls) -> None:
    """Each structured loader should satisfy FileLoader and decode its target format."""

    loader = loader_cls()
    assert isinstance(loader, ports.FileLoader)

    if isinstance(loader, TOMLFileLoader):
        path = tmp_path / "devenv.toml"
        path.write_text('[settings]\noutput = "tools"\n', encoding="utf-8")
    elif isinstance(loader, JSONFileLoader):
        path = tmp_path / "devenv.json"
        path.write_text('{"settings": {"output": "tools"}}', encoding="utf-8")
    else:
        path = tmp_path / "devenv.yaml"
        path.write_text("settings:\n  output: tools\n", encoding="utf-8")

    assert loader.load(str(path))["settings"]["output"] == "tools"
