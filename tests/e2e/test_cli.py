"""End-to-end CLI coverage for the public commands exposed by lib_layered_env.

Each scenario runs against the dev-shell fixture workspace and checks both the
printed payload and the documented exit code.
"""

from __future__ import annotations

import json

import lib_cli_exit_tools
import pytest
from click.testing import CliRunner

from lib_layered_env import cli
from lib_layered_env.application.ports import RunningSession

CLEAN_ENV = {
    "LIB_LAYERED_ENV_OUTPUT": None,
    "LIB_LAYERED_ENV_PLATFORM": None,
    "LIB_LAYERED_ENV_SHELL": None,
    "LIB_LAYERED_ENV_MAX_WORKERS": None,
}


def _invoke(*args: str, env: dict[str, str | None] | None = None):
    return CliRunner().invoke(cli.cli, list(args), env={**CLEAN_ENV, **(env or {})})


@pytest.fixture(autouse=True)
def _restore_traceback_config():
    previous = lib_cli_exit_tools.config.traceback
    yield
    lib_cli_exit_tools.config.traceback = previous


def test_show_prints_descriptor_json(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "show", "--platform", "x86_64-linux")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["platform"] == "x86_64-linux"
    assert payload["env"]["LD_LIBRARY_PATH"].startswith("/store/rust-nightly/lib:")
    assert [action["name"] for action in payload["startup"]] == ["alias:ls", "alias:find"]


def test_show_platform_from_environment(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "show", "--output", "tools", env={"LIB_LAYERED_ENV_PLATFORM": "aarch64-darwin"})
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["platform"] == "aarch64-darwin"


def test_show_all_platforms_carries_warnings(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "show", "--all-platforms")
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert list(payload["environments"]) == ["x86_64-linux", "aarch64-linux"]
    assert len(payload["warnings"]) == 2
    assert all("libxkbcommon" in warning for warning in payload["warnings"])


def test_unsupported_platform_exits_with_compose_code(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "show", "--platform", "aarch64-darwin")
    assert result.exit_code == 4
    assert "libxkbcommon" in result.output


def test_invalid_platform_is_a_usage_error(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "show", "--platform", "linux")
    assert result.exit_code == 2


def test_hook_prints_activation_script(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "hook", "--platform", "x86_64-linux")
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0] == "# lib_layered_env: default (x86_64-linux)"
    assert lines[1].startswith("export LD_LIBRARY_PATH=/store/rust-nightly/lib:")
    assert lines[2:] == ["alias ls=eza", "alias find=fd"]


def test_hook_without_bindings_is_only_the_header(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "hook", "--output", "tools", "--platform", "x86_64-linux")
    assert result.exit_code == 0, result.output
    assert result.output == "# lib_layered_env: tools (x86_64-linux)\n"


def test_shell_dry_run_matches_hook(workspace) -> None:
    args = ("-f", str(workspace.document))
    hook = _invoke(*args, "hook", "--platform", "x86_64-linux")
    shell = _invoke(*args, "shell", "--platform", "x86_64-linux", "--dry-run")
    assert shell.exit_code == 0, shell.output
    assert shell.output == hook.output
    assert "alias ls=eza" in shell.output


def test_sources_lists_digests(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "sources")
    assert result.exit_code == 0, result.output
    rows = json.loads(result.output)
    assert [row["name"] for row in rows] == ["nixpkgs", "rust-overlay"]
    assert rows[0]["packages"] == 7
    assert all(len(row["digest"]) == 64 for row in rows)


def test_unreachable_source_exits_with_resolution_code(workspace) -> None:
    (workspace.root / "rust-overlay.toml").unlink()
    result = _invoke("-f", str(workspace.document), "show", "--platform", "x86_64-linux")
    assert result.exit_code == 3
    assert "rust-overlay" in result.output


def test_invalid_document_exits_with_document_code(workspace) -> None:
    workspace.write("devenv.toml", '[sources.nixpkgs]\nurl = "path:nixpkgs.toml"\n')
    result = _invoke("-f", str(workspace.document), "show")
    assert result.exit_code == 6
    assert "outputs" in result.output


def test_document_is_discovered_from_cwd(workspace, monkeypatch) -> None:
    monkeypatch.chdir(workspace.root)
    result = _invoke("show", "--output", "tools", "--platform", "x86_64-linux")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["output"] == "tools"


def test_settings_with_provenance(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "settings", "--provenance", env={"LIB_LAYERED_ENV_SHELL": "/bin/zsh"})
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["settings"]["shell"] == "/bin/zsh"
    assert payload["provenance"]["shell"]["layer"] == "env"
    assert payload["provenance"]["output"]["layer"] == "defaults"


def test_discovered_settings_drive_show_and_settings(workspace, monkeypatch) -> None:
    workspace.write("devenv.toml", '[settings]\noutput = "tools"\n\n' + workspace.document.read_text())
    monkeypatch.chdir(workspace.root)
    shown = _invoke("show", "--platform", "x86_64-linux")
    assert shown.exit_code == 0, shown.output
    assert json.loads(shown.output)["output"] == "tools"
    reported = _invoke("settings", "--provenance")
    assert reported.exit_code == 0, reported.output
    payload = json.loads(reported.output)
    assert payload["settings"]["output"] == "tools"
    assert payload["provenance"]["output"]["layer"] == "document"


def test_settings_without_any_document_uses_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    result = _invoke("settings")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["output"] == "default"


def test_invalid_platform_setting_exits_with_document_code(workspace) -> None:
    result = _invoke("-f", str(workspace.document), "show", env={"LIB_LAYERED_ENV_PLATFORM": "bogus"})
    assert result.exit_code == 6
    assert "bogus" in result.output


def test_shell_exits_with_session_status(workspace, monkeypatch) -> None:
    class FinishedShell:
        def __init__(self, *, shell, dry_run) -> None:
            self.dry_run = dry_run

        def materialize(self, descriptor, platform):
            return RunningSession(platform, "", 7)

    monkeypatch.setattr(cli, "ShellMaterializer", FinishedShell)
    result = _invoke("-f", str(workspace.document), "shell", "--platform", "x86_64-linux")
    assert result.exit_code == 7, result.output


def test_info_and_version() -> None:
    assert _invoke("info").exit_code == 0
    version = _invoke("--version")
    assert version.exit_code == 0
    assert "lib_layered_env version" in version.output


def test_main_restores_traceback_flag(workspace) -> None:
    previous = lib_cli_exit_tools.config.traceback
    exit_code = cli.main(["--traceback", "-f", str(workspace.document), "show", "--platform", "x86_64-linux"])
    assert exit_code == 0
    assert lib_cli_exit_tools.config.traceback == previous


def test_main_reports_failure(workspace) -> None:
    assert cli.main(["-f", str(workspace.document), "show", "--platform", "aarch64-darwin"]) != 0
