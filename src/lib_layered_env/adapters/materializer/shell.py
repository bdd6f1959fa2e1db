"""Reference materializer: activation script plus an interactive shell.

Purpose
-------
Implement :class:`lib_layered_env.application.ports.Materializer` without
building anything. The descriptor is rendered into an activation script
(``export`` lines, then startup actions). In dry-run mode the script is only
returned; otherwise the configured shell is started with the script as its rc
file and the call blocks until the shell exits.

System Role
-----------
Used by the ``shell`` CLI command. Fetching and building packages stays with
the external package manager; this adapter assumes the directories named in
the descriptor already exist.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Mapping, Sequence

from ...application.ports import RunningSession
from ...domain.descriptor import EnvironmentDescriptor
from ...domain.errors import MaterializeError
from ...domain.model import TargetPlatform
from ...observability import log_error, log_info, make_event

Runner = Callable[..., "subprocess.CompletedProcess[bytes]"]

# Shells that source $ENV when started interactively.
POSIX_ENV_SHELLS = frozenset({"sh", "dash", "ash", "ksh", "mksh", "yash"})


def render_activation_script(descriptor: EnvironmentDescriptor) -> str:
    """Return the activation script for *descriptor*, ending with a newline.

    Examples
    --------
    >>> desc = EnvironmentDescriptor("dev", TargetPlatform.parse("x86_64-linux"), (), {"MODE": "dev mode"})
    >>> render_activation_script(desc)
    "# lib_layered_env: dev (x86_64-linux)\\nexport MODE='dev mode'\\n"
    """

    header = f"# lib_layered_env: {descriptor.output} ({descriptor.platform})"
    body = descriptor.shell_hook()
    return f"{header}\n{body}\n" if body else f"{header}\n"


class ShellMaterializer:
    """Start a shell session that applies a descriptor.

    Parameters
    ----------
    shell:
        Shell executable. Defaults to ``$SHELL`` then ``/bin/sh``. bash,
        zsh, fish and the ``$ENV``-reading POSIX shells are supported; any
        other shell raises :class:`MaterializeError`.
    dry_run:
        Only render the script; do not start a process.
    runner:
        Callable with the ``subprocess.run`` signature; injected by tests.
    environ:
        Base environment for the child process (defaults to ``os.environ``).
    """

    def __init__(
        self,
        *,
        shell: str | None = None,
        dry_run: bool = False,
        runner: Runner | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._environ = dict(os.environ if environ is None else environ)
        self._shell = shell or self._environ.get("SHELL") or "/bin/sh"
        self._dry_run = dry_run
        self._runner = runner or subprocess.run

    def materialize(self, descriptor: EnvironmentDescriptor, platform: TargetPlatform) -> RunningSession:
        if descriptor.platform != platform:
            raise MaterializeError(f"Descriptor targets {descriptor.platform}, cannot materialize on {platform}")
        script = render_activation_script(descriptor)
        if self._dry_run:
            log_info("session_rendered", **make_event("materialize", descriptor.output, {"platform": str(platform)}))
            return RunningSession(platform, script)

        with tempfile.TemporaryDirectory(prefix="lib_layered_env-") as tmp:
            rcfile = Path(tmp) / "activate.sh"
            rcfile.write_text(script, encoding="utf-8")
            command, env = self._command(rcfile, Path(tmp))
            env.update(descriptor.env)
            env["LIB_LAYERED_ENV_ACTIVE"] = descriptor.output
            try:
                completed = self._runner(command, env=env, check=False)
            except OSError as exc:
                log_error("session_failed", **make_event("materialize", descriptor.output, {"shell": self._shell, "error": str(exc)}))
                raise MaterializeError(f"Cannot start shell {self._shell!r}: {exc}") from exc
        log_info("session_finished", **make_event("materialize", descriptor.output, {"returncode": completed.returncode}))
        return RunningSession(platform, script, completed.returncode)

    def _command(self, rcfile: Path, workdir: Path) -> tuple[Sequence[str], dict[str, str]]:
        env = dict(self._environ)
        kind = Path(self._shell).name
        if kind == "bash":
            return [self._shell, "--rcfile", str(rcfile), "-i"], env
        if kind == "zsh":
            # zsh reads $ZDOTDIR/.zshrc for interactive sessions.
            (workdir / ".zshrc").write_text(f"source {shlex.quote(str(rcfile))}\n", encoding="utf-8")
            env["ZDOTDIR"] = str(workdir)
            return [self._shell, "-i"], env
        if kind == "fish":
            return [self._shell, "--init-command", f"source {shlex.quote(str(rcfile))}", "-i"], env
        if kind in POSIX_ENV_SHELLS:
            env["ENV"] = str(rcfile)
            return [self._shell, "-i"], env
        raise MaterializeError(f"Cannot apply startup actions in shell {self._shell!r}")
