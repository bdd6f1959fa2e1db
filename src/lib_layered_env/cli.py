"""CLI adapter for ``lib_layered_env`` built on ``lib_cli_exit_tools``.

Purpose
-------
Expose the environment composer on the command line: inspect sources, print
composed descriptors, render activation scripts and start shell sessions.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command holding the document path and traceback flag.
* :func:`cli_info` – prints distribution metadata.
* :func:`cli_sources` – resolves every declared source.
* :func:`cli_show` – prints the descriptor JSON (one platform or the matrix).
* :func:`cli_hook` – prints the activation script.
* :func:`cli_shell` – materializes the session.
* :func:`cli_settings` – prints effective settings, optionally with provenance.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
Outermost layer. Domain errors are reported on stderr and mapped to distinct
exit codes (3 resolution, 4 composition, 5 materialization, 6 document);
``lib_cli_exit_tools`` handles everything unexpected.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from importlib import metadata
from pathlib import Path
from typing import Any, Final, Iterator, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .adapters.materializer.shell import ShellMaterializer, render_activation_script
from .application.registry import ResolutionCache
from .core import build_environment, build_matrix, discover_document, load_document, load_settings, make_registry
from .domain.errors import LayeredEnvError, NotFound
from .domain.model import Document, TargetPlatform
from .observability import bind_trace_id, get_logger

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000
_HANDLER_NAME: Final[str] = "lib_layered_env.cli"


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` for source checkouts."""

    try:
        return metadata.version("lib_layered_env")
    except metadata.PackageNotFoundError:
        return "0.0.0"


class _ContextFormatter(logging.Formatter):
    """Append the structured ``context`` payload to each record."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = getattr(record, "context", None)
        if context:
            return f"{base} {json.dumps(context, default=str, sort_keys=True)}"
        return base


def _configure_logging(verbose: bool) -> None:
    logger = get_logger()
    handler = next((h for h in logger.handlers if h.get_name() == _HANDLER_NAME), None)
    if not verbose:
        if handler is not None:
            logger.removeHandler(handler)
        return
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(_ContextFormatter("%(levelname)s %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn domain errors into a message on stderr and their exit code."""

    try:
        yield
    except LayeredEnvError as exc:
        if lib_cli_exit_tools.config.traceback:
            lib_cli_exit_tools.print_exception_message(trace_back=True, length_limit=_TRACEBACK_VERBOSE_LIMIT)
        else:
            click.echo(f"Error: {exc}", err=True)
        raise SystemExit(exc.exit_code) from exc


def _document(ctx: click.Context) -> Document:
    state = ctx.obj
    if state.get("document") is None:
        path = state.get("file") or discover_document()
        state["document"] = load_document(path)
    return state["document"]


def _platform(value: Optional[str], fallback: TargetPlatform) -> TargetPlatform:
    if not value:
        return fallback
    try:
        return TargetPlatform.parse(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--platform") from exc


@click.group(
    help="Declarative development-environment composer",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="lib_layered_env",
    message="lib_layered_env version %(version)s",
)
@click.option(
    "--file",
    "-f",
    "document_file",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    default=None,
    help="Environment document (defaults to the nearest devenv.toml/json/yaml)",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log composition events to stderr")
@click.pass_context
def cli(ctx: click.Context, document_file: Optional[Path], traceback: bool, verbose: bool) -> None:
    """Root command: stores shared state and a fresh resolution cache.

    The cache lives for this invocation only, so every command sees
    idempotent source resolution without any process-wide singleton.
    """

    ctx.ensure_object(dict)
    ctx.obj["file"] = document_file
    ctx.obj["document"] = None
    cache = ResolutionCache()
    ctx.obj["cache"] = cache
    ctx.call_on_close(cache.clear)
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback
    _configure_logging(verbose)
    bind_trace_id(uuid.uuid4().hex[:12])


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata("lib_layered_env")
    except metadata.PackageNotFoundError:
        click.echo("lib_layered_env (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', 'lib_layered_env')}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("sources", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
@click.pass_context
def cli_sources(ctx: click.Context, indent: Optional[int]) -> None:
    """Resolve every declared source and print its locator and digest."""

    with _reported_errors():
        document = _document(ctx)
        registry = make_registry(document, ctx.obj["cache"])
        rows: list[dict[str, Any]] = []
        for name in registry.names:
            source = registry.declared(name)
            snapshot = registry.resolve(name)
            rows.append(
                {
                    "name": name,
                    "locator": str(source.locator) if source.locator else None,
                    "rev": source.locator.revision if source.locator else None,
                    "follows": source.follows,
                    "digest": snapshot.digest,
                    "packages": len(snapshot),
                }
            )
    click.echo(json.dumps(rows, indent=indent, separators=(",", ":")))


@cli.command("show", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--output", "output_name", default=None, help="Output to compose (defaults to the 'output' setting)")
@click.option("--platform", "platform_name", default=None, help="Target platform such as x86_64-linux")
@click.option("--all-platforms", is_flag=True, default=False, help="Compose for every platform in the document matrix")
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
@click.pass_context
def cli_show(
    ctx: click.Context,
    output_name: Optional[str],
    platform_name: Optional[str],
    all_platforms: bool,
    indent: Optional[int],
) -> None:
    """Print the composed environment descriptor as JSON.

    With ``--all-platforms`` the payload holds one descriptor per supported
    platform plus a ``warnings`` list naming the unsupported ones. The command
    fails only when no platform succeeds.
    """

    with _reported_errors():
        document = _document(ctx)
        settings, _ = load_settings(document)
        output = output_name or settings.output
        cache = ctx.obj["cache"]
        if not all_platforms:
            platform = _platform(platform_name, settings.target_platform())
            descriptor = build_environment(document, output, platform, cache=cache)
            click.echo(descriptor.to_json(indent=indent))
            return
        descriptors, errors = build_matrix(document, output, cache=cache, max_workers=settings.max_workers)
        if not descriptors and errors:
            raise errors[0]
    payload = {
        "environments": {platform: descriptor.as_dict() for platform, descriptor in descriptors.items()},
        "warnings": [str(error) for error in errors],
    }
    click.echo(json.dumps(payload, indent=indent, separators=(",", ":"), ensure_ascii=False))


@cli.command("hook", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--output", "output_name", default=None, help="Output to compose (defaults to the 'output' setting)")
@click.option("--platform", "platform_name", default=None, help="Target platform such as x86_64-linux")
@click.pass_context
def cli_hook(ctx: click.Context, output_name: Optional[str], platform_name: Optional[str]) -> None:
    """Print the activation script, e.g. for ``eval "$(lib_layered_env hook)"``."""

    with _reported_errors():
        document = _document(ctx)
        settings, _ = load_settings(document)
        platform = _platform(platform_name, settings.target_platform())
        descriptor = build_environment(document, output_name or settings.output, platform, cache=ctx.obj["cache"])
    click.echo(render_activation_script(descriptor), nl=False)


@cli.command("shell", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--output", "output_name", default=None, help="Output to compose (defaults to the 'output' setting)")
@click.option("--platform", "platform_name", default=None, help="Target platform such as x86_64-linux")
@click.option("--shell", "shell_path", default=None, help="Shell executable (defaults to the 'shell' setting, then $SHELL)")
@click.option("--dry-run", is_flag=True, default=False, help="Print the activation script instead of starting a shell")
@click.pass_context
def cli_shell(
    ctx: click.Context,
    output_name: Optional[str],
    platform_name: Optional[str],
    shell_path: Optional[str],
    dry_run: bool,
) -> None:
    """Compose the output for the current platform and start the session.

    Exits with the shell's own status once the session ends.
    """

    with _reported_errors():
        document = _document(ctx)
        settings, _ = load_settings(document)
        platform = _platform(platform_name, settings.target_platform())
        descriptor = build_environment(document, output_name or settings.output, platform, cache=ctx.obj["cache"])
        materializer = ShellMaterializer(shell=shell_path or settings.shell, dry_run=dry_run)
        session = materializer.materialize(descriptor, platform)
    if dry_run:
        click.echo(session.script, nl=False)
    elif session.returncode:
        raise SystemExit(session.returncode)


@cli.command("settings", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("--provenance/--no-provenance", default=False, help="Include the layer that supplied each key")
@click.option("--indent", type=int, default=None, help="Pretty-print JSON output with the provided indent size")
@click.pass_context
def cli_settings(ctx: click.Context, provenance: bool, indent: Optional[int]) -> None:
    """Print effective settings (defaults → document → LIB_LAYERED_ENV_* variables)."""

    with _reported_errors():
        try:
            document: Document | None = _document(ctx)
        except NotFound:
            document = None
        settings, meta = load_settings(document)
    data = {
        "output": settings.output,
        "platform": settings.platform,
        "shell": settings.shell,
        "max_workers": settings.max_workers,
    }
    payload: dict[str, Any] = {"settings": data, "provenance": meta} if provenance else data
    click.echo(json.dumps(payload, indent=indent, separators=(",", ":")))


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="lib_layered_env",
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
