"""Composition root for ``lib_layered_env``.

Purpose
-------
Provide the entry points that wire document loading, source resolution,
overlays, platform expansion and composition together. Adapters are chosen
here and nowhere else.

Contents
--------
* :func:`discover_document` / :func:`load_document` – find and parse the
  environment document.
* :func:`load_settings` – layered settings (defaults → document → env).
* :func:`default_fetchers` – scheme → fetcher wiring.
* :func:`overlaid_snapshot` / :func:`snapshots_for_output` – resolve and
  overlay the sources an output needs.
* :func:`build_environment` – one output, one platform, fail-fast.
* :func:`build_matrix` – one output, many platforms, partial failure.

System Role
-----------
The CLI creates one :class:`ResolutionCache` per invocation and passes it to
these functions, which keeps source resolution idempotent for the lifetime of
that invocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from .adapters.document.parser import parse_document
from .adapters.env.default import ENV_PREFIX, DefaultEnvLoader
from .adapters.file_loaders.structured import loader_for
from .adapters.sources.local import PathSourceFetcher
from .application.compose import compose_config
from .application.expand import expand, expand_platform
from .application.merge import merge_layers
from .application.overlay import apply_overlays, overlay_from_snapshot
from .application.ports import EnvLoader, SourceFetcher
from .application.registry import ResolutionCache, SourceRegistry
from .domain.descriptor import EnvironmentDescriptor
from .domain.errors import InvalidDocument, NotFound, UnsupportedPlatform
from .domain.model import Document, OutputSpec, Snapshot, TargetPlatform, split_dependency
from .observability import log_debug, log_info, make_event

DOCUMENT_NAMES = ("devenv.toml", "devenv.json", "devenv.yaml", "devenv.yml")

DEFAULT_SETTINGS: Mapping[str, Any] = {
    "output": "default",
    "platform": None,
    "shell": None,
    "max_workers": 1,
}


@dataclass(frozen=True, slots=True)
class Settings:
    """Effective settings after layering."""

    output: str
    platform: str | None
    shell: str | None
    max_workers: int

    def target_platform(self) -> TargetPlatform:
        """Return the configured platform, or the running host's."""

        if self.platform:
            return TargetPlatform.parse(self.platform)
        return TargetPlatform.current()


def discover_document(start_dir: str | Path | None = None) -> Path:
    """Return the nearest environment document walking up from *start_dir*.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> nested = Path(tmp.name) / "a" / "b"
    >>> nested.mkdir(parents=True)
    >>> _ = (Path(tmp.name) / "devenv.toml").write_text("", encoding="utf-8")
    >>> discover_document(nested).name
    'devenv.toml'
    >>> tmp.cleanup()
    """

    base = Path(start_dir) if start_dir else Path.cwd()
    for directory in [base, *base.parents]:
        for name in DOCUMENT_NAMES:
            candidate = directory / name
            if candidate.is_file():
                log_debug("document_discovered", **make_event("load", None, {"path": str(candidate)}))
                return candidate
    raise NotFound(f"No {' / '.join(DOCUMENT_NAMES)} found in {base} or its parents")


def load_document(path: str | Path) -> Document:
    """Load and parse the environment document at *path*."""

    data = loader_for(path).load(str(path))
    document = parse_document(data, path=str(path))
    log_info(
        "document_parsed",
        **make_event("load", None, {"path": str(path), "sources": len(document.sources), "outputs": len(document.outputs)}),
    )
    return document


def load_settings(
    document: Document | None = None,
    *,
    env_loader: EnvLoader | None = None,
) -> tuple[Settings, dict[str, dict[str, object]]]:
    """Return effective settings plus per-key provenance.

    Precedence: built-in defaults, then the document's ``[settings]`` table,
    then ``LIB_LAYERED_ENV_*`` variables.
    """

    layers: list[tuple[str, Mapping[str, object], str | None]] = [("defaults", DEFAULT_SETTINGS, None)]
    if document is not None and document.settings:
        layers.append(("document", document.settings, document.path))
    try:
        env_data = (env_loader or DefaultEnvLoader()).load(ENV_PREFIX)
    except ValueError as exc:
        raise InvalidDocument(f"Invalid {ENV_PREFIX}_* variables: {exc}") from exc
    if env_data:
        layers.append(("env", env_data, None))
    merged, meta = merge_layers(layers)
    try:
        platform = str(TargetPlatform.parse(str(merged["platform"]))) if merged.get("platform") else None
        settings = Settings(
            output=str(merged["output"]),
            platform=platform,
            shell=str(merged["shell"]) if merged.get("shell") else None,
            max_workers=int(merged.get("max_workers") or 1),  # type: ignore[arg-type]
        )
    except (TypeError, ValueError) as exc:
        raise InvalidDocument(f"Invalid settings: {exc}") from exc
    return settings, meta


def default_fetchers(base_dir: str | Path | None = None) -> dict[str, SourceFetcher]:
    """Return the scheme → fetcher mapping used by the CLI."""

    local = PathSourceFetcher(base_dir=base_dir)
    return {"path": local, "file": local}


def make_registry(
    document: Document,
    cache: ResolutionCache,
    *,
    fetchers: Mapping[str, SourceFetcher] | None = None,
) -> SourceRegistry:
    """Build the registry for *document*; relative locators resolve next to it."""

    if fetchers is None:
        base_dir = Path(document.path).parent if document.path else None
        fetchers = default_fetchers(base_dir)
    return SourceRegistry(document.sources, fetchers=fetchers, cache=cache)


def overlaid_snapshot(registry: SourceRegistry, document: Document, source: str) -> Snapshot:
    """Resolve *source* and apply the overlays attached to it, in order."""

    base = registry.resolve(source)
    overlays = []
    for overlay in document.overlays_for(source):
        if overlay.import_from is not None:
            overlay = overlay_from_snapshot(overlay, registry.resolve(overlay.import_from))
        overlays.append(overlay)
    snapshot = apply_overlays(base, overlays)
    if overlays:
        log_debug("overlays_applied", **make_event("overlay", source, {"overlays": [o.name for o in overlays], "digest": snapshot.digest}))
    return snapshot


def snapshots_for_output(registry: SourceRegistry, document: Document, output: OutputSpec) -> dict[str, Snapshot]:
    """Return overlaid snapshots for every source *output* draws from."""

    needed = [output.source]
    for dependency in output.packages:
        source, _ = split_dependency(dependency, output.source)
        if source not in needed:
            needed.append(source)
    return {source: overlaid_snapshot(registry, document, source) for source in needed}


def get_output(document: Document, name: str) -> OutputSpec:
    try:
        return document.outputs[name]
    except KeyError as exc:
        known = ", ".join(document.outputs) or "none"
        raise InvalidDocument(f"Output {name!r} is not declared (known: {known})") from exc


def build_environment(
    document: Document,
    output_name: str,
    platform: TargetPlatform,
    *,
    cache: ResolutionCache,
    fetchers: Mapping[str, SourceFetcher] | None = None,
) -> EnvironmentDescriptor:
    """Compose *output_name* for a single *platform*.

    Every error is fatal here, including :class:`UnsupportedPlatform`.
    """

    output = get_output(document, output_name)
    registry = make_registry(document, cache, fetchers=fetchers)
    snapshots = snapshots_for_output(registry, document, output)
    descriptor = compose_config(expand_platform(platform, output, snapshots))
    log_info("environment_built", **make_event("compose", output_name, {"platform": str(platform), "dependencies": len(descriptor.dependencies)}))
    return descriptor


def build_matrix(
    document: Document,
    output_name: str,
    platforms: Iterable[TargetPlatform | str] | None = None,
    *,
    cache: ResolutionCache,
    fetchers: Mapping[str, SourceFetcher] | None = None,
    max_workers: int | None = None,
) -> tuple[dict[str, EnvironmentDescriptor], tuple[UnsupportedPlatform, ...]]:
    """Compose *output_name* for each platform (default: the document's matrix).

    Unsupported platforms are returned alongside the successes; any other
    error aborts the whole call.
    """

    output = get_output(document, output_name)
    registry = make_registry(document, cache, fetchers=fetchers)
    snapshots = snapshots_for_output(registry, document, output)
    result = expand(platforms if platforms is not None else document.platforms, output, snapshots, max_workers=max_workers)
    descriptors = {platform: compose_config(config) for platform, config in result.configs.items()}
    log_info("matrix_built", **make_event("compose", output_name, {"platforms": list(descriptors), "unsupported": len(result.errors)}))
    return descriptors, result.errors


__all__ = [
    "DOCUMENT_NAMES",
    "Settings",
    "build_environment",
    "build_matrix",
    "default_fetchers",
    "discover_document",
    "get_output",
    "load_document",
    "load_settings",
    "make_registry",
    "overlaid_snapshot",
    "snapshots_for_output",
]
