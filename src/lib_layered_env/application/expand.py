"""Target matrix expander.

Purpose
-------
Specialise an output for each requested target platform. Every platform is
expanded independently: a dependency without a variant for a platform fails
that platform only, and the failure is collected rather than raised.

Contents
    - ``expand``: public entry point returning an :class:`ExpansionResult`.
    - ``expand_platform``: single-platform specialisation (raises).
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Mapping

from ..domain.descriptor import ExpansionResult, ResolvedConfig
from ..domain.errors import UnsupportedPlatform
from ..domain.model import OutputSpec, Package, Snapshot, TargetPlatform, split_dependency
from ..observability import log_debug, log_warning, make_event


def expand_platform(
    platform: TargetPlatform,
    output: OutputSpec,
    snapshots: Mapping[str, Snapshot],
) -> ResolvedConfig:
    """Return *output* specialised for *platform*.

    Only the requested dependencies are specialised; other entries are left
    untouched so an unrelated unsupported package never fails a platform.
    Names missing from the snapshots are left for the composer to report.
    """

    target = str(platform)
    tables: dict[str, dict[str, Package]] = {}
    for dependency in output.packages:
        source, name = split_dependency(dependency, output.source)
        snapshot = snapshots.get(source)
        if snapshot is None or name not in snapshot:
            continue
        table = tables.setdefault(source, dict(snapshot))
        package = table[name]
        if not package.supports(target):
            raise UnsupportedPlatform(target, dependency)
        table[name] = package.for_platform(target)
    specialised = {
        source: snapshot.evolve(tables[source]) if source in tables else snapshot
        for source, snapshot in snapshots.items()
    }
    return ResolvedConfig(platform, specialised, output)


def expand(
    platforms: Iterable[TargetPlatform | str],
    output: OutputSpec,
    snapshots: Snapshot | Mapping[str, Snapshot],
    *,
    max_workers: int | None = None,
) -> ExpansionResult:
    """Expand *output* against every platform in *platforms*.

    Parameters
    ----------
    platforms:
        Target platforms; duplicates are ignored, request order is kept.
    snapshots:
        Overlaid snapshots keyed by source name, or a single snapshot.
    max_workers:
        When greater than one, platforms are expanded in a thread pool. Each
        individual expansion stays sequential.

    Examples
    --------
    >>> snap = Snapshot("base", {"gl": Package("gl", "1", "/gl/lib", platforms=("x86_64-linux",))})
    >>> result = expand(["x86_64-linux", "aarch64-darwin"], OutputSpec("dev", "base", ("gl",)), snap)
    >>> list(result.configs), [err.platform for err in result.errors]
    (['x86_64-linux'], ['aarch64-darwin'])
    """

    if isinstance(snapshots, Snapshot):
        snapshots = {snapshots.source: snapshots}
    ordered: list[TargetPlatform] = []
    for item in platforms:
        platform = item if isinstance(item, TargetPlatform) else TargetPlatform.parse(item)
        if platform not in ordered:
            ordered.append(platform)

    def _attempt(platform: TargetPlatform) -> ResolvedConfig | UnsupportedPlatform:
        try:
            return expand_platform(platform, output, snapshots)
        except UnsupportedPlatform as exc:
            return exc

    if max_workers is not None and max_workers > 1 and len(ordered) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(_attempt, ordered))
    else:
        outcomes = [_attempt(platform) for platform in ordered]

    configs: dict[str, ResolvedConfig] = {}
    errors: list[UnsupportedPlatform] = []
    for platform, outcome in zip(ordered, outcomes):
        if isinstance(outcome, UnsupportedPlatform):
            log_warning("platform_unsupported", **make_event("expand", str(platform), {"package": outcome.package, "output": output.name}))
            errors.append(outcome)
        else:
            configs[str(platform)] = outcome
    log_debug("matrix_expanded", **make_event("expand", output.name, {"ok": len(configs), "failed": len(errors)}))
    return ExpansionResult(configs, errors)
