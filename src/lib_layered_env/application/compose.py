"""Environment composer.

Purpose
-------
Turn a (platform-specialised) snapshot plus an output's requested names into
an :class:`EnvironmentDescriptor`. Composition is a pure function: identical
inputs produce descriptors whose JSON form is byte-identical.

Contents
    - ``compose``: public entry point.
    - ``compose_config``: convenience wrapper for a :class:`ResolvedConfig`.
    - ``derive_variable``: computes one derived variable from the dependency list.

System Role
-----------
Runs after :mod:`lib_layered_env.application.expand`; its output crosses the
boundary to a :class:`~lib_layered_env.application.ports.Materializer`.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from ..domain.descriptor import EnvironmentDescriptor, ResolvedConfig
from ..domain.errors import DependencyNotFound
from ..domain.model import EnvVarSpec, Package, Snapshot, StartupAction, TargetPlatform, split_dependency
from ..observability import log_debug, make_event

_RULE_FIELDS = {
    "library-path": "lib_dir",
    "include-path": "include_dir",
    "bin-path": "bin_dir",
}


def compose(
    snapshot: Snapshot,
    dependency_names: Sequence[str],
    startup_actions: Iterable[StartupAction] = (),
    *,
    platform: TargetPlatform,
    env_specs: Iterable[EnvVarSpec] = (),
    output_name: str = "default",
    snapshots: Mapping[str, Snapshot] | None = None,
) -> EnvironmentDescriptor:
    """Compose the environment descriptor for one output on one platform.

    Parameters
    ----------
    snapshot:
        Overlaid snapshot that unqualified names resolve against.
    dependency_names:
        Requested names in caller order. ``source:package`` names resolve
        against *snapshots*.
    startup_actions:
        Attached verbatim in declaration order.
    platform:
        Supplies the path separator for derived search paths.
    env_specs:
        Derived variables, computed in declaration order.

    Raises
    ------
    DependencyNotFound
        A requested name is absent; no partial descriptor is returned.

    Examples
    --------
    >>> snap = Snapshot("base", {
    ...     "compiler": Package("compiler", "1", "/c/lib"),
    ...     "tool": Package("tool", "1.2", "/t/lib"),
    ... })
    >>> desc = compose(
    ...     snap,
    ...     ["base:compiler", "tool"],
    ...     platform=TargetPlatform.parse("x86_64-linux"),
    ...     env_specs=[EnvVarSpec("LD_LIBRARY_PATH", "library-path")],
    ... )
    >>> desc.dependency_names, desc.get("LD_LIBRARY_PATH")
    (('compiler', 'tool'), '/c/lib:/t/lib')
    """

    tables = dict(snapshots or {})
    tables.setdefault(snapshot.source, snapshot)

    dependencies: list[Package] = []
    seen: set[tuple[str, str, str]] = set()
    for requested in dependency_names:
        source, name = split_dependency(requested, snapshot.source)
        table = tables.get(source)
        if table is None or name not in table:
            log_debug("dependency_missing", **make_event("compose", output_name, {"dependency": requested, "source": source}))
            raise DependencyNotFound(requested, source=source)
        package = table[name]
        if package.identity in seen:
            continue
        seen.add(package.identity)
        dependencies.append(package)

    env: dict[str, str] = {}
    for spec in env_specs:
        env[spec.name] = derive_variable(spec, dependencies, platform.path_separator)

    descriptor = EnvironmentDescriptor(
        output=output_name,
        platform=platform,
        dependencies=tuple(dependencies),
        env=env,
        startup=tuple(startup_actions),
    )
    log_debug(
        "environment_composed",
        **make_event("compose", output_name, {"platform": str(platform), "dependencies": len(dependencies), "variables": len(env)}),
    )
    return descriptor


def compose_config(config: ResolvedConfig) -> EnvironmentDescriptor:
    """Compose the descriptor for an expanded :class:`ResolvedConfig`."""

    output = config.output
    return compose(
        config.snapshot,
        output.packages,
        output.startup,
        platform=config.platform,
        env_specs=output.derive,
        output_name=output.name,
        snapshots=config.snapshots,
    )


def derive_variable(spec: EnvVarSpec, dependencies: Sequence[Package], separator: str) -> str:
    """Return the value of *spec* computed from *dependencies*.

    Directory rules join each dependency's directory in dependency order,
    skipping packages without one. Duplicates are only collapsed by package
    identity in :func:`compose`, never by directory.

    Examples
    --------
    >>> deps = [Package("a", "1", "/a/lib", bin_dir="/a/bin"), Package("b", "1", "/b/lib")]
    >>> derive_variable(EnvVarSpec("PATH", "bin-path"), deps, ":")
    '/a/bin'
    >>> derive_variable(EnvVarSpec("MODE", "literal", "dev"), deps, ":")
    'dev'
    """

    if spec.rule == "literal":
        return spec.value or ""
    attribute = _RULE_FIELDS[spec.rule]
    directories: list[str] = []
    for package in dependencies:
        directory = getattr(package, attribute)
        if directory:
            directories.append(directory)
    return separator.join(directories)
