"""Translate loaded mappings into domain objects.

Purpose
-------
Environment documents and package sets arrive as plain mappings from the
structured loaders. This adapter validates their shape and builds the frozen
domain objects, raising :class:`InvalidDocument` with the offending key path.

Contents
--------
* :func:`parse_document` – environment document → :class:`Document`.
* :func:`parse_package_set` – package-set document → ``{name: Package}``.
* :func:`parse_package` – one package table.

Document shape (TOML shown, JSON/YAML equivalent)::

    platforms = ["x86_64-linux"]
    [settings]
    [sources.<name>]        url, rev | follows
    [[overlays]]            name, base, from, ops, add, replace, shadow
    [outputs.<name>]        source, packages, derive, env, startup, aliases, shell_hook

Within one output, startup actions are ordered ``startup`` entries, then
``aliases``, then ``shell_hook``. Within one overlay, explicit ``ops`` run
first, then the ``add``, ``replace`` and ``shadow`` shorthand tables.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ...domain.errors import InvalidDocument
from ...domain.model import (
    DEFAULT_PLATFORMS,
    Add,
    Document,
    EnvVarSpec,
    Locator,
    Overlay,
    OverlayOp,
    OutputSpec,
    Package,
    Replace,
    Shadow,
    Source,
    StartupAction,
    TargetPlatform,
)

_PACKAGE_KEYS = frozenset({"version", "prefix", "lib_dir", "include_dir", "bin_dir", "platforms", "variants"})
_VARIANT_KEYS = frozenset({"version", "lib_dir", "include_dir", "bin_dir"})


def parse_document(data: Mapping[str, Any], *, path: str | None = None) -> Document:
    """Build a :class:`Document` from a loaded mapping.

    Examples
    --------
    >>> doc = parse_document({
    ...     "sources": {"base": {"url": "path:./pkgs.toml"}},
    ...     "outputs": {"default": {"packages": ["cc"], "aliases": {"ls": "eza"}}},
    ... })
    >>> doc.outputs["default"].source, doc.outputs["default"].startup[0].text
    ('base', 'alias ls=eza')
    """

    sources = _parse_sources(_table(data, "sources", required=True))
    overlays = _parse_overlays(data.get("overlays", ()), sources)
    default_source = next(iter(sources))
    outputs_table = _table(data, "outputs", required=True)
    outputs = {name: _parse_output(name, body, sources, default_source) for name, body in outputs_table.items()}
    platforms = _parse_platforms(data.get("platforms"))
    settings = _table(data, "settings", required=False)
    return Document(sources, overlays, outputs, platforms, settings, path)


def parse_package_set(data: Mapping[str, Any], *, origin: str = "<memory>") -> dict[str, Package]:
    """Build the package table published by a package-set document.

    Examples
    --------
    >>> pkgs = parse_package_set({"packages": {"eza": {"version": "0.18", "prefix": "/store/eza"}}})
    >>> pkgs["eza"].lib_dir, pkgs["eza"].bin_dir
    ('/store/eza/lib', '/store/eza/bin')
    """

    table = data.get("packages")
    if not isinstance(table, Mapping):
        raise InvalidDocument(f"{origin}: expected a 'packages' table")
    return {str(name): parse_package(str(name), body, where=f"{origin}: packages.{name}") for name, body in table.items()}


def parse_package(name: str, body: Any, *, where: str | None = None) -> Package:
    """Build one :class:`Package` from its table.

    ``prefix`` fills in ``lib_dir``/``include_dir``/``bin_dir`` as
    ``<prefix>/lib``, ``<prefix>/include`` and ``<prefix>/bin`` unless they
    are given explicitly.
    """

    where = where or f"packages.{name}"
    if not isinstance(body, Mapping):
        raise InvalidDocument(f"{where}: expected a table")
    unknown = set(body) - _PACKAGE_KEYS
    if unknown:
        raise InvalidDocument(f"{where}: unknown keys {', '.join(sorted(unknown))}")
    prefix = body.get("prefix")
    lib_dir = body.get("lib_dir") or (f"{str(prefix).rstrip('/')}/lib" if prefix else None)
    if not lib_dir:
        raise InvalidDocument(f"{where}: needs 'lib_dir' or 'prefix'")
    include_dir = body.get("include_dir") or (f"{str(prefix).rstrip('/')}/include" if prefix else None)
    bin_dir = body.get("bin_dir") or (f"{str(prefix).rstrip('/')}/bin" if prefix else None)
    variants = _table(body, "variants", required=False, where=where)
    for platform, overrides in variants.items():
        if not isinstance(overrides, Mapping) or set(overrides) - _VARIANT_KEYS:
            raise InvalidDocument(f"{where}.variants.{platform}: may only override {', '.join(sorted(_VARIANT_KEYS))}")
    return Package(
        name=name,
        version=str(body.get("version", "0")),
        lib_dir=str(lib_dir),
        include_dir=str(include_dir) if include_dir else None,
        bin_dir=str(bin_dir) if bin_dir else None,
        platforms=tuple(_string_list(body.get("platforms", ()), f"{where}.platforms")),
        variants={str(key): {k: str(v) for k, v in value.items()} for key, value in variants.items()},
    )


def _parse_sources(table: Mapping[str, Any]) -> dict[str, Source]:
    if not table:
        raise InvalidDocument("sources: at least one source must be declared")
    sources: dict[str, Source] = {}
    for name, body in table.items():
        if isinstance(body, str):
            body = {"url": body}
        if not isinstance(body, Mapping):
            raise InvalidDocument(f"sources.{name}: expected a table or a url string")
        url, follows = body.get("url"), body.get("follows")
        if bool(url) == bool(follows):
            raise InvalidDocument(f"sources.{name}: declare exactly one of 'url' or 'follows'")
        if follows:
            sources[name] = Source(name, follows=str(follows))
        else:
            rev = body.get("rev")
            sources[name] = Source(name, Locator.parse(str(url), revision=str(rev) if rev else None))
    for source in sources.values():
        if source.follows and source.follows not in sources:
            raise InvalidDocument(f"sources.{source.name}: follows undeclared source {source.follows!r}")
    return sources


def _parse_overlays(raw: Any, sources: Mapping[str, Source]) -> tuple[Overlay, ...]:
    if isinstance(raw, Mapping):
        entries = [{"name": name, **dict(body)} for name, body in raw.items()]
    elif isinstance(raw, (list, tuple)):
        entries = list(raw)
    else:
        raise InvalidDocument("overlays: expected an array of tables")
    overlays: list[Overlay] = []
    for index, body in enumerate(entries):
        if not isinstance(body, Mapping):
            raise InvalidDocument(f"overlays[{index}]: expected a table")
        name = str(body.get("name") or f"overlay-{index}")
        base = body.get("base") or next(iter(sources))
        if base not in sources:
            raise InvalidDocument(f"overlays.{name}: base source {base!r} is not declared")
        import_from = body.get("from")
        if import_from is not None and import_from not in sources:
            raise InvalidDocument(f"overlays.{name}: 'from' source {import_from!r} is not declared")
        ops = _parse_ops(name, body)
        overlays.append(Overlay(name, str(base), ops, str(import_from) if import_from else None))
    return tuple(overlays)


def _parse_ops(overlay: str, body: Mapping[str, Any]) -> tuple[OverlayOp, ...]:
    ops: list[OverlayOp] = []
    for index, entry in enumerate(body.get("ops", ())):
        where = f"overlays.{overlay}.ops[{index}]"
        if not isinstance(entry, Mapping):
            raise InvalidDocument(f"{where}: expected a table")
        kind = entry.get("op")
        if kind == "add":
            package = entry.get("package")
            if not isinstance(package, Mapping) or "name" not in package:
                raise InvalidDocument(f"{where}: 'add' needs a package table with a name")
            fields = {key: value for key, value in package.items() if key != "name"}
            ops.append(Add(parse_package(str(package["name"]), fields, where=where), entry.get("name")))
        elif kind == "replace":
            ops.append(_replace_op(where, entry.get("name"), entry.get("set")))
        elif kind == "shadow":
            if not entry.get("name") or not entry.get("target"):
                raise InvalidDocument(f"{where}: 'shadow' needs 'name' and 'target'")
            ops.append(Shadow(str(entry["name"]), str(entry["target"])))
        else:
            raise InvalidDocument(f"{where}: unknown op {kind!r}; expected add, replace or shadow")
    for name, fields in _table(body, "add", required=False).items():
        ops.append(Add(parse_package(str(name), fields, where=f"overlays.{overlay}.add.{name}")))
    for name, changes in _table(body, "replace", required=False).items():
        ops.append(_replace_op(f"overlays.{overlay}.replace.{name}", name, changes))
    for name, target in _table(body, "shadow", required=False).items():
        ops.append(Shadow(str(name), str(target)))
    return tuple(ops)


def _replace_op(where: str, name: Any, changes: Any) -> Replace:
    if not name or not isinstance(changes, Mapping) or not changes:
        raise InvalidDocument(f"{where}: 'replace' needs a name and a non-empty table of changes")
    unknown = set(changes) - (_VARIANT_KEYS | {"platforms"})
    if unknown:
        raise InvalidDocument(f"{where}: cannot replace {', '.join(sorted(unknown))}")
    normalised: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "platforms":
            normalised[key] = tuple(_string_list(value, f"{where}.platforms"))
        else:
            normalised[key] = str(value)
    return Replace(str(name), normalised)


def _parse_output(name: str, body: Any, sources: Mapping[str, Source], default_source: str) -> OutputSpec:
    where = f"outputs.{name}"
    if not isinstance(body, Mapping):
        raise InvalidDocument(f"{where}: expected a table")
    source = str(body.get("source") or default_source)
    if source not in sources:
        raise InvalidDocument(f"{where}: source {source!r} is not declared")
    packages = _string_list(body.get("packages", ()), f"{where}.packages")
    for requested in packages:
        qualifier, sep, _ = requested.partition(":")
        if sep and qualifier not in sources:
            raise InvalidDocument(f"{where}.packages: {requested!r} names undeclared source {qualifier!r}")

    derive: list[EnvVarSpec] = []
    for var, rule in _table(body, "derive", required=False, where=where).items():
        try:
            if isinstance(rule, Mapping):
                derive.append(EnvVarSpec(str(var), str(rule.get("rule")), rule.get("value")))
            else:
                derive.append(EnvVarSpec(str(var), str(rule)))
        except ValueError as exc:
            raise InvalidDocument(f"{where}.derive.{var}: {exc}") from exc
    for var, value in _table(body, "env", required=False, where=where).items():
        derive.append(EnvVarSpec(str(var), "literal", str(value)))

    startup: list[StartupAction] = []
    raw_startup = body.get("startup", {})
    if isinstance(raw_startup, Mapping):
        startup.extend(StartupAction(str(key), str(text)) for key, text in raw_startup.items())
    elif isinstance(raw_startup, (list, tuple)):
        for index, entry in enumerate(raw_startup):
            if not isinstance(entry, Mapping) or "text" not in entry:
                raise InvalidDocument(f"{where}.startup[{index}]: expected a table with 'text'")
            startup.append(StartupAction(str(entry.get("name") or f"startup-{index}"), str(entry["text"])))
    else:
        raise InvalidDocument(f"{where}.startup: expected a table or an array")
    for alias, command in _table(body, "aliases", required=False, where=where).items():
        startup.append(StartupAction(f"alias:{alias}", f"alias {alias}={command}"))
    if body.get("shell_hook"):
        startup.append(StartupAction("shell_hook", str(body["shell_hook"])))

    return OutputSpec(name, source, tuple(packages), tuple(derive), tuple(startup))


def _parse_platforms(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return DEFAULT_PLATFORMS
    values = _string_list(raw, "platforms")
    try:
        return tuple(str(TargetPlatform.parse(value)) for value in values)
    except ValueError as exc:
        raise InvalidDocument(f"platforms: {exc}") from exc


def _table(data: Mapping[str, Any], key: str, *, required: bool, where: str | None = None) -> Mapping[str, Any]:
    value = data.get(key)
    label = f"{where}.{key}" if where else key
    if value is None:
        if required:
            raise InvalidDocument(f"{label}: missing table")
        return {}
    if not isinstance(value, Mapping):
        raise InvalidDocument(f"{label}: expected a table")
    return value


def _string_list(raw: Any, label: str) -> list[str]:
    if isinstance(raw, str) or not isinstance(raw, (list, tuple)):
        raise InvalidDocument(f"{label}: expected an array of strings")
    return [str(item) for item in raw]
