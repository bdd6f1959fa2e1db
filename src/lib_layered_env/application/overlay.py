"""Overlay engine.

Purpose
-------
Apply an ordered sequence of overlays to a base snapshot. Each overlay may add,
replace or shadow entries by name and never removes entries it does not name.
The engine is a single deterministic fold with no I/O; importing overlays
(``from = "<source>"``) is expanded by the composition root before the fold.

Contents
    - ``apply_overlays``: fold over overlays, returning a new snapshot.
    - ``apply_overlay``: apply one overlay's operations to a working dict.
    - ``overlay_from_snapshot``: build ``Add`` operations from another snapshot.
"""

from __future__ import annotations

from typing import Iterable

from ..domain.errors import OverlayTargetMissing
from ..domain.model import Add, Overlay, Package, Replace, Shadow, Snapshot
from ..observability import log_debug, make_event


def apply_overlays(base: Snapshot, overlays: Iterable[Overlay]) -> Snapshot:
    """Return *base* transformed by *overlays* in order.

    Overlay *i+1* sees the package set as modified by overlay *i*; the last
    write to a name wins. Raises :class:`OverlayTargetMissing` when a
    ``Replace`` or ``Shadow`` names an entry that does not exist at that point.

    Examples
    --------
    >>> base = Snapshot("base", {"cc": Package("cc", "1", "/cc/lib")})
    >>> tool = Package("tool", "1.2", "/tool/lib")
    >>> out = apply_overlays(base, [Overlay("extra", "base", (Add(tool),))])
    >>> list(out)
    ['cc', 'tool']
    >>> base is out, list(base)
    (False, ['cc'])
    """

    packages = dict(base)
    applied = 0
    for overlay in overlays:
        apply_overlay(packages, overlay)
        applied += 1
    if not applied:
        return base
    return base.evolve(packages)


def apply_overlay(packages: dict[str, Package], overlay: Overlay) -> None:
    """Apply the operations of *overlay* to *packages* in place."""

    for op in overlay.ops:
        if isinstance(op, Add):
            packages[op.key] = op.package
        elif isinstance(op, Replace):
            current = packages.get(op.name)
            if current is None:
                raise OverlayTargetMissing(overlay.name, op.name)
            packages[op.name] = current.with_changes(op.changes)
        elif isinstance(op, Shadow):
            target = packages.get(op.target)
            if target is None:
                raise OverlayTargetMissing(overlay.name, op.target)
            packages[op.name] = target
        else:
            raise TypeError(f"Unsupported overlay operation: {op!r}")
    log_debug("overlay_applied", **make_event("overlay", overlay.name, {"base": overlay.base, "touched": sorted(overlay.touched())}))


def overlay_from_snapshot(overlay: Overlay, provider: Snapshot) -> Overlay:
    """Return *overlay* with one ``Add`` per entry of *provider* prepended.

    Explicit operations declared on the overlay run after the imported ones.
    """

    imported = tuple(Add(package, name) for name, package in provider.items())
    return Overlay(overlay.name, overlay.base, imported + overlay.ops)
