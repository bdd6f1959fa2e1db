"""Source registry and its resolution cache.

Purpose
-------
Turn a declared source name into an immutable :class:`Snapshot`, once. The
cache is an explicit object with a defined lifetime (created by the caller,
torn down with :meth:`ResolutionCache.clear`), never a module-level singleton.

Contents
    - ``ResolutionCache``: single-writer-then-immutable store keyed by source
      name; concurrent callers for the same key wait for the first resolution.
    - ``SourceRegistry``: declares sources, dispatches fetchers by locator
      scheme, enforces revision pins and follows aliases.

System Role
-----------
The registry is the only component that performs I/O (through a
:class:`~lib_layered_env.application.ports.SourceFetcher`). It has no timeout
and never retries; callers wrap it with their own deadline.
"""

from __future__ import annotations

import threading
from typing import Callable, Iterable, Mapping

from ..domain.errors import LocatorUnreachable, ResolutionError, RevisionMismatch, UnknownSource
from ..domain.model import Source, Snapshot
from ..observability import log_debug, log_info, make_event
from .ports import SourceFetcher


class ResolutionCache:
    """Per-process store of resolved snapshots.

    Why
    ----
    Resolution must be idempotent and reference-stable, and it may be reached
    from several expansion threads at once.

    What
    ----
    ``get_or_resolve`` returns the cached snapshot or runs *resolver* under a
    per-key lock so exactly one caller performs the work. Failures are not
    cached; the next caller retries from scratch.

    Examples
    --------
    >>> cache = ResolutionCache()
    >>> snap = cache.get_or_resolve("base", lambda: Snapshot("base", {}))
    >>> cache.get_or_resolve("base", lambda: Snapshot("base", {})) is snap
    True
    >>> "base" in cache
    True
    >>> cache.clear()
    >>> len(cache)
    0
    """

    def __init__(self) -> None:
        self._entries: dict[str, Snapshot] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, name: str) -> Snapshot | None:
        return self._entries.get(name)

    def get_or_resolve(self, name: str, resolver: Callable[[], Snapshot]) -> Snapshot:
        cached = self._entries.get(name)
        if cached is not None:
            return cached
        with self._guard:
            lock = self._locks.setdefault(name, threading.Lock())
        with lock:
            cached = self._entries.get(name)
            if cached is not None:
                return cached
            snapshot = resolver()
            self._entries[name] = snapshot
            return snapshot

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()
            self._locks.clear()


class SourceRegistry:
    """Resolve declared sources to snapshots through scheme-specific fetchers.

    Parameters
    ----------
    sources:
        Declared sources keyed by name.
    fetchers:
        Mapping of locator scheme (``"path"``, ``"file"``) to fetcher.
    cache:
        The resolution cache owned by the caller.
    """

    def __init__(
        self,
        sources: Mapping[str, Source] | Iterable[Source],
        *,
        fetchers: Mapping[str, SourceFetcher],
        cache: ResolutionCache,
    ) -> None:
        if isinstance(sources, Mapping):
            self._sources = dict(sources)
        else:
            self._sources = {source.name: source for source in sources}
        self._fetchers = dict(fetchers)
        self._cache = cache

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._sources)

    def declared(self, name: str) -> Source:
        try:
            return self._sources[name]
        except KeyError as exc:
            raise UnknownSource(f"Source {name!r} is not declared", source=name) from exc

    def resolve(self, name: str) -> Snapshot:
        """Return the snapshot for *name*, resolving it on first use.

        Raises
        ------
        UnknownSource
            *name* (or a source it follows) was never declared, or follows
            form a cycle.
        LocatorUnreachable
            No fetcher handles the locator scheme, or the fetcher failed.
        RevisionMismatch
            The pinned revision is not a prefix of the fetched snapshot digest.
        """

        target = self._follow(name)
        if target != name:
            log_debug("source_follows", **make_event("resolve", name, {"follows": target}))
        return self._cache.get_or_resolve(target, lambda: self._fetch(target))

    def _follow(self, name: str) -> str:
        seen: list[str] = []
        current = name
        while True:
            source = self.declared(current)
            if source.follows is None:
                return current
            seen.append(current)
            if source.follows in seen:
                chain = " -> ".join([*seen, source.follows])
                raise UnknownSource(f"Source follows form a cycle: {chain}", source=name)
            current = source.follows

    def _fetch(self, name: str) -> Snapshot:
        source = self._sources[name]
        locator = source.locator
        if locator is None:
            raise LocatorUnreachable(f"Source {name!r} declares no locator", source=name)
        fetcher = self._fetchers.get(locator.scheme)
        if fetcher is None:
            raise LocatorUnreachable(f"No fetcher for scheme {locator.scheme!r} (source {name!r})", source=name)
        try:
            packages = fetcher.fetch(name, locator)
        except ResolutionError:
            raise
        except OSError as exc:
            raise LocatorUnreachable(f"Cannot reach {locator} for source {name!r}: {exc}", source=name) from exc
        snapshot = Snapshot(name, packages)
        if locator.revision and not snapshot.digest.startswith(locator.revision.lower()):
            raise RevisionMismatch(
                f"Source {name!r} pinned to {locator.revision} but {locator} has {snapshot.digest}",
                source=name,
                expected=locator.revision,
                actual=snapshot.digest,
            )
        log_info("source_resolved", **make_event("resolve", name, {"locator": str(locator), "digest": snapshot.digest, "packages": len(snapshot)}))
        return snapshot
