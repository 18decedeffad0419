"""
Hunt catalog sources and the per-session catalog cache.

A `HuntSource` is anything that can list hunts and fetch one by id: the local JSON
file, the remote API client, or the in-process hunt service. `HuntCatalog` sits in
front of a source so a session loads each hunt once and then reads it from memory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from orienteer.catalog.loader import load_hunts
from orienteer.core.observable import StateStore
from orienteer.domain.models import Hunt, HuntFilter
from orienteer.errors import HuntNotFoundError

logger = logging.getLogger(__name__)


class HuntSource(Protocol):
    async def list_hunts(self, hunt_filter: HuntFilter | None = None) -> list[Hunt]: ...

    async def get_hunt(self, hunt_id: str) -> Hunt: ...


class JsonFileHuntSource:
    """Serves hunts from a local catalog file, read on first use."""

    def __init__(self, path: str | Path):
        self._path = path
        self._hunts: dict[str, Hunt] | None = None

    def _load(self) -> dict[str, Hunt]:
        if self._hunts is None:
            self._hunts = {h.id: h for h in load_hunts(self._path)}
            logger.debug("Loaded %d hunts from %s", len(self._hunts), self._path)
        return self._hunts

    async def list_hunts(self, hunt_filter: HuntFilter | None = None) -> list[Hunt]:
        hunts = list(self._load().values())
        if hunt_filter is None:
            return hunts
        return [h for h in hunts if hunt_filter.matches(h)]

    async def get_hunt(self, hunt_id: str) -> Hunt:
        hunt = self._load().get(hunt_id)
        if hunt is None:
            raise HuntNotFoundError(hunt_id)
        return hunt


class HuntCatalog:
    """Session cache of hunts; `hunts` is observable for list screens."""

    def __init__(self, source: HuntSource):
        self._source = source
        self.hunts: StateStore[tuple[Hunt, ...]] = StateStore(())

    async def refresh(self, hunt_filter: HuntFilter | None = None) -> list[Hunt]:
        """Fetch a (possibly filtered) list, merge it into the cache and return it."""
        hunts = await self._source.list_hunts(hunt_filter)
        self.hunts.update(lambda cached: _merge(cached, hunts))
        return hunts

    def cached(self, hunt_id: str) -> Hunt | None:
        return next((h for h in self.hunts.value if h.id == hunt_id), None)

    async def get_hunt(self, hunt_id: str) -> Hunt:
        cached = self.cached(hunt_id)
        # List payloads may carry summaries only; a hunt without waypoints is refetched.
        if cached is not None and cached.waypoints:
            return cached
        hunt = await self._source.get_hunt(hunt_id)
        self.hunts.update(lambda hunts: (*(h for h in hunts if h.id != hunt.id), hunt))
        return hunt

    async def active_hunts(self) -> list[Hunt]:
        if not self.hunts.value:
            await self.refresh()
        return [h for h in self.hunts.value if h.active]


def _merge(cached: tuple[Hunt, ...], fetched: list[Hunt]) -> tuple[Hunt, ...]:
    merged = {h.id: h for h in cached}
    for hunt in fetched:
        known = merged.get(hunt.id)
        # A summary entry never replaces a fully loaded hunt.
        if known is not None and known.waypoints and not hunt.waypoints:
            continue
        merged[hunt.id] = hunt
    return tuple(merged.values())
