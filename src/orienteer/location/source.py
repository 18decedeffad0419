"""
Location source contracts.

The engine never talks to platform permission or GPS APIs directly. A platform
adapter implements `LocationSource`: a permission query plus a push-style
subscription that can be cancelled. `LocationStreamSupervisor` turns that into a
pull-based async stream.

`ReplayLocationSource` replays a recorded track and is what the CLI simulator and
the tests use in place of a device.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Protocol

from orienteer.core.geo import GeoPoint

logger = logging.getLogger(__name__)

SampleCallback = Callable[[GeoPoint], None]
ErrorCallback = Callable[[BaseException], None]


class LocationSubscription(Protocol):
    def cancel(self) -> None:
        """Stop delivering samples and release the platform handle; safe to call twice."""


class LocationSource(Protocol):
    def has_permission(self) -> bool: ...

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> LocationSubscription:
        """Start delivering samples; may raise `PermissionError` if access is refused."""
        ...


class _ReplaySubscription:
    def __init__(self, owner: "ReplayLocationSource", task: asyncio.Task):
        self._owner = owner
        self._task = task
        self._cancelled = False

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._task.cancel()
        self._owner._active -= 1


class ReplayLocationSource:
    """Delivers a fixed list of samples, `delay_seconds` apart, on the running event loop."""

    def __init__(
        self,
        points: Iterable[GeoPoint],
        *,
        delay_seconds: float = 0.0,
        permission: bool = True,
    ):
        self._points = list(points)
        self._delay_seconds = float(delay_seconds)
        self._permission = permission
        self._active = 0

    @property
    def active_subscriptions(self) -> int:
        return self._active

    def has_permission(self) -> bool:
        return self._permission

    def subscribe(self, on_sample: SampleCallback, on_error: ErrorCallback) -> LocationSubscription:
        if not self._permission:
            raise PermissionError("Location permission not granted")
        task = asyncio.get_running_loop().create_task(self._replay(on_sample, on_error))
        self._active += 1
        return _ReplaySubscription(self, task)

    async def _replay(self, on_sample: SampleCallback, on_error: ErrorCallback) -> None:
        try:
            for point in self._points:
                on_sample(point)
                await asyncio.sleep(self._delay_seconds)
        except Exception as exc:
            logger.warning("Replay location source failed: %s", exc)
            on_error(exc)
