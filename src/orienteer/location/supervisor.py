"""
Location stream supervisor.

Wraps a push-style `LocationSource` behind a cancelable async iterator:

    async with supervisor.open() as stream:
        async for point in stream:
            ...

Guarantees:
- the platform subscription is acquired on enter (or first iteration) and released
  exactly once: on `close()`/`aclose()`, on task cancellation, on stream error, or
  on context exit;
- callbacks that race with cancellation are dropped, never delivered late;
- samples pass through a `SampleThrottle` (time + distance gate);
- last sample wins: a slow consumer only ever sees the newest accepted sample, there
  is no backlog;
- missing permission is terminal (`PermissionDeniedError`), not retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from orienteer.config.settings import Settings
from orienteer.core.geo import GeoPoint
from orienteer.errors import PermissionDeniedError
from orienteer.location.source import LocationSource, LocationSubscription
from orienteer.location.throttle import SampleThrottle

logger = logging.getLogger(__name__)


class LocationStream:
    """One subscription's worth of samples. Not reusable after close."""

    def __init__(self, source: LocationSource, throttle: SampleThrottle):
        self._source = source
        self._throttle = throttle
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscription: LocationSubscription | None = None
        self._pending: GeoPoint | None = None
        self._error: BaseException | None = None
        self._wakeup = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active(self) -> bool:
        return self._subscription is not None and not self._closed

    def _acquire(self) -> None:
        if self._closed or self._subscription is not None:
            return
        if not self._source.has_permission():
            self._closed = True
            raise PermissionDeniedError("Location permission not granted")
        self._loop = asyncio.get_running_loop()
        try:
            self._subscription = self._source.subscribe(self._on_sample, self._on_error)
        except PermissionError as exc:
            self._closed = True
            raise PermissionDeniedError("Location permission not granted") from exc
        logger.debug("Location stream started")

    def close(self) -> None:
        """Release the platform subscription now; pending and late samples are dropped."""
        if self._closed and self._subscription is None:
            return
        self._closed = True
        subscription, self._subscription = self._subscription, None
        self._pending = None
        if subscription is not None:
            subscription.cancel()
            logger.debug("Location stream released")
        self._wakeup.set()

    async def aclose(self) -> None:
        self.close()

    # Platform callbacks may arrive from another thread; hop onto the loop first.
    def _on_sample(self, point: GeoPoint) -> None:
        if self._closed or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._push, point)

    def _on_error(self, exc: BaseException) -> None:
        if self._closed or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._fail, exc)

    def _push(self, point: GeoPoint) -> None:
        if self._closed:
            return
        if not self._throttle.accept(point):
            return
        self._pending = point
        self._wakeup.set()

    def _fail(self, exc: BaseException) -> None:
        if self._closed:
            return
        if isinstance(exc, PermissionError):
            exc = PermissionDeniedError("Location permission revoked")
        self._error = exc
        self._wakeup.set()

    async def __aenter__(self) -> "LocationStream":
        self._acquire()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> "LocationStream":
        return self

    async def __anext__(self) -> GeoPoint:
        self._acquire()
        while True:
            if self._error is not None:
                error, self._error = self._error, None
                self.close()
                raise error
            if self._closed:
                raise StopAsyncIteration
            if self._pending is not None:
                point, self._pending = self._pending, None
                return point
            self._wakeup.clear()
            try:
                await self._wakeup.wait()
            except asyncio.CancelledError:
                self.close()
                raise


class LocationStreamSupervisor:
    """Factory for throttled `LocationStream`s over one platform source."""

    def __init__(
        self,
        source: LocationSource,
        *,
        min_interval_ms: int = 5000,
        min_distance_m: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._min_interval_ms = min_interval_ms
        self._min_distance_m = min_distance_m
        self._clock = clock

    @classmethod
    def from_settings(cls, source: LocationSource, settings: Settings) -> "LocationStreamSupervisor":
        return cls(
            source,
            min_interval_ms=settings.location.min_interval_ms,
            min_distance_m=settings.location.min_distance_m,
        )

    def has_permission(self) -> bool:
        return self._source.has_permission()

    def open(self) -> LocationStream:
        """Return a new, not yet subscribed stream; enter it (or iterate it) to subscribe."""
        throttle = SampleThrottle(
            min_interval_ms=self._min_interval_ms,
            min_distance_m=self._min_distance_m,
            clock=self._clock,
        )
        return LocationStream(self._source, throttle)

