"""Position provider fed by fixes that devices push to the service.

Devices POST OwnTracks-style payloads to ``/pub``; each payload is turned
into a fix (or a provider error) and fanned out to one-shot waiters and
active watches.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from firewatch.tracker.errors import (
    LocationError,
    LocationTimeoutError,
    location_error_from_code,
)
from firewatch.tracker.location_source import (
    ErrorCallback,
    PositionCallback,
    PositionOptions,
    PositionProvider,
)
from firewatch.tracker.models import Position, utcnow

logger = structlog.get_logger()


def position_from_payload(payload: dict) -> Position:
    """Build a fix from a ``{"_type": "location", ...}`` payload.

    ``tst`` is a unix timestamp in seconds; missing means "now". Raises
    ValueError for non-numeric, non-finite or out-of-range coordinates.
    """
    tst = payload.get("tst")
    captured_at = (
        datetime.fromtimestamp(float(tst), tz=timezone.utc) if tst is not None else utcnow()
    )
    return Position(
        latitude=float(payload["lat"]),
        longitude=float(payload["lon"]),
        accuracy_m=float(payload.get("acc") or 0.0),
        captured_at=captured_at,
    )


@dataclass
class _Watch:
    id: int
    options: PositionOptions
    on_position: PositionCallback
    on_error: ErrorCallback
    last_captured_at: datetime | None = None
    last_fix_time: float = 0.0  # loop.time() of the last delivery
    watchdog: asyncio.Task | None = field(default=None, repr=False)


class PushedPositionProvider(PositionProvider):
    """PositionProvider backed by device pushes."""

    def __init__(self) -> None:
        self._last: Position | None = None
        self._waiters: list[asyncio.Future] = []
        self._watches: dict[int, _Watch] = {}
        self._ids = itertools.count(1)
        self._dispatch_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    @property
    def last_fix(self) -> Position | None:
        return self._last

    async def get_current_position(self, options: PositionOptions) -> Position:
        cached = self._last
        if cached is not None and options.maximum_age_ms > 0:
            age_ms = (utcnow() - cached.captured_at).total_seconds() * 1000
            if age_ms <= options.maximum_age_ms:
                return cached

        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            return await future
        finally:
            if future in self._waiters:
                self._waiters.remove(future)

    def watch_position(
        self,
        options: PositionOptions,
        on_position: PositionCallback,
        on_error: ErrorCallback,
    ) -> int:
        loop = asyncio.get_running_loop()
        watch = _Watch(
            id=next(self._ids),
            options=options,
            on_position=on_position,
            on_error=on_error,
            last_fix_time=loop.time(),
        )
        self._watches[watch.id] = watch

        cached = self._last
        if cached is not None and options.maximum_age_ms > 0:
            age_ms = (utcnow() - cached.captured_at).total_seconds() * 1000
            if age_ms <= options.maximum_age_ms:
                self._spawn(self._deliver(watch, cached))

        if options.timeout_ms > 0:
            watch.watchdog = self._spawn(self._watchdog(watch))
        return watch.id

    @property
    def pending_tasks(self) -> tuple[asyncio.Task, ...]:
        return tuple(self._tasks)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "provider_task_failed",
                error=str(task.exception()),
                error_type=type(task.exception()).__name__,
            )

    def clear_watch(self, watch_id: int) -> None:
        watch = self._watches.pop(watch_id, None)
        if watch is not None and watch.watchdog is not None:
            watch.watchdog.cancel()

    async def publish(self, position: Position) -> None:
        """Accept a fix from a device and fan it out."""
        self._last = position
        for future in list(self._waiters):
            if not future.done():
                future.set_result(position)
        for watch in list(self._watches.values()):
            await self._deliver(watch, position)

    async def fail(self, code: int, detail: str | None = None) -> None:
        """Report a device-side geolocation error (browser error codes)."""
        logger.info("device_location_error", code=code, detail=detail)
        for future in list(self._waiters):
            if not future.done():
                future.set_exception(location_error_from_code(code, detail))
        for watch in list(self._watches.values()):
            await self._deliver_error(watch, location_error_from_code(code, detail))

    async def _deliver(self, watch: _Watch, position: Position) -> None:
        async with self._dispatch_lock:
            if watch.id not in self._watches:
                return
            # Keep each watch in non-decreasing capture order
            if watch.last_captured_at is not None and position.captured_at < watch.last_captured_at:
                logger.debug("out_of_order_fix_skipped", watch=watch.id)
                return
            watch.last_captured_at = position.captured_at
            watch.last_fix_time = asyncio.get_running_loop().time()
            await watch.on_position(position)

    async def _deliver_error(self, watch: _Watch, error: LocationError) -> None:
        async with self._dispatch_lock:
            if watch.id not in self._watches:
                return
            await watch.on_error(error)

    async def _watchdog(self, watch: _Watch) -> None:
        timeout_s = watch.options.timeout_ms / 1000
        loop = asyncio.get_running_loop()
        while watch.id in self._watches:
            await asyncio.sleep(timeout_s)
            if loop.time() - watch.last_fix_time >= timeout_s:
                await self._deliver_error(
                    watch, LocationTimeoutError(f"no fix within {watch.options.timeout_ms} ms")
                )
                watch.last_fix_time = loop.time()
