"""Shared test fixtures for the firewatch test suite.

Provides a scriptable position provider, an in-memory map surface, a
recording notification sink, a dict-backed Redis mock and a controllable
clock so tracker tests run without a browser, a device or Redis.
"""

from __future__ import annotations

import asyncio
import itertools
import random
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from firewatch.schemas.notifications import NotificationLevel
from firewatch.tracker.coordinator import CoordinatorConfig, MarkerLifecycleCoordinator
from firewatch.tracker.hazards import HazardSimulator
from firewatch.tracker.location_source import LocationSource, PositionOptions, PositionProvider
from firewatch.tracker.models import Position
from firewatch.tracker.notifications import DashboardState, NotificationSink
from firewatch.tracker.snapshot import SnapshotStore
from firewatch.tracker.surface import InMemoryMapSurface

DEVICE_TAG = "test-device"
T0 = datetime(2026, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakePositionProvider(PositionProvider):
    """Scriptable provider.

    ``results`` feeds one-shot requests (a Position or a LocationError);
    when empty the request waits on ``pending`` until the test resolves it.
    Cleared watches stay in ``all_watches`` so tests can deliver late
    callbacks.
    """

    def __init__(self) -> None:
        self.results: list = []
        self.requests: list[PositionOptions] = []
        self.pending: asyncio.Future | None = None
        self.watches: dict[int, tuple] = {}
        self.all_watches: dict[int, tuple] = {}
        self.watch_options: list[PositionOptions] = []
        self.cleared: list[int] = []
        self._ids = itertools.count(1)

    async def get_current_position(self, options: PositionOptions) -> Position:
        self.requests.append(options)
        if self.results:
            outcome = self.results.pop(0)
        else:
            self.pending = asyncio.get_running_loop().create_future()
            outcome = await self.pending
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def watch_position(self, options, on_position, on_error) -> int:
        watch_id = next(self._ids)
        self.watch_options.append(options)
        self.watches[watch_id] = (on_position, on_error)
        self.all_watches[watch_id] = (on_position, on_error)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self.watches.pop(watch_id, None)
        self.cleared.append(watch_id)

    async def emit(self, position: Position) -> None:
        for on_position, _ in list(self.watches.values()):
            await on_position(position)

    async def emit_error(self, error) -> None:
        for _, on_error in list(self.watches.values()):
            await on_error(error)

    async def deliver_late(self, watch_id: int, position: Position) -> None:
        on_position, _ = self.all_watches[watch_id]
        await on_position(position)


class RecordingSink(NotificationSink):
    """Keeps every toast as (message, level, duration_ms)."""

    def __init__(self) -> None:
        self.toasts: list[tuple[str, NotificationLevel, int]] = []

    async def notify(self, message, level=NotificationLevel.INFO, duration_ms=5000) -> None:
        self.toasts.append((message, level, duration_ms))

    @property
    def messages(self) -> list[str]:
        return [message for message, _, _ in self.toasts]

    def last(self) -> tuple[str, NotificationLevel, int]:
        return self.toasts[-1]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_fix(clock):
    """Factory for fixes captured "now" on the fake clock."""

    def _make(
        latitude: float = 14.2833,
        longitude: float = 121.4194,
        accuracy_m: float = 15.0,
        captured_at: datetime | None = None,
    ) -> Position:
        return Position(
            latitude=latitude,
            longitude=longitude,
            accuracy_m=accuracy_m,
            captured_at=captured_at or clock(),
        )

    return _make


@pytest.fixture
def provider():
    return FakePositionProvider()


@pytest.fixture
def surface():
    return InMemoryMapSurface()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def ui():
    return DashboardState()


@pytest.fixture
def mock_redis():
    """Mock async Redis client; hashes are kept in ``mock_redis.data``."""
    data: dict[str, dict] = {}

    async def _hset(key, mapping=None, **kwargs):
        data[key] = dict(mapping or {})
        return len(data[key])

    async def _hgetall(key):
        return dict(data.get(key, {}))

    redis = AsyncMock()
    redis.hset = AsyncMock(side_effect=_hset)
    redis.hgetall = AsyncMock(side_effect=_hgetall)
    redis.expire = AsyncMock(return_value=True)
    redis.publish = AsyncMock(return_value=1)
    redis.data = data
    return redis


@pytest.fixture
def store(mock_redis):
    return SnapshotStore(mock_redis, device_tag=DEVICE_TAG)


@pytest.fixture
def make_coordinator(provider, surface, sink, ui, store, clock):
    """Factory for coordinators wired to the fakes.

    Hydrants and response markers are off unless a test turns them on, so
    layer counts only reflect what the test does.
    """

    def _make(**overrides) -> MarkerLifecycleCoordinator:
        params = dict(
            device_tag=DEVICE_TAG,
            hydrants_enabled=False,
            response_markers=False,
        )
        params.update(overrides)
        source = LocationSource(
            provider,
            one_shot=PositionOptions(timeout_ms=1000, maximum_age_ms=0),
            continuous=PositionOptions(timeout_ms=15_000, maximum_age_ms=30_000),
        )
        return MarkerLifecycleCoordinator(
            source=source,
            simulator=HazardSimulator(rng=random.Random(1234), clock=clock),
            store=store,
            surface=surface,
            sink=sink,
            ui=ui,
            config=CoordinatorConfig(**params),
            clock=clock,
        )

    return _make
