"""Location source — one-shot and continuous fixes from a platform provider.

The provider mirrors the browser geolocation API (``getCurrentPosition`` /
``watchPosition`` / ``clearWatch``). This module adds the request timeout,
normalises failures into ``LocationError`` subclasses and guarantees that a
stopped subscription never delivers another callback.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from firewatch.config import Settings
from firewatch.tracker.errors import (
    LocationError,
    LocationTimeoutError,
    UnsupportedEnvironmentError,
)
from firewatch.tracker.models import Position

logger = structlog.get_logger()

PositionCallback = Callable[[Position], Awaitable[None]]
ErrorCallback = Callable[[LocationError], Awaitable[None]]


@dataclass(frozen=True)
class PositionOptions:
    """Request options, as understood by the platform provider."""

    enable_high_accuracy: bool = True
    timeout_ms: int = 10_000
    maximum_age_ms: int = 0


class PositionProvider(ABC):
    """Abstract platform position provider."""

    @abstractmethod
    async def get_current_position(self, options: PositionOptions) -> Position:
        """Return a single fix or raise a LocationError."""

    @abstractmethod
    def watch_position(
        self,
        options: PositionOptions,
        on_position: PositionCallback,
        on_error: ErrorCallback,
    ) -> int:
        """Start delivering fixes in capture order. Returns a watch id."""

    @abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        """Stop a watch started with watch_position()."""


class Subscription:
    """Handle for one continuous-tracking session."""

    _ids = itertools.count(1)

    def __init__(self) -> None:
        self.id = next(self._ids)
        self.watch_id: int | None = None
        self.active = True

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, active={self.active})"


class LocationSource:
    """Wraps a PositionProvider with timeouts and cancellation."""

    def __init__(
        self,
        provider: PositionProvider | None,
        one_shot: PositionOptions | None = None,
        continuous: PositionOptions | None = None,
    ):
        self.provider = provider
        self.one_shot = one_shot or PositionOptions()
        self.continuous = continuous or PositionOptions(timeout_ms=15_000, maximum_age_ms=30_000)
        self._subscription: Subscription | None = None

    @classmethod
    def from_settings(cls, provider: PositionProvider | None, settings: Settings) -> LocationSource:
        return cls(
            provider,
            one_shot=PositionOptions(
                enable_high_accuracy=True,
                timeout_ms=settings.locate_timeout_ms,
                maximum_age_ms=0,
            ),
            continuous=PositionOptions(
                enable_high_accuracy=True,
                timeout_ms=settings.watch_timeout_ms,
                maximum_age_ms=settings.watch_maximum_age_ms,
            ),
        )

    @property
    def subscription(self) -> Subscription | None:
        """The active subscription, if any."""
        return self._subscription

    @property
    def is_tracking(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def request_once(self) -> Position:
        """Request one fix with best-available accuracy.

        Raises:
            LocationError: one of its subclasses; never retried here.
        """
        if self.provider is None:
            raise UnsupportedEnvironmentError("no position provider configured")

        timeout_s = self.one_shot.timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                self.provider.get_current_position(self.one_shot), timeout=timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning("location_request_timeout", timeout_ms=self.one_shot.timeout_ms)
            raise LocationTimeoutError(
                f"no fix within {self.one_shot.timeout_ms} ms"
            ) from None

    def start_continuous(
        self,
        on_update: PositionCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """Start continuous tracking.

        Idempotent: while a subscription is active the existing one is
        returned and no second watch is opened.
        """
        if self.is_tracking:
            return self._subscription  # type: ignore[return-value]
        if self.provider is None:
            raise UnsupportedEnvironmentError("no position provider configured")

        subscription = Subscription()

        async def _deliver(position: Position) -> None:
            if not subscription.active:
                logger.debug("position_dropped_after_stop", subscription=subscription.id)
                return
            await on_update(position)

        async def _fail(error: LocationError) -> None:
            if not subscription.active:
                return
            await on_error(error)

        subscription.watch_id = self.provider.watch_position(self.continuous, _deliver, _fail)
        self._subscription = subscription
        logger.info(
            "tracking_started",
            subscription=subscription.id,
            maximum_age_ms=self.continuous.maximum_age_ms,
            timeout_ms=self.continuous.timeout_ms,
        )
        return subscription

    def stop(self, subscription: Subscription | None = None) -> None:
        """Cancel a subscription (the active one by default).

        Takes effect before returning: later callbacks are dropped.
        """
        subscription = subscription or self._subscription
        if subscription is None or not subscription.active:
            return

        subscription.active = False
        if self._subscription is subscription:
            self._subscription = None
        if self.provider is not None and subscription.watch_id is not None:
            self.provider.clear_watch(subscription.watch_id)
        logger.info("tracking_stopped", subscription=subscription.id)
