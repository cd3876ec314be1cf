"""Simulated fire incidents and response teams.

Nothing here comes from a real incident feed: points are random offsets
around a center, regenerated only when the regeneration policy says so.
"""

from __future__ import annotations

import math
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from firewatch.config import Settings
from firewatch.tracker.geo import haversine_m, meters_to_degrees
from firewatch.tracker.models import (
    SIMULATED_SEVERITIES,
    HazardPoint,
    Position,
    ResponseMarker,
    Severity,
    utcnow,
)

logger = structlog.get_logger()

# Response team placement and ETA
RESPONSE_OFFSET_DEG = 0.005
RESPONSE_ETA_MINUTES = (3, 7)


@dataclass(frozen=True)
class HazardConfig:
    min_count: int = 2
    max_count: int = 4
    radius_m: float = 3000.0

    def __post_init__(self) -> None:
        if self.min_count < 0 or self.max_count < self.min_count:
            raise ValueError("need 0 <= min_count <= max_count")
        if self.radius_m < 0:
            raise ValueError("radius_m must be non-negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> HazardConfig:
        return cls(
            min_count=settings.hazard_min_count,
            max_count=settings.hazard_max_count,
            radius_m=settings.hazard_radius_m,
        )


def should_regenerate(anchor: Position | None, fix: Position, threshold_m: float) -> bool:
    """Displacement policy for continuous fixes.

    True when no hazards have been anchored yet or the fix moved at least
    ``threshold_m`` from the anchor. Smaller moves are GPS jitter.
    """
    if anchor is None:
        return True
    moved = haversine_m(anchor.latitude, anchor.longitude, fix.latitude, fix.longitude)
    return moved >= threshold_m


class HazardSimulator:
    """Generates synthetic hazard points around a position."""

    def __init__(self, rng: random.Random | None = None, clock=utcnow):
        self.rng = rng or random.Random()
        self.clock = clock

    def generate(self, center: Position, config: HazardConfig) -> list[HazardPoint]:
        """Return a fresh list of hazard points around ``center``.

        Angle and radius are both drawn uniformly, so points cluster toward
        the center rather than covering the disc evenly.
        """
        count = self.rng.randint(config.min_count, config.max_count)
        max_offset = meters_to_degrees(config.radius_m)
        now = self.clock()

        points = []
        for _ in range(count):
            angle = self.rng.random() * 2 * math.pi
            distance = self.rng.random() * max_offset
            points.append(
                HazardPoint(
                    id=f"fire-{uuid.uuid4().hex[:8]}",
                    latitude=center.latitude + math.cos(angle) * distance,
                    longitude=center.longitude + math.sin(angle) * distance,
                    severity=self.rng.choice(SIMULATED_SEVERITIES),
                    reported_at=now,
                )
            )

        logger.debug(
            "hazards_generated",
            count=count,
            lat=center.latitude,
            lng=center.longitude,
            radius_m=config.radius_m,
        )
        return points

    def emergency_at(self, position: Position) -> HazardPoint:
        """An operator-reported fire pinned to ``position``."""
        return HazardPoint(
            id=f"report-{uuid.uuid4().hex[:8]}",
            latitude=position.latitude,
            longitude=position.longitude,
            severity=Severity.EMERGENCY,
            reported_at=self.clock(),
            reported=True,
        )

    def spawn_response(self, near: Position, lifetime_s: float, now: datetime | None = None) -> ResponseMarker:
        """A response team placed within ±0.005° of ``near``."""
        now = now or self.clock()
        return ResponseMarker(
            latitude=near.latitude + self.rng.uniform(-RESPONSE_OFFSET_DEG, RESPONSE_OFFSET_DEG),
            longitude=near.longitude + self.rng.uniform(-RESPONSE_OFFSET_DEG, RESPONSE_OFFSET_DEG),
            eta_minutes=self.rng.randint(*RESPONSE_ETA_MINUTES),
            expires_at=now + timedelta(seconds=lifetime_s),
        )
