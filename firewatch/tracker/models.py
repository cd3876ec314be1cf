"""Runtime data types owned by the tracker."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackingState(str, Enum):
    IDLE = "idle"            # no fix yet
    LOCATED = "located"      # at least one fix, no subscription running
    TRACKING = "tracking"    # continuous subscription active
    STOPPED = "stopped"      # subscription cancelled, last fix retained


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EMERGENCY = "Emergency"  # operator reports only, never simulated


SIMULATED_SEVERITIES: tuple[Severity, ...] = (Severity.LOW, Severity.MEDIUM, Severity.HIGH)


@dataclass(frozen=True)
class Position:
    """A single fix. Immutable once produced by the location source."""

    latitude: float
    longitude: float
    accuracy_m: float
    captured_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not all(math.isfinite(v) for v in (self.latitude, self.longitude, self.accuracy_m)):
            raise ValueError("position fields must be finite numbers")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")
        if self.accuracy_m < 0:
            raise ValueError(f"accuracy must be non-negative: {self.accuracy_m}")


@dataclass
class UserMarkerState:
    """The operator's marker and accuracy circle on the map surface."""

    position: Position
    marker_handle: str
    circle_handle: str


@dataclass
class HazardPoint:
    """A simulated (or operator-reported) fire incident."""

    id: str
    latitude: float
    longitude: float
    severity: Severity
    reported_at: datetime
    marker_handle: str | None = None
    reported: bool = False  # True for operator reports

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "lat": self.latitude,
            "lng": self.longitude,
            "severity": self.severity.value,
            "reported_at": self.reported_at.isoformat(),
            "reported": self.reported,
        }


@dataclass
class ResponseMarker:
    """Simulated response team; removed once ``now >= expires_at``."""

    latitude: float
    longitude: float
    eta_minutes: int
    expires_at: datetime
    marker_handle: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class Hydrant:
    latitude: float
    longitude: float
    condition: str  # "Operational" | "Unserviceable"
    pressure: str   # "Low" | "High" | "N/A"

    @property
    def operational(self) -> bool:
        return self.condition == "Operational"
