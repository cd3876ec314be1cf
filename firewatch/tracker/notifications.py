"""Operator feedback: toast notifications and dashboard UI state."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime

import structlog

from firewatch.schemas.notifications import LEVEL_ICONS, NotificationLevel, Toast

logger = structlog.get_logger()

RECENT_TOASTS = 20


class NotificationSink(ABC):
    """Receives toast requests from the coordinator."""

    @abstractmethod
    async def notify(
        self,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
        duration_ms: int = 5000,
    ) -> None:
        """Show a toast. Must not raise."""


class RedisNotificationSink(NotificationSink):
    """Publishes toasts on a Redis pub/sub channel; logs them when Redis is unavailable."""

    def __init__(self, redis_client=None, channel: str = "firewatch:notifications", device_tag: str | None = None):
        self._redis = redis_client
        self.channel = channel
        self.device_tag = device_tag
        self.recent: deque[Toast] = deque(maxlen=RECENT_TOASTS)

    async def notify(
        self,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
        duration_ms: int = 5000,
    ) -> None:
        toast = Toast(
            message=message,
            level=level,
            duration_ms=duration_ms,
            icon=LEVEL_ICONS.get(level, "info"),
            device_tag=self.device_tag,
        )
        self.recent.append(toast)

        if self._redis is None:
            logger.info("toast", level=level.value, message=message)
            return
        try:
            await self._redis.publish(self.channel, toast.model_dump_json())
        except Exception as e:
            logger.warning("toast_publish_error", channel=self.channel, error=str(e))


class UIBinding(ABC):
    """Status text and control state of the operator dashboard."""

    @abstractmethod
    def set_control(self, control: str, label: str, enabled: bool) -> None:
        """Update a control's label and enabled flag."""

    @abstractmethod
    def set_status(self, text: str, ok: bool = True) -> None:
        """Set the location status line."""

    @abstractmethod
    def set_coordinates(self, lat: float, lng: float, accuracy_m: float) -> None:
        """Show the current coordinates."""

    @abstractmethod
    def set_fire_count(self, count: int) -> None:
        """Show the number of active fires."""

    @abstractmethod
    def set_last_update(self, at: datetime) -> None:
        """Show when the map last changed."""


# Idle labels of the operator controls
CONTROL_LABELS: dict[str, str] = {
    "locate": "Locate Me",
    "report": "Report Fire Emergency",
    "refresh": "Refresh",
    "hydrants": "Fire Hydrants",
    "share": "Share Location",
}


class DashboardState(UIBinding):
    """In-memory dashboard state, served to the front end."""

    def __init__(self) -> None:
        self.controls: dict[str, dict] = {
            name: {"label": label, "enabled": True} for name, label in CONTROL_LABELS.items()
        }
        self.status = "Location not detected"
        self.status_ok = False
        self.coordinates: dict | None = None
        self.fire_count = 0
        self.last_update: datetime | None = None

    def set_control(self, control: str, label: str, enabled: bool) -> None:
        self.controls[control] = {"label": label, "enabled": enabled}

    def set_status(self, text: str, ok: bool = True) -> None:
        self.status = text
        self.status_ok = ok

    def set_coordinates(self, lat: float, lng: float, accuracy_m: float) -> None:
        self.coordinates = {"lat": lat, "lng": lng, "accuracy_m": accuracy_m}

    def set_fire_count(self, count: int) -> None:
        self.fire_count = count

    def set_last_update(self, at: datetime) -> None:
        self.last_update = at

    def control(self, name: str) -> dict:
        return self.controls[name]

    def to_dict(self) -> dict:
        return {
            "controls": self.controls,
            "status": self.status,
            "status_ok": self.status_ok,
            "coordinates": self.coordinates,
            "fire_count": self.fire_count,
            "last_update": self.last_update.isoformat() if self.last_update else None,
        }
