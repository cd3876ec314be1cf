"""Toast notification schemas, published via Redis pub/sub."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# Feather icon names used by the front end
LEVEL_ICONS: dict[NotificationLevel, str] = {
    NotificationLevel.INFO: "info",
    NotificationLevel.SUCCESS: "check-circle",
    NotificationLevel.WARNING: "alert-triangle",
    NotificationLevel.ERROR: "alert-octagon",
}


class Toast(BaseModel):
    """A transient message shown to the operator."""

    message: str
    level: NotificationLevel = NotificationLevel.INFO
    duration_ms: int = 5000
    icon: str = "info"
    device_tag: str | None = None  # which install raised it
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
