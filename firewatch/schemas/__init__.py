"""Pydantic schemas for the firewatch service."""

from firewatch.schemas.common import ControlResult, HealthResponse
from firewatch.schemas.location import HandoffLink, LocationSnapshot
from firewatch.schemas.notifications import NotificationLevel, Toast

__all__ = [
    "ControlResult",
    "HandoffLink",
    "HealthResponse",
    "LocationSnapshot",
    "NotificationLevel",
    "Toast",
]
