"""Persisted location snapshot and handoff schemas."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from pydantic import BaseModel, field_validator


class LocationSnapshot(BaseModel):
    """Latest known location of one device install.

    Stored as a flat Redis hash and encoded into handoff tokens. The
    ``captured_at`` timestamp drives the staleness rule.
    """

    latitude: float
    longitude: float
    accuracy_m: float
    approximate_address: str = ""
    captured_at: datetime
    device_tag: str

    @field_validator("latitude", "longitude", "accuracy_m")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v

    @field_validator("latitude")
    @classmethod
    def _latitude_range(cls, v: float) -> float:
        if not -90.0 <= v <= 90.0:
            raise ValueError("latitude out of range")
        return v

    @field_validator("longitude")
    @classmethod
    def _longitude_range(cls, v: float) -> float:
        if not -180.0 <= v <= 180.0:
            raise ValueError("longitude out of range")
        return v

    @field_validator("captured_at")
    @classmethod
    def _aware(cls, v: datetime) -> datetime:
        # Naive timestamps are taken to be UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class HandoffLink(BaseModel):
    """Share-Location result: the token plus the dashboard URL carrying it (the QR payload)."""

    token: str
    url: str
    snapshot: LocationSnapshot
