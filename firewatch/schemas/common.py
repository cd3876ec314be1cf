"""Common schemas used across the service."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Standard health check response."""

    status: str = "ok"


class ControlResult(BaseModel):
    """Outcome of an operator control (Locate, Report, Share, ...)."""

    control: str
    success: bool
    state: str  # tracking state after the control ran
    result: Any = None
    error: str | None = None
