"""Error taxonomy for location, storage and handoff failures."""

from __future__ import annotations

from enum import Enum


class FirewatchError(Exception):
    """Base class for firewatch errors."""


class LocationErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


# Operator-facing text, including the remediation hint
LOCATION_ERROR_MESSAGES: dict[LocationErrorKind, str] = {
    LocationErrorKind.PERMISSION_DENIED: (
        "Location permission denied. Please enable location services in your settings."
    ),
    LocationErrorKind.POSITION_UNAVAILABLE: (
        "Location information unavailable. Move to an open area and try again."
    ),
    LocationErrorKind.TIMEOUT: "Location request timed out. Please try again.",
    LocationErrorKind.UNSUPPORTED: "Geolocation is not supported by your browser.",
}

# Numeric codes used by the browser geolocation API (and by device payloads)
PROVIDER_ERROR_CODES: dict[int, LocationErrorKind] = {
    1: LocationErrorKind.PERMISSION_DENIED,
    2: LocationErrorKind.POSITION_UNAVAILABLE,
    3: LocationErrorKind.TIMEOUT,
}


class LocationError(FirewatchError):
    """A geolocation request failed. ``kind`` selects the operator message."""

    kind: LocationErrorKind = LocationErrorKind.POSITION_UNAVAILABLE

    def __init__(self, detail: str | None = None):
        self.detail = detail
        super().__init__(detail or self.kind.value)

    @property
    def user_message(self) -> str:
        return LOCATION_ERROR_MESSAGES[self.kind]


class PermissionDeniedError(LocationError):
    kind = LocationErrorKind.PERMISSION_DENIED


class PositionUnavailableError(LocationError):
    kind = LocationErrorKind.POSITION_UNAVAILABLE


class LocationTimeoutError(LocationError):
    kind = LocationErrorKind.TIMEOUT


class UnsupportedEnvironmentError(LocationError):
    kind = LocationErrorKind.UNSUPPORTED


_ERRORS_BY_KIND: dict[LocationErrorKind, type[LocationError]] = {
    LocationErrorKind.PERMISSION_DENIED: PermissionDeniedError,
    LocationErrorKind.POSITION_UNAVAILABLE: PositionUnavailableError,
    LocationErrorKind.TIMEOUT: LocationTimeoutError,
    LocationErrorKind.UNSUPPORTED: UnsupportedEnvironmentError,
}


def location_error_from_code(code: int, detail: str | None = None) -> LocationError:
    """Map a provider error code to the matching LocationError.

    Unknown codes are reported as position-unavailable.
    """
    kind = PROVIDER_ERROR_CODES.get(code, LocationErrorKind.POSITION_UNAVAILABLE)
    return _ERRORS_BY_KIND[kind](detail)


class StorageWriteError(FirewatchError):
    """The snapshot could not be persisted. Always logged and swallowed by the store."""


class HandoffDecodeError(FirewatchError):
    """A handoff token is malformed; no snapshot is returned."""
