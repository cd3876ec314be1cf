"""Map surface interface and the in-memory layer registry served to the front end.

The surface only holds rendering handles and geometry. Business state
(which marker is the user, which are hazards) lives in the coordinator.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass

import structlog

from firewatch.tracker.geo import haversine_m

logger = structlog.get_logger()

LatLng = tuple[float, float]

# Icon specs understood by the front end
ICON_USER = "user"
ICON_FIRE = "fire"
ICON_RESPONSE = "response"
ICON_HYDRANT = "hydrant"
ICON_HYDRANT_OUT = "hydrant-unserviceable"


class MapSurface(ABC):
    """Abstract rendering surface the coordinator issues commands to."""

    @abstractmethod
    def add_marker(self, latlng: LatLng, icon: str, z_index_offset: int = 0) -> str:
        """Add a marker and return its handle."""

    @abstractmethod
    def add_circle(self, latlng: LatLng, radius_m: float) -> str:
        """Add a circle overlay and return its handle."""

    @abstractmethod
    def remove_layer(self, handle: str) -> None:
        """Remove a layer; unknown handles are ignored."""

    @abstractmethod
    def set_lat_lng(self, handle: str, latlng: LatLng) -> None:
        """Move a layer in place."""

    @abstractmethod
    def set_radius(self, handle: str, meters: float) -> None:
        """Resize a circle."""

    @abstractmethod
    def set_view(self, latlng: LatLng, zoom: int, animate: bool = True) -> None:
        """Center the map."""

    @abstractmethod
    def bind_popup(self, handle: str, html: str) -> None:
        """Attach popup content to a layer."""

    @abstractmethod
    def has_layer(self, handle: str) -> bool:
        """Whether the layer is currently attached."""

    def distance_m(self, a: LatLng, b: LatLng) -> float:
        return haversine_m(a[0], a[1], b[0], b[1])

    def invalidate_size(self) -> None:
        """Recompute layout after a resize. No-op by default."""


@dataclass
class Layer:
    handle: str
    kind: str  # "marker" | "circle"
    lat: float
    lng: float
    icon: str | None = None
    radius_m: float | None = None
    popup: str | None = None
    z_index_offset: int = 0


class InMemoryMapSurface(MapSurface):
    """Keeps attached layers and the current view in memory."""

    def __init__(
        self,
        center: LatLng = (14.2833, 121.4194),
        zoom: int = 13,
        min_zoom: int = 10,
        max_zoom: int = 18,
    ):
        self.layers: dict[str, Layer] = {}
        self.center = center
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.zoom = zoom
        self.size_version = 0
        self._ids = itertools.count(1)

    def _new_handle(self, kind: str) -> str:
        return f"{kind}-{next(self._ids)}"

    def add_marker(self, latlng: LatLng, icon: str, z_index_offset: int = 0) -> str:
        handle = self._new_handle("marker")
        self.layers[handle] = Layer(
            handle=handle,
            kind="marker",
            lat=latlng[0],
            lng=latlng[1],
            icon=icon,
            z_index_offset=z_index_offset,
        )
        return handle

    def add_circle(self, latlng: LatLng, radius_m: float) -> str:
        handle = self._new_handle("circle")
        self.layers[handle] = Layer(
            handle=handle, kind="circle", lat=latlng[0], lng=latlng[1], radius_m=radius_m
        )
        return handle

    def remove_layer(self, handle: str) -> None:
        self.layers.pop(handle, None)

    def set_lat_lng(self, handle: str, latlng: LatLng) -> None:
        layer = self.layers.get(handle)
        if layer is None:
            logger.debug("set_lat_lng_unknown_layer", handle=handle)
            return
        layer.lat, layer.lng = latlng

    def set_radius(self, handle: str, meters: float) -> None:
        layer = self.layers.get(handle)
        if layer is not None:
            layer.radius_m = meters

    def set_view(self, latlng: LatLng, zoom: int, animate: bool = True) -> None:
        self.center = latlng
        self.zoom = max(self.min_zoom, min(self.max_zoom, zoom))

    def bind_popup(self, handle: str, html: str) -> None:
        layer = self.layers.get(handle)
        if layer is not None:
            layer.popup = html

    def has_layer(self, handle: str) -> bool:
        return handle in self.layers

    def invalidate_size(self) -> None:
        self.size_version += 1

    def count(self, kind: str | None = None, icon: str | None = None) -> int:
        """Number of attached layers matching ``kind`` / ``icon``."""
        return sum(
            1
            for layer in self.layers.values()
            if (kind is None or layer.kind == kind) and (icon is None or layer.icon == icon)
        )

    def to_dict(self) -> dict:
        return {
            "center": {"lat": self.center[0], "lng": self.center[1]},
            "zoom": self.zoom,
            "layers": [asdict(layer) for layer in self.layers.values()],
        }
