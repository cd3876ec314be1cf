"""Marker lifecycle coordinator — the tracker's state machine.

Owns the user marker and accuracy circle, the active hazard set, response
markers and the hydrant layer. Reacts to fixes from the location source,
asks the hazard simulator for new incidents when the displacement policy
says so, and persists every fix through the snapshot store.

Everything runs on one event loop. Each remove-old/add-new sequence on the
map surface completes before the next ``await``, so no callback can observe
a half-replaced marker.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from pydantic import ValidationError

from firewatch.config import Settings
from firewatch.schemas.location import HandoffLink, LocationSnapshot
from firewatch.schemas.notifications import NotificationLevel
from firewatch.tracker.errors import (
    HandoffDecodeError,
    LocationError,
    LocationErrorKind,
)
from firewatch.tracker.geo import approximate_address
from firewatch.tracker.hazards import HazardConfig, HazardSimulator, should_regenerate
from firewatch.tracker.hydrants import FIRE_HYDRANTS
from firewatch.tracker.location_source import LocationSource
from firewatch.tracker.models import (
    HazardPoint,
    Hydrant,
    Position,
    ResponseMarker,
    TrackingState,
    UserMarkerState,
    utcnow,
)
from firewatch.tracker.notifications import CONTROL_LABELS, NotificationSink, UIBinding
from firewatch.tracker.popups import (
    hazard_popup,
    hydrant_popup,
    report_popup,
    response_popup,
    user_popup,
)
from firewatch.tracker.snapshot import SnapshotStore
from firewatch.tracker.surface import (
    ICON_FIRE,
    ICON_HYDRANT,
    ICON_HYDRANT_OUT,
    ICON_RESPONSE,
    ICON_USER,
    MapSurface,
)

logger = structlog.get_logger()

USER_Z_INDEX = 1000
HELP_DURATION_MS = 8000

HELP_TEXT = (
    "Emergency Response Guide:\n"
    "1. Report fires using the red button\n"
    "2. Enable location for accurate positioning\n"
    "3. Use the dashboard for navigation\n"
    "4. Contact numbers are listed in Contacts section"
)


@dataclass
class CoordinatorConfig:
    device_tag: str = "web-default"
    located_zoom: int = 15
    hazards: HazardConfig = field(default_factory=HazardConfig)
    displacement_threshold_m: float = 100.0
    auto_track: bool = True
    hydrants_enabled: bool = True
    response_markers: bool = True
    response_delay_s: float = 1.0
    response_lifetime_s: float = 30.0
    notification_duration_ms: int = 5000
    dashboard_url: str = "https://firewatch.local/dashboard"
    emergency_contacts: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> CoordinatorConfig:
        return cls(
            device_tag=settings.device_tag,
            located_zoom=settings.located_zoom,
            hazards=HazardConfig.from_settings(settings),
            displacement_threshold_m=settings.hazard_displacement_threshold_m,
            auto_track=settings.auto_track,
            hydrants_enabled=settings.hydrants_enabled,
            response_markers=settings.response_markers,
            response_delay_s=settings.response_delay_s,
            response_lifetime_s=settings.response_lifetime_s,
            notification_duration_ms=settings.notification_duration_ms,
            dashboard_url=settings.dashboard_url,
            emergency_contacts=settings.contacts,
        )


class MarkerLifecycleCoordinator:
    """Single owner of all map markers and tracking state for one session."""

    def __init__(
        self,
        source: LocationSource,
        simulator: HazardSimulator,
        store: SnapshotStore,
        surface: MapSurface,
        sink: NotificationSink,
        ui: UIBinding,
        config: CoordinatorConfig | None = None,
        clock=utcnow,
    ):
        self.source = source
        self.simulator = simulator
        self.store = store
        self.surface = surface
        self.sink = sink
        self.ui = ui
        self.config = config or CoordinatorConfig()
        self.clock = clock

        self._state = TrackingState.IDLE
        self._user: UserMarkerState | None = None
        self._last_fix: Position | None = None
        self._hazards: tuple[HazardPoint, ...] = ()
        self._hazard_anchor: Position | None = None
        self._responses: list[ResponseMarker] = []
        self._hydrant_handles: list[str] = []
        self._session: object | None = None  # identity of the current tracking session
        self._locate_label = CONTROL_LABELS["locate"]
        self._locating = False
        self._reporting = False
        self._visible = True
        self._resume_when_visible = False
        self._timers: set[asyncio.Task] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> TrackingState:
        return self._state

    @property
    def user_marker(self) -> UserMarkerState | None:
        return self._user

    @property
    def last_fix(self) -> Position | None:
        return self._last_fix

    @property
    def hazards(self) -> tuple[HazardPoint, ...]:
        """The active hazard set. Unchanged sets are the same object."""
        return self._hazards

    @property
    def response_markers(self) -> tuple[ResponseMarker, ...]:
        return tuple(self._responses)

    @property
    def hydrants_visible(self) -> bool:
        return bool(self._hydrant_handles)

    @property
    def pending_timers(self) -> tuple[asyncio.Task, ...]:
        return tuple(self._timers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Initial map content: hydrants (if enabled) and counters."""
        if self.config.hydrants_enabled:
            self._show_hydrants()
        self.ui.set_fire_count(len(self._hazards))
        self.ui.set_last_update(self.clock())
        logger.info("coordinator_started", device_tag=self.config.device_tag)

    async def close(self) -> None:
        """Teardown: stop tracking and cancel pending timers."""
        self._closed = True
        self.stop()
        timers = list(self._timers)
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()
        logger.info("coordinator_closed", device_tag=self.config.device_tag)

    async def restore(self) -> LocationSnapshot | None:
        """Cold start: adopt the persisted snapshot if it is still valid."""
        if self._last_fix is not None:
            return None
        snapshot = await self.store.read_latest()
        if snapshot is None:
            return None
        if not self.store.is_valid(snapshot, self.clock()):
            logger.info("snapshot_stale_ignored", captured_at=snapshot.captured_at.isoformat())
            return None

        self._adopt(self._position_from(snapshot))
        logger.info("snapshot_restored", lat=snapshot.latitude, lng=snapshot.longitude)
        await self._notify("Restored your last known location", NotificationLevel.INFO)
        return snapshot

    # ------------------------------------------------------------------
    # Locate
    # ------------------------------------------------------------------

    async def locate(self) -> Position | None:
        """Locate control: one-shot fix, then (optionally) continuous tracking.

        Returns the fix, or None when the request failed or another one is
        already in flight.
        """
        if self._closed:
            return None
        if self._locating:
            logger.info("locate_ignored_in_flight")
            return None

        self._locating = True
        self.ui.set_control("locate", "Locating...", enabled=False)
        try:
            try:
                position = await self.source.request_once()
            except LocationError as e:
                logger.warning("locate_failed", kind=e.kind.value, detail=e.detail)
                self.ui.set_control("locate", self._locate_label, enabled=True)
                await self._notify(e.user_message, NotificationLevel.ERROR)
                return None

            if self._closed:
                return None

            self._adopt(position)
            if self.config.auto_track:
                if self._visible:
                    self._start_tracking()
                else:
                    self._resume_when_visible = True
            self._locate_label = "Update Location"
            self.ui.set_control("locate", self._locate_label, enabled=True)
            logger.info(
                "location_detected",
                lat=position.latitude,
                lng=position.longitude,
                accuracy_m=position.accuracy_m,
            )

            await self._persist(position)
            await self._notify("Location detected successfully", NotificationLevel.SUCCESS)
            return position
        finally:
            self._locating = False

    def _adopt(self, position: Position) -> None:
        """Replace the user marker, center the map and regenerate hazards."""
        self._replace_user_marker(position)
        self._last_fix = position
        if self._state in (TrackingState.IDLE, TrackingState.STOPPED):
            self._state = TrackingState.LOCATED
        self.surface.set_view((position.latitude, position.longitude), self.config.located_zoom)
        self._regenerate_hazards(position)
        self._update_status(position)

    def _replace_user_marker(self, position: Position) -> None:
        if self._user is not None:
            self.surface.remove_layer(self._user.marker_handle)
            self.surface.remove_layer(self._user.circle_handle)
            self._user = None

        latlng = (position.latitude, position.longitude)
        marker = self.surface.add_marker(latlng, ICON_USER, z_index_offset=USER_Z_INDEX)
        self.surface.bind_popup(marker, user_popup(position))
        circle = self.surface.add_circle(latlng, position.accuracy_m)
        self._user = UserMarkerState(position=position, marker_handle=marker, circle_handle=circle)

    # ------------------------------------------------------------------
    # Continuous tracking
    # ------------------------------------------------------------------

    def _start_tracking(self) -> None:
        if self._session is not None and self.source.is_tracking:
            self._state = TrackingState.TRACKING
            return

        session = object()

        async def on_update(position: Position) -> None:
            if self._session is not session:
                logger.debug("stale_session_update_dropped")
                return
            await self._apply_update(position)

        async def on_error(error: LocationError) -> None:
            if self._session is not session:
                return
            await self._tracking_error(error)

        try:
            self.source.start_continuous(on_update, on_error)
        except LocationError as e:
            logger.warning("tracking_unavailable", kind=e.kind.value)
            return
        self._session = session
        self._state = TrackingState.TRACKING

    async def _apply_update(self, position: Position) -> None:
        if self._user is None:
            self._replace_user_marker(position)
        else:
            latlng = (position.latitude, position.longitude)
            self.surface.set_lat_lng(self._user.marker_handle, latlng)
            self.surface.set_lat_lng(self._user.circle_handle, latlng)
            self.surface.set_radius(self._user.circle_handle, position.accuracy_m)
            self.surface.bind_popup(self._user.marker_handle, user_popup(position))
            self._user.position = position

        self._last_fix = position
        self._state = TrackingState.TRACKING
        if should_regenerate(self._hazard_anchor, position, self.config.displacement_threshold_m):
            self._regenerate_hazards(position)
        self._update_status(position)

        await self._persist(position)

    async def _tracking_error(self, error: LocationError) -> None:
        logger.warning("tracking_error", kind=error.kind.value, detail=error.detail)
        if error.kind is LocationErrorKind.PERMISSION_DENIED:
            # Permission revoked mid-session; the watch cannot recover
            self.stop()
            await self._notify(error.user_message, NotificationLevel.ERROR)
        else:
            self.ui.set_status("Waiting for location signal...", ok=False)

    def stop(self) -> None:
        """Cancel continuous tracking. Marker and circle stay, frozen."""
        self._resume_when_visible = False
        if self._session is None:
            return
        self._session = None
        self.source.stop()
        self._state = TrackingState.STOPPED if self._last_fix is not None else TrackingState.IDLE
        self.ui.set_status("Tracking paused", ok=self._last_fix is not None)

    def on_visibility_change(self, visible: bool) -> None:
        """Pause tracking while hidden; resume on visible if a fix exists.

        A locate that completes while hidden starts tracking on the next
        visible transition.
        """
        if self._closed:
            return
        self._visible = visible
        if not visible:
            if self._state is TrackingState.TRACKING:
                logger.info("tracking_paused_hidden")
                self.stop()
            return

        resume = self._resume_when_visible or self._state is TrackingState.STOPPED
        self._resume_when_visible = False
        if resume and self._last_fix is not None:
            logger.info("tracking_resumed_visible")
            self._start_tracking()
        self.surface.invalidate_size()

    def on_resize(self) -> None:
        """Viewport changed size; let the surface recompute its layout."""
        self.surface.invalidate_size()

    # ------------------------------------------------------------------
    # Hazards
    # ------------------------------------------------------------------

    def _regenerate_hazards(self, center: Position) -> None:
        # Operator reports survive regeneration; simulated points are replaced
        kept = tuple(h for h in self._hazards if h.reported)
        for hazard in self._hazards:
            if not hazard.reported and hazard.marker_handle is not None:
                self.surface.remove_layer(hazard.marker_handle)

        points = self.simulator.generate(center, self.config.hazards)
        origin = (center.latitude, center.longitude)
        for number, point in enumerate(points, start=1):
            latlng = (point.latitude, point.longitude)
            point.marker_handle = self.surface.add_marker(latlng, ICON_FIRE)
            self.surface.bind_popup(
                point.marker_handle,
                hazard_popup(point, number, self.surface.distance_m(origin, latlng)),
            )

        self._hazards = kept + tuple(points)
        self._hazard_anchor = center
        self.ui.set_fire_count(len(self._hazards))
        logger.info("hazards_regenerated", count=len(points), reports_kept=len(kept))

    def clear_hazards(self) -> None:
        """Remove every hazard, reports included."""
        for hazard in self._hazards:
            if hazard.marker_handle is not None:
                self.surface.remove_layer(hazard.marker_handle)
        self._hazards = ()
        self._hazard_anchor = None
        self.ui.set_fire_count(0)

    async def refresh(self) -> bool:
        """Refresh control: regenerate hazards around the current marker."""
        refreshed = False
        if self._user is not None:
            self._regenerate_hazards(self._user.position)
            refreshed = True
        self.ui.set_last_update(self.clock())
        await self._notify("Map data refreshed", NotificationLevel.SUCCESS)
        return refreshed

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    async def report(self) -> HazardPoint | None:
        """Report control: pin an emergency at the current position."""
        if self._closed:
            return None
        if self._reporting:
            logger.info("report_ignored_in_flight")
            return None
        if self._last_fix is None:
            await self._notify(
                "Unable to get location for reporting. Use Locate Me first.",
                NotificationLevel.WARNING,
            )
            return None

        self._reporting = True
        self.ui.set_control("report", "Reporting...", enabled=False)
        try:
            position = self._last_fix
            hazard = self.simulator.emergency_at(position)
            latlng = (hazard.latitude, hazard.longitude)
            hazard.marker_handle = self.surface.add_marker(latlng, ICON_FIRE)
            self.surface.bind_popup(hazard.marker_handle, report_popup(hazard))
            self._hazards = self._hazards + (hazard,)
            self.surface.set_view(latlng, self.config.located_zoom)
            self.ui.set_fire_count(len(self._hazards))
            self.ui.set_last_update(self.clock())
            logger.info("fire_reported", hazard_id=hazard.id, lat=hazard.latitude, lng=hazard.longitude)

            if self.config.response_markers:
                self._schedule(self._dispatch_response(position))

            await self._persist(position)
            await self._notify(
                "Fire emergency reported successfully! Response team has been notified.",
                NotificationLevel.SUCCESS,
            )
            return hazard
        finally:
            self._reporting = False
            self.ui.set_control("report", CONTROL_LABELS["report"], enabled=True)

    async def _dispatch_response(self, near: Position) -> None:
        await asyncio.sleep(self.config.response_delay_s)
        marker = self.add_response_marker(near)
        await asyncio.sleep(self.config.response_lifetime_s)
        self._remove_response(marker)

    def add_response_marker(self, near: Position) -> ResponseMarker:
        """Place a simulated response team near ``near``."""
        marker = self.simulator.spawn_response(near, self.config.response_lifetime_s, now=self.clock())
        marker.marker_handle = self.surface.add_marker((marker.latitude, marker.longitude), ICON_RESPONSE)
        self.surface.bind_popup(marker.marker_handle, response_popup(marker))
        self._responses.append(marker)
        logger.info("response_team_dispatched", eta_minutes=marker.eta_minutes)
        return marker

    def expire_response_markers(self, now: datetime | None = None) -> int:
        """Remove response markers whose time is up. Returns how many went."""
        now = now or self.clock()
        expired = [m for m in self._responses if m.is_expired(now)]
        for marker in expired:
            self._remove_response(marker)
        return len(expired)

    def _remove_response(self, marker: ResponseMarker) -> None:
        if marker in self._responses:
            self._responses.remove(marker)
        if marker.marker_handle is not None:
            self.surface.remove_layer(marker.marker_handle)

    def _schedule(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)
        return task

    # ------------------------------------------------------------------
    # Hydrants
    # ------------------------------------------------------------------

    def _show_hydrants(self) -> None:
        for hydrant in FIRE_HYDRANTS:
            handle = self.surface.add_marker(
                (hydrant.latitude, hydrant.longitude), _hydrant_icon(hydrant)
            )
            self.surface.bind_popup(handle, hydrant_popup(hydrant))
            self._hydrant_handles.append(handle)

    def _hide_hydrants(self) -> None:
        for handle in self._hydrant_handles:
            self.surface.remove_layer(handle)
        self._hydrant_handles = []

    async def toggle_hydrants(self) -> bool:
        """Toggle-Hydrants control. Returns whether hydrants are now visible."""
        if self.hydrants_visible:
            self._hide_hydrants()
            await self._notify("Fire hydrants hidden", NotificationLevel.INFO)
            return False
        self._show_hydrants()
        await self._notify("Fire hydrants shown on map", NotificationLevel.SUCCESS)
        return True

    # ------------------------------------------------------------------
    # Share / handoff
    # ------------------------------------------------------------------

    async def share_location(self) -> HandoffLink | None:
        """Share-Location control: encode the latest fix into a handoff link."""
        if self._last_fix is not None:
            snapshot = self._snapshot_for(self._last_fix)
        else:
            snapshot = await self.store.read_latest()
            if snapshot is not None and not self.store.is_valid(snapshot, self.clock()):
                snapshot = None

        if snapshot is None:
            await self._notify(
                "No recent location to share. Use Locate Me first.", NotificationLevel.WARNING
            )
            return None

        token = self.store.encode_handoff(snapshot)
        link = HandoffLink(token=token, url=f"{self.config.dashboard_url}?loc={token}", snapshot=snapshot)
        logger.info("location_shared", token_length=len(token))
        await self._notify("Location link ready to share", NotificationLevel.SUCCESS)
        return link

    async def import_handoff(self, token: str) -> LocationSnapshot | None:
        """Show a location handed off from another device."""
        try:
            snapshot = self.store.decode_handoff(token)
        except HandoffDecodeError as e:
            logger.warning("handoff_rejected", error=str(e))
            await self._notify("This location link is invalid.", NotificationLevel.ERROR)
            return None

        if not self.store.is_valid(snapshot, self.clock()):
            logger.info("handoff_stale", captured_at=snapshot.captured_at.isoformat())
            await self._notify("This shared location has expired.", NotificationLevel.WARNING)
            return None

        self._adopt(self._position_from(snapshot))
        logger.info("handoff_imported", source_device=snapshot.device_tag)
        await self._notify(
            f"Showing shared location near {snapshot.approximate_address}", NotificationLevel.SUCCESS
        )
        return snapshot

    # ------------------------------------------------------------------
    # Contacts / help
    # ------------------------------------------------------------------

    def emergency_contacts(self) -> list[str]:
        return list(self.config.emergency_contacts)

    async def show_help(self) -> None:
        await self._notify(HELP_TEXT, NotificationLevel.INFO, duration_ms=HELP_DURATION_MS)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _snapshot_for(self, position: Position) -> LocationSnapshot:
        return LocationSnapshot(
            latitude=position.latitude,
            longitude=position.longitude,
            accuracy_m=position.accuracy_m,
            approximate_address=approximate_address(position.latitude, position.longitude),
            captured_at=position.captured_at,
            device_tag=self.store.device_tag,
        )

    @staticmethod
    def _position_from(snapshot: LocationSnapshot) -> Position:
        return Position(
            latitude=snapshot.latitude,
            longitude=snapshot.longitude,
            accuracy_m=snapshot.accuracy_m,
            captured_at=snapshot.captured_at,
        )

    async def _persist(self, position: Position) -> None:
        try:
            snapshot = self._snapshot_for(position)
        except ValidationError as e:
            logger.warning("snapshot_rejected", error_count=e.error_count())
            return
        await self.store.write(snapshot)

    def _update_status(self, position: Position) -> None:
        self.ui.set_status("Location detected", ok=True)
        self.ui.set_coordinates(position.latitude, position.longitude, position.accuracy_m)
        self.ui.set_last_update(self.clock())

    async def _notify(
        self, message: str, level: NotificationLevel, duration_ms: int | None = None
    ) -> None:
        await self.sink.notify(message, level, duration_ms or self.config.notification_duration_ms)


def _hydrant_icon(hydrant: Hydrant) -> str:
    return ICON_HYDRANT if hydrant.operational else ICON_HYDRANT_OUT
