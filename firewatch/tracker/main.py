"""Tracker service: FastAPI app exposing the operator controls and device ingestion."""

from __future__ import annotations

from datetime import timedelta

import redis.asyncio as aioredis
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from firewatch.config import get_settings
from firewatch.schemas.common import ControlResult, HealthResponse
from firewatch.tracker.coordinator import CoordinatorConfig, MarkerLifecycleCoordinator
from firewatch.tracker.errors import HandoffDecodeError
from firewatch.tracker.handoff import decode_handoff
from firewatch.tracker.hazards import HazardSimulator
from firewatch.tracker.location_source import LocationSource
from firewatch.tracker.notifications import DashboardState, RedisNotificationSink
from firewatch.tracker.providers import PushedPositionProvider, position_from_payload
from firewatch.tracker.snapshot import SnapshotStore
from firewatch.tracker.surface import InMemoryMapSurface

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()
app = FastAPI(title="Firewatch Tracker", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

coordinator: MarkerLifecycleCoordinator | None = None
provider: PushedPositionProvider | None = None
surface: InMemoryMapSurface | None = None
dashboard: DashboardState | None = None
notifications: RedisNotificationSink | None = None
redis_client: aioredis.Redis | None = None


class VisibilityRequest(BaseModel):
    visible: bool


class HandoffImportRequest(BaseModel):
    token: str


def build_coordinator(
    redis_client,
    position_provider: PushedPositionProvider,
    map_surface: InMemoryMapSurface,
    ui: DashboardState,
    sink: RedisNotificationSink,
) -> MarkerLifecycleCoordinator:
    """Wire a coordinator from settings."""
    settings = get_settings()
    return MarkerLifecycleCoordinator(
        source=LocationSource.from_settings(position_provider, settings),
        simulator=HazardSimulator(),
        store=SnapshotStore(
            redis_client,
            device_tag=settings.device_tag,
            max_age=timedelta(seconds=settings.snapshot_max_age_s),
            ttl_s=settings.snapshot_ttl_s,
        ),
        surface=map_surface,
        sink=sink,
        ui=ui,
        config=CoordinatorConfig.from_settings(settings),
    )


@app.on_event("startup")
async def startup():
    global coordinator, provider, surface, dashboard, notifications, redis_client
    settings = get_settings()

    # Connect to Redis (graceful fallback if unavailable)
    client = aioredis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
        redis_client = client
        logger.info("tracker_redis_connected")
    except Exception as e:
        logger.warning("tracker_redis_unavailable", error=str(e))
        await client.aclose()
        redis_client = None

    provider = PushedPositionProvider()
    surface = InMemoryMapSurface(
        center=(settings.map_center_lat, settings.map_center_lng),
        zoom=settings.default_zoom,
        min_zoom=settings.min_zoom,
        max_zoom=settings.max_zoom,
    )
    dashboard = DashboardState()
    notifications = RedisNotificationSink(
        redis_client, channel=settings.notification_channel, device_tag=settings.device_tag
    )
    coordinator = build_coordinator(redis_client, provider, surface, dashboard, notifications)
    coordinator.start()
    await coordinator.restore()
    logger.info("tracker_ready", device_tag=settings.device_tag)


@app.on_event("shutdown")
async def shutdown():
    if coordinator is not None:
        await coordinator.close()
    if redis_client is not None:
        await redis_client.aclose()


def _require_coordinator() -> MarkerLifecycleCoordinator:
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Tracker not ready")
    return coordinator


def _result(control: str, success: bool, result=None, error: str | None = None) -> ControlResult:
    return ControlResult(
        control=control,
        success=success,
        state=_require_coordinator().state.value,
        result=result,
        error=error,
    )


# --- Device endpoint (called by the phone, not the operator) ---


@app.post("/pub")
async def device_publish(request: Request):
    """Receive OwnTracks-style location or error payloads from the device."""
    if provider is None:
        return JSONResponse(status_code=503, content={"error": "Tracker not ready"})

    try:
        payload = await request.json()
    except Exception:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"error": "Expected a JSON object"})

    msg_type = payload.get("_type")
    if msg_type == "location":
        try:
            position = position_from_payload(payload)
        except (KeyError, TypeError, ValueError, OverflowError, OSError):
            return JSONResponse(status_code=400, content={"error": "Invalid location payload"})
        await provider.publish(position)
    elif msg_type == "error":
        try:
            code = int(payload.get("code", 2))
        except (TypeError, ValueError):
            return JSONResponse(status_code=400, content={"error": "Invalid error code"})
        await provider.fail(code, payload.get("message"))
    else:
        logger.info("device_payload_ignored", msg_type=msg_type)

    # OwnTracks expects a JSON array response
    return JSONResponse(content=[])


# --- Operator controls ---


@app.post("/locate", response_model=ControlResult)
async def locate():
    position = await _require_coordinator().locate()
    if position is None:
        return _result("locate", False, error="Location not detected")
    return _result(
        "locate",
        True,
        result={"lat": position.latitude, "lng": position.longitude, "accuracy_m": position.accuracy_m},
    )


@app.post("/report", response_model=ControlResult)
async def report():
    hazard = await _require_coordinator().report()
    if hazard is None:
        return _result("report", False, error="Report not sent")
    return _result("report", True, result=hazard.to_dict())


@app.post("/refresh", response_model=ControlResult)
async def refresh():
    refreshed = await _require_coordinator().refresh()
    return _result("refresh", True, result={"regenerated": refreshed})


@app.post("/hydrants/toggle", response_model=ControlResult)
async def toggle_hydrants():
    visible = await _require_coordinator().toggle_hydrants()
    return _result("hydrants", True, result={"visible": visible})


@app.post("/share", response_model=ControlResult)
async def share():
    link = await _require_coordinator().share_location()
    if link is None:
        return _result("share", False, error="No recent location to share")
    return _result("share", True, result=link.model_dump(mode="json"))


@app.post("/tracking/stop", response_model=ControlResult)
async def stop_tracking():
    _require_coordinator().stop()
    return _result("stop", True)


@app.post("/visibility", response_model=ControlResult)
async def visibility(body: VisibilityRequest):
    _require_coordinator().on_visibility_change(body.visible)
    return _result("visibility", True, result={"visible": body.visible})


@app.post("/resize", response_model=ControlResult)
async def resize():
    _require_coordinator().on_resize()
    return _result("resize", True, result={"size_version": surface.size_version})


@app.post("/handoff/import", response_model=ControlResult)
async def import_handoff(body: HandoffImportRequest):
    snapshot = await _require_coordinator().import_handoff(body.token)
    if snapshot is None:
        return _result("handoff", False, error="Location link rejected")
    return _result("handoff", True, result=snapshot.model_dump(mode="json"))


@app.post("/help", response_model=ControlResult)
async def show_help():
    await _require_coordinator().show_help()
    return _result("help", True)


# --- Read-only views ---


@app.get("/handoff/{token}")
async def decode(token: str):
    """Decode a handoff token without touching tracker state."""
    try:
        snapshot = decode_handoff(token)
    except HandoffDecodeError as e:
        raise HTTPException(status_code=400, detail=f"Malformed handoff token: {e}")
    return snapshot.model_dump(mode="json")


@app.get("/map")
async def map_layers():
    tracker = _require_coordinator()
    tracker.expire_response_markers()
    return surface.to_dict()


@app.get("/state")
async def dashboard_state():
    tracker = _require_coordinator()
    return {
        "tracking_state": tracker.state.value,
        "hydrants_visible": tracker.hydrants_visible,
        "hazards": [h.to_dict() for h in tracker.hazards],
        "dashboard": dashboard.to_dict(),
        "toasts": [t.model_dump(mode="json") for t in notifications.recent] if notifications else [],
    }


@app.get("/contacts")
async def contacts():
    return {"contacts": _require_coordinator().emergency_contacts()}


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")


def run() -> None:
    """Serve the tracker with uvicorn."""
    import uvicorn

    config = uvicorn.Config(app, host="0.0.0.0", port=8000, log_level="info", proxy_headers=True)
    server = uvicorn.Server(config)
    server.run()
