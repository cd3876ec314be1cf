"""Popup markup for map layers."""

from __future__ import annotations

from html import escape

from firewatch.tracker.models import HazardPoint, Hydrant, Position, ResponseMarker


def user_popup(position: Position) -> str:
    return (
        '<div class="p-2">'
        '<div class="font-bold text-blue-600 mb-2">Your Location</div>'
        f"<div>Latitude: {position.latitude:.6f}</div>"
        f"<div>Longitude: {position.longitude:.6f}</div>"
        f'<div class="text-xs text-gray-500">Accuracy: {round(position.accuracy_m)} meters</div>'
        "</div>"
    )


def hazard_popup(hazard: HazardPoint, number: int, distance_m: float) -> str:
    return (
        '<div class="p-2">'
        f'<div class="font-bold text-red-600 mb-2">Fire Incident #{number}</div>'
        '<div>Status: <span class="font-medium">Active</span></div>'
        '<div>Reported: <span class="font-medium">Just now</span></div>'
        f'<div>Severity: <span class="font-medium">{hazard.severity.value}</span></div>'
        f'<div class="text-xs text-gray-500">Distance: {round(distance_m)} meters</div>'
        "</div>"
    )


def report_popup(hazard: HazardPoint) -> str:
    return (
        '<div class="p-2">'
        '<div class="font-bold text-red-600 mb-2">Fire Emergency Reported</div>'
        '<div>Status: <span class="font-medium">Emergency Response En Route</span></div>'
        f'<div>Reported: <span class="font-medium">{hazard.reported_at:%H:%M}</span></div>'
        '<div>Priority: <span class="font-medium text-red-600">HIGH</span></div>'
        f'<div class="text-xs text-gray-500">Coordinates: {hazard.latitude:.6f}, {hazard.longitude:.6f}</div>'
        "</div>"
    )


def response_popup(marker: ResponseMarker) -> str:
    return (
        '<div class="p-2">'
        '<div class="font-bold text-blue-600 mb-2">Response Team En Route</div>'
        f"<div>ETA: {marker.eta_minutes} minutes</div>"
        "</div>"
    )


def hydrant_popup(hydrant: Hydrant) -> str:
    color = "text-green-600" if hydrant.operational else "text-red-600"
    return (
        '<div class="p-2">'
        '<div class="font-bold mb-2">Fire Hydrant</div>'
        f'<div>Condition: <span class="{color}">{escape(hydrant.condition)}</span></div>'
        f"<div>Pressure: {escape(hydrant.pressure)}</div>"
        f'<div class="text-xs text-gray-500">Lat: {hydrant.latitude:.6f}<br>Lng: {hydrant.longitude:.6f}</div>'
        "</div>"
    )
