"""Fire hydrant inventory for Santa Cruz, Laguna (demo data)."""

from __future__ import annotations

from firewatch.tracker.models import Hydrant

FIRE_HYDRANTS: tuple[Hydrant, ...] = (
    Hydrant(14.280248, 121.394529, "Operational", "Low"),
    Hydrant(14.280069, 121.394703, "Operational", "High"),
    Hydrant(14.273128, 121.400478, "Operational", "High"),
    Hydrant(14.271956, 121.399617, "Operational", "High"),
    Hydrant(14.27774, 121.411473, "Operational", "Low"),
    Hydrant(14.253727, 121.380829, "Operational", "High"),
    Hydrant(14.278958, 121.415888, "Operational", "High"),
    Hydrant(14.286795, 121.411203, "Operational", "Low"),
    Hydrant(14.287409, 121.411705, "Operational", "Low"),
    Hydrant(14.277512, 121.419285, "Unserviceable", "N/A"),
)
