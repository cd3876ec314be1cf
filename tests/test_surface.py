"""Tests for the in-memory map surface."""

from __future__ import annotations

import pytest

from firewatch.tracker.surface import ICON_FIRE, ICON_USER, InMemoryMapSurface


def test_handles_are_unique(surface):
    a = surface.add_marker((14.28, 121.41), ICON_USER)
    b = surface.add_marker((14.28, 121.41), ICON_USER)
    c = surface.add_circle((14.28, 121.41), 15.0)
    assert len({a, b, c}) == 3


def test_remove_layer_and_unknown_handle(surface):
    handle = surface.add_marker((14.28, 121.41), ICON_FIRE)
    surface.remove_layer(handle)
    surface.remove_layer(handle)
    surface.remove_layer("marker-999")
    assert not surface.has_layer(handle)


def test_move_and_resize_in_place(surface):
    circle = surface.add_circle((14.28, 121.41), 15.0)
    surface.set_lat_lng(circle, (14.29, 121.42))
    surface.set_radius(circle, 8.0)

    layer = surface.layers[circle]
    assert (layer.lat, layer.lng, layer.radius_m) == (14.29, 121.42, 8.0)


def test_operations_on_removed_layer_are_ignored(surface):
    handle = surface.add_marker((14.28, 121.41), ICON_USER)
    surface.remove_layer(handle)
    surface.set_lat_lng(handle, (0.0, 0.0))
    surface.bind_popup(handle, "<div>gone</div>")
    assert surface.layers == {}


@pytest.mark.parametrize("zoom, expected", [(15, 15), (25, 18), (3, 10)])
def test_set_view_clamps_zoom(zoom, expected):
    surface = InMemoryMapSurface(min_zoom=10, max_zoom=18)
    surface.set_view((14.28, 121.41), zoom)
    assert surface.center == (14.28, 121.41)
    assert surface.zoom == expected


def test_count_and_to_dict(surface):
    surface.add_marker((14.28, 121.41), ICON_USER, z_index_offset=1000)
    surface.add_marker((14.29, 121.42), ICON_FIRE)
    surface.add_circle((14.28, 121.41), 15.0)

    assert surface.count() == 3
    assert surface.count(kind="marker") == 2
    assert surface.count(icon=ICON_FIRE) == 1

    data = surface.to_dict()
    assert data["center"] == {"lat": 14.2833, "lng": 121.4194}
    assert data["zoom"] == 13
    assert [layer["kind"] for layer in data["layers"]] == ["marker", "marker", "circle"]
    assert data["layers"][0]["z_index_offset"] == 1000


def test_distance_and_invalidate_size(surface):
    assert surface.distance_m((14.28, 121.41), (14.28, 121.41)) == 0.0
    surface.invalidate_size()
    assert surface.size_version == 1
