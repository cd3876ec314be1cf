"""Tests for tracker data types."""

from __future__ import annotations

import pytest

from firewatch.tracker.models import Position


def test_position_accepts_bounds():
    Position(latitude=90.0, longitude=-180.0, accuracy_m=0.0)
    Position(latitude=-90.0, longitude=180.0, accuracy_m=5000.0)


@pytest.mark.parametrize(
    "lat, lng, acc",
    [
        (95.0, 121.4194, 15.0),
        (-90.5, 121.4194, 15.0),
        (14.2833, 180.5, 15.0),
        (float("nan"), 121.4194, 15.0),
        (14.2833, float("inf"), 15.0),
        (14.2833, 121.4194, float("nan")),
        (14.2833, 121.4194, -1.0),
    ],
)
def test_position_rejects_invalid_fix(lat, lng, acc):
    with pytest.raises(ValueError):
        Position(latitude=lat, longitude=lng, accuracy_m=acc)
