"""Tests for the hazard simulator and the displacement policy."""

from __future__ import annotations

import random
from datetime import timedelta

import pytest

from firewatch.tracker.geo import haversine_m
from firewatch.tracker.hazards import (
    RESPONSE_OFFSET_DEG,
    HazardConfig,
    HazardSimulator,
    should_regenerate,
)
from firewatch.tracker.models import SIMULATED_SEVERITIES, Position, Severity


@pytest.fixture
def simulator(clock):
    return HazardSimulator(rng=random.Random(42), clock=clock)


CENTER = Position(latitude=14.2833, longitude=121.4194, accuracy_m=15.0)


# ---------------------------------------------------------------------------
# generate()
# ---------------------------------------------------------------------------


def test_generate_count_within_bounds(simulator):
    config = HazardConfig(min_count=2, max_count=4, radius_m=3000)
    counts = {len(simulator.generate(CENTER, config)) for _ in range(200)}
    assert counts <= {2, 3, 4}
    # every allowed count shows up over enough draws
    assert counts == {2, 3, 4}


def test_generate_fixed_count(simulator):
    config = HazardConfig(min_count=3, max_count=3, radius_m=500)
    assert len(simulator.generate(CENTER, config)) == 3


@pytest.mark.parametrize(
    "center",
    [
        CENTER,
        Position(latitude=0.0, longitude=0.0, accuracy_m=5.0),
        Position(latitude=-33.87, longitude=151.21, accuracy_m=5.0),
        Position(latitude=60.17, longitude=24.94, accuracy_m=5.0),
    ],
)
def test_generate_points_within_radius(simulator, center):
    config = HazardConfig(min_count=2, max_count=4, radius_m=3000)
    for _ in range(100):
        for point in simulator.generate(center, config):
            dist = haversine_m(center.latitude, center.longitude, point.latitude, point.longitude)
            assert dist <= config.radius_m


def test_generate_clusters_toward_center(simulator):
    # Uniform radius puts about half the points inside half the radius;
    # a uniform-area sample would put only a quarter there.
    config = HazardConfig(min_count=4, max_count=4, radius_m=3000)
    points = [p for _ in range(1000) for p in simulator.generate(CENTER, config)]
    inner = sum(
        1
        for p in points
        if haversine_m(CENTER.latitude, CENTER.longitude, p.latitude, p.longitude) < 1500
    )
    assert 0.4 < inner / len(points) < 0.6


def test_generate_returns_fresh_independent_sets(simulator):
    config = HazardConfig()
    first = simulator.generate(CENTER, config)
    second = simulator.generate(CENTER, config)
    assert first is not second
    assert {p.id for p in first}.isdisjoint({p.id for p in second})


def test_generate_severities_are_simulated_only(simulator):
    config = HazardConfig(min_count=4, max_count=4)
    severities = {p.severity for _ in range(200) for p in simulator.generate(CENTER, config)}
    assert severities == set(SIMULATED_SEVERITIES)
    assert Severity.EMERGENCY not in severities


def test_generate_points_have_no_handle_and_are_not_reports(simulator, clock):
    for point in simulator.generate(CENTER, HazardConfig()):
        assert point.marker_handle is None
        assert point.reported is False
        assert point.reported_at == clock()


def test_generate_is_reproducible_with_seed(clock):
    a = HazardSimulator(rng=random.Random(7), clock=clock).generate(CENTER, HazardConfig())
    b = HazardSimulator(rng=random.Random(7), clock=clock).generate(CENTER, HazardConfig())
    assert [(p.latitude, p.longitude, p.severity) for p in a] == [
        (p.latitude, p.longitude, p.severity) for p in b
    ]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_count": 5, "max_count": 4},
        {"min_count": -1, "max_count": 2},
        {"radius_m": -10},
    ],
)
def test_hazard_config_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        HazardConfig(**kwargs)


# ---------------------------------------------------------------------------
# Displacement policy
# ---------------------------------------------------------------------------


def test_should_regenerate_without_anchor():
    assert should_regenerate(None, CENTER, 100) is True


def test_should_regenerate_ignores_jitter():
    anchor = Position(latitude=14.2800, longitude=121.4000, accuracy_m=10)
    fix = Position(latitude=14.2801, longitude=121.4001, accuracy_m=10)
    assert should_regenerate(anchor, fix, 100) is False


def test_should_regenerate_after_real_move():
    anchor = Position(latitude=14.2800, longitude=121.4000, accuracy_m=10)
    fix = Position(latitude=14.2815, longitude=121.4000, accuracy_m=10)  # ~167 m
    assert should_regenerate(anchor, fix, 100) is True


def test_should_regenerate_at_exact_threshold():
    anchor = Position(latitude=14.2800, longitude=121.4000, accuracy_m=10)
    fix = Position(latitude=14.2810, longitude=121.4000, accuracy_m=10)
    threshold = haversine_m(anchor.latitude, anchor.longitude, fix.latitude, fix.longitude)
    assert should_regenerate(anchor, fix, threshold) is True


# ---------------------------------------------------------------------------
# Reports and response teams
# ---------------------------------------------------------------------------


def test_emergency_at_pins_position(simulator, clock):
    hazard = simulator.emergency_at(CENTER)
    assert (hazard.latitude, hazard.longitude) == (CENTER.latitude, CENTER.longitude)
    assert hazard.severity is Severity.EMERGENCY
    assert hazard.reported is True
    assert hazard.reported_at == clock()


def test_spawn_response_near_report(simulator, clock):
    for _ in range(50):
        marker = simulator.spawn_response(CENTER, lifetime_s=30)
        assert abs(marker.latitude - CENTER.latitude) <= RESPONSE_OFFSET_DEG
        assert abs(marker.longitude - CENTER.longitude) <= RESPONSE_OFFSET_DEG
        assert 3 <= marker.eta_minutes <= 7
        assert marker.expires_at == clock() + timedelta(seconds=30)


def test_response_marker_expiry_boundary(simulator, clock):
    marker = simulator.spawn_response(CENTER, lifetime_s=30)
    assert not marker.is_expired(clock() + timedelta(seconds=29.999))
    assert marker.is_expired(clock() + timedelta(seconds=30))
    assert marker.is_expired(clock() + timedelta(seconds=31))
