"""Tests for inverse-distance-weighted interpolation."""

import math

import numpy as np
import pytest

from meteogrid.interpolate import (
    EARTH_RADIUS_KM,
    haversine_km,
    idw,
    interpolate_grid,
    interpolate_points,
)


@pytest.fixture
def scattered():
    rng = np.random.default_rng(7)
    lats = rng.uniform(40.0, 45.0, 30)
    lons = rng.uniform(-5.0, 0.0, 30)
    values = rng.uniform(-10.0, 30.0, 30)
    return lats, lons, values


class TestHaversine:
    """Great-circle distance."""

    def test_one_degree_on_equator(self):
        expected = EARTH_RADIUS_KM * math.pi / 180.0
        assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(expected, rel=1e-9)

    def test_zero_distance(self):
        assert haversine_km(12.3, 45.6, 12.3, 45.6) == 0.0

    def test_broadcasting(self):
        d = haversine_km(0.0, 0.0, np.array([0.0, 1.0, 2.0]), np.zeros(3))
        assert d.shape == (3,)
        assert np.all(np.diff(d) > 0)


class TestIDW:
    """Point-wise interpolation semantics."""

    def test_no_samples(self):
        assert idw(0.0, 0.0, [], [], []) is None
        assert interpolate_points([0.0], [0.0], [], [], np.empty(0)) is None

    def test_exact_at_samples(self, scattered):
        lats, lons, values = scattered
        out = interpolate_points(lats, lons, lats, lons, values)
        np.testing.assert_allclose(out, values)

    def test_single_sample_constant(self):
        for lat, lon in [(0.0, 0.0), (1.0, 1.0), (-30.0, 120.0)]:
            assert idw(lat, lon, [0.5], [0.5], [7.25]) == 7.25

    def test_convexity(self, scattered):
        lats, lons, values = scattered
        rng = np.random.default_rng(11)
        q_lats = rng.uniform(39.0, 46.0, 500)
        q_lons = rng.uniform(-6.0, 1.0, 500)
        out = interpolate_points(q_lats, q_lons, lats, lons, values)
        assert np.all(out >= values.min() - 1e-9)
        assert np.all(out <= values.max() + 1e-9)

    def test_midpoint_average(self):
        assert idw(0.0, 0.0, [0.0, 0.0], [-1.0, 1.0], [0.0, 10.0]) == pytest.approx(5.0)

    def test_closer_sample_dominates(self):
        value = idw(0.0, 0.2, [0.0, 0.0], [0.0, 1.0], [0.0, 10.0])
        assert 0.0 < value < 5.0

    def test_single_candidate_in_range(self):
        # (0, 10) is ~1100 km away and ignored
        assert idw(0.0, 1.0, [0.0, 0.0], [0.0, 10.0], [1.0, 2.0]) == 1.0

    def test_nothing_in_range_uses_nearest(self):
        assert idw(0.0, 20.0, [0.0, 0.0], [0.0, 10.0], [1.0, 2.0]) == 2.0

    def test_within_one_metre_returns_sample(self):
        # ~0.5 m north of the first sample
        value = idw(0.0000045, 0.0, [0.0, 0.0], [0.0, 0.1], [3.0, 100.0])
        assert value == 3.0

    def test_neighbour_limit(self):
        lats = np.zeros(12)
        lons = np.linspace(-0.6, 0.6, 12)
        values = np.where(np.abs(lons) > 0.55, 1000.0, 1.0)
        # The two far ends are the 11th/12th nearest and excluded with k=10
        assert idw(0.0, 0.0, lats, lons, values, k=10) == pytest.approx(1.0)

    def test_custom_power(self):
        flat = idw(0.0, 0.2, [0.0, 0.0], [0.0, 1.0], [0.0, 10.0], power=0.0)
        assert flat == pytest.approx(5.0)


class TestVectorInterpolation:
    """u/v components share weights."""

    def test_opposing_vectors_cancel(self):
        out = idw(0.0, 0.0, [0.0, 0.0], [-1.0, 1.0], [[10.0, 0.0], [-10.0, 0.0]])
        assert out.shape == (2,)
        np.testing.assert_allclose(out, [0.0, 0.0], atol=1e-9)
        assert math.hypot(*out) == pytest.approx(0.0, abs=1e-9)

    def test_components_independent(self):
        out = idw(0.0, 0.0, [0.0, 0.0], [-1.0, 1.0], [[2.0, 4.0], [4.0, 8.0]])
        np.testing.assert_allclose(out, [3.0, 6.0])

    def test_grid_shape(self):
        lat_grid, lon_grid = np.meshgrid(np.linspace(0, 1, 3), np.linspace(0, 1, 4),
                                         indexing='ij')
        out = interpolate_grid(lat_grid, lon_grid, [0.0, 1.0], [0.0, 1.0],
                               [[1.0, 0.0], [0.0, 1.0]])
        assert out.shape == (3, 4, 2)
        scalar = interpolate_grid(lat_grid, lon_grid, [0.0], [0.0], [5.0])
        assert scalar.shape == (3, 4)
        assert np.all(scalar == 5.0)
