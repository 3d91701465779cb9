"""Tests for viewport bounds, grid sizing and sample selection."""

import math

import numpy as np
import pytest

from meteogrid.bounds import LatLng, ViewportBounds, bounds_hash
from meteogrid.grid import (
    cell_edges,
    dynamic_max_cells,
    grid_coordinates,
    grid_dimensions,
    grid_points,
)
from meteogrid.sampling import (
    dynamic_sampling_ratio,
    robustness_indices,
    select_samples,
)


def box(west, south, east, north, zoom=None):
    return ViewportBounds.from_wsen((west, south, east, north), zoom=zoom)


class TestViewportBounds:
    """Tests for ViewportBounds construction and validation."""

    def test_from_wsen_roundtrip(self):
        b = box(-74.0, 40.0, -73.0, 41.0, zoom=10)
        assert b.northeast == LatLng(41.0, -73.0)
        assert b.southwest == LatLng(40.0, -74.0)
        assert b.to_wsen() == (-74.0, 40.0, -73.0, 41.0)
        assert b.zoom == 10

    def test_from_dict(self):
        b = ViewportBounds.from_dict({
            'northeast': {'lat': 10, 'lng': 20},
            'southwest': {'lat': 5, 'lng': 15},
            'zoom': 7,
        })
        assert b.lat_span == 5
        assert b.lng_span == 5
        assert b.center == LatLng(7.5, 17.5)
        assert b.zoom == 7

    def test_valid_bounds(self):
        assert box(-74.0, 40.0, -73.0, 41.0).validate() is None
        assert box(-74.0, 40.0, -73.0, 41.0).is_valid()

    @pytest.mark.parametrize("bounds", [
        ViewportBounds(LatLng(float('nan'), 1.0), LatLng(0.0, 0.0)),
        ViewportBounds(LatLng(1.0, float('inf')), LatLng(0.0, 0.0)),
        ViewportBounds(LatLng(95.0, 1.0), LatLng(0.0, 0.0)),
        ViewportBounds(LatLng(1.0, 1.0), LatLng(1.0, 0.0)),
        ViewportBounds(LatLng(1.0, 1.0), LatLng(0.0, 1.0)),
        ViewportBounds(LatLng(1.0, 1.0), LatLng(0.0, 0.0), float('nan')),
    ])
    def test_degenerate_bounds(self, bounds):
        problem = bounds.validate()
        assert isinstance(problem, str)
        assert not bounds.is_valid()


class TestBoundsHash:
    """Tests for the bounds hash key."""

    def test_format(self):
        b = ViewportBounds(LatLng(40.12346, -73.5), LatLng(39.0, -75.0))
        assert bounds_hash(b) == "40.1235_-73.5000_39.0000_-75.0000"

    def test_subpixel_jitter_same_key(self):
        a = box(-74.0, 40.0, -73.0, 41.0)
        b = box(-74.00001, 40.00002, -73.00001, 41.00001)
        assert bounds_hash(a) == bounds_hash(b)

    def test_zoom_ignored(self):
        assert bounds_hash(box(0, 0, 1, 1, zoom=3)) == bounds_hash(box(0, 0, 1, 1, zoom=12))

    def test_distinct_viewports(self):
        assert bounds_hash(box(0, 0, 1, 1)) != bounds_hash(box(0, 0, 1, 1.001))


class TestDynamicMaxCells:
    """Tests for zoom-scaled cell budgets."""

    def test_zoom_ten_is_base(self):
        assert dynamic_max_cells(10) == 1600

    @pytest.mark.parametrize("zoom", [None, 0])
    def test_missing_zoom_is_base(self, zoom):
        assert dynamic_max_cells(zoom) == 1600
        assert dynamic_max_cells(zoom, base_max_cells=900) == 900

    def test_low_zoom(self):
        # clamp(0.1, 0.3, 2) ** 1.4 * 1600
        assert dynamic_max_cells(1) == math.floor(1600 * 0.3 ** 1.4)

    def test_upper_clamp(self):
        assert dynamic_max_cells(20) == 4000
        assert dynamic_max_cells(40) == 4000

    def test_lower_clamp(self):
        assert dynamic_max_cells(1, base_max_cells=100) == 100

    def test_monotonic_in_zoom(self):
        values = [dynamic_max_cells(z) for z in range(1, 25)]
        assert values == sorted(values)

    def test_configurable_exponent(self):
        assert dynamic_max_cells(15, zoom_exponent=1.0) == 2400


class TestGridDimensions:
    """Tests for grid sizing."""

    def test_one_degree_zoom_ten(self):
        assert grid_dimensions(box(-74.0, 40.0, -73.0, 41.0, zoom=10)) == (40, 40)

    def test_aspect_ratio_followed(self):
        rows, cols = grid_dimensions(box(0.0, 0.0, 2.0, 1.0, zoom=10))
        assert cols > rows
        assert abs(cols / rows - 2.0) < 0.2
        assert rows * cols <= 1600

    def test_deterministic(self):
        b = box(12.3, 45.6, 13.9, 46.2, zoom=9.5)
        assert grid_dimensions(b) == grid_dimensions(b)

    def test_budget_respected_random(self):
        rng = np.random.default_rng(42)
        for _ in range(200):
            lat_span = rng.uniform(0.05, 5.0)
            aspect = rng.uniform(0.1, 10.0)
            zoom = rng.uniform(1.0, 20.0)
            b = box(0.0, 0.0, lat_span * aspect, lat_span, zoom=zoom)
            rows, cols = grid_dimensions(b)
            limit = dynamic_max_cells(zoom)
            assert rows >= 1 and cols >= 1
            assert 30 <= rows * cols <= limit

    def test_extreme_aspect(self):
        rows, cols = grid_dimensions(box(0.0, 0.0, 100.0, 0.001, zoom=10))
        assert rows >= 1 and cols >= 1
        assert rows * cols <= 1600

    def test_zero_area_rejected(self):
        with pytest.raises(ValueError):
            grid_dimensions(box(0.0, 0.0, 0.0, 1.0))


class TestGridPoints:
    """Tests for cell-centre generation."""

    def test_row_major_centres(self):
        b = box(10.0, 20.0, 14.0, 22.0)
        pts = grid_points(b, 2, 4)
        assert len(pts) == 8
        assert [(p.row, p.col) for p in pts[:5]] == [(0, 0), (0, 1), (0, 2), (0, 3), (1, 0)]
        assert pts[0].lat == pytest.approx(20.5)
        assert pts[0].lon == pytest.approx(10.5)
        assert pts[-1].lat == pytest.approx(21.5)
        assert pts[-1].lon == pytest.approx(13.5)

    def test_inside_bounds(self):
        b = box(-74.0, 40.0, -73.0, 41.0)
        lats, lons = grid_coordinates(b, 7, 9)
        assert lats.shape == (7, 9)
        assert np.all((lats > 40.0) & (lats < 41.0))
        assert np.all((lons > -74.0) & (lons < -73.0))

    def test_cell_edges_tile_bounds(self):
        b = box(-74.0, 40.0, -73.0, 41.0)
        lat_edges, lon_edges = cell_edges(b, 4, 5)
        assert lat_edges[0] == pytest.approx(40.0)
        assert lat_edges[-1] == pytest.approx(41.0)
        assert lon_edges[0] == pytest.approx(-74.0)
        assert lon_edges[-1] == pytest.approx(-73.0)
        lats, lons = grid_coordinates(b, 4, 5)
        np.testing.assert_allclose(lats[:, 0], (lat_edges[:-1] + lat_edges[1:]) / 2)
        np.testing.assert_allclose(lons[0], (lon_edges[:-1] + lon_edges[1:]) / 2)


class TestSamplingRatio:
    """Tests for the adaptive sampling ratio."""

    def test_small_grid_keeps_base(self):
        assert dynamic_sampling_ratio(150, 0.25) == 0.25

    def test_medium_grid(self):
        assert dynamic_sampling_ratio(500, 0.25) == pytest.approx(0.275)
        assert dynamic_sampling_ratio(500, 0.29) == pytest.approx(0.30)

    def test_large_grid(self):
        assert dynamic_sampling_ratio(1600, 0.25) == pytest.approx(0.30)
        assert dynamic_sampling_ratio(1600, 0.2) == pytest.approx(0.24)
        assert dynamic_sampling_ratio(1600, 0.32) == pytest.approx(0.35)

    def test_never_below_base(self):
        assert dynamic_sampling_ratio(1600, 0.5) == 0.5

    def test_fetch_all(self):
        assert dynamic_sampling_ratio(1600, 1.0) == 1.0


class TestSelectSamples:
    """Tests for sample selection."""

    def test_scenario_count(self):
        idx = select_samples(40, 40, 0.24, edge_midpoints=True)
        # stride 4 gives 400; corners/centre/midpoints add 39, 839, 1599
        assert len(idx) == 403

    def test_corners_and_centre_always(self):
        rng = np.random.default_rng(0)
        for _ in range(50):
            rows, cols = rng.integers(1, 60, size=2)
            ratio = rng.uniform(0.01, 0.9)
            idx = set(select_samples(rows, cols, ratio).tolist())
            for r, c in [(0, 0), (0, cols - 1), (rows - 1, 0),
                         (rows - 1, cols - 1), (rows // 2, cols // 2)]:
                assert r * cols + c in idx

    def test_edge_midpoints_optional(self):
        plain = set(robustness_indices(10, 10))
        full = set(robustness_indices(10, 10, edge_midpoints=True))
        assert plain < full
        assert {5, 95, 50, 59} <= full

    def test_sorted_unique_bounded(self):
        idx = select_samples(13, 17, 0.3, edge_midpoints=True)
        assert np.all(np.diff(idx) > 0)
        assert len(idx) <= 13 * 17
        assert idx.min() >= 0 and idx.max() < 13 * 17

    def test_ratio_one_selects_all(self):
        np.testing.assert_array_equal(select_samples(3, 4, 1.0), np.arange(12))

    def test_single_cell(self):
        np.testing.assert_array_equal(select_samples(1, 1, 0.25), [0])

    def test_nonpositive_ratio(self):
        with pytest.raises(ValueError):
            select_samples(4, 4, 0.0)
