"""Viewport-adaptive grid sizing and cell-centre generation.

The grid covers the viewport with ``rows x cols`` equal cells in lat/lng
space.  Its density follows the map zoom: the base cell budget is scaled by
``clamp(zoom / 10, 0.3, 2.0) ** zoom_exponent`` and then clamped into an
absolute range, so zoomed-in views get finer grids without unbounded request
counts.
"""

import math
from typing import NamedTuple

import numpy as np


class GridPoint(NamedTuple):
    lat: float
    lon: float
    row: int
    col: int


def dynamic_max_cells(zoom, base_max_cells=1600, zoom_exponent=1.4,
                      zoom_factor_range=(0.3, 2.0),
                      absolute_range=(100, 4000)):
    """Scale the cell budget by zoom level.

    Parameters
    ----------
    zoom : float or None
        Map zoom level.  ``None`` or ``0`` keeps *base_max_cells*.
    base_max_cells : int
        Budget at zoom 10.
    zoom_exponent : float
        Exponent applied to the clamped ``zoom / 10`` factor.
    zoom_factor_range : (float, float)
        Clamp for ``zoom / 10`` before exponentiation.
    absolute_range : (int, int)
        Hard lower/upper limit of the returned budget.

    Returns
    -------
    int
    """
    if not zoom:
        return int(base_max_cells)
    lo, hi = zoom_factor_range
    factor = min(hi, max(lo, zoom / 10.0)) ** zoom_exponent
    cells = int(math.floor(base_max_cells * factor))
    return max(absolute_range[0], min(absolute_range[1], cells))


def _fit_under(rows, cols, limit):
    """Trim the longer axis until ``rows * cols <= limit``."""
    if rows * cols <= limit:
        return rows, cols
    if cols >= rows:
        cols = max(1, limit // rows)
        if rows * cols > limit:
            rows = max(1, limit // cols)
    else:
        rows = max(1, limit // cols)
        if rows * cols > limit:
            cols = max(1, limit // rows)
    return rows, cols


def grid_dimensions(bounds, min_cells=30, max_cells=1600, zoom_exponent=1.4,
                    zoom_factor_range=(0.3, 2.0), absolute_range=(100, 4000)):
    """Derive grid ``(rows, cols)`` for a viewport.

    Rows and columns follow the viewport aspect ratio (``lng_span /
    lat_span``) and the product stays within ``[min_cells, limit]`` where
    *limit* is :func:`dynamic_max_cells` for the viewport zoom.  The result
    is deterministic for fixed bounds and zoom.

    Parameters
    ----------
    bounds : ViewportBounds
        Viewport to cover.  Must be non-degenerate.
    min_cells, max_cells : int
        Minimum cell budget and the zoom-10 maximum budget.

    Returns
    -------
    (int, int)
        ``(rows, cols)``, both at least 1.
    """
    lat_span = abs(bounds.lat_span)
    lng_span = abs(bounds.lng_span)
    if lat_span == 0 or lng_span == 0:
        raise ValueError("grid_dimensions() needs a viewport with non-zero area")
    aspect = lng_span / lat_span

    limit = dynamic_max_cells(bounds.zoom, max_cells, zoom_exponent,
                              zoom_factor_range, absolute_range)
    floor_cells = max(1, min(min_cells, limit))

    base = math.sqrt(limit / aspect)
    rows = max(1, math.ceil(base))
    cols = max(1, math.ceil(base * aspect))

    min_rows = max(1, math.ceil(math.sqrt(floor_cells / aspect)))
    min_cols = max(1, math.ceil(math.sqrt(floor_cells * aspect)))
    rows = max(rows, min_rows)
    cols = max(cols, min_cols)

    total = rows * cols
    if total > limit:
        scale = math.sqrt(limit / total)
        rows = max(1, math.floor(rows * scale))
        cols = max(1, math.floor(cols * scale))
    rows, cols = _fit_under(rows, cols, limit)

    total = rows * cols
    if total < floor_cells:
        scale = math.sqrt(floor_cells / total)
        rows = math.ceil(rows * scale)
        cols = math.ceil(cols * scale)
        rows, cols = _fit_under(rows, cols, limit)

    return rows, cols


def grid_coordinates(bounds, rows, cols):
    """Return ``(lats, lons)`` arrays of shape (rows, cols) with cell centres.

    Row ``i`` / column ``j`` sits at fractional position
    ``((i + 0.5) / rows, (j + 0.5) / cols)`` measured from the SW corner.
    """
    lat_frac = (np.arange(rows, dtype=np.float64) + 0.5) / rows
    lon_frac = (np.arange(cols, dtype=np.float64) + 0.5) / cols
    lats = bounds.southwest.lat + bounds.lat_span * lat_frac
    lons = bounds.southwest.lng + bounds.lng_span * lon_frac
    lon_grid, lat_grid = np.meshgrid(lons, lats)
    return lat_grid, lon_grid


def grid_points(bounds, rows, cols):
    """Cell centres as a row-major list of :class:`GridPoint`."""
    lats, lons = grid_coordinates(bounds, rows, cols)
    return [GridPoint(float(lats[i, j]), float(lons[i, j]), i, j)
            for i in range(rows) for j in range(cols)]


def cell_edges(bounds, rows, cols):
    """Return ``(lat_edges, lon_edges)`` of length rows+1 and cols+1.

    Cell ``(i, j)`` spans ``lat_edges[i]..lat_edges[i+1]`` and
    ``lon_edges[j]..lon_edges[j+1]``; adjacent cells share edges exactly.
    """
    lat_edges = bounds.southwest.lat + bounds.lat_span * (
        np.arange(rows + 1, dtype=np.float64) / rows)
    lon_edges = bounds.southwest.lng + bounds.lng_span * (
        np.arange(cols + 1, dtype=np.float64) / cols)
    return lat_edges, lon_edges
