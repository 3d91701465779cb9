"""Choose which grid points are actually fetched.

Only a fraction of the grid is queried from the point service; the rest is
interpolated.  Sampling is a flat stride over the row-major grid plus a set
of robustness points (corners, centre and optionally edge midpoints) that
pin the interpolation at the viewport boundary.
"""

import math

import numpy as np


def dynamic_sampling_ratio(total_points, base_ratio):
    """Raise the sampling ratio on dense grids.

    ``< 200`` points keep *base_ratio*; up to 1000 points it grows by 10 %
    (capped at 0.30); beyond that by 20 % (capped at 0.35).  The result is
    never below *base_ratio* and a ratio of 1 or more means "fetch all".
    """
    if base_ratio >= 1.0:
        return 1.0
    if total_points < 200:
        return base_ratio
    if total_points > 1000:
        return max(base_ratio, min(0.35, base_ratio * 1.2))
    return max(base_ratio, min(0.30, base_ratio * 1.1))


def robustness_indices(rows, cols, edge_midpoints=False):
    """Flat indices of the corner, centre and (optionally) edge-midpoint cells."""
    mid_row, mid_col = rows // 2, cols // 2
    cells = [
        (0, 0), (0, cols - 1), (rows - 1, 0), (rows - 1, cols - 1),
        (mid_row, mid_col),
    ]
    if edge_midpoints:
        cells += [(0, mid_col), (rows - 1, mid_col),
                  (mid_row, 0), (mid_row, cols - 1)]
    return sorted({r * cols + c for r, c in cells})


def select_samples(rows, cols, ratio, edge_midpoints=False):
    """Select the grid indices to fetch.

    Parameters
    ----------
    rows, cols : int
        Grid shape.
    ratio : float
        Fraction of points to fetch.  ``>= 1`` selects every point.
    edge_midpoints : bool
        Also force the four edge midpoints (used by temperature-like metrics).

    Returns
    -------
    numpy.ndarray
        Sorted unique flat (row-major) indices, at most ``rows * cols`` long.
    """
    total = rows * cols
    if total <= 0:
        return np.empty(0, dtype=np.int64)
    if ratio >= 1.0:
        return np.arange(total, dtype=np.int64)
    if ratio <= 0:
        raise ValueError(f"sampling ratio must be positive, got {ratio!r}")

    stride = max(1, int(math.floor(1.0 / ratio)))
    strided = np.arange(0, total, stride, dtype=np.int64)
    forced = np.asarray(robustness_indices(rows, cols, edge_midpoints),
                        dtype=np.int64)
    return np.union1d(strided, forced)
