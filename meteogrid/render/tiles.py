"""Filled-rectangle painter for scalar metrics (temperature, precipitation).

Each cell becomes one rectangle covering its geographic bounds.  The bounds
are recomputed from the cell's row/col and the grid's cell span, projected
through the host on every paint, and padded by ``bleed`` pixels on every
side so that neighbouring tiles meet without hairline gaps.
"""

import math

import numpy as np

from ..grid import cell_edges


def draw_stride(n_cells, max_draw_count):
    """Draw every ``stride``-th cell so at most ~*max_draw_count* are drawn."""
    if not max_draw_count or n_cells <= 0:
        return 1
    return max(1, math.ceil(n_cells / max_draw_count))


class TilePainter:
    """Paint a scalar grid as colored rectangles.

    Parameters
    ----------
    color_fn : callable
        Maps an array of values to ``(N, 4)`` RGBA colors.
    bleed : float
        Pixels added to every side of each rectangle.  Default 0.5.
    skip_nonpositive : bool
        Skip cells whose value is <= 0 (precipitation).
    max_draw_count : int, optional
        Decimate to roughly this many cells.  ``None`` draws every cell.
    """

    def __init__(self, color_fn, bleed=0.5, skip_nonpositive=False,
                 max_draw_count=None):
        self.color_fn = color_fn
        self.bleed = float(bleed)
        self.skip_nonpositive = skip_nonpositive
        self.max_draw_count = max_draw_count

    def paint(self, canvas, host, grid, now=None):
        """Draw *grid* onto *canvas* using *host* for projection.

        Returns the number of rectangles drawn.
        """
        rows, cols = grid.rows, grid.cols
        values = np.asarray(grid.values, dtype=np.float64).ravel()
        stride = draw_stride(values.size, self.max_draw_count)
        index = np.arange(0, values.size, stride)

        keep = np.isfinite(values[index])
        if self.skip_nonpositive:
            keep &= values[index] > 0
        index = index[keep]
        if index.size == 0:
            return 0

        r, c = np.divmod(index, cols)
        lat_edges, lon_edges = cell_edges(grid.bounds, rows, cols)
        x_sw, y_sw = host.project(lat_edges[r], lon_edges[c])
        x_ne, y_ne = host.project(lat_edges[r + 1], lon_edges[c + 1])
        x_sw, y_sw = np.asarray(x_sw), np.asarray(y_sw)
        x_ne, y_ne = np.asarray(x_ne), np.asarray(y_ne)

        b = self.bleed
        canvas.fill_rects(np.minimum(x_sw, x_ne) - b, np.minimum(y_sw, y_ne) - b,
                          np.maximum(x_sw, x_ne) + b, np.maximum(y_sw, y_ne) + b,
                          self.color_fn(values[index]))
        return int(index.size)
