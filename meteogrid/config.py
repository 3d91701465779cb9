"""Engine tuning parameters."""

import dataclasses
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class EngineConfig:
    """All knobs of a :class:`~meteogrid.engine.GridEngine`.

    Per-metric defaults live in :data:`meteogrid.metrics.METRICS`; use
    :meth:`with_overrides` to derive a modified copy.

    Attributes
    ----------
    min_grid_cells, max_grid_cells : int
        Cell budget.  *max_grid_cells* is the budget at zoom 10 and is
        scaled by zoom (see :func:`meteogrid.grid.dynamic_max_cells`).
    zoom_exponent : float
        Exponent of the zoom scaling.
    zoom_factor_range : (float, float)
        Clamp of ``zoom / 10`` before exponentiation.
    absolute_cell_range : (int, int)
        Hard limits of the zoom-scaled budget.
    sampling_ratio : float
        Base fraction of grid points fetched.
    enable_interpolation : bool
        When False every grid point is fetched (ratio 1).
    concurrency : int
        Fetches in flight.
    fetch_timeout : float
        Per-sample timeout in seconds.
    cache_ttl : float
        Grid cache lifetime in seconds.
    cache_max_entries : int, optional
        Grid cache size cap.
    idw_power, idw_max_distance_km, idw_neighbors, idw_min_distance_km
        Interpolation parameters.
    max_draw_count : int, optional
        Cells drawn per paint before decimation kicks in.
    tile_bleed : float
        Pixel padding of tiled rectangles.
    animation_speed, min_line_length, max_line_length : float
        Wind streamline tuning.
    frame_interval, reproject_interval : float
        Wind loop frame throttle and projection reuse window, seconds.
    cloud_render_style : str
        ``'noise'`` or ``'soft'``.
    z_index : int
        Overlay stacking order.
    verbose : bool
        Print progress lines.
    """
    min_grid_cells: int = 30
    max_grid_cells: int = 1600
    zoom_exponent: float = 1.4
    zoom_factor_range: Tuple[float, float] = (0.3, 2.0)
    absolute_cell_range: Tuple[int, int] = (100, 4000)

    sampling_ratio: float = 0.25
    enable_interpolation: bool = True

    concurrency: int = 18
    fetch_timeout: float = 3.0

    cache_ttl: float = 180.0
    cache_max_entries: Optional[int] = None

    idw_power: float = 2.0
    idw_max_distance_km: float = 500.0
    idw_neighbors: int = 10
    idw_min_distance_km: float = 0.001

    max_draw_count: Optional[int] = None
    tile_bleed: float = 0.5

    animation_speed: float = 0.9
    min_line_length: float = 6.0
    max_line_length: float = 28.0
    frame_interval: float = 0.033
    reproject_interval: float = 0.12

    cloud_render_style: str = 'noise'
    z_index: int = 100
    verbose: bool = False

    def __post_init__(self):
        if self.min_grid_cells < 1:
            raise ValueError(f"min_grid_cells must be >= 1, got {self.min_grid_cells!r}")
        if self.max_grid_cells < 1:
            raise ValueError(f"max_grid_cells must be >= 1, got {self.max_grid_cells!r}")
        if self.sampling_ratio <= 0:
            raise ValueError(f"sampling_ratio must be positive, got {self.sampling_ratio!r}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency!r}")
        if self.fetch_timeout <= 0:
            raise ValueError(f"fetch_timeout must be positive, got {self.fetch_timeout!r}")
        if self.cache_ttl <= 0:
            raise ValueError(f"cache_ttl must be positive, got {self.cache_ttl!r}")
        if self.idw_neighbors < 1:
            raise ValueError(f"idw_neighbors must be >= 1, got {self.idw_neighbors!r}")
        if self.cloud_render_style not in ('noise', 'soft'):
            raise ValueError(f"cloud_render_style must be 'noise' or 'soft', "
                             f"got {self.cloud_render_style!r}")

    def with_overrides(self, **overrides):
        """Return a copy with *overrides* applied.  Unknown keys raise ValueError."""
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown EngineConfig option(s): {', '.join(unknown)}")
        return dataclasses.replace(self, **overrides)

    @property
    def base_sampling_ratio(self):
        return self.sampling_ratio if self.enable_interpolation else 1.0
