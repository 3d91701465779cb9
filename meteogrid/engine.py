"""The grid engine: viewport in, painted overlay out.

One :class:`GridEngine` drives one overlay.  A render cycle runs

    bounds -> grid size -> cell centres -> sample selection
           -> concurrent fetch -> IDW interpolation -> cache -> paint

and every metric goes through the same pipeline; the per-metric parts
(value extraction, payload width, painter, tuning) come from a
:class:`~meteogrid.metrics.MetricSpec`.

Usage::

    from meteogrid import GridEngine, OpenMeteoService, WebMercatorMap
    m = WebMercatorMap(center=(48.85, 2.35), zoom=8, size=(800, 600))
    engine = GridEngine('temperature', OpenMeteoService(), host=m)
    engine.render()                 # uses m.get_bounds()
    m.composite().save('paris_temperature.png')
"""

import threading
import warnings
from dataclasses import dataclass
from typing import NamedTuple, Optional

import numpy as np

from .bounds import LatLng, ViewportBounds, bounds_hash
from .cache import GridCache
from .config import EngineConfig
from .fetch import fetch_samples
from .grid import grid_coordinates, grid_dimensions, grid_points
from .host import CanvasOverlay, host_available
from .interpolate import interpolate_grid
from .metrics import get_metric
from .render.canvas import Canvas
from .render.wind import WindAnimation, record as record_wind
from .sampling import dynamic_sampling_ratio, select_samples

MIN_HEALTHY_SAMPLES = 3


def _lazy_import_xarray():
    try:
        import xarray as xr
    except ImportError:
        raise ImportError(
            "xarray is required for Grid.to_xarray(). "
            "Install it with: pip install xarray "
            "or: pip install meteogrid[all]"
        )
    return xr


class GridCell(NamedTuple):
    lat: float
    lon: float
    row: int
    col: int
    value: object
    sampled: bool


@dataclass(frozen=True, eq=False)
class Grid:
    """An immutable interpolated grid for one viewport.

    Attributes
    ----------
    bounds : ViewportBounds
    rows, cols : int
    lats, lons : ndarray, shape (rows, cols)
        Cell-centre coordinates.
    values : ndarray, shape (rows, cols) or (rows, cols, 2)
        Scalar values, or (u, v) for vector metrics.
    sampled : ndarray of bool, shape (rows, cols)
        Cells backed by a successful fetch.
    speed : ndarray, shape (rows, cols), optional
        ``hypot(u, v)`` for vector metrics.
    n_requested, n_succeeded : int
        Samples fetched and samples that returned a usable value.
    metric : str
    """
    bounds: ViewportBounds
    rows: int
    cols: int
    lats: np.ndarray
    lons: np.ndarray
    values: np.ndarray
    sampled: np.ndarray
    speed: Optional[np.ndarray] = None
    n_requested: int = 0
    n_succeeded: int = 0
    metric: str = ''

    def __post_init__(self):
        for name in ('lats', 'lons', 'values', 'sampled', 'speed'):
            arr = getattr(self, name)
            if arr is not None:
                arr.flags.writeable = False

    @property
    def shape(self):
        return self.rows, self.cols

    @property
    def is_vector(self):
        return self.values.ndim == 3

    def cell_bounds(self, row, col):
        """Geographic rectangle of cell (row, col) from the cell span."""
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(f"cell ({row}, {col}) outside {self.rows}x{self.cols} grid")
        lat_step = self.bounds.lat_span / self.rows
        lng_step = self.bounds.lng_span / self.cols
        sw = self.bounds.southwest
        return ViewportBounds(
            LatLng(sw.lat + (row + 1) * lat_step, sw.lng + (col + 1) * lng_step),
            LatLng(sw.lat + row * lat_step, sw.lng + col * lng_step),
            self.bounds.zoom,
        )

    def cells(self):
        """Row-major list of :class:`GridCell`.

        Vector grids carry ``(u, v, speed)`` as the cell value.
        """
        out = []
        for i in range(self.rows):
            for j in range(self.cols):
                if self.is_vector:
                    u, v = self.values[i, j]
                    value = (float(u), float(v), float(self.speed[i, j]))
                else:
                    value = float(self.values[i, j])
                out.append(GridCell(float(self.lats[i, j]), float(self.lons[i, j]),
                                    i, j, value, bool(self.sampled[i, j])))
        return out

    def to_xarray(self):
        """Export as an ``xarray.DataArray`` with ``lat``/``lon`` coordinates.

        Vector grids gain a ``component`` dimension with labels ``u``/``v``.
        """
        xr = _lazy_import_xarray()
        coords = {'lat': self.lats[:, 0].copy(), 'lon': self.lons[0, :].copy()}
        dims = ('lat', 'lon')
        if self.is_vector:
            dims = dims + ('component',)
            coords['component'] = ['u', 'v']
        return xr.DataArray(
            self.values.copy(), dims=dims, coords=coords, name=self.metric or None,
            attrs={'n_requested': self.n_requested,
                   'n_succeeded': self.n_succeeded,
                   'bounds_hash': bounds_hash(self.bounds)},
        )


class PercentProgress:
    """Adapt ``(completed, total)`` fetch progress to a 0-100 scale.

    Fetching spans 0-85, interpolation reports 90 and completion 100.
    """

    stages = {'interpolate': 90, 'done': 100}

    def __init__(self, callback):
        self.callback = callback

    def __call__(self, completed, total):
        pct = 85 if total <= 0 else int(round(85 * completed / total))
        self.callback(pct)

    def stage(self, name):
        self.callback(self.stages[name])


def percent_progress(callback):
    """Wrap *callback(percent)* as an engine progress callback."""
    return PercentProgress(callback)


def _report_stage(progress, name):
    stage = getattr(progress, 'stage', None)
    if stage is not None:
        stage(name)


def build_grid(bounds, metric, fetch, config=None, progress=None, abort=None):
    """Run one full grid computation for *bounds*.

    Parameters
    ----------
    bounds : ViewportBounds
        Valid viewport.
    metric : str or MetricSpec
    fetch : callable
        ``fetch(lat, lon, cancel) -> Reading or None``.
    config : EngineConfig, optional
        Defaults to the metric's configuration.
    progress : callable, optional
        ``progress(completed, total)`` during fetching.  If it also has a
        ``stage(name)`` method it is told about ``'interpolate'``.
    abort : threading.Event, optional
        Skip samples not yet started once set.

    Returns
    -------
    Grid or None
        ``None`` when no sample could be fetched.
    """
    metric = get_metric(metric)
    if config is None:
        config = metric.config()
    verbose = config.verbose

    rows, cols = grid_dimensions(bounds, config.min_grid_cells,
                                 config.max_grid_cells, config.zoom_exponent,
                                 config.zoom_factor_range,
                                 config.absolute_cell_range)
    lats, lons = grid_coordinates(bounds, rows, cols)
    points = grid_points(bounds, rows, cols)
    total = rows * cols

    ratio = dynamic_sampling_ratio(total, config.base_sampling_ratio)
    indices = select_samples(rows, cols, ratio, metric.edge_midpoints)
    if verbose:
        print(f"Building {metric.name} grid {rows}x{cols} "
              f"({len(indices)} of {total} points, ratio {ratio:.2f})...")

    extract = metric.extract

    def fetch_value(lat, lon, cancel):
        reading = fetch(lat, lon, cancel)
        if reading is None:
            return None
        return extract(reading)

    results = fetch_samples([points[i] for i in indices], fetch_value,
                            concurrency=config.concurrency,
                            timeout=config.fetch_timeout,
                            progress=progress, abort=abort)

    width = metric.components
    ok_index, ok_values = [], []
    for index, value in zip(indices, results):
        if value is None:
            continue
        arr = np.asarray(value, dtype=np.float64).reshape(-1)
        if arr.size != width or not np.all(np.isfinite(arr)):
            continue
        ok_index.append(int(index))
        ok_values.append(arr if width > 1 else arr[0])

    n_ok = len(ok_index)
    if verbose:
        print(f"  Fetched {n_ok}/{len(indices)} samples")
    if n_ok == 0:
        return None
    if n_ok < MIN_HEALTHY_SAMPLES:
        warnings.warn(
            f"Only {n_ok} of {len(indices)} {metric.name} samples succeeded; "
            f"the interpolated grid is a rough estimate.",
            RuntimeWarning, stacklevel=2,
        )

    _report_stage(progress, 'interpolate')
    ok_index = np.asarray(ok_index, dtype=np.int64)
    flat_lats, flat_lons = lats.ravel(), lons.ravel()
    values = interpolate_grid(lats, lons, flat_lats[ok_index], flat_lons[ok_index],
                              np.asarray(ok_values, dtype=np.float64),
                              power=config.idw_power,
                              max_distance_km=config.idw_max_distance_km,
                              k=config.idw_neighbors,
                              min_distance_km=config.idw_min_distance_km)

    sampled = np.zeros(total, dtype=bool)
    sampled[ok_index] = True
    sampled = sampled.reshape(rows, cols)

    speed = None
    if width == 2:
        speed = np.hypot(values[..., 0], values[..., 1])
        if verbose:
            print(f"  Mean speed: {float(speed.mean()):.1f} {metric.units}")

    return Grid(bounds=bounds, rows=rows, cols=cols, lats=lats, lons=lons,
                values=values, sampled=sampled, speed=speed,
                n_requested=int(len(indices)), n_succeeded=n_ok,
                metric=metric.name)


class GridEngine:
    """Compute, cache and paint one metric overlay on a map host.

    Parameters
    ----------
    metric : str or MetricSpec
        ``'temperature'``, ``'wind'``, ``'precipitation'``, ``'cloud'`` or a
        custom spec.
    fetch : callable
        Point service, ``fetch(lat, lon, cancel) -> Reading or None``.
    host : MapHost, optional
        Map to draw on.  Can be attached later with :meth:`set_host`.
    config : EngineConfig, optional
        Full configuration; defaults to the metric's defaults.
    clock : callable, optional
        Time source of the grid cache.
    animate : bool
        Run the background animation loop for animated painters (wind).
        When False a single frame is drawn per render.
    **overrides
        :class:`EngineConfig` fields applied on top.

    Attributes
    ----------
    grid : Grid or None
        Grid currently displayed.
    last_bounds_hash : str or None
        Bounds hash of the displayed grid.
    last_status : str or None
        Outcome of the latest :meth:`render` call: ``'rendered'``,
        ``'cached'``, ``'unchanged'``, ``'busy'``, ``'invalid'``,
        ``'unavailable'``, ``'failed'`` or ``'superseded'``.  A cycle is
        superseded when the engine was cleared or the viewport moved on
        while it was fetching; its grid stays in the cache but is not shown.
    """

    def __init__(self, metric, fetch, host=None, config=None, clock=None,
                 animate=True, **overrides):
        self.metric = get_metric(metric)
        if config is None:
            config = self.metric.config(**overrides)
        elif overrides:
            config = config.with_overrides(**overrides)
        if not isinstance(config, EngineConfig):
            raise ValueError(f"config must be an EngineConfig, got {type(config).__name__}")
        self.config = config
        self.fetch = fetch
        self.animate = animate
        self.cache = GridCache(ttl=config.cache_ttl, clock=clock,
                               max_entries=config.cache_max_entries)
        self.painter = self.metric.make_painter(config)

        self._host = host
        self.canvas = None
        self.overlay = None
        self._animation = None

        self.grid = None
        self.last_bounds_hash = None
        self.last_status = None

        self._lock = threading.Lock()
        self._request_in_progress = False
        self._generation = 0
        self._abort = None
        self._wanted_key = None

    def __repr__(self):
        return (f"GridEngine(metric={self.metric.name!r}, "
                f"grid={None if self.grid is None else self.grid.shape})")

    @property
    def host(self):
        return self._host

    @property
    def request_in_progress(self):
        return self._request_in_progress

    @property
    def animation(self):
        return self._animation

    # ------------------------------------------------------------------
    # Render cycle
    # ------------------------------------------------------------------

    def render(self, bounds=None, progress=None):
        """Bring the overlay up to date for *bounds*.

        Parameters
        ----------
        bounds : ViewportBounds, optional
            Viewport to cover; defaults to ``host.get_bounds()``.
        progress : callable, optional
            ``progress(completed, total)`` during fetching; see
            :func:`percent_progress`.

        Returns
        -------
        Grid or None
            The grid now displayed, or ``None`` when nothing was drawn.
        """
        host = self._host
        if not host_available(host):
            self.last_status = 'unavailable'
            return None
        if bounds is None:
            bounds = host.get_bounds()

        problem = bounds.validate()
        if problem is not None:
            warnings.warn(f"Skipping {self.metric.name} render: {problem}",
                          stacklevel=2)
            self.last_status = 'invalid'
            return None

        key = bounds_hash(bounds)
        follows_host = bounds_hash(host.get_bounds()) == key
        with self._lock:
            self._wanted_key = key
            if self._request_in_progress:
                self.last_status = 'busy'
                return None
            if key == self.last_bounds_hash and self.grid is not None:
                unchanged = True
            else:
                unchanged = False
                self._request_in_progress = True
                self._generation += 1
                generation = self._generation
                abort = self._abort = threading.Event()

        if unchanged:
            self._paint()
            self.last_status = 'unchanged'
            return self.grid

        try:
            grid = self.cache.get(key)
            status = 'cached'
            if grid is None:
                status = 'rendered'
                grid = build_grid(bounds, self.metric, self.fetch, self.config,
                                  progress=progress, abort=abort)
                if grid is not None:
                    self.cache.put(key, grid)

            stale = grid is not None and self._viewport_moved(key, follows_host)
            with self._lock:
                stale = stale or (grid is not None and key != self._wanted_key)
                if generation != self._generation or stale:
                    self.last_status = 'superseded'
                    return None
                if grid is not None:
                    self.grid = grid
                    self.last_bounds_hash = key

            if grid is None:
                if self.config.verbose:
                    print(f"  No {self.metric.name} samples available; "
                          f"keeping previous overlay")
                self._paint()
                self.last_status = 'failed'
                return self.grid

            self._paint()
            _report_stage(progress, 'done')
            self.last_status = status
            return grid
        finally:
            with self._lock:
                if generation == self._generation:
                    self._request_in_progress = False

    def _viewport_moved(self, key, follows_host):
        # only meaningful when the cycle was started for the host's viewport
        host = self._host
        if not follows_host or not host_available(host):
            return False
        return bounds_hash(host.get_bounds()) != key

    def _animating(self):
        return self._animation is not None and self._animation.running

    def _ensure_overlay(self, host):
        width, height = host.get_size()
        if self.overlay is None:
            self.canvas = Canvas(width, height)
            self.overlay = CanvasOverlay(self.canvas, z_index=self.config.z_index,
                                         name=self.metric.name)
            host.add_overlay(self.overlay)
        elif not self._animating():
            # a running animation loop resizes the canvas itself
            self.canvas.resize(width, height)

    def _paint(self, now=None):
        host = self._host
        if not host_available(host):
            return
        self._ensure_overlay(host)

        if getattr(self.painter, 'animated', False):
            self.painter.set_grid(self.grid)
            if self._animating():
                return
            if self._animation is None:
                self._animation = WindAnimation(self.painter, self.canvas, host,
                                                self.config.frame_interval)
            self._animation.draw_frame(now)
            if self.animate and self.grid is not None:
                self._animation.start()
            return

        self.canvas.clear()
        if self.grid is not None:
            self.painter.paint(self.canvas, host, self.grid, now=now)

    def redraw(self, now=None):
        """Repaint the current grid with fresh projections."""
        self._paint(now)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def clear(self):
        """Tear the overlay down and forget the displayed grid.

        Any cycle still fetching is superseded and its unstarted samples
        are skipped.  The grid cache is kept; see :meth:`clear_cache`.
        """
        with self._lock:
            self._generation += 1
            self._request_in_progress = False
            if self._abort is not None:
                self._abort.set()
                self._abort = None

        if self._animation is not None:
            self._animation.stop()
            self._animation = None
        if self.overlay is not None and host_available(self._host):
            self._host.remove_overlay(self.overlay)
        self.overlay = None
        self.canvas = None
        self.grid = None
        self.last_bounds_hash = None
        if getattr(self.painter, 'animated', False):
            self.painter.set_grid(None)

    def clear_cache(self):
        self.cache.clear()

    def set_host(self, host):
        """Detach from the current host and attach to *host*.

        The overlay is rebuilt on the next :meth:`render`.
        """
        self.clear()
        self._host = host

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def save(self, output_path):
        """Write the current overlay canvas to an image file."""
        if self.canvas is None:
            raise ValueError("Nothing rendered yet; call render() first")
        return self.canvas.save(output_path)

    def record(self, output_path, duration=3.0, fps=30, background=None):
        """Write the animated overlay (wind) as a GIF."""
        if not getattr(self.painter, 'animated', False):
            raise ValueError(f"The {self.metric.name} overlay is not animated; "
                             f"use save() instead")
        if self.grid is None:
            raise ValueError("Nothing rendered yet; call render() first")
        if not host_available(self._host):
            raise ValueError("No map host available to project the animation")
        return record_wind(self.painter, self._host, output_path,
                           duration=duration, fps=fps, background=background,
                           verbose=self.config.verbose)
