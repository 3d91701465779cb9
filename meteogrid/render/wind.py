"""Animated wind streamlines.

Every drawn cell emits two dashes along its flow direction that slide
forward over time and wrap every ``spacing`` pixels, each ending in a small
arrow head.  Dash length grows with wind speed.

The animation loop runs on its own daemon thread at ~30 fps, independent of
fetch cycles.  Pixel positions are re-projected at most every 120 ms (or
when the decimation stride changes) and reused in between, so a frame costs
only the dash arithmetic.  New grid data is swapped in under a lock without
stopping the loop.
"""

import math
import threading
import time

import numpy as np

from ..host import host_available
from .canvas import Canvas
from .tiles import draw_stride

DASH_SPACING = 26.0
HEAD_ANGLE = math.pi / 6


def _lazy_import_imageio():
    """Lazily import imageio with helpful error message."""
    try:
        import imageio
        return imageio
    except ImportError:
        raise ImportError(
            "imageio is required for animation export. "
            "Install it with: pip install imageio "
            "or: pip install meteogrid[all]"
        )


def streamline_segments(xs, ys, u, v, speed, t_ms, animation_speed=0.9,
                        min_line_length=6.0, max_line_length=28.0,
                        spacing=DASH_SPACING):
    """Line segments of one animation frame.

    Parameters
    ----------
    xs, ys : array_like, shape (M,)
        Pixel anchor of every drawn cell.
    u, v : array_like, shape (M,)
        Eastward / northward vector components.
    speed : array_like, shape (M,)
        Wind speed used for dash length and travel rate.
    t_ms : float
        Frame time in milliseconds.
    animation_speed : float
        Multiplier on the frame time.

    Returns
    -------
    (x0, y0, x1, y1) : tuple of ndarray
        Three segments (shaft and two head strokes) per dash, two dashes
        per cell with non-zero vector.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    u = np.asarray(u, dtype=np.float64)
    v = np.asarray(v, dtype=np.float64)
    speed = np.maximum(0.1, np.asarray(speed, dtype=np.float64))

    magnitude = np.hypot(u, v)
    item = np.arange(len(xs))
    drawn = (magnitude > 0) & np.isfinite(xs) & np.isfinite(ys)
    if not drawn.any():
        empty = np.empty(0)
        return empty, empty, empty, empty

    xs, ys, u, v, speed = xs[drawn], ys[drawn], u[drawn], v[drawn], speed[drawn]
    magnitude, item = magnitude[drawn], item[drawn]

    # Screen y grows downward.
    dir_x = u / magnitude
    dir_y = -v / magnitude
    length = np.minimum(max_line_length, min_line_length + speed * 1.1)
    head = np.maximum(2.5, length * 0.18)
    seed = (item % 97) * 0.37
    travel = np.mod(t_ms * animation_speed * (speed / 120.0) + seed, spacing)

    starts_x, starts_y, ends_x, ends_y, heads = [], [], [], [], []
    for k in range(2):
        offset = travel + k * spacing - spacing
        sx = xs + dir_x * offset
        sy = ys + dir_y * offset
        starts_x.append(sx)
        starts_y.append(sy)
        ends_x.append(sx + dir_x * length)
        ends_y.append(sy + dir_y * length)
        heads.append(head)
    sx, sy = np.concatenate(starts_x), np.concatenate(starts_y)
    ex, ey = np.concatenate(ends_x), np.concatenate(ends_y)
    head = np.concatenate(heads)

    angle = np.arctan2(ey - sy, ex - sx)
    hx1 = ex - head * np.cos(angle - HEAD_ANGLE)
    hy1 = ey - head * np.sin(angle - HEAD_ANGLE)
    hx2 = ex - head * np.cos(angle + HEAD_ANGLE)
    hy2 = ey - head * np.sin(angle + HEAD_ANGLE)

    x0 = np.concatenate([sx, ex, ex])
    y0 = np.concatenate([sy, ey, ey])
    x1 = np.concatenate([ex, hx1, hx2])
    y1 = np.concatenate([ey, hy1, hy2])
    return x0, y0, x1, y1


class StreamlinePainter:
    """Paint animated streamlines for a vector (u, v) grid.

    Parameters
    ----------
    max_draw_count : int
        Decimate to roughly this many cells.  Default 1200.
    animation_speed : float
        Time multiplier of the dash travel.  Default 0.9.
    min_line_length, max_line_length : float
        Dash length range in pixels.  Defaults 6 and 28.
    color : sequence of 4 floats
        Stroke RGBA.  Default white at 0.7 alpha.
    refresh_interval : float
        Seconds a pixel projection is reused.  Default 0.12.
    """

    animated = True

    def __init__(self, max_draw_count=1200, animation_speed=0.9,
                 min_line_length=6.0, max_line_length=28.0,
                 color=(1.0, 1.0, 1.0, 0.7), refresh_interval=0.12):
        self.max_draw_count = max_draw_count
        self.animation_speed = animation_speed
        self.min_line_length = min_line_length
        self.max_line_length = max_line_length
        self.color = color
        self.refresh_interval = refresh_interval

        self._lock = threading.Lock()
        self._grid = None
        self._items = None          # (xs, ys, u, v, speed) of drawn cells
        self._items_stride = None
        self._items_time = None
        self.projections = 0        # number of re-projections performed

    @property
    def grid(self):
        return self._grid

    def set_grid(self, grid):
        """Swap in new cell data; the next frame re-projects."""
        with self._lock:
            self._grid = grid
            self._items = None

    def _draw_items(self, host, now):
        grid = self._grid
        if grid is None:
            return None
        n = grid.rows * grid.cols
        stride = draw_stride(n, self.max_draw_count)
        if (self._items is not None and stride == self._items_stride
                and now - self._items_time < self.refresh_interval):
            return self._items

        index = np.arange(0, n, stride)
        xs, ys = host.project(np.asarray(grid.lats).ravel()[index],
                              np.asarray(grid.lons).ravel()[index])
        vectors = np.asarray(grid.values).reshape(n, 2)[index]
        speed = np.asarray(grid.speed).ravel()[index]
        self._items = (np.asarray(xs), np.asarray(ys),
                       vectors[:, 0], vectors[:, 1], speed)
        self._items_stride = stride
        self._items_time = now
        self.projections += 1
        return self._items

    def paint(self, canvas, host, grid=None, now=None):
        """Draw one frame at time *now* (seconds).  Returns segments drawn."""
        if now is None:
            now = time.monotonic()
        with self._lock:
            if grid is not None and grid is not self._grid:
                self._grid = grid
                self._items = None
            items = self._draw_items(host, now)
        if items is None:
            return 0
        xs, ys, u, v, speed = items
        x0, y0, x1, y1 = streamline_segments(
            xs, ys, u, v, speed, now * 1000.0, self.animation_speed,
            self.min_line_length, self.max_line_length)
        canvas.stroke_segments(x0, y0, x1, y1, self.color)
        return int(len(x0))


class WindAnimation:
    """Background thread redrawing a :class:`StreamlinePainter` at ~30 fps.

    Parameters
    ----------
    painter : StreamlinePainter
    canvas : Canvas
        Overlay raster redrawn every frame.
    host : MapHost
        Projection source; the loop idles while the host is unavailable.
    frame_interval : float
        Minimum seconds between frames.  Default 0.033.
    """

    def __init__(self, painter, canvas, host, frame_interval=0.033):
        self.painter = painter
        self.canvas = canvas
        self.host = host
        self.frame_interval = frame_interval
        self.frames = 0
        self._stop = threading.Event()
        self._thread = None
        self._draw_lock = threading.Lock()

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True,
                                        name='meteogrid-wind')
        self._thread.start()

    def stop(self, timeout=1.0):
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def draw_frame(self, now=None):
        if not host_available(self.host):
            return 0
        with self._draw_lock:
            self.canvas.resize(*self.host.get_size())
            self.canvas.clear()
            drawn = self.painter.paint(self.canvas, self.host, now=now)
            self.frames += 1
        return drawn

    def _loop(self):
        last = None
        while not self._stop.is_set():
            now = time.monotonic()
            if last is not None and now - last < self.frame_interval:
                self._stop.wait(self.frame_interval - (now - last))
                continue
            last = now
            self.draw_frame(now)


def record(painter, host, output_path, duration=3.0, fps=30, background=None,
           start=0.0, verbose=True):
    """Render the wind animation offline and save it as a GIF.

    Frames are drawn at simulated times ``start + i / fps`` so the output
    does not depend on wall-clock speed.

    Parameters
    ----------
    painter : StreamlinePainter
        Painter with a grid already set.
    host : MapHost
        Projection source; its pixel size is the frame size.
    output_path : str or Path
        Destination ``.gif``.
    duration : float
        Seconds of animation.  Default 3.
    fps : int
        Frames per second.  Default 30.
    background : sequence of 4 floats or ndarray, optional
        Solid RGBA or ``(H, W, 4)`` image under every frame.
    verbose : bool
        Print progress.  Default True.

    Returns
    -------
    str
        The output path.
    """
    imageio = _lazy_import_imageio()
    if fps <= 0 or duration <= 0:
        raise ValueError("fps and duration must be positive")

    width, height = host.get_size()
    layer = Canvas(width, height)
    n_frames = max(1, int(round(duration * fps)))
    if verbose:
        print(f"Recording {n_frames} wind frames at {fps} fps...")

    frames = []
    for i in range(n_frames):
        layer.clear()
        painter.paint(layer, host, now=start + i / fps)
        frame = Canvas(width, height)
        if background is not None:
            bg = np.asarray(background, dtype=np.float32)
            if bg.ndim == 1:
                frame.pixels[...] = bg
            else:
                frame.draw_image(bg)
        frame.draw_image(layer.pixels)
        frames.append(frame.to_uint8())

    output_path = str(output_path)
    duration_ms = 1000.0 / fps
    imageio.mimsave(output_path, frames, duration=duration_ms, loop=0)
    if verbose:
        print(f"  Saved {output_path}")
    return output_path
