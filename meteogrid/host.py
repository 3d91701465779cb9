"""Map host capability interface and a headless Web-Mercator host.

The engine never talks to a concrete map widget.  Anything that offers the
methods of :class:`MapHost` can drive it: report the visible bounds and
pixel size, project coordinates into container pixels, accept overlays and
emit ``moveend`` / ``zoomend`` events when the viewport settles.

:class:`WebMercatorMap` is a self-contained implementation of that
interface.  It keeps a centre, zoom and pixel size, projects with the
standard 256-px-tile Web-Mercator world, and composites its overlays into a
single image, which makes it usable both in tests and for rendering
overlays to files.

Usage::

    from meteogrid.host import WebMercatorMap
    m = WebMercatorMap(center=(52.52, 13.405), zoom=9, size=(800, 600))
    m.get_bounds()          # ViewportBounds(...)
    m.pan_by(100, 0)        # fires 'moveend'
"""

import math

import numpy as np

from .bounds import LatLng, ViewportBounds

MAX_MERCATOR_LAT = 85.0511287798066
TILE_SIZE = 256

_REQUIRED_CAPABILITIES = ('get_bounds', 'get_size', 'project',
                          'add_overlay', 'remove_overlay')


class MapHost:
    """Interface a map widget exposes to the overlay engine.

    Subclasses override every method.  ``project`` must be vectorized:
    it takes equal-length arrays of latitudes and longitudes and returns
    ``(xs, ys)`` container pixel arrays.
    """

    def get_bounds(self):
        raise NotImplementedError

    def get_size(self):
        raise NotImplementedError

    def project(self, lats, lons):
        raise NotImplementedError

    def add_overlay(self, overlay):
        raise NotImplementedError

    def remove_overlay(self, overlay):
        raise NotImplementedError

    def is_alive(self):
        return True

    def on(self, event, callback):
        raise NotImplementedError

    def off(self, event, callback):
        raise NotImplementedError


def host_available(host):
    """Return True if *host* exists, offers the drawing capabilities and is alive.

    Checked before every write to the host so that a torn-down map turns
    rendering into a no-op instead of an error.
    """
    if host is None:
        return False
    for name in _REQUIRED_CAPABILITIES:
        if not callable(getattr(host, name, None)):
            return False
    alive = getattr(host, 'is_alive', None)
    if alive is None:
        return True
    try:
        return bool(alive())
    except Exception:
        return False


class CanvasOverlay:
    """A canvas layer attached to a map host.

    Parameters
    ----------
    canvas : Canvas
        Raster covering the host's container, pixel for pixel.
    z_index : int
        Stacking order; higher draws on top.
    name : str, optional
        Label used in diagnostics.
    """

    def __init__(self, canvas, z_index=100, name=None):
        self.canvas = canvas
        self.z_index = z_index
        self.name = name
        self.visible = True

    def __repr__(self):
        return (f"CanvasOverlay(name={self.name!r}, z_index={self.z_index}, "
                f"size={self.canvas.size})")


class WebMercatorMap(MapHost):
    """Headless slippy map with Web-Mercator projection.

    Parameters
    ----------
    center : (float, float)
        ``(lat, lon)`` of the container centre in degrees.
    zoom : float
        Zoom level; the world is ``256 * 2**zoom`` pixels wide.
    size : (int, int)
        Container ``(width, height)`` in pixels.
    """

    def __init__(self, center=(0.0, 0.0), zoom=3, size=(800, 600)):
        width, height = size
        if width <= 0 or height <= 0:
            raise ValueError(f"size must be positive, got {size!r}")
        self._center = (float(center[0]), float(center[1]))
        self._zoom = float(zoom)
        self._width = int(width)
        self._height = int(height)
        self._overlays = []
        self._listeners = {}
        self._alive = True

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    @property
    def world_size(self):
        return TILE_SIZE * 2.0 ** self._zoom

    def _to_world(self, lats, lons):
        lats = np.clip(np.asarray(lats, dtype=np.float64),
                       -MAX_MERCATOR_LAT, MAX_MERCATOR_LAT)
        lons = np.asarray(lons, dtype=np.float64)
        size = self.world_size
        x = (lons + 180.0) / 360.0 * size
        sin_lat = np.sin(np.radians(lats))
        y = (0.5 - np.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * size
        return x, y

    def _origin(self):
        cx, cy = self._to_world(self._center[0], self._center[1])
        return float(cx) - self._width / 2.0, float(cy) - self._height / 2.0

    def project(self, lats, lons):
        """Geographic degrees to container pixels ``(xs, ys)``."""
        x, y = self._to_world(lats, lons)
        ox, oy = self._origin()
        return x - ox, y - oy

    def unproject(self, xs, ys):
        """Container pixels to ``(lats, lons)`` in degrees."""
        ox, oy = self._origin()
        size = self.world_size
        wx = np.asarray(xs, dtype=np.float64) + ox
        wy = np.asarray(ys, dtype=np.float64) + oy
        lons = wx / size * 360.0 - 180.0
        lats = np.degrees(np.arctan(np.sinh(math.pi * (1.0 - 2.0 * wy / size))))
        return lats, lons

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    @property
    def center(self):
        return LatLng(*self._center)

    @property
    def zoom(self):
        return self._zoom

    def get_size(self):
        return self._width, self._height

    def get_bounds(self):
        lats, lons = self.unproject([0.0, self._width], [0.0, self._height])
        north, south = float(lats[0]), float(lats[1])
        west, east = float(lons[0]), float(lons[1])
        return ViewportBounds(LatLng(north, east), LatLng(south, west),
                              self._zoom)

    def set_view(self, center=None, zoom=None):
        """Jump to a new centre and/or zoom, firing the settle events."""
        moved = center is not None and tuple(center) != self._center
        zoomed = zoom is not None and float(zoom) != self._zoom
        if center is not None:
            self._center = (float(center[0]), float(center[1]))
        if zoom is not None:
            self._zoom = float(zoom)
        if zoomed:
            self._emit('zoomend')
        if moved or zoomed:
            self._emit('moveend')

    def pan_to(self, lat, lon):
        self.set_view(center=(lat, lon))

    def pan_by(self, dx, dy):
        """Shift the view by a pixel offset (positive dx moves east)."""
        lats, lons = self.unproject([self._width / 2.0 + dx],
                                    [self._height / 2.0 + dy])
        self.set_view(center=(float(lats[0]), float(lons[0])))

    def set_zoom(self, zoom):
        self.set_view(zoom=zoom)

    def resize(self, width, height):
        if width <= 0 or height <= 0:
            raise ValueError(f"size must be positive, got {(width, height)!r}")
        self._width, self._height = int(width), int(height)
        self._emit('resize')

    # ------------------------------------------------------------------
    # Overlays and events
    # ------------------------------------------------------------------

    @property
    def overlays(self):
        return list(self._overlays)

    def add_overlay(self, overlay):
        if overlay not in self._overlays:
            self._overlays.append(overlay)

    def remove_overlay(self, overlay):
        if overlay in self._overlays:
            self._overlays.remove(overlay)

    def on(self, event, callback):
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event, callback):
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event):
        for callback in list(self._listeners.get(event, [])):
            callback()

    def is_alive(self):
        return self._alive

    def destroy(self):
        """Tear the map down: overlays and listeners are dropped."""
        self._alive = False
        self._overlays.clear()
        self._listeners.clear()

    def composite(self, background=None):
        """Flatten the visible overlays into one :class:`Canvas`.

        Parameters
        ----------
        background : sequence of 4 floats or ndarray, optional
            Solid RGBA color, or an ``(H, W, 3|4)`` image, drawn first.
        """
        from .render.canvas import Canvas

        out = Canvas(self._width, self._height)
        if background is not None:
            bg = np.asarray(background, dtype=np.float32)
            if bg.ndim == 1:
                out.pixels[...] = bg
            else:
                if bg.shape[2] == 3:
                    bg = np.concatenate(
                        [bg, np.ones(bg.shape[:2] + (1,), np.float32)], axis=2)
                out.draw_image(bg)
        for overlay in sorted(self._overlays, key=lambda o: o.z_index):
            if overlay.visible and overlay.canvas.size == out.size:
                out.draw_image(overlay.canvas.pixels)
        return out
