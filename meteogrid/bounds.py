"""Viewport bounds and the bounds hash used to key cached grids.

Bounding boxes follow the package-wide ``(west, south, east, north)`` tuple
convention in WGS84 degrees.  Map hosts report their viewport as a
northeast/southwest corner pair plus an optional zoom level, which is what
:class:`ViewportBounds` stores.
"""

import math
from typing import NamedTuple, Optional


class LatLng(NamedTuple):
    lat: float
    lng: float


class ViewportBounds(NamedTuple):
    """Geographic rectangle currently visible on the map.

    Attributes
    ----------
    northeast : LatLng
        North-east corner of the viewport.
    southwest : LatLng
        South-west corner of the viewport.
    zoom : float, optional
        Map zoom level.  Drives grid density when present.
    """
    northeast: LatLng
    southwest: LatLng
    zoom: Optional[float] = None

    @classmethod
    def from_wsen(cls, bounds, zoom=None):
        """Build from a ``(west, south, east, north)`` tuple."""
        west, south, east, north = bounds
        return cls(LatLng(float(north), float(east)),
                   LatLng(float(south), float(west)), zoom)

    @classmethod
    def from_dict(cls, data):
        """Build from ``{'northeast': {'lat', 'lng'}, 'southwest': {...}, 'zoom'}``."""
        ne = data['northeast']
        sw = data['southwest']
        return cls(LatLng(float(ne['lat']), float(ne['lng'])),
                   LatLng(float(sw['lat']), float(sw['lng'])),
                   data.get('zoom'))

    @property
    def lat_span(self):
        """Signed latitude extent (north minus south)."""
        return self.northeast.lat - self.southwest.lat

    @property
    def lng_span(self):
        """Signed longitude extent (east minus west)."""
        return self.northeast.lng - self.southwest.lng

    @property
    def center(self):
        return LatLng(self.southwest.lat + self.lat_span / 2.0,
                      self.southwest.lng + self.lng_span / 2.0)

    def to_wsen(self):
        return (self.southwest.lng, self.southwest.lat,
                self.northeast.lng, self.northeast.lat)

    def validate(self):
        """Return a diagnostic string if the viewport is degenerate, else None.

        A viewport is degenerate when any coordinate is NaN or infinite,
        a latitude falls outside [-90, 90], or the box has zero area.
        """
        coords = (self.northeast.lat, self.northeast.lng,
                  self.southwest.lat, self.southwest.lng)
        if not all(math.isfinite(c) for c in coords):
            return f"non-finite viewport coordinates {coords}"
        if not (-90.0 <= self.northeast.lat <= 90.0
                and -90.0 <= self.southwest.lat <= 90.0):
            return f"latitude outside [-90, 90] in {coords}"
        if self.lat_span == 0 or self.lng_span == 0:
            return f"zero-area viewport {coords}"
        if self.zoom is not None and not math.isfinite(self.zoom):
            return f"non-finite zoom {self.zoom!r}"
        return None

    def is_valid(self):
        return self.validate() is None


def bounds_hash(bounds):
    """Key identifying a grid request: the four corner coordinates at 4 decimals.

    Four decimals is roughly 11 m, so sub-pixel jitter from the map host
    maps to the same key.  Zoom does not contribute to the key.
    """
    ne, sw = bounds.northeast, bounds.southwest
    return f"{ne.lat:.4f}_{ne.lng:.4f}_{sw.lat:.4f}_{sw.lng:.4f}"
