"""Color scales for the scalar overlays.

Colors are float RGBA in [0, 1].  Temperature uses a continuous ramp built as
a matplotlib colormap and sampled into a lookup table; precipitation uses a
fixed set of bins.
"""

import numpy as np
from matplotlib.colors import LinearSegmentedColormap

TEMPERATURE_RANGE = (-15.0, 40.0)

# (position, (r, g, b)) with positions in [0, 1] across TEMPERATURE_RANGE
TEMPERATURE_STOPS = [
    (0.0, (55, 0, 120)),
    (0.12, (59, 130, 246)),
    (0.2, (6, 182, 212)),
    (0.4, (16, 185, 129)),
    (0.6, (234, 179, 8)),
    (0.8, (249, 115, 22)),
    (1.0, (239, 68, 68)),
]

TEMPERATURE_OPACITY = 0.6

PRECIP_BINS = np.array([0.0, 0.1, 1.0, 5.0, 10.0, 25.0, 50.0])
PRECIP_COLORS = np.array([
    (0, 0, 0, 0.0),
    (120, 190, 255, 0.55),
    (60, 150, 255, 0.7),
    (30, 110, 240, 0.78),
    (70, 80, 230, 0.82),
    (110, 60, 210, 0.86),
    (150, 50, 200, 0.9),
], dtype=np.float64) / np.array([255.0, 255.0, 255.0, 1.0])

_temperature_lut_cache = {}


def temperature_colormap():
    """The temperature ramp as a matplotlib colormap over [0, 1]."""
    return LinearSegmentedColormap.from_list(
        'meteogrid_temperature',
        [(pos, tuple(c / 255.0 for c in rgb)) for pos, rgb in TEMPERATURE_STOPS],
    )


def _temperature_lut(num_entries=256):
    """(num_entries, 3) float32 RGB table sampled from the temperature ramp."""
    lut = _temperature_lut_cache.get(num_entries)
    if lut is None:
        cmap = temperature_colormap()
        lut = cmap(np.linspace(0.0, 1.0, num_entries))[:, :3].astype(np.float32)
        _temperature_lut_cache[num_entries] = lut
    return lut


def temperature_rgba(values, opacity=TEMPERATURE_OPACITY):
    """Map temperatures in deg C to RGBA colors.

    Values outside TEMPERATURE_RANGE clamp to the end colors.  NaN maps to
    a fully transparent color.

    Parameters
    ----------
    values : array_like
        Temperatures in degrees Celsius.
    opacity : float
        Alpha applied to every valid value.  Default 0.6.

    Returns
    -------
    numpy.ndarray
        Shape ``values.shape + (4,)``, float32.
    """
    values = np.asarray(values, dtype=np.float64)
    lo, hi = TEMPERATURE_RANGE
    lut = _temperature_lut()
    t = np.clip((values - lo) / (hi - lo), 0.0, 1.0)
    finite = np.isfinite(t)
    idx = np.round(np.where(finite, t, 0.0) * (len(lut) - 1)).astype(np.intp)

    rgba = np.empty(values.shape + (4,), dtype=np.float32)
    rgba[..., :3] = lut[idx]
    rgba[..., 3] = np.where(finite, opacity, 0.0)
    return rgba


def precip_bin(values):
    """Index of the precipitation bin for each value (``value >= bin edge``).

    Values below the first edge (including negatives) fall in bin 0; values
    at or above 50 mm fall in the last bin.
    """
    values = np.asarray(values, dtype=np.float64)
    idx = np.searchsorted(PRECIP_BINS, values, side='right') - 1
    return np.clip(idx, 0, len(PRECIP_BINS) - 1)


def precip_rgba(values):
    """Map precipitation in mm to the binned RGBA colors (float32)."""
    values = np.asarray(values, dtype=np.float64)
    rgba = PRECIP_COLORS[precip_bin(values)].astype(np.float32)
    rgba[~np.isfinite(values)] = 0.0
    return rgba
