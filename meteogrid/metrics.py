"""Metric adapters: what to extract from a reading and how to paint it.

One :class:`~meteogrid.engine.GridEngine` serves every overlay.  What differs
per overlay is captured by a :class:`MetricSpec`: the extractor pulling the
sample value out of a :class:`~meteogrid.remote_data.Reading`, the payload
width (scalar or u/v vector), the painter and the tuning defaults.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .colors import precip_rgba, temperature_rgba
from .config import EngineConfig
from .render import CloudPainter, StreamlinePainter, TilePainter


def wind_vector(speed, degree):
    """Meteorological speed/direction to ``(u, v)``.

    *degree* is where the wind blows from, so a northerly (0 deg) wind has
    negative ``v``.
    """
    rad = math.radians(degree)
    return -speed * math.sin(rad), -speed * math.cos(rad)


def _temperature(reading):
    return reading.temp_c


def _precipitation(reading):
    return reading.precip_mm


def _cloud(reading):
    return reading.cloud


def _wind(reading):
    if reading.wind_kph is None or reading.wind_degree is None:
        return None
    return wind_vector(reading.wind_kph, reading.wind_degree)


@dataclass(frozen=True)
class MetricSpec:
    """Strategy object describing one overlay metric.

    Attributes
    ----------
    name : str
    extract : callable
        ``extract(reading) -> float, (u, v) or None``.
    painter_factory : callable
        ``painter_factory(config) -> painter`` with a
        ``paint(canvas, host, grid, now=None)`` method.
    components : int
        1 for scalar metrics, 2 for (u, v) vectors.
    edge_midpoints : bool
        Force the four edge midpoints into the sample set.
    defaults : mapping
        :class:`EngineConfig` overrides applied for this metric.
    units : str
    """
    name: str
    extract: Callable[[Any], Any]
    painter_factory: Callable[[EngineConfig], Any]
    components: int = 1
    edge_midpoints: bool = False
    defaults: Mapping[str, Any] = field(default_factory=dict)
    units: str = ''

    @property
    def is_vector(self):
        return self.components == 2

    def config(self, **overrides):
        """Default :class:`EngineConfig` for this metric, with *overrides*."""
        return EngineConfig().with_overrides(**self.defaults).with_overrides(**overrides)

    def make_painter(self, config):
        return self.painter_factory(config)


def _temperature_painter(config):
    return TilePainter(temperature_rgba, bleed=config.tile_bleed,
                       max_draw_count=config.max_draw_count)


def _precipitation_painter(config):
    return TilePainter(precip_rgba, bleed=config.tile_bleed,
                       skip_nonpositive=True,
                       max_draw_count=config.max_draw_count)


def _cloud_painter(config):
    return CloudPainter(render_style=config.cloud_render_style,
                        max_draw_count=config.max_draw_count)


def _wind_painter(config):
    return StreamlinePainter(max_draw_count=config.max_draw_count,
                             animation_speed=config.animation_speed,
                             min_line_length=config.min_line_length,
                             max_line_length=config.max_line_length,
                             refresh_interval=config.reproject_interval)


METRICS = {
    'temperature': MetricSpec(
        name='temperature',
        extract=_temperature,
        painter_factory=_temperature_painter,
        edge_midpoints=True,
        defaults={'sampling_ratio': 0.2, 'z_index': 100},
        units='degC',
    ),
    'wind': MetricSpec(
        name='wind',
        extract=_wind,
        painter_factory=_wind_painter,
        components=2,
        defaults={'sampling_ratio': 0.25, 'max_draw_count': 1200,
                  'z_index': 120},
        units='km/h',
    ),
    'precipitation': MetricSpec(
        name='precipitation',
        extract=_precipitation,
        painter_factory=_precipitation_painter,
        defaults={'sampling_ratio': 0.25, 'max_draw_count': 1800,
                  'z_index': 130},
        units='mm',
    ),
    'cloud': MetricSpec(
        name='cloud',
        extract=_cloud,
        painter_factory=_cloud_painter,
        defaults={'sampling_ratio': 0.25, 'max_draw_count': 1400,
                  'z_index': 70},
        units='%',
    ),
}


def get_metric(metric):
    """Resolve a metric name (or pass a :class:`MetricSpec` through)."""
    if isinstance(metric, MetricSpec):
        return metric
    try:
        return METRICS[metric]
    except KeyError:
        raise ValueError(f"Unknown metric {metric!r}; "
                         f"expected one of {sorted(METRICS)}") from None
