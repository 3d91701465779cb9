"""Overlay painters and the raster they draw into."""

from .canvas import Canvas
from .clouds import CloudPainter, noise_texture
from .tiles import TilePainter, draw_stride
from .wind import StreamlinePainter, WindAnimation, record, streamline_segments

__all__ = [
    'Canvas',
    'CloudPainter',
    'StreamlinePainter',
    'TilePainter',
    'WindAnimation',
    'draw_stride',
    'noise_texture',
    'record',
    'streamline_segments',
]
