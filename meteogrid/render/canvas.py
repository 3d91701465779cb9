"""CPU raster that overlays are painted into.

A :class:`Canvas` holds an ``(H, W, 4)`` float32 image with straight
(non-premultiplied) alpha in [0, 1].  All drawing primitives composite with
the source-over operator, so painting order matters the same way it does on
a browser canvas.  Pixels are addressed by their top-left corner; a pixel
``(x, y)`` is covered by a shape when its centre ``(x + 0.5, y + 0.5)`` is.
"""

import numpy as np


def _lazy_import_pil():
    """Lazily import PIL with helpful error message."""
    try:
        from PIL import Image
        return Image
    except ImportError:
        raise ImportError(
            "Pillow is required for saving images. "
            "Install it with: pip install Pillow "
            "or: pip install meteogrid[all]"
        )


def _over(dst, src_rgb, src_a):
    """Source-over composite *src* onto *dst* (an (..., 4) array) in place."""
    src_a = np.asarray(src_a, dtype=np.float32)
    dst_a = dst[..., 3]
    keep = dst_a * (1.0 - src_a)
    out_a = src_a + keep
    num = (np.asarray(src_rgb, dtype=np.float32) * src_a[..., None]
           + dst[..., :3] * keep[..., None])
    dst[..., :3] = np.divide(num, out_a[..., None], out=np.zeros_like(num),
                             where=out_a[..., None] > 0)
    dst[..., 3] = out_a


class Canvas:
    """RGBA float32 raster with source-over drawing primitives.

    Parameters
    ----------
    width, height : int
        Size in pixels.
    """

    def __init__(self, width, height):
        self.pixels = np.zeros((int(height), int(width), 4), dtype=np.float32)

    @property
    def width(self):
        return self.pixels.shape[1]

    @property
    def height(self):
        return self.pixels.shape[0]

    @property
    def size(self):
        return self.width, self.height

    def clear(self):
        self.pixels[...] = 0.0

    def resize(self, width, height):
        """Match a new pixel size.  Resizing discards the contents.

        Returns True when the size actually changed.
        """
        width, height = int(width), int(height)
        if (width, height) == self.size:
            return False
        self.pixels = np.zeros((height, width, 4), dtype=np.float32)
        return True

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def draw_image(self, rgba):
        """Composite a full-size ``(H, W, 4)`` straight-alpha image on top."""
        rgba = np.asarray(rgba, dtype=np.float32)
        if rgba.shape != self.pixels.shape:
            raise ValueError(f"image shape {rgba.shape} does not match canvas "
                             f"{self.pixels.shape}")
        _over(self.pixels, rgba[..., :3], rgba[..., 3])

    def fill_rects(self, x0, y0, x1, y1, colors):
        """Fill axis-aligned rectangles, one RGBA color each.

        The rectangles are rasterized into one layer where later rectangles
        replace earlier ones, and that layer is composited once.  Slightly
        overlapping tiles therefore do not darken along shared edges.

        Parameters
        ----------
        x0, y0, x1, y1 : array_like, shape (N,)
            Opposite corners in pixel coordinates (any orientation).
        colors : array_like, shape (N, 4)
            Straight-alpha RGBA per rectangle.
        """
        xa, xb = np.minimum(x0, x1), np.maximum(x0, x1)
        ya, yb = np.minimum(y0, y1), np.maximum(y0, y1)
        colors = np.asarray(colors, dtype=np.float32)
        if len(colors) == 0:
            return

        H, W = self.height, self.width
        ix0 = np.clip(np.ceil(np.asarray(xa) - 0.5), 0, W).astype(int)
        ix1 = np.clip(np.ceil(np.asarray(xb) - 0.5), 0, W).astype(int)
        iy0 = np.clip(np.ceil(np.asarray(ya) - 0.5), 0, H).astype(int)
        iy1 = np.clip(np.ceil(np.asarray(yb) - 0.5), 0, H).astype(int)

        layer = np.zeros_like(self.pixels)
        for i in range(len(colors)):
            if ix1[i] > ix0[i] and iy1[i] > iy0[i]:
                layer[iy0[i]:iy1[i], ix0[i]:ix1[i]] = colors[i]
        self.draw_image(layer)

    def stroke_segments(self, x0, y0, x1, y1, color, width=1.0):
        """Stroke line segments as a single path with one color.

        Every covered pixel is painted once per call, like a canvas
        ``stroke()`` of a multi-segment path.

        Parameters
        ----------
        x0, y0, x1, y1 : array_like, shape (N,)
            Segment endpoints in pixel coordinates.
        color : sequence of 4 floats
            Straight-alpha RGBA.
        width : float
            Line width in pixels.  Default 1.
        """
        x0 = np.atleast_1d(np.asarray(x0, dtype=np.float64))
        y0 = np.atleast_1d(np.asarray(y0, dtype=np.float64))
        dx = np.atleast_1d(np.asarray(x1, dtype=np.float64)) - x0
        dy = np.atleast_1d(np.asarray(y1, dtype=np.float64)) - y0
        if len(x0) == 0:
            return

        finite = np.isfinite(x0) & np.isfinite(y0) & np.isfinite(dx) & np.isfinite(dy)
        x0, y0, dx, dy = x0[finite], y0[finite], dx[finite], dy[finite]
        if len(x0) == 0:
            return

        # Two samples per pixel of the longest segment.
        n_steps = int(np.ceil(np.hypot(dx, dy).max() * 2.0)) + 1
        t = np.linspace(0.0, 1.0, n_steps)
        px = np.floor(x0[:, None] + dx[:, None] * t).astype(np.int64).ravel()
        py = np.floor(y0[:, None] + dy[:, None] * t).astype(np.int64).ravel()

        r = max(0, int(round((width - 1.0) / 2.0)))
        if r > 0:
            offs = np.arange(-r, r + 1)
            ox, oy = np.meshgrid(offs, offs)
            px = (px[:, None] + ox.ravel()).ravel()
            py = (py[:, None] + oy.ravel()).ravel()

        H, W = self.height, self.width
        inside = (px >= 0) & (px < W) & (py >= 0) & (py < H)
        flat = np.unique(py[inside] * W + px[inside])
        if len(flat) == 0:
            return
        ys, xs = np.divmod(flat, W)

        color = np.asarray(color, dtype=np.float32)
        sub = self.pixels[ys, xs]
        _over(sub, color[:3], np.full(len(flat), color[3], dtype=np.float32))
        self.pixels[ys, xs] = sub

    def _window(self, cx, cy, rx, ry):
        """Integer pixel window covering an ellipse, plus pixel-centre grids."""
        H, W = self.height, self.width
        xa = max(0, int(np.floor(cx - rx)))
        xb = min(W, int(np.ceil(cx + rx)) + 1)
        ya = max(0, int(np.floor(cy - ry)))
        yb = min(H, int(np.ceil(cy + ry)) + 1)
        if xb <= xa or yb <= ya:
            return None
        yy, xx = np.mgrid[ya:yb, xa:xb]
        return (slice(ya, yb), slice(xa, xb),
                xx.astype(np.float64) + 0.5, yy.astype(np.float64) + 0.5)

    def fill_radial_gradient(self, cx, cy, r0, r1, stops, colors, rx, ry):
        """Fill an ellipse with a concentric radial gradient.

        Parameters
        ----------
        cx, cy : float
            Gradient and ellipse centre in pixels.
        r0, r1 : float
            Gradient start and end radius.  Inside *r0* the first stop color
            applies, beyond *r1* the last.
        stops : sequence of float
            Increasing stop offsets in [0, 1].
        colors : array_like, shape (len(stops), 4)
            RGBA at each stop.
        rx, ry : float
            Semi-axes of the filled ellipse.
        """
        window = self._window(cx, cy, rx, ry)
        if window is None:
            return
        rows, cols, xx, yy = window
        ex, ey = xx - cx, yy - cy
        inside = (ex / rx) ** 2 + (ey / ry) ** 2 <= 1.0
        if not inside.any():
            return

        s = np.clip((np.hypot(ex, ey) - r0) / max(r1 - r0, 1e-9), 0.0, 1.0)
        colors = np.asarray(colors, dtype=np.float64)
        rgb = np.stack([np.interp(s, stops, colors[:, c]) for c in range(3)],
                       axis=-1)
        alpha = np.where(inside, np.interp(s, stops, colors[:, 3]), 0.0)

        dst = self.pixels[rows, cols]
        _over(dst, rgb, alpha)

    def fill_pattern(self, pattern, origin, rect, clip, alpha=1.0):
        """Fill a rectangle with a repeating pattern, clipped to an ellipse.

        Parameters
        ----------
        pattern : array_like, shape (h, w, 4)
            Straight-alpha RGBA tile, repeated in both directions.
        origin : (float, float)
            Pixel position of the pattern's top-left corner.
        rect : (float, float, float, float)
            ``(x, y, width, height)`` of the filled area.
        clip : (float, float, float, float)
            ``(cx, cy, rx, ry)`` of the clipping ellipse.
        alpha : float
            Global alpha multiplied into the pattern's alpha.
        """
        cx, cy, rx, ry = clip
        window = self._window(cx, cy, rx, ry)
        if window is None:
            return
        rows, cols, xx, yy = window
        x, y, w, h = rect
        covered = (((xx - cx) / rx) ** 2 + ((yy - cy) / ry) ** 2 <= 1.0) & \
            (xx >= x) & (xx < x + w) & (yy >= y) & (yy < y + h)
        if not covered.any():
            return

        pattern = np.asarray(pattern, dtype=np.float32)
        ph, pw = pattern.shape[:2]
        pi = np.floor(yy - origin[1]).astype(np.int64) % ph
        pj = np.floor(xx - origin[0]).astype(np.int64) % pw
        texels = pattern[pi, pj]

        dst = self.pixels[rows, cols]
        _over(dst, texels[..., :3],
              np.where(covered, texels[..., 3] * alpha, 0.0))

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_uint8(self):
        """Return the raster as an ``(H, W, 4)`` uint8 RGBA array."""
        return (np.clip(self.pixels, 0, 1) * 255).round().astype(np.uint8)

    def save(self, output_path):
        """Write the raster as an RGBA image (PNG recommended)."""
        Image = _lazy_import_pil()
        Image.fromarray(self.to_uint8()).save(str(output_path))
        return str(output_path)
