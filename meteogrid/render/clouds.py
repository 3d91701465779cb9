"""Cloud-cover painter: soft gradient blobs with optional noise texture."""

import numpy as np

from .tiles import draw_stride

# Radial gradient: offset -> (gray level, alpha factor)
_GRADIENT_STOPS = (0.0, 0.55, 1.0)
_GRADIENT_GRAY = (255.0, 220.0, 170.0)
_GRADIENT_ALPHA = (1.0, 0.7, 0.2)


def noise_texture(size=128, seed=None):
    """Opaque gray noise tile, values in 120..240 of 255.

    Returns
    -------
    numpy.ndarray
        ``(size, size, 4)`` float32 straight-alpha RGBA.
    """
    rng = np.random.default_rng(seed)
    gray = (120.0 + rng.random((size, size)) * 120.0) / 255.0
    tile = np.ones((size, size, 4), dtype=np.float32)
    tile[..., :3] = gray[..., None]
    return tile


def cloud_style(cloud):
    """Blob ``(radius_px, alpha)`` for a cloud-cover percentage."""
    cloud = np.clip(np.asarray(cloud, dtype=np.float64), 0.0, 100.0)
    alpha = np.minimum(0.55, 0.12 + cloud / 100.0 * 0.6)
    radius = 12.0 + cloud / 100.0 * 20.0
    return radius, alpha


class CloudPainter:
    """Paint cloud cover as blurred white blobs at cell centres.

    Parameters
    ----------
    render_style : {'noise', 'soft'}
        ``'noise'`` lays a clipped noise texture under each blob.
    max_draw_count : int
        Decimate to roughly this many cells.  Default 1400.
    min_cloud : float
        Cells below this percentage are skipped.  Default 5.
    noise_size : int
        Side of the noise tile in pixels.  Default 128.
    seed : int, optional
        Seed of the noise texture.
    """

    def __init__(self, render_style='noise', max_draw_count=1400, min_cloud=5.0,
                 noise_size=128, seed=None):
        if render_style not in ('noise', 'soft'):
            raise ValueError(f"render_style must be 'noise' or 'soft', "
                             f"got {render_style!r}")
        self.render_style = render_style
        self.max_draw_count = max_draw_count
        self.min_cloud = float(min_cloud)
        self.noise_size = int(noise_size)
        self._seed = seed
        self._noise = None

    def set_render_style(self, style):
        if style not in ('noise', 'soft'):
            raise ValueError(f"render_style must be 'noise' or 'soft', got {style!r}")
        self.render_style = style

    def _ensure_noise(self):
        if self._noise is None or self._noise.shape[0] != self.noise_size:
            self._noise = noise_texture(self.noise_size, self._seed)
        return self._noise

    def paint(self, canvas, host, grid, now=None):
        """Draw one blob per (decimated) cell.  Returns the blob count."""
        values = np.asarray(grid.values, dtype=np.float64).ravel()
        lats = np.asarray(grid.lats).ravel()
        lons = np.asarray(grid.lons).ravel()
        stride = draw_stride(values.size, self.max_draw_count)
        index = np.arange(0, values.size, stride)
        cloud = np.clip(values[index], 0.0, 100.0)
        keep = np.isfinite(cloud) & (cloud >= self.min_cloud)
        index, cloud = index[keep], cloud[keep]
        if index.size == 0:
            return 0

        xs, ys = host.project(lats[index], lons[index])
        radius, alpha = cloud_style(cloud)
        noise = self._ensure_noise() if self.render_style == 'noise' else None

        gray = np.asarray(_GRADIENT_GRAY) / 255.0
        for x, y, r, a in zip(np.asarray(xs), np.asarray(ys), radius, alpha):
            if not (np.isfinite(x) and np.isfinite(y)):
                continue
            if noise is not None:
                canvas.fill_pattern(noise, origin=(x - r, y - r),
                                    rect=(x - r, y - r, 2 * r, 2 * r),
                                    clip=(x, y, 1.15 * r, r), alpha=a * 0.9)
            blob_alpha = a * 0.6
            colors = np.column_stack([gray, gray, gray,
                                      blob_alpha * np.asarray(_GRADIENT_ALPHA)])
            canvas.fill_radial_gradient(x, y, 0.2 * r, r, _GRADIENT_STOPS, colors,
                                        1.1 * r, 0.9 * r)
        return int(index.size)
