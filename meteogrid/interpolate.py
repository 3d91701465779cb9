"""Inverse-distance-weighted interpolation on the sphere.

Distances are great-circle kilometres (haversine, R = 6371 km).  Neighbour
search runs on a ``scipy.spatial.cKDTree`` built over unit-sphere Cartesian
coordinates: chord length grows monotonically with great-circle distance,
so the tree's k nearest are exactly the k nearest on the sphere.

For each query point:

1. samples farther than ``max_distance_km`` are ignored;
2. if none remain, the globally nearest sample is used as-is;
3. if exactly one remains, its value is used;
4. otherwise the ``k`` nearest in range are weighted by ``1 / d**power``,
   except that a candidate closer than ``min_distance_km`` wins outright;
5. a zero weight sum falls back to the nearest candidate.

Vector payloads (shape ``(n, 2)`` for wind u/v) share the weights, so each
component is interpolated independently and opposing vectors cancel.
"""

import numpy as np
from scipy.spatial import cKDTree

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1, lon1, lat2, lon2):
    """Great-circle distance in km.  Broadcasts over array inputs."""
    lat1 = np.radians(lat1)
    lat2 = np.radians(lat2)
    dlat = lat2 - lat1
    dlon = np.radians(lon2) - np.radians(lon1)
    a = (np.sin(dlat / 2.0) ** 2
         + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2)
    return 2.0 * EARTH_RADIUS_KM * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))


def _unit_vectors(lats, lons):
    lat = np.radians(np.asarray(lats, dtype=np.float64))
    lon = np.radians(np.asarray(lons, dtype=np.float64))
    cos_lat = np.cos(lat)
    return np.column_stack([cos_lat * np.cos(lon), cos_lat * np.sin(lon),
                            np.sin(lat)])


def interpolate_points(target_lats, target_lons, sample_lats, sample_lons,
                       sample_values, power=2.0, max_distance_km=500.0, k=10,
                       min_distance_km=0.001):
    """Estimate values at many target points from scattered samples.

    Parameters
    ----------
    target_lats, target_lons : array_like, shape (T,)
        Query coordinates in degrees.
    sample_lats, sample_lons : array_like, shape (S,)
        Sample coordinates in degrees.
    sample_values : array_like, shape (S,) or (S, C)
        Scalar or per-component sample values.
    power : float
        Distance exponent of the weights.  Default 2.
    max_distance_km : float
        Search radius.  Default 500 km.
    k : int
        Maximum number of neighbours in the weighted average.  Default 10.
    min_distance_km : float
        Below this distance a sample's value is returned directly.
        Default 0.001 km (1 m).

    Returns
    -------
    numpy.ndarray or None
        Shape (T,) or (T, C); ``None`` when there are no samples at all.
    """
    values = np.asarray(sample_values, dtype=np.float64)
    n_samples = values.shape[0]
    if n_samples == 0:
        return None
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k!r}")

    target_lats = np.atleast_1d(np.asarray(target_lats, dtype=np.float64))
    target_lons = np.atleast_1d(np.asarray(target_lons, dtype=np.float64))
    sample_lats = np.asarray(sample_lats, dtype=np.float64)
    sample_lons = np.asarray(sample_lons, dtype=np.float64)

    kk = min(k, n_samples)
    tree = cKDTree(_unit_vectors(sample_lats, sample_lons))
    _, idx = tree.query(_unit_vectors(target_lats, target_lons), k=kk)
    idx = np.asarray(idx).reshape(len(target_lats), kk)

    dist = haversine_km(target_lats[:, None], target_lons[:, None],
                        sample_lats[idx], sample_lons[idx])
    candidates = values[idx]                      # (T, kk) or (T, kk, C)
    nearest = candidates[:, 0]

    in_range = dist <= max_distance_km
    safe_dist = np.where(dist < min_distance_km, 1.0, dist)
    weights = np.where(in_range, 1.0 / safe_dist ** power, 0.0)
    weight_sum = weights.sum(axis=1)

    if candidates.ndim == 3:
        weighted = np.einsum('tk,tkc->tc', weights, candidates)
        denom = weight_sum[:, None]
    else:
        weighted = (weights * candidates).sum(axis=1)
        denom = weight_sum
    average = np.divide(weighted, denom, out=np.zeros_like(weighted),
                        where=denom != 0)

    use_nearest = ((in_range.sum(axis=1) <= 1)
                   | (dist[:, 0] < min_distance_km)
                   | (weight_sum == 0))
    if candidates.ndim == 3:
        use_nearest = use_nearest[:, None]
    return np.where(use_nearest, nearest, average)


def idw(target_lat, target_lon, sample_lats, sample_lons, sample_values,
        **kwargs):
    """Single-point convenience wrapper around :func:`interpolate_points`.

    Returns a float for scalar samples, a ``(C,)`` array for vector
    samples, or ``None`` when there are no samples.
    """
    result = interpolate_points([target_lat], [target_lon], sample_lats,
                                sample_lons, sample_values, **kwargs)
    if result is None:
        return None
    if result.ndim == 1:
        return float(result[0])
    return result[0]


def interpolate_grid(lats, lons, sample_lats, sample_lons, sample_values,
                     **kwargs):
    """Interpolate onto a (rows, cols) grid of cell centres.

    Returns an array of shape (rows, cols) or (rows, cols, C), or ``None``
    when there are no samples.
    """
    lats = np.asarray(lats)
    flat = interpolate_points(lats.ravel(), np.asarray(lons).ravel(),
                              sample_lats, sample_lons, sample_values,
                              **kwargs)
    if flat is None:
        return None
    return flat.reshape(lats.shape + flat.shape[1:])
