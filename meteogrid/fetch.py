"""Bounded-concurrency fan-out over the point-weather service.

Samples are fetched on a thread pool whose worker count is the concurrency
limit.  All tasks are queued up front and each worker picks the next one the
moment it finishes, so the number of requests in flight stays at the limit
until the queue drains (a sliding window, not fixed batches).

Every fetch gets a ``threading.Event`` cancel signal that is set once the
per-sample timeout elapses.  Fetchers should pass the remaining budget to
their HTTP client and give up when the event is set; whatever they return
after the timeout is discarded.  Timeouts, exceptions and ``None`` results
are all soft failures recorded as ``None``.
"""

import threading
from concurrent.futures import ThreadPoolExecutor


def _fetch_one(fetch, lat, lon, timeout):
    cancel = threading.Event()
    timer = threading.Timer(timeout, cancel.set)
    timer.daemon = True
    timer.start()
    try:
        value = fetch(lat, lon, cancel)
    except Exception:
        value = None
    finally:
        timer.cancel()
    if cancel.is_set():
        return None
    return value


def fetch_samples(points, fetch, concurrency=18, timeout=3.0,
                  progress=None, abort=None):
    """Fetch every point with at most *concurrency* requests in flight.

    Parameters
    ----------
    points : sequence
        Items with ``lat`` and ``lon`` attributes (e.g. ``GridPoint``).
    fetch : callable
        ``fetch(lat, lon, cancel) -> value or None``.
    concurrency : int
        Maximum simultaneous fetches.  Default 18.
    timeout : float
        Per-sample budget in seconds.  Default 3.
    progress : callable, optional
        ``progress(completed, total)`` called after every completion, with
        *completed* strictly increasing.
    abort : threading.Event, optional
        When set, samples that have not started yet are skipped (``None``).
        Fetches already in flight run to completion or timeout.

    Returns
    -------
    list
        One entry per point, in the order of *points*.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency!r}")
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout!r}")

    total = len(points)
    results = [None] * total
    if total == 0:
        return results

    lock = threading.Lock()
    completed = 0

    def _run(index, point):
        nonlocal completed
        if abort is None or not abort.is_set():
            results[index] = _fetch_one(fetch, point.lat, point.lon, timeout)
        with lock:
            completed += 1
            if progress is not None:
                progress(completed, total)

    with ThreadPoolExecutor(max_workers=min(concurrency, total),
                            thread_name_prefix='meteogrid-fetch') as pool:
        futures = [pool.submit(_run, i, p) for i, p in enumerate(points)]
        for future in futures:
            future.result()

    return results
