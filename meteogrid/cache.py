"""Bounds-keyed TTL cache of computed grids.

Entries expire ``ttl`` seconds after insertion and are evicted lazily on
lookup; there is no background sweeper.  Each :class:`~meteogrid.engine.GridEngine`
owns its own cache.
"""

import threading
import time
from collections import OrderedDict


class GridCache:
    """Map bounds hashes to grids with a time-to-live.

    Parameters
    ----------
    ttl : float
        Lifetime of an entry in seconds.  Default 180 (3 minutes).
    clock : callable, optional
        Monotonic time source in seconds.  Defaults to ``time.monotonic``;
        tests inject a fake clock.
    max_entries : int, optional
        When set, inserting beyond this many entries evicts the oldest
        insertion first.
    """

    def __init__(self, ttl=180.0, clock=None, max_entries=None):
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl!r}")
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries!r}")
        self.ttl = float(ttl)
        self._clock = clock if clock is not None else time.monotonic
        self._max_entries = max_entries
        self._entries = OrderedDict()   # key -> (value, timestamp)
        self._lock = threading.Lock()

    def get(self, key):
        """Return the cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stamp = entry
            if self._clock() - stamp > self.ttl:
                del self._entries[key]
                return None
            return value

    def put(self, key, value):
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (value, self._clock())
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    self._entries.popitem(last=False)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, key):
        return self.get(key) is not None

    def __len__(self):
        with self._lock:
            return len(self._entries)
