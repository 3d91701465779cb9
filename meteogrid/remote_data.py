"""Point-weather service clients.

A point service answers "what is the weather at (lat, lon) right now".  The
grid engine only needs a callable ``fetch(lat, lon, cancel) -> Reading or
None``; the classes here provide that callable for two public APIs:

* :class:`OpenMeteoService` -- https://open-meteo.com, no API key.
* :class:`WeatherApiService` -- https://www.weatherapi.com, needs a key.

Both share :class:`PointWeatherService`, which keeps a short-lived cache of
readings per coordinate (rounded to 4 decimals) and coalesces concurrent
requests for the same coordinate into one HTTP call.  Network and decoding
errors produce ``None`` rather than raising.
"""

import threading
import time
from collections import OrderedDict
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Optional


def _lazy_import_requests():
    try:
        import requests
    except ImportError:
        raise ImportError(
            "requests is required for the point-weather services. "
            "Install it with: pip install requests"
        )
    return requests


@dataclass(frozen=True)
class Reading:
    """Current conditions at a single coordinate.

    Attributes
    ----------
    temp_c : float, optional
        Air temperature at 2 m in degrees Celsius.
    wind_kph : float, optional
        Wind speed at 10 m in km/h.
    wind_degree : float, optional
        Meteorological wind direction (where the wind comes *from*), degrees.
    precip_mm : float, optional
        Precipitation in mm.
    cloud : float, optional
        Cloud cover in percent (0-100).
    """
    temp_c: Optional[float] = None
    wind_kph: Optional[float] = None
    wind_degree: Optional[float] = None
    precip_mm: Optional[float] = None
    cloud: Optional[float] = None


def _as_float(value):
    if value is None:
        return None
    return float(value)


class PointWeatherService:
    """Base class for point-weather clients.

    Subclasses implement :meth:`_request`, which performs one HTTP call and
    returns a :class:`Reading`.  Instances are callable with the fetcher
    signature ``service(lat, lon, cancel=None)``.

    Parameters
    ----------
    timeout : float
        HTTP timeout per request in seconds.  Default 3.
    cache_ttl : float
        Seconds a successful reading is reused for the same coordinate.
        Default 120 (2 minutes).
    session : requests.Session, optional
        Session to issue requests with.  Created lazily if omitted.
    clock : callable, optional
        Monotonic time source.  Defaults to ``time.monotonic``.
    max_entries : int
        Upper bound on cached readings.  Expired readings are swept on every
        insert and the oldest are dropped beyond the bound.  Default 4096.
    """

    name = 'point'

    def __init__(self, timeout=3.0, cache_ttl=120.0, session=None, clock=None,
                 max_entries=4096):
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout!r}")
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries!r}")
        self.max_entries = int(max_entries)
        self.timeout = float(timeout)
        self.cache_ttl = float(cache_ttl)
        self._session = session
        self._clock = clock if clock is not None else time.monotonic
        self._lock = threading.Lock()
        self._cache = OrderedDict()   # key -> (Reading, timestamp)
        self._inflight = {}           # key -> Future

    @staticmethod
    def _key(lat, lon):
        return f"{lat:.4f},{lon:.4f}"

    @property
    def session(self):
        if self._session is None:
            requests = _lazy_import_requests()
            self._session = requests.Session()
        return self._session

    def __call__(self, lat, lon, cancel=None):
        if cancel is not None and cancel.is_set():
            return None
        key = self._key(lat, lon)

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                reading, stamp = cached
                if self._clock() - stamp <= self.cache_ttl:
                    return reading
                del self._cache[key]
            pending = self._inflight.get(key)
            if pending is None:
                owner = True
                pending = Future()
                self._inflight[key] = pending
            else:
                owner = False

        if not owner:
            try:
                return pending.result(timeout=self.timeout)
            except FutureTimeoutError:
                return None

        reading = None
        try:
            reading = self._fetch(lat, lon)
        finally:
            with self._lock:
                if reading is not None:
                    self._store(key, reading)
                self._inflight.pop(key, None)
            pending.set_result(reading)
        return reading

    def _store(self, key, reading):
        # caller holds the lock; entries are kept in insertion-time order
        now = self._clock()
        self._cache.pop(key, None)
        self._cache[key] = (reading, now)
        while self._cache:
            _, stamp = next(iter(self._cache.values()))
            if now - stamp <= self.cache_ttl:
                break
            self._cache.popitem(last=False)
        while len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)

    @property
    def cached_readings(self):
        """Number of readings currently held in the cache."""
        with self._lock:
            return len(self._cache)

    def _fetch(self, lat, lon):
        requests = _lazy_import_requests()
        try:
            return self._request(lat, lon)
        except (requests.RequestException, ValueError, KeyError, TypeError):
            return None

    def _request(self, lat, lon):
        raise NotImplementedError

    def clear_cache(self):
        with self._lock:
            self._cache.clear()


class OpenMeteoService(PointWeatherService):
    """Current conditions from the Open-Meteo forecast API (no key needed).

    Examples
    --------
    >>> from meteogrid.remote_data import OpenMeteoService
    >>> svc = OpenMeteoService()
    >>> svc(52.52, 13.405).temp_c          # doctest: +SKIP
    11.3
    """

    name = 'open-meteo'
    url = "https://api.open-meteo.com/v1/forecast"
    fields = ("temperature_2m,wind_speed_10m,wind_direction_10m,"
              "precipitation,cloud_cover")

    def _request(self, lat, lon):
        resp = self.session.get(
            self.url,
            params={
                "latitude": f"{lat:.4f}",
                "longitude": f"{lon:.4f}",
                "current": self.fields,
                "wind_speed_unit": "kmh",
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        current = resp.json()["current"]
        return Reading(
            temp_c=_as_float(current.get("temperature_2m")),
            wind_kph=_as_float(current.get("wind_speed_10m")),
            wind_degree=_as_float(current.get("wind_direction_10m")),
            precip_mm=_as_float(current.get("precipitation")),
            cloud=_as_float(current.get("cloud_cover")),
        )


class WeatherApiService(PointWeatherService):
    """Current conditions from WeatherAPI.com.

    Parameters
    ----------
    api_key : str
        WeatherAPI.com key.
    base_url : str
        API root.  Default ``https://api.weatherapi.com/v1``.
    **kwargs
        Forwarded to :class:`PointWeatherService`.
    """

    name = 'weatherapi'

    def __init__(self, api_key, base_url="https://api.weatherapi.com/v1",
                 **kwargs):
        if not api_key:
            raise ValueError("WeatherApiService needs an api_key")
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')

    def _request(self, lat, lon):
        resp = self.session.get(
            f"{self.base_url}/current.json",
            params={"key": self.api_key, "q": f"{lat:.4f},{lon:.4f}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        current = resp.json()["current"]
        return Reading(
            temp_c=_as_float(current.get("temp_c")),
            wind_kph=_as_float(current.get("wind_kph")),
            wind_degree=_as_float(current.get("wind_degree")),
            precip_mm=_as_float(current.get("precip_mm")),
            cloud=_as_float(current.get("cloud")),
        )
