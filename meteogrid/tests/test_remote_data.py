"""Tests for the point-weather service clients (no network)."""

import threading
import time

import pytest

from meteogrid.remote_data import OpenMeteoService, Reading, WeatherApiService


def has_requests():
    """Check if requests is available."""
    try:
        import requests  # noqa: F401
        return True
    except ImportError:
        return False


pytestmark = pytest.mark.skipif(not has_requests(), reason="requests not available")


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self._payload


class FakeSession:
    """Records requests and answers with a canned payload."""

    def __init__(self, payload, delay=0.0, error=None):
        self.payload = payload
        self.delay = delay
        self.error = error
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None):
        with self._lock:
            self.calls.append((url, dict(params or {}), timeout))
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.payload)


OPEN_METEO_PAYLOAD = {
    'current': {
        'temperature_2m': 12.5,
        'wind_speed_10m': 18.0,
        'wind_direction_10m': 270,
        'precipitation': 0.4,
        'cloud_cover': 75,
    }
}

WEATHERAPI_PAYLOAD = {
    'current': {
        'temp_c': 21.0,
        'wind_kph': 9.4,
        'wind_degree': 45,
        'precip_mm': 0.0,
        'cloud': 25,
    }
}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestOpenMeteoService:
    """Parsing, caching and coalescing."""

    def test_parse(self):
        session = FakeSession(OPEN_METEO_PAYLOAD)
        svc = OpenMeteoService(session=session)
        reading = svc(52.52, 13.405)
        assert reading == Reading(temp_c=12.5, wind_kph=18.0, wind_degree=270.0,
                                  precip_mm=0.4, cloud=75.0)
        url, params, timeout = session.calls[0]
        assert url == OpenMeteoService.url
        assert params['latitude'] == '52.5200'
        assert 'cloud_cover' in params['current']
        assert timeout == 3.0

    def test_cache_by_rounded_coordinate(self):
        clock = FakeClock()
        session = FakeSession(OPEN_METEO_PAYLOAD)
        svc = OpenMeteoService(session=session, clock=clock)
        svc(10.0, 20.0)
        svc(10.00001, 20.00001)
        assert len(session.calls) == 1
        svc(10.1, 20.0)
        assert len(session.calls) == 2
        clock.now = 121.0
        svc(10.0, 20.0)
        assert len(session.calls) == 3

    def test_expired_readings_swept_on_insert(self):
        clock = FakeClock()
        svc = OpenMeteoService(session=FakeSession(OPEN_METEO_PAYLOAD), clock=clock)
        for i in range(5):
            svc(float(i), 0.0)
        assert svc.cached_readings == 5
        clock.now = 121.0
        svc(50.0, 0.0)
        assert svc.cached_readings == 1

    def test_max_entries_drops_oldest(self):
        session = FakeSession(OPEN_METEO_PAYLOAD)
        svc = OpenMeteoService(session=session, max_entries=3)
        for i in range(5):
            svc(float(i), 0.0)
        assert svc.cached_readings == 3
        svc(4.0, 0.0)
        assert len(session.calls) == 5
        svc(0.0, 0.0)
        assert len(session.calls) == 6

    def test_bad_max_entries(self):
        with pytest.raises(ValueError):
            OpenMeteoService(max_entries=0)

    def test_concurrent_requests_coalesce(self):
        session = FakeSession(OPEN_METEO_PAYLOAD, delay=0.2)
        svc = OpenMeteoService(session=session)
        results = []

        def worker():
            results.append(svc(1.0, 2.0))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(session.calls) == 1
        assert len(results) == 4
        assert all(r is not None and r.temp_c == 12.5 for r in results)

    def test_failure_is_none_and_not_cached(self):
        import requests

        session = FakeSession(OPEN_METEO_PAYLOAD,
                              error=requests.ConnectionError("offline"))
        svc = OpenMeteoService(session=session)
        assert svc(1.0, 2.0) is None
        assert svc(1.0, 2.0) is None
        assert len(session.calls) == 2

    def test_malformed_payload(self):
        svc = OpenMeteoService(session=FakeSession({'error': True}))
        assert svc(1.0, 2.0) is None

    def test_cancelled_before_start(self):
        session = FakeSession(OPEN_METEO_PAYLOAD)
        cancel = threading.Event()
        cancel.set()
        assert OpenMeteoService(session=session)(1.0, 2.0, cancel) is None
        assert session.calls == []


class TestWeatherApiService:
    """WeatherAPI.com client."""

    def test_parse(self):
        session = FakeSession(WEATHERAPI_PAYLOAD)
        svc = WeatherApiService('secret', session=session)
        reading = svc(-33.9, 18.4)
        assert reading.temp_c == 21.0
        assert reading.wind_kph == 9.4
        assert reading.cloud == 25.0
        url, params, _ = session.calls[0]
        assert url.endswith('/current.json')
        assert params == {'key': 'secret', 'q': '-33.9000,18.4000'}

    def test_requires_key(self):
        with pytest.raises(ValueError):
            WeatherApiService('')
