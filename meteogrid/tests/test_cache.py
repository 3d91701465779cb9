"""Tests for the TTL grid cache."""

import pytest

from meteogrid.cache import GridCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestGridCache:
    """Insertion, expiry and eviction."""

    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = GridCache(ttl=180, clock=clock)
        cache.put('a', 'grid-a')
        clock.advance(179)
        assert cache.get('a') == 'grid-a'
        assert 'a' in cache

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = GridCache(ttl=180, clock=clock)
        cache.put('a', 'grid-a')
        clock.advance(181)
        assert cache.get('a') is None
        # evicted lazily on lookup
        assert len(cache) == 0

    def test_miss(self):
        assert GridCache().get('nope') is None

    def test_put_refreshes_timestamp(self):
        clock = FakeClock()
        cache = GridCache(ttl=10, clock=clock)
        cache.put('a', 1)
        clock.advance(8)
        cache.put('a', 2)
        clock.advance(8)
        assert cache.get('a') == 2

    def test_max_entries(self):
        cache = GridCache(max_entries=2)
        cache.put('a', 1)
        cache.put('b', 2)
        cache.put('c', 3)
        assert cache.get('a') is None
        assert cache.get('b') == 2
        assert cache.get('c') == 3

    def test_clear(self):
        cache = GridCache()
        cache.put('a', 1)
        cache.clear()
        assert len(cache) == 0
        assert cache.get('a') is None

    @pytest.mark.parametrize("kwargs", [{'ttl': 0}, {'max_entries': 0}])
    def test_bad_arguments(self, kwargs):
        with pytest.raises(ValueError):
            GridCache(**kwargs)
