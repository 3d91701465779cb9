"""Tests for the debounced engine controller."""

import threading
import time

import pytest

from meteogrid.bounds import bounds_hash
from meteogrid.controller import EngineController
from meteogrid.host import WebMercatorMap
from meteogrid.remote_data import Reading


class CountingService:
    def __init__(self):
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, lat, lon, cancel=None):
        with self._lock:
            self.calls += 1
        return Reading(temp_c=lat, wind_kph=10.0, wind_degree=180.0,
                       precip_mm=1.0, cloud=50.0)


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def host():
    return WebMercatorMap(center=(51.5, -0.1), zoom=9, size=(200, 150))


class TestDebounce:
    """Viewport events collapse into one cycle."""

    def test_burst_of_moves_renders_once(self, host):
        ctl = EngineController(host, CountingService(), debounce=0.1,
                               animate=False)
        ctl.enable('temperature')
        for _ in range(5):
            host.pan_by(10, 0)
            time.sleep(0.01)
        assert ctl.pending
        engine = ctl.engines['temperature']
        assert wait_for(lambda: engine.grid is not None)
        time.sleep(0.2)
        assert ctl.cycles == 1
        assert not ctl.pending
        assert engine.grid.bounds == host.get_bounds()
        ctl.close()

    def test_flush_runs_pending_cycle(self, host):
        ctl = EngineController(host, CountingService(), ['cloud'],
                               debounce=10.0, animate=False)
        assert ctl.pending
        assert ctl.flush()
        assert ctl.cycles == 1
        assert ctl.engines['cloud'].last_status == 'rendered'
        assert not ctl.flush()
        ctl.close()

    def test_cancel(self, host):
        ctl = EngineController(host, CountingService(), ['cloud'],
                               debounce=0.05, animate=False)
        ctl.cancel()
        time.sleep(0.15)
        assert ctl.cycles == 0
        ctl.close()

    def test_zoom_triggers_cycle(self, host):
        ctl = EngineController(host, CountingService(), ['precipitation'],
                               debounce=10.0, animate=False)
        ctl.flush()
        host.set_zoom(8)
        assert ctl.pending
        ctl.flush()
        assert ctl.cycles == 2
        assert ctl.engines['precipitation'].grid.bounds.zoom == 8
        ctl.close()

    def test_pan_during_fetch_ends_on_current_viewport(self, host):
        gate = threading.Event()
        started = threading.Event()

        def slow(lat, lon, cancel=None):
            started.set()
            gate.wait(5.0)
            return Reading(temp_c=lat)

        ctl = EngineController(host, slow, debounce=0.05, animate=False)
        engine = ctl.enable('temperature', fetch_timeout=10.0)
        assert started.wait(5.0)
        first = bounds_hash(host.get_bounds())
        host.pan_by(300, 0)
        # the cycle for the new viewport finds the engine busy
        assert wait_for(lambda: engine.last_status == 'busy')
        gate.set()

        current = bounds_hash(host.get_bounds())
        assert wait_for(lambda: engine.last_bounds_hash == current
                        and not ctl.pending, timeout=10.0)
        assert engine.grid.bounds == host.get_bounds()
        assert first in engine.cache
        ctl.close()

    def test_negative_debounce(self, host):
        with pytest.raises(ValueError):
            EngineController(host, CountingService(), debounce=-1)


class TestMetricToggle:
    """Enabling and disabling overlays."""

    def test_toggle(self, host):
        ctl = EngineController(host, CountingService(), debounce=10.0,
                               animate=False)
        assert ctl.toggle('temperature') is True
        ctl.flush()
        overlay = ctl.engines['temperature'].overlay
        assert overlay in host.overlays

        assert ctl.toggle('temperature') is False
        assert not ctl.is_enabled('temperature')
        assert overlay not in host.overlays
        ctl.close()

    def test_disable_unknown_is_noop(self, host):
        ctl = EngineController(host, CountingService(), debounce=10.0)
        ctl.disable('wind')
        assert ctl.engines == {}
        ctl.close()

    def test_enable_twice_returns_same_engine(self, host):
        ctl = EngineController(host, CountingService(), debounce=10.0,
                               animate=False)
        assert ctl.enable('cloud') is ctl.enable('cloud')
        ctl.close()

    def test_overrides_reach_engine(self, host):
        ctl = EngineController(host, CountingService(), debounce=10.0,
                               animate=False,
                               overrides={'cloud': {'cloud_render_style': 'soft'}})
        engine = ctl.enable('cloud', max_draw_count=50)
        assert engine.config.cloud_render_style == 'soft'
        assert engine.config.max_draw_count == 50
        ctl.close()

    def test_overlays_stack_by_z_index(self, host):
        ctl = EngineController(host, CountingService(),
                               ['cloud', 'temperature', 'precipitation'],
                               debounce=10.0, animate=False)
        ctl.flush()
        names = [o.name for o in sorted(host.overlays, key=lambda o: o.z_index)]
        assert names == ['cloud', 'temperature', 'precipitation']
        ctl.close()


class TestProgressAndLifecycle:
    """Progress forwarding, host changes and shutdown."""

    def test_progress_per_metric(self, host):
        seen = []
        ctl = EngineController(host, CountingService(), ['temperature', 'cloud'],
                               debounce=10.0, animate=False,
                               progress=lambda name, pct: seen.append((name, pct)))
        ctl.flush()
        for name in ('temperature', 'cloud'):
            pcts = [p for n, p in seen if n == name]
            assert pcts[-1] == 100
            assert pcts == sorted(pcts)
        ctl.close()

    def test_close_stops_listening(self, host):
        service = CountingService()
        ctl = EngineController(host, service, ['temperature'], debounce=0.05,
                               animate=False)
        ctl.flush()
        ctl.close()
        assert host.overlays == []
        host.pan_by(100, 0)
        time.sleep(0.15)
        assert ctl.cycles == 1
        assert not ctl.pending

    def test_set_host(self, host):
        ctl = EngineController(host, CountingService(), ['temperature'],
                               debounce=10.0, animate=False)
        ctl.flush()
        other = WebMercatorMap(center=(51.5, -0.1), zoom=9, size=(100, 80))
        ctl.set_host(other)
        assert host.overlays == []
        assert ctl.pending
        ctl.flush()
        assert len(other.overlays) == 1
        # the old map no longer drives the controller
        host.pan_by(50, 0)
        assert not ctl.pending
        ctl.close()

    def test_dead_host_skips_cycle(self, host):
        ctl = EngineController(host, CountingService(), ['cloud'],
                               debounce=10.0, animate=False)
        host.destroy()
        assert ctl.refresh() == {}
        assert ctl.cycles == 0
        ctl.close()

    def test_wind_animation_stops_on_close(self, host):
        ctl = EngineController(host, CountingService(), ['wind'], debounce=10.0)
        ctl.flush()
        animation = ctl.engines['wind'].animation
        assert animation.running
        ctl.close()
        assert not animation.running
