"""Wire grid engines to a map host's viewport events.

The controller listens for ``moveend`` / ``zoomend`` on the host and
debounces them: every event restarts a short timer and only when the map
has been quiet for ``debounce`` seconds do the enabled engines render the
new viewport.  Toggling a metric on schedules a cycle the same way.
"""

import threading

from .engine import GridEngine, percent_progress
from .host import host_available
from .metrics import get_metric

SETTLE_EVENTS = ('moveend', 'zoomend')
RETRY_STATUSES = ('busy', 'superseded')


class EngineController:
    """Own one :class:`GridEngine` per enabled metric.

    Parameters
    ----------
    host : MapHost
        Map whose viewport drives the overlays.
    fetch : callable
        Point service shared by all engines.
    metrics : iterable of str, optional
        Metrics enabled from the start.
    debounce : float
        Quiet period in seconds before a render cycle.  Default 0.6.
    progress : callable, optional
        ``progress(metric_name, percent)`` with percent in 0-100.
    animate : bool
        Forwarded to every engine.
    overrides : dict, optional
        ``{metric_name: {option: value}}`` engine configuration overrides.

    Examples
    --------
    >>> ctl = EngineController(m, OpenMeteoService(), ['temperature'])   # doctest: +SKIP
    >>> m.pan_by(200, 0)        # doctest: +SKIP
    >>> # ~0.6 s later the temperature overlay follows the new viewport
    """

    def __init__(self, host, fetch, metrics=(), debounce=0.6, progress=None,
                 animate=True, overrides=None):
        if debounce < 0:
            raise ValueError(f"debounce must be >= 0, got {debounce!r}")
        self.fetch = fetch
        self.debounce = float(debounce)
        self.progress = progress
        self.animate = animate
        self.engines = {}
        self.cycles = 0
        self._overrides = dict(overrides or {})
        self._lock = threading.Lock()
        self._timer = None
        self._host = None
        self._attach(host)
        for metric in metrics:
            self.enable(metric)

    @property
    def host(self):
        return self._host

    @property
    def pending(self):
        """True while a debounced cycle is waiting to run."""
        return self._timer is not None

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def enable(self, metric, **overrides):
        """Create the engine for *metric* (if needed) and schedule a cycle."""
        spec = get_metric(metric)
        if spec.name in self.engines:
            return self.engines[spec.name]
        options = dict(self._overrides.get(spec.name, {}))
        options.update(overrides)
        engine = GridEngine(spec, self.fetch, host=self._host,
                            animate=self.animate, **options)
        self.engines[spec.name] = engine
        self.schedule()
        return engine

    def disable(self, metric):
        """Tear down the overlay of *metric*.  No-op if it is not enabled."""
        name = get_metric(metric).name
        engine = self.engines.pop(name, None)
        if engine is not None:
            engine.clear()

    def toggle(self, metric):
        """Flip *metric* on or off.  Returns True if it is now enabled."""
        name = get_metric(metric).name
        if name in self.engines:
            self.disable(name)
            return False
        self.enable(name)
        return True

    def is_enabled(self, metric):
        return get_metric(metric).name in self.engines

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _attach(self, host):
        self._host = host
        if host_available(host) and callable(getattr(host, 'on', None)):
            for event in SETTLE_EVENTS:
                host.on(event, self._on_settle)

    def _detach(self):
        host = self._host
        if host is not None and callable(getattr(host, 'off', None)):
            for event in SETTLE_EVENTS:
                host.off(event, self._on_settle)
        self._host = None

    def _on_settle(self, *args):
        self.schedule()

    def schedule(self):
        """(Re)start the debounce timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self.debounce, self._fire)
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self):
        with self._lock:
            if self._timer is None or self._timer is not threading.current_thread():
                return
            self._timer = None
        self.refresh()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def flush(self):
        """Run a pending cycle now instead of waiting for the timer."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return False
        timer.cancel()
        self.refresh()
        return True

    def refresh(self):
        """Render every enabled engine for the host's current viewport.

        An engine still busy with an older viewport, or whose result was
        overtaken by a move, gets another cycle after the debounce period.
        """
        host = self._host
        if not host_available(host):
            return {}
        bounds = host.get_bounds()
        self.cycles += 1
        results = {}
        retry = False
        for name, engine in list(self.engines.items()):
            progress = None
            if self.progress is not None:
                progress = percent_progress(
                    lambda pct, name=name: self.progress(name, pct))
            results[name] = engine.render(bounds, progress=progress)
            if engine.last_status in RETRY_STATUSES and name in self.engines:
                retry = True
        if retry and self._host is host:
            self.schedule()
        return results

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_host(self, host):
        """Move every overlay to *host*; a cycle is scheduled."""
        self.cancel()
        self._detach()
        for engine in self.engines.values():
            engine.set_host(host)
        self._attach(host)
        if self.engines:
            self.schedule()

    def close(self):
        """Stop listening and tear down every overlay."""
        self.cancel()
        self._detach()
        for engine in self.engines.values():
            engine.clear()
        self.engines.clear()
