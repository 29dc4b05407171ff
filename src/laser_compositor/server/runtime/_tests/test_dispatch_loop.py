from __future__ import annotations

import logging
import threading

from laser_compositor.server.metrics import Metrics
from laser_compositor.server.runtime import dispatch_loop
from laser_compositor.server.runtime.dispatch_loop import run_dispatch_loop


class _CountingDispatcher:
    def __init__(self, stop_after: int | None = None, stop_event: threading.Event | None = None) -> None:
        self.ticks = 0
        self._stop_after = stop_after
        self._stop_event = stop_event

    def tick(self) -> None:
        self.ticks += 1
        if self._stop_after is not None and self.ticks >= self._stop_after:
            self._stop_event.set()


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _RecordingEvent:
    """Event stand-in that records requested waits and advances the fake clock."""

    def __init__(self, clock: _FakeClock) -> None:
        self.clock = clock
        self.waits: list[float] = []
        self._set = False

    def is_set(self) -> bool:
        return self._set

    def set(self) -> None:
        self._set = True

    def wait(self, timeout: float) -> bool:
        self.waits.append(timeout)
        self.clock.now += timeout
        return self._set


def test_max_ticks_bounds_the_loop() -> None:
    dispatcher = _CountingDispatcher()
    ticks = run_dispatch_loop(dispatcher, interval_s=0.001, stop_event=threading.Event(), max_ticks=3)
    assert ticks == 3
    assert dispatcher.ticks == 3


def test_stop_event_ends_loop_between_ticks() -> None:
    stop = threading.Event()
    dispatcher = _CountingDispatcher(stop_after=2, stop_event=stop)
    ticks = run_dispatch_loop(dispatcher, interval_s=0.001, stop_event=stop)
    assert ticks == 2


def test_already_stopped_runs_no_ticks() -> None:
    stop = threading.Event()
    stop.set()
    assert run_dispatch_loop(_CountingDispatcher(), interval_s=0.005, stop_event=stop) == 0


def test_deadlines_advance_by_interval() -> None:
    clock = _FakeClock()
    event = _RecordingEvent(clock)
    dispatcher = _CountingDispatcher()

    run_dispatch_loop(dispatcher, interval_s=0.005, stop_event=event, max_ticks=4, monotonic=clock)

    assert len(event.waits) == 3
    assert all(abs(w - 0.005) < 1e-9 for w in event.waits)


def test_overrun_resyncs_instead_of_bursting() -> None:
    clock = _FakeClock()
    event = _RecordingEvent(clock)

    class _SlowDispatcher(_CountingDispatcher):
        def tick(self) -> None:
            super().tick()
            if self.ticks == 1:
                clock.now += 0.050

    run_dispatch_loop(_SlowDispatcher(), interval_s=0.005, stop_event=event, max_ticks=3, monotonic=clock)

    # After the overrun the next deadline is "now", then back to the interval.
    assert event.waits[0] == 0.0
    assert abs(event.waits[1] - 0.005) < 1e-9


def test_stats_logged_on_interval(caplog) -> None:
    clock = _FakeClock()
    event = _RecordingEvent(clock)
    metrics = Metrics()
    metrics.inc("frames_completed", 7)

    with caplog.at_level(logging.INFO, logger=dispatch_loop.__name__):
        run_dispatch_loop(
            _CountingDispatcher(),
            interval_s=0.005,
            stop_event=event,
            metrics=metrics,
            stats_interval_s=0.01,
            max_ticks=5,
            monotonic=clock,
        )

    assert "frames=7" in caplog.text
