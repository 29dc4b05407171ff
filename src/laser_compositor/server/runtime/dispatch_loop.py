"""Fixed-tick driver for the dispatcher."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from laser_compositor.server.metrics import Metrics
from laser_compositor.server.runtime.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


def run_dispatch_loop(
    dispatcher: Dispatcher,
    *,
    interval_s: float,
    stop_event: threading.Event,
    metrics: Optional[Metrics] = None,
    stats_interval_s: float = 0.0,
    max_ticks: Optional[int] = None,
    monotonic: Callable[[], float] = time.monotonic,
) -> int:
    """Tick ``dispatcher`` every ``interval_s`` until ``stop_event`` is set.

    Deadlines advance by whole intervals; when a tick overruns, the schedule
    resynchronises to now rather than bursting to catch up. Returns the number
    of ticks run.
    """
    interval = max(1e-4, float(interval_s))
    next_tick = monotonic()
    next_stats = next_tick + stats_interval_s if stats_interval_s > 0 else None
    ticks = 0
    while not stop_event.is_set():
        dispatcher.tick()
        ticks += 1
        if max_ticks is not None and ticks >= max_ticks:
            break

        now = monotonic()
        if next_stats is not None and metrics is not None and now >= next_stats:
            _log_stats(metrics)
            next_stats = now + stats_interval_s

        next_tick += interval
        if next_tick < now:
            next_tick = now
        # Event.wait doubles as the sleep so a stop request ends the wait early.
        stop_event.wait(max(0.0, next_tick - now))
    return ticks


def _log_stats(metrics: Metrics) -> None:
    snap = metrics.snapshot()
    counters = snap["counters"]
    dispatch = snap["histograms"].get("dispatch_ms", {})
    logger.info(
        "stats: frames=%s reaped=%s decode_failed=%s rejected=%s sends=%s failed=%s not_ready=%s dispatch_p90=%.2fms",
        counters.get("frames_completed", 0),
        counters.get("fragments_reaped", 0),
        counters.get("frames_decode_failed", 0),
        counters.get("messages_rejected", 0),
        counters.get("sends_total", 0),
        counters.get("sends_failed", 0),
        counters.get("ticks_sink_not_ready", 0),
        float(dispatch.get("p90_ms", 0.0)),
    )


__all__ = ["run_dispatch_loop"]
