"""Per-tick dispatch: drain the handoff, refresh the cache, composite and send."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np

from laser_compositor.server.config import CompositorConfig, zone_indices_for_output
from laser_compositor.server.logging_policy import LoggingToggles
from laser_compositor.server.metrics import Metrics
from laser_compositor.server.runtime.compositor import composite_outputs
from laser_compositor.server.runtime.frame_cache import FrameCache
from laser_compositor.server.runtime.frame_handoff import FrameHandoff
from laser_compositor.server.sink.interface import LaserSink

logger = logging.getLogger(__name__)


class DispatchState(enum.Enum):
    IDLE = "idle"
    COMPOSITED = "composited"
    SENT = "sent"
    SINK_NOT_READY = "sink_not_ready"


@dataclass(frozen=True)
class TickReport:
    """Outcome of one dispatch tick."""

    state: DispatchState
    drained: int = 0
    sent: tuple[int, ...] = ()
    failed: tuple[int, ...] = ()
    point_counts: tuple[int, ...] = field(default=())
    duration_ms: float = 0.0


class Dispatcher:
    """Owns the frame cache and output buffers for the dispatch thread."""

    def __init__(
        self,
        handoff: FrameHandoff,
        sink: LaserSink,
        config: CompositorConfig,
        *,
        cache: Optional[FrameCache] = None,
        log_toggles: Optional[LoggingToggles] = None,
        metrics: Optional[Metrics] = None,
        perf_counter: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._handoff = handoff
        self._sink = sink
        self._config = config
        self.cache = cache if cache is not None else FrameCache()
        self._log = log_toggles or LoggingToggles()
        self._metrics = metrics
        self._perf_counter = perf_counter
        self._addresses = config.output_addresses
        self._zones = tuple(zone_indices_for_output(i) for i in range(config.num_outputs))
        self.state = DispatchState.IDLE
        self.outputs: list[np.ndarray] = []
        self._sink_was_ready: Optional[bool] = None

    def drain(self) -> int:
        """Move every pending frame into the cache; never skipped."""
        frames = self._handoff.drain()
        count = self.cache.update_many(frames)
        if count:
            self._inc("handoff_drained", count)
        if self._metrics is not None:
            self._metrics.set("cache_layers", float(len(self.cache)))
        return count

    def composite(self) -> list[np.ndarray]:
        self.outputs = composite_outputs(self.cache, self._config.num_outputs)
        self.state = DispatchState.COMPOSITED
        return self.outputs

    def tick(self) -> TickReport:
        t0 = self._perf_counter()
        self.state = DispatchState.IDLE
        drained = self.drain()
        self._inc("ticks_total")

        ready = bool(self._sink.is_ready())
        if ready != self._sink_was_ready:
            if not ready:
                logger.info("sink not ready; holding output")
            elif self._sink_was_ready is not None:
                logger.info("sink ready; resuming output")
            self._sink_was_ready = ready
        if not ready:
            self.state = DispatchState.SINK_NOT_READY
            self._inc("ticks_sink_not_ready")
            return self._report(t0, drained=drained)

        outputs = self.composite()
        sent: list[int] = []
        failed: list[int] = []
        counts: list[int] = []
        max_points = self._config.max_points_per_output
        for index, points in enumerate(outputs):
            if points.shape[0] > max_points:
                logger.warning(
                    "%s: %d points exceeds limit %d; truncating",
                    self._addresses[index],
                    points.shape[0],
                    max_points,
                )
                self._inc("points_truncated", points.shape[0] - max_points)
                points = points[:max_points]
            counts.append(int(points.shape[0]))
            try:
                self._sink.send_frame(
                    self._addresses[index],
                    points,
                    self._zones[index],
                    self._config.scan_rate,
                )
            except Exception:
                failed.append(index)
                self._inc("sends_failed")
                logger.warning("send to %s failed", self._addresses[index], exc_info=True)
                continue
            sent.append(index)
            self._inc("sends_total")
            if self._log.log_sends:
                logger.info("sent %s points=%d", self._addresses[index], points.shape[0])
        self.state = DispatchState.SENT
        return self._report(
            t0,
            drained=drained,
            sent=tuple(sent),
            failed=tuple(failed),
            point_counts=tuple(counts),
        )

    def _report(self, t0: float, **kwargs) -> TickReport:
        duration_ms = (self._perf_counter() - t0) * 1000.0
        if self._metrics is not None:
            self._metrics.observe_ms("dispatch_ms", duration_ms)
        report = TickReport(state=self.state, duration_ms=duration_ms, **kwargs)
        if self._log.log_ticks:
            logger.info(
                "tick state=%s drained=%d sent=%s failed=%s %.2fms",
                report.state.value,
                report.drained,
                list(report.sent),
                list(report.failed),
                duration_ms,
            )
        return report

    def _inc(self, name: str, value: float = 1.0) -> None:
        if self._metrics is not None:
            self._metrics.inc(name, value)


__all__ = ["DispatchState", "Dispatcher", "TickReport"]
