"""Thread orchestration for the ingest and dispatch tasks."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from laser_compositor.server.config import BridgeConfig
from laser_compositor.server.metrics import Metrics
from laser_compositor.server.runtime.dispatch_loop import run_dispatch_loop
from laser_compositor.server.runtime.dispatcher import Dispatcher
from laser_compositor.server.runtime.frame_handoff import FrameHandoff
from laser_compositor.server.runtime.ingest_loop import IngestExit, run_ingest_loop
from laser_compositor.server.runtime.reassembler import LayerReassembler
from laser_compositor.server.udp_source import MessageSource

logger = logging.getLogger(__name__)


@dataclass
class IngestLifecycleState:
    """Track the ingest thread, its exit reason and the shared stop signal."""

    thread: Optional[threading.Thread] = None
    exit_reason: Optional[IngestExit] = None
    error: Optional[BaseException] = None
    stop_event: threading.Event = field(default_factory=threading.Event)
    done_event: threading.Event = field(default_factory=threading.Event)


def start_ingest(
    state: IngestLifecycleState,
    source: MessageSource,
    reassembler: LayerReassembler,
    handoff: FrameHandoff,
    *,
    metrics: Optional[Metrics] = None,
) -> None:
    """Launch the ingest loop on its own thread.

    Whatever ends the loop also sets ``state.stop_event`` so the dispatch task
    shuts down with it.
    """

    if state.thread and state.thread.is_alive():
        raise RuntimeError("ingest thread already running")

    state.done_event.clear()

    def ingest_main() -> None:
        try:
            state.exit_reason = run_ingest_loop(
                source,
                reassembler,
                handoff,
                stop_event=state.stop_event,
                metrics=metrics,
            )
        except Exception as exc:
            state.error = exc
            logger.exception("Ingest thread error: %s", exc)
        finally:
            state.done_event.set()
            state.stop_event.set()

    thread = threading.Thread(target=ingest_main, name="laser-ingest", daemon=True)
    state.thread = thread
    thread.start()


def stop_ingest(state: IngestLifecycleState, handoff: FrameHandoff, source: MessageSource) -> None:
    """Close the handoff and source, then wait for the ingest thread to exit."""

    state.stop_event.set()
    handoff.close()
    source.close()
    thread = state.thread
    if thread and thread.is_alive():
        thread.join(timeout=3.0)
        if thread.is_alive():
            logger.warning("ingest thread did not exit within 3s")
    state.thread = None


def run_bridge(
    config: BridgeConfig,
    source: MessageSource,
    sink: Any,
    *,
    state: Optional[IngestLifecycleState] = None,
    metrics: Optional[Metrics] = None,
    max_ticks: Optional[int] = None,
) -> int:
    """Run ingest on a worker thread and dispatch on the caller until stopped.

    Returns a process exit status: 0 for a requested stop, 1 when ingest ended
    on its own (transport failure or crash).
    """
    state = state or IngestLifecycleState()
    metrics = metrics or Metrics()
    comp = config.compositor
    toggles = config.debug_policy.logging

    handoff = FrameHandoff()
    reassembler = LayerReassembler(
        num_outputs=comp.num_outputs,
        stale_threshold_micros=comp.stale_threshold_micros,
        log_toggles=toggles,
        metrics=metrics,
    )
    dispatcher = Dispatcher(handoff, sink, comp, log_toggles=toggles, metrics=metrics)

    start_ingest(state, source, reassembler, handoff, metrics=metrics)
    ingest_ended_first = False
    try:
        run_dispatch_loop(
            dispatcher,
            interval_s=comp.dispatch_tick_s,
            stop_event=state.stop_event,
            metrics=metrics,
            stats_interval_s=config.stats_interval_s,
            max_ticks=max_ticks,
        )
    finally:
        ingest_ended_first = state.done_event.is_set()
        stop_ingest(state, handoff, source)

    if ingest_ended_first and (state.error is not None or state.exit_reason is IngestExit.TRANSPORT_CLOSED):
        logger.error("ingest stopped unexpectedly (%s); shutting down", state.exit_reason or state.error)
        return 1
    return 0


__all__ = ["IngestLifecycleState", "run_bridge", "start_ingest", "stop_ingest"]
