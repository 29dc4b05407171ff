"""Ingest thread body: receive, reassemble, reap, hand off."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Optional

from laser_compositor.points import DecodeError
from laser_compositor.protocol.messages import ProtocolError
from laser_compositor.server.metrics import Metrics
from laser_compositor.server.runtime.frame_handoff import FrameHandoff
from laser_compositor.server.runtime.reassembler import LayerReassembler
from laser_compositor.server.udp_source import MessageSource, TransportClosed

logger = logging.getLogger(__name__)


class IngestExit(enum.Enum):
    HANDOFF_CLOSED = "handoff_closed"
    TRANSPORT_CLOSED = "transport_closed"
    STOPPED = "stopped"


def run_ingest_loop(
    source: MessageSource,
    reassembler: LayerReassembler,
    handoff: FrameHandoff,
    *,
    stop_event: Optional[threading.Event] = None,
    metrics: Optional[Metrics] = None,
) -> IngestExit:
    """Run until the handoff consumer goes away, the transport closes, or ``stop_event`` is set."""

    while stop_event is None or not stop_event.is_set():
        if handoff.closed:
            logger.info("handoff closed; ingest exiting")
            return IngestExit.HANDOFF_CLOSED
        try:
            batch = source.recv()
        except TransportClosed as exc:
            logger.info("transport closed; ingest exiting (%s)", exc)
            return IngestExit.TRANSPORT_CLOSED

        for message in batch:
            frame = None
            try:
                frame = reassembler.ingest(message)
            except ProtocolError as exc:
                logger.warning("skipping message: %s", exc)
                if metrics is not None:
                    metrics.inc("messages_rejected")
            except DecodeError as exc:
                logger.warning("dropping frame: %s", exc)
            reassembler.reap_stale()
            if frame is not None and not handoff.push(frame):
                logger.info("handoff closed; ingest exiting")
                return IngestExit.HANDOFF_CLOSED

    return IngestExit.STOPPED


__all__ = ["IngestExit", "run_ingest_loop"]
