"""Per-layer fragment reassembly and stale-buffer eviction.

Owned by the ingest thread. Fragments are bucketed by ``(layer_id,
timestamp)`` in arrival order; the terminal fragment (``is_last``) decodes the
bucket into a :class:`LayerFrame` and removes it. Buckets whose terminal
fragment never arrives are purged once the layer's clock has moved more than
``stale_threshold_micros`` past them.
"""

from __future__ import annotations

import logging
from typing import Optional

from laser_compositor.points import DecodeError, decode_chunks
from laser_compositor.protocol.messages import (
    IncomingMessage,
    KeepAlive,
    LayerFrame,
    validate_message,
)
from laser_compositor.server.logging_policy import LoggingToggles
from laser_compositor.server.metrics import Metrics

logger = logging.getLogger(__name__)


class LayerReassembler:
    """Accumulate fragments per layer and emit completed frames."""

    def __init__(
        self,
        *,
        num_outputs: int,
        stale_threshold_micros: int = 1_000_000,
        log_toggles: Optional[LoggingToggles] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self.num_outputs = int(num_outputs)
        self.stale_threshold_micros = int(stale_threshold_micros)
        self._log = log_toggles or LoggingToggles()
        self._metrics = metrics
        # layer_id -> timestamp -> payload chunks in arrival order
        self._buffers: dict[str, dict[int, list[bytes]]] = {}
        self._last_seen: dict[str, int] = {}

    # ---- Queries -----------------------------------------------------------
    def last_seen(self, layer_id: str) -> Optional[int]:
        return self._last_seen.get(layer_id)

    def pending_timestamps(self, layer_id: str) -> tuple[int, ...]:
        return tuple(self._buffers.get(layer_id, {}).keys())

    def pending_count(self) -> int:
        return sum(len(stamps) for stamps in self._buffers.values())

    # ---- Ingest ------------------------------------------------------------
    def ingest(self, message: IncomingMessage) -> Optional[LayerFrame]:
        """Buffer one fragment; return the completed frame on its terminal fragment.

        Raises ``ProtocolError`` (before any state change) for malformed
        messages and ``DecodeError`` (after dropping that timestamp's buffer)
        when the collected payload does not hold whole point records.
        """
        validate_message(message, num_outputs=self.num_outputs)

        if isinstance(message, KeepAlive):
            # Keep-alives share the senders' clock; they move every layer forward
            # so a layer that went silent mid-frame still gets reaped.
            for layer_id in self._last_seen:
                self._last_seen[layer_id] = message.timestamp
            self._inc("keepalives_total")
            return None

        layer_id = message.layer_id
        timestamp = message.timestamp
        self._last_seen[layer_id] = timestamp
        stamps = self._buffers.setdefault(layer_id, {})
        stamps.setdefault(timestamp, []).append(bytes(message.payload))
        self._inc("fragments_total")

        if not message.is_last:
            return None

        chunks = stamps.pop(timestamp)
        if not stamps:
            del self._buffers[layer_id]
        try:
            points = decode_chunks(chunks)
        except DecodeError as exc:
            self._inc("frames_decode_failed")
            raise DecodeError(f"layer {layer_id!r} timestamp {timestamp}: {exc}") from exc

        frame = LayerFrame(
            layer_id=layer_id,
            timestamp=timestamp,
            points=points,
            outputs=tuple(message.outputs),
        )
        self._inc("frames_completed")
        if self._log.log_frames:
            logger.info(
                "frame complete: layer=%s ts=%d fragments=%d points=%d outputs=%s",
                layer_id,
                timestamp,
                len(chunks),
                frame.point_count,
                list(frame.outputs),
            )
        return frame

    # ---- Eviction ----------------------------------------------------------
    def reap_stale(self) -> list[tuple[str, int]]:
        """Drop buffers more than the staleness window behind their layer's clock.

        Returns the purged ``(layer_id, timestamp)`` keys. A terminal fragment
        arriving later for a purged key starts a fresh buffer and completes
        with only the fragments seen since.
        """
        purged: list[tuple[str, int]] = []
        threshold = self.stale_threshold_micros
        for layer_id in list(self._buffers.keys()):
            stamps = self._buffers[layer_id]
            latest = self._last_seen.get(layer_id)
            if latest is None:
                continue
            to_remove = [ts for ts in stamps if latest - ts > threshold]
            for ts in to_remove:
                chunks = stamps.pop(ts)
                purged.append((layer_id, ts))
                if self._log.log_reaps:
                    logger.info(
                        "reaped stale fragments: layer=%s ts=%d age_us=%d chunks=%d",
                        layer_id,
                        ts,
                        latest - ts,
                        len(chunks),
                    )
            if not stamps:
                del self._buffers[layer_id]
        if purged:
            self._inc("fragments_reaped", len(purged))
        return purged

    def _inc(self, name: str, value: float = 1.0) -> None:
        if self._metrics is not None:
            self._metrics.inc(name, value)


__all__ = ["LayerReassembler"]
