"""Sink contract consumed by the dispatcher, plus an in-process recording sink."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence, runtime_checkable

import numpy as np

logger = logging.getLogger(__name__)


class SinkSendError(RuntimeError):
    """The sink rejected a frame for one output."""


class SinkUnavailableError(RuntimeError):
    """The sink could not be opened or initialised."""


@runtime_checkable
class LaserSink(Protocol):
    def is_ready(self) -> bool: ...

    def send_frame(
        self,
        address: str,
        points: np.ndarray,
        zone_indices: Sequence[int],
        scan_rate: int,
    ) -> None: ...


class RecordingSink:
    """Keeps the last frame sent to each address; used for dry runs and tests."""

    def __init__(self, *, ready: bool = True) -> None:
        self.ready = bool(ready)
        self.registered: tuple[str, ...] = ()
        self.last_frames: dict[str, np.ndarray] = {}
        self.last_zones: dict[str, tuple[int, ...]] = {}
        self.last_scan_rate: dict[str, int] = {}
        self.send_count = 0
        self.closed = False

    def register_outputs(self, addresses: Sequence[str]) -> None:
        self.registered = tuple(addresses)
        logger.info("recording sink: outputs %s", ", ".join(self.registered))

    def is_ready(self) -> bool:
        return self.ready

    def send_frame(
        self,
        address: str,
        points: np.ndarray,
        zone_indices: Sequence[int],
        scan_rate: int,
    ) -> None:
        self.last_frames[address] = points
        self.last_zones[address] = tuple(int(z) for z in zone_indices)
        self.last_scan_rate[address] = int(scan_rate)
        self.send_count += 1

    def blackout(self) -> None:
        self.last_frames.clear()

    def close(self) -> None:
        self.closed = True


__all__ = [
    "LaserSink",
    "RecordingSink",
    "SinkSendError",
    "SinkUnavailableError",
]
