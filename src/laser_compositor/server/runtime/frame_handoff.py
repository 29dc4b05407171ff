"""Ingest→dispatch handoff for completed layer frames."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque

from laser_compositor.protocol.messages import LayerFrame


class FrameHandoff:
    """Thread-safe FIFO with one producer (ingest) and one consumer (dispatch).

    The consumer drains everything pending once per tick. Closing the handoff
    is how the consumer tells the producer it is gone: ``push`` then returns
    ``False`` and the frame is discarded.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Deque[LayerFrame] = deque()
        self._closed = False

    def push(self, frame: LayerFrame) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._items.append(frame)
            return True

    def drain(self) -> list[LayerFrame]:
        with self._lock:
            if not self._items:
                return []
            items = list(self._items)
            self._items.clear()
            return items

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._items.clear()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


__all__ = ["FrameHandoff"]
