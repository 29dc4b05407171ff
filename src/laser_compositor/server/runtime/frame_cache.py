"""Latest completed frame per layer, owned by the dispatch thread."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

import numpy as np

from laser_compositor.protocol.messages import LayerFrame


@dataclass(frozen=True)
class CachedLayer:
    points: np.ndarray
    outputs: tuple[int, ...]
    timestamp: int


class FrameCache:
    """Last-write-wins store keyed by layer id.

    No timestamp check: a late completion of an older frame replaces a newer
    one.
    """

    def __init__(self) -> None:
        self._layers: dict[str, CachedLayer] = {}

    def update(self, frame: LayerFrame) -> None:
        self._layers[frame.layer_id] = CachedLayer(
            points=frame.points,
            outputs=tuple(frame.outputs),
            timestamp=frame.timestamp,
        )

    def update_many(self, frames: Iterable[LayerFrame]) -> int:
        count = 0
        for frame in frames:
            self.update(frame)
            count += 1
        return count

    def get(self, layer_id: str) -> Optional[CachedLayer]:
        return self._layers.get(layer_id)

    def items(self) -> Iterator[tuple[str, CachedLayer]]:
        """Iterate cached layers; inter-layer order is not part of the contract."""
        return iter(list(self._layers.items()))

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, layer_id: object) -> bool:
        return layer_id in self._layers


__all__ = ["CachedLayer", "FrameCache"]
