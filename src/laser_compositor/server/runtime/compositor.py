"""Per-tick compositing of cached layers onto output buffers."""

from __future__ import annotations

import numpy as np

from laser_compositor.points import empty_points
from laser_compositor.server.runtime.frame_cache import FrameCache


def composite_outputs(cache: FrameCache, num_outputs: int) -> list[np.ndarray]:
    """Rebuild every output buffer from the cache.

    Output ``i`` is the concatenation of the points of every cached layer whose
    target list contains ``i``, in cache iteration order. No deduplication:
    a layer listing an output twice contributes its points twice. Cached
    arrays are never mutated.
    """
    buffers: list[np.ndarray] = []
    for index in range(int(num_outputs)):
        parts = [
            entry.points
            for _layer_id, entry in cache.items()
            for target in entry.outputs
            if target == index and entry.points.shape[0] > 0
        ]
        if not parts:
            buffers.append(empty_points())
        elif len(parts) == 1:
            buffers.append(parts[0])
        else:
            merged = np.concatenate(parts)
            merged.flags.writeable = False
            buffers.append(merged)
    return buffers


__all__ = ["composite_outputs"]
