from __future__ import annotations

from laser_compositor.points import decode
from laser_compositor.protocol.messages import LayerFrame
from laser_compositor.server.runtime.frame_cache import FrameCache


def test_last_write_wins_even_for_older_timestamp() -> None:
    cache = FrameCache()
    newer = LayerFrame(layer_id="/a", timestamp=200, points=decode(b"\x00" * 16), outputs=(0,))
    older = LayerFrame(layer_id="/a", timestamp=100, points=decode(b"\x00" * 8), outputs=(1,))

    cache.update(newer)
    cache.update(older)

    entry = cache.get("/a")
    assert entry is not None
    assert entry.timestamp == 100
    assert entry.outputs == (1,)
    assert entry.points.shape == (1,)
    assert len(cache) == 1


def test_update_many_counts_and_tracks_layers() -> None:
    cache = FrameCache()
    frames = [
        LayerFrame(layer_id="/a", timestamp=1),
        LayerFrame(layer_id="/b", timestamp=1),
        LayerFrame(layer_id="/a", timestamp=2),
    ]
    assert cache.update_many(frames) == 3
    assert "/a" in cache and "/b" in cache
    assert "/c" not in cache
    assert cache.get("/c") is None
    assert sorted(layer for layer, _ in cache.items()) == ["/a", "/b"]


def test_items_survives_concurrent_update() -> None:
    cache = FrameCache()
    cache.update(LayerFrame(layer_id="/a", timestamp=1))
    for layer, _entry in cache.items():
        cache.update(LayerFrame(layer_id=layer + "x", timestamp=2))
    assert len(cache) == 2
