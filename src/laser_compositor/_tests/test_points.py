from __future__ import annotations

import struct

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from laser_compositor.points import (
    LASER_POINT_DTYPE,
    RECORD_DTYPE,
    RECORD_SIZE,
    DecodeError,
    Point,
    decode,
    decode_chunks,
    empty_points,
    encode,
    encode_normalized,
    normalized_xy,
)


def _record(x: int, y: int, r: int = 0, g: int = 0, b: int = 0, a: int = 0) -> bytes:
    return struct.pack("<hhbbbb", x, y, r, g, b, a)


def test_decode_extremes_map_to_device_corners() -> None:
    payload = _record(-32768, -32768, -128, -128, -128) + _record(32767, 32767, 127, 127, 127)

    points = decode(payload)

    assert points.dtype == LASER_POINT_DTYPE
    assert points.shape == (2,)
    assert_allclose(points["x"], [-32000.0, 32000.0])
    # Y is inverted on the device.
    assert_allclose(points["y"], [32000.0, -32000.0])
    assert_array_equal(points["z"], [-32000.0, -32000.0])
    assert Point.from_record(points[0]).rgb == (0, 0, 0)
    assert Point.from_record(points[1]).rgb == (255, 255, 255)


def test_decode_packs_colour_as_bgr_word() -> None:
    # r=255, g=0, b=128
    points = decode(_record(0, 0, 127, -128, 0, 99))

    assert int(points["color"][0]) == 0x0080_00FF
    p = Point.from_record(points[0])
    assert p.rgb == (255, 0, 128)
    assert (p.repeat_count, p.focus, p.status, p.reserved) == (0, 0, 0, 0)


def test_decode_centre_is_near_origin() -> None:
    points = decode(_record(0, 0))
    assert abs(float(points["x"][0])) < 1.0
    assert abs(float(points["y"][0])) < 1.0


def test_decode_empty_payload() -> None:
    points = decode(b"")
    assert points.shape == (0,)
    assert points.dtype == LASER_POINT_DTYPE


@pytest.mark.parametrize("size", [1, 7, 9, 15])
def test_decode_rejects_partial_record(size: int) -> None:
    with pytest.raises(DecodeError):
        decode(b"\x00" * size)


def test_decoded_points_are_read_only() -> None:
    points = decode(_record(1, 2))
    with pytest.raises(ValueError):
        points["x"][0] = 0.0
    assert empty_points().flags.writeable is False


def test_decode_chunks_concatenates_in_order() -> None:
    first = _record(-32768, 0)
    second = _record(0, 0) + _record(32767, 0)

    points = decode_chunks([first, second])

    assert points.shape == (3,)
    assert_allclose(points["x"][[0, 2]], [-32000.0, 32000.0])


def test_decode_chunks_rejects_record_split_across_fragments() -> None:
    record = _record(5, 5)
    with pytest.raises(DecodeError):
        decode_chunks([record[:4], record[4:]])


def test_encode_inverts_decode() -> None:
    payload = _record(-32768, 1234, 10, -20, 30) + _record(32767, -4321, -128, 127, 0)

    assert encode(decode(payload)) == payload


def test_encode_normalized_and_back() -> None:
    x_norm = np.array([0.0, 0.25, 1.0])
    y_norm = np.array([1.0, 0.5, 0.0])
    rgb = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255]], dtype=np.uint8)

    points = decode(encode_normalized(x_norm, y_norm, rgb))
    x_back, y_back = normalized_xy(points)

    assert_allclose(x_back, x_norm, atol=1e-4)
    assert_allclose(y_back, y_norm, atol=1e-4)
    assert [Point.from_record(p).rgb for p in points] == [(255, 0, 0), (0, 255, 0), (0, 0, 255)]


def test_record_layouts_have_wire_and_sink_sizes() -> None:
    assert RECORD_DTYPE.itemsize == RECORD_SIZE == 8
    assert LASER_POINT_DTYPE.itemsize == 20
    assert [LASER_POINT_DTYPE.fields[name][1] for name in ("x", "y", "z", "color", "rep_count")] == [0, 4, 8, 12, 16]
