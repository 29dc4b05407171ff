from __future__ import annotations

import ctypes
import struct
from types import SimpleNamespace

import pytest

from laser_compositor.points import LASER_POINT_DTYPE, decode
from laser_compositor.server.sink import beyond
from laser_compositor.server.sink.beyond import BeyondSink, build_zone_array, load_library
from laser_compositor.server.sink.interface import LaserSink, SinkSendError, SinkUnavailableError


def _fake_library(*, create_rc: int = 1, send_rc: int = 0, ready: int = 1):
    calls: list[tuple] = []
    received: dict[str, object] = {}

    def const(name, rc):
        def fn(*args):
            calls.append((name, args))
            return rc

        return fn

    def send(name, count, points_ptr, zones_ptr, scan_rate):
        calls.append(("ldbSendFrameToImage", (name, count, scan_rate)))
        pts = (beyond._LaserPoint * count).from_address(points_ptr.value) if count else []
        received["xs"] = [p.x for p in pts]
        received["zones"] = list((ctypes.c_uint8 * 4).from_address(zones_ptr.value))
        return send_rc

    lib = SimpleNamespace(
        ldbCreate=const("ldbCreate", create_rc),
        ldbDestroy=const("ldbDestroy", 1),
        ldbBeyondExeStarted=const("ldbBeyondExeStarted", 1),
        ldbBeyondExeReady=const("ldbBeyondExeReady", ready),
        ldbEnableLaserOutput=const("ldbEnableLaserOutput", 1),
        ldbDisableLaserOutput=const("ldbDisableLaserOutput", 1),
        ldbBlackout=const("ldbBlackout", 1),
        ldbGetDllVersion=const("ldbGetDllVersion", 7),
        ldbGetBeyondVersion=const("ldbGetBeyondVersion", 500),
        ldbGetProjectorCount=const("ldbGetProjectorCount", 2),
        ldbGetZoneCount=const("ldbGetZoneCount", 6),
        ldbCreateZoneImage=const("ldbCreateZoneImage", 1),
        ldbCreateProjectorImage=const("ldbCreateProjectorImage", 1),
        ldbDeleteZoneImage=const("ldbDeleteZoneImage", 1),
        ldbDeleteProjectorImage=const("ldbDeleteProjectorImage", 1),
        ldbSendFrameToImage=send,
    )
    return lib, calls, received


def _names(calls) -> list[str]:
    return [name for name, _ in calls]


def test_zone_array_is_offset_and_terminated() -> None:
    zones = build_zone_array((1, 3))
    assert len(zones) == 256
    assert list(zones[:4]) == [2, 4, 0, 0]


@pytest.mark.parametrize("zones", [(255,), (-2,), tuple(range(255))])
def test_zone_array_rejects_invalid(zones) -> None:
    with pytest.raises(ValueError):
        build_zone_array(zones)


def test_session_lifecycle_and_status() -> None:
    lib, calls, _ = _fake_library()
    sink = BeyondSink(lib)

    assert isinstance(sink, LaserSink)
    assert sink.is_ready() is True
    info = sink.describe()
    assert info["dll_version"] == 7
    assert info["projector_count"] == 2

    sink.register_outputs(["/output1", "/output2"])
    assert ("ldbCreateZoneImage", (0, b"/output1")) in calls
    assert ("ldbCreateZoneImage", (1, b"/output2")) in calls

    sink.close()
    sink.close()
    assert _names(calls).count("ldbDestroy") == 1
    assert calls[-4:] == [
        ("ldbDisableLaserOutput", ()),
        ("ldbDeleteZoneImage", (b"/output2",)),
        ("ldbDeleteZoneImage", (b"/output1",)),
        ("ldbDestroy", ()),
    ]


def test_send_frame_passes_native_buffer() -> None:
    lib, calls, received = _fake_library()
    sink = BeyondSink(lib)
    points = decode(struct.pack("<hhbbbb", -32768, 0, 0, 0, 0, 0) + struct.pack("<hhbbbb", 32767, 0, 0, 0, 0, 0))

    sink.send_frame("/output1", points, (1,), 100)

    assert ("ldbSendFrameToImage", (b"/output1", 2, 100)) in calls
    assert received["xs"] == [-32000.0, 32000.0]
    assert received["zones"] == [2, 0, 0, 0]


def test_send_frame_errors() -> None:
    lib, _calls, _ = _fake_library(send_rc=-1)
    sink = BeyondSink(lib)
    with pytest.raises(SinkSendError):
        sink.send_frame("/output1", decode(b""), (1,), 100)

    too_many = decode(b"\x00" * 8 * (beyond.MAX_POINTS + 1))
    with pytest.raises(SinkSendError):
        sink.send_frame("/output1", too_many, (1,), 100)


def test_create_failure_is_unavailable() -> None:
    lib, _calls, _ = _fake_library(create_rc=0)
    with pytest.raises(SinkUnavailableError):
        BeyondSink(lib)


def test_missing_symbol_is_unavailable() -> None:
    lib, _calls, _ = _fake_library()
    del lib.ldbBlackout
    with pytest.raises(SinkUnavailableError, match="ldbBlackout"):
        BeyondSink(lib)


def test_load_library_missing_file(tmp_path) -> None:
    with pytest.raises(SinkUnavailableError):
        load_library(str(tmp_path / "missing" / "BEYONDIO.dll"))


def test_point_struct_matches_numpy_layout() -> None:
    assert ctypes.sizeof(beyond._LaserPoint) == LASER_POINT_DTYPE.itemsize == 20
    for name, _ctype in beyond._LaserPoint._fields_:
        assert getattr(beyond._LaserPoint, name).offset == LASER_POINT_DTYPE.fields[name][1]


def test_projector_images_bind_to_sdk() -> None:
    lib, calls, _ = _fake_library()
    sink = BeyondSink(lib)

    assert sink.create_projector_image(0, "/preview") == 1
    assert sink.delete_projector_image("/preview") == 1
    assert calls[-2:] == [
        ("ldbCreateProjectorImage", (0, b"/preview")),
        ("ldbDeleteProjectorImage", (b"/preview",)),
    ]


def test_unregister_outputs_deletes_each_image_once() -> None:
    lib, calls, _ = _fake_library()
    sink = BeyondSink(lib)
    sink.register_outputs(["/output1"])

    sink.unregister_outputs()
    sink.unregister_outputs()

    assert _names(calls).count("ldbDeleteZoneImage") == 1
