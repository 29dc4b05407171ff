"""Point record codec.

Wire records are 8 bytes: ``[xa, xb, ya, yb, r, g, b, a]``. X and Y are
little-endian signed 16-bit values, colour channels are signed bytes offset by
128 and the trailing byte is unused. Decoded points use the laser sink's native
20-byte layout so a composited buffer can be handed over without conversion:

- ``x``, ``y``, ``z``: float32 in device space, -32000..+32000 (Y inverted)
- ``color``: packed ``0x00BBGGRR``
- ``rep_count``, ``focus``, ``status``, ``zero``: unsigned bytes, always 0
"""

from __future__ import annotations

from typing import NamedTuple

import numpy as np

RECORD_SIZE = 8

RECORD_DTYPE = np.dtype(
    [
        ("x", "<i2"),
        ("y", "<i2"),
        ("r", "i1"),
        ("g", "i1"),
        ("b", "i1"),
        ("a", "i1"),
    ]
)

LASER_POINT_DTYPE = np.dtype(
    [
        ("x", "<f4"),
        ("y", "<f4"),
        ("z", "<f4"),
        ("color", "<i4"),
        ("rep_count", "u1"),
        ("focus", "u1"),
        ("status", "u1"),
        ("zero", "u1"),
    ]
)

DEVICE_SPAN = 64_000.0
DEVICE_HALF = 32_000.0


class DecodeError(ValueError):
    """Payload cannot be split into whole point records."""


class Point(NamedTuple):
    """A single decoded point, for inspection outside the hot path."""

    x: float
    y: float
    z: float
    color: int
    repeat_count: int = 0
    focus: int = 0
    status: int = 0
    reserved: int = 0

    @classmethod
    def from_record(cls, record: np.void) -> "Point":
        return cls(
            float(record["x"]),
            float(record["y"]),
            float(record["z"]),
            int(record["color"]),
            int(record["rep_count"]),
            int(record["focus"]),
            int(record["status"]),
            int(record["zero"]),
        )

    @property
    def rgb(self) -> tuple[int, int, int]:
        c = self.color
        return (c & 0xFF, (c >> 8) & 0xFF, (c >> 16) & 0xFF)


def empty_points() -> np.ndarray:
    """Return a read-only zero-length point array."""
    arr = np.zeros(0, dtype=LASER_POINT_DTYPE)
    arr.flags.writeable = False
    return arr


def pack_color(r: np.ndarray, g: np.ndarray, b: np.ndarray) -> np.ndarray:
    return (
        r.astype(np.int32)
        | (g.astype(np.int32) << 8)
        | (b.astype(np.int32) << 16)
    )


def _channel_byte(raw: np.ndarray) -> np.ndarray:
    return np.clip(raw.astype(np.int16) + 128, 0, 255).astype(np.uint8)


def decode(payload: bytes) -> np.ndarray:
    """Decode a blob of 8-byte wire records into a read-only point array.

    Raises :class:`DecodeError` when ``len(payload)`` is not a multiple of
    :data:`RECORD_SIZE`. An empty payload decodes to an empty array.
    """
    size = len(payload)
    if size % RECORD_SIZE != 0:
        raise DecodeError(
            f"payload length {size} is not a multiple of {RECORD_SIZE}"
        )
    if size == 0:
        return empty_points()
    records = np.frombuffer(payload, dtype=RECORD_DTYPE)

    x_norm = (records["x"].astype(np.float32) + np.float32(32768.0)) / np.float32(65535.0)
    y_norm = (records["y"].astype(np.float32) + np.float32(32768.0)) / np.float32(65535.0)

    points = np.zeros(records.shape[0], dtype=LASER_POINT_DTYPE)
    points["x"] = x_norm * np.float32(DEVICE_SPAN) - np.float32(DEVICE_HALF)
    points["y"] = y_norm * np.float32(-DEVICE_SPAN) + np.float32(DEVICE_HALF)
    # No z channel on the wire; normalised z is 0.
    points["z"] = -DEVICE_HALF
    points["color"] = pack_color(
        _channel_byte(records["r"]),
        _channel_byte(records["g"]),
        _channel_byte(records["b"]),
    )
    points.flags.writeable = False
    return points


def decode_chunks(chunks: list[bytes]) -> np.ndarray:
    """Decode fragments in arrival order into one point array.

    Each chunk must hold whole records on its own; a record split across two
    fragments is a decode failure.
    """
    for chunk in chunks:
        if len(chunk) % RECORD_SIZE != 0:
            raise DecodeError(
                f"fragment length {len(chunk)} is not a multiple of {RECORD_SIZE}"
            )
    return decode(b"".join(chunks))


def normalized_xy(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Map device-space points back to normalised ``[0, 1]`` coordinates."""
    x_norm = (points["x"].astype(np.float64) + DEVICE_HALF) / DEVICE_SPAN
    y_norm = (DEVICE_HALF - points["y"].astype(np.float64)) / DEVICE_SPAN
    return x_norm, y_norm


def encode(points: np.ndarray) -> bytes:
    """Inverse of :func:`decode`: device-space points back to wire records."""
    x_norm, y_norm = normalized_xy(points)
    records = np.zeros(points.shape[0], dtype=RECORD_DTYPE)
    records["x"] = np.clip(np.rint(x_norm * 65535.0 - 32768.0), -32768, 32767)
    records["y"] = np.clip(np.rint(y_norm * 65535.0 - 32768.0), -32768, 32767)
    color = points["color"].astype(np.int32)
    records["r"] = ((color & 0xFF) - 128).astype(np.int8)
    records["g"] = (((color >> 8) & 0xFF) - 128).astype(np.int8)
    records["b"] = (((color >> 16) & 0xFF) - 128).astype(np.int8)
    return records.tobytes()


def encode_normalized(
    x_norm: np.ndarray,
    y_norm: np.ndarray,
    rgb: np.ndarray,
) -> bytes:
    """Build wire records from normalised coordinates and ``(N, 3)`` uint8 colours."""
    x_norm = np.asarray(x_norm, dtype=np.float64)
    y_norm = np.asarray(y_norm, dtype=np.float64)
    rgb = np.asarray(rgb, dtype=np.int16).reshape(-1, 3)
    records = np.zeros(x_norm.shape[0], dtype=RECORD_DTYPE)
    records["x"] = np.clip(np.rint(x_norm * 65535.0 - 32768.0), -32768, 32767)
    records["y"] = np.clip(np.rint(y_norm * 65535.0 - 32768.0), -32768, 32767)
    records["r"] = (rgb[:, 0] - 128).astype(np.int8)
    records["g"] = (rgb[:, 1] - 128).astype(np.int8)
    records["b"] = (rgb[:, 2] - 128).astype(np.int8)
    return records.tobytes()


__all__ = [
    "DEVICE_HALF",
    "DEVICE_SPAN",
    "DecodeError",
    "LASER_POINT_DTYPE",
    "Point",
    "RECORD_DTYPE",
    "RECORD_SIZE",
    "decode",
    "decode_chunks",
    "empty_points",
    "encode",
    "encode_normalized",
    "normalized_xy",
    "pack_color",
]
