"""ctypes binding for the Pangolin Beyond SDK (``BEYONDIO.dll``).

Laser point records are passed to the SDK as a contiguous array of the
20-byte :data:`~laser_compositor.points.LASER_POINT_DTYPE` layout; no
conversion happens on the send path.
"""

from __future__ import annotations

import ctypes
import logging
import os
from pathlib import Path
from typing import Any, Optional, Sequence

import numpy as np

from laser_compositor.points import LASER_POINT_DTYPE

from .interface import SinkSendError, SinkUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_NAME = "BEYONDIO.dll"
MAX_POINTS = 8192
ZONE_ARRAY_LEN = 256

_c_int = ctypes.c_int
_c_char_p = ctypes.c_char_p
_c_void_p = ctypes.c_void_p

_SIGNATURES: dict[str, tuple[list[Any], Any]] = {
    "ldbCreate": ([], _c_int),
    "ldbDestroy": ([], _c_int),
    "ldbBeyondExeStarted": ([], _c_int),
    "ldbBeyondExeReady": ([], _c_int),
    "ldbEnableLaserOutput": ([], _c_int),
    "ldbDisableLaserOutput": ([], _c_int),
    "ldbBlackout": ([], _c_int),
    "ldbGetDllVersion": ([], _c_int),
    "ldbGetBeyondVersion": ([], _c_int),
    "ldbGetProjectorCount": ([], _c_int),
    "ldbGetZoneCount": ([], _c_int),
    "ldbCreateZoneImage": ([_c_int, _c_char_p], _c_int),
    "ldbCreateProjectorImage": ([_c_int, _c_char_p], _c_int),
    "ldbDeleteZoneImage": ([_c_char_p], _c_int),
    "ldbDeleteProjectorImage": ([_c_char_p], _c_int),
    "ldbSendFrameToImage": ([_c_char_p, _c_int, _c_void_p, _c_void_p, _c_int], _c_int),
}


class _LaserPoint(ctypes.Structure):
    """C view of one SDK point; must stay byte-compatible with LASER_POINT_DTYPE."""

    _fields_ = [
        ("x", ctypes.c_float),
        ("y", ctypes.c_float),
        ("z", ctypes.c_float),
        ("color", ctypes.c_int32),
        ("rep_count", ctypes.c_uint8),
        ("focus", ctypes.c_uint8),
        ("status", ctypes.c_uint8),
        ("zero", ctypes.c_uint8),
    ]


def build_zone_array(zone_indices: Sequence[int]) -> ctypes.Array:
    """Zero-terminated zone list in SDK form (each entry is ``1 + index``)."""
    if len(zone_indices) >= ZONE_ARRAY_LEN - 1:
        raise ValueError(f"too many zones: {len(zone_indices)}")
    zones = (ctypes.c_uint8 * ZONE_ARRAY_LEN)()
    for i, zone in enumerate(zone_indices):
        value = 1 + int(zone)
        if not 1 <= value <= 255:
            raise ValueError(f"zone index {zone} out of range")
        zones[i] = value
    zones[len(zone_indices)] = 0
    return zones


def load_library(path: Optional[str] = None) -> Any:
    """Open the SDK library from ``path``, ``$LASER_COMPOSITOR_BEYOND_DLL`` or the cwd."""
    candidate = path or os.environ.get("LASER_COMPOSITOR_BEYOND_DLL") or DEFAULT_LIBRARY_NAME
    resolved = Path(candidate)
    try:
        return ctypes.CDLL(str(resolved))
    except OSError as exc:
        raise SinkUnavailableError(f"cannot load Beyond SDK from {resolved}: {exc}") from exc


class BeyondSink:
    """Beyond SDK session. ``close()`` disables output, drops the registered images and destroys the session."""

    def __init__(self, library: Any = None, *, path: Optional[str] = None) -> None:
        self._lib = library if library is not None else load_library(path)
        self._fns: dict[str, Any] = {}
        for name, (argtypes, restype) in _SIGNATURES.items():
            try:
                fn = getattr(self._lib, name)
            except AttributeError as exc:
                raise SinkUnavailableError(f"Beyond SDK is missing {name}") from exc
            fn.argtypes = argtypes
            fn.restype = restype
            self._fns[name] = fn
        rc = self._call("ldbCreate")
        if rc != 1:
            raise SinkUnavailableError(f"ldbCreate failed (rc={rc})")
        self._images: list[str] = []
        self._closed = False

    def _call(self, name: str, *args: Any) -> int:
        return int(self._fns[name](*args))

    # ---- Status ------------------------------------------------------------
    def exe_started(self) -> bool:
        return self._call("ldbBeyondExeStarted") == 1

    def is_ready(self) -> bool:
        return self._call("ldbBeyondExeReady") == 1

    def dll_version(self) -> int:
        return self._call("ldbGetDllVersion")

    def beyond_version(self) -> int:
        return self._call("ldbGetBeyondVersion")

    def projector_count(self) -> int:
        return self._call("ldbGetProjectorCount")

    def zone_count(self) -> int:
        return self._call("ldbGetZoneCount")

    def describe(self) -> dict[str, object]:
        return {
            "exe_started": self.exe_started(),
            "exe_ready": self.is_ready(),
            "beyond_version": self.beyond_version(),
            "dll_version": self.dll_version(),
            "projector_count": self.projector_count(),
            "zone_count": self.zone_count(),
        }

    # ---- Output control ----------------------------------------------------
    def enable_output(self) -> bool:
        return self._call("ldbEnableLaserOutput") == 1

    def disable_output(self) -> bool:
        return self._call("ldbDisableLaserOutput") == 1

    def blackout(self) -> bool:
        return self._call("ldbBlackout") == 1

    def create_zone_image(self, zone_index: int, name: str) -> int:
        return self._call("ldbCreateZoneImage", int(zone_index), name.encode("ascii"))

    def delete_zone_image(self, name: str) -> int:
        return self._call("ldbDeleteZoneImage", name.encode("ascii"))

    def create_projector_image(self, projector_index: int, name: str) -> int:
        return self._call("ldbCreateProjectorImage", int(projector_index), name.encode("ascii"))

    def delete_projector_image(self, name: str) -> int:
        return self._call("ldbDeleteProjectorImage", name.encode("ascii"))

    def register_outputs(self, addresses: Sequence[str]) -> None:
        for index, address in enumerate(addresses):
            rc = self.create_zone_image(index, address)
            logger.debug("create_zone_image(%d, %s) -> %d", index, address, rc)
            self._images.append(address)

    def unregister_outputs(self) -> None:
        """Delete every zone image created by :meth:`register_outputs`."""
        while self._images:
            address = self._images.pop()
            rc = self.delete_zone_image(address)
            logger.debug("delete_zone_image(%s) -> %d", address, rc)

    # ---- Frames ------------------------------------------------------------
    def send_frame(
        self,
        address: str,
        points: np.ndarray,
        zone_indices: Sequence[int],
        scan_rate: int,
    ) -> None:
        """Send one image. ``scan_rate`` > 0 is a percentage, < 0 an absolute rate."""
        count = int(points.shape[0])
        if count > MAX_POINTS:
            raise SinkSendError(f"{address}: {count} points exceeds SDK limit {MAX_POINTS}")
        buf = np.ascontiguousarray(points, dtype=LASER_POINT_DTYPE)
        zones = build_zone_array(zone_indices)
        rc = self._call(
            "ldbSendFrameToImage",
            address.encode("ascii"),
            count,
            buf.ctypes.data_as(_c_void_p),
            ctypes.cast(zones, _c_void_p),
            int(scan_rate),
        )
        if rc < 0:
            raise SinkSendError(f"{address}: ldbSendFrameToImage returned {rc}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.disable_output()
        self.unregister_outputs()
        self._call("ldbDestroy")


__all__ = [
    "BeyondSink",
    "DEFAULT_LIBRARY_NAME",
    "MAX_POINTS",
    "build_zone_array",
    "load_library",
]
