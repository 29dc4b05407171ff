"""Structured messages produced by the wire decoder and frames produced by reassembly."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np

from laser_compositor.points import empty_points

KEEPALIVE_ADDRESS = "/alive"


class ProtocolError(ValueError):
    """A message is structurally invalid and must be skipped."""


@dataclass(frozen=True)
class Message:
    """One fragment of a layer frame."""

    timestamp: int
    layer_id: str
    is_last: bool
    outputs: tuple[int, ...] = ()
    payload: bytes = b""


@dataclass(frozen=True)
class KeepAlive:
    """Stream keep-alive; carries only the sender clock."""

    timestamp: int
    layer_id: str = KEEPALIVE_ADDRESS


IncomingMessage = Union[Message, KeepAlive]


@dataclass(frozen=True)
class LayerFrame:
    """A completed ``(layer_id, timestamp)`` frame ready for compositing."""

    layer_id: str
    timestamp: int
    points: np.ndarray = field(default_factory=empty_points, compare=False)
    outputs: tuple[int, ...] = ()

    @property
    def point_count(self) -> int:
        return int(self.points.shape[0])


def validate_message(message: IncomingMessage, *, num_outputs: int) -> None:
    """Raise :class:`ProtocolError` unless ``message`` is well formed.

    Output indices must lie in ``[0, num_outputs)``.
    """
    if isinstance(message, KeepAlive):
        if isinstance(message.timestamp, bool) or not isinstance(message.timestamp, int):
            raise ProtocolError(f"keep-alive timestamp must be int, got {message.timestamp!r}")
        return
    if not isinstance(message, Message):
        raise ProtocolError(f"unsupported message type {type(message).__name__}")
    if isinstance(message.timestamp, bool) or not isinstance(message.timestamp, int):
        raise ProtocolError(f"timestamp must be int, got {message.timestamp!r}")
    if not isinstance(message.layer_id, str) or not message.layer_id:
        raise ProtocolError("layer_id must be a non-empty string")
    if message.layer_id == KEEPALIVE_ADDRESS:
        raise ProtocolError(f"{KEEPALIVE_ADDRESS} is reserved for keep-alives")
    if not isinstance(message.is_last, bool):
        raise ProtocolError(f"is_last must be bool, got {message.is_last!r}")
    if not isinstance(message.payload, (bytes, bytearray, memoryview)):
        raise ProtocolError(f"payload must be bytes, got {type(message.payload).__name__}")
    for index in message.outputs:
        if isinstance(index, bool) or not isinstance(index, int):
            raise ProtocolError(f"output index must be int, got {index!r}")
        if not 0 <= index < num_outputs:
            raise ProtocolError(
                f"output index {index} out of range [0, {num_outputs}) "
                f"for layer {message.layer_id!r}"
            )


__all__ = [
    "KEEPALIVE_ADDRESS",
    "IncomingMessage",
    "KeepAlive",
    "LayerFrame",
    "Message",
    "ProtocolError",
    "validate_message",
]
