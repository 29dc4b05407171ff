"""Message types exchanged between the network source and the reassembler."""

from __future__ import annotations

from .messages import (
    KEEPALIVE_ADDRESS,
    IncomingMessage,
    KeepAlive,
    LayerFrame,
    Message,
    ProtocolError,
    validate_message,
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
