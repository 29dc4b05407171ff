"""OSC framing for layer fragments.

Layout of a fragment message (address = layer id)::

    int64 timestamp, bool is_last, int32 output*, blob payload?

Keep-alives use the ``/alive`` address with a single int64 timestamp. A
datagram is either a message or a bundle of messages; bundles are flattened in
order.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Sequence

from pythonosc.osc_bundle_builder import IMMEDIATELY, OscBundleBuilder
from pythonosc.osc_message_builder import OscMessageBuilder
from pythonosc.osc_packet import OscPacket, ParseError

from .messages import KEEPALIVE_ADDRESS, IncomingMessage, KeepAlive, Message, ProtocolError

logger = logging.getLogger(__name__)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def message_from_osc(address: str, params: Sequence[object]) -> IncomingMessage:
    """Convert one parsed OSC message into a typed message.

    Raises :class:`ProtocolError` when the argument list does not match the
    fragment layout.
    """
    args = list(params)
    if not args or not _is_int(args[0]):
        raise ProtocolError(f"{address}: first argument must be an int64 timestamp")
    timestamp = int(args[0])

    if address == KEEPALIVE_ADDRESS:
        return KeepAlive(timestamp=timestamp)

    if len(args) < 2 or not isinstance(args[1], bool):
        raise ProtocolError(f"{address}: second argument must be the is_last flag")
    is_last = bool(args[1])

    outputs: list[int] = []
    payload = b""
    rest = args[2:]
    for pos, arg in enumerate(rest):
        if _is_int(arg):
            outputs.append(int(arg))
            continue
        if isinstance(arg, (bytes, bytearray)) and pos == len(rest) - 1:
            payload = bytes(arg)
            break
        raise ProtocolError(f"{address}: unexpected argument {arg!r} at position {pos + 2}")

    return Message(
        timestamp=timestamp,
        layer_id=address,
        is_last=is_last,
        outputs=tuple(outputs),
        payload=payload,
    )


def iter_osc_messages(datagram: bytes) -> Iterator[tuple[str, list]]:
    """Yield ``(address, params)`` for every message in a datagram.

    Raises ``pythonosc.osc_packet.ParseError`` for datagrams that are neither a
    message nor a bundle, and ``UnicodeDecodeError`` for non-UTF-8 strings.
    """
    packet = OscPacket(datagram)
    for timed in packet.messages:
        yield timed.message.address, list(timed.message.params)


def parse_datagram(datagram: bytes) -> tuple[list[IncomingMessage], list[ProtocolError]]:
    """Decode a datagram into typed messages plus per-message rejections."""
    messages: list[IncomingMessage] = []
    rejected: list[ProtocolError] = []
    try:
        parsed = list(iter_osc_messages(datagram))
    except (ParseError, ValueError) as exc:
        # ValueError covers UnicodeDecodeError from non-UTF-8 addresses and strings.
        rejected.append(ProtocolError(f"unparseable datagram ({len(datagram)} bytes): {exc}"))
        return messages, rejected
    for address, params in parsed:
        try:
            messages.append(message_from_osc(address, params))
        except ProtocolError as exc:
            rejected.append(exc)
    return messages, rejected


def _build_osc_message(message: IncomingMessage):
    builder = OscMessageBuilder(address=message.layer_id)
    builder.add_arg(int(message.timestamp), OscMessageBuilder.ARG_TYPE_INT64)
    if isinstance(message, KeepAlive):
        return builder.build()
    if message.is_last:
        builder.add_arg(True, OscMessageBuilder.ARG_TYPE_TRUE)
    else:
        builder.add_arg(False, OscMessageBuilder.ARG_TYPE_FALSE)
    for index in message.outputs:
        builder.add_arg(int(index), OscMessageBuilder.ARG_TYPE_INT)
    if message.payload:
        builder.add_arg(bytes(message.payload), OscMessageBuilder.ARG_TYPE_BLOB)
    return builder.build()


def build_datagram(message: IncomingMessage) -> bytes:
    """Encode a single message as an OSC datagram."""
    return _build_osc_message(message).dgram


def build_bundle(messages: Iterable[IncomingMessage]) -> bytes:
    """Encode several messages as one immediate OSC bundle."""
    builder = OscBundleBuilder(IMMEDIATELY)
    for message in messages:
        builder.add_content(_build_osc_message(message))
    return builder.build().dgram


__all__ = [
    "build_bundle",
    "build_datagram",
    "iter_osc_messages",
    "message_from_osc",
    "parse_datagram",
]
