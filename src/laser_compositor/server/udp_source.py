"""UDP listener that turns OSC datagrams into typed messages."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Optional, Protocol, Sequence

from laser_compositor.protocol.messages import IncomingMessage
from laser_compositor.protocol.osc import parse_datagram
from laser_compositor.server.config import NetworkConfig
from laser_compositor.server.metrics import Metrics

logger = logging.getLogger(__name__)


class TransportClosed(RuntimeError):
    """The message source can no longer deliver messages."""


class MessageSource(Protocol):
    def recv(self) -> Sequence[IncomingMessage]: ...

    def close(self) -> None: ...


class UdpMessageSource:
    """Blocking receive with a timeout so the ingest thread can observe shutdown.

    ``recv`` returns an empty list on timeout and raises
    :class:`TransportClosed` once the socket is closed or fails.
    """

    def __init__(self, cfg: NetworkConfig, *, metrics: Optional[Metrics] = None) -> None:
        self.cfg = cfg
        self._metrics = metrics
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((cfg.host, cfg.port))
        self.sock.settimeout(cfg.recv_timeout_s)
        self._closed = threading.Event()
        logger.info("listening for OSC on %s:%d", cfg.host, self.address[1])

    @property
    def address(self) -> tuple[str, int]:
        return self.sock.getsockname()

    def recv(self) -> Sequence[IncomingMessage]:
        if self._closed.is_set():
            raise TransportClosed("source closed")
        try:
            data, _addr = self.sock.recvfrom(self.cfg.recv_buffer)
        except socket.timeout:
            return []
        except OSError as exc:
            if self._closed.is_set():
                raise TransportClosed("source closed") from exc
            raise TransportClosed(f"socket error: {exc}") from exc
        messages, rejected = parse_datagram(data)
        for exc in rejected:
            logger.warning("dropping OSC message: %s", exc)
        if rejected and self._metrics is not None:
            self._metrics.inc("messages_rejected", len(rejected))
        return messages

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self.sock.close()


__all__ = ["MessageSource", "TransportClosed", "UdpMessageSource"]
