"""Laser sink adapters."""

from .interface import LaserSink, RecordingSink, SinkSendError, SinkUnavailableError

__all__ = [
    "LaserSink",
    "RecordingSink",
    "SinkSendError",
    "SinkUnavailableError",
]
