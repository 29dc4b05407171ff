"""Single-owner runtime pieces: reassembly on the ingest thread, cache/compositing/dispatch on the tick thread."""

from .compositor import composite_outputs
from .dispatcher import DispatchState, Dispatcher, TickReport
from .frame_cache import CachedLayer, FrameCache
from .frame_handoff import FrameHandoff
from .reassembler import LayerReassembler

__all__ = [
    "CachedLayer",
    "DispatchState",
    "Dispatcher",
    "FrameCache",
    "FrameHandoff",
    "LayerReassembler",
    "TickReport",
    "composite_outputs",
]
