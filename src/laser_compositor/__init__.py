"""
laser-compositor: layered point-cloud frames for laser output

Fragments of binary point data arrive per layer over OSC, are reassembled into
complete frames, composited onto a fixed set of outputs and handed to the
laser sink on a fixed tick.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
