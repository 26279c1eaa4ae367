"""
Sliding-window stages for the streaming CNN pipeline.

Both engines keep only K rows per channel in a line buffer and compute each
output window the moment its last sample arrives.

Components:
    LineBuffer: K-row ring per channel with zero-filled window reads
    WindowSchedule: input position -> completed output windows
    EmissionCursor: output stream order and framing flags
    RowRing: a few finalized output rows released in stream order
    ConvolutionEngine: K×K multi-filter convolution with bias and activation
    PoolingEngine: P×P max or average pooling
"""

from .conv_engine import ConvolutionEngine
from .line_buffer import LineBuffer
from .pool_engine import PoolingEngine, pool_reduce
from .window import EmissionCursor, RowRing, WindowSchedule

__all__ = [
    "LineBuffer",
    "WindowSchedule",
    "EmissionCursor",
    "RowRing",
    "ConvolutionEngine",
    "PoolingEngine",
    "pool_reduce",
]
