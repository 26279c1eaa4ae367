"""
Per-channel normalization: y = saturating_add(truncate(x * scale[c]), bias[c]).

The table defaults to scale = 1.0 and bias = 0 for every channel, so an
unloaded table is the identity. Writes and reads beyond the table size are
ignored (writes dropped, samples passed through unchanged).
"""

import numpy as np

from ..fixedpoint import q88
from ..stage import Stage
from ..stream import StreamItem


class NormalizationTable:
    """Per-channel (scale, bias) parameter table in Q8.8."""

    def __init__(self, channels: int):
        self.channels = channels
        self.scale = np.full(channels, q88.ONE, dtype=np.int16)
        self.bias = np.zeros(channels, dtype=np.int16)

    def write(self, channel: int, scale: int, bias: int) -> bool:
        """Store (scale, bias) for a channel. Returns False if out of range."""
        if not 0 <= channel < self.channels:
            return False
        self.scale[channel] = q88.saturate(scale)
        self.bias[channel] = q88.saturate(bias)
        return True

    def clear(self) -> None:
        self.scale.fill(q88.ONE)
        self.bias.fill(0)

    def apply(self, x: int, channel: int) -> int:
        if not 0 <= channel < self.channels:
            return int(x)
        scaled = q88.truncate(q88.multiply_accumulate(x, int(self.scale[channel])))
        return q88.saturating_add(scaled, int(self.bias[channel]))

    def apply_frame(self, frame: np.ndarray) -> np.ndarray:
        """Normalize a whole (C, H, W) frame (reference path)."""
        frame = np.asarray(frame, dtype=np.int64)
        out = frame.copy()
        n = min(frame.shape[0], self.channels)
        scale = self.scale[:n].astype(np.int64)[:, None, None]
        bias = self.bias[:n].astype(np.int64)[:, None, None]
        out[:n] = q88.saturating_add_array(q88.truncate_array(frame[:n] * scale), bias)
        return q88.saturate_array(out)


class NormalizationStage(Stage):
    """
    Streaming normalization stage.

    The channel of each sample is its plane index within the frame. One
    output per input, in order, through the stage's output FIFO.
    """

    def __init__(self, table: NormalizationTable, name: str = "norm", fifo_depth: int = 2):
        super().__init__(name, fifo_depth)
        self.table = table

    def _output_shape(self, in_shape):
        return in_shape

    def _consume(self, index: int, item: StreamItem) -> None:
        channel, _, _ = self.stream_position(index)
        self.out_fifo.push(
            StreamItem(
                data=self.table.apply(item.data, channel),
                start_of_frame=item.start_of_frame,
                end_of_row=item.end_of_row,
            )
        )
