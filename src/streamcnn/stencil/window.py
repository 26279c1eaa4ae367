"""
Window completion schedule and in-order output staging.

WindowSchedule answers, for each incoming sample position, which output
windows that sample completes: a window is complete when its last in-frame
row and column have arrived. Everything else the sample does is fill the
line buffer.

EmissionCursor walks an output frame in (channel, row, col) order and
attaches the framing flags. RowRing holds finalized results until the
cursor reaches them: with stride smaller than the window, two output rows
can complete on the same input row, so a few rows are staged and released
strictly in stream order.
"""

import numpy as np

from ..stream import StreamItem


def _completion_map(in_dim: int, out_dim: int, size: int, stride: int, padding: int):
    """For each input coordinate, the output coordinates whose window ends there."""
    completes = [[] for _ in range(in_dim)]
    for out in range(out_dim):
        first = out * stride - padding
        last = min(first + size - 1, in_dim - 1)
        if last >= max(first, 0):
            completes[last].append(out)
    return completes


class WindowSchedule:
    """
    Maps input (row, col) to the output windows completed by that sample.

    Args:
        height, width: Input frame dimensions
        size: Window edge length (kernel or pool size)
        stride: Window stride
        padding: Zero padding on each side (0 for pooling)
        out_height, out_width: Output dimensions
    """

    def __init__(
        self,
        height: int,
        width: int,
        size: int,
        stride: int,
        padding: int,
        out_height: int,
        out_width: int,
    ):
        self.size = size
        self.stride = stride
        self.padding = padding
        self.out_height = out_height
        self.out_width = out_width
        self.row_completes = _completion_map(height, out_height, size, stride, padding)
        self.col_completes = _completion_map(width, out_width, size, stride, padding)

    def origin(self, oy: int, ox: int) -> tuple[int, int]:
        """Top-left input coordinate of output window (oy, ox)."""
        return oy * self.stride - self.padding, ox * self.stride - self.padding

    def completed_by(self, row: int, col: int) -> list[tuple[int, int]]:
        return [(oy, ox) for oy in self.row_completes[row] for ox in self.col_completes[col]]

    @property
    def max_rows(self) -> int:
        """Most output rows any single input row completes."""
        return max((len(r) for r in self.row_completes), default=0)

    @property
    def max_burst(self) -> int:
        """Most windows any single sample can complete."""
        cols = max((len(c) for c in self.col_completes), default=0)
        return self.max_rows * cols


class EmissionCursor:
    """Walks a (channels, height, width) output frame in stream order."""

    def __init__(self, shape: tuple[int, int, int]):
        self.shape = shape
        self.total = shape[0] * shape[1] * shape[2]
        self.index = 0

    @property
    def done(self) -> bool:
        return self.index >= self.total

    @property
    def position(self) -> tuple[int, int, int]:
        """(channel, row, col) under the cursor."""
        _, height, width = self.shape
        channel, rem = divmod(self.index, height * width)
        row, col = divmod(rem, width)
        return channel, row, col

    @property
    def row(self) -> int:
        """Output row under the cursor, counted across channels."""
        return self.index // self.shape[2]

    def emit(self, data: int) -> StreamItem:
        """Wrap `data` with the framing flags of the cursor position and advance."""
        width = self.shape[2]
        index = self.index
        self.index += 1
        return StreamItem(
            data=int(data),
            start_of_frame=(index == 0),
            end_of_row=(index % width == width - 1),
        )


class RowRing:
    """
    Finalized output rows waiting for the emission cursor.

    Holds `depth` rows of results. Output row g (channel * height + row)
    lives in slot g % depth, so row g may be written only after row
    g - depth has been emitted. Storage depends on the output width and
    depth, never on the frame height or channel count.

    Args:
        shape: Output frame (channels, height, width)
        depth: Rows held at once
    """

    def __init__(self, shape: tuple[int, int, int], depth: int):
        self.depth = depth
        self.height = shape[1]
        self.width = shape[2]
        self.values = np.zeros((depth, self.width), dtype=np.int16)
        self.ready = np.zeros((depth, self.width), dtype=bool)
        self.cursor = EmissionCursor(shape)

    def row_index(self, channel: int, oy: int) -> int:
        return channel * self.height + oy

    def can_put(self, channel: int, oy: int) -> bool:
        """True if row (channel, oy) has a free slot."""
        return self.row_index(channel, oy) < self.cursor.row + self.depth

    def put(self, channel: int, oy: int, ox: int, value: int) -> None:
        assert self.can_put(channel, oy), f"row ({channel}, {oy}) overruns the ring"
        slot = self.row_index(channel, oy) % self.depth
        self.values[slot, ox] = value
        self.ready[slot, ox] = True

    @property
    def done(self) -> bool:
        return self.cursor.done

    def head_ready(self) -> bool:
        if self.cursor.done:
            return False
        return bool(self.ready[self.cursor.row % self.depth, self.cursor.index % self.width])

    def pop(self) -> StreamItem:
        """Release the item under the cursor with its framing flags."""
        slot = self.cursor.row % self.depth
        col = self.cursor.index % self.width
        self.ready[slot, col] = False
        return self.cursor.emit(self.values[slot, col])
