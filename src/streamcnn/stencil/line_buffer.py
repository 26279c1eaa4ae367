"""
Line buffer for sliding-window stages.

The line buffer stores the last K rows of every input channel so that a
K×K window can be formed as soon as its last sample arrives, without ever
holding a full frame. Rows live in a ring: input row r is written to slot
r mod K, overwriting row r - K, which no pending window still needs.

Storage layout:
    ┌─────────────────────────────────────────────────┐
    │  mem[channel, slot, col]                        │
    │                                                 │
    │   slot 0 ──► row r-2   ┌───┬───┬───┬─ ─ ─┬───┐  │
    │   slot 1 ──► row r-1   │   │   │   │     │   │  │
    │   slot 2 ──► row r     │ x │ x │ x │ ... │   │  │
    │                        └───┴───┴───┴─ ─ ─┴───┘  │
    │                          0   1   2   max_width  │
    └─────────────────────────────────────────────────┘

Window reads return zero for positions outside the frame (convolution
padding, pooling windows that overhang the right or bottom edge) together
with a mask of which positions were inside.
"""

import numpy as np


class LineBuffer:
    """
    Ring of K row buffers per channel.

    Args:
        channels: Input channels
        rows: Rows retained per channel (the window height K)
        max_width: Row capacity in samples
    """

    def __init__(self, channels: int, rows: int, max_width: int):
        self.channels = channels
        self.rows = rows
        self.max_width = max_width
        self.mem = np.zeros((channels, rows, max_width), dtype=np.int16)
        self.newest_row = -1

    @property
    def capacity(self) -> int:
        """Total storage in samples."""
        return self.mem.size

    def clear(self) -> None:
        self.mem.fill(0)
        self.newest_row = -1

    def write(self, channel: int, row: int, col: int, value: int) -> None:
        """Store one sample at (row, col) of a channel."""
        self.mem[channel, row % self.rows, col] = value
        self.newest_row = row

    def window(
        self,
        channel: int,
        top: int,
        left: int,
        size: int,
        height: int,
        width: int,
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Read a size×size window whose top-left corner is (top, left).

        Args:
            channel: Channel to read
            top, left: Window origin in frame coordinates (may be negative)
            size: Window edge length (at most self.rows)
            height, width: Frame dimensions

        Returns:
            (values, mask): int64 window with out-of-frame positions zeroed,
            and a bool array marking the in-frame positions.
        """
        values = np.zeros((size, size), dtype=np.int64)
        mask = np.zeros((size, size), dtype=bool)

        row_lo, row_hi = max(top, 0), min(top + size, height)
        col_lo, col_hi = max(left, 0), min(left + size, width)
        if row_lo >= row_hi or col_lo >= col_hi:
            return values, mask

        assert row_hi - 1 - row_lo < self.rows, "window taller than the line buffer"
        assert row_lo > self.newest_row - self.rows, "window row already evicted"

        for row in range(row_lo, row_hi):
            slot = row % self.rows
            values[row - top, col_lo - left : col_hi - left] = self.mem[channel, slot, col_lo:col_hi]
            mask[row - top, col_lo - left : col_hi - left] = True
        return values, mask
