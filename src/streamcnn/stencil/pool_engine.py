"""
Streaming Pooling Engine.

Reduces each channel independently over a P×P window with stride s. The
output is in // s in each dimension; windows that overhang the right or
bottom edge use only their in-frame samples.

Reductions:
    MAX      largest in-frame sample
    AVG P=2  sum >> 2
    AVG P=3  (sum * 7) >> 6, or floor(sum / 9) with exact_average

Out-of-frame samples are ignored by MAX and count as zero for AVG.

Finished windows wait in a ring of max_rows + 1 output rows, where max_rows
is the most output rows one input row can complete. A sample that would
complete a row whose slot is still held is not accepted until the slot
drains.
"""

import numpy as np

from ..config import LayerConfig, PoolKind
from ..errors import ConfigurationError
from ..fixedpoint import q88
from ..stage import Stage
from ..stream import StreamItem
from .line_buffer import LineBuffer
from .window import RowRing, WindowSchedule

AVG3_MULTIPLIER = 7
AVG3_SHIFT = 6


def pool_reduce(values: np.ndarray, mask: np.ndarray, kind: PoolKind, exact_average: bool = False) -> int:
    """Reduce one pooling window. `values` must already be zero where `mask` is False."""
    size = values.shape[0]
    if PoolKind(kind) is PoolKind.MAX:
        return int(values[mask].max())

    total = int(values.sum())
    if size == 2:
        return q88.saturate(total >> 2)
    if exact_average:
        return q88.saturate(total // (size * size))
    return q88.saturate((total * AVG3_MULTIPLIER) >> AVG3_SHIFT)


class PoolingEngine(Stage):
    """
    P×P max/average pooling stage.

    Args:
        layer: Pooling geometry (pool size, stride, channels)
        max_width: Line buffer row capacity
        name: Stage name for logs
        fifo_depth: Output FIFO depth
        exact_average: Use floor division by 9 for 3×3 average pooling
    """

    def __init__(
        self,
        layer: LayerConfig,
        max_width: int,
        name: str = "pool",
        fifo_depth: int = 2,
        exact_average: bool = False,
    ):
        assert not layer.is_conv, "PoolingEngine requires a pooling layer"
        super().__init__(name, fifo_depth)
        self.layer = layer
        self.max_width = max_width
        self.pool_kind = layer.pool_kind
        self.exact_average = exact_average

        self.lines = LineBuffer(layer.in_channels, layer.kernel_size, max_width)
        self.schedule: WindowSchedule | None = None
        self.staging = RowRing((layer.in_channels, 0, 0), 1)

    def configure(
        self,
        in_shape: tuple[int, int, int],
        enabled: bool = True,
        pool_kind: PoolKind | None = None,
    ) -> tuple:
        if pool_kind is not None:
            self.pool_kind = PoolKind(pool_kind)
        return super().configure(in_shape, enabled)

    def _output_shape(self, in_shape):
        channels, height, width = in_shape
        if channels != self.layer.in_channels:
            raise ConfigurationError(
                f"{self.name}: expected {self.layer.in_channels} input channels, got {channels}"
            )
        if width > self.max_width:
            raise ConfigurationError(f"{self.name}: width {width} exceeds {self.max_width}")
        return self.layer.output_shape(height, width)

    def _reset_state(self) -> None:
        _, height, width = self.in_shape
        _, out_h, out_w = self.out_shape
        self.lines.clear()
        self.schedule = WindowSchedule(
            height, width, self.layer.kernel_size, self.layer.stride, 0, out_h, out_w
        )
        self.staging = RowRing(self.out_shape, self.schedule.max_rows + 1)

    def _consume(self, index: int, item: StreamItem) -> None:
        channel, row, col = self.stream_position(index)
        _, height, width = self.in_shape
        size = self.layer.kernel_size

        self.lines.write(channel, row, col, item.data)

        for oy, ox in self.schedule.completed_by(row, col):
            top, left = self.schedule.origin(oy, ox)
            values, mask = self.lines.window(channel, top, left, size, height, width)
            self.staging.put(
                channel, oy, ox, pool_reduce(values, mask, self.pool_kind, self.exact_average)
            )

    def _advance(self) -> None:
        if not self.out_fifo.full and self.staging.head_ready():
            self.out_fifo.push(self.staging.pop())

    def _has_room(self) -> bool:
        if not super()._has_room():
            return False
        if self.input_complete:
            return True
        channel, row, col = self.stream_position(self.received)
        rows = self.schedule.row_completes[row] if self.schedule.col_completes[col] else ()
        return all(self.staging.can_put(channel, oy) for oy in rows)
