"""
Streaming Convolution Engine.

Computes a multi-filter K×K convolution over a channel-major sample stream:

    out[f, oy, ox] = act(truncate(Σ_c Σ_ky Σ_kx x[c, oy·s-p+ky, ox·s-p+kx]
                                  · w[f, c, ky, kx] + bias[f]))

The bias is added to the raw accumulator. With aligned_bias it is shifted
left by 8 first, so a Q8.8 bias lands on the integer part of the output.

Architecture:
    ┌──────────────────────────────────────────────────────────────────┐
    │                    CONVOLUTION ENGINE                            │
    │                                                                  │
    │  in ──► ┌─────────────┐    ┌──────────────┐    ┌──────────────┐  │
    │         │ Line Buffer │───►│ K×K Window   │───►│ F-wide MAC   │  │
    │         │ K rows × C  │    │ (on complete)│    │ (w[:, c])    │  │
    │         └─────────────┘    └──────────────┘    └──────┬───────┘  │
    │                                                       ▼          │
    │                            ┌────────────────────────────────┐    │
    │                            │ Accumulator Bank [F, OH, OW]   │    │
    │                            │ c == 0: overwrite, else add    │    │
    │                            └──────────────┬─────────────────┘    │
    │                                           ▼ c == C-1             │
    │                            ┌────────────────────────────────┐    │
    │                            │ +bias, truncate, activation    │    │
    │                            │ written back in place          │    │
    │                            └──────────────┬─────────────────┘    │
    │                                           ▼                      │
    │                            ┌────────────────────────────────┐    │
    │                            │ Emission cursor (f, oy, ox)    │──► out FIFO
    │                            └────────────────────────────────┘    │
    └──────────────────────────────────────────────────────────────────┘

Channels stream in one plane at a time, so each output position is visited
once per input channel. Channel 0 overwrites the partial sum and the last
channel finalizes it in place. Output leaves filter-major, then row-major,
then column-major, one item per cycle, read straight from the bank.
"""

import numpy as np

from ..activation import activate_array
from ..config import ActivationKind, LayerConfig
from ..errors import ConfigurationError
from ..fixedpoint import q88
from ..stage import Stage
from ..stream import StreamItem
from .line_buffer import LineBuffer
from .window import EmissionCursor, WindowSchedule


class ConvolutionEngine(Stage):
    """
    K×K multi-channel, multi-filter convolution stage.

    Args:
        layer: Convolution geometry (kernel, stride, padding, channels)
        max_width: Line buffer row capacity
        name: Stage name for logs
        fifo_depth: Output FIFO depth
        aligned_bias: Shift the bias left by 8 before adding it
    """

    def __init__(
        self,
        layer: LayerConfig,
        max_width: int,
        name: str = "conv",
        fifo_depth: int = 2,
        aligned_bias: bool = False,
    ):
        assert layer.is_conv, "ConvolutionEngine requires a convolution layer"
        super().__init__(name, fifo_depth)
        self.layer = layer
        self.max_width = max_width
        self.activation = layer.activation
        self.aligned_bias = aligned_bias
        self.ops_per_output = layer.window_size

        k = layer.kernel_size
        self.weights = np.zeros((layer.out_channels, layer.in_channels, k, k), dtype=np.int16)
        self.bias = np.zeros(layer.out_channels, dtype=np.int16)

        self.lines = LineBuffer(layer.in_channels, k, max_width)
        self.schedule: WindowSchedule | None = None
        self.accumulators = np.zeros((layer.out_channels, 0, 0), dtype=np.int64)
        self.finalized = np.zeros((0, 0), dtype=bool)
        self.cursor = EmissionCursor((layer.out_channels, 0, 0))

    @property
    def filters(self) -> int:
        return self.layer.out_channels

    @property
    def kernel_size(self) -> int:
        return self.layer.kernel_size

    # =========================================================================
    # Parameters
    # =========================================================================

    def write_weight(self, f: int, c: int, ky: int, kx: int, value: int) -> bool:
        """Store one weight. Returns False (and stores nothing) if out of range."""
        filters, channels, k, _ = self.weights.shape
        if not (0 <= f < filters and 0 <= c < channels and 0 <= ky < k and 0 <= kx < k):
            return False
        self.weights[f, c, ky, kx] = q88.saturate(value)
        return True

    def write_bias(self, f: int, value: int) -> bool:
        if not 0 <= f < self.filters:
            return False
        self.bias[f] = q88.saturate(value)
        return True

    def load_weights(self, weights) -> None:
        """Replace the weight table; accepts (F, C, K, K) or flat (F, C·K·K)."""
        self.weights[...] = q88.saturate_array(np.asarray(weights).reshape(self.weights.shape))

    def load_biases(self, biases) -> None:
        self.bias[...] = q88.saturate_array(np.asarray(biases).reshape(self.bias.shape))

    def flat_weights(self, f: int) -> np.ndarray:
        """Filter f as its flat table, index (c·K + ky)·K + kx."""
        return self.weights[f].reshape(-1)

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(
        self,
        in_shape: tuple[int, int, int],
        enabled: bool = True,
        activation: ActivationKind | None = None,
    ) -> tuple:
        if activation is not None:
            self.activation = ActivationKind(activation)
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
            height,
            width,
            self.layer.kernel_size,
            self.layer.stride,
            self.layer.padding,
            out_h,
            out_w,
        )
        self.accumulators = np.zeros((self.filters, out_h, out_w), dtype=np.int64)
        self.finalized = np.zeros((out_h, out_w), dtype=bool)
        self.cursor = EmissionCursor(self.out_shape)

    # =========================================================================
    # Datapath
    # =========================================================================

    def _consume(self, index: int, item: StreamItem) -> None:
        channel, row, col = self.stream_position(index)
        _, height, width = self.in_shape
        k = self.layer.kernel_size
        last_channel = channel == self.layer.in_channels - 1

        self.lines.write(channel, row, col, item.data)

        kernel = self.weights[:, channel].astype(np.int64)
        for oy, ox in self.schedule.completed_by(row, col):
            top, left = self.schedule.origin(oy, ox)
            window, _ = self.lines.window(channel, top, left, k, height, width)
            partial = np.tensordot(kernel, window, axes=([1, 2], [0, 1]))

            if channel == 0:
                self.accumulators[:, oy, ox] = partial
            else:
                self.accumulators[:, oy, ox] += partial

            if last_channel:
                self.accumulators[:, oy, ox] = self._finalize(self.accumulators[:, oy, ox])
                self.finalized[oy, ox] = True

    def _finalize(self, acc: np.ndarray) -> np.ndarray:
        bias = self.bias.astype(np.int64)
        if self.aligned_bias:
            bias = bias << q88.FRAC_BITS
        return activate_array(q88.truncate_array(acc + bias), self.activation)

    def _advance(self) -> None:
        if self.out_fifo.full or self.cursor.done:
            return
        f, oy, ox = self.cursor.position
        if self.finalized[oy, ox]:
            self.out_fifo.push(self.cursor.emit(self.accumulators[f, oy, ox]))
