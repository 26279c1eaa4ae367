"""
Parameter Loader.

Host-facing write path into the weight, bias and normalization tables.

Writes are only legal while the controller is not busy; that is the phase
barrier between loading parameters and streaming a frame. Indices outside a
table are dropped and logged, or raise ParameterIndexError when the
accelerator is built with strict_parameters.
"""

import logging
from collections.abc import Callable

import numpy as np

from ..config import StageId
from ..errors import AcceleratorBusyError, ParameterIndexError
from ..fixedpoint import q88
from ..stencil import ConvolutionEngine
from .interconnect import LayerInterconnect

logger = logging.getLogger(__name__)

CONV_STAGES = (StageId.CONV0, StageId.CONV1)


class ParameterLoader:
    """
    Parameter write interface.

    Args:
        interconnect: Owner of the parameter tables
        is_busy: Returns True while a run is in progress
        strict: Raise on out-of-range writes instead of dropping them
    """

    def __init__(
        self,
        interconnect: LayerInterconnect,
        is_busy: Callable[[], bool],
        strict: bool = False,
    ):
        self.interconnect = interconnect
        self.is_busy = is_busy
        self.strict = strict
        self.dropped = 0

    def _check_idle(self) -> None:
        if self.is_busy():
            raise AcceleratorBusyError("parameter write while inference is running")

    def _reject(self, message: str) -> bool:
        if self.strict:
            raise ParameterIndexError(message)
        self.dropped += 1
        logger.debug("dropped parameter write: %s", message)
        return False

    def _engine(self, layer) -> ConvolutionEngine | None:
        try:
            stage = StageId(layer)
        except ValueError:
            return None
        if stage not in CONV_STAGES:
            return None
        return self.interconnect.conv_engine(stage)

    # =========================================================================
    # Single Writes
    # =========================================================================

    def write_weight(self, layer, f: int, c: int, ky: int, kx: int, value: int) -> bool:
        """Write weight (f, c, ky, kx) of a convolution layer."""
        self._check_idle()
        engine = self._engine(layer)
        if engine is None:
            return self._reject(f"layer {layer} has no weights")
        if not engine.write_weight(f, c, ky, kx, value):
            return self._reject(f"{engine.name} weight index ({f}, {c}, {ky}, {kx})")
        return True

    def write_bias(self, layer, f: int, value: int) -> bool:
        self._check_idle()
        engine = self._engine(layer)
        if engine is None:
            return self._reject(f"layer {layer} has no biases")
        if not engine.write_bias(f, value):
            return self._reject(f"{engine.name} bias index {f}")
        return True

    def write_norm(self, channel: int, scale: int, bias: int) -> bool:
        self._check_idle()
        if not self.interconnect.norm_table.write(channel, scale, bias):
            return self._reject(f"normalization channel {channel}")
        return True

    # =========================================================================
    # Bulk Loads
    # =========================================================================

    def load_weights(self, layer, weights) -> int:
        """
        Load a layer's weights in flat order (f, c, ky, kx).

        Accepts (F, C, K, K), (F, C·K·K) or a flat sequence. Entries beyond
        the table are rejected; a short sequence leaves the tail unchanged.

        Returns:
            Number of entries written
        """
        self._check_idle()
        engine = self._engine(layer)
        if engine is None:
            self._reject(f"layer {layer} has no weights")
            return 0
        flat = np.asarray(weights).reshape(-1)
        table = engine.weights.reshape(-1)
        count = min(flat.size, table.size)
        if flat.size > table.size:
            self._reject(f"{engine.name}: {flat.size} weights for a table of {table.size}")
        table[:count] = q88.saturate_array(flat[:count])
        return count

    def load_biases(self, layer, biases) -> int:
        self._check_idle()
        engine = self._engine(layer)
        if engine is None:
            self._reject(f"layer {layer} has no biases")
            return 0
        flat = np.asarray(biases).reshape(-1)
        count = min(flat.size, engine.bias.size)
        if flat.size > engine.bias.size:
            self._reject(f"{engine.name}: {flat.size} biases for a table of {engine.bias.size}")
        engine.bias[:count] = q88.saturate_array(flat[:count])
        return count

    def load_normalization(self, scales, biases) -> int:
        """Load per-channel (scale, bias) pairs starting at channel 0."""
        self._check_idle()
        scales = np.asarray(scales).reshape(-1)
        biases = np.asarray(biases).reshape(-1)
        if scales.size != biases.size:
            raise ValueError("scales and biases must have the same length")
        written = 0
        for channel, (scale, bias) in enumerate(zip(scales, biases)):
            if self.write_norm(channel, int(scale), int(bias)):
                written += 1
        return written
