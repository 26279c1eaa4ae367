"""
Activation functions on Q8.8 samples.

All functions are pure and stateless. Sigmoid and tanh are approximated by
256-entry lookup tables sampled from the closed-form functions:

    sigmoid: entry i samples x = -8 + i/16   (covers [-8, 8))
    tanh:    entry i samples x = -4 + i/32   (covers [-4, 4))

Inputs outside a table's domain clamp to its first or last entry. Swish is
x * sigmoid(x), computed with multiply_accumulate and truncate.
"""

from functools import lru_cache

import numpy as np

from ..config import ActivationKind
from ..fixedpoint import q88

LUT_SIZE = 256
"""Entries per activation lookup table."""

SIGMOID_SPAN = 8.0
"""Sigmoid LUT covers [-SIGMOID_SPAN, SIGMOID_SPAN)."""

TANH_SPAN = 4.0
"""Tanh LUT covers [-TANH_SPAN, TANH_SPAN)."""

# Index mapping: idx = (x + OFFSET) >> SHIFT, clamped to [0, LUT_SIZE - 1]
SIGMOID_INDEX_OFFSET = int(SIGMOID_SPAN * q88.SCALE)  # 2048
SIGMOID_INDEX_SHIFT = 4  # 16.0 span * 256 / 256 entries = 16 raw per entry
TANH_INDEX_OFFSET = int(TANH_SPAN * q88.SCALE)  # 1024
TANH_INDEX_SHIFT = 3  # 8.0 span * 256 / 256 entries = 8 raw per entry

RELU6_MAX = 6 * q88.SCALE
"""6.0 in Q8.8 (1536)."""

LEAKY_SHIFT = 7
"""Negative slope of leaky ReLU is 2^-LEAKY_SHIFT."""


def _build_lut(fn, span: float) -> np.ndarray:
    step = 2.0 * span / LUT_SIZE
    xs = -span + np.arange(LUT_SIZE, dtype=np.float64) * step
    lut = q88.saturate_array(np.round(fn(xs) * q88.SCALE))
    lut.flags.writeable = False
    return lut


@lru_cache(maxsize=None)
def sigmoid_lut() -> np.ndarray:
    """The 256-entry Q8.8 sigmoid table (built once)."""
    return _build_lut(lambda x: 1.0 / (1.0 + np.exp(-x)), SIGMOID_SPAN)


@lru_cache(maxsize=None)
def tanh_lut() -> np.ndarray:
    """The 256-entry Q8.8 tanh table (built once)."""
    return _build_lut(np.tanh, TANH_SPAN)


def _lut_index(x: int, offset: int, shift: int) -> int:
    return min(max((int(x) + offset) >> shift, 0), LUT_SIZE - 1)


def sigmoid_index(x: int) -> int:
    return _lut_index(x, SIGMOID_INDEX_OFFSET, SIGMOID_INDEX_SHIFT)


def tanh_index(x: int) -> int:
    return _lut_index(x, TANH_INDEX_OFFSET, TANH_INDEX_SHIFT)


def activate(x: int, kind: ActivationKind) -> int:
    """Apply one activation to a single Q8.8 sample."""
    x = int(x)
    kind = ActivationKind(kind)
    if kind is ActivationKind.NONE:
        return x
    if kind is ActivationKind.RELU:
        return max(0, x)
    if kind is ActivationKind.RELU6:
        return min(max(x, 0), RELU6_MAX)
    if kind is ActivationKind.LEAKY_RELU:
        return x if x >= 0 else x >> LEAKY_SHIFT
    if kind is ActivationKind.SIGMOID:
        return int(sigmoid_lut()[sigmoid_index(x)])
    if kind is ActivationKind.TANH:
        return int(tanh_lut()[tanh_index(x)])
    # SWISH
    sig = int(sigmoid_lut()[sigmoid_index(x)])
    return q88.truncate(q88.multiply_accumulate(x, sig))


def activate_array(values, kind: ActivationKind) -> np.ndarray:
    """Apply one activation elementwise; returns int16."""
    x = np.asarray(values, dtype=np.int64)
    kind = ActivationKind(kind)
    if kind is ActivationKind.NONE:
        out = x
    elif kind is ActivationKind.RELU:
        out = np.maximum(x, 0)
    elif kind is ActivationKind.RELU6:
        out = np.clip(x, 0, RELU6_MAX)
    elif kind is ActivationKind.LEAKY_RELU:
        out = np.where(x >= 0, x, np.right_shift(x, LEAKY_SHIFT))
    elif kind is ActivationKind.SIGMOID:
        idx = np.clip(np.right_shift(x + SIGMOID_INDEX_OFFSET, SIGMOID_INDEX_SHIFT), 0, 255)
        out = sigmoid_lut()[idx]
    elif kind is ActivationKind.TANH:
        idx = np.clip(np.right_shift(x + TANH_INDEX_OFFSET, TANH_INDEX_SHIFT), 0, 255)
        out = tanh_lut()[idx]
    else:
        idx = np.clip(np.right_shift(x + SIGMOID_INDEX_OFFSET, SIGMOID_INDEX_SHIFT), 0, 255)
        out = q88.truncate_array(q88.multiply_accumulate_array(x, sigmoid_lut()[idx]))
    return q88.saturate_array(out)
