"""
Q8.8 fixed-point arithmetic.

A Sample is a signed 16-bit integer whose value is raw / 256. Samples and
weights are only ever combined through the operations below:

    saturating_add(a, b)          a + b, clamped to the Q8.8 range
    multiply_accumulate(x, w)     full-precision product (Q16.16), no rounding
    truncate(acc)                 acc >> 8 (arithmetic), clamped to Q8.8

Scalar versions take and return Python ints. The *_array versions work
elementwise on numpy arrays and return int16 (or int64 for accumulators).
"""

import numpy as np

FRAC_BITS = 8
"""Fractional bits of the Q8.8 format."""

SCALE = 1 << FRAC_BITS
"""Scale factor: raw = value * SCALE."""

Q88_MIN = -(1 << 15)
Q88_MAX = (1 << 15) - 1

ONE = SCALE
"""1.0 in Q8.8."""


def saturate(value: int) -> int:
    """Clamp an integer to the Q8.8 range."""
    if value > Q88_MAX:
        return Q88_MAX
    if value < Q88_MIN:
        return Q88_MIN
    return int(value)


def saturating_add(a: int, b: int) -> int:
    """Add two samples, clamping on overflow instead of wrapping."""
    return saturate(int(a) + int(b))


def multiply_accumulate(sample: int, weight: int, acc: int = 0) -> int:
    """
    Widen both operands, multiply, and add to an accumulator.

    The product of two Q8.8 values is Q16.16; no precision is dropped here.
    """
    return int(acc) + int(sample) * int(weight)


def truncate(acc: int) -> int:
    """Drop the extra fractional bits (floor) and saturate back to Q8.8."""
    return saturate(int(acc) >> FRAC_BITS)


def to_fixed(value: float) -> int:
    """
    Convert a float to Q8.8.

    Scales by 256, clamps to the int16 range and truncates toward zero.
    """
    scaled = float(value) * SCALE
    if scaled > Q88_MAX:
        scaled = Q88_MAX
    if scaled < Q88_MIN:
        scaled = Q88_MIN
    return int(scaled)


def to_float(value: int) -> float:
    """Convert a Q8.8 sample to float."""
    return int(value) / SCALE


# =============================================================================
# Array Operations
# =============================================================================


def saturate_array(values) -> np.ndarray:
    """Elementwise saturate, returning int16."""
    return np.clip(np.asarray(values, dtype=np.int64), Q88_MIN, Q88_MAX).astype(np.int16)


def saturating_add_array(a, b) -> np.ndarray:
    return saturate_array(np.asarray(a, dtype=np.int64) + np.asarray(b, dtype=np.int64))


def multiply_accumulate_array(samples, weights, acc=0) -> np.ndarray:
    """Elementwise full-precision products added to acc (int64)."""
    return np.asarray(acc, dtype=np.int64) + (
        np.asarray(samples, dtype=np.int64) * np.asarray(weights, dtype=np.int64)
    )


def truncate_array(acc) -> np.ndarray:
    """Elementwise arithmetic shift by FRAC_BITS, then saturate."""
    return saturate_array(np.right_shift(np.asarray(acc, dtype=np.int64), FRAC_BITS))


def to_fixed_array(values) -> np.ndarray:
    """Elementwise float to Q8.8 (clamp, truncate toward zero)."""
    scaled = np.clip(np.asarray(values, dtype=np.float64) * SCALE, Q88_MIN, Q88_MAX)
    return np.trunc(scaled).astype(np.int16)


def to_float_array(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float64) / SCALE
