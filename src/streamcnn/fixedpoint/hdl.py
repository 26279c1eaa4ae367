"""
Amaranth expression builders for Q8.8 arithmetic.

These produce the same results as the functions in q88, as combinational
logic. Inputs may be any signed Amaranth value; results are signed(16)
after assignment.
"""

from amaranth import Const, Mux, signed

from .q88 import FRAC_BITS, Q88_MAX, Q88_MIN

SAMPLE_SHAPE = signed(16)
"""Shape of a Q8.8 sample."""

PRODUCT_SHAPE = signed(32)
"""Shape of a full-precision Q8.8 × Q8.8 product."""


def clamp(value, lo: int, hi: int):
    """Clamp `value` to [lo, hi]."""
    return Mux(value < lo, Const(lo, SAMPLE_SHAPE), Mux(value > hi, Const(hi, SAMPLE_SHAPE), value))


def saturate(value):
    """Clamp `value` to the Q8.8 range."""
    return clamp(value, Q88_MIN, Q88_MAX)


def saturating_add(a, b):
    """a + b in a wider intermediate, clamped to Q8.8."""
    return saturate(a.as_signed() + b.as_signed())


def truncate(acc):
    """Arithmetic shift right by FRAC_BITS, clamped to Q8.8."""
    return saturate(acc.as_signed() >> FRAC_BITS)
