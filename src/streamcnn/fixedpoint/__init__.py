"""Q8.8 fixed-point arithmetic (software model and Amaranth builders)."""

from .q88 import (
    FRAC_BITS,
    ONE,
    Q88_MAX,
    Q88_MIN,
    SCALE,
    multiply_accumulate,
    multiply_accumulate_array,
    saturate,
    saturate_array,
    saturating_add,
    saturating_add_array,
    to_fixed,
    to_fixed_array,
    to_float,
    to_float_array,
    truncate,
    truncate_array,
)

__all__ = [
    "FRAC_BITS",
    "SCALE",
    "ONE",
    "Q88_MIN",
    "Q88_MAX",
    "saturate",
    "saturating_add",
    "multiply_accumulate",
    "truncate",
    "to_fixed",
    "to_float",
    "saturate_array",
    "saturating_add_array",
    "multiply_accumulate_array",
    "truncate_array",
    "to_fixed_array",
    "to_float_array",
]
