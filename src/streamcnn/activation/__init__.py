"""
Activation functions for the streaming CNN pipeline.

Components:
    activate / activate_array: software model (scalar and numpy)
    sigmoid_lut / tanh_lut: the 256-entry Q8.8 lookup tables
    ActivationUnit: Amaranth RTL stream unit with a run-time mode select
"""

from ..config import ActivationKind
from .functions import (
    LUT_SIZE,
    RELU6_MAX,
    activate,
    activate_array,
    sigmoid_index,
    sigmoid_lut,
    tanh_index,
    tanh_lut,
)
from .unit import ActivationUnit

__all__ = [
    "ActivationKind",
    "ActivationUnit",
    "LUT_SIZE",
    "RELU6_MAX",
    "activate",
    "activate_array",
    "sigmoid_index",
    "sigmoid_lut",
    "tanh_index",
    "tanh_lut",
]
