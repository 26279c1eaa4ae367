"""
StreamCNN - A fixed-point streaming CNN inference pipeline.

This package provides a cycle-level model of a Q8.8 streaming accelerator
(normalization, convolution, pooling, activation) with valid/ready flow
control, plus Amaranth HDL for its per-sample stream units.
"""

from .config import (
    AcceleratorConfig,
    ActivationKind,
    LayerConfig,
    LayerEnable,
    PoolKind,
    RunConfig,
    StageId,
)
from .pipeline import Accelerator

__version__ = "0.1.0"
__all__ = [
    "Accelerator",
    "AcceleratorConfig",
    "ActivationKind",
    "LayerConfig",
    "LayerEnable",
    "PoolKind",
    "RunConfig",
    "StageId",
    "__version__",
]
