"""
Per-channel normalization for the streaming CNN pipeline.

Components:
    NormalizationTable: (scale, bias) parameter table and software model
    NormalizationStage: streaming stage in front of Conv0
    NormalizationUnit: Amaranth RTL stream unit with a parameter write port
"""

from .table import NormalizationStage, NormalizationTable
from .unit import NormalizationUnit

__all__ = [
    "NormalizationTable",
    "NormalizationStage",
    "NormalizationUnit",
]
