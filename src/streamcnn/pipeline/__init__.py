"""
Pipeline orchestration: stage chaining, sequencing and the host driver.

Components:
    LayerInterconnect: Norm → Conv0 → Pool0 → Conv1 → Pool1 with enables and a tap
    PipelineController: IDLE → LOAD_PARAMETERS → RUNNING → DRAINING → DONE
    ParameterLoader: weight, bias and normalization writes
    Accelerator: configure / load / infer / classify / benchmark host API
"""

from .accelerator import Accelerator, BenchmarkReport
from .controller import Command, ControllerState, PipelineController, Status
from .interconnect import LayerInterconnect, StepResult
from .loader import ParameterLoader

__all__ = [
    "Accelerator",
    "BenchmarkReport",
    "Command",
    "ControllerState",
    "LayerInterconnect",
    "ParameterLoader",
    "PipelineController",
    "Status",
    "StepResult",
]
