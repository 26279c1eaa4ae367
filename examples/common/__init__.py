"""
Common utilities for streamcnn examples.

This module provides the shared command-line argument groups used by the
demonstration scripts.
"""

from .cli import (
    add_frame_args,
    add_mode_args,
    add_run_args,
    run_config_from_args,
    setup_logging,
    sink_policy,
)

__all__ = [
    "add_frame_args",
    "add_mode_args",
    "add_run_args",
    "run_config_from_args",
    "setup_logging",
    "sink_policy",
]
