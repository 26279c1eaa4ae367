"""
Common CLI argument definitions for inference examples.

This module provides shared argument groups that can be added to argparse
parsers in example scripts, so every demo exposes the same frame and run
configuration options.

Usage:
    from common.cli import add_frame_args, add_run_args, run_config_from_args

    parser = argparse.ArgumentParser()
    add_frame_args(parser)  # Adds --width, --height, --pattern, --seed
    add_run_args(parser)    # Adds --activation, --pool, --tap, --classes, ...
    args = parser.parse_args()

    run = run_config_from_args(args)
"""

import logging
from argparse import ArgumentParser, Namespace

from streamcnn.config import ActivationKind, LayerEnable, PoolKind, RunConfig, StageId
from streamcnn.patterns import Pattern


def add_frame_args(parser: ArgumentParser, *, default_size: int = 32) -> None:
    """
    Add input frame arguments to a parser.

    Adds these arguments:
        --width N       Input width
        --height N      Input height
        --pattern NAME  Test pattern
        --seed N        Random seed for parameters and noise frames
    """
    group = parser.add_argument_group("Frame")
    group.add_argument(
        "--width", type=int, default=default_size, help=f"Input width (default: {default_size})"
    )
    group.add_argument(
        "--height", type=int, default=default_size, help=f"Input height (default: {default_size})"
    )
    group.add_argument(
        "--pattern",
        choices=[p.name.lower() for p in Pattern],
        default="gradient",
        help="Test pattern (default: gradient)",
    )
    group.add_argument("--seed", type=int, default=1, help="Random seed (default: 1)")


def add_run_args(parser: ArgumentParser) -> None:
    """
    Add run configuration arguments to a parser.

    Adds these arguments:
        --activation NAME  Activation for both conv stages
        --pool NAME        Pooling mode
        --tap NAME         Stage feeding the output
        --classes N        Output values ranked as class scores
        --sink-duty N      Sink accepts one cycle in N
    """
    group = parser.add_argument_group("Run Configuration")
    group.add_argument(
        "--activation",
        choices=[a.name.lower() for a in ActivationKind],
        default="relu",
        help="Activation for both conv stages (default: relu)",
    )
    group.add_argument(
        "--pool",
        choices=[p.name.lower() for p in PoolKind],
        default="max",
        help="Pooling mode (default: max)",
    )
    group.add_argument(
        "--tap",
        choices=[s.name.lower() for s in StageId],
        default="pool1",
        help="Stage feeding the output (default: pool1)",
    )
    group.add_argument(
        "--classes",
        type=int,
        default=10,
        help="Output values ranked as class scores (default: 10)",
    )
    group.add_argument(
        "--sink-duty",
        type=int,
        default=1,
        help="Sink accepts one cycle in N (default: 1, always ready)",
    )


def add_mode_args(parser: ArgumentParser) -> None:
    """
    Add run mode arguments to a parser.

    Adds these arguments:
        --benchmark N   Repeat the frame N times and report throughput
        --continuous N  Cycle through the test patterns for N frames (0: forever)
        -v, --verbose   Debug logging
    """
    group = parser.add_argument_group("Mode")
    mode = group.add_mutually_exclusive_group()
    mode.add_argument(
        "--benchmark",
        type=int,
        metavar="N",
        help="Run the frame N times and report cycles, ops and FPS",
    )
    mode.add_argument(
        "--continuous",
        type=int,
        metavar="N",
        help="Cycle through the test patterns for N frames (0 runs until Ctrl+C)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def run_config_from_args(args: Namespace) -> RunConfig:
    """Build a RunConfig from parsed frame and run arguments."""
    return RunConfig(
        input_width=args.width,
        input_height=args.height,
        layer_enable=LayerEnable.ALL,
        activation=ActivationKind[args.activation.upper()],
        pool_kind=PoolKind[args.pool.upper()],
        output_tap=StageId[args.tap.upper()],
        num_classes=args.classes,
    )


def sink_policy(args: Namespace):
    """Sink ready policy accepting one cycle in --sink-duty."""
    duty = max(getattr(args, "sink_duty", 1), 1)
    return lambda cycle: cycle % duty == 0


def setup_logging(args: Namespace) -> None:
    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
