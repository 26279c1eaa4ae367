#!/usr/bin/env python3
"""
Streaming CNN Inference Demo.

Runs test frames through the Norm → Conv0 → Pool0 → Conv1 → Pool1 pipeline
with random parameters. The first --classes output values are read back as
class scores and ranked with softmax / top-K.

Modes:
    (default)       One frame, checked against the numpy reference
    --benchmark N   The same frame N times: total and average cycles and
                    operations, estimated frame time and FPS at 100 MHz
    --continuous N  N frames cycling gradient, checkerboard, noise, solid,
                    printing the top prediction of each (0 runs until Ctrl+C)

Usage:
    python 01_run_inference.py [options]

Examples:
    # 32x32 gradient frame on the small configuration
    python 01_run_inference.py --width 32 --height 32 --pattern gradient

    # Tap after Conv0, sigmoid activation, slow consumer
    python 01_run_inference.py --tap conv0 --activation sigmoid --sink-duty 3

    # Throughput estimate over 100 runs
    python 01_run_inference.py --benchmark 100
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))
# Add parent directory to path for examples.common import
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
from common.cli import (
    add_frame_args,
    add_mode_args,
    add_run_args,
    run_config_from_args,
    setup_logging,
    sink_policy,
)

from streamcnn.config import SMALL_ACCELERATOR_CONFIG, StageId
from streamcnn.patterns import Pattern, pattern_frame, pattern_sequence, random_biases, random_weights
from streamcnn.pipeline import Accelerator
from streamcnn.postprocess import CIFAR10_LABELS
from streamcnn.reference import pipeline_reference


def build_parameters(config, rng):
    """Random Q8.8 weights and biases for both convolution stages."""
    weights, biases = {}, {}
    for stage in (StageId.CONV0, StageId.CONV1):
        layer = config.layer(stage)
        k = layer.kernel_size
        weights[stage] = random_weights((layer.out_channels, layer.in_channels, k, k), rng)
        biases[stage] = random_biases(layer.out_channels, rng)
    return weights, biases


def label_of(result):
    return result.label if result.label is not None else f"class {result.class_id}"


def run_single(accel, args, weights, biases):
    """One frame with a reference check and the ranked classes."""
    run = accel.run_config
    frame = pattern_frame(Pattern[args.pattern.upper()], args.width, args.height, args.seed)
    output = accel.infer(frame, ready_policy=sink_policy(args))
    status = accel.status()

    expected = pipeline_reference(frame, accel.config, run, weights, biases)
    match = np.array_equal(output, expected)

    print("=" * 60)
    print("STREAMING CNN INFERENCE")
    print("=" * 60)
    print(f"  Input:       {frame.shape} ({args.pattern})")
    print(f"  Output:      {output.shape} at {run.output_tap.name}")
    print(f"  Cycles:      {status.cycles}")
    print(f"  Operations:  {status.operations}")
    print(f"  Reference:   {'MATCH' if match else 'MISMATCH'}")

    print()
    print(f"Top predictions (first {run.num_classes} outputs as class scores):")
    for rank, result in enumerate(accel.get_result(CIFAR10_LABELS), start=1):
        print(f"  {rank}. {label_of(result):<12} {result.confidence * 100:5.1f}%")

    return 0 if match else 1


def run_benchmark(accel, args):
    """Repeat one frame and print the throughput summary."""
    frame = pattern_frame(Pattern[args.pattern.upper()], args.width, args.height, args.seed)

    print(f"--- Running Inference Benchmark ({args.benchmark} iterations) ---")
    report = accel.benchmark(frame, args.benchmark)

    print()
    print("Benchmark Summary:")
    print(f"  Total iterations:  {report.iterations}")
    print(f"  Failed:            {report.failures}")
    print(f"  Total cycles:      {report.total_cycles}")
    print(f"  Total operations:  {report.total_operations}")
    if report.completed:
        print(f"  Avg cycles/frame:  {report.avg_cycles:.0f}")
        print(f"  Avg ops/frame:     {report.avg_operations:.0f}")
        print(f"  Est. frame time:   {report.frame_time_ms:.2f} ms")
        print(f"  Est. FPS:          {report.fps:.1f}")

    return 0 if report.failures == 0 else 1


def run_continuous(accel, args):
    """Cycle through the test patterns, printing the top class per frame."""
    count = args.continuous or None
    print("Entering continuous inference mode...")
    if count is None:
        print("Press Ctrl+C to stop.")
    print()

    try:
        for index, pattern, frame in pattern_sequence(args.width, args.height, count, args.seed):
            accel.infer(frame, ready_policy=sink_policy(args))
            best = accel.get_result(CIFAR10_LABELS)[0]
            print(
                f"Frame {index} ({pattern.name.lower()}): Top prediction = "
                f"{label_of(best)} ({best.confidence * 100:.1f}%)"
            )
    except KeyboardInterrupt:
        print()
        print("Stopped.")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Streaming CNN inference demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_frame_args(parser)
    add_run_args(parser)
    add_mode_args(parser)
    args = parser.parse_args()

    setup_logging(args)

    config = SMALL_ACCELERATOR_CONFIG
    rng = np.random.default_rng(args.seed)
    weights, biases = build_parameters(config, rng)

    accel = Accelerator(config)
    accel.configure(run_config_from_args(args))
    for stage in weights:
        accel.load_weights(stage, weights[stage])
        accel.load_biases(stage, biases[stage])

    if args.benchmark is not None:
        return run_benchmark(accel, args)
    if args.continuous is not None:
        return run_continuous(accel, args)
    return run_single(accel, args, weights, biases)


if __name__ == "__main__":
    sys.exit(main())
