"""
Accelerator host driver.

Wraps the interconnect, controller and parameter loader behind the call
sequence a host program uses:

    accel = Accelerator(SMALL_ACCELERATOR_CONFIG)
    accel.configure(RunConfig(input_width=32, input_height=32))
    accel.load_weights(StageId.CONV0, w0)
    accel.load_biases(StageId.CONV0, b0)
    ...
    features = accel.infer(frame)

start_inference() and wait_for_completion() split infer() for callers that
want to poll is_complete() or status() in between. get_result() ranks the
first num_classes output values as class scores, and benchmark() repeats a
frame to estimate throughput at the nominal clock.
"""

import logging
from dataclasses import dataclass

import numpy as np

from ..config import DEFAULT_ACCELERATOR_CONFIG, AcceleratorConfig, RunConfig, StageId
from ..errors import (
    AcceleratorBusyError,
    AcceleratorError,
    ConfigurationError,
    ErrorCode,
    InferenceTimeoutError,
)
from ..postprocess import DEFAULT_TOP_K, ClassificationResult, classify
from ..stream import FrameSource, ResultSink
from .controller import Command, ControllerState, PipelineController, Status
from .interconnect import LayerInterconnect
from .loader import ParameterLoader

logger = logging.getLogger(__name__)

TIMEOUT_FACTOR = 4
"""Default timeout as a multiple of the interconnect's cycle estimate."""

CLOCK_HZ = 100_000_000
"""Nominal clock used for frame time and FPS estimates."""

BENCHMARK_LOG_INTERVAL = 10
"""Benchmark progress is logged every this many iterations."""


@dataclass(frozen=True)
class BenchmarkReport:
    """Totals over repeated runs of one frame."""

    iterations: int
    completed: int
    total_cycles: int
    total_operations: int
    clock_hz: int = CLOCK_HZ

    @property
    def failures(self) -> int:
        return self.iterations - self.completed

    @property
    def avg_cycles(self) -> float:
        return self.total_cycles / self.completed if self.completed else 0.0

    @property
    def avg_operations(self) -> float:
        return self.total_operations / self.completed if self.completed else 0.0

    @property
    def frame_time_ms(self) -> float:
        """Average cycles per frame at clock_hz, in milliseconds."""
        return self.avg_cycles * 1000.0 / self.clock_hz

    @property
    def fps(self) -> float:
        return 1000.0 / self.frame_time_ms if self.frame_time_ms else 0.0


class Accelerator:
    """
    Streaming CNN accelerator model.

    Args:
        config: Static accelerator configuration
    """

    def __init__(self, config: AcceleratorConfig = DEFAULT_ACCELERATOR_CONFIG):
        self.config = config
        self.interconnect = LayerInterconnect(config)
        self.controller = PipelineController(self.interconnect)
        self.loader = ParameterLoader(
            self.interconnect, lambda: self.controller.busy, config.strict_parameters
        )
        self._complete = False

    # =========================================================================
    # Configuration and Parameters
    # =========================================================================

    def configure(self, run: RunConfig | None = None, **kwargs) -> RunConfig:
        """
        Set the run configuration.

        Either pass a RunConfig or its fields as keyword arguments.
        """
        if run is None:
            run = RunConfig(**kwargs)
        elif kwargs:
            raise TypeError("pass a RunConfig or keyword fields, not both")
        if self.controller.state is ControllerState.DONE:
            self.controller.tick()
        self.controller.configure(run)
        self._complete = False
        return run

    @property
    def run_config(self) -> RunConfig | None:
        return self.controller.run_config

    def load_weights(self, layer: StageId, weights) -> int:
        return self.loader.load_weights(layer, weights)

    def load_biases(self, layer: StageId, biases) -> int:
        return self.loader.load_biases(layer, biases)

    def load_normalization(self, scales, biases) -> int:
        return self.loader.load_normalization(scales, biases)

    # =========================================================================
    # Inference
    # =========================================================================

    def start_inference(self, frame, ready_policy=None) -> None:
        """
        Queue a (C, H, W) Q8.8 frame and issue START.

        Args:
            frame: Input feature map matching the run configuration
            ready_policy: Optional cycle -> bool backpressure model for the sink
        """
        if self.controller.busy:
            raise AcceleratorBusyError("inference already running")
        run = self.controller.run_config
        if run is None:
            raise AcceleratorError("start before configure", ErrorCode.NOT_CONFIGURED)

        frame = np.asarray(frame)
        if frame.ndim == 2:
            frame = frame[np.newaxis]
        expected = (self.config.input_channels, run.input_height, run.input_width)
        if frame.shape != expected:
            raise ConfigurationError(
                f"frame shape {frame.shape} does not match {expected}", ErrorCode.INVALID_DIMS
            )

        if self.controller.state is ControllerState.DONE:
            self.controller.tick()
        self._complete = False
        self.controller.attach(FrameSource.from_frame(frame), ResultSink(ready_policy))
        self.controller.submit(Command.START)

    def wait_for_completion(self, timeout_cycles: int | None = None) -> Status:
        """
        Tick the controller until the run completes.

        Raises:
            InferenceTimeoutError: The run did not finish within timeout_cycles.
                The accelerator is reset and reports ErrorCode.TIMEOUT.
        """
        if timeout_cycles is None:
            # One tick to start plus one to load before the cycle estimate applies.
            self.controller.tick()
            self.controller.tick()
            timeout_cycles = TIMEOUT_FACTOR * self.interconnect.cycle_estimate()

        for _ in range(timeout_cycles):
            status = self.controller.tick()
            if status.done:
                self._complete = True
                return status
            if status.state is ControllerState.IDLE and not self.controller.pending_commands:
                raise AcceleratorError(
                    "accelerator is idle with no run in progress", self.controller.error_code
                )

        logger.warning("inference timed out after %d cycles", timeout_cycles)
        self.controller.abort(ErrorCode.TIMEOUT)
        raise InferenceTimeoutError(f"no completion within {timeout_cycles} cycles")

    def is_complete(self) -> bool:
        return self._complete

    def result(self) -> np.ndarray:
        """Output feature map of the last completed run, shaped as the tap stage."""
        if not self._complete:
            raise AcceleratorError("no completed inference", ErrorCode.NOT_CONFIGURED)
        if self.interconnect.expected_output == 0:
            return np.zeros((0,), dtype=np.int16)
        return self.controller.sink.to_frame(*self.interconnect.tap_shape)

    def infer(self, frame, timeout_cycles: int | None = None, ready_policy=None) -> np.ndarray:
        """Run one frame to completion and return the output feature map."""
        self.start_inference(frame, ready_policy)
        self.wait_for_completion(timeout_cycles)
        return self.result()

    def get_result(self, labels=None) -> list[ClassificationResult]:
        """
        Rank the first num_classes output values of the last run as class scores.

        Returns the top min(num_classes, 5) classes by softmax probability,
        best first. If the run produced fewer values than num_classes, only
        those values are ranked.
        """
        output = self.result().reshape(-1)
        num_classes = self.controller.run_config.num_classes
        return classify(output[:num_classes], min(num_classes, DEFAULT_TOP_K), labels)

    def benchmark(self, frame, iterations: int, timeout_cycles: int | None = None) -> BenchmarkReport:
        """
        Run the same frame `iterations` times and total the controller counters.

        A run that times out is logged, the accelerator is reset, and the
        run is counted as a failure. Averages cover completed runs only.
        """
        completed = total_cycles = total_operations = 0
        for i in range(iterations):
            try:
                self.start_inference(frame)
                status = self.wait_for_completion(timeout_cycles)
            except InferenceTimeoutError:
                logger.warning("benchmark iteration %d timed out", i)
                self.reset()
                continue
            completed += 1
            total_cycles += status.cycles
            total_operations += status.operations
            if (i + 1) % BENCHMARK_LOG_INTERVAL == 0:
                logger.info("completed %d of %d iterations", i + 1, iterations)

        return BenchmarkReport(iterations, completed, total_cycles, total_operations)

    # =========================================================================
    # Control
    # =========================================================================

    def stop(self) -> None:
        """Abort the current run and return to IDLE."""
        self.controller.submit(Command.STOP)
        self.controller.tick()
        self._complete = False

    def reset(self) -> None:
        """Reset the controller, counters and stage state."""
        self.controller.submit(Command.RESET)
        self.controller.tick()
        self._complete = False

    def status(self) -> Status:
        return self.controller.status()
