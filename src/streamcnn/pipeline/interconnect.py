"""
Layer Interconnect.

Wires the fixed stage chain and moves items between stages one clock at a
time:

    ┌────────┐   ┌──────┐   ┌───────┐   ┌───────┐   ┌───────┐   ┌───────┐   ┌──────┐
    │ Source │──►│ Norm │──►│ Conv0 │──►│ Pool0 │──►│ Conv1 │──►│ Pool1 │──►│ Sink │
    └────────┘   └──────┘   └───────┘   └───────┘   └───────┘   └───────┘   └──────┘
                                  ▲ tap = CONV0 ...                 ▲ tap = POOL1

Each link transfers one item per step when the producer is valid and the
consumer is ready, both sampled before any transfer in that step. Stages
after the output tap sit idle.
"""

import logging
from dataclasses import dataclass
from math import prod

from ..config import AcceleratorConfig, RunConfig, StageId
from ..norm import NormalizationStage, NormalizationTable
from ..stage import Stage
from ..stencil import ConvolutionEngine, PoolingEngine
from ..stream import FrameSource, ResultSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """What happened on the stream during one step."""

    input_accepted: bool = False
    output_delivered: bool = False
    operations: int = 0


class LayerInterconnect:
    """
    Fixed Norm → Conv0 → Pool0 → Conv1 → Pool1 route with enables and a tap.

    Args:
        config: Static accelerator configuration
    """

    def __init__(self, config: AcceleratorConfig):
        self.config = config
        self.norm_table = NormalizationTable(config.max_channels)
        self.norm = NormalizationStage(self.norm_table, fifo_depth=config.fifo_depth)
        self.conv0 = ConvolutionEngine(
            config.conv0, config.max_width, "conv0", config.fifo_depth, config.aligned_bias
        )
        self.pool0 = PoolingEngine(
            config.pool0, config.max_width, "pool0", config.fifo_depth, config.exact_average
        )
        self.conv1 = ConvolutionEngine(
            config.conv1, config.max_width, "conv1", config.fifo_depth, config.aligned_bias
        )
        self.pool1 = PoolingEngine(
            config.pool1, config.max_width, "pool1", config.fifo_depth, config.exact_average
        )
        self.run: RunConfig | None = None

    @property
    def layer_stages(self) -> tuple[Stage, Stage, Stage, Stage]:
        """Compute stages in StageId order."""
        return (self.conv0, self.pool0, self.conv1, self.pool1)

    @property
    def stages(self) -> list[Stage]:
        """Every stage including normalization."""
        return [self.norm, *self.layer_stages]

    def stage(self, stage_id: StageId) -> Stage:
        return self.layer_stages[StageId(stage_id)]

    def conv_engine(self, stage_id: StageId) -> ConvolutionEngine:
        engine = self.stage(stage_id)
        if not isinstance(engine, ConvolutionEngine):
            raise ValueError(f"{StageId(stage_id).name} is not a convolution stage")
        return engine

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(self, run: RunConfig) -> None:
        """Apply a validated RunConfig to every stage and reset them."""
        run.validate(self.config)
        self.run = run

        shape = (self.config.input_channels, run.input_height, run.input_width)
        shape = self.norm.configure(shape)
        for stage_id, stage in enumerate(self.layer_stages):
            active = stage_id <= run.output_tap and run.stage_enabled(stage_id)
            if isinstance(stage, ConvolutionEngine):
                shape = stage.configure(shape, active, activation=run.activation)
            else:
                shape = stage.configure(shape, active, pool_kind=run.pool_kind)

        logger.debug(
            "configured %dx%d enable=%#x tap=%s shapes=%s",
            run.input_width,
            run.input_height,
            int(run.layer_enable),
            StageId(run.output_tap).name,
            [s.out_shape for s in self.chain],
        )

    @property
    def chain(self) -> list[Stage]:
        """Stages from Norm through the output tap."""
        tap = StageId.POOL1 if self.run is None else StageId(self.run.output_tap)
        return [self.norm, *self.layer_stages[: tap + 1]]

    @property
    def tap_shape(self) -> tuple[int, int, int]:
        return self.chain[-1].out_shape

    @property
    def chain_enabled(self) -> bool:
        return all(stage.enabled for stage in self.chain)

    @property
    def expected_output(self) -> int:
        """Items the sink receives per frame (0 if a chain stage is disabled)."""
        return prod(self.tap_shape) if self.chain_enabled else 0

    def reset(self) -> None:
        """Discard partial frames, line buffers and accumulators."""
        for stage in self.stages:
            stage.reset()

    # =========================================================================
    # Completion
    # =========================================================================

    def compute_complete(self, source: FrameSource) -> bool:
        """
        The last convolution in the chain has emitted its full frame.

        If that convolution (or anything in front of it) is disabled it never
        sees data, so completion falls back to the source being exhausted.
        """
        chain = self.chain
        last_conv = max(i for i, s in enumerate(chain) if isinstance(s, ConvolutionEngine))
        if all(s.enabled for s in chain[: last_conv + 1]):
            return chain[last_conv].frame_complete
        return source.exhausted

    def output_complete(self, source: FrameSource, sink: ResultSink) -> bool:
        """Every expected item reached the sink and nothing is left in flight."""
        if not source.exhausted or sink.count < self.expected_output:
            return False
        for stage in self.chain:
            if not stage.enabled:
                break
            if not stage.frame_complete:
                return False
        return True

    def cycle_estimate(self) -> int:
        """Rough step count for one frame, used to size default timeouts."""
        return sum(stage.in_count + stage.out_count for stage in self.chain) + 64

    # =========================================================================
    # Clock
    # =========================================================================

    def step(self, source: FrameSource, sink: ResultSink) -> StepResult:
        """Advance the whole chain by one clock."""
        chain = self.chain

        # Sample valid/ready on every link before anything moves.
        fire_in = source.valid() and chain[0].in_ready()
        fire = [chain[i].out_valid() and chain[i + 1].in_ready() for i in range(len(chain) - 1)]
        fire_out = chain[-1].out_valid() and sink.ready()

        operations = 0

        # Transfers, downstream first so every pop precedes the push into its slot.
        if fire_out:
            sink.accept(chain[-1].take())
            operations += chain[-1].ops_per_output
        for i in reversed(range(len(fire))):
            if fire[i]:
                chain[i + 1].accept(chain[i].take())
                operations += chain[i].ops_per_output
        if fire_in:
            chain[0].accept(source.take())

        for stage in chain:
            stage.step()
        sink.advance()

        return StepResult(fire_in, fire_out, operations)
