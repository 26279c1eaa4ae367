"""
Accelerator Configuration Module

This module defines the configuration dataclasses for the streaming CNN
pipeline. There are two levels:

    AcceleratorConfig: static "generator" parameters (maximum frame size,
        layer geometry, FIFO depth). Fixed for the lifetime of a pipeline.
    RunConfig: the run-time configuration surface (input size, per-stage
        enable mask, activation, pooling kind, output tap, class count).
        Read once at the start of LoadParameters and held for one run.

Layer geometry is described by LayerConfig records, one per stage of the
fixed Conv0 -> Pool0 -> Conv1 -> Pool1 cascade.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum, IntFlag

from .errors import ConfigurationError, ErrorCode


class ActivationKind(IntEnum):
    """Activation functions selectable through the 3-bit mode field."""

    NONE = 0
    RELU = 1
    RELU6 = 2
    LEAKY_RELU = 3
    SIGMOID = 4
    TANH = 5
    SWISH = 6


class PoolKind(IntEnum):
    """Pooling reductions."""

    MAX = 0
    AVG = 1


class LayerKind(Enum):
    """Stage type for a LayerConfig."""

    CONV = 0
    POOL = 1


class StageId(IntEnum):
    """Position of a compute stage in the fixed cascade (also the output tap)."""

    CONV0 = 0
    POOL0 = 1
    CONV1 = 2
    POOL1 = 3


class LayerEnable(IntFlag):
    """Per-stage enable bits. Bit i enables StageId(i)."""

    NONE = 0x00
    CONV0 = 0x01
    POOL0 = 0x02
    CONV1 = 0x04
    POOL1 = 0x08
    ALL = 0x0F


SUPPORTED_KERNEL_SIZES = (3, 5)
"""Convolution kernel sizes the engine is built for."""

SUPPORTED_POOL_SIZES = (2, 3)
"""Pooling window sizes the engine is built for."""

LAYER_ENABLE_MASK = 0xFF
"""Width of the enable field on the configuration surface."""

MAX_CLASSES = 100
"""Largest class count the host result path ranks."""


@dataclass(frozen=True)
class LayerConfig:
    """
    Geometry of one stage in the cascade.

    For pooling stages out_channels equals in_channels and padding is zero.
    The activation and pool_kind fields are defaults; a RunConfig overrides
    them per run.

    Example:
        >>> conv = conv_layer(3, 16, kernel_size=3, padding=1)
        >>> conv.output_dims(8, 8)
        (8, 8)
    """

    kind: LayerKind = LayerKind.CONV
    kernel_size: int = 3
    stride: int = 1
    padding: int = 0
    in_channels: int = 1
    out_channels: int = 1
    activation: ActivationKind = ActivationKind.NONE
    pool_kind: PoolKind = PoolKind.MAX

    def __post_init__(self):
        sizes = SUPPORTED_KERNEL_SIZES if self.is_conv else SUPPORTED_POOL_SIZES
        if self.kernel_size not in sizes:
            raise ConfigurationError(
                f"{self.kind.name.lower()} window {self.kernel_size} not in {sizes}"
            )
        if self.stride < 1:
            raise ConfigurationError(f"stride must be >= 1, got {self.stride}")
        if not 0 <= self.padding < self.kernel_size:
            raise ConfigurationError(
                f"padding must be in [0, {self.kernel_size - 1}], got {self.padding}"
            )
        if self.in_channels < 1 or self.out_channels < 1:
            raise ConfigurationError("channel counts must be positive")
        if not self.is_conv:
            if self.padding != 0:
                raise ConfigurationError("pooling does not support padding")
            if self.in_channels != self.out_channels:
                raise ConfigurationError("pooling must preserve the channel count")

    @property
    def is_conv(self) -> bool:
        return self.kind is LayerKind.CONV

    @property
    def window_size(self) -> int:
        """Number of samples in one window (K²)."""
        return self.kernel_size * self.kernel_size

    @property
    def weights_per_filter(self) -> int:
        """Flat weight table size per filter (K² × C_in)."""
        return self.window_size * self.in_channels if self.is_conv else 0

    def output_dims(self, height: int, width: int) -> tuple[int, int]:
        """
        Output (height, width) for an input of the given size.

        Convolution: (in + 2p - K) // s + 1. Pooling: in // s.
        A non-positive result means the input is too small for this layer.
        """
        if self.is_conv:
            span = 2 * self.padding - self.kernel_size
            out_h = (height + span) // self.stride + 1 if height + span >= 0 else 0
            out_w = (width + span) // self.stride + 1 if width + span >= 0 else 0
            return out_h, out_w
        return height // self.stride, width // self.stride

    def output_shape(self, height: int, width: int) -> tuple[int, int, int]:
        """Output (channels, height, width)."""
        out_h, out_w = self.output_dims(height, width)
        return self.out_channels, out_h, out_w

    def with_runtime(self, activation: ActivationKind, pool_kind: PoolKind) -> "LayerConfig":
        """Copy with the run-time activation and pooling selections applied."""
        return replace(self, activation=activation, pool_kind=pool_kind)


def conv_layer(
    in_channels: int,
    out_channels: int,
    kernel_size: int = 3,
    stride: int = 1,
    padding: int = 1,
    activation: ActivationKind = ActivationKind.RELU,
) -> LayerConfig:
    """Build a convolution LayerConfig."""
    return LayerConfig(
        kind=LayerKind.CONV,
        kernel_size=kernel_size,
        stride=stride,
        padding=padding,
        in_channels=in_channels,
        out_channels=out_channels,
        activation=activation,
    )


def pool_layer(
    channels: int,
    pool_size: int = 2,
    stride: int = 2,
    pool_kind: PoolKind = PoolKind.MAX,
) -> LayerConfig:
    """Build a pooling LayerConfig."""
    return LayerConfig(
        kind=LayerKind.POOL,
        kernel_size=pool_size,
        stride=stride,
        padding=0,
        in_channels=channels,
        out_channels=channels,
        pool_kind=pool_kind,
    )


@dataclass
class AcceleratorConfig:
    """
    Static configuration of the streaming pipeline.

    These parameters size line buffers, parameter tables and FIFOs. They
    correspond to synthesis-time constants of the hardware and do not change
    between runs.

    Example:
        >>> config = AcceleratorConfig(max_width=64, max_height=64)
        >>> config.total_weights
        5040
    """

    # =========================================================================
    # Frame Constraints
    # =========================================================================
    max_width: int = 224
    """Maximum supported input width (sizes the line buffers)."""

    max_height: int = 224
    """Maximum supported input height."""

    max_channels: int = 64
    """Maximum channel count of any stage (sizes the normalization table)."""

    input_channels: int = 3
    """Channels of the input frame (RGB)."""

    # =========================================================================
    # Layer Geometry
    # =========================================================================
    conv0: LayerConfig = field(default_factory=lambda: conv_layer(3, 16))
    pool0: LayerConfig = field(default_factory=lambda: pool_layer(16))
    conv1: LayerConfig = field(default_factory=lambda: conv_layer(16, 32))
    pool1: LayerConfig = field(default_factory=lambda: pool_layer(32))

    # =========================================================================
    # Stream Configuration
    # =========================================================================
    fifo_depth: int = 2
    """Depth of each stage's output FIFO (skid buffer)."""

    # =========================================================================
    # Numeric and Loader Policy
    # =========================================================================
    exact_average: bool = False
    """
    If False, 3×3 average pooling uses the (sum * 7) >> 6 approximation of
    divide-by-9. If True, it uses floor division by 9.
    """

    aligned_bias: bool = False
    """
    If False, a convolution bias is added to the raw accumulator before
    truncation. If True, it is shifted left by 8 first so a Q8.8 bias adds
    to the output value.
    """

    strict_parameters: bool = False
    """If True, out-of-range parameter writes raise instead of being dropped."""

    # =========================================================================
    # Computed Properties
    # =========================================================================
    @property
    def layers(self) -> tuple[LayerConfig, LayerConfig, LayerConfig, LayerConfig]:
        """Layer configs in StageId order."""
        return (self.conv0, self.pool0, self.conv1, self.pool1)

    def layer(self, stage: StageId) -> LayerConfig:
        return self.layers[StageId(stage)]

    @property
    def total_weights(self) -> int:
        """Weight entries across both convolution stages."""
        return sum(
            layer.out_channels * layer.weights_per_filter
            for layer in (self.conv0, self.conv1)
        )

    @property
    def total_biases(self) -> int:
        """Bias entries across both convolution stages."""
        return self.conv0.out_channels + self.conv1.out_channels

    @property
    def line_buffer_samples(self) -> int:
        """Total line buffer storage in samples across all stages."""
        total = 0
        for layer in self.layers:
            total += layer.kernel_size * self.max_width * layer.in_channels
        return total

    def __post_init__(self):
        """Validate configuration parameters."""
        assert self.max_width > 0, "max_width must be positive"
        assert self.max_height > 0, "max_height must be positive"
        assert self.max_channels > 0, "max_channels must be positive"
        assert self.fifo_depth >= 1, "fifo_depth must be at least 1"
        assert self.conv0.is_conv and self.conv1.is_conv, "conv stages must be convolutions"
        assert not self.pool0.is_conv and not self.pool1.is_conv, "pool stages must be pooling"
        assert self.conv0.in_channels == self.input_channels, (
            "conv0 must consume the input channels"
        )
        assert self.pool0.in_channels == self.conv0.out_channels, "pool0 channels != conv0 out"
        assert self.conv1.in_channels == self.pool0.out_channels, "conv1 in != pool0 out"
        assert self.pool1.in_channels == self.conv1.out_channels, "pool1 channels != conv1 out"
        for layer in self.layers:
            assert layer.out_channels <= self.max_channels, "stage exceeds max_channels"


@dataclass(frozen=True)
class RunConfig:
    """
    Run-time configuration surface.

    Mirrors the flat record a host writes before starting inference. It is
    validated against an AcceleratorConfig at configure time.
    """

    input_width: int = 128
    input_height: int = 128
    layer_enable: int = LayerEnable.ALL
    activation: ActivationKind = ActivationKind.RELU
    pool_kind: PoolKind = PoolKind.MAX
    output_tap: StageId = StageId.POOL1
    num_classes: int = 10
    """Leading output values the host reads back as class scores."""

    def stage_enabled(self, stage: StageId) -> bool:
        return bool(self.layer_enable & (1 << int(stage)))

    def stage_shapes(self, config: AcceleratorConfig) -> list[tuple[int, int, int]]:
        """Output (C, H, W) of each stage in StageId order."""
        shapes = []
        height, width = self.input_height, self.input_width
        for layer in config.layers:
            shape = layer.output_shape(height, width)
            shapes.append(shape)
            _, height, width = shape
        return shapes

    def validate(self, config: AcceleratorConfig) -> None:
        """Raise ConfigurationError if this run cannot start on `config`."""
        if self.input_width <= 0 or self.input_height <= 0:
            raise ConfigurationError(
                f"input dimensions must be positive, got {self.input_width}x{self.input_height}",
                ErrorCode.INVALID_DIMS,
            )
        if self.input_width > config.max_width or self.input_height > config.max_height:
            raise ConfigurationError(
                f"input {self.input_width}x{self.input_height} exceeds "
                f"{config.max_width}x{config.max_height}",
                ErrorCode.INVALID_DIMS,
            )
        if not 0 <= int(self.layer_enable) <= LAYER_ENABLE_MASK:
            raise ConfigurationError(f"layer_enable out of range: {self.layer_enable:#x}")
        if not 1 <= self.num_classes <= MAX_CLASSES:
            raise ConfigurationError(
                f"num_classes must be in [1, {MAX_CLASSES}], got {self.num_classes}"
            )
        try:
            ActivationKind(self.activation)
            PoolKind(self.pool_kind)
            tap = StageId(self.output_tap)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        for stage, (_, height, width) in enumerate(self.stage_shapes(config)):
            if stage > tap:
                break
            if height < 1 or width < 1:
                raise ConfigurationError(
                    f"input {self.input_width}x{self.input_height} too small for "
                    f"{StageId(stage).name}",
                    ErrorCode.INVALID_DIMS,
                )


# Pre-defined configurations
DEFAULT_ACCELERATOR_CONFIG = AcceleratorConfig()
"""Default configuration: 224x224 max, 3 -> 16 -> 32 channels."""

SMALL_ACCELERATOR_CONFIG = AcceleratorConfig(
    max_width=32,
    max_height=32,
    max_channels=16,
    conv0=conv_layer(3, 4),
    pool0=pool_layer(4),
    conv1=conv_layer(4, 8),
    pool1=pool_layer(8),
)
"""Small configuration for testing."""
