"""
Golden reference models.

Whole-frame numpy implementations of every stage, written independently of
the streaming engines. The fixed-point references must match the pipeline
bit for bit; conv2d_float is the full-precision model used to bound the
quantization error of a single layer.
"""

import numpy as np

from .activation import activate_array
from .config import AcceleratorConfig, ActivationKind, LayerConfig, PoolKind, RunConfig, StageId
from .fixedpoint import q88
from .norm import NormalizationTable


def conv2d_fixed(
    frame: np.ndarray,
    weights: np.ndarray,
    bias: np.ndarray,
    stride: int = 1,
    padding: int = 0,
    activation: ActivationKind = ActivationKind.NONE,
    aligned_bias: bool = False,
) -> np.ndarray:
    """
    Fixed-point convolution.

    Args:
        frame: (C, H, W) Q8.8 input
        weights: (F, C, K, K) Q8.8 weights
        bias: (F,) Q8.8 biases
        stride, padding: Convolution geometry
        activation: Applied after truncation
        aligned_bias: Shift the bias left by 8 before adding it

    Returns:
        (F, OH, OW) int16 output
    """
    frame = np.asarray(frame, dtype=np.int64)
    weights = np.asarray(weights, dtype=np.int64)
    bias = np.asarray(bias, dtype=np.int64)
    filters, _, k, _ = weights.shape
    _, height, width = frame.shape

    out_h = (height + 2 * padding - k) // stride + 1
    out_w = (width + 2 * padding - k) // stride + 1
    padded = np.pad(frame, ((0, 0), (padding, padding), (padding, padding)))

    acc = np.zeros((filters, out_h, out_w), dtype=np.int64)
    for ky in range(k):
        for kx in range(k):
            patch = padded[
                :,
                ky : ky + stride * (out_h - 1) + 1 : stride,
                kx : kx + stride * (out_w - 1) + 1 : stride,
            ]
            acc += np.tensordot(weights[:, :, ky, kx], patch, axes=([1], [0]))

    if aligned_bias:
        bias = bias << q88.FRAC_BITS
    acc += bias[:, None, None]
    return activate_array(q88.truncate_array(acc), activation)


def conv2d_float(
    frame: np.ndarray,
    weights: np.ndarray,
    bias: np.ndarray,
    stride: int = 1,
    padding: int = 0,
) -> np.ndarray:
    """Full-precision convolution on real-valued inputs (no activation)."""
    frame = np.asarray(frame, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)
    filters, _, k, _ = weights.shape
    _, height, width = frame.shape

    out_h = (height + 2 * padding - k) // stride + 1
    out_w = (width + 2 * padding - k) // stride + 1
    padded = np.pad(frame, ((0, 0), (padding, padding), (padding, padding)))

    out = np.zeros((filters, out_h, out_w), dtype=np.float64)
    for ky in range(k):
        for kx in range(k):
            patch = padded[
                :,
                ky : ky + stride * (out_h - 1) + 1 : stride,
                kx : kx + stride * (out_w - 1) + 1 : stride,
            ]
            out += np.tensordot(weights[:, :, ky, kx], patch, axes=([1], [0]))
    return out + np.asarray(bias, dtype=np.float64)[:, None, None]


def pool2d_fixed(
    frame: np.ndarray,
    pool_size: int = 2,
    stride: int = 2,
    kind: PoolKind = PoolKind.MAX,
    exact_average: bool = False,
) -> np.ndarray:
    """Fixed-point max/average pooling with output in // stride."""
    frame = np.asarray(frame, dtype=np.int64)
    channels, height, width = frame.shape
    out_h, out_w = height // stride, width // stride
    out = np.zeros((channels, out_h, out_w), dtype=np.int64)

    for oy in range(out_h):
        for ox in range(out_w):
            top, left = oy * stride, ox * stride
            window = frame[:, top : top + pool_size, left : left + pool_size]
            if PoolKind(kind) is PoolKind.MAX:
                out[:, oy, ox] = window.max(axis=(1, 2))
                continue
            total = window.sum(axis=(1, 2))
            if pool_size == 2:
                out[:, oy, ox] = total >> 2
            elif exact_average:
                out[:, oy, ox] = total // (pool_size * pool_size)
            else:
                out[:, oy, ox] = (total * 7) >> 6
    return q88.saturate_array(out)


def layer_forward(
    frame: np.ndarray,
    layer: LayerConfig,
    weights=None,
    bias=None,
    activation: ActivationKind | None = None,
    pool_kind: PoolKind | None = None,
    exact_average: bool = False,
    aligned_bias: bool = False,
) -> np.ndarray:
    """Apply one LayerConfig to a whole frame."""
    if layer.is_conv:
        return conv2d_fixed(
            frame,
            weights,
            bias,
            layer.stride,
            layer.padding,
            layer.activation if activation is None else activation,
            aligned_bias,
        )
    return pool2d_fixed(
        frame,
        layer.kernel_size,
        layer.stride,
        layer.pool_kind if pool_kind is None else pool_kind,
        exact_average,
    )


def pipeline_reference(
    frame: np.ndarray,
    config: AcceleratorConfig,
    run: RunConfig,
    weights: dict,
    biases: dict,
    norm: NormalizationTable | None = None,
) -> np.ndarray:
    """
    Whole-pipeline reference up to the run's output tap.

    Args:
        frame: (C, H, W) Q8.8 input
        config: Static configuration
        run: Run configuration (enables, activation, pool kind, tap)
        weights, biases: Per convolution StageId parameter arrays
        norm: Normalization table (identity if None)

    Returns:
        Tap output, or an empty array if any stage up to the tap is disabled
    """
    tap = StageId(run.output_tap)
    if not all(run.stage_enabled(stage) for stage in StageId if stage <= tap):
        return np.zeros((0,), dtype=np.int16)

    x = np.asarray(frame, dtype=np.int16)
    if norm is not None:
        x = norm.apply_frame(x)

    for stage in StageId:
        if stage > tap:
            break
        x = layer_forward(
            x,
            config.layer(stage),
            weights.get(stage),
            biases.get(stage),
            activation=run.activation,
            pool_kind=run.pool_kind,
            exact_average=config.exact_average,
            aligned_bias=config.aligned_bias,
        )
    return x
