"""
Test frame and parameter generators.

RGB patterns are produced as 8-bit (H, W, 3) images and converted to Q8.8
(3, H, W) frames with rgb_to_frame, which places each 8-bit pixel in the
fractional byte (pixel / 256).
"""

from enum import IntEnum

import numpy as np


class Pattern(IntEnum):
    """Built-in RGB test patterns."""

    GRADIENT = 0
    CHECKERBOARD = 1
    NOISE = 2
    SOLID = 3


CHECKER_SIZE = 16
SOLID_LEVEL = 128


def generate_rgb(pattern: Pattern, width: int, height: int, rng=None) -> np.ndarray:
    """
    Generate an 8-bit RGB test image.

    GRADIENT:     R ramps horizontally, G vertically, B constant 128
    CHECKERBOARD: 16×16 black/white squares
    NOISE:        uniform random bytes
    SOLID:        mid-grey
    """
    ys, xs = np.mgrid[0:height, 0:width]
    image = np.zeros((height, width, 3), dtype=np.uint8)
    pattern = Pattern(pattern)

    if pattern is Pattern.GRADIENT:
        image[..., 0] = (xs * 255) // width
        image[..., 1] = (ys * 255) // height
        image[..., 2] = SOLID_LEVEL
    elif pattern is Pattern.CHECKERBOARD:
        white = ((xs // CHECKER_SIZE) + (ys // CHECKER_SIZE)) % 2 == 0
        image[white] = 255
    elif pattern is Pattern.NOISE:
        rng = np.random.default_rng() if rng is None else rng
        image[...] = rng.integers(0, 256, size=image.shape, dtype=np.uint8)
    else:
        image[...] = SOLID_LEVEL
    return image


def rgb_to_frame(image: np.ndarray) -> np.ndarray:
    """(H, W, 3) uint8 image to a (3, H, W) Q8.8 frame."""
    return np.ascontiguousarray(np.asarray(image, dtype=np.int16).transpose(2, 0, 1))


def pattern_frame(pattern: Pattern, width: int, height: int, seed: int | None = None) -> np.ndarray:
    return rgb_to_frame(generate_rgb(pattern, width, height, np.random.default_rng(seed)))


def pattern_sequence(width: int, height: int, count: int | None = None, seed: int | None = None):
    """
    Yield (index, pattern, frame) for a stream of test frames.

    Frame i uses Pattern(i % 4), so the sequence cycles gradient,
    checkerboard, noise, solid. Runs forever when count is None.
    """
    rng = np.random.default_rng(seed)
    index = 0
    while count is None or index < count:
        pattern = Pattern(index % len(Pattern))
        yield index, pattern, rgb_to_frame(generate_rgb(pattern, width, height, rng))
        index += 1


def ramp_frame(channels: int, height: int, width: int, step: int = 16) -> np.ndarray:
    """Ascending frame with sample (x + y + 32·c) · step."""
    cs, ys, xs = np.mgrid[0:channels, 0:height, 0:width]
    return ((xs + ys + 32 * cs) * step).astype(np.int16)


def alternating_weights(
    filters: int, channels: int, kernel_size: int, high: int = 256, low: int = -128
) -> np.ndarray:
    """(F, C, K, K) weights alternating high/low along each filter's flat table."""
    per_filter = channels * kernel_size * kernel_size
    flat = np.where(np.arange(per_filter) % 2 == 0, high, low).astype(np.int16)
    return np.broadcast_to(flat, (filters, per_filter)).reshape(
        filters, channels, kernel_size, kernel_size
    ).copy()


def random_weights(shape, rng=None) -> np.ndarray:
    """Small Q8.8 weights in [-0.5, 0.5)."""
    rng = np.random.default_rng() if rng is None else rng
    return rng.integers(-128, 128, size=shape).astype(np.int16)


def random_biases(count: int, rng=None) -> np.ndarray:
    """Small Q8.8 biases in [-32, 32) raw."""
    rng = np.random.default_rng() if rng is None else rng
    return rng.integers(-32, 32, size=count).astype(np.int16)
