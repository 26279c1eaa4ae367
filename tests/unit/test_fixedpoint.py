"""
Unit tests for Q8.8 fixed-point arithmetic.

These tests verify:
1. Saturating addition never leaves the Q8.8 range
2. Multiply by 1.0 then truncate is the identity
3. Float conversion truncates toward zero and clamps
4. Array versions agree with the scalar versions
5. Amaranth builders agree with the software model
"""

import numpy as np
import pytest
from amaranth import Module, Signal, signed
from amaranth.sim import Simulator

from streamcnn.fixedpoint import hdl, q88

# =============================================================================
# Scalar Operations
# =============================================================================


class TestSaturation:
    """Test suite for saturate and saturating_add."""

    def test_saturate_bounds(self):
        """Test values beyond the range clamp exactly to the bounds."""
        assert q88.saturate(40000) == q88.Q88_MAX
        assert q88.saturate(-40000) == q88.Q88_MIN
        assert q88.saturate(123) == 123

    @pytest.mark.parametrize(
        "a,b",
        [
            (32767, 1),
            (32767, 32767),
            (-32768, -1),
            (-32768, -32768),
            (20000, 20000),
            (-20000, -20000),
            (100, -200),
            (0, 0),
        ],
    )
    def test_saturating_add(self, a, b):
        """Test saturating_add equals the clamped exact sum."""
        result = q88.saturating_add(a, b)
        assert q88.Q88_MIN <= result <= q88.Q88_MAX
        assert result == min(max(a + b, q88.Q88_MIN), q88.Q88_MAX)

    def test_saturating_add_exhaustive_edges(self):
        """Test every pair drawn from a grid that straddles both bounds."""
        grid = [-32768, -32767, -16384, -1, 0, 1, 16384, 32766, 32767]
        for a in grid:
            for b in grid:
                exact = a + b
                result = q88.saturating_add(a, b)
                if exact > q88.Q88_MAX:
                    assert result == q88.Q88_MAX
                elif exact < q88.Q88_MIN:
                    assert result == q88.Q88_MIN
                else:
                    assert result == exact


class TestMultiplyTruncate:
    """Test suite for multiply_accumulate and truncate."""

    def test_multiply_by_one_is_identity(self):
        """Test truncate(x * 1.0) == x for every representable x."""
        xs = np.arange(q88.Q88_MIN, q88.Q88_MAX + 1, dtype=np.int64)
        out = q88.truncate_array(q88.multiply_accumulate_array(xs, q88.ONE))
        assert np.array_equal(out.astype(np.int64), xs)

    def test_multiply_by_one_scalar(self):
        """Test the scalar path on a few samples."""
        for x in (q88.Q88_MIN, -257, -1, 0, 1, 255, 256, q88.Q88_MAX):
            assert q88.truncate(q88.multiply_accumulate(x, q88.ONE)) == x

    def test_accumulate_keeps_full_precision(self):
        """Test products are not rounded before accumulation."""
        # 0.5 * 0.5 = 0.25 -> 64 after truncation; two of them make 128
        acc = q88.multiply_accumulate(128, 128)
        acc = q88.multiply_accumulate(128, 128, acc)
        assert acc == 2 * 128 * 128
        assert q88.truncate(acc) == 128

    def test_truncate_floors_negative(self):
        """Test truncation is an arithmetic shift (floor), not toward zero."""
        assert q88.truncate(-1) == -1
        assert q88.truncate(-256) == -1
        assert q88.truncate(-257) == -2

    def test_truncate_saturates(self):
        """Test truncation clamps large accumulators."""
        assert q88.truncate(1 << 40) == q88.Q88_MAX
        assert q88.truncate(-(1 << 40)) == q88.Q88_MIN


class TestConversion:
    """Test suite for float <-> Q8.8 conversion."""

    def test_to_fixed(self):
        """Test basic conversions."""
        assert q88.to_fixed(1.0) == 256
        assert q88.to_fixed(-0.5) == -128
        assert q88.to_fixed(6.0) == 1536

    def test_to_fixed_truncates_toward_zero(self):
        """Test fractional LSBs are dropped toward zero."""
        assert q88.to_fixed(1.0 / 512) == 0
        assert q88.to_fixed(-1.0 / 512) == 0
        assert q88.to_fixed(-1.5 / 256) == -1

    def test_to_fixed_clamps(self):
        """Test out-of-range floats clamp to the int16 range."""
        assert q88.to_fixed(1000.0) == q88.Q88_MAX
        assert q88.to_fixed(-1000.0) == q88.Q88_MIN

    def test_to_float(self):
        """Test raw to float."""
        assert q88.to_float(384) == 1.5
        assert q88.to_float(-32768) == -128.0

    def test_array_conversion_matches_scalar(self):
        """Test vectorized conversion agrees with the scalar version."""
        values = np.linspace(-130.0, 130.0, 1001)
        expected = [q88.to_fixed(v) for v in values]
        assert q88.to_fixed_array(values).tolist() == expected


# =============================================================================
# Amaranth Builders
# =============================================================================


def _simulate_comb(fn, shapes, inputs):
    """Evaluate a combinational builder over a list of input tuples."""
    m = Module()
    args = [Signal(shape, name=f"in{i}") for i, shape in enumerate(shapes)]
    out = Signal(hdl.SAMPLE_SHAPE, name="out")
    m.d.comb += out.eq(fn(*args))

    results = []

    async def testbench(ctx):
        for values in inputs:
            for sig, value in zip(args, values):
                ctx.set(sig, value)
            results.append(ctx.get(out))

    sim = Simulator(m)
    sim.add_testbench(testbench)
    sim.run()
    return results


class TestHdlBuilders:
    """Test the Amaranth expression builders against the software model."""

    def test_saturate(self):
        """Test hdl.saturate on a 32-bit input."""
        values = [0, 1, -1, 32767, 32768, -32768, -32769, 1 << 20, -(1 << 20)]
        results = _simulate_comb(hdl.saturate, [signed(32)], [(v,) for v in values])
        assert results == [q88.saturate(v) for v in values]

    def test_saturating_add(self):
        """Test hdl.saturating_add on 16-bit operands."""
        pairs = [(30000, 30000), (-30000, -30000), (100, -50), (32767, 1), (-32768, -1)]
        results = _simulate_comb(hdl.saturating_add, [signed(16), signed(16)], pairs)
        assert results == [q88.saturating_add(a, b) for a, b in pairs]

    def test_truncate(self):
        """Test hdl.truncate on full-precision products."""
        values = [256 * 256, -256 * 256, -1, -257, 255, 1 << 28, -(1 << 28)]
        results = _simulate_comb(hdl.truncate, [signed(32)], [(v,) for v in values])
        assert results == [q88.truncate(v) for v in values]

    def test_clamp(self):
        """Test hdl.clamp with the ReLU6 bounds."""
        values = [-5, 0, 700, 1536, 1537, 20000]
        results = _simulate_comb(
            lambda x: hdl.clamp(x, 0, 1536), [signed(16)], [(v,) for v in values]
        )
        assert results == [min(max(v, 0), 1536) for v in values]
