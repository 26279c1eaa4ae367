"""
Unit tests for the streaming ConvolutionEngine.

These tests verify:
1. Bit-exact agreement with the whole-frame fixed-point reference
2. Quantization error against the float model stays within one LSB
3. Output order, framing flags and counts
4. Raw and aligned bias, saturation and activation
5. Parameter writes, bulk loads and out-of-range rejection
6. Restart on a start-of-frame flag mid-frame
7. 5×5 kernels and strided convolution
8. Unconfigured stages refuse input
"""

import numpy as np
import pytest

from streamcnn.config import ActivationKind, conv_layer
from streamcnn.errors import ConfigurationError, StreamProtocolError
from streamcnn.fixedpoint import q88
from streamcnn.patterns import alternating_weights, ramp_frame, random_biases, random_weights
from streamcnn.reference import conv2d_fixed, conv2d_float
from streamcnn.stencil import ConvolutionEngine
from streamcnn.stream import FrameSource, ResultSink, StreamItem, frame_to_items


def make_engine(in_channels, filters, kernel_size=3, stride=1, padding=1, max_width=16):
    layer = conv_layer(in_channels, filters, kernel_size, stride, padding, ActivationKind.NONE)
    return ConvolutionEngine(layer, max_width=max_width)


# =============================================================================
# Reference Agreement
# =============================================================================


class TestConvolutionReference:
    """Compare the streaming engine with the whole-frame model."""

    def test_scenario_alternating_weights(self, drive_stage):
        """Test 3→4 filters, alternating weights, zero bias, ramp input, ReLU."""
        engine = make_engine(3, 4)
        weights = alternating_weights(4, 3, 3)
        engine.load_weights(weights)
        frame = ramp_frame(3, 8, 8)
        engine.configure(frame.shape, activation=ActivationKind.RELU)

        sink = drive_stage(engine, frame)

        assert sink.count == 4 * 8 * 8
        out = sink.to_frame(4, 8, 8)
        assert (out >= 0).all()
        expected = conv2d_fixed(frame, weights, np.zeros(4), 1, 1, ActivationKind.RELU)
        assert np.array_equal(out, expected)

    @pytest.mark.parametrize("activation", [ActivationKind.NONE, ActivationKind.RELU, ActivationKind.TANH])
    def test_random_parameters(self, drive_stage, rng, activation):
        """Test random weights, biases and inputs match bit for bit."""
        engine = make_engine(2, 3)
        weights = random_weights((3, 2, 3, 3), rng)
        biases = random_biases(3, rng)
        engine.load_weights(weights)
        engine.load_biases(biases)
        frame = rng.integers(-1024, 1024, size=(2, 6, 7)).astype(np.int16)
        engine.configure(frame.shape, activation=activation)

        out = drive_stage(engine, frame).to_frame(3, 6, 7)

        assert np.array_equal(out, conv2d_fixed(frame, weights, biases, 1, 1, activation))

    def test_quantization_error_within_one_lsb(self, drive_stage, rng):
        """Test the fixed-point result is within 1/256 of the real-valued convolution."""
        engine = make_engine(3, 4)
        weights = random_weights((4, 3, 3, 3), rng)
        biases = random_biases(4, rng)
        engine.load_weights(weights)
        engine.load_biases(biases)
        frame = ramp_frame(3, 8, 8)
        engine.configure(frame.shape, activation=ActivationKind.RELU)

        out = q88.to_float_array(drive_stage(engine, frame).to_frame(4, 8, 8))
        exact = np.maximum(
            conv2d_float(
                q88.to_float_array(frame),
                q88.to_float_array(weights),
                # The bias adds to the Q16.16 accumulator, 1/256 of its Q8.8 value
                q88.to_float_array(biases) / q88.SCALE,
                stride=1,
                padding=1,
            ),
            0.0,
        )

        assert np.max(np.abs(out - exact)) <= 1.0 / q88.SCALE

    def test_kernel5(self, drive_stage, rng):
        """Test a 5×5 kernel with padding 2."""
        engine = make_engine(2, 2, kernel_size=5, padding=2)
        weights = random_weights((2, 2, 5, 5), rng)
        engine.load_weights(weights)
        frame = rng.integers(-512, 512, size=(2, 6, 6)).astype(np.int16)
        engine.configure(frame.shape)

        out = drive_stage(engine, frame).to_frame(2, 6, 6)

        assert np.array_equal(out, conv2d_fixed(frame, weights, np.zeros(2), 1, 2))
        assert engine.ops_per_output == 25

    def test_kernel5_strided(self, drive_stage, rng):
        """Test K=5, s=2, p=2 on an odd-sized frame."""
        engine = make_engine(2, 3, kernel_size=5, stride=2, padding=2)
        weights = random_weights((3, 2, 5, 5), rng)
        engine.load_weights(weights)
        frame = rng.integers(-512, 512, size=(2, 7, 9)).astype(np.int16)
        out_shape = engine.configure(frame.shape)

        assert out_shape == (3, 4, 5)
        out = drive_stage(engine, frame).to_frame(*out_shape)
        assert np.array_equal(out, conv2d_fixed(frame, weights, np.zeros(3), 2, 2))

    def test_valid_padding_strided(self, drive_stage, rng):
        """Test K=3, s=2, p=0 shrinks the frame."""
        engine = make_engine(1, 2, stride=2, padding=0)
        weights = random_weights((2, 1, 3, 3), rng)
        engine.load_weights(weights)
        frame = rng.integers(-512, 512, size=(1, 8, 8)).astype(np.int16)
        out_shape = engine.configure(frame.shape)

        assert out_shape == (2, 3, 3)
        out = drive_stage(engine, frame).to_frame(*out_shape)
        assert np.array_equal(out, conv2d_fixed(frame, weights, np.zeros(2), 2, 0))


# =============================================================================
# Stream Behavior
# =============================================================================


class TestConvolutionStream:
    """Test ordering, flags and frame discipline."""

    def test_order_and_flags(self, drive_stage):
        """Test filter-major output with one start_of_frame and per-row end_of_row."""
        engine = make_engine(1, 2)
        engine.configure((1, 3, 4))
        sink = drive_stage(engine, np.zeros((1, 3, 4), dtype=np.int16))

        assert sink.count == 2 * 3 * 4
        assert [i for i, item in enumerate(sink.items) if item.start_of_frame] == [0]
        assert [i for i, item in enumerate(sink.items) if item.end_of_row] == list(range(3, 24, 4))
        assert engine.frames_completed == 1

    def test_filter_major_order(self, drive_stage):
        """Test all of filter 0 precedes filter 1."""
        engine = make_engine(1, 2)
        engine.write_bias(0, 10 << 8)
        engine.write_bias(1, 20 << 8)
        engine.configure((1, 2, 2))
        sink = drive_stage(engine, np.zeros((1, 2, 2), dtype=np.int16))
        assert sink.data == [10, 10, 10, 10, 20, 20, 20, 20]

    def test_backpressure_preserves_output(self, drive_stage, rng, random_ready_policy):
        """Test a randomly stalling consumer sees the same stream."""
        engine = make_engine(2, 3)
        engine.load_weights(random_weights((3, 2, 3, 3), rng))
        frame = rng.integers(-512, 512, size=(2, 5, 5)).astype(np.int16)

        engine.configure(frame.shape)
        free = drive_stage(engine, frame).items
        engine.configure(frame.shape)
        stalled = drive_stage(engine, frame, random_ready_policy(7, 0.3)).items

        assert stalled == free

    def test_two_frames_back_to_back(self, drive_stage, rng):
        """Test a second frame after the first completes starts fresh."""
        engine = make_engine(1, 1)
        engine.load_weights(random_weights((1, 1, 3, 3), rng))
        engine.configure((1, 4, 4))
        a = rng.integers(-256, 256, size=(1, 4, 4)).astype(np.int16)
        b = rng.integers(-256, 256, size=(1, 4, 4)).astype(np.int16)

        out_a = drive_stage(engine, a).to_frame(1, 4, 4)
        out_b = drive_stage(engine, b).to_frame(1, 4, 4)

        assert np.array_equal(out_a, conv2d_fixed(a, engine.weights, engine.bias, 1, 1))
        assert np.array_equal(out_b, conv2d_fixed(b, engine.weights, engine.bias, 1, 1))
        assert engine.frames_completed == 2

    def test_restart_on_start_of_frame(self, rng):
        """Test start_of_frame mid-frame discards the partial frame."""
        engine = make_engine(1, 1)
        engine.load_weights(random_weights((1, 1, 3, 3), rng))
        engine.configure((1, 4, 4))
        partial = rng.integers(-256, 256, size=(1, 4, 4)).astype(np.int16)
        full = rng.integers(-256, 256, size=(1, 4, 4)).astype(np.int16)

        # Five samples complete no window, so nothing from the partial frame escapes
        source = FrameSource(frame_to_items(partial)[:5] + frame_to_items(full))
        sink = ResultSink()
        for _ in range(1000):
            fire_in = source.valid() and engine.in_ready()
            fire_out = engine.out_valid() and sink.ready()
            if fire_out:
                sink.accept(engine.take())
            if fire_in:
                engine.accept(source.take())
            engine.step()
            sink.advance()
            if source.exhausted and engine.frame_complete:
                break

        expected = conv2d_fixed(full, engine.weights, engine.bias, 1, 1)
        assert np.array_equal(sink.to_frame(1, 4, 4), expected)

    def test_emits_from_accumulator_bank(self, drive_stage, rng):
        """Test finalized values are written back in place and streamed from the bank."""
        engine = make_engine(2, 3)
        engine.load_weights(random_weights((3, 2, 3, 3), rng))
        frame = rng.integers(-512, 512, size=(2, 4, 5)).astype(np.int16)
        engine.configure(frame.shape)

        out = drive_stage(engine, frame).to_frame(3, 4, 5)

        assert engine.finalized.all()
        assert np.array_equal(engine.accumulators, out)
        assert engine.accumulators.shape == (3, 4, 5)

    def test_single_frame_in_flight(self):
        """Test in_ready stays low after the last input until the frame drains."""
        engine = make_engine(1, 1)
        engine.configure((1, 2, 2))
        for item in frame_to_items(np.zeros((1, 2, 2), dtype=np.int16)):
            assert engine.in_ready()
            engine.accept(item)

        assert not engine.in_ready()
        while not engine.frame_complete:
            engine.step()
            if engine.out_valid():
                engine.take()
        assert engine.in_ready()


# =============================================================================
# Arithmetic Edge Cases
# =============================================================================


class TestConvolutionArithmetic:
    """Test bias placement, saturation and activation placement."""

    def test_bias_only(self, drive_stage):
        """Test zero weights produce truncate(bias) everywhere."""
        engine = make_engine(1, 1)
        engine.write_bias(0, 100 << 8)
        engine.configure((1, 3, 3))
        assert drive_stage(engine, np.full((1, 3, 3), 500, dtype=np.int16)).data == [100] * 9

    def test_bias_adds_to_raw_accumulator(self, drive_stage):
        """Test a bias of 256 on a zero frame gives truncate(0 + 256) == 1."""
        engine = make_engine(1, 1)
        engine.write_bias(0, 256)
        engine.configure((1, 3, 3))
        out = drive_stage(engine, np.zeros((1, 3, 3), dtype=np.int16)).data
        assert out == [1] * 9
        assert out == conv2d_fixed(
            np.zeros((1, 3, 3)), engine.weights, engine.bias, 1, 1
        ).reshape(-1).tolist()

    def test_bias_below_one_lsb_vanishes(self, drive_stage):
        """Test a raw bias under 256 only moves the sum, not a zero output."""
        engine = make_engine(1, 1)
        engine.write_bias(0, 255)
        engine.configure((1, 2, 2))
        assert drive_stage(engine, np.zeros((1, 2, 2), dtype=np.int16)).data == [0] * 4

    def test_aligned_bias(self, drive_stage, rng):
        """Test aligned_bias adds bias << 8, matching the reference with the same flag."""
        layer = conv_layer(2, 3, activation=ActivationKind.NONE)
        engine = ConvolutionEngine(layer, max_width=16, aligned_bias=True)
        weights = random_weights((3, 2, 3, 3), rng)
        engine.load_weights(weights)
        engine.load_biases([256, -256, 7])
        frame = rng.integers(-512, 512, size=(2, 5, 5)).astype(np.int16)
        engine.configure(frame.shape)

        out = drive_stage(engine, frame).to_frame(3, 5, 5)

        aligned = conv2d_fixed(frame, weights, engine.bias, 1, 1, aligned_bias=True)
        raw = conv2d_fixed(frame, weights, engine.bias, 1, 1)
        assert np.array_equal(out, aligned)
        assert not np.array_equal(out, raw)

    def test_aligned_bias_only(self, drive_stage):
        """Test aligned_bias with zero input returns the bias itself."""
        layer = conv_layer(1, 1, activation=ActivationKind.NONE)
        engine = ConvolutionEngine(layer, max_width=16, aligned_bias=True)
        engine.write_bias(0, 256)
        engine.configure((1, 2, 2))
        assert drive_stage(engine, np.zeros((1, 2, 2), dtype=np.int16)).data == [256] * 4

    def test_negative_bias_relu(self, drive_stage):
        """Test ReLU is applied after the bias."""
        engine = make_engine(1, 1)
        engine.write_bias(0, -100)
        engine.configure((1, 2, 2), activation=ActivationKind.RELU)
        assert drive_stage(engine, np.zeros((1, 2, 2), dtype=np.int16)).data == [0] * 4

    def test_saturates_high_and_low(self, drive_stage):
        """Test large sums clamp to the Q8.8 range."""
        engine = make_engine(1, 2)
        engine.load_weights(np.stack([np.full((1, 3, 3), 32767), np.full((1, 3, 3), -32768)]))
        engine.configure((1, 3, 3))
        out = drive_stage(engine, np.full((1, 3, 3), 32767, dtype=np.int16)).to_frame(2, 3, 3)
        assert (out[0] == q88.Q88_MAX).all()
        assert (out[1] == q88.Q88_MIN).all()

    def test_truncation_floors(self, drive_stage):
        """Test the >> 8 rounds toward negative infinity."""
        engine = make_engine(1, 1, padding=0)
        engine.write_weight(0, 0, 1, 1, 128)
        engine.configure((1, 3, 3))
        frame = np.zeros((1, 3, 3), dtype=np.int16)
        frame[0, 1, 1] = -3
        # -3 * 0.5 = -1.5 floors to -2 LSB
        assert drive_stage(engine, frame).data == [-2]


# =============================================================================
# Parameters and Configuration
# =============================================================================


class TestConvolutionParameters:
    """Test weight/bias storage and configuration checks."""

    def test_write_weight_in_range(self):
        """Test a single weight write lands at (f, c, ky, kx)."""
        engine = make_engine(2, 3)
        assert engine.write_weight(2, 1, 0, 2, 77)
        assert engine.weights[2, 1, 0, 2] == 77

    @pytest.mark.parametrize("index", [(3, 0, 0, 0), (0, 2, 0, 0), (0, 0, 3, 0), (0, 0, 0, -1)])
    def test_write_weight_out_of_range(self, index):
        """Test out-of-range weight writes are rejected without side effects."""
        engine = make_engine(2, 3)
        assert not engine.write_weight(*index, 5)
        assert not engine.weights.any()

    def test_write_bias_out_of_range(self):
        """Test out-of-range bias writes are rejected."""
        engine = make_engine(1, 2)
        assert not engine.write_bias(2, 5)
        assert not engine.bias.any()

    def test_writes_saturate(self):
        """Test parameter writes clamp to int16."""
        engine = make_engine(1, 1)
        engine.write_weight(0, 0, 0, 0, 100000)
        engine.write_bias(0, -100000)
        assert engine.weights[0, 0, 0, 0] == q88.Q88_MAX
        assert engine.bias[0] == q88.Q88_MIN

    def test_flat_layout(self, rng):
        """Test flat weights use index (c·K + ky)·K + kx."""
        engine = make_engine(2, 2)
        weights = random_weights((2, 2, 3, 3), rng)
        engine.load_weights(weights.reshape(2, -1))
        flat = engine.flat_weights(1)
        assert flat[(1 * 3 + 2) * 3 + 0] == weights[1, 1, 2, 0]
        assert np.array_equal(engine.weights, weights)

    def test_channel_mismatch(self):
        """Test configuring with the wrong channel count raises."""
        with pytest.raises(ConfigurationError):
            make_engine(3, 4).configure((2, 8, 8))

    def test_width_exceeds_line_buffer(self):
        """Test configuring wider than the line buffer raises."""
        with pytest.raises(ConfigurationError):
            make_engine(1, 1, max_width=8).configure((1, 4, 9))

    def test_line_buffer_size(self):
        """Test the line buffer holds K rows per input channel."""
        engine = make_engine(3, 4, kernel_size=5, padding=2, max_width=16)
        assert engine.lines.capacity == 3 * 5 * 16

    def test_unconfigured_never_ready(self):
        """Test a stage with no input shape refuses items instead of indexing by zero."""
        engine = make_engine(1, 1)
        assert not engine.in_ready()
        with pytest.raises(StreamProtocolError):
            engine.accept(StreamItem(data=1, start_of_frame=True))
        assert engine.received == 0
