"""
Activation Unit (RTL).

A single-stage registered stream unit that applies the activation selected
by cfg_mode to every sample passing through. Sigmoid and tanh read from
ROM lookup tables; swish multiplies the sample by its sigmoid entry.

Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                      ACTIVATION UNIT                         │
    │                                                              │
    │  in_data ──┬──► relu / relu6 / leaky (muxes, shifts) ──┐     │
    │            │                                           │     │
    │            ├──► index ──► SIGMOID ROM ──┬──────────────┤     │
    │            │                            └─► x*sig >> 8 ┤     │
    │            └──► index ──► TANH ROM ────────────────────┤     │
    │                                                        ▼     │
    │                                  cfg_mode ──► result mux     │
    │                                                        │     │
    │                                                ┌───────▼───┐ │
    │                                                │ out reg   │ │
    │                                                └───────┬───┘ │
    └────────────────────────────────────────────────────────┼─────┘
                                                             ▼
                                                          out_data

The unit never reorders samples and has a fixed latency of one cycle.
"""

from amaranth import Module, Mux, Signal, signed, unsigned
from amaranth.lib.memory import Memory
from amaranth.lib.wiring import Component, In, Out

from ..config import ActivationKind
from ..fixedpoint import hdl
from .functions import (
    LEAKY_SHIFT,
    LUT_SIZE,
    RELU6_MAX,
    SIGMOID_INDEX_OFFSET,
    SIGMOID_INDEX_SHIFT,
    TANH_INDEX_OFFSET,
    TANH_INDEX_SHIFT,
    sigmoid_lut,
    tanh_lut,
)


class ActivationUnit(Component):
    """
    Stream activation unit.

    Ports:
        # Input stream
        in_valid: Input sample valid
        in_ready: Ready to accept input
        in_data: Q8.8 sample
        in_sof: Start of frame marker
        in_eor: End of row marker

        # Output stream
        out_valid: Output sample valid
        out_ready: Downstream ready
        out_data: Activated Q8.8 sample
        out_sof: Start of frame marker (delayed)
        out_eor: End of row marker (delayed)

        # Configuration
        cfg_mode: ActivationKind (3 bits)
    """

    def __init__(self):
        super().__init__(
            {
                # Input stream
                "in_valid": In(1),
                "in_ready": Out(1),
                "in_data": In(hdl.SAMPLE_SHAPE),
                "in_sof": In(1),
                "in_eor": In(1),
                # Output stream
                "out_valid": Out(1),
                "out_ready": In(1),
                "out_data": Out(hdl.SAMPLE_SHAPE),
                "out_sof": Out(1),
                "out_eor": Out(1),
                # Configuration
                "cfg_mode": In(unsigned(3)),
            }
        )

    def elaborate(self, _platform):
        m = Module()
        x = self.in_data

        # =====================================================================
        # Lookup Tables
        # =====================================================================

        sigmoid_rom = Memory(
            shape=hdl.SAMPLE_SHAPE, depth=LUT_SIZE, init=[int(v) for v in sigmoid_lut()]
        )
        tanh_rom = Memory(
            shape=hdl.SAMPLE_SHAPE, depth=LUT_SIZE, init=[int(v) for v in tanh_lut()]
        )
        m.submodules.sigmoid_rom = sigmoid_rom
        m.submodules.tanh_rom = tanh_rom

        sigmoid_rd = sigmoid_rom.read_port(domain="comb")
        tanh_rd = tanh_rom.read_port(domain="comb")

        # idx = clamp((x + offset) >> shift, 0, LUT_SIZE - 1)
        sigmoid_off = Signal(signed(18), name="sigmoid_off")
        tanh_off = Signal(signed(18), name="tanh_off")
        m.d.comb += [
            sigmoid_off.eq(x + SIGMOID_INDEX_OFFSET),
            tanh_off.eq(x + TANH_INDEX_OFFSET),
        ]

        sigmoid_idx = Signal(unsigned(8), name="sigmoid_idx")
        tanh_idx = Signal(unsigned(8), name="tanh_idx")
        m.d.comb += [
            sigmoid_idx.eq(
                Mux(
                    sigmoid_off < 0,
                    0,
                    Mux(
                        sigmoid_off >= (LUT_SIZE << SIGMOID_INDEX_SHIFT),
                        LUT_SIZE - 1,
                        sigmoid_off >> SIGMOID_INDEX_SHIFT,
                    ),
                )
            ),
            tanh_idx.eq(
                Mux(
                    tanh_off < 0,
                    0,
                    Mux(
                        tanh_off >= (LUT_SIZE << TANH_INDEX_SHIFT),
                        LUT_SIZE - 1,
                        tanh_off >> TANH_INDEX_SHIFT,
                    ),
                )
            ),
            sigmoid_rd.addr.eq(sigmoid_idx),
            tanh_rd.addr.eq(tanh_idx),
        ]

        # Swish: x * sigmoid(x) at full precision, then back to Q8.8
        swish_product = Signal(hdl.PRODUCT_SHAPE, name="swish_product")
        m.d.comb += swish_product.eq(x * sigmoid_rd.data)

        # =====================================================================
        # Mode Select
        # =====================================================================

        result = Signal(hdl.SAMPLE_SHAPE, name="result")

        with m.Switch(self.cfg_mode):
            with m.Case(ActivationKind.NONE.value):
                m.d.comb += result.eq(x)
            with m.Case(ActivationKind.RELU.value):
                m.d.comb += result.eq(Mux(x < 0, 0, x))
            with m.Case(ActivationKind.RELU6.value):
                m.d.comb += result.eq(hdl.clamp(x, 0, RELU6_MAX))
            with m.Case(ActivationKind.LEAKY_RELU.value):
                m.d.comb += result.eq(Mux(x < 0, x >> LEAKY_SHIFT, x))
            with m.Case(ActivationKind.SIGMOID.value):
                m.d.comb += result.eq(sigmoid_rd.data)
            with m.Case(ActivationKind.TANH.value):
                m.d.comb += result.eq(tanh_rd.data)
            with m.Case(ActivationKind.SWISH.value):
                m.d.comb += result.eq(hdl.truncate(swish_product))
            with m.Default():
                m.d.comb += result.eq(x)

        # =====================================================================
        # Output Register
        # =====================================================================

        in_xfer = Signal(name="in_xfer")
        m.d.comb += [
            self.in_ready.eq(~self.out_valid | self.out_ready),
            in_xfer.eq(self.in_valid & self.in_ready),
        ]

        with m.If(in_xfer):
            m.d.sync += [
                self.out_data.eq(result),
                self.out_sof.eq(self.in_sof),
                self.out_eor.eq(self.in_eor),
                self.out_valid.eq(1),
            ]
        with m.Elif(self.out_ready):
            m.d.sync += self.out_valid.eq(0)

        return m
