"""
Normalization Unit (RTL).

Registered stream unit computing

    out = saturating_add(truncate(in_data * scale[in_channel]), bias[in_channel])

with scale/bias held in two small RAMs indexed by channel. The parameter
write port ignores channels beyond the table; samples tagged with such a
channel pass through unchanged.
"""

from amaranth import Module, Mux, Signal, unsigned
from amaranth.lib.memory import Memory
from amaranth.lib.wiring import Component, In, Out

from ..fixedpoint import hdl, q88

CHANNEL_BITS = 8
"""Width of the channel index ports."""


class NormalizationUnit(Component):
    """
    Stream normalization unit.

    Ports:
        # Input stream
        in_valid, in_ready, in_data, in_sof, in_eor
        in_channel: Channel index of in_data

        # Output stream
        out_valid, out_ready, out_data, out_sof, out_eor

        # Parameter write port
        wr_en: Write enable
        wr_channel: Target channel
        wr_scale: Q8.8 scale
        wr_bias: Q8.8 bias
    """

    def __init__(self, channels: int = 64):
        """
        Initialize the normalization unit.

        Args:
            channels: Parameter table depth
        """
        assert 1 <= channels <= (1 << CHANNEL_BITS), "channels must fit the index port"
        self.channels = channels

        super().__init__(
            {
                # Input stream
                "in_valid": In(1),
                "in_ready": Out(1),
                "in_data": In(hdl.SAMPLE_SHAPE),
                "in_channel": In(unsigned(CHANNEL_BITS)),
                "in_sof": In(1),
                "in_eor": In(1),
                # Output stream
                "out_valid": Out(1),
                "out_ready": In(1),
                "out_data": Out(hdl.SAMPLE_SHAPE),
                "out_sof": Out(1),
                "out_eor": Out(1),
                # Parameter write port
                "wr_en": In(1),
                "wr_channel": In(unsigned(CHANNEL_BITS)),
                "wr_scale": In(hdl.SAMPLE_SHAPE),
                "wr_bias": In(hdl.SAMPLE_SHAPE),
            }
        )

    def elaborate(self, _platform):
        m = Module()

        # =====================================================================
        # Parameter Tables
        # =====================================================================

        scale_mem = Memory(shape=hdl.SAMPLE_SHAPE, depth=self.channels, init=[q88.ONE] * self.channels)
        bias_mem = Memory(shape=hdl.SAMPLE_SHAPE, depth=self.channels, init=[])
        m.submodules.scale_mem = scale_mem
        m.submodules.bias_mem = bias_mem

        scale_rd = scale_mem.read_port(domain="comb")
        bias_rd = bias_mem.read_port(domain="comb")
        scale_wr = scale_mem.write_port()
        bias_wr = bias_mem.write_port()

        wr_in_range = Signal(name="wr_in_range")
        m.d.comb += wr_in_range.eq(self.wr_channel < self.channels)

        m.d.comb += [
            scale_wr.addr.eq(self.wr_channel),
            scale_wr.data.eq(self.wr_scale),
            scale_wr.en.eq(self.wr_en & wr_in_range),
            bias_wr.addr.eq(self.wr_channel),
            bias_wr.data.eq(self.wr_bias),
            bias_wr.en.eq(self.wr_en & wr_in_range),
        ]

        # =====================================================================
        # Datapath
        # =====================================================================

        in_range = Signal(name="in_range")
        product = Signal(hdl.PRODUCT_SHAPE, name="product")
        scaled = Signal(hdl.SAMPLE_SHAPE, name="scaled")
        normed = Signal(hdl.SAMPLE_SHAPE, name="normed")

        m.d.comb += [
            in_range.eq(self.in_channel < self.channels),
            scale_rd.addr.eq(self.in_channel),
            bias_rd.addr.eq(self.in_channel),
            product.eq(self.in_data * scale_rd.data),
            scaled.eq(hdl.truncate(product)),
            normed.eq(hdl.saturating_add(scaled, bias_rd.data)),
        ]

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
                self.out_data.eq(Mux(in_range, normed, self.in_data)),
                self.out_sof.eq(self.in_sof),
                self.out_eor.eq(self.in_eor),
                self.out_valid.eq(1),
            ]
        with m.Elif(self.out_ready):
            m.d.sync += self.out_valid.eq(0)

        return m
