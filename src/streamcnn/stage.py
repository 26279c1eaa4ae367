"""
Common interface for streaming compute stages.

Every stage in the pipeline exposes the same handshake surface:

    in_ready()   can accept an item this step
    accept(item) take one item (only when in_ready() was true)
    out_valid()  has an item for downstream
    peek()/take() inspect / remove the head output item
    step()       advance internal state by one clock

Frame discipline:
    A stage holds at most one frame. Once every input item of a frame has
    arrived, in_ready() stays low until every output item of that frame has
    been taken downstream. A start_of_frame flag in the middle of a frame
    restarts the stage and discards the partial frame.

An enabled stage that has not been configured is never ready.

Disabled stages report ready unconditionally, discard whatever they are
given, and never assert valid. That keeps upstream stages from stalling.
"""

import logging
from math import prod

from .errors import StreamProtocolError
from .stream import Fifo, StreamItem

logger = logging.getLogger(__name__)


class Stage:
    """
    Base class for pipeline stages.

    Subclasses implement _output_shape(), _consume(), and optionally
    _advance() and _reset_state().
    """

    ops_per_output = 0
    """Multiply-accumulate operations credited per emitted item."""

    def __init__(self, name: str, fifo_depth: int = 2):
        self.name = name
        self.enabled = True
        self.out_fifo = Fifo(fifo_depth)

        self.in_shape: tuple[int, int, int] = (0, 0, 0)
        self.out_shape: tuple[int, int, int] = (0, 0, 0)

        # Per-frame counters
        self.received = 0
        self.emitted = 0

        # Lifetime counters
        self.frames_completed = 0
        self.discarded = 0

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(self, in_shape: tuple[int, int, int], enabled: bool = True) -> tuple:
        """Set the input (C, H, W) for the next run and reset. Returns the output shape."""
        self.in_shape = tuple(int(d) for d in in_shape)
        self.out_shape = self._output_shape(self.in_shape)
        self.enabled = enabled
        self.reset()
        return self.out_shape

    def _output_shape(self, in_shape: tuple[int, int, int]) -> tuple[int, int, int]:
        raise NotImplementedError

    @property
    def in_count(self) -> int:
        """Input items per frame."""
        return prod(self.in_shape)

    @property
    def out_count(self) -> int:
        """Output items per frame."""
        return prod(self.out_shape)

    # =========================================================================
    # Frame Status
    # =========================================================================

    @property
    def input_complete(self) -> bool:
        return self.in_count > 0 and self.received >= self.in_count

    @property
    def frame_complete(self) -> bool:
        """All output items of the current frame have been taken."""
        return self.input_complete and self.emitted >= self.out_count

    # =========================================================================
    # Handshake
    # =========================================================================

    def in_ready(self) -> bool:
        if not self.enabled:
            return True
        if self.in_count == 0:
            return False
        if self.input_complete and not self.frame_complete:
            return False
        return self._has_room()

    def _has_room(self) -> bool:
        return not self.out_fifo.full

    def accept(self, item: StreamItem) -> None:
        if not self.enabled:
            self.discarded += 1
            return
        if not self.in_ready():
            raise StreamProtocolError(f"{self.name}: accept while not ready")

        if item.start_of_frame:
            if 0 < self.received < self.in_count:
                logger.warning(
                    "%s: start of frame after %d of %d items, restarting",
                    self.name,
                    self.received,
                    self.in_count,
                )
            self._start_frame()
        elif self.input_complete:
            self._start_frame()

        index = self.received
        self.received += 1
        self._consume(index, item)

    def out_valid(self) -> bool:
        return self.enabled and not self.out_fifo.empty

    def peek(self) -> StreamItem:
        return self.out_fifo.peek()

    def take(self) -> StreamItem:
        item = self.out_fifo.pop()
        self.emitted += 1
        if self.emitted == self.out_count and self.input_complete:
            self.frames_completed += 1
        return item

    def step(self) -> None:
        """Advance one clock."""
        if self.enabled:
            self._advance()

    def reset(self) -> None:
        """Return to the post-configure state, discarding any partial frame."""
        self.out_fifo.clear()
        self.received = 0
        self.emitted = 0
        self._reset_state()

    # =========================================================================
    # Subclass Hooks
    # =========================================================================

    def _start_frame(self) -> None:
        self.out_fifo.clear()
        self.received = 0
        self.emitted = 0
        self._reset_state()

    def _consume(self, index: int, item: StreamItem) -> None:
        raise NotImplementedError

    def _advance(self) -> None:
        pass

    def _reset_state(self) -> None:
        pass

    def stream_position(self, index: int) -> tuple[int, int, int]:
        """(channel, row, col) of the index-th input item of a frame."""
        _, height, width = self.in_shape
        plane = height * width
        channel, rem = divmod(index, plane)
        row, col = divmod(rem, width)
        return channel, row, col

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.name!r}, enabled={self.enabled}, "
            f"in={self.in_shape}, out={self.out_shape})"
        )
