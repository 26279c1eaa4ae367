"""
Stream items, bounded FIFOs, and the frame source / result sink endpoints.

A feature map travels as a sequence of StreamItems in channel-major,
row-major order: the full (H, W) plane of channel 0, then channel 1, and so
on. The first item of a frame carries start_of_frame; the last column of
every row carries end_of_row.

Handshake model:
    A transfer between a producer and a consumer happens in a step only when
    the producer is valid and the consumer is ready, both sampled at the
    start of that step.
"""

from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import numpy as np

from .errors import StreamProtocolError


@dataclass(frozen=True)
class StreamItem:
    """One sample on a stream with its framing flags."""

    data: int
    start_of_frame: bool = False
    end_of_row: bool = False


def frame_to_items(frame: np.ndarray) -> list[StreamItem]:
    """Serialize a (C, H, W) feature map into stream order."""
    frame = np.asarray(frame)
    if frame.ndim == 2:
        frame = frame[np.newaxis]
    channels, height, width = frame.shape
    items = []
    for c in range(channels):
        for y in range(height):
            for x in range(width):
                items.append(
                    StreamItem(
                        data=int(frame[c, y, x]),
                        start_of_frame=(c == 0 and y == 0 and x == 0),
                        end_of_row=(x == width - 1),
                    )
                )
    return items


def items_to_frame(
    items: Iterable[StreamItem], channels: int, height: int, width: int
) -> np.ndarray:
    """Reassemble stream items into a (C, H, W) int16 array."""
    data = np.array([item.data for item in items], dtype=np.int16)
    expected = channels * height * width
    if data.size != expected:
        raise ValueError(f"expected {expected} items, got {data.size}")
    return data.reshape(channels, height, width)


class Fifo:
    """
    Bounded first-in first-out queue of stream items.

    Pushing into a full FIFO or popping an empty one is a protocol violation
    and raises StreamProtocolError; callers check full/empty first.
    """

    def __init__(self, capacity: int):
        assert capacity >= 1, "FIFO capacity must be at least 1"
        self.capacity = capacity
        self._items: deque[StreamItem] = deque()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def empty(self) -> bool:
        return not self._items

    @property
    def full(self) -> bool:
        return len(self._items) >= self.capacity

    @property
    def free(self) -> int:
        return self.capacity - len(self._items)

    def push(self, item: StreamItem) -> None:
        if self.full:
            raise StreamProtocolError("push into full FIFO")
        self._items.append(item)

    def peek(self) -> StreamItem:
        if self.empty:
            raise StreamProtocolError("peek on empty FIFO")
        return self._items[0]

    def pop(self) -> StreamItem:
        if self.empty:
            raise StreamProtocolError("pop from empty FIFO")
        return self._items.popleft()

    def clear(self) -> None:
        self._items.clear()


class FrameSource:
    """
    Upstream producer that offers one frame's items in order.

    The source never initiates anything; the pipeline pulls an item whenever
    its first stage is ready.
    """

    def __init__(self, items: Iterable[StreamItem] = ()):
        self._items: deque[StreamItem] = deque(items)
        self.sent = 0

    @classmethod
    def from_frame(cls, frame: np.ndarray) -> "FrameSource":
        return cls(frame_to_items(frame))

    @property
    def exhausted(self) -> bool:
        return not self._items

    def valid(self) -> bool:
        return bool(self._items)

    def peek(self) -> StreamItem:
        return self._items[0]

    def take(self) -> StreamItem:
        self.sent += 1
        return self._items.popleft()

    def clear(self) -> None:
        self._items.clear()


class ResultSink:
    """
    Downstream consumer that collects the final stream.

    `ready_policy(cycle)` decides whether the sink accepts on a given cycle;
    the default accepts every cycle.
    """

    def __init__(self, ready_policy: Callable[[int], bool] | None = None):
        self.ready_policy = ready_policy
        self.items: list[StreamItem] = []
        self.cycle = 0

    def ready(self) -> bool:
        if self.ready_policy is None:
            return True
        return bool(self.ready_policy(self.cycle))

    def accept(self, item: StreamItem) -> None:
        self.items.append(item)

    def advance(self) -> None:
        """Move to the next cycle (called once per pipeline step)."""
        self.cycle += 1

    def clear(self) -> None:
        self.items.clear()

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def data(self) -> list[int]:
        return [item.data for item in self.items]

    def to_frame(self, channels: int, height: int, width: int) -> np.ndarray:
        return items_to_frame(self.items, channels, height, width)
