"""Shared fixtures for the unit tests."""

import numpy as np
import pytest

from streamcnn.stream import FrameSource, ResultSink


def run_stage(stage, frame, ready_policy=None, max_steps=100_000):
    """
    Stream one frame through a configured stage into a ResultSink.

    Uses the same sample-then-transfer-then-step clocking as the
    interconnect. Returns the sink once the stage has drained its frame.
    """
    source = FrameSource.from_frame(frame)
    sink = ResultSink(ready_policy)
    for _ in range(max_steps):
        fire_in = source.valid() and stage.in_ready()
        fire_out = stage.out_valid() and sink.ready()
        if fire_out:
            sink.accept(stage.take())
        if fire_in:
            stage.accept(source.take())
        stage.step()
        sink.advance()
        if source.exhausted and stage.frame_complete:
            return sink
    raise AssertionError(f"{stage.name} did not drain within {max_steps} steps")


@pytest.fixture
def drive_stage():
    """The run_stage helper as a fixture."""
    return run_stage


@pytest.fixture
def rng():
    """Deterministic random generator."""
    return np.random.default_rng(1234)


def random_ready(seed: int, probability: float = 0.5):
    """A ready_policy that accepts on a random subset of cycles."""
    gen = np.random.default_rng(seed)
    cache: dict[int, bool] = {}

    def policy(cycle: int) -> bool:
        if cycle not in cache:
            cache[cycle] = bool(gen.random() < probability)
        return cache[cycle]

    return policy


@pytest.fixture
def random_ready_policy():
    """Factory for random sink ready policies."""
    return random_ready
