"""
Pipeline Controller.

Top-level sequencer for one inference run:

    ┌──────┐ START ┌─────────────────┐      ┌─────────┐ last conv  ┌──────────┐
    │ IDLE │──────►│ LOAD_PARAMETERS │─────►│ RUNNING │───────────►│ DRAINING │
    └──────┘       └─────────────────┘      └─────────┘  complete  └────┬─────┘
       ▲  ▲                 │ STOP              │ STOP                  │ sink
       │  └─────────────────┴───────────────────┘                       │ complete
       │                                                                ▼
       │                         one cycle                        ┌──────────┐
       └──────────────────────────────────────────────────────────│   DONE   │
                                                                  └──────────┘

Commands are discrete events: submit() queues them and the next tick()
consumes them. RESET is honored in every state.

Performance counters:
    cycles      ticks spent in RUNNING or DRAINING
    operations  K² for every convolution output transferred
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum, IntEnum

from ..config import RunConfig
from ..errors import AcceleratorBusyError, ErrorCode
from ..stream import FrameSource, ResultSink
from .interconnect import LayerInterconnect

logger = logging.getLogger(__name__)


class ControllerState(IntEnum):
    """Controller FSM states."""

    IDLE = 0
    LOAD_PARAMETERS = 1
    RUNNING = 2
    DRAINING = 3
    DONE = 4


class Command(Enum):
    """Host command events."""

    START = "start"
    STOP = "stop"
    RESET = "reset"


BUSY_STATES = frozenset(
    {ControllerState.LOAD_PARAMETERS, ControllerState.RUNNING, ControllerState.DRAINING}
)


@dataclass(frozen=True)
class Status:
    """Snapshot of the controller status surface."""

    state: ControllerState
    busy: bool
    done: bool
    error_code: ErrorCode
    cycles: int
    operations: int


class PipelineController:
    """
    Sequences configuration, streaming and draining of one frame.

    Args:
        interconnect: The stage chain to drive
    """

    def __init__(self, interconnect: LayerInterconnect):
        self.interconnect = interconnect
        self.state = ControllerState.IDLE
        self.run_config: RunConfig | None = None
        self.error_code = ErrorCode.NONE
        self.cycles = 0
        self.operations = 0
        self.completed_runs = 0

        self.source = FrameSource()
        self.sink = ResultSink()
        self._commands: deque[Command] = deque()

    # =========================================================================
    # Host Interface
    # =========================================================================

    @property
    def busy(self) -> bool:
        return self.state in BUSY_STATES

    @property
    def done(self) -> bool:
        return self.state is ControllerState.DONE

    @property
    def pending_commands(self) -> int:
        return len(self._commands)

    def configure(self, run: RunConfig) -> None:
        """Latch a run configuration. Only allowed while idle."""
        if self.state is not ControllerState.IDLE:
            raise AcceleratorBusyError(f"cannot configure in state {self.state.name}")
        run.validate(self.interconnect.config)
        self.run_config = run
        logger.debug("run configuration latched: %s", run)

    def attach(self, source: FrameSource, sink: ResultSink) -> None:
        """Connect the input source and result sink for the next run."""
        if self.busy:
            raise AcceleratorBusyError("cannot swap stream endpoints while busy")
        self.source = source
        self.sink = sink

    def submit(self, command: Command) -> None:
        self._commands.append(Command(command))

    def status(self) -> Status:
        return Status(
            state=self.state,
            busy=self.busy,
            done=self.done,
            error_code=self.error_code,
            cycles=self.cycles,
            operations=self.operations,
        )

    def abort(self, error_code: ErrorCode = ErrorCode.NONE) -> None:
        """Drop the current run, return to IDLE, and record an error code."""
        self.interconnect.reset()
        self._commands.clear()
        self.error_code = error_code
        self._goto(ControllerState.IDLE)

    # =========================================================================
    # Clock
    # =========================================================================

    def tick(self) -> Status:
        """Advance one control cycle."""
        state = self.state
        while self._commands:
            self._handle(self._commands.popleft())
        if self.state is not state:
            return self.status()

        if state is ControllerState.LOAD_PARAMETERS:
            self.interconnect.configure(self.run_config)
            self._goto(ControllerState.RUNNING)

        elif state is ControllerState.RUNNING:
            self._step()
            if self.interconnect.compute_complete(self.source):
                self._goto(ControllerState.DRAINING)

        elif state is ControllerState.DRAINING:
            self._step()
            if self.interconnect.output_complete(self.source, self.sink):
                self.completed_runs += 1
                logger.info(
                    "inference complete: %d items in %d cycles, %d ops",
                    self.sink.count,
                    self.cycles,
                    self.operations,
                )
                self._goto(ControllerState.DONE)

        elif state is ControllerState.DONE:
            self._goto(ControllerState.IDLE)

        return self.status()

    def _step(self) -> None:
        result = self.interconnect.step(self.source, self.sink)
        self.cycles += 1
        self.operations += result.operations

    def _handle(self, command: Command) -> None:
        if command is Command.RESET:
            self.abort()
            self.cycles = 0
            self.operations = 0
        elif command is Command.STOP:
            if self.busy:
                logger.debug("stop requested in %s", self.state.name)
                self.interconnect.reset()
                self._goto(ControllerState.IDLE)
        elif command is Command.START:
            if self.state is not ControllerState.IDLE:
                logger.debug("start ignored in %s", self.state.name)
            elif self.run_config is None:
                logger.warning("start without a run configuration")
                self.error_code = ErrorCode.NOT_CONFIGURED
            else:
                self.error_code = ErrorCode.NONE
                self.cycles = 0
                self.operations = 0
                self._goto(ControllerState.LOAD_PARAMETERS)

    def _goto(self, state: ControllerState) -> None:
        if state is not self.state:
            logger.debug("controller %s -> %s", self.state.name, state.name)
        self.state = state
