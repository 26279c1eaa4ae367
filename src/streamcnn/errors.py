"""
Error taxonomy for the streaming CNN accelerator.

Saturation is not an error: fixed-point overflow clamps silently. Everything
here is either rejected at configure time, a phase violation, or a run that
failed to drain in time.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Error codes reported in the status snapshot."""

    NONE = 0x00
    INVALID_DIMS = 0x01  # Dimensions are zero or too large
    INVALID_CONFIG = 0x02  # Bad enable mask, tap, or layer geometry
    PARAMETER_RANGE = 0x03  # Parameter index outside the table (strict mode only)
    TIMEOUT = 0x04  # Result stream not drained before the deadline
    BUSY = 0x05  # Command or write rejected while a run is active
    NOT_CONFIGURED = 0x06  # START issued without a configuration


class AcceleratorError(Exception):
    """Base class for all accelerator errors."""

    code: ErrorCode = ErrorCode.NONE

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ConfigurationError(AcceleratorError, ValueError):
    """Run configuration rejected before the run starts."""

    code = ErrorCode.INVALID_CONFIG


class ParameterIndexError(AcceleratorError, IndexError):
    """Parameter write outside the table bounds (strict loaders only)."""

    code = ErrorCode.PARAMETER_RANGE


class AcceleratorBusyError(AcceleratorError):
    """Operation not allowed while the pipeline is loading, running or draining."""

    code = ErrorCode.BUSY


class InferenceTimeoutError(AcceleratorError, TimeoutError):
    """Result stream did not drain within the deadline."""

    code = ErrorCode.TIMEOUT


class StreamProtocolError(AcceleratorError):
    """A stage was pushed while not ready, or popped while empty."""
