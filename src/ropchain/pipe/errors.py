"""Failure types recorded by chains.

Failures are ordinary exception instances.  They are stored in a Result's
failure ledger rather than raised, except where noted.
"""
from typing import Any, Optional


class RopError(Exception):
    """Base class for failures produced by ropchain itself."""


class NoProcessorError(RopError):
    """A chain was built without any steps."""

    def __init__(self, message: str = "ErrNoProcessor"):
        super().__init__(message)


class InvalidStepError(RopError):
    """A step did not match any recognized shape."""

    def __init__(self, step: Any):
        self.step = step
        self.step_type = type(step).__name__
        super().__init__(f"invalid step type: {self.step_type}")


class RecoveredError(RopError):
    """An exception raised inside a supervised part of a chain, caught and recorded."""

    def __init__(self, cause: BaseException, label: Optional[str] = None):
        self.cause = cause
        self.label = label or "RECOVERED"
        super().__init__(self.label)


class ChannelClosedError(RopError):
    """Raised when putting an item on a closed channel."""
