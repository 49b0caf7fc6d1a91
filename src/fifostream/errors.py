"""
Error taxonomy for named pipe operations.

Every error that crosses the create or bridge boundary carries the pipe path
so failures can be traced back to a filesystem entry. Cleanup problems are
never raised; they are collected into a ``CleanupReport`` instead.
"""

from dataclasses import dataclass, field
from typing import List, Optional


class FifoStreamError(Exception):
    """Base class for all fifostream errors."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        """
        Initialise the error.

        Args:
            message: Human-readable description of the failure
            path: Filesystem path of the pipe involved, if known
            cause: Underlying exception, if any
        """
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"(pipe: {self.path})")
        if self.cause is not None:
            parts.append(f": {self.cause}")
        return " ".join(parts)


class ConfigurationError(FifoStreamError, ValueError):
    """Invalid pipe configuration."""


class CreationError(FifoStreamError):
    """Directory preparation or FIFO creation failed."""


class OpenError(FifoStreamError):
    """Opening the writer or reader handle failed."""


class NotReadyError(FifoStreamError):
    """Operation attempted while the pipe is not in a state that allows it."""


class WriteError(FifoStreamError):
    """OS-level failure while forwarding bytes into the FIFO."""


class ReadError(FifoStreamError):
    """OS-level failure while reading bytes out of the FIFO."""


class CleanupError(FifoStreamError):
    """Non-fatal failure during teardown. Reported, never raised by cleanup."""


@dataclass
class CleanupReport:
    """Outcome of a cleanup call."""

    path: str
    errors: List[CleanupError] = field(default_factory=list)
    removed_fifo: bool = False
    already_closed: bool = False

    @property
    def ok(self) -> bool:
        """True when every cleanup step completed without a diagnostic."""
        return not self.errors
