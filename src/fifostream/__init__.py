"""
Fifostream - a named pipe (FIFO) exposed as an asyncio duplex byte stream.

This package creates (or attaches to) a FIFO, opens a writer and a reader on
it, and lets the surrounding program push bytes in and read them back out
with backpressure. Teardown removes the FIFO it created and releases both
handles, whether triggered explicitly, by end-of-stream, by an error, or by
SIGINT/SIGTERM.
"""

__version__ = "1.0.0"
__author__ = "David L Nugent"
__email__ = "davidn@uniquode.io"

from .config import PipeConfig, resolve_pipe_path
from .errors import (
    CleanupError,
    CleanupReport,
    ConfigurationError,
    CreationError,
    FifoStreamError,
    NotReadyError,
    OpenError,
    ReadError,
    WriteError,
)
from .named_pipe import NamedPipe, PipeState
from .pipe_events import PipeEvent, PipeEventListener, PipeEventType
from .signals import SignalRegistry, default_registry

__all__ = [
    "__version__",
    "__author__",
    "__email__",
    "CleanupError",
    "CleanupReport",
    "ConfigurationError",
    "CreationError",
    "FifoStreamError",
    "NamedPipe",
    "NotReadyError",
    "OpenError",
    "PipeConfig",
    "PipeEvent",
    "PipeEventListener",
    "PipeEventType",
    "PipeState",
    "ReadError",
    "SignalRegistry",
    "WriteError",
    "default_registry",
    "resolve_pipe_path",
]
