"""
Pipe lifecycle events.

This module provides the event types emitted as a ``NamedPipe`` moves through
its states, and a small synchronous manager that delivers them to listeners.
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from fifostream.event_system import Event, EventLevel


class PipeEventType(Enum):
    """Pipe lifecycle event types."""

    CREATED = "created"
    REUSED = "reused"
    READY = "ready"
    DRAINING = "draining"
    CLOSED = "closed"
    ERROR = "error"


class PipeEvent(Event):
    """Pipe lifecycle event, specialised from Event."""

    def __init__(
        self,
        event_type: PipeEventType,
        path: str,
        timestamp: Optional[float] = None,
        message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Initialise pipe event."""
        level_mapping = {
            PipeEventType.ERROR: EventLevel.ERROR,
            PipeEventType.REUSED: EventLevel.DEBUG,
        }
        level = level_mapping.get(event_type, EventLevel.INFO)

        super().__init__(
            event_type=event_type.value,
            timestamp=timestamp if timestamp is not None else time.time(),
            component="NamedPipe",
            message=message or f"Pipe {path}: {event_type.value}",
            level=level,
            metadata=metadata or {},
            pipe_event_type=event_type,
            path=path,
        )


@runtime_checkable
class PipeEventListener(Protocol):
    """Protocol for pipe lifecycle listeners."""

    def on_pipe_event(self, event: PipeEvent) -> None:
        """Handle a pipe lifecycle event.

        Args:
            event: The pipe event
        """
        ...


class PipeEventManager:
    """Manages pipe event listeners and dispatching."""

    def __init__(self):
        """Initialise the event manager."""
        self._listeners: List[PipeEventListener] = []
        self._lock = threading.Lock()
        self._logger = logging.getLogger("fifostream.events")

    def add_listener(self, listener: PipeEventListener) -> None:
        """Add an event listener.

        Args:
            listener: The event listener to add
        """
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: PipeEventListener) -> None:
        """Remove an event listener.

        Args:
            listener: The event listener to remove
        """
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def get_listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def emit_event(self, event: PipeEvent) -> None:
        """Deliver an event to every listener, isolating listener failures.

        Args:
            event: The event to emit
        """
        with self._lock:
            current_listeners = self._listeners.copy()

        for listener in current_listeners:
            try:
                listener.on_pipe_event(event)
            except Exception:
                self._logger.error(
                    f"Error in pipe event listener {listener.__class__.__name__}",
                    exc_info=True,
                )
                continue
