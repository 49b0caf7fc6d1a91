"""
General-purpose event system for structured logging.

Components log through a ``StructuredLogger``, which turns each message into
an ``Event`` and hands it to an ``EventManager``, which writes the event to the
``fifostream.events`` Python logger.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict, Optional


class EventLevel(Enum):
    """Standard event levels for application events."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Event:
    """Base class for all application events."""

    def __init__(
        self,
        event_type: str,
        timestamp: float,
        component: str,
        message: str,
        level: EventLevel = EventLevel.INFO,
        metadata: Optional[Dict[str, Any]] = None,
        **additional_attributes,
    ):
        """
        Initialise Event with optional additional attributes.

        Args:
            event_type: Type of the event
            timestamp: When the event occurred
            component: Component that generated the event
            message: Human-readable message
            level: Event level
            metadata: Additional metadata dictionary
            **additional_attributes: Any additional attributes to set on the event
        """
        object.__setattr__(self, "event_type", event_type)
        object.__setattr__(self, "timestamp", timestamp)
        object.__setattr__(self, "component", component)
        object.__setattr__(self, "message", message)
        object.__setattr__(self, "level", level)
        object.__setattr__(self, "metadata", metadata or {})

        for attr_name, attr_value in additional_attributes.items():
            object.__setattr__(self, attr_name, attr_value)

    def __setattr__(self, name, value):
        """Prevent modification after initialisation (frozen behaviour)."""
        raise AttributeError(f"can't set attribute '{name}'")


class EventManager:
    """Writes application events to the ``fifostream.events`` logger."""

    def __init__(self):
        self._python_logger = logging.getLogger("fifostream.events")

    def emit(self, event: Event) -> None:
        """Write an event as a single log record at the event's level."""
        log_method = getattr(self._python_logger, event.level.value)
        log_message = f"[{event.component}] {event.event_type}: {event.message}"
        if event.metadata:
            metadata_str = ", ".join(f"{k}={v}" for k, v in event.metadata.items())
            log_message += f" [{metadata_str}]"
        log_method(log_message)

    def create_event(
        self,
        event_type: str,
        component: str,
        message: str,
        level: EventLevel = EventLevel.INFO,
        **metadata,
    ) -> Event:
        """Create and emit an event."""
        event = Event(
            event_type=event_type,
            timestamp=time.time(),
            component=component,
            message=message,
            level=level,
            metadata=metadata,
        )
        self.emit(event)
        return event


# Global event manager instance
event_manager = EventManager()


class StructuredLogger:
    """Structured logger that turns log calls into events."""

    def __init__(self, component: str, event_mgr: Optional[EventManager] = None):
        """
        Initialise structured logger for a component.

        Args:
            component: Name of the component using this logger
            event_mgr: Event manager to use (defaults to global instance)
        """
        self.component = component
        self.event_manager = event_mgr or event_manager

    def _log(self, level: EventLevel, message: str, **metadata) -> None:
        self.event_manager.create_event(
            level.value, self.component, message, level, **metadata
        )

    def debug(self, message: str, **metadata):
        self._log(EventLevel.DEBUG, message, **metadata)

    def info(self, message: str, **metadata):
        self._log(EventLevel.INFO, message, **metadata)

    def warning(self, message: str, **metadata):
        self._log(EventLevel.WARNING, message, **metadata)

    def error(self, message: str, **metadata):
        self._log(EventLevel.ERROR, message, **metadata)

    def critical(self, message: str, **metadata):
        self._log(EventLevel.CRITICAL, message, **metadata)
