"""
Application logger interface independent from the event system.

This module provides structured logging that can be used from signal
handlers and event dispatchers without creating circular imports.
"""

import json
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Protocol


@dataclass
class LogContext:
    """Structured log context information."""

    component: str
    operation: Optional[str] = None
    pipe_path: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging, dropping unset fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}


class AppLogger(Protocol):
    """Protocol for application logging interface."""

    def debug(
        self, message: str, context: Optional[LogContext] = None, **kwargs
    ) -> None:
        ...

    def info(
        self, message: str, context: Optional[LogContext] = None, **kwargs
    ) -> None:
        ...

    def warning(
        self, message: str, context: Optional[LogContext] = None, **kwargs
    ) -> None:
        ...

    def error(
        self,
        message: str,
        context: Optional[LogContext] = None,
        exc_info: bool = False,
        **kwargs,
    ) -> None:
        ...

    def critical(
        self,
        message: str,
        context: Optional[LogContext] = None,
        exc_info: bool = False,
        **kwargs,
    ) -> None:
        ...


def format_log_message(
    message: str,
    context: Optional[LogContext] = None,
    structured: bool = True,
    **kwargs,
) -> str:
    """
    Render a message with its context.

    Args:
        message: The log message
        context: Optional structured context
        structured: JSON output when True, a single text line otherwise
        **kwargs: Extra fields appended to the message

    Returns:
        The formatted message
    """
    if structured:
        log_data: Dict[str, Any] = {"message": message, "timestamp": time.time()}
        if context:
            log_data.update(context.to_dict())
        if kwargs:
            log_data["additional"] = kwargs
        return json.dumps(log_data, default=str)

    parts = [message]
    if context:
        if context.component:
            parts.append(f"[{context.component}]")
        if context.operation:
            parts.append(f"({context.operation})")
        if context.pipe_path:
            parts.append(f"pipe={context.pipe_path}")
        if context.correlation_id:
            parts.append(f"corr_id={context.correlation_id}")
    if kwargs:
        metadata_str = ", ".join(f"{k}={v}" for k, v in kwargs.items())
        parts.append(f"[{metadata_str}]")
    return " ".join(parts)


# Default logger instance for convenience
_default_logger: Optional[AppLogger] = None


def get_default_logger() -> AppLogger:
    """Get the default application logger, building it from the environment."""
    global _default_logger
    if _default_logger is None:
        from fifostream.logging_config import create_logger_from_env

        _default_logger = create_logger_from_env()
    return _default_logger


def set_default_logger(logger: Optional[AppLogger]) -> None:
    """Set the default application logger. ``None`` resets to the environment default."""
    global _default_logger
    _default_logger = logger


def warning(message: str, component: str, **kwargs) -> None:
    """Log warning message using default logger."""
    get_default_logger().warning(message, LogContext(component=component), **kwargs)


def error(message: str, component: str, exc_info: bool = False, **kwargs) -> None:
    """Log error message using default logger."""
    get_default_logger().error(
        message, LogContext(component=component), exc_info=exc_info, **kwargs
    )
