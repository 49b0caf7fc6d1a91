"""
Logging configuration with verbosity control and multiple handlers.

Supports console, file, rotating file, syslog and null handlers, structured
(JSON) or text output, and component include/exclude filters. Configuration
comes from the CLI or from ``FIFOSTREAM_LOG_*`` environment variables.
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from fifostream.app_logger import LogContext, format_log_message


class LogHandler(Enum):
    """Available log handler types."""

    CONSOLE = "console"
    FILE = "file"
    ROTATING_FILE = "rotating_file"
    SYSLOG = "syslog"
    NULL = "null"


class LogFormat(Enum):
    """Available log format types."""

    STRUCTURED = "structured"  # JSON format
    SIMPLE = "simple"  # Human-readable text
    DETAILED = "detailed"  # Detailed text with timestamps


class VerbosityLevel(Enum):
    """Verbosity levels for controlling log output."""

    SILENT = 0  # CRITICAL only
    QUIET = 1  # Errors and warnings only
    NORMAL = 2  # Info, warnings, errors
    VERBOSE = 3  # Debug and above
    VERY_VERBOSE = 4


VERBOSITY_NAMES: Dict[str, VerbosityLevel] = {
    "silent": VerbosityLevel.SILENT,
    "quiet": VerbosityLevel.QUIET,
    "normal": VerbosityLevel.NORMAL,
    "verbose": VerbosityLevel.VERBOSE,
    "very_verbose": VerbosityLevel.VERY_VERBOSE,
    "v": VerbosityLevel.VERBOSE,
    "vv": VerbosityLevel.VERY_VERBOSE,
}

FORMAT_NAMES: Dict[str, LogFormat] = {
    "json": LogFormat.STRUCTURED,
    "structured": LogFormat.STRUCTURED,
    "simple": LogFormat.SIMPLE,
    "detailed": LogFormat.DETAILED,
}

DEFAULT_LOG_FILE = "logs/fifostream.log"


@dataclass
class HandlerConfig:
    """Configuration for a single log handler."""

    type: LogHandler
    level: Optional[str] = None  # If None, uses global level
    format: Optional[LogFormat] = None  # If None, uses global format

    # File handlers
    filename: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    # Syslog
    facility: str = "local0"
    address: Union[str, tuple] = "/dev/log"

    # Console
    stream: str = "stderr"

    date_format: str = "%Y-%m-%d %H:%M:%S"
    message_format: Optional[str] = None


@dataclass
class LoggingConfig:
    """Complete logging configuration."""

    verbosity: VerbosityLevel = VerbosityLevel.NORMAL
    global_level: str = "INFO"
    global_format: LogFormat = LogFormat.SIMPLE
    logger_name: str = "fifostream"

    handlers: List[HandlerConfig] = field(
        default_factory=lambda: [HandlerConfig(type=LogHandler.CONSOLE)]
    )

    exclude_components: List[str] = field(default_factory=list)
    include_only_components: Optional[List[str]] = None

    def __post_init__(self):
        self._normalize_levels()

    def _normalize_levels(self):
        """Derive the level from verbosity unless it was set explicitly."""
        verbosity_to_level = {
            VerbosityLevel.SILENT: "CRITICAL",
            VerbosityLevel.QUIET: "WARNING",
            VerbosityLevel.NORMAL: "INFO",
            VerbosityLevel.VERBOSE: "DEBUG",
            VerbosityLevel.VERY_VERBOSE: "DEBUG",
        }

        if self.global_level == "INFO":
            self.global_level = verbosity_to_level[self.verbosity]


def parse_handler_names(names: str, log_file: Optional[str] = None) -> List[HandlerConfig]:
    """
    Turn a comma-separated handler list into handler configurations.

    Args:
        names: e.g. "console,rotating"
        log_file: Filename for file handlers

    Returns:
        Handler configurations, unknown names skipped
    """
    handler_configs = []
    for handler_name in names.split(","):
        handler_name = handler_name.strip().lower()
        if handler_name == "console":
            handler_configs.append(HandlerConfig(type=LogHandler.CONSOLE))
        elif handler_name == "file":
            handler_configs.append(
                HandlerConfig(type=LogHandler.FILE, filename=log_file or DEFAULT_LOG_FILE)
            )
        elif handler_name == "rotating":
            handler_configs.append(
                HandlerConfig(
                    type=LogHandler.ROTATING_FILE, filename=log_file or DEFAULT_LOG_FILE
                )
            )
        elif handler_name == "syslog":
            handler_configs.append(HandlerConfig(type=LogHandler.SYSLOG))
        elif handler_name == "null":
            handler_configs.append(HandlerConfig(type=LogHandler.NULL))
    return handler_configs


class ConfigurableAppLogger:
    """Application logger with multiple handlers and verbosity control."""

    def __init__(self, config: Optional[LoggingConfig] = None):
        """
        Initialize configurable logger.

        Args:
            config: Logging configuration. If None, uses default configuration.
        """
        self.config = config or LoggingConfig()
        self._python_logger: Optional[logging.Logger] = None
        self._handlers: List[logging.Handler] = []
        self._setup_logging()

    def _setup_logging(self):
        self._python_logger = logging.getLogger(self.config.logger_name)
        self._python_logger.setLevel(self.config.global_level)

        for handler in self._handlers:
            self._python_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()

        for handler_config in self.config.handlers:
            handler = self._create_handler(handler_config)
            if handler:
                self._handlers.append(handler)
                self._python_logger.addHandler(handler)

        # Output goes only to the handlers configured here
        self._python_logger.propagate = False

    def _create_handler(self, config: HandlerConfig) -> Optional[logging.Handler]:
        """Create a logging handler, falling back to the console on failure."""
        try:
            if config.type == LogHandler.CONSOLE:
                handler = logging.StreamHandler(
                    sys.stdout if config.stream == "stdout" else sys.stderr
                )
            elif config.type in (LogHandler.FILE, LogHandler.ROTATING_FILE):
                if not config.filename:
                    raise ValueError(f"{config.type.value} handler requires filename")
                Path(config.filename).parent.mkdir(parents=True, exist_ok=True)
                if config.type == LogHandler.FILE:
                    handler = logging.FileHandler(config.filename)
                else:
                    handler = logging.handlers.RotatingFileHandler(
                        filename=config.filename,
                        maxBytes=config.max_bytes,
                        backupCount=config.backup_count,
                    )
            elif config.type == LogHandler.SYSLOG:
                facility = getattr(
                    logging.handlers.SysLogHandler,
                    f"LOG_{config.facility.upper()}",
                    logging.handlers.SysLogHandler.LOG_LOCAL0,
                )
                handler = logging.handlers.SysLogHandler(
                    address=config.address, facility=facility
                )
            elif config.type == LogHandler.NULL:
                return logging.NullHandler()
            else:
                raise ValueError(f"Unknown handler type: {config.type}")
        except Exception as e:
            print(
                f"Warning: Failed to create {config.type.value} handler: {e}",
                file=sys.stderr,
            )
            if config.type != LogHandler.CONSOLE:
                return self._create_handler(HandlerConfig(type=LogHandler.CONSOLE))
            return None

        handler.setLevel(config.level or self.config.global_level)
        handler.setFormatter(
            self._create_formatter(config.format or self.config.global_format, config)
        )
        return handler

    def _create_formatter(
        self, format_type: LogFormat, config: HandlerConfig
    ) -> logging.Formatter:
        if config.message_format:
            return logging.Formatter(
                fmt=config.message_format, datefmt=config.date_format
            )

        if format_type == LogFormat.SIMPLE:
            return logging.Formatter("%(levelname)s: %(message)s")
        elif format_type == LogFormat.DETAILED:
            return logging.Formatter(
                fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt=config.date_format,
            )
        # JSON is rendered by the message formatter
        return logging.Formatter("%(message)s")

    def should_log_component(self, component: str) -> bool:
        """Check if a component passes the include/exclude filters."""
        if component in self.config.exclude_components:
            return False

        if self.config.include_only_components:
            return component in self.config.include_only_components

        return True

    def reconfigure(self, new_config: LoggingConfig):
        """Reconfigure logging with new settings."""
        self.config = new_config
        self._setup_logging()

    def _log(
        self,
        level: int,
        message: str,
        context: Optional[LogContext],
        exc_info: bool = False,
        **kwargs,
    ) -> None:
        if context and not self.should_log_component(context.component):
            return
        formatted = format_log_message(
            message,
            context,
            structured=self.config.global_format == LogFormat.STRUCTURED,
            **kwargs,
        )
        self._python_logger.log(level, formatted, exc_info=exc_info)

    def debug(
        self, message: str, context: Optional[LogContext] = None, **kwargs
    ) -> None:
        self._log(logging.DEBUG, message, context, **kwargs)

    def info(
        self, message: str, context: Optional[LogContext] = None, **kwargs
    ) -> None:
        self._log(logging.INFO, message, context, **kwargs)

    def warning(
        self, message: str, context: Optional[LogContext] = None, **kwargs
    ) -> None:
        self._log(logging.WARNING, message, context, **kwargs)

    def error(
        self,
        message: str,
        context: Optional[LogContext] = None,
        exc_info: bool = False,
        **kwargs,
    ) -> None:
        self._log(logging.ERROR, message, context, exc_info=exc_info, **kwargs)

    def critical(
        self,
        message: str,
        context: Optional[LogContext] = None,
        exc_info: bool = False,
        **kwargs,
    ) -> None:
        self._log(logging.CRITICAL, message, context, exc_info=exc_info, **kwargs)


def create_logger_from_env() -> ConfigurableAppLogger:
    """Create logger from ``FIFOSTREAM_LOG_*`` environment variables."""
    config = LoggingConfig(
        verbosity=VERBOSITY_NAMES.get(
            os.getenv("FIFOSTREAM_LOG_VERBOSITY", "normal").lower(),
            VerbosityLevel.NORMAL,
        )
    )

    if level := os.getenv("FIFOSTREAM_LOG_LEVEL"):
        config.global_level = level.upper()

    config.global_format = FORMAT_NAMES.get(
        os.getenv("FIFOSTREAM_LOG_FORMAT", "simple").lower(), LogFormat.SIMPLE
    )

    handler_configs = parse_handler_names(
        os.getenv("FIFOSTREAM_LOG_HANDLERS", "console"),
        os.getenv("FIFOSTREAM_LOG_FILE"),
    )
    if handler_configs:
        config.handlers = handler_configs

    if exclude := os.getenv("FIFOSTREAM_LOG_EXCLUDE"):
        config.exclude_components = [c.strip() for c in exclude.split(",")]

    if include := os.getenv("FIFOSTREAM_LOG_INCLUDE_ONLY"):
        config.include_only_components = [c.strip() for c in include.split(",")]

    return ConfigurableAppLogger(config)
