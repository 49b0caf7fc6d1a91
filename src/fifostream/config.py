"""
Pipe configuration and path resolution.

``PipeConfig`` is resolved once, when a ``NamedPipe`` is constructed. The
path rules are simple: an explicit path wins, otherwise the pipe lives at
``temp_directory/pipe_name`` with a random name when none is given.
"""

import codecs
import os
import secrets
import string
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from fifostream.errors import ConfigurationError

DEFAULT_TEMP_DIRECTORY = "./tmp"
DEFAULT_HIGH_WATER_MARK = 64 * 1024
DEFAULT_ENCODING = "utf-8"
DEFAULT_FIFO_MODE = 0o600

PIPE_NAME_PREFIX = "pipe_"
PIPE_NAME_TOKEN_LENGTH = 9
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class PipeConfig:
    """Immutable configuration for a named pipe."""

    explicit_path: Optional[str] = None
    temp_directory: str = DEFAULT_TEMP_DIRECTORY
    pipe_name: Optional[str] = None
    buffer_high_water_mark: int = DEFAULT_HIGH_WATER_MARK
    default_encoding: str = DEFAULT_ENCODING
    fifo_mode: int = DEFAULT_FIFO_MODE
    handle_signals: bool = True

    def __post_init__(self):
        """Validate field values."""
        if self.buffer_high_water_mark <= 0:
            raise ConfigurationError(
                f"buffer_high_water_mark must be positive, got {self.buffer_high_water_mark}"
            )

        try:
            codecs.lookup(self.default_encoding)
        except LookupError as e:
            raise ConfigurationError(
                f"Unknown encoding: {self.default_encoding}", cause=e
            ) from e

        if self.pipe_name is not None:
            if not self.pipe_name or os.sep in self.pipe_name or (
                os.altsep and os.altsep in self.pipe_name
            ):
                raise ConfigurationError(f"Invalid pipe name: {self.pipe_name!r}")

    def with_overrides(self, **overrides: Any) -> "PipeConfig":
        """
        Return a copy with the given fields replaced.

        ``None`` values are ignored so CLI options that were not supplied
        leave the current value in place.

        Raises:
            ConfigurationError: If an override names an unknown field
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration option(s): {', '.join(sorted(unknown))}"
            )

        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return replace(self, **changes)

    @classmethod
    def from_env(cls, prefix: str = "FIFOSTREAM_", **overrides: Any) -> "PipeConfig":
        """
        Build a configuration from environment variables.

        Recognised variables (with the default prefix): ``FIFOSTREAM_PATH``,
        ``FIFOSTREAM_TMP_DIR``, ``FIFOSTREAM_PIPE_NAME``,
        ``FIFOSTREAM_HIGH_WATER_MARK`` and ``FIFOSTREAM_ENCODING``.
        Keyword overrides take precedence over the environment.
        """
        values: Dict[str, Any] = {}

        if path := os.getenv(f"{prefix}PATH"):
            values["explicit_path"] = path
        if tmp_dir := os.getenv(f"{prefix}TMP_DIR"):
            values["temp_directory"] = tmp_dir
        if name := os.getenv(f"{prefix}PIPE_NAME"):
            values["pipe_name"] = name
        if hwm := os.getenv(f"{prefix}HIGH_WATER_MARK"):
            try:
                values["buffer_high_water_mark"] = int(hwm)
            except ValueError as e:
                raise ConfigurationError(
                    f"{prefix}HIGH_WATER_MARK must be an integer, got {hwm!r}", cause=e
                ) from e
        if encoding := os.getenv(f"{prefix}ENCODING"):
            values["default_encoding"] = encoding

        return cls(**values).with_overrides(**overrides)


def generate_pipe_name() -> str:
    """Generate a pipe name that is unique with high probability."""
    token = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(PIPE_NAME_TOKEN_LENGTH))
    return f"{PIPE_NAME_PREFIX}{token}"


def resolve_pipe_path(config: PipeConfig) -> str:
    """
    Compute the filesystem path of the pipe.

    Args:
        config: Pipe configuration

    Returns:
        ``explicit_path`` unchanged when set, otherwise ``temp_directory``
        (made absolute) joined with ``pipe_name`` or a generated name
    """
    if config.explicit_path:
        return config.explicit_path

    name = config.pipe_name or generate_pipe_name()
    return os.path.join(os.path.abspath(config.temp_directory), name)
