"""
Shared test fixtures and configuration for fifostream tests.

This module provides common fixtures used across the test suite: temporary
directories, an isolated signal registry, and a factory that builds pipes
and guarantees their cleanup.
"""

import logging
import os
import signal
import tempfile
from pathlib import Path
from typing import Callable, Generator, List

import pytest

from fifostream import app_logger
from fifostream.named_pipe import NamedPipe
from fifostream.signals import SignalRegistry


def pytest_addoption(parser):
    """Add command line options to enable specific test categories."""
    parser.addoption(
        "--enable-slow",
        action="store_true",
        default=False,
        help="Enable tests marked with @pytest.mark.slow (skipped by default)",
    )


def pytest_configure(config):
    """Register the custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (>5 seconds) - skipped by default, use --enable-slow",
    )


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless enabled, and everything when FIFOs are unavailable."""
    enable_slow = config.getoption("--enable-slow") or os.getenv(
        "ENABLE_SLOW_TESTS", ""
    ).lower() in ("true", "1", "yes")

    if not enable_slow:
        skip_slow = pytest.mark.skip(
            reason="Use --enable-slow or set ENABLE_SLOW_TESTS=true to run slow tests"
        )
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)

    if not hasattr(os, "mkfifo"):
        skip_platform = pytest.mark.skip(reason="Named pipes are not supported on this platform")
        for item in items:
            item.add_marker(skip_platform)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for testing.

    Yields:
        Path to the temporary directory
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def registry() -> Generator[SignalRegistry, None, None]:
    """
    Isolated signal registry handling SIGTERM only.

    Yields:
        Registry that restores the previous handler on teardown
    """
    reg = SignalRegistry(signals=(signal.SIGTERM,), chain_previous=False)
    yield reg
    reg.uninstall()


@pytest.fixture
def make_pipe(temp_dir: Path, registry: SignalRegistry) -> Generator[Callable[..., NamedPipe], None, None]:
    """
    Factory for pipes under ``temp_dir`` that are cleaned up after the test.

    Keyword arguments are passed to ``NamedPipe``; ``temp_directory`` and the
    registry default to the test fixtures.
    """
    pipes: List[NamedPipe] = []

    def factory(**kwargs) -> NamedPipe:
        kwargs.setdefault("registry", registry)
        if "explicit_path" not in kwargs:
            kwargs.setdefault("temp_directory", str(temp_dir))
        pipe = NamedPipe(**kwargs)
        pipes.append(pipe)
        return pipe

    yield factory

    for pipe in pipes:
        pipe.cleanup()


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo logger configuration done by a test, so caplog keeps working."""
    yield
    app_logger.set_default_logger(None)
    package_logger = logging.getLogger("fifostream")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
