"""
Named pipe filesystem resource management.

This module provides the FifoResource class which handles the filesystem side
of a named pipe: preparing the parent directory, creating the FIFO (or
attaching to one that already exists), and removing it again, but only when
this resource created it.
"""

import os
import stat
import threading

from fifostream.errors import CleanupError, CreationError


class FifoResource:
    """
    Manages a FIFO special file at a fixed path.

    Ownership:
    ----------
    ``is_created()`` is true only if this resource ran ``mkfifo`` itself.
    A FIFO that was already present is reused and never removed.

    All methods are thread-safe so they can be run with ``asyncio.to_thread``.
    """

    def __init__(self, path: str, mode: int = 0o600):
        """
        Initialise the resource.

        Args:
            path: Filesystem path of the FIFO
            mode: Permission bits for a newly created FIFO
        """
        self._path = path
        self._mode = mode
        self._is_created = False
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    def is_created(self) -> bool:
        """
        Check whether this resource created the FIFO.

        Returns:
            True if the FIFO was created here and not yet removed
        """
        with self._lock:
            return self._is_created

    def ensure_directory(self) -> None:
        """
        Create the parent directory of the pipe path, including intermediates.

        Raises:
            CreationError: If the directory cannot be created
        """
        directory = os.path.dirname(self._path)
        if not directory:
            # Bare file name, lives in the working directory
            return

        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise CreationError(
                "Failed to prepare pipe directory", path=self._path, cause=e
            ) from e

    def create_fifo(self) -> bool:
        """
        Create the FIFO unless something already exists at the path.

        Returns:
            True if a new FIFO was created, False if an existing one is reused

        Raises:
            CreationError: If the path holds something other than a FIFO, or
                mkfifo fails
        """
        with self._lock:
            if self._is_created:
                return True

            if os.path.lexists(self._path):
                self._check_existing()
                return False

            mkfifo = getattr(os, "mkfifo", None)
            if mkfifo is None:
                raise CreationError(
                    "Named pipes are not supported on this platform", path=self._path
                )

            try:
                mkfifo(self._path, self._mode)
            except FileExistsError:
                # Another process won the race, treat as reuse
                self._check_existing()
                return False
            except OSError as e:
                raise CreationError(
                    "Failed to create named pipe", path=self._path, cause=e
                ) from e

            self._is_created = True
            return True

    def _check_existing(self) -> None:
        try:
            mode = os.stat(self._path).st_mode
        except OSError as e:
            raise CreationError(
                "Cannot inspect existing pipe path", path=self._path, cause=e
            ) from e

        if not stat.S_ISFIFO(mode):
            raise CreationError(
                "Path exists and is not a named pipe", path=self._path
            )

    def remove_fifo(self) -> bool:
        """
        Remove the FIFO if this resource created it.

        Returns:
            True if the FIFO was removed

        Raises:
            CleanupError: If the entry was already gone or could not be removed
        """
        with self._lock:
            if not self._is_created:
                return False

            # Ownership ends here whatever happens next
            self._is_created = False
            try:
                os.unlink(self._path)
            except FileNotFoundError as e:
                raise CleanupError(
                    "Named pipe was already removed", path=self._path, cause=e
                ) from e
            except OSError as e:
                raise CleanupError(
                    "Failed to remove named pipe", path=self._path, cause=e
                ) from e

            return True
