"""
Thread-safe metrics collection for byte traffic through a pipe.

This module provides the MetricsCollector class which counts bytes and chunks
in each direction along with I/O failures.
"""

import threading
from typing import Any, Dict


class MetricsCollector:
    """
    Thread-safe counters for one pipe's inbound and outbound traffic.

    Thread Safety:
    --------------
    All methods are thread-safe. Cleanup can run from a signal handler while
    a completion is being recorded.
    """

    def __init__(self):
        """Initialise the metrics collector with empty statistics."""
        self._bytes_written = 0
        self._chunks_written = 0
        self._bytes_read = 0
        self._chunks_read = 0
        self._write_errors = 0
        self._read_errors = 0
        self._max_chunk_size = 0

        self._metrics_lock = threading.Lock()

    def record_write(self, size: int) -> None:
        """
        Record a chunk forwarded into the FIFO.

        Args:
            size: Number of bytes in the chunk
        """
        with self._metrics_lock:
            self._bytes_written += size
            self._chunks_written += 1
            self._max_chunk_size = max(self._max_chunk_size, size)

    def record_read(self, size: int) -> None:
        """
        Record a chunk delivered from the FIFO.

        Args:
            size: Number of bytes in the chunk
        """
        with self._metrics_lock:
            self._bytes_read += size
            self._chunks_read += 1
            self._max_chunk_size = max(self._max_chunk_size, size)

    def record_write_error(self) -> None:
        with self._metrics_lock:
            self._write_errors += 1

    def record_read_error(self) -> None:
        with self._metrics_lock:
            self._read_errors += 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get current traffic metrics.

        Returns:
            Dictionary containing counters and the bytes still in flight
        """
        with self._metrics_lock:
            return {
                "bytes_written": self._bytes_written,
                "chunks_written": self._chunks_written,
                "bytes_read": self._bytes_read,
                "chunks_read": self._chunks_read,
                "write_errors": self._write_errors,
                "read_errors": self._read_errors,
                "max_chunk_size": self._max_chunk_size,
                "bytes_in_flight": max(0, self._bytes_written - self._bytes_read),
            }

    def reset_metrics(self) -> None:
        """Reset all counters to zero."""
        with self._metrics_lock:
            self._bytes_written = 0
            self._chunks_written = 0
            self._bytes_read = 0
            self._chunks_read = 0
            self._write_errors = 0
            self._read_errors = 0
            self._max_chunk_size = 0
