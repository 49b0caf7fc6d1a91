"""
Duplex bridge over a single FIFO.

A FIFO needs two descriptors to behave like a duplex stream: one opened for
writing and one opened for reading. This module opens both on the same path,
wraps them in asyncio pipe transports, and exposes ``write``/``read_chunk``
with flow control on the inbound side.
"""

import asyncio
import os
from typing import BinaryIO, List, Optional

from fifostream.errors import CleanupError, OpenError, ReadError, WriteError
from fifostream.event_system import StructuredLogger
from fifostream.metrics_collector import MetricsCollector


class _WriterProtocol(asyncio.BaseProtocol):
    """Write-side protocol that turns transport flow control into ``drain()``."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._paused = False
        self._drain_waiter: Optional[asyncio.Future] = None
        self._closed = loop.create_future()
        self._exc: Optional[BaseException] = None

    def pause_writing(self) -> None:
        self._paused = True

    def resume_writing(self) -> None:
        self._paused = False
        self._wake_drain_waiter()

    def connection_lost(self, exc: Optional[BaseException]) -> None:
        self._exc = exc
        self._paused = False
        if not self._closed.done():
            self._closed.set_result(None)
        self._wake_drain_waiter(exc)

    def _wake_drain_waiter(self, exc: Optional[BaseException] = None) -> None:
        waiter = self._drain_waiter
        self._drain_waiter = None
        if waiter is None or waiter.done():
            return
        if exc is None:
            waiter.set_result(None)
        else:
            waiter.set_exception(exc)

    @property
    def is_closed(self) -> bool:
        return self._closed.done()

    @property
    def error(self) -> Optional[BaseException]:
        return self._exc

    async def drain(self) -> None:
        """Wait until the transport buffer is below its high-water mark."""
        if self._closed.done():
            raise ConnectionResetError("Connection lost") from self._exc
        if not self._paused:
            return
        waiter = self._loop.create_future()
        self._drain_waiter = waiter
        await waiter

    async def wait_closed(self) -> None:
        await asyncio.shield(self._closed)


class DuplexBridge:
    """
    Writer and reader handles on one FIFO path.

    Lifecycle:
    ----------
    ``open()`` opens the reader first (non-blocking, so it succeeds without a
    writer) and then the writer. ``close_writer()`` flushes and closes the
    write side, after which the reader sees end-of-data once the buffered
    bytes are consumed. ``close()`` tears down whatever is still open and
    never raises.
    """

    def __init__(
        self,
        path: str,
        high_water_mark: int,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialise the bridge.

        Args:
            path: FIFO path, which must already exist
            high_water_mark: Inbound buffer limit and outbound read size in bytes
            metrics: Collector for traffic counters
        """
        self._path = path
        self._high_water_mark = high_water_mark
        self._metrics = metrics or MetricsCollector()
        self._logger = StructuredLogger("DuplexBridge")

        self._reader_fd: Optional[int] = None
        self._writer_fd: Optional[int] = None
        self._reader_file: Optional[BinaryIO] = None
        self._writer_file: Optional[BinaryIO] = None

        self._reader: Optional[asyncio.StreamReader] = None
        self._read_transport: Optional[asyncio.ReadTransport] = None
        self._write_transport: Optional[asyncio.WriteTransport] = None
        self._write_protocol: Optional[_WriterProtocol] = None

        self._writer_open = False
        self._reader_open = False

    @property
    def writer_open(self) -> bool:
        return self._writer_open

    @property
    def reader_open(self) -> bool:
        return self._reader_open

    async def open(self) -> None:
        """
        Open both handles and connect them to the running event loop.

        Raises:
            OpenError: If either handle cannot be opened; anything already
                opened is released first
        """
        loop = asyncio.get_running_loop()

        try:
            self._reader_fd = os.open(self._path, os.O_RDONLY | os.O_NONBLOCK)
            self._writer_fd = os.open(self._path, os.O_WRONLY | os.O_NONBLOCK)
        except OSError as e:
            self.close()
            raise OpenError("Failed to open pipe handles", path=self._path, cause=e) from e

        try:
            self._reader_file = os.fdopen(self._reader_fd, "rb", buffering=0)
            self._reader_fd = None
            self._writer_file = os.fdopen(self._writer_fd, "wb", buffering=0)
            self._writer_fd = None

            reader = asyncio.StreamReader(limit=self._high_water_mark)
            self._read_transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(reader), self._reader_file
            )
            self._reader = reader
            self._reader_open = True

            self._write_transport, self._write_protocol = await loop.connect_write_pipe(
                lambda: _WriterProtocol(loop), self._writer_file
            )
            self._write_transport.set_write_buffer_limits(high=self._high_water_mark)
            self._writer_open = True
        except (OSError, ValueError) as e:
            self.close()
            raise OpenError(
                "Failed to attach pipe handles to the event loop", path=self._path, cause=e
            ) from e

        self._logger.debug("Pipe handles open", pipe_path=self._path)

    async def write(self, data: bytes) -> None:
        """
        Forward one chunk to the writer and wait for flow control.

        Raises:
            WriteError: If the write side is gone or the OS write fails
        """
        transport = self._write_transport
        protocol = self._write_protocol
        if transport is None or protocol is None or not self._writer_open:
            raise WriteError("Writer handle is closed", path=self._path)

        if transport.is_closing() or protocol.is_closed:
            self._metrics.record_write_error()
            raise WriteError(
                "Writer handle lost its reader",
                path=self._path,
                cause=protocol.error or BrokenPipeError("pipe closed"),
            )

        try:
            transport.write(data)
            await protocol.drain()
        except (OSError, RuntimeError) as e:
            self._metrics.record_write_error()
            raise WriteError("Failed to write to pipe", path=self._path, cause=e) from e

        self._metrics.record_write(len(data))

    async def read_chunk(self) -> bytes:
        """
        Read the next chunk from the reader handle.

        Returns:
            Up to ``high_water_mark`` bytes, or ``b""`` at end-of-data

        Raises:
            ReadError: If the OS read fails
        """
        reader = self._reader
        if reader is None or not self._reader_open:
            return b""

        try:
            data = await reader.read(self._high_water_mark)
        except OSError as e:
            self._metrics.record_read_error()
            raise ReadError("Failed to read from pipe", path=self._path, cause=e) from e

        if not data:
            self._reader_open = False
            return b""

        self._metrics.record_read(len(data))
        return data

    async def close_writer(self) -> None:
        """
        Flush and close the write side (half-close).

        Raises:
            WriteError: If flushing the pending bytes fails
        """
        transport = self._write_transport
        protocol = self._write_protocol
        if transport is None or protocol is None or not self._writer_open:
            return

        self._writer_open = False
        try:
            if not protocol.is_closed:
                await protocol.drain()
            transport.close()
            await protocol.wait_closed()
        except (OSError, RuntimeError) as e:
            transport.abort()
            raise WriteError("Failed to flush pipe writer", path=self._path, cause=e) from e
        finally:
            self._write_transport = None
            self._writer_file = None

        if protocol.error is not None:
            raise WriteError(
                "Pipe writer closed with an error", path=self._path, cause=protocol.error
            )

    def close(self) -> List[CleanupError]:
        """
        Release every handle that is still open.

        Returns:
            Diagnostics for steps that failed; empty when all succeeded
        """
        errors: List[CleanupError] = []
        self._writer_open = False
        self._reader_open = False

        if self._write_transport is not None:
            transport, self._write_transport = self._write_transport, None
            self._close_transport(transport, self._writer_file, "writer", errors, abort=True)
            self._writer_file = None
        elif self._writer_file is not None:
            self._close_file(self._writer_file, "writer", errors)
            self._writer_file = None

        if self._read_transport is not None:
            transport, self._read_transport = self._read_transport, None
            self._close_transport(transport, self._reader_file, "reader", errors)
            self._reader_file = None
        elif self._reader_file is not None:
            self._close_file(self._reader_file, "reader", errors)
            self._reader_file = None

        for attr, label in (("_writer_fd", "writer"), ("_reader_fd", "reader")):
            fd = getattr(self, attr)
            if fd is None:
                continue
            setattr(self, attr, None)
            try:
                os.close(fd)
            except OSError as e:
                errors.append(
                    CleanupError(f"Failed to close {label} descriptor", path=self._path, cause=e)
                )

        return errors

    def _close_transport(
        self,
        transport: asyncio.BaseTransport,
        pipe_file: Optional[BinaryIO],
        label: str,
        errors: List[CleanupError],
        abort: bool = False,
    ) -> None:
        try:
            if abort:
                transport.abort()
            else:
                transport.close()
        except Exception as e:
            # Usually a closed event loop; release the descriptor directly
            errors.append(
                CleanupError(f"Failed to close {label} transport", path=self._path, cause=e)
            )
            if pipe_file is not None:
                self._close_file(pipe_file, label, errors)

    def _close_file(
        self, pipe_file: BinaryIO, label: str, errors: List[CleanupError]
    ) -> None:
        try:
            pipe_file.close()
        except OSError as e:
            errors.append(
                CleanupError(f"Failed to close {label} handle", path=self._path, cause=e)
            )
