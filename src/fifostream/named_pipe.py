"""
Named pipe exposed as an asyncio duplex byte stream.

``NamedPipe`` owns one FIFO path and the two handles opened on it. It drives
the lifecycle ``UNCREATED -> CREATING -> READY -> DRAINING -> CLOSED`` and
delegates the filesystem work to ``FifoResource`` and the byte traffic to
``DuplexBridge``:

    async with NamedPipe(temp_directory="/tmp/x", pipe_name="p1") as pipe:
        await pipe.write("hello ")
        await pipe.end("world")
        data = await pipe.read_all()

Cleanup is synchronous, idempotent and never raises. SIGINT and SIGTERM run
it through the process-wide signal registry.
"""

import asyncio
import inspect
import threading
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Iterable, List, Optional, Union

from fifostream.bridge import DuplexBridge
from fifostream.config import PipeConfig, resolve_pipe_path
from fifostream.errors import (
    CleanupError,
    CleanupReport,
    CreationError,
    FifoStreamError,
    NotReadyError,
    OpenError,
    ReadError,
    WriteError,
)
from fifostream.event_system import StructuredLogger
from fifostream.fifo_resource import FifoResource
from fifostream.metrics_collector import MetricsCollector
from fifostream.pipe_events import PipeEvent, PipeEventListener, PipeEventManager, PipeEventType
from fifostream.signals import SignalRegistry, default_registry

Chunk = Union[bytes, bytearray, memoryview, str]


class PipeState(Enum):
    """Lifecycle states of a named pipe."""

    UNCREATED = "uncreated"
    CREATING = "creating"
    READY = "ready"
    DRAINING = "draining"
    CLOSED = "closed"


class NamedPipe:
    """
    A FIFO presented as one bidirectional stream.

    Input side: ``write()``, ``writelines()``, ``end()``, ``feed()``.
    Output side: ``read_chunk()``, ``async for``, ``read_all()``, ``pipe_to()``.

    Ownership:
    ----------
    The pipe owns its writer and reader handles, and owns the FIFO entry only
    when ``created`` is true. A FIFO that existed before ``create()`` is used
    but never deleted.
    """

    def __init__(
        self,
        config: Optional[PipeConfig] = None,
        *,
        registry: Optional[SignalRegistry] = None,
        event_listeners: Optional[List[PipeEventListener]] = None,
        **overrides: Any,
    ):
        """
        Initialise the pipe and resolve its path.

        Args:
            config: Pipe configuration (defaults to ``PipeConfig()``)
            registry: Signal registry to join (defaults to the process-wide one)
            event_listeners: Listeners for lifecycle events
            **overrides: ``PipeConfig`` fields that replace values in ``config``
        """
        self._config = (config or PipeConfig()).with_overrides(**overrides)
        self._path = resolve_pipe_path(self._config)

        self._state = PipeState.UNCREATED
        self._created = False
        self._closed = False
        self._state_lock = threading.RLock()
        self._creation_done: Optional[asyncio.Event] = None
        self._creation_error: Optional[BaseException] = None
        self._closed_event = asyncio.Event()

        self._metrics = MetricsCollector()
        self._resource = FifoResource(self._path, self._config.fifo_mode)
        self._bridge = DuplexBridge(
            self._path, self._config.buffer_high_water_mark, self._metrics
        )

        self._events = PipeEventManager()
        for listener in event_listeners or []:
            self._events.add_listener(listener)

        self._logger = StructuredLogger("NamedPipe")

        self._registry = registry or default_registry
        self._signal_token: Optional[int] = None
        if self._config.handle_signals:
            self._signal_token = self._registry.register(self.cleanup)

    @classmethod
    async def open(cls, config: Optional[PipeConfig] = None, **kwargs: Any) -> "NamedPipe":
        """Construct a pipe and create it."""
        pipe = cls(config, **kwargs)
        return await pipe.create()

    # State

    @property
    def path(self) -> str:
        return self._path

    def get(self) -> str:
        """Return the resolved filesystem path, valid from construction on."""
        return self._path

    @property
    def config(self) -> PipeConfig:
        return self._config

    @property
    def state(self) -> PipeState:
        with self._state_lock:
            return self._state

    @property
    def created(self) -> bool:
        """True if this instance created the FIFO rather than reusing one."""
        return self._created

    @property
    def writer_open(self) -> bool:
        return self._bridge.writer_open

    @property
    def reader_open(self) -> bool:
        return self._bridge.reader_open

    @property
    def closed(self) -> bool:
        return self._closed

    def metrics(self) -> dict:
        """Snapshot of the traffic counters."""
        return self._metrics.get_metrics()

    def add_event_listener(self, listener: PipeEventListener) -> None:
        self._events.add_listener(listener)

    def remove_event_listener(self, listener: PipeEventListener) -> None:
        self._events.remove_listener(listener)

    def __repr__(self) -> str:
        return f"NamedPipe(path={self._path!r}, state={self.state.value})"

    # Creation

    async def create(self) -> "NamedPipe":
        """
        Prepare the directory, create or attach to the FIFO, and open both handles.

        Calling this again once creation has started does nothing; a caller
        that arrives while creation is in flight waits for it to finish.

        Returns:
            This pipe

        Raises:
            CreationError: Directory or FIFO creation failed
            OpenError: A handle could not be opened
            NotReadyError: The pipe was cleaned up while being created
        """
        with self._state_lock:
            if self._state is PipeState.CREATING and self._creation_done is not None:
                done = self._creation_done
            elif self._state is not PipeState.UNCREATED:
                return self
            else:
                # A signal handler may have run cleanup inside this block
                if self._closed:
                    return self
                done = None
                self._state = PipeState.CREATING
                self._creation_done = asyncio.Event()

        if done is not None:
            await done.wait()
            if self._creation_error is not None:
                raise self._creation_error
            return self

        try:
            await self._run_creation()
        except BaseException as e:
            self._creation_error = e
            raise
        finally:
            self._creation_done.set()

        return self

    async def _run_creation(self) -> None:
        self._logger.debug("Creating named pipe", pipe_path=self._path)

        try:
            created = await asyncio.to_thread(self._prepare_fifo)
            self._created = created
            if self._closed:
                self._abandon_creation()

            self._emit(PipeEventType.CREATED if created else PipeEventType.REUSED)
            if not created:
                self._logger.info("Reusing existing named pipe", pipe_path=self._path)

            await self._bridge.open()
            if self._closed:
                self._abandon_creation()
        except (CreationError, OpenError) as e:
            self._fail(e)
            raise

        with self._state_lock:
            if self._closed:
                self._abandon_creation()
            self._state = PipeState.READY

        self._logger.info(
            "Named pipe ready", pipe_path=self._path, created=self._created
        )
        self._emit(PipeEventType.READY)

    def _prepare_fifo(self) -> bool:
        self._resource.ensure_directory()
        return self._resource.create_fifo()

    def _abandon_creation(self) -> None:
        """Undo work that finished after a concurrent cleanup, then give up."""
        self._bridge.close()
        try:
            self._resource.remove_fifo()
        except CleanupError as e:
            self._logger.warning("Cleanup diagnostic", pipe_path=self._path, error=str(e))
        raise NotReadyError("Pipe was cleaned up during creation", path=self._path)

    # Input side

    async def write(self, chunk: Chunk, encoding: Optional[str] = None) -> None:
        """
        Push one chunk into the FIFO.

        Returns once the chunk has been handed to the OS or the transport
        buffer is below its high-water mark, so a slow reader throttles the
        caller.

        Args:
            chunk: Bytes-like data, or text encoded with ``encoding`` or the
                configured default encoding
            encoding: Encoding for a text chunk

        Raises:
            NotReadyError: The pipe is not READY
            WriteError: The OS write failed
            TypeError: Unsupported chunk type
        """
        data = self._to_bytes(chunk, encoding)
        self._require_state((PipeState.READY,), "write")
        if not data:
            return

        try:
            await self._bridge.write(data)
        except WriteError as e:
            if self._closed:
                return
            self._fail(e)
            raise

        self._logger.debug("Chunk written", pipe_path=self._path, size=len(data))

    async def writelines(self, chunks: Iterable[Chunk]) -> None:
        for chunk in chunks:
            await self.write(chunk)

    async def end(self, chunk: Optional[Chunk] = None) -> None:
        """
        Signal end-of-input, optionally writing a last chunk first.

        The writer handle is flushed and closed; the output side then reaches
        end-of-data after the remaining bytes. Calling again while draining
        does nothing.

        Raises:
            NotReadyError: The pipe was never created or is closed
            WriteError: Flushing the writer failed
        """
        with self._state_lock:
            if self._state is PipeState.DRAINING:
                return
            self._require_state((PipeState.READY,), "end")

        if chunk is not None:
            await self.write(chunk)

        with self._state_lock:
            if self._state is not PipeState.READY:
                return
            self._state = PipeState.DRAINING

        self._logger.debug("End of input, draining", pipe_path=self._path)
        self._emit(PipeEventType.DRAINING)

        try:
            await self._bridge.close_writer()
        except WriteError as e:
            if self._closed:
                return
            self._fail(e)
            raise

    async def feed(
        self,
        source: Union[AsyncIterable[Chunk], Iterable[Chunk], Chunk],
        end: bool = True,
    ) -> int:
        """
        Write every chunk from an upstream producer.

        Args:
            source: Sync or async iterable of chunks, or a single chunk
            end: Signal end-of-input once the source is exhausted

        Returns:
            Number of bytes written

        Raises:
            NotReadyError: The pipe is not READY
            Exception: Whatever the source raised, after cleanup
        """
        self._require_state((PipeState.READY,), "feed")
        if isinstance(source, (bytes, bytearray, memoryview, str)):
            source = [source]

        total = 0
        try:
            if hasattr(source, "__aiter__"):
                async for chunk in source:
                    total += await self._write_counted(chunk)
            else:
                for chunk in source:
                    total += await self._write_counted(chunk)
        except FifoStreamError:
            raise
        except Exception as e:
            self._logger.error("Input stream error", pipe_path=self._path, error=str(e))
            self._emit(PipeEventType.ERROR, error=str(e))
            self.cleanup()
            raise

        if end:
            await self.end()
        return total

    async def _write_counted(self, chunk: Chunk) -> int:
        data = self._to_bytes(chunk)
        await self.write(data)
        return len(data)

    # Output side

    async def read_chunk(self) -> bytes:
        """
        Read the next chunk from the FIFO.

        Returns:
            The next bytes in FIFO order, or ``b""`` at end-of-data. Reaching
            end-of-data while draining closes the pipe.

        Raises:
            NotReadyError: ``create()`` has not completed
            ReadError: The OS read failed
        """
        with self._state_lock:
            if self._state in (PipeState.UNCREATED, PipeState.CREATING):
                raise NotReadyError(
                    f"Cannot read while pipe is {self._state.value}", path=self._path
                )
            if self._state is PipeState.CLOSED:
                return b""

        try:
            data = await self._bridge.read_chunk()
        except ReadError as e:
            if self._closed:
                return b""
            self._fail(e)
            raise

        if data:
            return data

        with self._state_lock:
            draining = self._state is PipeState.DRAINING
        if draining:
            self._logger.debug("End of data reached", pipe_path=self._path)
            self.cleanup()
        return b""

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read_chunk()
            if not chunk:
                return
            yield chunk

    async def read_all(self) -> bytes:
        """Read until end-of-data and return everything received."""
        return b"".join([chunk async for chunk in self])

    async def pipe_to(self, sink: Any) -> int:
        """
        Deliver every output chunk to a downstream consumer.

        Args:
            sink: Object with ``write(bytes)``; awaitable results and an
                optional ``drain()`` are awaited

        Returns:
            Number of bytes delivered
        """
        total = 0
        drain = getattr(sink, "drain", None)
        async for chunk in self:
            result = sink.write(chunk)
            if inspect.isawaitable(result):
                await result
            if drain is not None:
                result = drain()
                if inspect.isawaitable(result):
                    await result
            total += len(chunk)
        return total

    # Teardown

    def cleanup(self) -> CleanupReport:
        """
        Release both handles and remove the FIFO if this pipe created it.

        Safe to call any number of times, from any state, including from a
        signal handler. Problems are logged and returned in the report.

        Returns:
            What the call did; ``already_closed`` is set on repeat calls
        """
        with self._state_lock:
            if self._closed:
                return CleanupReport(path=self._path, already_closed=True)
            self._closed = True
            previous = self._state
            self._state = PipeState.CLOSED

        report = CleanupReport(path=self._path)
        report.errors.extend(self._bridge.close())

        try:
            report.removed_fifo = self._resource.remove_fifo()
        except CleanupError as e:
            report.errors.append(e)
        except Exception as e:
            report.errors.append(
                CleanupError("Unexpected error removing named pipe", path=self._path, cause=e)
            )

        self._registry.unregister(self._signal_token)
        self._signal_token = None

        for error in report.errors:
            self._logger.warning("Cleanup diagnostic", pipe_path=self._path, error=str(error))

        self._logger.info(
            "Named pipe closed",
            pipe_path=self._path,
            previous_state=previous.value,
            removed=report.removed_fifo,
        )
        self._emit(
            PipeEventType.CLOSED,
            previous_state=previous.value,
            removed_fifo=report.removed_fifo,
        )

        try:
            self._closed_event.set()
        except RuntimeError as e:
            # Waiters belong to an event loop that is already closed
            self._logger.debug("Could not wake close waiters", error=str(e))

        return report

    async def wait_closed(self) -> None:
        """Wait until the pipe reaches CLOSED."""
        await self._closed_event.wait()

    async def __aenter__(self) -> "NamedPipe":
        return await self.create()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    # Helpers

    def _require_state(self, allowed, operation: str) -> None:
        with self._state_lock:
            if self._state not in allowed:
                raise NotReadyError(
                    f"Cannot {operation} while pipe is {self._state.value}",
                    path=self._path,
                )

    def _to_bytes(self, chunk: Chunk, encoding: Optional[str] = None) -> bytes:
        if isinstance(chunk, bytes):
            return chunk
        if isinstance(chunk, (bytearray, memoryview)):
            return bytes(chunk)
        if isinstance(chunk, str):
            return chunk.encode(encoding or self._config.default_encoding)
        raise TypeError(
            f"Pipe chunks must be bytes-like or str, got {type(chunk).__name__}"
        )

    def _fail(self, error: FifoStreamError) -> None:
        self._logger.error("Pipe failure", pipe_path=self._path, error=str(error))
        self._emit(PipeEventType.ERROR, error=str(error))
        self.cleanup()

    def _emit(self, event_type: PipeEventType, **metadata: Any) -> None:
        self._events.emit_event(PipeEvent(event_type, self._path, metadata=metadata))
