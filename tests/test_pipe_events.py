"""
Tests for pipe lifecycle events, the structured logging event system and the
metrics collector.
"""

import logging
import os
import threading

import pytest

from fifostream.errors import CreationError
from fifostream.event_system import Event, EventLevel, EventManager, StructuredLogger
from fifostream.metrics_collector import MetricsCollector
from fifostream.pipe_events import (
    PipeEvent,
    PipeEventListener,
    PipeEventManager,
    PipeEventType,
)


class RecordingListener:
    """Listener that keeps every pipe event it receives."""

    def __init__(self):
        self.events = []

    def on_pipe_event(self, event):
        self.events.append(event)

    @property
    def types(self):
        return [event.pipe_event_type for event in self.events]


class FailingListener:
    def on_pipe_event(self, event):
        raise RuntimeError("listener broke")


class TestPipeEvent:
    """Test cases for PipeEvent."""

    def test_event_attributes(self):
        event = PipeEvent(PipeEventType.READY, "/tmp/p", metadata={"created": True})

        assert event.event_type == "ready"
        assert event.pipe_event_type is PipeEventType.READY
        assert event.path == "/tmp/p"
        assert event.component == "NamedPipe"
        assert event.level is EventLevel.INFO
        assert event.metadata == {"created": True}
        assert "/tmp/p" in event.message

    def test_event_levels(self):
        assert PipeEvent(PipeEventType.ERROR, "p").level is EventLevel.ERROR
        assert PipeEvent(PipeEventType.REUSED, "p").level is EventLevel.DEBUG

    def test_event_is_frozen(self):
        event = PipeEvent(PipeEventType.CLOSED, "p")

        with pytest.raises(AttributeError):
            event.path = "other"

    def test_listener_protocol(self):
        assert isinstance(RecordingListener(), PipeEventListener)


class TestPipeEventManager:
    """Test cases for PipeEventManager."""

    def test_add_and_remove(self):
        manager = PipeEventManager()
        listener = RecordingListener()

        manager.add_listener(listener)
        manager.add_listener(listener)
        assert manager.get_listener_count() == 1

        manager.remove_listener(listener)
        manager.remove_listener(listener)
        assert manager.get_listener_count() == 0

    def test_failing_listener_isolated(self, caplog):
        manager = PipeEventManager()
        recorder = RecordingListener()
        manager.add_listener(FailingListener())
        manager.add_listener(recorder)

        with caplog.at_level(logging.ERROR, logger="fifostream.events"):
            manager.emit_event(PipeEvent(PipeEventType.CREATED, "p"))

        assert recorder.types == [PipeEventType.CREATED]
        assert "FailingListener" in caplog.text


class TestPipeLifecycleEvents:
    """Test cases for events emitted by NamedPipe."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, make_pipe):
        recorder = RecordingListener()
        pipe = make_pipe(event_listeners=[recorder])

        await pipe.create()
        await pipe.end(b"bye")
        await pipe.read_all()

        assert recorder.types == [
            PipeEventType.CREATED,
            PipeEventType.READY,
            PipeEventType.DRAINING,
            PipeEventType.CLOSED,
        ]
        assert all(event.path == pipe.path for event in recorder.events)
        assert recorder.events[-1].metadata["removed_fifo"] is True

    @pytest.mark.asyncio
    async def test_reused_event(self, make_pipe, temp_dir):
        path = str(temp_dir / "existing")
        os.mkfifo(path)
        recorder = RecordingListener()
        pipe = make_pipe(explicit_path=path)
        pipe.add_event_listener(recorder)

        await pipe.create()
        pipe.cleanup()

        assert recorder.types == [
            PipeEventType.REUSED,
            PipeEventType.READY,
            PipeEventType.CLOSED,
        ]
        assert recorder.events[-1].metadata["removed_fifo"] is False

    @pytest.mark.asyncio
    async def test_error_event_on_failure(self, make_pipe, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("x")
        recorder = RecordingListener()
        pipe = make_pipe(temp_directory=str(blocker), event_listeners=[recorder])

        with pytest.raises(CreationError):
            await pipe.create()

        assert recorder.types == [PipeEventType.ERROR, PipeEventType.CLOSED]
        assert "error" in recorder.events[0].metadata

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_pipe(self, make_pipe):
        pipe = make_pipe(event_listeners=[FailingListener()])

        await pipe.create()
        report = pipe.cleanup()

        assert report.ok

    def test_removed_listener_not_called(self, make_pipe):
        recorder = RecordingListener()
        pipe = make_pipe(event_listeners=[recorder])

        pipe.remove_event_listener(recorder)
        pipe.cleanup()

        assert recorder.events == []


class TestStructuredLogging:
    """Test cases for the event system behind StructuredLogger."""

    def test_create_event_returns_frozen_event(self, caplog):
        manager = EventManager()

        with caplog.at_level(logging.WARNING, logger="fifostream.events"):
            event = manager.create_event(
                "warning", "Component", "Something odd", EventLevel.WARNING, pipe_path="/p"
            )

        assert isinstance(event, Event)
        assert event.level is EventLevel.WARNING
        assert event.component == "Component"
        assert event.metadata == {"pipe_path": "/p"}
        assert "Something odd" in caplog.text
        with pytest.raises(AttributeError):
            event.level = EventLevel.ERROR

    def test_events_written_to_python_logger(self, caplog):
        manager = EventManager()

        with caplog.at_level(logging.INFO, logger="fifostream.events"):
            StructuredLogger("NamedPipe", manager).info("Named pipe ready", pipe_path="/p")

        assert "[NamedPipe] info: Named pipe ready [pipe_path=/p]" in caplog.text


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_initial_state(self):
        metrics = MetricsCollector().get_metrics()

        assert all(value == 0 for value in metrics.values())

    def test_counters(self):
        collector = MetricsCollector()

        collector.record_write(10)
        collector.record_write(30)
        collector.record_read(25)
        collector.record_write_error()
        collector.record_read_error()

        metrics = collector.get_metrics()
        assert metrics["bytes_written"] == 40
        assert metrics["chunks_written"] == 2
        assert metrics["bytes_read"] == 25
        assert metrics["chunks_read"] == 1
        assert metrics["write_errors"] == 1
        assert metrics["read_errors"] == 1
        assert metrics["max_chunk_size"] == 30
        assert metrics["bytes_in_flight"] == 15

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_write(5)

        collector.reset_metrics()

        assert collector.get_metrics()["bytes_written"] == 0

    def test_thread_safety(self):
        collector = MetricsCollector()

        def record():
            for _ in range(1000):
                collector.record_write(1)

        threads = [threading.Thread(target=record) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert collector.get_metrics()["bytes_written"] == 8000
