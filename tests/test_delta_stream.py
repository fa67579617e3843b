"""
tests/test_delta_stream.py

Test the delta stream generation loop.

Validates:
- Completion event exactly once and last
- Termination with only a completion event
- Cancellation preempts the tick wait
- Transport close and engine failure release the session
- SSE and websocket encodings
"""

import json
import threading
import time
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import delta_stream
from delta_stream import StreamEvent, encode_sse
from errors import InternalEngineError
from session import SessionState
from session_manager import SessionManager

FAST = {"updateInterval": 0.01}


def fire_field(width=5, cells=None):
    if cells is None:
        cells = [{"x": 0, "y": 0, "state": "B"}]
    return {"width": width, "cells": cells}


@pytest.fixture
def manager():
    return SessionManager()


class TestStreamEvents:
    """Test event ordering."""

    def test_no_fire_emits_only_end(self, manager):
        session_id = manager.create(fire_field(cells=[{"x": 1, "y": 1, "state": "E"}]), FAST, {})
        session = manager.get(session_id)

        events = list(manager.attach_stream(session_id))

        assert [e.kind for e in events] == ["end"]
        assert session.state == SessionState.COMPLETED
        assert manager.active_count() == 0

    def test_end_exactly_once_and_last(self, manager):
        session_id = manager.create(fire_field(), FAST, {})

        events = list(manager.attach_stream(session_id))
        kinds = [e.kind for e in events]

        assert kinds.count("end") == 1
        assert kinds[-1] == "end"
        assert all(k == "delta" for k in kinds[:-1])
        generations = [e.generation for e in events]
        assert generations == sorted(generations)
        assert len(set(generations[:-1])) == len(generations) - 1

    def test_first_delta_payload(self, manager):
        session_id = manager.create(fire_field(), FAST, {})

        first = next(iter(manager.attach_stream(session_id)))

        assert first.kind == "delta"
        assert first.generation == 1
        cells = first.payload["updatedCellsMap"]
        assert set(cells) == {"0,0", "0,-1", "0,1", "-1,0", "1,0"}
        assert cells["0,0"]["state"] == "E"
        assert cells["1,0"] == {"x": 1, "y": 0, "state": "B", "burnTime": 0}

    def test_events_single_use(self, manager):
        stream = manager.attach_stream(manager.create(fire_field(), FAST, {}))
        list(stream.events())

        with pytest.raises(RuntimeError):
            next(stream.events())


class TestStreamCancellation:
    """Test cancellation paths."""

    def test_cancel_preempts_wait(self, manager):
        session_id = manager.create(fire_field(), {"updateInterval": 30}, {})
        stream = manager.attach_stream(session_id)
        received = []

        consumer = threading.Thread(target=lambda: received.extend(stream))
        consumer.start()
        time.sleep(0.1)

        started = time.monotonic()
        manager.cancel(session_id)
        consumer.join(timeout=5)

        assert not consumer.is_alive()
        assert time.monotonic() - started < 5
        assert received == []
        assert stream.session.state == SessionState.CANCELLED
        assert manager.active_count() == 0

    def test_cancel_between_events(self, manager):
        session_id = manager.create(fire_field(9), FAST, {})
        events = manager.attach_stream(session_id).events()

        assert next(events).kind == "delta"
        manager.cancel(session_id)

        assert list(events) == []

    def test_transport_close_releases_session(self, manager):
        session_id = manager.create(fire_field(9), FAST, {})
        stream = manager.attach_stream(session_id)
        events = stream.events()

        next(events)
        events.close()

        assert stream.session.state == SessionState.CANCELLED
        assert not manager.has_session(session_id)
        assert manager.cancel(session_id) is False

    def test_close_before_start_releases_session(self, manager):
        session_id = manager.create(fire_field(9), FAST, {})
        stream = manager.attach_stream(session_id)

        stream.close()
        stream.close()

        assert manager.active_count() == 0
        assert manager.retired_state(session_id) == SessionState.CANCELLED
        with pytest.raises(RuntimeError):
            next(stream.events())

    def test_close_after_completion_keeps_state(self, manager):
        session_id = manager.create(fire_field(3), FAST, {})
        stream = manager.attach_stream(session_id)

        list(stream)
        stream.close()

        assert manager.retired_state(session_id) == SessionState.COMPLETED

    def test_engine_error_releases_session(self, manager, monkeypatch):
        def broken(*args, **kwargs):
            raise ValueError("boom")

        monkeypatch.setattr(delta_stream, "advance_generation", broken)
        session_id = manager.create(fire_field(), FAST, {})
        other_id = manager.create(fire_field(), FAST, {})
        stream = manager.attach_stream(session_id)

        assert list(stream) == []
        assert stream.session.state == SessionState.FAILED
        assert isinstance(stream.session.error, InternalEngineError)
        assert not manager.has_session(session_id)
        assert manager.has_session(other_id)


class TestEncoding:
    """Test wire encodings."""

    def test_sse_frames(self, manager):
        session_id = manager.create(fire_field(3), FAST, {})

        frames = list(encode_sse(manager.attach_stream(session_id)))

        assert frames[-1] == "event: end\ndata: {}\n\n"
        for frame in frames[:-1]:
            assert frame.startswith("data: ") and frame.endswith("\n\n")
            assert "updatedCellsMap" in json.loads(frame[len("data: "):])

    def test_sse_close_cancels(self, manager):
        session_id = manager.create(fire_field(9), FAST, {})
        frames = encode_sse(manager.attach_stream(session_id))

        next(frames)
        frames.close()

        assert manager.retired_state(session_id) == SessionState.CANCELLED

    def test_json_frames(self):
        delta = StreamEvent("delta", "abc", 3, {"updatedCellsMap": {}})
        end = StreamEvent("end", "abc", 4)

        assert json.loads(delta.to_json()) == {
            "type": "delta", "sessionId": "abc", "generation": 3, "updatedCellsMap": {}
        }
        assert json.loads(end.to_json()) == {"type": "end", "sessionId": "abc", "generation": 4}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
