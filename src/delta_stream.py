"""
src/delta_stream.py

Delta Stream Protocol

Turns a session into an ordered, cancellable sequence of events:
- delta: cells that changed in one generation (only when non-empty)
- end: the frontier is exhausted (exactly once, always last)

The loop is a generator, so generation n+1 is never computed before the
consumer has taken generation n. Cancellation preempts the tick wait.
"""

import json
import logging
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator

from constants import SSE_END_EVENT, WS_MSG_DELTA, WS_MSG_END
from errors import InternalEngineError
from fire_simulation import GenerationResult, advance_generation
from frontier import frontier_coordinates
from session import Session, SessionState

logger = logging.getLogger(__name__)

EVENT_DELTA = "delta"
EVENT_END = "end"

# ============================================================================
# EVENTS
# ============================================================================

@dataclass
class StreamEvent:
    """One event pushed to a subscriber."""
    kind: str                   # EVENT_DELTA or EVENT_END
    session_id: str
    generation: int
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def delta(cls, session: Session, result: GenerationResult) -> "StreamEvent":
        return cls(EVENT_DELTA, session.session_id, session.generation,
                   result.to_payload())

    @classmethod
    def end(cls, session: Session) -> "StreamEvent":
        return cls(EVENT_END, session.session_id, session.generation)

    @property
    def is_end(self) -> bool:
        return self.kind == EVENT_END

    def to_sse(self) -> str:
        """Server-Sent Events frame."""
        if self.is_end:
            return f"event: {SSE_END_EVENT}\ndata: {{}}\n\n"
        return f"data: {json.dumps(self.payload)}\n\n"

    def to_json(self) -> str:
        """Websocket frame."""
        message = {
            "type": WS_MSG_END if self.is_end else WS_MSG_DELTA,
            "sessionId": self.session_id,
            "generation": self.generation,
        }
        message.update(self.payload)
        return json.dumps(message)


# ============================================================================
# STREAM
# ============================================================================

class DeltaStream:
    """
    Generation loop for one attached session.

    Attributes:
        session: Session being streamed (exclusively owned by this stream)
        on_finish: Callback releasing the session with its final state
        log_generations: Emit a debug line per generation
    """

    def __init__(self, session: Session,
                 on_finish: Callable[[Session, SessionState], bool],
                 log_generations: bool = False):
        self.session = session
        self.on_finish = on_finish
        self.log_generations = log_generations
        self._started = False

    @property
    def session_id(self) -> str:
        return self.session.session_id

    def events(self) -> Iterator[StreamEvent]:
        """
        Run the generation loop, yielding events until the frontier is
        exhausted, the session is cancelled, or the engine fails.

        Closing the generator (transport gone) counts as a cancellation.
        The session is released on every exit path.
        """
        if self._started:
            raise RuntimeError(f"Stream for session {self.session_id} already started")
        self._started = True

        session = self.session
        outcome = SessionState.CANCELLED
        logger.info(f"Session {session.session_id} streaming "
                    f"(interval={session.params.update_interval_s}s, "
                    f"frontier={len(session.frontier)})")

        try:
            while not session.cancelled:
                # Sole suspension point; returns early on cancellation
                if session.cancel_event.wait(session.params.update_interval_s):
                    break

                result = advance_generation(session.field, session.params,
                                            session.frontier, session.rng)
                session.frontier = result.next_frontier
                session.generation += 1

                if self.log_generations:
                    logger.debug(
                        f"Session {session.session_id} gen {session.generation}: "
                        f"{len(result.updated_cells)} changed, "
                        f"frontier={frontier_coordinates(session.field, session.frontier)}")

                if session.cancelled:
                    break

                if result.updated_cells:
                    yield StreamEvent.delta(session, result)
                    if session.cancelled:
                        break

                if result.is_terminal:
                    # Released before the end event goes out; loses to a
                    # cancel that got in first
                    if self.on_finish(session, SessionState.COMPLETED):
                        outcome = SessionState.COMPLETED
                        yield StreamEvent.end(session)
                    return

        except GeneratorExit:
            if outcome != SessionState.COMPLETED:
                logger.info(f"Session {session.session_id} transport closed")
            raise

        except Exception as e:
            outcome = SessionState.FAILED
            session.error = InternalEngineError(
                f"Generation {session.generation + 1} failed: {e}")
            logger.error(f"Session {session.session_id} engine error: {e}",
                         exc_info=True)

        finally:
            self.on_finish(session, outcome)

    def close(self) -> None:
        """Release a session whose stream was never started (transport gone)."""
        if self._started:
            return
        self._started = True
        logger.info(f"Session {self.session_id} closed before streaming")
        self.on_finish(self.session, SessionState.CANCELLED)

    def __iter__(self) -> Iterator[StreamEvent]:
        return self.events()


def encode_sse(stream: DeltaStream) -> Iterator[str]:
    """SSE text frames for a stream; closing this closes the stream."""
    with closing(stream.events()) as events:
        for event in events:
            yield event.to_sse()
