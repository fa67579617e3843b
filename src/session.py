"""
src/session.py

Simulation session state.

A session owns one field, its parameters, its frontier and its random
source. Only the stream attached to it ever mutates those.
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

from errors import ForestFireError
from fire_simulation import SimulationParameters
from frontier import FlammableFrontier
from grid_model import Field


class SessionState(Enum):
    """Session lifecycle. Terminal states are absorbing."""
    CREATED = "created"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    SessionState.COMPLETED, SessionState.CANCELLED, SessionState.FAILED
})

ALLOWED_TRANSITIONS = {
    SessionState.CREATED: {SessionState.STREAMING, SessionState.CANCELLED},
    SessionState.STREAMING: set(TERMINAL_STATES),
}


@dataclass
class Session:
    """One isolated simulation run bound to at most one stream."""
    session_id: str
    field: Field
    params: SimulationParameters
    frontier: FlammableFrontier
    rng: np.random.RandomState
    cancel_event: threading.Event = field(default_factory=threading.Event)
    state: SessionState = SessionState.CREATED
    generation: int = 0
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    error: Optional[ForestFireError] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: SessionState) -> bool:
        """
        Move to a new lifecycle state.

        Callers hold the registry lock.

        Returns:
            True if the transition happened, False if it is not allowed
            from the current state (e.g. the session already finished)
        """
        if new_state not in ALLOWED_TRANSITIONS.get(self.state, ()):
            return False

        self.state = new_state
        if new_state in TERMINAL_STATES:
            self.finished_at = time.time()
        if new_state == SessionState.CANCELLED:
            # Wakes a stream blocked in its tick wait
            self.cancel_event.set()
        return True

