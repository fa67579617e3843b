"""
src/session_manager.py

Session Registry and Lifecycle

Owns every live simulation session:
- create: validate input, reconstruct the field, compute the frontier
- attach_stream: hand out the single DeltaStream for a session
- cancel: idempotent stop, safe to race with natural completion

The registry dict is the only state shared between sessions and is
guarded by one lock. The lock is never held while a generation runs.
"""

import threading
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional
import logging

from config import FireDefaultsConfig, SessionConfig
from delta_stream import DeltaStream
from errors import InvalidInput, MissingInput, UnknownSession
from fire_simulation import SimulationParameters, make_rng
from frontier import initial_frontier
from grid_model import SparseField, parse_cell_state, reconstruct_dense_field
from session import Session, SessionState

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Registry of live sessions keyed by opaque id.

    Finished ids are remembered in a bounded LRU so that cancelling a
    session that just completed is a success rather than an error.
    """

    def __init__(self, fire_defaults: Optional[FireDefaultsConfig] = None,
                 session_config: Optional[SessionConfig] = None,
                 log_generations: bool = False,
                 id_factory: Optional[Callable[[], str]] = None):
        """
        Initialize session manager.

        Args:
            fire_defaults: Defaults for params a client leaves out
            session_config: Registry settings
            log_generations: Per-generation debug logging in streams
            id_factory: Session id generator (uuid4 hex by default)
        """
        self.fire_defaults = fire_defaults or FireDefaultsConfig()
        self.session_config = session_config or SessionConfig()
        self.log_generations = log_generations
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.default_state = parse_cell_state(self.fire_defaults.default_cell_state)

        self._sessions: Dict[str, Session] = {}
        self._retired: "OrderedDict[str, SessionState]" = OrderedDict()
        self._lock = threading.Lock()

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def create(self, field: Any, params: Any, coords: Any) -> str:
        """
        Create a session from a client submission.

        Args:
            field: Sparse field description
            params: Simulation parameters (wire form)
            coords: Client "x,y" -> index map; shape-checked only, the
                server always builds its own index

        Returns:
            New session id

        Raises:
            MissingInput: field, params or coords absent
            InvalidInput: any part malformed (including dimension,
                bounds and duplicate errors)
        """
        missing = [name for name, value in
                   (("field", field), ("params", params), ("coords", coords))
                   if value is None]
        if missing:
            raise MissingInput(f"Missing {', '.join(missing)}")
        if not isinstance(coords, dict):
            raise InvalidInput("coords must be an object mapping \"x,y\" to an index")

        sim_params = SimulationParameters.from_dict(params, self.fire_defaults)
        dense = reconstruct_dense_field(SparseField.from_dict(field), self.default_state)
        frontier = initial_frontier(dense)

        if coords and len(coords) != len(dense):
            logger.debug(f"Client coords has {len(coords)} entries, "
                         f"field has {len(dense)} cells; using server index")

        with self._lock:
            session_id = self.id_factory()
            while session_id in self._sessions or session_id in self._retired:
                session_id = self.id_factory()
            self._sessions[session_id] = Session(
                session_id=session_id,
                field=dense,
                params=sim_params,
                frontier=frontier,
                rng=make_rng(sim_params.seed),
            )

        logger.info(f"Session {session_id} created: {dense.width}x{dense.height} "
                    f"field, frontier={len(frontier)}")
        return session_id

    def attach_stream(self, session_id: str) -> DeltaStream:
        """
        Attach the one stream a session may have.

        Raises:
            UnknownSession: id absent, finished, or already attached
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not session.transition(SessionState.STREAMING):
                raise UnknownSession(f"Unknown session: {session_id}")

        return DeltaStream(session, self._finish, self.log_generations)

    def cancel(self, session_id: str) -> bool:
        """
        Cancel a session. Idempotent.

        Returns:
            True if a live session was cancelled, False if it had already
            finished (completed, cancelled or failed)

        Raises:
            UnknownSession: the id was never created (or long forgotten)
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                if session_id in self._retired:
                    return False
                raise UnknownSession(f"Unknown session: {session_id}")

            cancelled = self._retire(session, SessionState.CANCELLED)

        if cancelled:
            logger.info(f"Session {session_id} cancelled at generation {session.generation}")
        return cancelled

    def cancel_all(self) -> int:
        """Cancel every live session (shutdown). Returns how many."""
        with self._lock:
            sessions = list(self._sessions.values())
            count = sum(1 for s in sessions if self._retire(s, SessionState.CANCELLED))

        logger.info(f"Cancelled {count} live sessions")
        return count

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get(self, session_id: str) -> Session:
        """
        Raises:
            UnknownSession: no live session with this id
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise UnknownSession(f"Unknown session: {session_id}")
        return session

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def retired_state(self, session_id: str) -> Optional[SessionState]:
        """Final state of a recently finished session, None if not remembered."""
        with self._lock:
            return self._retired.get(session_id)

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    def _finish(self, session: Session, state: SessionState) -> bool:
        """Stream exit callback: release the session with its final state."""
        with self._lock:
            finished = self._retire(session, state)

        if finished:
            logger.info(f"Session {session.session_id} {state.value} "
                        f"after {session.generation} generations")
        return finished

    def _retire(self, session: Session, state: SessionState) -> bool:
        """Transition and drop from the registry. Caller holds the lock."""
        transitioned = session.transition(state)
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]

        self._retired[session.session_id] = session.state
        self._retired.move_to_end(session.session_id)
        while len(self._retired) > self.session_config.retired_session_memory:
            self._retired.popitem(last=False)
        return transitioned
