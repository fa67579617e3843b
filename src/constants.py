"""
src/constants.py

Global constants and configuration defaults for the forest-fire stream server.
"""

from enum import Enum

# ============================================================================
# CELL STATES
# ============================================================================

class CellState(str, Enum):
    """Cell state, valued by the single-letter code the browser client uses."""
    TREE = "T"
    BURNING = "B"
    EMPTY = "E"


# Accepted long-form names when parsing client input
CELL_STATE_NAMES = {
    "tree": CellState.TREE,
    "burning": CellState.BURNING,
    "empty": CellState.EMPTY,
}

DEFAULT_CELL_STATE = CellState.TREE

# ============================================================================
# SIMULATION DEFAULTS
# ============================================================================

DEFAULT_UPDATE_INTERVAL_S = 0.5     # Wall-clock delay between generations
DEFAULT_IGNITION_PROBABILITY = 1.0  # Tree next to fire always ignites
DEFAULT_GROWTH_PROBABILITY = 0.0    # Empty -> Tree regrowth disabled
DEFAULT_LIGHTNING_PROBABILITY = 0.0 # Spontaneous ignition disabled
DEFAULT_BURN_DURATION = 1           # Generations a cell burns before Empty

# Von Neumann neighbourhood offsets (N, S, W, E)
NEIGHBOR_OFFSETS = ((0, -1), (0, 1), (-1, 0), (1, 0))

# ============================================================================
# SESSIONS
# ============================================================================

RETIRED_SESSION_MEMORY = 4096       # Finished ids remembered for idempotent cancel

# ============================================================================
# STREAM PROTOCOL
# ============================================================================

SSE_END_EVENT = "end"
WS_MSG_SUBSCRIBE = "subscribe"
WS_MSG_CANCEL = "cancel"
WS_MSG_DELTA = "delta"
WS_MSG_END = "end"
WS_MSG_ERROR = "error"

# ============================================================================
# SERVER
# ============================================================================

API_HOST = "0.0.0.0"
API_PORT = 8080
WEBSOCKET_HOST = "0.0.0.0"
WEBSOCKET_PORT = 8081
API_BASE_PATH = "/api"
FOREST_FIRE_ROUTE = "/forest-fire"
SERVICE_VERSION = "1.0.0"

# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def coordinate_key(x: int, y: int) -> str:
    """Wire key for a cell coordinate, e.g. "-3,2"."""
    return f"{x},{y}"

