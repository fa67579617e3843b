"""
src/fire_simulation.py

Generation Engine (Classic Forest-Fire Rule)

Advances a field by one generation, looking only at frontier cells:
- Burning cells age and burn out after burn_duration generations
- Trees next to fire ignite with ignition_probability
- Optional regrowth (Empty -> Tree) and lightning (Tree -> Burning)
- Decisions use the pre-tick state, so fire never chains within one tick
- Seeded RNG for reproducible runs within a process
"""

import math
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import logging

from constants import CellState
from config import FireDefaultsConfig
from errors import InvalidInput
from grid_model import Cell, Field
from frontier import FlammableFrontier, next_frontier

logger = logging.getLogger(__name__)

# ============================================================================
# SIMULATION PARAMETERS
# ============================================================================

@dataclass
class SimulationParameters:
    """
    Validated per-session rule configuration.

    Attributes:
        update_interval_s: Wall-clock delay between generations (> 0)
        ignition_probability: Chance a Tree next to fire ignites per tick
        growth_probability: Chance a tracked Empty cell regrows per tick
        lightning_probability: Chance a tracked Tree ignites on its own per tick
        burn_duration: Generations a cell burns before turning Empty (> 0)
        seed: RNG seed, None for an unseeded run
    """
    update_interval_s: float
    ignition_probability: float = 1.0
    growth_probability: float = 0.0
    lightning_probability: float = 0.0
    burn_duration: int = 1
    seed: Optional[int] = None

    # Wire key -> attribute; first match wins
    WIRE_KEYS = (
        ("updateIntervalSeconds", "update_interval_s"),
        ("updateInterval", "update_interval_s"),
        ("ignitionProbability", "ignition_probability"),
        ("growthProbability", "growth_probability"),
        ("lightningProbability", "lightning_probability"),
        ("burnDuration", "burn_duration"),
        ("seed", "seed"),
    )

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Raises:
            InvalidInput: if any value is out of range
        """
        if not _is_number(self.update_interval_s) or self.update_interval_s <= 0:
            raise InvalidInput(
                f"updateInterval must be a positive finite number, got {self.update_interval_s!r}")

        for name in ("ignition_probability", "growth_probability", "lightning_probability"):
            value = getattr(self, name)
            if not _is_number(value) or value < 0:
                raise InvalidInput(f"{name} must be a non-negative finite number, got {value!r}")

        if (not isinstance(self.burn_duration, int) or isinstance(self.burn_duration, bool)
                or self.burn_duration <= 0):
            raise InvalidInput(
                f"burnDuration must be a positive integer, got {self.burn_duration!r}")

        if self.seed is not None and (not isinstance(self.seed, int) or isinstance(self.seed, bool)):
            raise InvalidInput(f"seed must be an integer, got {self.seed!r}")

    @classmethod
    def from_dict(cls, data: Any,
                  defaults: Optional[FireDefaultsConfig] = None) -> "SimulationParameters":
        """
        Parse client params, filling gaps from configured defaults.

        Args:
            data: Client params object (camelCase wire keys)
            defaults: Fallback values; built-in defaults if None

        Raises:
            InvalidInput: on a non-object or out-of-range value
        """
        if not isinstance(data, dict):
            raise InvalidInput("params must be an object")

        defaults = defaults or FireDefaultsConfig()
        values = {
            "update_interval_s": defaults.update_interval_s,
            "ignition_probability": defaults.ignition_probability,
            "growth_probability": defaults.growth_probability,
            "lightning_probability": defaults.lightning_probability,
            "burn_duration": defaults.burn_duration,
            "seed": defaults.seed,
        }

        seen = set()
        for wire_key, attr in cls.WIRE_KEYS:
            if wire_key in data and attr not in seen:
                values[attr] = data[wire_key]
                seen.add(attr)

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updateIntervalSeconds": self.update_interval_s,
            "ignitionProbability": self.ignition_probability,
            "growthProbability": self.growth_probability,
            "lightningProbability": self.lightning_probability,
            "burnDuration": self.burn_duration,
            "seed": self.seed,
        }


def _is_number(value: Any) -> bool:
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int) and not isinstance(value, bool)


# ============================================================================
# GENERATION ENGINE
# ============================================================================

@dataclass
class GenerationResult:
    """Output of one generation."""
    updated_cells: Dict[str, Cell]      # "x,y" -> snapshot of changed cell
    next_frontier: FlammableFrontier
    changed: List[int] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return not self.next_frontier

    def to_payload(self) -> Dict[str, Any]:
        """Delta event payload."""
        return {
            "updatedCellsMap": {
                key: cell.to_dict() for key, cell in self.updated_cells.items()
            }
        }


def make_rng(seed: Optional[int] = None) -> np.random.RandomState:
    """Create the per-session random source."""
    return np.random.RandomState(seed)


def _trial(rng: np.random.RandomState, probability: float) -> bool:
    """Independent Bernoulli trial. Certain and impossible outcomes draw nothing."""
    if probability >= 1.0:
        return True
    if probability <= 0.0:
        return False
    return rng.random_sample() < probability


def advance_generation(field: Field, params: SimulationParameters,
                       frontier: FlammableFrontier,
                       rng: np.random.RandomState) -> GenerationResult:
    """
    Apply one generation of the transition rule to the frontier cells.

    The field is mutated in place. Cells outside the frontier are never read
    for a decision about themselves and never written.

    Args:
        field: Dense field owned by the calling session
        params: Rule configuration
        frontier: Positions that may change this tick
        rng: Random source; reuse the same one across ticks of a run

    Returns:
        GenerationResult with the delta and the next frontier
    """
    cells = field.cells

    # Phase 1: decide every transition against the pre-tick state
    transitions: List[Tuple[int, CellState, int]] = []
    for position in sorted(frontier):
        cell = cells[position]

        if cell.state == CellState.BURNING:
            burn_time = cell.burn_time + 1
            if burn_time >= params.burn_duration:
                transitions.append((position, CellState.EMPTY, 0))
            else:
                transitions.append((position, CellState.BURNING, burn_time))

        elif cell.state == CellState.TREE:
            spread = (field.has_burning_neighbor(position)
                      and _trial(rng, params.ignition_probability))
            if spread or _trial(rng, params.lightning_probability):
                transitions.append((position, CellState.BURNING, 0))

        elif cell.state == CellState.EMPTY:
            if _trial(rng, params.growth_probability):
                transitions.append((position, CellState.TREE, 0))

    # Phase 2: apply and collect the delta
    updated_cells: Dict[str, Cell] = {}
    changed: List[int] = []
    for position, new_state, new_burn_time in transitions:
        cell = cells[position]
        if cell.state == new_state and cell.burn_time == new_burn_time:
            continue
        cell.state = new_state
        cell.burn_time = new_burn_time
        updated_cells[cell.key] = cell.copy()
        changed.append(position)

    return GenerationResult(
        updated_cells=updated_cells,
        next_frontier=next_frontier(field, frontier, changed),
        changed=changed,
    )
