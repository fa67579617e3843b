"""
src/frontier.py

Flammable Frontier Tracking

The frontier is the set of cell positions that can change in the next
generation: every Burning cell plus every Tree orthogonally adjacent to one.
It is computed once with a full scan and afterwards updated incrementally
from the cells that changed, so per-tick cost follows the fire boundary
rather than the grid size.

False positives are allowed. A missing member would stall the fire.
"""

from typing import Iterable, List, Set
import logging

from constants import CellState
from grid_model import Field

logger = logging.getLogger(__name__)

FlammableFrontier = Set[int]


def initial_frontier(field: Field) -> FlammableFrontier:
    """
    Full O(cells) scan for the starting frontier.

    Args:
        field: Dense field

    Returns:
        Set of cell positions
    """
    frontier: FlammableFrontier = set()
    for position, cell in enumerate(field.cells):
        if cell.state == CellState.BURNING:
            frontier.add(position)
        elif cell.state == CellState.TREE and field.has_burning_neighbor(position):
            frontier.add(position)

    logger.debug(f"Initial frontier: {len(frontier)} of {len(field)} cells")
    return frontier


def next_frontier(field: Field, previous: FlammableFrontier,
                  changed: Iterable[int]) -> FlammableFrontier:
    """
    Incrementally update the frontier after a generation was applied.

    Membership of a cell depends only on its own state and its neighbours'
    states, so only changed cells and their neighbourhoods are re-examined.

    Args:
        field: Field with this generation's changes already applied
        previous: Frontier the generation was computed from (not mutated)
        changed: Positions whose state or burn time changed

    Returns:
        New frontier
    """
    frontier = set(previous)
    cells = field.cells

    candidates = set()
    for position in changed:
        candidates.add(position)
        candidates.update(field.neighbors(position))

    for position in candidates:
        state = cells[position].state
        if state == CellState.BURNING:
            frontier.add(position)
        elif not field.has_burning_neighbor(position):
            frontier.discard(position)
        elif state == CellState.TREE:
            frontier.add(position)
        # Empty next to fire keeps whatever membership it had

    return frontier


def frontier_coordinates(field: Field, frontier: FlammableFrontier) -> List[str]:
    """Sorted "x,y" keys of the frontier cells."""
    return sorted(field.cells[position].key for position in frontier)
