"""
src/grid_model.py

Grid Model for the Forest Fire Automaton

Provides:
- Cell and Field representation
- "x,y" coordinate indexing over a flat cell list
- Dense field reconstruction from a sparse/partial client description

The field is centered on the origin. For a width w the x range is
[-(w // 2), w - w // 2), so odd sizes give the extra column to the
positive side.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from constants import (
    CellState, CELL_STATE_NAMES, DEFAULT_CELL_STATE, NEIGHBOR_OFFSETS,
    coordinate_key
)
from errors import (
    InvalidInput, InvalidDimensions, DuplicateCoordinate, OutOfBounds
)

logger = logging.getLogger(__name__)

# ============================================================================
# CELL
# ============================================================================

def parse_cell_state(value: Any) -> CellState:
    """
    Parse a cell state from its wire code ("T"/"B"/"E") or name.

    Raises:
        InvalidInput: if the value is not a known state
    """
    if isinstance(value, CellState):
        return value
    if isinstance(value, str):
        try:
            return CellState(value)
        except ValueError:
            pass
        state = CELL_STATE_NAMES.get(value.lower())
        if state is not None:
            return state
    raise InvalidInput(f"Unknown cell state: {value!r}")


@dataclass
class Cell:
    """State of a single grid cell."""
    x: int                      # Grid x coordinate (centered)
    y: int                      # Grid y coordinate (centered)
    state: CellState            # Tree, Burning or Empty
    burn_time: int = 0          # Generations since ignition

    @property
    def key(self) -> str:
        return coordinate_key(self.x, self.y)

    def is_burning(self) -> bool:
        return self.state == CellState.BURNING

    def copy(self) -> "Cell":
        return Cell(self.x, self.y, self.state, self.burn_time)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form used in delta events."""
        return {
            "x": self.x,
            "y": self.y,
            "state": self.state.value,
            "burnTime": self.burn_time,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Cell":
        """
        Parse a client-supplied cell.

        Args:
            data: {"x": int, "y": int, "state": str, "burnTime": int}

        Raises:
            InvalidInput: on missing keys or wrong types
        """
        if not isinstance(data, dict):
            raise InvalidInput(f"Cell must be an object, got {type(data).__name__}")

        x, y = data.get("x"), data.get("y")
        if not _is_int(x) or not _is_int(y):
            raise InvalidInput(f"Cell coordinates must be integers: {data!r}")

        state = parse_cell_state(data.get("state", DEFAULT_CELL_STATE.value))

        burn_time = data.get("burnTime", 0)
        if not _is_int(burn_time) or burn_time < 0:
            raise InvalidInput(f"burnTime must be a non-negative integer: {data!r}")

        return cls(x=x, y=y, state=state, burn_time=burn_time)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ============================================================================
# FIELD
# ============================================================================

def axis_range(size: int) -> Tuple[int, int]:
    """Half-open [low, high) coordinate range for one axis of the given size."""
    low = -(size // 2)
    return low, low + size


@dataclass
class Field:
    """
    Dense grid of cells.

    Attributes:
        width, height: Grid size (cells)
        cells: Flat list of width * height cells
        coordinate_index: "x,y" -> position in cells (bijection)
        neighbor_table: position -> positions of in-grid von Neumann neighbours
    """
    width: int
    height: int
    cells: List[Cell]
    coordinate_index: Dict[str, int]
    neighbor_table: List[Tuple[int, ...]] = field(default_factory=list)

    def __post_init__(self):
        if not self.neighbor_table:
            self.neighbor_table = self._build_neighbor_table()

    def _build_neighbor_table(self) -> List[Tuple[int, ...]]:
        table = []
        for cell in self.cells:
            neighbors = []
            for dx, dy in NEIGHBOR_OFFSETS:
                position = self.coordinate_index.get(
                    coordinate_key(cell.x + dx, cell.y + dy))
                if position is not None:
                    neighbors.append(position)
            table.append(tuple(neighbors))
        return table

    def bounds(self) -> Tuple[int, int, int, int]:
        """Return (x_min, x_max, y_min, y_max), max bounds exclusive."""
        x_min, x_max = axis_range(self.width)
        y_min, y_max = axis_range(self.height)
        return x_min, x_max, y_min, y_max

    def contains(self, x: int, y: int) -> bool:
        x_min, x_max, y_min, y_max = self.bounds()
        return x_min <= x < x_max and y_min <= y < y_max

    def index_of(self, x: int, y: int) -> Optional[int]:
        return self.coordinate_index.get(coordinate_key(x, y))

    def cell_at(self, x: int, y: int) -> Optional[Cell]:
        """Get cell by coordinates, None outside the grid."""
        position = self.index_of(x, y)
        if position is None:
            return None
        return self.cells[position]

    def neighbors(self, position: int) -> Tuple[int, ...]:
        """Positions of the in-grid orthogonal neighbours of a cell."""
        return self.neighbor_table[position]

    def has_burning_neighbor(self, position: int) -> bool:
        cells = self.cells
        return any(cells[n].state == CellState.BURNING
                   for n in self.neighbor_table[position])

    def non_default_cells(self, default_state: CellState = DEFAULT_CELL_STATE) -> List[Cell]:
        """Cells whose state differs from the reconstruction default."""
        return [cell for cell in self.cells if cell.state != default_state]

    def count_by_state(self) -> Dict[str, int]:
        counts = {state.value: 0 for state in CellState}
        for cell in self.cells:
            counts[cell.state.value] += 1
        return counts

    def __len__(self) -> int:
        return len(self.cells)


@dataclass
class SparseField:
    """Client description of a field: size plus any non-default cells."""
    width: int
    height: int
    cells: List[Cell] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "SparseField":
        """
        Parse the wire description {"width", "height", "cells": [...]}.

        Height falls back to width when omitted (square grid).

        Raises:
            InvalidInput: on malformed input
            InvalidDimensions: on non-integer or non-positive sizes
        """
        if not isinstance(data, dict):
            raise InvalidInput("Field must be an object")

        width = data.get("width")
        height = data.get("height", width)
        for name, value in (("width", width), ("height", height)):
            if not _is_int(value):
                raise InvalidDimensions(f"Field {name} must be an integer, got {value!r}")

        raw_cells = data.get("cells", [])
        if raw_cells is None:
            raw_cells = []
        if not isinstance(raw_cells, list):
            raise InvalidInput("Field cells must be a list")

        return cls(width=width, height=height,
                   cells=[Cell.from_dict(c) for c in raw_cells])


# ============================================================================
# INDEXING AND RECONSTRUCTION
# ============================================================================

def build_coordinate_index(cells: Iterable[Cell]) -> Dict[str, int]:
    """
    Build the "x,y" -> position index for a cell list.

    Raises:
        DuplicateCoordinate: if two cells share a coordinate
    """
    index: Dict[str, int] = {}
    for position, cell in enumerate(cells):
        key = cell.key
        if key in index:
            raise DuplicateCoordinate(
                f"Duplicate coordinate {key} at positions {index[key]} and {position}")
        index[key] = position
    return index


def reconstruct_dense_field(sparse: SparseField,
                            default_state: CellState = DEFAULT_CELL_STATE) -> Field:
    """
    Produce a fully populated field from a sparse description.

    Every coordinate of the bounding box starts as a default cell; supplied
    cells are then overlaid in order, so the last one wins on duplicates.

    Args:
        sparse: Size plus partial cell list
        default_state: State of every cell not supplied

    Returns:
        Dense Field with width * height cells

    Raises:
        InvalidDimensions: width or height <= 0
        OutOfBounds: a supplied cell lies outside the bounding box
    """
    if sparse.width <= 0 or sparse.height <= 0:
        raise InvalidDimensions(
            f"Field dimensions must be positive, got {sparse.width}x{sparse.height}")

    x_min, x_max = axis_range(sparse.width)
    y_min, y_max = axis_range(sparse.height)

    cells = [Cell(x=x, y=y, state=default_state)
             for y in range(y_min, y_max)
             for x in range(x_min, x_max)]
    index = build_coordinate_index(cells)

    for supplied in sparse.cells:
        position = index.get(supplied.key)
        if position is None:
            raise OutOfBounds(
                f"Cell {supplied.key} outside field bounds "
                f"x[{x_min},{x_max}) y[{y_min},{y_max})")
        cells[position] = supplied.copy()

    logger.debug(f"Reconstructed {sparse.width}x{sparse.height} field "
                 f"with {len(sparse.cells)} supplied cells")

    return Field(width=sparse.width, height=sparse.height,
                 cells=cells, coordinate_index=index)
