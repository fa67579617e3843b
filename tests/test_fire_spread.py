"""
tests/test_fire_spread.py

Test the generation engine (classic forest-fire rule).

Validates:
- Deterministic spread without chained ignition
- Burnout exactly at burn_duration
- Frontier soundness with random spread, growth and lightning
- Termination and deterministic behavior with seed
- Parameter parsing and validation
"""

import numpy as np
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import FireDefaultsConfig
from constants import CellState
from errors import InvalidInput
from fire_simulation import SimulationParameters, advance_generation, make_rng
from frontier import initial_frontier
from grid_model import Cell, SparseField, reconstruct_dense_field


def make_field(width, height, cells=()):
    return reconstruct_dense_field(SparseField(width, height, list(cells)))


def snapshot(field):
    return [(c.state, c.burn_time) for c in field.cells]


def random_field(size, seed):
    """Random mix of trees, fires and gaps."""
    rng = np.random.RandomState(seed)
    x_low = -(size // 2)
    cells = []
    for y in range(x_low, x_low + size):
        for x in range(x_low, x_low + size):
            roll = rng.random_sample()
            if roll < 0.05:
                cells.append(Cell(x, y, CellState.BURNING))
            elif roll < 0.25:
                cells.append(Cell(x, y, CellState.EMPTY))
    return make_field(size, size, cells)


class TestFireSimulation:
    """Test fire propagation."""

    def test_fire_spread(self):
        """Fire should reach exactly the four orthogonal neighbours."""
        field = make_field(5, 5, [Cell(0, 0, CellState.BURNING)])
        params = SimulationParameters(update_interval_s=0.1)

        result = advance_generation(field, params, initial_frontier(field), make_rng())

        assert set(result.updated_cells) == {"0,0", "0,-1", "0,1", "-1,0", "1,0"}
        assert result.updated_cells["0,0"].state == CellState.EMPTY
        for key in ("0,-1", "0,1", "-1,0", "1,0"):
            assert result.updated_cells[key].state == CellState.BURNING
            assert result.updated_cells[key].burn_time == 0

    def test_no_chained_ignition(self):
        """A cell ignited this tick does not spread until the next one."""
        field = make_field(7, 1, [Cell(-3, 0, CellState.BURNING)])
        params = SimulationParameters(update_interval_s=0.1, burn_duration=5)

        advance_generation(field, params, initial_frontier(field), make_rng())

        assert field.cell_at(-2, 0).state == CellState.BURNING
        assert field.cell_at(-1, 0).state == CellState.TREE

    @pytest.mark.parametrize("duration", [1, 2, 4])
    def test_burnout_at_duration(self, duration):
        """Burning cell turns Empty exactly when burn_time reaches duration."""
        field = make_field(3, 3, [Cell(0, 0, CellState.BURNING)])
        params = SimulationParameters(update_interval_s=0.1, burn_duration=duration,
                                      ignition_probability=0.0)
        frontier = initial_frontier(field)

        for tick in range(1, duration + 1):
            result = advance_generation(field, params, frontier, make_rng())
            frontier = result.next_frontier
            center = field.cell_at(0, 0)
            if tick < duration:
                assert center.state == CellState.BURNING
                assert center.burn_time == tick
            else:
                assert center.state == CellState.EMPTY
                assert center.burn_time == 0

        # Nothing else burns, so the fire is out
        assert result.is_terminal

    def test_burnout_ignores_neighbors(self):
        """Neighbouring fire does not change when a cell burns out."""
        cells = [Cell(x, y, CellState.BURNING) for x in (-1, 0, 1) for y in (-1, 0, 1)]
        field = make_field(3, 3, cells)
        params = SimulationParameters(update_interval_s=0.1, burn_duration=3)
        frontier = initial_frontier(field)

        for _ in range(2):
            frontier = advance_generation(field, params, frontier, make_rng()).next_frontier
        assert field.cell_at(0, 0).state == CellState.BURNING

        advance_generation(field, params, frontier, make_rng())
        assert field.cell_at(0, 0).state == CellState.EMPTY

    def test_frontier_soundness(self):
        """Every cell that changes was in the frontier it was computed from."""
        for seed in range(5):
            field = random_field(15, seed)
            params = SimulationParameters(
                update_interval_s=0.1, ignition_probability=0.7,
                growth_probability=0.2, lightning_probability=0.05,
                burn_duration=2, seed=seed)
            rng = make_rng(seed)
            frontier = initial_frontier(field)

            for _ in range(200):
                before = snapshot(field)
                result = advance_generation(field, params, frontier, rng)
                after = snapshot(field)

                changed = {i for i, (a, b) in enumerate(zip(before, after)) if a != b}
                assert changed <= frontier
                assert changed == set(result.changed)
                assert {field.cells[i].key for i in changed} == set(result.updated_cells)

                frontier = result.next_frontier
                if result.is_terminal:
                    break

    def test_fire_burns_out(self):
        """Certain ignition consumes the whole forest and terminates."""
        field = make_field(7, 7, [Cell(0, 0, CellState.BURNING)])
        params = SimulationParameters(update_interval_s=0.1)
        frontier = initial_frontier(field)

        generations = 0
        while frontier:
            frontier = advance_generation(field, params, frontier, make_rng()).next_frontier
            generations += 1
            assert generations < 50

        assert all(c.state == CellState.EMPTY for c in field.cells)

    def test_zero_ignition_leaves_trees(self):
        field = make_field(5, 5, [Cell(0, 0, CellState.BURNING)])
        params = SimulationParameters(update_interval_s=0.1, ignition_probability=0.0)

        result = advance_generation(field, params, initial_frontier(field), make_rng())

        assert set(result.updated_cells) == {"0,0"}
        assert result.is_terminal
        assert field.count_by_state() == {"T": 24, "B": 0, "E": 1}

    def test_unchanged_generation_has_empty_delta(self):
        field = make_field(3, 3)
        params = SimulationParameters(update_interval_s=0.1)
        tree = field.index_of(0, 0)

        result = advance_generation(field, params, {tree}, make_rng())

        assert result.updated_cells == {}
        assert result.next_frontier == {tree}

    def test_delta_is_snapshot(self):
        field = make_field(3, 3, [Cell(0, 0, CellState.BURNING)])
        params = SimulationParameters(update_interval_s=0.1, burn_duration=3)

        result = advance_generation(field, params, initial_frontier(field), make_rng())
        field.cell_at(0, 0).state = CellState.EMPTY

        assert result.updated_cells["0,0"].state == CellState.BURNING
        assert result.to_payload()["updatedCellsMap"]["0,0"] == {
            "x": 0, "y": 0, "state": "B", "burnTime": 1
        }

    def test_deterministic_with_seed(self):
        """Same seed should produce same fire spread."""
        def run(seed):
            field = make_field(21, 21, [Cell(0, 0, CellState.BURNING)])
            params = SimulationParameters(update_interval_s=0.1,
                                          ignition_probability=0.6, seed=seed)
            rng = make_rng(seed)
            frontier = initial_frontier(field)
            for _ in range(20):
                frontier = advance_generation(field, params, frontier, rng).next_frontier
            return snapshot(field)

        assert run(42) == run(42)

    def test_requires_shared_rng(self):
        """The caller owns the random source for the whole run."""
        field = make_field(3, 3, [Cell(0, 0, CellState.BURNING)])
        params = SimulationParameters(update_interval_s=0.1, seed=1)

        with pytest.raises(TypeError):
            advance_generation(field, params, initial_frontier(field))

    def test_shared_rng_advances_between_ticks(self):
        """Lightning on an isolated tree strikes on different ticks, not never or always."""
        field = make_field(1, 1)
        params = SimulationParameters(update_interval_s=0.1, lightning_probability=0.5,
                                      burn_duration=1, growth_probability=1.0, seed=5)
        rng = make_rng(params.seed)
        frontier = {0}

        struck = []
        for _ in range(60):
            was_tree = field.cells[0].state == CellState.TREE
            advance_generation(field, params, frontier, rng)
            if was_tree:
                struck.append(field.cells[0].state == CellState.BURNING)

        assert any(struck) and not all(struck)


class TestSimulationParameters:
    """Test parameter parsing."""

    def test_defaults_fill_gaps(self):
        defaults = FireDefaultsConfig(update_interval_s=2.0, burn_duration=3)
        params = SimulationParameters.from_dict({"ignitionProbability": 0.5}, defaults)

        assert params.update_interval_s == 2.0
        assert params.burn_duration == 3
        assert params.ignition_probability == 0.5

    def test_update_interval_aliases(self):
        assert SimulationParameters.from_dict({"updateInterval": 0.25}).update_interval_s == 0.25
        params = SimulationParameters.from_dict(
            {"updateIntervalSeconds": 1.5, "updateInterval": 0.25})
        assert params.update_interval_s == 1.5

    def test_probability_above_one_accepted(self):
        assert SimulationParameters.from_dict({"ignitionProbability": 3}).ignition_probability == 3

    @pytest.mark.parametrize("data", [
        {"updateInterval": 0},
        {"updateInterval": -1},
        {"updateInterval": "fast"},
        {"updateInterval": float("nan")},
        {"updateInterval": float("inf")},
        {"updateIntervalSeconds": float("-inf")},
        {"ignitionProbability": float("nan")},
        {"lightningProbability": float("inf")},
        {"ignitionProbability": -0.1},
        {"growthProbability": True},
        {"burnDuration": 0},
        {"burnDuration": 1.5},
        {"seed": "abc"},
    ])
    def test_invalid_values(self, data):
        with pytest.raises(InvalidInput):
            SimulationParameters.from_dict(data)

    def test_non_object(self):
        with pytest.raises(InvalidInput):
            SimulationParameters.from_dict([1, 2])

    def test_wire_form(self):
        params = SimulationParameters(update_interval_s=0.5, seed=7)
        assert params.to_dict()["updateIntervalSeconds"] == 0.5
        assert params.to_dict()["seed"] == 7


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
