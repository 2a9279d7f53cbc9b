"""Tests for the grid field module."""

import math

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from heatgrid.field import ops
from heatgrid.field.field import (
    GridDimensions,
    GridError,
    GridField,
    InvalidDimensionsError,
    OutOfBoundsError,
    cell_id,
    create_field,
    create_random_field,
    parse_cell_id,
)


class TestGridDimensions:
    """Tests for dimension validation."""

    def test_valid_dimensions(self):
        dims = GridDimensions(width=4, height=3)
        assert dims.num_cells == 12

    @pytest.mark.parametrize("width,height", [(0, 3), (3, 0), (-1, 2), (2.5, 2), (True, 2)])
    def test_invalid_dimensions(self, width, height):
        with pytest.raises(InvalidDimensionsError):
            GridDimensions(width=width, height=height)

    def test_invalid_dimensions_is_value_error(self):
        with pytest.raises(ValueError):
            GridDimensions(width=0, height=1)

    def test_numpy_integers_accepted(self):
        dims = GridDimensions(width=np.int64(2), height=np.int32(5))
        assert dims.num_cells == 10


class TestCreateField:
    """Tests for GridField construction."""

    def test_uniform_initial_value(self):
        field = create_field(GridDimensions(5, 4), 22.0)

        assert isinstance(field, GridField)
        assert field.temperatures.shape == (20,)
        assert field.temperatures.dtype == jnp.float32
        assert jnp.allclose(field.temperatures, 22.0)
        assert field.width == 5
        assert field.height == 4
        assert field.heat_sources == {}

    def test_default_is_room_temperature(self):
        field = create_field(GridDimensions(2, 2))
        assert jnp.allclose(field.temperatures, 22.0)

    def test_initializer_function_row_major(self):
        field = create_field(GridDimensions(3, 2), lambda row, col: 10 * row + col)
        assert field.temperatures.tolist() == [0.0, 1.0, 2.0, 10.0, 11.0, 12.0]

    def test_sequence_initial_values(self):
        field = create_field(GridDimensions(3, 1), [0, 100, 0])
        assert field.temperatures.tolist() == [0.0, 100.0, 0.0]

    def test_2d_array_initial_values(self):
        values = np.arange(6, dtype=np.float32).reshape(2, 3)
        field = create_field(GridDimensions(3, 2), values)
        assert np.array_equal(ops.as_grid(field), values)

    def test_wrong_length_sequence(self):
        with pytest.raises(ValueError):
            create_field(GridDimensions(3, 3), [1.0, 2.0])

    def test_non_finite_initial_value(self):
        with pytest.raises(ValueError):
            create_field(GridDimensions(2, 2), math.nan)
        with pytest.raises(ValueError):
            create_field(GridDimensions(2, 1), [0.0, math.inf])

    def test_random_field_range(self):
        field = create_random_field(GridDimensions(10, 10), jax.random.PRNGKey(0))
        temps = np.asarray(field.temperatures)

        assert temps.shape == (100,)
        assert temps.min() >= -20
        assert temps.max() <= 50
        # Whole degrees, like the dashboard's initial zone values
        assert np.array_equal(temps, np.round(temps))

    def test_random_field_deterministic_per_key(self):
        dims = GridDimensions(6, 6)
        a = create_random_field(dims, jax.random.PRNGKey(3))
        b = create_random_field(dims, jax.random.PRNGKey(3))
        c = create_random_field(dims, jax.random.PRNGKey(4))

        assert jnp.array_equal(a.temperatures, b.temperatures)
        assert not jnp.array_equal(a.temperatures, c.temperatures)


class TestCellIds:
    """Tests for "row-col" cell id encoding."""

    def test_roundtrip(self):
        assert cell_id(3, 7) == "3-7"
        assert parse_cell_id("3-7") == (3, 7)

    @pytest.mark.parametrize("bad", ["", "3", "a-b", "3-", "-1-2", "1-2-3"])
    def test_malformed(self, bad):
        with pytest.raises(ValueError):
            parse_cell_id(bad)


class TestFieldOps:
    """Tests for addressing, edits and pinning."""

    def test_index_of_row_major(self):
        field = create_field(GridDimensions(4, 3), 0.0)
        assert ops.index_of(field, 0, 0) == 0
        assert ops.index_of(field, 0, 3) == 3
        assert ops.index_of(field, 1, 0) == 4
        assert ops.index_of(field, 2, 3) == 11

    @pytest.mark.parametrize("row,col", [(-1, 0), (0, -1), (3, 0), (0, 4)])
    def test_index_of_out_of_bounds(self, row, col):
        field = create_field(GridDimensions(4, 3), 0.0)
        with pytest.raises(OutOfBoundsError):
            ops.index_of(field, row, col)

    def test_out_of_bounds_is_grid_error(self):
        field = create_field(GridDimensions(2, 2), 0.0)
        with pytest.raises(GridError):
            ops.get(field, 5, 5)

    def test_set_cell_is_functional(self):
        field = create_field(GridDimensions(3, 3), 0.0)
        updated = ops.set_cell(field, 1, 2, 42.0)

        assert ops.get(updated, 1, 2) == 42.0
        assert ops.get(field, 1, 2) == 0.0

    def test_set_cell_rejects_non_finite(self):
        field = create_field(GridDimensions(2, 2), 0.0)
        with pytest.raises(ValueError):
            ops.set_cell(field, 0, 0, math.inf)

    def test_pin_forces_temperature(self):
        field = create_field(GridDimensions(2, 2), 0.0)
        pinned = ops.pin_source(field, "1-0", 45.0)

        assert ops.is_source(pinned, "1-0")
        assert ops.get(pinned, 1, 0) == 45.0
        assert pinned.heat_sources == {"1-0": 45.0}
        # Original untouched
        assert not ops.is_source(field, "1-0")
        assert ops.get(field, 1, 0) == 0.0

    def test_pin_accepts_tuple(self):
        field = create_field(GridDimensions(3, 2), 0.0)
        pinned = ops.pin_source(field, (1, 2), -5.0)
        assert ops.is_source(pinned, "1-2")

    def test_repin_replaces_value(self):
        field = create_field(GridDimensions(2, 2), 0.0)
        field = ops.pin_source(field, "0-1", 10.0)
        field = ops.pin_source(field, "0-1", 30.0)
        assert field.heat_sources == {"0-1": 30.0}
        assert ops.get(field, 0, 1) == 30.0

    def test_unpin_keeps_temperature(self):
        field = ops.pin_source(create_field(GridDimensions(2, 2), 0.0), "0-0", 99.0)
        released = ops.unpin_source(field, "0-0")

        assert not ops.is_source(released, "0-0")
        assert ops.get(released, 0, 0) == 99.0
        assert released.heat_sources == {}

    def test_unpin_non_source_is_noop(self):
        field = create_field(GridDimensions(2, 2), 5.0)
        released = ops.unpin_source(field, "1-1")
        assert jnp.array_equal(released.temperatures, field.temperatures)
        assert released.heat_sources == {}

    def test_pin_out_of_bounds(self):
        field = create_field(GridDimensions(2, 2), 0.0)
        with pytest.raises(OutOfBoundsError):
            ops.pin_source(field, "2-0", 10.0)

    def test_pin_malformed_id(self):
        field = create_field(GridDimensions(2, 2), 0.0)
        with pytest.raises(ValueError):
            ops.pin_source(field, "zone-1", 10.0)
