"""Cell addressing, edits and heat-source pinning for a GridField.

Every edit returns a new GridField; the input field is never modified.
"""

from typing import Union

import numpy as np

from heatgrid.field.field import (
    GridField,
    OutOfBoundsError,
    check_finite,
    parse_cell_id,
)

CellRef = Union[str, tuple[int, int]]


def index_of(field: GridField, row: int, col: int) -> int:
    """Translate a (row, col) coordinate into the flat row-major index.

    Raises:
        OutOfBoundsError: If the coordinate lies outside the grid.
    """
    if not (0 <= row < field.height and 0 <= col < field.width):
        raise OutOfBoundsError(
            f"Cell ({row}, {col}) is outside a {field.width}x{field.height} grid"
        )
    return int(row) * field.width + int(col)


def _resolve(field: GridField, cell: CellRef) -> int:
    if isinstance(cell, str):
        row, col = parse_cell_id(cell)
    else:
        row, col = cell
    return index_of(field, row, col)


def get(field: GridField, row: int, col: int) -> float:
    """Read the temperature of one cell."""
    return float(field.temperatures[index_of(field, row, col)])


def set_cell(field: GridField, row: int, col: int, value: float) -> GridField:
    """Return a copy of the field with one cell's temperature replaced.

    A pinned cell keeps its pin and is forced back to the pinned value on
    the next diffusion step; use pin_source to change a forced value.
    """
    i = index_of(field, row, col)
    value = check_finite(value)
    return field.replace(temperatures=field.temperatures.at[i].set(value))


def pin_source(field: GridField, cell: CellRef, value: float) -> GridField:
    """Pin a cell as a constant heat source at the given temperature.

    The cell's current temperature is forced to value immediately.
    Pinning an already pinned cell replaces its forced value.
    """
    i = _resolve(field, cell)
    value = check_finite(value)
    return field.replace(
        temperatures=field.temperatures.at[i].set(value),
        source_mask=field.source_mask.at[i].set(True),
        source_values=field.source_values.at[i].set(value),
    )


def unpin_source(field: GridField, cell: CellRef) -> GridField:
    """Release a pinned cell. Its current temperature is kept.

    Unpinning a cell that is not a source returns an equal field.
    """
    i = _resolve(field, cell)
    return field.replace(
        source_mask=field.source_mask.at[i].set(False),
        source_values=field.source_values.at[i].set(0.0),
    )


def is_source(field: GridField, cell: CellRef) -> bool:
    """Whether the cell is pinned as a heat source."""
    return bool(field.source_mask[_resolve(field, cell)])


def as_grid(field: GridField) -> np.ndarray:
    """Temperatures as a (height, width) numpy array."""
    return np.asarray(field.temperatures).reshape(field.height, field.width)
