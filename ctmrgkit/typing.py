"""
Typing helper for the module
"""

from __future__ import annotations

from typing import Union, Any, Sequence, Tuple

import numpy as np
import jax
import jax.numpy as jnp

Tensor = Union[
    np.ndarray, jax.numpy.ndarray
]  #: Typing object for a numpy or jax tensor

Tensor_Grid = Tuple[Tuple[Tensor, ...], ...]  #: Unit cell of tensors [row][col]

Direction_Tensor_Grid = Tuple[
    Tensor_Grid, Tensor_Grid, Tensor_Grid, Tensor_Grid
]  #: Unit cell of tensors per direction [direction][row][col]


def is_tensor(a: Any) -> bool:
    """
    Test if object is a numpy or jax tensor

    Args:
      a: Object to be tested
    Returns:
      bool:
        True if object is a numpy or jax.ndarray. False otherwise.
    """
    return isinstance(a, (np.ndarray, jnp.ndarray))


def is_int(a: Any) -> bool:
    """
    Test if object is a integer.

    Args:
      a: Object to be tested
    Returns:
      bool:
        True if object is a integer. False otherwise.
    """
    if isinstance(a, (bool, np.bool_)):
        return False

    if isinstance(a, (int, np.integer)):
        return True

    if (
        isinstance(a, (np.ndarray, jnp.ndarray))
        and a.ndim == 0
        and jnp.issubdtype(a.dtype, jnp.integer)
    ):
        return True

    return False


def to_grid(tensors: Sequence[Sequence[Tensor]]) -> Tensor_Grid:
    """
    Convert a nested sequence of tensors into a rectangular tuple of tuples.

    Args:
      tensors (:term:`sequence` of :term:`sequence` of :obj:`jax.numpy.ndarray`):
        Nested sequence indexed [row][col].
    Returns:
      :obj:`tuple` of :obj:`tuple` of :obj:`jax.numpy.ndarray`:
        The tensors as immutable grid.
    """
    grid = tuple(tuple(row) for row in tensors)

    if len(grid) == 0 or len(grid[0]) == 0:
        raise ValueError("Unit cell needs at least one row and one column.")

    if not all(len(row) == len(grid[0]) for row in grid):
        raise ValueError("Unit cell rows have different lengths.")

    if not all(is_tensor(t) for row in grid for t in row):
        raise ValueError("Unit cell elements have to be numpy or jax arrays.")

    return grid
