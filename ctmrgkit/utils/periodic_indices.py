"""
Coordinates on the periodic unit cell and the clockwise boundary traversal
used by the CTMRG routine.
"""

import enum
from typing import Iterator, NamedTuple, Sequence, Tuple

import jax.numpy as jnp

from ctmrgkit.typing import Tensor


@enum.unique
class Direction(enum.IntEnum):
    """
    Directions of the environment tensors, numbered clockwise.
    """

    NORTH = 0
    EAST = 1
    SOUTH = 2
    WEST = 3

    def rotate(self, steps: int = 1) -> "Direction":
        return Direction((self + steps) % 4)


class Coordinate(NamedTuple):
    """
    Coordinate of an environment tensor or a projector bond.
    """

    direction: Direction
    row: int
    col: int


_OUTWARD_SHIFT = {
    Direction.NORTH: (-1, 0),
    Direction.EAST: (0, 1),
    Direction.SOUTH: (1, 0),
    Direction.WEST: (0, -1),
}


def outward_shift(direction: int) -> Tuple[int, int]:
    """
    Lattice step from a site towards the boundary of direction `direction`.

    Args:
      direction (:obj:`int` or :obj:`~ctmrgkit.utils.periodic_indices.Direction`):
        The direction.
    Returns:
      :obj:`tuple` of two :obj:`int`:
        Row and column step.
    """
    return _OUTWARD_SHIFT[Direction(direction % 4)]


def periodic_index(row: int, col: int, size: Tuple[int, int]) -> Tuple[int, int]:
    return row % size[0], col % size[1]


def shift_position(
    row: int, col: int, size: Tuple[int, int], *directions: int
) -> Tuple[int, int]:
    """
    Move the position (row, col) one step outwards for each direction given
    and wrap the result into the unit cell.
    """
    for d in directions:
        dr, dc = outward_shift(d)
        row += dr
        col += dc
    return periodic_index(row, col, size)


def next_coordinate(coordinate: Coordinate, size: Tuple[int, int]) -> Coordinate:
    """
    Next coordinate along the clockwise boundary traversal. The enlarged
    corner at the returned coordinate shares the bond of `coordinate`.

    Args:
      coordinate (:obj:`~ctmrgkit.utils.periodic_indices.Coordinate`):
        Start coordinate.
      size (:obj:`tuple` of two :obj:`int`):
        Rows and columns of the unit cell.
    Returns:
      :obj:`~ctmrgkit.utils.periodic_indices.Coordinate`:
        The next coordinate.
    """
    direction = Direction((coordinate.direction + 1) % 4)
    row, col = shift_position(coordinate.row, coordinate.col, size, direction)
    return Coordinate(direction, row, col)


def prev_coordinate(coordinate: Coordinate, size: Tuple[int, int]) -> Coordinate:
    """
    Inverse of :obj:`next_coordinate`.

    Args:
      coordinate (:obj:`~ctmrgkit.utils.periodic_indices.Coordinate`):
        Start coordinate.
      size (:obj:`tuple` of two :obj:`int`):
        Rows and columns of the unit cell.
    Returns:
      :obj:`~ctmrgkit.utils.periodic_indices.Coordinate`:
        The previous coordinate.
    """
    dr, dc = outward_shift(coordinate.direction)
    row, col = periodic_index(coordinate.row - dr, coordinate.col - dc, size)
    return Coordinate(Direction((coordinate.direction - 1) % 4), row, col)


def each_coordinate(
    size: Tuple[int, int], directions: Sequence[int] = tuple(Direction)
) -> Iterator[Coordinate]:
    for d in directions:
        for row in range(size[0]):
            for col in range(size[1]):
                yield Coordinate(Direction(d), row, col)


def rotate_site(tensor: Tensor, direction: int) -> Tensor:
    """
    Transpose a rank-4 site tensor with legs (north, east, south, west) into
    the frame of `direction`, i.e. the leg pointing to `direction` becomes the
    first one and the remaining legs follow clockwise.
    """
    d = int(direction) % 4
    if d == 0:
        return tensor
    return jnp.transpose(tensor, tuple((d + i) % 4 for i in range(4)))
