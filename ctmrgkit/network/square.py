"""
Infinite square lattice network of rank-4 site tensors.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class

from ctmrgkit.typing import Tensor, Tensor_Grid, to_grid
from ctmrgkit.utils.periodic_indices import Direction, rotate_site
from ctmrgkit.utils.random import Tensor_Generator

from typing import TypeVar, Type, Optional, Sequence, Tuple, Any, TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .peps import InfinitePEPS
    from .pepo import InfinitePEPO

T_InfiniteSquareNetwork = TypeVar(
    "T_InfiniteSquareNetwork", bound="InfiniteSquareNetwork"
)


class SpaceMismatchError(ValueError):
    """
    Exception if the dimensions of two connected legs do not match.
    """

    pass


def check_virtual_bonds(
    grid: Sequence[Sequence[Tensor]],
    north: int,
    east: int,
    south: int,
    west: int,
    what: str = "network",
) -> None:
    """
    Check the virtual bonds of a periodic unit cell of tensors.

    Args:
      grid (:term:`sequence` of :term:`sequence` of :obj:`jax.numpy.ndarray`):
        Tensors indexed [row][col].
      north, east, south, west (:obj:`int`):
        Axes of the virtual legs in the tensors.
      what (:obj:`str`):
        Name used in the error message.
    Raises:
      :obj:`SpaceMismatchError`: If a bond dimension does not match.
    """
    rows = len(grid)
    cols = len(grid[0])

    for r in range(rows):
        for c in range(cols):
            t = grid[r][c]
            right = grid[r][(c + 1) % cols]
            below = grid[(r + 1) % rows][c]

            if t.shape[east] != right.shape[west]:
                raise SpaceMismatchError(
                    f"East virtual space of {what} tensor at ({r:d}, {c:d}) "
                    f"({t.shape[east]:d}) does not match west virtual space of "
                    f"the tensor at ({r:d}, {(c + 1) % cols:d}) ({right.shape[west]:d})."
                )

            if t.shape[south] != below.shape[north]:
                raise SpaceMismatchError(
                    f"South virtual space of {what} tensor at ({r:d}, {c:d}) "
                    f"({t.shape[south]:d}) does not match north virtual space of "
                    f"the tensor at ({(r + 1) % rows:d}, {c:d}) ({below.shape[north]:d})."
                )


@dataclass(frozen=True)
@register_pytree_node_class
class InfiniteSquareNetwork:
    """
    Periodic unit cell of rank-4 site tensors forming an infinite square
    lattice network, e.g. a classical partition function or the fused
    norm network of a PEPS.

    The legs of each site tensor are ordered (north, east, south, west).

    Args:
      tensors (:term:`sequence` of :term:`sequence` of :obj:`jax.numpy.ndarray`):
        Site tensors indexed [row][col].
    """

    tensors: Tensor_Grid

    sanity_checks: bool = True

    def __post_init__(self) -> None:
        if not self.sanity_checks:
            object.__setattr__(
                self, "tensors", tuple(tuple(row) for row in self.tensors)
            )
            return

        object.__setattr__(self, "tensors", to_grid(self.tensors))

        if not all(t.ndim == 4 for row in self.tensors for t in row):
            raise ValueError("Site tensors of a square network have to be rank 4.")

        check_virtual_bonds(self.tensors, 0, 1, 2, 3)

    @property
    def size(self) -> Tuple[int, int]:
        return len(self.tensors), len(self.tensors[0])

    @property
    def dtype(self) -> jnp.dtype:
        return jnp.result_type(*[t.dtype for row in self.tensors for t in row])

    def site(self, row: int, col: int) -> Tensor:
        rows, cols = self.size
        return self.tensors[row % rows][col % cols]

    def __getitem__(self, key: Tuple[int, int]) -> Tensor:
        row, col = key
        return self.site(row, col)

    def rotated_site(self, direction: int, row: int, col: int) -> Tensor:
        """
        Site tensor at (row, col) transposed into the frame of `direction`.
        """
        return rotate_site(self.site(row, col), direction)

    def virtual_dim(self, direction: int, row: int, col: int) -> int:
        return self.site(row, col).shape[Direction(direction % 4)]

    @classmethod
    def random(
        cls: Type[T_InfiniteSquareNetwork],
        virtual_dim: Union[int, Sequence[int]],
        unitcell: Tuple[int, int] = (1, 1),
        *,
        dtype: Any = jnp.float64,
        seed: Optional[int] = None,
        backend: str = "jax",
    ) -> T_InfiniteSquareNetwork:
        """
        Create a network with random site tensors.

        Args:
          virtual_dim (:obj:`int` or :term:`sequence` of :obj:`int`):
            Bond dimension of all legs or the two dimensions of the
            horizontal and vertical bonds.
          unitcell (:obj:`tuple` of two :obj:`int`):
            Rows and columns of the unit cell.
        Keyword args:
          dtype (:obj:`numpy.dtype` or :obj:`jax.numpy.dtype`, optional):
            Dtype of the generated tensors.
          seed (:obj:`int`, optional):
            Seed for the random number generator.
          backend (:obj:`str`, optional):
            Backend for the generated tensors (may be ``jax`` or ``numpy``).
        Returns:
          :obj:`InfiniteSquareNetwork`:
            New instance.
        """
        if isinstance(virtual_dim, int):
            horizontal = vertical = virtual_dim
        else:
            horizontal, vertical = virtual_dim

        shape = (vertical, horizontal, vertical, horizontal)

        rng = Tensor_Generator.get(seed, backend=backend)

        return cls(rng.grid(lambda r, c: shape, *unitcell, dtype))

    @classmethod
    def from_peps(
        cls: Type[T_InfiniteSquareNetwork], peps: InfinitePEPS
    ) -> T_InfiniteSquareNetwork:
        """
        Create the norm network <psi|psi> of a PEPS with the ket and bra
        virtual legs fused.
        """
        return cls(peps.norm_sandwich())

    @classmethod
    def from_pepo(
        cls: Type[T_InfiniteSquareNetwork], peps: InfinitePEPS, pepo: InfinitePEPO
    ) -> T_InfiniteSquareNetwork:
        """
        Create the network <psi|O|psi> of a PEPS and a PEPO with all virtual
        legs of one site fused.
        """
        return cls(pepo.sandwich(peps))

    def tree_flatten(self) -> Tuple[Tuple[Any, ...], Tuple[Any, ...]]:
        rows, cols = self.size
        children = tuple(t for row in self.tensors for t in row)
        aux_data = (rows, cols)
        return (children, aux_data)

    @classmethod
    def tree_unflatten(
        cls: Type[T_InfiniteSquareNetwork],
        aux_data: Tuple[Any, ...],
        children: Tuple[Any, ...],
    ) -> T_InfiniteSquareNetwork:
        rows, cols = aux_data
        tensors = tuple(
            tuple(children[r * cols + c] for c in range(cols)) for r in range(rows)
        )
        return cls(tensors, sanity_checks=False)
