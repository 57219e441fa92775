"""
Infinite PEPS on a periodic unit cell.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class

from ctmrgkit.typing import Tensor, Tensor_Grid, to_grid
from ctmrgkit.utils.random import Tensor_Generator

from .square import check_virtual_bonds

from typing import TypeVar, Type, Optional, Sequence, Tuple, Any, List, Union

T_InfinitePEPS = TypeVar("T_InfinitePEPS", bound="InfinitePEPS")


def fuse_sandwich(ket: Tensor, bra: Tensor) -> Tensor:
    """
    Contract the physical legs of a ket and a bra PEPS tensor and fuse the
    virtual legs pairwise.

    Args:
      ket (:obj:`jax.numpy.ndarray`):
        Tensor with legs (physical, north, east, south, west).
      bra (:obj:`jax.numpy.ndarray`):
        Tensor with the same leg order. It is conjugated in the contraction.
    Returns:
      :obj:`jax.numpy.ndarray`:
        Rank-4 tensor with the fused legs (ket, bra) per direction.
    """
    result = jnp.einsum("pnesw,pNESW->nNeEsSwW", ket, bra.conj())
    return result.reshape(
        tuple(ket.shape[i] * bra.shape[i] for i in range(1, 5))
    )


@dataclass(frozen=True)
@register_pytree_node_class
class InfinitePEPS:
    """
    Class modeling an infinite PEPS by a periodic unit cell of tensors.

    The legs of each tensor are ordered (physical, north, east, south, west).

    Args:
      tensors (:term:`sequence` of :term:`sequence` of :obj:`jax.numpy.ndarray`):
        PEPS tensors indexed [row][col].
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

        if not all(t.ndim == 5 for row in self.tensors for t in row):
            raise ValueError("PEPS tensors have to be rank 5.")

        check_virtual_bonds(self.tensors, 1, 2, 3, 4, what="PEPS")

    @property
    def size(self) -> Tuple[int, int]:
        return len(self.tensors), len(self.tensors[0])

    def __getitem__(self, key: Tuple[int, int]) -> Tensor:
        row, col = key
        rows, cols = self.size
        return self.tensors[row % rows][col % cols]

    def physical_dim(self, row: int, col: int) -> int:
        return self[row, col].shape[0]

    def norm_sandwich(self) -> List[List[Tensor]]:
        """
        Fused norm network tensors of the PEPS indexed [row][col].
        """
        return [[fuse_sandwich(t, t) for t in row] for row in self.tensors]

    @classmethod
    def random(
        cls: Type[T_InfinitePEPS],
        physical_dim: Union[int, Sequence[Sequence[int]]],
        virtual_dim: int,
        unitcell: Tuple[int, int] = (1, 1),
        *,
        dtype: Any = jnp.float64,
        seed: Optional[int] = None,
        backend: str = "jax",
    ) -> T_InfinitePEPS:
        """
        Randomly initialize a PEPS.

        Args:
          physical_dim (:obj:`int` or 2d :term:`sequence` of :obj:`int`):
            Physical dimension for all sites or per site indexed [row][col].
          virtual_dim (:obj:`int`):
            Virtual bond dimension.
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
          :obj:`InfinitePEPS`:
            New instance.
        """
        rows, cols = unitcell

        if isinstance(physical_dim, int):
            physical_dim = [[physical_dim] * cols for _ in range(rows)]
        elif len(physical_dim) != rows or not all(
            len(row) == cols for row in physical_dim
        ):
            raise ValueError("Physical dimensions do not match the unit cell size.")

        rng = Tensor_Generator.get(seed, backend=backend)

        return cls(
            rng.grid(
                lambda r, c: (physical_dim[r][c],) + (virtual_dim,) * 4,
                rows,
                cols,
                dtype,
            )
        )

    def tree_flatten(self) -> Tuple[Tuple[Any, ...], Tuple[Any, ...]]:
        rows, cols = self.size
        children = tuple(t for row in self.tensors for t in row)
        return (children, (rows, cols))

    @classmethod
    def tree_unflatten(
        cls: Type[T_InfinitePEPS],
        aux_data: Tuple[Any, ...],
        children: Tuple[Any, ...],
    ) -> T_InfinitePEPS:
        rows, cols = aux_data
        tensors = tuple(
            tuple(children[r * cols + c] for c in range(cols)) for r in range(rows)
        )
        return cls(tensors, sanity_checks=False)
