"""
Implementation of the CTMRG environment
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class

from ctmrgkit.network import InfiniteSquareNetwork, SpaceMismatchError
from ctmrgkit.typing import Tensor, Direction_Tensor_Grid, is_int, is_tensor
from ctmrgkit.utils.periodic_indices import (
    Direction,
    each_coordinate,
    periodic_index,
    shift_position,
)
from ctmrgkit.utils.random import Tensor_Generator

from typing import TypeVar, Type, Union, Optional, Sequence, Tuple, Any, List

T_CTMRGEnv = TypeVar("T_CTMRGEnv", bound="CTMRGEnv")


def _as_direction_grid(tensors: Sequence, name: str) -> Direction_Tensor_Grid:
    if len(tensors) != 4:
        raise ValueError(f"Environment {name} need exactly four directions.")

    grid = tuple(tuple(tuple(row) for row in d) for d in tensors)

    rows = len(grid[0])
    if rows == 0 or len(grid[0][0]) == 0:
        raise ValueError("Unit cell needs at least one row and one column.")
    cols = len(grid[0][0])

    if not all(len(d) == rows and all(len(row) == cols for row in d) for d in grid):
        raise ValueError(f"Environment {name} have inconsistent unit cell sizes.")

    return grid


def _chi_array(
    chi: Union[int, Sequence, np.ndarray], size: Tuple[int, int]
) -> np.ndarray:
    rows, cols = size

    if is_int(chi):
        chi_arr = np.full((4, rows, cols), int(chi), dtype=np.int64)
    else:
        chi_arr = np.asarray(chi)
        if chi_arr.shape == (rows, cols):
            chi_arr = np.broadcast_to(chi_arr, (4, rows, cols))
        elif chi_arr.shape != (4, rows, cols):
            raise ValueError(
                f"Environment bond dimensions have shape {chi_arr.shape}, "
                f"expected {(rows, cols)} or {(4, rows, cols)}."
            )
        if not np.issubdtype(chi_arr.dtype, np.integer):
            raise ValueError("Environment bond dimensions have to be integers.")

    if np.any(chi_arr < 1):
        raise ValueError("Environment bond dimensions have to be positive.")

    return chi_arr


@dataclass(frozen=True)
@register_pytree_node_class
class CTMRGEnv:
    """
    Class to model the CTMRG environment of an infinite square network.

    The tensors are indexed [direction][row][col]. The corner of direction
    ``d`` sits between the edges of direction ``d-1`` and ``d`` (the north
    corner is the north-west corner) and has the legs::

      (bond to edge of direction d-1, bond to edge of direction d)

    The edge of direction ``d`` has the legs::

      (counterclockwise bond, leg into the network, clockwise bond)

    The edge of direction ``d`` at (r, c) is attached to the network site at
    (r, c) shifted one step against ``d`` and the corner of direction ``d`` at
    (r, c) touches the site at (r, c) shifted one step against ``d-1`` and
    ``d``.

    Args:
      corners (4 x rows x cols nested :term:`sequence` of :obj:`jax.numpy.ndarray`):
        Corner tensors.
      edges (4 x rows x cols nested :term:`sequence` of :obj:`jax.numpy.ndarray`):
        Edge tensors.
    """

    corners: Direction_Tensor_Grid
    edges: Direction_Tensor_Grid

    sanity_checks: bool = True

    def __post_init__(self) -> None:
        if not self.sanity_checks:
            object.__setattr__(
                self,
                "corners",
                tuple(tuple(tuple(row) for row in d) for d in self.corners),
            )
            object.__setattr__(
                self, "edges", tuple(tuple(tuple(row) for row in d) for d in self.edges)
            )
            return

        object.__setattr__(self, "corners", _as_direction_grid(self.corners, "corners"))
        object.__setattr__(self, "edges", _as_direction_grid(self.edges, "edges"))

        if len(self.corners[0]) != len(self.edges[0]) or len(self.corners[0][0]) != len(
            self.edges[0][0]
        ):
            raise ValueError("Corners and edges have different unit cell sizes.")

        for d in range(4):
            for r in range(self.size[0]):
                for c in range(self.size[1]):
                    corner = self.corners[d][r][c]
                    edge = self.edges[d][r][c]
                    if not is_tensor(corner) or corner.ndim != 2:
                        raise ValueError(
                            f"Corner at ({d:d}, {r:d}, {c:d}) has to be a rank 2 array."
                        )
                    if not is_tensor(edge) or edge.ndim != 3:
                        raise ValueError(
                            f"Edge at ({d:d}, {r:d}, {c:d}) has to be a rank 3 array."
                        )

        self._check_internal_spaces()

    def _check_internal_spaces(self) -> None:
        for d, r, c in each_coordinate(self.size):
            corner = self.corner(d, r, c)

            edge_cw = self.edge(d, *shift_position(r, c, self.size, d + 1))
            if corner.shape[1] != edge_cw.shape[0]:
                raise SpaceMismatchError(
                    f"Corner {Direction(d).name} at ({r:d}, {c:d}) ({corner.shape[1]:d}) "
                    f"does not match the following {Direction(d).name} edge "
                    f"({edge_cw.shape[0]:d})."
                )

            edge_ccw = self.edge(d - 1, *shift_position(r, c, self.size, d + 2))
            if corner.shape[0] != edge_ccw.shape[2]:
                raise SpaceMismatchError(
                    f"Corner {Direction(d).name} at ({r:d}, {c:d}) ({corner.shape[0]:d}) "
                    f"does not match the preceding {Direction(d - 1).name} edge "
                    f"({edge_ccw.shape[2]:d})."
                )

            edge = self.edge(d, r, c)
            edge_next = self.edge(d, *shift_position(r, c, self.size, d + 1))
            if edge.shape[2] != edge_next.shape[0]:
                raise SpaceMismatchError(
                    f"Edge {Direction(d).name} at ({r:d}, {c:d}) ({edge.shape[2]:d}) "
                    f"does not match the following edge ({edge_next.shape[0]:d})."
                )

    @property
    def size(self) -> Tuple[int, int]:
        return len(self.corners[0]), len(self.corners[0][0])

    @property
    def dtype(self) -> jnp.dtype:
        return jnp.result_type(
            *[t.dtype for d in self.corners + self.edges for row in d for t in row]
        )

    def corner(self, direction: int, row: int, col: int) -> Tensor:
        row, col = periodic_index(row, col, self.size)
        return self.corners[direction % 4][row][col]

    def edge(self, direction: int, row: int, col: int) -> Tensor:
        row, col = periodic_index(row, col, self.size)
        return self.edges[direction % 4][row][col]

    def chi(self, direction: int, row: int, col: int) -> int:
        """
        Bond dimension between the corner of `direction` at (row, col) and
        the following edge.
        """
        return self.corner(direction, row, col).shape[1]

    def replace(
        self: T_CTMRGEnv,
        corners: Sequence,
        edges: Sequence,
    ) -> T_CTMRGEnv:
        return type(self)(corners, edges)

    def check_network(self, network: InfiniteSquareNetwork) -> None:
        """
        Check if the environment fits to the network.

        Args:
          network (:obj:`~ctmrgkit.network.InfiniteSquareNetwork`):
            The network.
        Raises:
          :obj:`~ctmrgkit.network.SpaceMismatchError`:
            If unit cell sizes or the dimensions of the legs into the network
            do not match.
        """
        if network.size != self.size:
            raise SpaceMismatchError(
                f"Unit cell of environment {self.size} does not match unit cell of network {network.size}."
            )

        for d, r, c in each_coordinate(self.size):
            edge = self.edge(d, r, c)
            site_pos = shift_position(r, c, self.size, d + 2)
            expected = network.virtual_dim(d, *site_pos)
            if edge.shape[1] != expected:
                raise SpaceMismatchError(
                    f"Edge {Direction(d).name} at ({r:d}, {c:d}) has network space "
                    f"{edge.shape[1]:d}, but the network site at {site_pos} has "
                    f"virtual space {expected:d}."
                )

    def corner_spectra(self) -> List[List[List[np.ndarray]]]:
        """
        Singular values of all corners indexed [direction][row][col].
        """
        return [
            [
                [np.asarray(jnp.linalg.svd(t, compute_uv=False)) for t in row]
                for row in d
            ]
            for d in self.corners
        ]

    def edge_spectra(self) -> List[List[List[np.ndarray]]]:
        """
        Singular values of all edges reshaped to matrices between the
        counterclockwise bond and the remaining legs, indexed
        [direction][row][col].
        """
        return [
            [
                [
                    np.asarray(
                        jnp.linalg.svd(t.reshape(t.shape[0], -1), compute_uv=False)
                    )
                    for t in row
                ]
                for row in d
            ]
            for d in self.edges
        ]

    @classmethod
    def random(
        cls: Type[T_CTMRGEnv],
        network: InfiniteSquareNetwork,
        chi: Union[int, Sequence, np.ndarray],
        *,
        dtype: Any = None,
        seed: Optional[int] = None,
        backend: str = "jax",
    ) -> T_CTMRGEnv:
        """
        Create an environment with random normalized tensors.

        Args:
          network (:obj:`~ctmrgkit.network.InfiniteSquareNetwork`):
            Network the environment is created for.
          chi (:obj:`int` or array of :obj:`int`):
            Environment bond dimensions. Either one value for all bonds, an
            array of shape (rows, cols) used for all directions or an array
            of shape (4, rows, cols) with the dimension between the corner of
            each coordinate and its following edge.
        Keyword args:
          dtype (:obj:`numpy.dtype` or :obj:`jax.numpy.dtype`, optional):
            Dtype of the generated tensors. Defaults to the dtype of the
            network.
          seed (:obj:`int`, optional):
            Seed for the random number generator.
          backend (:obj:`str`, optional):
            Backend for the generated tensors (may be ``jax`` or ``numpy``).
        Returns:
          :obj:`CTMRGEnv`:
            New instance.
        """
        size = network.size
        chi_arr = _chi_array(chi, size)

        if dtype is None:
            dtype = network.dtype

        rng = Tensor_Generator.get(seed, backend=backend)

        def _chi(d, r, c):
            r, c = periodic_index(r, c, size)
            return int(chi_arr[d % 4, r, c])

        corners = [[[None] * size[1] for _ in range(size[0])] for _ in range(4)]
        edges = [[[None] * size[1] for _ in range(size[0])] for _ in range(4)]

        for d, r, c in each_coordinate(size):
            prev_r, prev_c = shift_position(r, c, size, d + 2)
            corners[d][r][c] = rng.block(
                (_chi(d - 1, prev_r, prev_c), _chi(d, r, c)), dtype
            )

            before_r, before_c = shift_position(r, c, size, d - 1)
            site_r, site_c = shift_position(r, c, size, d + 2)
            edges[d][r][c] = rng.block(
                (
                    _chi(d, before_r, before_c),
                    network.virtual_dim(d, site_r, site_c),
                    _chi(d, r, c),
                ),
                dtype,
            )

        return cls(corners, edges)

    @classmethod
    def trivial(
        cls: Type[T_CTMRGEnv],
        network: InfiniteSquareNetwork,
        *,
        dtype: Any = None,
    ) -> T_CTMRGEnv:
        """
        Create an environment with bond dimension one and all entries equal.
        """
        size = network.size

        if dtype is None:
            dtype = network.dtype

        corners = [
            [[jnp.ones((1, 1), dtype=dtype) for _ in range(size[1])] for _ in range(size[0])]
            for _ in range(4)
        ]

        edges = [[[None] * size[1] for _ in range(size[0])] for _ in range(4)]
        for d, r, c in each_coordinate(size):
            site_r, site_c = shift_position(r, c, size, d + 2)
            dim = network.virtual_dim(d, site_r, site_c)
            edges[d][r][c] = jnp.ones((1, dim, 1), dtype=dtype) / jnp.sqrt(dim)

        return cls(corners, edges)

    def tree_flatten(self) -> Tuple[Tuple[Any, ...], Tuple[Any, ...]]:
        children = tuple(
            t for grid in (self.corners, self.edges) for d in grid for row in d for t in row
        )
        return (children, self.size)

    @classmethod
    def tree_unflatten(
        cls: Type[T_CTMRGEnv],
        aux_data: Tuple[Any, ...],
        children: Tuple[Any, ...],
    ) -> T_CTMRGEnv:
        rows, cols = aux_data
        it = iter(children)
        corners, edges = (
            tuple(
                tuple(tuple(next(it) for _ in range(cols)) for _ in range(rows))
                for _ in range(4)
            )
            for _ in range(2)
        )
        return cls(corners, edges, sanity_checks=False)
