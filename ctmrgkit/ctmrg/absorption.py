"""
Enlarged corners and the renormalization of the CTMRG environment tensors.

All rules are written in the frame of the north direction. The other
directions use the same contractions with the site tensor rotated into their
frame, so the four directions share one implementation.
"""

import jax.numpy as jnp
from jax import jit

from ctmrgkit.contractions import apply_contraction
from ctmrgkit.network import InfiniteSquareNetwork
from ctmrgkit.utils.parallel_map import parallel_map
from ctmrgkit.utils.periodic_indices import (
    Coordinate,
    each_coordinate,
    prev_coordinate,
    shift_position,
)
from ctmrgkit.utils.projector_dict import Projector_Dict

from .env import CTMRGEnv

from typing import List, Sequence

Enlarged_Corners = List[List[List[jnp.ndarray]]]


@jit
def _normalize(a: jnp.ndarray) -> jnp.ndarray:
    return a / jnp.linalg.norm(a)


def _empty_grid(size):
    return [[[None] * size[1] for _ in range(size[0])] for _ in range(4)]


def enlarge_corner(
    network: InfiniteSquareNetwork, env: CTMRGEnv, coordinate: Sequence[int]
) -> jnp.ndarray:
    """
    Calculate the normalized enlarged corner at a coordinate.

    The corner of the direction is contracted with its two adjacent edges and
    the site tensor at (row, col). The legs of the result are::

      (bond of preceding edge, site leg of direction + 2,
       bond of following edge, site leg of direction + 1)

    so that the first two legs are the input and the last two legs the output
    of the enlarged corner as matrix.

    Args:
      network (:obj:`~ctmrgkit.network.InfiniteSquareNetwork`):
        The network.
      env (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        The current environment.
      coordinate (:obj:`~ctmrgkit.utils.periodic_indices.Coordinate`):
        Coordinate (direction, row, col).
    Returns:
      :obj:`jax.numpy.ndarray`:
        The enlarged corner.
    """
    d, r, c = coordinate
    size = env.size

    corner = env.corner(d, *shift_position(r, c, size, d - 1, d))
    edge_prev = env.edge(d - 1, *shift_position(r, c, size, d - 1))
    edge_cur = env.edge(d, *shift_position(r, c, size, d))
    site = network.rotated_site(d, r, c)

    Q = apply_contraction("ctmrg_enlarged_corner", [edge_prev, corner, edge_cur, site])

    return _normalize(Q)


def enlarge_corners(network: InfiniteSquareNetwork, env: CTMRGEnv) -> Enlarged_Corners:
    """
    Calculate the enlarged corners of all coordinates.

    Returns:
      4 x rows x cols nested :obj:`list` of :obj:`jax.numpy.ndarray`:
        The enlarged corners indexed [direction][row][col].
    """
    coordinates = list(each_coordinate(env.size))

    results = parallel_map(lambda co: enlarge_corner(network, env, co), coordinates)

    enlarged_corners = _empty_grid(env.size)
    for (d, r, c), Q in zip(coordinates, results):
        enlarged_corners[d][r][c] = Q

    return enlarged_corners


def renormalize_corner(
    coordinate: Coordinate,
    enlarged_corners: Enlarged_Corners,
    projectors: Projector_Dict,
) -> jnp.ndarray:
    """
    New corner at a coordinate. The enlarged corner is projected with the
    right projector of the preceding bond and the left projector of the bond
    of the coordinate itself.
    """
    d, r, c = coordinate
    size = (projectors.max_row, projectors.max_col)

    P_right = projectors[prev_coordinate(coordinate, size)].right
    P_left = projectors[coordinate].left

    new_corner = apply_contraction(
        "ctmrg_renormalize_corner", [P_right, enlarged_corners[d][r][c], P_left]
    )

    return _normalize(new_corner)


def renormalize_edge(
    coordinate: Coordinate,
    network: InfiniteSquareNetwork,
    env: CTMRGEnv,
    projectors: Projector_Dict,
) -> jnp.ndarray:
    """
    New edge at a coordinate. The old edge one step outwards is absorbed into
    the site at (row, col) and the result is projected with the right
    projector of the preceding bond along the boundary and the left projector
    of the bond of the coordinate.
    """
    d, r, c = coordinate
    size = env.size

    P_right = projectors[(d, *shift_position(r, c, size, d - 1))].right
    P_left = projectors[coordinate].left

    old_edge = env.edge(d, *shift_position(r, c, size, d))
    site = network.rotated_site(d, r, c)

    new_edge = apply_contraction(
        "ctmrg_renormalize_edge", [P_right, old_edge, site, P_left]
    )

    return _normalize(new_edge)


def renormalize_simultaneously(
    enlarged_corners: Enlarged_Corners,
    projectors: Projector_Dict,
    network: InfiniteSquareNetwork,
    env: CTMRGEnv,
) -> CTMRGEnv:
    """
    Renormalize all corners and edges with one set of projectors.

    Every coordinate is independent from the others. The new tensors are
    collected into a new environment object, the old environment is not
    modified.

    Args:
      enlarged_corners (4 x rows x cols nested :obj:`list` of :obj:`jax.numpy.ndarray`):
        Enlarged corners of the current environment.
      projectors (:obj:`~ctmrgkit.utils.projector_dict.Projector_Dict`):
        Projector pairs of all bonds.
      network (:obj:`~ctmrgkit.network.InfiniteSquareNetwork`):
        The network.
      env (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        The current environment.
    Returns:
      :obj:`~ctmrgkit.ctmrg.CTMRGEnv`:
        The new environment.
    """
    coordinates = list(each_coordinate(env.size))

    def _renormalize(coordinate):
        return (
            renormalize_corner(coordinate, enlarged_corners, projectors),
            renormalize_edge(coordinate, network, env, projectors),
        )

    results = parallel_map(_renormalize, coordinates)

    corners = _empty_grid(env.size)
    edges = _empty_grid(env.size)
    for (d, r, c), (corner, edge) in zip(coordinates, results):
        corners[d][r][c] = corner
        edges[d][r][c] = edge

    return env.replace(corners, edges)
