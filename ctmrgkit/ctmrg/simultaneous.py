"""
Simultaneous CTMRG scheme: the corners and edges of all four directions are
renormalized at once with projectors computed from the same environment.
"""

from dataclasses import dataclass, field

from ctmrgkit import ctmrgkit_config
from ctmrgkit.network import InfiniteSquareNetwork
from ctmrgkit.typing import is_int
from ctmrgkit.utils.parallel_map import parallel_map
from ctmrgkit.utils.periodic_indices import Coordinate, each_coordinate, next_coordinate
from ctmrgkit.utils.projector_dict import Projector_Dict

from .absorption import Enlarged_Corners, enlarge_corners, renormalize_simultaneously
from .env import CTMRGEnv
from .projectors import (
    ProjectorAlgorithm,
    Projector_Info,
    compute_projector,
    coordinate_projector_algorithm,
    projector_algorithm,
)

from typing import List, Tuple


def _default_tol():
    return ctmrgkit_config.ctmrg_tol


def _default_maxiter():
    return ctmrgkit_config.ctmrg_maxiter


def _default_miniter():
    return ctmrgkit_config.ctmrg_miniter


def _default_verbosity():
    return ctmrgkit_config.ctmrg_verbosity


@dataclass(frozen=True)
class SimultaneousCTMRG:
    """
    Parameters of the simultaneous CTMRG scheme.

    Args:
      tol (:obj:`float`):
        Convergence threshold of the change of the environment spectra.
      maxiter (:obj:`int`):
        Maximal number of iterations.
      miniter (:obj:`int`):
        Minimal number of iterations before convergence is accepted.
      verbosity (:obj:`int`):
        0 is silent, 1 reports warnings, 2 the progress and 3 every
        iteration in detail.
      projector_alg (:obj:`~ctmrgkit.ctmrg.projectors.ProjectorAlgorithm`):
        Algorithm for the projectors. Anything accepted by
        :obj:`~ctmrgkit.ctmrg.projectors.projector_algorithm` is converted.

    All parameters default to the respective options of the global config.
    """

    tol: float = field(default_factory=_default_tol)
    maxiter: int = field(default_factory=_default_maxiter)
    miniter: int = field(default_factory=_default_miniter)
    verbosity: int = field(default_factory=_default_verbosity)
    projector_alg: ProjectorAlgorithm = field(default_factory=projector_algorithm)

    def __post_init__(self) -> None:
        if not isinstance(self.tol, (int, float)) or self.tol < 0:
            raise ValueError(f"Invalid tolerance {self.tol}.")
        if not is_int(self.maxiter) or self.maxiter < 1:
            raise ValueError(f"Invalid maximal iteration count {self.maxiter}.")
        if not is_int(self.miniter) or not 0 <= self.miniter <= self.maxiter:
            raise ValueError(
                f"Minimal iteration count {self.miniter} has to be in [0, {self.maxiter}]."
            )
        if not is_int(self.verbosity) or self.verbosity < 0:
            raise ValueError(f"Invalid verbosity {self.verbosity}.")

        object.__setattr__(
            self, "projector_alg", projector_algorithm(self.projector_alg)
        )


def _bond_corners(
    enlarged_corners: Enlarged_Corners,
    coordinate: Coordinate,
    size: Tuple[int, int],
    n_corners: int,
) -> List:
    result = []
    co = coordinate
    for _ in range(n_corners):
        result.append(enlarged_corners[co.direction][co.row][co.col])
        co = next_coordinate(co, size)
    return result


def _nested(values, coordinates, size):
    grid = [[[None] * size[1] for _ in range(size[0])] for _ in range(4)]
    for (d, r, c), v in zip(coordinates, values):
        grid[d][r][c] = v
    return grid


def simultaneous_projectors(
    enlarged_corners: Enlarged_Corners,
    env: CTMRGEnv,
    alg: ProjectorAlgorithm,
    *,
    check_degenerate: bool = False,
) -> Tuple[Projector_Dict, Projector_Info]:
    """
    Calculate the projectors of all bonds of the unit cell.

    Args:
      enlarged_corners (4 x rows x cols nested :obj:`list` of :obj:`jax.numpy.ndarray`):
        The enlarged corners of the current environment.
      env (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        The current environment.
      alg (:obj:`~ctmrgkit.ctmrg.projectors.ProjectorAlgorithm`):
        The projector algorithm.
    Keyword args:
      check_degenerate (:obj:`bool`):
        Forwarded to :obj:`~ctmrgkit.ctmrg.projectors.compute_projector`.
    Returns:
      :obj:`tuple`\\ (:obj:`~ctmrgkit.utils.projector_dict.Projector_Dict`, :obj:`~ctmrgkit.ctmrg.projectors.Projector_Info`):
        The projectors and the diagnostic information. The truncation error
        and the condition number are the maximum over all bonds, the SVD
        factors are nested lists indexed [direction][row][col].
    """
    size = env.size
    coordinates = list(each_coordinate(size))

    def _projector(coordinate):
        return compute_projector(
            _bond_corners(enlarged_corners, coordinate, size, alg.n_corners),
            coordinate,
            coordinate_projector_algorithm(alg, coordinate, env),
            check_degenerate=check_degenerate,
        )

    results = parallel_map(_projector, coordinates)

    projectors = Projector_Dict(max_row=size[0], max_col=size[1])
    for coordinate, (pair, _) in zip(coordinates, results):
        projectors[coordinate] = pair

    infos = [i for _, i in results]

    info = Projector_Info(
        truncation_error=max(i.truncation_error for i in infos),
        condition_number=max(i.condition_number for i in infos),
        **{
            name: _nested([getattr(i, name) for i in infos], coordinates, size)
            for name in ("U", "S", "V", "U_full", "S_full", "V_full")
        },
    )

    return projectors, info


def ctmrg_iteration(
    network: InfiniteSquareNetwork,
    env: CTMRGEnv,
    alg: SimultaneousCTMRG,
    *,
    check_degenerate: bool = False,
) -> Tuple[CTMRGEnv, Projector_Info]:
    """
    Perform one simultaneous CTMRG iteration: enlarge all corners, compute
    the projectors of all bonds and renormalize all corners and edges.

    Args:
      network (:obj:`~ctmrgkit.network.InfiniteSquareNetwork`):
        The network.
      env (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        The current environment. It is not modified.
      alg (:obj:`SimultaneousCTMRG`):
        The algorithm parameters.
    Keyword args:
      check_degenerate (:obj:`bool`):
        Check the singular value spectra for degeneracies.
    Returns:
      :obj:`tuple`\\ (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`, :obj:`~ctmrgkit.ctmrg.projectors.Projector_Info`):
        The new environment and the diagnostic information.
    """
    enlarged_corners = enlarge_corners(network, env)

    projectors, info = simultaneous_projectors(
        enlarged_corners, env, alg.projector_alg, check_degenerate=check_degenerate
    )

    new_env = renormalize_simultaneously(enlarged_corners, projectors, network, env)

    return new_env, info
