from collections import namedtuple
from dataclasses import dataclass, field, replace
import logging
from types import MappingProxyType

import numpy as np
import jax.numpy as jnp
from jax import jit

from ctmrgkit import ctmrgkit_config
from ctmrgkit.config import Projector_Method, Truncation_Method
from ctmrgkit.utils.periodic_indices import shift_position
from ctmrgkit.utils.projector_dict import Projector_Pair
from ctmrgkit.utils.svd import FixedSVD, SVDAdjoint, tsvd
from ctmrgkit.utils.truncation import (
    TruncationScheme,
    truncation_scheme,
    truncspace,
)

from .env import CTMRGEnv

from typing import ClassVar, Optional, Sequence, Tuple, Type, Union

logger = logging.getLogger("ctmrgkit.projectors")

Projector_Info = namedtuple(
    "Projector_Info",
    (
        "truncation_error",
        "condition_number",
        "U",
        "S",
        "V",
        "U_full",
        "S_full",
        "V_full",
    ),
)


def _default_svd_alg():
    return SVDAdjoint()


def _default_trscheme():
    return truncation_scheme()


def _default_verbosity():
    return ctmrgkit_config.projector_verbosity


@dataclass(frozen=True)
class ProjectorAlgorithm:
    """
    Base class of the projector algorithms.

    Args:
      svd_alg (:obj:`~ctmrgkit.utils.svd.SVDAdjoint`):
        SVD strategy. Defaults to the config options.
      trscheme (:obj:`~ctmrgkit.utils.truncation.TruncationScheme`):
        Truncation scheme. Defaults to the config options.
      verbosity (:obj:`int`):
        Verbosity of the projector calculation. Values bigger than 0 enable
        the degenerate spectrum warnings.
    """

    svd_alg: SVDAdjoint = field(default_factory=_default_svd_alg)
    trscheme: TruncationScheme = field(default_factory=_default_trscheme)
    verbosity: int = field(default_factory=_default_verbosity)

    method: ClassVar[Projector_Method]
    n_corners: ClassVar[int]

    def __post_init__(self) -> None:
        if not isinstance(self.svd_alg, SVDAdjoint):
            raise ValueError(f"Invalid SVD algorithm '{self.svd_alg}'.")
        object.__setattr__(self, "trscheme", truncation_scheme(self.trscheme))


@dataclass(frozen=True)
class HalfInfiniteProjector(ProjectorAlgorithm):
    """
    Projectors from the SVD of the half-infinite environment formed by the two
    enlarged corners adjacent to the bond.
    """

    method: ClassVar[Projector_Method] = Projector_Method.HALF_INFINITE
    n_corners: ClassVar[int] = 2


@dataclass(frozen=True)
class FullInfiniteProjector(ProjectorAlgorithm):
    """
    Projectors from the SVD of the full-infinite environment formed by all
    four enlarged corners around the bond.
    """

    method: ClassVar[Projector_Method] = Projector_Method.FULL_INFINITE
    n_corners: ClassVar[int] = 4


PROJECTOR_ALGORITHMS = MappingProxyType(
    {
        Projector_Method.HALF_INFINITE: HalfInfiniteProjector,
        Projector_Method.FULL_INFINITE: FullInfiniteProjector,
    }
)

PROJECTOR_NAMES = MappingProxyType(
    {
        "halfinfinite": Projector_Method.HALF_INFINITE,
        "fullinfinite": Projector_Method.FULL_INFINITE,
    }
)


def projector_algorithm(
    alg: Union[str, Projector_Method, Type[ProjectorAlgorithm], ProjectorAlgorithm, None] = None,
    *,
    svd_alg: Optional[SVDAdjoint] = None,
    trscheme: Union[TruncationScheme, str, Truncation_Method, None] = None,
    verbosity: Optional[int] = None,
) -> ProjectorAlgorithm:
    """
    Create a projector algorithm.

    Args:
      alg (:obj:`str`, :obj:`~ctmrgkit.config.Projector_Method`, :obj:`ProjectorAlgorithm` class or instance, optional):
        Algorithm selected by name (``halfinfinite`` or ``fullinfinite``),
        by enum member or by class. An instance is returned with the given
        options replaced. Defaults to the config option
        :obj:`~ctmrgkit.config.CTMRGKit_Config.projector_alg`.
    Keyword args:
      svd_alg (:obj:`~ctmrgkit.utils.svd.SVDAdjoint`, optional):
        SVD strategy.
      trscheme (:obj:`~ctmrgkit.utils.truncation.TruncationScheme`, optional):
        Truncation scheme or its name.
      verbosity (:obj:`int`, optional):
        Verbosity level.
    Returns:
      :obj:`ProjectorAlgorithm`:
        The algorithm object.
    """
    kwargs = {}
    if svd_alg is not None:
        kwargs["svd_alg"] = svd_alg
    if trscheme is not None:
        kwargs["trscheme"] = truncation_scheme(trscheme)
    if verbosity is not None:
        kwargs["verbosity"] = verbosity

    if isinstance(alg, ProjectorAlgorithm):
        return replace(alg, **kwargs)

    if alg is None:
        alg = ctmrgkit_config.projector_alg

    if isinstance(alg, str):
        try:
            alg = PROJECTOR_NAMES[alg.lower()]
        except KeyError as e:
            raise ValueError(
                f"Unknown projector algorithm '{alg}'. Known algorithms: {', '.join(PROJECTOR_NAMES)}."
            ) from e

    if isinstance(alg, type) and issubclass(alg, ProjectorAlgorithm):
        alg = getattr(alg, "method", None)

    try:
        cls = PROJECTOR_ALGORITHMS[alg]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Unknown projector algorithm '{alg}'.") from e

    return cls(**kwargs)


def svd_algorithm(alg: ProjectorAlgorithm, coordinate: Sequence[int]) -> SVDAdjoint:
    """
    SVD strategy used at a coordinate. A stored fixed SVD is sliced to the
    factors of this coordinate.
    """
    if isinstance(alg.svd_alg.fwd_alg, FixedSVD):
        return replace(alg.svd_alg, fwd_alg=alg.svd_alg.fwd_alg.at(coordinate))
    return alg.svd_alg


def coordinate_truncation_scheme(
    alg: ProjectorAlgorithm, coordinate: Sequence[int], env: CTMRGEnv
) -> TruncationScheme:
    """
    Truncation scheme used at a coordinate. A fixed space scheme is resolved
    to the current bond dimension of the environment at this bond, i.e. the
    first leg of the edge following the corner of the coordinate.
    """
    if alg.trscheme.method is Truncation_Method.FIXED_SPACE:
        d, r, c = coordinate
        edge = env.edge(d, *shift_position(r, c, env.size, d + 1))
        return truncspace(edge.shape[0])
    return alg.trscheme


def coordinate_projector_algorithm(
    alg: ProjectorAlgorithm, coordinate: Sequence[int], env: CTMRGEnv
) -> ProjectorAlgorithm:
    return replace(
        alg,
        svd_alg=svd_algorithm(alg, coordinate),
        trscheme=coordinate_truncation_scheme(alg, coordinate, env),
    )


def _matrix(Q: jnp.ndarray) -> jnp.ndarray:
    return Q.reshape(Q.shape[0] * Q.shape[1], Q.shape[2] * Q.shape[3])


@jit
def half_infinite_environment(Q1: jnp.ndarray, Q2: jnp.ndarray) -> jnp.ndarray:
    """
    Contract two neighboring enlarged corners into the half-infinite
    environment matrix.
    """
    return _matrix(Q1) @ _matrix(Q2)


@jit
def full_infinite_environment(
    Q1: jnp.ndarray, Q2: jnp.ndarray, Q3: jnp.ndarray, Q4: jnp.ndarray
) -> jnp.ndarray:
    """
    Contract the four enlarged corners around a bond into the full-infinite
    environment matrix. The bond is cut between `Q1` and `Q2`.
    """
    return half_infinite_environment(Q4, Q1) @ half_infinite_environment(Q2, Q3)


@jit
def _contract_projectors(U, S, Vh, L, R, n_factor):
    S_inv_sqrt = 1 / jnp.sqrt(S)
    sqrt_n = jnp.sqrt(n_factor)

    P_left = (R / sqrt_n) @ (Vh.T.conj() * S_inv_sqrt[jnp.newaxis, :])
    P_right = (S_inv_sqrt[:, jnp.newaxis] * U.T.conj()) @ (L / sqrt_n)

    return P_left, P_right


def _condition_number(S: np.ndarray) -> float:
    S = np.asarray(S)
    s_min = np.min(S)
    if s_min == 0:
        return float("inf")
    return float(np.max(S) / s_min)


def is_degenerate_spectrum(
    S: np.ndarray, *, atol: float = 0, rtol: Optional[float] = None
) -> bool:
    """
    Check if two adjacent singular values coincide within the tolerance.

    Args:
      S (:obj:`numpy.ndarray`):
        Singular values in descending order.
    Keyword args:
      atol (:obj:`float`):
        Absolute tolerance.
      rtol (:obj:`float`, optional):
        Relative tolerance. Defaults to the square root of the machine
        precision of the dtype of `S`.
    Returns:
      :obj:`bool`:
        True if the spectrum is degenerate.
    """
    S = np.asarray(S)
    if rtol is None:
        rtol = float(np.sqrt(np.finfo(S.dtype).eps))
    if S.shape[0] < 2:
        return False
    diff = np.abs(S[:-1] - S[1:])
    return bool(np.any(diff <= np.maximum(atol, rtol * np.maximum(S[:-1], S[1:]))))


def compute_projector(
    enlarged_corners: Sequence[jnp.ndarray],
    coordinate: Sequence[int],
    alg: ProjectorAlgorithm,
    *,
    check_degenerate: bool = False,
) -> Tuple[Projector_Pair, Projector_Info]:
    """
    Calculate the projector pair of a bond.

    Args:
      enlarged_corners (:term:`sequence` of :obj:`jax.numpy.ndarray`):
        Enlarged corners around the bond in traversal order starting with
        the one at `coordinate`. Two corners for the
        :obj:`HalfInfiniteProjector` and four corners for the
        :obj:`FullInfiniteProjector`.
      coordinate (:obj:`~ctmrgkit.utils.periodic_indices.Coordinate`):
        Coordinate of the bond.
      alg (:obj:`ProjectorAlgorithm`):
        Projector algorithm. A fixed space truncation has to be resolved
        before, see :obj:`coordinate_projector_algorithm`.
    Keyword args:
      check_degenerate (:obj:`bool`):
        Check the kept spectrum for degenerate singular values, which make a
        derivative of the truncation ill-conditioned. Set by callers which
        differentiate through the routine.
    Returns:
      :obj:`tuple`\\ (:obj:`~ctmrgkit.utils.projector_dict.Projector_Pair`, :obj:`Projector_Info`):
        Left and right projector and the diagnostic information.
    """
    if len(enlarged_corners) != alg.n_corners:
        raise ValueError(
            f"{type(alg).__name__} needs {alg.n_corners:d} enlarged corners, got {len(enlarged_corners):d}."
        )

    if alg.method is Projector_Method.HALF_INFINITE:
        Q1, Q2 = enlarged_corners
        L = _matrix(Q1)
        R = _matrix(Q2)
    elif alg.method is Projector_Method.FULL_INFINITE:
        Q1, Q2, Q3, Q4 = enlarged_corners
        L = half_infinite_environment(Q4, Q1)
        R = half_infinite_environment(Q2, Q3)
    else:
        raise ValueError(f"Unknown projector method '{alg.method}'.")

    env_matrix = L @ R
    n_factor = jnp.linalg.norm(env_matrix)

    svd_result = tsvd(env_matrix / n_factor, alg.svd_alg, alg.trscheme)

    P_left, P_right = _contract_projectors(
        svd_result.U, svd_result.S, svd_result.V, L, R, n_factor
    )

    P_left = P_left.reshape(Q1.shape[2], Q1.shape[3], P_left.shape[1])
    P_right = P_right.reshape(P_right.shape[0], Q1.shape[2], Q1.shape[3])

    S_np = np.asarray(svd_result.S)
    condition_number = _condition_number(S_np)

    if check_degenerate and alg.verbosity > 0 and svd_result.S_full is not None:
        S_cut = np.asarray(svd_result.S_full)[: S_np.shape[0] + 1]
        if is_degenerate_spectrum(S_cut):
            logger.warning(
                "Degenerate singular values at bond %s. Derivatives through the "
                "truncation are ill-conditioned.",
                tuple(int(i) for i in coordinate),
            )

    info = Projector_Info(
        truncation_error=float(svd_result.truncation_error),
        condition_number=condition_number,
        U=svd_result.U,
        S=svd_result.S,
        V=svd_result.V,
        U_full=svd_result.U_full,
        S_full=svd_result.S_full,
        V_full=svd_result.V_full,
    )

    return Projector_Pair(P_left, P_right), info
