from collections import namedtuple
import enum
import logging
from types import MappingProxyType

import numpy as np

from tqdm_loggable.auto import tqdm

from ctmrgkit import ctmrgkit_config
from ctmrgkit.network import InfiniteSquareNetwork
from ctmrgkit.utils.logging_config import ensure_logging_configured

from .env import CTMRGEnv
from .simultaneous import SimultaneousCTMRG, ctmrg_iteration

from typing import Optional, Sequence, Tuple, Union

logger = logging.getLogger("ctmrgkit.ctmrg")


@enum.unique
class CTMRG_Status(enum.IntEnum):
    RUNNING = enum.auto()
    CONVERGED = enum.auto()
    MAX_ITER_REACHED = enum.auto()


CTMRG_Info = namedtuple(
    "CTMRG_Info",
    (
        "status",
        "iterations",
        "convergence_error",
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


class CTMRGNotConvergedError(Exception):
    """
    Exception if the CTM routine does not converge.
    """

    pass


CTMRG_ALGORITHMS = MappingProxyType({"simultaneous": SimultaneousCTMRG})


def ctmrg_algorithm(
    alg: Union[str, SimultaneousCTMRG] = "simultaneous", **kwargs
) -> SimultaneousCTMRG:
    """
    Create the parameter object of a CTMRG scheme.

    Args:
      alg (:obj:`str` or :obj:`SimultaneousCTMRG`):
        Name of the scheme. Only ``simultaneous`` is available. An already
        created object is returned unchanged if no keyword arguments are
        given.
    Keyword args:
      kwargs:
        Parameters of the scheme, see :obj:`SimultaneousCTMRG`.
    Returns:
      :obj:`SimultaneousCTMRG`:
        The parameter object.
    """
    if isinstance(alg, SimultaneousCTMRG):
        if kwargs:
            raise ValueError("Parameters given for already created CTMRG algorithm.")
        return alg

    if not isinstance(alg, str):
        raise ValueError(f"Unknown CTMRG algorithm '{alg}'.")

    try:
        cls = CTMRG_ALGORITHMS[alg.lower()]
    except KeyError as e:
        raise ValueError(
            f"Unknown CTMRG algorithm '{alg}'. Known algorithms: {', '.join(CTMRG_ALGORITHMS)}."
        ) from e

    return cls(**kwargs)


def _spectra_distance(
    new: Sequence[np.ndarray], old: Sequence[np.ndarray]
) -> float:
    result = 0.0
    for s_new, s_old in zip(new, old):
        n = min(s_new.shape[0], s_old.shape[0])
        result = max(result, float(np.linalg.norm(s_new[:n] - s_old[:n])))
    return result


def _flatten(nested):
    return [s for d in nested for row in d for s in row]


def calc_convergence(env_new: CTMRGEnv, env_old: CTMRGEnv) -> float:
    """
    Change between two environments measured by the singular value spectra
    of the corners and edges. The spectra are gauge invariant, so the
    measure does not depend on the arbitrary bases of the environment bonds.

    The edge spectra usually settle much later than the corner spectra and
    dominate the measure close to the fixed point, so a tight tolerance can
    need many more iterations than a stable network value would.

    Args:
      env_new (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        The new environment.
      env_old (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        The old environment.
    Returns:
      :obj:`float`:
        Maximal norm of the difference of the spectra compared on their
        common length.
    """
    corner_error = _spectra_distance(
        _flatten(env_new.corner_spectra()), _flatten(env_old.corner_spectra())
    )
    edge_error = _spectra_distance(
        _flatten(env_new.edge_spectra()), _flatten(env_old.edge_spectra())
    )
    return max(corner_error, edge_error)


def leading_boundary(
    env: CTMRGEnv,
    network: InfiniteSquareNetwork,
    alg: Union[SimultaneousCTMRG, str, None] = None,
    *,
    check_degenerate: bool = False,
) -> Tuple[CTMRGEnv, CTMRG_Info]:
    """
    Contract the infinite network by iterating the CTMRG scheme until the
    environment converges.

    Args:
      env (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        Initial environment, e.g. a random one or the result of a previous
        run.
      network (:obj:`~ctmrgkit.network.InfiniteSquareNetwork`):
        The network to contract.
      alg (:obj:`SimultaneousCTMRG` or :obj:`str`, optional):
        Parameters of the scheme. Defaults to the config options.
    Keyword args:
      check_degenerate (:obj:`bool`):
        Warn about degenerate singular value spectra in the projectors. Set
        this if the routine is differentiated.
    Returns:
      :obj:`tuple`\\ (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`, :obj:`CTMRG_Info`):
        The final environment and the info object with the status and the
        diagnostics of the last iteration.
    Raises:
      :obj:`~ctmrgkit.network.SpaceMismatchError`:
        If the environment does not fit to the network.
      :obj:`CTMRGNotConvergedError`:
        If the routine does not converge and the config option
        :obj:`~ctmrgkit.config.CTMRGKit_Config.ctmrg_fail_if_not_converged`
        is set.
    """
    ensure_logging_configured()

    if alg is None:
        alg = SimultaneousCTMRG()
    else:
        alg = ctmrg_algorithm(alg)

    env.check_network(network)

    verbosity = alg.verbosity
    status = CTMRG_Status.RUNNING
    iteration = 0
    conv_error = float("inf")
    info = None

    with tqdm(
        desc="CTMRG", total=alg.maxiter, disable=verbosity < 2, leave=False
    ) as pbar:
        while status is CTMRG_Status.RUNNING:
            new_env, info = ctmrg_iteration(
                network, env, alg, check_degenerate=check_degenerate
            )
            iteration += 1

            conv_error = calc_convergence(new_env, env)
            env = new_env

            pbar.update()
            pbar.set_postfix(
                {
                    "conv": f"{conv_error:.2e}",
                    "trunc": f"{info.truncation_error:.2e}",
                }
            )

            if verbosity >= 3:
                logger.info(
                    "CTMRG iteration %d: conv error %.4e, truncation error %.4e, "
                    "condition number %.4e",
                    iteration,
                    conv_error,
                    info.truncation_error,
                    info.condition_number,
                )

            if conv_error < alg.tol and iteration >= alg.miniter:
                status = CTMRG_Status.CONVERGED
            elif iteration >= alg.maxiter:
                status = CTMRG_Status.MAX_ITER_REACHED

    if status is CTMRG_Status.CONVERGED:
        if verbosity >= 2:
            logger.info(
                "CTMRG converged after %d iterations: conv error %.4e, "
                "truncation error %.4e, condition number %.4e",
                iteration,
                conv_error,
                info.truncation_error,
                info.condition_number,
            )
    elif verbosity >= 1:
        logger.warning(
            "CTMRG not converged after %d iterations: conv error %.4e, "
            "truncation error %.4e",
            iteration,
            conv_error,
            info.truncation_error,
        )

    if status is CTMRG_Status.MAX_ITER_REACHED and ctmrgkit_config.ctmrg_fail_if_not_converged:
        raise CTMRGNotConvergedError(
            f"CTMRG not converged after {iteration:d} iterations (conv error {conv_error:.4e})."
        )

    return env, CTMRG_Info(
        status=status,
        iterations=iteration,
        convergence_error=conv_error,
        truncation_error=info.truncation_error,
        condition_number=info.condition_number,
        U=info.U,
        S=info.S,
        V=info.V,
        U_full=info.U_full,
        S_full=info.S_full,
        V_full=info.V_full,
    )
