from collections import namedtuple
from dataclasses import dataclass, field
from functools import partial

import numpy as np
import jax.numpy as jnp
from jax.lax import scan
from jax.lax.linalg import svd as lax_svd
from jax import jit, custom_jvp, lax

from ctmrgkit import ctmrgkit_config
from ctmrgkit.config import SVD_Forward_Method, SVD_Rrule_Method

from .truncation import TruncationScheme, truncation_error

from typing import Any, Optional, Sequence, Tuple, Union

TSVD_Result = namedtuple(
    "TSVD_Result", ("U", "S", "V", "truncation_error", "U_full", "S_full", "V_full")
)


class SVDError(ArithmeticError):
    """
    Exception if the SVD failed, e.g. due to non-finite input.
    """

    pass


def _T(x):
    return jnp.swapaxes(x, -1, -2)


def _H(x):
    return jnp.conj(_T(x))


def _promote_inexact(a):
    a = jnp.asarray(a)
    if not jnp.issubdtype(a.dtype, jnp.inexact):
        a = a.astype(jnp.result_type(float))
    return a


def _lax_svd(a, use_qr):
    if use_qr:
        return lax_svd(
            a,
            full_matrices=False,
            compute_uv=True,
            algorithm=lax.linalg.SvdAlgorithm.QR,
        )
    return lax_svd(a, full_matrices=False, compute_uv=True)


@partial(custom_jvp, nondiff_argnums=(1,))
def svd_wrapper(a, use_qr=False):
    return _lax_svd(_promote_inexact(a), use_qr)


@svd_wrapper.defjvp
def _svd_jvp_rule(use_qr, primals, tangents):
    (A,) = primals
    (dA,) = tangents

    U, s, Vt = svd_wrapper(A, use_qr=use_qr)

    Ut, V = _H(U), _H(Vt)
    s_dim = s[..., None, :]
    dS = Ut @ dA @ V
    ds = jnp.real(jnp.diagonal(dS, 0, -2, -1))

    s_sums = s_dim + _T(s_dim)
    s_sums = jnp.where(s_sums > 0, s_sums, 1)
    s_diffs = s_dim - _T(s_dim)
    # Degenerate pairs get zero weight instead of a diverging one
    s_diffs = jnp.where(jnp.abs(s_diffs / s[0]) >= 1e-12, s_diffs, 0)
    s_diffs_zeros = jnp.ones((), dtype=A.dtype) * (s_diffs == 0.0)
    s_diffs_zeros = lax.expand_dims(s_diffs_zeros, range(s_diffs.ndim - 2))
    F = 1 / (s_diffs + s_diffs_zeros) - s_diffs_zeros

    dSS = dS * (s_dim / s_sums).astype(A.dtype)  # dS.dot(s_j / (s_i + s_j))
    SdS = (_T(s_dim) / s_sums).astype(A.dtype) * dS  # (s_i / (s_i + s_j)).dot(dS)

    s_zeros = (s == 0).astype(s.dtype)
    s_inv = 1 / (s + s_zeros) - s_zeros
    s_inv_mat = jnp.vectorize(jnp.diag, signature="(k)->(k,k)")(s_inv)
    dUdV_diag = 0.5 * (dS - _H(dS)) * s_inv_mat.astype(A.dtype)

    dU = U @ (F.astype(A.dtype) * (dSS + _H(dSS)) + 0.5 * dUdV_diag)
    dV = V @ (F.astype(A.dtype) * (SdS + _H(SdS)) + 0.5 * dUdV_diag)

    m, n = A.shape[-2:]
    if m > n:
        dAV = dA @ V
        dU = dU + (dAV - U @ (Ut @ dAV)) * s_inv.astype(A.dtype)
    if n > m:
        dAHU = _H(dA) @ U
        dV = dV + (dAHU - V @ (Vt @ dAHU)) * s_inv.astype(A.dtype)

    return (U, s, Vt), (dU, ds, _H(dV))


def _native_svd(a, use_qr=False):
    return _lax_svd(_promote_inexact(a), use_qr)


@partial(jit, inline=True, static_argnums=(1, 2))
def gauge_fixed_svd(
    matrix: jnp.ndarray,
    use_qr: bool = False,
    regularized: bool = True,
) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """
    Calculate the gauge-fixed (also called sign-fixed) SVD. To this end, each
    singular vector are rotate in the way that the first element bigger than
    some numerical stability threshold (config parameter eps) is ensured to be
    along the positive real axis.

    Args:
      matrix (:obj:`jnp.ndarray`):
        Matrix to calculate SVD for.
      use_qr (:obj:`bool`):
        Use the QR based SVD algorithm.
      regularized (:obj:`bool`):
        Use the custom derivative rule regular at degenerate singular values.
    Returns:
      :obj:`tuple`\\ (:obj:`jnp.ndarray`, :obj:`jnp.ndarray`, :obj:`jnp.ndarray`):
        Tuple with sign-fixed U, S and Vh of the SVD.
    """
    if regularized:
        U, S, Vh = svd_wrapper(matrix, use_qr)
    else:
        U, S, Vh = _native_svd(matrix, use_qr)

    # Fix the gauge of the SVD
    abs_U = jnp.abs(U)
    max_per_vector = jnp.max(abs_U, axis=0)
    normalized_U = abs_U / max_per_vector[jnp.newaxis, :]

    def phase_f(carry, x):
        x_row, normalized_x_row = x

        already_found, last_step_result = carry

        cond = normalized_x_row >= ctmrgkit_config.svd_sign_fix_eps

        result = jnp.where(
            already_found, last_step_result, jnp.where(cond, x_row, last_step_result)
        )

        return (jnp.logical_or(already_found, cond), result), None

    phases, _ = scan(
        phase_f,
        (jnp.zeros(U.shape[1], dtype=bool), U[0, :]),
        (U, normalized_U),
    )
    phases = phases[1]
    phases /= jnp.abs(phases)

    U = U * phases.conj()[jnp.newaxis, :]
    Vh = Vh * phases[:, jnp.newaxis]

    return U, S, Vh


@dataclass(frozen=True)
class FixedSVD:
    """
    Stored SVD factors which are replayed instead of recomputed.

    The factors are either single arrays (one bond) or nested sequences
    indexed [direction][row][col] as collected by a CTMRG iteration.

    Args:
      U, S, V (:obj:`jax.numpy.ndarray` or nested :term:`sequence`):
        Truncated factors. `V` is stored in the conjugated transposed form
        returned by the SVD.
      U_full, S_full, V_full (:obj:`jax.numpy.ndarray` or nested :term:`sequence`, optional):
        Untruncated factors.
    """

    U: Any
    S: Any
    V: Any
    U_full: Any = None
    S_full: Any = None
    V_full: Any = None

    @property
    def is_single(self) -> bool:
        return not isinstance(self.U, (tuple, list))

    def at(self, coordinate: Sequence[int]) -> "FixedSVD":
        """
        Select the factors of one bond.

        Args:
          coordinate (:obj:`~ctmrgkit.utils.periodic_indices.Coordinate`):
            Bond coordinate (direction, row, col).
        Returns:
          :obj:`FixedSVD`:
            Fixed SVD with single arrays.
        """
        if self.is_single:
            return self

        d, r, c = coordinate

        def _select(e):
            if e is None:
                return None
            try:
                return e[d][r][c]
            except IndexError as err:
                raise ValueError(
                    f"Stored SVD has no entry for coordinate {tuple(coordinate)}."
                ) from err

        return FixedSVD(
            _select(self.U),
            _select(self.S),
            _select(self.V),
            _select(self.U_full),
            _select(self.S_full),
            _select(self.V_full),
        )

    @classmethod
    def from_info(cls, info: Any) -> "FixedSVD":
        """
        Create the object from the info of a CTMRG iteration or of a
        projector calculation.
        """
        return cls(info.U, info.S, info.V, info.U_full, info.S_full, info.V_full)


def _default_fwd_alg():
    return ctmrgkit_config.svd_fwd_alg


def _default_rrule_alg():
    return ctmrgkit_config.svd_rrule_alg


@dataclass(frozen=True)
class SVDAdjoint:
    """
    SVD strategy consisting of the forward algorithm and the derivative rule.

    Args:
      fwd_alg (:obj:`~ctmrgkit.config.SVD_Forward_Method` or :obj:`FixedSVD`):
        Forward algorithm. Defaults to the config option.
      rrule_alg (:obj:`~ctmrgkit.config.SVD_Rrule_Method`):
        Derivative rule. Defaults to the config option.
    """

    fwd_alg: Union[SVD_Forward_Method, FixedSVD] = field(
        default_factory=_default_fwd_alg
    )
    rrule_alg: SVD_Rrule_Method = field(default_factory=_default_rrule_alg)

    def __post_init__(self) -> None:
        if not isinstance(self.fwd_alg, (SVD_Forward_Method, FixedSVD)):
            raise ValueError(f"Unknown SVD forward algorithm '{self.fwd_alg}'.")
        if not isinstance(self.rrule_alg, SVD_Rrule_Method):
            raise ValueError(f"Unknown SVD derivative rule '{self.rrule_alg}'.")


def tsvd(
    matrix: jnp.ndarray,
    svd_alg: SVDAdjoint,
    trscheme: TruncationScheme,
) -> TSVD_Result:
    """
    Truncated SVD of a matrix.

    Args:
      matrix (:obj:`jax.numpy.ndarray`):
        Matrix to decompose.
      svd_alg (:obj:`SVDAdjoint`):
        SVD strategy. If the forward algorithm is a :obj:`FixedSVD`, the
        stored factors are returned.
      trscheme (:obj:`~ctmrgkit.utils.truncation.TruncationScheme`):
        Truncation scheme.
    Returns:
      :obj:`TSVD_Result`:
        Truncated and full factors and the relative truncation error.
    """
    if isinstance(svd_alg.fwd_alg, FixedSVD):
        fixed = svd_alg.fwd_alg
        if not fixed.is_single:
            raise ValueError("Fixed SVD has to be sliced to one coordinate first.")
        return TSVD_Result(
            fixed.U, fixed.S, fixed.V, 0.0, fixed.U_full, fixed.S_full, fixed.V_full
        )

    if not bool(jnp.all(jnp.isfinite(matrix))):
        raise SVDError("Matrix for SVD contains non-finite values.")

    U, S, Vh = gauge_fixed_svd(
        matrix,
        svd_alg.fwd_alg is SVD_Forward_Method.QR,
        svd_alg.rrule_alg is SVD_Rrule_Method.REGULARIZED,
    )

    S_np = np.asarray(S)

    if not np.all(np.isfinite(S_np)):
        raise SVDError("SVD returned non-finite singular values.")

    k = trscheme.keep_count(S_np)

    return TSVD_Result(
        U[:, :k],
        S[:k],
        Vh[:k, :],
        truncation_error(S_np, k),
        U,
        S,
        Vh,
    )
