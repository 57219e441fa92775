import numpy as np
import jax
import jax.numpy as jnp
import pytest

from ctmrgkit.config import SVD_Forward_Method, SVD_Rrule_Method
from ctmrgkit.utils.random import Tensor_Generator
from ctmrgkit.utils.svd import (
    FixedSVD,
    SVDAdjoint,
    SVDError,
    gauge_fixed_svd,
    tsvd,
)
from ctmrgkit.utils.truncation import notrunc, truncdim


@pytest.fixture
def matrix():
    rng = Tensor_Generator.get(42, backend="numpy")
    return rng.block((12, 8), jnp.float64)


@pytest.mark.parametrize("fwd_alg", list(SVD_Forward_Method))
def test_gauge_fixed_svd_reconstructs(matrix, fwd_alg):
    U, S, Vh = gauge_fixed_svd(matrix, fwd_alg is SVD_Forward_Method.QR)

    assert jnp.allclose((U * S[jnp.newaxis, :]) @ Vh, matrix, atol=1e-12)
    assert jnp.all(S[:-1] >= S[1:])


def test_gauge_fixed_svd_is_sign_invariant(matrix):
    U1, S1, Vh1 = gauge_fixed_svd(matrix)
    U2, S2, Vh2 = gauge_fixed_svd(-matrix)

    assert jnp.allclose(S1, S2)
    assert jnp.allclose(U1, U2, atol=1e-10)
    assert jnp.allclose(Vh1, -Vh2, atol=1e-10)


def test_tsvd_truncates(matrix):
    result = tsvd(matrix, SVDAdjoint(), truncdim(3))

    assert result.U.shape == (12, 3)
    assert result.S.shape == (3,)
    assert result.V.shape == (3, 8)
    assert result.S_full.shape == (8,)

    S_full = np.asarray(result.S_full)
    expected = np.linalg.norm(S_full[3:]) / np.linalg.norm(S_full)
    assert result.truncation_error == pytest.approx(expected)


def test_tsvd_rejects_non_finite(matrix):
    with pytest.raises(SVDError):
        tsvd(matrix.at[0, 0].set(jnp.nan), SVDAdjoint(), notrunc())


def test_regularized_rule_matches_native_gradient(matrix):
    def loss(regularized):
        def f(a):
            U, S, Vh = gauge_fixed_svd(a, False, regularized)
            return jnp.sum(S[:3])

        return jax.grad(f)(matrix)

    assert jnp.allclose(loss(True), loss(False), atol=1e-8)


def test_fixed_svd_replays_stored_factors(matrix):
    full = tsvd(matrix, SVDAdjoint(), truncdim(4))
    fixed = FixedSVD(full.U, full.S, full.V, full.U_full, full.S_full, full.V_full)

    result = tsvd(jnp.zeros_like(matrix), SVDAdjoint(fwd_alg=fixed), notrunc())

    assert result.U is full.U
    assert result.S is full.S
    assert result.truncation_error == 0


def test_fixed_svd_slicing():
    U = [[[f"U{d}{r}{c}" for c in range(2)] for r in range(1)] for d in range(4)]
    S = [[[f"S{d}{r}{c}" for c in range(2)] for r in range(1)] for d in range(4)]
    V = [[[f"V{d}{r}{c}" for c in range(2)] for r in range(1)] for d in range(4)]

    fixed = FixedSVD(U, S, V)

    assert not fixed.is_single

    single = fixed.at((2, 0, 1))
    assert (single.U, single.S, single.V) == ("U201", "S201", "V201")
    assert single.U_full is None
    assert single.at((0, 0, 0)) is single

    with pytest.raises(ValueError):
        fixed.at((1, 3, 0))


def test_fixed_svd_needs_slicing(matrix):
    fixed = FixedSVD([[[matrix]]], [[[matrix]]], [[[matrix]]])

    with pytest.raises(ValueError):
        tsvd(matrix, SVDAdjoint(fwd_alg=fixed), notrunc())


def test_svd_adjoint_validation():
    with pytest.raises(ValueError):
        SVDAdjoint(fwd_alg="gesdd")
    with pytest.raises(ValueError):
        SVDAdjoint(rrule_alg=None)

    alg = SVDAdjoint()
    assert alg.fwd_alg is SVD_Forward_Method.GESDD
    assert alg.rrule_alg is SVD_Rrule_Method.REGULARIZED
