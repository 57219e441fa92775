import logging

import numpy as np
import jax.numpy as jnp
import pytest

import ctmrgkit
from ctmrgkit import ctmrgkit_config
from ctmrgkit.ctmrg import (
    CTMRGEnv,
    CTMRG_Status,
    CTMRGNotConvergedError,
    SimultaneousCTMRG,
    calc_convergence,
    ctmrg_algorithm,
    ctmrg_iteration,
    leading_boundary,
    projector_algorithm,
)
from ctmrgkit.ctmrg.projectors import FullInfiniteProjector, HalfInfiniteProjector
from ctmrgkit.expectation import network_value, network_value_per_site
from ctmrgkit.network import InfiniteSquareNetwork, SpaceMismatchError
from ctmrgkit.utils.periodic_indices import Direction, each_coordinate
from ctmrgkit.utils.truncation import truncdim, truncerr

from conftest import onsager_log_partition_function


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__(logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def ctmrg_log():
    logger = logging.getLogger("ctmrgkit.ctmrg")
    handler = _ListHandler()
    logger.addHandler(handler)
    yield handler.records
    logger.removeHandler(handler)


def _alg(projector_alg="halfinfinite", trscheme=truncdim(16), **kwargs):
    kwargs.setdefault("verbosity", 0)
    return SimultaneousCTMRG(
        projector_alg=projector_algorithm(projector_alg, trscheme=trscheme), **kwargs
    )


def test_normalization_after_iteration():
    network = InfiniteSquareNetwork.random(2, (2, 3), seed=21)
    env = CTMRGEnv.random(network, 4)
    alg = _alg(trscheme=truncdim(6))

    for _ in range(3):
        env, info = ctmrg_iteration(network, env, alg)

        for d, r, c in each_coordinate(env.size):
            assert jnp.isclose(jnp.linalg.norm(env.corner(d, r, c)), 1)
            assert jnp.isclose(jnp.linalg.norm(env.edge(d, r, c)), 1)

        env.check_network(network)

    assert info.truncation_error >= 0
    assert len(info.S) == 4
    assert info.S[Direction.WEST][1][2].shape[0] <= 6


def test_iteration_does_not_modify_input():
    network = InfiniteSquareNetwork.random(2, (1, 1), seed=22)
    env = CTMRGEnv.random(network, 3)
    corner = env.corner(0, 0, 0)

    new_env, _ = ctmrg_iteration(network, env, _alg())

    assert new_env is not env
    assert env.corner(0, 0, 0) is corner


def test_rotation_symmetry(ising_network):
    env = CTMRGEnv.trivial(ising_network)
    alg = _alg(trscheme=truncdim(8))

    for _ in range(6):
        env, _ = ctmrg_iteration(ising_network, env, alg)

    for d in Direction:
        assert env.corner(d, 0, 0).shape == env.corner(Direction.NORTH, 0, 0).shape
        assert jnp.allclose(env.corner(d, 0, 0), env.corner(Direction.NORTH, 0, 0))
        assert jnp.allclose(env.edge(d, 0, 0), env.edge(Direction.NORTH, 0, 0))


def test_rotated_network_gives_rotated_environment():
    network = InfiniteSquareNetwork.random(2, (1, 1), seed=23)
    site = network[0, 0]
    # site of the network rotated by 90 degrees clockwise
    rotated = InfiniteSquareNetwork([[jnp.transpose(site, (3, 0, 1, 2))]])

    alg = _alg(trscheme=truncdim(4))
    env = CTMRGEnv.trivial(network)
    env_rot = CTMRGEnv.trivial(rotated)

    for _ in range(4):
        env, _ = ctmrg_iteration(network, env, alg)
        env_rot, _ = ctmrg_iteration(rotated, env_rot, alg)

    for d in Direction:
        assert jnp.allclose(
            env_rot.corner(d.rotate(), 0, 0), env.corner(d, 0, 0), atol=1e-10
        )
        assert jnp.allclose(env_rot.edge(d.rotate(), 0, 0), env.edge(d, 0, 0), atol=1e-10)


def test_converged_scenario(ising_network):
    env = CTMRGEnv.trivial(ising_network)
    alg = _alg(trscheme=truncerr(1e-10), tol=1e-10, maxiter=150)

    env, info = leading_boundary(env, ising_network, alg)

    assert info.status is CTMRG_Status.CONVERGED
    assert info.iterations <= 150
    assert info.convergence_error < 1e-10
    assert info.truncation_error < 1e-8
    assert np.isfinite(info.condition_number)

    # one more iteration at the fixed point barely changes the environment
    next_env, _ = ctmrg_iteration(ising_network, env, alg)
    assert calc_convergence(next_env, env) < 1e-8


def test_half_and_full_infinite_agree_with_onsager(ising_network, ising_beta):
    values = {}

    for name in ("halfinfinite", "fullinfinite"):
        env = CTMRGEnv.trivial(ising_network)
        alg = _alg(name, trscheme=truncdim(16), tol=1e-9, maxiter=200)

        env, info = leading_boundary(env, ising_network, alg)

        values[name] = float(network_value(ising_network, env))

    exact = onsager_log_partition_function(ising_beta)

    assert values["halfinfinite"] == pytest.approx(values["fullinfinite"], rel=1e-6)
    assert np.log(values["halfinfinite"]) == pytest.approx(exact, abs=1e-6)


def test_network_value_per_site_of_larger_unitcell(ising_network, ising_network_2x2):
    alg = _alg(trscheme=truncdim(8), tol=1e-9, maxiter=100)

    env, _ = leading_boundary(CTMRGEnv.trivial(ising_network), ising_network, alg)
    env_2x2, _ = leading_boundary(
        CTMRGEnv.trivial(ising_network_2x2), ising_network_2x2, alg
    )

    value = network_value_per_site(ising_network, env)
    values_2x2 = network_value_per_site(ising_network_2x2, env_2x2)

    assert values_2x2.shape == (2, 2)
    assert jnp.allclose(values_2x2, value[0, 0], rtol=1e-7)
    assert jnp.isclose(network_value(ising_network_2x2, env_2x2), value[0, 0] ** 4)


def test_space_mismatch_before_svd(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("SVD must not be attempted.")

    monkeypatch.setattr("ctmrgkit.ctmrg.projectors.tsvd", _fail)

    network = InfiniteSquareNetwork.random(2, (1, 1), seed=24)
    other = InfiniteSquareNetwork.random(3, (1, 1))
    env = CTMRGEnv.random(network, 4)

    with pytest.raises(SpaceMismatchError):
        leading_boundary(env, other, _alg())


def test_max_iter_reached(ctmrg_log):
    network = InfiniteSquareNetwork.random(2, (1, 1), seed=25)
    env = CTMRGEnv.random(network, 4)
    alg = _alg(trscheme=truncdim(4), tol=0, miniter=0, maxiter=2, verbosity=1)

    env, info = leading_boundary(env, network, alg)

    assert info.status is CTMRG_Status.MAX_ITER_REACHED
    assert info.iterations == 2
    assert any(r.levelno == logging.WARNING for r in ctmrg_log)


def test_fail_if_not_converged():
    ctmrgkit_config.ctmrg_fail_if_not_converged = True

    network = InfiniteSquareNetwork.random(2, (1, 1), seed=26)
    env = CTMRGEnv.random(network, 4)
    alg = _alg(trscheme=truncdim(4), tol=0, miniter=0, maxiter=2)

    with pytest.raises(CTMRGNotConvergedError):
        leading_boundary(env, network, alg)


def test_miniter_is_respected(ising_network):
    # the change of the spectra is below 0.5 from the first iteration on
    early = _alg(trscheme=truncdim(8), tol=0.5, miniter=0, maxiter=20)
    _, info = leading_boundary(CTMRGEnv.trivial(ising_network), ising_network, early)

    assert info.status is CTMRG_Status.CONVERGED
    assert info.iterations < 10

    alg = _alg(trscheme=truncdim(8), tol=0.5, miniter=10, maxiter=20)
    _, info = leading_boundary(CTMRGEnv.trivial(ising_network), ising_network, alg)

    assert info.status is CTMRG_Status.CONVERGED
    assert info.iterations == 10


def test_per_iteration_output_at_verbosity_three(ising_network, ctmrg_log):
    alg = _alg(trscheme=truncdim(4), tol=0, miniter=0, maxiter=3, verbosity=3)

    leading_boundary(CTMRGEnv.trivial(ising_network), ising_network, alg)

    iteration_records = [
        r for r in ctmrg_log if r.getMessage().startswith("CTMRG iteration")
    ]
    assert len(iteration_records) == 3
    assert all(r.levelno == logging.INFO for r in iteration_records)


def test_convergence_includes_edge_spectra():
    network = InfiniteSquareNetwork.random(2, (1, 1), seed=28)
    env = CTMRGEnv.random(network, 3)

    edges = [[list(row) for row in d] for d in env.edges]
    edges[Direction.SOUTH][0][0] = edges[Direction.SOUTH][0][0] * 2
    changed = CTMRGEnv(env.corners, edges)

    expected = jnp.linalg.norm(env.edge_spectra()[Direction.SOUTH][0][0])

    assert calc_convergence(env, env) == 0
    assert calc_convergence(changed, env) == pytest.approx(float(expected))


def test_parallel_map_gives_same_result():
    network = InfiniteSquareNetwork.random(2, (2, 2), seed=27)
    env = CTMRGEnv.random(network, 3)
    alg = _alg(trscheme=truncdim(5))

    sequential, _ = ctmrg_iteration(network, env, alg)

    ctmrgkit_config.parallel_map_workers = 4
    parallel, _ = ctmrg_iteration(network, env, alg)

    for d, r, c in each_coordinate(env.size):
        assert jnp.allclose(sequential.corner(d, r, c), parallel.corner(d, r, c))
        assert jnp.allclose(sequential.edge(d, r, c), parallel.edge(d, r, c))


def test_algorithm_defaults_from_config():
    ctmrgkit_config.ctmrg_tol = 1e-5
    ctmrgkit_config.ctmrg_maxiter = 7
    ctmrgkit_config.ctmrg_miniter = 2

    alg = SimultaneousCTMRG()

    assert alg.tol == 1e-5
    assert alg.maxiter == 7
    assert alg.miniter == 2
    assert isinstance(alg.projector_alg, HalfInfiniteProjector)

    alg = SimultaneousCTMRG(projector_alg="fullinfinite")
    assert isinstance(alg.projector_alg, FullInfiniteProjector)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"tol": -1.0},
        {"maxiter": 0},
        {"maxiter": 3, "miniter": 5},
        {"miniter": -1},
        {"verbosity": -1},
        {"projector_alg": "quarterinfinite"},
    ],
)
def test_invalid_algorithm_parameters(kwargs):
    with pytest.raises(ValueError):
        SimultaneousCTMRG(**kwargs)


def test_ctmrg_algorithm_factory():
    alg = ctmrg_algorithm("simultaneous", maxiter=12)
    assert isinstance(alg, SimultaneousCTMRG)
    assert alg.maxiter == 12

    assert ctmrg_algorithm(alg) is alg

    with pytest.raises(ValueError):
        ctmrg_algorithm("sequential")

    with pytest.raises(ValueError):
        ctmrg_algorithm(alg, maxiter=3)


def test_config_errors():
    with pytest.raises(KeyError):
        ctmrgkit.config.ctmrg_unknown_option = 1

    with pytest.raises(TypeError):
        ctmrgkit.config.ctmrg_maxiter = "100"

    ctmrgkit.config.ctmrg_tol = 1
    assert ctmrgkit_config.ctmrg_tol == 1
