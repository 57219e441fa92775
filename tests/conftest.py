import dataclasses

import numpy as np
import jax.numpy as jnp
import pytest
from scipy.integrate import dblquad

from ctmrgkit import ctmrgkit_config
from ctmrgkit.network import InfiniteSquareNetwork
from ctmrgkit.utils.random import Tensor_Generator


def ising_site_tensor(beta: float) -> jnp.ndarray:
    """
    Site tensor of the classical 2D Ising partition function with the
    Boltzmann weights of each bond split symmetrically between both sites.
    """
    c = np.sqrt(np.cosh(beta))
    s = np.sqrt(np.sinh(beta))
    sqrt_Q = np.array([[c, s], [c, -s]])
    return jnp.asarray(np.einsum("ia,ib,ic,id->abcd", sqrt_Q, sqrt_Q, sqrt_Q, sqrt_Q))


def onsager_log_partition_function(beta: float) -> float:
    """
    Exact logarithm of the partition function per site in the thermodynamic
    limit.
    """

    def integrand(theta_1, theta_2):
        return np.log(
            np.cosh(2 * beta) ** 2
            - np.sinh(2 * beta) * (np.cos(theta_1) + np.cos(theta_2))
        )

    integral, _ = dblquad(integrand, 0, 2 * np.pi, 0, 2 * np.pi)

    return np.log(2) + integral / (8 * np.pi**2)


@pytest.fixture
def ising_beta():
    return 0.3


@pytest.fixture
def ising_network(ising_beta):
    return InfiniteSquareNetwork([[ising_site_tensor(ising_beta)]])


@pytest.fixture
def ising_network_2x2(ising_beta):
    T = ising_site_tensor(ising_beta)
    return InfiniteSquareNetwork([[T, T], [T, T]])


@pytest.fixture(autouse=True)
def reset_random_state():
    Tensor_Generator.reset()
    yield
    Tensor_Generator.reset()


@pytest.fixture(autouse=True)
def restore_config():
    saved = {
        f.name: getattr(ctmrgkit_config, f.name)
        for f in dataclasses.fields(ctmrgkit_config)
    }
    yield
    for name, value in saved.items():
        setattr(ctmrgkit_config, name, value)
