import jax.numpy as jnp

from ctmrgkit.contractions import apply_contraction
from ctmrgkit.ctmrg.env import CTMRGEnv
from ctmrgkit.network import InfiniteSquareNetwork
from ctmrgkit.utils.periodic_indices import Direction

N, E, S, W = Direction


def _site_value(network, env, r, c):
    C = env.corner
    T = env.edge

    site = apply_contraction(
        "network_value_site",
        [
            C(N, r - 1, c - 1),
            T(N, r - 1, c),
            C(E, r - 1, c + 1),
            T(E, r, c + 1),
            C(S, r + 1, c + 1),
            T(S, r + 1, c),
            C(W, r + 1, c - 1),
            T(W, r, c - 1),
            network[r, c],
        ],
    )

    corners = apply_contraction(
        "network_value_corners",
        [C(N, r - 1, c - 1), C(E, r - 1, c), C(S, r, c), C(W, r, c - 1)],
    )

    vertical = apply_contraction(
        "network_value_vertical_edges",
        [
            C(N, r - 1, c - 1),
            T(N, r - 1, c),
            C(E, r - 1, c + 1),
            C(S, r, c + 1),
            T(S, r, c),
            C(W, r, c - 1),
        ],
    )

    horizontal = apply_contraction(
        "network_value_horizontal_edges",
        [
            C(N, r - 1, c - 1),
            C(E, r - 1, c),
            T(E, r, c),
            C(S, r + 1, c),
            C(W, r + 1, c - 1),
            T(W, r, c - 1),
        ],
    )

    return site * corners / (vertical * horizontal)


def network_value_per_site(
    network: InfiniteSquareNetwork, env: CTMRGEnv
) -> jnp.ndarray:
    """
    Contraction value of the infinite network per unit cell site.

    The environment around each site is contracted once with and once
    without the site tensor. Dividing by the contractions with only the
    corners and with only one pair of opposite edges removes the arbitrary
    normalization of the environment tensors. For a classical partition
    function the result is the partition function per site.

    Args:
      network (:obj:`~ctmrgkit.network.InfiniteSquareNetwork`):
        The network.
      env (:obj:`~ctmrgkit.ctmrg.CTMRGEnv`):
        A converged environment of the network.
    Returns:
      :obj:`jax.numpy.ndarray`:
        Array of shape (rows, cols) with the value per site.
    """
    env.check_network(network)

    rows, cols = env.size

    return jnp.array(
        [[_site_value(network, env, r, c) for c in range(cols)] for r in range(rows)]
    )


def network_value(network: InfiniteSquareNetwork, env: CTMRGEnv) -> jnp.ndarray:
    """
    Contraction value of the infinite network per unit cell, i.e. the
    product of :obj:`network_value_per_site` over the unit cell.
    """
    return jnp.prod(network_value_per_site(network, env))
