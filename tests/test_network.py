import numpy as np
import jax
import jax.numpy as jnp
import pytest

from ctmrgkit.network import (
    InfinitePEPO,
    InfinitePEPS,
    InfiniteSquareNetwork,
    SpaceMismatchError,
    initialize_peps,
)
from ctmrgkit.network.peps import fuse_sandwich
from ctmrgkit.utils.periodic_indices import Direction


def test_square_network_periodic_access():
    network = InfiniteSquareNetwork.random(3, (2, 3), seed=1)

    assert network.size == (2, 3)
    assert network[2, -1] is network[0, 2]
    assert network.virtual_dim(Direction.WEST, 5, 5) == 3
    assert network.rotated_site(Direction.EAST, 0, 0).shape == (3, 3, 3, 3)


def test_square_network_mixed_dimensions():
    network = InfiniteSquareNetwork.random((2, 3), (2, 2), seed=1)

    assert network.virtual_dim(Direction.NORTH, 0, 0) == 3
    assert network.virtual_dim(Direction.EAST, 0, 0) == 2


def test_square_network_bond_mismatch():
    a = jnp.ones((2, 2, 2, 2))
    b = jnp.ones((2, 3, 2, 2))

    with pytest.raises(SpaceMismatchError):
        InfiniteSquareNetwork([[a, b]])

    with pytest.raises(SpaceMismatchError):
        InfiniteSquareNetwork([[a], [jnp.ones((3, 2, 2, 2))]])


def test_square_network_invalid_input():
    with pytest.raises(ValueError):
        InfiniteSquareNetwork([[jnp.ones((2, 2, 2))]])

    with pytest.raises(ValueError):
        InfiniteSquareNetwork([[jnp.ones((2, 2, 2, 2))], []])


def test_space_mismatch_is_value_error():
    assert issubclass(SpaceMismatchError, ValueError)


def test_network_is_pytree():
    network = InfiniteSquareNetwork.random(2, (2, 2), seed=3)

    leaves, treedef = jax.tree_util.tree_flatten(network)
    assert len(leaves) == 4

    doubled = jax.tree_util.tree_map(lambda x: 2 * x, network)
    assert jnp.allclose(doubled[1, 0], 2 * network[1, 0])


def test_fuse_sandwich_is_norm():
    peps = InfinitePEPS.random(2, 2, seed=4)
    a = peps[0, 0]

    fused = fuse_sandwich(a, a)

    assert fused.shape == (4, 4, 4, 4)

    # tracing all virtual bonds of the fused tensor with itself gives the norm
    diag = fused.reshape(2, 2, 2, 2, 2, 2, 2, 2)
    assert jnp.allclose(
        jnp.einsum("aabbccdd->", diag), jnp.einsum("pabcd,pabcd->", a, a.conj())
    )


def test_from_peps():
    peps = InfinitePEPS.random(2, 3, (2, 1), seed=5)
    network = InfiniteSquareNetwork.from_peps(peps)

    assert network.size == (2, 1)
    assert network.virtual_dim(Direction.SOUTH, 1, 0) == 9


def test_peps_physical_dims_per_site():
    peps = InfinitePEPS.random([[2, 3]], 2, (1, 2), seed=6)

    assert peps.physical_dim(0, 0) == 2
    assert peps.physical_dim(0, 1) == 3

    with pytest.raises(ValueError):
        InfinitePEPS.random([[2]], 2, (1, 2))


def test_pepo_sandwich_of_identity_is_norm():
    peps = InfinitePEPS.random(2, 2, seed=7)
    identity = jnp.eye(2).reshape(2, 2, 1, 1, 1, 1)
    pepo = InfinitePEPO([[[identity]]])

    network = InfiniteSquareNetwork.from_pepo(peps, pepo)
    norm_network = InfiniteSquareNetwork.from_peps(peps)

    assert jnp.allclose(network[0, 0], norm_network[0, 0])


def test_pepo_layers():
    pepo = InfinitePEPO.random(2, 2, (1, 1, 2), seed=8)
    peps = initialize_peps(pepo, 3)

    network = InfiniteSquareNetwork.from_pepo(peps, pepo)

    assert pepo.size == (1, 1, 2)
    assert network[0, 0].shape == (3 * 2 * 2 * 3,) * 4


def test_pepo_physical_mismatch():
    a = jnp.ones((2, 3, 1, 1, 1, 1))

    with pytest.raises(SpaceMismatchError):
        InfinitePEPO([[[a]]])

    pepo = InfinitePEPO([[[jnp.ones((3, 3, 1, 1, 1, 1))]]])
    with pytest.raises(SpaceMismatchError):
        pepo.sandwich(InfinitePEPS.random(2, 1, seed=9))


def test_pepo_unitcell_mismatch():
    pepo = InfinitePEPO.random(2, 1, (1, 1, 1), seed=10)
    peps = InfinitePEPS.random(2, 1, (2, 1))

    with pytest.raises(SpaceMismatchError):
        pepo.sandwich(peps)
