"""
Helpers to apply contractions.
"""

from functools import partial

import jax
import jax.numpy as jnp

from .definitions import Definitions

from typing import Sequence


@partial(jax.jit, static_argnames=("name",))
def apply_contraction(
    name: str,
    tensors: Sequence[jnp.ndarray],
) -> jnp.ndarray:
    """
    Apply a contraction to a list of tensors.

    For details on the contractions and their definition see
    :class:`ctmrgkit.contractions.Definitions`.

    Args:
      name (:obj:`str`):
        Name of the contraction. Must be a class attribute of the class
        :class:`ctmrgkit.contractions.Definitions`.
      tensors (:term:`sequence` of :obj:`jax.numpy.ndarray`):
        The tensors that should be contracted in the order of the definition.
    Returns:
      jax.numpy.ndarray:
        The contracted tensor.
    """
    contraction = getattr(Definitions, name)

    if len(contraction["tensors"]) != len(tensors):
        raise ValueError(
            f"Number of tensors ({len(tensors)}) does not fit the expected number ({len(contraction['tensors'])}) for contraction '{name}'."
        )

    for t, axes, t_name in zip(
        tensors, contraction["ncon_network"], contraction["tensors"]
    ):
        if t.ndim != len(axes):
            raise ValueError(
                f"Tensor '{t_name}' of contraction '{name}' has rank {t.ndim:d}, expected {len(axes):d}."
            )

    return jnp.einsum(
        contraction["einsum_network"],
        *tensors,
        optimize="optimal" if len(tensors) < 10 else "dp",
    )
