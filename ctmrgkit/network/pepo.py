"""
Infinite PEPO on a periodic unit cell with possibly several layers.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax.numpy as jnp
from jax.tree_util import register_pytree_node_class
import opt_einsum

from ctmrgkit.typing import Tensor, is_tensor
from ctmrgkit.utils.random import Tensor_Generator

from .peps import InfinitePEPS
from .square import SpaceMismatchError, check_virtual_bonds

from typing import TypeVar, Type, Optional, Sequence, Tuple, Any, List

T_InfinitePEPO = TypeVar("T_InfinitePEPO", bound="InfinitePEPO")

PEPO_Grid = Tuple[Tuple[Tuple[Tensor, ...], ...], ...]


@dataclass(frozen=True)
@register_pytree_node_class
class InfinitePEPO:
    """
    Class modeling an infinite PEPO by a periodic unit cell of tensors. Each
    site holds a stack of layers which are applied from the first to the last
    layer.

    The legs of each tensor are ordered
    (physical out, physical in, north, east, south, west). The physical
    output of layer ``h`` is connected to the physical input of layer
    ``h + 1``.

    Args:
      tensors (3d :term:`sequence` of :obj:`jax.numpy.ndarray`):
        PEPO tensors indexed [row][col][layer].
    """

    tensors: PEPO_Grid

    sanity_checks: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "tensors",
            tuple(tuple(tuple(layers) for layers in row) for row in self.tensors),
        )

        if not self.sanity_checks:
            return

        if len(self.tensors) == 0 or len(self.tensors[0]) == 0:
            raise ValueError("Unit cell needs at least one row and one column.")

        rows, cols, layers = self.size

        if not all(len(row) == cols for row in self.tensors) or not all(
            len(site) == layers and layers > 0 for row in self.tensors for site in row
        ):
            raise ValueError("PEPO unit cell is not rectangular.")

        if not all(
            is_tensor(t) and t.ndim == 6
            for row in self.tensors
            for site in row
            for t in site
        ):
            raise ValueError("PEPO tensors have to be rank 6 arrays.")

        for r in range(rows):
            for c in range(cols):
                for h in range(layers):
                    t_out = self.tensors[r][c][h].shape[0]
                    t_in = self.tensors[r][c][(h + 1) % layers].shape[1]
                    if t_out != t_in:
                        raise SpaceMismatchError(
                            f"Physical output space of PEPO layer {h:d} at ({r:d}, {c:d}) "
                            f"({t_out:d}) does not match the input space of layer "
                            f"{(h + 1) % layers:d} ({t_in:d})."
                        )

        for h in range(layers):
            check_virtual_bonds(
                [[site[h] for site in row] for row in self.tensors],
                2,
                3,
                4,
                5,
                what=f"PEPO layer {h:d}",
            )

    @property
    def size(self) -> Tuple[int, int, int]:
        return len(self.tensors), len(self.tensors[0]), len(self.tensors[0][0])

    def __getitem__(self, key: Tuple[int, int, int]) -> Tensor:
        row, col, layer = key
        rows, cols, layers = self.size
        return self.tensors[row % rows][col % cols][layer % layers]

    def physical_out_dim(self, row: int, col: int) -> int:
        """
        Physical output dimension of the last layer at (row, col).
        """
        return self[row, col, -1].shape[0]

    def sandwich(self, peps: InfinitePEPS) -> List[List[Tensor]]:
        """
        Contract the PEPO layers between the ket and the bra of a PEPS and fuse
        all virtual legs per direction in the order (ket, layers..., bra).

        Args:
          peps (:obj:`~ctmrgkit.network.InfinitePEPS`):
            The PEPS.
        Returns:
          :obj:`list` of :obj:`list` of :obj:`jax.numpy.ndarray`:
            Rank-4 network tensors indexed [row][col].
        """
        rows, cols, layers = self.size

        if peps.size != (rows, cols):
            raise SpaceMismatchError(
                f"Unit cell of PEPS {peps.size} does not match unit cell of PEPO {(rows, cols)}."
            )

        result = []
        for r in range(rows):
            result_row = []
            for c in range(cols):
                ket = peps[r, c]
                stack = self.tensors[r][c]

                if ket.shape[0] != stack[0].shape[1]:
                    raise SpaceMismatchError(
                        f"Physical space of PEPS at ({r:d}, {c:d}) ({ket.shape[0]:d}) "
                        f"does not match input space of PEPO ({stack[0].shape[1]:d})."
                    )
                if ket.shape[0] != stack[-1].shape[0]:
                    raise SpaceMismatchError(
                        f"Physical space of PEPS at ({r:d}, {c:d}) ({ket.shape[0]:d}) "
                        f"does not match output space of PEPO ({stack[-1].shape[0]:d})."
                    )

                result_row.append(_fuse_pepo_sandwich(ket, stack))
            result.append(result_row)

        return result

    @classmethod
    def random(
        cls: Type[T_InfinitePEPO],
        physical_dim: int,
        virtual_dim: int,
        unitcell: Tuple[int, int, int] = (1, 1, 1),
        *,
        dtype: Any = jnp.float64,
        seed: Optional[int] = None,
        backend: str = "jax",
    ) -> T_InfinitePEPO:
        """
        Randomly initialize a PEPO.

        Args:
          physical_dim (:obj:`int`):
            Physical dimension of all layers.
          virtual_dim (:obj:`int`):
            Virtual bond dimension.
          unitcell (:obj:`tuple` of three :obj:`int`):
            Rows, columns and layers of the unit cell.
        Keyword args:
          dtype (:obj:`numpy.dtype` or :obj:`jax.numpy.dtype`, optional):
            Dtype of the generated tensors.
          seed (:obj:`int`, optional):
            Seed for the random number generator.
          backend (:obj:`str`, optional):
            Backend for the generated tensors (may be ``jax`` or ``numpy``).
        Returns:
          :obj:`InfinitePEPO`:
            New instance.
        """
        rows, cols, layers = unitcell
        shape = (physical_dim, physical_dim) + (virtual_dim,) * 4

        rng = Tensor_Generator.get(seed, backend=backend)

        tensors = [
            [[rng.block(shape, dtype) for _ in range(layers)] for _ in range(cols)]
            for _ in range(rows)
        ]

        return cls(tensors)

    def tree_flatten(self) -> Tuple[Tuple[Any, ...], Tuple[Any, ...]]:
        children = tuple(t for row in self.tensors for site in row for t in site)
        return (children, self.size)

    @classmethod
    def tree_unflatten(
        cls: Type[T_InfinitePEPO],
        aux_data: Tuple[Any, ...],
        children: Tuple[Any, ...],
    ) -> T_InfinitePEPO:
        rows, cols, layers = aux_data
        it = iter(children)
        tensors = tuple(
            tuple(tuple(next(it) for _ in range(layers)) for _ in range(cols))
            for _ in range(rows)
        )
        return cls(tensors, sanity_checks=False)


def _fuse_pepo_sandwich(ket: Tensor, stack: Sequence[Tensor]) -> Tensor:
    layers = len(stack)

    # Labels: physical bonds 0..layers, then four virtual labels per tensor
    phys = list(range(layers + 1))
    next_label = layers + 1

    def _virtual():
        nonlocal next_label
        labels = list(range(next_label, next_label + 4))
        next_label += 4
        return labels

    ket_v = _virtual()
    layer_v = [_virtual() for _ in range(layers)]
    bra_v = _virtual()

    operands = [ket, [phys[0]] + ket_v]
    for h, t in enumerate(stack):
        operands += [t, [phys[h + 1], phys[h]] + layer_v[h]]
    operands += [ket.conj(), [phys[layers]] + bra_v]

    out_labels = []
    out_shape = []
    for d in range(4):
        out_labels += [ket_v[d]] + [v[d] for v in layer_v] + [bra_v[d]]
        dim = ket.shape[d + 1] * ket.shape[d + 1]
        for t in stack:
            dim *= t.shape[d + 2]
        out_shape.append(dim)

    tensors = operands[0::2]
    subscripts = ",".join(
        "".join(opt_einsum.get_symbol(i) for i in labels) for labels in operands[1::2]
    )
    subscripts += "->" + "".join(opt_einsum.get_symbol(i) for i in out_labels)

    result = jnp.einsum(subscripts, *tensors, optimize="optimal")

    return result.reshape(out_shape)


def initialize_peps(
    pepo: InfinitePEPO,
    virtual_dim: int,
    *,
    dtype: Any = jnp.float64,
    seed: Optional[int] = None,
    backend: str = "jax",
) -> InfinitePEPS:
    """
    Random PEPS which matches the physical spaces of a PEPO.

    Args:
      pepo (:obj:`InfinitePEPO`):
        The PEPO.
      virtual_dim (:obj:`int`):
        Virtual bond dimension of the PEPS.
    Keyword args:
      dtype (:obj:`numpy.dtype` or :obj:`jax.numpy.dtype`, optional):
        Dtype of the generated tensors.
      seed (:obj:`int`, optional):
        Seed for the random number generator.
      backend (:obj:`str`, optional):
        Backend for the generated tensors (may be ``jax`` or ``numpy``).
    Returns:
      :obj:`~ctmrgkit.network.InfinitePEPS`:
        The new PEPS.
    """
    rows, cols, _ = pepo.size
    physical_dims = [
        [pepo.physical_out_dim(r, c) for c in range(cols)] for r in range(rows)
    ]
    return InfinitePEPS.random(
        physical_dims,
        virtual_dim,
        (rows, cols),
        dtype=dtype,
        seed=seed,
        backend=backend,
    )
