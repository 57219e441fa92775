"""
Seeded generation of the random normalized tensors used to initialize
networks and environments.
"""

import os
import sys
import warnings

import numpy as np
import jax
import jax.numpy as jnp

from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence

BACKENDS = ("jax", "numpy")


class Tensor_Generator:
    """
    Stream of random tensors with entries drawn uniformly from [-1, 1] (real
    and imaginary part separately in the complex case).

    One stream per backend is shared by the whole package, so consecutive
    initializations continue the same random sequence. Use :obj:`get` to
    obtain it and :obj:`reset` to start over with a new seed.

    Args:
      backend (:obj:`str`):
        ``jax`` or ``numpy``.
      seed (:obj:`int`, optional):
        Seed of the stream. Drawn from the OS if not given.
    """

    _streams: ClassVar[Dict[str, "Tensor_Generator"]] = {}

    def __init__(self, backend: str = "jax", seed: Optional[int] = None):
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}'.")

        if seed is None:
            seed = int.from_bytes(os.urandom(4), sys.byteorder)

        self.backend = backend

        if backend == "jax":
            self._key = jax.random.PRNGKey(seed)
        else:
            self._rng = np.random.default_rng(seed)

    @classmethod
    def get(
        cls, seed: Optional[int] = None, *, backend: str = "jax"
    ) -> "Tensor_Generator":
        """
        Shared stream of a backend. The seed only takes effect when the
        stream is created.
        """
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}'.")

        stream = cls._streams.get(backend)

        if stream is None:
            stream = cls._streams[backend] = cls(backend, seed)
        elif seed is not None:
            warnings.warn(
                f"The {backend} tensor generator is already seeded, the seed "
                "parameter is ignored. Call Tensor_Generator.reset() first to "
                "set a new one."
            )

        return stream

    @classmethod
    def reset(cls) -> None:
        cls._streams.clear()

    def _uniform(self, shape: Sequence[int], dtype: Any) -> jnp.ndarray:
        if self.backend == "jax":
            self._key, subkey = jax.random.split(self._key)
            return jax.random.uniform(subkey, shape, dtype=dtype, minval=-1, maxval=1)

        return jnp.asarray(self._rng.uniform(-1, 1, shape).astype(dtype))

    def block(
        self, shape: Sequence[int], dtype: Any, *, normalize: bool = True
    ) -> jnp.ndarray:
        """
        Random tensor of the given shape.

        Args:
          shape (:term:`sequence` of :obj:`int`):
            Shape of the tensor.
          dtype (:obj:`numpy.dtype` or :obj:`jax.numpy.dtype`):
            Dtype of the tensor.
        Keyword args:
          normalize (:obj:`bool`):
            Divide the tensor by its Frobenius norm.
        Returns:
          :obj:`jax.numpy.ndarray`:
            The generated tensor.
        """
        shape = tuple(int(i) for i in shape)

        if jnp.issubdtype(dtype, jnp.complexfloating):
            real_dtype = jnp.finfo(dtype).dtype
            block = self._uniform(shape, real_dtype) + 1j * self._uniform(
                shape, real_dtype
            )
            block = block.astype(dtype)
        else:
            block = self._uniform(shape, dtype)

        if normalize:
            block = block / jnp.linalg.norm(block)

        return block

    def grid(
        self,
        shape: Callable[[int, int], Sequence[int]],
        rows: int,
        cols: int,
        dtype: Any,
    ) -> List[List[jnp.ndarray]]:
        """
        Normalized tensors indexed [row][col], the shape of each given by
        ``shape(row, col)``.
        """
        return [
            [self.block(shape(r, c), dtype) for c in range(cols)] for r in range(rows)
        ]
