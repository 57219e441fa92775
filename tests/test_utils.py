import logging
import threading

import numpy as np
import jax.numpy as jnp
import pytest

from ctmrgkit import ctmrgkit_config
from ctmrgkit.config import CTMRGKit_Config, LogLevel
from ctmrgkit.contractions import Definitions, apply_contraction
from ctmrgkit.typing import is_int, is_tensor, to_grid
from ctmrgkit.utils.logging_config import TqdmWriteHandler, init_logging
from ctmrgkit.utils.parallel_map import parallel_map
from ctmrgkit.utils.random import Tensor_Generator


@pytest.mark.parametrize("backend", ["jax", "numpy"])
def test_random_is_reproducible(backend):
    a = Tensor_Generator.get(1234, backend=backend).block((3, 4), jnp.float64)
    Tensor_Generator.reset()
    b = Tensor_Generator.get(1234, backend=backend).block((3, 4), jnp.float64)

    assert jnp.allclose(a, b)
    assert jnp.isclose(jnp.linalg.norm(a), 1)


@pytest.mark.parametrize("backend", ["jax", "numpy"])
def test_random_stream_continues(backend):
    rng = Tensor_Generator.get(7, backend=backend)
    a = rng.block((4,), jnp.float64)
    b = Tensor_Generator.get(backend=backend).block((4,), jnp.float64)

    assert not jnp.allclose(a, b)


@pytest.mark.parametrize("backend", ["jax", "numpy"])
def test_random_complex(backend):
    rng = Tensor_Generator.get(5, backend=backend)
    a = rng.block((2, 2), jnp.complex128, normalize=False)

    assert a.dtype == jnp.complex128
    assert jnp.any(jnp.imag(a) != 0)
    assert jnp.all(jnp.abs(jnp.real(a)) <= 1)


def test_random_grid_shapes():
    rng = Tensor_Generator.get(3)
    grid = rng.grid(lambda r, c: (r + 1, c + 2), 2, 3, jnp.float64)

    assert len(grid) == 2
    assert all(len(row) == 3 for row in grid)
    assert grid[1][2].shape == (2, 4)
    assert jnp.isclose(jnp.linalg.norm(grid[0][1]), 1)


def test_random_seed_ignored_with_existing_instance():
    Tensor_Generator.get(1)

    with pytest.warns(UserWarning):
        Tensor_Generator.get(2)

    with pytest.raises(ValueError):
        Tensor_Generator.get(backend="torch")

    with pytest.raises(ValueError):
        Tensor_Generator("torch")

@pytest.mark.parametrize("workers", [1, 3])
def test_parallel_map_keeps_order(workers):
    assert parallel_map(lambda x: x**2, range(10), workers=workers) == [
        x**2 for x in range(10)
    ]


def test_parallel_map_uses_threads():
    ctmrgkit_config.parallel_map_workers = 4
    barrier = threading.Barrier(2, timeout=10)

    # both elements have to run at the same time to pass the barrier
    assert parallel_map(lambda x: barrier.wait() >= 0, [0, 1]) == [True, True]


def test_typing_helpers():
    assert is_tensor(np.ones(2))
    assert is_tensor(jnp.ones(2))
    assert not is_tensor([1, 2])

    assert is_int(3)
    assert is_int(np.int32(3))
    assert is_int(jnp.array(3))
    assert not is_int(True)
    assert not is_int(3.0)

    a, b = np.ones(1), jnp.zeros(2)
    grid = to_grid([[a, b], [b, a]])

    assert isinstance(grid, tuple)
    assert all(isinstance(row, tuple) for row in grid)
    assert grid[0][0] is a
    assert grid[1][0] is b

    with pytest.raises(ValueError):
        to_grid([[a, b], [a]])
    with pytest.raises(ValueError):
        to_grid([])
    with pytest.raises(ValueError):
        to_grid([[1, 2], [3, 4]])


def test_init_logging_handlers(tmp_path):
    cfg = CTMRGKit_Config()
    cfg.log_to_console = False
    cfg.log_to_file = True
    cfg.log_file = str(tmp_path / "ctmrgkit.log")
    cfg.log_level_ctmrg = LogLevel.OFF

    init_logging(cfg)

    try:
        root = logging.getLogger("ctmrgkit")
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.FileHandler)
        assert logging.getLogger("ctmrgkit.ctmrg").level > logging.CRITICAL

        logging.getLogger("ctmrgkit.projectors").warning("degenerate")
        root.handlers[0].flush()
        assert "degenerate" in (tmp_path / "ctmrgkit.log").read_text()

        cfg.log_to_file = False
        cfg.log_to_console = True
        cfg.log_tqdm = True
        init_logging(cfg)
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], TqdmWriteHandler)
    finally:
        for h in list(logging.getLogger("ctmrgkit").handlers):
            h.close()
        init_logging()


def test_contraction_definitions():
    d = Definitions.ctmrg_enlarged_corner

    assert d["einsum_network"].count(",") == 3
    assert d["ncon_network"][1] == (1, 2)

    with pytest.raises(ValueError):
        Definitions.add_def(
            "broken", {"tensors": ["A", "B"], "network": [(1, 2), (2, 3)]}
        )

    with pytest.raises(ValueError):
        Definitions.add_def(
            "broken", {"tensors": ["A", "B"], "network": [(1, -1), (1, -3)]}
        )


def test_apply_contraction_checks_ranks():
    C = jnp.ones((2, 2))

    with pytest.raises(ValueError):
        apply_contraction("network_value_corners", [C, C, C])

    with pytest.raises(ValueError):
        apply_contraction("network_value_corners", [C, C, C, jnp.ones((2, 2, 1))])

    assert jnp.isclose(apply_contraction("network_value_corners", [C, C, C, C]), 16)
