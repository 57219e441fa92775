import numpy as np
import pytest

from ctmrgkit import ctmrgkit_config
from ctmrgkit.config import Truncation_Method
from ctmrgkit.utils.truncation import (
    TruncationScheme,
    fixedspace,
    notrunc,
    truncation_error,
    truncation_scheme,
    truncbelow,
    truncdim,
    truncerr,
    truncspace,
)

S = np.array([1.0, 0.5, 0.1, 1e-3, 1e-6])


def test_keep_count_per_method():
    assert notrunc().keep_count(S) == 5
    assert truncdim(3).keep_count(S) == 3
    assert truncdim(10).keep_count(S) == 5
    assert truncspace(2).keep_count(S) == 2
    assert truncbelow(1e-2).keep_count(S) == 3


def test_truncerr_keeps_minimal_count():
    k = truncerr(1e-2).keep_count(S)

    assert truncation_error(S, k) <= 1e-2
    assert truncation_error(S, k - 1) > 1e-2
    assert k == 3


def test_at_least_one_value_is_kept():
    assert truncbelow(10).keep_count(S) == 1
    assert truncerr(1).keep_count(S) == 1


def test_fixedspace_needs_resolution():
    with pytest.raises(ValueError):
        fixedspace().keep_count(S)


def test_truncation_error_is_monotonic():
    errors = [truncation_error(S, truncdim(k).keep_count(S)) for k in range(1, 6)]

    assert all(a >= b for a, b in zip(errors, errors[1:]))
    assert errors[-1] == 0


@pytest.mark.parametrize(
    "method,value",
    [
        (Truncation_Method.TRUNCATION_DIMENSION, 0),
        (Truncation_Method.TRUNCATION_SPACE, 0),
        (Truncation_Method.TRUNCATION_DIMENSION, 2.5),
        (Truncation_Method.TRUNCATION_ERROR, None),
        (Truncation_Method.TRUNCATION_ERROR, -1e-3),
        (Truncation_Method.NO_TRUNCATION, 3),
        ("truncdim", 3),
    ],
)
def test_invalid_schemes(method, value):
    with pytest.raises(ValueError):
        TruncationScheme(method, value)


def test_factory_names():
    assert truncation_scheme("truncdim", 4) == truncdim(4)
    assert truncation_scheme("TruncErr", 1e-8) == truncerr(1e-8)
    assert truncation_scheme(Truncation_Method.NO_TRUNCATION) == notrunc()

    scheme = truncbelow(1e-4)
    assert truncation_scheme(scheme) is scheme

    with pytest.raises(ValueError):
        truncation_scheme("truncsomething", 3)


def test_factory_uses_config_defaults():
    assert truncation_scheme() == fixedspace()

    ctmrgkit_config.trscheme_method = Truncation_Method.TRUNCATION_ERROR
    ctmrgkit_config.trscheme_value = 1e-6

    assert truncation_scheme() == truncerr(1e-6)
