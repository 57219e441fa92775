"""
Truncation schemes deciding how many singular values are kept in the
projector calculation.
"""

from dataclasses import dataclass
from types import MappingProxyType

import numpy as np

from ctmrgkit.config import Truncation_Method

from typing import Optional, Union


_METHODS_WITH_VALUE = frozenset(
    {
        Truncation_Method.TRUNCATION_ERROR,
        Truncation_Method.TRUNCATION_DIMENSION,
        Truncation_Method.TRUNCATION_SPACE,
        Truncation_Method.TRUNCATION_BELOW,
    }
)

_METHODS_WITH_DIMENSION = frozenset(
    {Truncation_Method.TRUNCATION_DIMENSION, Truncation_Method.TRUNCATION_SPACE}
)

TRUNCATION_NAMES = MappingProxyType(
    {
        "fixedspace": Truncation_Method.FIXED_SPACE,
        "notrunc": Truncation_Method.NO_TRUNCATION,
        "truncerr": Truncation_Method.TRUNCATION_ERROR,
        "truncdim": Truncation_Method.TRUNCATION_DIMENSION,
        "truncspace": Truncation_Method.TRUNCATION_SPACE,
        "truncbelow": Truncation_Method.TRUNCATION_BELOW,
    }
)


@dataclass(frozen=True)
class TruncationScheme:
    """
    Truncation policy for a singular value spectrum.

    Args:
      method (:obj:`~ctmrgkit.config.Truncation_Method`):
        Method of the truncation.
      value (:obj:`float` or :obj:`int`, optional):
        Parameter of the method: the maximal relative error for
        :obj:`~ctmrgkit.config.Truncation_Method.TRUNCATION_ERROR`, the number
        of kept values for
        :obj:`~ctmrgkit.config.Truncation_Method.TRUNCATION_DIMENSION` and
        :obj:`~ctmrgkit.config.Truncation_Method.TRUNCATION_SPACE`, the
        absolute cutoff for
        :obj:`~ctmrgkit.config.Truncation_Method.TRUNCATION_BELOW`. Has to be
        `None` for the other methods.
    """

    method: Truncation_Method
    value: Optional[Union[int, float]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.method, Truncation_Method):
            raise ValueError(f"Unknown truncation method '{self.method}'.")

        if self.method in _METHODS_WITH_VALUE:
            if self.value is None:
                raise ValueError(
                    f"Truncation method {self.method.name} needs a parameter."
                )
            if self.value < 0:
                raise ValueError(
                    f"Parameter of truncation method {self.method.name} has to be non-negative."
                )
        elif self.value is not None:
            raise ValueError(
                f"Truncation method {self.method.name} does not take a parameter."
            )

        if self.method in _METHODS_WITH_DIMENSION:
            if int(self.value) != self.value:
                raise ValueError("Truncation dimension has to be an integer.")
            if self.value < 1:
                raise ValueError("Truncation to zero-dimensional space requested.")
            object.__setattr__(self, "value", int(self.value))

    def keep_count(self, S: np.ndarray) -> int:
        """
        Calculate the number of singular values kept by this scheme.

        Args:
          S (:obj:`numpy.ndarray`):
            Singular values in descending order.
        Returns:
          :obj:`int`:
            Number of kept singular values. At least one value is always kept.
        """
        S = np.asarray(S)
        n = S.shape[0]

        if self.method is Truncation_Method.FIXED_SPACE:
            raise ValueError(
                "Fixed space truncation has to be resolved against the current environment first."
            )
        elif self.method is Truncation_Method.NO_TRUNCATION:
            k = n
        elif self.method in _METHODS_WITH_DIMENSION:
            k = min(self.value, n)
        elif self.method is Truncation_Method.TRUNCATION_ERROR:
            S_norm = np.linalg.norm(S)
            if S_norm == 0:
                k = 1
            else:
                # tail_norms[i] is the norm of the values discarded if i are kept
                tail_norms = np.sqrt(np.cumsum((S**2)[::-1]))[::-1]
                tail_norms = np.append(tail_norms, 0)
                k = int(np.argmax(tail_norms <= self.value * S_norm))
        elif self.method is Truncation_Method.TRUNCATION_BELOW:
            k = int(np.sum(S > self.value))
        else:
            raise ValueError(f"Unknown truncation method '{self.method}'.")

        return max(k, 1)

    def __str__(self) -> str:
        if self.value is None:
            return self.method.name
        return f"{self.method.name}({self.value})"


def truncation_error(S: np.ndarray, kept: int) -> float:
    """
    Norm of the discarded singular values relative to the norm of the full
    spectrum.
    """
    S = np.asarray(S)
    S_norm = np.linalg.norm(S)
    if S_norm == 0:
        return 0.0
    return float(np.linalg.norm(S[kept:]) / S_norm)


def fixedspace() -> TruncationScheme:
    return TruncationScheme(Truncation_Method.FIXED_SPACE)


def notrunc() -> TruncationScheme:
    return TruncationScheme(Truncation_Method.NO_TRUNCATION)


def truncerr(eta: float) -> TruncationScheme:
    return TruncationScheme(Truncation_Method.TRUNCATION_ERROR, eta)


def truncdim(dim: int) -> TruncationScheme:
    return TruncationScheme(Truncation_Method.TRUNCATION_DIMENSION, dim)


def truncspace(dim: int) -> TruncationScheme:
    return TruncationScheme(Truncation_Method.TRUNCATION_SPACE, dim)


def truncbelow(eps: float) -> TruncationScheme:
    return TruncationScheme(Truncation_Method.TRUNCATION_BELOW, eps)


def truncation_scheme(
    alg: Union[str, Truncation_Method, TruncationScheme, None] = None,
    value: Optional[Union[int, float]] = None,
) -> TruncationScheme:
    """
    Create a truncation scheme from its name, its method or the config
    defaults.

    Args:
      alg (:obj:`str`, :obj:`~ctmrgkit.config.Truncation_Method` or :obj:`TruncationScheme`, optional):
        Either one of the names ``fixedspace``, ``notrunc``, ``truncerr``,
        ``truncdim``, ``truncspace``, ``truncbelow``, a member of the
        enumeration or an already constructed scheme which is returned
        unchanged. If `None`, the config options
        :obj:`~ctmrgkit.config.CTMRGKit_Config.trscheme_method` and
        :obj:`~ctmrgkit.config.CTMRGKit_Config.trscheme_value` are used.
      value (:obj:`float` or :obj:`int`, optional):
        Parameter of the scheme.
    Returns:
      :obj:`TruncationScheme`:
        The scheme.
    """
    if isinstance(alg, TruncationScheme):
        if value is not None:
            raise ValueError("Parameter given for already constructed truncation scheme.")
        return alg

    if alg is None:
        from ctmrgkit import ctmrgkit_config

        alg = ctmrgkit_config.trscheme_method
        if value is None and alg in _METHODS_WITH_VALUE:
            value = ctmrgkit_config.trscheme_value

    if isinstance(alg, str):
        try:
            alg = TRUNCATION_NAMES[alg.lower()]
        except KeyError as e:
            raise ValueError(
                f"Unknown truncation scheme '{alg}'. Known schemes: {', '.join(TRUNCATION_NAMES)}."
            ) from e

    if not isinstance(alg, Truncation_Method):
        raise ValueError(f"Unknown truncation scheme '{alg}'.")

    return TruncationScheme(alg, value)
