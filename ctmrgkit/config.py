from dataclasses import dataclass
from enum import IntEnum, auto, unique
import logging

from jax.tree_util import register_pytree_node_class

from typing import TypeVar, Tuple, Any, Type, NoReturn, Optional

T_CTMRGKit_Config = TypeVar("T_CTMRGKit_Config", bound="CTMRGKit_Config")


@unique
class Projector_Method(IntEnum):
    HALF_INFINITE = auto()  #: Use two enlarged corners for projector calculation
    FULL_INFINITE = auto()  #: Use all four enlarged corners around the bond


@unique
class Truncation_Method(IntEnum):
    FIXED_SPACE = auto()  #: Keep the current environment bond dimension
    NO_TRUNCATION = auto()  #: Keep all singular values
    TRUNCATION_ERROR = auto()  #: Truncate up to a relative 2-norm error
    TRUNCATION_DIMENSION = auto()  #: Keep a fixed number of singular values
    TRUNCATION_SPACE = auto()  #: Keep at most the dimension of a target space
    TRUNCATION_BELOW = auto()  #: Discard singular values below a cutoff


@unique
class SVD_Forward_Method(IntEnum):
    GESDD = auto()  #: Default LAPACK divide and conquer algorithm
    QR = auto()  #: QR based algorithm, slower but more robust


@unique
class SVD_Rrule_Method(IntEnum):
    NATIVE = auto()  #: Derivative rule shipped with jax
    REGULARIZED = auto()  #: Custom rule regular at degenerate singular values


@unique
class LogLevel(IntEnum):
    OFF = 0
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


@dataclass
@register_pytree_node_class
class CTMRGKit_Config:
    """
    Config class for ctmrgkit module. Normally only the blow created instance
    :obj:`config` is used.

    Parameters:
      ctmrg_tol (:obj:`float`):
        Convergence criterion for the CTMRG routine.
      ctmrg_maxiter (:obj:`int`):
        Maximal number of iterations of the CTMRG routine.
      ctmrg_miniter (:obj:`int`):
        Minimal number of iterations before convergence is accepted.
      ctmrg_verbosity (:obj:`int`):
        Verbosity of the CTMRG routine. 0 is silent, 1 only reports warnings,
        2 reports the progress and 3 additionally every iteration in detail.
      ctmrg_fail_if_not_converged (:obj:`bool`):
        Flag if the CTMRG routine should fail with an error if no convergence
        can be reached within the maximal number of steps.
        If disabled, the result converged so far is returned and the status
        is reported in the info object.
      projector_alg (:obj:`~ctmrgkit.config.Projector_Method`):
        Default method for the calculation of the projectors.
      projector_verbosity (:obj:`int`):
        Verbosity of the projector calculation. Values bigger than 0 enable
        the degenerate spectrum warnings.
      trscheme_method (:obj:`~ctmrgkit.config.Truncation_Method`):
        Default truncation scheme used in the projector calculation.
      trscheme_value (:obj:`float`):
        Parameter of the default truncation scheme. Ignored for the methods
        which do not need a parameter.
      svd_fwd_alg (:obj:`~ctmrgkit.config.SVD_Forward_Method`):
        Default algorithm for the forward SVD.
      svd_rrule_alg (:obj:`~ctmrgkit.config.SVD_Rrule_Method`):
        Default derivative rule for the SVD.
      svd_sign_fix_eps (:obj:`float`):
        Value for numerical stability threshold in sign-fixed SVD.
      parallel_map_workers (:obj:`int`):
        Number of threads used for the per-coordinate maps of the CTMRG
        iteration. A value of 1 runs the maps sequentially.
      log_level_global (:obj:`~ctmrgkit.config.LogLevel`):
        Log level of the root ``ctmrgkit`` logger.
      log_level_ctmrg (:obj:`~ctmrgkit.config.LogLevel`):
        Log level of the ``ctmrgkit.ctmrg`` logger.
      log_level_projectors (:obj:`~ctmrgkit.config.LogLevel`):
        Log level of the ``ctmrgkit.projectors`` logger.
      log_to_console (:obj:`bool`):
        Log to the console.
      log_to_file (:obj:`bool`):
        Log additionally to the file :obj:`log_file`.
      log_file (:obj:`str`):
        Filename for the file logging.
      log_tqdm (:obj:`bool`):
        Write the console output through :obj:`tqdm.tqdm.write` so that it
        does not break progress bars.
    """

    # CTMRG routine
    ctmrg_tol: float = 1e-8
    ctmrg_maxiter: int = 100
    ctmrg_miniter: int = 4
    ctmrg_verbosity: int = 2
    ctmrg_fail_if_not_converged: bool = False

    # Projectors
    projector_alg: Projector_Method = Projector_Method.HALF_INFINITE
    projector_verbosity: int = 0
    trscheme_method: Truncation_Method = Truncation_Method.FIXED_SPACE
    trscheme_value: Optional[float] = None

    # SVD
    svd_fwd_alg: SVD_Forward_Method = SVD_Forward_Method.GESDD
    svd_rrule_alg: SVD_Rrule_Method = SVD_Rrule_Method.REGULARIZED
    svd_sign_fix_eps: float = 1e-1

    # Parallelization
    parallel_map_workers: int = 1

    # Logging
    log_level_global: LogLevel = LogLevel.INFO
    log_level_ctmrg: LogLevel = LogLevel.INFO
    log_level_projectors: LogLevel = LogLevel.WARNING
    log_to_console: bool = True
    log_to_file: bool = False
    log_file: str = "ctmrgkit.log"
    log_tqdm: bool = False

    def update(self, name: str, value: Any) -> NoReturn:
        self.__setattr__(name, value)

    def __setattr__(self, name: str, value: Any) -> NoReturn:
        try:
            field = self.__dataclass_fields__[name]
        except KeyError as e:
            raise KeyError(f"Unknown config option '{name}'.") from e

        if field.type == Optional[float]:
            if value is not None and type(value) not in (float, int):
                raise TypeError(
                    f"Type mismatch for option '{name}', got '{type(value)}', expected '{field.type}'."
                )
        elif not type(value) is field.type:
            if field.type is float and type(value) is int:
                pass
            else:
                raise TypeError(
                    f"Type mismatch for option '{name}', got '{type(value)}', expected '{field.type}'."
                )

        super().__setattr__(name, value)

    def tree_flatten(self) -> Tuple[Tuple[Any, ...], Tuple[Any, ...]]:
        aux_data = (
            {name: getattr(self, name) for name in self.__dataclass_fields__.keys()},
        )

        return ((), aux_data)

    @classmethod
    def tree_unflatten(
        cls: Type[T_CTMRGKit_Config],
        aux_data: Tuple[Any, ...],
        children: Tuple[Any, ...],
    ) -> T_CTMRGKit_Config:
        (data_dict,) = aux_data

        return cls(**data_dict)


config = CTMRGKit_Config()


class ConfigModuleWrapper:
    __slots__ = {
        "Projector_Method",
        "Truncation_Method",
        "SVD_Forward_Method",
        "SVD_Rrule_Method",
        "LogLevel",
        "CTMRGKit_Config",
        "config",
    }

    def __init__(self):
        for e in self.__slots__:
            setattr(self, e, globals()[e])

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name in self.__slots__:
            return super().__getattr__(name)
        else:
            return getattr(self.config, name)

    def __setattr__(self, name: str, value: Any) -> NoReturn:
        if not name.startswith("__") and name not in self.__slots__:
            setattr(self.config, name, value)
        elif not hasattr(self, name):
            super().__setattr__(name, value)
        else:
            raise AttributeError(f"Attribute '{name}' is write-protected.")


wrapper = ConfigModuleWrapper()
