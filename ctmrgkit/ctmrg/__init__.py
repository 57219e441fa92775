from . import env
from . import absorption
from . import projectors
from . import simultaneous
from . import routine

from .env import CTMRGEnv
from .projectors import (
    FullInfiniteProjector,
    HalfInfiniteProjector,
    ProjectorAlgorithm,
    compute_projector,
    projector_algorithm,
)
from .simultaneous import SimultaneousCTMRG, ctmrg_iteration
from .routine import (
    CTMRG_Info,
    CTMRG_Status,
    CTMRGNotConvergedError,
    calc_convergence,
    ctmrg_algorithm,
    leading_boundary,
)
