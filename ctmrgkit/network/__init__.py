from . import pepo
from . import peps
from . import square

from .square import InfiniteSquareNetwork, SpaceMismatchError
from .peps import InfinitePEPS
from .pepo import InfinitePEPO, initialize_peps
