from .definitions import Definitions, Definition
from .apply import apply_contraction
