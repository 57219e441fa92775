from . import logging_config
from . import parallel_map
from . import periodic_indices
from . import projector_dict
from . import random
from . import svd
from . import truncation
