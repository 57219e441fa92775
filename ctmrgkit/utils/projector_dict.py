from collections import namedtuple
import collections.abc
from dataclasses import dataclass, field

from typing import Dict, Tuple

from .periodic_indices import Coordinate, Direction

Projector_Pair = namedtuple("Projector_Pair", ("left", "right"))


@dataclass
class Projector_Dict(collections.abc.MutableMapping):
    """
    Projector pairs of one CTMRG iteration indexed by their bond coordinate.
    """

    max_row: int
    max_col: int
    projector_dict: Dict[Coordinate, Projector_Pair] = field(default_factory=dict)

    def _key(self, key: Tuple[int, int, int]) -> Coordinate:
        direction, row, col = key
        return Coordinate(
            Direction(direction % 4), row % self.max_row, col % self.max_col
        )

    def __getitem__(self, key: Tuple[int, int, int]) -> Projector_Pair:
        return self.projector_dict[self._key(key)]

    def __setitem__(self, key: Tuple[int, int, int], value: Projector_Pair) -> None:
        self.projector_dict[self._key(key)] = value

    def __delitem__(self, key: Tuple[int, int, int]) -> None:
        self.projector_dict.__delitem__(self._key(key))

    def __iter__(self):
        return self.projector_dict.__iter__()

    def __len__(self):
        return self.projector_dict.__len__()

    def get_projector(
        self,
        direction: int,
        current_row: int,
        current_col: int,
        relative_row: int = 0,
        relative_col: int = 0,
    ) -> Projector_Pair:
        return self[(direction, current_row + relative_row, current_col + relative_col)]
