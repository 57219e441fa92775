"""
Definitions for contractions in this module.
"""

from collections import Counter

import opt_einsum

from typing import Dict, List, Tuple, Union

Definition = Dict[str, Union[List[str], List[Tuple[int, ...]], str]]


class Definitions:
    """
    Class to define the contractions used along in this package.

    The environment tensors follow a clockwise convention. A corner of
    direction ``d`` has the legs::

      (leg towards the edge of direction d-1, leg towards the edge of direction d)

    and an edge of direction ``d`` the legs::

      (counterclockwise bond, leg into the network, clockwise bond)

    The network site tensors have the legs (north, east, south, west). The
    rules for the CTMRG routine are written in the frame of the north
    direction and are used for the other directions with the site tensor
    rotated by :obj:`~ctmrgkit.utils.periodic_indices.rotate_site`.

    Each contraction is specified in the format::

      contraction_name = {
        "tensors": ["name of first tensor", "name of second tensor", ...],
        "network": [
          (Axes for first tensor),
          (Axes for second tensor),
          ...
        ]
      }

    The axes are hereby specified in the ncon format where positive numbers
    describes the axes to be contracted and negative number the open axes
    after the contraction. The tensor names only document the expected
    order of the arguments.
    """

    @staticmethod
    def _check_tensors_and_network(contraction: Definition, name: str) -> None:
        tensors = contraction["tensors"]
        network = contraction["network"]

        if not all(isinstance(t, str) for t in tensors):
            raise ValueError(f'Invalid specification for contraction "{name}".')

        if not all(
            isinstance(n, (list, tuple)) and all(isinstance(ni, int) for ni in n)
            for n in network
        ):
            raise ValueError(f'Invalid specification for contraction "{name}".')

        if len(tensors) != len(network):
            raise ValueError(f'Invalid specification for contraction "{name}".')

    @classmethod
    def _convert_to_einsum(cls, network):
        max_contracted = 0
        min_open = 0

        result = tuple([] for _ in range(len(network)))

        for ti, t in enumerate(network):
            for i in t:
                if i < 0 and i < min_open:
                    min_open = i
                elif i > 0 and i > max_contracted:
                    max_contracted = i
                if max_contracted >= (min_open + 52):
                    raise ValueError("Letters in conversion are overlapping.")

                result[ti].append(opt_einsum.get_symbol(i))

        result = ["".join(e) for e in result]
        open_result = [opt_einsum.get_symbol(i) for i in range(-1, min_open - 1, -1)]

        result = f"{','.join(result)}->{''.join(open_result)}"

        return result

    @classmethod
    def _process_def(cls, e, name):
        cls._check_tensors_and_network(e, name)

        ncon_network = [tuple(n) for n in e["network"]]

        flatted_ncon_list = [j for i in ncon_network for j in i]
        counter_ncon_list = Counter(flatted_ncon_list)
        for ind, c in counter_ncon_list.items():
            if (ind > 0 and c != 2) or (ind < 0 and c != 1) or ind == 0:
                raise ValueError(
                    f'Invalid definition found for "{name}": Element {ind:d} has counter {c:d}.'
                )
        sorted_ncon_list = sorted(c for c in counter_ncon_list if c > 0)
        if len(sorted_ncon_list) != sorted_ncon_list[-1]:
            raise ValueError(
                f'Non-monotonous indices in definition "{name}". Please check!'
            )
        sorted_open_list = sorted((-c for c in counter_ncon_list if c < 0))
        if len(sorted_open_list) > 0 and len(sorted_open_list) != sorted_open_list[-1]:
            raise ValueError(
                f'Non-monotonous open indices in definition "{name}". Please check!'
            )

        e["ncon_network"] = ncon_network
        e["einsum_network"] = cls._convert_to_einsum(ncon_network)

    @classmethod
    def _prepare_defs(cls):
        for name in dir(cls):
            if name == "add_def" or name.startswith("_"):
                continue

            e = getattr(cls, name)

            cls._process_def(e, name)

    @classmethod
    def add_def(cls, name, definition):
        cls._process_def(definition, name)
        setattr(cls, name, definition)

    ctmrg_enlarged_corner: Definition = {
        "tensors": ["E_prev", "C", "E_cur", "site"],
        "network": [
            (-1, 4, 1),  # E_prev
            (1, 2),  # C
            (2, 3, -3),  # E_cur
            (3, -4, -2, 4),  # site
        ],
    }
    """
    Enlarged corner of the north west type. Result legs:
    (bond of E_prev, south leg of site, bond of E_cur, east leg of site).
    """

    ctmrg_renormalize_corner: Definition = {
        "tensors": ["P_right", "Q", "P_left"],
        "network": [
            (-1, 1, 2),  # P_right
            (1, 2, 3, 4),  # Q
            (3, 4, -2),  # P_left
        ],
    }

    ctmrg_renormalize_edge: Definition = {
        "tensors": ["P_right", "E", "site", "P_left"],
        "network": [
            (-1, 1, 2),  # P_right
            (1, 3, 4),  # E
            (3, 5, -2, 2),  # site
            (4, 5, -3),  # P_left
        ],
    }

    network_value_site: Definition = {
        "tensors": ["C_N", "E_N", "C_E", "E_E", "C_S", "E_S", "C_W", "E_W", "site"],
        "network": [
            (1, 2),  # C_N
            (2, 3, 4),  # E_N
            (4, 5),  # C_E
            (5, 6, 7),  # E_E
            (7, 8),  # C_S
            (8, 9, 10),  # E_S
            (10, 11),  # C_W
            (11, 12, 1),  # E_W
            (3, 6, 9, 12),  # site
        ],
    }

    network_value_corners: Definition = {
        "tensors": ["C_N", "C_E", "C_S", "C_W"],
        "network": [
            (1, 2),  # C_N
            (2, 3),  # C_E
            (3, 4),  # C_S
            (4, 1),  # C_W
        ],
    }

    network_value_vertical_edges: Definition = {
        "tensors": ["C_N", "E_N", "C_E", "C_S", "E_S", "C_W"],
        "network": [
            (1, 2),  # C_N
            (2, 3, 4),  # E_N
            (4, 5),  # C_E
            (5, 6),  # C_S
            (6, 3, 7),  # E_S
            (7, 1),  # C_W
        ],
    }

    network_value_horizontal_edges: Definition = {
        "tensors": ["C_N", "C_E", "E_E", "C_S", "C_W", "E_W"],
        "network": [
            (1, 2),  # C_N
            (2, 3),  # C_E
            (3, 4, 5),  # E_E
            (5, 6),  # C_S
            (6, 7),  # C_W
            (7, 4, 1),  # E_W
        ],
    }


Definitions._prepare_defs()
