# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import math
import numpy as np


# boundary snapping: values beyond these thresholds are snapped
# onto the closest bound with the given probability
SNAP_UPPER = 0.98
SNAP_LOWER = 0.02
SNAP_PROBABILITY = 0.2


def hfunc(xbar: float, s1: float, s2: float, x: float) -> float:
    """Saturating mapping function
    h(x) = xbar * (1 - exp(-x * s1)) + (1 - xbar) * exp(-(1 - x) * s2)
    """
    return xbar * (1.0 - math.exp(-x * s1)) + (1.0 - xbar) * math.exp(-(1.0 - x) * s2)


def mapped_value(xbar: float, s1: float, s2: float, u: float) -> float:
    """Transforms a uniform draw u in [0, 1] into a coordinate biased towards xbar.
    The correction terms anchor the endpoints: u = 0 maps to 0 and u = 1 maps to 1.
    """
    h0 = hfunc(xbar, s1, s2, 0.0)
    h1 = hfunc(xbar, s1, s2, 1.0)
    return hfunc(xbar, s1, s2, u) + (1.0 - h1 + h0) * u - h0


class Mutator:
    """Mapping-based mutation of single coordinates, holding the random state
    used for the uniform draws.

    Parameters
    ----------
    random_state: np.random.RandomState
        source of the uniform draws
    boundary_snap: bool
        whether values above 0.98 (resp. below 0.02) are snapped to 1 (resp. 0)
        with probability 0.2. This is not part of the mapping formula, but without
        it the exact bounds are hardly ever reached.
    """

    def __init__(self, random_state: np.random.RandomState, boundary_snap: bool = True) -> None:
        self.random_state = random_state
        self.boundary_snap = boundary_snap

    def mutate(self, xbar: float, s1: float, s2: float) -> float:
        """Draws a new normalized coordinate from the mapping of the archive mean xbar
        with shape values s1 and s2
        """
        value = mapped_value(xbar, s1, s2, self.random_state.uniform())
        if self.boundary_snap:
            if value > SNAP_UPPER and self.random_state.uniform() < SNAP_PROBABILITY:
                value = 1.0
            elif value < SNAP_LOWER and self.random_state.uniform() < SNAP_PROBABILITY:
                value = 0.0
        return min(1.0, max(0.0, value))
