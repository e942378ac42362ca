# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import numpy as np
import mvmo.common.typing as tp
from mvmo.common import errors


def bound_to_array(x: tp.BoundValue) -> np.ndarray:
    """Updates type of bounds to use float arrays"""
    if isinstance(x, (tuple, list, np.ndarray)):
        return np.array(x, dtype=float)
    return np.array([x], dtype=float)


class Transform:
    """Base class for transforms implementing a forward and a backward (inverse)
    method.
    """

    name = "T"

    def forward(self, x: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def backward(self, y: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self) -> str:
        args = ", ".join(f"{x}={y}" for x, y in sorted(self.__dict__.items()) if not x.startswith("_"))
        return f"{self.__class__.__name__}({args})"


class Affine(Transform):
    """Element-wise affine transform a * x + b

    Parameters
    ----------
    a: float or array
    b: float or array
    """

    def __init__(self, a: tp.BoundValue, b: tp.BoundValue) -> None:
        self.a = bound_to_array(a)
        self.b = bound_to_array(b)
        if not np.all(self.a):
            raise errors.MvmoValueError('"a" parameter should be non-zero to prevent information loss.')
        self.name = f"Af({a},{b})"

    def forward(self, x: np.ndarray) -> np.ndarray:
        return self.a * x + self.b  # type: ignore


class UnitScaling(Transform):
    """Maps the box [lower, upper] onto the unit cube [0, 1]^d.

    :code:`forward` (scale) uses :code:`a = 1 / (upper - lower)` and :code:`b = -lower * a`,
    :code:`backward` (scale back) uses :code:`a = upper - lower` and :code:`b = lower`.
    Both are affine so that :code:`backward(forward(x)) == x` up to floating point errors.

    Parameters
    ----------
    lower: array-like
        lower bounds of the box
    upper: array-like
        upper bounds of the box, strictly greater than lower bounds

    Raises
    ------
    MvmoValueError
        if the bounds are not 1-dimensional, empty, not finite, have different
        sizes or are not strictly ordered
    """

    def __init__(self, lower: tp.ArrayLike, upper: tp.ArrayLike) -> None:
        self.lower = np.array(lower, dtype=float)
        self.upper = np.array(upper, dtype=float)
        if self.lower.ndim != 1 or self.upper.ndim != 1:
            raise errors.MvmoValueError(
                f"Bounds must be 1-dimensional (got shapes {self.lower.shape} and {self.upper.shape})"
            )
        if self.lower.shape != self.upper.shape:
            raise errors.MvmoValueError(
                f"Lower and upper bounds have different sizes: {self.lower.size} != {self.upper.size}"
            )
        if not self.lower.size:
            raise errors.MvmoValueError("No variable to optimize: bounds are empty.")
        if not (np.all(np.isfinite(self.lower)) and np.all(np.isfinite(self.upper))):
            raise errors.MvmoValueError("Bounds must be finite.")
        if (self.lower >= self.upper).any():
            raise errors.MvmoValueError(
                f"Lower bounds {self.lower} should be strictly smaller than upper bounds {self.upper}"
            )
        a = 1.0 / (self.upper - self.lower)
        self._scale = Affine(a, -self.lower * a)
        self._scale_back = Affine(self.upper - self.lower, self.lower)
        self.name = f"Us({self.lower.size})"

    @property
    def dimension(self) -> int:
        return self.lower.size

    def _check_shape(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.shape != self.lower.shape:
            raise errors.MvmoValueError(f"Expected a point of shape {self.lower.shape} but got {x.shape}")
        return x

    def forward(self, x: np.ndarray) -> np.ndarray:
        return self._scale.forward(self._check_shape(x))

    def backward(self, y: np.ndarray) -> np.ndarray:
        return self._scale_back.forward(self._check_shape(y))
