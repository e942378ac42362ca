# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import sys
import numpy as np
import mvmo.common.typing as tp


EPSILON = sys.float_info.epsilon


class History:
    """Append-only record of all the evaluated points (in normalized space)
    and their losses.

    Storage is preallocated and doubled whenever it is full, so that
    appending remains cheap for long runs.

    Parameters
    ----------
    dimension: int
        dimension of the evaluated points
    capacity: int
        initial number of preallocated records
    """

    def __init__(self, dimension: int, capacity: int = 64) -> None:
        self.dimension = dimension
        self._x = np.zeros((max(1, capacity), dimension))
        self._y = np.zeros(max(1, capacity))
        self._size = 0

    def append(self, x: tp.ArrayLike, y: float) -> None:
        if self._size == self._y.size:
            self._x = np.concatenate([self._x, np.zeros_like(self._x)], axis=0)
            self._y = np.concatenate([self._y, np.zeros_like(self._y)])
        self._x[self._size] = x
        self._y[self._size] = y
        self._size += 1

    @property
    def x(self) -> np.ndarray:
        """np.ndarray: evaluated points, one row per record (read-only view)"""
        view = self._x[: self._size]
        view.flags.writeable = False
        return view

    @property
    def y(self) -> np.ndarray:
        """np.ndarray: losses, one per record (read-only view)"""
        view = self._y[: self._size]
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        best = float(np.min(self.y)) if self._size else float("inf")
        return f"History<size: {self._size}, dimension: {self.dimension}, best loss: {best}>"


def mean_var_without_duplicates(values: tp.ArrayLike) -> tp.Tuple[float, float]:
    """Mean and population variance of the values, after merging the values
    closer than machine epsilon from their sorted predecessor.

    Parameters
    ----------
    values: array-like
        a non-empty sequence of floats

    Returns
    -------
    tuple
        the mean and the (biased) variance. The variance is 0 if only one
        distinct value remains.
    """
    sorted_values = np.sort(np.asarray(values, dtype=float).ravel())
    assert sorted_values.size, "Cannot compute statistics of an empty sequence"
    keep = np.concatenate([[True], np.abs(np.diff(sorted_values)) > EPSILON])
    distinct = sorted_values[keep]
    if distinct.size == 1:
        return float(distinct[0]), 0.0
    return float(np.mean(distinct)), float(np.var(distinct))
