# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import numpy as np
import mvmo.common.typing as tp
from mvmo.common import errors
from . import utils


class EliteArchive:
    """Snapshot of the best points of the history (normalized space).

    This is not a sliding window: :code:`update` reselects the
    :code:`size` best records of the full history at each call.

    Parameters
    ----------
    dimension: int
        dimension of the points
    size: int
        number of elite points kept
    """

    def __init__(self, dimension: int, size: int) -> None:
        assert size > 0, "Archive size must be positive"
        self.size = size
        self.indices = np.zeros(size, dtype=int)
        self.x = np.zeros((size, dimension))
        self.y = np.full(size, np.inf)

    def update(self, history: utils.History) -> None:
        """Selects the best records of the history.
        Ties are broken arbitrarily (partial, non-stable selection).
        """
        if len(history) < self.size:
            raise errors.MvmoRuntimeError(f"History has {len(history)} records, at least {self.size} are required")
        losses = history.y
        self.indices = np.argpartition(losses, self.size - 1)[: self.size]
        self.x = np.array(history.x[self.indices], copy=True)
        self.y = np.array(losses[self.indices], copy=True)

    def __repr__(self) -> str:
        return f"EliteArchive<size: {self.size}, losses: {self.y.tolist()}>"


class DimensionStatistics:
    """Per-dimension state derived from the elite archive.

    - :code:`mean` and :code:`s` (shape) are recomputed from the archive at each update
      (:code:`s` is kept from the previous update when the variance vanishes).
    - :code:`d` (dynamic range) persists and evolves across updates.
    - :code:`s1` and :code:`s2` are :code:`s` and :code:`d` in a random order, used by the mapping function.

    Parameters
    ----------
    dimension: int
        number of dimensions
    delta_d0: float
        amplitude of the random jitter applied to the dynamic range
    """

    def __init__(self, dimension: int, delta_d0: float = 0.25) -> None:
        self.delta_d0 = delta_d0
        self.mean = np.zeros(dimension)
        self.s = np.zeros(dimension)
        self.d = np.ones(dimension)
        self.s1 = np.zeros(dimension)
        self.s2 = np.zeros(dimension)

    @property
    def dimension(self) -> int:
        return self.mean.size

    def update(
        self,
        archive_x: np.ndarray,
        fitness_shaping: float,
        random_state: np.random.RandomState,
        has_best: bool = True,
    ) -> None:
        """Updates the statistics from the archive points (one row per elite)

        Parameters
        ----------
        archive_x: np.ndarray
            elite points, with shape (archive size, dimension)
        fitness_shaping: float
            factor applied to the -log(variance) shape value
        random_state: np.random.RandomState
            source of the jitter and of the (s1, s2) ordering draws
        has_best: bool
            if False, s1 and s2 are forced to 0 (no shaping until a finite best loss exists)
        """
        archive_x = np.asarray(archive_x)
        assert archive_x.shape[1] == self.dimension, f"Got shape {archive_x.shape} for dimension {self.dimension}"
        for i in range(self.dimension):
            mean, var = utils.mean_var_without_duplicates(archive_x[:, i])
            # a vanishing variance would lead to log(0): keep previous shape
            s = self.s[i] if var < utils.EPSILON else -np.log(var) * fitness_shaping
            self.mean[i] = mean
            self.s[i] = s
            s1 = s2 = s
            if s > 0:
                delta = (1 + self.delta_d0) + 2 * self.delta_d0 * (random_state.uniform() - 0.5)
                if s > self.d[i]:
                    self.d[i] *= delta
                else:
                    self.d[i] /= delta
                if random_state.uniform() < 0.5:
                    s1, s2 = s, self.d[i]
                else:
                    s1, s2 = self.d[i], s
            self.s1[i] = s1 if has_best else 0.0
            self.s2[i] = s2 if has_best else 0.0

    def as_dict(self) -> tp.Dict[str, tp.List[float]]:
        return {name: getattr(self, name).tolist() for name in ["mean", "s", "d", "s1", "s2"]}
