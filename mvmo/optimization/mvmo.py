# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import warnings
import numpy as np
import mvmo.common.typing as tp
from mvmo.common import errors
from . import base
from . import archive as _archive
from . import mutations


logger = logging.getLogger(__name__)


# # # # # adaptive schedules # # # # #


def fitness_shaping(
    progress: float,
    fs_init: float,
    fs_final: float,
    random_state: np.random.RandomState,
    power: float = 1.0,
) -> float:
    """Randomized fitness shaping factor, growing from fs_init to fs_final with the progress.

    Parameters
    ----------
    progress: float
        fraction of the budget already used, in [0, 1]
    fs_init: float
        value at the beginning of the optimization
    fs_final: float
        value at the end of the optimization
    random_state: np.random.RandomState
        source of the random draws
    power: float
        exponent applied to the progress (1 for linear schedule, 2 for quadratic)

    Returns
    -------
    float
        with probability 1/2 an expansion fs * (1 + U), otherwise a contraction
        1 + fs * (1 - U) / 4, where fs is the interpolated value
    """
    fs_star = fs_init + progress ** power * (fs_final - fs_init)
    if random_state.uniform() > 0.5:
        return fs_star * (1 + random_state.uniform())  # type: ignore
    return 1.0 + fs_star * (1 - random_state.uniform()) * 0.25  # type: ignore


def mutation_count(
    progress: float,
    m_init: int,
    m_final: int,
    dimension: int,
    random_state: np.random.RandomState,
    power: float = 1.0,
) -> int:
    """Randomized number of dimensions to mutate, drawn between m_final and an integer target
    interpolated from m_init to m_final with the progress. The result is clipped to [1, dimension].
    """
    m_star = int(m_init - progress ** power * (m_init - m_final))
    m = int(m_final + random_state.uniform() * (m_star - m_final))
    return min(dimension, max(1, m))


# # # # # optimizer # # # # #


class _MVMO(base.Optimizer):
    """Mean-Variance Mapping Optimization.

    A single-solution algorithm: at each step, a few coordinates of the best point
    are resampled through a mapping function shaped by the mean and variance
    of the best points found so far (the elite archive).

    Parameters
    ----------
    objective: callable
        function to minimize
    lower: array-like
        lower bounds
    upper: array-like
        upper bounds
    budget: int/None
        number of allowed evaluations (defaults to 50 x dimension)
    num_init: int/None
        size of the initial random population (defaults to 5 x dimension, and at least archive_size)
    archive_size: int
        number of elite points used for the statistics
    fs_init: float
        initial fitness shaping factor
    fs_final: float
        final fitness shaping factor
    m_init: int/None
        number of mutated dimensions at the beginning (defaults to max(1, dimension / 6))
    m_final: int/None
        number of mutated dimensions at the end (defaults to max(1, dimension / 2))
    delta_d0: float
        amplitude of the random jitter of the dynamic range
    progress_power: float
        exponent of the progress in the schedules (1: linear, 2: quadratic)
    boundary_snap: bool
        whether to snap values close to the bounds onto the bounds (with probability 0.2)
    """

    _SETTINGS = (
        "num_init",
        "archive_size",
        "fs_init",
        "fs_final",
        "m_init",
        "m_final",
        "delta_d0",
        "progress_power",
        "boundary_snap",
    )

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        objective: tp.Objective,
        lower: tp.ArrayLike,
        upper: tp.ArrayLike,
        budget: tp.Optional[int] = None,
        *,
        num_init: tp.Optional[int] = None,
        archive_size: int = 5,
        fs_init: float = 0.5,
        fs_final: float = 20.0,
        m_init: tp.Optional[int] = None,
        m_final: tp.Optional[int] = None,
        delta_d0: float = 0.25,
        progress_power: float = 1.0,
        boundary_snap: bool = True,
    ) -> None:
        super().__init__(objective, lower, upper, budget=budget)
        dim = self.dimension
        if self.budget is None:
            self.budget = 50 * dim
        self.archive_size = archive_size
        self.num_init = 5 * dim
        self.fs_init = fs_init
        self.fs_final = fs_final
        self.m_init = int(max(1.0, dim / 6.0))
        self.m_final = int(max(1.0, dim / 2.0))
        self.delta_d0 = delta_d0
        self.progress_power = progress_power
        self.boundary_snap = boundary_snap
        self._explicit_num_init = False
        self._mutator: tp.Optional[mutations.Mutator] = None
        self._fshape = 0.0
        self.archive: _archive.EliteArchive
        self.statistics: _archive.DimensionStatistics
        self.configure(num_init=num_init, m_init=m_init, m_final=m_final)

    def configure(self, **settings: tp.Any) -> "_MVMO":
        """Overrides settings of an optimizer which has not started yet.
        Settings provided as None are left unchanged.

        Raises
        ------
        MvmoValueError
            if a setting is unknown or the resulting settings are inconsistent
        MvmoRuntimeError
            if the optimization has already started
        """
        if self.state != base.OptimizerState.UNINITIALIZED:
            raise errors.MvmoRuntimeError(f"Cannot configure {self.name} once optimization has started")
        unknown = set(settings) - set(self._SETTINGS + ("budget",))
        if unknown:
            raise errors.MvmoValueError(f"Unknown settings {sorted(unknown)}, available: {self._SETTINGS}")
        settings = {x: y for x, y in settings.items() if y is not None}
        previous = {name: getattr(self, name, None) for name in self._SETTINGS + ("budget", "_explicit_num_init")}
        if "num_init" in settings:
            self._explicit_num_init = True
        for name, value in settings.items():
            setattr(self, name, value)
        if not self._explicit_num_init:
            self.num_init = max(5 * self.dimension, self.archive_size)
        try:
            self._check_settings()
        except errors.MvmoValueError:
            for name, value in previous.items():
                setattr(self, name, value)
            raise
        # archive and statistics depend on the settings
        self.archive = _archive.EliteArchive(self.dimension, self.archive_size)
        self.statistics = _archive.DimensionStatistics(self.dimension, self.delta_d0)
        return self

    def _check_settings(self) -> None:
        dim = self.dimension
        checks = [
            (self.budget is None or self.budget > 0, f"budget must be positive (got {self.budget})"),
            (
                self.budget is None or self.budget >= self.num_init,
                f"budget ({self.budget}) must be at least num_init ({self.num_init})",
            ),
            (self.archive_size >= 1, f"archive_size must be at least 1 (got {self.archive_size})"),
            (
                self.archive_size <= self.num_init,
                f"archive_size ({self.archive_size}) must not exceed num_init ({self.num_init})",
            ),
            (1 <= self.m_init <= dim, f"m_init must be in [1, {dim}] (got {self.m_init})"),
            (1 <= self.m_final <= dim, f"m_final must be in [1, {dim}] (got {self.m_final})"),
            (self.fs_init > 0 and self.fs_final > 0, "fitness shaping factors must be positive"),
            (0 <= self.delta_d0 < 1, f"delta_d0 must be in [0, 1) (got {self.delta_d0})"),
            (self.progress_power > 0, f"progress_power must be positive (got {self.progress_power})"),
        ]
        for ok, message in checks:
            if not ok:
                raise errors.MvmoValueError(message)
        for name in ["archive_size", "num_init", "m_init", "m_final"]:
            value = getattr(self, name)
            if int(value) != value:
                raise errors.MvmoValueError(f"{name} must be an integer (got {value})")
            setattr(self, name, int(value))

    def _set_random_state(self, random_state: np.random.RandomState) -> None:
        super()._set_random_state(random_state)
        if getattr(self, "_mutator", None) is not None:
            self._mutator.random_state = random_state  # type: ignore

    @property
    def progress(self) -> float:
        """float: fraction of the budget already used"""
        assert self.budget is not None
        return self.num_eval / self.budget

    @property
    def fitness_shaping_factor(self) -> float:
        """float: fitness shaping factor used at the last archive update"""
        return self._fshape

    def _internal_initialize(self, guesses: tp.Optional[np.ndarray]) -> None:
        assert self.budget is not None
        num_init = max(self.num_init, self.archive_size)
        if guesses is not None:
            num_init = max(num_init, guesses.shape[0])
        if num_init > self.budget:
            raise errors.MvmoValueError(
                f"Budget ({self.budget}) is too small for the initial population ({num_init})"
            )
        self._mutator = mutations.Mutator(self.random_state, boundary_snap=self.boundary_snap)
        init_x = self.random_state.uniform(0, 1, size=(num_init, self.dimension))
        if guesses is not None:
            scaled = np.array([self.scale(g) for g in guesses])
            if np.any(guesses < self.lower) or np.any(guesses > self.upper):
                warnings.warn(
                    "Some initial guesses are out of bounds, they are clipped to the bounds.",
                    errors.OutOfBoundsGuessWarning,
                )
            init_x[: scaled.shape[0]] = np.clip(scaled, 0, 1)
        self.evaluate_batch(init_x)

    def _update_archive(self) -> None:
        assert self.num_eval == len(self.history), "Evaluation count and history size do not match"
        self.archive.update(self.history)
        self._fshape = fitness_shaping(
            self.progress, self.fs_init, self.fs_final, self.random_state, power=self.progress_power
        )
        self.statistics.update(
            self.archive.x, self._fshape, self.random_state, has_best=bool(np.isfinite(self.best_y))
        )

    def _internal_step(self) -> None:
        assert self._mutator is not None
        if not np.isfinite(self._best_y):
            self._best_x = self.scale_back(self.history.x[0])
        self._update_archive()
        m = mutation_count(
            self.progress, self.m_init, self.m_final, self.dimension, self.random_state, power=self.progress_power
        )
        indices = np.sort(self.random_state.choice(self.dimension, size=m, replace=False))
        candidate = self.scale(self._best_x)
        stats = self.statistics
        logger.debug(
            "Eval: %s, FS: %s, best loss: %s, statistics: %s",
            self.num_eval,
            self._fshape,
            self._best_y,
            stats.as_dict(),
        )
        for idx in indices:
            candidate[idx] = self._mutator.mutate(stats.mean[idx], stats.s1[idx], stats.s2[idx])
            logger.debug(
                "idx: %s, xbar: %s, s1: %s, s2: %s, new value: %s",
                idx,
                stats.mean[idx],
                stats.s1[idx],
                stats.s2[idx],
                candidate[idx],
            )
        loss = self.evaluate(candidate)
        logger.debug("New loss: %s", loss)


class ParametrizedMVMO(base.ConfiguredOptimizer):
    """Mean-Variance Mapping Optimization, with configurable settings.

    Parameters
    ----------
    num_init: int/None
        size of the initial random population (defaults to 5 x dimension)
    archive_size: int
        number of elite points used for the statistics
    fs_init: float
        initial fitness shaping factor
    fs_final: float
        final fitness shaping factor
    m_init: int/None
        number of mutated dimensions at the beginning (defaults to max(1, dimension / 6))
    m_final: int/None
        number of mutated dimensions at the end (defaults to max(1, dimension / 2))
    delta_d0: float
        amplitude of the random jitter of the dynamic range
    progress_power: float
        exponent of the progress in the schedules (1: linear schedules,
        2: quadratic schedules as in the first publication of the algorithm)
    boundary_snap: bool
        whether to snap values close to the bounds onto the bounds (with probability 0.2)
    """

    # pylint: disable=unused-argument
    def __init__(
        self,
        *,
        num_init: tp.Optional[int] = None,
        archive_size: int = 5,
        fs_init: float = 0.5,
        fs_final: float = 20.0,
        m_init: tp.Optional[int] = None,
        m_final: tp.Optional[int] = None,
        delta_d0: float = 0.25,
        progress_power: float = 1.0,
        boundary_snap: bool = True,
    ) -> None:
        self._check_dimension = max(
            [self._check_dimension] + [m for m in (m_init, m_final) if m is not None and m > 0]
        )
        super().__init__(_MVMO, locals())
