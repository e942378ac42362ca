# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import warnings
import typing as tp
import pytest
import numpy as np
import mvmo
from mvmo.common import testing
from mvmo.common import errors
from mvmo.functions import corefuncs
from . import mvmo as mvmolib
from . import base
from .test_utils import FixedUniform


class CounterFunction:
    def __init__(self, func: tp.Callable[[np.ndarray], float] = corefuncs.sphere) -> None:
        self.count = 0
        self.func = func

    def __call__(self, x: np.ndarray) -> float:
        self.count += 1
        return self.func(x)


def _make(dimension: int = 2, budget: tp.Optional[int] = None, seed: int = 12, **kwargs: tp.Any) -> mvmolib._MVMO:
    opt = mvmolib._MVMO(
        CounterFunction(), [-5.0] * dimension, [5.0] * dimension, budget=budget, **kwargs
    )
    opt.random_state = np.random.RandomState(seed)
    return opt


# # # # # schedules # # # # #


@testing.parametrized(
    expansion_start=(0.0, [0.7, 0.3], 0.5 * 1.3),
    contraction_start=(0.0, [0.2, 0.4], 1 + 0.5 * 0.6 * 0.25),
    expansion_end=(1.0, [0.9, 0.0], 20.0),
    contraction_middle=(0.5, [0.5, 0.0], 1 + 10.25 * 0.25),
)
def test_fitness_shaping_values(progress: float, draws: tp.List[float], expected: float) -> None:
    output = mvmolib.fitness_shaping(progress, 0.5, 20.0, FixedUniform(draws))  # type: ignore
    np.testing.assert_almost_equal(output, expected)


def test_fitness_shaping_power() -> None:
    output = mvmolib.fitness_shaping(0.5, 0.5, 20.0, FixedUniform([0.9, 0.0]), power=2.0)  # type: ignore
    np.testing.assert_almost_equal(output, 0.5 + 0.25 * 19.5)


@testing.parametrized(
    start=(0.0,),
    middle=(0.5,),
    end=(1.0,),
)
def test_fitness_shaping_ranges(progress: float) -> None:
    rng = np.random.RandomState(12)
    fs = 0.5 + progress * 19.5
    values = [mvmolib.fitness_shaping(progress, 0.5, 20.0, rng) for _ in range(200)]
    expansions = [v for v in values if fs <= v < 2 * fs]
    contractions = [v for v in values if 1 < v <= 1 + fs * 0.25]
    assert expansions and contractions
    assert len(expansions) + len(contractions) == len(values)


@testing.parametrized(
    start=(0.0, 2, 6),
    end=(1.0, 6, 6),
)
def test_mutation_count(progress: float, minimum: int, maximum: int) -> None:
    rng = np.random.RandomState(12)
    counts = {mvmolib.mutation_count(progress, 2, 6, 12, rng) for _ in range(200)}
    assert min(counts) >= minimum and max(counts) <= maximum, counts


@testing.parametrized(
    truncated_target=(0.3, 0.7, 3),  # target int(3.2) = 3
    start=(0.0, 0.5, 4),
    end=(1.0, 0.1, 6),
)
def test_mutation_count_values(progress: float, draw: float, expected: int) -> None:
    output = mvmolib.mutation_count(progress, 2, 6, 12, FixedUniform([draw]))  # type: ignore
    assert output == expected


def test_mutation_count_clipping() -> None:
    assert mvmolib.mutation_count(0.0, 20, 20, 3, FixedUniform([0.5])) == 3  # type: ignore
    assert mvmolib.mutation_count(0.0, 0, 0, 3, FixedUniform([0.5])) == 1  # type: ignore


# # # # # settings # # # # #


def test_default_settings() -> None:
    opt = _make(dimension=12)
    assert opt.budget == 600
    assert opt.num_init == 60
    assert opt.archive_size == 5
    assert (opt.m_init, opt.m_final) == (2, 6)
    assert (opt.fs_init, opt.fs_final, opt.delta_d0) == (0.5, 20.0, 0.25)
    small = _make(dimension=1)
    assert (small.budget, small.num_init, small.m_init, small.m_final) == (50, 5, 1, 1)


def test_configure() -> None:
    opt = _make(dimension=3)
    assert opt.configure(archive_size=8, budget=40) is opt
    assert opt.num_init == 15
    assert opt.archive.size == 8
    opt.configure(archive_size=20)
    assert opt.num_init == 20  # raised to the archive size when not explicitly set
    opt.configure(num_init=25, fs_final=10.0)
    assert (opt.num_init, opt.fs_final) == (25, 10.0)
    with pytest.raises(errors.MvmoValueError):
        opt.configure(num_init=10)  # smaller than archive size


@testing.parametrized(
    zero_archive=(dict(archive_size=0),),
    archive_above_init=(dict(num_init=3, archive_size=4),),
    too_many_mutations=(dict(m_init=4),),
    no_mutation=(dict(m_final=0),),
    bad_jitter=(dict(delta_d0=1.5),),
    negative_shaping=(dict(fs_init=-1.0),),
    bad_power=(dict(progress_power=0.0),),
    float_archive=(dict(archive_size=2.5),),
)
def test_configure_errors(settings: tp.Dict[str, tp.Any]) -> None:
    with pytest.raises(errors.MvmoValueError):
        _make(dimension=3, **settings)


@testing.parametrized(
    too_many_mutations=(dict(m_init=100),),
    zero_archive=(dict(archive_size=0),),
    archive_above_init=(dict(num_init=3),),
    float_archive=(dict(archive_size=2.5, fs_final=3.0),),
)
def test_rejected_configure_keeps_settings(settings: tp.Dict[str, tp.Any]) -> None:
    opt = _make(dimension=3, budget=60)
    before = {name: getattr(opt, name) for name in opt._SETTINGS + ("budget",)}
    with pytest.raises(errors.MvmoValueError):
        opt.configure(**settings)
    after = {name: getattr(opt, name) for name in opt._SETTINGS + ("budget",)}
    assert after == before
    assert opt.archive.size == opt.archive_size
    opt.configure(archive_size=4)  # implicit num_init is still derived from the dimension
    assert opt.num_init == 15
    opt.optimize()
    assert opt.num_eval == 60


def test_configure_unknown_and_late() -> None:
    opt = _make(dimension=2, budget=20)
    with pytest.raises(errors.MvmoValueError):
        opt.configure(blublu=12)
    opt.initialize()
    with pytest.raises(errors.MvmoRuntimeError):
        opt.configure(archive_size=3)


# # # # # optimization loop # # # # #


def test_budget_termination() -> None:
    opt = _make(dimension=3)
    func = opt.objective
    assert isinstance(func, CounterFunction)
    opt.optimize()
    assert func.count == 150
    assert opt.num_eval == 150
    assert len(opt.history) == 150
    assert opt.state == base.OptimizerState.DONE
    with pytest.raises(errors.MvmoRuntimeError):
        opt.step()


def test_states() -> None:
    opt = _make(dimension=2, budget=12)
    assert opt.state == base.OptimizerState.UNINITIALIZED
    assert not opt.best_x.size and opt.best_y == float("inf")
    with pytest.raises(errors.MvmoRuntimeError):
        opt.step()
    opt.initialize()
    assert opt.state == base.OptimizerState.ITERATING
    assert opt.num_eval == 10
    with pytest.raises(errors.MvmoRuntimeError):
        opt.initialize()
    opt.step()
    assert opt.state == base.OptimizerState.ITERATING
    opt.step()
    assert opt.state == base.OptimizerState.DONE


def test_invariants_along_the_run() -> None:
    opt = _make(dimension=4, budget=120)
    bests: tp.List[float] = []

    def check(optimizer: base.Optimizer, x: np.ndarray, loss: float) -> None:
        assert len(optimizer.history) == optimizer.num_eval
        np.testing.assert_almost_equal(optimizer.scale_back(optimizer.history.x[-1]), x)
        assert loss == optimizer.history.y[-1]
        assert np.all(optimizer.history.x[-1] >= 0) and np.all(optimizer.history.x[-1] <= 1)
        bests.append(optimizer.best_y)

    opt.register_callback("tell", check)
    opt.optimize()
    assert len(bests) == 120
    assert np.all(np.diff(bests) <= 0), "Best loss should never increase"
    np.testing.assert_equal(opt.best_y, np.min(opt.history.y))
    np.testing.assert_almost_equal(opt.best_x, opt.scale_back(opt.history.x[np.argmin(opt.history.y)]))


def test_archive_is_best_of_history() -> None:
    opt = _make(dimension=3, budget=80, archive_size=4)
    opt.initialize()
    while opt.state == base.OptimizerState.ITERATING:
        opt.step()
        # the archive was computed before the last evaluation
        previous = opt.history.y[:-1]
        np.testing.assert_array_equal(np.sort(opt.archive.y), np.sort(previous)[:4])
        assert np.all(opt.statistics.s1 >= 0) and np.all(opt.statistics.s2 >= 0)
        assert opt.fitness_shaping_factor > 0


def test_determinism() -> None:
    outputs = []
    for _ in range(2):
        opt = _make(dimension=5, budget=100, seed=24)
        opt.optimize()
        outputs.append(opt)
    np.testing.assert_array_equal(outputs[0].history.x, outputs[1].history.x)
    np.testing.assert_array_equal(outputs[0].history.y, outputs[1].history.y)
    np.testing.assert_array_equal(outputs[0].best_x, outputs[1].best_x)
    assert outputs[0].best_y == outputs[1].best_y
    other = _make(dimension=5, budget=100, seed=25)
    other.optimize()
    assert not np.array_equal(other.history.x, outputs[0].history.x)


def test_sphere_convergence() -> None:
    successes = 0
    for seed in range(20):
        opt = mvmo.optimizers.MVMO(corefuncs.sphere, [-5, -5], [5, 5], budget=200)
        opt.random_state = np.random.RandomState(seed)
        opt.optimize()
        successes += opt.best_y < 1e-2
    # the success rate is about 0.75 (13 out of these 20 seeds)
    assert successes >= 12, f"Only {successes} successes out of 20"


@testing.parametrized(**{name: (name,) for name in ["sphere", "ellipsoid", "rosenbrock", "styblinskitang"]})
def test_improves_on_random_initialization(name: str) -> None:
    func = corefuncs.registry[name]
    lower, upper = corefuncs.get_bounds(name, 4)
    opt = mvmolib._MVMO(func, lower, upper, budget=400)
    opt.random_state = np.random.RandomState(12)
    opt.optimize()
    assert opt.best_y < np.min(opt.history.y[: opt.num_init])
    assert np.all(opt.best_x >= lower) and np.all(opt.best_x <= upper)


# # # # # guesses and losses # # # # #


def test_initial_guesses() -> None:
    opt = _make(dimension=2, budget=30)
    guesses = np.array([[1.0, 2.0], [-5.0, 5.0]])
    opt.optimize(guesses)
    np.testing.assert_array_almost_equal(opt.history.x[:2], [[0.6, 0.7], [0.0, 1.0]])
    assert opt.num_eval == 30


def test_single_guess() -> None:
    opt = _make(dimension=2, budget=20)
    opt.initialize(np.zeros(2))
    np.testing.assert_array_almost_equal(opt.history.x[0], [0.5, 0.5])
    assert opt.best_y == 0.0


def test_many_guesses() -> None:
    opt = _make(dimension=1, budget=10)
    opt.initialize(np.linspace(-5, 5, 8)[:, None])
    assert opt.num_eval == 8  # more guesses than num_init
    opt = _make(dimension=1, budget=10)
    with pytest.raises(errors.MvmoValueError):
        opt.initialize(np.linspace(-5, 5, 12)[:, None])


def test_out_of_bounds_guesses() -> None:
    opt = _make(dimension=2, budget=20)
    with pytest.warns(errors.OutOfBoundsGuessWarning):
        opt.initialize([[10.0, -10.0]])
    np.testing.assert_array_equal(opt.history.x[0], [1.0, 0.0])
    np.testing.assert_array_equal(opt.best_x.shape, (2,))


@testing.parametrized(
    wrong_dimension=([[1.0, 2.0, 3.0]],),
    tensor=(np.zeros((1, 2, 2)),),
)
def test_wrong_guesses(guess: tp.Any) -> None:
    opt = _make(dimension=2, budget=20)
    with pytest.raises(errors.MvmoValueError):
        opt.initialize(guess)
    assert opt.state == base.OptimizerState.UNINITIALIZED


def test_budget_smaller_than_initialization() -> None:
    with pytest.raises(errors.MvmoValueError):
        _make(dimension=2, budget=5)
    opt = _make(dimension=2, budget=12)
    with pytest.raises(errors.MvmoValueError):
        opt.configure(budget=8)
    assert opt.budget == 12
    opt = _make(dimension=1, budget=6)
    with pytest.raises(errors.MvmoValueError):
        opt.initialize(np.zeros((7, 1)))  # more guesses than the budget


def _nan_sometimes(x: np.ndarray) -> float:
    return float("nan") if x[0] > 0 else float(x.dot(x))


def test_non_finite_losses() -> None:
    opt = mvmolib._MVMO(_nan_sometimes, [-1, -1], [1, 1], budget=40)
    opt.random_state = np.random.RandomState(12)
    with pytest.warns(errors.LossTooLargeWarning):
        opt.optimize()
    assert np.all(np.isfinite(opt.history.y))
    assert np.max(opt.history.y) == base.MAX_LOSS
    assert np.isfinite(opt.best_y) and opt.best_x[0] <= 0


def test_infinite_losses_only() -> None:
    opt = mvmolib._MVMO(lambda x: float("inf"), [0], [1], budget=10)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=errors.LossTooLargeWarning)
        opt.optimize()
    assert opt.best_y == base.MAX_LOSS
    assert opt.num_eval == 10


def test_random_state_replacement() -> None:
    opt = _make(dimension=2, budget=30)
    opt.initialize()
    rng = np.random.RandomState(3)
    opt.random_state = rng
    assert opt._mutator is not None and opt._mutator.random_state is rng
    opt.resume()
    assert opt.num_eval == 30


def test_guesses_on_the_bounds() -> None:
    lower, upper = [-0.3, 1e-3, -7.1], [0.7, 2.9, 3.3]
    opt = mvmolib._MVMO(CounterFunction(), lower, upper, budget=40)
    opt.random_state = np.random.RandomState(12)
    with warnings.catch_warnings():
        warnings.simplefilter("error", category=errors.OutOfBoundsGuessWarning)
        opt.initialize([upper, lower])
    assert np.all(opt.history.x >= 0) and np.all(opt.history.x <= 1)
    np.testing.assert_array_almost_equal(opt.history.x[:2], [[1, 1, 1], [0, 0, 0]])
