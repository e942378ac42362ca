# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import enum
import pickle
import logging
import warnings
from pathlib import Path
from numbers import Real
import numpy as np
import mvmo.common.typing as tp
from mvmo.common import tools as mvtools
from mvmo.common import errors
from mvmo.common.decorators import Registry
from mvmo.parametrization import transforms
from . import utils


logger = logging.getLogger(__name__)
OptCls = tp.Union["ConfiguredOptimizer", tp.Type["Optimizer"]]
registry: Registry[OptCls] = Registry()
_OptimCallBack = tp.Union[
    tp.Callable[["Optimizer", np.ndarray, float], None], tp.Callable[["Optimizer"], None]
]
X = tp.TypeVar("X", bound="Optimizer")
# losses which are not below this threshold (including NaN and infinite values) are clipped to it.
# sys.float_info.max would lead to numerical problems in later transformations
MAX_LOSS = 5.0e20


class OptimizerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    DONE = "done"


def load(cls: tp.Type[X], filepath: tp.PathLike) -> X:
    """Loads a pickle file and checks that it contains an optimizer of the given class."""
    filepath = Path(filepath)
    with filepath.open("rb") as f:
        opt = pickle.load(f)
    assert isinstance(opt, cls), f"You should only load {cls} with this method (found {type(opt)})"
    return opt


class Optimizer:  # pylint: disable=too-many-instance-attributes
    """Sequential box-constrained minimization framework.

    The optimizer works on an internal representation of the box
    :code:`[lower, upper]` as the unit cube :code:`[0, 1]^d`. The objective function is
    only ever called in the original space, through :code:`evaluate` which is
    the only way evaluations get recorded.

    The run goes through the states of :code:`OptimizerState`:

    - :code:`initialize(guess)` evaluates an initial batch of points (UNINITIALIZED -> INITIALIZING -> ITERATING),
    - :code:`step()` evaluates one new candidate (ITERATING, -> DONE once the budget is reached),
    - :code:`optimize(guess)` does both until the budget is exhausted.

    Subclasses must implement :code:`_internal_initialize` and :code:`_internal_step`.

    Parameters
    ----------
    objective: callable
        function to minimize, taking a 1d numpy array and returning a float
    lower: array-like
        lower bounds of the domain
    upper: array-like
        upper bounds of the domain (strictly greater than the lower bounds)
    budget: int/None
        number of allowed evaluations
    """

    def __init__(
        self, objective: tp.Objective, lower: tp.ArrayLike, upper: tp.ArrayLike, budget: tp.Optional[int] = None
    ) -> None:
        if not callable(objective):
            raise errors.MvmoTypeError(f"Objective must be callable, got {objective!r}")
        self.objective = objective
        self.scaling = transforms.UnitScaling(lower, upper)
        self.budget = budget
        self.name = self.__class__.__name__  # printed name in repr
        self.state = OptimizerState.UNINITIALIZED
        # record of all evaluations (normalized space), and best point found (original space)
        self.history = utils.History(self.dimension)
        self._best_x = np.zeros(0)
        self._best_y = float("inf")
        self._num_eval = 0
        self._random_state: tp.Optional[np.random.RandomState] = None  # lazy initialization
        self._callbacks: tp.Dict[str, tp.List[tp.Any]] = {}

    # %% random state

    @property
    def random_state(self) -> np.random.RandomState:
        """np.random.RandomState: the unique source of randomness of the optimizer.
        It can be seeded (:code:`optimizer.random_state.seed(12)`) or replaced.
        """
        if self._random_state is None:
            seed = np.random.randint(2 ** 32, dtype=np.uint32)
            self._set_random_state(np.random.RandomState(seed))
        assert self._random_state is not None
        return self._random_state

    @random_state.setter
    def random_state(self, random_state: np.random.RandomState) -> None:
        self._set_random_state(random_state)

    def _set_random_state(self, random_state: np.random.RandomState) -> None:
        self._random_state = random_state

    # %% properties

    @property
    def dimension(self) -> int:
        """int: Dimension of the optimization space."""
        return self.scaling.dimension

    @property
    def lower(self) -> np.ndarray:
        return self.scaling.lower

    @property
    def upper(self) -> np.ndarray:
        return self.scaling.upper

    @property
    def num_eval(self) -> int:
        """int: Number of evaluations performed so far (equal to the size of the history)."""
        return self._num_eval

    @property
    def best_x(self) -> np.ndarray:
        """np.ndarray: best point found so far, in the original space (empty before any evaluation)"""
        return np.array(self._best_x, copy=True)

    @property
    def best_y(self) -> float:
        """float: best loss found so far (inf before any evaluation)"""
        return self._best_y

    def scale(self, x: tp.ArrayLike) -> np.ndarray:
        """Maps a point from [lower, upper] to [0, 1]^d"""
        return self.scaling.forward(np.asarray(x, dtype=float))

    def scale_back(self, x: tp.ArrayLike) -> np.ndarray:
        """Maps a point from [0, 1]^d to [lower, upper]"""
        return self.scaling.backward(np.asarray(x, dtype=float))

    def __repr__(self) -> str:
        return f"Instance of {self.name}(dimension={self.dimension}, budget={self.budget})"

    # %% callbacks and pickling

    def register_callback(self, name: str, callback: _OptimCallBack) -> None:
        """Add a callback method called either before each iteration ("ask", called
        with the optimizer as only argument) or after each evaluation ("tell", called with
        the optimizer, the evaluated point in original space, and its loss).
        This can be useful for custom logging or early stopping.

        Parameters
        ----------
        name: str
            name of the method to register the callback for (either :code:`ask` or :code:`tell`)
        callback: callable
            a callable taking the optimizer as first parameter
        """
        assert name in ["ask", "tell"], f'Only "ask" and "tell" methods can have callbacks (not {name})'
        self._callbacks.setdefault(name, []).append(callback)

    def remove_all_callbacks(self) -> None:
        """Removes all registered callables"""
        self._callbacks = {}

    def dump(self, filepath: tp.PathLike) -> None:
        """Pickles the optimizer into a file."""
        filepath = Path(filepath)
        with filepath.open("wb") as f:
            pickle.dump(self, f)

    @classmethod
    def load(cls: tp.Type[X], filepath: tp.PathLike) -> X:
        """Loads a pickle and checks that the class is correct."""
        return load(cls, filepath)

    # %% evaluations

    def _check_loss(self, loss: tp.Any) -> float:
        if isinstance(loss, np.ndarray) and loss.size == 1:
            loss = loss.item()
        elif isinstance(loss, (tuple, list)) and len(loss) == 1:
            loss = loss[0]
        if not isinstance(loss, (Real, float, np.floating)):
            raise errors.MvmoTypeError(
                f"Objective function must return a float, but returned: {loss} (type: {type(loss)})."
            )
        loss = float(loss)
        # non-finite values are considered as very bad (but still comparable) values
        if not loss < MAX_LOSS:  # pylint: disable=unneeded-not
            warnings.warn(
                f"Clipping very high value {loss} (rescale the objective function?).", errors.LossTooLargeWarning
            )
            loss = MAX_LOSS
        return loss

    def evaluate(self, x: tp.ArrayLike) -> float:
        """Evaluates the objective function on a point of the normalized space,
        records the evaluation in the history and updates the best point.

        Parameters
        ----------
        x: array-like
            point in normalized space [0, 1]^d

        Returns
        -------
        float
            the (possibly clipped) loss
        """
        x = np.array(x, dtype=float, copy=True)
        original = self.scale_back(x)
        loss = self._check_loss(self.objective(np.array(original, copy=True)))
        self._num_eval += 1
        self.history.append(x, loss)
        assert len(self.history) == self._num_eval
        if loss < self._best_y:
            self._best_x = original
            self._best_y = loss
        for callback in self._callbacks.get("tell", []):
            callback(self, original, loss)
        return loss

    def evaluate_batch(self, xs: tp.MatrixLike) -> np.ndarray:
        """Evaluates each row of a matrix of normalized points, in order"""
        return np.array([self.evaluate(x) for x in np.atleast_2d(np.asarray(xs, dtype=float))])

    # %% optimization loop

    def initialize(self, guess: tp.Optional[tp.MatrixLike] = None) -> None:
        """Evaluates the initial batch of points, optionally seeded with guesses.

        Parameters
        ----------
        guess: array-like/None
            points in the original space, one per row (a 1d array is a single point)
        """
        if self.state != OptimizerState.UNINITIALIZED:
            raise errors.MvmoRuntimeError(f"{self.name} can only be initialized once (state: {self.state.name})")
        if self.budget is None:
            raise errors.MvmoValueError("Budget must be specified")
        guesses: tp.Optional[np.ndarray] = None
        if guess is not None:
            guesses = np.atleast_2d(np.asarray(guess, dtype=float))
            if guesses.ndim != 2 or guesses.shape[1] != self.dimension:
                raise errors.MvmoValueError(
                    f"Guesses must have shape (num_guesses, {self.dimension}), got {guesses.shape}"
                )
        self.state = OptimizerState.INITIALIZING
        logger.debug("Initializing %s", self)
        self._internal_initialize(guesses)
        self.state = OptimizerState.ITERATING
        self._check_done()

    def step(self) -> None:
        """Evaluates one new candidate"""
        if self.state != OptimizerState.ITERATING:
            raise errors.MvmoRuntimeError(f"Cannot step {self.name} in state {self.state.name}")
        self._internal_step()
        self._check_done()

    def _check_done(self) -> None:
        assert self.budget is not None
        if self._num_eval >= self.budget:
            self.state = OptimizerState.DONE
            logger.debug("%s reached its budget with best loss %s", self.name, self._best_y)

    def optimize(self, guess: tp.Optional[tp.MatrixLike] = None) -> np.ndarray:
        """Minimization procedure, running until the budget is exhausted

        Parameters
        ----------
        guess: array-like/None
            initial guesses in the original space, one per row, used to seed the initial batch

        Returns
        -------
        np.ndarray
            the best point found, in the original space
        """
        self.initialize(guess)
        return self.resume()

    def resume(self) -> np.ndarray:
        """Continues the optimization until the budget is exhausted or an "ask" callback
        raises :code:`MvmoEarlyStopping`.
        """
        while self.state == OptimizerState.ITERATING:
            try:
                for callback in self._callbacks.get("ask", []):
                    callback(self)
            except errors.MvmoEarlyStopping as e:
                logger.debug("Stopping %s after %s evaluations: %s", self.name, self._num_eval, e)
                break
            self.step()
        return self.best_x

    # Internal methods which must be overloaded
    def _internal_initialize(self, guesses: tp.Optional[np.ndarray]) -> None:
        raise NotImplementedError

    def _internal_step(self) -> None:
        raise NotImplementedError


class ConfiguredOptimizer:
    """Creates optimizer-like instances with configuration.

    Parameters
    ----------
    OptimizerClass: type
        class of the optimizer to configure
    config: dict
        dictionnary of all the configurations

    Note
    ----
    This provides a default repr which can be bypassed through set_name
    """

    # dimension used to instantiate a throwaway optimizer for checking the configuration
    _check_dimension = 4

    def __init__(self, OptimizerClass: tp.Type[Optimizer], config: tp.Dict[str, tp.Any]) -> None:
        self._OptimizerClass = OptimizerClass
        config.pop("self", None)  # self comes from "locals()"
        config.pop("__class__", None)  # self comes from "locals()"
        self._config = config
        diff = mvtools.different_from_defaults(instance=self, instance_dict=config, check_mismatches=True)
        params = ", ".join(f"{x}={y!r}" for x, y in sorted(diff.items()))
        self.name = f"{self.__class__.__name__}({params})"
        # try instantiating for init checks
        dim = self._check_dimension
        self(_zero, np.zeros(dim), np.ones(dim))

    def config(self) -> tp.Dict[str, tp.Any]:
        return dict(self._config)

    def __call__(
        self, objective: tp.Objective, lower: tp.ArrayLike, upper: tp.ArrayLike, budget: tp.Optional[int] = None
    ) -> Optimizer:
        """Creates an optimizer for the objective function on the box [lower, upper]

        Parameters
        ----------
        objective: callable
            function to minimize
        lower: array-like
            lower bounds
        upper: array-like
            upper bounds
        budget: int/None
            number of allowed evaluations
        """
        run = self._OptimizerClass(objective, lower, upper, budget=budget, **self._config)  # type: ignore
        run.name = self.name
        # hacky but convenient to have around:
        run._configured_optimizer = self  # type: ignore
        return run

    def __repr__(self) -> str:
        return self.name

    def set_name(self, name: str, register: bool = False) -> "ConfiguredOptimizer":
        """Set a new representation for the instance"""
        self.name = name
        if register:
            registry.register_name(name, self)
        return self

    def load(self, filepath: tp.PathLike) -> Optimizer:
        """Loads a pickle and checks that it is an Optimizer."""
        return self._OptimizerClass.load(filepath)

    def __eq__(self, other: tp.Any) -> tp.Any:
        if self.__class__ == other.__class__:
            if self._config == other._config:
                return True
        return False


def _zero(x: np.ndarray) -> float:  # pylint: disable=unused-argument
    return 0.0
