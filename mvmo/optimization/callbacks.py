# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import json
import time
import warnings
import datetime
import logging
from pathlib import Path
import numpy as np
import mvmo.common.typing as tp
from mvmo.common import errors
from . import base

global_logger = logging.getLogger(__name__)


class OptimizationPrinter:
    """Printer to register as "tell" callback in an optimizer, for printing
    best point regularly.

    Parameters
    ----------
    print_interval_evals: int
        max number of evaluation before performing another print
    print_interval_seconds: float
        max number of seconds before performing another print
    """

    def __init__(self, print_interval_evals: int = 1, print_interval_seconds: float = 60.0) -> None:
        assert print_interval_evals > 0
        assert print_interval_seconds > 0
        self._print_interval_evals = int(print_interval_evals)
        self._print_interval_seconds = print_interval_seconds
        self._next_eval = self._print_interval_evals
        self._next_time = time.time() + print_interval_seconds

    def __call__(self, optimizer: base.Optimizer, *args: tp.Any, **kwargs: tp.Any) -> None:
        if time.time() >= self._next_time or optimizer.num_eval >= self._next_eval:
            self._next_time = time.time() + self._print_interval_seconds
            self._next_eval = optimizer.num_eval + self._print_interval_evals
            print(f"After {optimizer.num_eval}, best point is {optimizer.best_x} with loss {optimizer.best_y}")


class OptimizationLogger:
    """Logger to register as "tell" callback in an optimizer, for logging
    best point regularly.

    Parameters
    ----------
    logger:
        given logger that callback will use to log
    log_level:
        log level that logger will write to
    log_interval_evals: int
        max number of evaluation before performing another log
    log_interval_seconds:
        max number of seconds before performing another log
    """

    def __init__(
        self,
        *,
        logger: logging.Logger = global_logger,
        log_level: int = logging.INFO,
        log_interval_evals: int = 1,
        log_interval_seconds: float = 60.0,
    ) -> None:
        assert log_interval_evals > 0
        assert log_interval_seconds > 0
        self._logger = logger
        self._log_level = log_level
        self._log_interval_evals = int(log_interval_evals)
        self._log_interval_seconds = log_interval_seconds
        self._next_eval = self._log_interval_evals
        self._next_time = time.time() + log_interval_seconds

    def __call__(self, optimizer: base.Optimizer, *args: tp.Any, **kwargs: tp.Any) -> None:
        if time.time() >= self._next_time or optimizer.num_eval >= self._next_eval:
            self._next_time = time.time() + self._log_interval_seconds
            self._next_eval = optimizer.num_eval + self._log_interval_evals
            self._logger.log(
                self._log_level,
                "After %s, best point is %s with loss %s",
                optimizer.num_eval,
                optimizer.best_x,
                optimizer.best_y,
            )


class ParametersLogger:
    """Logs evaluations and run information into a file (one json line per
    evaluation) during optimization.

    Parameters
    ----------
    filepath: str or pathlib.Path
        the path to dump data to
    append: bool
        whether to append the file (otherwise it replaces it)

    Example
    -------

    .. code-block:: python

        logger = ParametersLogger(filepath)
        optimizer.register_callback("tell",  logger)
        optimizer.optimize()
        list_of_dict_of_data = logger.load()

    Note
    ----
    Arrays are converted to lists
    """

    def __init__(self, filepath: tp.PathLike, append: bool = True) -> None:
        self._session = datetime.datetime.now().strftime("%y-%m-%d %H:%M:%S")
        self._filepath = Path(filepath)
        if self._filepath.exists() and not append:
            self._filepath.unlink()
        self._filepath.parent.mkdir(exist_ok=True, parents=True)

    def __call__(self, optimizer: base.Optimizer, x: np.ndarray, loss: tp.FloatLoss) -> None:
        data: tp.Dict[str, tp.Any] = {
            "#optimizer": optimizer.name,
            "#session": self._session,
            "#state": optimizer.state.value,
            "#num-eval": optimizer.num_eval,
            "#loss": loss,
            "#best-loss": optimizer.best_y,
            "x": np.asarray(x).tolist(),
        }
        if hasattr(optimizer, "_configured_optimizer"):
            configopt = optimizer._configured_optimizer  # type: ignore
            if isinstance(configopt, base.ConfiguredOptimizer):
                data.update({"#optimizer#" + key: str(val) for key, val in configopt.config().items()})
        try:  # avoid bugging as much as possible
            with self._filepath.open("a") as f:
                f.write(json.dumps(data) + "\n")
        except Exception as e:  # pylint: disable=broad-except
            warnings.warn(f"Failing to json data: {e}")

    def load(self) -> tp.List[tp.Dict[str, tp.Any]]:
        """Loads data from the log file"""
        data: tp.List[tp.Dict[str, tp.Any]] = []
        if self._filepath.exists():
            with self._filepath.open("r") as f:
                for line in f.readlines():
                    data.append(json.loads(line))
        return data

    def load_flattened(self, max_list_elements: int = 24) -> tp.List[tp.Dict[str, tp.Any]]:
        """Loads data from the log file, and splits lists (arrays) into multiple arguments

        Parameters
        ----------
        max_list_elements: int
            Maximum number of elements displayed from the array, each element is given a
            unique id of type list_name#i0_i1_...
        """
        data = self.load()
        flat_data: tp.List[tp.Dict[str, tp.Any]] = []
        for element in data:
            list_keys = {key for key, val in element.items() if isinstance(val, list)}
            flat_data.append({key: val for key, val in element.items() if key not in list_keys})
            for key in list_keys:
                for k, (indices, value) in enumerate(np.ndenumerate(element[key])):
                    if k >= max_list_elements:
                        break
                    flat_data[-1][key + "#" + "_".join(str(i) for i in indices)] = value
        return flat_data


class OptimizerDump:
    """Dumps the optimizer to a pickle file at every call.

    Parameters
    ----------
    filepath: str or Path
        path to the pickle file
    """

    def __init__(self, filepath: tp.PathLike) -> None:
        self._filepath = filepath

    def __call__(self, opt: base.Optimizer, *args: tp.Any, **kwargs: tp.Any) -> None:
        opt.dump(self._filepath)


class ProgressBar:
    """Progress bar to register as "tell" callback in an optimizer"""

    def __init__(self) -> None:
        self._progress_bar: tp.Any = None
        self._current = 0

    def __call__(self, optimizer: base.Optimizer, *args: tp.Any, **kwargs: tp.Any) -> None:
        if self._progress_bar is None:
            # pylint: disable=import-outside-toplevel
            try:
                from tqdm import tqdm  # Inline import to avoid additional dependency
            except ImportError as e:
                raise ImportError(
                    f"{self.__class__.__name__} requires tqdm which is not installed by default "
                    "(pip install tqdm)"
                ) from e
            self._progress_bar = tqdm()
            self._progress_bar.total = optimizer.budget
            self._progress_bar.update(self._current)
        self._progress_bar.update(1)
        self._current += 1

    def __getstate__(self) -> tp.Dict[str, tp.Any]:
        """Used for pickling (tqdm is not picklable)"""
        state = dict(self.__dict__)
        state["_progress_bar"] = None
        return state


class EarlyStopping:
    """Callback for stopping the :code:`optimize` method before the budget is
    fully used.

    Parameters
    ----------
    stopping_criterion: func(optimizer) -> bool
        function that takes the current optimizer as input and returns True
        if the optimization must be stopped

    Note
    ----
    This callback must be registered on the "ask" method only.

    Example
    -------
    In the following code, the :code:`optimize` method will be stopped after 30 evaluations

    >>> early_stopping = mvmo.callbacks.EarlyStopping(lambda opt: opt.num_eval >= 30)
    >>> optimizer.register_callback("ask", early_stopping)
    >>> optimizer.optimize()
    """

    def __init__(self, stopping_criterion: tp.Callable[[base.Optimizer], bool]) -> None:
        self.stopping_criterion = stopping_criterion

    def __call__(self, optimizer: base.Optimizer, *args: tp.Any, **kwargs: tp.Any) -> None:
        if args or kwargs:
            raise errors.MvmoRuntimeError("EarlyStopping must be registered on ask method")
        if self.stopping_criterion(optimizer):
            raise errors.MvmoEarlyStopping("Early stopping criterion is reached")

    @classmethod
    def timer(cls, max_duration: float) -> "EarlyStopping":
        """Early stop when max_duration seconds has been reached (from the first iteration)"""
        return cls(_DurationCriterion(max_duration))

    @classmethod
    def no_improvement_stopper(cls, tolerance_window: int) -> "EarlyStopping":
        """Early stop when the best loss did not decrease during tolerance_window iterations"""
        return cls(_LossImprovementToleranceCriterion(tolerance_window))

    @classmethod
    def target(cls, value: float) -> "EarlyStopping":
        """Early stop as soon as the best loss is lower or equal to value"""
        return cls(_TargetCriterion(value))


class _DurationCriterion:
    def __init__(self, max_duration: float) -> None:
        self._start = float("inf")
        self._max_duration = max_duration

    def __call__(self, optimizer: base.Optimizer) -> bool:
        if np.isinf(self._start):
            self._start = time.time()
        return time.time() > self._start + self._max_duration


class _LossImprovementToleranceCriterion:
    def __init__(self, tolerance_window: int) -> None:
        self._tolerance_window: int = tolerance_window
        self._best_value: tp.Optional[float] = None
        self._tolerance_count: int = 0

    def __call__(self, optimizer: base.Optimizer) -> bool:
        best_last_loss = optimizer.best_y
        if self._best_value is None:
            self._best_value = best_last_loss
            return False
        if self._best_value <= best_last_loss:
            self._tolerance_count += 1
        else:
            self._tolerance_count = 0
            self._best_value = best_last_loss
        return self._tolerance_count > self._tolerance_window


class _TargetCriterion:
    def __init__(self, value: float) -> None:
        self._value = value

    def __call__(self, optimizer: base.Optimizer) -> bool:
        return optimizer.best_y <= self._value
