# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Classic bounded test functions for minimization.
Each function is registered with its usual box (the same bounds on every
coordinate) and the value of its global minimum.
"""
import math
import numpy as np
import mvmo.common.typing as tp
from mvmo.common.decorators import Registry


registry: Registry[tp.Callable[[np.ndarray], float]] = Registry()


def get_bounds(name: str, dimension: int) -> tp.Tuple[np.ndarray, np.ndarray]:
    """Lower and upper bounds of a registered function for a given dimension"""
    info = registry.get_info(name)
    return np.full(dimension, float(info["lower"])), np.full(dimension, float(info["upper"]))


def get_optimum(name: str, dimension: int) -> float:
    """Value of the global minimum of a registered function for a given dimension"""
    info = registry.get_info(name)
    return float(info["optimum"]) * (dimension if info.get("per_dimension", False) else 1)


@registry.register_with_info(lower=-5.0, upper=5.0, optimum=0.0)
def sphere(x: np.ndarray) -> float:
    """The most classical continuous optimization testbed.

    If you do not solve that one then you have a bug."""
    assert x.ndim == 1
    return float(x.dot(x))


@registry.register_with_info(lower=-5.0, upper=5.0, optimum=0.0)
def ellipsoid(x: np.ndarray) -> float:
    """Classical function for testing the ability of an optimizer to handle ill-conditioning,
    with axis-aligned conditioning 10^6.
    """
    dim = x.size
    weights = 10 ** (6 * (np.arange(dim) / float(dim - 1))) if dim != 1 else np.ones(1)
    return float(weights.dot(np.square(x)))


@registry.register_with_info(lower=-5.12, upper=5.12, optimum=0.0)
def rastrigin(x: np.ndarray) -> float:
    """Classical multimodal function."""
    cosi = float(np.sum(np.cos(2 * np.pi * x)))
    return float(10 * (len(x) - cosi) + x.dot(x))


@registry.register_with_info(lower=-2.048, upper=2.048, optimum=0.0)
def rosenbrock(x: np.ndarray) -> float:
    """Banana-shaped valley, with minimum at (1, ..., 1)"""
    x_m_1 = x[:-1] - 1
    x_diff = x[:-1] ** 2 - x[1:]
    return float(100 * x_diff.dot(x_diff) + x_m_1.dot(x_m_1))


@registry.register_with_info(lower=-32.768, upper=32.768, optimum=0.0)
def ackley(x: np.ndarray) -> float:
    dim = x.size
    sum_cos = np.sum(np.cos(2 * np.pi * x))
    return float(-20.0 * math.exp(-0.2 * math.sqrt(x.dot(x) / dim)) - math.exp(sum_cos / dim) + 20 + math.e)


@registry.register_with_info(lower=-600.0, upper=600.0, optimum=0.0)
def griewank(x: np.ndarray) -> float:
    """Multimodal function, often used in Bayesian optimization."""
    part1 = x.dot(x) / 4000.0
    part2 = np.prod(np.cos(x / np.sqrt(1 + np.arange(x.size))))
    return float(1 + part1 - part2)


@registry.register_with_info(lower=-5.0, upper=5.0, optimum=-39.16616570377142, per_dimension=True)
def styblinskitang(x: np.ndarray) -> float:
    """Multimodal function, with minimum at (-2.903534, ..., -2.903534)."""
    return float(0.5 * np.sum(x ** 4 - 16 * x ** 2 + 5 * x))
