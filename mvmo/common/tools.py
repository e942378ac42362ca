# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import inspect
import typing as tp


def different_from_defaults(
    *, instance: tp.Any, instance_dict: tp.Optional[tp.Dict[str, tp.Any]] = None, check_mismatches: bool = False
) -> tp.Dict[str, tp.Any]:
    """Returns the settings of an instance which differ from the defaults
    of its class initializer (used for short representations of configurations)

    Parameters
    ----------
    instance: object
        the configured object
    instance_dict: dict
        the settings of the instance, defaults to its __dict__
    check_mismatches: bool
        raise if the settings and the initializer arguments do not match
    """
    defaults = {
        x: y.default
        for x, y in inspect.signature(instance.__class__.__init__).parameters.items()
        if x not in ["self", "__class__"]
    }
    if instance_dict is None:
        instance_dict = instance.__dict__
    if check_mismatches:
        diff = set(defaults.keys()).symmetric_difference(instance_dict.keys())
        if diff:
            raise RuntimeError(f"Mismatch between attributes and arguments of {instance}: {diff}")
    else:
        defaults = {x: y for x, y in defaults.items() if x in instance_dict}
    return {x: instance_dict[x] for x, y in defaults.items() if y != instance_dict[x] and not x.startswith("_")}
