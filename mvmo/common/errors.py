# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.


# base classes


class MvmoError(Exception):
    """Base class for error raised by mvmo"""


class MvmoWarning(Warning):
    pass


# errors
# pylint: disable=too-many-ancestors


class MvmoEarlyStopping(StopIteration, MvmoError):
    """Stops the optimization loop if raised"""


class MvmoRuntimeError(RuntimeError, MvmoError):
    """Runtime error raised by mvmo"""


class MvmoTypeError(TypeError, MvmoError):
    """Type error raised by mvmo"""


class MvmoValueError(ValueError, MvmoError):
    """Value error raised by mvmo (mostly broken preconditions on bounds and settings)"""


# warnings


class MvmoRuntimeWarning(RuntimeWarning, MvmoWarning):
    """Runtime warning raised by mvmo"""


class BadLossWarning(MvmoRuntimeWarning):
    """Provided loss is unhelpful"""


class LossTooLargeWarning(BadLossWarning):
    """Sent when loss is clipped because it is too large (or not finite)"""


class OutOfBoundsGuessWarning(MvmoRuntimeWarning):
    """Sent when an initial guess lies outside of the bounds and gets clipped"""
