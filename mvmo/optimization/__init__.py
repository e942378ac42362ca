# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from .base import Optimizer as Optimizer
from .base import OptimizerState as OptimizerState
from .optimizerlib import registry as registry
