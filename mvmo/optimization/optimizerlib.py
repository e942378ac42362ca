# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from .base import registry as registry
from .base import load as load  # pylint: disable=unused-import
from .mvmo import ParametrizedMVMO as ParametrizedMVMO
from .mvmo import fitness_shaping as fitness_shaping  # pylint: disable=unused-import
from .mvmo import mutation_count as mutation_count  # pylint: disable=unused-import


# # # # # registered configurations # # # # #

MVMO = ParametrizedMVMO().set_name("MVMO", register=True)
PaperMVMO = ParametrizedMVMO(progress_power=2.0).set_name("PaperMVMO", register=True)
SnaplessMVMO = ParametrizedMVMO(boundary_snap=False).set_name("SnaplessMVMO", register=True)
