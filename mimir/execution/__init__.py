# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
from mimir.execution.base import (
    ExecuteOptions as ExecuteOptions,
    ExecuteResult as ExecuteResult,
    Executor as Executor,
)
from mimir.execution.shared import SharedExecutor as SharedExecutor
