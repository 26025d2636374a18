# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
from mimir.core.constants import ToolName as ToolName
from mimir.core.exceptions import (
    AgentBusyError as AgentBusyError,
    AgentNotFoundError as AgentNotFoundError,
    ConfigurationError as ConfigurationError,
    DuplicateToolError as DuplicateToolError,
    InvalidSnapshotError as InvalidSnapshotError,
    LoopLimitExceededError as LoopLimitExceededError,
    MimirError as MimirError,
    SecurityError as SecurityError,
)
from mimir.core.types import (
    OperationType as OperationType,
    RiskLevel as RiskLevel,
    Settings as Settings,
)
