# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
from mimir.roles.loop_detector import LoopDetector as LoopDetector
from mimir.roles.registry import (
    RoleRegistry as RoleRegistry,
    register_default_loop_patterns as register_default_loop_patterns,
    register_default_roles as register_default_roles,
)
from mimir.roles.types import (
    AgentCall as AgentCall,
    LoopInfo as LoopInfo,
    LoopPattern as LoopPattern,
    RoleConfig as RoleConfig,
    SafetyCheck as SafetyCheck,
    WorkflowContext as WorkflowContext,
)
