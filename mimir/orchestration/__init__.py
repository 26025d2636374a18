# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
from mimir.orchestration.factory import AgentFactory as AgentFactory
from mimir.orchestration.orchestrator import (
    AgentOrchestrator as AgentOrchestrator,
    OrchestrationResult as OrchestrationResult,
    OrchestratorStats as OrchestratorStats,
    SubAgentState as SubAgentState,
    SubAgentStatus as SubAgentStatus,
    TaskSpec as TaskSpec,
)
