# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Types for roles, sanctioned loop patterns and loop detection."""
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from mimir.core.agent_state import AgentBudget
from mimir.core.constants import LOOP_KEY_SEPARATOR


BreakCondition = Callable[[Mapping[str, Any]], bool]
"""Predicate over role -> result mapping; True ends a sanctioned loop."""


class AgentCall(BaseModel):
    """One active agent on the loop detector's call stack.

    Attributes:
        agent_id: Agent identifier.
        role: Advisory role of the agent.
        depth: Stack depth at the time of the push.
        parent_id: Agent that spawned this one, if any.
        timestamp: When the call was pushed.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str
    role: str
    depth: int = Field(default=0, ge=0)
    parent_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class LoopPattern(BaseModel):
    """A sanctioned, repeating sequence of roles.

    Attributes:
        pattern: Ordered roles that make up one iteration.
        max_iterations: Ceiling on iterations of this pattern.
        break_condition: Optional predicate that ends the loop early.
        description: Human-readable description.
    """

    model_config = ConfigDict(frozen=True)

    pattern: tuple[str, ...] = Field(min_length=1)
    max_iterations: int = Field(ge=1)
    break_condition: BreakCondition | None = Field(default=None, exclude=True, repr=False)
    description: str = ""

    @property
    def key(self) -> str:
        """Iteration counter key for this pattern."""
        return LOOP_KEY_SEPARATOR.join(self.pattern)

    def should_break(self, results: Mapping[str, Any]) -> bool:
        """Evaluate the break condition against the latest results.

        Returns False when no break condition is registered.
        """
        if self.break_condition is None:
            return False
        return bool(self.break_condition(results))


class LoopInfo(BaseModel):
    """Loop signal for a candidate spawn.

    Attributes:
        pattern: Matched sanctioned pattern, or the detected repeating cycle.
        current_iteration: Iteration the spawn would start, or cycle occurrences.
        is_allowed: Whether the loop itself permits the spawn.
        reason: Denial reason, set only when not allowed.
        sanctioned: True when a registered pattern matched.
    """

    model_config = ConfigDict(frozen=True)

    pattern: tuple[str, ...]
    current_iteration: int
    is_allowed: bool
    reason: str | None = None
    sanctioned: bool = False


class SafetyCheck(BaseModel):
    """Result of a standalone safety-limit check."""

    model_config = ConfigDict(frozen=True)

    safe: bool
    reason: str | None = None


class LoopDetectorStats(BaseModel):
    """Point-in-time counters of a LoopDetector."""

    model_config = ConfigDict(frozen=True)

    total_agents: int
    current_depth: int
    nested_loops: int
    active_loops: int
    loop_counts: dict[str, int] = Field(default_factory=dict)


class WorkflowContext(BaseModel):
    """State shared between the agents of one workflow.

    Attributes:
        workflow_id: Workflow identifier.
        shared_state: Free-form state shared between agents.
        agent_results: Latest result per role, fed to break conditions.
        quality_gates: Named pass/fail gates.
    """

    workflow_id: str = "default"
    shared_state: dict[str, Any] = Field(default_factory=dict)
    agent_results: dict[str, Any] = Field(default_factory=dict)
    quality_gates: dict[str, bool] = Field(default_factory=dict)


class RoleConfig(BaseModel):
    """Defaults applied to agents created for a role.

    Attributes:
        role: Role identifier.
        description: Human-readable description.
        recommended_model: Model to use when the config names none.
        system_prompt: System prompt to use when the config names none.
        allowed_tools: Tool names the role may use; None means all.
        forbidden_tools: Tool names the role may never use.
        default_budget: Budget to use when the config keeps the default.
    """

    model_config = ConfigDict(frozen=True)

    role: str
    description: str = ""
    recommended_model: str | None = None
    system_prompt: str | None = None
    allowed_tools: tuple[str, ...] | None = None
    forbidden_tools: tuple[str, ...] = ()
    default_budget: AgentBudget | None = None

    def filter_tools(self, names: tuple[str, ...]) -> tuple[str, ...]:
        """Restrict tool names to what this role may use, keeping order."""
        return tuple(
            name
            for name in names
            if name not in self.forbidden_tools
            and (self.allowed_tools is None or name in self.allowed_tools)
        )
