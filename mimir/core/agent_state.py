# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""State model for the agent step loop.

Defines the configuration, actions, observations, steps and snapshots that
flow through the reasoning -> acting -> observing cycle of a single agent.
"""
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from mimir.core.constants import DEFAULT_MAX_ITERATIONS


class AgentStatus(StrEnum):
    """Lifecycle status of an agent."""

    IDLE = "idle"
    REASONING = "reasoning"
    ACTING = "acting"
    OBSERVING = "observing"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in (AgentStatus.COMPLETED, AgentStatus.FAILED, AgentStatus.INTERRUPTED)


class FailureKind(StrEnum):
    """Why an unsuccessful run ended."""

    BUDGET_EXCEEDED = "budget_exceeded"
    ERROR = "error"
    INTERRUPTED = "interrupted"
    PAUSED = "paused"


class AgentBudget(BaseModel):
    """Resource ceilings checked before every step.

    Attributes:
        max_iterations: Maximum number of steps.
        max_tokens: Maximum total tokens across all steps.
        max_cost: Maximum total cost in USD.
        max_duration: Maximum wall-clock run time in seconds.
        max_memory_mb: Maximum process resident memory in MB.
        max_concurrent_tools: Maximum simultaneous tool executions. An agent
            runs at most one tool per step, one step at a time, so any value
            is always satisfied.
    """

    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)
    max_tokens: int | None = Field(default=None, ge=0)
    max_cost: float | None = Field(default=None, ge=0)
    max_duration: float | None = Field(default=None, gt=0)
    max_memory_mb: float | None = Field(default=None, gt=0)
    max_concurrent_tools: int | None = Field(default=None, ge=1)


class AgentConfig(BaseModel):
    """Configuration for one agent.

    Frozen while the agent runs. Use Agent.update_config between runs.

    Attributes:
        name: Display name.
        role: Advisory role used for loop detection and role defaults.
        model: Model identifier passed to the driver.
        temperature: Sampling temperature passed to the driver.
        system_prompt: System prompt; a default is generated when None.
        budget: Resource ceilings.
        tools: Enabled tool names, or None for every enabled registry tool.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "Agent"
    role: str = "general"
    model: str | None = None
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    system_prompt: str | None = None
    budget: AgentBudget = Field(default_factory=AgentBudget)
    tools: tuple[str, ...] | None = None


class StreamEventType(StrEnum):
    """Types of real-time events emitted by the step loop."""

    STEP_START = "step_start"
    STEP_END = "step_end"
    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"
    ERROR = "error"
    PROGRESS = "progress"


class StreamEvent(BaseModel, frozen=True):
    """Real-time event from agent execution.

    Attributes:
        type: Type of event.
        agent_id: Agent that produced the event.
        timestamp: When the event occurred.
        step_number: Step the event belongs to, if any.
        data: Event payload.
    """

    type: StreamEventType
    agent_id: str
    timestamp: datetime
    step_number: int | None = None
    data: dict[str, Any] = Field(default_factory=dict)


StreamCallback = Callable[[StreamEvent], Awaitable[None] | None]
"""Callback receiving stream events; may be sync or async."""


class AgentContext(BaseModel):
    """Execution context handed to an agent run.

    Attributes:
        conversation_id: Conversation/session identity for this run.
        parent_agent_id: Agent that spawned this one, if any.
        metadata: Free-form metadata passed to tools.
        on_stream: Optional stream callback (never serialized).
    """

    conversation_id: str | None = None
    parent_agent_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    on_stream: StreamCallback | None = Field(default=None, exclude=True, repr=False)


class ToolAction(BaseModel):
    """Call a tool."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool"] = "tool"
    tool: str
    input: dict[str, Any] = Field(default_factory=dict)
    thought: str = ""


class FinishAction(BaseModel):
    """Finish the task with a final response."""

    model_config = ConfigDict(frozen=True)

    type: Literal["finish"] = "finish"
    response: str
    thought: str = ""


class AskAction(BaseModel):
    """Ask a clarifying question."""

    model_config = ConfigDict(frozen=True)

    type: Literal["ask"] = "ask"
    question: str
    thought: str = ""


class ThinkAction(BaseModel):
    """Reason without acting."""

    model_config = ConfigDict(frozen=True)

    type: Literal["think"] = "think"
    thought: str = ""


AgentAction = Annotated[
    ToolAction | FinishAction | AskAction | ThinkAction,
    Field(discriminator="type"),
]


class AgentObservation(BaseModel):
    """Outcome of executing an action."""

    model_config = ConfigDict(frozen=True)

    success: bool
    output: Any = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AgentStep(BaseModel):
    """One completed iteration of the step loop.

    Attributes:
        step_number: 1-based step index.
        timestamp: When the step was recorded.
        thought: Reasoning text for the step.
        action: Action taken.
        observation: Result of the action.
        tokens: Tokens consumed by this step.
        cost: Cost incurred by this step.
    """

    model_config = ConfigDict(frozen=True)

    step_number: int
    timestamp: datetime
    thought: str = ""
    action: AgentAction
    observation: AgentObservation | None = None
    tokens: int = 0
    cost: float = 0.0


class AgentResult(BaseModel):
    """Terminal summary of an agent run."""

    model_config = ConfigDict(frozen=True)

    success: bool
    status: AgentStatus
    steps: tuple[AgentStep, ...] = ()
    final_response: str | None = None
    error: str | None = None
    failure_kind: FailureKind | None = None
    total_tokens: int = 0
    total_cost: float = 0.0
    duration: float = 0.0


class AgentState(BaseModel):
    """Serializable snapshot of an agent, used for pause/resume and monitoring."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    task: str = ""
    status: AgentStatus
    current_step: int = 0
    steps: tuple[AgentStep, ...] = ()
    context: AgentContext = Field(default_factory=AgentContext)
    budget: AgentBudget = Field(default_factory=AgentBudget)
    start_time: datetime | None = None
    total_tokens: int = 0
    total_cost: float = 0.0
