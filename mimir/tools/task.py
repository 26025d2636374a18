# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Sub-agent delegation tool.

The tool only sees the narrow AgentSpawner protocol, never the orchestrator's
internals. It spawns an isolated sub-agent and either waits for its result
(blocking) or returns immediately (background) so the caller can poll with
the returned agent id.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal, NamedTuple, Protocol

from loguru import logger
from pydantic import BaseModel, Field

from mimir.core.agent_state import AgentBudget, AgentConfig, AgentContext, AgentResult
from mimir.core.constants import DEFAULT_MAX_ITERATIONS, ToolName
from mimir.core.exceptions import AgentNotFoundError, LoopLimitExceededError
from mimir.tools.base import Tool, ToolContext, ToolResult


if TYPE_CHECKING:
    from mimir.core.agent import Agent


class SpawnedAgent(NamedTuple):
    """Handle returned by AgentSpawner.spawn."""

    agent_id: str
    agent: Agent


class AgentSpawner(Protocol):
    """What a delegation tool needs from an orchestrator."""

    async def spawn(
        self,
        task: str,
        config: AgentConfig | None = None,
        parent_context: AgentContext | None = None,
        parent_id: str | None = None,
    ) -> SpawnedAgent:
        """Create a pending sub-agent.

        Raises:
            LoopLimitExceededError: If loop detection or safety limits deny it.
        """
        ...

    async def execute_background(
        self, agent_id: str, context: AgentContext | None = None
    ) -> None:
        """Start a spawned agent without waiting for it."""
        ...

    async def get_result(self, agent_id: str) -> AgentResult:
        """Wait for a spawned agent's terminal result."""
        ...

    def check_result(self, agent_id: str) -> AgentResult | None:
        """Return the result if the agent finished, else None."""
        ...


class TaskArgs(BaseModel):
    """Arguments for the task tool."""

    description: str = Field(description="Short description (3-5 words) of the sub-task")
    prompt: str | None = Field(default=None, description="Detailed task for the sub-agent")
    mode: Literal["blocking", "background"] = Field(
        default="blocking", description="Wait for the result or return immediately"
    )
    role: str | None = Field(default=None, description='Agent role, e.g. "finder"')
    tools: list[str] | None = Field(default=None, description="Tools to enable")
    max_iterations: int | None = Field(default=None, ge=1, description="Step ceiling")
    agent_id: str | None = Field(
        default=None, description="Existing sub-agent to collect results from"
    )


def _summarize(result: AgentResult) -> dict[str, Any]:
    return {
        "status": "completed" if result.success else "failed",
        "result": result.final_response,
        "error": result.error,
        "steps": len(result.steps),
        "tokens": result.total_tokens,
        "cost": result.total_cost,
        "duration": result.duration,
    }


class TaskTool(Tool):
    """Delegates a sub-task to an isolated sub-agent."""

    name = ToolName.TASK.value
    description = (
        "Spawn a sub-agent to handle a self-contained task in isolation. "
        "Use mode=background to keep working, then call again with agent_id "
        "to collect the result."
    )
    args_schema = TaskArgs
    token_cost = 120

    def __init__(self, spawner: AgentSpawner) -> None:
        self._spawner = spawner

    async def execute(self, args: TaskArgs, context: ToolContext) -> ToolResult:
        if args.agent_id:
            return await self._collect(args.agent_id, blocking=args.mode == "blocking")

        if not args.prompt:
            return ToolResult.fail("Prompt is required when spawning a new agent")

        config = AgentConfig(
            name=args.description,
            role=args.role or "general",
            tools=tuple(args.tools) if args.tools is not None else None,
            budget=AgentBudget(max_iterations=args.max_iterations or DEFAULT_MAX_ITERATIONS),
        )

        try:
            spawned = await self._spawner.spawn(
                args.prompt,
                config,
                parent_context=context.agent_context,
                parent_id=context.agent_id,
            )
        except LoopLimitExceededError as e:
            logger.warning("Sub-agent spawn denied", reason=e.reason, role=config.role)
            return ToolResult.fail(str(e), role=config.role)

        if args.mode == "background":
            await self._spawner.execute_background(spawned.agent_id)
            return ToolResult.ok(
                {
                    "agent_id": spawned.agent_id,
                    "status": "running",
                    "message": "Agent started in background. "
                    "Call task with agent_id to check progress.",
                },
                agent_id=spawned.agent_id,
                mode="background",
            )

        result = await self._spawner.get_result(spawned.agent_id)
        return ToolResult.ok(
            {"agent_id": spawned.agent_id, **_summarize(result)},
            agent_id=spawned.agent_id,
            success=result.success,
            mode="blocking",
        )

    async def _collect(self, agent_id: str, blocking: bool) -> ToolResult:
        try:
            if blocking:
                result: AgentResult | None = await self._spawner.get_result(agent_id)
            else:
                result = self._spawner.check_result(agent_id)
        except AgentNotFoundError as e:
            return ToolResult.fail(str(e), agent_id=agent_id)

        if result is None:
            return ToolResult.ok(
                {"agent_id": agent_id, "status": "running"},
                agent_id=agent_id,
                is_running=True,
            )
        return ToolResult.ok(
            {"agent_id": agent_id, **_summarize(result)},
            agent_id=agent_id,
            success=result.success,
        )
