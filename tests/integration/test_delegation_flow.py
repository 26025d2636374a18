# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Integration tests for agents delegating to sub-agents through the task tool.

A parent agent runs under the orchestrator with the TaskTool in its registry.
The driver routes each call by the agent's task: the parent delegates, the
child finishes immediately.
"""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from mimir.core.agent_state import AgentContext, AgentStatus, StreamEvent
from mimir.core.types import LoopLimits
from mimir.drivers.base import DriverResponse, DriverToolCall, DriverUsage
from mimir.orchestration.orchestrator import AgentOrchestrator, SubAgentStatus
from mimir.roles.types import AgentCall
from mimir.tools.registry import ToolRegistry
from mimir.tools.task import TaskTool


PARENT_TASK = "Coordinate the config audit"
CHILD_TASK = "Find config files"


def _usage() -> DriverUsage:
    return DriverUsage(input_tokens=5, output_tokens=5, cost_usd=0.01)


class DelegatingDriver:
    """Parent delegates CHILD_TASK to a finder, child reports back."""

    def __init__(self, mode: str = "blocking") -> None:
        self.mode = mode
        self.orchestrator: AgentOrchestrator | None = None
        self.child_stacks: list[list[AgentCall]] = []

    def _tool_call(self, **arguments: Any) -> DriverResponse:
        return DriverResponse(
            content="Delegating",
            tool_calls=[DriverToolCall(name="task", arguments=arguments)],
            usage=_usage(),
        )

    def _child_id(self) -> str:
        assert self.orchestrator is not None
        (child,) = [state for state in self.orchestrator.list_agents() if state.parent_id]
        return child.agent_id

    async def chat(self, messages: list[dict[str, Any]], tools: Any = None, **kwargs: Any) -> DriverResponse:
        assert self.orchestrator is not None
        if messages[1]["content"] == CHILD_TASK:
            self.child_stacks.append(self.orchestrator.loop_detector.get_call_stack())
            return DriverResponse(
                content="Task completed: found settings.yaml", finished=True, usage=_usage()
            )

        turn = (len(messages) - 2) // 2
        if turn == 0:
            return self._tool_call(
                description="find configs", prompt=CHILD_TASK, role="finder", mode=self.mode
            )
        if turn == 1 and self.mode == "background":
            return self._tool_call(description="collect", agent_id=self._child_id())
        return DriverResponse(content="Task completed: audit done", finished=True, usage=_usage())


@pytest.fixture
def delegation_setup(
    tool_registry_factory: Callable[..., ToolRegistry],
    orchestrator_factory: Callable[..., AgentOrchestrator],
) -> Callable[..., tuple[AgentOrchestrator, DelegatingDriver]]:
    def _create(
        mode: str = "blocking", loop_limits: LoopLimits | None = None
    ) -> tuple[AgentOrchestrator, DelegatingDriver]:
        driver = DelegatingDriver(mode)
        registry = tool_registry_factory()
        orchestrator = orchestrator_factory(
            driver=driver, max_parallel=1, registry=registry, loop_limits=loop_limits
        )
        registry.register(TaskTool(orchestrator))
        driver.orchestrator = orchestrator
        return orchestrator, driver
    return _create


async def test_blocking_delegation_with_single_slot(delegation_setup) -> None:
    """The parent gives its slot back while it waits, so the child can run."""
    orchestrator, driver = delegation_setup()
    events: list[StreamEvent] = []
    parent = await orchestrator.spawn(PARENT_TASK, parent_context=AgentContext(on_stream=events.append))

    result = await asyncio.wait_for(orchestrator.execute(parent.agent_id), timeout=5)

    assert result.success is True
    assert result.final_response == "Task completed: audit done"
    observation = result.steps[0].observation
    assert observation is not None and observation.success is True
    assert observation.output["status"] == "completed"
    assert observation.output["result"] == "Task completed: found settings.yaml"

    child_id = observation.output["agent_id"]
    child = orchestrator.get_sub_agent(child_id)
    assert child.parent_id == parent.agent_id
    assert child.role == "finder"
    assert child.status == SubAgentStatus.COMPLETED

    (stack,) = driver.child_stacks
    assert [call.agent_id for call in stack] == [parent.agent_id, child_id]
    assert [call.depth for call in stack] == [0, 1]
    assert stack[1].parent_id == parent.agent_id
    assert orchestrator.loop_detector.get_call_stack() == []

    assert {event.agent_id for event in events} == {parent.agent_id, child_id}
    assert orchestrator.get_stats().completed == 2


async def test_background_delegation_then_collect(delegation_setup) -> None:
    orchestrator, _ = delegation_setup(mode="background")
    parent = await orchestrator.spawn(PARENT_TASK)

    result = await asyncio.wait_for(orchestrator.execute(parent.agent_id), timeout=5)

    assert result.success is True
    started, collected = (step.observation for step in result.steps[:2])
    assert started.output["status"] == "running"
    assert started.metadata["mode"] == "background"
    assert collected.output["agent_id"] == started.output["agent_id"]
    assert collected.output["status"] == "completed"
    assert collected.output["tokens"] == 10
    assert orchestrator.workflow_context.agent_results["finder"].success is True


async def test_denied_delegation_is_reported_to_the_parent(delegation_setup) -> None:
    orchestrator, driver = delegation_setup(loop_limits=LoopLimits(max_nesting_depth=1))
    parent = await orchestrator.spawn(PARENT_TASK)

    result = await asyncio.wait_for(orchestrator.execute(parent.agent_id), timeout=5)

    observation = result.steps[0].observation
    assert observation is not None and observation.success is False
    assert observation.error == "Loop limit exceeded: Maximum nesting depth reached (1)"
    assert driver.child_stacks == []
    assert result.status == AgentStatus.COMPLETED
    assert [state.agent_id for state in orchestrator.list_agents()] == [parent.agent_id]
