# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Single-agent step loop: reason, act, observe until a terminal state.

The loop is strictly sequential within one agent. Budgets are cooperative:
every ceiling is checked at the start of a step, never mid-step, and a
tripped ceiling ends the run as failed rather than overrunning it.
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import psutil
from loguru import logger

from mimir.core.agent_state import (
    AgentAction,
    AgentBudget,
    AgentConfig,
    AgentContext,
    AgentObservation,
    AgentResult,
    AgentState,
    AgentStatus,
    AgentStep,
    AskAction,
    FailureKind,
    FinishAction,
    StreamEvent,
    StreamEventType,
    ThinkAction,
    ToolAction,
)
from mimir.core.constants import FINISH_MARKERS
from mimir.core.exceptions import AgentBusyError, InvalidSnapshotError
from mimir.drivers.base import DriverInterface, DriverResponse, DriverUsage
from mimir.execution.base import Executor
from mimir.tools.base import ToolContext
from mimir.tools.registry import ToolRegistry


_BYTES_PER_MB = 1024 * 1024


def parse_action(response: DriverResponse) -> AgentAction:
    """Turn one model turn into an action.

    Precedence: tool call, then finish (explicit flag or a finish marker in
    the content), then question, then plain thinking.
    """
    content = response.content
    if response.tool_calls:
        call = response.tool_calls[0]
        return ToolAction(tool=call.name, input=call.arguments, thought=content)

    lowered = content.lower()
    if response.finished or any(marker in lowered for marker in FINISH_MARKERS):
        return FinishAction(response=content, thought=content)

    if response.question:
        return AskAction(question=response.question, thought=content)

    return ThinkAction(thought=content)


class Agent:
    """Runs the reasoning -> acting -> observing loop for one task.

    Attributes:
        id: Unique agent identifier.
    """

    def __init__(
        self,
        config: AgentConfig,
        driver: DriverInterface,
        tool_registry: ToolRegistry,
        executor: Executor | None = None,
        agent_id: str | None = None,
    ) -> None:
        """Initialize the agent.

        Args:
            config: Agent configuration.
            driver: Model-call collaborator.
            tool_registry: Registry used for every tool action.
            executor: Side-effect collaborator, initialized and cleaned up
                around each run.
            agent_id: Identifier to use (default: generated).
        """
        self.id = agent_id or f"agent-{uuid4().hex}"
        self._config = config
        self._driver = driver
        self._tool_registry = tool_registry
        self._executor = executor

        self._status = AgentStatus.IDLE
        self._task = ""
        self._steps: list[AgentStep] = []
        self._context = AgentContext()
        self._start_time: datetime | None = None
        self._total_tokens = 0
        self._total_cost = 0.0
        self._result: AgentResult | None = None

        self._running = False
        self._stop_requested = False
        self._pause_requested = False
        self._halted = asyncio.Event()
        self._halted.set()

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def role(self) -> str:
        return self._config.role

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def result(self) -> AgentResult | None:
        """Result of the last run, or None while running or never run."""
        return self._result

    async def execute(self, task: str, context: AgentContext | None = None) -> AgentResult:
        """Run the loop for a new task.

        Args:
            task: Task description.
            context: Execution context (default: empty context).

        Returns:
            AgentResult; failures are reported in the result, not raised.

        Raises:
            AgentBusyError: If the agent is already running.
        """
        if self._running:
            raise AgentBusyError(f"Agent {self.id} is already running")

        self._task = task
        self._context = context or AgentContext()
        self._steps = []
        self._total_tokens = 0
        self._total_cost = 0.0
        self._start_time = datetime.now(UTC)
        logger.info("Agent started", agent_id=self.id, role=self.role)
        return await self._run()

    async def resume(self, state: AgentState) -> AgentResult:
        """Restore a snapshot and continue from its current step.

        Args:
            state: Snapshot previously returned by pause() or get_status().

        Returns:
            AgentResult of the continued run.

        Raises:
            InvalidSnapshotError: If the snapshot is not an AgentState, belongs
                to another agent, or is already terminal.
            AgentBusyError: If the agent is currently running.
        """
        if not isinstance(state, AgentState):
            raise InvalidSnapshotError("resume() requires an AgentState snapshot")
        if self._running:
            raise AgentBusyError(f"Agent {self.id} is running and cannot be resumed")
        if state.agent_id != self.id:
            raise InvalidSnapshotError(
                f"Snapshot belongs to agent {state.agent_id}, not {self.id}"
            )
        if state.status.is_terminal:
            raise InvalidSnapshotError(f"Cannot resume from terminal status '{state.status}'")

        self._task = state.task
        self._steps = list(state.steps)
        self._context = state.context
        self._config = self._config.model_copy(update={"budget": state.budget})
        self._start_time = state.start_time or datetime.now(UTC)
        self._total_tokens = state.total_tokens
        self._total_cost = state.total_cost
        self._status = state.status
        logger.info("Agent resumed", agent_id=self.id, step=state.current_step)
        return await self._run()

    def stop(self) -> None:
        """Request an interrupt at the next step boundary.

        Idempotent. Recorded steps are never touched. A finished agent keeps
        its terminal status; an agent that is not running becomes interrupted
        immediately.
        """
        if self._status.is_terminal and not self._running:
            return
        self._stop_requested = True
        if not self._running:
            self._status = AgentStatus.INTERRUPTED
            self._result = self._build_result(
                False,
                error="Execution interrupted",
                failure_kind=FailureKind.INTERRUPTED,
            )

    async def pause(self) -> AgentState:
        """Halt at the next step boundary and return the resulting snapshot.

        Must not be awaited from inside this agent's own step (a tool or
        stream callback), since it waits for that step to finish.
        """
        if self._running:
            self._pause_requested = True
            await self._halted.wait()
        return self.get_status()

    def get_status(self) -> AgentState:
        """Return a serializable snapshot of the agent."""
        return AgentState(
            agent_id=self.id,
            task=self._task,
            status=self._status,
            current_step=len(self._steps),
            steps=tuple(self._steps),
            context=self._context,
            budget=self._config.budget,
            start_time=self._start_time,
            total_tokens=self._total_tokens,
            total_cost=self._total_cost,
        )

    def update_config(self, **changes: Any) -> AgentConfig:
        """Replace the configuration between runs.

        ``budget`` may be a mapping or an AgentBudget; only the fields it sets
        replace the current budget's fields.

        Raises:
            AgentBusyError: If the agent is running.
        """
        if self._running:
            raise AgentBusyError(f"Agent {self.id} is running and cannot be reconfigured")

        budget_update = changes.pop("budget", None)
        budget = self._config.budget
        if budget_update is not None:
            if isinstance(budget_update, AgentBudget):
                budget_update = budget_update.model_dump(exclude_unset=True)
            budget = AgentBudget.model_validate({**budget.model_dump(), **budget_update})

        self._config = AgentConfig.model_validate(
            {**self._config.model_dump(), **changes, "budget": budget}
        )
        return self._config

    async def _run(self) -> AgentResult:
        self._running = True
        self._result = None
        self._halted.clear()
        try:
            if self._executor is not None:
                await self._executor.initialize()
            try:
                result = await self._loop()
            finally:
                if self._executor is not None:
                    await self._executor.cleanup()
        except Exception as e:
            logger.exception("Agent run failed", agent_id=self.id)
            self._status = AgentStatus.FAILED
            await self._emit(StreamEventType.ERROR, error=str(e))
            result = self._build_result(False, error=str(e), failure_kind=FailureKind.ERROR)
        finally:
            self._running = False
            self._stop_requested = False
            self._pause_requested = False
            self._halted.set()

        self._result = result
        logger.info(
            "Agent finished",
            agent_id=self.id,
            status=result.status.value,
            steps=len(result.steps),
            tokens=result.total_tokens,
        )
        return result

    async def _loop(self) -> AgentResult:
        enabled_tools = self._fit_tools()
        tool_schemas = self._tool_registry.get_schemas(enabled_tools)
        max_iterations = self._config.budget.max_iterations

        while True:
            if self._stop_requested:
                self._status = AgentStatus.INTERRUPTED
                return self._build_result(
                    False, error="Execution interrupted", failure_kind=FailureKind.INTERRUPTED
                )
            if self._pause_requested:
                self._status = AgentStatus.IDLE
                return self._build_result(
                    False, error="Execution paused", failure_kind=FailureKind.PAUSED
                )
            exceeded = self._check_budget()
            if exceeded is not None:
                logger.warning("Agent budget exceeded", agent_id=self.id, ceiling=exceeded)
                self._status = AgentStatus.FAILED
                return self._build_result(
                    False,
                    error=f"budget exceeded: {exceeded}",
                    failure_kind=FailureKind.BUDGET_EXCEEDED,
                )

            step_number = len(self._steps) + 1
            await self._emit(StreamEventType.STEP_START, step_number)

            self._status = AgentStatus.REASONING
            action, tokens, cost = await self._reason(tool_schemas)
            self._total_tokens += tokens
            self._total_cost += cost
            await self._emit(StreamEventType.THOUGHT, step_number, thought=action.thought)

            self._status = AgentStatus.ACTING
            await self._emit(StreamEventType.ACTION, step_number, action=action.model_dump())
            observation = await self._act(action, enabled_tools)
            await self._emit(
                StreamEventType.OBSERVATION, step_number, observation=observation.model_dump()
            )

            self._status = AgentStatus.OBSERVING
            self._steps.append(
                AgentStep(
                    step_number=step_number,
                    timestamp=datetime.now(UTC),
                    thought=action.thought,
                    action=action,
                    observation=observation,
                    tokens=tokens,
                    cost=cost,
                )
            )
            await self._emit(StreamEventType.STEP_END, step_number)

            if isinstance(action, FinishAction):
                self._status = AgentStatus.COMPLETED
                return self._build_result(True, final_response=action.response)

            await self._emit(
                StreamEventType.PROGRESS,
                step_number,
                current=step_number,
                total=max_iterations,
                message=f"Step {step_number}/{max_iterations} completed",
            )

    def _check_budget(self) -> str | None:
        """Return the name of the first exhausted ceiling, or None."""
        budget = self._config.budget
        if len(self._steps) >= budget.max_iterations:
            return f"maximum iterations reached ({budget.max_iterations})"
        if budget.max_tokens is not None and self._total_tokens >= budget.max_tokens:
            return f"token limit reached ({self._total_tokens}/{budget.max_tokens})"
        if budget.max_cost is not None and self._total_cost >= budget.max_cost:
            return f"cost limit reached ({self._total_cost:.4f}/{budget.max_cost})"
        if budget.max_duration is not None and self._elapsed() >= budget.max_duration:
            return f"duration limit reached ({budget.max_duration}s)"
        if budget.max_memory_mb is not None:
            rss_mb = psutil.Process().memory_info().rss / _BYTES_PER_MB
            if rss_mb >= budget.max_memory_mb:
                return f"memory limit reached ({rss_mb:.0f}/{budget.max_memory_mb} MB)"
        return None

    def _fit_tools(self) -> tuple[str, ...]:
        """Enabled tool names for this run, trimmed to fit the token budget."""
        if self._config.tools is None:
            names = [tool.name for tool in self._tool_registry.list_enabled()]
        else:
            names = [name for name in self._config.tools if self._tool_registry.is_enabled(name)]

        max_tokens = self._config.budget.max_tokens
        if max_tokens is not None:
            while names and self._tool_registry.get_total_token_cost(names) >= max_tokens:
                dropped = names.pop()
                logger.debug("Tool dropped to fit token budget", agent_id=self.id, tool=dropped)
        return tuple(names)

    async def _reason(
        self, tool_schemas: list[dict[str, Any]]
    ) -> tuple[AgentAction, int, float]:
        response = await self._driver.chat(
            self._build_messages(tool_schemas),
            tools=tool_schemas or None,
            model=self._config.model,
            temperature=self._config.temperature,
        )
        usage = response.usage or DriverUsage()
        return parse_action(response), usage.total_tokens, usage.cost_usd

    async def _act(self, action: AgentAction, enabled_tools: tuple[str, ...]) -> AgentObservation:
        if isinstance(action, ToolAction):
            if action.tool not in enabled_tools:
                return AgentObservation(
                    success=False, error=f"Tool '{action.tool}' is not enabled for this agent"
                )
            result = await self._tool_registry.execute(
                action.tool,
                action.input,
                ToolContext(
                    executor=self._executor,
                    agent_id=self.id,
                    conversation_id=self._context.conversation_id,
                    working_dir=self._executor.get_cwd() if self._executor else None,
                    metadata=self._context.metadata,
                    agent_context=self._context,
                ),
            )
            return AgentObservation(
                success=result.success,
                output=result.output,
                error=result.error,
                metadata=result.metadata,
            )
        if isinstance(action, FinishAction):
            return AgentObservation(success=True, output=action.response)
        if isinstance(action, AskAction):
            return AgentObservation(success=True, output=action.question)
        return AgentObservation(success=True, output=action.thought)

    def _build_messages(self, tool_schemas: list[dict[str, Any]]) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self._system_prompt(tool_schemas)},
            {"role": "user", "content": self._task},
        ]
        for step in self._steps:
            messages.append({"role": "assistant", "content": step.thought})
            observation = step.observation
            if observation is not None:
                label = "Success" if observation.success else "Error"
                body = observation.output if observation.success else observation.error
                messages.append({"role": "user", "content": f"Observation: {label}\n{body}"})
        return messages

    def _system_prompt(self, tool_schemas: list[dict[str, Any]]) -> str:
        if self._config.system_prompt:
            return self._config.system_prompt
        tool_names = ", ".join(schema["name"] for schema in tool_schemas) or "none"
        return (
            "You are an AI agent that helps users accomplish tasks.\n\n"
            "Work in a Reason-Act-Observe cycle: think about the next step, use a "
            "tool to make progress, then examine the result.\n\n"
            'When the task is done, respond with "Task completed: <summary>".\n\n'
            f"Available tools: {tool_names}"
        )

    def _elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return (datetime.now(UTC) - self._start_time).total_seconds()

    def _build_result(
        self,
        success: bool,
        final_response: str | None = None,
        error: str | None = None,
        failure_kind: FailureKind | None = None,
    ) -> AgentResult:
        return AgentResult(
            success=success,
            status=self._status,
            steps=tuple(self._steps),
            final_response=final_response,
            error=error,
            failure_kind=failure_kind,
            total_tokens=self._total_tokens,
            total_cost=self._total_cost,
            duration=self._elapsed(),
        )

    async def _emit(
        self,
        event_type: StreamEventType,
        step_number: int | None = None,
        **data: Any,
    ) -> None:
        callback = self._context.on_stream
        if callback is None:
            return
        event = StreamEvent(
            type=event_type,
            agent_id=self.id,
            timestamp=datetime.now(UTC),
            step_number=step_number,
            data=data,
        )
        try:
            outcome = callback(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(
                "Stream callback failed: {error}",
                error=str(e),
                agent_id=self.id,
                event_type=event_type.value,
            )
