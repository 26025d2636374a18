# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Sub-agent orchestration: spawn, run, monitor and aggregate.

Responsibilities:
    - Gate every spawn through the LoopDetector
    - Run agents blocking, in parallel, in sequence, as a dependency DAG,
      as a sanctioned loop, or in the background, never more than
      max_parallel at once
    - Track per-agent SubAgentState and aggregate token/cost/duration totals

Does NOT handle:
    - Deciding what to delegate (agents do, through the task tool)
    - Persistence of results beyond clear_completed()
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import AsyncIterator, Sequence
from contextvars import ContextVar
from datetime import UTC, datetime
from enum import StrEnum
from functools import partial
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, Field

from mimir.core.agent import Agent
from mimir.core.agent_state import AgentConfig, AgentContext, AgentResult, AgentState
from mimir.core.constants import DEFAULT_MAX_PARALLEL
from mimir.core.exceptions import AgentNotFoundError, LoopLimitExceededError
from mimir.orchestration.factory import AgentFactory
from mimir.roles.loop_detector import LoopDetector
from mimir.roles.registry import RoleRegistry
from mimir.roles.types import AgentCall, LoopPattern, WorkflowContext
from mimir.tools.task import SpawnedAgent


# Id of the sub-agent whose run the current task belongs to.
_running_agent: ContextVar[str | None] = ContextVar("mimir_running_agent", default=None)


class SubAgentStatus(StrEnum):
    """Orchestrator's view of a sub-agent's lifecycle."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SubAgentState(BaseModel):
    """Orchestrator record for one spawned agent.

    Attributes:
        agent_id: Agent identifier.
        task: Task the agent was spawned for.
        role: Agent role.
        parent_id: Spawning agent, if any.
        status: Lifecycle status.
        start_time: When execution started.
        end_time: When execution ended.
        result: Terminal result, once available.
        error: Failure message, when failed.
    """

    agent_id: str
    task: str
    role: str
    parent_id: str | None = None
    status: SubAgentStatus = SubAgentStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    result: AgentResult | None = None
    error: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (SubAgentStatus.COMPLETED, SubAgentStatus.FAILED)


class TaskSpec(BaseModel):
    """One unit of work for a batch execution mode.

    Attributes:
        id: Task identifier, referenced by depends_on.
        task: Task description.
        config: Agent configuration.
        context: Parent context for the spawn.
        depends_on: Task ids that must finish first (dependency mode only).
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    task: str
    config: AgentConfig = Field(default_factory=AgentConfig)
    context: AgentContext | None = None
    depends_on: tuple[str, ...] = ()


class OrchestrationResult(BaseModel):
    """Aggregate of a batch execution.

    Attributes:
        success: True iff every agent completed and nothing failed to spawn.
        agents: Snapshot of every spawned agent's state.
        total_duration: Sum of the agents' run durations in seconds.
        elapsed: Wall-clock time of the whole batch in seconds.
        total_tokens: Sum of the agents' tokens.
        total_cost: Sum of the agents' costs.
        errors: One message per failure.
    """

    success: bool
    agents: list[SubAgentState] = Field(default_factory=list)
    total_duration: float = 0.0
    elapsed: float = 0.0
    total_tokens: int = 0
    total_cost: float = 0.0
    errors: list[str] = Field(default_factory=list)


class OrchestratorStats(BaseModel):
    """Counts of sub-agents by status."""

    total: int
    pending: int
    running: int
    completed: int
    failed: int


class AgentOrchestrator:
    """Spawns and runs sub-agents with bounded concurrency.

    Satisfies the AgentSpawner protocol used by the task tool. Every run
    holds a semaphore slot while it executes. A sub-agent blocked waiting on
    another agent gives its slot back until the wait ends, so blocking
    delegation cannot deadlock at max_parallel=1.
    """

    def __init__(
        self,
        agent_factory: AgentFactory,
        loop_detector: LoopDetector | None = None,
        max_parallel: int = DEFAULT_MAX_PARALLEL,
        workflow_context: WorkflowContext | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            agent_factory: Creates agents for spawned configs.
            loop_detector: Spawn gate (default: detector with no sanctioned
                patterns, so only cycles and ceilings apply).
            max_parallel: Maximum agents executing at once.
            workflow_context: Shared workflow state; receives each role's
                latest result for loop break conditions.
        """
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self._agent_factory = agent_factory
        self._loop_detector = loop_detector or LoopDetector(RoleRegistry())
        self._max_parallel = max_parallel
        self._workflow_context = workflow_context or WorkflowContext()
        self._semaphore = asyncio.Semaphore(max_parallel)

        self._agents: dict[str, Agent] = {}
        self._states: dict[str, SubAgentState] = {}
        self._contexts: dict[str, AgentContext] = {}
        self._tasks: dict[str, asyncio.Task[AgentResult]] = {}
        self._slot_holders: set[str] = set()
        self._waits: dict[str, int] = {}

    @property
    def max_parallel(self) -> int:
        return self._max_parallel

    @property
    def loop_detector(self) -> LoopDetector:
        return self._loop_detector

    @property
    def workflow_context(self) -> WorkflowContext:
        return self._workflow_context

    async def spawn(
        self,
        task: str,
        config: AgentConfig | None = None,
        parent_context: AgentContext | None = None,
        parent_id: str | None = None,
    ) -> SpawnedAgent:
        """Create a pending sub-agent with an isolated context.

        Args:
            task: Task for the sub-agent.
            config: Agent configuration (default: AgentConfig()).
            parent_context: Context of the spawning agent; only its stream
                callback is inherited.
            parent_id: Spawning agent's id.

        Returns:
            SpawnedAgent with the new agent's id and instance.

        Raises:
            LoopLimitExceededError: If a safety ceiling or loop check denies
                the spawn. No agent is created in that case.
        """
        config = config or AgentConfig()

        safety = self._loop_detector.check_safety_limits()
        if not safety.safe:
            logger.warning("Spawn denied by safety limits", role=config.role, reason=safety.reason)
            raise LoopLimitExceededError(safety.reason or "Safety limits reached")

        loop_info = self._loop_detector.detect_loop(config.role, self._workflow_context)
        if loop_info is not None:
            if not self._loop_detector.is_loop_allowed(loop_info):
                reason = loop_info.reason or (
                    f"Loop limits reached at iteration {loop_info.current_iteration}"
                )
                logger.warning("Spawn denied by loop detection", role=config.role, reason=reason)
                raise LoopLimitExceededError(reason, loop_info)
            if loop_info.sanctioned:
                self._loop_detector.increment_loop(loop_info.pattern)

        agent = self._agent_factory.create_agent(config)
        agent_id = agent.id
        self._agents[agent_id] = agent
        self._contexts[agent_id] = AgentContext(
            conversation_id=uuid4().hex,
            parent_agent_id=parent_id,
            on_stream=parent_context.on_stream if parent_context else None,
        )
        self._states[agent_id] = SubAgentState(
            agent_id=agent_id, task=task, role=agent.role, parent_id=parent_id
        )
        logger.info("Sub-agent spawned", agent_id=agent_id, role=agent.role, parent_id=parent_id)
        return SpawnedAgent(agent_id, agent)

    async def execute(self, agent_id: str, context: AgentContext | None = None) -> AgentResult:
        """Run a spawned agent and wait for its result.

        Args:
            agent_id: Spawned agent.
            context: Context to run with (default: the isolated spawn context).

        Raises:
            AgentNotFoundError: If the agent id is unknown.
        """
        state = self._require_state(agent_id)
        if state.result is not None:
            return state.result
        return await self._wait_for(self._start(agent_id, context))

    async def execute_background(
        self, agent_id: str, context: AgentContext | None = None
    ) -> None:
        """Start a spawned agent without waiting for it.

        Yields once so the agent takes a free slot before this returns.

        Raises:
            AgentNotFoundError: If the agent id is unknown.
        """
        self._require_state(agent_id)
        self._start(agent_id, context)
        await asyncio.sleep(0)

    def check_result(self, agent_id: str) -> AgentResult | None:
        """Return the agent's result, or None while it is still running."""
        return self._require_state(agent_id).result

    async def get_result(self, agent_id: str) -> AgentResult:
        """Wait for the agent's result, starting it if still pending."""
        state = self._require_state(agent_id)
        if state.result is not None:
            return state.result
        return await self._wait_for(self._start(agent_id, None))

    def get_status(self, agent_id: str) -> AgentState:
        """Return the agent's own state snapshot."""
        self._require_state(agent_id)
        return self._agents[agent_id].get_status()

    def get_sub_agent(self, agent_id: str) -> SubAgentState:
        return self._require_state(agent_id).model_copy()

    def list_agents(self) -> list[SubAgentState]:
        return [state.model_copy() for state in self._states.values()]

    def get_stats(self) -> OrchestratorStats:
        statuses = [state.status for state in self._states.values()]
        return OrchestratorStats(
            total=len(statuses),
            pending=statuses.count(SubAgentStatus.PENDING),
            running=statuses.count(SubAgentStatus.RUNNING),
            completed=statuses.count(SubAgentStatus.COMPLETED),
            failed=statuses.count(SubAgentStatus.FAILED),
        )

    def stop(self, agent_id: str) -> None:
        """Interrupt an agent. A pending agent fails without ever running."""
        state = self._require_state(agent_id)
        agent = self._agents[agent_id]
        agent.stop()
        if state.status == SubAgentStatus.PENDING:
            self._record_result(state, agent.result)
        logger.info("Sub-agent stop requested", agent_id=agent_id)

    def stop_all(self) -> int:
        """Stop every pending or running sub-agent; returns how many."""
        active = [state.agent_id for state in self._states.values() if not state.is_finished]
        for agent_id in active:
            self.stop(agent_id)
        return len(active)

    def clear_completed(self) -> int:
        """Evict finished agents; returns how many were removed."""
        finished = [state.agent_id for state in self._states.values() if state.is_finished]
        for agent_id in finished:
            self._states.pop(agent_id, None)
            self._agents.pop(agent_id, None)
            self._contexts.pop(agent_id, None)
        return len(finished)

    async def execute_parallel(self, tasks: Sequence[TaskSpec]) -> OrchestrationResult:
        """Spawn every task, then run them with at most max_parallel at once."""
        started = time.perf_counter()
        errors: list[str] = []
        agent_ids = [
            agent_id
            for _, agent_id in await self._spawn_all(tasks, errors)
            if agent_id is not None
        ]
        await self._execute_all(agent_ids)
        return self._aggregate(agent_ids, errors, started)

    async def execute_sequential(self, tasks: Sequence[TaskSpec]) -> OrchestrationResult:
        """Run tasks one at a time in order; every task is attempted."""
        started = time.perf_counter()
        errors: list[str] = []
        agent_ids: list[str] = []
        for spec in tasks:
            for _, agent_id in await self._spawn_all([spec], errors):
                if agent_id is None:
                    continue
                agent_ids.append(agent_id)
                await self._execute_all([agent_id])
        return self._aggregate(agent_ids, errors, started)

    async def execute_with_dependencies(self, tasks: Sequence[TaskSpec]) -> OrchestrationResult:
        """Run a task DAG in waves; each wave runs in parallel.

        A task is ready once every task it depends on has finished, whether
        that dependency succeeded or not. Unknown and circular dependencies
        are reported in ``errors``.
        """
        started = time.perf_counter()
        known = {spec.id for spec in tasks}
        errors = [
            f"Task {spec.id} depends on unknown task {dependency}"
            for spec in tasks
            for dependency in spec.depends_on
            if dependency not in known
        ]
        if errors:
            return OrchestrationResult(
                success=False, errors=errors, elapsed=time.perf_counter() - started
            )

        done: set[str] = set()
        remaining = list(tasks)
        agent_ids: list[str] = []
        while remaining:
            ready = [spec for spec in remaining if all(dep in done for dep in spec.depends_on)]
            if not ready:
                pending = ", ".join(spec.id for spec in remaining)
                errors.append(f"Circular dependency detected. Remaining tasks: {pending}")
                break

            wave = await self._spawn_all(ready, errors)
            wave_ids = [agent_id for _, agent_id in wave if agent_id is not None]
            await self._execute_all(wave_ids)
            agent_ids.extend(wave_ids)
            done.update(spec.id for spec, _ in wave)
            remaining = [spec for spec in remaining if spec.id not in done]

        return self._aggregate(agent_ids, errors, started)

    async def execute_loop(
        self,
        pattern: str | LoopPattern,
        task: str,
        config: AgentConfig | None = None,
    ) -> OrchestrationResult:
        """Run a sanctioned loop pattern as a nested loop body.

        Each iteration runs one agent per role of the pattern, in order. After
        every iteration the pattern's break condition is evaluated against
        the latest result per role; the loop ends on a break or after
        max_iterations. The loop detector's nested-loop counter is held for
        the whole run.

        Args:
            pattern: Registered pattern name or a LoopPattern.
            task: Task given to every agent, suffixed with the iteration.
            config: Base agent configuration; its role is replaced per step.

        Returns:
            OrchestrationResult over every agent the loop ran. Spawn denials
            and an unknown pattern name are reported in ``errors``.
        """
        started = time.perf_counter()
        if isinstance(pattern, str):
            loop = self._loop_detector.role_registry.get_loop_pattern(pattern)
            if loop is None:
                return OrchestrationResult(
                    success=False,
                    errors=[f"Unknown loop pattern: {pattern}"],
                    elapsed=time.perf_counter() - started,
                )
        else:
            loop = pattern

        safety = self._loop_detector.check_safety_limits()
        if not safety.safe:
            logger.warning("Loop denied by safety limits", pattern=loop.key, reason=safety.reason)
            return OrchestrationResult(
                success=False,
                errors=[f"Loop {loop.key}: {safety.reason}"],
                elapsed=time.perf_counter() - started,
            )

        base = config or AgentConfig()
        errors: list[str] = []
        agent_ids: list[str] = []
        self._loop_detector.enter_nested_loop()
        logger.info("Loop started", pattern=loop.key, max_iterations=loop.max_iterations)
        try:
            for iteration in range(1, loop.max_iterations + 1):
                for role in loop.pattern:
                    try:
                        spawned = await self.spawn(
                            f"{task} (iteration {iteration})",
                            base.model_copy(update={"role": role}),
                        )
                    except LoopLimitExceededError as e:
                        errors.append(f"Loop iteration {iteration}, role {role}: {e}")
                        continue
                    agent_ids.append(spawned.agent_id)
                    await self._execute_all([spawned.agent_id])

                if self._loop_detector.should_break(loop, self._workflow_context):
                    logger.info("Loop break condition met", pattern=loop.key, iteration=iteration)
                    break
        finally:
            self._loop_detector.exit_nested_loop()

        return self._aggregate(agent_ids, errors, started)

    async def _spawn_all(
        self, tasks: Sequence[TaskSpec], errors: list[str]
    ) -> list[tuple[TaskSpec, str | None]]:
        spawned: list[tuple[TaskSpec, str | None]] = []
        for spec in tasks:
            try:
                handle = await self.spawn(spec.task, spec.config, spec.context)
            except LoopLimitExceededError as e:
                errors.append(f"Task {spec.id}: {e}")
                spawned.append((spec, None))
            else:
                spawned.append((spec, handle.agent_id))
        return spawned

    async def _execute_all(self, agent_ids: Sequence[str]) -> None:
        outcomes = await asyncio.gather(
            *(self.execute(agent_id) for agent_id in agent_ids), return_exceptions=True
        )
        for agent_id, outcome in zip(agent_ids, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error("Sub-agent raised", agent_id=agent_id, error=str(outcome))

    def _aggregate(
        self, agent_ids: Sequence[str], errors: list[str], started: float
    ) -> OrchestrationResult:
        states = [self._states[agent_id].model_copy() for agent_id in agent_ids]
        errors = [
            *errors,
            *(
                f"Agent {state.agent_id}: {state.error or 'Agent execution failed'}"
                for state in states
                if state.status == SubAgentStatus.FAILED
            ),
        ]
        results = [state.result for state in states if state.result is not None]
        return OrchestrationResult(
            success=not errors
            and all(state.status == SubAgentStatus.COMPLETED for state in states),
            agents=states,
            total_duration=sum(result.duration for result in results),
            elapsed=time.perf_counter() - started,
            total_tokens=sum(result.total_tokens for result in results),
            total_cost=sum(result.total_cost for result in results),
            errors=errors,
        )

    def _require_state(self, agent_id: str) -> SubAgentState:
        state = self._states.get(agent_id)
        if state is None:
            raise AgentNotFoundError(agent_id)
        return state

    def _start(self, agent_id: str, context: AgentContext | None) -> asyncio.Task[AgentResult]:
        """Return the agent's run task, creating it on first use."""
        task = self._tasks.get(agent_id)
        if task is None:
            task = asyncio.create_task(
                self._run_agent(agent_id, context), name=f"sub-agent:{agent_id}"
            )
            self._tasks[agent_id] = task
            task.add_done_callback(partial(self._on_task_done, agent_id))
        return task

    def _on_task_done(self, agent_id: str, task: asyncio.Task[AgentResult]) -> None:
        self._tasks.pop(agent_id, None)
        if task.cancelled():
            state = self._states.get(agent_id)
            if state is not None and not state.is_finished:
                state.status = SubAgentStatus.FAILED
                state.error = "Execution cancelled"
                state.end_time = datetime.now(UTC)
            logger.warning("Sub-agent task cancelled", agent_id=agent_id)
        elif task.exception() is not None:
            logger.error("Sub-agent task failed", agent_id=agent_id, error=str(task.exception()))

    async def _wait_for(self, task: asyncio.Task[AgentResult]) -> AgentResult:
        """Await a run task, handing back the caller's slot while it waits.

        A sub-agent that waits on other agents (blocking delegation, or a
        parallel batch it started) is not executing, so its slot goes back to
        the pool until its last wait ends.
        """
        waiter = _running_agent.get()
        waits = self._waits.get(waiter, 0) if waiter is not None else 0
        if waiter is None or (waits == 0 and waiter not in self._slot_holders):
            return await asyncio.shield(task)

        if waits == 0:
            self._slot_holders.discard(waiter)
            self._semaphore.release()
        self._waits[waiter] = waits + 1
        try:
            return await asyncio.shield(task)
        finally:
            self._waits[waiter] -= 1
            if self._waits[waiter] == 0:
                del self._waits[waiter]
                await self._semaphore.acquire()
                self._slot_holders.add(waiter)

    @contextlib.asynccontextmanager
    async def _slot(self, agent_id: str) -> AsyncIterator[None]:
        """Hold one of the max_parallel execution slots."""
        await self._semaphore.acquire()
        self._slot_holders.add(agent_id)
        try:
            yield
        finally:
            # Not held if the reacquire in _wait_for was cancelled.
            if agent_id in self._slot_holders:
                self._slot_holders.discard(agent_id)
                self._semaphore.release()

    async def _run_agent(self, agent_id: str, context: AgentContext | None) -> AgentResult:
        _running_agent.set(agent_id)
        state = self._states[agent_id]
        agent = self._agents[agent_id]
        async with self._slot(agent_id):
            if state.result is not None:
                return state.result

            state.status = SubAgentStatus.RUNNING
            state.start_time = datetime.now(UTC)
            self._loop_detector.push_call(
                AgentCall(
                    agent_id=agent_id,
                    role=agent.role,
                    depth=self._loop_detector.current_depth(),
                    parent_id=state.parent_id,
                )
            )
            try:
                result = await agent.execute(state.task, context or self._contexts[agent_id])
            except Exception as e:
                state.status = SubAgentStatus.FAILED
                state.error = str(e)
                state.end_time = datetime.now(UTC)
                raise
            finally:
                self._loop_detector.pop_call(agent_id)

        self._record_result(state, result)
        self._workflow_context.agent_results[agent.role] = result
        return result

    def _record_result(self, state: SubAgentState, result: AgentResult | None) -> None:
        if result is None:
            return
        state.result = result
        state.end_time = datetime.now(UTC)
        if result.success:
            state.status = SubAgentStatus.COMPLETED
            state.error = None
        else:
            state.status = SubAgentStatus.FAILED
            state.error = result.error or "Agent execution failed"
        logger.info(
            "Sub-agent finished",
            agent_id=state.agent_id,
            status=state.status.value,
            tokens=result.total_tokens,
        )
