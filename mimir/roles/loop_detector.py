# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Loop and recursion detection over the live agent call stack.

Distinguishes sanctioned repeating workflows (registered LoopPatterns) from
accidental cycles, and enforces hard ceilings on agent count, nesting depth,
loop iterations and concurrently nested loops.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence

from loguru import logger

from mimir.core.constants import (
    DEFAULT_MAX_LOOP_ITERATIONS,
    DEFAULT_MAX_NESTED_LOOPS,
    DEFAULT_MAX_NESTING_DEPTH,
    DEFAULT_MAX_TOTAL_AGENTS,
    LOOP_KEY_SEPARATOR,
    RECENT_ROLE_WINDOW,
)
from mimir.core.types import LoopLimits
from mimir.roles.registry import RoleRegistry
from mimir.roles.types import (
    AgentCall,
    LoopDetectorStats,
    LoopInfo,
    LoopPattern,
    SafetyCheck,
    WorkflowContext,
)


ACCIDENTAL_LOOP_REASON = "Accidental infinite loop detected (cycle in call graph)"


def count_occurrences(sequence: Sequence[str], subsequence: Sequence[str]) -> int:
    """Count greedy, non-overlapping, left-to-right occurrences.

    After a match the scan resumes right after the matched window; otherwise
    it advances by one. A trailing partial window never counts.

    Example:
        >>> count_occurrences(["a", "b", "a", "b", "a"], ["a", "b"])
        2
        >>> count_occurrences(["a", "a", "a"], ["a", "a"])
        1
    """
    size = len(subsequence)
    if size == 0:
        return 0
    target = tuple(subsequence)
    count = 0
    index = 0
    while index <= len(sequence) - size:
        if tuple(sequence[index : index + size]) == target:
            count += 1
            index += size
        else:
            index += 1
    return count


def find_cycle(roles: Sequence[str]) -> tuple[str, ...] | None:
    """Find the shortest repeating unit at the end of a role sequence.

    For lengths 2 up to half the sequence, the last L roles are compared to
    the L roles before them; the first equal pair is the cycle.
    """
    for length in range(2, len(roles) // 2 + 1):
        last = tuple(roles[-length:])
        previous = tuple(roles[-2 * length : -length])
        if last == previous:
            return last
    return None


def _pattern_key(pattern: Sequence[str]) -> str:
    return LOOP_KEY_SEPARATOR.join(pattern)


class LoopDetector:
    """Tracks the live call stack and decides whether a spawn may proceed.

    All state is guarded by one lock held only for the O(depth) read or
    mutation, never across a tool call or an await.
    """

    def __init__(
        self,
        role_registry: RoleRegistry,
        limits: LoopLimits | None = None,
    ) -> None:
        """Initialize the detector.

        Args:
            role_registry: Source of sanctioned loop patterns.
            limits: Hard ceilings (defaults: 50 agents, depth 10,
                10 loop iterations, 3 nested loops).
        """
        self._role_registry = role_registry
        self._limits = limits or LoopLimits(
            max_total_agents=DEFAULT_MAX_TOTAL_AGENTS,
            max_nesting_depth=DEFAULT_MAX_NESTING_DEPTH,
            max_loop_iterations=DEFAULT_MAX_LOOP_ITERATIONS,
            max_nested_loops=DEFAULT_MAX_NESTED_LOOPS,
        )
        self._call_stack: list[AgentCall] = []
        self._loop_iterations: dict[str, int] = {}
        self._nested_loop_count = 0
        self._lock = threading.Lock()

    @property
    def limits(self) -> LoopLimits:
        return self._limits

    @property
    def role_registry(self) -> RoleRegistry:
        return self._role_registry

    def push_call(self, call: AgentCall) -> None:
        """Push an agent onto the call stack when it starts running."""
        with self._lock:
            self._call_stack.append(call)

    def pop_call(self, agent_id: str | None = None) -> AgentCall | None:
        """Pop an agent from the call stack when it ends.

        Args:
            agent_id: Remove the most recent call for this agent. When None,
                the top of the stack is removed.

        Returns:
            The removed call, or None if nothing matched.
        """
        with self._lock:
            if agent_id is None:
                return self._call_stack.pop() if self._call_stack else None
            for index in range(len(self._call_stack) - 1, -1, -1):
                if self._call_stack[index].agent_id == agent_id:
                    return self._call_stack.pop(index)
            return None

    def get_call_stack(self) -> list[AgentCall]:
        """Return a copy of the call stack, oldest first."""
        with self._lock:
            return list(self._call_stack)

    def current_depth(self) -> int:
        with self._lock:
            return len(self._call_stack)

    def detect_loop(
        self, role: str, context: WorkflowContext | None = None
    ) -> LoopInfo | None:
        """Check whether spawning ``role`` now would form a loop.

        Args:
            role: Role of the candidate agent.
            context: Workflow context (reserved for break conditions).

        Returns:
            LoopInfo for a sanctioned pattern or an accidental cycle, or None
            when the spawn shows no loop signal.
        """
        with self._lock:
            roles = [call.role for call in self._call_stack]
            loop_iterations = dict(self._loop_iterations)

        recent = [*roles[-RECENT_ROLE_WINDOW:], role]
        matched = self._role_registry.match_loop_pattern(recent)
        if matched is not None:
            current_iteration = loop_iterations.get(matched.key, 0) + 1
            is_allowed = current_iteration <= matched.max_iterations
            return LoopInfo(
                pattern=matched.pattern,
                current_iteration=current_iteration,
                is_allowed=is_allowed,
                reason=None
                if is_allowed
                else f"Loop exceeded maximum iterations ({matched.max_iterations})",
                sanctioned=True,
            )

        sequence = [*roles, role]
        cycle = find_cycle(sequence)
        if cycle is not None:
            logger.warning(
                "Accidental loop detected",
                cycle=_pattern_key(cycle),
                role=role,
            )
            return LoopInfo(
                pattern=cycle,
                current_iteration=count_occurrences(sequence, cycle),
                is_allowed=False,
                reason=ACCIDENTAL_LOOP_REASON,
            )

        return None

    def is_loop_allowed(self, loop_info: LoopInfo) -> bool:
        """Apply the hard gates to a loop signal.

        Denies when the stack holds max_total_agents or more, the depth is at
        max_nesting_depth or more, the loop itself is not allowed, or the
        iteration is past max_loop_iterations.
        """
        with self._lock:
            stack_size = len(self._call_stack)
        if stack_size >= self._limits.max_total_agents:
            return False
        if stack_size >= self._limits.max_nesting_depth:
            return False
        if not loop_info.is_allowed:
            return False
        return loop_info.current_iteration <= self._limits.max_loop_iterations

    def increment_loop(self, pattern: Sequence[str]) -> int:
        """Record one more iteration of a pattern and return the new count."""
        key = _pattern_key(pattern)
        with self._lock:
            count = self._loop_iterations.get(key, 0) + 1
            self._loop_iterations[key] = count
        return count

    def reset_loop(self, pattern: Sequence[str]) -> None:
        with self._lock:
            self._loop_iterations.pop(_pattern_key(pattern), None)

    def get_loop_count(self, pattern: Sequence[str]) -> int:
        with self._lock:
            return self._loop_iterations.get(_pattern_key(pattern), 0)

    def should_break(self, pattern: LoopPattern, context: WorkflowContext) -> bool:
        """Evaluate a pattern's break condition against the workflow results."""
        return pattern.should_break(context.agent_results)

    def check_safety_limits(self) -> SafetyCheck:
        """Check the ceilings independent of any candidate role."""
        with self._lock:
            stack_size = len(self._call_stack)
            nested_loops = self._nested_loop_count

        if stack_size >= self._limits.max_total_agents:
            return SafetyCheck(
                safe=False,
                reason=f"Maximum total agents reached ({self._limits.max_total_agents})",
            )
        if stack_size >= self._limits.max_nesting_depth:
            return SafetyCheck(
                safe=False,
                reason=f"Maximum nesting depth reached ({self._limits.max_nesting_depth})",
            )
        if nested_loops >= self._limits.max_nested_loops:
            return SafetyCheck(
                safe=False,
                reason=f"Maximum nested loops reached ({self._limits.max_nested_loops})",
            )
        return SafetyCheck(safe=True)

    def enter_nested_loop(self) -> None:
        with self._lock:
            self._nested_loop_count += 1

    def exit_nested_loop(self) -> None:
        """Leave a sanctioned loop body; the counter never drops below zero."""
        with self._lock:
            self._nested_loop_count = max(0, self._nested_loop_count - 1)

    def reset(self) -> None:
        """Clear the call stack, iteration counters and nested-loop count."""
        with self._lock:
            self._call_stack.clear()
            self._loop_iterations.clear()
            self._nested_loop_count = 0

    def get_stats(self) -> LoopDetectorStats:
        with self._lock:
            return LoopDetectorStats(
                total_agents=len(self._call_stack),
                current_depth=len(self._call_stack),
                nested_loops=self._nested_loop_count,
                active_loops=len(self._loop_iterations),
                loop_counts=dict(self._loop_iterations),
            )

    def format_call_stack(self) -> str:
        """Render the call stack, indented by depth, for debugging."""
        lines = [
            f"{'  ' * call.depth}{index}. {call.role} ({call.agent_id})"
            for index, call in enumerate(self.get_call_stack())
        ]
        return "\n".join(lines)
