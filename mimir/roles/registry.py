# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Explicit registry of role defaults and sanctioned loop patterns.

There is no module-level instance: build one at process start, populate it
with register_default_roles / register_default_loop_patterns as needed, and
pass it to the LoopDetector and AgentFactory.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from typing import Any

from loguru import logger

from mimir.core.agent_state import AgentBudget
from mimir.core.constants import ToolName
from mimir.roles.types import LoopPattern, RoleConfig


class RoleRegistry:
    """Thread-safe holder of RoleConfigs and named LoopPatterns."""

    def __init__(self) -> None:
        self._roles: dict[str, RoleConfig] = {}
        self._loop_patterns: dict[str, LoopPattern] = {}
        self._lock = threading.Lock()

    def register(self, config: RoleConfig) -> None:
        """Register or replace the defaults for a role."""
        with self._lock:
            self._roles[config.role] = config

    def get(self, role: str) -> RoleConfig | None:
        with self._lock:
            return self._roles.get(role)

    def has(self, role: str) -> bool:
        with self._lock:
            return role in self._roles

    def list(self) -> list[RoleConfig]:
        with self._lock:
            return list(self._roles.values())

    def register_loop_pattern(self, name: str, pattern: LoopPattern) -> None:
        """Register or replace a named sanctioned loop pattern."""
        with self._lock:
            self._loop_patterns[name] = pattern
        logger.debug("Loop pattern registered", name=name, pattern=pattern.key)

    def get_loop_pattern(self, name: str) -> LoopPattern | None:
        with self._lock:
            return self._loop_patterns.get(name)

    def list_loop_patterns(self) -> list[LoopPattern]:
        with self._lock:
            return list(self._loop_patterns.values())

    def loop_pattern_items(self) -> list[tuple[str, LoopPattern]]:
        """Return (name, pattern) pairs in registration order."""
        with self._lock:
            return list(self._loop_patterns.items())

    def match_loop_pattern(self, sequence: Sequence[str]) -> LoopPattern | None:
        """Find the first registered pattern ending the given role sequence.

        A pattern matches when the tail of ``sequence`` with the pattern's
        length equals the pattern, so a loop keeps matching across iterations.

        Args:
            sequence: Recent roles, the candidate role last.

        Returns:
            The first matching LoopPattern in registration order, or None.
        """
        roles = tuple(sequence)
        for pattern in self.list_loop_patterns():
            size = len(pattern.pattern)
            if len(roles) >= size and roles[-size:] == pattern.pattern:
                return pattern
        return None


def _result_field(results: Mapping[str, Any], role: str, field: str) -> Any:
    """Read ``field`` from a role's result, whether a dict or a model."""
    value = results.get(role)
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value.get(field)
    return getattr(value, field, None)


def _tests_pass(results: Mapping[str, Any]) -> bool:
    return _result_field(results, "tester", "success") is True


def _tests_pass_and_approved(results: Mapping[str, Any]) -> bool:
    return _tests_pass(results) and _result_field(results, "reviewer", "approved") is True


def _secure_and_approved(results: Mapping[str, Any]) -> bool:
    issues = _result_field(results, "security", "issues")
    return (
        issues is not None
        and len(issues) == 0
        and _result_field(results, "reviewer", "approved") is True
    )


def register_default_loop_patterns(registry: RoleRegistry) -> None:
    """Register the standard sanctioned workflows."""
    registry.register_loop_pattern(
        "refactor-test-review",
        LoopPattern(
            pattern=("refactoring", "tester", "reviewer"),
            max_iterations=5,
            break_condition=_tests_pass_and_approved,
            description="Iterative refactoring with testing and review",
        ),
    )
    registry.register_loop_pattern(
        "implement-test-fix",
        LoopPattern(
            pattern=("thinker", "tester", "thinker"),
            max_iterations=5,
            break_condition=_tests_pass,
            description="Implement, test, fix cycle",
        ),
    )
    registry.register_loop_pattern(
        "security-review-fix",
        LoopPattern(
            pattern=("security", "reviewer", "thinker"),
            max_iterations=3,
            break_condition=_secure_and_approved,
            description="Security audit, review, fix cycle",
        ),
    )


_READ_ONLY = (ToolName.READ_FILE.value,)
_READ_WRITE = (ToolName.READ_FILE.value, ToolName.WRITE_FILE.value)
_READ_WRITE_SHELL = (*_READ_WRITE, ToolName.RUN_SHELL_COMMAND.value)


def register_default_roles(registry: RoleRegistry) -> None:
    """Register the standard roles with their tool access and budgets."""
    defaults = (
        RoleConfig(
            role="finder",
            description="Quick file searches and code navigation.",
            allowed_tools=_READ_ONLY,
            default_budget=AgentBudget(
                max_iterations=5, max_tokens=10_000, max_cost=0.05, max_duration=30
            ),
            system_prompt=(
                "You are a Finder agent. Locate files and code quickly. "
                "You have read-only access."
            ),
        ),
        RoleConfig(
            role="thinker",
            description="Deep reasoning and complex problem solving.",
            default_budget=AgentBudget(
                max_iterations=20, max_tokens=200_000, max_cost=5.0, max_duration=600
            ),
            system_prompt=(
                "You are a Thinker agent. Break complex problems down, weigh "
                "trade-offs and implement well-tested solutions."
            ),
        ),
        RoleConfig(
            role="librarian",
            description="API and documentation research.",
            allowed_tools=_READ_ONLY,
            default_budget=AgentBudget(
                max_iterations=10, max_tokens=50_000, max_cost=0.5, max_duration=120
            ),
        ),
        RoleConfig(
            role="refactoring",
            description="Code refactoring that preserves behavior.",
            allowed_tools=_READ_WRITE,
            forbidden_tools=(ToolName.RUN_SHELL_COMMAND.value,),
            default_budget=AgentBudget(
                max_iterations=15, max_tokens=100_000, max_cost=1.0, max_duration=300
            ),
            system_prompt=(
                "You are a Refactoring agent. Improve structure without changing "
                "behavior. You may not run shell commands."
            ),
        ),
        RoleConfig(
            role="reviewer",
            description="Code review and quality assessment.",
            allowed_tools=_READ_ONLY,
            default_budget=AgentBudget(
                max_iterations=10, max_tokens=80_000, max_cost=0.8, max_duration=180
            ),
        ),
        RoleConfig(
            role="tester",
            description="Test generation and execution.",
            allowed_tools=_READ_WRITE_SHELL,
            default_budget=AgentBudget(
                max_iterations=15, max_tokens=100_000, max_cost=1.0, max_duration=300
            ),
        ),
        RoleConfig(
            role="security",
            description="Security analysis and vulnerability detection.",
            allowed_tools=_READ_ONLY,
            default_budget=AgentBudget(
                max_iterations=10, max_tokens=80_000, max_cost=0.8, max_duration=180
            ),
        ),
        RoleConfig(
            role="rush",
            description="Quick, focused execution of well-defined tasks.",
            default_budget=AgentBudget(
                max_iterations=3, max_tokens=5_000, max_cost=0.02, max_duration=15
            ),
        ),
        RoleConfig(
            role="general",
            description="General purpose agent with balanced capabilities.",
            default_budget=AgentBudget(
                max_iterations=20, max_tokens=150_000, max_cost=2.0, max_duration=600
            ),
        ),
    )
    for config in defaults:
        registry.register(config)
