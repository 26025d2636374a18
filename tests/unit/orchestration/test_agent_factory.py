# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Tests for AgentFactory role defaults."""

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from mimir.core.agent_state import AgentBudget, AgentConfig
from mimir.orchestration.factory import AgentFactory
from mimir.roles.registry import RoleRegistry, register_default_roles
from mimir.roles.types import RoleConfig
from mimir.tools.registry import ToolRegistry


@pytest.fixture
def roles() -> RoleRegistry:
    registry = RoleRegistry()
    register_default_roles(registry)
    return registry


@pytest.fixture
def factory(tool_registry_factory: Callable[..., ToolRegistry], roles: RoleRegistry) -> AgentFactory:
    return AgentFactory(tool_registry_factory(), AsyncMock(), role_registry=roles)


def test_role_defaults_fill_unset_fields(factory: AgentFactory) -> None:
    agent = factory.create_agent(AgentConfig(role="finder"))

    assert agent.role == "finder"
    assert agent.config.system_prompt is not None
    assert agent.config.system_prompt.startswith("You are a Finder agent")
    assert agent.config.budget.max_iterations == 5
    assert agent.config.tools == ("read_file",)


def test_explicit_fields_win(factory: AgentFactory) -> None:
    config = AgentConfig(
        role="finder",
        system_prompt="Custom prompt",
        budget=AgentBudget(max_iterations=2),
    )

    resolved = factory.resolve_config(config)

    assert resolved.system_prompt == "Custom prompt"
    assert resolved.budget.max_iterations == 2


def test_role_narrows_requested_tools(factory: AgentFactory) -> None:
    resolved = factory.resolve_config(
        AgentConfig(role="refactoring", tools=("run_shell_command", "write_file"))
    )

    assert resolved.tools == ("write_file",)


def test_unknown_role_is_accepted_unchanged(factory: AgentFactory) -> None:
    config = AgentConfig(role="astronomer")

    assert factory.resolve_config(config) is config


def test_without_role_registry(tool_registry_factory: Callable[..., ToolRegistry]) -> None:
    factory = AgentFactory(tool_registry_factory(), AsyncMock())

    agent = factory.create_agent()

    assert agent.role == "general"
    assert agent.config.tools is None
    assert agent.id.startswith("agent-")


def test_model_override_wins_over_recommended_model(
    tool_registry_factory: Callable[..., ToolRegistry],
) -> None:
    roles = RoleRegistry()
    roles.register(RoleConfig(role="thinker", recommended_model="deep-model"))
    factory = AgentFactory(tool_registry_factory(), AsyncMock(), role_registry=roles, model_override="fast-model")

    assert factory.resolve_config(AgentConfig(role="thinker")).model == "fast-model"
    assert factory.resolve_config(AgentConfig(role="thinker", model="mine")).model == "mine"


def test_recommended_model_applies_without_override(factory: AgentFactory, roles: RoleRegistry) -> None:
    roles.register(RoleConfig(role="thinker", recommended_model="deep-model"))

    assert factory.resolve_config(AgentConfig(role="thinker")).model == "deep-model"


def test_agents_are_distinct(factory: AgentFactory) -> None:
    first, second = factory.create_agent(), factory.create_agent()

    assert first.id != second.id
    assert first.config == second.config
