# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Builds agents from configs, applying role defaults."""

from loguru import logger

from mimir.core.agent import Agent
from mimir.core.agent_state import AgentConfig
from mimir.drivers.base import DriverInterface
from mimir.execution.base import Executor
from mimir.execution.shared import SharedExecutor
from mimir.roles.registry import RoleRegistry
from mimir.tools.registry import ToolRegistry


class AgentFactory:
    """Creates Agents sharing one driver, tool registry and executor.

    When a role registry is given, the config's role fills in what the config
    leaves unset: system prompt, model and budget. The role's allowed and
    forbidden tools always narrow the agent's tool set.

    The executor is wrapped in a SharedExecutor, so it stays initialized
    while any agent built here is still running.
    """

    def __init__(
        self,
        tool_registry: ToolRegistry,
        driver: DriverInterface,
        executor: Executor | None = None,
        role_registry: RoleRegistry | None = None,
        model_override: str | None = None,
    ) -> None:
        self._tool_registry = tool_registry
        self._driver = driver
        self._executor = SharedExecutor(executor) if executor is not None else None
        self._role_registry = role_registry
        self._model_override = model_override

    @property
    def tool_registry(self) -> ToolRegistry:
        return self._tool_registry

    def create_agent(self, config: AgentConfig | None = None) -> Agent:
        """Create an agent for a config.

        Args:
            config: Agent configuration (default: AgentConfig()).

        Returns:
            A new idle Agent.
        """
        config = self.resolve_config(config or AgentConfig())
        agent = Agent(config, self._driver, self._tool_registry, self._executor)
        logger.debug("Agent created", agent_id=agent.id, role=config.role, model=config.model)
        return agent

    def resolve_config(self, config: AgentConfig) -> AgentConfig:
        """Apply the model override and role defaults to a config."""
        updates: dict[str, object] = {}
        if config.model is None and self._model_override is not None:
            updates["model"] = self._model_override

        role_config = self._role_registry.get(config.role) if self._role_registry else None
        if role_config is not None:
            if config.system_prompt is None and role_config.system_prompt is not None:
                updates["system_prompt"] = role_config.system_prompt
            if "model" not in updates and config.model is None:
                updates["model"] = role_config.recommended_model
            if "budget" not in config.model_fields_set and role_config.default_budget:
                updates["budget"] = role_config.default_budget
            if role_config.allowed_tools is not None or role_config.forbidden_tools:
                names = (
                    config.tools
                    if config.tools is not None
                    else tuple(tool.name for tool in self._tool_registry.list())
                )
                updates["tools"] = role_config.filter_tools(names)

        if not updates:
            return config
        return config.model_copy(update=updates)
