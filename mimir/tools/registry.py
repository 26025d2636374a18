# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Registry of tools keyed by unique name.

Responsibilities:
    - Register, enable and disable tools
    - Validate arguments and consult the PermissionGate before side effects
    - Convert every failure into a ToolResult

Does NOT handle:
    - Choosing which tool to call (the agent's driver does)
    - Running commands or touching files (tools go through the Executor)
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from typing import Any

from loguru import logger

from mimir.core.exceptions import DuplicateToolError
from mimir.ext.protocols import ConfigSource
from mimir.permissions.gate import PermissionGate
from mimir.tools.base import Tool, ToolContext, ToolResult


class ToolRegistry:
    """Holds tool definitions and executes them behind validation and policy.

    Both collaborators are optional: without a config source no enforcement
    policy applies, and without a gate gated tools run unchecked.
    """

    def __init__(
        self,
        permission_gate: PermissionGate | None = None,
        config_source: ConfigSource | None = None,
    ) -> None:
        self._tools: dict[str, Tool] = {}
        self._disabled: set[str] = set()
        self._permission_gate = permission_gate
        self._config_source = config_source
        self._lock = threading.Lock()

    def register(self, tool: Tool, enabled: bool = True) -> None:
        """Register a tool.

        Raises:
            DuplicateToolError: If a tool with the same name is registered.
        """
        with self._lock:
            if tool.name in self._tools:
                raise DuplicateToolError(tool.name)
            self._tools[tool.name] = tool
            if not enabled:
                self._disabled.add(tool.name)
        logger.debug("Tool registered", tool=tool.name, enabled=enabled)

    def unregister(self, name: str) -> bool:
        """Remove a tool; returns False if it was not registered."""
        with self._lock:
            self._disabled.discard(name)
            return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.get(name)

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def list(self) -> list[Tool]:
        with self._lock:
            return list(self._tools.values())

    def list_enabled(self) -> list[Tool]:
        with self._lock:
            return [tool for name, tool in self._tools.items() if name not in self._disabled]

    def is_enabled(self, name: str) -> bool:
        with self._lock:
            return name in self._tools and name not in self._disabled

    def enable(self, name: str) -> None:
        with self._lock:
            self._disabled.discard(name)

    def disable(self, name: str) -> None:
        with self._lock:
            if name in self._tools:
                self._disabled.add(name)

    def clear(self) -> None:
        with self._lock:
            self._tools.clear()
            self._disabled.clear()

    def get_schemas(self, names: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """JSON schemas of enabled tools, optionally filtered by name."""
        return [tool.schema() for tool in self._select_enabled(names)]

    def get_total_token_cost(self, names: Iterable[str] | None = None) -> int:
        """Sum the declared token cost of enabled tools, optionally filtered."""
        return sum(tool.token_cost for tool in self._select_enabled(names))

    def _select_enabled(self, names: Iterable[str] | None) -> list[Tool]:
        enabled = self.list_enabled()
        if names is None:
            return enabled
        wanted = set(names)
        return [tool for tool in enabled if tool.name in wanted]

    async def execute(
        self,
        name: str,
        args: dict[str, Any],
        context: ToolContext | None = None,
    ) -> ToolResult:
        """Execute a tool by name.

        Never raises for runtime failures: unknown or disabled tools, policy
        blocks, invalid arguments, permission denials and exceptions from the
        tool itself all come back as ``ToolResult(success=False)``.

        Args:
            name: Tool name.
            args: Raw arguments from the model.
            context: Per-call context.

        Returns:
            ToolResult with ``duration`` merged into metadata when the tool ran.
        """
        context = context or ToolContext()
        tool = self.get(name)
        if tool is None:
            return ToolResult.fail(f"Tool '{name}' not found")
        if not self.is_enabled(name):
            return ToolResult.fail(f"Tool '{name}' is disabled")

        if self._config_source is not None and not await self._config_source.is_tool_allowed(
            name
        ):
            logger.info("Tool blocked by enforcement policy", tool=name)
            return ToolResult.fail(f"Tool '{name}' is not allowed by enforcement policy")

        validation = tool.validate(args)
        if not validation.valid:
            return ToolResult.fail(f"Invalid arguments for tool '{name}': {validation.error}")
        parsed = validation.data

        request = tool.permission_request(parsed)
        if request is not None and self._permission_gate is not None:
            decision = await self._permission_gate.check_permission(request)
            if not decision.allowed:
                return ToolResult.fail(
                    f"Permission denied: {decision.reason}",
                    risk_level=decision.risk_level.value,
                    risk_score=decision.assessment.score,
                    risk_reasons=list(decision.assessment.reasons),
                )

        start = time.perf_counter()
        try:
            result = await tool.execute(parsed, context)
        except Exception as e:
            logger.exception("Tool raised", tool=name)
            result = ToolResult.fail(f"Tool '{name}' failed: {e}")
        duration = time.perf_counter() - start

        if request is not None and self._permission_gate is not None:
            await self._permission_gate.record_execution(
                request,
                duration=duration,
                exit_code=result.metadata.get("exit_code"),
                error=result.error,
            )

        return result.model_copy(update={"metadata": {**result.metadata, "duration": duration}})
