# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Tests for ToolRegistry registration, dispatch and gating."""

from collections.abc import Callable

import pytest
from pydantic import BaseModel, Field

from mimir.core.exceptions import DuplicateToolError
from mimir.core.types import OperationType, RiskLevel
from mimir.ext.config_source import SettingsConfigSource
from mimir.permissions.gate import PermissionGate
from mimir.tools.base import Tool, ToolContext, ToolResult
from mimir.tools.registry import ToolRegistry


class EchoArgs(BaseModel):
    text: str = Field(min_length=1)
    times: int = 1


class EchoTool(Tool):
    name = "echo"
    description = "Echo text back."
    args_schema = EchoArgs
    token_cost = 10

    async def execute(self, args: EchoArgs, context: ToolContext) -> ToolResult:
        return ToolResult.ok(args.text * args.times, agent=context.agent_id)


class ExplodingTool(Tool):
    name = "explode"
    description = "Always raises."
    args_schema = EchoArgs
    token_cost = 5

    async def execute(self, args: EchoArgs, context: ToolContext) -> ToolResult:
        raise RuntimeError("kaboom")


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(EchoTool())
    registry.register(ExplodingTool())
    return registry


class TestRegistration:
    def test_duplicate_name_raises(self, registry: ToolRegistry) -> None:
        with pytest.raises(DuplicateToolError, match="echo"):
            registry.register(EchoTool())

    def test_lookup(self, registry: ToolRegistry) -> None:
        assert registry.has("echo")
        assert isinstance(registry.get("echo"), EchoTool)
        assert registry.get("missing") is None
        assert [tool.name for tool in registry.list()] == ["echo", "explode"]

    def test_unregister(self, registry: ToolRegistry) -> None:
        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False
        assert not registry.has("echo")

    def test_enable_disable(self, registry: ToolRegistry) -> None:
        registry.disable("echo")

        assert not registry.is_enabled("echo")
        assert [tool.name for tool in registry.list_enabled()] == ["explode"]

        registry.enable("echo")

        assert registry.is_enabled("echo")

    def test_register_disabled(self) -> None:
        registry = ToolRegistry()
        registry.register(EchoTool(), enabled=False)

        assert registry.has("echo") and not registry.is_enabled("echo")

    def test_clear(self, registry: ToolRegistry) -> None:
        registry.clear()

        assert registry.list() == []


class TestTokenCostAndSchemas:
    def test_total_cost_of_enabled_tools(self, registry: ToolRegistry) -> None:
        assert registry.get_total_token_cost() == 15
        assert registry.get_total_token_cost(["echo"]) == 10

        registry.disable("echo")

        assert registry.get_total_token_cost() == 5
        assert registry.get_total_token_cost(["echo"]) == 0

    def test_schemas_come_from_args_model(self, registry: ToolRegistry) -> None:
        (schema,) = registry.get_schemas(["echo"])

        assert schema["name"] == "echo"
        assert schema["parameters"]["required"] == ["text"]
        assert set(schema["parameters"]["properties"]) == {"text", "times"}


class TestExecute:
    """execute() never raises for runtime failures."""

    async def test_success_merges_duration(self, registry: ToolRegistry) -> None:
        result = await registry.execute("echo", {"text": "hi", "times": 2}, ToolContext(agent_id="a1"))

        assert result.success is True
        assert result.output == "hihi"
        assert result.metadata["agent"] == "a1"
        assert result.metadata["duration"] >= 0

    async def test_unknown_tool(self, registry: ToolRegistry) -> None:
        result = await registry.execute("missing", {})

        assert result.success is False
        assert result.error == "Tool 'missing' not found"

    async def test_disabled_tool(self, registry: ToolRegistry) -> None:
        registry.disable("echo")

        result = await registry.execute("echo", {"text": "hi"})

        assert result.success is False
        assert result.error == "Tool 'echo' is disabled"

    async def test_invalid_arguments(self, registry: ToolRegistry) -> None:
        result = await registry.execute("echo", {"text": "", "times": "many"})

        assert result.success is False
        assert result.error is not None
        assert result.error.startswith("Invalid arguments for tool 'echo':")
        assert "text" in result.error and "times" in result.error

    async def test_tool_exception_becomes_failure(self, registry: ToolRegistry) -> None:
        result = await registry.execute("explode", {"text": "x"})

        assert result.success is False
        assert result.error == "Tool 'explode' failed: kaboom"
        assert "duration" in result.metadata

    async def test_enforcement_policy_is_read_at_call_time(self, settings_factory) -> None:
        source = SettingsConfigSource()
        registry = ToolRegistry(config_source=source)
        registry.register(EchoTool())

        assert (await registry.execute("echo", {"text": "a"})).success is True

        source.update(settings_factory(blocked_tools=["echo"]))
        result = await registry.execute("echo", {"text": "a"})

        assert result.success is False
        assert "not allowed by enforcement policy" in (result.error or "")


class TestPermissionGating:
    async def test_denied_command_never_reaches_executor(
        self,
        tool_registry_factory: Callable[..., ToolRegistry],
        gate_factory: Callable[..., PermissionGate],
        fake_executor,
        audit_sink,
    ) -> None:
        registry = tool_registry_factory(permission_gate=gate_factory(auto_accept=True))

        result = await registry.execute(
            "run_shell_command", {"command": "rm -rf /"}, ToolContext(executor=fake_executor)
        )

        assert result.success is False
        assert result.error == "Permission denied: Command requires approval (risk level: critical)"
        assert result.metadata["risk_level"] == RiskLevel.CRITICAL.value
        assert result.metadata["risk_score"] == 100
        assert fake_executor.commands == []
        assert [entry.result for entry in audit_sink.entries] == ["denied"]

    async def test_allowed_command_is_audited_twice(
        self,
        tool_registry_factory: Callable[..., ToolRegistry],
        gate_factory: Callable[..., PermissionGate],
        fake_executor,
        audit_sink,
    ) -> None:
        """One decision entry, then one execution entry."""
        registry = tool_registry_factory(permission_gate=gate_factory(auto_accept=True))

        result = await registry.execute(
            "run_shell_command", {"command": "ls"}, ToolContext(executor=fake_executor)
        )

        assert result.success is True
        decision, execution = audit_sink.entries
        assert decision.reason.startswith("Auto-accepted")
        assert execution.reason == "Executed"
        assert execution.exit_code == 0
        assert execution.type == OperationType.BASH

    async def test_reads_are_not_gated(
        self,
        tool_registry_factory: Callable[..., ToolRegistry],
        gate_factory: Callable[..., PermissionGate],
        fake_executor,
        audit_sink,
    ) -> None:
        fake_executor.files["notes.txt"] = "hello"
        registry = tool_registry_factory(permission_gate=gate_factory())

        result = await registry.execute(
            "read_file", {"path": "notes.txt"}, ToolContext(executor=fake_executor)
        )

        assert result.success is True
        assert audit_sink.entries == []
