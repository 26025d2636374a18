# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Shared fixtures and fakes for all tests.

Factory fixtures build settings, permission gates, tool registries, agents
and orchestrators with sensible defaults. The fakes stand in for the
external collaborators (executor, model driver, audit sink).
"""
import asyncio
from collections.abc import Callable, Sequence
from typing import Any
from unittest.mock import AsyncMock

import pytest

from mimir.core.agent import Agent
from mimir.core.agent_state import AgentConfig
from mimir.core.types import (
    EnforcementConfig,
    LoopLimits,
    PermissionsConfig,
    RiskLevel,
    Settings,
)
from mimir.drivers.base import DriverResponse, DriverToolCall, DriverUsage
from mimir.execution.base import ExecuteOptions, ExecuteResult
from mimir.ext.config_source import SettingsConfigSource
from mimir.ext.protocols import AuditLogEntry
from mimir.orchestration.factory import AgentFactory
from mimir.orchestration.orchestrator import AgentOrchestrator
from mimir.permissions.gate import PermissionGate
from mimir.roles.loop_detector import LoopDetector
from mimir.roles.registry import RoleRegistry
from mimir.tools.files import ReadFileTool, WriteFileTool
from mimir.tools.registry import ToolRegistry
from mimir.tools.shell import RunShellCommandTool


class FakeExecutor:
    """In-memory Executor: files live in a dict, commands return canned results."""

    def __init__(
        self,
        files: dict[str, str] | None = None,
        results: dict[str, ExecuteResult] | None = None,
    ) -> None:
        self.files = dict(files or {})
        self.results = dict(results or {})
        self.commands: list[tuple[str, ExecuteOptions | None]] = []
        self.initialized = 0
        self.cleaned_up = 0

    async def initialize(self) -> None:
        self.initialized += 1

    async def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        self.commands.append((command, options))
        return self.results.get(command, ExecuteResult(exit_code=0, stdout=f"ran {command}"))

    async def read_file(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def write_file(self, path: str, content: str) -> None:
        self.files[path] = content

    async def exists(self, path: str) -> bool:
        return path in self.files

    async def list_dir(self, path: str) -> list[str]:
        prefix = path.rstrip("/") + "/"
        return sorted(name[len(prefix):] for name in self.files if name.startswith(prefix))

    async def delete_file(self, path: str) -> None:
        self.files.pop(path, None)

    async def cleanup(self) -> None:
        self.cleaned_up += 1

    def get_cwd(self) -> str:
        return "/workspace"


class ScriptedDriver:
    """Model driver replaying a fixed list of responses.

    The last response repeats once the script runs out. When ``release`` is
    set, every call waits on it first, so tests can hold agents mid-step.
    """

    def __init__(
        self,
        responses: Sequence[DriverResponse],
        release: asyncio.Event | None = None,
    ) -> None:
        self.responses = list(responses)
        self.release = release
        self.calls: list[dict[str, Any]] = []
        self.started = asyncio.Event()

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> DriverResponse:
        self.calls.append({"messages": messages, "tools": tools, **kwargs})
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return self.responses[index]


class RecordingAuditSink:
    """Audit sink keeping every entry in call order."""

    def __init__(self) -> None:
        self.entries: list[AuditLogEntry] = []

    async def log(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)


@pytest.fixture
def response_factory() -> Callable[..., DriverResponse]:
    """Factory for DriverResponse instances.

    ``tool`` builds a tool call, ``finish`` sets the finish flag, and
    ``tokens``/``cost`` set the reported usage.
    """
    def _create(
        content: str = "",
        tool: str | None = None,
        args: dict[str, Any] | None = None,
        finish: bool = False,
        question: str | None = None,
        tokens: int = 10,
        cost: float = 0.01,
    ) -> DriverResponse:
        tool_calls = [DriverToolCall(name=tool, arguments=args or {})] if tool else []
        return DriverResponse(
            content=content,
            tool_calls=tool_calls,
            finished=finish,
            question=question,
            usage=DriverUsage(input_tokens=tokens // 2, output_tokens=tokens - tokens // 2, cost_usd=cost),
        )
    return _create


@pytest.fixture
def finish_response(response_factory: Callable[..., DriverResponse]) -> DriverResponse:
    return response_factory("Task completed: all done", finish=True)


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def failing_audit_sink() -> AsyncMock:
    """Audit sink whose log() always raises."""
    sink = AsyncMock()
    sink.log.side_effect = RuntimeError("audit backend down")
    return sink


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Factory for Settings with permissions and enforcement shortcuts."""
    def _create(
        auto_accept: bool = False,
        accept_risk_level: RiskLevel = RiskLevel.LOW,
        always_accept_commands: Sequence[str] = (),
        global_allowlist: Sequence[str] = (),
        global_blocklist: Sequence[str] = (),
        blocked_tools: Sequence[str] = (),
        allowed_tools: Sequence[str] = (),
        loop_limits: LoopLimits | None = None,
    ) -> Settings:
        return Settings(
            permissions=PermissionsConfig(
                auto_accept=auto_accept,
                accept_risk_level=accept_risk_level,
                always_accept_commands=tuple(always_accept_commands),
            ),
            enforcement=EnforcementConfig(
                global_allowlist=tuple(global_allowlist),
                global_blocklist=tuple(global_blocklist),
                blocked_tools=tuple(blocked_tools),
                allowed_tools=tuple(allowed_tools),
            ),
            loop_limits=loop_limits or LoopLimits(),
        )
    return _create


@pytest.fixture
def gate_factory(
    settings_factory: Callable[..., Settings],
    audit_sink: RecordingAuditSink,
) -> Callable[..., PermissionGate]:
    """Factory for PermissionGate backed by a SettingsConfigSource.

    Keyword arguments go to settings_factory. The recording audit_sink
    fixture is used unless ``sink`` is given.
    """
    def _create(sink: Any = None, **settings_kwargs: Any) -> PermissionGate:
        source = SettingsConfigSource(settings_factory(**settings_kwargs))
        return PermissionGate(source, audit_sink=sink if sink is not None else audit_sink)
    return _create


@pytest.fixture
def tool_registry_factory() -> Callable[..., ToolRegistry]:
    """Factory for a ToolRegistry holding the file and shell tools."""
    def _create(
        permission_gate: PermissionGate | None = None,
        config_source: SettingsConfigSource | None = None,
    ) -> ToolRegistry:
        registry = ToolRegistry(permission_gate=permission_gate, config_source=config_source)
        registry.register(ReadFileTool())
        registry.register(WriteFileTool())
        registry.register(RunShellCommandTool())
        return registry
    return _create


@pytest.fixture
def agent_factory(
    tool_registry_factory: Callable[..., ToolRegistry],
    fake_executor: FakeExecutor,
) -> Callable[..., Agent]:
    """Factory for an Agent driven by a ScriptedDriver."""
    def _create(
        responses: Sequence[DriverResponse],
        config: AgentConfig | None = None,
        registry: ToolRegistry | None = None,
        release: asyncio.Event | None = None,
    ) -> Agent:
        return Agent(
            config or AgentConfig(),
            ScriptedDriver(responses, release=release),
            registry or tool_registry_factory(),
            executor=fake_executor,
        )
    return _create


@pytest.fixture
def orchestrator_factory(
    tool_registry_factory: Callable[..., ToolRegistry],
    fake_executor: FakeExecutor,
    finish_response: DriverResponse,
) -> Callable[..., AgentOrchestrator]:
    """Factory for an AgentOrchestrator with a shared scripted driver.

    ``driver`` overrides the default driver that finishes on its first step.
    ``role_registry`` feeds both the loop detector and the agent factory.
    """
    def _create(
        driver: Any = None,
        max_parallel: int = 4,
        role_registry: RoleRegistry | None = None,
        loop_limits: LoopLimits | None = None,
        registry: ToolRegistry | None = None,
    ) -> AgentOrchestrator:
        roles = role_registry or RoleRegistry()
        factory = AgentFactory(
            registry or tool_registry_factory(),
            driver or ScriptedDriver([finish_response]),
            executor=fake_executor,
            role_registry=roles,
        )
        return AgentOrchestrator(
            factory,
            loop_detector=LoopDetector(roles, loop_limits),
            max_parallel=max_parallel,
        )
    return _create
