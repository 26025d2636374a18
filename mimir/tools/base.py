# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Tool contract shared by the registry and the built-in tools."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mimir.core.agent_state import AgentContext
from mimir.execution.base import Executor


if TYPE_CHECKING:
    from mimir.permissions.gate import PermissionRequest


class ToolResult(BaseModel):
    """Outcome of a tool call. Expected failures are results, never exceptions.

    Attributes:
        success: Whether the call succeeded.
        output: Tool output on success.
        error: Error message on failure.
        metadata: Extra data such as duration, exit code or risk level.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    output: Any = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, output: Any = None, **metadata: Any) -> ToolResult:
        return cls(success=True, output=output, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> ToolResult:
        return cls(success=False, error=error, metadata=metadata)


class ToolValidation(BaseModel):
    """Result of validating raw tool arguments: parsed data or an error."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    data: BaseModel | None = None
    error: str | None = None

    @property
    def valid(self) -> bool:
        return self.error is None


class ToolContext(BaseModel):
    """Per-call context handed to a tool.

    Attributes:
        executor: Side-effect collaborator for commands and files.
        agent_id: Calling agent.
        conversation_id: Conversation of the calling agent.
        working_dir: Default working directory for commands.
        metadata: Free-form data from the agent context.
        agent_context: Context of the calling agent, for sub-agent spawns.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    executor: Executor | None = None
    agent_id: str | None = None
    conversation_id: str | None = None
    working_dir: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    agent_context: AgentContext | None = None


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class Tool(ABC):
    """Base class for tools.

    Subclasses declare a unique ``name``, a ``description``, a pydantic
    ``args_schema`` and a static ``token_cost`` (prompt tokens the tool's
    schema consumes), then implement ``execute``.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    args_schema: ClassVar[type[BaseModel]]
    token_cost: ClassVar[int] = 100

    def validate(self, args: dict[str, Any]) -> ToolValidation:
        """Validate raw arguments against ``args_schema`` without raising."""
        try:
            return ToolValidation(data=self.args_schema.model_validate(args))
        except ValidationError as e:
            return ToolValidation(error=format_validation_error(e))

    def permission_request(self, args: Any) -> PermissionRequest | None:
        """Return the privileged operation these arguments perform, if any.

        Tools returning a request are checked by the PermissionGate before
        ``execute`` runs. The default is an ungated tool.
        """
        return None

    def schema(self) -> dict[str, Any]:
        """JSON schema of the tool for the model driver."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.args_schema.model_json_schema(),
        }

    @abstractmethod
    async def execute(self, args: Any, context: ToolContext) -> ToolResult:
        """Run the tool with validated arguments.

        Args:
            args: Instance of ``args_schema``.
            context: Per-call context.

        Returns:
            ToolResult; expected failures are returned, not raised.
        """
