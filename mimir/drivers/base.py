# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
from typing import Any, Protocol

from pydantic import BaseModel, Field


class DriverToolCall(BaseModel):
    """A tool call requested by the model."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class DriverUsage(BaseModel):
    """Token usage and cost reported for one model call."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class DriverResponse(BaseModel):
    """One model turn.

    Attributes:
        content: Text produced by the model.
        tool_calls: Tool calls requested, first one wins.
        finished: Model signalled that the task is complete.
        question: Clarifying question for the user, if any.
        usage: Reported usage; None counts as zero.
    """

    content: str = ""
    tool_calls: list[DriverToolCall] = Field(default_factory=list)
    finished: bool = False
    question: str | None = None
    usage: DriverUsage | None = None


class DriverInterface(Protocol):
    """Abstract interface for the model-call collaborator.

    The core never talks to an LLM provider directly. Provider clients and
    their streaming parsers live outside this package and adapt to this
    single-turn contract.
    """

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> DriverResponse:
        """Run one model turn.

        Args:
            messages: Conversation so far as role/content dicts.
            tools: JSON schemas of the tools the model may call.
            **kwargs: Driver-specific parameters (e.g., model, temperature).

        Returns:
            DriverResponse for this turn.
        """
        ...
