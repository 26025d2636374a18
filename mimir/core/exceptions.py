# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Custom exceptions for Mimir.

Only API misuse raises. Policy denials, validation failures and budget
exhaustion are returned as ordinary result objects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from mimir.roles.types import LoopInfo


class MimirError(Exception):
    """Base exception for all Mimir errors."""

    pass


class ConfigurationError(MimirError):
    """Raised when required configuration is missing or invalid."""

    pass


class SecurityError(MimirError):
    """Raised when a security constraint is violated."""

    pass


class LoopLimitExceededError(SecurityError):
    """Raised when a spawn is denied by loop detection or safety ceilings.

    Attributes:
        reason: Human-readable reason for the denial.
        loop_info: Loop detection result that caused the denial, if any.
    """

    def __init__(self, reason: str, loop_info: LoopInfo | None = None) -> None:
        """Initialize LoopLimitExceededError.

        Args:
            reason: Human-readable reason for the denial.
            loop_info: Loop detection result that caused the denial (optional).
        """
        self.reason = reason
        self.loop_info = loop_info
        super().__init__(f"Loop limit exceeded: {reason}")


class DuplicateToolError(MimirError):
    """Raised when a tool name is registered twice."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is already registered")


class AgentNotFoundError(MimirError):
    """Raised when an orchestrator operation references an unknown agent."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found")


class InvalidSnapshotError(MimirError):
    """Raised when resume() is called without a usable prior snapshot."""

    pass


class AgentBusyError(MimirError):
    """Raised when a running agent is resumed or reconfigured."""

    pass
