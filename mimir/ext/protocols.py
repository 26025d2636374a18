# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Extension protocols for collaborators the core consumes.

These protocols define the audit sink and configuration source interfaces.
Core provides no-op and settings-backed implementations in mimir.ext.noop
and mimir.ext.config_source.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from mimir.core.types import OperationType, PermissionsConfig, RiskLevel, Settings


class AuditLogEntry(BaseModel):
    """Immutable record of one permission decision or permitted execution.

    Attributes:
        timestamp: When the decision was made.
        type: Operation kind.
        operation: The literal command or path.
        result: Whether the operation was allowed.
        risk_level: Assessed risk level.
        reason: Human-readable reason.
        duration: Execution duration in seconds, for execution records.
        exit_code: Process exit code, for execution records.
        error: Execution error, for execution records.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    type: OperationType
    operation: str
    result: Literal["allowed", "denied"]
    risk_level: RiskLevel
    reason: str
    duration: float | None = None
    exit_code: int | None = None
    error: str | None = None


@runtime_checkable
class AuditLogSink(Protocol):
    """Write-only destination for audit entries.

    Best effort: the core logs and discards any exception raised here.
    """

    async def log(self, entry: AuditLogEntry) -> None:
        """Record one entry.

        Args:
            entry: Audit entry to record.
        """
        ...


@runtime_checkable
class ConfigSource(Protocol):
    """Live source of policy settings.

    Consumers call these methods at check time, never caching the result, so
    policy updates apply to the next decision.
    """

    name: str

    async def get_config(self) -> Settings:
        """Return the current settings."""
        ...

    async def get_permissions(self) -> PermissionsConfig:
        """Return the current local permission preferences."""
        ...

    async def get_allowlist(self) -> list[str]:
        """Return merged allowlist patterns (local + enforcement)."""
        ...

    async def get_blocklist(self) -> list[str]:
        """Return enforcement blocklist patterns."""
        ...

    async def is_model_allowed(self, model: str) -> bool:
        """Check whether a model may be used."""
        ...

    async def is_provider_allowed(self, provider: str) -> bool:
        """Check whether a provider may be used."""
        ...

    async def is_tool_allowed(self, tool_name: str) -> bool:
        """Check whether a tool may be executed."""
        ...
