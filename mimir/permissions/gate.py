# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Permission gate for privileged operations.

Responsibilities:
    - Assess risk of commands and paths
    - Apply blocklist, then allowlist, then the auto-accept threshold
    - Write exactly one audit entry per decision

Does NOT handle:
    - Prompting a human (the caller re-submits approved operations as
      allowlist entries)
    - Loading configuration (read live from the ConfigSource)
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict

from mimir.core.types import OperationType, RiskLevel
from mimir.ext.protocols import AuditLogEntry, AuditLogSink, ConfigSource
from mimir.permissions.risk import RiskAssessment, RiskAssessor


class PermissionRequest(BaseModel):
    """A privileged operation awaiting a decision.

    Attributes:
        type: Operation kind.
        command: Shell command, for bash operations.
        path: File path, for file operations.
        working_dir: Directory the operation runs in.
    """

    model_config = ConfigDict(frozen=True)

    type: OperationType
    command: str | None = None
    path: str | None = None
    working_dir: str | None = None

    @property
    def operation(self) -> str:
        """The literal operation string that is assessed and matched."""
        if self.command:
            return self.command
        if self.path:
            return self.path
        return ""


class PermissionResult(BaseModel):
    """Decision for a PermissionRequest."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str
    risk_level: RiskLevel
    assessment: RiskAssessment


class PermissionGate:
    """Decides allow/deny for privileged operations.

    Priority order, first match wins:
        1. Blocklist match: deny, regardless of risk or auto-accept
        2. Allowlist match: allow, regardless of risk
        3. Auto-accept enabled and risk <= accept level: allow
        4. Otherwise: deny as "requires approval"

    Lists and thresholds are read from the ConfigSource on every call.
    """

    def __init__(
        self,
        config_source: ConfigSource,
        audit_sink: AuditLogSink | None = None,
        risk_assessor: RiskAssessor | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            config_source: Live source of allow/block lists and permissions.
            audit_sink: Optional audit destination.
            risk_assessor: Assessor to use (default: RiskAssessor()).
        """
        self._config_source = config_source
        self._audit_sink = audit_sink
        self._risk_assessor = risk_assessor or RiskAssessor()

    @property
    def risk_assessor(self) -> RiskAssessor:
        return self._risk_assessor

    async def check_permission(self, request: PermissionRequest) -> PermissionResult:
        """Decide whether an operation may run.

        Args:
            request: Operation to check.

        Returns:
            PermissionResult with the decision and the full assessment.
        """
        operation = request.operation
        assessment = self._risk_assessor.assess(operation)
        level = assessment.level

        blocklist = await self._config_source.get_blocklist()
        if RiskAssessor.matches_any(operation, blocklist):
            return await self._decide(
                request,
                assessment,
                allowed=False,
                reason="Command is blocked by security policy",
                audit_reason="Blocked by policy",
            )

        allowlist = await self._config_source.get_allowlist()
        if RiskAssessor.matches_any(operation, allowlist):
            return await self._decide(
                request,
                assessment,
                allowed=True,
                reason="Command is in allowlist",
                audit_reason="In allowlist",
            )

        permissions = await self._config_source.get_permissions()
        if permissions.auto_accept and level.is_at_most(permissions.accept_risk_level):
            return await self._decide(
                request,
                assessment,
                allowed=True,
                reason=f"Auto-accepted (risk level: {level})",
                audit_reason=f"Auto-accepted (risk: {level})",
            )

        return await self._decide(
            request,
            assessment,
            allowed=False,
            reason=f"Command requires approval (risk level: {level})",
            audit_reason=f"Requires approval (risk: {level})",
        )

    async def record_execution(
        self,
        request: PermissionRequest,
        duration: float | None = None,
        exit_code: int | None = None,
        error: str | None = None,
    ) -> None:
        """Audit the outcome of an operation that was allowed to run.

        Args:
            request: The operation that ran.
            duration: Execution time in seconds.
            exit_code: Process exit code, if any.
            error: Error message, if the operation failed.
        """
        assessment = self._risk_assessor.assess(request.operation)
        await self._audit(
            request,
            result="allowed",
            risk_level=assessment.level,
            reason="Executed" if error is None else "Execution failed",
            duration=duration,
            exit_code=exit_code,
            error=error,
        )

    async def _decide(
        self,
        request: PermissionRequest,
        assessment: RiskAssessment,
        allowed: bool,
        reason: str,
        audit_reason: str,
    ) -> PermissionResult:
        await self._audit(
            request,
            result="allowed" if allowed else "denied",
            risk_level=assessment.level,
            reason=audit_reason,
        )
        logger.debug(
            "Permission decision",
            operation_type=request.type.value,
            allowed=allowed,
            risk_level=assessment.level.value,
        )
        return PermissionResult(
            allowed=allowed,
            reason=reason,
            risk_level=assessment.level,
            assessment=assessment,
        )

    async def _audit(
        self,
        request: PermissionRequest,
        result: Literal["allowed", "denied"],
        risk_level: RiskLevel,
        reason: str,
        duration: float | None = None,
        exit_code: int | None = None,
        error: str | None = None,
    ) -> None:
        """Write one audit entry; sink failures never affect the decision."""
        if self._audit_sink is None:
            return
        entry = AuditLogEntry(
            timestamp=datetime.now(UTC),
            type=request.type,
            operation=request.operation,
            result=result,
            risk_level=risk_level,
            reason=reason,
            duration=duration,
            exit_code=exit_code,
            error=error,
        )
        try:
            await self._audit_sink.log(entry)
        except Exception as e:
            logger.warning(
                "Audit sink failed: {error}",
                error=str(e),
                sink=type(self._audit_sink).__name__,
            )
