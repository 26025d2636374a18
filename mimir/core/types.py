# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Configuration and shared type definitions for the Mimir runtime.

Contains the ordered risk scale, privileged operation kinds and the Pydantic
settings models (PermissionsConfig, EnforcementConfig, LoopLimits,
OrchestrationConfig, Settings) read by the permission gate, tool registry,
loop detector and orchestrator.
"""
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from mimir.core.constants import (
    DEFAULT_MAX_LOOP_ITERATIONS,
    DEFAULT_MAX_NESTED_LOOPS,
    DEFAULT_MAX_NESTING_DEPTH,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_MAX_TOTAL_AGENTS,
)


class RiskLevel(StrEnum):
    """Severity of a privileged operation, ordered low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Position of this level on the ordered scale."""
        return _RISK_ORDER.index(self)

    def is_at_most(self, other: "RiskLevel") -> bool:
        """Return True if this level is at or below ``other``."""
        return self.rank <= RiskLevel(other).rank


_RISK_ORDER: tuple[RiskLevel, ...] = (
    RiskLevel.LOW,
    RiskLevel.MEDIUM,
    RiskLevel.HIGH,
    RiskLevel.CRITICAL,
)


class OperationType(StrEnum):
    """Kinds of privileged operation checked by the permission gate."""

    BASH = "bash"
    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    FILE_DELETE = "file_delete"


class PermissionsConfig(BaseModel):
    """Local permission preferences.

    Attributes:
        auto_accept: Allow operations at or below accept_risk_level without approval.
        accept_risk_level: Highest risk level that may be auto-accepted.
        always_accept_commands: User allowlist patterns.
    """

    model_config = ConfigDict(frozen=True)

    auto_accept: bool = False
    accept_risk_level: RiskLevel = RiskLevel.LOW
    always_accept_commands: tuple[str, ...] = ()


class EnforcementConfig(BaseModel):
    """Organisation-wide enforcement policy.

    Empty allow lists mean "no restriction"; block lists always apply.

    Attributes:
        allowed_models: Models that may be used.
        blocked_models: Models that may never be used.
        allowed_providers: Providers that may be used.
        global_allowlist: Operation patterns that are always allowed.
        global_blocklist: Operation patterns that are always denied.
        allowed_tools: Tools that may be executed.
        blocked_tools: Tools that may never be executed.
    """

    model_config = ConfigDict(frozen=True)

    allowed_models: tuple[str, ...] = ()
    blocked_models: tuple[str, ...] = ()
    allowed_providers: tuple[str, ...] = ()
    global_allowlist: tuple[str, ...] = ()
    global_blocklist: tuple[str, ...] = ()
    allowed_tools: tuple[str, ...] = ()
    blocked_tools: tuple[str, ...] = ()


class LoopLimits(BaseModel):
    """Hard ceilings enforced by the loop detector."""

    model_config = ConfigDict(frozen=True)

    max_total_agents: int = Field(default=DEFAULT_MAX_TOTAL_AGENTS, ge=1)
    max_nesting_depth: int = Field(default=DEFAULT_MAX_NESTING_DEPTH, ge=1)
    max_loop_iterations: int = Field(default=DEFAULT_MAX_LOOP_ITERATIONS, ge=1)
    max_nested_loops: int = Field(default=DEFAULT_MAX_NESTED_LOOPS, ge=1)


class OrchestrationConfig(BaseModel):
    """Orchestrator settings."""

    model_config = ConfigDict(frozen=True)

    max_parallel: int = Field(default=DEFAULT_MAX_PARALLEL, ge=1, le=64)


class Settings(BaseModel):
    """Top-level runtime settings.

    Attributes:
        permissions: Local permission preferences.
        enforcement: Organisation enforcement policy.
        loop_limits: Loop detector ceilings.
        orchestration: Orchestrator settings.
        log_level: Minimum loguru level for console output.
    """

    model_config = ConfigDict(frozen=True)

    permissions: PermissionsConfig = Field(default_factory=PermissionsConfig)
    enforcement: EnforcementConfig = Field(default_factory=EnforcementConfig)
    loop_limits: LoopLimits = Field(default_factory=LoopLimits)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    log_level: str = "INFO"
