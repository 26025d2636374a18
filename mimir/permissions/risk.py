# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Risk assessment for privileged operations with detailed explanations."""

import re
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field

from mimir.core.constants import (
    BARE_SUDO_PATTERN,
    BASE64_PATTERN,
    CHAIN_OPERATOR_PATTERN,
    CRITICAL_BREAKPOINT,
    CRITICAL_PATTERNS,
    CRITICAL_SCORE,
    ENV_EXPORT_PATTERN,
    EVAL_PATTERN,
    HIGH_BREAKPOINT,
    HIGH_PATTERNS,
    HIGH_SCORE,
    MAX_CHAINED_COMMANDS,
    MAX_OPERATION_LENGTH,
    MEDIUM_BREAKPOINT,
    MEDIUM_PATTERNS,
    MEDIUM_SCORE,
    NO_RISK_REASON,
    OUTPUT_SINK_PATTERN,
)
from mimir.core.types import RiskLevel


class RiskAssessment(BaseModel):
    """Classification of an operation.

    Attributes:
        level: Level derived from score by fixed breakpoints.
        reasons: Every matched explanation, in tier order.
        score: Maximum score across matched rules (0-100).
    """

    model_config = ConfigDict(frozen=True)

    level: RiskLevel
    reasons: tuple[str, ...]
    score: int = Field(ge=0, le=100)


_TIERS: tuple[tuple[tuple[tuple[re.Pattern[str], str], ...], int, str], ...] = (
    (CRITICAL_PATTERNS, CRITICAL_SCORE, "CRITICAL"),
    (HIGH_PATTERNS, HIGH_SCORE, "HIGH"),
    (MEDIUM_PATTERNS, MEDIUM_SCORE, "MEDIUM"),
)


class RiskAssessor:
    """Scores commands and paths against tiered patterns and heuristics.

    Stateless: ``assess`` is a pure function of its input. The final score is
    the maximum of every matched rule, never a sum, so a single severe match
    always maps to the same level.
    """

    def assess(self, operation: str) -> RiskAssessment:
        """Assess risk level and collect reasons.

        Args:
            operation: Command line or file path to assess.

        Returns:
            RiskAssessment with level, reasons and score.
        """
        reasons: list[str] = []
        max_score = 0

        for patterns, score, label in _TIERS:
            for pattern, reason in patterns:
                if pattern.search(operation):
                    reasons.append(f"{label}: {reason}")
                    max_score = max(max_score, score)

        for reason, score in self._assess_heuristics(operation):
            reasons.append(reason)
            max_score = max(max_score, score)

        max_score = min(max_score, 100)
        if not reasons:
            reasons.append(NO_RISK_REASON)

        return RiskAssessment(
            level=self.score_to_level(max_score),
            reasons=tuple(reasons),
            score=max_score,
        )

    @staticmethod
    def _assess_heuristics(operation: str) -> list[tuple[str, int]]:
        """Orthogonal checks that each carry their own score ceiling."""
        matches: list[tuple[str, int]] = []

        if len(operation) > MAX_OPERATION_LENGTH:
            matches.append(("Command is unusually long (possible obfuscation)", 30))

        chain_count = len(CHAIN_OPERATOR_PATTERN.findall(operation))
        if chain_count > MAX_CHAINED_COMMANDS:
            matches.append((f"Multiple chained commands ({chain_count} chains)", 40))

        if OUTPUT_SINK_PATTERN.search(operation):
            matches.append(("Output redirected (hiding results)", 20))

        if BARE_SUDO_PATTERN.search(operation):
            matches.append(("Elevated permissions without specific command", 60))

        if ENV_EXPORT_PATTERN.search(operation) and "PATH" in operation:
            matches.append(("Modifies PATH environment variable", 45))

        if BASE64_PATTERN.search(operation):
            matches.append(("Uses Base64 encoding (possible obfuscation)", 35))

        if EVAL_PATTERN.search(operation):
            matches.append(("Uses eval (dynamic code execution)", 65))

        return matches

    @staticmethod
    def score_to_level(score: int) -> RiskLevel:
        """Convert a numeric score to a risk level."""
        if score >= CRITICAL_BREAKPOINT:
            return RiskLevel.CRITICAL
        if score >= HIGH_BREAKPOINT:
            return RiskLevel.HIGH
        if score >= MEDIUM_BREAKPOINT:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    @staticmethod
    def matches_pattern(operation: str, pattern: str) -> bool:
        """Match an operation against one allow/block list pattern.

        Supported forms: exact string, ``prefix*`` wildcard, ``/regex/``.
        An invalid regex never matches.
        """
        if operation == pattern:
            return True

        if pattern.endswith("*"):
            prefix = pattern[:-1].strip()
            return operation.startswith(prefix)

        if len(pattern) > 1 and pattern.startswith("/") and pattern.endswith("/"):
            try:
                return re.search(pattern[1:-1], operation) is not None
            except re.error:
                return False

        return False

    @classmethod
    def matches_any(cls, operation: str, patterns: Iterable[str]) -> bool:
        """Return True if any pattern matches the operation."""
        return any(cls.matches_pattern(operation, pattern) for pattern in patterns)

    @staticmethod
    def get_summary(assessment: RiskAssessment) -> str:
        """Render a human-readable summary of an assessment."""
        lines = [
            f"Risk Level: {assessment.level.upper()} (score: {assessment.score}/100)",
            "",
            "Reasons:",
            *(f"  • {reason}" for reason in assessment.reasons),
        ]
        return "\n".join(lines)
