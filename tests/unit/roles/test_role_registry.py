# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Tests for RoleRegistry and the default roles and loop patterns."""

import pytest
from pydantic import ValidationError

from mimir.core.constants import ToolName
from mimir.roles.registry import (
    RoleRegistry,
    register_default_loop_patterns,
    register_default_roles,
)
from mimir.roles.types import LoopPattern, RoleConfig


@pytest.fixture
def defaults() -> RoleRegistry:
    registry = RoleRegistry()
    register_default_roles(registry)
    register_default_loop_patterns(registry)
    return registry


def test_default_loop_patterns(defaults: RoleRegistry) -> None:
    ceilings = {name: pattern.max_iterations for name, pattern in defaults.loop_pattern_items()}

    assert ceilings == {
        "refactor-test-review": 5,
        "implement-test-fix": 5,
        "security-review-fix": 3,
    }


def test_default_roles(defaults: RoleRegistry) -> None:
    roles = {config.role for config in defaults.list()}

    assert {"finder", "thinker", "reviewer", "tester", "general"} <= roles
    assert defaults.has("finder")
    assert not defaults.has("wizard")
    assert defaults.get("wizard") is None


def test_registries_are_independent() -> None:
    first, second = RoleRegistry(), RoleRegistry()
    register_default_loop_patterns(first)

    assert second.list_loop_patterns() == []


class TestMatchLoopPattern:
    def test_tail_match(self, defaults: RoleRegistry) -> None:
        matched = defaults.match_loop_pattern(["finder", "refactoring", "tester", "reviewer"])

        assert matched is not None
        assert matched.key == "refactoring→tester→reviewer"

    def test_no_match(self, defaults: RoleRegistry) -> None:
        assert defaults.match_loop_pattern(["tester", "reviewer"]) is None

    def test_first_registered_wins(self) -> None:
        registry = RoleRegistry()
        registry.register_loop_pattern("long", LoopPattern(pattern=("a", "b", "c"), max_iterations=2))
        registry.register_loop_pattern("short", LoopPattern(pattern=("b", "c"), max_iterations=9))

        matched = registry.match_loop_pattern(["a", "b", "c"])

        assert matched is not None and matched.max_iterations == 2


class TestBreakConditions:
    def test_implement_test_fix_breaks_when_tests_pass(self, defaults: RoleRegistry) -> None:
        pattern = defaults.get_loop_pattern("implement-test-fix")

        assert pattern is not None
        assert pattern.should_break({"tester": {"success": False}}) is False
        assert pattern.should_break({"tester": {"success": True}}) is True

    def test_security_loop_needs_no_issues_and_approval(self, defaults: RoleRegistry) -> None:
        pattern = defaults.get_loop_pattern("security-review-fix")

        assert pattern is not None
        assert pattern.should_break({"security": {"issues": []}, "reviewer": {"approved": True}})
        assert not pattern.should_break({"security": {"issues": ["xss"]}, "reviewer": {"approved": True}})
        assert not pattern.should_break({})

    def test_pattern_without_condition_never_breaks(self) -> None:
        assert LoopPattern(pattern=("a",), max_iterations=1).should_break({"a": 1}) is False


def test_filter_tools_applies_allowed_and_forbidden() -> None:
    config = RoleConfig(
        role="refactoring",
        allowed_tools=(ToolName.READ_FILE, ToolName.WRITE_FILE, ToolName.RUN_SHELL_COMMAND),
        forbidden_tools=(ToolName.RUN_SHELL_COMMAND,),
    )
    names = ("run_shell_command", "write_file", "task", "read_file")

    assert config.filter_tools(names) == ("write_file", "read_file")


def test_loop_pattern_validation() -> None:
    with pytest.raises(ValidationError):
        LoopPattern(pattern=(), max_iterations=1)
    with pytest.raises(ValidationError):
        LoopPattern(pattern=("a",), max_iterations=0)
