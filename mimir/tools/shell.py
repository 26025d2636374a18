# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Shell command tool, gated as a bash operation."""

from pydantic import BaseModel, Field

from mimir.core.constants import ToolName
from mimir.core.types import OperationType
from mimir.execution.base import ExecuteOptions
from mimir.permissions.gate import PermissionRequest
from mimir.tools.base import Tool, ToolContext, ToolResult


DEFAULT_COMMAND_TIMEOUT = 30.0


class RunShellCommandArgs(BaseModel):
    """Arguments for run_shell_command."""

    command: str = Field(min_length=1, description="Shell command to execute")
    cwd: str | None = Field(default=None, description="Working directory")
    timeout: float = Field(
        default=DEFAULT_COMMAND_TIMEOUT, gt=0, description="Timeout in seconds"
    )


class RunShellCommandTool(Tool):
    """Runs a command through the executor.

    A nonzero exit code is a failed result carrying stdout, stderr and the
    exit code; the calling agent observes it and may recover.
    """

    name = ToolName.RUN_SHELL_COMMAND.value
    description = (
        "Execute a shell command. Prefer dedicated file tools for reading "
        "and writing files."
    )
    args_schema = RunShellCommandArgs
    token_cost = 90

    def permission_request(self, args: RunShellCommandArgs) -> PermissionRequest:
        return PermissionRequest(
            type=OperationType.BASH, command=args.command, working_dir=args.cwd
        )

    async def execute(self, args: RunShellCommandArgs, context: ToolContext) -> ToolResult:
        if context.executor is None:
            return ToolResult.fail("Executor not available in context")

        result = await context.executor.execute(
            args.command,
            ExecuteOptions(cwd=args.cwd or context.working_dir, timeout=args.timeout),
        )
        output = {
            "stdout": result.stdout,
            "stderr": result.stderr,
            "exit_code": result.exit_code,
        }
        if result.exit_code != 0:
            return ToolResult(
                success=False,
                output=output,
                error=f"Command exited with code {result.exit_code}: {result.stderr.strip()}",
                metadata={"command": args.command, "exit_code": result.exit_code},
            )
        return ToolResult.ok(output, command=args.command, exit_code=result.exit_code)
