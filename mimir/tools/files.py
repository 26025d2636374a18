# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""File tools. Reads are ungated; writes are gated as file_write."""

from pydantic import BaseModel, Field

from mimir.core.constants import ToolName
from mimir.core.types import OperationType
from mimir.permissions.gate import PermissionRequest
from mimir.tools.base import Tool, ToolContext, ToolResult


MAX_READ_CHARS = 30_000
DEFAULT_READ_LINES = 2000
TRUNCATION_NOTICE = "\n\n[FILE TRUNCATED - Use offset/limit to read more]"


def _number_lines(lines: list[str], first_line: int) -> str:
    return "\n".join(f"{first_line + index}→{line}" for index, line in enumerate(lines))


class ReadFileArgs(BaseModel):
    """Arguments for read_file."""

    path: str = Field(min_length=1, description="Path to the file to read")
    offset: int | None = Field(
        default=None, ge=1, description="Line number to start reading from (1-indexed)"
    )
    limit: int | None = Field(default=None, ge=1, description="Maximum number of lines")


class ReadFileTool(Tool):
    """Reads a text file with line numbers; large files are truncated."""

    name = ToolName.READ_FILE.value
    description = (
        "Read file contents with line numbers. Use offset/limit to read a "
        "range of a large file."
    )
    args_schema = ReadFileArgs
    token_cost = 50

    async def execute(self, args: ReadFileArgs, context: ToolContext) -> ToolResult:
        if context.executor is None:
            return ToolResult.fail("Executor not available in context")

        try:
            content = await context.executor.read_file(args.path)
        except OSError as e:
            return ToolResult.fail(f"Failed to read file: {e}", path=args.path)

        if not content:
            return ToolResult.ok("", path=args.path, size=0, total_lines=0)

        lines = content.split("\n")
        if args.offset is not None or args.limit is not None:
            start = (args.offset or 1) - 1
            end = min(len(lines), start + (args.limit or DEFAULT_READ_LINES))
            selected = lines[start:end]
            return ToolResult.ok(
                _number_lines(selected, start + 1),
                path=args.path,
                total_lines=len(lines),
                start_line=start + 1,
                end_line=end,
                truncated=end < len(lines),
            )

        if len(content) > MAX_READ_CHARS:
            return ToolResult.ok(
                content[:MAX_READ_CHARS] + TRUNCATION_NOTICE,
                path=args.path,
                size=len(content),
                total_lines=len(lines),
                truncated=True,
            )

        return ToolResult.ok(
            _number_lines(lines, 1),
            path=args.path,
            size=len(content),
            total_lines=len(lines),
        )


class WriteFileArgs(BaseModel):
    """Arguments for write_file."""

    path: str = Field(min_length=1, description="Path to the file to write")
    content: str = Field(description="Content to write")


class WriteFileTool(Tool):
    """Writes a text file through the executor."""

    name = ToolName.WRITE_FILE.value
    description = "Write content to a file, replacing it if it exists."
    args_schema = WriteFileArgs
    token_cost = 60

    def permission_request(self, args: WriteFileArgs) -> PermissionRequest:
        return PermissionRequest(type=OperationType.FILE_WRITE, path=args.path)

    async def execute(self, args: WriteFileArgs, context: ToolContext) -> ToolResult:
        if context.executor is None:
            return ToolResult.fail("Executor not available in context")

        try:
            await context.executor.write_file(args.path, args.content)
        except OSError as e:
            return ToolResult.fail(f"Failed to write file: {e}", path=args.path)

        return ToolResult.ok(
            {"path": args.path, "bytes_written": len(args.content)},
            path=args.path,
            size=len(args.content),
        )
