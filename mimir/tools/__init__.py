# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
from mimir.tools.base import (
    Tool as Tool,
    ToolContext as ToolContext,
    ToolResult as ToolResult,
    ToolValidation as ToolValidation,
)
from mimir.tools.files import ReadFileTool as ReadFileTool, WriteFileTool as WriteFileTool
from mimir.tools.registry import ToolRegistry as ToolRegistry
from mimir.tools.shell import RunShellCommandTool as RunShellCommandTool
from mimir.tools.task import (
    AgentSpawner as AgentSpawner,
    SpawnedAgent as SpawnedAgent,
    TaskTool as TaskTool,
)
