# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Executor protocol: the only path through which the core causes side effects."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


class ExecuteOptions(BaseModel):
    """Options for a single command execution.

    Attributes:
        cwd: Working directory.
        env: Additional environment variables.
        timeout: Timeout in seconds, enforced by the executor.
        stdin: Text piped to stdin.
    """

    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = None
    stdin: str | None = None


class ExecuteResult(BaseModel):
    """Result of a command execution."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float | None = None


@runtime_checkable
class Executor(Protocol):
    """Runs commands and file operations on behalf of tools.

    Native, Docker, devcontainer or cloud implementations live outside this
    package. ``initialize``/``cleanup`` bracket a whole agent run.
    """

    async def initialize(self) -> None:
        """Acquire resources (pull images, provision VMs, etc.)."""
        ...

    async def execute(
        self, command: str, options: ExecuteOptions | None = None
    ) -> ExecuteResult:
        """Execute a command."""
        ...

    async def read_file(self, path: str) -> str:
        """Read a text file."""
        ...

    async def write_file(self, path: str, content: str) -> None:
        """Write a text file, creating parent directories."""
        ...

    async def exists(self, path: str) -> bool:
        """Check whether a path exists."""
        ...

    async def list_dir(self, path: str) -> list[str]:
        """List directory entries."""
        ...

    async def delete_file(self, path: str) -> None:
        """Delete a file."""
        ...

    async def cleanup(self) -> None:
        """Release resources acquired by initialize()."""
        ...

    def get_cwd(self) -> str:
        """Return the executor's working directory."""
        ...
