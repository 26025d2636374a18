# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Reference-counted executor shared by concurrently running agents."""

from __future__ import annotations

import asyncio

from loguru import logger

from mimir.execution.base import ExecuteOptions, ExecuteResult, Executor


class SharedExecutor:
    """Wraps one Executor so that overlapping agent runs can share it.

    The wrapped executor is initialized when the first run starts and
    cleaned up when the last concurrent run ends. Every other call is passed
    through unchanged.
    """

    def __init__(self, executor: Executor) -> None:
        self._executor = executor
        self._users = 0
        self._lock = asyncio.Lock()

    @property
    def users(self) -> int:
        """Number of runs currently holding the executor."""
        return self._users

    @property
    def wrapped(self) -> Executor:
        return self._executor

    async def initialize(self) -> None:
        async with self._lock:
            if self._users == 0:
                await self._executor.initialize()
                logger.debug("Shared executor initialized", executor=type(self._executor).__name__)
            self._users += 1

    async def cleanup(self) -> None:
        async with self._lock:
            if self._users == 0:
                return
            self._users -= 1
            if self._users == 0:
                await self._executor.cleanup()
                logger.debug("Shared executor cleaned up", executor=type(self._executor).__name__)

    async def execute(
        self, command: str, options: ExecuteOptions | None = None
    ) -> ExecuteResult:
        return await self._executor.execute(command, options)

    async def read_file(self, path: str) -> str:
        return await self._executor.read_file(path)

    async def write_file(self, path: str, content: str) -> None:
        await self._executor.write_file(path, content)

    async def exists(self, path: str) -> bool:
        return await self._executor.exists(path)

    async def list_dir(self, path: str) -> list[str]:
        return await self._executor.list_dir(path)

    async def delete_file(self, path: str) -> None:
        await self._executor.delete_file(path)

    def get_cwd(self) -> str:
        return self._executor.get_cwd()
