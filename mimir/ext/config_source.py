# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Settings-backed ConfigSource with live updates."""

from __future__ import annotations

from loguru import logger

from mimir.core.types import PermissionsConfig, Settings
from mimir.ext.protocols import ConfigSource


class SettingsConfigSource(ConfigSource):
    """Serves policy from an in-memory Settings object.

    ``update()`` swaps the settings atomically; the next read sees the new
    policy.
    """

    def __init__(self, settings: Settings | None = None, name: str = "settings") -> None:
        self.name = name
        self._settings = settings or Settings()

    def update(self, settings: Settings) -> None:
        """Replace the current settings.

        Args:
            settings: New settings to serve.
        """
        self._settings = settings
        logger.debug("Config source updated", source=self.name)

    async def get_config(self) -> Settings:
        return self._settings

    async def get_permissions(self) -> PermissionsConfig:
        return self._settings.permissions

    async def get_allowlist(self) -> list[str]:
        settings = self._settings
        return [
            *settings.permissions.always_accept_commands,
            *settings.enforcement.global_allowlist,
        ]

    async def get_blocklist(self) -> list[str]:
        return list(self._settings.enforcement.global_blocklist)

    async def is_model_allowed(self, model: str) -> bool:
        enforcement = self._settings.enforcement
        if model in enforcement.blocked_models:
            return False
        return not enforcement.allowed_models or model in enforcement.allowed_models

    async def is_provider_allowed(self, provider: str) -> bool:
        enforcement = self._settings.enforcement
        return not enforcement.allowed_providers or provider in enforcement.allowed_providers

    async def is_tool_allowed(self, tool_name: str) -> bool:
        enforcement = self._settings.enforcement
        if tool_name in enforcement.blocked_tools:
            return False
        return not enforcement.allowed_tools or tool_name in enforcement.allowed_tools
