# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Mimir: the safety core of an autonomous coding-agent runtime."""

from mimir.config import load_settings
from mimir.core.agent import Agent
from mimir.main import app
from mimir.orchestration.orchestrator import AgentOrchestrator


__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentOrchestrator",
    "app",
    "load_settings",
    "__version__",
]
