# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Extension interfaces for collaborators consumed by the core.

Extension Points:
    - AuditLogSink: Receive one entry per permission decision
    - ConfigSource: Serve live allow/block lists and enforcement policy

Example:
    >>> from mimir.ext import SettingsConfigSource
    >>> source = SettingsConfigSource(settings)
    >>> gate = PermissionGate(source, audit_sink=my_sink)
"""

from mimir.ext.config_source import SettingsConfigSource
from mimir.ext.noop import NoopAuditSink
from mimir.ext.protocols import AuditLogEntry, AuditLogSink, ConfigSource


__all__ = [
    # Protocols
    "AuditLogSink",
    "ConfigSource",
    "AuditLogEntry",
    # Implementations
    "NoopAuditSink",
    "SettingsConfigSource",
]
