# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""No-op default implementations of extension protocols."""

from __future__ import annotations

from mimir.ext.protocols import AuditLogEntry, AuditLogSink


class NoopAuditSink(AuditLogSink):
    """No-op audit sink that discards all entries."""

    async def log(self, entry: AuditLogEntry) -> None:
        """Discard the entry."""
        pass
