# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Driver interface for model interaction."""

from mimir.drivers.base import (
    DriverInterface,
    DriverResponse,
    DriverToolCall,
    DriverUsage,
)


__all__ = [
    "DriverInterface",
    "DriverResponse",
    "DriverToolCall",
    "DriverUsage",
]
