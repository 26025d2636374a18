# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Risk assessment and permission gating for privileged operations.

Exports:
    RiskAssessor: Pure scorer mapping an operation string to a RiskAssessment.
    PermissionGate: Blocklist/allowlist/threshold decision with audit logging.
"""

from mimir.permissions.gate import (
    PermissionGate as PermissionGate,
    PermissionRequest as PermissionRequest,
    PermissionResult as PermissionResult,
)
from mimir.permissions.risk import (
    RiskAssessment as RiskAssessment,
    RiskAssessor as RiskAssessor,
)
