# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Constants used across the Mimir codebase."""

import re
from enum import StrEnum


class ToolName(StrEnum):
    """Names of the built-in tools."""

    RUN_SHELL_COMMAND = "run_shell_command"
    WRITE_FILE = "write_file"
    READ_FILE = "read_file"
    TASK = "task"


# Score assigned to each pattern tier
CRITICAL_SCORE = 100
HIGH_SCORE = 75
MEDIUM_SCORE = 50

# Score breakpoints for deriving a level (score >= breakpoint)
CRITICAL_BREAKPOINT = 80
HIGH_BREAKPOINT = 60
MEDIUM_BREAKPOINT = 30

NO_RISK_REASON = "No specific risks detected"

# System-destroying commands
CRITICAL_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"rm\s+-rf\s+/(?!tmp|var/tmp)"), "Deletes root filesystem"),
    (re.compile(r"format\s+[a-z]:", re.IGNORECASE), "Formats entire drive"),
    (re.compile(r"del\s+/[sf]", re.IGNORECASE), "Deletes system files (Windows)"),
    (re.compile(r"shutdown|reboot|poweroff"), "System shutdown/reboot"),
    (re.compile(r"dd\s+.*of=/dev/(sda|hda|nvme)"), "Direct disk write (can destroy data)"),
    (re.compile(r"mkfs"), "Formats filesystem"),
    (
        re.compile(r"(>|vim|vi|nano|emacs|edit).*/etc/(passwd|shadow|sudoers)"),
        "Modifies critical system files",
    ),
    (re.compile(r"curl.*\|\s*(bash|sh|python)"), "Executes remote script without inspection"),
    (re.compile(r"wget.*\|\s*(bash|sh|python)"), "Executes remote script without inspection"),
)

# Destructive but recoverable
HIGH_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"rm\s+-rf\s+(?!/($|\s))"), "Recursive force delete"),
    (re.compile(r"sudo\s+rm"), "Elevated permissions file deletion"),
    (re.compile(r"git\s+push\s+--force"), "Force pushes can overwrite history"),
    (re.compile(r"npm\s+publish"), "Publishes package to registry"),
    (re.compile(r"docker\s+rmi.*-f"), "Force removes Docker images"),
    (re.compile(r"docker\s+system\s+prune\s+-a"), "Removes all unused Docker data"),
    (re.compile(r"git\s+reset\s+--hard\s+HEAD~"), "Permanently deletes commits"),
    (re.compile(r"git\s+clean\s+-fd"), "Deletes untracked files"),
    (re.compile(r"chmod\s+777"), "Makes files world-writable (security risk)"),
    (re.compile(r"chown\s+-R"), "Recursive ownership change"),
)

# Potentially problematic
MEDIUM_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"npm\s+install"), "Installs dependencies (can include malicious packages)"),
    (re.compile(r"yarn\s+add"), "Installs dependencies (can include malicious packages)"),
    (re.compile(r"pip\s+install"), "Installs Python packages"),
    (re.compile(r"git\s+push"), "Pushes changes to remote"),
    (re.compile(r"docker\s+run"), "Runs Docker container"),
    (re.compile(r"docker\s+exec"), "Executes command in container"),
    (re.compile(r"ssh\s+"), "Remote connection"),
    (re.compile(r"scp\s+"), "Remote file transfer"),
    (re.compile(r"rsync\s+"), "File synchronization"),
    (re.compile(r"npm\s+run\s+build"), "Runs build scripts"),
)

# Heuristic thresholds
MAX_OPERATION_LENGTH = 500
MAX_CHAINED_COMMANDS = 3
CHAIN_OPERATOR_PATTERN = re.compile(r"[;&|]+")
OUTPUT_SINK_PATTERN = re.compile(r">/dev/null|2>&1")
BARE_SUDO_PATTERN = re.compile(r"sudo\s*$")
ENV_EXPORT_PATTERN = re.compile(r"export\s+|setenv\s+")
BASE64_PATTERN = re.compile(r"base64\s+--decode|echo\s+.*\|\s*base64")
EVAL_PATTERN = re.compile(r"eval\s+")

# Loop detector defaults
DEFAULT_MAX_TOTAL_AGENTS = 50
DEFAULT_MAX_NESTING_DEPTH = 10
DEFAULT_MAX_LOOP_ITERATIONS = 10
DEFAULT_MAX_NESTED_LOOPS = 3
RECENT_ROLE_WINDOW = 10
LOOP_KEY_SEPARATOR = "→"

# Orchestrator / agent defaults
DEFAULT_MAX_PARALLEL = 4
DEFAULT_MAX_ITERATIONS = 20
FINISH_MARKERS: tuple[str, ...] = ("task completed", "final answer")
