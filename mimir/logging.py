# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""Loguru configuration for the Mimir CLI and embedding applications."""

import sys
from typing import TYPE_CHECKING

from loguru import logger


if TYPE_CHECKING:
    from loguru import Record


PALETTE = {
    "dim": "#7A8A99",
    "rule": "#4B5563",
    "text": "#E5E7EB",
    "info": "#60A5FA",
    "success": "#34D399",
    "warning": "#FBBF24",
    "error": "#F87171",
}

_LEVEL_COLORS = {
    "TRACE": PALETTE["rule"],
    "DEBUG": PALETTE["dim"],
    "INFO": PALETTE["info"],
    "SUCCESS": PALETTE["success"],
    "WARNING": PALETTE["warning"],
    "ERROR": PALETTE["error"],
    "CRITICAL": PALETTE["error"],
}


def format_extra(extra: dict[str, object]) -> str:
    """Render structured fields as escaped ``key=value`` pairs.

    Braces are doubled and angle brackets escaped so loguru treats values as
    plain text rather than format fields or color tags.
    """
    rendered = " ".join(f"{key}={value!r}" for key, value in extra.items())
    return rendered.replace("{", "{{").replace("}", "}}").replace("<", r"\<")


def _log_format(record: "Record") -> str:
    level = record["level"].name
    color = _LEVEL_COLORS.get(level, PALETTE["text"])
    bold = "<bold>" if level == "CRITICAL" else ""

    fmt = (
        f"<fg {PALETTE['dim']}>{{time:HH:mm:ss}}</>"
        f" <fg {PALETTE['rule']}>│</> "
        f"{bold}<fg {color}>{{level: <8}}</>"
        f"<fg {PALETTE['rule']}>│</> "
        f"<fg {PALETTE['dim']}>{{name}}</>"
        f"<fg {PALETTE['rule']}>:</>"
        f"<fg {PALETTE['text']}>{{message}}</>"
    )
    if bold:
        fmt += "</bold>"

    if record["extra"]:
        fmt += f" <fg {PALETTE['dim']}>│ {format_extra(record['extra'])}</>"

    fmt += "\n"
    if record["exception"]:
        fmt += "{exception}\n"
    return fmt


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default handler with the Mimir stderr handler.

    Args:
        level: Minimum log level to display (e.g., "DEBUG", "INFO", "WARNING").
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=_log_format, colorize=True)
