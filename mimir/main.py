# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mimir.config import load_settings
from mimir.core.exceptions import ConfigurationError
from mimir.core.types import OperationType, RiskLevel, Settings
from mimir.ext.config_source import SettingsConfigSource
from mimir.logging import configure_logging
from mimir.permissions.gate import PermissionGate, PermissionRequest
from mimir.permissions.risk import RiskAssessor
from mimir.roles.registry import RoleRegistry, register_default_loop_patterns


console = Console()

app = typer.Typer(help="Mimir agent runtime safety tools.")

_LEVEL_STYLES = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}


@app.callback()
def main_callback(
    log_level: Annotated[
        str, typer.Option("--log-level", help="Minimum log level to display.")
    ] = "WARNING",
) -> None:
    """
    Mimir: risk assessment and loop safety for coding agents.
    """
    configure_logging(log_level)


def _safe_load_settings(settings_path: Path | None) -> Settings:
    """Load settings, falling back to defaults when no file is configured.

    Raises:
        typer.Exit: If an explicitly given file is missing or invalid.
    """
    try:
        return load_settings(settings_path)
    except FileNotFoundError as e:
        if settings_path is not None:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(code=1) from None
        return Settings()
    except ConfigurationError as e:
        console.print(f"[red]Error loading settings:[/red] {escape(str(e))}")
        raise typer.Exit(code=1) from None


@app.command()
def assess(
    command: Annotated[str, typer.Argument(help="Command or path to assess.")],
) -> None:
    """Show the risk assessment of an operation."""
    assessment = RiskAssessor().assess(command)
    console.print(
        Panel(
            RiskAssessor.get_summary(assessment),
            title=command,
            border_style=_LEVEL_STYLES[assessment.level],
        )
    )


@app.command()
def check(
    command: Annotated[str, typer.Argument(help="Command or path to check.")],
    operation_type: Annotated[
        OperationType,
        typer.Option("--type", "-t", help="Kind of operation."),
    ] = OperationType.BASH,
    settings_path: Annotated[
        Path | None,
        typer.Option("--settings", "-s", help="Settings file (default: MIMIR_SETTINGS or settings.mimir.yaml)."),
    ] = None,
) -> None:
    """Run an operation through the permission gate.

    Exits with code 0 when allowed and 1 when denied.
    """
    settings = _safe_load_settings(settings_path)
    gate = PermissionGate(SettingsConfigSource(settings))
    if operation_type == OperationType.BASH:
        request = PermissionRequest(type=operation_type, command=command)
    else:
        request = PermissionRequest(type=operation_type, path=command)

    result = asyncio.run(gate.check_permission(request))

    verdict = "[green]ALLOWED[/green]" if result.allowed else "[red]DENIED[/red]"
    console.print(f"{verdict} {escape(result.reason)}")
    console.print(
        f"Risk: [{_LEVEL_STYLES[result.risk_level]}]{result.risk_level.upper()}[/] "
        f"(score: {result.assessment.score}/100)"
    )
    if not result.allowed:
        raise typer.Exit(code=1)


@app.command()
def patterns() -> None:
    """List the default sanctioned loop patterns."""
    registry = RoleRegistry()
    register_default_loop_patterns(registry)

    table = Table(title="Sanctioned loop patterns")
    table.add_column("Name", style="cyan")
    table.add_column("Roles")
    table.add_column("Max iterations", justify="right")
    table.add_column("Description", style="dim")
    for name, pattern in registry.loop_pattern_items():
        table.add_row(name, " → ".join(pattern.pattern), str(pattern.max_iterations), pattern.description)
    console.print(table)
