"""Helpers shared by the provisioning commands."""
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from kubeprov.modules.config import ConfigError, ProvisionConfig
from kubeprov.modules.pipeline import RunOutcome

logger = logging.getLogger(__name__)

console = Console()

# Exit code for an invalid configuration file or option
CONFIG_ERROR_EXIT = 2


def load_config(config_path: Optional[Path], **overrides) -> ProvisionConfig:
    """Load the provisioning config, exiting with code 2 when it is invalid."""
    try:
        return ProvisionConfig.load(config_path, **overrides)
    except ConfigError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(CONFIG_ERROR_EXIT)


def settings_table(title: str, settings: Dict[str, str]) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.items():
        table.add_row(key, str(value))
    return table


def confirm_settings(title: str, settings: Dict[str, str], yes: bool) -> bool:
    """Show the run settings and ask to continue. ``yes`` skips the question."""
    console.print(settings_table(title, settings))
    if yes:
        return True
    return typer.confirm("Continue with these settings?", default=True)


def confirm_reset(yes: bool, complete: bool = False) -> bool:
    """The reset gate accepts only the literal answer ``yes``."""
    if yes:
        return True
    console.print("[red]WARNING: This will completely remove Kubernetes from this system![/red]")
    if complete:
        console.print("[red]Leftover processes, containers, images and Docker will be removed too.[/red]")
    console.print("[red]All Kubernetes configurations, data, and containers will be deleted.[/red]")
    console.print("[yellow]This operation cannot be undone.[/yellow]")
    answer = typer.prompt("Do you want to continue? (yes/no)", default="no", show_default=False)
    return answer.strip() == "yes"


def finish(outcome: RunOutcome) -> None:
    """Exit with the outcome's code once the summary has been printed."""
    if not outcome.ok:
        logger.debug("Pipeline %s aborted at %s", outcome.kind, outcome.failed_step)
    raise typer.Exit(outcome.exit_code)


def report_unexpected(action: str, error: Exception) -> None:
    typer.echo(f"❌ {action} failed: {error}", err=True)
    logger.error(f"{action} failed", exc_info=True)
    if '--debug' in sys.argv:
        raise error
    raise typer.Exit(1)
