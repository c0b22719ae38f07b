import logging
import subprocess
import time
from pathlib import Path
from typing import Optional

import typer

from kubeprov.modules import provision
from kubeprov.modules.steps import parse_join_command, redact_join_command
from kubeprov.commands.common import (
    confirm_reset,
    confirm_settings,
    console,
    finish,
    load_config,
    report_unexpected,
)

logger = logging.getLogger(__name__)

app = typer.Typer(help="Worker node commands")


@app.command("join")
def join_cmd(
    join_command: Optional[str] = typer.Option(
        None, "--join-command", "-j", help="The 'kubeadm join ...' command printed by the master"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to configuration file"),
    version: Optional[str] = typer.Option(None, "--k8s-version", help="Kubernetes version"),
    no_mirrors: bool = typer.Option(False, "--no-mirrors", help="Keep the default package repositories"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log the commands without changing the host"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """
    Join this host to an existing cluster as a worker node.
    """
    overrides = dict(kubernetes_version=version, join_command=join_command)
    if no_mirrors:
        overrides['mirrors'] = {'enabled': False}
    config = load_config(config_path, **overrides)

    if not config.join_command:
        prompted = typer.prompt("Enter the join command from the master node")
        config = config.model_copy(update={'join_command': prompted})
    try:
        parse_join_command(config.join_command)
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(2)

    settings = {
        "Kubernetes Version": config.kubernetes_version,
        "Join Command": redact_join_command(config.join_command),
        "Mirrors": "enabled" if config.mirrors.enabled else "disabled",
    }
    if not confirm_settings("Node will join with these settings", settings, yes):
        console.print("Join cancelled.")
        raise typer.Exit(0)

    try:
        outcome = provision.execute_pipeline('node_join', config, dry_run=dry_run, console=console)
    except Exception as e:
        report_unexpected("Node join", e)
    finish(outcome)


@app.command("reset")
def reset_cmd(
    complete: bool = typer.Option(
        False, "--complete", help="Also kill processes, remove images and Docker, and clean temp files"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to configuration file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log the commands without changing the host"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """
    Remove Kubernetes from this host (master or worker).

    Cleanup steps never abort the reset; whatever could not be removed is
    listed as a warning at the end.
    """
    config = load_config(config_path)

    if not confirm_reset(yes, complete=complete):
        console.print("[green]Reset operation cancelled.[/green]")
        raise typer.Exit(0)

    try:
        outcome = provision.execute_pipeline(
            'reset', config, dry_run=dry_run, complete=complete, console=console
        )
    except Exception as e:
        report_unexpected("Reset", e)

    if outcome.ok and complete and not dry_run and not yes:
        offer_reboot()
    finish(outcome)


def offer_reboot(delay: int = 5) -> None:
    console.print("[yellow]A reboot is recommended before reinstalling Kubernetes.[/yellow]")
    if not typer.confirm("Reboot the system now?", default=False):
        console.print("Please reboot manually before reinstalling Kubernetes:")
        console.print("    kubeprov master install")
        return
    console.print(f"[yellow]The system will reboot in {delay} seconds...[/yellow]")
    time.sleep(delay)
    subprocess.run(["systemctl", "reboot"], check=False)
