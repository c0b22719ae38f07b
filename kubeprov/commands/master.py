import logging
from pathlib import Path
from typing import Optional

import typer

from kubeprov.modules import provision
from kubeprov.commands.common import (
    confirm_settings,
    console,
    finish,
    load_config,
    report_unexpected,
)

logger = logging.getLogger(__name__)

app = typer.Typer(help="Control-plane node commands")


@app.command("install")
def install_cmd(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to configuration file"),
    version: Optional[str] = typer.Option(None, "--k8s-version", help="Kubernetes version"),
    pod_cidr: Optional[str] = typer.Option(None, "--pod-cidr", help="Pod network CIDR"),
    cni: Optional[str] = typer.Option(None, "--cni", help="Network plugin (calico or flannel)"),
    advertise_address: Optional[str] = typer.Option(None, "--advertise-address", help="API server address"),
    no_mirrors: bool = typer.Option(False, "--no-mirrors", help="Keep the default package repositories"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log the commands without changing the host"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
):
    """
    Install a Kubernetes master node on this host with kubeadm.

    Any failure rolls back every change made so far.
    """
    overrides = dict(
        kubernetes_version=version,
        pod_network_cidr=pod_cidr,
        cni_plugin=cni,
        advertise_address=advertise_address,
    )
    if no_mirrors:
        overrides['mirrors'] = {'enabled': False}
    config = load_config(config_path, **overrides)

    settings = {
        "Kubernetes Version": config.kubernetes_version,
        "Pod Network CIDR": config.pod_network_cidr,
        "Network Plugin": config.cni_plugin,
        "Advertise Address": config.advertise_address or "auto-detect",
        "Mirrors": "enabled" if config.mirrors.enabled else "disabled",
    }
    if not confirm_settings("Installation will proceed with these settings", settings, yes):
        console.print("Installation cancelled.")
        raise typer.Exit(0)

    try:
        outcome = provision.execute_pipeline('master_install', config, dry_run=dry_run, console=console)
    except Exception as e:
        report_unexpected("Master installation", e)
    finish(outcome)
