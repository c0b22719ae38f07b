"""Run a provisioning pipeline end to end and report the outcome."""
import logging
from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.table import Table

from .config import ProvisionConfig
from .host import Host, HostShell
from .pipeline import AuditLog, PipelineRunner, RunOutcome
from .steps import PIPELINE_BUILDERS

logger = logging.getLogger("kubeprov.provision")

SUCCESS_MESSAGES = {
    'master_install': "Kubernetes master node has been successfully installed!",
    'node_join': "Kubernetes node has successfully joined the cluster!",
    'reset': "Kubernetes has been successfully removed from this system!",
}


def execute_pipeline(
    kind: str,
    config: ProvisionConfig,
    dry_run: bool = False,
    complete: bool = False,
    console: Optional[Console] = None,
    started: Optional[datetime] = None,
    shell: Optional[HostShell] = None,
) -> RunOutcome:
    """Build the ``kind`` pipeline for this host, run it, and print a summary.

    Args:
        kind: ``master_install``, ``node_join`` or ``reset``
        config: Validated provisioning configuration
        dry_run: Log commands and file changes instead of applying them
        complete: For ``reset`` only, add the deep-clean steps
        console: Rich console for the summary
        started: Run start time, used in the audit log name
        shell: Replacement command runner

    Returns:
        The run outcome; ``outcome.exit_code`` is the process exit code
    """
    if kind not in PIPELINE_BUILDERS:
        raise ValueError(f"Unknown pipeline: {kind}")
    console = console or Console()

    log = AuditLog.for_pipeline(kind, config.log_dir, started)
    try:
        host = Host(
            log,
            root=config.host_root,
            dry_run=dry_run,
            timeout=config.command_timeout,
            shell=shell,
        )
        if kind == 'reset':
            pipeline = PIPELINE_BUILDERS[kind](config, host, complete=complete)
        else:
            pipeline = PIPELINE_BUILDERS[kind](config, host)
        logger.debug("Pipeline %s: %s", kind, ", ".join(pipeline.step_names()))

        runner = PipelineRunner(
            pipeline.kind,
            log,
            host.services,
            is_master=pipeline.is_master,
            preflight=pipeline.preflight,
            postflight=pipeline.postflight,
        )
        outcome = runner.run(pipeline.steps)
    finally:
        log.close()

    render_summary(outcome, console)
    return outcome


def render_summary(outcome: RunOutcome, console: Console) -> None:
    if not outcome.ok:
        console.print(f"\n❌ [red]{outcome.failed_step} failed: {outcome.error.message}[/red]")
        console.print(f"For more details check the log file: {outcome.log_path}")
        if outcome.rollback is not None:
            console.print(rollback_table(outcome))
            if outcome.rollback.failed_services:
                console.print(
                    f"⚠️  Could not restart: {', '.join(outcome.rollback.failed_services)}"
                )
        return

    console.print(f"\n✅ [green]{SUCCESS_MESSAGES.get(outcome.kind, 'Pipeline completed')}[/green]")
    console.print(f"For more details check the log file: {outcome.log_path}")

    join_command = outcome.outputs.get('join_command')
    if join_command:
        console.print("\nUse the following command to join worker nodes to the cluster:")
        console.print(join_command, style="bold", soft_wrap=True)
    if outcome.kind == 'node_join':
        console.print("\nTo verify this node joined the cluster, run 'kubectl get nodes' on the master node.")

    if outcome.warnings:
        console.print("\n[yellow]The following warnings were encountered:[/yellow]")
        for warning in outcome.warnings:
            console.print(f"- {warning}", markup=False)
        console.print("[yellow]Check the log file for more details.[/yellow]")


def rollback_table(outcome: RunOutcome) -> Table:
    table = Table(title="Rollback")
    table.add_column("Action", style="cyan")
    table.add_column("Result")
    for result in outcome.rollback.results:
        status = "[green]ok[/green]" if result.ok else f"[red]failed: {result.error}[/red]"
        table.add_row(result.description, status)
    for service in outcome.rollback.restored_services:
        table.add_row(f"Restart {service}", "[green]ok[/green]")
    for service in outcome.rollback.failed_services:
        table.add_row(f"Restart {service}", "[red]failed[/red]")
    return table
