from pathlib import Path
from typing import Optional

import typer

from kubeprov.modules.configure import create_config_file, show_config, validate_config_file
from kubeprov.commands.common import CONFIG_ERROR_EXIT, console, load_config

app = typer.Typer(help="Configuration file commands")


@app.command("init")
def init_cmd(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a configuration file with the default values."""
    try:
        path = create_config_file(output, overwrite=force)
    except FileExistsError as e:
        typer.echo(f"❌ {e} (use --force to overwrite)", err=True)
        raise typer.Exit(1)
    typer.echo(f"✅ Created configuration file: {path}")


@app.command("validate")
def validate_cmd(
    path: Path = typer.Argument(..., help="Configuration file to validate"),
):
    """Check a configuration file against the schema and the model."""
    result = validate_config_file(path)
    for warning in result['warnings']:
        typer.echo(f"⚠️  {warning}")
    if not result['valid']:
        for error in result['errors']:
            typer.echo(f"❌ {error}", err=True)
        raise typer.Exit(CONFIG_ERROR_EXIT)
    typer.echo(f"✅ {result['path']} is valid")


@app.command("show")
def show_cmd(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to configuration file"),
):
    """Print the effective configuration after file and environment overrides."""
    config = load_config(config_path)
    show_config(config, source=config_path, console=console)
