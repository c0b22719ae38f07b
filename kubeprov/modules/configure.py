"""Provisioning configuration file management.

This module provides functions to create, validate, and display kubeprov configuration files.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from rich.console import Console
from rich.syntax import Syntax

from .config import DEFAULT_CONFIG_PATHS, ConfigError, ProvisionConfig

logger = logging.getLogger("kubeprov.configure")


def create_config_file(
    output_path: Optional[Union[str, Path]] = None,
    overwrite: bool = False,
) -> Path:
    """Create a new configuration file with default values.

    Args:
        output_path: Where to save the file. Defaults to ``./kubeprov.yaml``.
        overwrite: If True, overwrite an existing file.

    Returns:
        Path to the created configuration file.

    Raises:
        FileExistsError: If the file exists and overwrite is False.
    """
    output_path = Path(output_path or DEFAULT_CONFIG_PATHS[-1]).expanduser().absolute()

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"File already exists: {output_path}")

    ProvisionConfig().save(output_path)
    logger.info(f"Created configuration file: {output_path}")
    return output_path


def validate_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Validate a configuration file.

    Returns:
        Dict containing validation results and any errors.
    """
    config_path = Path(config_path).expanduser().absolute()
    result = {
        'valid': False,
        'path': str(config_path),
        'exists': config_path.exists(),
        'errors': [],
        'warnings': [],
    }

    if not result['exists']:
        result['errors'].append(f"File does not exist: {config_path}")
        return result

    try:
        config = ProvisionConfig.load(config_path)
    except ConfigError as e:
        result['errors'].append(str(e))
        return result

    result['valid'] = True
    if config.join_command:
        result['warnings'].append(
            "join_command is stored in the file; it contains a bootstrap token"
        )
    if not config.mirrors.enabled:
        result['warnings'].append("Mirror rewriting is disabled; default repositories will be used")
    result['config'] = config.model_dump(exclude={'join_command'})
    return result


def show_config(
    config: ProvisionConfig,
    source: Optional[Union[str, Path]] = None,
    console: Optional[Console] = None,
) -> None:
    """Display the effective configuration and where it was loaded from."""
    console = console or Console()
    loaded_from = str(source) if source else next(
        (str(p.expanduser().absolute()) for p in DEFAULT_CONFIG_PATHS if p.expanduser().exists()),
        "default values",
    )
    console.print(f"[bold]Configuration source:[/bold] {loaded_from}")
    dumped = yaml.safe_dump(
        config.model_dump(exclude={'join_command'}), default_flow_style=False, sort_keys=False
    )
    console.print(Syntax(dumped, "yaml"))
