"""
Provisioning modules.
"""
from .config import ConfigError, MirrorConfig, ProvisionConfig

__all__ = [
    'ConfigError',
    'MirrorConfig',
    'ProvisionConfig',
]
