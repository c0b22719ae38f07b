"""Host collaborators invoked by pipeline step bodies.

- shell: command execution
- services: systemd units
- packages: dnf/yum
- files: root-relative filesystem operations
"""
import logging
import os
import socket
from pathlib import Path
from typing import Dict, Optional, Union

from ..pipeline.audit import AuditLog
from .files import FileSystem
from .packages import PackageManager, SUPPORTED_MANAGERS
from .services import ServiceManager
from .shell import HostShell

logger = logging.getLogger("kubeprov.host")


class Host:
    """Everything a step body may touch on the local machine."""

    def __init__(
        self,
        log: AuditLog,
        root: Union[str, Path] = '/',
        dry_run: bool = False,
        timeout: Optional[int] = None,
        shell: Optional[HostShell] = None,
    ):
        self.log = log
        self.dry_run = dry_run
        self.shell = shell or HostShell(log, dry_run=dry_run, timeout=timeout)
        self.fs = FileSystem(root, dry_run=dry_run)
        self.services = ServiceManager(self.shell)
        self.packages = PackageManager(self.shell)

    @staticmethod
    def is_root() -> bool:
        return os.geteuid() == 0

    def os_release(self) -> Dict[str, str]:
        return self.fs.read_env_file('/etc/os-release')

    def is_master(self) -> bool:
        """A control-plane host carries the kubeadm admin kubeconfig."""
        return self.fs.exists('/etc/kubernetes/admin.conf')

    def primary_ipv4(self) -> str:
        """First non-loopback IPv4 address, as reported by ``ip -o -4 addr list``."""
        result = self.shell.run(['ip', '-o', '-4', 'addr', 'list'], check=False)
        for line in result.stdout.splitlines():
            fields = line.split()
            if 'inet' not in fields:
                continue
            address = fields[fields.index('inet') + 1].split('/')[0]
            if not address.startswith('127.'):
                return address
        try:
            s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            s.connect(("8.8.8.8", 80))
            address = s.getsockname()[0]
            s.close()
            return address
        except OSError as e:
            logger.warning(f"Failed to detect host IP: {e}")
            return '127.0.0.1'


__all__ = [
    'Host',
    'HostShell',
    'FileSystem',
    'PackageManager',
    'ServiceManager',
    'SUPPORTED_MANAGERS',
]
