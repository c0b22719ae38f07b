"""systemd service management."""
import logging

from .shell import HostShell

logger = logging.getLogger("kubeprov.host.services")


class ServiceManager:
    """Thin wrapper around ``systemctl``."""

    def __init__(self, shell: HostShell):
        self.shell = shell

    def is_active(self, name: str) -> bool:
        return self.shell.succeeds(['systemctl', 'is-active', '--quiet', name])

    def start(self, name: str) -> None:
        self.shell.run(['systemctl', 'start', name])

    def stop(self, name: str) -> None:
        self.shell.run(['systemctl', 'stop', name])

    def restart(self, name: str) -> None:
        self.shell.run(['systemctl', 'restart', name])

    def enable(self, name: str) -> None:
        self.shell.run(['systemctl', 'enable', name])

    def disable(self, name: str) -> None:
        self.shell.run(['systemctl', 'disable', name])

    def daemon_reload(self) -> None:
        self.shell.run(['systemctl', 'daemon-reload'])
