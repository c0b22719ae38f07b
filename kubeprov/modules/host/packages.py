"""dnf/yum package management."""
import logging
from typing import List, Optional, Sequence

from ..pipeline.models import StepError
from .shell import HostShell

logger = logging.getLogger("kubeprov.host.packages")

SUPPORTED_MANAGERS = ('dnf', 'yum')

MANAGER_CONF = {
    'dnf': '/etc/dnf/dnf.conf',
    'yum': '/etc/yum.conf',
}


class PackageManager:
    """Package operations through dnf, falling back to yum.

    :meth:`detect` must run before any other operation.
    """

    def __init__(self, shell: HostShell):
        self.shell = shell
        self.name: Optional[str] = None

    def detect(self) -> str:
        for candidate in SUPPORTED_MANAGERS:
            if self.shell.which(candidate):
                self.name = candidate
                logger.debug("Detected package manager: %s", candidate)
                return candidate
        raise StepError(
            "Neither DNF nor YUM package managers were found. "
            "Only RHEL-based distributions are supported."
        )

    @property
    def manager(self) -> str:
        if not self.name:
            raise StepError("Package manager has not been detected")
        return self.name

    @property
    def conf_path(self) -> str:
        return MANAGER_CONF[self.manager]

    def is_installed(self, package: str) -> bool:
        return self.shell.succeeds(['rpm', '-q', '--quiet', package])

    def missing(self, packages: Sequence[str]) -> List[str]:
        """The subset of ``packages`` not currently installed."""
        return [p for p in packages if not self.is_installed(p)]

    def install(self, packages: Sequence[str]) -> None:
        self.shell.run([self.manager, 'install', '-y', *packages])

    def remove(self, packages: Sequence[str], *extra_args: str) -> None:
        self.shell.run([self.manager, 'remove', '-y', *packages, *extra_args])

    def clean_all(self) -> None:
        self.shell.run([self.manager, 'clean', 'all'])

    def makecache(self) -> None:
        self.shell.run([self.manager, 'makecache'])

    def add_repo(self, url: str) -> None:
        self.shell.run(['yum-config-manager', '--add-repo', url])
