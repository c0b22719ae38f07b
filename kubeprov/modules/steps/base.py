"""Shared pieces for pipeline builders."""
import logging
from dataclasses import dataclass, field
from typing import List

import requests

from kubeprov.config import Config
from ..host import Host
from ..pipeline.models import Step, StepError
from ..pipeline.runner import PipelineRunState

logger = logging.getLogger("kubeprov.steps")

REPO_DIR = '/etc/yum.repos.d'
KUBERNETES_REPO = f'{REPO_DIR}/kubernetes.repo'
DOCKER_REPO = f'{REPO_DIR}/docker-ce.repo'
ADMIN_CONF = '/etc/kubernetes/admin.conf'
SYSCTL_CONF = '/etc/sysctl.d/k8s.conf'
MODULES_CONF = '/etc/modules-load.d/k8s.conf'
SELINUX_CONF = '/etc/selinux/config'
FSTAB = '/etc/fstab'
CONTAINERD_CONF = '/etc/containerd/config.toml'


@dataclass
class Pipeline:
    """An ordered list of steps plus the hooks that surround it."""
    kind: str
    steps: List[Step]
    preflight: List[Step] = field(default_factory=list)
    postflight: List[Step] = field(default_factory=list)
    is_master: bool = False

    def step_names(self) -> List[str]:
        return [s.name for s in [*self.preflight, *self.steps, *self.postflight]]


def require_root(state: PipelineRunState, host: Host) -> None:
    if not host.is_root():
        raise StepError("This command must be run as root")


def fetch(url: str) -> str:
    """Download a text resource such as a CNI manifest or a repo file."""
    logger.debug(f"Downloading {url}")
    try:
        response = requests.get(url, timeout=Config.HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise StepError(f"Failed to download {url}: {e}") from e
    return response.text
