"""Worker node join pipeline."""
import logging
import shlex
from functools import partial
from typing import List

from kubeprov.config import Config
from ..config import ProvisionConfig
from ..host import Host
from ..pipeline.models import Criticality, Step, StepError
from ..pipeline.runner import PipelineRunState
from .base import Pipeline, require_root
from .common import (
    configure_mirrors,
    configure_system,
    detect_system,
    install_container_runtime,
    install_kubernetes,
    install_prerequisites,
)

logger = logging.getLogger("kubeprov.steps.join")

NODE_COMPONENTS = ('kubelet', 'kubeadm')


def parse_join_command(command: str) -> List[str]:
    """Split a ``kubeadm join`` line into an argument vector.

    Raises:
        ValueError: If the line is empty, unbalanced, or not a kubeadm join
    """
    if not command or not command.strip():
        raise ValueError("Join command cannot be empty")
    try:
        argv = shlex.split(command.replace('\\\n', ' '))
    except ValueError as e:
        raise ValueError(f"Invalid join command: {e}") from e
    if argv[:2] != ['kubeadm', 'join']:
        raise ValueError("Join command must start with 'kubeadm join'")
    if len(argv) < 3 or argv[2].startswith('-'):
        raise ValueError("Join command is missing the API server endpoint")
    return argv


def redact_join_command(command: str) -> str:
    """Mask the secret values of a join command for display."""
    try:
        argv = shlex.split(command)
    except ValueError:
        return command
    redacted = []
    hide_next = False
    for part in argv:
        if hide_next:
            redacted.append('****')
            hide_next = False
            continue
        key, sep, _ = part.partition('=')
        if key in Config.REDACT_KEYS:
            if sep:
                redacted.append(f"{key}=****")
            else:
                redacted.append(part)
                hide_next = True
        else:
            redacted.append(part)
    return ' '.join(redacted)


def validate_join_command(state: PipelineRunState, config: ProvisionConfig) -> None:
    try:
        parse_join_command(config.join_command or '')
    except ValueError as e:
        raise StepError(str(e)) from e


def join_cluster(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    argv = parse_join_command(config.join_command)
    state.log.detail(f"Running join command: {redact_join_command(config.join_command)}")

    # kubeadm reset also cleans up after a partially applied join
    state.compensate("kubeadm reset -f", lambda: host.shell.run(['kubeadm', 'reset', '-f']))
    host.shell.run(argv)
    state.log.info("Node successfully joined the Kubernetes cluster")


def verify_join(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    if host.services.is_active('kubelet'):
        state.log.info("Kubelet service is running")
    else:
        state.warn("kubelet service is not running properly")
    state.log.info("Run 'kubectl get nodes' on the master node to confirm the node status")


def build_join_pipeline(config: ProvisionConfig, host: Host) -> Pipeline:
    bind = dict(host=host, config=config)
    preflight = []
    if config.require_root:
        preflight.append(Step("Check root privileges", partial(require_root, host=host)))
    preflight.append(Step("Validate join command", partial(validate_join_command, config=config)))

    steps = [
        Step("Detect system", partial(detect_system, **bind)),
        Step("Configure mirrors", partial(configure_mirrors, **bind)),
        Step("Install prerequisites", partial(install_prerequisites, **bind)),
        Step("Configure system settings", partial(configure_system, **bind)),
        Step("Install container runtime", partial(install_container_runtime, **bind)),
        Step(
            "Install Kubernetes components",
            partial(install_kubernetes, components=NODE_COMPONENTS, **bind),
        ),
        Step("Join cluster", partial(join_cluster, **bind)),
    ]
    postflight = [Step("Verify join", partial(verify_join, **bind), Criticality.WARNING)]
    return Pipeline('node_join', steps, preflight, postflight)
