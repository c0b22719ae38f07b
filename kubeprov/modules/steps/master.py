"""Master (control-plane) installation pipeline."""
import logging
import os
import time
from functools import partial

from ..config import ProvisionConfig
from ..host import Host
from ..pipeline.models import Criticality, Step, StepError
from ..pipeline.runner import PipelineRunState
from .. import verification
from .base import ADMIN_CONF, Pipeline, fetch, require_root
from .common import (
    configure_mirrors,
    configure_system,
    detect_system,
    install_container_runtime,
    install_kubernetes,
    install_prerequisites,
    write_kubeadm_config,
)

logger = logging.getLogger("kubeprov.steps.master")

# Pod ranges hard-coded in the upstream manifests
MANIFEST_DEFAULT_CIDRS = {
    'calico': '192.168.0.0/16',
    'flannel': '10.244.0.0/16',
}

MANIFEST_FILES = {
    'calico': 'calico.yaml',
    'flannel': 'kube-flannel.yml',
}


def initialize_master(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    fs = host.fs
    kubeadm_config = str(fs.path(config.kubeadm_config_path))

    state.log.detail("Pulling Kubernetes images...")
    host.shell.run(['kubeadm', 'config', 'images', 'pull', f'--config={kubeadm_config}'])

    # kubeadm reset also cleans up after a partially applied init
    state.compensate("kubeadm reset -f", lambda: host.shell.run(['kubeadm', 'reset', '-f']))
    state.log.detail("Running kubeadm init...")
    host.shell.run(['kubeadm', 'init', f'--config={kubeadm_config}', '--upload-certs'])

    kube_config = f"{config.kube_dir}/config"
    if not fs.exists(config.kube_dir):
        state.compensate(f"Remove {config.kube_dir}", lambda: fs.remove_tree(config.kube_dir))
    if fs.exists(kube_config):
        kube_backup = fs.backup(kube_config)
        state.compensate(f"Restore {kube_config}", lambda: fs.copy(kube_backup, kube_config))
    else:
        state.compensate(f"Remove {kube_config}", lambda: fs.remove(kube_config))
    fs.makedirs(config.kube_dir)
    fs.copy(ADMIN_CONF, kube_config)
    host.shell.run(['chown', f"{os.getuid()}:{os.getgid()}", str(fs.path(kube_config))])

    join_command = host.shell.output(['kubeadm', 'token', 'create', '--print-join-command'])
    if not join_command and not host.dry_run:
        raise StepError("kubeadm did not print a join command")
    state.outputs['join_command'] = join_command
    state.log.info("Kubernetes master initialized")


def install_network_plugin(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    plugin = config.cni_plugin
    if plugin not in MANIFEST_FILES:
        raise StepError(f"Unsupported network plugin: {plugin}")

    manifest_path = f"{config.manifest_dir}/{MANIFEST_FILES[plugin]}"
    if host.dry_run:
        state.log.info(f"DRY RUN: would download {config.manifest_url}")
        manifest = ''
    else:
        manifest = fetch(config.manifest_url)
    manifest = manifest.replace(MANIFEST_DEFAULT_CIDRS[plugin], config.pod_network_cidr)
    host.fs.write_text(manifest_path, manifest)

    manifest_file = str(host.fs.path(manifest_path))
    kubeconfig = f'--kubeconfig={host.fs.path(ADMIN_CONF)}'
    host.shell.run(['kubectl', kubeconfig, 'apply', '-f', manifest_file])
    state.compensate(
        f"kubectl delete -f {manifest_path}",
        lambda: host.shell.run(
            ['kubectl', kubeconfig, 'delete', '-f', manifest_file, '--ignore-not-found=true']
        ),
    )
    state.log.info(f"Network plugin {plugin} installed")


def verify_installation(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    state.log.detail("Waiting for pods to become ready...")
    time.sleep(config.verify_wait_seconds)

    api = verification.core_api(str(host.fs.path(ADMIN_CONF)))
    if not verification.wait_for_control_plane_ready(api, timeout=config.ready_timeout_seconds):
        raise StepError("Master node is not in Ready state. Check logs for more details.")

    phases = verification.pod_phase_counts(api)
    for phase in ('Pending', 'Failed'):
        if phases.get(phase):
            state.warn(f"There are {phases[phase]} pods in {phase} state.")
    state.log.info("Kubernetes installation verified")


def build_master_pipeline(config: ProvisionConfig, host: Host) -> Pipeline:
    """Steps that turn a bare RHEL-family host into a kubeadm control plane."""
    bind = dict(host=host, config=config)
    preflight = [Step("Check root privileges", partial(require_root, host=host))] if config.require_root else []
    steps = [
        Step("Detect system", partial(detect_system, **bind)),
        Step("Configure mirrors", partial(configure_mirrors, **bind)),
        Step("Install prerequisites", partial(install_prerequisites, **bind)),
        Step("Configure system settings", partial(configure_system, **bind)),
        Step("Install container runtime", partial(install_container_runtime, **bind)),
        Step("Install Kubernetes components", partial(install_kubernetes, **bind)),
        Step("Write kubeadm configuration", partial(write_kubeadm_config, **bind)),
        Step("Initialize master", partial(initialize_master, **bind)),
        Step("Install network plugin", partial(install_network_plugin, **bind)),
    ]
    postflight = []
    if not host.dry_run:
        postflight.append(
            Step("Verify installation", partial(verify_installation, **bind), Criticality.FATAL)
        )
    return Pipeline('master_install', steps, preflight, postflight, is_master=True)
