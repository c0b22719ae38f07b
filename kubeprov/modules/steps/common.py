"""Host preparation steps shared by the master install and node join pipelines.

Each step pushes the reversal of a mutation right after the mutation has
been applied, so a step failing half-way leaves only the compensations for
the work it actually did.
"""
import logging
from typing import List, Sequence

import yaml

from ..config import ProvisionConfig
from ..host import Host
from ..pipeline.models import StepError
from ..pipeline.runner import PipelineRunState
from .base import (
    CONTAINERD_CONF,
    DOCKER_REPO,
    FSTAB,
    KUBERNETES_REPO,
    MODULES_CONF,
    REPO_DIR,
    SELINUX_CONF,
    SYSCTL_CONF,
    fetch,
)

logger = logging.getLogger("kubeprov.steps.common")

SYSCTL_SETTINGS = """\
net.bridge.bridge-nf-call-ip6tables = 1
net.bridge.bridge-nf-call-iptables = 1
net.ipv4.ip_forward = 1
"""

DNF_TUNING = "fastestmirror=true\nmax_parallel_downloads=10\n"


def detect_system(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    manager = host.packages.detect()
    state.log.detail(f"{manager.upper()} package manager detected.")

    if not host.fs.exists('/etc/os-release'):
        raise StepError("Could not detect Linux distribution.")
    release = host.os_release()
    distribution = f"{release.get('NAME', 'unknown')} {release.get('VERSION_ID', '')}".strip()
    state.outputs['distribution'] = distribution
    state.log.info(f"System detected: {distribution} with {manager}")


def configure_mirrors(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    if not config.mirrors.enabled:
        state.log.info("Mirror configuration disabled; using default repositories")
        return

    fs = host.fs
    manager = host.packages.manager
    conf = host.packages.conf_path
    backup_dir = '/etc/dnf/repos.d.backup' if manager == 'dnf' else '/etc/yum.repos.d.backup'

    fs.makedirs(backup_dir)
    conf_backup = fs.backup(conf) if fs.exists(conf) else None
    fs.copy_contents(REPO_DIR, backup_dir)

    def restore_repositories():
        if conf_backup:
            fs.copy(conf_backup, conf)
        else:
            fs.remove(conf)
        fs.remove_glob(REPO_DIR, '*.repo')
        fs.copy_contents(backup_dir, REPO_DIR)

    state.compensate(f"Restore {manager} configuration and repositories", restore_repositories)

    if manager == 'dnf':
        fs.append_text(conf, DNF_TUNING)

    base_repo = f'{REPO_DIR}/CentOS-Base.repo'
    if fs.exists(base_repo):
        if host.dry_run:
            state.log.info(f"DRY RUN: would download {config.mirrors.base_repo_url}")
        else:
            content = fetch(config.mirrors.base_repo_url)
            fs.move(base_repo, f'{base_repo}.backup')
            fs.write_text(base_repo, content.replace('http:', 'https:'))

    host.packages.clean_all()
    host.packages.makecache()
    state.log.info("Package mirrors configured")


def _install_packages(state: PipelineRunState, host: Host, packages: Sequence[str], label: str) -> None:
    """Install packages and register removal of the ones that were not there before."""
    newly_installed = host.packages.missing(packages)
    host.packages.install(packages)
    if newly_installed:
        state.compensate(
            f"Remove {label}: {' '.join(newly_installed)}",
            lambda: host.packages.remove(newly_installed),
        )


def install_prerequisites(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    _install_packages(state, host, config.prerequisite_packages, 'prerequisites')
    _install_packages(state, host, config.time_sync_packages, 'time synchronization tools')

    state.best_effort("Failed to enable chronyd", host.services.enable, 'chronyd')
    state.best_effort("Failed to start chronyd", host.services.start, 'chronyd')
    state.log.info("Prerequisites installed")


def configure_system(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    fs = host.fs

    if fs.exists(SELINUX_CONF):
        selinux_backup = fs.backup(SELINUX_CONF)
        state.compensate(
            "Restore SELinux configuration",
            lambda: fs.copy(selinux_backup, SELINUX_CONF),
        )
        fs.replace_in_file(SELINUX_CONF, r'^SELINUX=enforcing$', 'SELINUX=permissive')
        state.best_effort("setenforce 0 failed", host.shell.run, ['setenforce', '0'])

    host.shell.run(['swapoff', '-a'])
    state.compensate("Re-enable swap", lambda: host.shell.run(['swapon', '-a']))

    if fs.exists(FSTAB):
        fstab_backup = fs.backup(FSTAB)
        state.compensate("Restore /etc/fstab", lambda: fs.copy(fstab_backup, FSTAB))
        fs.replace_in_file(FSTAB, r'^([^#\n].*\bswap\b.*)$', r'#\1')

    host.shell.run(['modprobe', 'br_netfilter'])
    fs.write_text(MODULES_CONF, "br_netfilter\n")
    state.compensate(f"Remove {MODULES_CONF}", lambda: fs.remove(MODULES_CONF))

    fs.write_text(SYSCTL_CONF, SYSCTL_SETTINGS)

    def remove_sysctl_settings():
        fs.remove(SYSCTL_CONF)
        host.shell.run(['sysctl', '--system'])

    state.compensate(f"Remove {SYSCTL_CONF}", remove_sysctl_settings)
    host.shell.run(['sysctl', '--system'])
    state.log.info("System settings configured")


def render_containerd_config(default_config: str, config: ProvisionConfig) -> str:
    rendered = default_config.replace('SystemdCgroup = false', 'SystemdCgroup = true')
    if config.mirrors.enabled:
        rendered = rendered.replace('https://registry-1.docker.io', config.mirrors.registry_mirror)
    return rendered


def install_container_runtime(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    fs = host.fs

    host.packages.add_repo(config.mirrors.docker_repo_url)
    state.compensate(f"Remove {DOCKER_REPO}", lambda: fs.remove(DOCKER_REPO))

    _install_packages(state, host, ['containerd.io'], 'container runtime')

    fs.makedirs('/etc/containerd')
    if fs.exists(CONTAINERD_CONF):
        containerd_backup = fs.backup(CONTAINERD_CONF)
        state.compensate(
            f"Restore {CONTAINERD_CONF}",
            lambda: fs.copy(containerd_backup, CONTAINERD_CONF),
        )
    else:
        state.compensate(f"Remove {CONTAINERD_CONF}", lambda: fs.remove(CONTAINERD_CONF))
    default_config = host.shell.output(['containerd', 'config', 'default'])
    fs.write_text(CONTAINERD_CONF, render_containerd_config(default_config, config))

    host.services.enable('containerd')
    host.services.restart('containerd')
    state.log.info("Containerd installed and configured")


def kubernetes_repo(config: ProvisionConfig) -> str:
    return (
        "[kubernetes]\n"
        "name=Kubernetes\n"
        f"baseurl={config.mirrors.kubernetes_repo_url}\n"
        "enabled=1\n"
        "gpgcheck=1\n"
        "repo_gpgcheck=1\n"
        f"gpgkey={' '.join(config.mirrors.kubernetes_gpg_keys)}\n"
    )


def install_kubernetes(
    state: PipelineRunState,
    host: Host,
    config: ProvisionConfig,
    components: Sequence[str] = ('kubelet', 'kubeadm', 'kubectl'),
) -> None:
    fs = host.fs

    fs.write_text(KUBERNETES_REPO, kubernetes_repo(config))
    state.compensate(f"Remove {KUBERNETES_REPO}", lambda: fs.remove(KUBERNETES_REPO))

    newly_installed = host.packages.missing(components)
    host.packages.install([f"{c}-{config.kubernetes_version}" for c in components])
    if newly_installed:
        state.compensate(
            f"Remove Kubernetes components: {' '.join(newly_installed)}",
            lambda: host.packages.remove(newly_installed),
        )

    host.services.enable('kubelet')
    state.log.info(f"Kubernetes {config.kubernetes_version} components installed")


def kubeadm_documents(config: ProvisionConfig, advertise_address: str) -> List[dict]:
    """InitConfiguration and ClusterConfiguration for ``kubeadm init``."""
    cluster = {
        'apiVersion': 'kubeadm.k8s.io/v1beta3',
        'kind': 'ClusterConfiguration',
        'kubernetesVersion': f"v{config.kubernetes_version}",
        'networking': {
            'podSubnet': config.pod_network_cidr,
            'serviceSubnet': config.service_cidr,
        },
    }
    if config.mirrors.enabled:
        cluster['imageRepository'] = config.mirrors.image_repository
    return [
        {
            'apiVersion': 'kubeadm.k8s.io/v1beta3',
            'kind': 'InitConfiguration',
            'nodeRegistration': {'criSocket': config.cri_socket},
            'localAPIEndpoint': {'advertiseAddress': advertise_address},
        },
        cluster,
    ]


def write_kubeadm_config(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    advertise_address = config.advertise_address or host.primary_ipv4()
    documents = kubeadm_documents(config, advertise_address)
    host.fs.write_text(
        config.kubeadm_config_path,
        yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False),
    )
    state.compensate(
        f"Remove {config.kubeadm_config_path}",
        lambda: host.fs.remove(config.kubeadm_config_path),
    )
    state.log.info(f"kubeadm configuration written (advertise address {advertise_address})")
