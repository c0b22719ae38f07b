"""Reset pipeline: removes Kubernetes from a master or worker node.

Only the preparation steps are fatal. Every cleanup step is declared with
warning criticality and routes its individual commands through
``state.best_effort``, so a partially provisioned host is cleaned as far as
possible and the leftovers are listed in the summary.
"""
import logging
from functools import partial
from pathlib import Path

from ..config import ProvisionConfig
from ..host import Host
from ..pipeline.models import Criticality, Step
from ..pipeline.runner import PipelineRunState
from .base import (
    DOCKER_REPO,
    FSTAB,
    KUBERNETES_REPO,
    MODULES_CONF,
    SELINUX_CONF,
    SYSCTL_CONF,
    Pipeline,
    require_root,
)
from .common import DNF_TUNING, detect_system

logger = logging.getLogger("kubeprov.steps.reset")

KUBERNETES_PACKAGES = ('kubelet', 'kubeadm', 'kubectl')
DOCKER_PACKAGES = ('docker-ce', 'docker-ce-cli')

DATA_DIRECTORIES = (
    '/var/lib/kubelet',
    '/var/lib/etcd',
    '/var/lib/cni',
    '/var/run/kubernetes',
    '/var/lib/calico',
    '/var/lib/weave',
    '/var/lib/flannel',
)

# Matched exactly (pkill -x) so unrelated processes survive
KUBERNETES_PROCESSES = (
    'kubelet',
    'kube-apiserver',
    'kube-controller-manager',
    'kube-scheduler',
    'kube-proxy',
    'etcd',
    'containerd',
    'containerd-shim',
    'containerd-shim-runc-v2',
)

CNI_LINKS = ('cni0', 'flannel.1', 'calico', 'tunl0', 'vxlan.calico')

IPTABLES_FLUSH = (
    ('-F',),
    ('-X',),
    ('-t', 'nat', '-F'),
    ('-t', 'nat', '-X'),
    ('-t', 'mangle', '-F'),
    ('-t', 'mangle', '-X'),
)

LEFTOVER_DIRECTORIES = ('/etc/kubernetes', '/var/lib/kubelet', '/var/lib/etcd', '/etc/cni/net.d')


def configure_reset_mirrors(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    if host.packages.manager != 'dnf':
        state.log.detail("Using default YUM configuration for reset operations")
        return

    fs = host.fs
    conf = host.packages.conf_path
    if fs.exists(conf):
        conf_backup = fs.backup(conf)
        state.compensate(f"Restore {conf}", lambda: fs.copy(conf_backup, conf))
    else:
        state.compensate(f"Remove {conf}", lambda: fs.remove(conf))
    fs.append_text(conf, DNF_TUNING)
    state.log.info("Package manager tuned for reset")


def stop_kubernetes_services(state: PipelineRunState, host: Host, config: ProvisionConfig,
                             complete: bool = False) -> None:
    units = ['kubelet', 'containerd'] if complete else ['kubelet']
    if complete:
        state.best_effort("Failed to reload systemd", host.services.daemon_reload)
    for unit in units:
        state.best_effort(f"Failed to stop {unit}", host.services.stop, unit)
        state.best_effort(f"Failed to disable {unit}", host.services.disable, unit)
    state.log.info("Kubernetes services stopped")


def kill_kubernetes_processes(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    for name in KUBERNETES_PROCESSES:
        # pkill exits 1 when nothing matched
        host.shell.run(['pkill', '-9', '-x', name], check=False)
    state.log.info("Leftover Kubernetes processes terminated")


def reset_kubernetes(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    state.log.detail("Running kubeadm reset...")
    state.best_effort("kubeadm reset encountered issues", host.shell.run, ['kubeadm', 'reset', '-f'])

    state.log.detail("Removing Kubernetes configuration directories...")
    for path in ('/etc/kubernetes', config.kube_dir):
        state.best_effort(f"Failed to remove {path}", host.fs.remove_tree, path)
    state.best_effort(f"Failed to remove {SYSCTL_CONF}", host.fs.remove, SYSCTL_CONF)
    state.log.info("Kubernetes cluster reset")


def clean_container_images(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    if not host.shell.which('crictl'):
        state.log.detail("crictl not found; skipping container cleanup")
        return
    host.shell.run(['crictl', 'rm', '--all'], check=False)
    host.shell.run(['crictl', 'rmi', '--all'], check=False)
    state.log.info("Containers and images removed")


def clean_container_runtime(state: PipelineRunState, host: Host, config: ProvisionConfig,
                            complete: bool = False) -> None:
    if not complete:
        state.best_effort("Failed to stop containerd", host.services.stop, 'containerd')
        state.best_effort("Failed to disable containerd", host.services.disable, 'containerd')

    directories = ['/etc/containerd']
    if complete:
        directories.append('/var/run/containerd')
    for path in directories:
        state.best_effort(f"Failed to remove {path}", host.fs.remove_tree, path)
    state.log.info("Container runtime cleaned")


def remove_kubernetes_packages(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    packages = host.packages
    state.best_effort(
        "Failed to remove some Kubernetes packages",
        packages.remove, KUBERNETES_PACKAGES, '--noautoremove',
    )
    state.best_effort("Failed to remove containerd.io", packages.remove, ['containerd.io'])
    state.best_effort("Failed to remove Kubernetes repo", host.fs.remove, KUBERNETES_REPO)
    state.log.info("Kubernetes packages removed")


def remove_docker(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    host.shell.run(['systemctl', 'stop', 'docker'], check=False)
    host.shell.run(['systemctl', 'disable', 'docker'], check=False)
    installed = [p for p in DOCKER_PACKAGES if host.packages.is_installed(p)]
    if installed:
        state.best_effort("Failed to remove Docker packages", host.packages.remove, installed)
    state.best_effort("Failed to remove /var/lib/docker", host.fs.remove_tree, '/var/lib/docker')
    state.log.info("Docker removed")


def clean_network_configurations(state: PipelineRunState, host: Host, config: ProvisionConfig,
                                 complete: bool = False) -> None:
    fs = host.fs
    if complete:
        state.best_effort("Failed to remove /etc/cni", fs.remove_tree, '/etc/cni')
    else:
        state.best_effort("Failed to remove CNI configurations", fs.remove_glob, '/etc/cni/net.d', '*')
    state.best_effort("Failed to remove CNI binaries", fs.remove_tree, '/opt/cni')

    state.log.detail("Resetting iptables rules...")
    for args in IPTABLES_FLUSH:
        state.best_effort(f"Failed to run iptables {' '.join(args)}", host.shell.run, ['iptables', *args])

    state.log.detail("Removing IP routes...")
    state.best_effort(
        "Failed to flush bird routes",
        host.shell.run, ['ip', 'route', 'flush', 'proto', 'bird'],
    )

    if complete:
        for link in CNI_LINKS:
            # Most hosts carry only some of these links
            host.shell.run(['ip', 'link', 'delete', link], check=False)
    state.log.info("Network configurations cleaned")


def clean_data_directories(state: PipelineRunState, host: Host, config: ProvisionConfig,
                           complete: bool = False) -> None:
    directories = list(DATA_DIRECTORIES)
    if complete:
        directories.append('/run/flannel')
    for path in directories:
        state.best_effort(f"Failed to remove {path}", host.fs.remove_tree, path)
    state.log.info("Kubernetes data directories cleaned")


def restore_system_settings(state: PipelineRunState, host: Host, config: ProvisionConfig,
                            complete: bool = False) -> None:
    fs = host.fs

    selinux_backup = f"{SELINUX_CONF}.backup"
    if fs.exists(selinux_backup):
        state.log.detail("Restoring SELinux configuration...")
        state.best_effort("Failed to restore SELinux configuration", fs.copy, selinux_backup, SELINUX_CONF)
    elif complete and fs.exists(SELINUX_CONF):
        fs.replace_in_file(SELINUX_CONF, r'^SELINUX=permissive$', 'SELINUX=enforcing')

    fstab_backup = f"{FSTAB}.backup"
    if fs.exists(fstab_backup):
        state.log.detail("Restoring swap configuration...")
        if state.best_effort("Failed to restore swap configuration", fs.copy, fstab_backup, FSTAB):
            state.best_effort("Failed to enable swap", host.shell.run, ['swapon', '-a'])
    elif complete and fs.exists(FSTAB):
        fs.replace_in_file(FSTAB, r'^#(.*\bswap\b.*)$', r'\1')

    state.log.detail("Resetting kernel parameters...")
    state.best_effort("Failed to reset kernel parameters", host.shell.run, ['sysctl', '--system'])
    state.log.info("System settings restored")


def clean_orphaned_files(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    state.best_effort("Failed to remove k8s module configuration", host.fs.remove, MODULES_CONF)
    state.best_effort("Failed to remove Docker repo", host.fs.remove, DOCKER_REPO)
    state.best_effort("Failed to clean package manager cache", host.packages.clean_all)
    state.log.info("Orphaned files cleaned")


def clean_temporary_files(state: PipelineRunState, host: Host, config: ProvisionConfig) -> None:
    """Remove the kubeadm config and earlier audit logs, keeping the current one."""
    fs = host.fs
    state.best_effort(f"Failed to remove {config.kubeadm_config_path}", fs.remove, config.kubeadm_config_path)

    # Audit logs are written by this tool, outside the host root
    current = state.log.path.resolve()
    log_dir = Path(config.log_dir).expanduser()
    old_logs = sorted(log_dir.glob('k8s_*.log')) if log_dir.is_dir() else []
    for entry in old_logs:
        if entry.resolve() == current:
            continue
        if host.dry_run:
            state.log.detail(f"DRY RUN: would remove {entry}")
            continue
        state.best_effort(f"Failed to remove {entry}", entry.unlink)
    state.log.info("Temporary files cleaned")


def verify_reset(state: PipelineRunState, host: Host, config: ProvisionConfig,
                 complete: bool = False) -> None:
    for unit in ('kubelet', 'containerd'):
        if host.services.is_active(unit):
            state.warn(f"{unit} service is still active")

    for path in LEFTOVER_DIRECTORIES:
        if host.fs.path(path).is_dir():
            state.warn(f"Directory {path} still exists")

    if complete:
        running = [
            name for name in KUBERNETES_PROCESSES
            if host.shell.succeeds(['pgrep', '-x', name])
        ]
        if running:
            state.warn(f"Kubernetes processes still running: {', '.join(running)}")
    state.log.info("Reset verification completed")


def build_reset_pipeline(config: ProvisionConfig, host: Host, complete: bool = False) -> Pipeline:
    """Reset steps. ``complete`` adds the deep-clean extras and fallbacks."""
    bind = dict(host=host, config=config)
    mode = dict(bind, complete=complete)

    def cleanup(name, fn, **kwargs):
        return Step(name, partial(fn, **kwargs), Criticality.WARNING)

    preflight = [Step("Check root privileges", partial(require_root, host=host))] if config.require_root else []
    steps = [
        Step("Detect system", partial(detect_system, **bind)),
        Step("Configure mirrors", partial(configure_reset_mirrors, **bind)),
        cleanup("Stop Kubernetes services", stop_kubernetes_services, **mode),
    ]
    if complete:
        steps.append(cleanup("Kill Kubernetes processes", kill_kubernetes_processes, **bind))
    steps.append(cleanup("Reset Kubernetes", reset_kubernetes, **bind))
    if complete:
        steps.append(cleanup("Remove containers and images", clean_container_images, **bind))
    steps += [
        cleanup("Clean container runtime", clean_container_runtime, **mode),
        cleanup("Remove Kubernetes packages", remove_kubernetes_packages, **bind),
    ]
    if complete:
        steps.append(cleanup("Remove Docker", remove_docker, **bind))
    steps += [
        cleanup("Clean network configurations", clean_network_configurations, **mode),
        cleanup("Clean data directories", clean_data_directories, **mode),
        cleanup("Restore system settings", restore_system_settings, **mode),
        cleanup("Clean orphaned files", clean_orphaned_files, **bind),
    ]
    if complete:
        steps.append(cleanup("Clean temporary files", clean_temporary_files, **bind))

    postflight = [cleanup("Verify reset", verify_reset, **mode)]
    return Pipeline('reset', steps, preflight, postflight, is_master=host.is_master())
