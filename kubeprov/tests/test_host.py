import subprocess
from pathlib import Path

import pytest

from kubeprov.modules.host import FileSystem, Host, HostShell, PackageManager, ServiceManager
from kubeprov.modules.pipeline import CommandError, StepError

from .conftest import RecordingShell


def test_filesystem_maps_paths_below_root(tmp_path):
    fs = FileSystem(tmp_path)
    fs.write_text('/etc/sysctl.d/k8s.conf', 'net.ipv4.ip_forward = 1\n')

    assert (tmp_path / 'etc' / 'sysctl.d' / 'k8s.conf').read_text() == 'net.ipv4.ip_forward = 1\n'
    assert fs.exists('/etc/sysctl.d/k8s.conf')
    assert FileSystem('/').path('/etc/fstab') == Path('/etc/fstab')


def test_filesystem_backup_and_replace(tmp_path):
    fs = FileSystem(tmp_path)
    fs.write_text('/etc/fstab', '/dev/sda1 / xfs defaults 0 0\n/dev/sda2 swap swap defaults 0 0\n')

    backup = fs.backup('/etc/fstab')
    count = fs.replace_in_file('/etc/fstab', r'^([^#\n].*\bswap\b.*)$', r'#\1')

    assert backup == '/etc/fstab.backup'
    assert count == 1
    assert fs.read_text('/etc/fstab').splitlines()[1].startswith('#/dev/sda2')
    assert '#' not in fs.read_text(backup)


def test_filesystem_glob_and_copy_contents(tmp_path):
    fs = FileSystem(tmp_path)
    fs.write_text('/etc/yum.repos.d/a.repo', 'a')
    fs.write_text('/etc/yum.repos.d/b.repo', 'b')
    fs.write_text('/etc/yum.repos.d/notes.txt', 'n')

    assert fs.copy_contents('/etc/yum.repos.d', '/backup') == ['a.repo', 'b.repo', 'notes.txt']
    assert fs.remove_glob('/etc/yum.repos.d', '*.repo') == ['a.repo', 'b.repo']
    assert not fs.exists('/etc/yum.repos.d/a.repo')
    assert fs.exists('/backup/b.repo')


def test_filesystem_dry_run_changes_nothing(tmp_path):
    fs = FileSystem(tmp_path, dry_run=True)
    fs.write_text('/etc/modules-load.d/k8s.conf', 'br_netfilter\n')
    fs.makedirs('/etc/containerd')

    assert not fs.exists('/etc/modules-load.d/k8s.conf')
    assert not fs.exists('/etc/containerd')


def test_remove_tree_tolerates_missing_paths(tmp_path):
    fs = FileSystem(tmp_path)
    fs.remove_tree('/var/lib/etcd')
    fs.remove('/etc/kubernetes/admin.conf')
    fs.makedirs('/var/lib/kubelet/pods')
    fs.remove_tree('/var/lib/kubelet')

    assert not fs.exists('/var/lib/kubelet')


def test_shell_raises_command_error_with_stderr(audit_log):
    shell = RecordingShell(audit_log)
    shell.respond('kubeadm init', returncode=1, stderr='preflight\n[ERROR Port-6443]: in use\n')

    with pytest.raises(CommandError) as excinfo:
        shell.run(['kubeadm', 'init'])

    assert excinfo.value.returncode == 1
    assert isinstance(excinfo.value, StepError)
    assert '[ERROR Port-6443]: in use' in excinfo.value.message
    assert 'Executing: kubeadm init' in audit_log.path.read_text()


def test_shell_check_false_returns_result(audit_log):
    shell = RecordingShell(audit_log)
    shell.respond('systemctl is-active', returncode=3)

    assert shell.run('systemctl is-active --quiet kubelet', check=False).returncode == 3
    assert shell.commands == [['systemctl', 'is-active', '--quiet', 'kubelet']]


def test_shell_missing_binary(audit_log, monkeypatch):
    shell = HostShell(audit_log)

    def missing(argv, timeout, input):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(shell, '_execute', missing)

    assert shell.run(['crictl', 'ps'], check=False).returncode == 127
    with pytest.raises(CommandError, match='Command not found: crictl'):
        shell.run(['crictl', 'ps'])


def test_shell_timeout(audit_log, monkeypatch):
    shell = HostShell(audit_log, timeout=5)

    def slow(argv, timeout, input):
        raise subprocess.TimeoutExpired(argv, timeout)

    monkeypatch.setattr(shell, '_execute', slow)
    with pytest.raises(CommandError, match='timed out after 5s'):
        shell.run(['dnf', 'makecache'])

    result = shell.run(['dnf', 'makecache'], check=False)
    assert result.returncode == 124
    assert not shell.succeeds(['systemctl', 'is-active', '--quiet', 'kubelet'])


def test_shell_dry_run_does_not_execute(audit_log, monkeypatch):
    shell = HostShell(audit_log, dry_run=True)
    monkeypatch.setattr(shell, '_execute', lambda *a: pytest.fail("executed in dry run"))

    assert shell.run(['kubeadm', 'reset', '-f']).returncode == 0


def test_service_manager_commands(audit_log):
    shell = RecordingShell(audit_log)
    shell.respond('systemctl is-active --quiet docker', returncode=3)
    services = ServiceManager(shell)

    assert services.is_active('kubelet')
    assert not services.is_active('docker')
    services.restart('containerd')
    assert shell.ran('systemctl restart containerd')


def test_package_manager_detection(audit_log):
    assert PackageManager(RecordingShell(audit_log, binaries=('yum',))).detect() == 'yum'
    assert PackageManager(RecordingShell(audit_log, binaries=('dnf', 'yum'))).detect() == 'dnf'

    with pytest.raises(StepError, match='Neither DNF nor YUM'):
        PackageManager(RecordingShell(audit_log, binaries=())).detect()


def test_package_manager_missing_and_remove(audit_log):
    shell = RecordingShell(audit_log)
    shell.respond('rpm -q --quiet chrony', returncode=1)
    packages = PackageManager(shell)
    packages.detect()

    assert packages.missing(['curl', 'chrony']) == ['chrony']
    packages.remove(['kubelet', 'kubeadm'], '--noautoremove')
    assert shell.ran('dnf remove -y kubelet kubeadm --noautoremove')
    assert packages.conf_path == '/etc/dnf/dnf.conf'


def test_host_primary_ipv4(audit_log, tmp_path):
    shell = RecordingShell(audit_log)
    shell.respond(
        'ip -o -4 addr list',
        stdout=(
            "1: lo    inet 127.0.0.1/8 scope host lo\n"
            "2: eth0    inet 10.0.0.12/24 brd 10.0.0.255 scope global eth0\n"
        ),
    )
    host = Host(audit_log, root=tmp_path, shell=shell)
    assert host.primary_ipv4() == '10.0.0.12'


def test_host_os_release_and_role(host, host_root):
    (host_root / 'etc' / 'os-release').write_text('NAME="Rocky Linux"\nVERSION_ID="9.3"\n')
    assert host.os_release()['NAME'] == 'Rocky Linux'
    assert not host.is_master()

    (host_root / 'etc' / 'kubernetes').mkdir()
    (host_root / 'etc' / 'kubernetes' / 'admin.conf').write_text('apiVersion: v1\n')
    assert host.is_master()
