import shlex
import subprocess

import pytest

from kubeprov.modules.config import ProvisionConfig
from kubeprov.modules.host import Host, HostShell
from kubeprov.modules.pipeline import AuditLog, StepError


class RecordingShell(HostShell):
    """HostShell that records argv vectors and answers from a script."""

    def __init__(self, log, binaries=('dnf',)):
        super().__init__(log)
        self.commands = []
        self.responses = []
        self.binaries = set(binaries)

    def respond(self, prefix, returncode=0, stdout='', stderr=''):
        """Answer every command starting with ``prefix``. Later rules win."""
        self.responses.insert(0, (shlex.split(prefix), returncode, stdout, stderr))

    def _execute(self, argv, timeout, input):
        self.commands.append(list(argv))
        for prefix, returncode, stdout, stderr in self.responses:
            if argv[:len(prefix)] == prefix:
                return subprocess.CompletedProcess(argv, returncode, stdout, stderr)
        return subprocess.CompletedProcess(argv, 0, '', '')

    def which(self, binary):
        return f'/usr/bin/{binary}' if binary in self.binaries else None

    def ran(self, command):
        return shlex.split(command) in self.commands

    def ran_prefix(self, prefix):
        prefix = shlex.split(prefix)
        return [c for c in self.commands if c[:len(prefix)] == prefix]


class FakeServices:
    """In-memory service table with the ServiceManager surface."""

    def __init__(self, active=(), failing=()):
        self.active = set(active)
        self.failing = set(failing)
        self.started = []

    def is_active(self, name):
        return name in self.active

    def start(self, name):
        if name in self.failing:
            raise StepError(f"Failed to start {name}")
        self.started.append(name)
        self.active.add(name)

    def stop(self, name):
        self.active.discard(name)


@pytest.fixture
def audit_log(tmp_path):
    log = AuditLog(tmp_path / 'audit' / 'test.log', title='Test Log', echo=False)
    yield log
    log.close()


@pytest.fixture
def services():
    return FakeServices()


@pytest.fixture
def host_root(tmp_path):
    root = tmp_path / 'root'
    (root / 'etc').mkdir(parents=True)
    return root


@pytest.fixture
def shell(audit_log):
    return RecordingShell(audit_log)


@pytest.fixture
def host(audit_log, host_root, shell):
    return Host(audit_log, root=host_root, shell=shell)


@pytest.fixture
def provision_config(tmp_path, host_root):
    return ProvisionConfig(
        host_root=str(host_root),
        log_dir=str(tmp_path / 'logs'),
        kube_home='/root',
        verify_wait_seconds=0,
        require_root=False,
    )
