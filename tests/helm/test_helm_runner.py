# tests/helm/test_helm_runner.py
from __future__ import annotations

import json
import subprocess

import pytest

from besu_stack.helm.cli_runner import HelmCliRunner
from besu_stack.helm.errors import HelmError, HelmTimeoutError


class DummyCP:
    def __init__(self, rc=0, out="", err=""):
        self.returncode = rc
        self.stdout = out
        self.stderr = err


def _capture(monkeypatch, cp=None):
    calls = []

    def fake_run(argv, check=False, text=False, capture_output=False, env=None):
        calls.append(argv)
        return cp or DummyCP(0)

    monkeypatch.setattr(subprocess, "run", fake_run)
    return calls


def test_status_true_and_false(monkeypatch):
    _capture(monkeypatch, DummyCP(0))
    assert HelmCliRunner().status("besu-stack", "besu") is True

    calls = _capture(monkeypatch, DummyCP(1, err="Error: release: not found"))
    assert HelmCliRunner(kube_context="ctx").status("besu-stack", "besu") is False
    assert calls[0] == ["helm", "--kube-context", "ctx", "status", "besu-stack", "-n", "besu"]


def test_install_argv(monkeypatch):
    calls = _capture(monkeypatch)
    HelmCliRunner().install(
        "besu-stack", "/tmp/chart", "besu",
        values_files=["a.yaml"], sets=["x=1"], timeout="5m",
    )
    assert calls[0] == [
        "helm", "install", "besu-stack", "/tmp/chart", "-n", "besu",
        "-f", "a.yaml", "--set", "x=1", "--create-namespace", "--timeout", "5m",
    ]


def test_upgrade_install_argv(monkeypatch):
    calls = _capture(monkeypatch)
    HelmCliRunner().upgrade("contour", "contour/contour", "gateway", install=True, create_namespace=True)
    argv = calls[0]
    assert argv[:3] == ["helm", "upgrade", "--install"]
    assert argv[3:7] == ["contour", "contour/contour", "-n", "gateway"]
    assert "--create-namespace" in argv


def test_uninstall_timeout_is_typed(monkeypatch):
    _capture(monkeypatch, DummyCP(1, err="Error: timed out waiting for the condition"))
    with pytest.raises(HelmTimeoutError):
        HelmCliRunner().uninstall("besu-stack", "besu", timeout="5m")


class FakePopen:
    """Streams scripted lines on stdout, like helm run with --debug."""

    def __init__(self, lines, rc):
        self._lines = list(lines) + [""]
        self._rc = rc
        self.returncode = None
        self.stdout = self

    def readline(self):
        return self._lines.pop(0)

    def wait(self):
        self.returncode = self._rc
        return self._rc


def test_debug_uninstall_timeout_is_typed(monkeypatch):
    lines = ["uninstall.go:97: [debug] uninstall: Deleting besu-stack\n",
             "Error: timed out waiting for the condition\n"]
    seen = []

    def fake_popen(argv, **kw):
        seen.append(argv)
        return FakePopen(lines, 1)

    monkeypatch.setattr(subprocess, "Popen", fake_popen)
    with pytest.raises(HelmTimeoutError):
        HelmCliRunner().uninstall("besu-stack", "besu", timeout="5m", debug=True)
    assert seen[0][-1] == "--debug"


def test_other_failures_are_helm_errors(monkeypatch):
    _capture(monkeypatch, DummyCP(1, err="Error: INSTALLATION FAILED"))
    with pytest.raises(HelmError) as exc:
        HelmCliRunner().install("besu-stack", "/tmp/chart", "besu")
    assert not isinstance(exc.value, HelmTimeoutError)


def test_list_releases_parses_json(monkeypatch):
    payload = [{"name": "besu-stack", "namespace": "a"}, {"name": "besu-stack-2", "namespace": "b"}]
    calls = _capture(monkeypatch, DummyCP(0, out=json.dumps(payload)))
    assert HelmCliRunner().list_releases("besu-stack") == payload
    assert calls[0] == ["helm", "list", "-o", "json", "-A", "--filter", "besu-stack"]


def test_list_releases_empty_output(monkeypatch):
    _capture(monkeypatch, DummyCP(0, out=""))
    assert HelmCliRunner().list_releases() == []


def test_add_repo_force_update(monkeypatch):
    calls = _capture(monkeypatch)
    HelmCliRunner().add_repo("jetstack", "https://charts.jetstack.io")
    assert calls[0] == ["helm", "repo", "add", "jetstack", "https://charts.jetstack.io", "--force-update"]
