# tests/cli/test_cli_app.py
from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

import besu_stack.cli.app as app_mod
from besu_stack.cli.app import app
from besu_stack.errors import KeyFetchError
from besu_stack.kube.discovery import StaticDiscovery
from conftest import FakeHelm, FakeKubectl

runner = CliRunner()


@pytest.fixture
def cluster(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("BESU_STACK_LOG_DIR", str(tmp_path / "logs"))
    helm = FakeHelm()
    kubectl = FakeKubectl()
    monkeypatch.setattr(app_mod, "HelmCliRunner", lambda *a, **k: helm)
    monkeypatch.setattr(app_mod, "KubectlRunner", lambda *a, **k: kubectl)
    monkeypatch.setattr(app_mod, "KubectlDiscovery", lambda k: StaticDiscovery())
    for mod in ("installer", "uninstaller", "support"):
        monkeypatch.setattr(f"besu_stack.lifecycle.{mod}.require_tools", lambda *a, **k: None)
    return SimpleNamespace(helm=helm, kubectl=kubectl, logs=tmp_path / "logs")


def test_install_fresh(cluster):
    result = runner.invoke(app, ["install", "devnet", "-n", "chain"])
    assert result.exit_code == 0, result.output
    assert cluster.helm.names("install") == ["besu-stack"]
    # run log plus its event stream
    assert any(p.name.endswith(".events.jsonl") for p in cluster.logs.iterdir())


def test_install_existing_release_exits_1(cluster):
    cluster.helm.releases.add(("besu-stack", "besu-stack"))
    result = runner.invoke(app, ["install", "testnet"])
    assert result.exit_code == 1
    assert cluster.helm.names("install") == []


def test_install_dry_run_prints_template(cluster):
    result = runner.invoke(app, ["install", "production", "-d", "-c", "aws", "-p", "high"])
    assert result.exit_code == 0, result.output
    assert "# rendered besu-stack" in result.output
    assert [c[0] for c in cluster.helm.calls] == ["template"]


def test_install_rejects_unknown_environment(cluster):
    result = runner.invoke(app, ["install", "mainnet"])
    assert result.exit_code == 2


def test_install_missing_values_file_exits_1(cluster, tmp_path: Path):
    result = runner.invoke(app, ["install", "devnet", "-f", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_uninstall(cluster):
    cluster.helm.releases.add(("besu", "besu-stack"))
    cluster.kubectl.namespaces.add("besu")
    result = runner.invoke(app, ["uninstall", "-n", "besu"])
    assert result.exit_code == 0, result.output
    assert cluster.helm.names("uninstall") == ["besu-stack"]
    assert not cluster.kubectl.namespace_exists("besu")


def test_uninstall_fleet_failure_exits_1(cluster, monkeypatch):
    cluster.helm.releases.update({("ns-a", "besu-stack-a"), ("ns-b", "besu-stack-b")})

    def broken_list(*a, **k):
        raise RuntimeError("api server unavailable")

    monkeypatch.setattr(cluster.kubectl, "list_names", broken_list)
    result = runner.invoke(app, ["uninstall", "-a", "-k"])
    assert result.exit_code == 1
    assert cluster.helm.names("uninstall") == ["besu-stack-a", "besu-stack-b"]


def test_install_support_requires_cloud(cluster):
    result = runner.invoke(app, ["install-support"])
    assert result.exit_code == 1
    assert cluster.helm.calls == []


def test_install_support_dry_run(cluster):
    result = runner.invoke(app, ["install-support", "-c", "gke", "-t", "-e", "ops@example.org", "-d"])
    assert result.exit_code == 0, result.output
    assert cluster.helm.calls == []


def test_uninstall_support_user_abort_exits_0(cluster):
    cluster.helm.releases.update({("besu", "besu-stack"), ("gateway", "contour")})
    result = runner.invoke(app, ["uninstall-support"], input="n\n")
    assert result.exit_code == 0, result.output
    assert "Continue anyway?" in result.output
    assert cluster.helm.names("uninstall") == []


def test_uninstall_support_only_flags_are_exclusive(cluster):
    result = runner.invoke(app, ["uninstall-support", "-c", "-m"])
    assert result.exit_code != 0
    assert cluster.helm.calls == []


def test_uninstall_support_single_component(cluster):
    cluster.helm.releases.update({("monitoring", "prometheus"), ("gateway", "contour")})
    result = runner.invoke(app, ["uninstall-support", "-p", "-y"])
    assert result.exit_code == 0, result.output
    assert cluster.helm.names("uninstall") == ["prometheus"]


def test_render_prints_manifests(cluster):
    result = runner.invoke(app, ["render", "devnet", "-a", "projectcontour.io/v1/HTTPProxy"])
    assert result.exit_code == 0, result.output
    assert "kind: StatefulSet" in result.output
    assert "kind: HTTPProxy" in result.output
    assert cluster.helm.calls == []


def test_render_writes_chart(cluster, tmp_path: Path):
    out = tmp_path / "chart-out"
    result = runner.invoke(app, ["render", "testnet", "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert (out / "besu-stack" / "Chart.yaml").is_file()
    assert any((out / "besu-stack" / "templates").iterdir())


def test_fetch_key_then_exec(monkeypatch, tmp_path: Path):
    seen = {}

    def fake_fetch(**kw):
        seen["fetch"] = kw
        return kw["output"]

    monkeypatch.setattr(app_mod, "fetch_key", fake_fetch)
    monkeypatch.setattr(app_mod, "exec_node", lambda cmd: seen.setdefault("exec", list(cmd)))

    out = tmp_path / "nodekey"
    result = runner.invoke(
        app,
        [
            "fetch-key",
            "--path-template", "kv/data/besu/validator-{ordinal}",
            "--output", str(out),
            "--",
            "/opt/besu/bin/besu", "--data-path=/data",
        ],
    )

    assert result.exit_code == 0, result.output
    assert seen["fetch"]["path_template"] == "kv/data/besu/validator-{ordinal}"
    assert seen["fetch"]["output"] == out
    assert seen["exec"] == ["/opt/besu/bin/besu", "--data-path=/data"]


def test_fetch_key_failure_exits_1(monkeypatch, tmp_path: Path):
    def failing(**kw):
        raise KeyFetchError("Vault login failed: 403")

    monkeypatch.setattr(app_mod, "fetch_key", failing)
    monkeypatch.setattr(app_mod, "exec_node", lambda cmd: pytest.fail("exec after failed fetch"))

    result = runner.invoke(app, ["fetch-key", "--path-template", "kv/v-{ordinal}", "--", "besu"])
    assert result.exit_code == 1
