# tests/lifecycle/test_installer.py
from __future__ import annotations

import pytest

from besu_stack.chart.ingress import HTTPPROXY_API, IngressKind
from besu_stack.config.models import Environment, IngressMode, InstallOptions
from besu_stack.errors import PreconditionError, ReleaseExistsError
from besu_stack.helm.errors import HelmError
from besu_stack.kube.kubectl import KubectlError
from besu_stack.kube.discovery import StaticDiscovery
import besu_stack.lifecycle.installer as installer_mod
from besu_stack.lifecycle.installer import CONTOUR_CRD, Installer, require_tools
from besu_stack.lifecycle.states import Phase
from besu_stack.utils.execution import ExecutionContext
from conftest import FakeHelm


def _installer(helm, settings, events, which, *, discovery=None, dry_run=False):
    return Installer(
        helm=helm,
        discovery=discovery or StaticDiscovery(),
        settings=settings,
        events=events,
        exec_ctx=ExecutionContext(dry_run=dry_run, sleep=lambda s: None),
        which=which,
    )


def test_fresh_install(settings, events, recorder, which):
    helm = FakeHelm()
    result = _installer(helm, settings, events, which).run(
        InstallOptions(environment=Environment.devnet, namespace="chain", release="net")
    )

    installs = [c for c in helm.calls if c[0] == "install"]
    assert len(installs) == 1
    assert installs[0][1:3] == ("net", "chain")
    assert installs[0][3]["create_namespace"] is True
    assert result.state.phase is Phase.installed
    assert result.state.revision == 1
    assert recorder.kinds() == ["InstallStarted", "ReleaseInstalled"]


def test_layers_planned_once_per_install(settings, events, which, monkeypatch):
    planned = []
    real = installer_mod.plan_layers

    def counting(opts, values_dir):
        planned.append(opts.release)
        return real(opts, values_dir)

    monkeypatch.setattr(installer_mod, "plan_layers", counting)
    result = _installer(FakeHelm(), settings, events, which).run(
        InstallOptions(environment=Environment.testnet, namespace="chain", release="net")
    )
    assert planned == ["net"]
    assert result.plan.names()[0] == "environment"


def test_existing_release_without_upgrade_is_refused(settings, events, recorder, which):
    helm = FakeHelm(releases=[("chain", "net")])
    with pytest.raises(ReleaseExistsError):
        _installer(helm, settings, events, which).run(
            InstallOptions(environment=Environment.devnet, namespace="chain", release="net")
        )
    assert helm.names("install") == []
    assert helm.names("upgrade") == []
    assert recorder.events == []


def test_upgrade_existing_release(settings, events, which):
    helm = FakeHelm(releases=[("chain", "net")])
    result = _installer(helm, settings, events, which).run(
        InstallOptions(environment=Environment.devnet, namespace="chain", release="net", upgrade=True)
    )
    upgrades = [c for c in helm.calls if c[0] == "upgrade"]
    assert upgrades[0][3]["install"] is True
    assert Phase.upgrading in result.state.history
    assert result.state.phase is Phase.installed


def test_upgrade_flag_on_fresh_namespace_installs(settings, events, which):
    helm = FakeHelm()
    result = _installer(helm, settings, events, which).run(
        InstallOptions(environment=Environment.devnet, upgrade=True)
    )
    assert helm.names("upgrade") == ["besu-stack"]
    assert Phase.installing in result.state.history


def test_helm_failure_rolls_phase_back(settings, events, which):
    helm = FakeHelm(fail={"besu-stack": HelmError("boom")})
    installer = _installer(helm, settings, events, which)
    with pytest.raises(HelmError):
        installer.run(InstallOptions(environment=Environment.devnet))


def test_dry_run_templates_without_cluster_writes(settings, events, recorder, which):
    helm = FakeHelm()
    result = _installer(helm, settings, events, which, dry_run=True).run(
        InstallOptions(environment=Environment.devnet)
    )
    assert [c[0] for c in helm.calls] == ["template"]
    assert result.template_output.startswith("# rendered besu-stack")
    assert recorder.events[-1].dry_run is True


def test_contour_ingress_requires_crd(settings, events, which):
    helm = FakeHelm()
    with pytest.raises(PreconditionError, match="Contour CRDs not found"):
        _installer(helm, settings, events, which).run(
            InstallOptions(environment=Environment.devnet, ingress=IngressMode.contour)
        )
    assert helm.calls == []


def test_contour_ingress_renders_httpproxy(settings, events, which):
    discovery = StaticDiscovery([HTTPPROXY_API], crds=[CONTOUR_CRD])
    helm = FakeHelm()
    result = _installer(helm, settings, events, which, discovery=discovery).run(
        InstallOptions(
            environment=Environment.testnet,
            ingress=IngressMode.contour,
            sets=["httpProxy.host=rpc.example.org"],
        )
    )
    assert result.rendered.ingress_kind is IngressKind.http_proxy
    assert result.plan.names() == ["environment", "performance", "ingress"]


def test_missing_tool(settings, events):
    with pytest.raises(PreconditionError, match="helm is required"):
        require_tools(which=lambda tool: None)


class _UnreachableCluster:
    def capabilities(self):
        raise KubectlError("no cluster")

    def has_crd(self, name):
        return False


def test_capability_failure_tolerated_in_dry_run_only(settings, events, which):
    opts = InstallOptions(environment=Environment.devnet)
    dry = _installer(FakeHelm(), settings, events, which, discovery=_UnreachableCluster(), dry_run=True)
    assert dry.run(opts).rendered.ingress_kind is None

    live = _installer(FakeHelm(), settings, events, which, discovery=_UnreachableCluster())
    with pytest.raises(PreconditionError):
        live.run(opts)
