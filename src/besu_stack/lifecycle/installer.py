# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/lifecycle/installer.py

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, FrozenSet, Optional, Sequence

from besu_stack.chart.builder import build_chart
from besu_stack.chart.context import RenderContext
from besu_stack.chart.naming import Naming
from besu_stack.chart.render import RenderedChart, render_manifests
from besu_stack.config.layers import LayerPlan, plan_layers
from besu_stack.config.loader import load_values
from besu_stack.config.models import ChartValues, IngressMode, InstallOptions
from besu_stack.config.settings import Settings
from besu_stack.errors import PreconditionError, ReleaseExistsError
from besu_stack.helm.cli_runner import HelmCliRunner
from besu_stack.helm.errors import HelmError
from besu_stack.kube.kubectl import KubectlError
from besu_stack.kube.discovery import ClusterDiscovery
from besu_stack.lifecycle.states import Phase, ReleaseState
from besu_stack.observers.dispatcher import RunEvents
from besu_stack.observers.events import InstallStarted, ReleaseInstalled
from besu_stack.utils.execution import ExecutionContext

log = logging.getLogger("besu_stack")

CONTOUR_CRD = "httpproxies.projectcontour.io"
REQUIRED_TOOLS = ("helm", "kubectl")


def require_tools(tools: Sequence[str] = REQUIRED_TOOLS, which: Callable[[str], Optional[str]] = shutil.which) -> None:
    for tool in tools:
        if which(tool) is None:
            raise PreconditionError(f"{tool} is required but not installed")


@dataclass
class InstallResult:
    state: ReleaseState
    plan: LayerPlan
    values: ChartValues
    rendered: RenderedChart
    template_output: str = ""


@dataclass
class PreparedRelease:
    """Everything up to (but excluding) the helm call."""

    plan: LayerPlan
    merged: dict
    values: ChartValues
    ctx: RenderContext
    rendered: RenderedChart


class Installer:
    """
    Install or upgrade one release.

    Preconditions are checked before anything is written to the cluster:
    tools, values files, the Contour CRD for contour ingress, and release
    existence.
    """

    def __init__(
        self,
        *,
        helm: HelmCliRunner,
        discovery: ClusterDiscovery,
        settings: Settings,
        events: RunEvents,
        exec_ctx: ExecutionContext,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.helm = helm
        self.discovery = discovery
        self.settings = settings
        self.events = events
        self.exec_ctx = exec_ctx
        self.which = which

    # ------------------------------------------------------------------
    def _capabilities(self) -> FrozenSet[str]:
        try:
            return self.discovery.capabilities()
        except KubectlError as e:
            if self.exec_ctx.dry_run:
                log.warning("Cluster capabilities unavailable (%s); rendering without auto-detection", e)
                return frozenset()
            raise PreconditionError(f"Cannot read cluster capabilities: {e}") from e

    def _check_contour(self, opts: InstallOptions) -> None:
        if opts.ingress is not IngressMode.contour:
            return
        if not self.discovery.has_crd(CONTOUR_CRD):
            raise PreconditionError(
                "Contour CRDs not found. Install support infrastructure first: "
                "besu-stack install-support -c <provider>"
            )

    def prepare(
        self,
        opts: InstallOptions,
        *,
        is_upgrade: bool = False,
        detect_capabilities: bool = True,
        plan: Optional[LayerPlan] = None,
    ) -> PreparedRelease:
        if plan is None:
            plan = plan_layers(opts, self.settings.values_dir)
        merged, values = load_values(plan)
        caps = self._capabilities() if detect_capabilities else frozenset()
        ctx = RenderContext(
            release_name=opts.release,
            namespace=opts.namespace,
            capabilities=caps,
            is_upgrade=is_upgrade,
        )
        rendered = render_manifests(values, ctx)
        log.info(
            "Rendered %d resources (ingress: %s, static peers: %d)",
            len(rendered.manifests),
            rendered.ingress_kind.value if rendered.ingress_kind else "none",
            len(rendered.static_peers),
        )
        return PreparedRelease(plan=plan, merged=merged, values=values, ctx=ctx, rendered=rendered)

    # ------------------------------------------------------------------
    def run(self, opts: InstallOptions) -> InstallResult:
        require_tools(which=self.which)
        state = ReleaseState(release=opts.release, namespace=opts.namespace)

        # fail on bad layers before any cluster call
        plan = plan_layers(opts, self.settings.values_dir)
        self._check_contour(opts)

        exists = False
        if not self.exec_ctx.dry_run:
            exists = self.helm.status(opts.release, opts.namespace)
            if exists and not opts.upgrade:
                raise ReleaseExistsError(
                    f"Release {opts.release} already exists in namespace {opts.namespace}. "
                    f"Use -u/--upgrade to upgrade."
                )
            if exists:
                state.phase = Phase.installed

        prepared = self.prepare(opts, is_upgrade=exists, plan=plan)
        self.events.emit(
            InstallStarted,
            release=opts.release,
            namespace=opts.namespace,
            layers=prepared.plan.names(),
            upgrade=exists,
        )

        result = InstallResult(
            state=state, plan=prepared.plan, values=prepared.values, rendered=prepared.rendered
        )

        with tempfile.TemporaryDirectory(prefix="besu-stack-") as tmp:
            chart_dir = build_chart(prepared.merged, prepared.rendered, prepared.ctx, Path(tmp))

            if self.exec_ctx.dry_run:
                log.info("Dry run - rendering templates only")
                result.template_output = self.helm.template(opts.release, chart_dir, opts.namespace)
                self.events.emit(
                    ReleaseInstalled, release=opts.release, namespace=opts.namespace, upgraded=False, dry_run=True
                )
                return result

            state.advance(Phase.upgrading if exists else Phase.installing)
            try:
                if opts.upgrade:
                    log.info("Upgrading %s in %s...", opts.release, opts.namespace)
                    self.helm.upgrade(
                        opts.release, chart_dir, opts.namespace,
                        install=True, create_namespace=True,
                        timeout=self.settings.helm_timeout, debug=self.exec_ctx.debug,
                    )
                else:
                    log.info("Installing %s into %s...", opts.release, opts.namespace)
                    self.helm.install(
                        opts.release, chart_dir, opts.namespace,
                        create_namespace=True,
                        timeout=self.settings.helm_timeout, debug=self.exec_ctx.debug,
                    )
            except HelmError:
                if state.phase is Phase.installing:
                    state.advance(Phase.not_installed)
                else:
                    state.advance(Phase.installed)
                raise

        state.advance(Phase.installed)
        self.events.emit(ReleaseInstalled, release=opts.release, namespace=opts.namespace, upgraded=exists)
        self._next_steps(prepared)
        return result

    def _next_steps(self, prepared: PreparedRelease) -> None:
        ns = prepared.ctx.namespace
        naming = Naming.from_values(prepared.values, prepared.ctx)
        port = prepared.values.ports.http
        log.info("Deployment complete. Next steps:")
        log.info("  1. Check pod status:      kubectl get pods -n %s", ns)
        log.info("  2. Validator logs:        kubectl logs -n %s -l app.kubernetes.io/component=validator -f", ns)
        log.info("  3. RPC node logs:         kubectl logs -n %s -l app.kubernetes.io/component=rpc -f", ns)
        log.info("  4. Access RPC endpoint:   kubectl port-forward -n %s svc/%s %d:%d",
                 ns, naming.client_service("rpc"), port, port)
