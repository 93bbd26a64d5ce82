# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/lifecycle/support.py

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import typer
import yaml

from besu_stack.config.layers import support_values_file
from besu_stack.config.models import CloudProvider, SupportComponent, SupportOptions
from besu_stack.config.settings import Settings
from besu_stack.errors import ConfigurationError
from besu_stack.helm.cli_runner import HelmCliRunner
from besu_stack.helm.errors import HelmError, HelmTimeoutError
from besu_stack.kube.kubectl import KubectlError, KubectlRunner
from besu_stack.lifecycle.components import (
    INSTALL_ORDER,
    REGISTRY,
    TEARDOWN_ORDER,
    SupportChart,
    cluster_issuer,
    selected,
)
from besu_stack.lifecycle.installer import require_tools
from besu_stack.lifecycle.namespace import SUPPORT_FINALIZER_KINDS, NamespaceRemover
from besu_stack.observers.dispatcher import RunEvents
from besu_stack.observers.events import ComponentRemoved
from besu_stack.utils.execution import ExecutionContext

log = logging.getLogger("besu_stack")

NETWORK_RELEASE_FILTER = "besu-stack"


# ---------------------------------------------------------------------
# Install
# ---------------------------------------------------------------------
@dataclass
class SupportInstallReport:
    installed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    planned: List[str] = field(default_factory=list)   # dry run: the helm commands
    issuer: Optional[dict] = None


class SupportInstaller:
    """Contour, then cert-manager (+ ClusterIssuer), then kube-prometheus-stack."""

    def __init__(
        self,
        *,
        helm: HelmCliRunner,
        kubectl: KubectlRunner,
        settings: Settings,
        exec_ctx: ExecutionContext,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.helm = helm
        self.kubectl = kubectl
        self.settings = settings
        self.exec_ctx = exec_ctx
        self.which = which

    def _components(self, opts: SupportOptions) -> List[SupportChart]:
        wanted = {SupportComponent.contour}
        if opts.tls:
            wanted.add(SupportComponent.cert_manager)
        if opts.prometheus:
            wanted.add(SupportComponent.prometheus)
        return [REGISTRY[c] for c in INSTALL_ORDER if c in wanted]

    def _values_files(self, comp: SupportChart) -> List[Path]:
        if not comp.values_file:
            return []
        path = support_values_file(self.settings.values_dir, comp.values_file)
        if path is None:
            expected = self.settings.values_dir / "support" / f"{comp.values_file}-values.yaml"
            if comp.values_required:
                raise ConfigurationError(f"{comp.release_name} values file not found: {expected}")
            log.warning("%s values file not found: %s; using chart defaults", comp.release_name, expected)
            return []
        return [path]

    def validate(self, opts: SupportOptions) -> None:
        if opts.cloud is None:
            raise ConfigurationError("Cloud provider is required. Use -c/--cloud <aws|gke|azure>")
        if opts.tls and not opts.email:
            raise ConfigurationError("Email is required for TLS. Use -e/--email <your-email>")

    def _install_one(self, comp: SupportChart, opts: SupportOptions, report: SupportInstallReport) -> bool:
        files = self._values_files(comp)
        action = "upgrade" if opts.upgrade else "install"
        argv = ["helm", action, comp.release_name, comp.chart_ref, "-n", comp.namespace, "--create-namespace"]
        for f in files:
            argv += ["-f", str(f)]
        for s in comp.sets:
            argv += ["--set", s]

        if self.exec_ctx.dry_run:
            log.info("Would execute: %s", " ".join(argv))
            report.planned.append(" ".join(argv))
            return False

        self.helm.add_repo(comp.repo_name, comp.repo_url)
        self.helm.update_repos()

        if not opts.upgrade and self.helm.status(comp.release_name, comp.namespace):
            log.warning("%s already installed. Use -u/--upgrade to upgrade.", comp.release_name)
            report.skipped.append(comp.release_name)
            return False

        log.info("Executing: %s", " ".join(argv))
        if opts.upgrade:
            self.helm.upgrade(
                comp.release_name, comp.chart_ref, comp.namespace,
                values_files=files, sets=comp.sets, create_namespace=True, debug=self.exec_ctx.debug,
            )
        else:
            self.helm.install(
                comp.release_name, comp.chart_ref, comp.namespace,
                values_files=files, sets=comp.sets, create_namespace=True, debug=self.exec_ctx.debug,
            )
        log.info("%s installed successfully", comp.release_name)
        report.installed.append(comp.release_name)
        return True

    def run(self, opts: SupportOptions) -> SupportInstallReport:
        self.validate(opts)
        require_tools(which=self.which)

        log.info("Cloud provider: %s", opts.cloud.value)
        log.info("TLS (cert-manager): %s", opts.tls)
        log.info("Prometheus monitoring: %s", opts.prometheus)

        report = SupportInstallReport()
        for comp in self._components(opts):
            log.info("Installing %s...", comp.release_name)
            fresh = self._install_one(comp, opts, report)

            if comp.name is SupportComponent.cert_manager:
                if fresh:
                    log.info("Waiting for cert-manager webhook to be ready...")
                    self.kubectl.rollout_status("deployment/cert-manager-webhook", comp.namespace, timeout="120s")
                report.issuer = cluster_issuer(opts.email or "")
                if self.exec_ctx.dry_run:
                    log.info("Would create ClusterIssuer with email: %s", opts.email)
                    log.info("\n%s", yaml.safe_dump(report.issuer, sort_keys=False))
                else:
                    self.kubectl.apply_objects([report.issuer])
                    log.info("ClusterIssuer created successfully")

        if not self.exec_ctx.dry_run:
            self._report_load_balancer(opts.cloud)
            self._next_steps(opts)
        return report

    def _report_load_balancer(self, cloud: CloudProvider) -> None:
        # AWS load balancers publish a hostname, the others an IP
        attr = "hostname" if cloud is CloudProvider.aws else "ip"
        addr = self.kubectl.get_field(
            "svc", "contour-envoy", f"{{.status.loadBalancer.ingress[0].{attr}}}", namespace="gateway"
        )
        log.info("LoadBalancer address: %s", addr or "(pending)")

    def _next_steps(self, opts: SupportOptions) -> None:
        tls = " -t" if opts.tls else ""
        log.info("Next steps:")
        log.info("  1. Wait for the LoadBalancer to get an external address")
        log.info("  2. Point DNS at the LoadBalancer")
        log.info("  3. besu-stack install testnet -c %s -i contour%s -s httpProxy.host=besu.example.com",
                 opts.cloud.value, tls)


# ---------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------
@dataclass
class TeardownReport:
    aborted: bool = False
    removed: List[str] = field(default_factory=list)
    stuck_crds: List[str] = field(default_factory=list)
    active_releases: List[str] = field(default_factory=list)


def _prompt(message: str) -> bool:
    return typer.confirm(message, default=False)


class SupportTeardown:
    """
    Remove support components in dependency order: cert-manager, Contour,
    Prometheus. Each step is best-effort.
    """

    def __init__(
        self,
        *,
        helm: HelmCliRunner,
        kubectl: KubectlRunner,
        events: RunEvents,
        exec_ctx: ExecutionContext,
        confirm: Callable[[str], bool] = _prompt,
        which: Callable[[str], Optional[str]] = shutil.which,
        namespace_timeout: float = 30,
        poll_interval: float = 2,
    ):
        self.helm = helm
        self.kubectl = kubectl
        self.events = events
        self.exec_ctx = exec_ctx
        self.confirm = confirm
        self.which = which
        self.remover = NamespaceRemover(
            kubectl, events, exec_ctx, timeout=namespace_timeout, interval=poll_interval, progress_every=0,
        )

    # ------------------------------------------------------------------
    def active_releases(self) -> List[str]:
        try:
            return [r.get("name", "") for r in self.helm.list_releases(NETWORK_RELEASE_FILTER)]
        except HelmError as e:
            log.warning("Could not list %s releases: %s", NETWORK_RELEASE_FILTER, e)
            return []

    def _delete_crd(self, crd: str, force: bool) -> bool:
        if force:
            log.info("  Force deleting CRD: %s", crd)
            # -A also returns cluster-scoped instances
            self.kubectl.strip_finalizers(crd, all_namespaces=True)
        self.kubectl.delete(crd, all_=True, all_namespaces=True, wait=False)

        if self.kubectl.delete("crd", crd, timeout="30s") == 0:
            return True
        if not force:
            log.warning("CRD %s is stuck. Run with -f/--force to force removal.", crd)
            return False

        self.kubectl.patch_finalizers("crd", crd)
        return self.kubectl.delete("crd", crd, timeout="10s") == 0

    def _helm_uninstall(self, comp: SupportChart) -> None:
        if not self.helm.status(comp.release_name, comp.namespace):
            log.warning("%s release not found in %s namespace", comp.release_name, comp.namespace)
            return
        log.info("Uninstalling %s Helm release...", comp.release_name)
        try:
            self.helm.uninstall(comp.release_name, comp.namespace, wait=True, timeout=comp.uninstall_timeout)
        except HelmTimeoutError:
            log.warning("Helm uninstall timed out, continuing with cleanup...")
        except HelmError as e:
            log.warning("Helm uninstall of %s failed, continuing with cleanup: %s", comp.release_name, e)

    def _delete_cluster_issuers(self, force: bool) -> None:
        log.info("Deleting ClusterIssuers...")
        for _, name in self.kubectl.list_names("clusterissuers"):
            if force:
                self.kubectl.patch_finalizers("clusterissuer", name)
            self.kubectl.delete("clusterissuer", name, timeout="30s")

    def remove(self, comp: SupportChart, *, force: bool) -> List[str]:
        """Tear down one component; returns CRDs that could not be deleted."""
        log.info("Uninstalling %s...", comp.release_name)

        if self.exec_ctx.dry_run:
            if comp.name is SupportComponent.cert_manager:
                log.info("Would delete ClusterIssuers")
            log.info("Would uninstall Helm release: %s from %s namespace", comp.release_name, comp.namespace)
            log.info("Would delete %d CRDs", len(comp.crds))
            log.info("Would delete namespace: %s", comp.namespace)
            return []

        if comp.name is SupportComponent.cert_manager:
            self._delete_cluster_issuers(force)

        self._helm_uninstall(comp)

        log.info("Deleting %s CRDs...", comp.release_name)
        stuck: List[str] = []
        deleted = 0
        for crd in comp.crds:
            if not self.kubectl.crd_exists(crd):
                continue
            if self._delete_crd(crd, force):
                deleted += 1
            else:
                stuck.append(crd)

        if comp.rbac_selector or comp.webhooks:
            log.info("Cleaning up cluster resources...")
        if comp.rbac_selector:
            self.kubectl.delete("clusterrole", selector=comp.rbac_selector)
            self.kubectl.delete("clusterrolebinding", selector=comp.rbac_selector)
        for hook in comp.webhooks:
            self.kubectl.delete("mutatingwebhookconfiguration", hook)
            self.kubectl.delete("validatingwebhookconfiguration", hook)

        if self.kubectl.namespace_exists(comp.namespace):
            self.remover.remove(
                comp.namespace,
                force=force,
                finalizer_kinds=SUPPORT_FINALIZER_KINDS,
                wait=force,
                fail_when_stuck=False,
            )

        self.events.emit(ComponentRemoved, component=comp.name.value, namespace=comp.namespace, crds=deleted)
        log.info("%s uninstalled", comp.release_name)
        return stuck

    def run(self, opts: SupportOptions) -> TeardownReport:
        require_tools(which=self.which)
        report = TeardownReport()

        if not self.exec_ctx.dry_run:
            report.active_releases = [r for r in self.active_releases() if r]
            if report.active_releases:
                log.warning("Active besu-stack deployments found:")
                for rel in report.active_releases:
                    log.warning("  - %s", rel)
                log.warning("These deployments will lose ingress routing, TLS certificates, and monitoring.")
                if not opts.assume_yes and not self.confirm("Continue anyway?"):
                    log.info("Aborted")
                    report.aborted = True
                    return report

        for comp in selected(TEARDOWN_ORDER, opts.only):
            try:
                report.stuck_crds += self.remove(comp, force=opts.force)
            except KubectlError as e:
                log.warning("%s teardown incomplete: %s", comp.release_name, e)
                continue
            report.removed.append(comp.name.value)
        return report
