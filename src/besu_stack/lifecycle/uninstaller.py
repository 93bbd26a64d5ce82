# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/lifecycle/uninstaller.py

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from besu_stack.config.models import UninstallOptions
from besu_stack.config.settings import Settings
from besu_stack.errors import StuckResourceError
from besu_stack.helm.cli_runner import HelmCliRunner
from besu_stack.helm.errors import HelmError, HelmTimeoutError
from besu_stack.kube.kubectl import KubectlRunner
from besu_stack.lifecycle.installer import require_tools
from besu_stack.lifecycle.namespace import RELEASE_FINALIZER_KINDS, NamespaceRemoval, NamespaceRemover
from besu_stack.lifecycle.states import Phase, ReleaseState
from besu_stack.observers.dispatcher import RunEvents
from besu_stack.observers.events import FleetSummary, ReleaseUninstalled
from besu_stack.utils.execution import ExecutionContext

log = logging.getLogger("besu_stack")

PRESERVED_LABEL = "besu-stack/preserved=true"


@dataclass
class UnitResult:
    release: str
    namespace: str
    helm_status: str = "OK"       # OK | TIMEOUT | MISSING | FAILED | DRY_RUN
    preserved_pvcs: List[str] = field(default_factory=list)
    namespace_removal: Optional[NamespaceRemoval] = None
    state: Optional[ReleaseState] = None


@dataclass
class FleetReport:
    results: List[UnitResult] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class Uninstaller:
    """
    Single-unit and fleet uninstall.

    Every cluster mutation is best-effort; only a namespace that survives a
    forced removal raises (StuckResourceError).
    """

    def __init__(
        self,
        *,
        helm: HelmCliRunner,
        kubectl: KubectlRunner,
        settings: Settings,
        events: RunEvents,
        exec_ctx: ExecutionContext,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.helm = helm
        self.kubectl = kubectl
        self.settings = settings
        self.events = events
        self.exec_ctx = exec_ctx
        self.which = which
        self.remover = NamespaceRemover(
            kubectl,
            events,
            exec_ctx,
            timeout=settings.namespace_timeout_seconds,
            interval=settings.poll_interval_seconds,
        )

    # ------------------------------------------------------------------
    # Single unit
    # ------------------------------------------------------------------
    def _helm_uninstall(self, release: str, namespace: str, state: ReleaseState) -> str:
        if not self.helm.status(release, namespace):
            log.warning("Release %s not found in namespace %s", release, namespace)
            return "MISSING"

        state.phase = Phase.installed
        state.advance(Phase.uninstalling)
        log.info("Uninstalling Helm release...")
        try:
            self.helm.uninstall(release, namespace, wait=True, timeout=self.settings.helm_timeout,
                                debug=self.exec_ctx.debug)
        except HelmTimeoutError:
            log.warning("Helm uninstall timed out, continuing with cleanup...")
            return "TIMEOUT"
        except HelmError as e:
            log.warning("Helm uninstall failed, continuing with cleanup: %s", e)
            return "FAILED"
        return "OK"

    def _preserve_pvcs(self, namespace: str) -> List[str]:
        log.info("Keeping PVCs in namespace %s", namespace)
        labeled = []
        for ns, name in self.kubectl.list_names("pvc", namespace=namespace):
            if self.kubectl.label("pvc", name, ns or namespace, PRESERVED_LABEL) == 0:
                labeled.append(name)
        log.warning("PVCs preserved. To delete them later:")
        log.warning("  kubectl delete pvc -n %s -l %s", namespace, PRESERVED_LABEL)
        return labeled

    def uninstall(
        self,
        namespace: str,
        release: str,
        *,
        force: bool = False,
        keep_pvcs: bool = False,
    ) -> UnitResult:
        log.info("Uninstalling %s from namespace %s...", release, namespace)
        result = UnitResult(release=release, namespace=namespace)

        if self.exec_ctx.dry_run:
            log.info("Would uninstall Helm release: %s from %s", release, namespace)
            if keep_pvcs:
                log.info("Would keep PVCs in namespace")
            log.info("Would delete namespace: %s", namespace)
            result.helm_status = "DRY_RUN"
            return result

        state = ReleaseState(release=release, namespace=namespace)
        result.state = state

        # (a) graceful helm removal, bounded; timeouts are not fatal
        result.helm_status = self._helm_uninstall(release, namespace, state)
        self.events.emit(
            ReleaseUninstalled, release=release, namespace=namespace, status=result.helm_status
        )
        if state.phase is Phase.not_installed:
            state.advance(Phase.uninstalling)

        # (b) tag claims so they are recognisable after the namespace goes
        if keep_pvcs:
            result.preserved_pvcs = self._preserve_pvcs(namespace)

        # (c)-(e) namespace removal; the claim kind is stripped only when not preserving
        kinds = RELEASE_FINALIZER_KINDS if keep_pvcs else RELEASE_FINALIZER_KINDS + ("pvc",)
        if force:
            state.advance(Phase.force_recovering)
        try:
            removal = self.remover.remove(namespace, force=force, finalizer_kinds=kinds)
        except StuckResourceError:
            state.advance(Phase.stuck_terminating)
            raise
        result.namespace_removal = removal
        state.advance(Phase.deleted if removal.deleted else Phase.stuck_terminating)
        return result

    # ------------------------------------------------------------------
    # Fleet
    # ------------------------------------------------------------------
    def discover(self, release_filter: str) -> List[Tuple[str, str]]:
        """
        ``(namespace, release)`` pairs whose name contains *release_filter*.
        Substring match, as ``helm list --filter`` does.
        """
        log.info("Finding all %s releases...", release_filter)
        units = []
        for entry in self.helm.list_releases(release_filter, all_namespaces=True):
            ns, name = entry.get("namespace"), entry.get("name")
            if ns and name:
                units.append((ns, name))
        return units

    def _safe_uninstall(self, unit: Tuple[str, str], force: bool, keep_pvcs: bool) -> Tuple[str, Optional[UnitResult], Optional[str]]:
        ns, rel = unit
        key = f"{ns}/{rel}"
        try:
            return key, self.uninstall(ns, rel, force=force, keep_pvcs=keep_pvcs), None
        except Exception as e:
            log.error("Uninstall of %s failed: %s", key, e)
            return key, None, str(e)

    def uninstall_fleet(self, opts: UninstallOptions) -> FleetReport:
        report = FleetReport()
        units = self.discover(opts.release_filter)
        if not units:
            log.info("No %s releases found", opts.release_filter)
            return report

        if opts.parallel > 1 and len(units) > 1:
            with ThreadPoolExecutor(max_workers=opts.parallel) as pool:
                outcomes = list(pool.map(
                    lambda u: self._safe_uninstall(u, opts.force, opts.keep_pvcs), units
                ))
        else:
            outcomes = [self._safe_uninstall(u, opts.force, opts.keep_pvcs) for u in units]

        for key, res, err in outcomes:
            if err is not None:
                report.failures[key] = err
            elif res is not None:
                report.results.append(res)

        self.events.emit(
            FleetSummary, ok=len(report.results), failed=len(report.failures), failures=dict(report.failures)
        )
        return report

    # ------------------------------------------------------------------
    def run(self, opts: UninstallOptions) -> FleetReport:
        require_tools(which=self.which)
        if opts.all_releases:
            return self.uninstall_fleet(opts)
        res = self.uninstall(opts.namespace, opts.release, force=opts.force, keep_pvcs=opts.keep_pvcs)
        return FleetReport(results=[res])
