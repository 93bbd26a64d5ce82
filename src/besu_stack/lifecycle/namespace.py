# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/lifecycle/namespace.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from besu_stack.errors import StuckResourceError
from besu_stack.kube.kubectl import KubectlRunner
from besu_stack.observers.dispatcher import RunEvents
from besu_stack.observers.events import FinalizersStripped, NamespaceDeleted, NamespaceStuck
from besu_stack.utils.execution import ExecutionContext
from besu_stack.utils.retry import poll

log = logging.getLogger("besu_stack")

TERMINATING = "Terminating"

# Kinds inside a release namespace known to carry finalizers.
RELEASE_FINALIZER_KINDS = ("httpproxy", "certificates")

# Kinds left behind in support namespaces by cert-manager and Contour.
SUPPORT_FINALIZER_KINDS = (
    "challenges",
    "orders",
    "certificates",
    "certificaterequests",
    "issuers",
    "httpproxies",
    "extensionservices",
)


@dataclass
class NamespaceRemoval:
    namespace: str
    deleted: bool
    waited_s: float = 0.0
    finalized: bool = False
    phase: Optional[str] = None


class NamespaceRemover:
    """
    delete (non-blocking) -> [force: strip finalizers, finalize if
    Terminating] -> poll for absence -> report.
    """

    def __init__(
        self,
        kubectl: KubectlRunner,
        events: RunEvents,
        exec_ctx: ExecutionContext,
        *,
        timeout: float = 60,
        interval: float = 2,
        progress_every: float = 10,
        settle: float = 2,
    ):
        self.kubectl = kubectl
        self.events = events
        self.exec_ctx = exec_ctx
        self.timeout = timeout
        self.interval = interval
        self.progress_every = progress_every
        self.settle = settle

    def strip(self, namespace: str, kinds: Sequence[str]) -> int:
        total = 0
        for kind in kinds:
            n = self.kubectl.strip_finalizers(kind, namespace=namespace)
            if n:
                log.info("  Removed finalizers from %d %s in %s", n, kind, namespace)
                self.events.emit(FinalizersStripped, namespace=namespace, resource=kind, count=n)
            total += n
        return total

    def _finalize_if_terminating(self, namespace: str) -> bool:
        phase = self.kubectl.namespace_phase(namespace)
        if phase != TERMINATING:
            return False
        log.warning("Namespace %s is stuck in Terminating state", namespace)
        log.info("Removing finalizers from namespace...")
        return self.kubectl.finalize_namespace(namespace) == 0

    def remove(
        self,
        namespace: str,
        *,
        force: bool,
        finalizer_kinds: Sequence[str] = RELEASE_FINALIZER_KINDS,
        wait: bool = True,
        fail_when_stuck: bool = True,
    ) -> NamespaceRemoval:
        log.info("Deleting namespace %s...", namespace)
        self.kubectl.delete("namespace", namespace, wait=False)

        result = NamespaceRemoval(namespace=namespace, deleted=False)

        if force:
            # let the API server start terminating before touching finalizers
            self.exec_ctx.sleep(self.settle)
            log.info("Force deleting namespace %s...", namespace)
            self.strip(namespace, finalizer_kinds)
            result.finalized = self._finalize_if_terminating(namespace)

        if not wait:
            result.deleted = not self.kubectl.namespace_exists(namespace)
            return result

        log.info("Waiting for namespace deletion...")
        gone, elapsed = poll(
            lambda: not self.kubectl.namespace_exists(namespace),
            timeout=self.timeout,
            interval=self.interval,
            progress_every=self.progress_every,
            on_progress=lambda s: log.info("  Still waiting... (%d seconds)", s),
            sleep=self.exec_ctx.sleep,
        )
        result.waited_s = elapsed

        if not gone and force:
            # one last attempt before giving up
            result.finalized = self._finalize_if_terminating(namespace) or result.finalized
            gone = not self.kubectl.namespace_exists(namespace)

        if gone:
            result.deleted = True
            log.info("Namespace %s deleted successfully", namespace)
            self.events.emit(NamespaceDeleted, namespace=namespace, waited_s=int(elapsed))
            return result

        result.phase = self.kubectl.namespace_phase(namespace)
        self.events.emit(NamespaceStuck, namespace=namespace, phase=result.phase, forced=force)
        if force and fail_when_stuck:
            raise StuckResourceError(f"Namespace {namespace} still exists after force deletion")
        if force:
            log.warning("Namespace %s still exists after force deletion", namespace)
        else:
            log.warning("Namespace %s is stuck. Run with -f/--force to force removal.", namespace)
        return result
