# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/kube/kubectl.py

from __future__ import annotations

import json
import logging
import subprocess
from typing import Iterable, List, Optional, Tuple

import yaml

log = logging.getLogger("besu_stack")

NULL_FINALIZERS = '{"metadata":{"finalizers":null}}'


class KubectlError(RuntimeError):
    pass


class KubectlRunner:
    """
    kubectl runner executed locally against the current kube context.

    Mutating helpers are best-effort: they return the exit code and log,
    callers decide whether a failure matters.
    """

    def __init__(self, *, kube_context: str | None = None, kubeconfig: str | None = None):
        self.kube_context = kube_context
        self.kubeconfig = kubeconfig

    def _base(self) -> list[str]:
        cmd = ["kubectl"]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        if self.kube_context:
            cmd += ["--context", self.kube_context]
        return cmd

    def _run(self, args: List[str], *, stdin: str | None = None) -> tuple[int, str, str]:
        """
        Run a kubectl command.

        Returns:
            (rc, stdout, stderr)
        """
        argv = self._base() + args
        log.debug("kubectl: %s", " ".join(argv))
        cp = subprocess.run(argv, check=False, text=True, capture_output=True, input=stdin)
        return cp.returncode, cp.stdout or "", cp.stderr or ""

    @staticmethod
    def _ns(namespace: str | None) -> list[str]:
        return ["-n", namespace] if namespace else []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def exists(self, resource: str, name: str, namespace: str | None = None) -> bool:
        rc, _, _ = self._run(["get", resource, name] + self._ns(namespace))
        return rc == 0

    def crd_exists(self, name: str) -> bool:
        return self.exists("crd", name)

    def namespace_exists(self, namespace: str) -> bool:
        return self.exists("namespace", namespace)

    def get_field(self, resource: str, name: str, jsonpath: str, namespace: str | None = None) -> Optional[str]:
        rc, out, _ = self._run(["get", resource, name] + self._ns(namespace) + ["-o", f"jsonpath={jsonpath}"])
        if rc != 0:
            return None
        return out.strip() or None

    def namespace_phase(self, namespace: str) -> Optional[str]:
        return self.get_field("namespace", namespace, "{.status.phase}")

    def get_json(self, resource: str, name: str | None = None, namespace: str | None = None,
                 all_namespaces: bool = False) -> dict:
        args = ["get", resource]
        if name:
            args.append(name)
        args += ["-A"] if all_namespaces else self._ns(namespace)
        args += ["-o", "json"]
        rc, out, err = self._run(args)
        if rc != 0:
            raise KubectlError(f"kubectl get {resource} failed: {err or out}")
        try:
            return json.loads(out or "{}")
        except json.JSONDecodeError as e:
            raise KubectlError(f"kubectl get {resource} returned invalid JSON: {e}") from e

    def list_names(self, resource: str, namespace: str | None = None,
                   all_namespaces: bool = False) -> List[Tuple[Optional[str], str]]:
        """
        ``(namespace, name)`` pairs; namespace is None for cluster-scoped
        objects. An unknown resource type yields an empty list.
        """
        try:
            data = self.get_json(resource, namespace=namespace, all_namespaces=all_namespaces)
        except KubectlError as e:
            log.debug("Listing %s skipped: %s", resource, e)
            return []
        out = []
        for item in data.get("items", []):
            meta = item.get("metadata", {})
            out.append((meta.get("namespace"), meta["name"]))
        return out

    def api_versions(self) -> List[str]:
        rc, out, err = self._run(["api-versions"])
        if rc != 0:
            raise KubectlError(f"kubectl api-versions failed: {err or out}")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def crds(self) -> List[dict]:
        return self.get_json("crd").get("items", [])

    # ------------------------------------------------------------------
    # Mutations (best-effort)
    # ------------------------------------------------------------------
    def label(self, resource: str, name: str, namespace: str | None, label: str) -> int:
        rc, out, err = self._run(["label", resource, name, label, "--overwrite"] + self._ns(namespace))
        if rc != 0:
            log.warning("Labeling %s/%s failed: %s", resource, name, (err or out).strip())
        return rc

    def patch_finalizers(self, resource: str, name: str, namespace: str | None = None) -> int:
        rc, out, err = self._run(
            ["patch", resource, name] + self._ns(namespace) + ["--type=merge", "-p", NULL_FINALIZERS]
        )
        if rc != 0:
            log.debug("Finalizer patch on %s/%s failed: %s", resource, name, (err or out).strip())
        return rc

    def strip_finalizers(self, resource: str, namespace: str | None = None,
                         all_namespaces: bool = False) -> int:
        """Clear finalizers on every *resource* in scope; returns how many were patched."""
        patched = 0
        for ns, name in self.list_names(resource, namespace=namespace, all_namespaces=all_namespaces):
            if self.patch_finalizers(resource, name, ns) == 0:
                patched += 1
        return patched

    def delete(
        self,
        resource: str,
        name: str | None = None,
        *,
        namespace: str | None = None,
        selector: str | None = None,
        all_: bool = False,
        all_namespaces: bool = False,
        wait: bool | None = None,
        timeout: str | None = None,
    ) -> int:
        args = ["delete", resource]
        if name:
            args.append(name)
        if selector:
            args += ["-l", selector]
        if all_:
            args.append("--all")
        args += ["-A"] if all_namespaces else self._ns(namespace)
        args.append("--ignore-not-found")
        if wait is not None:
            args.append(f"--wait={'true' if wait else 'false'}")
        if timeout:
            args.append(f"--timeout={timeout}")
        rc, out, err = self._run(args)
        if rc != 0:
            log.debug("kubectl delete %s %s failed: %s", resource, name or "", (err or out).strip())
        return rc

    def finalize_namespace(self, namespace: str) -> int:
        """
        Empty ``spec.finalizers`` through the namespace finalize subresource.
        """
        try:
            ns_obj = self.get_json("namespace", namespace)
        except KubectlError as e:
            log.debug("Namespace %s not readable for finalize: %s", namespace, e)
            return 1
        ns_obj.setdefault("spec", {})["finalizers"] = []
        rc, out, err = self._run(
            ["replace", "--raw", f"/api/v1/namespaces/{namespace}/finalize", "-f", "-"],
            stdin=json.dumps(ns_obj),
        )
        if rc != 0:
            log.warning("Finalize of namespace %s failed: %s", namespace, (err or out).strip())
        return rc

    def rollout_status(self, kind_name: str, namespace: str, timeout: str = "120s") -> int:
        rc, out, err = self._run(["rollout", "status", kind_name, f"--timeout={timeout}"] + self._ns(namespace))
        if rc != 0:
            log.warning("%s in %s not ready: %s", kind_name, namespace, (err or out).strip())
        return rc

    def apply_objects(self, objects: Iterable[dict]) -> None:
        objects = list(objects)
        if not objects:
            return
        manifest = yaml.safe_dump_all(objects, sort_keys=False)
        rc, out, err = self._run(["apply", "-f", "-"], stdin=manifest)
        if rc != 0:
            raise KubectlError(f"kubectl apply failed: {err or out}")
