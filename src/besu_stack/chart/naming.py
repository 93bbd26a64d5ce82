# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/chart/naming.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from besu_stack.chart.context import RenderContext
from besu_stack.config.models import ChartValues

_MAX_NAME = 63


def _trunc(name: str) -> str:
    return name[:_MAX_NAME].rstrip("-")


def fullname(values: ChartValues, ctx: RenderContext) -> str:
    if values.fullname_override:
        return _trunc(values.fullname_override)
    name = values.name_override or ctx.chart_name
    if name in ctx.release_name:
        return _trunc(ctx.release_name)
    return _trunc(f"{ctx.release_name}-{name}")


@dataclass(frozen=True)
class Naming:
    fullname: str
    namespace: str
    cluster_domain: str = "cluster.local"

    @classmethod
    def from_values(cls, values: ChartValues, ctx: RenderContext) -> "Naming":
        return cls(
            fullname=fullname(values, ctx),
            namespace=ctx.namespace,
            cluster_domain=ctx.cluster_domain,
        )

    def workload(self, role: str) -> str:
        return _trunc(f"{self.fullname}-{role}")

    def headless_service(self, role: str) -> str:
        return _trunc(f"{self.fullname}-{role}-headless")

    def client_service(self, role: str) -> str:
        return self.workload(role)

    def pod_name(self, role: str, ordinal: int) -> str:
        return f"{self.workload(role)}-{ordinal}"

    def hostname(self, role: str, ordinal: int) -> str:
        """Stable per-ordinal DNS name served by the governing headless service."""
        return (
            f"{self.pod_name(role, ordinal)}.{self.headless_service(role)}."
            f"{self.namespace}.svc.{self.cluster_domain}"
        )

    @property
    def keys_secret(self) -> str:
        return _trunc(f"{self.fullname}-keys")

    @property
    def genesis_configmap(self) -> str:
        return _trunc(f"{self.fullname}-genesis")

    @property
    def static_nodes_configmap(self) -> str:
        return _trunc(f"{self.fullname}-static-nodes")


def selector_labels(naming: Naming, ctx: RenderContext, role: str) -> Dict[str, str]:
    return {
        "app.kubernetes.io/name": ctx.chart_name,
        "app.kubernetes.io/instance": ctx.release_name,
        "app.kubernetes.io/component": role,
    }


def common_labels(naming: Naming, ctx: RenderContext, role: str | None = None) -> Dict[str, str]:
    labels = {
        "helm.sh/chart": f"{ctx.chart_name}-{ctx.chart_version}",
        "app.kubernetes.io/name": ctx.chart_name,
        "app.kubernetes.io/instance": ctx.release_name,
        "app.kubernetes.io/version": ctx.app_version,
        "app.kubernetes.io/managed-by": "Helm",
    }
    if role:
        labels["app.kubernetes.io/component"] = role
    return labels
