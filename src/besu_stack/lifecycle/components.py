# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/lifecycle/components.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from besu_stack.config.models import SupportComponent


@dataclass(frozen=True)
class SupportChart:
    """
    Declarative definition of one support-infrastructure component: where its
    chart comes from, where it is released, and what it leaves behind at
    cluster scope.
    """

    # Identity
    name: SupportComponent

    # Helm repository / chart
    repo_name: str
    repo_url: str
    chart: str

    # Helm release
    namespace: str
    release_name: str

    # Install inputs
    values_file: Optional[str] = None     # support/<name>-values.yaml
    values_required: bool = False
    sets: Tuple[str, ...] = ()

    # Teardown
    crds: Tuple[str, ...] = ()
    uninstall_timeout: str = "2m"
    rbac_selector: Optional[str] = None
    webhooks: Tuple[str, ...] = ()

    @property
    def chart_ref(self) -> str:
        return f"{self.repo_name}/{self.chart}"


CONTOUR = SupportChart(
    name=SupportComponent.contour,
    repo_name="contour",
    repo_url="https://projectcontour.github.io/helm-charts",
    chart="contour",
    namespace="gateway",
    release_name="contour",
    values_file="contour",
    values_required=True,
    crds=(
        "contourconfigurations.projectcontour.io",
        "contourdeployments.projectcontour.io",
        "extensionservices.projectcontour.io",
        "httpproxies.projectcontour.io",
        "tlscertificatedelegations.projectcontour.io",
    ),
)

CERT_MANAGER = SupportChart(
    name=SupportComponent.cert_manager,
    repo_name="jetstack",
    repo_url="https://charts.jetstack.io",
    chart="cert-manager",
    namespace="cert-manager",
    release_name="cert-manager",
    sets=(
        "crds.enabled=true",
        "crds.keep=false",
        "extraArgs={--enable-gateway-api}",
    ),
    crds=(
        "certificaterequests.cert-manager.io",
        "certificates.cert-manager.io",
        "challenges.acme.cert-manager.io",
        "clusterissuers.cert-manager.io",
        "issuers.cert-manager.io",
        "orders.acme.cert-manager.io",
    ),
    rbac_selector="app.kubernetes.io/instance=cert-manager",
    webhooks=("cert-manager-webhook",),
)

PROMETHEUS = SupportChart(
    name=SupportComponent.prometheus,
    repo_name="prometheus-community",
    repo_url="https://prometheus-community.github.io/helm-charts",
    chart="kube-prometheus-stack",
    namespace="monitoring",
    release_name="prometheus",
    values_file="prometheus",
    crds=(
        "alertmanagerconfigs.monitoring.coreos.com",
        "alertmanagers.monitoring.coreos.com",
        "podmonitors.monitoring.coreos.com",
        "probes.monitoring.coreos.com",
        "prometheusagents.monitoring.coreos.com",
        "prometheuses.monitoring.coreos.com",
        "prometheusrules.monitoring.coreos.com",
        "scrapeconfigs.monitoring.coreos.com",
        "servicemonitors.monitoring.coreos.com",
        "thanosrulers.monitoring.coreos.com",
    ),
)

REGISTRY: Dict[SupportComponent, SupportChart] = {
    c.name: c for c in (CONTOUR, CERT_MANAGER, PROMETHEUS)
}

# Install: ingress first so the ACME http01 solver has a class to use.
INSTALL_ORDER: Tuple[SupportComponent, ...] = (
    SupportComponent.contour,
    SupportComponent.cert_manager,
    SupportComponent.prometheus,
)

# Teardown: cert-manager objects may reference Contour resources, so they go first.
TEARDOWN_ORDER: Tuple[SupportComponent, ...] = (
    SupportComponent.cert_manager,
    SupportComponent.contour,
    SupportComponent.prometheus,
)

LETSENCRYPT_ISSUER = "letsencrypt-prod"
LETSENCRYPT_SERVER = "https://acme-v02.api.letsencrypt.org/directory"


def cluster_issuer(email: str, *, ingress_class: str = "contour") -> dict:
    return {
        "apiVersion": "cert-manager.io/v1",
        "kind": "ClusterIssuer",
        "metadata": {"name": LETSENCRYPT_ISSUER},
        "spec": {
            "acme": {
                "server": LETSENCRYPT_SERVER,
                "email": email,
                "privateKeySecretRef": {"name": f"{LETSENCRYPT_ISSUER}-account-key"},
                "solvers": [{"http01": {"ingress": {"class": ingress_class}}}],
            }
        },
    }


def selected(order: Tuple[SupportComponent, ...], only: Optional[SupportComponent]) -> List[SupportChart]:
    return [REGISTRY[c] for c in order if only is None or c is only]
