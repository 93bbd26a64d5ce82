# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/config/layers.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from besu_stack.config.models import Environment, IngressMode, InstallOptions
from besu_stack.config.values import apply_sets
from besu_stack.errors import ConfigurationError

log = logging.getLogger("besu_stack")


@dataclass(frozen=True)
class ValuesLayer:
    """A values file on disk, or an in-memory overlay built from --set style pairs."""

    name: str
    path: Optional[Path] = None
    inline: Optional[Dict[str, Any]] = None


@dataclass
class LayerPlan:
    """
    Ordered values layers plus the --set overrides applied after them.

    Order is fixed: environment -> cloud -> performance -> tls -> ingress ->
    user file -> --set.
    """

    layers: List[ValuesLayer] = field(default_factory=list)
    sets: List[str] = field(default_factory=list)

    def names(self) -> List[str]:
        return [layer.name for layer in self.layers]

    def paths(self) -> List[Path]:
        return [layer.path for layer in self.layers if layer.path is not None]


def environment_values_file(values_dir: Path, environment: Environment, openshift: bool) -> Path:
    tier = environment.tier
    if openshift:
        variant = "production" if tier == "production" else "devnet"
        return values_dir / f"values-openshift-{variant}.yaml"
    return values_dir / f"values-{tier}.yaml"


def ingress_sets(mode: IngressMode) -> List[str]:
    if mode is IngressMode.nginx:
        return ["ingress.enabled=true", "ingress.className=nginx"]
    if mode is IngressMode.none:
        return ["ingress.enabled=false", "httpProxy.enabled=false", "ingress.autoDetect=false"]
    return []


def _require(path: Path, what: str) -> Path:
    if not path.is_file():
        raise ConfigurationError(f"{what} values file not found: {path}")
    return path


def plan_layers(opts: InstallOptions, values_dir: Path) -> LayerPlan:
    """
    Select the values layers for an install.

    Every referenced file must exist; a missing one is a configuration error
    raised before anything touches the cluster.
    """
    plan = LayerPlan()

    env_file = environment_values_file(values_dir, opts.environment, opts.openshift)
    plan.layers.append(ValuesLayer("environment", path=_require(env_file, "Environment")))
    log.info(
        "Using %s configuration for %s",
        "OpenShift" if opts.openshift else "Kubernetes",
        opts.environment.tier,
    )

    if opts.cloud is not None:
        cloud_file = values_dir / f"values-cloud-{opts.cloud.value}.yaml"
        plan.layers.append(ValuesLayer("cloud", path=_require(cloud_file, "Cloud")))
        log.info("Cloud provider: %s (using %s)", opts.cloud.value, cloud_file)

    perf_file = values_dir / f"values-performance-{opts.performance.value}.yaml"
    plan.layers.append(ValuesLayer("performance", path=_require(perf_file, "Performance")))
    log.info("Performance tier: %s (using %s)", opts.performance.value, perf_file)

    if opts.cert_manager:
        tls_file = values_dir / "values-tls-certmanager.yaml"
        plan.layers.append(ValuesLayer("tls", path=_require(tls_file, "cert-manager")))
        log.info("TLS: Using cert-manager (letsencrypt-prod)")

    if opts.ingress is IngressMode.contour:
        contour_file = values_dir / "values-ingress-contour.yaml"
        plan.layers.append(ValuesLayer("ingress", path=_require(contour_file, "Contour")))
        log.info("Ingress: Contour with HTTPProxy (using %s)", contour_file)
    elif opts.ingress in (IngressMode.nginx, IngressMode.none):
        plan.layers.append(ValuesLayer("ingress", inline=apply_sets({}, ingress_sets(opts.ingress))))
        log.info("Ingress: %s", "NGINX" if opts.ingress is IngressMode.nginx else "Disabled")
    else:
        log.info("Ingress: Auto-detection enabled")

    if opts.values_file is not None:
        user_file = Path(opts.values_file)
        plan.layers.append(ValuesLayer("user", path=_require(user_file, "Extra")))

    plan.sets = list(opts.sets)
    for expr in plan.sets:
        log.info("Set: %s", expr)
    return plan


def support_values_file(values_dir: Path, name: str) -> Optional[Path]:
    path = values_dir / "support" / f"{name}-values.yaml"
    return path if path.is_file() else None
